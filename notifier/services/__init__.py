"""Service layer modules."""

# Import service modules (not individual functions) for cleaner access
from notifier.services import dispatch_service
from notifier.services import email_composition_service
from notifier.services import job_service
from notifier.services import mail_address_service
from notifier.services import markup_service
from notifier.services import mention_parser
from notifier.services import query_watch_service
from notifier.services import unsubscribe_service
from notifier.services import url_service
from notifier.services import user_directory
from notifier.services import visit_service
from notifier.services import watch_service
from notifier.services import work_item_notification_service
from notifier.services import work_item_query

__all__ = [
    "dispatch_service",
    "email_composition_service",
    "job_service",
    "mail_address_service",
    "markup_service",
    "mention_parser",
    "query_watch_service",
    "unsubscribe_service",
    "url_service",
    "user_directory",
    "visit_service",
    "watch_service",
    "work_item_notification_service",
    "work_item_query",
]
