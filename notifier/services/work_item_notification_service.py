"""Work item notification fan-out.

`on_event` is called once per committed work item event, inside the event's
transaction. It:

1. applies saved-query watches (project scope, then global scope),
2. force-watches the acting user, role assignees and mentioned users,
3. sends one message per newly assigned role,
4. sends at most one consolidated message: mentioned users in To, eligible
   watchers in Cc.

Nothing here commits. Watch upserts and outbox jobs are flushed into the
caller's transaction so they succeed or fail together. To keep the next
event for the same item from reading uncommitted watches, wrap the call
and the commit in `work_item_lock`:

    with work_item_lock(work_item.id):
        on_event(db, event, work_item)
        db.commit()
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Callable
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from notifier.core.locks import work_item_lock
from notifier.core.structured_logging import build_log_context
from notifier.db.enums import ChangeKind
from notifier.db.models import User, WorkItem
from notifier.events import EventKind, WorkItemChanged, WorkItemCommented, WorkItemEvent
from notifier.services import (
    email_composition_service,
    mail_address_service,
    query_watch_service,
    watch_service,
)
from notifier.services.dispatch_service import DispatchGateway, JobQueueDispatchGateway
from notifier.services.markup_service import BasicMarkupRenderer, MarkupRenderer
from notifier.services.mention_parser import extract_mentions
from notifier.services.url_service import PermalinkBuilder, UrlBuilder
from notifier.services.user_directory import DbUserDirectory, UserDirectory
from notifier.services.visit_service import DbVisitTracker, VisitTracker, as_utc
from notifier.services.work_item_query import QueryParser, WorkItemQueryParser

logger = logging.getLogger(__name__)


class NotificationServiceError(Exception):
    """Base exception for notification service errors."""

    pass


class NotificationPreconditionError(NotificationServiceError):
    """Event or work item is not in a state that can be notified about."""

    pass


# =============================================================================
# Collaborators
# =============================================================================


@dataclass
class NotificationCollaborators:
    renderer: MarkupRenderer
    users: UserDirectory
    parser: QueryParser
    permalinks: PermalinkBuilder
    visits: VisitTracker
    dispatcher: DispatchGateway


def default_collaborators(db: Session) -> NotificationCollaborators:
    """Database-backed collaborators bound to the session."""
    return NotificationCollaborators(
        renderer=BasicMarkupRenderer(),
        users=DbUserDirectory(db),
        parser=WorkItemQueryParser(),
        permalinks=UrlBuilder(),
        visits=DbVisitTracker(db),
        dispatcher=JobQueueDispatchGateway(db),
    )


# =============================================================================
# Fan-out state
# =============================================================================


@dataclass(frozen=True)
class FanoutState:
    """
    Accumulator threaded through the fan-out steps.

    notified_user_ids: users that must not be addressed again for this event.
    mentioned: users addressed directly by the consolidated message.
    """

    notified_user_ids: frozenset[UUID] = frozenset()
    mentioned: tuple[User, ...] = ()
    dispatch_count: int = 0

    def is_notified(self, user: User) -> bool:
        return user.id in self.notified_user_ids

    def with_notified(self, *users: User) -> FanoutState:
        return replace(self, notified_user_ids=self.notified_user_ids | {user.id for user in users})

    def with_mentioned(self, user: User) -> FanoutState:
        return replace(
            self,
            notified_user_ids=self.notified_user_ids | {user.id},
            mentioned=self.mentioned + (user,),
        )

    def with_dispatch(self) -> FanoutState:
        return replace(self, dispatch_count=self.dispatch_count + 1)


@dataclass(frozen=True)
class FanoutResult:
    notified_user_ids: frozenset[UUID]
    mentioned: tuple[User, ...]
    carbon: tuple[User, ...]
    dispatch_count: int


@dataclass(frozen=True)
class _MessageContext:
    """Per-event values shared by every dispatch of the event."""

    url: str
    markdown: str | None
    rendered_html: str | None
    reply_address: str | None
    unsubscribe_address: str | None
    thread_key: str
    occurred_at: datetime
    extra: dict = field(default_factory=dict)


# =============================================================================
# Watcher policy
# =============================================================================


def _changed_notifies_watchers(event: WorkItemEvent) -> bool:
    if not isinstance(event, WorkItemChanged):
        raise NotificationPreconditionError(f"Expected a change event, got {type(event).__name__}")
    kind = event.change_kind
    return not (kind is ChangeKind.DESCRIPTION or kind.is_cross_reference)


# Keyed by every EventKind; a missing entry is a KeyError, never a silent default
WATCHER_POLICY: dict[EventKind, Callable[[WorkItemEvent], bool]] = {
    EventKind.OPENED: lambda event: True,
    EventKind.COMMENTED: lambda event: True,
    EventKind.CHANGED: _changed_notifies_watchers,
}


def should_notify_watchers(event: WorkItemEvent) -> bool:
    """Whether generic watchers hear about the event (mentions always do)."""
    return WATCHER_POLICY[event.kind](event)


# =============================================================================
# Steps
# =============================================================================


def _check_preconditions(event: WorkItemEvent, work_item: WorkItem) -> None:
    if work_item.project is None:
        raise NotificationPreconditionError(f"Work item {work_item.id} has no project")
    if isinstance(event, WorkItemCommented) and event.actor is None:
        raise NotificationPreconditionError("Comment event without an acting user")


def _seed(db: Session, event: WorkItemEvent, work_item: WorkItem, state: FanoutState) -> FanoutState:
    actor = event.actor
    if actor is None:
        return state
    if not actor.is_system:
        watch_service.set_watch(db, work_item, actor, True)
    return state.with_notified(actor)


def _send_role_message(
    work_item: WorkItem,
    role: str,
    members: list[User],
    actor: User | None,
    context: _MessageContext,
    collaborators: NotificationCollaborators,
    state: FanoutState,
) -> FanoutState:
    actor_id = actor.id if actor is not None else None
    addressees = sorted(
        {member.email for member in members if member.id != actor_id and member.email}
    )
    if not addressees:
        logger.debug("No addressees for role %r", role, extra=context.extra)
        return state

    subject = f'[{work_item.state}] You are now "{role}" of work item {work_item.number_and_title}'
    composed = email_composition_service.compose_notification_email(
        rendered_html=context.rendered_html,
        markdown=context.markdown,
        url=context.url,
        unsubscribable=False,
    )
    collaborators.dispatcher.send_async(
        addressees,
        [],
        subject,
        composed.html_body,
        composed.text_body,
        context.reply_address,
        context.thread_key,
    )
    return state.with_dispatch()


def _notify_role_assignments(
    db: Session,
    event: WorkItemEvent,
    work_item: WorkItem,
    context: _MessageContext,
    collaborators: NotificationCollaborators,
    state: FanoutState,
) -> FanoutState:
    assignments: list[tuple[str, list[User]]] = [
        (role, list(group.members)) for role, group in event.new_groups.items()
    ]
    assignments.extend((role, list(users)) for role, users in event.new_users.items())

    for role, members in assignments:
        state = _send_role_message(work_item, role, members, event.actor, context, collaborators, state)
        for member in members:
            watch_service.set_watch(db, work_item, member, True)
        state = state.with_notified(*members)
    return state


def _collect_mentions(
    db: Session,
    work_item: WorkItem,
    context: _MessageContext,
    collaborators: NotificationCollaborators,
    state: FanoutState,
) -> FanoutState:
    if not context.rendered_html:
        return state

    for name in extract_mentions(context.rendered_html):
        user = collaborators.users.find_by_name(name)
        if user is None:
            logger.debug("Ignoring mention of unknown user %r", name, extra=context.extra)
            continue
        if state.is_notified(user):
            continue
        watch_service.set_watch(db, work_item, user, True)
        state = state.with_mentioned(user)
    return state


def _carbon_recipients(
    event: WorkItemEvent,
    work_item: WorkItem,
    context: _MessageContext,
    collaborators: NotificationCollaborators,
    state: FanoutState,
) -> list[User]:
    reached = event.notified_email_addresses
    carbon: list[User] = []
    for watch in work_item.watches:
        if not watch.watching:
            continue
        user = watch.user
        if state.is_notified(user):
            continue
        last_visit = collaborators.visits.last_visit(user, work_item)
        if last_visit is not None and as_utc(last_visit) >= context.occurred_at:
            continue
        if reached and user.all_emails & reached:
            continue
        carbon.append(user)
    return carbon


def _dispatch_consolidated(
    event: WorkItemEvent,
    work_item: WorkItem,
    context: _MessageContext,
    collaborators: NotificationCollaborators,
    state: FanoutState,
    carbon: list[User],
) -> FanoutState:
    if not state.mentioned and not carbon:
        return state

    activity = event.activity(work_item)
    if event.actor is not None:
        subject = f"{event.actor.display_name} {activity}"
    else:
        subject = activity
    subject = f"[{work_item.state}] {subject}"

    composed = email_composition_service.compose_notification_email(
        rendered_html=context.rendered_html,
        markdown=context.markdown,
        url=context.url,
        unsubscribable=True,
        unsubscribe_address=context.unsubscribe_address,
    )
    collaborators.dispatcher.send_async(
        [user.email for user in state.mentioned if user.email],
        [user.email for user in carbon if user.email],
        subject,
        composed.html_body,
        composed.text_body,
        context.reply_address,
        context.thread_key,
    )
    return state.with_dispatch()


def _lock_work_item(db: Session, work_item: WorkItem) -> None:
    """Row-lock the work item and reload its watch set under the lock."""
    db.flush()
    db.execute(select(WorkItem.id).where(WorkItem.id == work_item.id).with_for_update())
    db.expire(work_item, ["watches"])


# =============================================================================
# Entry point
# =============================================================================


def on_event(
    db: Session,
    event: WorkItemEvent,
    work_item: WorkItem,
    *,
    collaborators: NotificationCollaborators | None = None,
) -> FanoutResult:
    """Resolve recipients for a work item event and dispatch notifications."""
    _check_preconditions(event, work_item)
    collaborators = collaborators or default_collaborators(db)

    log_context = build_log_context(
        work_item_id=str(work_item.id),
        project_id=str(work_item.project_id),
        actor_id=str(event.actor.id) if event.actor is not None else None,
        event_kind=event.kind.value,
    )

    with work_item_lock(work_item.id):
        _lock_work_item(db, work_item)

        project_scope = query_watch_service.project_scope(db, work_item)
        query_watch_service.apply_query_watches(db, work_item, project_scope, collaborators.parser)
        global_scope = query_watch_service.global_scope(db, collaborators.users)
        query_watch_service.apply_query_watches(db, work_item, global_scope, collaborators.parser)

        markdown = event.markdown
        context = _MessageContext(
            url=collaborators.permalinks.url_for(event.permalink_target(work_item)),
            markdown=markdown,
            rendered_html=collaborators.renderer.render(markdown) if markdown else None,
            reply_address=mail_address_service.reply_address(work_item),
            unsubscribe_address=mail_address_service.unsubscribe_address(work_item),
            thread_key=mail_address_service.thread_reference(work_item),
            occurred_at=as_utc(event.occurred_at),
            extra=log_context,
        )

        state = _seed(db, event, work_item, FanoutState())
        state = _notify_role_assignments(db, event, work_item, context, collaborators, state)
        state = _collect_mentions(db, work_item, context, collaborators, state)

        carbon: list[User] = []
        if state.mentioned or should_notify_watchers(event):
            carbon = _carbon_recipients(event, work_item, context, collaborators, state)
        state = _dispatch_consolidated(event, work_item, context, collaborators, state, carbon)

        db.flush()

    logger.info(
        "Work item notifications resolved",
        extra={
            **log_context,
            "mentioned_count": len(state.mentioned),
            "carbon_count": len(carbon),
            "dispatch_count": state.dispatch_count,
        },
    )
    return FanoutResult(
        notified_user_ids=state.notified_user_ids,
        mentioned=state.mentioned,
        carbon=tuple(carbon),
        dispatch_count=state.dispatch_count,
    )
