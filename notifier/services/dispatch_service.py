"""Dispatch gateway: hands finished notification emails to the mail transport."""

from __future__ import annotations

import logging
from typing import Protocol, Sequence

from sqlalchemy.orm import Session

from notifier.db.enums import JobType
from notifier.services import job_service

logger = logging.getLogger(__name__)


class DispatchGateway(Protocol):
    def send_async(
        self,
        to: Sequence[str],
        cc: Sequence[str],
        subject: str,
        html_body: str,
        text_body: str,
        reply_address: str | None,
        thread_key: str,
    ) -> None: ...


class JobQueueDispatchGateway:
    """
    Writes one notification_email outbox job per send.

    The job shares the caller's transaction; the transport only sees it after
    commit and takes care of delivery and retries.
    """

    def __init__(self, db: Session) -> None:
        self.db = db

    def send_async(
        self,
        to: Sequence[str],
        cc: Sequence[str],
        subject: str,
        html_body: str,
        text_body: str,
        reply_address: str | None,
        thread_key: str,
    ) -> None:
        to_list = sorted({address for address in to if address})
        cc_list = sorted({address for address in cc if address} - set(to_list))
        if not to_list and not cc_list:
            logger.debug("Skipping notification dispatch without recipients")
            return

        job = job_service.schedule_job(
            self.db,
            job_type=JobType.NOTIFICATION_EMAIL,
            payload={
                "to": to_list,
                "cc": cc_list,
                "subject": subject,
                "html_body": html_body,
                "text_body": text_body,
                "reply_address": reply_address,
                "thread_key": thread_key,
            },
        )
        logger.info(
            "Notification email queued",
            extra={"job_id": str(job.id), "to_count": len(to_list), "cc_count": len(cc_list)},
        )
