"""Job service - outbox job scheduling and status transitions."""

from datetime import datetime, timezone
from uuid import UUID

from sqlalchemy.orm import Session

from notifier.db.models import Job
from notifier.db.enums import JobStatus, JobType


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def schedule_job(
    db: Session,
    job_type: JobType,
    payload: dict,
    run_at: datetime | None = None,
    idempotency_key: str | None = None,
) -> Job:
    """
    Schedule a new background job.

    If run_at is None, the job runs immediately.
    The job is flushed into the caller's transaction, not committed, so it
    becomes visible to workers only together with the event that produced it.
    If idempotency_key is provided, duplicate jobs with same key will fail
    with IntegrityError (caller should catch and handle).
    """
    job = Job(
        job_type=job_type.value,
        payload=payload,
        run_at=run_at or _utcnow(),
        status=JobStatus.PENDING.value,
        idempotency_key=idempotency_key,
    )
    db.add(job)
    db.flush()
    return job


def get_job(db: Session, job_id: UUID) -> Job | None:
    """Get a job by ID."""
    return db.query(Job).filter(Job.id == job_id).first()


def list_jobs(
    db: Session,
    status: JobStatus | None = None,
    job_type: JobType | None = None,
    limit: int = 50,
) -> list[Job]:
    """List jobs with optional filters, newest first."""
    query = db.query(Job)
    if status:
        query = query.filter(Job.status == status.value)
    if job_type:
        query = query.filter(Job.job_type == job_type.value)
    return query.order_by(Job.created_at.desc()).limit(limit).all()
