from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Iterable, Optional

from sqlalchemy import or_, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from footytrail_push.core.errors import StoreError
from footytrail_push.models import (
    JOB_STATUS_FAILED,
    JOB_STATUS_PENDING,
    JOB_STATUS_PROCESSING,
    JOB_STATUS_SENT,
    NotificationHistory,
    NotificationJob,
)

logger = logging.getLogger(__name__)

MAX_ATTEMPTS = 5
LAST_ERROR_MAX_LENGTH = 2000
LEASE_EXPIRED_ERROR = "lease_expired"


class JobOutcome(str, Enum):
    DELIVERED = "delivered"
    RETRYABLE_FAILURE = "retryable_failure"
    TERMINAL_FAILURE = "terminal_failure"

    @property
    def status(self) -> str:
        if self is JobOutcome.DELIVERED:
            return JOB_STATUS_SENT
        if self is JobOutcome.TERMINAL_FAILURE:
            return JOB_STATUS_FAILED
        return JOB_STATUS_PENDING

    @property
    def result(self) -> str:
        return "sent" if self is JobOutcome.DELIVERED else "failed"


def decide_outcome(attempts: int, success_count: int, max_attempts: int = MAX_ATTEMPTS) -> JobOutcome:
    if success_count > 0:
        return JobOutcome.DELIVERED
    if int(attempts or 0) >= max_attempts:
        return JobOutcome.TERMINAL_FAILURE
    return JobOutcome.RETRYABLE_FAILURE


@dataclass(frozen=True)
class ClaimedJob:
    """Snapshot of a job row taken right after this invocation claimed it.

    ``attempts`` is the value written by the claim and guards every later write,
    so a claim that was reclaimed and handed to another invocation cannot be
    finalized twice.
    """

    id: str
    kind: str
    recipient_user_id: str
    attempts: int
    tournament_id: Optional[str] = None
    payload: dict[str, Any] = field(default_factory=dict)
    created_at: Optional[datetime] = None

    @classmethod
    def from_row(cls, row: NotificationJob) -> "ClaimedJob":
        return cls(
            id=str(row.id),
            kind=row.kind,
            recipient_user_id=str(row.recipient_user_id),
            attempts=int(row.attempts or 0),
            tournament_id=str(row.tournament_id) if row.tournament_id is not None else None,
            payload=dict(row.payload or {}),
            created_at=row.created_at,
        )


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def truncate_error(reason: str | None) -> str:
    text = str(reason or "").strip() or "unknown"
    return text[:LAST_ERROR_MAX_LENGTH]


def select_pending_job_ids(db: Session, limit: int) -> list[str]:
    return list(
        db.execute(
            select(NotificationJob.id)
            .where(NotificationJob.status == JOB_STATUS_PENDING)
            .order_by(NotificationJob.created_at.asc(), NotificationJob.id.asc())
            .limit(max(1, int(limit)))
        )
        .scalars()
        .all()
    )


def claim_job(db: Session, job_id: str, *, now: datetime | None = None) -> bool:
    result = db.execute(
        update(NotificationJob)
        .where(
            NotificationJob.id == job_id,
            NotificationJob.status == JOB_STATUS_PENDING,
        )
        .values(
            status=JOB_STATUS_PROCESSING,
            attempts=NotificationJob.attempts + 1,
            claimed_at=now or _utcnow(),
        )
        .execution_options(synchronize_session=False)
    )
    db.commit()
    return (result.rowcount or 0) > 0


def load_claimed_jobs(db: Session, job_ids: Iterable[str]) -> list[ClaimedJob]:
    ids = list(job_ids)
    if not ids:
        return []
    rows = (
        db.execute(
            select(NotificationJob)
            .where(
                NotificationJob.id.in_(ids),
                NotificationJob.status == JOB_STATUS_PROCESSING,
            )
            .order_by(NotificationJob.created_at.asc(), NotificationJob.id.asc())
            .execution_options(populate_existing=True)
        )
        .scalars()
        .all()
    )
    return [ClaimedJob.from_row(row) for row in rows]


def reserve_jobs(db: Session, limit: int) -> list[ClaimedJob]:
    """Claim up to ``limit`` of the oldest pending jobs for this invocation.

    Each claim is its own conditional update on one row. Jobs taken by a
    concurrent reservation between the select and the update are dropped.
    """
    try:
        candidate_ids = select_pending_job_ids(db, limit)
    except SQLAlchemyError as exc:
        db.rollback()
        raise StoreError(f"reserve_jobs_select_failed: {exc}") from exc
    if not candidate_ids:
        return []

    now = _utcnow()
    claimed_ids: list[str] = []
    try:
        for job_id in candidate_ids:
            if claim_job(db, job_id, now=now):
                claimed_ids.append(job_id)
        jobs = load_claimed_jobs(db, claimed_ids)
    except SQLAlchemyError as exc:
        db.rollback()
        raise StoreError(f"reserve_jobs_claim_failed: {exc}") from exc

    logger.info(
        "notifications:reserve_jobs requested=%s candidates=%s claimed=%s",
        limit,
        len(candidate_ids),
        len(jobs),
    )
    return jobs


def reclaim_stale_jobs(
    db: Session,
    *,
    lease_seconds: int,
    max_attempts: int = MAX_ATTEMPTS,
    now: datetime | None = None,
) -> int:
    """Return expired ``processing`` claims to the queue, or fail them at the cutoff."""
    now = now or _utcnow()
    cutoff = now - timedelta(seconds=max(1, int(lease_seconds)))
    try:
        stale = db.execute(
            select(NotificationJob.id, NotificationJob.attempts)
            .where(
                NotificationJob.status == JOB_STATUS_PROCESSING,
                or_(NotificationJob.claimed_at.is_(None), NotificationJob.claimed_at < cutoff),
            )
            .order_by(NotificationJob.created_at.asc())
        ).all()
        reclaimed = 0
        for job_id, attempts in stale:
            outcome = decide_outcome(attempts, 0, max_attempts)
            result = db.execute(
                update(NotificationJob)
                .where(
                    NotificationJob.id == job_id,
                    NotificationJob.status == JOB_STATUS_PROCESSING,
                    NotificationJob.attempts == attempts,
                )
                .values(
                    status=outcome.status,
                    last_error=LEASE_EXPIRED_ERROR,
                    claimed_at=None,
                )
                .execution_options(synchronize_session=False)
            )
            db.commit()
            if (result.rowcount or 0) > 0:
                reclaimed += 1
                logger.warning(
                    "notifications:lease_expired job_id=%s attempts=%s status=%s",
                    job_id,
                    attempts,
                    outcome.status,
                )
    except SQLAlchemyError as exc:
        db.rollback()
        raise StoreError(f"reclaim_stale_jobs_failed: {exc}") from exc
    return reclaimed


def build_history_payload(job: ClaimedJob, device_count: int) -> dict[str, Any]:
    return {
        **job.payload,
        "deviceCount": device_count,
        "jobId": job.id,
        "kind": job.kind,
    }


def _guarded_update(job: ClaimedJob):
    return update(NotificationJob).where(
        NotificationJob.id == job.id,
        NotificationJob.status == JOB_STATUS_PROCESSING,
        NotificationJob.attempts == job.attempts,
    )


def mark_sent(db: Session, job: ClaimedJob, *, device_count: int) -> bool:
    try:
        result = db.execute(
            _guarded_update(job)
            .values(status=JOB_STATUS_SENT, last_error=None, claimed_at=None)
            .execution_options(synchronize_session=False)
        )
        if not result.rowcount:
            db.rollback()
            logger.warning("notifications:stale_claim job_id=%s attempts=%s", job.id, job.attempts)
            return False
        db.add(
            NotificationHistory(
                user_id=job.recipient_user_id,
                type=job.kind,
                payload=build_history_payload(job, device_count),
            )
        )
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        raise StoreError(f"mark_sent_failed: {exc}") from exc
    return True


def mark_failed(
    db: Session,
    job: ClaimedJob,
    reason: str,
    *,
    max_attempts: int = MAX_ATTEMPTS,
) -> tuple[JobOutcome, bool]:
    outcome = decide_outcome(job.attempts, 0, max_attempts)
    try:
        result = db.execute(
            _guarded_update(job)
            .values(
                status=outcome.status,
                last_error=truncate_error(reason),
                claimed_at=None,
            )
            .execution_options(synchronize_session=False)
        )
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        raise StoreError(f"mark_failed_failed: {exc}") from exc
    applied = bool(result.rowcount)
    if not applied:
        logger.warning("notifications:stale_claim job_id=%s attempts=%s", job.id, job.attempts)
    return outcome, applied


def record_outcome(
    db: Session,
    job: ClaimedJob,
    *,
    success_count: int,
    device_count: int,
    reason: str | None = None,
    max_attempts: int = MAX_ATTEMPTS,
) -> tuple[JobOutcome, bool]:
    outcome = decide_outcome(job.attempts, success_count, max_attempts)
    if outcome is JobOutcome.DELIVERED:
        return outcome, mark_sent(db, job, device_count=device_count)
    return mark_failed(db, job, reason or "unknown", max_attempts=max_attempts)
