from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Optional, Protocol, Sequence

from sqlalchemy.orm import Session

from footytrail_push.core.config import MAX_BATCH_LIMIT, Settings, get_settings
from footytrail_push.core.errors import DispatchError, JobProcessingError, StoreError
from footytrail_push.services.devices import load_devices
from footytrail_push.services.expo_client import ExpoPushClient, PushSendResult
from footytrail_push.services.job_queue import (
    ClaimedJob,
    JobOutcome,
    mark_failed,
    reclaim_stale_jobs,
    record_outcome,
    reserve_jobs,
)
from footytrail_push.services.push_messages import build_push_messages

logger = logging.getLogger(__name__)

BATCH_LIMIT = MAX_BATCH_LIMIT
NO_DEVICES_REASON = "no devices"


class PushClient(Protocol):
    def send(self, messages: Sequence[dict[str, Any]]) -> PushSendResult: ...


@dataclass
class DispatchRunStats:
    limit: int
    reclaimed: int = 0
    sent: int = 0
    failed: int = 0
    summary: list[dict[str, Any]] = field(default_factory=list)

    def add(self, entry: dict[str, Any]) -> None:
        if entry["result"] == "sent":
            self.sent += 1
        else:
            self.failed += 1
        self.summary.append(entry)

    def as_dict(self) -> dict[str, Any]:
        return {
            "processed": len(self.summary),
            "reclaimed": self.reclaimed,
            "summary": list(self.summary),
        }


def clamp_limit(requested: Optional[int], batch_limit: int = BATCH_LIMIT) -> int:
    upper = max(1, min(batch_limit, BATCH_LIMIT))
    if requested is None:
        return upper
    return max(1, min(upper, int(requested)))


def _failure_entry(
    job: ClaimedJob,
    outcome: JobOutcome,
    applied: bool,
    detail: dict[str, Any],
) -> dict[str, Any]:
    entry = {"id": job.id, "result": outcome.result, "outcome": outcome.value, **detail}
    if not applied:
        entry["staleClaim"] = True
    return entry


def _record_failure(
    db: Session,
    job: ClaimedJob,
    reason: str,
    detail: dict[str, Any],
    settings: Settings,
) -> dict[str, Any]:
    try:
        outcome, applied = mark_failed(
            db,
            job,
            reason,
            max_attempts=settings.DISPATCH_MAX_ATTEMPTS,
        )
    except StoreError as exc:
        # The job stays in processing until the lease sweep picks it up.
        logger.exception("notifications:record_failure_error job_id=%s", job.id)
        return {"id": job.id, "result": "failed", "error": f"{reason} | {exc}"}
    logger.error(
        "notifications:send_error job_id=%s attempts=%s outcome=%s error=%s",
        job.id,
        job.attempts,
        outcome.value,
        reason[:500],
    )
    return _failure_entry(job, outcome, applied, detail)


def process_job(
    db: Session,
    job: ClaimedJob,
    push_client: PushClient,
    settings: Settings,
) -> dict[str, Any]:
    try:
        devices = load_devices(db, job.recipient_user_id)
        if not devices:
            return _record_failure(
                db, job, NO_DEVICES_REASON, {"reason": NO_DEVICES_REASON}, settings
            )

        messages = build_push_messages(
            job,
            devices,
            default_sound=settings.PUSH_DEFAULT_SOUND,
            default_route=settings.PUSH_DEFAULT_ROUTE,
            channel_id=settings.PUSH_CHANNEL_ID,
        )
        result = push_client.send(messages)

        if result.ok_count > 0:
            outcome, applied = record_outcome(
                db,
                job,
                success_count=result.ok_count,
                device_count=len(devices),
                max_attempts=settings.DISPATCH_MAX_ATTEMPTS,
            )
            logger.info(
                "notifications:send_success job_id=%s kind=%s ok=%s devices=%s",
                job.id,
                job.kind,
                result.ok_count,
                len(devices),
            )
            entry = {
                "id": job.id,
                "result": outcome.result,
                "outcome": outcome.value,
                "okCount": result.ok_count,
                "deviceCount": len(devices),
            }
            if not applied:
                entry["staleClaim"] = True
            return entry

        reason = " | ".join(result.errors) if result.errors else "unknown"
        return _record_failure(db, job, reason, {"errors": list(result.errors)}, settings)
    except Exception as exc:  # noqa: BLE001
        db.rollback()
        error = exc
        if not isinstance(exc, DispatchError):
            error = JobProcessingError(job.id, str(exc) or type(exc).__name__)
        logger.warning("notifications:job_error job_id=%s error=%s", job.id, error, exc_info=True)
        reason = getattr(error, "detail", None) or str(error)
        return _record_failure(db, job, reason, {"error": reason}, settings)


def _process_all(
    db: Session,
    jobs: Sequence[ClaimedJob],
    push_client: PushClient,
    settings: Settings,
    stats: DispatchRunStats,
) -> None:
    for job in jobs:
        stats.add(process_job(db, job, push_client, settings))


def run_dispatch(
    db: Session,
    *,
    limit: Optional[int] = None,
    push_client: PushClient | None = None,
    settings: Settings | None = None,
) -> dict[str, Any]:
    settings = settings or get_settings()
    stats = DispatchRunStats(limit=clamp_limit(limit, settings.DISPATCH_BATCH_LIMIT))

    if settings.DISPATCH_RECLAIM_ENABLED:
        stats.reclaimed = reclaim_stale_jobs(
            db,
            lease_seconds=settings.DISPATCH_LEASE_SECONDS,
            max_attempts=settings.DISPATCH_MAX_ATTEMPTS,
        )

    jobs = reserve_jobs(db, stats.limit)
    if not jobs:
        return stats.as_dict()

    if push_client is not None:
        _process_all(db, jobs, push_client, settings, stats)
    else:
        with ExpoPushClient(settings) as owned_client:
            _process_all(db, jobs, owned_client, settings, stats)

    logger.info(
        "notifications:dispatch_done limit=%s processed=%s sent=%s failed=%s reclaimed=%s",
        stats.limit,
        len(stats.summary),
        stats.sent,
        stats.failed,
        stats.reclaimed,
    )
    return stats.as_dict()
