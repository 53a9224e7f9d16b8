from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy.exc import OperationalError

from footytrail_push.core.errors import StoreError
from footytrail_push.db.base import Base
from footytrail_push.services import job_queue
from footytrail_push.services.job_queue import (
    claim_job,
    load_claimed_jobs,
    reserve_jobs,
    select_pending_job_ids,
)

T0 = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def test_reserve_oldest_first_with_limit(db, make_job, load_job):
    """Three pending jobs, limit 2: the two oldest are claimed."""
    t3 = make_job(created_at=T0 + timedelta(minutes=30))
    t1 = make_job(created_at=T0 + timedelta(minutes=10))
    t2 = make_job(created_at=T0 + timedelta(minutes=20))

    jobs = reserve_jobs(db, 2)

    assert [job.id for job in jobs] == [t1, t2]
    assert all(job.attempts == 1 for job in jobs)
    assert load_job(t1).status == "processing"
    assert load_job(t2).status == "processing"
    untouched = load_job(t3)
    assert untouched.status == "pending"
    assert untouched.attempts == 0


def test_reserve_returns_empty_without_pending_jobs(db, make_job):
    make_job(status="sent")
    make_job(status="failed", attempts=5)
    assert reserve_jobs(db, 10) == []


def test_reserve_only_claims_pending_jobs(db, make_job):
    make_job(status="processing", attempts=1)
    make_job(status="sent", attempts=1)
    make_job(status="failed", attempts=5)
    pending = make_job()

    jobs = reserve_jobs(db, 10)

    assert [job.id for job in jobs] == [pending]


def test_claim_increments_attempts_by_one(db, make_job, load_job):
    job_id = make_job(attempts=3)
    assert claim_job(db, job_id) is True
    job = load_job(job_id)
    assert job.attempts == 4
    assert job.status == "processing"
    assert job.claimed_at is not None


def test_claim_is_rejected_once_job_left_pending(db, make_job, load_job):
    job_id = make_job()
    assert claim_job(db, job_id) is True
    assert claim_job(db, job_id) is False
    assert load_job(job_id).attempts == 1


def test_interleaved_reservations_claim_disjoint_sets(session_factory, make_job):
    """Claimers working from the same snapshot never share a job."""
    ids = [make_job() for _ in range(5)]
    sessions = [session_factory() for _ in range(3)]
    try:
        snapshots = [select_pending_job_ids(session, 10) for session in sessions]
        assert all(snapshot == ids for snapshot in snapshots)

        claimed = [[] for _ in sessions]
        for position, job_id in enumerate(ids):
            order = list(range(len(sessions)))
            order = order[position % len(order):] + order[: position % len(order)]
            for idx in order:
                if claim_job(sessions[idx], job_id):
                    claimed[idx].append(job_id)

        reloaded = [
            {job.id for job in load_claimed_jobs(session, claimed_ids)}
            for session, claimed_ids in zip(sessions, claimed)
        ]
    finally:
        for session in sessions:
            session.close()

    for i in range(len(reloaded)):
        for j in range(i + 1, len(reloaded)):
            assert reloaded[i].isdisjoint(reloaded[j])
    assert sorted(set().union(*reloaded)) == sorted(ids)
    assert sum(len(found) for found in reloaded) == len(ids)


def test_reserve_drops_job_lost_to_concurrent_claim(db, session_factory, make_job, load_job, monkeypatch):
    contested = make_job()
    free = make_job()
    original_claim = job_queue.claim_job

    def racing_claim(session, job_id, *, now=None):
        if job_id == contested:
            rival = session_factory()
            try:
                assert original_claim(rival, job_id)
            finally:
                rival.close()
        return original_claim(session, job_id, now=now)

    monkeypatch.setattr(job_queue, "claim_job", racing_claim)

    jobs = reserve_jobs(db, 10)

    assert [job.id for job in jobs] == [free]
    # The rival's claim is the only one that counted.
    assert load_job(contested).attempts == 1


def test_reserve_wraps_store_failures(db, engine, make_job):
    make_job()
    Base.metadata.drop_all(engine)
    with pytest.raises(StoreError) as excinfo:
        reserve_jobs(db, 10)
    assert "reserve_jobs_select_failed" in str(excinfo.value)


def test_reserve_fails_when_store_drops_mid_claim(db, make_job, load_job, monkeypatch):
    first = make_job()
    second = make_job()
    original_claim = job_queue.claim_job

    def dropping_claim(session, job_id, *, now=None):
        if job_id == second:
            raise OperationalError("UPDATE notification_jobs", {}, Exception("connection reset"))
        return original_claim(session, job_id, now=now)

    monkeypatch.setattr(job_queue, "claim_job", dropping_claim)

    jobs = None
    with pytest.raises(StoreError) as excinfo:
        jobs = reserve_jobs(db, 10)

    assert jobs is None
    assert "reserve_jobs_claim_failed" in str(excinfo.value)
    # The committed claim stays held until the lease sweep releases it.
    assert load_job(first).status == "processing"
    assert load_job(second).status == "pending"
    assert load_job(second).attempts == 0


def test_claimed_job_snapshot_is_detached_from_later_writes(db, make_job):
    job_id = make_job(payload={"title": "Hi", "sound": "chime.wav"})
    [job] = reserve_jobs(db, 1)
    job.payload["title"] = "changed"
    assert job.id == job_id
    [reloaded] = load_claimed_jobs(db, [job_id])
    assert reloaded.payload["title"] == "Hi"
