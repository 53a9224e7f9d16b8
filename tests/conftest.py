import os
from datetime import datetime, timedelta, timezone

os.environ.setdefault("APP_ENV", "test")
os.environ.setdefault("DATABASE_URL", "sqlite:///./footytrail_push_test.db")

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from footytrail_push.core.config import Settings
from footytrail_push.db.base import Base
from footytrail_push.models import NotificationJob, UserDevice
from footytrail_push.services.expo_client import parse_tickets

T0 = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def engine(tmp_path):
    engine = create_engine(
        f"sqlite:///{tmp_path / 'push.db'}",
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def settings(tmp_path):
    return Settings(
        _env_file=None,
        DATABASE_URL=f"sqlite:///{tmp_path / 'push.db'}",
        DISPATCH_RECLAIM_ENABLED=False,
    )


@pytest.fixture
def make_job(db):
    counter = {"n": 0}

    def _make(
        *,
        recipient_user_id="user-1",
        kind="tournament_elimination",
        payload=None,
        status="pending",
        attempts=0,
        created_at=None,
        tournament_id="tour-1",
        claimed_at=None,
    ) -> str:
        counter["n"] += 1
        job = NotificationJob(
            id=f"job-{counter['n']}",
            kind=kind,
            tournament_id=tournament_id,
            recipient_user_id=recipient_user_id,
            payload=payload if payload is not None else {"title": "Round over", "body": "You survived"},
            status=status,
            attempts=attempts,
            created_at=created_at or (T0 + timedelta(minutes=counter["n"])),
            claimed_at=claimed_at,
        )
        db.add(job)
        db.commit()
        return job.id

    return _make


@pytest.fixture
def add_device(db):
    def _add(user_id: str, token, platform: str = "ios") -> None:
        db.add(UserDevice(user_id=user_id, push_token=token, platform=platform))
        db.commit()

    return _add


@pytest.fixture
def load_job(session_factory):
    def _load(job_id: str) -> NotificationJob:
        with session_factory() as session:
            job = session.get(NotificationJob, job_id)
            session.expunge(job)
            return job

    return _load


class FakePushClient:
    """Answers every batch with the configured tickets and remembers what was sent."""

    def __init__(self, tickets=None, error: Exception | None = None):
        self.tickets = tickets
        self.error = error
        self.batches: list[list[dict]] = []

    def send(self, messages):
        self.batches.append(list(messages))
        if self.error is not None:
            raise self.error
        tickets = self.tickets
        if tickets is None:
            tickets = [{"status": "ok"} for _ in messages]
        return parse_tickets(tickets)


@pytest.fixture
def push_client_factory():
    return FakePushClient
