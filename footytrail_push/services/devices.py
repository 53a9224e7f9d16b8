from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from footytrail_push.core.errors import StoreError
from footytrail_push.models import UserDevice


@dataclass(frozen=True)
class DeviceTarget:
    push_token: str
    platform: Optional[str] = None


def dedupe_devices(rows: Iterable[tuple[Optional[str], Optional[str]]]) -> list[DeviceTarget]:
    seen: set[str] = set()
    out: list[DeviceTarget] = []
    for raw_token, platform in rows:
        token = (raw_token or "").strip()
        if not token or token in seen:
            continue
        seen.add(token)
        out.append(DeviceTarget(push_token=token, platform=platform))
    return out


def load_devices(db: Session, user_id: str) -> list[DeviceTarget]:
    try:
        rows = db.execute(
            select(UserDevice.push_token, UserDevice.platform)
            .where(UserDevice.user_id == user_id)
            .order_by(UserDevice.id)
        ).all()
    except SQLAlchemyError as exc:
        raise StoreError(f"load_devices_failed: {exc}") from exc
    return dedupe_devices((row.push_token, row.platform) for row in rows)
