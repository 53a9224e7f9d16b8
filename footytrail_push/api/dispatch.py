from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from footytrail_push.api.deps import get_push_client
from footytrail_push.db.session import get_db
from footytrail_push.schemas.dispatch import DispatchErrorOut, DispatchOut
from footytrail_push.services.dispatcher import PushClient, run_dispatch

router = APIRouter(tags=["dispatch"])


def parse_limit(raw: Optional[str]) -> Optional[int]:
    if raw is None:
        return None
    try:
        return int(raw.strip())
    except ValueError:
        return None


@router.api_route(
    "/send-push",
    methods=["GET", "POST"],
    response_model=DispatchOut,
    response_model_exclude_none=True,
    responses={500: {"model": DispatchErrorOut}},
)
def send_push(
    limit: Optional[str] = Query(default=None),
    db: Session = Depends(get_db),
    push_client: PushClient = Depends(get_push_client),
) -> DispatchOut:
    return DispatchOut.model_validate(
        run_dispatch(db, limit=parse_limit(limit), push_client=push_client)
    )
