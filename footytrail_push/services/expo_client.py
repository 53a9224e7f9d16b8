from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Sequence

import requests

from footytrail_push.core.config import Settings
from footytrail_push.core.errors import DeliveryError

logger = logging.getLogger(__name__)

TICKET_STATUS_OK = "ok"
TICKET_STATUS_ERROR = "error"
DEFAULT_TICKET_ERROR = "expo error"


@dataclass
class PushSendResult:
    ok_count: int = 0
    errors: list[str] = field(default_factory=list)


def parse_tickets(tickets: Sequence[Any]) -> PushSendResult:
    result = PushSendResult()
    for ticket in tickets:
        if not isinstance(ticket, dict):
            continue
        status = ticket.get("status")
        if status == TICKET_STATUS_OK:
            result.ok_count += 1
        elif status == TICKET_STATUS_ERROR:
            result.errors.append(str(ticket.get("message") or DEFAULT_TICKET_ERROR))
    return result


class ExpoPushClient:
    def __init__(self, settings: Settings, session: requests.Session | None = None):
        self._url = settings.EXPO_PUSH_URL
        self._timeout = max(1.0, float(settings.PUSH_REQUEST_TIMEOUT_SECONDS))
        self._session = session or requests.Session()
        self._headers = {
            "accept": "application/json",
            "content-type": "application/json",
        }
        if settings.EXPO_ACCESS_TOKEN:
            self._headers["authorization"] = f"Bearer {settings.EXPO_ACCESS_TOKEN}"

    def close(self) -> None:
        self._session.close()

    def __enter__(self) -> ExpoPushClient:
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def _post(self, messages: Sequence[dict[str, Any]]) -> list[Any]:
        try:
            response = self._session.post(
                self._url,
                json=list(messages),
                headers=self._headers,
                timeout=self._timeout,
            )
        except requests.RequestException as exc:
            raise DeliveryError(f"expo_request_failed: {exc}") from exc

        try:
            body = response.json()
        except ValueError as exc:
            raise DeliveryError(
                f"expo_response_unparseable status={response.status_code}"
            ) from exc

        if not isinstance(body, dict):
            return []
        if body.get("errors"):
            logger.warning(
                "notifications:expo_request_errors status=%s errors=%s",
                response.status_code,
                str(body.get("errors"))[:500],
            )
        tickets = body.get("data")
        return tickets if isinstance(tickets, list) else []

    def send(self, messages: Sequence[dict[str, Any]]) -> PushSendResult:
        """Send the whole batch in one request. Never raises."""
        if not messages:
            return PushSendResult()
        try:
            tickets = self._post(messages)
        except DeliveryError as exc:
            logger.warning(
                "notifications:expo_unavailable messages=%s error=%s",
                len(messages),
                exc,
            )
            return PushSendResult()
        result = parse_tickets(tickets)
        logger.info(
            "notifications:expo_batch messages=%s ok=%s errors=%s",
            len(messages),
            result.ok_count,
            len(result.errors),
        )
        return result
