from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping, Sequence

from footytrail_push.services.devices import DeviceTarget
from footytrail_push.services.job_queue import ClaimedJob

DEFAULT_TITLE = "FootyTrail"
DEFAULT_BODY = "Open challenge"
DEFAULT_SOUND = "default"
DEFAULT_ROUTE = "/elimination"
DEFAULT_CHANNEL_ID = "default"
PUSH_PRIORITY = "high"


def _non_empty_str(value: Any) -> str | None:
    if isinstance(value, str) and value.strip():
        return value
    return None


@dataclass(frozen=True)
class NotificationPayload:
    """Recognized notification fields plus the rest of the payload.

    ``passthrough`` never holds ``sound``; the sound only travels as the
    top-level transport field of each message.
    """

    title: str
    body: str
    sound: str
    navigate_to: str
    passthrough: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_mapping(
        cls,
        payload: Mapping[str, Any] | None,
        *,
        default_sound: str = DEFAULT_SOUND,
        default_route: str = DEFAULT_ROUTE,
    ) -> "NotificationPayload":
        raw = dict(payload or {})
        title = raw.get("title")
        body = raw.get("body")
        return cls(
            title=DEFAULT_TITLE if title is None else str(title),
            body=DEFAULT_BODY if body is None else str(body),
            sound=_non_empty_str(raw.get("sound")) or default_sound,
            navigate_to=_non_empty_str(raw.get("navigateTo")) or default_route,
            passthrough={key: value for key, value in raw.items() if key != "sound"},
        )


def build_message_data(job: ClaimedJob, envelope: NotificationPayload) -> dict[str, Any]:
    return {
        **envelope.passthrough,
        "navigateTo": envelope.navigate_to,
        "jobId": job.id,
        "kind": job.kind,
        "tournamentId": job.tournament_id,
    }


def build_push_messages(
    job: ClaimedJob,
    devices: Sequence[DeviceTarget],
    *,
    default_sound: str = DEFAULT_SOUND,
    default_route: str = DEFAULT_ROUTE,
    channel_id: str = DEFAULT_CHANNEL_ID,
) -> list[dict[str, Any]]:
    envelope = NotificationPayload.from_mapping(
        job.payload,
        default_sound=default_sound,
        default_route=default_route,
    )
    data = build_message_data(job, envelope)
    return [
        {
            "to": device.push_token,
            "title": envelope.title,
            "body": envelope.body,
            "sound": envelope.sound,
            "channelId": channel_id,
            "priority": PUSH_PRIORITY,
            "data": dict(data),
        }
        for device in devices
    ]
