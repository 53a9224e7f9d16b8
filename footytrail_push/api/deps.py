from __future__ import annotations

from footytrail_push.core.config import get_settings
from footytrail_push.services.expo_client import ExpoPushClient


def get_push_client():
    client = ExpoPushClient(get_settings())
    try:
        yield client
    finally:
        client.close()
