from footytrail_push.models.tables import (
    JOB_STATUS_FAILED,
    JOB_STATUS_PENDING,
    JOB_STATUS_PROCESSING,
    JOB_STATUS_SENT,
    NotificationHistory,
    NotificationJob,
    UserDevice,
)

__all__ = [
    "JOB_STATUS_FAILED",
    "JOB_STATUS_PENDING",
    "JOB_STATUS_PROCESSING",
    "JOB_STATUS_SENT",
    "NotificationHistory",
    "NotificationJob",
    "UserDevice",
]
