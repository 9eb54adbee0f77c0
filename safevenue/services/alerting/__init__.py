"""Alert dispatch module."""

from .dispatcher import (
    NotificationChannel,
    NotificationProvider,
    WebhookPushProvider,
    LogNotificationSink,
    AlertDispatcher,
    get_alert_dispatcher,
)

__all__ = [
    "NotificationChannel",
    "NotificationProvider",
    "WebhookPushProvider",
    "LogNotificationSink",
    "AlertDispatcher",
    "get_alert_dispatcher",
]
