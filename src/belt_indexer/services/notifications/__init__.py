"""
Notification pipeline: Redis dedup tracker, embed rendering, webhook delivery
"""

from .dedup import (
    ConnectionState,
    NotificationStoreConfig,
    NotificationTracker,
    notification_scope,
)
from .render import DeployInfo, UserOpInfo
from .webhook import Notification, WebhookNotifier

__all__ = [
    "ConnectionState",
    "NotificationStoreConfig",
    "NotificationTracker",
    "notification_scope",
    "DeployInfo",
    "UserOpInfo",
    "Notification",
    "WebhookNotifier",
]
