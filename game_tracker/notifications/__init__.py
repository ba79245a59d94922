"""Notification formatting and Discord delivery."""

from game_tracker.notifications.base import DeliveryError, NotificationSink
from game_tracker.notifications.channels import (
    BotChannel,
    CircuitBreaker,
    CircuitState,
    DeliveryChannel,
    WebhookChannel,
)
from game_tracker.notifications.config import NotificationConfig
from game_tracker.notifications.sink import DiscordNotificationSink

__all__ = [
    "BotChannel",
    "CircuitBreaker",
    "CircuitState",
    "DeliveryChannel",
    "DeliveryError",
    "DiscordNotificationSink",
    "NotificationConfig",
    "NotificationSink",
    "WebhookChannel",
]
