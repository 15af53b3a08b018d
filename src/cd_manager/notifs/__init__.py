"""
Job notifications.
"""

from .base import NotificationDispatcher, LoggingNotifier
from .discord import DiscordNotifier, DiscordColor, EmbedField, build_payload

__all__ = [
    "NotificationDispatcher",
    "LoggingNotifier",
    "DiscordNotifier",
    "DiscordColor",
    "EmbedField",
    "build_payload",
]
