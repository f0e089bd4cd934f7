"""Configuration module."""

from pairchat.config.constants import CHAT, ChatConstants
from pairchat.config.settings import Settings, get_settings

__all__ = ["Settings", "get_settings", "ChatConstants", "CHAT"]
