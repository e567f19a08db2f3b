"""Configuration module for Bastion."""

from bastion.config.settings import BOUNDS, Settings, clamp, get_settings

__all__ = ["BOUNDS", "Settings", "clamp", "get_settings"]
