"""Presence payload models and activity sources."""

from .activity import Activity, Assets, Button, Party, Secrets, Timestamps
from .source import ActivityFileSource, parse_activity

__all__ = [
    "Activity",
    "ActivityFileSource",
    "Assets",
    "Button",
    "Party",
    "Secrets",
    "Timestamps",
    "parse_activity",
]
