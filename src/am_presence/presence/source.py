"""Activity source backed by a YAML (or JSON) file.

The file is re-read on every call, so another process (a player script, a
cron job, a human with an editor) can change what is shown without talking
to Discord itself. A missing or empty file means "nothing to show".

Example document:

    details: Song
    state: Artist · Album
    timestamps: {start: 1700000000, end: 1700000200}
    assets:
      large_image: https://example.com/cover.jpg
      large_text: Album
    buttons:
      - {label: Listen, url: https://example.com/listen}
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Any

import yaml

from am_presence.presence.activity import Activity, Button

__all__ = ["ActivityFileSource", "parse_activity"]

logger = logging.getLogger(__name__)


def parse_activity(document: Any) -> Activity | None:
    """Build an Activity from a loaded YAML document.

    Returns:
        None for an empty document, otherwise the validated Activity

    Raises:
        ValueError: The document is not a mapping or has invalid fields
        RichPresenceError: Invalid buttons (bad length or more than two)

    """
    if document is None:
        return None
    if not isinstance(document, dict):
        msg = f"Activity document must be a mapping, got {type(document).__name__}"
        raise ValueError(msg)  # noqa: TRY004

    data = dict(document)
    raw_buttons = data.pop("buttons", None) or []
    if not isinstance(raw_buttons, list):
        msg = "Activity 'buttons' must be a list of {label, url} mappings"
        raise ValueError(msg)  # noqa: TRY004

    buttons: list[Button] = []
    for raw in raw_buttons:
        if not isinstance(raw, dict):
            msg = "Activity 'buttons' must be a list of {label, url} mappings"
            raise ValueError(msg)  # noqa: TRY004
        buttons.append(Button(str(raw.get("label", "")), str(raw.get("url", ""))))

    activity = Activity.model_validate(data)
    return activity.with_buttons(buttons) if buttons else activity


class ActivityFileSource:
    """Async callable returning the Activity currently described by a file."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    async def __call__(self) -> Activity | None:
        try:
            text = await asyncio.to_thread(self.path.read_text, encoding="utf-8")
        except FileNotFoundError:
            logger.debug("Activity file %s does not exist", self.path, extra={"activity_file": str(self.path)})
            return None

        return parse_activity(yaml.safe_load(text))

    def __repr__(self) -> str:
        """String representation."""
        return f"ActivityFileSource({self.path})"
