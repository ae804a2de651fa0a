"""Rich presence activity payload models.

Activities are immutable pydantic models. Every optional field starts unset
and unset fields are left out of the JSON sent to Discord (never ``null``).
The ``with_*`` builders return a new, re-validated instance, so they can be
chained:

    activity = (
        Activity()
        .with_details("Song")
        .with_state("Artist · Album")
        .with_timestamps(Timestamps(start=1000, end=1300))
    )
"""

from __future__ import annotations

import math
import time
from collections.abc import Sequence
from typing import Annotated, Any, Self

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from am_presence.const import BUTTON_LABEL_MAX_LENGTH, BUTTON_URL_MAX_LENGTH, MAX_BUTTONS
from am_presence.protocol.exceptions import ErrorKind, RichPresenceError

__all__ = ["Activity", "Assets", "Button", "Party", "Secrets", "Timestamps"]

EpochSeconds = Annotated[int, Field(ge=-(2**63), le=2**63 - 1)]


class _PresenceModel(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    def _replace(self, **changes: Any) -> Self:
        return type(self).model_validate({**dict(self), **changes})

    def to_payload(self) -> dict[str, Any]:
        """Return the JSON object sent to Discord, without unset fields."""
        return self.model_dump(mode="json", exclude_none=True)


class Timestamps(_PresenceModel):
    """Start/end of the activity as epoch seconds."""

    start: EpochSeconds | None = None
    end: EpochSeconds | None = None

    def with_start(self, start: int) -> Timestamps:
        return self._replace(start=start)

    def with_end(self, end: int) -> Timestamps:
        return self._replace(end=end)

    @classmethod
    def from_progress(cls, position: float, duration: float, now: float | None = None) -> Timestamps:
        """Build timestamps for media that is ``position`` seconds into ``duration``.

        Args:
            position: Elapsed playback time in seconds
            duration: Total length in seconds
            now: Current epoch time (default: time.time())

        Returns:
            Timestamps with start rounded down and end rounded up

        """
        now_ts = float(int(time.time())) if now is None else now
        return cls(
            start=math.floor(now_ts - position),
            end=math.ceil(now_ts + duration - position),
        )


class Party(_PresenceModel):
    """Party the user is in; ``size`` is (current, maximum)."""

    id: str | None = None
    size: tuple[int, int] | None = None

    def with_id(self, party_id: str) -> Party:
        return self._replace(id=party_id)

    def with_size(self, current: int, maximum: int) -> Party:
        return self._replace(size=(current, maximum))


class Assets(_PresenceModel):
    """Art assets and their hover text.

    Image fields take either an asset key uploaded to the Discord application
    or an external image URL.
    """

    large_image: str | None = None
    large_text: str | None = None
    small_image: str | None = None
    small_text: str | None = None

    def with_large_image(self, large_image: str) -> Assets:
        return self._replace(large_image=large_image)

    def with_large_text(self, large_text: str) -> Assets:
        return self._replace(large_text=large_text)

    def with_small_image(self, small_image: str) -> Assets:
        return self._replace(small_image=small_image)

    def with_small_text(self, small_text: str) -> Assets:
        return self._replace(small_text=small_text)


class Secrets(_PresenceModel):
    """Join, spectate and match secrets."""

    join: str | None = None
    spectate: str | None = None
    match: str | None = None

    def with_join(self, join: str) -> Secrets:
        return self._replace(join=join)

    def with_spectate(self, spectate: str) -> Secrets:
        return self._replace(spectate=spectate)

    def with_match(self, match: str) -> Secrets:
        return self._replace(match=match)


class Button(_PresenceModel):
    """Link button shown under the activity.

    The label must be 1-32 characters and the URL 1-512 characters. Values
    outside those bounds are rejected, never truncated.
    """

    label: Annotated[str, Field(min_length=1, max_length=BUTTON_LABEL_MAX_LENGTH)]
    url: Annotated[str, Field(min_length=1, max_length=BUTTON_URL_MAX_LENGTH)]

    def __init__(self, label: str, url: str) -> None:
        """Create a button.

        Raises:
            RichPresenceError: BUTTON_CREATE_INVALID_VALUE if label or url is out of bounds

        """
        try:
            super().__init__(label=label, url=url)
        except ValidationError as err:
            raise RichPresenceError(ErrorKind.BUTTON_CREATE_INVALID_VALUE) from err


class Activity(_PresenceModel):
    """Rich presence activity.

    ``details`` is the first line (title) and ``state`` the second (subtitle).
    At most two buttons, stored as a tuple; an empty button list is stored as
    unset.
    """

    state: str | None = None
    details: str | None = None
    timestamps: Timestamps | None = None
    party: Party | None = None
    assets: Assets | None = None
    secrets: Secrets | None = None
    buttons: tuple[Button, ...] | None = None

    @field_validator("buttons")
    @classmethod
    def _check_buttons(cls, value: tuple[Button, ...] | None) -> tuple[Button, ...] | None:
        if not value:
            return None
        if len(value) > MAX_BUTTONS:
            raise RichPresenceError(ErrorKind.TOO_MANY_BUTTONS, count=len(value))
        return value

    def with_state(self, state: str) -> Activity:
        return self._replace(state=state)

    def with_details(self, details: str) -> Activity:
        return self._replace(details=details)

    def with_timestamps(self, timestamps: Timestamps) -> Activity:
        return self._replace(timestamps=timestamps)

    def with_party(self, party: Party) -> Activity:
        return self._replace(party=party)

    def with_assets(self, assets: Assets) -> Activity:
        return self._replace(assets=assets)

    def with_secrets(self, secrets: Secrets) -> Activity:
        return self._replace(secrets=secrets)

    def with_buttons(self, buttons: Sequence[Button]) -> Activity:
        """Attach buttons, replacing any previous ones.

        Raises:
            RichPresenceError: TOO_MANY_BUTTONS if more than two are given

        """
        if len(buttons) > MAX_BUTTONS:
            raise RichPresenceError(ErrorKind.TOO_MANY_BUTTONS, count=len(buttons))
        return self._replace(buttons=tuple(buttons) or None)
