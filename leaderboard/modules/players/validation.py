"""
Player mutation payload validation.

Turns a raw field mapping (parsed JSON, form data, script input) into a
validated ``PlayerPayload`` before either store is touched.

Rules
-----
- ``username``: required on create, 1-100 chars; immutable, so present on
  update is a ValidationError.
- ``total_score``, ``games_played``, ``games_won``: integers in
  0..2147483647, the width of their INTEGER columns.
- ``level``: integer in 1..2147483647.
- ``status``: one of active, inactive, banned.
- ``avatar_url``: absolute http(s) URL; empty string means "not provided".
- ``country``: free text; empty string means "not provided".
- ``last_played``: ISO-8601 timestamp; empty string means "not provided".
- ``None`` for an optional profile field clears it on update; for a counter
  it means "not provided".
- Unknown keys are ignored. ``games_won <= games_played`` is not enforced.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional

from leaderboard.core.validation.input_validator import InputValidator
from leaderboard.database.models.player import INTEGER_COLUMN_MAX, PlayerStatus
from leaderboard.modules.shared.exceptions import ValidationError

USERNAME_MAX_LENGTH = 100
COUNTRY_MAX_LENGTH = 100

STATUS_CHOICES = tuple(status.value for status in PlayerStatus)

CREATE_DEFAULTS: Dict[str, Any] = {
    "total_score": 0,
    "level": 1,
    "games_played": 0,
    "games_won": 0,
    "status": PlayerStatus.ACTIVE.value,
}

_NON_NEGATIVE_FIELDS = ("total_score", "games_played", "games_won")
_CLEARABLE_FIELDS = ("avatar_url", "country", "last_played")


def _validate_field(name: str, value: Any) -> Any:
    if name in _NON_NEGATIVE_FIELDS:
        return InputValidator.validate_non_negative_integer(value, name, max_value=INTEGER_COLUMN_MAX)
    if name == "level":
        return InputValidator.validate_positive_integer(value, name, max_value=INTEGER_COLUMN_MAX)
    if name == "status":
        return InputValidator.validate_choice(value, name, STATUS_CHOICES)
    if name == "avatar_url":
        return InputValidator.validate_url(value, name)
    if name == "country":
        return InputValidator.validate_string(value, name, max_length=COUNTRY_MAX_LENGTH)
    if name == "last_played":
        return InputValidator.validate_datetime(value, name)
    raise KeyError(name)


def _collect(raw: Mapping[str, Any], allow_clear: bool) -> Dict[str, Any]:
    values: Dict[str, Any] = {}

    for name in (*_NON_NEGATIVE_FIELDS, "level", "status", *_CLEARABLE_FIELDS):
        if name not in raw:
            continue

        value = raw[name]

        if isinstance(value, str) and not value.strip() and name in _CLEARABLE_FIELDS:
            continue

        if value is None:
            if allow_clear and name in _CLEARABLE_FIELDS:
                values[name] = None
            continue

        values[name] = _validate_field(name, value)

    return values


@dataclass(frozen=True)
class PlayerPayload:
    """Validated, normalized player fields ready for ``PlayerStore.upsert``."""

    values: Dict[str, Any] = field(default_factory=dict)
    is_create: bool = False

    @classmethod
    def for_create(cls, raw: Mapping[str, Any]) -> "PlayerPayload":
        """
        Validate a create request and fill defaults.

        Raises:
            ValidationError: On any malformed or missing required field
        """
        if not isinstance(raw, Mapping):
            raise ValidationError("payload", "Must be an object")

        username = InputValidator.validate_string(
            raw.get("username"),
            "username",
            min_length=1,
            max_length=USERNAME_MAX_LENGTH,
        )

        values: Dict[str, Any] = dict(CREATE_DEFAULTS)
        values.update(_collect(raw, allow_clear=False))
        values["username"] = username

        return cls(values=values, is_create=True)

    @classmethod
    def for_update(cls, raw: Mapping[str, Any]) -> "PlayerPayload":
        """
        Validate a partial update. Only provided fields are carried.

        Raises:
            ValidationError: On a malformed field or an attempt to rename
        """
        if not isinstance(raw, Mapping):
            raise ValidationError("payload", "Must be an object")

        if "username" in raw:
            raise ValidationError("username", "Username cannot be changed after creation")

        return cls(values=_collect(raw, allow_clear=True), is_create=False)

    @property
    def total_score(self) -> Optional[int]:
        return self.values.get("total_score")

    @property
    def username(self) -> Optional[str]:
        return self.values.get("username")

    def as_dict(self) -> Dict[str, Any]:
        return dict(self.values)

    def __bool__(self) -> bool:
        return bool(self.values)
