"""
Boundary checks for raw player and leaderboard input.

``InputValidator`` turns loosely typed request values (JSON numbers, query
strings, form fields) into the types the store expects, or raises
``ValidationError`` naming the offending field. Nothing here knows about
players; field-level rules live in ``modules.players.validation``.

Each rejection is logged at DEBUG with ``field_name``, ``raw_value`` and
``reason``.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any, NoReturn, Optional, Sequence
from urllib.parse import urlparse

from leaderboard.core.logging.logger import get_logger
from leaderboard.modules.shared.exceptions import ValidationError

logger = get_logger(__name__)

_URL_SCHEMES = frozenset({"http", "https"})


def _reject(field_name: str, value: Any, reason: str) -> NoReturn:
    logger.debug(
        "Rejected input",
        extra={"field_name": field_name, "raw_value": repr(value), "reason": reason},
    )
    raise ValidationError(field_name, reason)


def _check_range(field_name: str, number: int, lower: Optional[int], upper: Optional[int]) -> int:
    if lower is not None and number < lower:
        _reject(field_name, number, f"Must be at least {lower}, got {number}")
    if upper is not None and number > upper:
        _reject(field_name, number, f"Cannot exceed {upper}, got {number}")
    return number


def _check_length(field_name: str, text: str, shortest: Optional[int], longest: Optional[int]) -> str:
    if shortest is not None and len(text) < shortest:
        _reject(field_name, text, f"Must be at least {shortest} characters")
    if longest is not None and len(text) > longest:
        _reject(field_name, text, f"Cannot exceed {longest} characters")
    return text


class InputValidator:
    """Stateless converters; each returns the normalized value or raises."""

    @staticmethod
    def validate_integer(
        value: Any,
        field_name: str,
        min_value: Optional[int] = None,
        max_value: Optional[int] = None,
    ) -> int:
        """
        Coerce ``value`` to ``int`` and bound it.

        ``"12"``, ``" 7 "`` and ``3.0`` are accepted. ``True``, ``2.5`` and
        ``None`` are not.
        """
        if value is None:
            _reject(field_name, value, "Value is required")
        if isinstance(value, bool):
            _reject(field_name, value, "Must be a whole number")

        if isinstance(value, float):
            if not value.is_integer():
                _reject(field_name, value, f"Must be a whole number, got {value}")
            number = int(value)
        else:
            candidate = value.strip() if isinstance(value, str) else value
            try:
                number = int(candidate)
            except (TypeError, ValueError):
                _reject(field_name, value, f"Must be a whole number, got '{value}'")

        return _check_range(field_name, number, min_value, max_value)

    @staticmethod
    def validate_positive_integer(value: Any, field_name: str, max_value: Optional[int] = None) -> int:
        return InputValidator.validate_integer(value, field_name, 1, max_value)

    @staticmethod
    def validate_non_negative_integer(
        value: Any, field_name: str, max_value: Optional[int] = None
    ) -> int:
        return InputValidator.validate_integer(value, field_name, 0, max_value)

    @staticmethod
    def validate_string(
        value: Any,
        field_name: str,
        min_length: Optional[int] = None,
        max_length: Optional[int] = None,
    ) -> str:
        """Strip surrounding whitespace, then bound the length. Non-strings are rejected."""
        if value is None:
            _reject(field_name, value, "Value is required")
        if not isinstance(value, str):
            _reject(field_name, value, "Must be a string")
        return _check_length(field_name, value.strip(), min_length, max_length)

    @staticmethod
    def validate_choice(value: Any, field_name: str, valid_choices: Sequence[str]) -> str:
        """Case-insensitive membership check; returns the lowercased choice."""
        chosen = str(value).strip().lower()
        if chosen in {option.lower() for option in valid_choices}:
            return chosen
        _reject(
            field_name,
            value,
            f"Invalid choice '{value}'. Must be one of: {', '.join(sorted(valid_choices))}",
        )

    @staticmethod
    def validate_uuid(value: Any, field_name: str = "id") -> uuid.UUID:
        if isinstance(value, uuid.UUID):
            return value
        if isinstance(value, str) and value.strip():
            try:
                return uuid.UUID(value.strip())
            except ValueError:
                _reject(field_name, value, f"Malformed UUID '{value}'")
        _reject(field_name, value, "Must be a UUID string")

    @staticmethod
    def validate_url(value: Any, field_name: str, max_length: int = 2048) -> str:
        """Absolute ``http``/``https`` URLs only (avatar links)."""
        url = InputValidator.validate_string(value, field_name, min_length=1, max_length=max_length)
        parts = urlparse(url)
        if parts.scheme in _URL_SCHEMES and parts.netloc:
            return url
        _reject(field_name, value, "Must be an absolute http(s) URL")

    @staticmethod
    def validate_datetime(value: Any, field_name: str) -> datetime:
        """
        Parse an ISO-8601 timestamp into an aware UTC ``datetime``.

        A trailing ``Z`` means UTC, as does a missing offset. ``datetime``
        instances go through the same normalization.
        """
        if isinstance(value, datetime):
            moment = value
        else:
            if not isinstance(value, str) or not value.strip():
                _reject(field_name, value, "Must be an ISO-8601 timestamp")
            stamp = value.strip()
            if stamp[-1] in "Zz":
                stamp = f"{stamp[:-1]}+00:00"
            try:
                moment = datetime.fromisoformat(stamp)
            except ValueError:
                _reject(field_name, value, "Must be an ISO-8601 timestamp")

        if moment.tzinfo is None:
            return moment.replace(tzinfo=timezone.utc)
        return moment.astimezone(timezone.utc)
