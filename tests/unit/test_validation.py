"""
Unit tests for InputValidator, PlayerPayload and the sort allow-list.
"""

import uuid
from datetime import datetime, timezone

import pytest

from leaderboard.core.validation.input_validator import InputValidator
from leaderboard.modules.players.sorting import (
    DEFAULT_SORT,
    SortSpec,
    parse_sort_param,
    resolve_sort,
)
from leaderboard.modules.players.validation import PlayerPayload
from leaderboard.modules.shared.exceptions import ValidationError


@pytest.mark.unit
class TestInputValidator:
    @pytest.mark.parametrize("value, expected", [(5, 5), ("12", 12), (" 7 ", 7), (3.0, 3)])
    def test_integer_coercion(self, value, expected):
        assert InputValidator.validate_integer(value, "n") == expected

    @pytest.mark.parametrize("value", [True, 2.5, "abc", None, [1]])
    def test_integer_rejects(self, value):
        with pytest.raises(ValidationError):
            InputValidator.validate_integer(value, "n")

    def test_non_negative(self):
        assert InputValidator.validate_non_negative_integer(0, "score") == 0
        with pytest.raises(ValidationError) as exc_info:
            InputValidator.validate_non_negative_integer(-1, "score")
        assert exc_info.value.error_code == "VALIDATION_SCORE"

    def test_positive(self):
        with pytest.raises(ValidationError):
            InputValidator.validate_positive_integer(0, "level")

    def test_string_strips_and_bounds(self):
        assert InputValidator.validate_string("  bob ", "name", max_length=5) == "bob"
        with pytest.raises(ValidationError):
            InputValidator.validate_string("toolong", "name", max_length=3)
        with pytest.raises(ValidationError):
            InputValidator.validate_string(42, "name")

    def test_choice_is_case_insensitive(self):
        assert InputValidator.validate_choice("BANNED", "status", ["active", "banned"]) == "banned"
        with pytest.raises(ValidationError):
            InputValidator.validate_choice("deleted", "status", ["active", "banned"])

    def test_uuid(self):
        value = uuid.uuid4()
        assert InputValidator.validate_uuid(str(value)) == value
        assert InputValidator.validate_uuid(value) is value
        with pytest.raises(ValidationError):
            InputValidator.validate_uuid("123")

    @pytest.mark.parametrize("url", ["ftp://x.org/a.png", "not a url", "/relative.png"])
    def test_url_rejects(self, url):
        with pytest.raises(ValidationError):
            InputValidator.validate_url(url, "avatar_url")

    def test_datetime_normalizes_to_utc(self):
        parsed = InputValidator.validate_datetime("2025-01-02T03:04:05Z", "last_played")
        shifted = InputValidator.validate_datetime("2025-01-02T05:04:05+02:00", "last_played")

        assert parsed == datetime(2025, 1, 2, 3, 4, 5, tzinfo=timezone.utc)
        assert shifted == parsed

    def test_datetime_rejects_garbage(self):
        with pytest.raises(ValidationError):
            InputValidator.validate_datetime("yesterday", "last_played")


@pytest.mark.unit
class TestPlayerPayload:
    def test_create_fills_defaults(self):
        payload = PlayerPayload.for_create({"username": "alice"})

        assert payload.as_dict() == {
            "username": "alice",
            "total_score": 0,
            "level": 1,
            "games_played": 0,
            "games_won": 0,
            "status": "active",
        }
        assert payload.is_create

    def test_create_requires_username(self):
        with pytest.raises(ValidationError) as exc_info:
            PlayerPayload.for_create({"total_score": 5})
        assert exc_info.value.field == "username"

    def test_create_rejects_blank_username(self):
        with pytest.raises(ValidationError):
            PlayerPayload.for_create({"username": "   "})

    def test_numeric_strings_are_coerced(self):
        payload = PlayerPayload.for_create(
            {"username": "a", "total_score": "900", "level": "4", "games_played": "10"}
        )

        assert payload.total_score == 900
        assert payload.values["level"] == 4

    @pytest.mark.parametrize(
        "field, value",
        [
            ("total_score", -1),
            ("level", 0),
            ("games_played", "x"),
            ("status", "deleted"),
            ("avatar_url", "javascript:alert(1)"),
            ("last_played", "not-a-date"),
        ],
    )
    def test_invalid_fields(self, field, value):
        with pytest.raises(ValidationError) as exc_info:
            PlayerPayload.for_create({"username": "a", field: value})
        assert exc_info.value.field == field

    @pytest.mark.parametrize("field", ["total_score", "games_played", "games_won", "level"])
    def test_counters_bounded_by_column_width(self, field):
        payload = PlayerPayload.for_create({"username": "a", field: 2_147_483_647})
        assert payload.values[field] == 2_147_483_647

        for value in (2_147_483_648, 2**70):
            with pytest.raises(ValidationError) as exc_info:
                PlayerPayload.for_create({"username": "a", field: value})
            assert exc_info.value.field == field

    def test_empty_optional_strings_are_absent(self):
        payload = PlayerPayload.for_create(
            {"username": "a", "avatar_url": "", "country": " ", "last_played": ""}
        )

        assert "avatar_url" not in payload.values
        assert "country" not in payload.values
        assert "last_played" not in payload.values

    def test_games_won_may_exceed_games_played(self):
        payload = PlayerPayload.for_create({"username": "a", "games_played": 1, "games_won": 9})

        assert payload.values["games_won"] == 9

    def test_unknown_fields_ignored(self):
        payload = PlayerPayload.for_update({"is_admin": True, "level": 2})

        assert payload.as_dict() == {"level": 2}

    def test_update_carries_only_provided(self):
        payload = PlayerPayload.for_update({"total_score": 30})

        assert payload.as_dict() == {"total_score": 30}
        assert not payload.is_create

    def test_update_none_clears_profile_field_only(self):
        payload = PlayerPayload.for_update({"country": None, "total_score": None})

        assert payload.as_dict() == {"country": None}

    def test_update_rejects_username(self):
        with pytest.raises(ValidationError):
            PlayerPayload.for_update({"username": "new"})

    def test_empty_update_is_falsy(self):
        assert not PlayerPayload.for_update({})

    def test_non_mapping_rejected(self):
        with pytest.raises(ValidationError):
            PlayerPayload.for_create(["username", "a"])


@pytest.mark.unit
class TestSorting:
    def test_known_key_kept(self):
        assert resolve_sort("total_score", False) == SortSpec("total_score", False)

    @pytest.mark.parametrize("key", [None, "", "password_hash", "id; DROP TABLE players"])
    def test_unknown_key_defaults(self, key):
        assert resolve_sort(key, False) == DEFAULT_SORT

    def test_default_is_newest_first(self):
        assert DEFAULT_SORT == SortSpec("created_at", True)

    @pytest.mark.parametrize(
        "param, expected",
        [
            ("-total_score", SortSpec("total_score", True)),
            ("username", SortSpec("username", False)),
            (" -level ", SortSpec("level", True)),
            ("", DEFAULT_SORT),
            (None, DEFAULT_SORT),
            ("-bogus", DEFAULT_SORT),
        ],
    )
    def test_parse_sort_param(self, param, expected):
        assert parse_sort_param(param) == expected

    def test_to_param(self):
        assert SortSpec("level", True).to_param() == "-level"
        assert SortSpec("level", False).to_param() == "level"
