"""Tests for input validation and time helpers."""

from datetime import date, datetime, timezone

import pytest

from tutorhub.core.errors import ValidationError
from tutorhub.utils.time_utils import parse_datetime, to_iso
from tutorhub.utils.validators import (
    check_allowed_file,
    check_password_strength,
    file_extension,
    parse_bool,
    parse_float,
    validate_email,
)


class TestEmail:
    """Tests for validate_email."""

    @pytest.mark.parametrize("email", ["a@b.co", "first.last@uni.edu"])
    def test_valid(self, email):
        """Plausible addresses pass."""
        assert validate_email(email)

    @pytest.mark.parametrize("email", ["", "plain", "a@b", "a b@c.com"])
    def test_invalid(self, email):
        """Malformed addresses fail."""
        assert not validate_email(email)


class TestPasswordPolicy:
    """Tests for check_password_strength."""

    def test_strong_password(self):
        """A compliant password passes."""
        check_password_strength("Secret123!")

    def test_lists_every_problem(self):
        """All broken rules are reported in details."""
        with pytest.raises(ValidationError) as excinfo:
            check_password_strength("abc")
        assert len(excinfo.value.details["errors"]) == 3
        assert "at least 8 characters" in excinfo.value.message


class TestFiles:
    """Tests for file type helpers."""

    def test_extension_from_url(self):
        """Query strings and directories are ignored."""
        assert file_extension("https://cdn.example.com/a/notes.PDF?sig=1") == "pdf"
        assert file_extension("README") == ""

    def test_disallowed_type(self):
        """Extensions outside the allow-list are rejected."""
        with pytest.raises(ValidationError):
            check_allowed_file("virus.exe", ["pdf"])


class TestQueryParsing:
    """Tests for query-string parsing helpers."""

    @pytest.mark.parametrize("raw,expected", [("true", True), ("0", False), (None, None)])
    def test_parse_bool(self, raw, expected):
        """Common spellings map to booleans; None stays None."""
        assert parse_bool(raw) is expected

    def test_parse_float_rejects_text(self):
        """Non-numeric input names the offending field."""
        with pytest.raises(ValidationError, match="minRating"):
            parse_float("high", "minRating")


class TestDatetimes:
    """Tests for timestamp normalization."""

    def test_date_only(self):
        """A bare date becomes UTC midnight."""
        assert parse_datetime("2026-01-05") == "2026-01-05T00:00:00.000000+00:00"

    def test_offset_converted_to_utc(self):
        """Offsets are normalized so stored strings sort chronologically."""
        assert parse_datetime("2026-01-05T12:00:00+02:00") == "2026-01-05T10:00:00.000000+00:00"

    def test_objects(self):
        """date and datetime objects are accepted."""
        assert parse_datetime(date(2026, 1, 5)).startswith("2026-01-05T00:00")
        aware = datetime(2026, 1, 5, 9, tzinfo=timezone.utc)
        assert parse_datetime(aware) == to_iso(aware)

    def test_invalid(self):
        """Garbage raises ValidationError naming the field."""
        with pytest.raises(ValidationError, match="scheduledAt"):
            parse_datetime("next tuesday", "scheduledAt")

    def test_out_of_range_after_utc_conversion(self):
        """A date that leaves the calendar when shifted to UTC is a validation error."""
        with pytest.raises(ValidationError, match="startDate"):
            parse_datetime("0001-01-01T00:00:00+01:00", "startDate")
