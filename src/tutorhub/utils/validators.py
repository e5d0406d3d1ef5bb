"""Input validation helpers.

Functions:
- validate_email(email) -> bool: Basic email shape check
- check_password_strength(password) -> None: Enforce the password policy
- file_extension(name) -> str: Lower-cased extension without the dot
- check_allowed_file(name, allowed) -> str: Validated extension
- parse_bool(raw) -> bool | None: Query-string boolean
- parse_float(raw, name) -> float | None: Query-string number
- parse_int(raw, name) -> int | None: Query-string integer
"""

from __future__ import annotations

import re
from typing import Any

from tutorhub.core.errors import ValidationError

EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
PASSWORD_SPECIAL_CHARS = "!@#$%^&*"
MIN_PASSWORD_LENGTH = 8

_TRUE_VALUES = {"true", "1", "yes"}
_FALSE_VALUES = {"false", "0", "no"}


def validate_email(email: str) -> bool:
    """Check that an email address has a plausible shape."""
    return bool(email) and EMAIL_PATTERN.match(email) is not None


def check_password_strength(password: str) -> None:
    """Enforce the password policy.

    At least 8 characters, one uppercase letter and one of !@#$%^&*.

    Raises:
        ValidationError: Listing every rule the password breaks
    """
    problems = []
    if len(password) < MIN_PASSWORD_LENGTH:
        problems.append(f"Password must be at least {MIN_PASSWORD_LENGTH} characters long")
    if not any(c.isupper() for c in password):
        problems.append("Password must contain at least one uppercase letter")
    if not any(c in PASSWORD_SPECIAL_CHARS for c in password):
        problems.append(
            f"Password must contain at least one special character ({PASSWORD_SPECIAL_CHARS})"
        )
    if problems:
        raise ValidationError(problems[0], details={"errors": problems})


def file_extension(name: str) -> str:
    """Return the lower-cased extension of a file name or URL path."""
    path = name.split("?", 1)[0].rsplit("/", 1)[-1]
    if "." not in path:
        return ""
    return path.rsplit(".", 1)[-1].lower()


def check_allowed_file(name: str, allowed: list[str]) -> str:
    """Validate a file's extension against the allow-list.

    Raises:
        ValidationError: If the extension is missing or not allowed
    """
    ext = file_extension(name)
    if ext not in allowed:
        raise ValidationError(
            f"Invalid file type. Allowed types: {', '.join(allowed)}"
        )
    return ext


def parse_bool(raw: Any) -> bool | None:
    """Parse a query-string boolean; None stays None."""
    if raw is None or isinstance(raw, bool):
        return raw
    text = str(raw).strip().lower()
    if text in _TRUE_VALUES:
        return True
    if text in _FALSE_VALUES:
        return False
    raise ValidationError(f"Invalid boolean value '{raw}'")


def parse_float(raw: Any, name: str = "value") -> float | None:
    """Parse a query-string number; None stays None."""
    if raw is None:
        return None
    try:
        return float(raw)
    except (TypeError, ValueError):
        raise ValidationError(f"{name} must be a number") from None


def parse_int(raw: Any, name: str = "value") -> int | None:
    """Parse a query-string integer; None stays None."""
    if raw is None:
        return None
    try:
        return int(str(raw).strip())
    except ValueError:
        raise ValidationError(f"{name} must be an integer") from None
