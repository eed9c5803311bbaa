"""Input normalization and validation for emails, codes and profile names."""

import re
from typing import Optional

EMAIL_RE = re.compile(r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$")
MAX_EMAIL_LENGTH = 320

NAME_MIN_LENGTH = 2
NAME_MAX_LENGTH = 50

_UNSAFE_NAME_CHARS = re.compile(r"[<>'\"&]")
_WHITESPACE = re.compile(r"\s+")


def normalize_email(email: Optional[str]) -> str:
    return (email or "").strip().lower()


def is_valid_email(email: str) -> bool:
    """Check an already-normalized address."""
    return len(email) <= MAX_EMAIL_LENGTH and bool(EMAIL_RE.match(email))


def normalize_code(code: Optional[str]) -> str:
    # Pasted codes often carry surrounding whitespace.
    return (code or "").strip()


def is_valid_code(code: str, length: int = 6) -> bool:
    """Exactly `length` ASCII digits; leading zeros are significant."""
    return len(code) == length and code.isascii() and code.isdigit()


def clean_name(name: Optional[str]) -> str:
    name = _UNSAFE_NAME_CHARS.sub("", name or "")
    return _WHITESPACE.sub(" ", name).strip()


def is_valid_name(name: str) -> bool:
    return NAME_MIN_LENGTH <= len(name) <= NAME_MAX_LENGTH
