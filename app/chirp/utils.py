from __future__ import annotations

import re

EMAIL_RE = re.compile(r"[\w+\-.]+@[a-z\d\-.]+\.[a-z]+", re.IGNORECASE)


def normalize_text(s: str | None) -> str:
    return (s or "").strip()


def normalize_email(email: str | None) -> str:
    """Emails are stored and looked up lower-case so "Foo@ExAMPle.CoM" and "foo@example.com" collide."""
    return normalize_text(email).lower()


def is_valid_email(email: str) -> bool:
    return bool(EMAIL_RE.fullmatch(email or ""))
