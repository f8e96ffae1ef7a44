"""
Central constants for the chirp application.
"""
from __future__ import annotations

from datetime import timedelta

NAME_MAX_LENGTH = 50
EMAIL_MAX_LENGTH = 255
PASSWORD_MIN_LENGTH = 6

POST_MAX_LENGTH = 140
PICTURE_MAX_BYTES = 5 * 1024 * 1024  # 5MB

# A reset link stops working this long after it was requested, even with the right token.
PASSWORD_RESET_TTL = timedelta(hours=2)

# Mirrors a "permanent" cookie: roughly twenty years.
REMEMBER_COOKIE_MAX_AGE = 20 * 365 * 24 * 60 * 60
REMEMBER_ID_COOKIE = "account_id"
REMEMBER_TOKEN_COOKIE = "remember_token"
