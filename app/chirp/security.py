from __future__ import annotations

import logging
import secrets
from dataclasses import dataclass

from werkzeug.security import check_password_hash, generate_password_hash

from app.chirp.config import MIN_COST_HASH_METHOD

logger = logging.getLogger(__name__)

TOKEN_BYTES = 32

# One throwaway digest per hash method, built on first use.
_DUMMY_DIGESTS: dict[str, str] = {}


def new_token() -> str:
    """Random URL-safe token (256 bits) for cookies and emailed links."""
    return secrets.token_urlsafe(TOKEN_BYTES)


@dataclass(frozen=True)
class CredentialStore:
    """
    Salted, adaptive-cost one-way hashing for passwords and tokens.

    `method` is a werkzeug method string ("scrypt", "scrypt:32768:8:1",
    "pbkdf2:sha256:600000", ...). Every call to `hash` draws a fresh salt, so two
    digests of the same secret never compare equal; use `verify`.
    """

    method: str = "scrypt"

    @classmethod
    def min_cost(cls) -> "CredentialStore":
        return cls(method=MIN_COST_HASH_METHOD)

    @classmethod
    def from_config(cls, config: dict) -> "CredentialStore":
        return cls(method=(config.get("PASSWORD_HASH_METHOD") or "scrypt").strip())

    def hash(self, plaintext: str) -> str:
        return generate_password_hash(plaintext, method=self.method)

    def verify(self, plaintext: str | None, digest: str | None) -> bool:
        # Fails closed: no digest, no secret, or an unreadable digest never authenticates.
        if not digest or plaintext is None:
            return False
        try:
            return check_password_hash(digest, plaintext)
        except ValueError:
            logger.warning("Unreadable credential digest (method=%s)", digest.split("$", 1)[0])
            return False

    def dummy_verify(self, plaintext: str | None) -> bool:
        """
        Burn the same hashing work as `verify` against a throwaway digest and
        fail. Used when there is no account to check against, so a miss costs
        as much time as a wrong password.
        """
        digest = _DUMMY_DIGESTS.get(self.method)
        if digest is None:
            digest = _DUMMY_DIGESTS.setdefault(self.method, self.hash(new_token()))
        check_password_hash(digest, plaintext or "")
        return False
