"""
Opaque token issuance and verification.

One `TokenLedger` per kind. The plaintext token only ever travels to the
client (cookie or emailed link); the account row holds its digest. Expiry and
single-use rules are layered on top by the account lifecycle.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING

from app.chirp.security import CredentialStore, new_token

if TYPE_CHECKING:
    from app.chirp.models import Account


class TokenKind(str, Enum):
    REMEMBER = "remember"
    ACTIVATION = "activation"
    RESET = "reset"


DIGEST_FIELDS: dict[TokenKind, str] = {
    TokenKind.REMEMBER: "remember_digest",
    TokenKind.ACTIVATION: "activation_digest",
    TokenKind.RESET: "reset_digest",
}


@dataclass(frozen=True)
class IssuedToken:
    token: str = field(repr=False)
    digest: str = field(repr=False)


@dataclass(frozen=True)
class TokenLedger:
    kind: TokenKind
    credentials: CredentialStore

    @property
    def digest_field(self) -> str:
        return DIGEST_FIELDS[self.kind]

    def issue(self) -> IssuedToken:
        token = new_token()
        return IssuedToken(token=token, digest=self.credentials.hash(token))

    def verify(self, presented: str | None, stored_digest: str | None) -> bool:
        return self.credentials.verify(presented, stored_digest)

    def revoke(self) -> None:
        return None

    def stored_digest(self, account: "Account") -> str | None:
        return getattr(account, self.digest_field)

    def store(self, account: "Account", digest: str | None) -> None:
        # Overwriting the digest is what invalidates every earlier token of this kind.
        setattr(account, self.digest_field, digest)

    def authenticated(self, account: "Account", presented: str | None) -> bool:
        return self.verify(presented, self.stored_digest(account))


def ledgers_for(credentials: CredentialStore) -> dict[TokenKind, TokenLedger]:
    return {kind: TokenLedger(kind=kind, credentials=credentials) for kind in TokenKind}
