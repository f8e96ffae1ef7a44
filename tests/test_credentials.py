"""
Unit tests for password/token hashing and token ledgers.
"""

import pytest

from app.chirp.models import Account
from app.chirp.security import CredentialStore, new_token
from app.chirp.tokens import DIGEST_FIELDS, TokenKind, TokenLedger, ledgers_for


@pytest.fixture()
def store():
    return CredentialStore.min_cost()


class TestCredentialStore:
    """Tests for CredentialStore.hash / verify"""

    def test_verify_accepts_original(self, store):
        digest = store.hash("foobar")
        assert store.verify("foobar", digest)

    def test_digest_is_not_plaintext(self, store):
        assert "foobar" not in store.hash("foobar")

    def test_hash_is_salted(self, store):
        d1 = store.hash("foobar")
        d2 = store.hash("foobar")
        assert d1 != d2
        assert store.verify("foobar", d1)
        assert store.verify("foobar", d2)

    def test_verify_rejects_wrong_password(self, store):
        assert not store.verify("foobaz", store.hash("foobar"))

    def test_verify_fails_closed_on_missing_digest(self, store):
        assert store.verify("foobar", None) is False
        assert store.verify("foobar", "") is False

    def test_verify_fails_closed_on_missing_plaintext(self, store):
        assert store.verify(None, store.hash("foobar")) is False

    def test_verify_fails_closed_on_garbage_digest(self, store):
        assert store.verify("foobar", "not-a-digest") is False
        assert store.verify("foobar", "bogus-method$salt$hash") is False

    def test_method_is_used(self):
        store = CredentialStore(method="pbkdf2:sha256:1000")
        assert store.hash("foobar").startswith("pbkdf2:sha256:1000$")

    def test_from_config(self):
        store = CredentialStore.from_config({"PASSWORD_HASH_METHOD": "pbkdf2:sha256:5"})
        assert store.method == "pbkdf2:sha256:5"
        assert CredentialStore.from_config({}).method == "scrypt"

    def test_real_cost_roundtrip(self):
        store = CredentialStore(method="scrypt")
        assert store.verify("foobar", store.hash("foobar"))

    def test_dummy_verify_always_fails(self, store):
        assert store.dummy_verify("foobar") is False
        assert store.dummy_verify(None) is False


class TestNewToken:
    def test_url_safe_and_long_enough(self):
        token = new_token()
        # 32 random bytes -> 43 base64url characters
        assert len(token) >= 43
        assert all(c.isalnum() or c in "-_" for c in token)

    def test_unique(self):
        assert len({new_token() for _ in range(50)}) == 50


class TestTokenLedger:
    def test_issue_and_verify(self, store):
        ledger = TokenLedger(TokenKind.REMEMBER, store)
        issued = ledger.issue()
        assert issued.token != issued.digest
        assert ledger.verify(issued.token, issued.digest)

    def test_other_token_does_not_verify(self, store):
        ledger = TokenLedger(TokenKind.ACTIVATION, store)
        first = ledger.issue()
        second = ledger.issue()
        assert not ledger.verify(second.token, first.digest)

    def test_null_digest_never_verifies(self, store):
        ledger = TokenLedger(TokenKind.RESET, store)
        issued = ledger.issue()
        assert ledger.verify(issued.token, None) is False

    def test_revoke_clears_digest(self, store):
        ledger = TokenLedger(TokenKind.REMEMBER, store)
        account = Account(name="A", email="a@example.com", password_digest="x")
        issued = ledger.issue()
        ledger.store(account, issued.digest)
        assert ledger.authenticated(account, issued.token)

        ledger.store(account, ledger.revoke())
        assert account.remember_digest is None
        assert not ledger.authenticated(account, issued.token)

    def test_new_issue_invalidates_previous(self, store):
        ledger = TokenLedger(TokenKind.RESET, store)
        account = Account(name="A", email="a@example.com", password_digest="x")
        old = ledger.issue()
        ledger.store(account, old.digest)
        new = ledger.issue()
        ledger.store(account, new.digest)
        assert not ledger.authenticated(account, old.token)
        assert ledger.authenticated(account, new.token)

    def test_kinds_map_to_their_own_fields(self, store):
        account = Account(name="A", email="a@example.com", password_digest="x")
        ledgers = ledgers_for(store)
        issued = ledgers[TokenKind.ACTIVATION].issue()
        ledgers[TokenKind.ACTIVATION].store(account, issued.digest)

        assert account.activation_digest == issued.digest
        assert account.remember_digest is None
        assert account.reset_digest is None
        assert not ledgers[TokenKind.REMEMBER].authenticated(account, issued.token)
        assert set(DIGEST_FIELDS) == set(TokenKind)

    def test_repr_hides_secrets(self, store):
        issued = TokenLedger(TokenKind.REMEMBER, store).issue()
        assert issued.token not in repr(issued)
