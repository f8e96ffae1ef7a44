"""
ACCOUNT LIFECYCLE
=================

Password storage plus the three token lifecycles that hang off an account:

Kind        | Issued by                  | Cleared by                  | Extra rule
------------|----------------------------|-----------------------------|---------------------------
activation  | signup                     | activate                    | ignored once activated
remember    | remember (persistent login)| forget / log out            | none (cookie decides)
reset       | request_password_reset     | reset_password              | 2h window from reset_sent_at

Only digests are written to the account row. Plaintext tokens go back to the
caller (remember cookie) or out through the mailer (activation/reset links).

Services flush but never commit; the request layer owns the transaction.
"""
from __future__ import annotations

import logging
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from datetime import datetime
from typing import Any

from flask import current_app
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from app.chirp.audit import record_event
from app.chirp.constants import (
    EMAIL_MAX_LENGTH,
    NAME_MAX_LENGTH,
    PASSWORD_MIN_LENGTH,
    PASSWORD_RESET_TTL,
)
from app.chirp.errors import (
    Conflict,
    Expired,
    InvalidCredentials,
    NotFound,
    PersistenceFailure,
    ValidationError,
    ValidationFailed,
)
from app.chirp.mailer import Mailer, mailer_from_config
from app.chirp.models import Account
from app.chirp.security import CredentialStore
from app.chirp.tokens import TokenKind, TokenLedger, ledgers_for
from app.chirp.utils import is_valid_email, normalize_email, normalize_text

logger = logging.getLogger(__name__)

DUPLICATE_EMAIL = "Email has already been taken."


def _password_errors(payload: dict[str, Any], *, required: bool) -> list[ValidationError]:
    errs: list[ValidationError] = []
    password = payload.get("password")
    if password is None or not password.strip():
        # Blank on update means "leave the password alone".
        if required:
            errs.append(ValidationError("password", "Password can't be blank."))
        return errs
    if len(password) < PASSWORD_MIN_LENGTH:
        errs.append(ValidationError("password", f"Password is too short (minimum is {PASSWORD_MIN_LENGTH} characters)."))
    confirmation = payload.get("password_confirmation")
    if confirmation is not None and confirmation != password:
        errs.append(ValidationError("password_confirmation", "Password confirmation doesn't match Password."))
    return errs


def validate_account_payload(payload: dict[str, Any], *, creating: bool) -> list[ValidationError]:
    errs: list[ValidationError] = []

    name = normalize_text(payload.get("name"))
    if not name:
        errs.append(ValidationError("name", "Name can't be blank."))
    elif len(name) > NAME_MAX_LENGTH:
        errs.append(ValidationError("name", f"Name is too long (maximum is {NAME_MAX_LENGTH} characters)."))

    email = normalize_email(payload.get("email"))
    if not email:
        errs.append(ValidationError("email", "Email can't be blank."))
    elif len(email) > EMAIL_MAX_LENGTH:
        errs.append(ValidationError("email", f"Email is too long (maximum is {EMAIL_MAX_LENGTH} characters)."))
    elif not is_valid_email(email):
        errs.append(ValidationError("email", "Email is invalid."))

    errs.extend(_password_errors(payload, required=creating))
    return errs


class AccountLifecycle:
    """Orchestrates credential checks and token ledgers against `Account` rows."""

    def __init__(
        self,
        s: Session,
        *,
        credentials: CredentialStore,
        mailer: Mailer,
        clock: Callable[[], datetime] = datetime.utcnow,
    ):
        self.s = s
        self.credentials = credentials
        self.mailer = mailer
        self.clock = clock
        self.ledgers = ledgers_for(credentials)

    @classmethod
    def from_app(cls, s: Session, app=None) -> "AccountLifecycle":
        app = app or current_app
        mailer = app.extensions.get("mailer") or mailer_from_config(app.config)
        return cls(s, credentials=CredentialStore.from_config(app.config), mailer=mailer)

    def ledger(self, kind: TokenKind) -> TokenLedger:
        return self.ledgers[kind]

    # ---------- Lookup ----------

    def get_account(self, account_id: int) -> Account:
        account = self.s.get(Account, account_id)
        if account is None:
            raise NotFound("Account", account_id)
        return account

    def find_by_email(self, email: str | None) -> Account | None:
        email = normalize_email(email)
        if not email:
            return None
        return self.s.execute(
            select(Account).where(func.lower(Account.email) == email)
        ).scalar_one_or_none()

    def _email_taken(self, email: str, *, exclude_id: int | None = None) -> bool:
        q = select(Account.id).where(func.lower(Account.email) == email)
        if exclude_id is not None:
            q = q.where(Account.id != exclude_id)
        return self.s.execute(q.limit(1)).first() is not None

    @contextmanager
    def _account_savepoint(self) -> Iterator[None]:
        # Changes must be made inside the block: a unique violation then only rolls back the savepoint.
        try:
            with self.s.begin_nested():
                yield
                self.s.flush()
        except IntegrityError as e:
            # Lost a race with another signup for the same address.
            raise Conflict("email", DUPLICATE_EMAIL) from e
        except SQLAlchemyError as e:
            raise PersistenceFailure("Could not save account.") from e

    def _flush(self) -> None:
        try:
            self.s.flush()
        except SQLAlchemyError as e:
            raise PersistenceFailure("Could not save account.") from e

    # ---------- Signup / activation ----------

    def signup(self, payload: dict[str, Any]) -> Account:
        errs = validate_account_payload(payload, creating=True)
        if errs:
            raise ValidationFailed(errs)

        email = normalize_email(payload.get("email"))
        if self._email_taken(email):
            raise Conflict("email", DUPLICATE_EMAIL)

        activation = self.ledger(TokenKind.ACTIVATION).issue()
        now = self.clock()
        account = Account(
            name=normalize_text(payload.get("name")),
            email=email,
            password_digest=self.credentials.hash(payload["password"]),
            activation_digest=activation.digest,
            activated=False,
            created_at=now,
            updated_at=now,
        )
        with self._account_savepoint():
            self.s.add(account)

        record_event(self.s, actor=account, action="account.signup", entity_type="Account", entity_id=str(account.id))
        logger.info("ACCOUNT: signup account_id=%s email=%s", account.id, account.email)
        self._dispatch(self.mailer.send_activation, account.email, account.id, activation.token)
        return account

    def activate(self, account: Account, token: str | None) -> Account:
        if account.activated:
            return account
        ledger = self.ledger(TokenKind.ACTIVATION)
        if not ledger.authenticated(account, token):
            logger.info("ACCOUNT: activation rejected account_id=%s", account.id)
            raise InvalidCredentials("Invalid activation link.")

        now = self.clock()
        account.activated = True
        account.activated_at = now
        ledger.store(account, ledger.revoke())
        account.updated_at = now
        record_event(self.s, actor=account, action="account.activate", entity_type="Account", entity_id=str(account.id))
        self._flush()
        logger.info("ACCOUNT: activated account_id=%s", account.id)
        return account

    # ---------- Credentials ----------

    def authenticated(self, account: Account, kind: TokenKind, token: str | None) -> bool:
        return self.ledger(kind).authenticated(account, token)

    def authenticate(self, email: str | None, password: str | None) -> Account:
        account = self.find_by_email(email)
        if account is None:
            verified = self.credentials.dummy_verify(password)
        else:
            verified = self.credentials.verify(password, account.password_digest)
        if not verified:
            record_event(
                self.s,
                actor=None,
                action="auth.login_failed",
                entity_type="Account",
                entity_id=normalize_email(email) or None,
            )
            self._flush()
            raise InvalidCredentials()
        record_event(self.s, actor=account, action="auth.login", entity_type="Account", entity_id=str(account.id))
        self._flush()
        return account

    def remember(self, account: Account) -> str:
        ledger = self.ledger(TokenKind.REMEMBER)
        issued = ledger.issue()
        ledger.store(account, issued.digest)
        record_event(self.s, actor=account, action="auth.remember", entity_type="Account", entity_id=str(account.id))
        self._flush()
        return issued.token

    def forget(self, account: Account) -> None:
        ledger = self.ledger(TokenKind.REMEMBER)
        ledger.store(account, ledger.revoke())
        record_event(self.s, actor=account, action="auth.forget", entity_type="Account", entity_id=str(account.id))
        self._flush()

    # ---------- Password reset ----------

    def request_password_reset(self, email: str | None) -> Account:
        account = self.find_by_email(email)
        if account is None or not account.activated:
            raise InvalidCredentials("Email address not found.")

        ledger = self.ledger(TokenKind.RESET)
        issued = ledger.issue()
        ledger.store(account, issued.digest)
        account.reset_sent_at = self.clock()
        record_event(self.s, actor=account, action="password_reset.request", entity_type="Account", entity_id=str(account.id))
        self._flush()

        logger.info("ACCOUNT: password reset requested account_id=%s", account.id)
        self._dispatch(self.mailer.send_password_reset, account.email, issued.token)
        return account

    def password_reset_expired(self, account: Account) -> bool:
        if account.reset_sent_at is None:
            return True
        return account.reset_sent_at < self.clock() - PASSWORD_RESET_TTL

    def reset_password(
        self,
        email: str | None,
        token: str | None,
        password: str | None,
        password_confirmation: str | None = None,
    ) -> Account:
        account = self.find_by_email(email)
        if account is None or not account.activated:
            raise InvalidCredentials("Invalid password reset link.")
        # Expiry is checked before the token so a stale link is rejected without touching the digest.
        if self.password_reset_expired(account):
            raise Expired()
        ledger = self.ledger(TokenKind.RESET)
        if not ledger.authenticated(account, token):
            raise InvalidCredentials("Invalid password reset link.")

        errs = _password_errors(
            {"password": password, "password_confirmation": password_confirmation},
            required=True,
        )
        if errs:
            raise ValidationFailed(errs)

        account.password_digest = self.credentials.hash(password)  # type: ignore[arg-type]
        ledger.store(account, ledger.revoke())
        account.updated_at = self.clock()
        record_event(self.s, actor=account, action="password_reset.complete", entity_type="Account", entity_id=str(account.id))
        self._flush()
        logger.info("ACCOUNT: password reset account_id=%s", account.id)
        return account

    # ---------- Profile ----------

    def update_account(self, account: Account, payload: dict[str, Any]) -> Account:
        errs = validate_account_payload(payload, creating=False)
        if errs:
            raise ValidationFailed(errs)

        email = normalize_email(payload.get("email"))
        if email != account.email and self._email_taken(email, exclude_id=account.id):
            raise Conflict("email", DUPLICATE_EMAIL)

        name = normalize_text(payload.get("name"))
        password = payload.get("password")
        new_digest = self.credentials.hash(password) if password is not None and password.strip() else None

        changed: list[str] = []
        with self._account_savepoint():
            if name != account.name:
                account.name = name
                changed.append("name")
            if email != account.email:
                account.email = email
                changed.append("email")
            if new_digest is not None:
                account.password_digest = new_digest
                changed.append("password")

            if changed:
                account.updated_at = self.clock()
                record_event(
                    self.s,
                    actor=account,
                    action="account.update",
                    entity_type="Account",
                    entity_id=str(account.id),
                    metadata={"changed": changed},
                )
        return account

    def destroy_account(self, account: Account) -> None:
        # Recorded without an actor: the actor row is about to disappear.
        record_event(
            self.s,
            actor=None,
            action="account.destroy",
            entity_type="Account",
            entity_id=str(account.id),
            metadata={"email": account.email},
        )
        self.s.delete(account)
        self._flush()
        logger.info("ACCOUNT: destroyed account_id=%s", account.id)

    def _dispatch(self, send: Callable[..., None], *args: Any) -> None:
        try:
            send(*args)
        except Exception:
            logger.exception("MAIL: delivery failed via %s (not retried)", getattr(send, "__name__", send))
