from __future__ import annotations

import logging
import uuid
from collections.abc import Mapping, MutableMapping
from dataclasses import dataclass, field
from typing import Any

from flask import Response, current_app, g, request, session
from itsdangerous import BadSignature, URLSafeSerializer
from sqlalchemy.orm import Session

from app.chirp.constants import REMEMBER_COOKIE_MAX_AGE, REMEMBER_ID_COOKIE, REMEMBER_TOKEN_COOKIE
from app.chirp.db import db_session
from app.chirp.errors import NotActivated
from app.chirp.models import Account
from app.chirp.modules.accounts.service import AccountLifecycle
from app.chirp.tokens import TokenKind

logger = logging.getLogger(__name__)

SESSION_KEY = "account_id"


def remember_signer(secret_key: str) -> URLSafeSerializer:
    return URLSafeSerializer(secret_key, salt="chirp.remember")


@dataclass
class CookieOp:
    name: str
    value: str | None  # None deletes the cookie
    max_age: int | None = None


@dataclass
class SessionContext:
    """
    Per-request login state. One instance per request, handed explicitly to
    whatever needs the current account; nothing here outlives the request.

    The temporary login lives in the (signed) Flask session. A persistent login
    is a signed account id cookie plus the plaintext remember token, checked
    against the account's remember digest.
    """

    s: Session
    lifecycle: AccountLifecycle
    session: MutableMapping[str, Any]
    cookies: Mapping[str, str]
    signer: URLSafeSerializer
    cookie_ops: list[CookieOp] = field(default_factory=list)
    _account: Account | None = None
    _resolved: bool = False

    @classmethod
    def from_request(cls) -> "SessionContext":
        s = db_session()
        return cls(
            s=s,
            lifecycle=AccountLifecycle.from_app(s),
            session=session,
            cookies=request.cookies,
            signer=remember_signer(current_app.config["SECRET_KEY"]),
        )

    def log_in(self, account: Account) -> None:
        self.session[SESSION_KEY] = account.id
        self._account = account
        self._resolved = True

    def remember(self, account: Account) -> None:
        token = self.lifecycle.remember(account)
        self.cookie_ops.append(CookieOp(REMEMBER_ID_COOKIE, self.signer.dumps(account.id), REMEMBER_COOKIE_MAX_AGE))
        self.cookie_ops.append(CookieOp(REMEMBER_TOKEN_COOKIE, token, REMEMBER_COOKIE_MAX_AGE))

    def forget(self, account: Account) -> None:
        self.lifecycle.forget(account)
        self.cookie_ops.append(CookieOp(REMEMBER_ID_COOKIE, None))
        self.cookie_ops.append(CookieOp(REMEMBER_TOKEN_COOKIE, None))

    def log_out(self) -> None:
        account = self.current_account()
        if account is not None:
            self.forget(account)
        self.session.pop(SESSION_KEY, None)
        self._account = None
        self._resolved = True

    def sign_in(self, email: str | None, password: str | None, *, remember_me: bool = False) -> Account:
        account = self.lifecycle.authenticate(email, password)
        if not account.activated:
            raise NotActivated()
        self.log_in(account)
        if remember_me:
            self.remember(account)
        else:
            self.forget(account)
        return account

    def _cookie_account_id(self) -> int | None:
        raw = self.cookies.get(REMEMBER_ID_COOKIE)
        if not raw:
            return None
        try:
            return int(self.signer.loads(raw))
        except (BadSignature, TypeError, ValueError):
            logger.info("AUTH: ignoring tampered remember cookie")
            return None

    def current_account(self) -> Account | None:
        if self._resolved:
            return self._account
        self._resolved = True

        account_id = self.session.get(SESSION_KEY)
        if account_id:
            self._account = self.s.get(Account, int(account_id))
            if self._account is None:
                self.session.pop(SESSION_KEY, None)
            return self._account

        account_id = self._cookie_account_id()
        if account_id is None:
            return None
        account = self.s.get(Account, account_id)
        token = self.cookies.get(REMEMBER_TOKEN_COOKIE)
        if account is not None and self.lifecycle.authenticated(account, TokenKind.REMEMBER, token):
            # Returning visitor with only the persistent cookie: promote to a live session.
            self.log_in(account)
        return self._account

    def is_logged_in(self) -> bool:
        return self.current_account() is not None

    def apply_cookies(self, response: Response) -> Response:
        for op in self.cookie_ops:
            if op.value is None:
                response.delete_cookie(op.name)
            else:
                response.set_cookie(
                    op.name,
                    op.value,
                    max_age=op.max_age,
                    httponly=True,
                    samesite=current_app.config.get("SESSION_COOKIE_SAMESITE", "Lax"),
                    secure=bool(current_app.config.get("SESSION_COOKIE_SECURE")),
                )
        self.cookie_ops.clear()
        return response


def load_session_context() -> None:
    """
    Assigns a per-request request_id (for audit/log correlation) and the
    request's SessionContext on g.
    """
    if not getattr(g, "request_id", None):
        g.request_id = uuid.uuid4().hex
    if request.path.startswith(("/static/", "/health", "/healthz")):
        g.session_ctx = None
        return
    g.session_ctx = SessionContext.from_request()


def store_session_cookies(response: Response) -> Response:
    ctx: SessionContext | None = getattr(g, "session_ctx", None)
    if ctx is not None:
        ctx.apply_cookies(response)
    return response
