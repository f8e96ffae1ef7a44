"""
Outbound account mail. Delivery is fire-and-forget: the account services hand
over a recipient and a plaintext token and never retry.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)

ACTIVATION = "account_activation"
PASSWORD_RESET = "password_reset"


class MailerError(RuntimeError):
    pass


@dataclass(frozen=True)
class MailMessage:
    kind: str
    sender: str
    recipient: str
    account_id: int | None
    token: str = field(repr=False)


class Mailer:
    def send_activation(self, email: str, account_id: int, token: str) -> None:
        raise NotImplementedError

    def send_password_reset(self, email: str, token: str) -> None:
        raise NotImplementedError


@dataclass
class LogMailer(Mailer):
    """Development backend: records that a message would have gone out."""

    sender: str = "noreply@example.com"

    def send_activation(self, email: str, account_id: int, token: str) -> None:
        logger.info("MAIL: %s to=%s account_id=%s", ACTIVATION, email, account_id)

    def send_password_reset(self, email: str, token: str) -> None:
        logger.info("MAIL: %s to=%s", PASSWORD_RESET, email)


@dataclass
class OutboxMailer(Mailer):
    sender: str = "noreply@example.com"
    outbox: list[MailMessage] = field(default_factory=list)

    def send_activation(self, email: str, account_id: int, token: str) -> None:
        self.outbox.append(MailMessage(ACTIVATION, self.sender, email, account_id, token))

    def send_password_reset(self, email: str, token: str) -> None:
        self.outbox.append(MailMessage(PASSWORD_RESET, self.sender, email, None, token))

    def last(self, kind: str | None = None) -> MailMessage:
        for msg in reversed(self.outbox):
            if kind is None or msg.kind == kind:
                return msg
        raise LookupError(f"No {kind or 'mail'} message in outbox")

    def clear(self) -> None:
        self.outbox.clear()


def mailer_from_config(config: dict) -> Mailer:
    backend = (config.get("MAIL_BACKEND") or "log").strip().lower()
    sender = (config.get("MAIL_SENDER") or "noreply@example.com").strip()
    if backend == "memory":
        return OutboxMailer(sender=sender)
    if backend != "log":
        raise MailerError(f"Unknown MAIL_BACKEND: {backend!r}")
    return LogMailer(sender=sender)
