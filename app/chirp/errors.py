"""
Error kinds raised by the credential and social-graph services.

Callers (the request layer) decide how each kind is rendered. None of these
carry a plaintext password or token in their message.
"""
from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class ValidationError:
    field: str
    message: str


class ChirpError(RuntimeError):
    pass


class ValidationFailed(ChirpError):
    def __init__(self, errors: list[ValidationError]):
        if not errors:
            raise ValueError("ValidationFailed requires at least one error")
        self.errors = list(errors)
        super().__init__("; ".join(f"{e.field}: {e.message}" for e in self.errors))

    @property
    def field(self) -> str:
        return self.errors[0].field

    @property
    def fields(self) -> set[str]:
        return {e.field for e in self.errors}


class InvalidCredentials(ChirpError):
    def __init__(self, message: str = "Invalid email/password combination."):
        super().__init__(message)


class Expired(InvalidCredentials):
    def __init__(self, message: str = "Password reset has expired."):
        super().__init__(message)


class NotActivated(ChirpError):
    def __init__(self, message: str = "Account not activated. Check your email for the activation link."):
        super().__init__(message)


class Conflict(ValidationFailed):
    def __init__(self, field: str, message: str):
        super().__init__([ValidationError(field, message)])


class NotFound(ChirpError):
    def __init__(self, entity: str, entity_id: object):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} {entity_id!r} not found")


class PersistenceFailure(ChirpError):
    pass
