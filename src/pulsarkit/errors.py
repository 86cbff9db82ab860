"""Errors raised by pulsarkit."""

from __future__ import annotations

from typing import Optional


class PulsarkitError(Exception):
    """Base class for pulsarkit errors."""

    pass


class InvalidArgumentError(PulsarkitError, ValueError):
    """Malformed caller input, such as a negative partition count."""

    pass


class PulsarAdminError(PulsarkitError):
    """Error returned by the Pulsar admin REST API."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code

    @property
    def reason(self) -> str:
        return str(self)


class ConflictError(PulsarAdminError):
    """The resource already exists (HTTP 409)."""

    pass


class NotFoundError(PulsarAdminError):
    """The resource does not exist (HTTP 404)."""

    pass


class TransactionTimeoutError(PulsarkitError):
    """A staged transaction outlived its timeout before it was committed."""

    pass


class VerificationError(PulsarkitError):
    """Consumed records did not match the expected records."""

    pass
