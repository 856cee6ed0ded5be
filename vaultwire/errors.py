"""Errors - Exception taxonomy shared by the transport, retry and facade layers.

Every error raised by vaultwire derives from VaultError. Retry exhaustion has
no dedicated type: the last underlying exception propagates unchanged, so a
caller sees the same error whether it happened on the first attempt or the
last.
"""

from __future__ import annotations


class VaultError(Exception):
    """Base class for vaultwire errors."""


class TransportError(VaultError):
    """Raised when a request cannot be sent or its response cannot be read.

    Covers an unset or invalid URL, connection and DNS failures, timeouts,
    I/O failures during send/receive, and TLS context construction failures.
    """


class UnexpectedResponse(VaultError):
    """Raised when the HTTP status is outside the operation's accepted set.

    The raw body is kept as bytes. It is never parsed to decide whether
    this error applies.
    """

    def __init__(self, status_code: int, body: bytes) -> None:
        self.status_code = status_code
        self.body = body
        text = body.decode("utf-8", errors="replace")
        super().__init__(
            f"Vault responded with HTTP status code: {status_code}\nResponse body: {text}"
        )


class UnexpectedContentType(VaultError):
    """Raised when an operation requires JSON and the response is something else."""

    def __init__(self, mime_type: str | None, status_code: int) -> None:
        self.mime_type = mime_type
        self.status_code = status_code
        super().__init__(f"Vault responded with MIME type: {mime_type}")


class MalformedBody(VaultError):
    """Raised when an operation insists on fields that the response body lacks."""

    def __init__(self, message: str, status_code: int, body: bytes) -> None:
        self.status_code = status_code
        self.body = body
        super().__init__(message)


class RetryCancelled(VaultError):
    """Raised when cancellation is requested while waiting between attempts."""

    def __init__(self, attempts: int) -> None:
        self.attempts = attempts
        super().__init__(f"Retry cancelled after {attempts} attempt(s)")
