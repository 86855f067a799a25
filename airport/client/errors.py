"""Remote error types and the single error-normalisation function."""

from __future__ import annotations

import json


class RemoteError(RuntimeError):
    """A provider call failed.

    ``status`` is the HTTP status when one was received, else ``None``;
    ``code`` is the provider's machine-readable error name (e.g.
    ``"AlreadyExists"``) when the body carried one.
    """

    def __init__(
        self,
        message: str,
        status: int | None = None,
        code: str | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.status = status
        self.code = code


class TransportError(RemoteError):
    """The provider could not be reached or the connection broke."""


class NotAuthenticatedError(RemoteError):
    """A call needed a provider session that has not been established."""


class BlobTooLargeError(RemoteError):
    """A blob exceeded the configured per-item size limit."""


def normalize_error(raw: str | bytes | None, fallback: str) -> str:
    """Extract a human-readable message from a provider error body.

    Tries a structured parse first and uses its ``message`` (or ``error``)
    field; otherwise falls back to the raw body, then to ``fallback``.
    """
    if raw is None:
        return fallback
    if isinstance(raw, bytes):
        raw = raw.decode("utf-8", errors="replace")
    text = raw.strip()
    if not text:
        return fallback

    try:
        data = json.loads(text)
    except json.JSONDecodeError:
        return text

    if isinstance(data, dict):
        for key in ("message", "error"):
            value = data.get(key)
            if isinstance(value, str) and value.strip():
                return value.strip()
    return text
