"""Error taxonomy for the generation pipeline.

Transport failures, 429 and 5xx responses are retried inside the HTTP client.
Everything that still escapes ends the owning task as ``failed``.
"""

from __future__ import annotations


class ClipforgeError(Exception):
    """Base class for all pipeline errors."""


class NetworkError(ClipforgeError):
    """Transport failure or timeout that survived every retry."""


class HttpError(ClipforgeError):
    """Non-2xx provider response, carrying status and provider error text."""

    def __init__(self, message: str, status_code: int = 0, detail: str = ""):
        super().__init__(message)
        self.status_code = status_code
        self.detail = detail


class UnsupportedMediaType(ClipforgeError):
    """Binary upload with a MIME type outside the allow-list."""


class InvalidResponse(ClipforgeError):
    """Provider response is missing an expected field."""


class CredentialError(ClipforgeError):
    """Account credentials are absent or were rejected."""


class InsufficientCredits(ClipforgeError):
    """The provider account cannot pay for the job. Terminal."""


class NoInputError(ClipforgeError):
    """Neither an image asset nor a text prompt is available."""


class JobTimeoutError(ClipforgeError):
    """Soft timeout: the client stopped waiting, the remote job may still run."""


class InputValidationError(ClipforgeError):
    """Submission rejected before a task was created."""


class TaskStateError(ClipforgeError):
    """Illegal lifecycle transition or mutation of a terminal task."""
