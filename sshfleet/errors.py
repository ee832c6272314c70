"""Exceptions raised by backends.

Every error carries the failing operation and the backend name. Callers match
on the class (``except ServerNotFoundError``) and reach the original failure
through ``__cause__`` when one was chained.
"""

from __future__ import annotations


class BackendError(Exception):
    """Base class for all backend failures."""

    default_detail = "backend error"

    def __init__(self, op: str, backend: str, detail: object = None):
        self.op = op
        self.backend = backend
        self.detail = self.default_detail if detail is None else str(detail)
        super().__init__(f"{op}: {backend} backend: {self.detail}")


class BackendUnavailableError(BackendError):
    default_detail = "backend unavailable"


class NotFoundError(BackendError):
    default_detail = "not found"


class ServerNotFoundError(NotFoundError):
    default_detail = "server not found"


class ProjectNotFoundError(NotFoundError):
    default_detail = "project not found"


class CredentialNotFoundError(NotFoundError):
    default_detail = "credential not found"


class ReadOnlyError(BackendError):
    default_detail = "backend does not support write operations"


class BackendValidationError(BackendError):
    default_detail = "validation error"


class DuplicateIDError(BackendError):
    default_detail = "duplicate ID"
