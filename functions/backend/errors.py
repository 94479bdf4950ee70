"""
Domain errors raised below the HTTP layer and translated in `backend.app`.
"""

from __future__ import annotations


class BackendError(Exception):
    status_code = 500

    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail


class NotFoundError(BackendError):
    status_code = 404


class PermissionDeniedError(BackendError):
    status_code = 403


class ConflictError(BackendError):
    status_code = 409


class ValidationFailedError(BackendError):
    """A request that parsed but refers to data that does not exist."""

    status_code = 422

    def __init__(self, fields: dict[str, str]):
        super().__init__("Validation failed")
        self.fields = fields
