from __future__ import annotations

from finexa.core.errors import AppError, ExternalServiceError, TransientExternalError, ValidationError


class RemoteError(ExternalServiceError):
    """Any failure reported by the remote table store."""


class RemoteAuthError(RemoteError):
    pass


class RemotePermissionError(RemoteError):
    pass


class RemoteNotFoundError(RemoteError):
    pass


class RemoteRateLimitError(RemoteError, TransientExternalError):
    pass


class RemoteUnavailableError(RemoteError, TransientExternalError):
    """Network failure or timeout talking to the remote store."""


class RecordShapeError(ValidationError):
    pass


class InvalidSyncTransition(AppError):
    pass
