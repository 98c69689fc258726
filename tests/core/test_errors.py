from __future__ import annotations

from finexa.core.errors import AppError, BusinessError, ExternalServiceError, InfraError, PersistenceError, ValidationError
from finexa.domain.sync_errors import InvalidSyncTransition, RecordShapeError, RemoteError


def test_error_taxonomy() -> None:
    assert issubclass(ValidationError, BusinessError)
    assert issubclass(PersistenceError, InfraError)
    assert issubclass(RemoteError, ExternalServiceError)
    assert issubclass(RecordShapeError, ValidationError)
    assert issubclass(InvalidSyncTransition, AppError)
    assert not issubclass(InvalidSyncTransition, InfraError)
