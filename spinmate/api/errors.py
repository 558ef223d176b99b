from fastapi import HTTPException

from spinmate.core.exceptions import (
    ExternalSyncError,
    MatchConflictError,
    MatchOperationError,
    MatchValidationError,
    NotFoundError,
)

STATUS_CODES = {
    MatchValidationError: 400,
    MatchConflictError: 409,
    NotFoundError: 404,
    ExternalSyncError: 502,
}


def to_http_exception(error: MatchOperationError) -> HTTPException:
    """Map a core error to an HTTP error carrying match id and operation."""
    for error_type, status_code in STATUS_CODES.items():
        if isinstance(error, error_type):
            return HTTPException(status_code=status_code, detail=error.to_dict())
    return HTTPException(status_code=500, detail=error.to_dict())
