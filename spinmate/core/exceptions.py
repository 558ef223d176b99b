"""
Error taxonomy for match, pairing and tournament operations.

Every error carries the match it concerns (when there is one) and the
operation that was attempted, so callers can build a useful message
without parsing strings.
"""

from uuid import UUID


class MatchOperationError(Exception):
    """Base exception for match operation errors"""

    def __init__(
        self,
        message: str,
        match_id: UUID | None = None,
        operation: str | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.match_id = match_id
        self.operation = operation

    def to_dict(self) -> dict:
        return {
            "error": self.message,
            "match_id": str(self.match_id) if self.match_id else None,
            "operation": self.operation,
        }


class MatchValidationError(MatchOperationError):
    """Raised when score or match data validation fails"""
    pass


class InvalidParticipantError(MatchValidationError):
    """Raised when a confirmation or winner names someone outside the match"""
    pass


class MatchConflictError(MatchOperationError):
    """Raised when an operation is attempted from the wrong state"""
    pass


class NotFoundError(MatchOperationError):
    """Raised when a referenced match, tournament or player is absent"""
    pass


class ExternalSyncError(MatchOperationError):
    """Raised when a persistence read or write fails"""
    pass
