"""
Exceptions raised by the VocabExams services.

Every error carries a machine readable ``code`` and is mapped to an HTTP
status by the API layer (see ``vocab_exam.main``). None of them is fatal:
the caller reports the error and keeps working.
"""

from typing import Any, Dict, Optional


class VocabExamError(Exception):
    """Base exception for all VocabExams errors"""

    status_code = 500

    def __init__(
        self,
        message: str,
        code: str = "INTERNAL_ERROR",
        details: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "message": self.message,
            "details": self.details,
        }


class ValidationError(VocabExamError):
    """User input rejected; the input can be corrected and resent"""

    status_code = 400

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, code="VALIDATION_ERROR", details=details)


class EmptyWordSetError(ValidationError):
    """An exam was started against a word set with no words"""

    def __init__(self, word_set_id: str):
        super().__init__(
            "No words found for this word set",
            details={"word_set_id": word_set_id},
        )
        self.code = "EMPTY_WORD_SET"


class InvalidTransitionError(ValidationError):
    """An exam session operation is not allowed in the session's current state"""

    def __init__(self, current_state: str, operation: str):
        super().__init__(
            f"Cannot {operation} an exam session that is {current_state}",
            details={"state": current_state, "operation": operation},
        )
        self.code = "INVALID_TRANSITION"


class NotFoundError(VocabExamError):
    """A referenced row does not exist or belongs to another teacher"""

    status_code = 404

    def __init__(self, resource: str, resource_id: str):
        super().__init__(
            f"{resource} not found",
            code="NOT_FOUND",
            details={"resource": resource, "id": resource_id},
        )


class AuthenticationError(VocabExamError):
    status_code = 401

    def __init__(self, message: str = "Authentication failed"):
        super().__init__(message, code="AUTH_FAILED")


class ConflictError(VocabExamError):
    status_code = 409

    def __init__(self, message: str):
        super().__init__(message, code="CONFLICT")


class CollaboratorError(VocabExamError):
    """The database (or another backing service) failed the operation"""

    status_code = 503

    def __init__(self, operation: str, reason: str = ""):
        super().__init__(
            f"Failed to {operation}",
            code="COLLABORATOR_ERROR",
            details={"operation": operation, "reason": reason},
        )
