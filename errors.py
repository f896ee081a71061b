#!/usr/bin/env python3
"""
Error taxonomy for the quiz progress engine
Each error knows its HTTP status and whether a caller may retry the same request
"""

from typing import Any, Dict, Optional


class QuizError(Exception):
    """Base class for every error raised by the quiz engine"""

    status_code = 500
    error = "Server error"
    retryable = False

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details
        super().__init__(message)


class NotFoundError(QuizError):
    """A referenced word, report or profile does not exist"""

    status_code = 404
    error = "Not found"


class InputValidationError(QuizError):
    """Malformed request input"""

    status_code = 400
    error = "Validation error"


class DataIntegrityError(QuizError):
    """Stored content breaks the one-canonical-correct-option rule"""

    status_code = 500
    error = "Data integrity error"

    def __init__(self, word_id: Any, problem: str):
        self.word_id = word_id
        self.problem = problem
        super().__init__(
            f"Word {word_id} cannot be served: {problem}",
            details={"word_id": word_id, "problem": problem},
        )


class ConflictResolved(QuizError):
    """A uniqueness conflict whose desired end state already holds"""

    status_code = 200
    error = "Already satisfied"


class AuthError(QuizError):
    """Bearer token missing, invalid or expired"""

    status_code = 401
    error = "Invalid token"


class StoreUnavailable(QuizError):
    """The database failed or was unreachable; the request may be repeated"""

    status_code = 503
    error = "Database error"
    retryable = True


class SessionRecordingFailed(QuizError):
    """Recording a quiz session was rolled back; nothing from the attempt was committed"""

    error = "Failed to record quiz session"

    def __init__(self, cause: BaseException):
        self.cause = cause
        details = {"cause": type(cause).__name__, "retryable": self.retryable}
        if isinstance(cause, QuizError) and cause.details:
            details.update(cause.details)
        super().__init__(f"Quiz session was not recorded: {cause}", details=details)

    @property
    def retryable(self) -> bool:  # type: ignore[override]
        return not isinstance(self.cause, (InputValidationError, NotFoundError))

    @property
    def status_code(self) -> int:  # type: ignore[override]
        if isinstance(self.cause, (InputValidationError, NotFoundError)):
            return self.cause.status_code
        return 503
