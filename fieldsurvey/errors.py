"""Error taxonomy shared by the services and the Streamlit front-end.

Every error is raised at the point where the problem is detected and caught by
the page that started the operation, which turns it into a user-facing message.
"""
from typing import List, Optional


class SurveyAppError(Exception):
    """Base class for errors shown to the operator"""

    title = "Error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class DatabaseConnectionError(SurveyAppError, ConnectionError):
    """The database could not be reached; the operation was aborted"""

    title = "Database Error"


class ValidationError(SurveyAppError):
    """Input rejected before any write was attempted"""

    title = "Validation Error"

    def __init__(self, message: str, missing: Optional[List[str]] = None):
        super().__init__(message)
        self.missing = list(missing or [])


class SchemaError(ValidationError):
    """A question definition or a stored document violates its invariants"""

    title = "Invalid Question"


class ConflictError(SurveyAppError):
    """A unique name or username is already in use"""

    title = "Already Exists"


class AccessDeniedError(SurveyAppError, PermissionError):
    """The acting user's role or ownership does not allow the action"""

    title = "Access Denied"


class NotFoundError(SurveyAppError):
    """The target document no longer exists"""

    title = "Not Found"
