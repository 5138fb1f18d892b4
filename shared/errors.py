"""
Shared error handling for the Ability Layer.
"""

from typing import Dict, Any, Optional
from pydantic import BaseModel

from .logging import request_id_var


DEFAULT_DENIED_MESSAGE = "You are not authorized to access this page."


class ErrorResponse(BaseModel):
    """Standard error response format."""

    request_id: Optional[str] = None
    code: str
    message: str
    details: Dict[str, Any] = {}


class AbilityException(Exception):
    """Base exception for the Ability Layer."""

    def __init__(self, code: str, message: str, details: Optional[Dict[str, Any]] = None):
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_response(self) -> ErrorResponse:
        """Convert to error response."""
        return ErrorResponse(
            request_id=request_id_var.get(),
            code=self.code,
            message=self.message,
            details=self.details
        )


def describe_subject(subject: Any) -> str:
    """Short printable name for a subject, used in error details."""
    if isinstance(subject, str):
        return subject
    if isinstance(subject, type):
        return subject.__name__
    return type(subject).__name__


class AccessDenied(AbilityException):
    """Raised by ``Ability.authorize`` when the actor may not act on the subject.

    The action, subject and attribute passed to ``authorize`` are kept as-is so
    callers can build their own message or redirect.
    """

    def __init__(self, message: Optional[str] = None, action: Optional[str] = None,
                 subject: Any = None, attribute: Optional[str] = None):
        self.action = action
        self.subject = subject
        self.attribute = attribute
        self.default_message = DEFAULT_DENIED_MESSAGE
        details = {"action": action, "subject": describe_subject(subject) if subject is not None else None}
        if attribute is not None:
            details["attribute"] = attribute
        super().__init__("ACCESS_DENIED", message or self.default_message, details)


class ImplementationRemoved(AbilityException):
    """A legacy option that is no longer supported was passed."""

    def __init__(self, option_name: str, message: Optional[str] = None):
        self.option_name = option_name
        super().__init__(
            "IMPLEMENTATION_REMOVED",
            message or f"The :{option_name} option is no longer supported",
            {"option": option_name}
        )


class UnsupportedOperation(AbilityException):
    """An operation was requested that the condition kind cannot perform."""

    def __init__(self, reason: str, details: Optional[Dict[str, Any]] = None):
        self.reason = reason
        super().__init__("UNSUPPORTED_OPERATION", reason, details)


class Uncompilable(AbilityException):
    """Bulk compilation hit a rule that only a materialized instance can answer."""

    def __init__(self, reason: str, details: Optional[Dict[str, Any]] = None):
        self.reason = reason
        super().__init__("UNCOMPILABLE", reason, details)


class RecordNotFound(AbilityException):
    """Persistence lookup did not find a record."""

    def __init__(self, subject_type: type, record_id: Any):
        self.subject_type = subject_type
        self.record_id = record_id
        super().__init__(
            "RECORD_NOT_FOUND",
            f"Couldn't find {subject_type.__name__} with id={record_id}",
            {"subject": subject_type.__name__, "id": str(record_id)}
        )
