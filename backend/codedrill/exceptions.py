"""
Domain Exceptions

Errors raised by the learning engine. The HTTP layer maps them onto
status codes in main.py:

- ValidationFailed  -> 422 (rejected before any mutation)
- NotFoundError     -> 404
- PlanStateError    -> 409
- ExecutionBackendError never reaches the caller; the answer evaluator
  turns it into an incorrect verdict.
"""

from dataclasses import dataclass, asdict
from typing import Any, Dict, List, Optional


@dataclass
class FieldError:
    """A single problem with one request field."""
    field: str
    message: str

    def to_dict(self) -> Dict[str, str]:
        return asdict(self)


class DomainError(Exception):
    """Base class for all engine errors."""

    def __init__(self, message: str, original_exception: Optional[Exception] = None):
        super().__init__(message)
        self.message = message
        self.original_exception = original_exception


class ValidationFailed(DomainError):
    """Raised when a request or engine input is out of range or malformed."""

    def __init__(self, errors: List[FieldError], message: Optional[str] = None):
        if message is None:
            message = "; ".join(f"{e.field}: {e.message}" for e in errors) or "invalid input"
        super().__init__(message)
        self.errors = errors

    def to_dict(self) -> Dict[str, Any]:
        return {
            "detail": self.message,
            "errors": [e.to_dict() for e in self.errors],
        }


class NotFoundError(DomainError):
    """Raised when a question, plan, skill or review does not exist (or is not the caller's)."""

    def __init__(self, entity: str, identifier: Any = None):
        if identifier is None:
            message = f"{entity} not found"
        else:
            message = f"{entity} {identifier} not found"
        super().__init__(message)
        self.entity = entity
        self.identifier = identifier


class PlanStateError(DomainError):
    """Raised when an operation does not apply to a plan in its current status."""

    def __init__(self, plan_id: str, status: str, message: Optional[str] = None):
        super().__init__(message or f"training plan {plan_id} is {status}")
        self.plan_id = plan_id
        self.status = status


class ExecutionBackendError(DomainError):
    """Raised by the sandbox client when the execution service is unreachable or errors."""
    pass
