"""Domain error values returned by the request handlers.

Handlers never raise for anticipated failures. They return a ``DomainError``
carrying an HTTP-style status, a message and, for validation failures, the
list of field errors produced by the schema validator. ``main.py`` renders
these as ``{"error": ..., "details": [...]}``.
"""

import functools
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FieldError:
    field: str
    message: str

    def to_dict(self) -> Dict[str, str]:
        return {"field": self.field, "message": self.message}


@dataclass(frozen=True)
class DomainError:
    status_code: int
    message: str
    details: List[FieldError] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"error": self.message}
        if self.details:
            body["details"] = [d.to_dict() for d in self.details]
        return body


def validation_error(message: str, details: Optional[List[FieldError]] = None) -> DomainError:
    return DomainError(400, message, list(details or []))


def not_found(message: str) -> DomainError:
    return DomainError(404, message)


def conflict(message: str) -> DomainError:
    return DomainError(409, message)


def unauthorized(message: str = "Unauthorized") -> DomainError:
    return DomainError(401, message)


def forbidden(message: str) -> DomainError:
    return DomainError(403, message)


def internal(message: str = "Unknown error") -> DomainError:
    return DomainError(500, message)


def _failure_message(exc: Exception) -> str:
    # driver errors carry the SQL text and bound parameters
    if isinstance(exc, SQLAlchemyError):
        return "Database error"
    return str(exc) or "Unknown error"


def guarded(action: str):
    """Report unexpected failures of a handler as a 500 DomainError.

    ``action`` reads like "creating campaign" and only shows up in the log.
    """
    def decorator(func):
        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            try:
                return func(*args, **kwargs)
            except Exception as exc:
                logger.exception("Error %s", action)
                return internal(_failure_message(exc))
        return wrapper
    return decorator
