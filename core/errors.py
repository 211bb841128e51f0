"""
Error Handling Module
---------------------
Typed error taxonomy for tool resolution and permission checks.

Nothing here is raised on the request path. Resolvers and evaluators return
result values; those results convert into a GateError so the boundary layer
can log, count and phrase them uniformly.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum, auto
from typing import Any, Dict, List, Optional
import logging


class ErrorCategory(Enum):
    """Categories of gate failures."""
    TOOL_NOT_FOUND = auto()          # Name matches nothing anywhere
    PROVIDER_NOT_CONNECTED = auto()  # Owning provider has no credential
    AMBIGUOUS_TOOL_NAME = auto()     # Shorthand matches several providers
    PERMISSION_DENIED = auto()       # Connector tier too low
    VACATION_MODE_ACTIVE = auto()    # Temporary read-only override
    UNMAPPED_CONNECTOR = auto()      # Tiered tool without connector mapping
    STORE_UNAVAILABLE = auto()       # Settings store failed


@dataclass
class GateError:
    """
    Structured error with metadata.

    Used for consistent error handling and reporting.
    """
    category: ErrorCategory
    message: str
    details: Optional[Dict[str, Any]] = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    recoverable: bool = True

    @classmethod
    def from_exception(
        cls,
        exception: Exception,
        category: ErrorCategory = ErrorCategory.STORE_UNAVAILABLE,
        details: Optional[Dict] = None
    ) -> "GateError":
        """Create error from an exception."""
        return cls(
            category=category,
            message=str(exception),
            details=details,
            recoverable=category != ErrorCategory.STORE_UNAVAILABLE
        )

    def __repr__(self) -> str:
        return f"GateError({self.category.name}: {self.message})"


class ErrorHandler:
    """
    Central error handler with logging and per-category stats.
    """

    # Log level per category
    LOG_LEVELS: Dict[ErrorCategory, int] = {
        ErrorCategory.TOOL_NOT_FOUND: logging.INFO,
        ErrorCategory.AMBIGUOUS_TOOL_NAME: logging.INFO,
        ErrorCategory.PROVIDER_NOT_CONNECTED: logging.INFO,
        ErrorCategory.PERMISSION_DENIED: logging.WARNING,
        ErrorCategory.VACATION_MODE_ACTIVE: logging.WARNING,
        ErrorCategory.UNMAPPED_CONNECTOR: logging.WARNING,
        ErrorCategory.STORE_UNAVAILABLE: logging.ERROR,
    }

    def __init__(self, max_history: int = 100):
        self._logger = logging.getLogger("toolgate.errors")
        self._error_history: List[GateError] = []
        self._max_history = max_history

    def handle(self, error: GateError) -> str:
        """
        Handle an error and return a user-facing message.
        """
        self._log_error(error)

        self._error_history.append(error)
        if len(self._error_history) > self._max_history:
            self._error_history.pop(0)

        return self._get_user_message(error)

    def _log_error(self, error: GateError) -> None:
        level = self.LOG_LEVELS.get(error.category, logging.ERROR)
        self._logger.log(
            level,
            f"{error.category.name}: {error.message}",
            extra={"details": error.details}
        )

    def _get_user_message(self, error: GateError) -> str:
        """Results already carry a usable reason; only the store needs a canned one."""
        if error.category == ErrorCategory.STORE_UNAVAILABLE:
            return "Settings are temporarily unavailable. Please try again later."
        return error.message

    def get_error_stats(self) -> Dict[str, int]:
        """Get error statistics."""
        stats: Dict[str, int] = {}
        for error in self._error_history:
            key = error.category.name
            stats[key] = stats.get(key, 0) + 1
        return stats

    def clear_history(self) -> None:
        self._error_history.clear()
