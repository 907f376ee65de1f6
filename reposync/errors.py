"""Error responses for the reposync MCP server."""

import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from .git_sync.error_recovery import get_error_classifier
from .git_sync.error_types import SyncError
from .git_sync.utils import SyncResult


class ErrorCategory(Enum):
    """Categories of errors for structured error handling."""
    SYNC = "sync"
    CONFIGURATION = "configuration"
    SYSTEM = "system"


@dataclass
class ErrorResponse:
    """Standardized error response format for tool calls."""
    error: str
    error_code: str
    message: str
    timestamp: str
    category: str
    context: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert error response to dictionary format."""
        result = {
            "error": self.error,
            "error_code": self.error_code,
            "message": self.message,
            "timestamp": self.timestamp,
            "category": self.category
        }
        if self.context:
            result["context"] = self.context
        return result


class ErrorHandler:
    """Turns failed syncs and unexpected exceptions into ErrorResponses."""

    def __init__(self):
        self.logger = logging.getLogger('reposync.error_handler')

    def handle_sync_result(self, result: SyncResult, context: Dict[str, Any] = None) -> ErrorResponse:
        """Build a response for a SyncResult with ``success`` False."""
        context = dict(context or {})
        if result.phase:
            context["phase"] = result.phase
        context["attempts"] = result.attempts

        category = ErrorCategory.SYNC
        if result.error_code == "CONFIGURATION_ERROR":
            category = ErrorCategory.CONFIGURATION

        response = ErrorResponse(
            error="Repository sync failed",
            error_code=result.error_code or "SYNC_UNEXPECTED_ERROR",
            message=result.message,
            timestamp=datetime.now().isoformat(),
            category=category.value,
            context=context
        )
        self.logger.error(
            f"Sync error: {result.message}",
            extra={'operation': 'sync_error', 'error_code': response.error_code}
        )
        return response

    def handle_sync_error(self, error: SyncError, context: Dict[str, Any] = None) -> ErrorResponse:
        """Build a response for a raised SyncError, with resolution steps."""
        context = dict(context or {})
        context["phase"] = error.phase

        resolution = get_error_classifier().resolution_for(error)
        if resolution is not None:
            context["resolution_steps"] = list(resolution.resolution_steps)
            context["retryable"] = resolution.retryable

        response = ErrorResponse(
            error="Repository sync failed",
            error_code=error.error_code,
            message=str(error),
            timestamp=datetime.now().isoformat(),
            category=ErrorCategory.SYNC.value,
            context=context
        )
        self.logger.error(
            f"Sync error during {error.phase}: {error.cause}",
            extra={'operation': 'sync_error', 'error_code': response.error_code}
        )
        return response

    def handle_system_error(self, error: Exception, context: Dict[str, Any] = None) -> ErrorResponse:
        """Handle unexpected system-level errors."""
        response = ErrorResponse(
            error="System error",
            error_code="SYSTEM_ERROR",
            message=f"Unexpected error: {error}",
            timestamp=datetime.now().isoformat(),
            category=ErrorCategory.SYSTEM.value,
            context=context
        )
        self.logger.error(f"System error: {error}", exc_info=True, extra={'operation': 'system_error'})
        return response


# Global error handler instance
error_handler = ErrorHandler()
