"""Classification of backend failures and operator-facing resolution guidance."""

import logging
from typing import Optional, Sequence

from git import GitCommandError

from .error_types import (
    ErrorResolution,
    MergeError,
    SyncError,
    TransferError,
    TransferErrorKind,
)
from .error_strategies import build_error_patterns, build_error_resolutions


def failure_text(error: BaseException) -> str:
    """Extract the most useful human-readable text from a backend exception."""
    if isinstance(error, GitCommandError):
        stderr = (error.stderr or "").strip()
        if stderr.startswith("stderr:"):
            stderr = stderr[len("stderr:"):].strip()
        return stderr.strip("'").strip() or str(error)
    return str(error)


class ErrorClassifier:
    """
    Maps backend failures onto the error taxonomy.

    The classifier only inspects failure text; it never retries or recovers,
    retry policy belongs to the caller of the sync.
    """

    def __init__(self):
        self.logger = logging.getLogger('reposync.git_sync.error_recovery')
        self._error_patterns = build_error_patterns()
        self._resolutions = build_error_resolutions()

    def categorize(self, message: str) -> TransferErrorKind:
        """
        Categorize transfer failure text.

        Args:
            message: Failure text reported by git

        Returns:
            TransferErrorKind, OTHER when no pattern matches
        """
        if not message:
            return TransferErrorKind.OTHER

        lowered = message.lower()
        for pattern, kind in self._error_patterns.items():
            if pattern in lowered:
                self.logger.debug(f"Categorized transfer failure as {kind}: pattern '{pattern}' found")
                return kind

        self.logger.debug(f"Could not categorize transfer failure: {message}")
        return TransferErrorKind.OTHER

    def to_transfer_error(self, error: BaseException, error_lines: Sequence[str] = ()) -> TransferError:
        """
        Wrap a backend exception raised during clone or fetch.

        ``error_lines`` are the fatal/error lines a progress handler captured;
        git's stderr is consumed by the progress pump, so they are usually
        the only record of why the transfer failed.
        """
        if isinstance(error, TransferError):
            return error
        captured = [line.strip() for line in error_lines if line.strip()]
        text = "\n".join(captured) if captured else failure_text(error)
        return TransferError(self.categorize(text), text)

    def resolution_for(self, error: Exception) -> Optional[ErrorResolution]:
        """Look up operator guidance for a raised sync, transfer or merge error."""
        if isinstance(error, SyncError):
            if error.error is not None:
                return self.resolution_for(error.error)
            return self._resolutions.get(error.kind)
        if isinstance(error, (TransferError, MergeError)):
            return self._resolutions.get(error.kind)
        return None


_classifier: Optional[ErrorClassifier] = None


def get_error_classifier() -> ErrorClassifier:
    """Get or create the shared error classifier."""
    global _classifier
    if _classifier is None:
        _classifier = ErrorClassifier()
    return _classifier
