"""Result objects returned by the sync facade."""

from dataclasses import asdict, dataclass
from typing import Any, Dict, Optional

from .repository_info import SyncOutcome


@dataclass
class SyncResult:
    """Result of one synchronization run."""
    success: bool
    message: str
    operation: str
    outcome: Optional[SyncOutcome] = None
    attempts: int = 1
    error_code: Optional[str] = None
    phase: Optional[str] = None
    branch_used: Optional[str] = None
    commit_id: Optional[str] = None

    @property
    def integrated(self) -> bool:
        """True when the build consumer should rebuild."""
        return self.outcome is not None and self.outcome.integrated

    def to_dict(self) -> Dict[str, Any]:
        result = asdict(self)
        result["outcome"] = self.outcome.value if self.outcome else None
        result["integrated"] = self.integrated
        return result


def create_sync_result(
    success: bool,
    message: str,
    operation: str,
    outcome: Optional[SyncOutcome] = None,
    attempts: int = 1,
    error_code: Optional[str] = None,
    phase: Optional[str] = None,
    branch_used: Optional[str] = None,
    commit_id: Optional[str] = None
) -> SyncResult:
    """
    Helper function to create SyncResult instances.

    Args:
        success: Whether the sync completed without error
        message: Descriptive message about the result
        operation: Name of the operation that was performed
        outcome: SyncOutcome when the sync completed
        attempts: Number of attempts made (default: 1)
        error_code: Error code for failed syncs
        phase: Phase that failed
        branch_used: Tracked branch
        commit_id: Commit HEAD resolves to after the sync

    Returns:
        SyncResult instance with all fields populated
    """
    return SyncResult(
        success=success,
        message=message,
        operation=operation,
        outcome=outcome,
        attempts=attempts,
        error_code=error_code,
        phase=phase,
        branch_used=branch_used,
        commit_id=commit_id
    )
