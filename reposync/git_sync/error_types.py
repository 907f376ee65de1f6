"""Error types and categorization for repository synchronization operations."""

from dataclasses import dataclass
from enum import Enum
from typing import List, Optional


class TransferErrorKind(Enum):
    """Categories of transfer (clone/fetch) failures."""
    NETWORK = "network"
    AUTH = "auth"
    REF_NOT_FOUND = "ref_not_found"
    OTHER = "other"


class MergeErrorKind(Enum):
    """Categories of failures while integrating fetched history."""
    UNRELATED_HISTORIES = "unrelated_histories"
    OBJECT_STORE_FAILURE = "object_store_failure"
    WORKING_TREE_WRITE_FAILURE = "working_tree_write_failure"


class SyncErrorKind(Enum):
    """Categories of failures surfaced by the sync orchestrator."""
    TRANSFER = "transfer"
    MERGE = "merge"
    REPOSITORY_OPEN_FAILURE = "repository_open_failure"


class TransferError(Exception):
    """A clone or fetch failed. Never retried by the component that raises it."""

    def __init__(self, kind: TransferErrorKind, cause: str):
        self.kind = kind
        self.cause = cause
        super().__init__(f"{kind.value}: {cause}")


class MergeError(Exception):
    """A fast-forward or three-way merge could not be executed."""

    def __init__(self, kind: MergeErrorKind, cause: str):
        self.kind = kind
        self.cause = cause
        super().__init__(f"{kind.value}: {cause}")


class SyncError(Exception):
    """
    A sync attempt aborted.

    Wraps the underlying TransferError or MergeError (available as ``error``)
    together with the phase that failed, or reports a local repository that
    could not be opened.
    """

    def __init__(
        self,
        kind: SyncErrorKind,
        phase: str,
        cause: str,
        error: Optional[Exception] = None
    ):
        self.kind = kind
        self.phase = phase
        self.cause = cause
        self.error = error
        super().__init__(f"sync failed during {phase}: {cause}")

    @classmethod
    def from_transfer(cls, phase: str, error: TransferError) -> "SyncError":
        return cls(SyncErrorKind.TRANSFER, phase, error.cause, error)

    @classmethod
    def from_merge(cls, phase: str, error: MergeError) -> "SyncError":
        return cls(SyncErrorKind.MERGE, phase, error.cause, error)

    @property
    def error_code(self) -> str:
        """Stable code combining the wrapper kind and the underlying kind."""
        if isinstance(self.error, TransferError):
            return f"TRANSFER_{self.error.kind.name}"
        if isinstance(self.error, MergeError):
            return f"MERGE_{self.error.kind.name}"
        return self.kind.name


@dataclass
class ErrorResolution:
    """Information about how an operator can resolve a specific failure."""
    kind: Enum
    user_message: str
    resolution_steps: List[str]
    retryable: bool = False
