"""Data structures describing commits, merge analysis and sync outcomes."""

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional


@dataclass(frozen=True)
class AnnotatedCommit:
    """A commit id together with the ref and source it was read from."""
    commit_id: str
    ref_name: str
    source: str = "local"

    @property
    def short_id(self) -> str:
        return self.commit_id[:10]

    def __str__(self) -> str:
        return f"{self.short_id} ({self.ref_name} from {self.source})"


class MergeAnalysisResult(Enum):
    """What has to happen to integrate a fetched tip into the local branch."""
    UP_TO_DATE = "up_to_date"
    FAST_FORWARDABLE = "fast_forwardable"
    NORMAL_MERGE_REQUIRED = "normal_merge_required"
    UNBORN = "unborn"                 # Local branch does not exist yet


class MergeOutcomeKind(Enum):
    MERGED = "merged"
    CONFLICTS_PENDING = "conflicts_pending"


@dataclass
class MergeOutcome:
    """Result of a three-way merge attempt."""
    kind: MergeOutcomeKind
    commit_id: Optional[str] = None
    conflicts: List[str] = field(default_factory=list)

    @classmethod
    def merged(cls, commit_id: str) -> "MergeOutcome":
        return cls(kind=MergeOutcomeKind.MERGED, commit_id=commit_id)

    @classmethod
    def conflicts_pending(cls, conflicts: List[str]) -> "MergeOutcome":
        return cls(kind=MergeOutcomeKind.CONFLICTS_PENDING, conflicts=list(conflicts))


class SyncOutcome(Enum):
    """Enumeration of possible results of one sync run."""
    CLONED_FRESH = "cloned_fresh"
    UPDATED_BY_FAST_FORWARD = "updated_by_fast_forward"
    UPDATED_BY_MERGE = "updated_by_merge"
    ALREADY_UP_TO_DATE = "already_up_to_date"
    CONFLICTS_PENDING = "conflicts_pending"

    @property
    def integrated(self) -> bool:
        """True when new content landed in the working tree and a rebuild is due."""
        return self in (
            SyncOutcome.CLONED_FRESH,
            SyncOutcome.UPDATED_BY_FAST_FORWARD,
            SyncOutcome.UPDATED_BY_MERGE,
        )
