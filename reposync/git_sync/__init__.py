"""Repository synchronization engine: clone, fetch, fast-forward and three-way merge."""

from .backend import GitPythonBackend, RepositoryBackend
from .error_types import (
    MergeError,
    MergeErrorKind,
    SyncError,
    SyncErrorKind,
    TransferError,
    TransferErrorKind,
)
from .fast_forward import FastForwardApplier
from .manager import SyncManager, get_sync_manager
from .merge import ThreeWayMerger
from .merge_analysis import MergeAnalyzer
from .orchestrator import SyncOrchestrator
from .progress import (
    CheckoutProgress,
    ProgressReporter,
    ProgressState,
    StreamStatusSink,
    TransferStats,
)
from .repository_info import AnnotatedCommit, MergeAnalysisResult, MergeOutcome, SyncOutcome
from .transfer import TransferExecutor
from .utils import SyncResult, create_sync_result

__all__ = [
    'AnnotatedCommit',
    'CheckoutProgress',
    'FastForwardApplier',
    'GitPythonBackend',
    'MergeAnalysisResult',
    'MergeAnalyzer',
    'MergeError',
    'MergeErrorKind',
    'MergeOutcome',
    'ProgressReporter',
    'ProgressState',
    'RepositoryBackend',
    'StreamStatusSink',
    'SyncError',
    'SyncErrorKind',
    'SyncManager',
    'SyncOrchestrator',
    'SyncOutcome',
    'SyncResult',
    'ThreeWayMerger',
    'TransferError',
    'TransferErrorKind',
    'TransferExecutor',
    'TransferStats',
    'create_sync_result',
    'get_sync_manager',
]
