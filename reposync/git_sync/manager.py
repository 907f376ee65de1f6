"""Configuration-driven synchronization manager for reposync."""

import logging
import threading
import time
from pathlib import Path
from typing import Any, Dict, Optional

from git import Actor, InvalidGitRepositoryError, NoSuchPathError, Repo

from ..config import Config
from .backend import GitPythonBackend, RepositoryBackend
from .error_recovery import get_error_classifier
from .error_types import SyncError, TransferError, TransferErrorKind
from .orchestrator import SyncOrchestrator
from .performance_logger import PerformanceLogger
from .progress import LoggingStatusSink, ProgressReporter, ProgressState, StreamStatusSink
from .repository_info import SyncOutcome
from .utils import SyncResult, create_sync_result

OUTCOME_MESSAGES = {
    SyncOutcome.CLONED_FRESH: "Cloned {url} into {path}",
    SyncOutcome.UPDATED_BY_FAST_FORWARD: "Fast-forwarded {branch} to the remote tip",
    SyncOutcome.UPDATED_BY_MERGE: "Merged remote changes into {branch}",
    SyncOutcome.ALREADY_UP_TO_DATE: "{branch} is already up to date",
    SyncOutcome.CONFLICTS_PENDING: "Merge into {branch} left conflicts that need manual resolution",
}


class SyncManager:
    """
    Runs syncs of the configured directory.

    Only one sync runs at a time. Transfer failures classified as network
    failures are retried with exponential backoff; everything else is
    reported on the first failure.
    """

    def __init__(
        self,
        config: Config,
        backend: Optional[RepositoryBackend] = None,
        orchestrator: Optional[SyncOrchestrator] = None
    ):
        self.config = config
        self.logger = logging.getLogger('reposync.git_sync.manager')
        self.backend = backend or GitPythonBackend()
        self.perf_logger = PerformanceLogger()
        self._lock = threading.Lock()

        if orchestrator is None:
            sink = StreamStatusSink() if config.show_progress else LoggingStatusSink()
            state = ProgressState()
            orchestrator = SyncOrchestrator(
                branch=config.branch,
                remote_name=config.remote_name,
                backend=self.backend,
                state=state,
                reporter=ProgressReporter(state, sink),
                identity=Actor(config.author_name, config.author_email),
                performance_logger=self.perf_logger
            )
        self.orchestrator = orchestrator

    def sync(self) -> SyncResult:
        """
        Synchronize the configured directory with the configured remote branch.

        Returns:
            SyncResult; conflicts are reported as success with outcome
            CONFLICTS_PENDING
        """
        if not self.config.remote_url:
            return create_sync_result(
                success=False,
                message="No remote URL configured",
                operation="sync",
                attempts=0,
                error_code="CONFIGURATION_ERROR",
                branch_used=self.config.branch
            )

        with self._lock:
            self.perf_logger.reset()
            return self._sync_with_retry()

    def _sync_with_retry(self) -> SyncResult:
        max_attempts = self.config.retry_attempts
        base_delay = self.config.retry_delay
        url = self.config.remote_url
        path = self.config.local_path
        branch = self.config.branch

        for attempt in range(1, max_attempts + 1):
            self.logger.debug(f"Sync attempt {attempt}/{max_attempts} of {path} from {url}")
            try:
                outcome = self.orchestrator.sync(url, path)
            except SyncError as e:
                if self._is_retryable(e) and attempt < max_attempts:
                    delay = base_delay * (2 ** (attempt - 1))
                    self.logger.warning(
                        f"Sync failed during {e.phase} (attempt {attempt}/{max_attempts}): "
                        f"{e.cause}, retrying in {delay:.1f}s"
                    )
                    time.sleep(delay)
                    continue
                return self._failure_result(e, attempt)
            except Exception as e:
                self.logger.error(f"Unexpected error during sync: {e}", exc_info=True)
                return create_sync_result(
                    success=False,
                    message=f"Unexpected error during sync: {e}",
                    operation="sync",
                    attempts=attempt,
                    error_code="SYNC_UNEXPECTED_ERROR",
                    branch_used=branch
                )

            message = OUTCOME_MESSAGES[outcome].format(url=url, path=path, branch=branch)
            if outcome is SyncOutcome.CONFLICTS_PENDING:
                self.logger.warning(message)
            else:
                self.logger.info(f"✅ {message}")
            return create_sync_result(
                success=True,
                message=message,
                operation="sync",
                outcome=outcome,
                attempts=attempt,
                branch_used=branch,
                commit_id=self._head_commit(path)
            )

        # Only reached when retry_attempts < 1, which Config rejects
        raise RuntimeError("sync loop exited without a result")

    @staticmethod
    def _is_retryable(error: SyncError) -> bool:
        return isinstance(error.error, TransferError) and error.error.kind is TransferErrorKind.NETWORK

    def _failure_result(self, error: SyncError, attempts: int) -> SyncResult:
        resolution = get_error_classifier().resolution_for(error)
        message = str(error)
        if resolution is not None:
            message = f"{message}. {resolution.user_message}"
        self.logger.error(f"❌ {message}")
        return create_sync_result(
            success=False,
            message=message,
            operation="sync",
            attempts=attempts,
            error_code=error.error_code,
            phase=error.phase,
            branch_used=self.config.branch
        )

    def _head_commit(self, path: Path) -> Optional[str]:
        try:
            repo = self.backend.open(path)
        except (InvalidGitRepositoryError, NoSuchPathError):
            return None
        try:
            return self.backend.head_commit(repo)
        finally:
            repo.close()

    def get_repository_status(self) -> Dict[str, Any]:
        """
        Describe the synchronized directory.

        Returns:
            Dictionary with the path, branch, HEAD commit, remote URL and
            whether a merge is waiting for manual conflict resolution
        """
        path = self.config.local_path
        status = {
            'local_path': str(path),
            'repository_exists': False,
            'tracked_branch': self.config.branch,
            'current_branch': None,
            'head_commit': None,
            'remote_name': self.config.remote_name,
            'remote_url': None,
            'merge_pending': False,
            'conflicts': [],
            'last_sync_phases': self.perf_logger.get_performance_summary(),
        }

        try:
            repo = self.backend.open(path)
        except (InvalidGitRepositoryError, NoSuchPathError):
            return status

        try:
            status['repository_exists'] = True
            status['head_commit'] = self.backend.head_commit(repo)
            if not repo.head.is_detached:
                status['current_branch'] = repo.head.ref.name
            if self.config.remote_name in [remote.name for remote in repo.remotes]:
                status['remote_url'] = next(iter(repo.remote(self.config.remote_name).urls), None)
            status['merge_pending'] = (Path(repo.git_dir) / "MERGE_HEAD").exists()
            status['conflicts'] = sorted(str(p) for p in repo.index.unmerged_blobs())
        finally:
            repo.close()
        return status


_sync_manager: Optional[SyncManager] = None


def get_sync_manager(config: Config) -> SyncManager:
    """
    Get or create the global sync manager instance.

    Args:
        config: Loaded configuration

    Returns:
        SyncManager instance
    """
    global _sync_manager

    if _sync_manager is None:
        _sync_manager = SyncManager(config)

    return _sync_manager
