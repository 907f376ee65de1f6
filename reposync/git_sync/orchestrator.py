"""Top-level sync flow: clone or fetch, analyze, then integrate."""

import logging
from pathlib import Path
from typing import Optional

from git import Actor, Repo
from git.exc import GitError

from .backend import GitPythonBackend, RepositoryBackend, branch_ref_name
from .error_recovery import failure_text
from .error_types import MergeError, MergeErrorKind, SyncError, SyncErrorKind, TransferError
from .fast_forward import FastForwardApplier
from .merge import ThreeWayMerger
from .merge_analysis import MergeAnalyzer
from .performance_logger import PerformanceLogger, get_performance_logger
from .progress import ProgressReporter, ProgressState
from .repository_info import AnnotatedCommit, MergeAnalysisResult, MergeOutcomeKind, SyncOutcome
from .transfer import TransferExecutor


def is_empty_directory(path: Path) -> bool:
    return path.is_dir() and not any(path.iterdir())


class SyncOrchestrator:
    """
    Brings a local directory in line with one branch of a remote repository.

    A missing or empty directory is cloned. An existing repository is fetched
    and the tracked branch is fast-forwarded or merged. Whatever HEAD pointed
    at before, the tracked branch is the one integrated into and HEAD
    designates it afterwards.
    """

    def __init__(
        self,
        branch: str = "main",
        remote_name: str = "origin",
        backend: Optional[RepositoryBackend] = None,
        state: Optional[ProgressState] = None,
        reporter: Optional[ProgressReporter] = None,
        identity: Optional[Actor] = None,
        performance_logger: Optional[PerformanceLogger] = None
    ):
        self.branch = branch
        self.remote_name = remote_name
        self.backend = backend or GitPythonBackend()
        self.state = state or ProgressState()
        self.reporter = reporter or ProgressReporter(self.state)
        self.performance = performance_logger or get_performance_logger()
        self.logger = logging.getLogger('reposync.git_sync.orchestrator')

        self.transfer = TransferExecutor(self.state, self.reporter, self.backend)
        self.analyzer = MergeAnalyzer(self.backend)
        self.fast_forward = FastForwardApplier(self.backend, self.state, self.reporter)
        self.merger = ThreeWayMerger(self.backend, identity, self.state, self.reporter)

    def sync(self, remote_url: str, local_path: Path) -> SyncOutcome:
        """
        Run one sync of ``local_path`` against ``remote_url``.

        Returns:
            SyncOutcome describing what happened

        Raises:
            SyncError: carrying the failed phase and the underlying
                TransferError or MergeError, or REPOSITORY_OPEN_FAILURE
        """
        local_path = Path(local_path)

        if not local_path.exists() or is_empty_directory(local_path):
            return self._clone(remote_url, local_path)

        repo = self._open(local_path)
        try:
            return self._update(repo, remote_url)
        finally:
            repo.close()

    def _clone(self, remote_url: str, local_path: Path) -> SyncOutcome:
        self.logger.info(f"No repository at {local_path}, cloning {remote_url}")
        try:
            with self.performance.time_phase("clone", {"url": remote_url, "branch": self.branch}):
                repo = self.transfer.clone(remote_url, local_path, branch=self.branch)
        except TransferError as e:
            raise SyncError.from_transfer("clone", e) from e

        stats, _ = self.state.snapshot()
        self.performance.log_transfer_performance(
            "clone", remote_url, self.performance.timings[-1].duration, stats
        )
        repo.close()
        return SyncOutcome.CLONED_FRESH

    def _open(self, local_path: Path) -> Repo:
        if not local_path.is_dir():
            raise SyncError(
                SyncErrorKind.REPOSITORY_OPEN_FAILURE, "open", f"{local_path} is not a directory"
            )
        try:
            repo = self.backend.open(local_path)
        except (GitError, OSError) as e:
            raise SyncError(
                SyncErrorKind.REPOSITORY_OPEN_FAILURE,
                "open",
                f"{local_path} is not empty and is not a git repository: {failure_text(e)}"
            ) from e
        if repo.bare:
            repo.close()
            raise SyncError(
                SyncErrorKind.REPOSITORY_OPEN_FAILURE, "open", f"{local_path} is a bare repository"
            )
        return repo

    def _update(self, repo: Repo, remote_url: str) -> SyncOutcome:
        ref_name = branch_ref_name(self.branch)

        try:
            with self.performance.time_phase("fetch", {"remote": self.remote_name, "branch": self.branch}):
                self.backend.ensure_remote(repo, self.remote_name, remote_url)
                fetched = self.transfer.fetch(repo, self.remote_name, [self.branch])
        except TransferError as e:
            raise SyncError.from_transfer("fetch", e) from e
        except (GitError, OSError) as e:
            raise SyncError.from_transfer("fetch", self.transfer.classifier.to_transfer_error(e)) from e

        stats, _ = self.state.snapshot()
        self.performance.log_transfer_performance(
            "fetch", fetched.source, self.performance.timings[-1].duration, stats
        )

        try:
            with self.performance.time_phase("analyze"):
                analysis = self.analyzer.analyze(repo, ref_name, fetched)
        except (GitError, ValueError) as e:
            error = MergeError(MergeErrorKind.OBJECT_STORE_FAILURE, failure_text(e))
            raise SyncError.from_merge("analyze", error) from e
        self.logger.info(f"Merge analysis for {ref_name}: {analysis.value}")

        if analysis is MergeAnalysisResult.UP_TO_DATE:
            return SyncOutcome.ALREADY_UP_TO_DATE

        if analysis in (MergeAnalysisResult.UNBORN, MergeAnalysisResult.FAST_FORWARDABLE):
            try:
                with self.performance.time_phase("fast_forward"):
                    self.fast_forward.apply(repo, ref_name, fetched)
            except MergeError as e:
                raise SyncError.from_merge("fast_forward", e) from e
            return SyncOutcome.UPDATED_BY_FAST_FORWARD

        local_id = self.backend.resolve_ref(repo, ref_name)
        local_tip = AnnotatedCommit(commit_id=local_id, ref_name=ref_name, source="local")
        try:
            with self.performance.time_phase("merge"):
                outcome = self.merger.merge(repo, local_tip, fetched)
        except MergeError as e:
            raise SyncError.from_merge("merge", e) from e

        if outcome.kind is MergeOutcomeKind.CONFLICTS_PENDING:
            self.logger.warning(
                f"Merge of {fetched.short_id} left {len(outcome.conflicts)} conflicts for manual resolution"
            )
            return SyncOutcome.CONFLICTS_PENDING
        return SyncOutcome.UPDATED_BY_MERGE
