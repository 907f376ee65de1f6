"""Clone and fetch operations with transfer and checkout progress reporting."""

import logging
import re
import shutil
from dataclasses import replace
from pathlib import Path
from typing import Optional, Sequence

from git import GitCommandError, InvalidGitRepositoryError, NoSuchPathError, RemoteProgress, Repo

from .backend import RepositoryBackend, GitPythonBackend
from .error_recovery import ErrorClassifier, failure_text, get_error_classifier
from .error_types import TransferError, TransferErrorKind
from .progress import CheckoutProgress, ProgressReporter, ProgressState, TransferStats
from .repository_info import AnnotatedCommit

_BYTE_UNITS = {
    "bytes": 1,
    "KiB": 1024,
    "MiB": 1024 ** 2,
    "GiB": 1024 ** 3,
}
_SIZE_PATTERN = re.compile(r"([\d.]+)\s*(bytes|KiB|MiB|GiB)")

BACKEND_ERRORS = (GitCommandError, InvalidGitRepositoryError, NoSuchPathError, ValueError, OSError)


def parse_transferred_bytes(message: str) -> Optional[int]:
    """Parse the byte count git appends to 'Receiving objects' lines."""
    match = _SIZE_PATTERN.search(message or "")
    if not match:
        return None
    return int(float(match.group(1)) * _BYTE_UNITS[match.group(2)])


class TransferProgressHandler(RemoteProgress):
    """
    Translates git's progress lines into TransferStats snapshots.

    One handler serves exactly one clone or fetch. Counters never decrease
    within that operation and received objects never exceed the total once
    the total is known.
    """

    def __init__(self, state: ProgressState, reporter: Optional[ProgressReporter] = None):
        super().__init__()
        self.state = state
        self.reporter = reporter
        self.stats = TransferStats()
        self.state.record_transfer(self.stats)

    def update(self, op_code, cur_count, max_count=None, message=""):
        stage = op_code & self.OP_MASK
        current = int(cur_count or 0)
        total = int(max_count or 0)
        stats = self.stats

        if stage == self.RECEIVING:
            total_objects = max(stats.total_objects, total)
            received = max(stats.received_objects, current)
            if total_objects:
                received = min(received, total_objects)
            received_bytes = parse_transferred_bytes(message)
            stats = replace(
                stats,
                total_objects=total_objects,
                received_objects=received,
                # index-pack indexes objects as they arrive
                indexed_objects=max(stats.indexed_objects, received),
                received_bytes=max(stats.received_bytes, received_bytes or 0),
            )
        elif stage == self.RESOLVING:
            total_deltas = max(stats.total_deltas, total)
            indexed_deltas = max(stats.indexed_deltas, current)
            if total_deltas:
                indexed_deltas = min(indexed_deltas, total_deltas)
            stats = replace(
                stats,
                received_objects=stats.total_objects,
                indexed_objects=stats.total_objects,
                indexed_deltas=indexed_deltas,
                total_deltas=total_deltas,
            )
        else:
            # Remote-side counting/compressing and anything unrecognised
            return

        if stats == self.stats:
            return
        self.stats = stats
        self.state.record_transfer(stats)
        if self.reporter is not None:
            self.reporter.report()


class TransferExecutor:
    """
    Performs clones and incremental fetches.

    Backend failures are raised as TransferError and are never retried here.
    """

    def __init__(
        self,
        state: Optional[ProgressState] = None,
        reporter: Optional[ProgressReporter] = None,
        backend: Optional[RepositoryBackend] = None,
        classifier: Optional[ErrorClassifier] = None
    ):
        self.state = state or ProgressState()
        self.reporter = reporter or ProgressReporter(self.state)
        self.backend = backend or GitPythonBackend()
        self.classifier = classifier or get_error_classifier()
        self.logger = logging.getLogger('reposync.git_sync.transfer')

    def _record_checkout(self, progress: CheckoutProgress) -> None:
        self.state.record_checkout(progress)
        self.reporter.report()

    def clone(self, url: str, destination: Path, branch: Optional[str] = None) -> Repo:
        """
        Clone ``url`` into ``destination`` and check out its HEAD.

        A clone whose checkout fails is removed again. A destination directory
        that existed before is kept, emptied.

        Args:
            url: Remote repository URL
            destination: Missing or empty directory to clone into
            branch: Branch to check out instead of the remote's default

        Returns:
            The cloned repository

        Raises:
            TransferError: on any transport, authentication or checkout failure
        """
        destination = Path(destination)
        keep_directory = destination.exists()
        self.state.reset()
        handler = TransferProgressHandler(self.state, self.reporter)

        self.logger.info(f"Cloning {url} into {destination}")
        try:
            repo = self.backend.clone(url, destination, handler, branch=branch)
        except BACKEND_ERRORS as e:
            raise self.classifier.to_transfer_error(e, handler.error_lines) from e

        try:
            head_commit = self.backend.head_commit(repo)
            if head_commit is None:
                self.logger.warning(f"Cloned an empty repository from {url}, nothing to check out")
            else:
                written = self.backend.checkout(repo, head_commit, self._record_checkout)
                self.logger.info(f"Checked out {written} files at {head_commit[:10]}")
        except BACKEND_ERRORS as e:
            repo.close()
            self._discard_clone(destination, keep_directory)
            raise TransferError(
                TransferErrorKind.OTHER,
                f"checkout after clone failed: {failure_text(e)}"
            ) from e
        finally:
            self.reporter.finish()

        return repo

    def _discard_clone(self, destination: Path, keep_directory: bool) -> None:
        self.logger.warning(f"Removing incomplete clone at {destination}")
        try:
            if not keep_directory:
                shutil.rmtree(destination)
                return
            for child in destination.iterdir():
                if child.is_dir() and not child.is_symlink():
                    shutil.rmtree(child)
                else:
                    child.unlink()
        except OSError as e:
            self.logger.error(f"Could not remove incomplete clone at {destination}: {e}")

    def fetch(self, repo: Repo, remote_name: str, ref_names: Sequence[str]) -> AnnotatedCommit:
        """
        Fetch ``ref_names`` from ``remote_name``.

        Only the object store and FETCH_HEAD change; no branch ref and no
        working-tree file is touched.

        Returns:
            AnnotatedCommit for the tip of the first requested ref

        Raises:
            TransferError: on any transport or authentication failure, or
                when a requested ref does not exist on the remote
        """
        if not ref_names:
            raise ValueError("fetch needs at least one ref name")

        self.state.reset()
        handler = TransferProgressHandler(self.state, self.reporter)

        self.logger.info(f"Fetching {', '.join(ref_names)} from {remote_name}")
        try:
            fetched_id = self.backend.fetch(repo, remote_name, ref_names, handler)
            source = next(iter(repo.remote(remote_name).urls), remote_name)
        except BACKEND_ERRORS as e:
            raise self.classifier.to_transfer_error(e, handler.error_lines) from e
        finally:
            self.reporter.finish()

        stats = handler.stats
        self.logger.info(
            f"Received {stats.indexed_objects}/{stats.total_objects} objects "
            f"in {stats.received_bytes} bytes"
        )
        return AnnotatedCommit(commit_id=fetched_id, ref_name="FETCH_HEAD", source=source)
