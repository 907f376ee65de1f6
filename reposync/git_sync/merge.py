"""Three-way merge of a fetched tip into the local branch."""

import logging
from typing import Optional

from git import Actor, Repo
from git.exc import GitError

from .backend import RepositoryBackend
from .error_recovery import failure_text
from .error_types import MergeError, MergeErrorKind
from .merge_index import MergeIndex
from .progress import CheckoutProgress, ProgressReporter, ProgressState
from .repository_info import AnnotatedCommit, MergeOutcome

BACKEND_ERRORS = (GitError, ValueError, OSError)

DEFAULT_IDENTITY = Actor("reposync", "reposync@localhost")


def merge_message(local_tip: AnnotatedCommit, remote_tip: AnnotatedCommit) -> str:
    return f"Merge: {remote_tip.commit_id} into {local_tip.commit_id}"


class ThreeWayMerger:
    """
    Integrates diverged histories with a merge commit.

    Conflicts never produce a commit: the conflicted state is left in the
    index and working tree for a human to resolve, and the branch ref stays
    where it was.
    """

    def __init__(
        self,
        backend: RepositoryBackend,
        identity: Optional[Actor] = None,
        state: Optional[ProgressState] = None,
        reporter: Optional[ProgressReporter] = None
    ):
        self.backend = backend
        self.identity = identity or DEFAULT_IDENTITY
        self.state = state or ProgressState()
        self.reporter = reporter or ProgressReporter(self.state)
        self.logger = logging.getLogger('reposync.git_sync.merge')

    def _record_checkout(self, progress: CheckoutProgress) -> None:
        self.state.record_checkout(progress)
        self.reporter.report()

    def merge(self, repo: Repo, local_tip: AnnotatedCommit, remote_tip: AnnotatedCommit) -> MergeOutcome:
        """
        Merge ``remote_tip`` into the branch ``local_tip`` was read from.

        Args:
            repo: Repository holding both commits
            local_tip: Tip of the local branch; ``ref_name`` names the branch
            remote_tip: Fetched tip

        Returns:
            MergeOutcome MERGED with the new commit id, or CONFLICTS_PENDING
            with the conflicted paths

        Raises:
            MergeError: UNRELATED_HISTORIES when no merge base exists,
                OBJECT_STORE_FAILURE or WORKING_TREE_WRITE_FAILURE when the
                backend fails. A merge commit whose checkout fails is taken
                back off the branch.
        """
        try:
            base = self.backend.merge_base(repo, local_tip.commit_id, remote_tip.commit_id)
        except BACKEND_ERRORS as e:
            raise MergeError(MergeErrorKind.OBJECT_STORE_FAILURE, failure_text(e)) from e
        if base is None:
            raise MergeError(
                MergeErrorKind.UNRELATED_HISTORIES,
                f"{local_tip.short_id} and {remote_tip.short_id} have no common ancestor"
            )

        self.logger.info(
            f"Merging {remote_tip.short_id} into {local_tip.ref_name} at {local_tip.short_id} "
            f"(base {base[:10]})"
        )
        try:
            merge_index = self.backend.merge_trees(repo, base, local_tip.commit_id, remote_tip.commit_id)
        except BACKEND_ERRORS as e:
            raise MergeError(
                MergeErrorKind.OBJECT_STORE_FAILURE,
                f"tree merge failed: {failure_text(e)}"
            ) from e

        if merge_index.has_conflicts:
            return self._leave_conflicts(repo, merge_index, local_tip, remote_tip)
        return self._commit_merge(repo, merge_index, local_tip, remote_tip)

    def _leave_conflicts(
        self,
        repo: Repo,
        merge_index: MergeIndex,
        local_tip: AnnotatedCommit,
        remote_tip: AnnotatedCommit
    ) -> MergeOutcome:
        paths = merge_index.conflict_paths
        self.logger.warning(f"Merge has {len(paths)} conflicts: {', '.join(paths)}")

        try:
            conflicted_tree = merge_index.write_conflicted_tree()
        except BACKEND_ERRORS as e:
            raise MergeError(MergeErrorKind.OBJECT_STORE_FAILURE, failure_text(e)) from e

        try:
            self.backend.set_head(repo, local_tip.ref_name)
            self.backend.checkout(repo, conflicted_tree.hexsha, self._record_checkout)
            self.backend.record_conflicts(
                repo, merge_index, remote_tip.commit_id, merge_message(local_tip, remote_tip)
            )
        except BACKEND_ERRORS as e:
            raise MergeError(
                MergeErrorKind.WORKING_TREE_WRITE_FAILURE,
                f"could not write conflicted state: {failure_text(e)}"
            ) from e
        finally:
            self.reporter.finish()

        return MergeOutcome.conflicts_pending(paths)

    def _commit_merge(
        self,
        repo: Repo,
        merge_index: MergeIndex,
        local_tip: AnnotatedCommit,
        remote_tip: AnnotatedCommit
    ) -> MergeOutcome:
        message = merge_message(local_tip, remote_tip)
        try:
            tree = merge_index.write_tree()
            identity = self.backend.signature(repo, self.identity)
            commit_id = self.backend.create_commit(
                repo,
                tree.hexsha,
                [local_tip.commit_id, remote_tip.commit_id],
                message,
                identity
            )
            self.backend.update_ref(repo, local_tip.ref_name, commit_id, local_tip.commit_id, message)
            self.backend.set_head(repo, local_tip.ref_name)
            self.backend.clear_merge_state(repo)
        except BACKEND_ERRORS as e:
            raise MergeError(
                MergeErrorKind.OBJECT_STORE_FAILURE,
                f"could not record merge commit: {failure_text(e)}"
            ) from e

        self.logger.info(f"Created merge commit {commit_id[:10]} on {local_tip.ref_name}")
        try:
            self.backend.checkout(repo, commit_id, self._record_checkout)
        except BACKEND_ERRORS as e:
            self._restore_ref(repo, local_tip, commit_id)
            raise MergeError(
                MergeErrorKind.WORKING_TREE_WRITE_FAILURE,
                f"could not check out merge commit {commit_id[:10]}: {failure_text(e)}"
            ) from e
        finally:
            self.reporter.finish()

        return MergeOutcome.merged(commit_id)

    def _restore_ref(self, repo: Repo, local_tip: AnnotatedCommit, commit_id: str) -> None:
        """Undo the branch move so the next sync merges and checks out again."""
        try:
            self.backend.update_ref(
                repo, local_tip.ref_name, local_tip.commit_id, commit_id,
                f"Merge: Restoring {local_tip.ref_name} to id: {local_tip.commit_id}"
            )
        except BACKEND_ERRORS as e:
            self.logger.error(
                f"Could not restore {local_tip.ref_name} after failed checkout: {failure_text(e)}"
            )
            return
        self.logger.warning(f"Checkout failed, {local_tip.ref_name} restored to {local_tip.short_id}")
