"""Fast-forwarding the local branch to a fetched tip."""

import logging
from typing import Optional

from git import Repo
from git.exc import GitError

from .backend import RepositoryBackend, branch_ref_name
from .error_recovery import failure_text
from .error_types import MergeError, MergeErrorKind
from .progress import CheckoutProgress, ProgressReporter, ProgressState
from .repository_info import AnnotatedCommit

REF_ERRORS = (GitError, ValueError, OSError)


class FastForwardApplier:
    """
    Moves the local branch to the fetched tip without creating a commit.

    The working tree is a managed build input: local modifications to tracked
    files are overwritten by the forced checkout.
    """

    def __init__(
        self,
        backend: RepositoryBackend,
        state: Optional[ProgressState] = None,
        reporter: Optional[ProgressReporter] = None
    ):
        self.backend = backend
        self.state = state or ProgressState()
        self.reporter = reporter or ProgressReporter(self.state)
        self.logger = logging.getLogger('reposync.git_sync.fast_forward')

    def _record_checkout(self, progress: CheckoutProgress) -> None:
        self.state.record_checkout(progress)
        self.reporter.report()

    def apply(self, repo: Repo, local_branch_ref: str, fetched_tip: AnnotatedCommit) -> None:
        """
        Point ``local_branch_ref`` at ``fetched_tip`` and update the working tree.

        A missing branch is created at the fetched tip. HEAD designates the
        branch afterwards.

        Raises:
            MergeError: OBJECT_STORE_FAILURE when the ref cannot be moved or
                was changed concurrently, WORKING_TREE_WRITE_FAILURE when the
                checkout fails; the branch is then restored to its old tip
        """
        ref_name = branch_ref_name(local_branch_ref)
        short_name = ref_name[len("refs/heads/"):] if ref_name.startswith("refs/heads/") else ref_name
        target = fetched_tip.commit_id

        try:
            observed = self.backend.resolve_ref(repo, ref_name)
            if observed is None:
                message = f"Setting {short_name} to {target}"
                self.logger.info(f"Creating {ref_name} at {fetched_tip.short_id}")
            else:
                message = f"Fast-Forward: Setting {ref_name} to id: {target}"
                self.logger.info(f"Fast-forwarding {ref_name} from {observed[:10]} to {fetched_tip.short_id}")
            self.backend.update_ref(repo, ref_name, target, observed, message)
            self.backend.set_head(repo, ref_name)
            self.backend.clear_merge_state(repo)
        except REF_ERRORS as e:
            raise MergeError(
                MergeErrorKind.OBJECT_STORE_FAILURE,
                f"could not move {ref_name} to {fetched_tip.short_id}: {failure_text(e)}"
            ) from e

        try:
            written = self.backend.checkout(repo, target, self._record_checkout)
        except REF_ERRORS as e:
            self._restore_ref(repo, ref_name, observed, target)
            raise MergeError(
                MergeErrorKind.WORKING_TREE_WRITE_FAILURE,
                f"could not check out {fetched_tip.short_id}: {failure_text(e)}"
            ) from e
        finally:
            self.reporter.finish()

        self.logger.debug(f"Wrote {written} working tree entries")

    def _restore_ref(self, repo: Repo, ref_name: str, observed: Optional[str], target: str) -> None:
        """
        Move the branch back to where it was before a failed checkout, so the
        next sync sees the fetched tip as new and writes the working tree again.
        """
        try:
            if observed is None:
                self.backend.delete_ref(repo, ref_name, target)
            else:
                self.backend.update_ref(
                    repo, ref_name, observed, target,
                    f"Fast-Forward: Restoring {ref_name} to id: {observed}"
                )
        except REF_ERRORS as e:
            self.logger.error(f"Could not restore {ref_name} after failed checkout: {failure_text(e)}")
            return
        self.logger.warning(f"Checkout failed, {ref_name} restored to {observed[:10] if observed else 'unborn'}")
