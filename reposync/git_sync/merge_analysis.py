"""Classification of how a fetched tip relates to the local branch."""

import logging

from git import Repo

from .backend import RepositoryBackend, branch_ref_name
from .repository_info import AnnotatedCommit, MergeAnalysisResult


class MergeAnalyzer:
    """
    Decides what integrating a fetched tip into a local branch requires.

    The result depends only on the commit graph; nothing is mutated.
    """

    def __init__(self, backend: RepositoryBackend):
        self.backend = backend
        self.logger = logging.getLogger('reposync.git_sync.merge_analysis')

    def analyze(self, repo: Repo, local_branch_name: str, fetched_tip: AnnotatedCommit) -> MergeAnalysisResult:
        """
        Classify the relation between ``local_branch_name`` and ``fetched_tip``.

        Args:
            repo: Repository holding both commits
            local_branch_name: Tracked branch, short or full ref name
            fetched_tip: Tip obtained by the preceding fetch

        Returns:
            UNBORN if the local branch does not exist, UP_TO_DATE if it
            already contains the fetched tip, FAST_FORWARDABLE if it is a
            strict ancestor of the fetched tip, NORMAL_MERGE_REQUIRED otherwise
        """
        ref_name = branch_ref_name(local_branch_name)
        local_id = self.backend.resolve_ref(repo, ref_name)

        if local_id is None:
            result = MergeAnalysisResult.UNBORN
        elif local_id == fetched_tip.commit_id:
            result = MergeAnalysisResult.UP_TO_DATE
        elif self.backend.is_ancestor(repo, local_id, fetched_tip.commit_id):
            result = MergeAnalysisResult.FAST_FORWARDABLE
        elif self.backend.is_ancestor(repo, fetched_tip.commit_id, local_id):
            # Local branch is ahead; there is nothing to integrate
            result = MergeAnalysisResult.UP_TO_DATE
        else:
            result = MergeAnalysisResult.NORMAL_MERGE_REQUIRED

        local_desc = local_id[:10] if local_id else "unborn"
        self.logger.debug(f"{ref_name} at {local_desc} vs fetched {fetched_tip.short_id}: {result.value}")
        return result
