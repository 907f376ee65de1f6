#!/usr/bin/env python3
"""
Unit tests for MergeAnalyzer and FastForwardApplier decisions.
"""

import unittest
from pathlib import Path
from unittest.mock import Mock

import sys
sys.path.insert(0, str(Path(__file__).parent))

from git import GitCommandError

from reposync.git_sync.backend import branch_ref_name
from reposync.git_sync.error_types import MergeError, MergeErrorKind
from reposync.git_sync.fast_forward import FastForwardApplier
from reposync.git_sync.merge_analysis import MergeAnalyzer
from reposync.git_sync.repository_info import AnnotatedCommit, MergeAnalysisResult

LOCAL = "1" * 40
REMOTE = "2" * 40


def graph_backend(local_id, ancestors):
    """Backend whose commit graph is a set of (ancestor, descendant) pairs."""
    backend = Mock()
    backend.resolve_ref.return_value = local_id
    backend.is_ancestor.side_effect = lambda repo, a, d: (a, d) in ancestors
    return backend


class TestMergeAnalyzer(unittest.TestCase):

    def setUp(self):
        self.repo = Mock()
        self.fetched = AnnotatedCommit(commit_id=REMOTE, ref_name="FETCH_HEAD", source="origin")

    def analyze(self, backend, branch="main"):
        return MergeAnalyzer(backend).analyze(self.repo, branch, self.fetched)

    def test_missing_branch_is_unborn(self):
        backend = graph_backend(None, set())

        self.assertIs(self.analyze(backend), MergeAnalysisResult.UNBORN)
        backend.resolve_ref.assert_called_once_with(self.repo, "refs/heads/main")

    def test_equal_tips_are_up_to_date(self):
        backend = graph_backend(REMOTE, set())

        self.assertIs(self.analyze(backend), MergeAnalysisResult.UP_TO_DATE)
        backend.is_ancestor.assert_not_called()

    def test_local_behind_is_fast_forwardable(self):
        backend = graph_backend(LOCAL, {(LOCAL, REMOTE)})

        self.assertIs(self.analyze(backend), MergeAnalysisResult.FAST_FORWARDABLE)

    def test_local_ahead_is_up_to_date(self):
        backend = graph_backend(LOCAL, {(REMOTE, LOCAL)})

        self.assertIs(self.analyze(backend), MergeAnalysisResult.UP_TO_DATE)

    def test_diverged_requires_merge(self):
        backend = graph_backend(LOCAL, set())

        self.assertIs(self.analyze(backend), MergeAnalysisResult.NORMAL_MERGE_REQUIRED)

    def test_full_ref_name_is_accepted(self):
        backend = graph_backend(LOCAL, {(LOCAL, REMOTE)})

        self.analyze(backend, branch="refs/heads/release")

        backend.resolve_ref.assert_called_once_with(self.repo, "refs/heads/release")

    def test_analysis_is_deterministic(self):
        backend = graph_backend(LOCAL, {(LOCAL, REMOTE)})

        results = {self.analyze(backend) for _ in range(5)}

        self.assertEqual(results, {MergeAnalysisResult.FAST_FORWARDABLE})


class TestFastForwardApplier(unittest.TestCase):

    def setUp(self):
        self.repo = Mock()
        self.fetched = AnnotatedCommit(commit_id=REMOTE, ref_name="FETCH_HEAD", source="origin")

    def test_existing_branch_is_moved_with_compare_and_swap(self):
        backend = Mock()
        backend.resolve_ref.return_value = LOCAL
        backend.checkout.return_value = 3

        FastForwardApplier(backend).apply(self.repo, "main", self.fetched)

        backend.update_ref.assert_called_once_with(
            self.repo, "refs/heads/main", REMOTE, LOCAL,
            f"Fast-Forward: Setting refs/heads/main to id: {REMOTE}"
        )
        backend.set_head.assert_called_once_with(self.repo, "refs/heads/main")
        backend.checkout.assert_called_once()
        self.assertEqual(backend.checkout.call_args[0][1], REMOTE)

    def test_missing_branch_is_created(self):
        backend = Mock()
        backend.resolve_ref.return_value = None
        backend.checkout.return_value = 3

        FastForwardApplier(backend).apply(self.repo, "refs/heads/main", self.fetched)

        backend.update_ref.assert_called_once_with(
            self.repo, "refs/heads/main", REMOTE, None, f"Setting main to {REMOTE}"
        )

    def test_ref_update_failure(self):
        backend = Mock()
        backend.resolve_ref.return_value = LOCAL
        backend.update_ref.side_effect = GitCommandError(["git", "update-ref"], 128, stderr="cannot lock ref")

        with self.assertRaises(MergeError) as ctx:
            FastForwardApplier(backend).apply(self.repo, "main", self.fetched)

        self.assertIs(ctx.exception.kind, MergeErrorKind.OBJECT_STORE_FAILURE)
        self.assertIn("cannot lock ref", ctx.exception.cause)
        backend.checkout.assert_not_called()

    def test_checkout_failure(self):
        backend = Mock()
        backend.resolve_ref.return_value = LOCAL
        backend.checkout.side_effect = PermissionError("denied")

        with self.assertRaises(MergeError) as ctx:
            FastForwardApplier(backend).apply(self.repo, "main", self.fetched)

        self.assertIs(ctx.exception.kind, MergeErrorKind.WORKING_TREE_WRITE_FAILURE)
        backend.update_ref.assert_called_with(
            self.repo, "refs/heads/main", LOCAL, REMOTE,
            f"Fast-Forward: Restoring refs/heads/main to id: {LOCAL}"
        )

    def test_checkout_failure_on_new_branch_deletes_it(self):
        backend = Mock()
        backend.resolve_ref.return_value = None
        backend.checkout.side_effect = OSError("disk full")

        with self.assertRaises(MergeError):
            FastForwardApplier(backend).apply(self.repo, "main", self.fetched)

        backend.delete_ref.assert_called_once_with(self.repo, "refs/heads/main", REMOTE)

    def test_failed_restore_still_reports_checkout_failure(self):
        backend = Mock()
        backend.resolve_ref.return_value = LOCAL
        backend.checkout.side_effect = OSError("disk full")
        backend.update_ref.side_effect = [None, GitCommandError(["git", "update-ref"], 128)]

        with self.assertRaises(MergeError) as ctx:
            FastForwardApplier(backend).apply(self.repo, "main", self.fetched)

        self.assertIs(ctx.exception.kind, MergeErrorKind.WORKING_TREE_WRITE_FAILURE)
        self.assertEqual(backend.update_ref.call_count, 2)


class TestBranchRefName(unittest.TestCase):

    def test_branch_ref_name(self):
        self.assertEqual(branch_ref_name("main"), "refs/heads/main")
        self.assertEqual(branch_ref_name("refs/heads/main"), "refs/heads/main")
        self.assertEqual(branch_ref_name("feature/x"), "refs/heads/feature/x")


if __name__ == "__main__":
    unittest.main(verbosity=2)
