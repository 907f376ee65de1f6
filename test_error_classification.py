#!/usr/bin/env python3
"""
Unit tests for transfer failure classification, error codes and resolution hints.
"""

import unittest
from pathlib import Path

import sys
sys.path.insert(0, str(Path(__file__).parent))

from git import GitCommandError

from reposync.git_sync.error_recovery import ErrorClassifier, failure_text, get_error_classifier
from reposync.git_sync.error_types import (
    MergeError,
    MergeErrorKind,
    SyncError,
    SyncErrorKind,
    TransferError,
    TransferErrorKind,
)


class TestCategorize(unittest.TestCase):

    def setUp(self):
        self.classifier = ErrorClassifier()

    def test_ref_not_found(self):
        for text in (
            "fatal: couldn't find remote ref refs/heads/release",
            "fatal: Remote branch release not found in upstream origin",
        ):
            with self.subTest(text=text):
                self.assertIs(self.classifier.categorize(text), TransferErrorKind.REF_NOT_FOUND)

    def test_auth(self):
        for text in (
            "fatal: Authentication failed for 'https://example.com/repo.git/'",
            "fatal: could not read Username for 'https://example.com': terminal prompts disabled",
            "git@example.com: Permission denied (publickey).",
            "The requested URL returned error: 403",
        ):
            with self.subTest(text=text):
                self.assertIs(self.classifier.categorize(text), TransferErrorKind.AUTH)

    def test_network(self):
        for text in (
            "fatal: unable to access 'https://example.com/': Could not resolve host: example.com",
            "ssh: connect to host example.com port 22: Connection refused",
            "fatal: early EOF",
            "fatal: the remote end hung up unexpectedly",
        ):
            with self.subTest(text=text):
                self.assertIs(self.classifier.categorize(text), TransferErrorKind.NETWORK)

    def test_unknown_text_is_other(self):
        self.assertIs(
            self.classifier.categorize("fatal: repository '/tmp/missing.git' does not exist"),
            TransferErrorKind.OTHER
        )
        self.assertIs(self.classifier.categorize(""), TransferErrorKind.OTHER)


class TestTransferErrorConversion(unittest.TestCase):

    def setUp(self):
        self.classifier = get_error_classifier()

    def test_failure_text_strips_git_stderr_wrapper(self):
        error = GitCommandError(["git", "fetch"], 128, stderr="fatal: couldn't find remote ref main")

        self.assertEqual(failure_text(error), "fatal: couldn't find remote ref main")

    def test_to_transfer_error_uses_stderr(self):
        error = GitCommandError(["git", "fetch"], 128, stderr="fatal: Could not resolve host: example.com")

        transfer_error = self.classifier.to_transfer_error(error)

        self.assertIs(transfer_error.kind, TransferErrorKind.NETWORK)
        self.assertIn("Could not resolve host", transfer_error.cause)

    def test_captured_error_lines_take_precedence(self):
        error = GitCommandError(["git", "fetch"], 128)

        transfer_error = self.classifier.to_transfer_error(
            error, ["fatal: couldn't find remote ref nope\n"]
        )

        self.assertIs(transfer_error.kind, TransferErrorKind.REF_NOT_FOUND)
        self.assertEqual(transfer_error.cause, "fatal: couldn't find remote ref nope")

    def test_transfer_error_passes_through(self):
        original = TransferError(TransferErrorKind.AUTH, "denied")

        self.assertIs(self.classifier.to_transfer_error(original), original)

    def test_shared_classifier(self):
        self.assertIs(get_error_classifier(), get_error_classifier())


class TestSyncError(unittest.TestCase):

    def test_error_codes(self):
        transfer = SyncError.from_transfer("fetch", TransferError(TransferErrorKind.NETWORK, "down"))
        merge = SyncError.from_merge("merge", MergeError(MergeErrorKind.UNRELATED_HISTORIES, "no base"))
        open_failure = SyncError(SyncErrorKind.REPOSITORY_OPEN_FAILURE, "open", "not a repo")

        self.assertEqual(transfer.error_code, "TRANSFER_NETWORK")
        self.assertEqual(merge.error_code, "MERGE_UNRELATED_HISTORIES")
        self.assertEqual(open_failure.error_code, "REPOSITORY_OPEN_FAILURE")

    def test_phase_and_cause_are_preserved(self):
        cause = MergeError(MergeErrorKind.WORKING_TREE_WRITE_FAILURE, "disk full")

        error = SyncError.from_merge("fast_forward", cause)

        self.assertIs(error.kind, SyncErrorKind.MERGE)
        self.assertEqual(error.phase, "fast_forward")
        self.assertEqual(error.cause, "disk full")
        self.assertIs(error.error, cause)
        self.assertEqual(str(error), "sync failed during fast_forward: disk full")

    def test_resolutions(self):
        classifier = ErrorClassifier()

        network = classifier.resolution_for(
            SyncError.from_transfer("clone", TransferError(TransferErrorKind.NETWORK, "down"))
        )
        auth = classifier.resolution_for(TransferError(TransferErrorKind.AUTH, "denied"))
        open_failure = classifier.resolution_for(
            SyncError(SyncErrorKind.REPOSITORY_OPEN_FAILURE, "open", "not a repo")
        )

        self.assertTrue(network.retryable)
        self.assertFalse(auth.retryable)
        self.assertTrue(auth.resolution_steps)
        self.assertIs(open_failure.kind, SyncErrorKind.REPOSITORY_OPEN_FAILURE)
        self.assertIsNone(classifier.resolution_for(RuntimeError("boom")))


if __name__ == "__main__":
    unittest.main(verbosity=2)
