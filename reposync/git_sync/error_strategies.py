"""Classification patterns and resolution guidance for synchronization failures."""

from typing import Dict
from enum import Enum

from .error_types import (
    ErrorResolution,
    MergeErrorKind,
    SyncErrorKind,
    TransferErrorKind,
)


def build_error_patterns() -> Dict[str, TransferErrorKind]:
    """
    Build mapping of git failure text to transfer error kinds.

    Patterns are matched in insertion order against the lowercased failure
    text, so more specific patterns come first.
    """
    return {
        # Missing refs
        "couldn't find remote ref": TransferErrorKind.REF_NOT_FOUND,
        "could not find remote branch": TransferErrorKind.REF_NOT_FOUND,
        "remote branch": TransferErrorKind.REF_NOT_FOUND,
        "not our ref": TransferErrorKind.REF_NOT_FOUND,
        "invalid refspec": TransferErrorKind.REF_NOT_FOUND,
        "unknown revision": TransferErrorKind.REF_NOT_FOUND,

        # Authentication errors
        "authentication failed": TransferErrorKind.AUTH,
        "could not read username": TransferErrorKind.AUTH,
        "could not read password": TransferErrorKind.AUTH,
        "terminal prompts disabled": TransferErrorKind.AUTH,
        "permission denied": TransferErrorKind.AUTH,
        "host key verification failed": TransferErrorKind.AUTH,
        "invalid credentials": TransferErrorKind.AUTH,
        "forbidden": TransferErrorKind.AUTH,
        "401": TransferErrorKind.AUTH,
        "403": TransferErrorKind.AUTH,

        # Network errors
        "could not resolve host": TransferErrorKind.NETWORK,
        "temporary failure in name resolution": TransferErrorKind.NETWORK,
        "connection refused": TransferErrorKind.NETWORK,
        "connection timed out": TransferErrorKind.NETWORK,
        "connection reset": TransferErrorKind.NETWORK,
        "network is unreachable": TransferErrorKind.NETWORK,
        "no route to host": TransferErrorKind.NETWORK,
        "failed to connect": TransferErrorKind.NETWORK,
        "the remote end hung up unexpectedly": TransferErrorKind.NETWORK,
        "early eof": TransferErrorKind.NETWORK,
        "rpc failed": TransferErrorKind.NETWORK,
        "timeout": TransferErrorKind.NETWORK,
        "timed out": TransferErrorKind.NETWORK,
    }


def build_error_resolutions() -> Dict[Enum, ErrorResolution]:
    """Build operator guidance for each error kind."""
    return {
        TransferErrorKind.NETWORK: ErrorResolution(
            kind=TransferErrorKind.NETWORK,
            user_message="Network problem while talking to the remote repository",
            resolution_steps=[
                "Check your internet connection",
                "Verify the remote host is reachable",
                "Run the sync again once the network is available"
            ],
            retryable=True
        ),

        TransferErrorKind.AUTH: ErrorResolution(
            kind=TransferErrorKind.AUTH,
            user_message="Authentication with the remote repository failed",
            resolution_steps=[
                "Verify your git credentials or SSH keys",
                "Check that you have read access to the repository",
                "Try 'git ls-remote <url>' manually to confirm access"
            ]
        ),

        TransferErrorKind.REF_NOT_FOUND: ErrorResolution(
            kind=TransferErrorKind.REF_NOT_FOUND,
            user_message="The tracked branch does not exist on the remote",
            resolution_steps=[
                "Check the configured branch name (REPOSYNC_BRANCH)",
                "List remote branches with 'git ls-remote --heads <url>'"
            ]
        ),

        TransferErrorKind.OTHER: ErrorResolution(
            kind=TransferErrorKind.OTHER,
            user_message="The transfer from the remote repository failed",
            resolution_steps=[
                "Verify the remote URL is correct",
                "Check that the destination directory is writable and empty"
            ]
        ),

        MergeErrorKind.UNRELATED_HISTORIES: ErrorResolution(
            kind=MergeErrorKind.UNRELATED_HISTORIES,
            user_message="Local and remote histories share no common commit",
            resolution_steps=[
                "Confirm the local directory was cloned from the configured remote",
                "Remove the local directory to force a fresh clone"
            ]
        ),

        MergeErrorKind.OBJECT_STORE_FAILURE: ErrorResolution(
            kind=MergeErrorKind.OBJECT_STORE_FAILURE,
            user_message="Writing objects or refs to the local repository failed",
            resolution_steps=[
                "Check free disk space and permissions of the .git directory",
                "Run 'git fsck' in the local directory"
            ]
        ),

        MergeErrorKind.WORKING_TREE_WRITE_FAILURE: ErrorResolution(
            kind=MergeErrorKind.WORKING_TREE_WRITE_FAILURE,
            user_message="Updating files in the local directory failed",
            resolution_steps=[
                "Check that no other process holds files open in the directory",
                "Check permissions and free disk space"
            ]
        ),

        SyncErrorKind.REPOSITORY_OPEN_FAILURE: ErrorResolution(
            kind=SyncErrorKind.REPOSITORY_OPEN_FAILURE,
            user_message="The local directory is not a usable git repository",
            resolution_steps=[
                "Check the configured local path (REPOSYNC_LOCAL_PATH)",
                "Remove or empty the directory so it can be cloned again"
            ]
        ),
    }
