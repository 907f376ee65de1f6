"""Helpers shared by the test modules for building throw-away git repositories."""

import os
import subprocess
from pathlib import Path
from typing import Dict, Set

GIT_ENV = {
    "GIT_AUTHOR_NAME": "Fixture Author",
    "GIT_AUTHOR_EMAIL": "fixture@example.com",
    "GIT_COMMITTER_NAME": "Fixture Author",
    "GIT_COMMITTER_EMAIL": "fixture@example.com",
    "GIT_TERMINAL_PROMPT": "0",
}


def git(cwd: Path, *args: str) -> str:
    """Run git in ``cwd`` and return its stripped stdout."""
    env = dict(os.environ)
    env.update(GIT_ENV)
    result = subprocess.run(
        ["git", *args],
        cwd=str(cwd),
        env=env,
        capture_output=True,
        text=True,
        check=True
    )
    return result.stdout.strip()


def init_repo(path: Path, bare: bool = False) -> Path:
    """Create a repository whose initial branch is ``main``."""
    path.mkdir(parents=True, exist_ok=True)
    args = ["init", "--quiet"]
    if bare:
        args.append("--bare")
    git(path, *args)
    git(path, "symbolic-ref", "HEAD", "refs/heads/main")
    if not bare:
        git(path, "config", "user.name", "Fixture Author")
        git(path, "config", "user.email", "fixture@example.com")
    return path


def write_files(repo: Path, files: Dict[str, str]) -> None:
    for rel_path, content in files.items():
        target = repo / rel_path
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(content)


def commit_files(repo: Path, files: Dict[str, str], message: str) -> str:
    """Write ``files``, commit them and return the new commit id."""
    write_files(repo, files)
    git(repo, "add", "--all")
    git(repo, "commit", "--quiet", "-m", message)
    return git(repo, "rev-parse", "HEAD")


def remove_files(repo: Path, *paths: str, message: str) -> str:
    git(repo, "rm", "--quiet", *paths)
    git(repo, "commit", "--quiet", "-m", message)
    return git(repo, "rev-parse", "HEAD")


def make_remote(root: Path, files: Dict[str, str] = None) -> Dict[str, Path]:
    """
    Create a bare remote plus an author working copy that pushes to it.

    Returns:
        Dictionary with ``remote`` (bare repository) and ``author`` paths
    """
    remote = init_repo(root / "remote.git", bare=True)
    author = init_repo(root / "author")
    git(author, "remote", "add", "origin", str(remote))
    if files:
        commit_files(author, files, "Initial commit")
        push(author)
    return {"remote": remote, "author": author}


def push(repo: Path, branch: str = "main") -> None:
    git(repo, "push", "--quiet", "origin", f"{branch}:{branch}")


def rev_parse(repo: Path, rev: str) -> str:
    return git(repo, "rev-parse", rev)


def parents_of(repo: Path, rev: str):
    return git(repo, "rev-list", "--parents", "-n", "1", rev).split()[1:]


def last_reflog_message(repo: Path, ref: str) -> str:
    return git(repo, "reflog", "show", "--format=%gs", "-n", "1", ref)


def object_ids(repo: Path) -> Set[str]:
    """Ids of every object in the repository's object store, loose or packed."""
    output = git(repo, "cat-file", "--batch-all-objects", "--batch-check=%(objectname)")
    return set(output.split())


def ref_listing(repo: Path) -> str:
    return git(repo, "for-each-ref", "--format=%(refname) %(objectname)")
