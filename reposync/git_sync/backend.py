"""Version-control backend capabilities used by the synchronization engine."""

import configparser
import logging
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path
from typing import List, Optional, Sequence

from git import Actor, Repo, RemoteProgress
from git.objects import Commit
from git.refs import Reference

from .merge_index import MergeIndex, build_merge_index
from .working_tree import CheckoutCallback, WorkingTreeWriter

MERGE_STATE_FILES = ("MERGE_HEAD", "MERGE_MSG", "MERGE_MODE")


def branch_ref_name(branch: str) -> str:
    """Turn ``main`` or ``refs/heads/main`` into ``refs/heads/main``."""
    if branch.startswith("refs/"):
        return branch
    return f"refs/heads/{branch}"


class RepositoryBackend(ABC):
    """
    Capabilities the sync engine needs from a version-control backend.

    Object store, ref store, working-tree writer, network transport,
    merge-base and tree-merge computation and commit authoring. Failures
    surface as the backend's own exceptions; the components translate them.
    """

    @abstractmethod
    def clone(self, url: str, destination: Path, progress: RemoteProgress,
              branch: Optional[str] = None) -> Repo:
        """Transfer all objects into a new repository without checking out."""

    @abstractmethod
    def open(self, path: Path) -> Repo:
        """Open an existing repository."""

    @abstractmethod
    def ensure_remote(self, repo: Repo, remote_name: str, url: str) -> None:
        """Make sure the named remote exists."""

    @abstractmethod
    def fetch(self, repo: Repo, remote_name: str, ref_names: Sequence[str],
              progress: RemoteProgress) -> str:
        """
        Fetch refs and all tags into the object store and return the
        FETCH_HEAD commit id of the first requested ref.
        """

    @abstractmethod
    def resolve_ref(self, repo: Repo, ref_name: str) -> Optional[str]:
        """Commit id a ref points at, or None when the ref does not exist."""

    @abstractmethod
    def head_commit(self, repo: Repo) -> Optional[str]:
        """Commit id HEAD resolves to, or None for an unborn HEAD."""

    @abstractmethod
    def is_ancestor(self, repo: Repo, ancestor: str, descendant: str) -> bool:
        """True when ``ancestor`` is reachable from ``descendant``."""

    @abstractmethod
    def merge_base(self, repo: Repo, first: str, second: str) -> Optional[str]:
        """Nearest common ancestor, or None for unrelated histories."""

    @abstractmethod
    def merge_trees(self, repo: Repo, base: str, ours: str, theirs: str) -> MergeIndex:
        """Three-way merge of the trees of three commits."""

    @abstractmethod
    def update_ref(self, repo: Repo, ref_name: str, new_id: str,
                   old_id: Optional[str], message: str) -> None:
        """
        Atomically move a ref from ``old_id`` to ``new_id``; ``old_id`` None
        requires that the ref does not exist yet.
        """

    @abstractmethod
    def delete_ref(self, repo: Repo, ref_name: str, old_id: str) -> None:
        """Delete a ref, only if it still points at ``old_id``."""

    @abstractmethod
    def set_head(self, repo: Repo, ref_name: str) -> None:
        """Make HEAD designate ``ref_name``."""

    @abstractmethod
    def checkout(self, repo: Repo, treeish: str,
                 on_progress: Optional[CheckoutCallback] = None) -> int:
        """Force the index and working tree to match ``treeish``."""

    @abstractmethod
    def create_commit(self, repo: Repo, tree_id: str, parents: List[str],
                      message: str, identity: Actor) -> str:
        """Write a commit object and return its id. Moves no refs."""

    @abstractmethod
    def signature(self, repo: Repo, fallback: Actor) -> Actor:
        """Operator identity from repository configuration."""

    @abstractmethod
    def record_conflicts(self, repo: Repo, merge_index: MergeIndex,
                         remote_id: str, message: str) -> None:
        """Stage unmerged entries and leave the merge in progress."""

    @abstractmethod
    def clear_merge_state(self, repo: Repo) -> None:
        """Forget a merge left in progress by an earlier conflicted sync."""


class GitPythonBackend(RepositoryBackend):
    """Backend implemented with GitPython on top of the git executable."""

    def __init__(self, writer: Optional[WorkingTreeWriter] = None):
        self.writer = writer or WorkingTreeWriter()
        self.logger = logging.getLogger('reposync.git_sync.backend')

    def clone(self, url, destination, progress, branch=None):
        options = {"no_checkout": True}
        if branch:
            options["branch"] = branch
        return Repo.clone_from(url, str(destination), progress=progress, **options)

    def open(self, path):
        return Repo(str(path))

    def ensure_remote(self, repo, remote_name, url):
        names = [remote.name for remote in repo.remotes]
        if remote_name not in names:
            self.logger.info(f"Adding remote '{remote_name}' -> {url}")
            repo.create_remote(remote_name, url)
            return

        configured = list(repo.remote(remote_name).urls)
        if url and url not in configured:
            self.logger.warning(
                f"Remote '{remote_name}' points at {configured}, not {url}; using the configured URL"
            )

    def fetch(self, repo, remote_name, ref_names, progress):
        remote = repo.remote(remote_name)
        # tags are fetched alongside the requested refs; FETCH_HEAD lists the
        # requested refs first
        remote.fetch(list(ref_names), progress=progress, tags=True)
        return repo.git.rev_parse("FETCH_HEAD")

    def resolve_ref(self, repo, ref_name):
        ref = Reference(repo, ref_name)
        if not ref.is_valid():
            return None
        return ref.commit.hexsha

    def head_commit(self, repo):
        if not repo.head.is_valid():
            return None
        return repo.head.commit.hexsha

    def is_ancestor(self, repo, ancestor, descendant):
        return repo.is_ancestor(ancestor, descendant)

    def merge_base(self, repo, first, second):
        bases = repo.merge_base(first, second)
        if not bases:
            return None
        return bases[0].hexsha

    def merge_trees(self, repo, base, ours, theirs):
        return build_merge_index(repo, base, ours, theirs)

    def update_ref(self, repo, ref_name, new_id, old_id, message):
        expected = old_id if old_id is not None else "0" * len(new_id)
        repo.git.update_ref("-m", message, ref_name, new_id, expected)

    def delete_ref(self, repo, ref_name, old_id):
        repo.git.update_ref("-d", ref_name, old_id)

    def set_head(self, repo, ref_name):
        repo.git.symbolic_ref("HEAD", ref_name)

    def checkout(self, repo, treeish, on_progress=None):
        return self.writer.checkout(repo, treeish, on_progress)

    def create_commit(self, repo, tree_id, parents, message, identity):
        commit = Commit.create_from_tree(
            repo,
            repo.tree(tree_id),
            message,
            parent_commits=[repo.commit(parent) for parent in parents],
            head=False,
            author=identity,
            committer=identity
        )
        return commit.hexsha

    def signature(self, repo, fallback):
        reader = repo.config_reader()
        try:
            name = reader.get_value("user", "name")
            email = reader.get_value("user", "email")
        except (configparser.NoSectionError, configparser.NoOptionError):
            self.logger.debug(f"No user identity configured, committing as {fallback.name}")
            return fallback
        return Actor(str(name), str(email))

    def record_conflicts(self, repo, merge_index, remote_id, message):
        lines = []
        for conflict in merge_index.conflicts:
            zero_id = "0" * len(remote_id)
            lines.append(f"0 {zero_id}\t{conflict.path}\n")
            if conflict.working_path:
                lines.append(f"0 {zero_id}\t{conflict.working_path}\n")
            for stage, (mode, hexsha) in sorted(conflict.stages.items()):
                lines.append(f"{mode:o} {hexsha} {stage}\t{conflict.path}\n")

        with tempfile.TemporaryFile() as index_info:
            index_info.write("".join(lines).encode("utf-8"))
            index_info.seek(0)
            repo.git.update_index("--index-info", istream=index_info)

        git_dir = Path(repo.git_dir)
        (git_dir / "MERGE_HEAD").write_text(f"{remote_id}\n", encoding="utf-8")
        (git_dir / "MERGE_MSG").write_text(message, encoding="utf-8")

    def clear_merge_state(self, repo):
        git_dir = Path(repo.git_dir)
        for name in MERGE_STATE_FILES:
            state_file = git_dir / name
            if state_file.exists():
                self.logger.debug(f"Removing stale {name}")
                state_file.unlink()
