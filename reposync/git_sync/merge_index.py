"""Conflict-aware three-way merge of trees into a throw-away index."""

import logging
import stat
import tempfile
from dataclasses import dataclass, field
from io import BytesIO
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Set, Tuple

from git import Repo
from git.index import IndexFile
from git.index.typ import BaseIndexEntry, IndexEntry
from git.objects import Blob, Tree
from gitdb.base import IStream

from .error_types import MergeError, MergeErrorKind

REGULAR_FILE_MODES = (0o100644, 0o100755)

# merge-file exits with the number of conflicts, capped at 127; anything
# above that is a failure such as binary content
MERGE_FILE_MAX_CONFLICTS = 127


@dataclass
class ConflictEntry:
    """
    A path left unmerged, with the (mode, blob id) of each index stage.

    ``working_path`` is set when the file collides with a directory of the
    same name on the other side: the file is written there instead.
    """
    path: str
    stages: Dict[int, Tuple[int, str]] = field(default_factory=dict)
    marker: Optional[Tuple[int, str]] = None
    working_path: Optional[str] = None

    @property
    def resolution_blob(self) -> Tuple[int, str]:
        """Content shown in the working tree while the conflict is pending."""
        if self.marker is not None:
            return self.marker
        if 2 in self.stages:
            return self.stages[2]
        return self.stages[3]


class MergeIndex:
    """
    Staged result of one merge attempt.

    Lives only for the attempt that created it: either promoted to a tree
    (and then a commit) or used to materialize a conflicted working tree.
    """

    def __init__(self, repo: Repo, index: IndexFile, conflicts: List[ConflictEntry]):
        self.repo = repo
        self._index = index
        self.conflicts = conflicts

    @property
    def has_conflicts(self) -> bool:
        return bool(self.conflicts)

    @property
    def conflict_paths(self) -> List[str]:
        return [conflict.path for conflict in self.conflicts]

    def write_tree(self) -> Tree:
        """Write the merged tree to the object store."""
        if self.has_conflicts:
            raise MergeError(
                MergeErrorKind.OBJECT_STORE_FAILURE,
                f"cannot write a tree from an index with {len(self.conflicts)} conflicts"
            )
        return self._index.write_tree()

    def write_conflicted_tree(self) -> Tree:
        """
        Write a tree holding the clean merge result plus, for each conflicted
        path, its conflict-marker content (or the surviving side).
        """
        for conflict in self.conflicts:
            mode, hexsha = conflict.resolution_blob
            path = conflict.working_path or conflict.path
            _stage_entry(self._index, path, mode, bytes.fromhex(hexsha))
        return self._index.write_tree()


def _stage_entry(index: IndexFile, path: str, mode: int, binsha: bytes) -> None:
    for stage in (1, 2, 3):
        index.entries.pop((path, stage), None)
    index.entries[(path, 0)] = IndexEntry.from_base(BaseIndexEntry((mode, binsha, 0, path)))


def _blob_at(repo: Repo, commit: str, path: str) -> Optional[Blob]:
    try:
        obj = repo.commit(commit).tree / path
    except KeyError:
        return None
    return obj if isinstance(obj, Blob) else None


def _directory_prefixes(paths: Iterable[str]) -> Set[str]:
    prefixes = set()
    for path in paths:
        parts = path.split("/")
        for depth in range(1, len(parts)):
            prefixes.add("/".join(parts[:depth]))
    return prefixes


def _split_directory_file_conflicts(
    repo: Repo,
    index: IndexFile,
    conflicts: List[ConflictEntry],
    base: str,
    ours: str,
    theirs: str
) -> List[ConflictEntry]:
    """
    Turn every file that shares its path with a directory into a conflict.

    The directory stays in place; the file side is staged under its own path
    at stage 2 or 3 and written to the working tree as ``<path>~local`` or
    ``<path>~remote``.
    """
    logger = logging.getLogger('reposync.git_sync.merge_index')
    paths = {str(path) for path, _stage in index.entries}
    collisions = paths & _directory_prefixes(paths)
    if not collisions:
        return conflicts

    remaining = [conflict for conflict in conflicts if conflict.path not in collisions]
    for path in sorted(collisions):
        for stage in (0, 1, 2, 3):
            index.entries.pop((path, stage), None)

        stages = {}
        working_path = None
        for stage, commit, side in ((1, base, None), (2, ours, "local"), (3, theirs, "remote")):
            blob = _blob_at(repo, commit, path)
            if blob is None:
                continue
            stages[stage] = (blob.mode, blob.hexsha)
            if side is not None and working_path is None:
                working_path = f"{path}~{side}"

        if working_path is None:
            logger.debug(f"Dropping {path}: deleted on both sides, a directory now")
            continue
        logger.debug(f"Conflict in {path}: file on one side, directory on the other")
        remaining.append(ConflictEntry(path=path, stages=stages, working_path=working_path))

    return sorted(remaining, key=lambda conflict: conflict.path)


def _merged_mode(base: int, ours: int, theirs: int) -> Optional[int]:
    if ours == theirs:
        return ours
    if ours == base:
        return theirs
    if theirs == base:
        return ours
    return None


def _store_blob(repo: Repo, data: bytes) -> bytes:
    istream = repo.odb.store(IStream(Blob.type, len(data), BytesIO(data)))
    return istream.binsha


class ContentMerger:
    """Line-level merge of one path changed on both sides, via git merge-file."""

    def __init__(self, repo: Repo):
        self.repo = repo
        self.logger = logging.getLogger('reposync.git_sync.merge_index')

    def merge(self, path: str, base: Blob, ours: Blob, theirs: Blob) -> Tuple[int, bytes]:
        """
        Returns:
            (status, content): status 0 means a clean merge, 1..127 the number
            of conflicting hunks (content carries markers), higher values mean
            the content could not be merged at all
        """
        with tempfile.TemporaryDirectory(prefix="reposync_merge_") as temp_dir:
            files = []
            for name, blob in (("local", ours), ("base", base), ("remote", theirs)):
                target = Path(temp_dir) / name
                target.write_bytes(blob.data_stream.read())
                files.append(str(target))

            status, stdout, stderr = self.repo.git.merge_file(
                "-p",
                "-L", f"local:{path}",
                "-L", f"base:{path}",
                "-L", f"remote:{path}",
                *files,
                with_extended_output=True,
                with_exceptions=False,
                stdout_as_string=False,
                strip_newline_in_stdout=False
            )
        if status > MERGE_FILE_MAX_CONFLICTS:
            self.logger.debug(f"merge-file could not merge {path}: {stderr}")
        return status, stdout


def build_merge_index(repo: Repo, base: str, ours: str, theirs: str) -> MergeIndex:
    """
    Merge three trees into a throw-away index.

    Trivial cases are resolved by read-tree's aggressive three-way merge.
    Paths changed on both sides whose versions are all regular files with a
    reconcilable mode get a line-level merge; clean results are staged, the
    rest are recorded as conflicts.
    """
    logger = logging.getLogger('reposync.git_sync.merge_index')
    index = IndexFile.from_tree(repo, base, ours, theirs)
    content_merger = ContentMerger(repo)
    conflicts: List[ConflictEntry] = []

    for path, blobs in sorted(index.unmerged_blobs().items()):
        path = str(path)
        by_stage = {stage: blob for stage, blob in blobs}
        conflict = ConflictEntry(
            path=path,
            stages={stage: (blob.mode, blob.hexsha) for stage, blob in by_stage.items()}
        )

        if set(by_stage) != {1, 2, 3}:
            logger.debug(f"Conflict in {path}: present in stages {sorted(by_stage)}")
            conflicts.append(conflict)
            continue

        base_blob, ours_blob, theirs_blob = by_stage[1], by_stage[2], by_stage[3]
        modes = (base_blob.mode, ours_blob.mode, theirs_blob.mode)
        mode = _merged_mode(*modes)
        if mode is None or not all(m in REGULAR_FILE_MODES for m in modes):
            logger.debug(f"Conflict in {path}: modes {[stat.filemode(m) for m in modes]}")
            conflicts.append(conflict)
            continue

        status, content = content_merger.merge(path, base_blob, ours_blob, theirs_blob)
        if status == 0:
            _stage_entry(index, path, mode, _store_blob(repo, content))
            logger.debug(f"Merged content of {path}")
            continue

        if status <= MERGE_FILE_MAX_CONFLICTS:
            conflict.marker = (mode, _store_blob(repo, content).hex())
        logger.debug(f"Conflict in {path}: overlapping changes")
        conflicts.append(conflict)

    conflicts = _split_directory_file_conflicts(repo, index, conflicts, base, ours, theirs)
    return MergeIndex(repo, index, conflicts)
