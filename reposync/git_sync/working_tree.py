"""Forced working-tree checkout with per-entry progress reporting."""

import logging
from pathlib import Path
from typing import Callable, Iterable, Optional

from git import Repo

from .progress import CheckoutProgress

CheckoutCallback = Callable[[CheckoutProgress], None]


class WorkingTreeWriter:
    """
    Makes the index and the working tree match a tree exactly.

    Local modifications to tracked files are overwritten and files tracked
    before but absent from the target tree are removed. Untracked files are
    left alone.
    """

    def __init__(self):
        self.logger = logging.getLogger('reposync.git_sync.working_tree')

    def checkout(
        self,
        repo: Repo,
        treeish: str,
        on_progress: Optional[CheckoutCallback] = None
    ) -> int:
        """
        Force-checkout ``treeish`` into the index and working tree.

        Args:
            repo: Repository with a working tree
            treeish: Commit or tree id to check out
            on_progress: Called once before the first entry and once per
                entry written

        Returns:
            Number of entries written
        """
        report = on_progress or (lambda progress: None)
        working_dir = Path(repo.working_tree_dir)

        previous = {str(path) for path, _stage in repo.index.entries}

        # --reset drops unmerged entries left behind by an earlier conflict
        repo.git.read_tree("--reset", treeish)
        index = repo.index
        paths = sorted({str(path) for path, _stage in index.entries})

        stale = previous.difference(paths)
        if stale:
            self.logger.debug(f"Removing {len(stale)} files no longer tracked")
            self._remove_stale(working_dir, stale)

        total = len(paths)
        report(CheckoutProgress(path=None, current=0, total=total))
        if not paths:
            return 0

        written = 0

        def fprogress(path, done, item):
            nonlocal written
            if not done:
                return
            written = min(written + 1, total)
            report(CheckoutProgress(path=str(path), current=written, total=total))

        index.checkout(paths, force=True, fprogress=fprogress)
        self.logger.debug(f"Checked out {total} entries from {treeish[:10]}")
        return total

    def _remove_stale(self, working_dir: Path, stale: Iterable[str]) -> None:
        for rel_path in sorted(stale, reverse=True):
            target = working_dir / rel_path
            if target.is_symlink() or target.is_file():
                target.unlink()

            parent = target.parent
            while parent != working_dir and parent.is_dir() and not any(parent.iterdir()):
                parent.rmdir()
                parent = parent.parent
