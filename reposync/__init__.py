"""
reposync - keeps a local directory synchronized with one branch of a remote
git repository.

A missing directory is cloned; an existing one is fetched and fast-forwarded
or merged, with conflicts left for manual resolution.
"""

__version__ = "1.0.0"
__description__ = "Repository synchronization engine with merge analysis and progress reporting"

from .config import Config, load_configuration
from .git_sync import SyncManager, SyncOrchestrator, SyncOutcome, SyncResult

__all__ = ["Config", "load_configuration", "SyncManager", "SyncOrchestrator", "SyncOutcome", "SyncResult"]
