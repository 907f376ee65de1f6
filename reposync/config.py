"""Configuration management for reposync."""

import os
import shutil
import subprocess
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Tuple, Union

from dotenv import load_dotenv

load_dotenv()  # Load .env file if it exists

SUPPORTED_URL_PREFIXES = ("http://", "https://", "ssh://", "git://", "file://", "git@")


def normalize_path(path: Union[str, Path]) -> Path:
    """Expand ``~`` and resolve to an absolute path."""
    if isinstance(path, str):
        path = Path(path)
    return path.expanduser().resolve()


@dataclass
class Config:
    """Configuration for a synchronized repository directory."""

    # Remote
    remote_url: Optional[str] = None
    remote_name: str = "origin"
    branch: str = "main"

    # Local directory consumed by the build step
    local_path: Path = field(default_factory=lambda: Path.home() / ".reposync" / "source")

    # Identity used for merge commits when the repository has no user.name/user.email
    author_name: str = "reposync"
    author_email: str = "reposync@localhost"

    # Progress and retry
    show_progress: bool = True
    retry_attempts: int = 1
    retry_delay: float = 1.0

    # Logging
    log_level: str = "INFO"

    def __post_init__(self):
        """Validate configuration after initialization."""
        self.local_path = normalize_path(self.local_path)

        self.log_level = self.log_level.upper()
        valid_log_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if self.log_level not in valid_log_levels:
            raise ValueError(f"Invalid log level: {self.log_level}. Must be one of {valid_log_levels}")

        if not self.branch or not self.branch.strip():
            raise ValueError("branch must not be empty")
        if not self.remote_name or not self.remote_name.strip():
            raise ValueError("remote_name must not be empty")

        if self.retry_attempts < 1:
            raise ValueError("retry_attempts must be at least 1")
        if self.retry_delay < 0:
            raise ValueError("retry_delay must be non-negative")


def _env_flag(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


def load_configuration() -> Config:
    """Load configuration from REPOSYNC_* environment variables."""
    try:
        defaults = Config()
        return Config(
            remote_url=os.getenv("REPOSYNC_REMOTE_URL") or None,
            local_path=Path(os.getenv("REPOSYNC_LOCAL_PATH", str(defaults.local_path))),
            remote_name=os.getenv("REPOSYNC_REMOTE_NAME", defaults.remote_name),
            branch=os.getenv("REPOSYNC_BRANCH", defaults.branch),
            author_name=os.getenv("REPOSYNC_AUTHOR_NAME", defaults.author_name),
            author_email=os.getenv("REPOSYNC_AUTHOR_EMAIL", defaults.author_email),
            show_progress=_env_flag("REPOSYNC_SHOW_PROGRESS", "true"),
            retry_attempts=int(os.getenv("REPOSYNC_RETRY_ATTEMPTS", str(defaults.retry_attempts))),
            retry_delay=float(os.getenv("REPOSYNC_RETRY_DELAY", str(defaults.retry_delay))),
            log_level=os.getenv("REPOSYNC_LOG_LEVEL", defaults.log_level)
        )
    except (ValueError, TypeError) as e:
        raise ValueError(f"Configuration error: {e}")


def validate_git_availability() -> Tuple[bool, Optional[str]]:
    """
    Check that the git executable can be run.

    Returns:
        Tuple of (is_available, error_message)
    """
    git_cmd = shutil.which("git") or "git"
    try:
        result = subprocess.run(
            [git_cmd, "--version"],
            capture_output=True,
            text=True,
            timeout=10
        )
    except FileNotFoundError:
        return False, f"Git executable '{git_cmd}' not found"
    except subprocess.TimeoutExpired:
        return False, "Git command timed out"

    if result.returncode != 0:
        return False, f"Git command failed: {result.stderr}"
    return True, None


def validate_configuration(config: Config) -> List[str]:
    """Validate configuration and return ``ERROR:``/``WARNING:`` prefixed issues."""
    errors = []

    if not config.remote_url:
        errors.append("ERROR: No remote URL configured (set REPOSYNC_REMOTE_URL)")
    elif not config.remote_url.startswith(SUPPORTED_URL_PREFIXES) and not Path(config.remote_url).exists():
        errors.append(f"WARNING: Remote URL may be invalid: {config.remote_url}")

    git_available, git_error = validate_git_availability()
    if not git_available:
        errors.append(f"ERROR: {git_error}")

    # The first existing ancestor must be writable so the clone can create the directory
    parent = config.local_path.parent
    while not parent.exists() and parent != parent.parent:
        parent = parent.parent
    if not os.access(parent, os.W_OK):
        errors.append(f"ERROR: No write permission for {parent} (needed for {config.local_path})")

    if config.local_path.exists() and not config.local_path.is_dir():
        errors.append(f"ERROR: Local path is not a directory: {config.local_path}")

    if config.retry_attempts > 10:
        errors.append("WARNING: High retry_attempts may delay failure reporting considerably")

    return errors
