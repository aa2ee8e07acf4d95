"""Scoped JSON storage for linemark bookmarks.

Storage layout:
  <data_dir>/
    3f2a9c01be44.json   # sha256("<project root>|<branch>")[:12]

Each file holds one project scope:
  {"version": 1, "bookmarks": [{"file": ..., "line": ..., "note": ..., "id": ...}]}
"""

import contextlib
import hashlib
import json
import os
import subprocess
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Iterable, Optional

from loguru import logger

from .config import default_data_dir
from .errors import PersistenceError
from .models import Bookmark, is_valid_bookmark

STORAGE_VERSION = 1
DEFAULT_BRANCH = "__default__"
GIT_CACHE_TTL = 5.0  # seconds
SCOPE_HASH_LENGTH = 12

# (args, cwd) -> (exit code, stdout)
GitRunner = Callable[[list[str], str], tuple[int, str]]

# exit code used when the git executable itself is missing
GIT_NOT_FOUND = 127


@dataclass(frozen=True)
class GitInfo:
    root: Optional[str] = None
    branch: Optional[str] = None  # branch name, or short hash when detached


@dataclass(frozen=True)
class ProjectScope:
    """The (project root, branch) pair a bookmark set belongs to."""

    root: str
    branch: str = DEFAULT_BRANCH

    @property
    def key(self) -> str:
        return f"{self.root}|{self.branch}"

    @property
    def digest(self) -> str:
        return hashlib.sha256(self.key.encode("utf-8")).hexdigest()[:SCOPE_HASH_LENGTH]


def run_git(args: list[str], cwd: str) -> tuple[int, str]:
    """Run a git command and return (exit code, first stdout line)."""
    try:
        result = subprocess.run(
            ["git", *args],
            cwd=cwd,
            capture_output=True,
            text=True,
            check=False,
        )
    except FileNotFoundError:
        return GIT_NOT_FOUND, ""
    except OSError as e:
        logger.debug(f"git {' '.join(args)} failed to start: {e}")
        return 1, ""

    lines = result.stdout.splitlines()
    return result.returncode, (lines[0].strip() if lines else "")


def find_root(start: Optional[Path] = None) -> Optional[Path]:
    """Walk up from start directory to find a .git/ entry."""
    check = (start or Path.cwd()).resolve()
    while True:
        if (check / ".git").exists():
            return check
        if check.parent == check:
            return None
        check = check.parent


def normalize_data_dir(directory: str) -> str:
    """Expand ~ and guarantee a trailing separator."""
    expanded = os.path.expanduser(directory)
    if not expanded.endswith(os.sep):
        expanded += os.sep
    return expanded


class ScopedStorage:
    """Maps the current project identity to a storage file and reads/writes it."""

    def __init__(
        self,
        data_dir: Optional[str] = None,
        cwd: Optional[str] = None,
        git: Optional[GitRunner] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._custom_data_dir: Optional[str] = None
        self._cwd = cwd
        self._git = git or run_git
        self._clock = clock
        self._pinned_scope: Optional[ProjectScope] = None

        # single last-result slot
        self._git_info_cache: Optional[GitInfo] = None
        self._cache_time = 0.0
        self._git_warning_shown = False

        if data_dir is not None:
            self.set_data_dir(data_dir)

    # --- Data directory ---

    def set_data_dir(self, directory: Optional[str]) -> None:
        """Use a custom data directory, or None to go back to the default."""
        if directory is None:
            self._custom_data_dir = None
            return
        self._custom_data_dir = normalize_data_dir(directory)

    @property
    def data_dir(self) -> str:
        return self._custom_data_dir or default_data_dir()

    def ensure_data_dir(self) -> str:
        data_dir = self.data_dir
        Path(data_dir).mkdir(parents=True, exist_ok=True)
        return data_dir

    def has_potential_bookmarks(self) -> bool:
        """True if the data directory holds any storage file at all."""
        data_dir = Path(self.data_dir)
        if not data_dir.is_dir():
            return False
        return any(data_dir.glob("*.json"))

    # --- Project scope ---

    @property
    def cwd(self) -> str:
        return self._cwd or os.getcwd()

    def _git_root(self) -> Optional[str]:
        code, out = self._git(["rev-parse", "--show-toplevel"], self.cwd)
        if code == 0 and out:
            return out

        # 128: not a repository (expected). 127: git is not installed.
        if code == GIT_NOT_FOUND:
            if not self._git_warning_shown:
                self._git_warning_shown = True
                logger.debug(
                    "git command not found; bookmarks will be stored per working "
                    "directory instead of per repository/branch"
                )
            found = find_root(Path(self.cwd))
            return str(found) if found else None
        return None

    def _git_branch(self) -> Optional[str]:
        code, out = self._git(["branch", "--show-current"], self.cwd)
        if code != 0:
            return None
        if out:
            return out

        # Detached HEAD (e.g. tag checkout): the short hash is still a stable scope
        code, out = self._git(["rev-parse", "--short", "HEAD"], self.cwd)
        if code == 0 and out:
            return out
        return None

    def get_git_info(self) -> GitInfo:
        """Git root and branch for the working directory, cached for GIT_CACHE_TTL."""
        now = self._clock()
        if self._git_info_cache is not None and (now - self._cache_time) < GIT_CACHE_TTL:
            return self._git_info_cache

        info = GitInfo(root=self._git_root(), branch=self._git_branch())
        self._git_info_cache = info
        self._cache_time = now
        return info

    def invalidate_cache(self) -> None:
        self._git_info_cache = None

    def pin_scope(self, scope: Optional[ProjectScope]) -> None:
        """Force a scope instead of detecting it from git; None resumes detection."""
        self._pinned_scope = scope

    def current_scope(self) -> ProjectScope:
        if self._pinned_scope is not None:
            return self._pinned_scope
        info = self.get_git_info()
        return ProjectScope(root=info.root or self.cwd, branch=info.branch or DEFAULT_BRANCH)

    def get_storage_path(self) -> str:
        data_dir = self.ensure_data_dir()
        return os.path.join(data_dir, f"{self.current_scope().digest}.json")

    # --- Save / load ---

    def save_bookmarks(self, bookmarks: Iterable[Bookmark], filepath: Optional[str] = None) -> bool:
        """Write the full bookmark set. Never raises; returns False on failure."""
        if isinstance(bookmarks, (str, bytes, dict)) or not hasattr(bookmarks, "__iter__"):
            logger.error("save_bookmarks: bookmarks must be a sequence")
            return False

        try:
            storage_path = Path(filepath or self.get_storage_path())
            storage_path.parent.mkdir(parents=True, exist_ok=True)
            payload = _encode(bookmarks)
            _write(storage_path, payload)
        except PersistenceError as e:
            logger.error(f"save_bookmarks: {e}")
            return False
        except OSError as e:
            logger.error(f"save_bookmarks: could not prepare storage location: {e}")
            return False

        return True

    def load_bookmarks(self, filepath: Optional[str] = None) -> list[Bookmark]:
        """Read the bookmark set. Any problem degrades to an empty list."""
        try:
            storage_path = Path(filepath or self.get_storage_path())
        except OSError as e:
            logger.warning(f"load_bookmarks: could not determine storage path: {e}")
            return []

        if not storage_path.is_file():
            return []

        try:
            data = json.loads(_read(storage_path))
        except PersistenceError as e:
            logger.error(f"load_bookmarks: {e}")
            return []
        except json.JSONDecodeError as e:
            logger.error(f"load_bookmarks: JSON decoding failed: {e}")
            return []

        if not isinstance(data, dict):
            logger.error("load_bookmarks: invalid data structure (not an object)")
            return []

        if "version" not in data:
            logger.warning("load_bookmarks: missing version field")
            return []

        version = data["version"]
        if isinstance(version, bool) or version != STORAGE_VERSION:
            logger.error(f"load_bookmarks: unsupported version: {version!r}")
            return []

        entries = data.get("bookmarks")
        if not isinstance(entries, list):
            logger.error("load_bookmarks: invalid bookmarks field (not an array)")
            return []

        bookmarks = []
        for entry in entries:
            if not is_valid_bookmark(entry):
                logger.warning(f"load_bookmarks: skipping malformed entry in {storage_path.name}: {entry!r}")
                continue
            bookmarks.append(Bookmark.from_dict(entry))
        return bookmarks


# --- File I/O ---


def _encode(bookmarks: Iterable[Bookmark]) -> str:
    try:
        data = {
            "version": STORAGE_VERSION,
            "bookmarks": [bm.to_dict() for bm in bookmarks],
        }
        return json.dumps(data, ensure_ascii=False)
    except (TypeError, ValueError, AttributeError) as e:
        raise PersistenceError(f"JSON encoding failed: {e}") from e


def _write(path: Path, payload: str) -> None:
    """Replace the storage file (atomic-ish: tmp file + rename)."""
    tmp = path.with_suffix(".tmp")
    try:
        tmp.write_text(payload, encoding="utf-8")
        tmp.replace(path)
    except OSError as e:
        with contextlib.suppress(OSError):
            tmp.unlink(missing_ok=True)
        raise PersistenceError(f"failed to write file {path}: {e}") from e


def _read(path: Path) -> str:
    try:
        return path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        raise PersistenceError(f"failed to read file {path}: {e}") from e
