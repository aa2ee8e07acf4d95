"""Data models for linemark bookmarks."""

from dataclasses import dataclass, replace
from typing import Any, Optional
import hashlib
import time


@dataclass
class Bookmark:
    file: str  # absolute, normalized path
    line: int  # 1-based; authoritative only while the document is closed
    id: str
    note: Optional[str] = None
    # Host handles, only valid while the owning document is open. Never persisted.
    tracking_anchor_id: Optional[int] = None
    annotation_anchor_id: Optional[int] = None

    def to_dict(self) -> dict:
        data: dict[str, Any] = {"file": self.file, "line": self.line, "id": self.id}
        if self.note is not None:
            data["note"] = self.note
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "Bookmark":
        # Anchor ids from older files are stale by definition.
        return cls(
            file=data["file"],
            line=data["line"],
            id=data["id"],
            note=data.get("note"),
        )

    def copy(self) -> "Bookmark":
        return replace(self)

    def detach(self) -> None:
        """Forget host handles (document closed or visuals stripped)."""
        self.tracking_anchor_id = None
        self.annotation_anchor_id = None

    @property
    def short_id(self) -> str:
        """Last 8 chars of ID for display."""
        return self.id[-8:]


def generate_id(file: str, line: int) -> str:
    """Generate a bookmark ID: sha256(file + line + ns timestamp)[:16]."""
    key = f"{file}{line}{time.monotonic_ns()}{time.time_ns()}"
    return hashlib.sha256(key.encode()).hexdigest()[:16]


def create_bookmark(
    file: str, line: int, note: Optional[str] = None
) -> tuple[Optional[Bookmark], Optional[str]]:
    """Build a new bookmark with a fresh ID. Does NOT save it.

    Returns:
        (bookmark, None) on success, (None, reason) if the inputs are invalid.
    """
    if not isinstance(file, str) or file == "":
        return None, "file must be a non-empty string"
    if isinstance(line, bool) or not isinstance(line, int) or line < 1:
        return None, "line must be a positive integer"
    if note is not None and not isinstance(note, str):
        return None, "note must be None or a string"

    return Bookmark(file=file, line=line, id=generate_id(file, line), note=note), None


def is_valid_bookmark(data: Any) -> bool:
    """Check the shape of a stored bookmark entry."""
    if not isinstance(data, dict):
        return False

    file = data.get("file")
    if not isinstance(file, str) or file == "":
        return False

    line = data.get("line")
    if isinstance(line, bool) or not isinstance(line, int) or line < 1:
        return False

    bookmark_id = data.get("id")
    if not isinstance(bookmark_id, str) or bookmark_id == "":
        return False

    note = data.get("note")
    if note is not None and not isinstance(note, str):
        return False

    return True
