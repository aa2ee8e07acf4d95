"""Interfaces linemark expects from the host editor.

Documents are identified by an opaque integer handle. Rows are 0-based,
lines are 1-based, as in most editor APIs.
"""

import os
import re
from dataclasses import dataclass
from typing import Optional, Protocol, runtime_checkable

# term://, fugitive://, oil:// ...
PROTOCOL_PREFIX = re.compile(r"^\w+://")


@dataclass(frozen=True)
class DocumentInfo:
    path: str  # "" for unnamed documents
    special: bool = False  # terminal, help, quickfix, scratch ...
    modifiable: bool = True


@runtime_checkable
class DocumentAnchorProvider(Protocol):
    """Position tracking and visual attachments inside host documents."""

    def document_info(self, doc: int) -> Optional[DocumentInfo]:
        """None when the handle no longer refers to a document."""
        ...

    def list_documents(self) -> list[int]:
        """Handles of every currently loaded document."""
        ...

    def find_document(self, path: str) -> Optional[int]: ...

    def line_count(self, doc: int) -> int: ...

    def create_anchor(self, doc: int, row: int, col: int = 0, left_gravity: bool = True) -> int:
        """Invisible position marker that moves with edits. Raises AnchorError."""
        ...

    def anchor_row(self, doc: int, anchor_id: int) -> Optional[int]:
        """Current 0-based row of an anchor or annotation, None if it is gone."""
        ...

    def delete_anchor(self, doc: int, anchor_id: int) -> bool: ...

    def create_annotation(self, doc: int, row: int, text: str, highlight: str, position: str) -> int:
        """Virtual text at the end of (or over) a row. Raises AnchorError."""
        ...

    def has_anchors(self, doc: int) -> bool:
        """True if any linemark anchor or annotation exists in the document."""
        ...

    def clear_anchors(self, doc: int) -> None: ...

    def define_marker(self, glyph: str, highlight: str, line_highlight: Optional[str] = None) -> None:
        """Register the gutter marker style. Called once before the first marker is placed."""
        ...

    def place_marker(
        self,
        doc: int,
        marker_id: int,
        line: int,
        glyph: str,
        highlight: str,
        line_highlight: Optional[str] = None,
    ) -> None: ...

    def remove_marker(self, doc: int, marker_id: int) -> None: ...

    def clear_markers(self, doc: int) -> None: ...


@runtime_checkable
class EditorHost(DocumentAnchorProvider, Protocol):
    """Everything the orchestration layer needs from an interactive editor."""

    def current_document(self) -> int: ...

    def get_cursor(self) -> tuple[int, int]:
        """(1-based line, 0-based column) in the current document."""
        ...

    def set_cursor(self, line: int, col: int) -> None: ...

    def push_jump(self) -> None:
        """Record the cursor position in the jump list before moving it."""
        ...

    def prompt(self, message: str, default: str = "") -> Optional[str]:
        """Ask for a line of text. "" or None means the user cancelled."""
        ...

    def confirm(self, message: str) -> bool: ...


def normalize_filepath(path: str) -> str:
    """Absolute, normalized form used for every bookmark comparison."""
    if path == "":
        return ""
    return os.path.abspath(os.path.expanduser(path))


def validate_document(host: DocumentAnchorProvider, doc: int) -> tuple[bool, Optional[str]]:
    """Can this document carry bookmarks? Returns (ok, reason)."""
    info = host.document_info(doc)
    if info is None:
        return False, "Invalid document"

    if info.path == "":
        return False, "Cannot bookmark unnamed document"

    if info.special:
        return False, "Cannot bookmark special documents (terminal, help, etc.)"

    if not info.modifiable:
        return False, "Cannot bookmark read-only document"

    if PROTOCOL_PREFIX.match(info.path):
        return False, "Cannot bookmark special documents (protocol schemes)"

    return True, None
