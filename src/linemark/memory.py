"""Headless in-memory editor host.

Implements EditorHost without any UI: documents are lists of lines, anchors
and annotations are plain records that follow line insertions and deletions.
Used by the CLI and the test suite.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from .errors import AnchorError
from .host import DocumentInfo, normalize_filepath


@dataclass
class Anchor:
    row: int
    col: int = 0
    left_gravity: bool = True
    text: Optional[str] = None  # set only for annotations
    highlight: Optional[str] = None
    position: Optional[str] = None

    @property
    def is_annotation(self) -> bool:
        return self.text is not None


@dataclass
class Marker:
    line: int
    glyph: str
    highlight: str
    line_highlight: Optional[str] = None


@dataclass
class MemoryDocument:
    handle: int
    path: str
    lines: list[str]
    special: bool = False
    modifiable: bool = True
    anchors: dict[int, Anchor] = field(default_factory=dict)
    markers: dict[int, Marker] = field(default_factory=dict)

    # --- Edits ---

    def insert_lines(self, row: int, new_lines: list[str]) -> None:
        """Insert whole lines above `row`; everything from `row` down moves."""
        count = len(new_lines)
        self.lines[row:row] = new_lines
        for anchor in self.anchors.values():
            if anchor.row >= row:
                anchor.row += count
        for marker in self.markers.values():
            if marker.line - 1 >= row:
                marker.line += count

    def delete_lines(self, start: int, end: int) -> None:
        """Delete rows [start, end). Anchors on deleted rows disappear."""
        count = end - start
        if count <= 0:
            return
        del self.lines[start:end]

        for anchor_id in [i for i, a in self.anchors.items() if start <= a.row < end]:
            del self.anchors[anchor_id]
        for anchor in self.anchors.values():
            if anchor.row >= end:
                anchor.row -= count

        for marker_id in [i for i, m in self.markers.items() if start <= m.line - 1 < end]:
            del self.markers[marker_id]
        for marker in self.markers.values():
            if marker.line - 1 >= end:
                marker.line -= count

    def insert_text(self, row: int, col: int, text: str) -> None:
        """Insert text inside a row. Left-gravity anchors at `col` stay put."""
        line = self.lines[row]
        self.lines[row] = line[:col] + text + line[col:]
        for anchor in self.anchors.values():
            if anchor.row != row:
                continue
            if anchor.col > col or (anchor.col == col and not anchor.left_gravity):
                anchor.col += len(text)

    # --- Inspection ---

    def annotations(self) -> list[tuple[int, str]]:
        """(1-based line, rendered text) of every annotation, top to bottom."""
        return sorted((a.row + 1, a.text) for a in self.anchors.values() if a.is_annotation)

    def tracking_anchors(self) -> dict[int, int]:
        """anchor id -> 1-based line for invisible tracking anchors."""
        return {i: a.row + 1 for i, a in self.anchors.items() if not a.is_annotation}

    def marker_lines(self) -> list[int]:
        return sorted(m.line for m in self.markers.values())


class MemoryEditor:
    """An EditorHost backed by MemoryDocument objects."""

    def __init__(self, confirm_answer: bool = True):
        self.documents: dict[int, MemoryDocument] = {}
        self.current: Optional[int] = None
        self.cursor: tuple[int, int] = (1, 0)
        self.jumps: list[tuple[int, int, int]] = []
        self.prompt_responses: list[Optional[str]] = []
        self.prompts: list[tuple[str, str]] = []
        self.confirm_answer = confirm_answer
        self.confirmations: list[str] = []
        self.marker_definitions: list[tuple[str, str, Optional[str]]] = []
        self._next_handle = 1
        self._next_anchor_id = 1

    # --- Document management (test/CLI side) ---

    def add_document(
        self,
        path: str,
        lines: Optional[list[str]] = None,
        special: bool = False,
        modifiable: bool = True,
        make_current: bool = True,
    ) -> int:
        handle = self._next_handle
        self._next_handle += 1
        normalized = normalize_filepath(path) if path and "://" not in path else path
        self.documents[handle] = MemoryDocument(
            handle=handle,
            path=normalized,
            lines=list(lines if lines is not None else ["Line 1", "Line 2", "Line 3"]),
            special=special,
            modifiable=modifiable,
        )
        if make_current:
            self.switch_to(handle)
        return handle

    def open_file(self, path: str, make_current: bool = True) -> int:
        """Load a file from disk into a new document."""
        lines = Path(path).read_text(encoding="utf-8").splitlines()
        return self.add_document(path, lines or [""], make_current=make_current)

    def close_document(self, doc: int) -> None:
        self.documents.pop(doc, None)
        if self.current == doc:
            self.current = next(iter(self.documents), None)

    def switch_to(self, doc: int, line: int = 1, col: int = 0) -> None:
        self.current = doc
        self.cursor = (line, col)

    def document(self, doc: int) -> MemoryDocument:
        return self.documents[doc]

    def _get(self, doc: int) -> MemoryDocument:
        document = self.documents.get(doc)
        if document is None:
            raise AnchorError(f"document {doc} does not exist")
        return document

    def _new_anchor_id(self) -> int:
        anchor_id = self._next_anchor_id
        self._next_anchor_id += 1
        return anchor_id

    # --- DocumentAnchorProvider ---

    def document_info(self, doc: int) -> Optional[DocumentInfo]:
        document = self.documents.get(doc)
        if document is None:
            return None
        return DocumentInfo(path=document.path, special=document.special, modifiable=document.modifiable)

    def list_documents(self) -> list[int]:
        return list(self.documents)

    def find_document(self, path: str) -> Optional[int]:
        for handle, document in self.documents.items():
            if document.path == path:
                return handle
        return None

    def line_count(self, doc: int) -> int:
        return len(self._get(doc).lines)

    def create_anchor(self, doc: int, row: int, col: int = 0, left_gravity: bool = True) -> int:
        document = self._get(doc)
        if row < 0 or row >= len(document.lines):
            raise AnchorError(f"row {row} out of range (document has {len(document.lines)} lines)")
        anchor_id = self._new_anchor_id()
        document.anchors[anchor_id] = Anchor(row=row, col=col, left_gravity=left_gravity)
        return anchor_id

    def anchor_row(self, doc: int, anchor_id: int) -> Optional[int]:
        document = self.documents.get(doc)
        if document is None:
            return None
        anchor = document.anchors.get(anchor_id)
        return anchor.row if anchor else None

    def delete_anchor(self, doc: int, anchor_id: int) -> bool:
        document = self.documents.get(doc)
        if document is None:
            return False
        return document.anchors.pop(anchor_id, None) is not None

    def create_annotation(self, doc: int, row: int, text: str, highlight: str, position: str) -> int:
        document = self._get(doc)
        if row < 0 or row >= len(document.lines):
            raise AnchorError(f"row {row} out of range (document has {len(document.lines)} lines)")
        anchor_id = self._new_anchor_id()
        document.anchors[anchor_id] = Anchor(row=row, text=text, highlight=highlight, position=position)
        return anchor_id

    def has_anchors(self, doc: int) -> bool:
        document = self.documents.get(doc)
        return bool(document and document.anchors)

    def clear_anchors(self, doc: int) -> None:
        self._get(doc).anchors.clear()

    def define_marker(self, glyph: str, highlight: str, line_highlight: Optional[str] = None) -> None:
        self.marker_definitions.append((glyph, highlight, line_highlight))

    def place_marker(
        self,
        doc: int,
        marker_id: int,
        line: int,
        glyph: str,
        highlight: str,
        line_highlight: Optional[str] = None,
    ) -> None:
        self._get(doc).markers[marker_id] = Marker(line, glyph, highlight, line_highlight)

    def remove_marker(self, doc: int, marker_id: int) -> None:
        document = self.documents.get(doc)
        if document is not None:
            document.markers.pop(marker_id, None)

    def clear_markers(self, doc: int) -> None:
        self._get(doc).markers.clear()

    # --- EditorHost ---

    def current_document(self) -> int:
        # 0 is never a valid handle; validation rejects it
        return self.current if self.current is not None else 0

    def get_cursor(self) -> tuple[int, int]:
        return self.cursor

    def set_cursor(self, line: int, col: int) -> None:
        self.cursor = (line, col)

    def push_jump(self) -> None:
        if self.current is not None:
            self.jumps.append((self.current, *self.cursor))

    def prompt(self, message: str, default: str = "") -> Optional[str]:
        self.prompts.append((message, default))
        if not self.prompt_responses:
            return None
        return self.prompt_responses.pop(0)

    def confirm(self, message: str) -> bool:
        self.confirmations.append(message)
        return self.confirm_answer
