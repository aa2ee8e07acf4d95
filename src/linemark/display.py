"""Visual primitives: tracking anchors, gutter markers and inline annotations.

Every call goes through a DocumentAnchorProvider. Failures are logged and
reported as None/False; nothing here raises to the caller.
"""

from typing import Optional

from loguru import logger

from .config import LinemarkConfig
from .errors import AnchorError
from .host import DocumentAnchorProvider
from .models import Bookmark


class Display:
    def __init__(self, provider: DocumentAnchorProvider, config: Optional[LinemarkConfig] = None):
        self.provider = provider
        self.config = config or LinemarkConfig()
        self._initialized = False

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    def _define_marker(self) -> None:
        cfg = self.config
        self.provider.define_marker(cfg.sign, cfg.sign_hl, cfg.line_hl)

    def setup(self, config: Optional[LinemarkConfig] = None) -> None:
        """One-time setup, run lazily before the first visual is drawn: registers the marker style."""
        if config is not None:
            self.config = config
        if self._initialized:
            return
        self._define_marker()
        self._initialized = True
        logger.debug(f"display ready (sign={self.config.sign!r}, annotations={self.config.virt_text_pos})")

    def reconfigure(self, config: LinemarkConfig) -> None:
        """Switch config; the marker style is registered again if setup already ran."""
        self.config = config
        if self._initialized:
            self._define_marker()

    def _line_in_range(self, doc: int, line: int, what: str) -> bool:
        if self.provider.document_info(doc) is None:
            logger.warning(f"{what}: invalid document {doc}")
            return False
        line_count = self.provider.line_count(doc)
        if line < 1 or line > line_count:
            logger.warning(f"{what}: line {line} out of bounds (document has {line_count} lines)")
            return False
        return True

    # --- Tracking anchors ---

    def set_tracking_anchor(self, doc: int, bookmark: Bookmark) -> Optional[int]:
        """Anchor pinned to the start of the bookmark's line. None if it could not be created."""
        if not self._line_in_range(doc, bookmark.line, "set_tracking_anchor"):
            return None
        try:
            return self.provider.create_anchor(doc, bookmark.line - 1, 0, left_gravity=True)
        except AnchorError as e:
            logger.error(f"set_tracking_anchor: failed to create anchor: {e}")
            return None

    def effective_line(self, doc: int, anchor_id: int) -> Optional[int]:
        """Current 1-based line of an anchor, None if it no longer exists."""
        row = self.provider.anchor_row(doc, anchor_id)
        if row is None:
            return None
        return row + 1

    def delete_tracking_anchor(self, doc: int, anchor_id: int) -> bool:
        ok = self.provider.delete_anchor(doc, anchor_id)
        if not ok:
            logger.debug(f"delete_tracking_anchor: anchor {anchor_id} not found in document {doc}")
        return ok

    # --- Annotations ---

    def show_annotation(self, doc: int, line: int, note: str) -> Optional[int]:
        if not self._line_in_range(doc, line, "show_annotation"):
            return None
        cfg = self.config
        try:
            return self.provider.create_annotation(
                doc, line - 1, f"{cfg.annotation_prefix}{note}", cfg.virt_text_hl, cfg.virt_text_pos
            )
        except AnchorError as e:
            logger.warning(f"show_annotation: {e}")
            return None

    def hide_annotation(self, doc: int, anchor_id: int) -> bool:
        # a missing annotation is fine: it is already hidden
        return self.provider.delete_anchor(doc, anchor_id)

    # --- Gutter markers ---

    def place_marker(self, doc: int, line: int, marker_id: int) -> None:
        cfg = self.config
        self.provider.place_marker(doc, marker_id, line, cfg.sign, cfg.sign_hl, cfg.line_hl)

    def remove_marker(self, doc: int, marker_id: int) -> None:
        self.provider.remove_marker(doc, marker_id)

    # --- Bulk ---

    def cleanup_bookmark_visuals(self, doc: int, bookmark: Bookmark) -> None:
        """Remove annotation, anchor and marker of one bookmark."""
        if bookmark.annotation_anchor_id is not None:
            self.hide_annotation(doc, bookmark.annotation_anchor_id)

        if bookmark.tracking_anchor_id is not None:
            self.delete_tracking_anchor(doc, bookmark.tracking_anchor_id)
            # the marker shares the tracking anchor's id
            self.remove_marker(doc, bookmark.tracking_anchor_id)

        bookmark.detach()

    def clear_document(self, doc: int) -> bool:
        """Strip every linemark anchor, annotation and marker from a document."""
        try:
            self.provider.clear_anchors(doc)
            self.provider.clear_markers(doc)
        except AnchorError as e:
            logger.debug(f"clear_document: {e}")
            return False
        return True
