"""Recreate bookmark visuals when a document is opened."""

from loguru import logger

from .display import Display
from .errors import AnchorError, LinemarkError
from .host import normalize_filepath, validate_document
from .models import Bookmark
from .state import EngineState
from .store import BookmarkStore


class Restorer:
    def __init__(self, store: BookmarkStore, display: Display, state: EngineState):
        self.store = store
        self.display = display
        self.state = state

    def _restore_bookmark(self, doc: int, bookmark: Bookmark) -> None:
        display = self.display

        # Drop whatever the bookmark still points at so nothing is orphaned
        if bookmark.tracking_anchor_id is not None:
            display.delete_tracking_anchor(doc, bookmark.tracking_anchor_id)
            display.remove_marker(doc, bookmark.tracking_anchor_id)
        if bookmark.annotation_anchor_id is not None:
            display.hide_annotation(doc, bookmark.annotation_anchor_id)
        bookmark.detach()

        anchor_id = display.set_tracking_anchor(doc, bookmark)
        if anchor_id is None:
            raise AnchorError(f"could not anchor line {bookmark.line}")
        bookmark.tracking_anchor_id = anchor_id

        display.place_marker(doc, bookmark.line, anchor_id)

        if bookmark.note is not None and self.state.annotations_visible:
            bookmark.annotation_anchor_id = display.show_annotation(doc, bookmark.line, bookmark.note)

    def restore_document(self, doc: int) -> bool:
        """Restore visuals for one document, at most once per open.

        Returns:
            True if restoration succeeded or was skipped, False if any
            bookmark could not be restored.
        """
        valid, _ = validate_document(self.display.provider, doc)
        if not valid:
            return True

        if doc in self.state.restored_documents:
            return True
        # mark first so a second attempt on the same document bails out above
        self.state.restored_documents.add(doc)

        # covers a reset of restored_documents while visuals were still present
        if self.display.provider.has_anchors(doc):
            return True

        info = self.display.provider.document_info(doc)
        filepath = normalize_filepath(info.path) if info else ""
        if filepath == "":
            return True

        bookmarks = [bm for bm in self.store.get_all_raw() if bm.file == filepath]
        if not bookmarks:
            return True

        success = True
        for bookmark in bookmarks:
            try:
                self._restore_bookmark(doc, bookmark)
            except LinemarkError as e:
                # expected when the document goes away mid-restore
                logger.debug(f"Failed to restore bookmark in {bookmark.file}: {e}")
                success = False
        return success

    def cleanup_document(self, doc: int) -> None:
        """Allow a closed document to be restored again when reopened."""
        self.state.restored_documents.discard(doc)

    def reset_tracking(self) -> None:
        self.state.reset_tracking()
