"""User-facing bookmark operations.

BookmarkService ties the store, scoped storage and the visual layer together.
Every mutation is applied in memory and on screen first, then persisted; if
the save fails the in-memory and visual change is undone.
"""

import asyncio
from typing import Callable, Optional

from loguru import logger

from .config import LinemarkConfig
from .display import Display
from .errors import AnchorError
from .host import EditorHost, normalize_filepath, validate_document
from .models import Bookmark, create_bookmark
from .restoration import Restorer
from .scheduler import SingleSlotTimer
from .state import EngineState
from .storage import ProjectScope, ScopedStorage
from .store import BookmarkStore

ANNOTATION_PROMPT = "Annotation: "
CLEAR_ALL_PROMPT = "Clear all bookmarks in this project?"


class BookmarkService:
    def __init__(
        self,
        host: EditorHost,
        storage: Optional[ScopedStorage] = None,
        config: Optional[LinemarkConfig] = None,
        state: Optional[EngineState] = None,
        loop: Optional[asyncio.AbstractEventLoop] = None,
    ):
        self.host = host
        self.config = config or LinemarkConfig()
        self.storage = storage or ScopedStorage(data_dir=self.config.data_dir)
        self.store = BookmarkStore(self.storage)
        self.display = Display(host, self.config)
        self.state = state or EngineState()
        self.restorer = Restorer(self.store, self.display, self.state)
        self._save_timer = SingleSlotTimer(loop)
        self._setup_timer = SingleSlotTimer(loop)

    # --- Setup ---

    def setup(self, config: Optional[LinemarkConfig] = None, **opts) -> LinemarkConfig:
        """Install a configuration. A custom data_dir is applied on the next loop tick."""
        cfg = config or self.config
        if opts:
            cfg = cfg.merged(**opts)
        self.config = cfg
        self.display.reconfigure(cfg)

        if cfg.data_dir:
            data_dir = cfg.data_dir
            self._setup_timer.schedule(0, lambda: self._apply_data_dir(data_dir))
        return cfg

    def _apply_data_dir(self, data_dir: str) -> None:
        """Deferred half of setup(). A store loaded in the meantime is switched over like a scope change."""
        if self.store.is_loaded:
            self.change_data_dir(data_dir)
            return
        self.storage.set_data_dir(data_dir)

    def _ensure_initialized(self) -> None:
        self.display.setup(self.config)

    def _arm_autosave(self) -> None:
        self.state.autosave_configured = True

    # --- Helpers ---

    def _cursor_context(self) -> Optional[tuple[int, str, int]]:
        """(document, normalized path, cursor line) or None if the document can't hold bookmarks."""
        doc = self.host.current_document()
        valid, reason = validate_document(self.host, doc)
        if not valid:
            logger.warning(reason)
            return None

        info = self.host.document_info(doc)
        filepath = normalize_filepath(info.path)
        self._sync_document_lines(doc, filepath)
        line, _ = self.host.get_cursor()
        return doc, filepath, line

    def _loaded_document(self, filepath: str) -> Optional[int]:
        doc = self.host.find_document(filepath)
        if doc is None or self.host.document_info(doc) is None:
            return None
        return doc

    def _sync_document_lines(self, doc: int, filepath: str) -> bool:
        """Copy anchor positions back into bookmark lines. Returns True if any moved."""
        changed = False
        for bookmark in self.store.sorted_for_file(filepath):
            if bookmark.tracking_anchor_id is None:
                continue
            line = self.display.effective_line(doc, bookmark.tracking_anchor_id)
            if line is None:
                # line deleted: drop the dead handles, the stored line stays as a best effort
                self.display.cleanup_bookmark_visuals(doc, bookmark)
                continue
            if line != bookmark.line:
                bookmark.line = line
                changed = True
        if changed:
            self.store.reorder_file(filepath)
        return changed

    def sync_lines(self) -> None:
        """Bring stored lines up to date for every open document."""
        for filepath in self.store.files():
            doc = self._loaded_document(filepath)
            if doc is not None:
                self._sync_document_lines(doc, filepath)

    def _persist(self) -> bool:
        self.sync_lines()
        return self.store.save()

    def _jump_to(self, line: int, col: int) -> None:
        self.host.push_jump()
        self.host.set_cursor(line, col)

    # --- Create / update ---

    def _create_and_persist(self, doc: int, filepath: str, line: int, note: Optional[str]) -> bool:
        bookmark, err = create_bookmark(filepath, line, note)
        if bookmark is None:
            logger.error(f"Failed to create bookmark: {err}")
            return False

        anchor_id = self.display.set_tracking_anchor(doc, bookmark)
        if anchor_id is None:
            logger.error("Failed to create tracking anchor")
            return False
        bookmark.tracking_anchor_id = anchor_id

        if note is not None and self.state.annotations_visible:
            bookmark.annotation_anchor_id = self.display.show_annotation(doc, line, note)

        # the marker reuses the tracking anchor's id
        self.display.place_marker(doc, line, anchor_id)

        self.store.add(bookmark)

        if not self._persist():
            self.store.remove(bookmark)
            self.display.cleanup_bookmark_visuals(doc, bookmark)
            logger.error("Failed to save bookmarks")
            return False

        return True

    def _update_annotation(self, doc: int, line: int, bookmark: Bookmark, new_note: str) -> bool:
        old_note = bookmark.note
        old_annotation_id = bookmark.annotation_anchor_id

        new_annotation_id = None
        if self.state.annotations_visible:
            new_annotation_id = self.display.show_annotation(doc, line, new_note)
        if old_annotation_id is not None:
            self.display.hide_annotation(doc, old_annotation_id)

        bookmark.note = new_note
        bookmark.annotation_anchor_id = new_annotation_id

        if not self._persist():
            if new_annotation_id is not None:
                self.display.hide_annotation(doc, new_annotation_id)
            bookmark.note = old_note
            bookmark.annotation_anchor_id = None
            if old_annotation_id is not None and old_note is not None:
                bookmark.annotation_anchor_id = self.display.show_annotation(doc, line, old_note)
            logger.error("Failed to save bookmarks after annotation update")
            return False

        return True

    def annotate(self, text: Optional[str] = None) -> bool:
        """Add or edit the note of the bookmark on the cursor line.

        Creates the bookmark if the line has none. Without `text` the user is
        prompted; an empty answer cancels.
        """
        self._ensure_initialized()
        self._arm_autosave()

        context = self._cursor_context()
        if context is None:
            return False
        doc, filepath, line = context

        existing, _ = self.store.find_at_line(filepath, line)

        annotation = text
        if annotation is None:
            default = existing.note if existing and existing.note else ""
            annotation = self.host.prompt(ANNOTATION_PROMPT, default)

        if not annotation:
            logger.debug("Annotation cancelled")
            return False

        if existing is not None:
            success = self._update_annotation(doc, line, existing, annotation)
            if success:
                logger.info("Annotation updated")
            return success

        success = self._create_and_persist(doc, filepath, line, annotation)
        if success:
            logger.info("Annotation created")
        return success

    # --- Visibility ---

    def toggle(self) -> bool:
        """Show/hide the note of the bookmark on the cursor line."""
        self._ensure_initialized()
        self._arm_autosave()

        context = self._cursor_context()
        if context is None:
            return False
        doc, filepath, line = context

        bookmark, _ = self.store.find_at_line(filepath, line)
        if bookmark is None:
            logger.info("No bookmark on this line")
            return False

        # nothing to show, keep the marker
        if bookmark.note is None:
            return True

        if bookmark.annotation_anchor_id is not None:
            self.display.hide_annotation(doc, bookmark.annotation_anchor_id)
            bookmark.annotation_anchor_id = None
        else:
            bookmark.annotation_anchor_id = self.display.show_annotation(doc, line, bookmark.note)

        return True

    def toggle_all_lines(self) -> bool:
        """Flip global annotation visibility. Returns the new state."""
        self._ensure_initialized()
        visible = not self.state.annotations_visible
        self.state.annotations_visible = visible

        for bookmark in self.store.get_all_raw():
            if bookmark.note is None:
                continue

            doc = self._loaded_document(bookmark.file)
            if doc is None:
                continue

            current_line = None
            if bookmark.tracking_anchor_id is not None:
                current_line = self.display.effective_line(doc, bookmark.tracking_anchor_id)
            if current_line is None:
                current_line = bookmark.line

            if current_line < 1 or current_line > self.host.line_count(doc):
                continue

            if not visible:
                if bookmark.annotation_anchor_id is not None:
                    self.display.hide_annotation(doc, bookmark.annotation_anchor_id)
                    bookmark.annotation_anchor_id = None
                continue

            if bookmark.annotation_anchor_id is not None:
                if self.display.effective_line(doc, bookmark.annotation_anchor_id) == current_line:
                    continue
                self.display.hide_annotation(doc, bookmark.annotation_anchor_id)
            bookmark.annotation_anchor_id = self.display.show_annotation(doc, current_line, bookmark.note)

        return visible

    def are_annotations_visible(self) -> bool:
        return self.state.annotations_visible

    # --- Delete ---

    def delete(self) -> bool:
        """Delete the bookmark on the cursor line."""
        self._ensure_initialized()

        context = self._cursor_context()
        if context is None:
            return False
        doc, filepath, line = context

        bookmark, _ = self.store.find_at_line(filepath, line)
        if bookmark is None:
            logger.info("No bookmark on this line")
            return False

        self.display.cleanup_bookmark_visuals(doc, bookmark)
        self.store.remove(bookmark)

        if not self._persist():
            logger.error("Failed to save bookmarks after removal")
            return False

        logger.info("Bookmark deleted")
        return True

    def delete_by_id(self, bookmark_id: str) -> bool:
        bookmark, _ = self.store.find_by_id(bookmark_id)
        if bookmark is None:
            logger.warning(f"Bookmark not found: {bookmark_id}")
            return False

        doc = self._loaded_document(bookmark.file)
        if doc is not None:
            self.display.cleanup_bookmark_visuals(doc, bookmark)
        self.store.remove(bookmark)

        if not self._persist():
            logger.error("Failed to save bookmarks after deletion")
            return False
        return True

    def clear(self) -> bool:
        """Delete every bookmark in the current document."""
        doc = self.host.current_document()
        info = self.host.document_info(doc)
        if info is None or info.path == "":
            logger.warning("No file in current document")
            return False

        filepath = normalize_filepath(info.path)
        file_bookmarks = list(self.store.sorted_for_file(filepath))
        if not file_bookmarks:
            logger.info("No bookmarks to clear in current file")
            return True

        for bookmark in file_bookmarks:
            self.display.cleanup_bookmark_visuals(doc, bookmark)
        removed = self.store.clear_for_file(filepath)

        if not self._persist():
            logger.error("Failed to save after clearing bookmarks")
            return False

        logger.info(f"Cleared {len(removed)} bookmark(s) from current file")
        return True

    def clear_all(self) -> bool:
        """Delete every bookmark in the active scope, after confirmation."""
        if not self.store.has_bookmarks():
            logger.info("No bookmarks to clear")
            return True

        if not self.host.confirm(CLEAR_ALL_PROMPT):
            logger.info("Clear all cancelled")
            return False

        for filepath in self.store.files():
            doc = self._loaded_document(filepath)
            if doc is None:
                continue
            for bookmark in list(self.store.sorted_for_file(filepath)):
                self.display.cleanup_bookmark_visuals(doc, bookmark)

        removed = self.store.clear_all()

        if not self._persist():
            logger.error("Failed to save after clearing all bookmarks")
            return False

        logger.info(f"Cleared all {len(removed)} bookmark(s)")
        return True

    # --- Navigation ---

    def _navigate(self, forward: bool) -> bool:
        doc = self.host.current_document()
        info = self.host.document_info(doc)
        filepath = normalize_filepath(info.path) if info else ""
        if filepath == "":
            logger.warning("Cannot navigate bookmarks in unnamed document")
            return False

        self._sync_document_lines(doc, filepath)
        current_line, current_col = self.host.get_cursor()
        file_bookmarks = self.store.sorted_for_file(filepath)

        if not file_bookmarks:
            logger.info("No bookmarks in current document")
            return False

        if len(file_bookmarks) == 1:
            logger.info("Only one bookmark in current document")
            self._jump_to(file_bookmarks[0].line, current_col)
            return True

        if forward:
            target = next((bm for bm in file_bookmarks if bm.line > current_line), file_bookmarks[0])
        else:
            target = next(
                (bm for bm in reversed(file_bookmarks) if bm.line < current_line), file_bookmarks[-1]
            )

        self._jump_to(target.line, current_col)
        return True

    def next(self) -> bool:
        """Jump to the next bookmark in the current document, wrapping to the first."""
        return self._navigate(forward=True)

    def prev(self) -> bool:
        """Jump to the previous bookmark in the current document, wrapping to the last."""
        return self._navigate(forward=False)

    # --- Collaborator API ---

    def get_bookmarks(self) -> list[Bookmark]:
        """Independent copies with up-to-date lines."""
        self.sync_lines()
        return self.store.get_all()

    def has_bookmarks(self) -> bool:
        return self.store.has_bookmarks()

    def load(self) -> bool:
        return self.store.load()

    def save(self) -> bool:
        return self._persist()

    def restore_document(self, doc: int) -> bool:
        self.store.load()
        self._ensure_initialized()
        return self.restorer.restore_document(doc)

    def restore_open_documents(self) -> bool:
        """Restore documents that were already loaded before the engine started."""
        success = True
        for doc in self.host.list_documents():
            if not self.restore_document(doc):
                success = False
        return success

    def cleanup_document(self, doc: int) -> None:
        """Forget a closed document: keep its last lines, drop its handles."""
        info = self.host.document_info(doc)
        if info is not None and info.path:
            filepath = normalize_filepath(info.path)
            self._sync_document_lines(doc, filepath)
            for bookmark in self.store.sorted_for_file(filepath):
                bookmark.detach()
        self.restorer.cleanup_document(doc)

    # --- Scope changes ---

    def _switch_scope(self, repoint: Callable[[], None]) -> bool:
        self._save_timer.cancel()

        # save the current scope before leaving it
        self.store.load()
        if not self._persist():
            logger.error("Failed to save bookmarks before changing scope")

        for doc in self.host.list_documents():
            self.display.clear_document(doc)
        for bookmark in self.store.get_all_raw():
            bookmark.detach()
        self.restorer.reset_tracking()

        repoint()
        self.storage.invalidate_cache()
        self.store.reload()

        for doc in self.host.list_documents():
            try:
                self.restore_document(doc)
            except AnchorError as e:
                logger.debug(f"Skipping document {doc} during scope change: {e}")
        return True

    def change_data_dir(self, data_dir: Optional[str]) -> bool:
        """Switch to another data directory (None for the default) and re-sync every open document."""
        return self._switch_scope(lambda: self.storage.set_data_dir(data_dir))

    def change_scope(self, scope: Optional[ProjectScope]) -> bool:
        """Switch to an explicit project scope (None to detect it from git again)."""
        return self._switch_scope(lambda: self.storage.pin_scope(scope))

    # --- Autosave hooks ---

    def _autosave(self) -> None:
        if self.store.has_bookmarks():
            self._persist()

    def on_text_changed(self) -> None:
        """Debounced: only the last change within the window triggers a save."""
        if not self.state.autosave_configured:
            return
        self._save_timer.schedule(self.config.autosave_delay, self._autosave)

    def flush(self) -> None:
        """Cancel any pending debounced save and save right away."""
        self._save_timer.cancel()
        self._autosave()

    def on_document_hidden(self, doc: Optional[int] = None) -> None:
        if self.state.autosave_configured:
            self.flush()

    def on_exit(self) -> None:
        self.flush()

    def on_document_opened(self, doc: int) -> bool:
        return self.restore_document(doc)

    def on_document_closed(self, doc: int) -> None:
        self.cleanup_document(doc)
