"""In-memory bookmark collection with a per-file, line-sorted index."""

from bisect import bisect_left
from typing import Optional

from .models import Bookmark
from .storage import ScopedStorage


class BookmarkStore:
    """All loaded bookmarks for the active scope.

    The flat list keeps insertion order (that is what gets persisted); the
    per-file index keeps each file's bookmarks sorted by line so navigation
    never sorts at query time. Loading is lazy: the first query pulls the set
    from storage, later queries reuse it until reload().
    """

    def __init__(self, storage: ScopedStorage):
        self.storage = storage
        self._bookmarks: list[Bookmark] = []
        self._by_file: dict[str, list[Bookmark]] = {}
        self._loaded = False

    # --- Index maintenance ---

    def _index_add(self, bookmark: Bookmark) -> None:
        file_bookmarks = self._by_file.setdefault(bookmark.file, [])
        pos = bisect_left(file_bookmarks, bookmark.line, key=lambda bm: bm.line)
        file_bookmarks.insert(pos, bookmark)

    def _index_remove(self, bookmark: Bookmark) -> None:
        file_bookmarks = self._by_file.get(bookmark.file)
        if not file_bookmarks:
            return
        for i, bm in enumerate(file_bookmarks):
            if bm.id == bookmark.id:
                del file_bookmarks[i]
                if not file_bookmarks:
                    del self._by_file[bookmark.file]
                break

    def _rebuild_index(self) -> None:
        self._by_file = {}
        for bookmark in self._bookmarks:
            self._index_add(bookmark)

    def reorder_file(self, filepath: str) -> None:
        """Restore line order for one file after lines were changed in place."""
        file_bookmarks = self._by_file.get(filepath)
        if file_bookmarks:
            file_bookmarks.sort(key=lambda bm: bm.line)

    # --- Loading ---

    def _ensure_loaded(self) -> None:
        if not self._loaded:
            self.load()

    @property
    def is_loaded(self) -> bool:
        return self._loaded

    def invalidate(self) -> None:
        """Forget the loaded set; the next query loads again."""
        self._bookmarks = []
        self._by_file = {}
        self._loaded = False

    def load(self) -> bool:
        """Load from storage once. Later calls are no-ops until reload()."""
        if self._loaded:
            return True
        self._bookmarks = self.storage.load_bookmarks()
        self._rebuild_index()
        self._loaded = True
        return True

    def reload(self) -> bool:
        """Drop everything in memory and load the (possibly new) scope."""
        self.invalidate()
        return self.load()

    def save(self) -> bool:
        return self.storage.save_bookmarks(self._bookmarks)

    # --- Queries ---

    def find_by_id(self, bookmark_id: str) -> tuple[Optional[Bookmark], Optional[int]]:
        self._ensure_loaded()
        for i, bm in enumerate(self._bookmarks):
            if bm.id == bookmark_id:
                return bm, i
        return None, None

    def find_at_line(self, filepath: str, line: int) -> tuple[Optional[Bookmark], Optional[int]]:
        """Bookmark on a line. A tracked one wins over one that lost its anchor there."""
        self._ensure_loaded()
        if filepath == "":
            return None, None
        fallback: tuple[Optional[Bookmark], Optional[int]] = (None, None)
        for i, bm in enumerate(self._bookmarks):
            if bm.file != filepath or bm.line != line:
                continue
            if bm.tracking_anchor_id is not None:
                return bm, i
            if fallback[0] is None:
                fallback = (bm, i)
        return fallback

    def sorted_for_file(self, filepath: str) -> list[Bookmark]:
        """The maintained line-sorted list for a file (live; do not mutate)."""
        self._ensure_loaded()
        return self._by_file.get(filepath, [])

    def files(self) -> list[str]:
        self._ensure_loaded()
        return list(self._by_file)

    def get_all(self) -> list[Bookmark]:
        """Independent copies of every bookmark."""
        self._ensure_loaded()
        return [bm.copy() for bm in self._bookmarks]

    def get_all_raw(self) -> list[Bookmark]:
        """The live list. Only for callers that update anchor ids in place."""
        self._ensure_loaded()
        return self._bookmarks

    def has_bookmarks(self) -> bool:
        self._ensure_loaded()
        return len(self._bookmarks) > 0

    def __len__(self) -> int:
        self._ensure_loaded()
        return len(self._bookmarks)

    # --- Mutation ---

    def add(self, bookmark: Bookmark) -> None:
        self._ensure_loaded()
        self._bookmarks.append(bookmark)
        self._index_add(bookmark)

    def remove(self, bookmark: Bookmark) -> bool:
        self._ensure_loaded()
        for i, bm in enumerate(self._bookmarks):
            if bm.id == bookmark.id:
                del self._bookmarks[i]
                self._index_remove(bm)
                return True
        return False

    def remove_at(self, index: int) -> Optional[Bookmark]:
        self._ensure_loaded()
        if index < 0 or index >= len(self._bookmarks):
            return None
        bookmark = self._bookmarks.pop(index)
        self._index_remove(bookmark)
        return bookmark

    def clear_for_file(self, filepath: str) -> list[Bookmark]:
        self._ensure_loaded()
        removed = [bm for bm in self._bookmarks if bm.file == filepath]
        self._bookmarks = [bm for bm in self._bookmarks if bm.file != filepath]
        self._by_file.pop(filepath, None)
        return removed

    def clear_all(self) -> list[Bookmark]:
        self._ensure_loaded()
        removed = self._bookmarks
        self._bookmarks = []
        self._by_file = {}
        return removed
