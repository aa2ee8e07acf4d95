"""Tests for the in-memory store and its per-file sorted index."""

import random

import pytest

from linemark.models import Bookmark
from linemark.store import BookmarkStore


def _bm(file: str, line: int, bookmark_id: str = None, note: str = None) -> Bookmark:
    return Bookmark(file=file, line=line, id=bookmark_id or f"{file}:{line}", note=note)


@pytest.fixture
def store(storage):
    return BookmarkStore(storage)


def _assert_index_consistent(store: BookmarkStore) -> None:
    for filepath in store.files():
        file_bookmarks = store.sorted_for_file(filepath)
        lines = [bm.line for bm in file_bookmarks]
        assert lines == sorted(lines)
        for bm in file_bookmarks:
            found, _ = store.find_at_line(filepath, bm.line)
            assert found is not None and found.line == bm.line
    indexed = sorted(bm.id for f in store.files() for bm in store.sorted_for_file(f))
    assert indexed == sorted(bm.id for bm in store.get_all_raw())


class TestSortedIndex:
    def test_inserts_keep_line_order(self, store):
        for line in (5, 1, 3):
            store.add(_bm("/a.py", line))
        assert [bm.line for bm in store.sorted_for_file("/a.py")] == [1, 3, 5]

    def test_files_are_indexed_separately(self, store):
        store.add(_bm("/a.py", 4))
        store.add(_bm("/b.py", 2))
        store.add(_bm("/a.py", 1))
        assert [bm.line for bm in store.sorted_for_file("/a.py")] == [1, 4]
        assert [bm.line for bm in store.sorted_for_file("/b.py")] == [2]
        assert sorted(store.files()) == ["/a.py", "/b.py"]

    def test_random_mutations_keep_invariants(self, store):
        rng = random.Random(1234)
        live = []
        for i in range(300):
            if live and rng.random() < 0.35:
                victim = live.pop(rng.randrange(len(live)))
                assert store.remove(victim) is True
            else:
                bm = _bm(rng.choice(["/a.py", "/b.py", "/c.py"]), rng.randint(1, 60), bookmark_id=f"id{i}")
                store.add(bm)
                live.append(bm)
            _assert_index_consistent(store)
        assert len(store) == len(live)

    def test_empty_file_entry_is_dropped(self, store):
        bm = _bm("/a.py", 1)
        store.add(bm)
        store.remove(bm)
        assert store.files() == []
        assert store.sorted_for_file("/a.py") == []

    def test_reorder_after_in_place_line_change(self, store):
        first, second = _bm("/a.py", 1, "first"), _bm("/a.py", 5, "second")
        store.add(first)
        store.add(second)
        first.line = 9
        store.reorder_file("/a.py")
        assert [bm.id for bm in store.sorted_for_file("/a.py")] == ["second", "first"]


class TestLookups:
    def test_find_by_id(self, store):
        store.add(_bm("/a.py", 1, "one"))
        store.add(_bm("/a.py", 2, "two"))
        bm, idx = store.find_by_id("two")
        assert bm.line == 2
        assert idx == 1
        assert store.find_by_id("missing") == (None, None)

    def test_find_at_line(self, store):
        store.add(_bm("/a.py", 3, "x"))
        bm, idx = store.find_at_line("/a.py", 3)
        assert bm.id == "x"
        assert idx == 0
        assert store.find_at_line("/a.py", 4) == (None, None)
        assert store.find_at_line("/b.py", 3) == (None, None)

    def test_find_at_line_empty_path(self, store):
        store.add(Bookmark(file="", line=1, id="weird"))
        assert store.find_at_line("", 1) == (None, None)

    def test_find_at_line_prefers_tracked_bookmark(self, store):
        store.add(_bm("/a.py", 3, "untracked"))
        tracked = _bm("/a.py", 3, "tracked")
        tracked.tracking_anchor_id = 12
        store.add(tracked)

        bm, idx = store.find_at_line("/a.py", 3)
        assert bm.id == "tracked"
        assert idx == 1

        tracked.tracking_anchor_id = None
        assert store.find_at_line("/a.py", 3)[0].id == "untracked"

    def test_invalidate_forces_reload(self, store):
        store.add(_bm("/a.py", 1))
        assert store.is_loaded
        store.invalidate()
        assert not store.is_loaded
        assert len(store) == 0
        assert store.is_loaded

    def test_get_all_returns_copies(self, store):
        store.add(_bm("/a.py", 3, "x", note="n"))
        copies = store.get_all()
        copies[0].line = 99
        copies[0].note = "changed"
        bm, _ = store.find_by_id("x")
        assert bm.line == 3
        assert bm.note == "n"


class TestMutation:
    def test_remove_missing_returns_false(self, store):
        assert store.remove(_bm("/a.py", 1)) is False

    def test_remove_at(self, store):
        store.add(_bm("/a.py", 1, "one"))
        store.add(_bm("/a.py", 2, "two"))
        assert store.remove_at(0).id == "one"
        assert store.remove_at(5) is None
        assert [bm.id for bm in store.sorted_for_file("/a.py")] == ["two"]

    def test_clear_for_file(self, store):
        store.add(_bm("/a.py", 1))
        store.add(_bm("/b.py", 1))
        store.add(_bm("/a.py", 2))
        removed = store.clear_for_file("/a.py")
        assert len(removed) == 2
        assert store.files() == ["/b.py"]
        assert len(store) == 1

    def test_clear_all(self, store):
        store.add(_bm("/a.py", 1))
        store.add(_bm("/b.py", 1))
        removed = store.clear_all()
        assert len(removed) == 2
        assert store.has_bookmarks() is False
        assert store.files() == []


class TestLoading:
    def test_lazy_load_once(self, storage):
        storage.save_bookmarks([_bm("/a.py", 2), _bm("/a.py", 1)])
        store = BookmarkStore(storage)
        assert [bm.line for bm in store.sorted_for_file("/a.py")] == [1, 2]

        # later changes on disk are ignored until reload
        storage.save_bookmarks([])
        assert len(store) == 2
        store.reload()
        assert len(store) == 0

    def test_save_writes_insertion_order(self, store, storage):
        store.add(_bm("/a.py", 5, "five"))
        store.add(_bm("/a.py", 1, "one"))
        assert store.save() is True
        assert [bm.id for bm in storage.load_bookmarks()] == ["five", "one"]
