"""Tests for scoped JSON persistence and git scope detection."""

import hashlib
import json
import os
import shutil
import subprocess
from pathlib import Path

import pytest

from linemark.models import Bookmark
from linemark.storage import (
    DEFAULT_BRANCH,
    GIT_CACHE_TTL,
    GIT_NOT_FOUND,
    ProjectScope,
    ScopedStorage,
    normalize_data_dir,
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _bookmarks(count: int) -> list[Bookmark]:
    return [
        Bookmark(file=f"/src/file{i % 7}.py", line=i + 1, id=f"id{i:04d}", note=None if i % 3 else f"note {i}")
        for i in range(count)
    ]


class FakeGit:
    """Scripted git runner that counts invocations."""

    def __init__(self, root="/repo", branch="main", short_hash="abc1234", code=0):
        self.root = root
        self.branch = branch
        self.short_hash = short_hash
        self.code = code
        self.calls: list[list[str]] = []

    def __call__(self, args, cwd):
        self.calls.append(args)
        if self.code != 0:
            return self.code, ""
        if args[:2] == ["rev-parse", "--show-toplevel"]:
            return 0, self.root
        if args[:2] == ["branch", "--show-current"]:
            return 0, self.branch
        if args[:2] == ["rev-parse", "--short"]:
            return 0, self.short_hash
        return 1, ""


class FakeClock:
    def __init__(self):
        self.now = 100.0

    def __call__(self):
        return self.now


def _write_raw(storage: ScopedStorage, payload) -> None:
    path = storage.get_storage_path()
    with open(path, "w", encoding="utf-8") as f:
        if isinstance(payload, str):
            f.write(payload)
        else:
            json.dump(payload, f)


# ---------------------------------------------------------------------------
# Save / load
# ---------------------------------------------------------------------------


class TestRoundTrip:
    @pytest.mark.parametrize("count", [0, 1, 100])
    def test_round_trip_preserves_order_and_fields(self, storage, count):
        original = _bookmarks(count)
        assert storage.save_bookmarks(original) is True

        loaded = storage.load_bookmarks()
        assert [b.to_dict() for b in loaded] == [b.to_dict() for b in original]

    def test_file_format(self, storage):
        bm = Bookmark(file="/src/a.py", line=3, id="abc", note="hi", tracking_anchor_id=7, annotation_anchor_id=8)
        storage.save_bookmarks([bm])

        with open(storage.get_storage_path(), encoding="utf-8") as f:
            data = json.load(f)
        assert data == {"version": 1, "bookmarks": [{"file": "/src/a.py", "line": 3, "id": "abc", "note": "hi"}]}

    def test_unicode_note_round_trip(self, storage):
        storage.save_bookmarks([Bookmark(file="/a", line=1, id="x", note="naïve ◆ 日本")])
        assert storage.load_bookmarks()[0].note == "naïve ◆ 日本"

    def test_no_tmp_file_left_behind(self, storage, data_dir):
        storage.save_bookmarks(_bookmarks(3))
        assert not any(name.endswith(".tmp") for name in os.listdir(data_dir))


class TestLoadFailures:
    def test_missing_file_is_empty(self, storage):
        assert storage.load_bookmarks() == []

    def test_missing_version(self, storage):
        _write_raw(storage, {"bookmarks": []})
        assert storage.load_bookmarks() == []

    @pytest.mark.parametrize("version", [2, 0, "1", True, None])
    def test_unsupported_version(self, storage, version):
        _write_raw(storage, {"version": version, "bookmarks": [{"file": "/a", "line": 1, "id": "x"}]})
        assert storage.load_bookmarks() == []

    def test_not_an_object(self, storage):
        _write_raw(storage, [1, 2, 3])
        assert storage.load_bookmarks() == []

    def test_bookmarks_not_a_list(self, storage):
        _write_raw(storage, {"version": 1, "bookmarks": {"a": 1}})
        assert storage.load_bookmarks() == []

    def test_invalid_json(self, storage):
        _write_raw(storage, "{not json")
        assert storage.load_bookmarks() == []

    def test_not_utf8(self, storage):
        with open(storage.get_storage_path(), "wb") as f:
            f.write(b"\xff\xfe{\x00\"\x00")
        assert storage.load_bookmarks() == []

    @pytest.mark.skipif(not hasattr(os, "geteuid") or os.geteuid() == 0, reason="root can read anything")
    def test_unreadable_file(self, storage):
        storage.save_bookmarks(_bookmarks(2))
        path = storage.get_storage_path()
        os.chmod(path, 0)
        try:
            assert storage.load_bookmarks() == []
        finally:
            os.chmod(path, 0o644)

    def test_malformed_entries_are_skipped(self, storage):
        _write_raw(
            storage,
            {
                "version": 1,
                "bookmarks": [
                    {"file": "/a", "line": 1, "id": "good"},
                    {"file": "/a", "line": 0, "id": "bad-line"},
                    "garbage",
                    {"file": "/b", "line": 4, "id": "also-good", "note": "n"},
                ],
            },
        )
        assert [b.id for b in storage.load_bookmarks()] == ["good", "also-good"]


class TestSaveFailures:
    @pytest.mark.parametrize("bad", ["text", {"a": 1}, 42, None])
    def test_rejects_non_sequence(self, storage, bad):
        assert storage.save_bookmarks(bad) is False

    def test_unwritable_location(self, tmp_path, scope):
        blocker = tmp_path / "blocker"
        blocker.write_text("not a directory")
        storage = ScopedStorage(data_dir=str(blocker / "nested"))
        storage.pin_scope(scope)

        assert storage.save_bookmarks(_bookmarks(1)) is False

    def test_explicit_filepath(self, storage, tmp_path):
        target = tmp_path / "elsewhere" / "bm.json"
        assert storage.save_bookmarks(_bookmarks(2), str(target)) is True
        assert len(storage.load_bookmarks(str(target))) == 2
        assert storage.load_bookmarks() == []


# ---------------------------------------------------------------------------
# Data directory
# ---------------------------------------------------------------------------


class TestDataDir:
    def test_normalize_adds_trailing_separator(self):
        assert normalize_data_dir("/tmp/marks").endswith(os.sep)
        assert normalize_data_dir("/tmp/marks/") == "/tmp/marks/"

    def test_normalize_expands_home(self):
        assert normalize_data_dir("~/marks").startswith(os.path.expanduser("~"))

    def test_default_follows_xdg(self, monkeypatch, tmp_path):
        monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path / "xdg"))
        storage = ScopedStorage()
        assert storage.data_dir == os.path.join(str(tmp_path / "xdg"), "linemark", "")

    def test_reset_to_default(self, monkeypatch, tmp_path):
        monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path / "xdg"))
        storage = ScopedStorage(data_dir=str(tmp_path / "custom"))
        assert storage.data_dir == str(tmp_path / "custom") + os.sep

        storage.set_data_dir(None)
        assert storage.data_dir.startswith(str(tmp_path / "xdg"))

    def test_has_potential_bookmarks(self, storage, data_dir):
        assert storage.has_potential_bookmarks() is False
        storage.save_bookmarks(_bookmarks(1))
        assert storage.has_potential_bookmarks() is True

    def test_has_potential_bookmarks_missing_dir(self, tmp_path):
        assert ScopedStorage(data_dir=str(tmp_path / "nope")).has_potential_bookmarks() is False


# ---------------------------------------------------------------------------
# Scope and storage path
# ---------------------------------------------------------------------------


class TestScope:
    def test_storage_path_is_hash_of_root_and_branch(self, data_dir):
        storage = ScopedStorage(data_dir=data_dir, git=FakeGit(root="/repo", branch="main"))
        expected = hashlib.sha256(b"/repo|main").hexdigest()[:12]
        assert storage.get_storage_path() == os.path.join(normalize_data_dir(data_dir), f"{expected}.json")

    def test_branches_are_isolated(self, data_dir):
        git = FakeGit(branch="main")
        storage = ScopedStorage(data_dir=data_dir, git=git)
        storage.save_bookmarks(_bookmarks(2))
        main_path = storage.get_storage_path()

        git.branch = "feature"
        storage.invalidate_cache()
        assert storage.get_storage_path() != main_path
        assert storage.load_bookmarks() == []

        git.branch = "main"
        storage.invalidate_cache()
        assert len(storage.load_bookmarks()) == 2

    def test_outside_repository_uses_cwd_and_default_branch(self, data_dir, tmp_path):
        storage = ScopedStorage(data_dir=data_dir, cwd=str(tmp_path), git=FakeGit(code=128))
        assert storage.current_scope() == ProjectScope(root=str(tmp_path), branch=DEFAULT_BRANCH)

    def test_detached_head_uses_short_hash(self, data_dir):
        storage = ScopedStorage(data_dir=data_dir, git=FakeGit(branch="", short_hash="deadbee"))
        assert storage.current_scope().branch == "deadbee"

    def test_git_missing_falls_back_to_dot_git_walk(self, data_dir, tmp_path):
        repo = tmp_path / "repo"
        (repo / ".git").mkdir(parents=True)
        nested = repo / "src" / "pkg"
        nested.mkdir(parents=True)

        storage = ScopedStorage(data_dir=data_dir, cwd=str(nested), git=FakeGit(code=GIT_NOT_FOUND))
        scope = storage.current_scope()
        assert scope.root == str(repo.resolve())
        assert scope.branch == DEFAULT_BRANCH

    def test_pinned_scope_wins(self, data_dir):
        git = FakeGit()
        storage = ScopedStorage(data_dir=data_dir, git=git)
        storage.pin_scope(ProjectScope(root="/pinned", branch="b"))
        assert storage.current_scope().key == "/pinned|b"
        assert git.calls == []

        storage.pin_scope(None)
        assert storage.current_scope().key == "/repo|main"


class TestGitCache:
    def test_cached_within_ttl(self, data_dir):
        git = FakeGit()
        clock = FakeClock()
        storage = ScopedStorage(data_dir=data_dir, git=git, clock=clock)

        first = storage.get_git_info()
        calls = len(git.calls)
        clock.now += GIT_CACHE_TTL - 0.1
        assert storage.get_git_info() is first
        assert len(git.calls) == calls

    def test_expires_after_ttl(self, data_dir):
        git = FakeGit()
        clock = FakeClock()
        storage = ScopedStorage(data_dir=data_dir, git=git, clock=clock)

        storage.get_git_info()
        calls = len(git.calls)
        git.branch = "other"
        clock.now += GIT_CACHE_TTL
        assert storage.get_git_info().branch == "other"
        assert len(git.calls) > calls

    def test_invalidate_forces_requery(self, data_dir):
        git = FakeGit()
        storage = ScopedStorage(data_dir=data_dir, git=git, clock=FakeClock())

        storage.get_git_info()
        git.root = "/moved"
        storage.invalidate_cache()
        assert storage.get_git_info().root == "/moved"


@pytest.mark.skipif(shutil.which("git") is None, reason="git not installed")
class TestRealGit:
    def _git(self, cwd: Path, *args: str) -> None:
        subprocess.run(["git", *args], cwd=cwd, check=True, capture_output=True)

    def test_detects_root_and_branch(self, tmp_path, data_dir):
        repo = tmp_path / "repo"
        nested = repo / "sub"
        nested.mkdir(parents=True)
        self._git(repo, "init")
        self._git(repo, "checkout", "-b", "feature-x")

        storage = ScopedStorage(data_dir=data_dir, cwd=str(nested))
        info = storage.get_git_info()
        assert os.path.realpath(info.root) == os.path.realpath(repo)
        assert info.branch == "feature-x"

    def test_not_a_repository(self, tmp_path, data_dir):
        plain = tmp_path / "plain"
        plain.mkdir()
        storage = ScopedStorage(data_dir=data_dir, cwd=str(plain))
        # may still find an enclosing repository on some machines; only check the branch fallback
        info = storage.get_git_info()
        if info.root is None:
            assert storage.current_scope() == ProjectScope(root=str(plain), branch=DEFAULT_BRANCH)
