"""Shared fixtures: a pinned-scope storage, a headless editor and a service over both."""

import pytest

from linemark.config import LinemarkConfig
from linemark.memory import MemoryEditor
from linemark.service import BookmarkService
from linemark.state import EngineState
from linemark.storage import ProjectScope, ScopedStorage


@pytest.fixture
def data_dir(tmp_path):
    path = tmp_path / "data"
    path.mkdir()
    return str(path)


@pytest.fixture
def project_dir(tmp_path):
    path = tmp_path / "project"
    path.mkdir()
    return path


@pytest.fixture
def scope(project_dir):
    return ProjectScope(root=str(project_dir), branch="main")


@pytest.fixture
def storage(data_dir, scope):
    """Storage pinned to a fixed scope so tests never depend on the real git state."""
    s = ScopedStorage(data_dir=data_dir)
    s.pin_scope(scope)
    return s


@pytest.fixture
def editor():
    return MemoryEditor()


@pytest.fixture
def config():
    return LinemarkConfig()


@pytest.fixture
def service(editor, storage, config):
    return BookmarkService(editor, storage=storage, config=config, state=EngineState())


@pytest.fixture
def doc_path(project_dir):
    return str(project_dir / "main.py")


@pytest.fixture
def doc(editor, doc_path):
    """A ten line document, current, cursor on line 1."""
    return editor.add_document(doc_path, [f"line {i}" for i in range(1, 11)])
