"""linemark: line bookmarks with notes, scoped per git repository and branch."""

__version__ = "0.1.0"

from .config import LinemarkConfig
from .models import Bookmark, create_bookmark
from .service import BookmarkService
from .storage import ProjectScope, ScopedStorage

__all__ = [
    "Bookmark",
    "BookmarkService",
    "LinemarkConfig",
    "ProjectScope",
    "ScopedStorage",
    "create_bookmark",
    "__version__",
]
