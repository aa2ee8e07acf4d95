"""CLI interface for linemark."""

import argparse
import json
import sys
from pathlib import Path
from typing import Optional

from . import __version__
from .config import LinemarkConfig
from .host import normalize_filepath
from .logging_config import setup_logging
from .memory import MemoryEditor
from .models import Bookmark
from .service import BookmarkService


class TerminalEditor(MemoryEditor):
    """Headless editor whose prompts are answered on the terminal."""

    def prompt(self, message: str, default: str = "") -> Optional[str]:
        self.prompts.append((message, default))
        try:
            answer = input(message)
        except EOFError:
            return None
        return answer or default

    def confirm(self, message: str) -> bool:
        self.confirmations.append(message)
        if self.confirm_answer:
            return True
        try:
            answer = input(f"{message} [y/N] ")
        except EOFError:
            return False
        return answer.strip().lower() in ("y", "yes")


def main(argv: Optional[list[str]] = None):
    parser = argparse.ArgumentParser(
        prog="linemark",
        description="Line bookmarks with notes, stored per git repository and branch.",
    )
    parser.add_argument("--version", action="version", version=f"linemark {__version__}")
    parser.add_argument("--data-dir", help="Directory holding the bookmark files")
    parser.add_argument("--log-level", help="Log level (default: $LINEMARK_LOG_LEVEL or WARNING)")

    sub = parser.add_subparsers(dest="command")

    # --- add ---
    p_add = sub.add_parser("add", help="Add a bookmark, or update the note of an existing one")
    p_add.add_argument("location", help="file:line (e.g. src/main.py:42)")
    p_add.add_argument("-n", "--note", help="Annotation text (prompted for if omitted)")

    # --- list ---
    p_list = sub.add_parser("list", aliases=["ls"], help="List bookmarks")
    p_list.add_argument("-f", "--file", help="Filter by file pattern")
    p_list.add_argument("--json", action="store_true", dest="as_json", help="Output as JSON")

    # --- show ---
    p_show = sub.add_parser("show", help="Show bookmark details")
    p_show.add_argument("id", help="Bookmark ID (or partial match)")

    # --- delete ---
    p_del = sub.add_parser("delete", aliases=["rm"], help="Delete a bookmark")
    p_del.add_argument("id", help="Bookmark ID (or partial match)")

    # --- clear ---
    p_clear = sub.add_parser("clear", help="Delete every bookmark in a file")
    p_clear.add_argument("file", help="File whose bookmarks are removed")

    # --- clear-all ---
    p_clear_all = sub.add_parser("clear-all", help="Delete every bookmark in this project")
    p_clear_all.add_argument("-y", "--yes", action="store_true", help="Do not ask for confirmation")

    # --- next / prev ---
    p_next = sub.add_parser("next", help="Print the bookmark after file:line")
    p_next.add_argument("location", help="file:line")
    p_prev = sub.add_parser("prev", help="Print the bookmark before file:line")
    p_prev.add_argument("location", help="file:line")

    # --- where ---
    sub.add_parser("where", help="Show the active project scope and its storage file")

    args = parser.parse_args(argv)

    if hasattr(sys.stdout, "reconfigure"):
        sys.stdout.reconfigure(encoding="utf-8")

    setup_logging(args.log_level)

    if not args.command:
        parser.print_help()
        return

    # Dispatch
    commands = {
        "add": cmd_add,
        "list": cmd_list,
        "ls": cmd_list,
        "show": cmd_show,
        "delete": cmd_delete,
        "rm": cmd_delete,
        "clear": cmd_clear,
        "clear-all": cmd_clear_all,
        "next": cmd_next,
        "prev": cmd_prev,
        "where": cmd_where,
    }

    fn = commands.get(args.command)
    if fn:
        try:
            fn(args)
        except (FileNotFoundError, ValueError) as e:
            print(f"Error: {e}", file=sys.stderr)
            sys.exit(1)


# ---------- Commands ----------


def cmd_add(args):
    service, editor = _service(args)
    filepath, line = _parse_location(args.location)
    _open_at(editor, filepath, line)

    if not service.annotate(args.note):
        print(f"Error: Could not bookmark {filepath}:{line}", file=sys.stderr)
        sys.exit(1)

    bm, _ = service.store.find_at_line(normalize_filepath(str(filepath)), line)
    print(f"Bookmarked {bm.short_id} → {bm.file}:{bm.line}")
    print(f"  Note: {bm.note}")


def cmd_list(args):
    service, _ = _service(args)
    bookmarks = service.get_bookmarks()

    if args.file:
        pattern = args.file
        bookmarks = [b for b in bookmarks if pattern in b.file]

    if not bookmarks:
        print("No bookmarks found.")
        return

    if args.as_json:
        print(json.dumps([b.to_dict() for b in bookmarks], indent=2, ensure_ascii=False))
        return

    _print_table(bookmarks)


def cmd_show(args):
    service, _ = _service(args)
    bm = _find_bookmark(service.get_bookmarks(), args.id)

    print(f"Bookmark: {bm.id}")
    print(f"File: {bm.file}:{bm.line}")
    print(f"Note: {bm.note or '(none)'}")

    path = Path(bm.file)
    if path.is_file():
        lines = path.read_text(encoding="utf-8", errors="replace").splitlines()
        if bm.line <= len(lines):
            print()
            print(f"→ {bm.line:>4} │ {lines[bm.line - 1]}")


def cmd_delete(args):
    service, _ = _service(args)
    bm = _find_bookmark(service.get_bookmarks(), args.id)

    if not service.delete_by_id(bm.id):
        print(f"Error: Could not delete bookmark {bm.short_id}", file=sys.stderr)
        sys.exit(1)
    print(f"Deleted bookmark {bm.short_id} ({bm.file}:{bm.line})")


def cmd_clear(args):
    service, editor = _service(args)
    filepath = Path(args.file)
    _open_at(editor, filepath, 1)

    count = len(service.store.sorted_for_file(normalize_filepath(str(filepath))))
    if not service.clear():
        print(f"Error: Could not clear bookmarks in {filepath}", file=sys.stderr)
        sys.exit(1)
    print(f"Cleared {count} bookmark(s) from {filepath}")


def cmd_clear_all(args):
    service, _ = _service(args, confirm=args.yes)
    count = len(service.store)
    if count == 0:
        print("No bookmarks to clear.")
        return

    if not service.clear_all():
        print("Cancelled.")
        return
    print(f"Cleared all {count} bookmark(s)")


def cmd_next(args):
    _navigate(args, forward=True)


def cmd_prev(args):
    _navigate(args, forward=False)


def cmd_where(args):
    service, _ = _service(args)
    scope = service.storage.current_scope()
    print(f"Root: {scope.root}")
    print(f"Branch: {scope.branch}")
    print(f"Storage: {service.storage.get_storage_path()}")


# ---------- Helpers ----------


def _service(args, confirm: bool = False) -> tuple[BookmarkService, TerminalEditor]:
    """Build a service over a fresh headless editor."""
    config = LinemarkConfig(data_dir=args.data_dir) if args.data_dir else LinemarkConfig()
    editor = TerminalEditor(confirm_answer=confirm)
    service = BookmarkService(editor, config=config)
    service.load()
    return service, editor


def _parse_location(location: str) -> tuple[Path, int]:
    if ":" not in location:
        raise ValueError("Location must be file:line (e.g. src/main.py:42)")

    parts = location.rsplit(":", 1)
    try:
        line = int(parts[1])
    except ValueError:
        raise ValueError(f"Invalid line number: {parts[1]}") from None
    return Path(parts[0]), line


def _open_at(editor: TerminalEditor, filepath: Path, line: int) -> int:
    if not filepath.is_file():
        raise FileNotFoundError(f"No such file: {filepath}")
    doc = editor.open_file(str(filepath))
    editor.switch_to(doc, line, 0)
    return doc


def _navigate(args, forward: bool) -> None:
    service, editor = _service(args)
    filepath, line = _parse_location(args.location)
    doc = _open_at(editor, filepath, line)
    service.restore_document(doc)

    moved = service.next() if forward else service.prev()
    if not moved:
        print(f"Error: No bookmarks in {filepath}", file=sys.stderr)
        sys.exit(1)

    target_line, _ = editor.get_cursor()
    bm, _ = service.store.find_at_line(normalize_filepath(str(filepath)), target_line)
    print(f"{bm.file}:{target_line}")
    if bm.note:
        print(f"  Note: {bm.note}")


def _find_bookmark(bookmarks: list[Bookmark], partial_id: str) -> Bookmark:
    """Find a bookmark by full or partial ID match."""
    matches = [b for b in bookmarks if partial_id in b.id]
    if len(matches) == 0:
        print(f"Error: No bookmark matching '{partial_id}'.", file=sys.stderr)
        sys.exit(1)
    if len(matches) > 1:
        print(f"Error: Ambiguous ID '{partial_id}'. Matches:", file=sys.stderr)
        for m in matches:
            print(f"  {m.id}", file=sys.stderr)
        sys.exit(1)
    return matches[0]


def _print_table(bookmarks: list[Bookmark]):
    """Print bookmarks as a formatted table."""
    rows = []
    for bm in bookmarks:
        note = bm.note or ""
        if len(note) > 45:
            note = note[:42] + "..."
        rows.append((bm.short_id, bm.file, str(bm.line), note))

    headers = ("ID", "FILE", "LINE", "NOTE")
    widths = [len(h) for h in headers]
    for row in rows:
        for i, val in enumerate(row):
            widths[i] = max(widths[i], len(val))

    # FILE keeps its tail, which is the informative part of an absolute path
    widths[1] = min(widths[1], 50)

    fmt = "  ".join(f"{{:<{w}}}" for w in widths)
    print(fmt.format(*headers))
    print(fmt.format(*("─" * w for w in widths)))
    for row in rows:
        file = row[1] if len(row[1]) <= widths[1] else "…" + row[1][-(widths[1] - 1):]
        print(fmt.format(row[0], file, row[2], row[3]))


if __name__ == "__main__":
    main()
