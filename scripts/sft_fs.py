#!/usr/bin/env -S uv run --script
# /// script
# requires-python = ">=3.11"
# dependencies = ["fastmcp"]
# ///
"""File operations — whole-file and line-indexed I/O plus directory management.

Every operation returns (success, content, error). Errors are rendered as
"<Code>: <message>" with codes NotFound, InvalidArgument, PermissionDenied
and IOFailure.

Usage:
    sft_fs.py read <file>
    sft_fs.py read-lines <file> [--start N] [--end N]
    sft_fs.py write <file> [content]          (content from stdin if omitted)
    sft_fs.py append <file> [content]
    sft_fs.py replace <file> <old> <new>
    sft_fs.py replace-line <file> <line_no> <content>
    sft_fs.py insert-line <file> <line_no> <content>
    sft_fs.py delete-line <file> <line_no>
    sft_fs.py delete <file>
    sft_fs.py exists <file>
    sft_fs.py info <file>
    sft_fs.py copy <src> <dest> [--overwrite]
    sft_fs.py move <src> <dest> [--overwrite]
    sft_fs.py count-lines <file>
    sft_fs.py search <file> <text> [--case-sensitive]
    sft_fs.py list-files <dir> [--pattern GLOB]
    sft_fs.py mkdir <dir>
    sft_fs.py rmdir <dir> [--recursive]
    sft_fs.py dir-exists <dir>
    sft_fs.py abspath <path>
    sft_fs.py mcp-stdio
"""

import functools
import os
import shutil
import sys
import time
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path


# =============================================================================
# LOGGING
# =============================================================================
_LEVELS = {"TRACE": 5, "DEBUG": 10, "INFO": 20, "WARN": 30, "ERROR": 40, "FATAL": 50}
_THRESHOLD = _LEVELS.get(os.environ.get("SFB_LOG_LEVEL", "INFO"), 20)
_LOG_DIR = os.environ.get("SFB_LOG_DIR", "")
_SCRIPT = Path(__file__).stem
_LOG = (
    Path(_LOG_DIR) / f"{_SCRIPT}_log.tsv"
    if _LOG_DIR
    else Path(__file__).parent / f"{_SCRIPT}_log.tsv"
)
_HEADER = "#timestamp\tscript\tlevel\tevent\tmessage\tdetail\tmetrics\ttrace\n"


def _log(
    level: str,
    event: str,
    msg: str,
    *,
    detail: str = "",
    metrics: str = "",
    trace: str = "",
):
    """Append TSV log line. Logging never crashes the main flow."""
    if _LEVELS.get(level, 20) < _THRESHOLD:
        return
    try:
        ts = datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S")
        write_header = not _LOG.exists()
        with open(_LOG, "a") as f:
            if write_header:
                f.write(_HEADER)
            f.write(f"{ts}\t{_SCRIPT}\t{level}\t{event}\t{msg}\t{detail}\t{metrics}\t{trace}\n")
    except Exception:
        pass


# =============================================================================
# CONFIGURATION
# =============================================================================
EXPOSED = [
    "read",
    "read_lines",
    "write",
    "append",
    "replace",
    "replace_line",
    "insert_line",
    "delete_line",
    "delete",
    "exists",
    "info",
    "copy",
    "move",
    "count_lines",
    "search",
    "list_files",
    "mkdir",
    "rmdir",
    "dir_exists",
    "abspath",
]

CONFIG = {
    "version": "1.0.0",
    "display_char_limit": 25000,
}


class ErrorCode(str, Enum):
    NOT_FOUND = "NotFound"
    INVALID_ARGUMENT = "InvalidArgument"
    PERMISSION_DENIED = "PermissionDenied"
    IO_FAILURE = "IOFailure"


# =============================================================================
# CORE FUNCTIONS
# =============================================================================


def _normalize_path(path_str: str) -> Path:
    """Normalize a path string to a resolved Path object."""
    if not path_str:
        return Path.cwd()
    return Path(path_str).expanduser().resolve()


def _fail(code: ErrorCode, message: str) -> tuple[bool, str, str]:
    return False, "", f"{code.value}: {message}"


def _fs_op(event: str):
    """Time, log, and convert OS errors for an op returning (success, content, error)."""

    def decorator(fn):
        @functools.wraps(fn)
        def wrapper(*args, **kwargs) -> tuple[bool, str, str]:
            start_ms = time.time() * 1000
            target = str(args[0]) if args else ""
            try:
                result = fn(*args, **kwargs)
            except FileNotFoundError as e:
                result = _fail(ErrorCode.NOT_FOUND, f"{e.strerror}: {e.filename}")
            except PermissionError as e:
                result = _fail(ErrorCode.PERMISSION_DENIED, f"{e.strerror}: {e.filename}")
            except OSError as e:
                result = _fail(ErrorCode.IO_FAILURE, str(e))
            except ValueError as e:
                # Malformed input such as NUL bytes in a path.
                result = _fail(ErrorCode.INVALID_ARGUMENT, str(e))
            latency_ms = round(time.time() * 1000 - start_ms, 2)
            status = "success" if result[0] else "error"
            _log(
                "INFO" if result[0] else "WARN",
                event,
                target,
                detail=result[2],
                metrics=f"latency_ms={latency_ms} status={status}",
            )
            return result

        return wrapper

    return decorator


# --- Line helpers ---


def _load_lines(path: Path) -> tuple[list[str], str, bool]:
    """Split a file into lines. Returns (lines, newline, had_trailing_newline)."""
    raw = path.read_bytes().decode("utf-8", errors="replace")
    newline = "\r\n" if "\r\n" in raw else "\n"
    return raw.splitlines(), newline, raw.endswith(("\n", "\r"))


def _save_lines(path: Path, lines: list[str], newline: str, trailing: bool) -> None:
    text = newline.join(lines)
    if lines and trailing:
        text += newline
    path.write_bytes(text.encode("utf-8"))


def _line_op_target(file_path: str) -> tuple[Path | None, str]:
    path = _normalize_path(file_path)
    if not path.is_file():
        return None, f"{ErrorCode.NOT_FOUND.value}: File not found: {file_path}"
    return path, ""


# --- Read ---


@_fs_op("read")
def _read_impl(file_path: str) -> tuple[bool, str, str]:
    """Whole file contents."""
    path = _normalize_path(file_path)
    if not path.is_file():
        return _fail(ErrorCode.NOT_FOUND, f"File not found: {file_path}")
    return True, path.read_text(encoding="utf-8", errors="replace"), ""


@_fs_op("read_lines")
def _read_lines_impl(file_path: str, start: int = 1, end: int = 0) -> tuple[bool, str, str]:
    """Lines start..end inclusive, 1-based. end=0 means the last line.

    CLI: read-lines
    MCP: read_lines
    """
    path, error = _line_op_target(file_path)
    if path is None:
        return False, "", error
    lines, _, _ = _load_lines(path)
    total = len(lines)
    last = end or total
    if start < 1 or start > total:
        return _fail(ErrorCode.INVALID_ARGUMENT, f"Start line {start} is out of range (1-{total})")
    if last < start or last > total:
        return _fail(ErrorCode.INVALID_ARGUMENT, f"End line {last} is out of range ({start}-{total})")
    return True, "\n".join(lines[start - 1 : last]), ""


@_fs_op("count_lines")
def _count_lines_impl(file_path: str) -> tuple[bool, str, str]:
    path, error = _line_op_target(file_path)
    if path is None:
        return False, "", error
    lines, _, _ = _load_lines(path)
    return True, str(len(lines)), ""


@_fs_op("search")
def _search_impl(file_path: str, text: str, case_sensitive: bool = False) -> tuple[bool, str, str]:
    """Lines containing text, rendered as `Line n: ...`."""
    if not text:
        return _fail(ErrorCode.INVALID_ARGUMENT, "search text must not be empty")
    path, error = _line_op_target(file_path)
    if path is None:
        return False, "", error
    lines, _, _ = _load_lines(path)
    needle = text if case_sensitive else text.casefold()
    hits = [
        f"Line {i}: {line}"
        for i, line in enumerate(lines, 1)
        if needle in (line if case_sensitive else line.casefold())
    ]
    if not hits:
        return True, f"No matches found for '{text}' in file", ""
    body = "\n".join(hits)
    limit = CONFIG["display_char_limit"]
    if len(body) > limit:
        body = body[:limit] + "\n... truncated"
    return True, f"Found {len(hits)} matching line(s):\n{body}", ""


def _exists_impl(file_path: str) -> bool:
    try:
        return _normalize_path(file_path).is_file()
    except (OSError, ValueError):
        return False


def _dir_exists_impl(dir_path: str) -> bool:
    try:
        return _normalize_path(dir_path).is_dir()
    except (OSError, ValueError):
        return False


@_fs_op("info")
def _info_impl(file_path: str) -> tuple[bool, str, str]:
    """Size, timestamps, extension and read-only flag."""
    path = _normalize_path(file_path)
    if not path.is_file():
        return _fail(ErrorCode.NOT_FOUND, f"File not found: {file_path}")
    st = path.stat()
    created = getattr(st, "st_birthtime", st.st_ctime)

    def fmt(ts: float) -> str:
        return datetime.fromtimestamp(ts).strftime("%Y-%m-%d %H:%M:%S")

    out = [
        f"File: {path}",
        f"Size: {st.st_size} bytes",
        f"Created: {fmt(created)}",
        f"Modified: {fmt(st.st_mtime)}",
        f"Accessed: {fmt(st.st_atime)}",
        f"Extension: {path.suffix}",
        f"Is Read-Only: {not os.access(path, os.W_OK)}",
    ]
    return True, "\n".join(out), ""


def _abspath_impl(path: str) -> tuple[bool, str, str]:
    if not path:
        return _fail(ErrorCode.INVALID_ARGUMENT, "path must not be empty")
    return True, os.path.abspath(os.path.expanduser(path)), ""


# --- Write ---


@_fs_op("write")
def _write_impl(file_path: str, content: str) -> tuple[bool, str, str]:
    """Overwrite (or create) a file, creating parent directories. Verified by readback."""
    path = _normalize_path(file_path)
    if path.is_dir():
        return _fail(ErrorCode.INVALID_ARGUMENT, f"Path is a directory: {file_path}")
    is_new = not path.exists()
    path.parent.mkdir(parents=True, exist_ok=True)
    data = content.encode("utf-8")
    path.write_bytes(data)
    if path.read_bytes() != data:
        return _fail(ErrorCode.IO_FAILURE, f"Readback mismatch after write: {path}")
    size = len(data)
    verb = "Created" if is_new else "Wrote"
    return True, f"{verb} {path} ({size} bytes) [verified]", ""


@_fs_op("append")
def _append_impl(file_path: str, content: str) -> tuple[bool, str, str]:
    """Append to a file, creating it (and parents) if missing."""
    path = _normalize_path(file_path)
    if path.is_dir():
        return _fail(ErrorCode.INVALID_ARGUMENT, f"Path is a directory: {file_path}")
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "a", encoding="utf-8", newline="") as f:
        f.write(content)
    return True, f"Appended {len(content.encode('utf-8'))} bytes to {path}", ""


@_fs_op("replace")
def _replace_impl(file_path: str, old: str, new: str) -> tuple[bool, str, str]:
    """Replace every occurrence of old with new."""
    if not old:
        return _fail(ErrorCode.INVALID_ARGUMENT, "text to replace must not be empty")
    path, error = _line_op_target(file_path)
    if path is None:
        return False, "", error
    content = path.read_bytes().decode("utf-8", errors="replace")
    count = content.count(old)
    if count == 0:
        return _fail(ErrorCode.NOT_FOUND, f"Text to replace not found in {path}")
    path.write_bytes(content.replace(old, new).encode("utf-8"))
    return True, f"Replaced {count} occurrence(s) in {path}", ""


@_fs_op("replace_line")
def _replace_line_impl(file_path: str, line_no: int, content: str) -> tuple[bool, str, str]:
    path, error = _line_op_target(file_path)
    if path is None:
        return False, "", error
    lines, newline, trailing = _load_lines(path)
    if line_no < 1 or line_no > len(lines):
        return _fail(ErrorCode.INVALID_ARGUMENT, f"Line number {line_no} is out of range (1-{len(lines)})")
    lines[line_no - 1] = content
    _save_lines(path, lines, newline, trailing)
    return True, f"Replaced line {line_no} in {path}", ""


@_fs_op("insert_line")
def _insert_line_impl(file_path: str, line_no: int, content: str) -> tuple[bool, str, str]:
    """Insert before line_no. line_no = N+1 appends a last line."""
    path, error = _line_op_target(file_path)
    if path is None:
        return False, "", error
    lines, newline, trailing = _load_lines(path)
    if line_no < 1 or line_no > len(lines) + 1:
        return _fail(ErrorCode.INVALID_ARGUMENT, f"Line number {line_no} is out of range (1-{len(lines) + 1})")
    lines.insert(line_no - 1, content)
    _save_lines(path, lines, newline, trailing or len(lines) == 1)
    return True, f"Inserted line at position {line_no} in {path}", ""


@_fs_op("delete_line")
def _delete_line_impl(file_path: str, line_no: int) -> tuple[bool, str, str]:
    path, error = _line_op_target(file_path)
    if path is None:
        return False, "", error
    lines, newline, trailing = _load_lines(path)
    if line_no < 1 or line_no > len(lines):
        return _fail(ErrorCode.INVALID_ARGUMENT, f"Line number {line_no} is out of range (1-{len(lines)})")
    del lines[line_no - 1]
    _save_lines(path, lines, newline, trailing)
    return True, f"Deleted line {line_no} from {path}", ""


@_fs_op("delete")
def _delete_impl(file_path: str) -> tuple[bool, str, str]:
    path = _normalize_path(file_path)
    if not path.is_file():
        return _fail(ErrorCode.NOT_FOUND, f"File not found: {file_path}")
    path.unlink()
    return True, f"Deleted file: {path}", ""


def _transfer(src: str, dest: str, overwrite: bool, mover) -> tuple[bool, str, str]:
    src_path = _normalize_path(src)
    dest_path = _normalize_path(dest)
    if not src_path.is_file():
        return _fail(ErrorCode.NOT_FOUND, f"Source file not found: {src}")
    if dest_path.is_dir():
        return _fail(ErrorCode.INVALID_ARGUMENT, f"Destination is a directory: {dest}")
    if dest_path.exists() and not overwrite:
        return _fail(ErrorCode.INVALID_ARGUMENT, f"Destination exists (pass overwrite): {dest}")
    dest_path.parent.mkdir(parents=True, exist_ok=True)
    mover(str(src_path), str(dest_path))
    return True, f"{src_path} -> {dest_path}", ""


@_fs_op("copy")
def _copy_impl(src: str, dest: str, overwrite: bool = False) -> tuple[bool, str, str]:
    success, content, error = _transfer(src, dest, overwrite, shutil.copy2)
    return success, f"Copied: {content}" if success else "", error


@_fs_op("move")
def _move_impl(src: str, dest: str, overwrite: bool = False) -> tuple[bool, str, str]:
    success, content, error = _transfer(src, dest, overwrite, shutil.move)
    return success, f"Moved: {content}" if success else "", error


# --- Directories ---


@_fs_op("list_files")
def _list_files_impl(dir_path: str, pattern: str = "") -> tuple[bool, str, str]:
    """File names directly inside a directory, optionally filtered by glob."""
    path = _normalize_path(dir_path)
    if not path.is_dir():
        return _fail(ErrorCode.NOT_FOUND, f"Directory not found: {dir_path}")
    try:
        names = sorted(p.name for p in path.glob(pattern or "*") if p.is_file())
    except (ValueError, NotImplementedError) as e:
        return _fail(ErrorCode.INVALID_ARGUMENT, f"Invalid pattern '{pattern}': {e}")
    if not names:
        return True, f"No files found in directory '{dir_path}'", ""
    return True, "\n".join(names), ""


@_fs_op("mkdir")
def _mkdir_impl(dir_path: str) -> tuple[bool, str, str]:
    path = _normalize_path(dir_path)
    if path.is_dir():
        return True, f"Directory already exists: {path}", ""
    if path.exists():
        return _fail(ErrorCode.INVALID_ARGUMENT, f"A file exists at: {dir_path}")
    path.mkdir(parents=True)
    return True, f"Created directory: {path}", ""


@_fs_op("rmdir")
def _rmdir_impl(dir_path: str, recursive: bool = False) -> tuple[bool, str, str]:
    """Remove a directory. Non-empty directories need recursive=True."""
    path = _normalize_path(dir_path)
    if not path.is_dir():
        return _fail(ErrorCode.NOT_FOUND, f"Directory not found: {dir_path}")
    if recursive:
        shutil.rmtree(path)
    else:
        if any(path.iterdir()):
            return _fail(ErrorCode.INVALID_ARGUMENT, f"Directory not empty (pass recursive): {dir_path}")
        path.rmdir()
    return True, f"Deleted directory: {path}", ""


# =============================================================================
# CLI INTERFACE
# =============================================================================
def _emit(result: tuple[bool, str, str]) -> None:
    success, content, error = result
    if success:
        print(content)
    else:
        print(f"Error: {error}", file=sys.stderr)
        sys.exit(1)


def main():
    import argparse

    parser = argparse.ArgumentParser(
        description="File operations: whole-file and line-indexed I/O, directories"
    )
    parser.add_argument("-V", "--version", action="version", version=CONFIG["version"])
    sub = parser.add_subparsers(dest="command", help="Commands")

    # --- mcp-stdio ---
    sub.add_parser("mcp-stdio", help="Run as MCP server")

    # --- Read ---
    p_read = sub.add_parser("read", help="Read whole file")
    p_read.add_argument("file_path", nargs="?", default=None)

    p_lines = sub.add_parser("read-lines", help="Read a line range")
    p_lines.add_argument("file_path")
    p_lines.add_argument("-s", "--start", type=int, default=1)
    p_lines.add_argument("-e", "--end", type=int, default=0)

    p_count = sub.add_parser("count-lines", help="Count lines")
    p_count.add_argument("file_path")

    p_search = sub.add_parser("search", help="Lines containing text")
    p_search.add_argument("file_path")
    p_search.add_argument("text")
    p_search.add_argument("-c", "--case-sensitive", action="store_true")

    p_exists = sub.add_parser("exists", help="Does the file exist")
    p_exists.add_argument("file_path")

    p_info = sub.add_parser("info", help="File metadata")
    p_info.add_argument("file_path")

    p_abs = sub.add_parser("abspath", help="Absolute path")
    p_abs.add_argument("path")

    # --- Write ---
    p_write = sub.add_parser("write", help="Overwrite file (content from stdin if omitted)")
    p_write.add_argument("file_path")
    p_write.add_argument("content", nargs="?", default=None)

    p_append = sub.add_parser("append", help="Append to file")
    p_append.add_argument("file_path")
    p_append.add_argument("content", nargs="?", default=None)

    p_replace = sub.add_parser("replace", help="Replace text")
    p_replace.add_argument("file_path")
    p_replace.add_argument("old")
    p_replace.add_argument("new")

    p_rline = sub.add_parser("replace-line", help="Replace one line")
    p_rline.add_argument("file_path")
    p_rline.add_argument("line_no", type=int)
    p_rline.add_argument("content")

    p_iline = sub.add_parser("insert-line", help="Insert a line")
    p_iline.add_argument("file_path")
    p_iline.add_argument("line_no", type=int)
    p_iline.add_argument("content")

    p_dline = sub.add_parser("delete-line", help="Delete one line")
    p_dline.add_argument("file_path")
    p_dline.add_argument("line_no", type=int)

    p_delete = sub.add_parser("delete", help="Delete a file")
    p_delete.add_argument("file_path")

    p_copy = sub.add_parser("copy", help="Copy a file")
    p_copy.add_argument("src")
    p_copy.add_argument("dest")
    p_copy.add_argument("-f", "--overwrite", action="store_true")

    p_move = sub.add_parser("move", help="Move or rename a file")
    p_move.add_argument("src")
    p_move.add_argument("dest")
    p_move.add_argument("-f", "--overwrite", action="store_true")

    # --- Directories ---
    p_list = sub.add_parser("list-files", help="Files in a directory")
    p_list.add_argument("dir_path", nargs="?", default=".")
    p_list.add_argument("-p", "--pattern", default="")

    p_mkdir = sub.add_parser("mkdir", help="Create a directory")
    p_mkdir.add_argument("dir_path")

    p_rmdir = sub.add_parser("rmdir", help="Delete a directory")
    p_rmdir.add_argument("dir_path")
    p_rmdir.add_argument("-r", "--recursive", action="store_true")

    p_dexists = sub.add_parser("dir-exists", help="Does the directory exist")
    p_dexists.add_argument("dir_path")

    args = parser.parse_args()

    try:
        if args.command == "mcp-stdio":
            _run_mcp()
        elif args.command == "read":
            if not args.file_path and not sys.stdin.isatty():
                args.file_path = sys.stdin.read().strip()
            assert args.file_path, "file_path required. Usage: sft_fs.py read <file>"
            _emit(_read_impl(args.file_path))
        elif args.command == "read-lines":
            _emit(_read_lines_impl(args.file_path, args.start, args.end))
        elif args.command == "count-lines":
            _emit(_count_lines_impl(args.file_path))
        elif args.command == "search":
            _emit(_search_impl(args.file_path, args.text, args.case_sensitive))
        elif args.command == "exists":
            print(_exists_impl(args.file_path))
        elif args.command == "info":
            _emit(_info_impl(args.file_path))
        elif args.command == "abspath":
            _emit(_abspath_impl(args.path))
        elif args.command in ("write", "append"):
            content = args.content
            if content is None and not sys.stdin.isatty():
                content = sys.stdin.read()
            assert content is not None, f"content required. Usage: sft_fs.py {args.command} <file> <content>"
            impl = _write_impl if args.command == "write" else _append_impl
            _emit(impl(args.file_path, content))
        elif args.command == "replace":
            _emit(_replace_impl(args.file_path, args.old, args.new))
        elif args.command == "replace-line":
            _emit(_replace_line_impl(args.file_path, args.line_no, args.content))
        elif args.command == "insert-line":
            _emit(_insert_line_impl(args.file_path, args.line_no, args.content))
        elif args.command == "delete-line":
            _emit(_delete_line_impl(args.file_path, args.line_no))
        elif args.command == "delete":
            _emit(_delete_impl(args.file_path))
        elif args.command == "copy":
            _emit(_copy_impl(args.src, args.dest, args.overwrite))
        elif args.command == "move":
            _emit(_move_impl(args.src, args.dest, args.overwrite))
        elif args.command == "list-files":
            _emit(_list_files_impl(args.dir_path, args.pattern))
        elif args.command == "mkdir":
            _emit(_mkdir_impl(args.dir_path))
        elif args.command == "rmdir":
            _emit(_rmdir_impl(args.dir_path, args.recursive))
        elif args.command == "dir-exists":
            print(_dir_exists_impl(args.dir_path))
        else:
            parser.print_help()
    except (AssertionError, Exception) as e:
        _log("ERROR", args.command or "unknown", str(e))
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)


# =============================================================================
# FASTMCP SERVER
# =============================================================================
def _run_mcp():
    from fastmcp import FastMCP

    mcp = FastMCP("fs")

    # --- Read ---

    @mcp.tool()
    def read(path: str) -> str:
        """Read the whole contents of a file.

        Args:
            path: File path
        """
        success, content, error = _read_impl(path)
        return content if success else f"ERROR: {error}"

    @mcp.tool()
    def read_lines(path: str, start: int = 1, end: int = 0) -> str:
        """Read lines start..end (1-based, inclusive).

        Args:
            path: File path
            start: First line (default: 1)
            end: Last line (default: 0 for end of file)
        """
        success, content, error = _read_lines_impl(path, start, end)
        return content if success else f"ERROR: {error}"

    @mcp.tool()
    def count_lines(path: str) -> str:
        """Count the lines in a file.

        Args:
            path: File path
        """
        success, content, error = _count_lines_impl(path)
        return content if success else f"ERROR: {error}"

    @mcp.tool()
    def search(path: str, text: str, case_sensitive: bool = False) -> str:
        """Lines of a file containing text.

        Args:
            path: File path
            text: Text to find
            case_sensitive: Match case exactly
        """
        success, content, error = _search_impl(path, text, case_sensitive)
        return content if success else f"ERROR: {error}"

    @mcp.tool()
    def exists(path: str) -> bool:
        """Whether a file exists at the path.

        Args:
            path: File path
        """
        return _exists_impl(path)

    @mcp.tool()
    def info(path: str) -> str:
        """File size, created/modified/accessed times, extension and read-only flag.

        Args:
            path: File path
        """
        success, content, error = _info_impl(path)
        return content if success else f"ERROR: {error}"

    @mcp.tool()
    def abspath(path: str) -> str:
        """Absolute form of a relative or absolute path.

        Args:
            path: Any path
        """
        success, content, error = _abspath_impl(path)
        return content if success else f"ERROR: {error}"

    # --- Write ---

    @mcp.tool()
    def write(path: str, content: str) -> str:
        """Write a file, replacing any existing content. Creates parent directories.

        Args:
            path: File path
            content: New contents
        """
        success, out, error = _write_impl(path, content)
        return out if success else f"ERROR: {error}"

    @mcp.tool()
    def append(path: str, content: str) -> str:
        """Append to the end of a file. Creates the file if missing.

        Args:
            path: File path
            content: Text to append
        """
        success, out, error = _append_impl(path, content)
        return out if success else f"ERROR: {error}"

    @mcp.tool()
    def replace(path: str, old: str, new: str) -> str:
        """Replace every occurrence of old with new.

        Args:
            path: File path
            old: Text to find
            new: Replacement text
        """
        success, out, error = _replace_impl(path, old, new)
        return out if success else f"ERROR: {error}"

    @mcp.tool()
    def replace_line(path: str, line_no: int, content: str) -> str:
        """Replace one line (1-based).

        Args:
            path: File path
            line_no: Line to replace
            content: New line text
        """
        success, out, error = _replace_line_impl(path, line_no, content)
        return out if success else f"ERROR: {error}"

    @mcp.tool()
    def insert_line(path: str, line_no: int, content: str) -> str:
        """Insert a line before line_no (1-based; N+1 appends).

        Args:
            path: File path
            line_no: Position to insert at
            content: Line text
        """
        success, out, error = _insert_line_impl(path, line_no, content)
        return out if success else f"ERROR: {error}"

    @mcp.tool()
    def delete_line(path: str, line_no: int) -> str:
        """Delete one line (1-based).

        Args:
            path: File path
            line_no: Line to delete
        """
        success, out, error = _delete_line_impl(path, line_no)
        return out if success else f"ERROR: {error}"

    @mcp.tool()
    def delete(path: str) -> str:
        """Delete a file.

        Args:
            path: File path
        """
        success, out, error = _delete_impl(path)
        return out if success else f"ERROR: {error}"

    @mcp.tool()
    def copy(src: str, dest: str, overwrite: bool = False) -> str:
        """Copy a file.

        Args:
            src: Source file
            dest: Destination file
            overwrite: Replace an existing destination
        """
        success, out, error = _copy_impl(src, dest, overwrite)
        return out if success else f"ERROR: {error}"

    @mcp.tool()
    def move(src: str, dest: str, overwrite: bool = False) -> str:
        """Move or rename a file.

        Args:
            src: Source file
            dest: Destination file
            overwrite: Replace an existing destination
        """
        success, out, error = _move_impl(src, dest, overwrite)
        return out if success else f"ERROR: {error}"

    # --- Directories ---

    @mcp.tool()
    def list_files(path: str = ".", pattern: str = "") -> str:
        """File names in a directory (not recursive).

        Args:
            path: Directory (default: current directory)
            pattern: Glob filter, e.g. "*.txt"
        """
        success, out, error = _list_files_impl(path, pattern)
        return out if success else f"ERROR: {error}"

    @mcp.tool()
    def mkdir(path: str) -> str:
        """Create a directory (and parents) if it does not exist.

        Args:
            path: Directory path
        """
        success, out, error = _mkdir_impl(path)
        return out if success else f"ERROR: {error}"

    @mcp.tool()
    def rmdir(path: str, recursive: bool = False) -> str:
        """Delete a directory.

        Args:
            path: Directory path
            recursive: Also delete its contents
        """
        success, out, error = _rmdir_impl(path, recursive)
        return out if success else f"ERROR: {error}"

    @mcp.tool()
    def dir_exists(path: str) -> bool:
        """Whether a directory exists at the path.

        Args:
            path: Directory path
        """
        return _dir_exists_impl(path)

    print("fs MCP server starting...", file=sys.stderr)
    mcp.run(transport="stdio")


if __name__ == "__main__":
    main()
