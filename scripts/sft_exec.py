#!/usr/bin/env -S uv run --script
# /// script
# requires-python = ">=3.11"
# dependencies = [
#     "fastmcp",
#     "psutil",
# ]
# ///
"""Bounded process execution — run, build, execute, inspect logs, environment and processes.

Every command runs through one runner: spawn, drain stdout/stderr on reader
threads, wait with a wall-clock timeout, kill the process tree on expiry.
Failures come back as values, never as exceptions.

Usage:
    sft_exec.py run <command> [--cwd PATH] [--timeout S] [--shell]
    sft_exec.py shell <command> [--cwd PATH] [--timeout S]
    sft_exec.py compile <project> [--configuration NAME] [--no-restore]
    sft_exec.py check-build <project>
    sft_exec.py execute <project> [--args ARGS] [--timeout S]
    sft_exec.py run-exe <executable> [--args ARGS] [--workdir PATH] [--timeout S]
    sft_exec.py snippet [code] [--language python|bash|node] [--imports a,b]
    sft_exec.py log-read <file>
    sft_exec.py log-tail <file> [--lines N]
    sft_exec.py log-search <file> <pattern> [--regex] [--case-sensitive]
    sft_exec.py log-monitor <file> [--recent N]
    sft_exec.py log-filter <file> <level>
    sft_exec.py env-list
    sft_exec.py env-get <name>
    sft_exec.py ps
    sft_exec.py proc-info <pid|name>
    sft_exec.py kill <pid|name> [--wait S]
    sft_exec.py mcp-stdio
"""

import math
import os
import re
import shlex
import signal
import subprocess
import sys
import tempfile
import threading
import time
from contextlib import ExitStack, contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from functools import partial
from pathlib import Path

import psutil


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
    "run",
    "shell",
    "compile",
    "check_build",
    "execute",
    "run_exe",
    "snippet",
    "log_read",
    "log_tail",
    "log_search",
    "log_monitor",
    "log_filter",
    "env_list",
    "env_get",
    "ps",
    "proc_info",
    "kill",
]


def _env_number(name: str, default: float) -> float:
    """Read a numeric override from the environment, falling back on bad input."""
    raw = os.environ.get(name, "")
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        _log("WARN", "config", f"{name}={raw!r} is not a number, using {default}")
        return default


CONFIG = {
    "version": "1.0.0",
    "default_timeout_s": _env_number("SFB_EXEC_TIMEOUT", 30.0),
    "kill_wait_s": _env_number("SFB_EXEC_KILL_WAIT", 5.0),
    "drain_grace_s": _env_number("SFB_EXEC_DRAIN_GRACE", 2.0),
    "snippet_timeout_s": _env_number("SFB_EXEC_SNIPPET_TIMEOUT", 10.0),
    "restore_cmd": os.environ.get("SFB_BUILD_RESTORE_CMD", "dotnet restore"),
    "build_cmd": os.environ.get(
        "SFB_BUILD_CMD", "dotnet build --configuration {configuration} --no-incremental"
    ),
    "check_cmd": os.environ.get(
        "SFB_BUILD_CHECK_CMD", "dotnet build --no-build --configuration Debug"
    ),
    "run_cmd": os.environ.get("SFB_BUILD_RUN_CMD", "dotnet run"),
    "process_limit": 50,
    "display_char_limit": 25000,
}

SNIPPET_LANGUAGES = {
    "python": {"suffix": ".py", "interpreter": [sys.executable]},
    "bash": {"suffix": ".sh", "interpreter": ["bash"]},
    "node": {"suffix": ".js", "interpreter": ["node"]},
}

_WAIT_SLICE_S = 0.1
_READ_CHUNK = 65536
_NO_WINDOW = getattr(subprocess, "CREATE_NO_WINDOW", 0)
_CONFIGURATION_RE = re.compile(r"^[A-Za-z0-9_.-]+$")


# =============================================================================
# CORE FUNCTIONS
# =============================================================================


class ErrorCode(str, Enum):
    NOT_FOUND = "NotFound"
    INVALID_ARGUMENT = "InvalidArgument"
    INVALID_WORKING_DIRECTORY = "InvalidWorkingDirectory"
    TIMEOUT = "Timeout"
    PROCESS_START_FAILURE = "ProcessStartFailure"
    IO_CAPTURE_FAILURE = "IOCaptureFailure"
    PERMISSION_DENIED = "PermissionDenied"
    PROCESS_NOT_FOUND = "ProcessNotFound"
    ALREADY_EXITED = "AlreadyExited"
    IO_FAILURE = "IOFailure"


class TerminationReason(str, Enum):
    EXITED = "exited"
    TIMEOUT = "timeout"
    KILLED = "killed"
    FAILED_TO_START = "failed_to_start"


@dataclass
class Failure:
    """A rejected operation. Nothing was spawned or signalled."""

    code: ErrorCode
    message: str

    def __str__(self) -> str:
        return f"{self.code.value}: {self.message}"


@dataclass
class ProcessInvocation:
    """One bounded execution, from spawn to a terminal reason.

    exit_code is set only when reason is EXITED.
    """

    command: str
    cwd: str
    timeout: float
    stdout: str = ""
    stderr: str = ""
    exit_code: int | None = None
    reason: TerminationReason | None = None
    pid: int | None = None
    error: str = ""
    capture_error: str = ""
    duration_ms: float = 0.0

    @property
    def ok(self) -> bool:
        return self.reason is TerminationReason.EXITED and self.exit_code == 0


@dataclass
class KillOutcome:
    pid: int
    name: str
    forced: bool


def _err(code: ErrorCode, message: str) -> tuple[bool, str, str]:
    return False, "", f"{code.value}: {message}"


def _normalize_path(path_str: str) -> Path:
    """Normalize a path string to a resolved Path object."""
    if not path_str:
        return Path.cwd()
    return Path(path_str).expanduser().resolve()


def _resolve_existing(path_str: str, want_dir: bool) -> Path | None:
    """Resolve a path that must already exist. None when missing or malformed (e.g. NUL bytes)."""
    try:
        path = _normalize_path(path_str)
        found = path.is_dir() if want_dir else path.is_file()
    except (OSError, ValueError):
        return None
    return path if found else None


def _clip(text: str) -> str:
    limit = CONFIG["display_char_limit"]
    if len(text) <= limit:
        return text
    return text[:limit] + f"\n... truncated ({len(text) - limit} more chars)"


# --- Bounded process runner ---


class _StreamReader(threading.Thread):
    """Drains one pipe into an owned chunk list until EOF."""

    def __init__(self, stream, label: str):
        super().__init__(name=f"drain-{label}", daemon=True)
        self._stream = stream
        self.label = label
        self.chunks: list[bytes] = []
        self.error = ""

    def run(self):
        try:
            for chunk in iter(partial(self._stream.read1, _READ_CHUNK), b""):
                self.chunks.append(chunk)
        except OSError as e:
            self.error = f"{self.label}: {e}"

    def text(self) -> str:
        return b"".join(list(self.chunks)).decode("utf-8", errors="replace")


def _kill_tree(pid: int) -> None:
    """Force-kill a process and its descendants. Orphaned grandchildren may survive."""
    try:
        root = psutil.Process(pid)
        victims = root.children(recursive=True) + [root]
    except psutil.NoSuchProcess:
        victims = []
    for proc in victims:
        try:
            proc.kill()
        except (psutil.NoSuchProcess, psutil.AccessDenied):
            continue
    if os.name == "posix":
        # The child leads its own session, so its group id is its pid.
        try:
            os.killpg(pid, signal.SIGKILL)
        except (ProcessLookupError, PermissionError):
            pass


@contextmanager
def _spawned(argv: str | list[str], cwd: Path, shell: bool):
    """Spawn with piped output and no stdin; reap and release on every exit path."""
    proc = subprocess.Popen(
        argv,
        cwd=str(cwd),
        shell=shell,
        stdin=subprocess.DEVNULL,
        stdout=subprocess.PIPE,
        stderr=subprocess.PIPE,
        start_new_session=os.name == "posix",
        creationflags=_NO_WINDOW,
    )
    readers = (_StreamReader(proc.stdout, "stdout"), _StreamReader(proc.stderr, "stderr"))
    for reader in readers:
        reader.start()
    try:
        yield proc, readers
    finally:
        if proc.poll() is None:
            _kill_tree(proc.pid)
        proc.wait()
        # One grace period shared by both readers.
        drain_deadline = time.monotonic() + CONFIG["drain_grace_s"]
        for reader in readers:
            reader.join(max(0.0, drain_deadline - time.monotonic()))
        for reader, stream in zip(readers, (proc.stdout, proc.stderr)):
            if reader.is_alive():
                # A surviving grandchild still holds the write end.
                _log("WARN", "drain", f"pid={proc.pid} {reader.label} still open after exit")
            else:
                stream.close()


def _await_exit(
    proc: subprocess.Popen, timeout: float, cancel: threading.Event | None
) -> TerminationReason:
    deadline = time.monotonic() + timeout
    while True:
        remaining = deadline - time.monotonic()
        if remaining <= 0:
            return TerminationReason.EXITED if proc.poll() is not None else TerminationReason.TIMEOUT
        try:
            proc.wait(timeout=min(remaining, _WAIT_SLICE_S))
            return TerminationReason.EXITED
        except subprocess.TimeoutExpired:
            if cancel is not None and cancel.is_set():
                return TerminationReason.KILLED


def run_process(
    command: str | list[str],
    cwd: str = ".",
    timeout: float | None = None,
    shell: bool = False,
    cancel: threading.Event | None = None,
) -> ProcessInvocation | Failure:
    """Run one external command to a terminal outcome.

    Args:
        command: Command line (split with shlex unless shell=True) or argv list
        cwd: Working directory, must already exist
        timeout: Wall-clock limit in seconds (default: CONFIG default_timeout_s)
        shell: Pass the command string to the system shell
        cancel: Optional event; setting it kills the process tree

    Returns a Failure when the call is rejected before spawning. Otherwise a
    ProcessInvocation whose reason is exited, timeout, killed or failed_to_start.
    """
    if timeout is None:
        timeout = CONFIG["default_timeout_s"]
    if isinstance(command, str):
        command_text = command.strip()
    else:
        command_text = shlex.join(command) if command else ""
    if not command_text:
        return Failure(ErrorCode.INVALID_ARGUMENT, "command must not be empty")
    if not math.isfinite(timeout) or timeout <= 0:
        return Failure(ErrorCode.INVALID_ARGUMENT, f"timeout must be a positive number, got {timeout}")
    work_dir = _resolve_existing(cwd, want_dir=True)
    if work_dir is None:
        return Failure(
            ErrorCode.INVALID_WORKING_DIRECTORY, f"Working directory not found: {cwd}"
        )

    if shell:
        argv: str | list[str] = command_text
    elif isinstance(command, str):
        try:
            argv = shlex.split(command_text, posix=os.name != "nt")
        except ValueError as e:
            return Failure(ErrorCode.INVALID_ARGUMENT, f"Cannot parse command: {e}")
    else:
        argv = [str(part) for part in command]

    inv = ProcessInvocation(command=command_text, cwd=str(work_dir), timeout=timeout)
    start = time.monotonic()
    readers: tuple[_StreamReader, ...] = ()
    with ExitStack() as stack:
        try:
            proc, readers = stack.enter_context(_spawned(argv, work_dir, shell))
        except (OSError, ValueError) as e:
            inv.reason = TerminationReason.FAILED_TO_START
            inv.error = f"{type(e).__name__}: {getattr(e, 'strerror', None) or e}"
            inv.duration_ms = round((time.monotonic() - start) * 1000, 2)
            _log("ERROR", "run", command_text[:200], detail=inv.error, metrics="status=failed_to_start")
            return inv
        inv.pid = proc.pid
        inv.reason = _await_exit(proc, timeout, cancel)
        if inv.reason is TerminationReason.EXITED:
            inv.exit_code = proc.returncode
        else:
            _kill_tree(proc.pid)

    inv.stdout = readers[0].text()
    inv.stderr = readers[1].text()
    inv.capture_error = "; ".join(r.error for r in readers if r.error)
    inv.duration_ms = round((time.monotonic() - start) * 1000, 2)

    metrics = (
        f"latency_ms={inv.duration_ms} status={inv.reason.value} exit={inv.exit_code} "
        f"stdout_chars={len(inv.stdout)} stderr_chars={len(inv.stderr)}"
    )
    if inv.reason is TerminationReason.EXITED:
        _log("INFO", "run", command_text[:200], metrics=metrics)
    else:
        _log("WARN", "run", f"{inv.reason.value} pid={inv.pid}: {command_text[:200]}", metrics=metrics)
    if inv.capture_error:
        _log("WARN", "capture", command_text[:200], detail=inv.capture_error)
    return inv


def _render_invocation(inv: ProcessInvocation) -> str:
    """Format an invocation as the tool's text response."""
    out = [f"Command: {inv.command}", f"Working Directory: {inv.cwd}"]
    if inv.reason is TerminationReason.EXITED:
        out.append(f"Exit Code: {inv.exit_code}")
    elif inv.reason is TerminationReason.TIMEOUT:
        out.append(
            f"{ErrorCode.TIMEOUT.value}: process timed out after {inv.timeout:g} seconds "
            "(process tree killed, output may be partial)"
        )
    elif inv.reason is TerminationReason.KILLED:
        out.append("Killed on request (output may be partial)")
    if inv.capture_error:
        out.append(f"{ErrorCode.IO_CAPTURE_FAILURE.value}: {inv.capture_error}")
    out.append(f"Duration: {inv.duration_ms} ms")
    if inv.stdout:
        out.extend(["", "Output:", _clip(inv.stdout.rstrip("\n"))])
    if inv.stderr:
        out.extend(["", "Errors:", _clip(inv.stderr.rstrip("\n"))])
    return "\n".join(out)


def _invocation_result(result: ProcessInvocation | Failure) -> tuple[bool, str, str]:
    if isinstance(result, Failure):
        return False, "", str(result)
    if result.reason is TerminationReason.FAILED_TO_START:
        return _err(ErrorCode.PROCESS_START_FAILURE, f"{result.command}: {result.error}")
    return True, _render_invocation(result), ""


def _run_impl(
    command: str,
    cwd: str = ".",
    timeout: float | None = None,
    shell: bool = False,
) -> tuple[bool, str, str]:
    """Run a command and render the invocation.

    CLI: run, shell
    MCP: run, shell

    Returns (success, content, error).
    """
    return _invocation_result(run_process(command, cwd, timeout=timeout, shell=shell))


# --- Build and execution tools ---


def _project_dir(project_path: str) -> Path | None:
    return _resolve_existing(project_path, want_dir=True)


def _compile_impl(
    project_path: str,
    configuration: str = "Debug",
    restore: bool = True,
) -> tuple[bool, str, str]:
    """Restore (optional) then build the project with the configured toolchain.

    CLI: compile
    MCP: compile
    """
    start_ms = time.time() * 1000
    project = _project_dir(project_path)
    if project is None:
        return _err(ErrorCode.NOT_FOUND, f"Project directory not found: {project_path}")
    if not _CONFIGURATION_RE.match(configuration):
        return _err(ErrorCode.INVALID_ARGUMENT, f"Invalid build configuration: {configuration!r}")

    commands = [CONFIG["restore_cmd"]] if restore else []
    commands.append(CONFIG["build_cmd"].format(configuration=configuration))

    sections: list[str] = []
    for cmd in commands:
        result = run_process(cmd, str(project), shell=True)
        ok, content, error = _invocation_result(result)
        if not ok:
            return False, "\n\n".join(sections), error
        sections.append(content)

    latency_ms = round(time.time() * 1000 - start_ms, 2)
    _log("INFO", "compile", str(project), metrics=f"latency_ms={latency_ms} steps={len(commands)}")
    return True, "\n\n".join(sections), ""


def _check_build_impl(project_path: str) -> tuple[bool, str, str]:
    """Check the project for compile errors without a full rebuild."""
    project = _project_dir(project_path)
    if project is None:
        return _err(ErrorCode.NOT_FOUND, f"Project directory not found: {project_path}")
    return _invocation_result(run_process(CONFIG["check_cmd"], str(project), shell=True))


def _execute_impl(
    project_path: str,
    arguments: str = "",
    timeout: float | None = None,
) -> tuple[bool, str, str]:
    """Run the project through the toolchain's run command."""
    project = _project_dir(project_path)
    if project is None:
        return _err(ErrorCode.NOT_FOUND, f"Project directory not found: {project_path}")
    command = CONFIG["run_cmd"]
    if arguments:
        command += f" -- {arguments}"
    return _invocation_result(run_process(command, str(project), timeout=timeout, shell=True))


def _run_exe_impl(
    executable_path: str,
    arguments: str = "",
    working_dir: str = "",
    timeout: float | None = None,
) -> tuple[bool, str, str]:
    """Run an executable file directly, no shell in between."""
    exe = _resolve_existing(executable_path, want_dir=False)
    if exe is None:
        return _err(ErrorCode.NOT_FOUND, f"Executable not found: {executable_path}")
    try:
        argv = [str(exe)] + shlex.split(arguments, posix=os.name != "nt")
    except ValueError as e:
        return _err(ErrorCode.INVALID_ARGUMENT, f"Cannot parse arguments: {e}")
    cwd = working_dir or str(exe.parent)
    return _invocation_result(run_process(argv, cwd, timeout=timeout))


def _build_snippet(code: str, language: str, imports: str) -> str:
    names = [n.strip() for n in imports.split(",") if n.strip()]
    if language == "python" and names:
        prelude = "\n".join(f"import {name}" for name in names)
        return f"{prelude}\n\n{code}\n"
    return f"{code}\n"


def _snippet_impl(code: str, language: str = "python", imports: str = "") -> tuple[bool, str, str]:
    """Write a code snippet to a temp file and run it with the language's interpreter.

    CLI: snippet
    MCP: snippet

    Only python uses imports (one `import x` line per comma-separated name).
    The temp file is always removed.
    """
    lang = SNIPPET_LANGUAGES.get(language.lower())
    if lang is None:
        return _err(
            ErrorCode.INVALID_ARGUMENT,
            f"Unsupported language '{language}'. Choose from: {', '.join(SNIPPET_LANGUAGES)}",
        )
    if not code.strip():
        return _err(ErrorCode.INVALID_ARGUMENT, "code must not be empty")

    fd, tmp_name = tempfile.mkstemp(prefix="snippet_", suffix=lang["suffix"])
    script = Path(tmp_name)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(_build_snippet(code, language.lower(), imports))
        result = run_process(
            lang["interpreter"] + [str(script)],
            tempfile.gettempdir(),
            timeout=CONFIG["snippet_timeout_s"],
        )
        return _invocation_result(result)
    finally:
        script.unlink(missing_ok=True)


# --- Log inspection ---


def _load_log(log_path: str) -> tuple[Path | None, list[str], str]:
    """Read a log file as lines. Returns (path, lines, error)."""
    path = _resolve_existing(log_path, want_dir=False)
    if path is None:
        return None, [], f"{ErrorCode.NOT_FOUND.value}: Log file not found: {log_path}"
    try:
        return path, path.read_text(encoding="utf-8", errors="replace").splitlines(), ""
    except PermissionError as e:
        return None, [], f"{ErrorCode.PERMISSION_DENIED.value}: {e}"
    except OSError as e:
        return None, [], f"{ErrorCode.IO_FAILURE.value}: {e}"


def _log_read_impl(log_path: str) -> tuple[bool, str, str]:
    path, lines, error = _load_log(log_path)
    if path is None:
        return False, "", error
    return True, "\n".join(lines), ""


def _log_tail_impl(log_path: str, lines: int = 50) -> tuple[bool, str, str]:
    """Last N lines of a log file."""
    if lines < 0:
        return _err(ErrorCode.INVALID_ARGUMENT, f"lines must be >= 0, got {lines}")
    path, all_lines, error = _load_log(log_path)
    if path is None:
        return False, "", error
    return True, "\n".join(all_lines[max(0, len(all_lines) - lines):]), ""


def _line_matcher(pattern: str, regex: bool, case_sensitive: bool):
    if regex:
        return re.compile(pattern, 0 if case_sensitive else re.IGNORECASE).search
    if case_sensitive:
        return lambda line: pattern in line
    folded = pattern.casefold()
    return lambda line: folded in line.casefold()


def _log_search_impl(
    log_path: str,
    pattern: str,
    regex: bool = False,
    case_sensitive: bool = False,
) -> tuple[bool, str, str]:
    """Find lines matching a substring or regex. Hits render as `[n]: line`.

    CLI: log-search
    MCP: log_search
    """
    start_ms = time.time() * 1000
    if not pattern:
        return _err(ErrorCode.INVALID_ARGUMENT, "pattern must not be empty")
    try:
        matches = _line_matcher(pattern, regex, case_sensitive)
    except re.error as e:
        return _err(ErrorCode.INVALID_ARGUMENT, f"Invalid regex pattern '{pattern}': {e}")

    path, lines, error = _load_log(log_path)
    if path is None:
        return False, "", error
    hits = [f"[{i}]: {line}" for i, line in enumerate(lines, 1) if matches(line)]

    latency_ms = round(time.time() * 1000 - start_ms, 2)
    _log("INFO", "log_search", f"{path}: {pattern}", metrics=f"latency_ms={latency_ms} matches={len(hits)}")
    if not hits:
        return True, f"No matches found for pattern '{pattern}'", ""
    return True, f"Found {len(hits)} matching line(s):\n" + _clip("\n".join(hits)), ""


def _log_monitor_impl(log_path: str, recent: int = 100) -> tuple[bool, str, str]:
    """File stats followed by the most recent lines."""
    if recent < 0:
        return _err(ErrorCode.INVALID_ARGUMENT, f"recent must be >= 0, got {recent}")
    path, lines, error = _load_log(log_path)
    if path is None:
        return False, "", error
    st = path.stat()
    modified = datetime.fromtimestamp(st.st_mtime).strftime("%Y-%m-%d %H:%M:%S")
    out = [
        f"File: {path}",
        f"Size: {st.st_size} bytes",
        f"Last Modified: {modified}",
        f"Total Lines: {len(lines)}",
        f"Recent Lines ({recent}):",
        "-" * 80,
    ]
    out.extend(lines[max(0, len(lines) - recent):])
    return True, "\n".join(out), ""


def _log_filter_impl(log_path: str, level: str) -> tuple[bool, str, str]:
    """Lines containing a level name (Error, Warning, Info, Debug), case-insensitive."""
    if not level.strip():
        return _err(ErrorCode.INVALID_ARGUMENT, "level must not be empty")
    path, lines, error = _load_log(log_path)
    if path is None:
        return False, "", error
    wanted = level.casefold()
    filtered = [line for line in lines if wanted in line.casefold()]
    if not filtered:
        return True, f"No entries found with log level '{level}'", ""
    header = f"Found {len(filtered)} entries with level '{level}':"
    return True, header + "\n\n" + _clip("\n".join(filtered)), ""


# --- Environment ---


def _env_list_impl() -> tuple[bool, str, str]:
    """Snapshot of all environment variables as sorted NAME=value lines."""
    snapshot = dict(os.environ)
    return True, "\n".join(f"{k}={v}" for k, v in sorted(snapshot.items())), ""


def _env_get_impl(name: str) -> tuple[bool, str, str]:
    """One variable. A missing variable is NotFound; an empty value is success."""
    if not name:
        return _err(ErrorCode.INVALID_ARGUMENT, "variable name must not be empty")
    value = os.environ.get(name)
    if value is None:
        return _err(ErrorCode.NOT_FOUND, f"Environment variable '{name}' not found")
    return True, value, ""


# --- Processes ---


def _bare_name(name: str) -> str:
    name = name.strip().lower()
    return name[:-4] if name.endswith(".exe") else name


def _find_process(identifier: str) -> psutil.Process | Failure:
    """Resolve a pid or a process name. By name, the first match wins."""
    ident = identifier.strip()
    if not ident:
        return Failure(ErrorCode.INVALID_ARGUMENT, "process identifier must not be empty")
    if ident.isdigit():
        try:
            return psutil.Process(int(ident))
        except psutil.NoSuchProcess:
            return Failure(ErrorCode.PROCESS_NOT_FOUND, f"No process with PID {ident}")
        except psutil.AccessDenied:
            return Failure(ErrorCode.PERMISSION_DENIED, f"Access denied to PID {ident}")
    wanted = _bare_name(ident)
    for proc in psutil.process_iter(["name"]):
        if _bare_name(proc.info.get("name") or "") == wanted:
            return proc
    return Failure(ErrorCode.PROCESS_NOT_FOUND, f"Process '{identifier}' not found")


def _has_exited(proc: psutil.Process) -> bool:
    try:
        return proc.status() == psutil.STATUS_ZOMBIE
    except psutil.NoSuchProcess:
        return True


def _wait_gone(proc: psutil.Process, timeout: float) -> bool:
    """Poll until the process exits or turns zombie. Works for non-children too."""
    deadline = time.monotonic() + timeout
    while True:
        if _has_exited(proc):
            return True
        if time.monotonic() >= deadline:
            return False
        time.sleep(_WAIT_SLICE_S)


def kill_process(identifier: str, graceful_wait: float | None = None) -> KillOutcome | Failure:
    """Terminate a process: polite request first, force after graceful_wait seconds.

    Args:
        identifier: Numeric PID, or process name (first match wins)
        graceful_wait: Seconds to wait before force-killing (default: CONFIG kill_wait_s)
    """
    wait_s = CONFIG["kill_wait_s"] if graceful_wait is None else graceful_wait
    if not math.isfinite(wait_s) or wait_s < 0:
        return Failure(ErrorCode.INVALID_ARGUMENT, f"graceful wait must be a number >= 0, got {wait_s}")
    found = _find_process(identifier)
    if isinstance(found, Failure):
        _log("WARN", "kill", identifier, detail=str(found))
        return found

    proc = found
    try:
        name = proc.name()
        if _has_exited(proc):
            return Failure(
                ErrorCode.ALREADY_EXITED, f"Process '{name}' (PID: {proc.pid}) has already exited"
            )
        proc.terminate()
        forced = not _wait_gone(proc, wait_s)
        if forced:
            proc.kill()
            _wait_gone(proc, CONFIG["kill_wait_s"])
    except psutil.NoSuchProcess:
        return Failure(ErrorCode.ALREADY_EXITED, f"Process {identifier} exited before it could be signalled")
    except psutil.AccessDenied:
        return Failure(ErrorCode.PERMISSION_DENIED, f"Access denied to process {identifier}")

    _log(
        "WARN" if forced else "INFO",
        "kill",
        f"{name} pid={proc.pid}",
        metrics=f"forced={forced} graceful_wait_s={wait_s}",
    )
    return KillOutcome(pid=proc.pid, name=name, forced=forced)


def _kill_impl(identifier: str, graceful_wait: float | None = None) -> tuple[bool, str, str]:
    result = kill_process(identifier, graceful_wait)
    if isinstance(result, Failure):
        return False, "", str(result)
    how = "force-killed after graceful wait" if result.forced else "exited gracefully"
    return True, f"Successfully terminated process '{result.name}' (PID: {result.pid}), {how}", ""


def _fmt_time(epoch: float | None) -> str:
    if not epoch:
        return "-"
    return datetime.fromtimestamp(epoch).strftime("%Y-%m-%d %H:%M:%S")


def _ps_impl() -> tuple[bool, str, str]:
    """Process snapshot, top N by resident memory. Uninspectable processes are skipped.

    CLI: ps
    MCP: ps
    """
    start_ms = time.time() * 1000
    rows: list[tuple[int, int, str, float | None]] = []
    total = 0
    for proc in psutil.process_iter(["pid", "name", "memory_info", "create_time"]):
        total += 1
        mem = proc.info.get("memory_info")
        if mem is None:
            continue
        rows.append((mem.rss, proc.info["pid"], proc.info.get("name") or "?", proc.info.get("create_time")))
    rows.sort(key=lambda r: r[0], reverse=True)

    rule = "-" * 100
    out = [
        f"Total Processes: {total}",
        rule,
        f"{'PID':<8} {'Process Name':<40} {'Memory (MB)':<15} Start Time",
        rule,
    ]
    for rss, pid, name, created in rows[: CONFIG["process_limit"]]:
        out.append(f"{pid:<8} {name[:40]:<40} {rss // (1024 * 1024):<15} {_fmt_time(created)}")

    latency_ms = round(time.time() * 1000 - start_ms, 2)
    _log("INFO", "ps", f"{total} processes", metrics=f"latency_ms={latency_ms} shown={min(len(rows), CONFIG['process_limit'])}")
    return True, "\n".join(out), ""


def _proc_info_impl(identifier: str) -> tuple[bool, str, str]:
    """Details for one process. Optional fields are best-effort."""
    found = _find_process(identifier)
    if isinstance(found, Failure):
        return False, "", str(found)
    proc = found
    try:
        with proc.oneshot():
            cpu = proc.cpu_times()
            out = [
                f"Process Name: {proc.name()}",
                f"Process ID: {proc.pid}",
                f"Memory Usage: {proc.memory_info().rss // (1024 * 1024)} MB",
                f"CPU Time: {cpu.user + cpu.system:.2f}s",
                f"Start Time: {_fmt_time(proc.create_time())}",
                f"Status: {'Exited' if _has_exited(proc) else 'Running'} ({proc.status()})",
            ]
            try:
                out.append(f"Priority: {proc.nice()}")
                out.append(f"Command Line: {shlex.join(proc.cmdline())}")
            except (psutil.AccessDenied, psutil.ZombieProcess):
                pass
    except psutil.NoSuchProcess:
        return _err(ErrorCode.PROCESS_NOT_FOUND, f"Process {identifier} disappeared")
    except psutil.AccessDenied:
        return _err(ErrorCode.PERMISSION_DENIED, f"Access denied to process {identifier}")
    return True, "\n".join(out), ""


# =============================================================================
# CLI INTERFACE
# =============================================================================
def _emit(result: tuple[bool, str, str]) -> None:
    success, content, error = result
    if success:
        print(content)
        return
    if content:
        print(content)
    print(f"Error: {error}", file=sys.stderr)
    sys.exit(1)


def _stdin_fallback(value: str | None) -> str | None:
    if not value and not sys.stdin.isatty():
        return sys.stdin.read().strip()
    return value


def main():
    import argparse

    parser = argparse.ArgumentParser(
        description="Bounded process execution: run, build, logs, environment, processes"
    )
    parser.add_argument("-V", "--version", action="version", version=CONFIG["version"])
    sub = parser.add_subparsers(dest="command", help="Commands")

    # --- mcp-stdio ---
    sub.add_parser("mcp-stdio", help="Run as MCP server")

    # --- Runner ---
    p_run = sub.add_parser("run", help="Run a command with timeout and captured output")
    p_run.add_argument("cmd", nargs="?", default=None)
    p_run.add_argument("-C", "--cwd", default=".")
    p_run.add_argument("-t", "--timeout", type=float, default=None)
    p_run.add_argument("-s", "--shell", action="store_true", help="Pass to the system shell")

    p_shell = sub.add_parser("shell", help="Run a shell command line")
    p_shell.add_argument("cmd", nargs="?", default=None)
    p_shell.add_argument("-C", "--cwd", default=".")
    p_shell.add_argument("-t", "--timeout", type=float, default=None)

    # --- Build / execute ---
    p_compile = sub.add_parser("compile", help="Restore and build a project")
    p_compile.add_argument("project")
    p_compile.add_argument("-c", "--configuration", default="Debug")
    p_compile.add_argument("-n", "--no-restore", action="store_true")

    p_check = sub.add_parser("check-build", help="Check a project for compile errors")
    p_check.add_argument("project")

    p_exec = sub.add_parser("execute", help="Run a project through the toolchain")
    p_exec.add_argument("project")
    p_exec.add_argument("-a", "--args", dest="arguments", default="")
    p_exec.add_argument("-t", "--timeout", type=float, default=None)

    p_exe = sub.add_parser("run-exe", help="Run an executable directly")
    p_exe.add_argument("executable")
    p_exe.add_argument("-a", "--args", dest="arguments", default="")
    p_exe.add_argument("-w", "--workdir", default="")
    p_exe.add_argument("-t", "--timeout", type=float, default=None)

    p_snip = sub.add_parser("snippet", help="Run a code snippet (code from arg or stdin)")
    p_snip.add_argument("code", nargs="?", default=None)
    p_snip.add_argument("-l", "--language", default="python", choices=list(SNIPPET_LANGUAGES))
    p_snip.add_argument("-i", "--imports", default="")

    # --- Logs ---
    p_lread = sub.add_parser("log-read", help="Read a whole log file")
    p_lread.add_argument("file", nargs="?", default=None)

    p_ltail = sub.add_parser("log-tail", help="Last N lines of a log file")
    p_ltail.add_argument("file", nargs="?", default=None)
    p_ltail.add_argument("-n", "--lines", type=int, default=50)

    p_lsearch = sub.add_parser("log-search", help="Search a log file")
    p_lsearch.add_argument("file")
    p_lsearch.add_argument("pattern")
    p_lsearch.add_argument("-r", "--regex", action="store_true")
    p_lsearch.add_argument("-c", "--case-sensitive", action="store_true")

    p_lmon = sub.add_parser("log-monitor", help="Log stats plus recent lines")
    p_lmon.add_argument("file", nargs="?", default=None)
    p_lmon.add_argument("-n", "--recent", type=int, default=100)

    p_lfilter = sub.add_parser("log-filter", help="Filter a log file by level")
    p_lfilter.add_argument("file")
    p_lfilter.add_argument("level")

    # --- Environment ---
    sub.add_parser("env-list", help="All environment variables")
    p_env = sub.add_parser("env-get", help="One environment variable")
    p_env.add_argument("name")

    # --- Processes ---
    sub.add_parser("ps", help="Process snapshot by memory")
    p_info = sub.add_parser("proc-info", help="Details for one process")
    p_info.add_argument("identifier")
    p_kill = sub.add_parser("kill", help="Terminate a process (graceful, then forced)")
    p_kill.add_argument("identifier")
    p_kill.add_argument("-w", "--wait", type=float, default=None, help="Graceful wait seconds")

    args = parser.parse_args()

    try:
        if args.command == "mcp-stdio":
            _run_mcp()
        elif args.command in ("run", "shell"):
            cmd = _stdin_fallback(args.cmd)
            assert cmd, f"command required. Usage: sft_exec.py {args.command} <command>"
            shell = args.command == "shell" or args.shell
            _emit(_run_impl(cmd, args.cwd, timeout=args.timeout, shell=shell))
        elif args.command == "compile":
            _emit(_compile_impl(args.project, args.configuration, restore=not args.no_restore))
        elif args.command == "check-build":
            _emit(_check_build_impl(args.project))
        elif args.command == "execute":
            _emit(_execute_impl(args.project, args.arguments, timeout=args.timeout))
        elif args.command == "run-exe":
            _emit(_run_exe_impl(args.executable, args.arguments, args.workdir, timeout=args.timeout))
        elif args.command == "snippet":
            code = args.code
            if not code and not sys.stdin.isatty():
                code = sys.stdin.read()
            assert code, "code required. Usage: sft_exec.py snippet <code>"
            _emit(_snippet_impl(code, args.language, args.imports))
        elif args.command == "log-read":
            path = _stdin_fallback(args.file)
            assert path, "file required. Usage: sft_exec.py log-read <file>"
            _emit(_log_read_impl(path))
        elif args.command == "log-tail":
            path = _stdin_fallback(args.file)
            assert path, "file required. Usage: sft_exec.py log-tail <file>"
            _emit(_log_tail_impl(path, args.lines))
        elif args.command == "log-search":
            _emit(_log_search_impl(args.file, args.pattern, args.regex, args.case_sensitive))
        elif args.command == "log-monitor":
            path = _stdin_fallback(args.file)
            assert path, "file required. Usage: sft_exec.py log-monitor <file>"
            _emit(_log_monitor_impl(path, args.recent))
        elif args.command == "log-filter":
            _emit(_log_filter_impl(args.file, args.level))
        elif args.command == "env-list":
            _emit(_env_list_impl())
        elif args.command == "env-get":
            _emit(_env_get_impl(args.name))
        elif args.command == "ps":
            _emit(_ps_impl())
        elif args.command == "proc-info":
            _emit(_proc_info_impl(args.identifier))
        elif args.command == "kill":
            _emit(_kill_impl(args.identifier, args.wait))
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

    mcp = FastMCP("exec")

    # --- Runner ---

    @mcp.tool()
    def run(command: str, cwd: str = ".", timeout: float | None = None, shell: bool = False) -> str:
        """Run a command with a wall-clock timeout and captured stdout/stderr.

        On timeout the process tree is killed and partial output is returned.

        Args:
            command: Executable plus arguments (or a shell line when shell=true)
            cwd: Working directory (must exist)
            timeout: Seconds before the process tree is killed (default: 30)
            shell: Pass the command to the system shell
        """
        success, content, error = _run_impl(command, cwd, timeout=timeout, shell=shell)
        return content if success else f"ERROR: {error}"

    @mcp.tool()
    def shell(command: str, cwd: str = ".", timeout: float | None = None) -> str:
        """Run a shell command line with timeout and captured output.

        Args:
            command: Command line for the system shell
            cwd: Working directory (must exist)
            timeout: Seconds before the process tree is killed (default: 30)
        """
        success, content, error = _run_impl(command, cwd, timeout=timeout, shell=True)
        return content if success else f"ERROR: {error}"

    # --- Build / execute ---

    @mcp.tool()
    def compile(project_path: str, configuration: str = "Debug", restore: bool = True) -> str:
        """Build the project with the configured toolchain (restore first by default).

        Args:
            project_path: Project directory
            configuration: Build configuration (Debug or Release)
            restore: Run the restore command before building
        """
        success, content, error = _compile_impl(project_path, configuration, restore)
        return content if success else f"ERROR: {error}\n{content}".rstrip()

    @mcp.tool()
    def check_build(project_path: str) -> str:
        """Check the project for compilation errors without a full rebuild.

        Args:
            project_path: Project directory
        """
        success, content, error = _check_build_impl(project_path)
        return content if success else f"ERROR: {error}"

    @mcp.tool()
    def execute(project_path: str, arguments: str = "", timeout: float | None = None) -> str:
        """Run the project through the toolchain's run command and capture output.

        Args:
            project_path: Project directory
            arguments: Arguments passed to the application after `--`
            timeout: Seconds before the process tree is killed (default: 30)
        """
        success, content, error = _execute_impl(project_path, arguments, timeout=timeout)
        return content if success else f"ERROR: {error}"

    @mcp.tool()
    def run_exe(
        executable_path: str,
        arguments: str = "",
        working_dir: str = "",
        timeout: float | None = None,
    ) -> str:
        """Run an executable file directly and capture output.

        Args:
            executable_path: Path to the executable
            arguments: Argument string (split like a shell would)
            working_dir: Working directory (default: the executable's directory)
            timeout: Seconds before the process tree is killed (default: 30)
        """
        success, content, error = _run_exe_impl(executable_path, arguments, working_dir, timeout=timeout)
        return content if success else f"ERROR: {error}"

    @mcp.tool()
    def snippet(code: str, language: str = "python", imports: str = "") -> str:
        """Run a code snippet in a temp file and return its output.

        Args:
            code: Source code to run
            language: python, bash or node
            imports: Comma-separated modules to import first (python only)
        """
        success, content, error = _snippet_impl(code, language, imports)
        return content if success else f"ERROR: {error}"

    # --- Logs ---

    @mcp.tool()
    def log_read(path: str) -> str:
        """Read a log file.

        Args:
            path: Log file path
        """
        success, content, error = _log_read_impl(path)
        return content if success else f"ERROR: {error}"

    @mcp.tool()
    def log_tail(path: str, lines: int = 50) -> str:
        """Last N lines of a log file.

        Args:
            path: Log file path
            lines: Number of lines from the end (default: 50)
        """
        success, content, error = _log_tail_impl(path, lines)
        return content if success else f"ERROR: {error}"

    @mcp.tool()
    def log_search(path: str, pattern: str, regex: bool = False, case_sensitive: bool = False) -> str:
        """Search a log file for matching lines.

        Args:
            path: Log file path
            pattern: Text or regex to find
            regex: Treat pattern as a regular expression
            case_sensitive: Match case exactly
        """
        success, content, error = _log_search_impl(path, pattern, regex, case_sensitive)
        return content if success else f"ERROR: {error}"

    @mcp.tool()
    def log_monitor(path: str, recent: int = 100) -> str:
        """Log file stats (size, modified, line count) plus the most recent lines.

        Args:
            path: Log file path
            recent: Number of recent lines (default: 100)
        """
        success, content, error = _log_monitor_impl(path, recent)
        return content if success else f"ERROR: {error}"

    @mcp.tool()
    def log_filter(path: str, level: str) -> str:
        """Lines of a log file containing a level name (Error, Warning, Info, Debug).

        Args:
            path: Log file path
            level: Level name, matched case-insensitively
        """
        success, content, error = _log_filter_impl(path, level)
        return content if success else f"ERROR: {error}"

    # --- Environment ---

    @mcp.tool()
    def env_list() -> str:
        """All environment variables as NAME=value lines."""
        success, content, error = _env_list_impl()
        return content if success else f"ERROR: {error}"

    @mcp.tool()
    def env_get(name: str) -> str:
        """Value of one environment variable. Missing variables return a NotFound error.

        Args:
            name: Variable name
        """
        success, content, error = _env_get_impl(name)
        return content if success else f"ERROR: {error}"

    # --- Processes ---

    @mcp.tool()
    def ps() -> str:
        """Snapshot of running processes, top 50 by memory."""
        success, content, error = _ps_impl()
        return content if success else f"ERROR: {error}"

    @mcp.tool()
    def proc_info(identifier: str) -> str:
        """Details about one process.

        Args:
            identifier: PID or process name (first match wins)
        """
        success, content, error = _proc_info_impl(identifier)
        return content if success else f"ERROR: {error}"

    @mcp.tool()
    def kill(identifier: str, graceful_wait: float | None = None) -> str:
        """Terminate a process: polite shutdown first, force-kill after the wait.

        Args:
            identifier: PID or process name (first match wins)
            graceful_wait: Seconds to wait before force-killing (default: 5)
        """
        success, content, error = _kill_impl(identifier, graceful_wait)
        return content if success else f"ERROR: {error}"

    print("exec MCP server starting...", file=sys.stderr)
    mcp.run(transport="stdio")


if __name__ == "__main__":
    main()
