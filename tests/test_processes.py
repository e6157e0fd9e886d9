import os
import subprocess
import sys
import time

import psutil
import pytest

from sft_exec import (
    ErrorCode,
    Failure,
    KillOutcome,
    _kill_impl,
    _proc_info_impl,
    _ps_impl,
    kill_process,
)

posix_only = pytest.mark.skipif(os.name != "posix", reason="needs POSIX exec semantics")


def _sleeper(code: str = "import time; time.sleep(30)") -> subprocess.Popen:
    return subprocess.Popen(
        [sys.executable, "-c", code],
        stdout=subprocess.PIPE,
        stderr=subprocess.DEVNULL,
        text=True,
    )


def _wait_for_zombie(pid: int, timeout: float = 5.0) -> None:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if psutil.Process(pid).status() == psutil.STATUS_ZOMBIE:
            return
        time.sleep(0.05)
    pytest.fail(f"pid {pid} never exited")


def test_unknown_pid_is_not_found():
    result = kill_process("9999999", 1)
    assert isinstance(result, Failure)
    assert result.code is ErrorCode.PROCESS_NOT_FOUND


def test_unknown_name_is_not_found():
    result = kill_process("no-such-process-name-4821", 1)
    assert isinstance(result, Failure)
    assert result.code is ErrorCode.PROCESS_NOT_FOUND


def test_blank_identifier_is_invalid():
    result = kill_process("  ", 1)
    assert isinstance(result, Failure)
    assert result.code is ErrorCode.INVALID_ARGUMENT


def test_negative_wait_is_invalid():
    result = kill_process(str(os.getpid()), -1)
    assert isinstance(result, Failure)
    assert result.code is ErrorCode.INVALID_ARGUMENT


@pytest.mark.skipif(os.name != "posix", reason="zombies are a POSIX state")
def test_exited_process_is_already_exited():
    proc = _sleeper("pass")
    try:
        _wait_for_zombie(proc.pid)
        result = kill_process(str(proc.pid), 1)
        assert isinstance(result, Failure)
        assert result.code is ErrorCode.ALREADY_EXITED
    finally:
        proc.wait()


def test_graceful_kill():
    proc = _sleeper()
    try:
        result = kill_process(str(proc.pid), 5)
        assert isinstance(result, KillOutcome)
        assert result.pid == proc.pid
        assert result.forced is False
    finally:
        proc.wait(timeout=5)


@pytest.mark.skipif(os.name != "posix", reason="SIGTERM handling is POSIX")
def test_ignored_terminate_is_forced():
    proc = _sleeper(
        "import signal, time; signal.signal(signal.SIGTERM, signal.SIG_IGN); "
        "print('ready', flush=True); time.sleep(30)"
    )
    try:
        assert proc.stdout.readline().strip() == "ready"
        result = kill_process(str(proc.pid), 0.5)
        assert isinstance(result, KillOutcome)
        assert result.forced is True
        assert proc.wait(timeout=5) == -9
    finally:
        if proc.poll() is None:
            proc.kill()
            proc.wait()


def test_kill_impl_message():
    proc = _sleeper()
    try:
        success, content, error = _kill_impl(str(proc.pid), 5)
        assert success, error
        assert f"(PID: {proc.pid})" in content
        assert "exited gracefully" in content
    finally:
        proc.wait(timeout=5)


def test_kill_impl_not_found_error():
    success, content, error = _kill_impl("9999999", 0)
    assert not success
    assert content == ""
    assert error.startswith("ProcessNotFound:")


def test_ps_snapshot():
    success, content, _ = _ps_impl()
    assert success
    lines = content.splitlines()
    assert lines[0].startswith("Total Processes: ")
    assert "PID" in lines[2] and "Memory (MB)" in lines[2]
    assert len(lines) > 4


def test_proc_info_for_self():
    success, content, error = _proc_info_impl(str(os.getpid()))
    assert success, error
    assert f"Process ID: {os.getpid()}" in content
    assert "Memory Usage:" in content
    assert "Status: Running" in content


def test_proc_info_unknown():
    success, _, error = _proc_info_impl("9999999")
    assert not success
    assert error.startswith("ProcessNotFound:")


@pytest.mark.parametrize("wait", [float("nan"), float("inf")])
def test_non_finite_wait_is_invalid(wait):
    result = kill_process(str(os.getpid()), wait)
    assert isinstance(result, Failure)
    assert result.code is ErrorCode.INVALID_ARGUMENT


@pytest.fixture
def named_child(tmp_path):
    """A sleeping interpreter started through a symlink, so its process name is unique."""
    name = f"sftk{os.getpid() % 100000}"
    link = tmp_path / name
    link.symlink_to(os.path.realpath(sys.executable))
    proc = subprocess.Popen(
        [str(link), "-c", "import time; print('ready', flush=True); time.sleep(30)"],
        stdout=subprocess.PIPE,
        stderr=subprocess.DEVNULL,
        text=True,
    )
    try:
        assert proc.stdout.readline().strip() == "ready"
        yield name, proc
    finally:
        if proc.poll() is None:
            proc.kill()
        proc.wait()


@posix_only
def test_proc_info_by_name(named_child):
    name, proc = named_child
    success, content, error = _proc_info_impl(name)
    assert success, error
    assert f"Process Name: {name}" in content
    assert f"Process ID: {proc.pid}" in content


@posix_only
def test_kill_by_name_ignores_case_and_exe_suffix(named_child):
    name, proc = named_child
    result = kill_process(f"{name.upper()}.EXE", 5)
    assert isinstance(result, KillOutcome)
    assert result.pid == proc.pid
    assert result.name == name
    assert result.forced is False
    assert proc.wait(timeout=5) is not None
