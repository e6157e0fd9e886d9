import os
import stat
from pathlib import Path

import pytest

import sft_exec
from sft_exec import (
    _check_build_impl,
    _compile_impl,
    _execute_impl,
    _run_exe_impl,
    _snippet_impl,
)

pytestmark = pytest.mark.skipif(os.name != "posix", reason="build commands use a POSIX shell")


@pytest.fixture
def toolchain(monkeypatch):
    monkeypatch.setitem(sft_exec.CONFIG, "restore_cmd", "echo restoring")
    monkeypatch.setitem(sft_exec.CONFIG, "build_cmd", "echo building {configuration}")
    monkeypatch.setitem(sft_exec.CONFIG, "check_cmd", "echo checked")
    monkeypatch.setitem(sft_exec.CONFIG, "run_cmd", "echo running")


def test_compile_restores_then_builds(tmp_path, toolchain):
    success, content, error = _compile_impl(str(tmp_path), "Release")
    assert success, error
    assert content.index("restoring") < content.index("building Release")
    assert content.count("Command: ") == 2


def test_compile_without_restore(tmp_path, toolchain):
    success, content, _ = _compile_impl(str(tmp_path), restore=False)
    assert success
    assert "restoring" not in content
    assert "building Debug" in content


def test_compile_reports_build_errors(tmp_path, monkeypatch):
    monkeypatch.setitem(sft_exec.CONFIG, "build_cmd", "echo 'error CS1002' >&2; exit 1")
    success, content, _ = _compile_impl(str(tmp_path), restore=False)
    assert success
    assert "Exit Code: 1" in content
    assert "Errors:\nerror CS1002" in content


def test_compile_missing_project(tmp_path, toolchain):
    success, _, error = _compile_impl(str(tmp_path / "missing"))
    assert not success
    assert error.startswith("NotFound:")


def test_compile_rejects_odd_configuration(tmp_path, toolchain):
    success, _, error = _compile_impl(str(tmp_path), "Debug; rm -rf /")
    assert not success
    assert error.startswith("InvalidArgument:")


def test_compile_missing_toolchain_keeps_earlier_steps(tmp_path, monkeypatch):
    monkeypatch.setitem(sft_exec.CONFIG, "restore_cmd", "echo restoring")
    monkeypatch.setitem(sft_exec.CONFIG, "build_cmd", "no-such-compiler-4821 {configuration}")
    success, content, _ = _compile_impl(str(tmp_path))
    # The shell starts fine and reports 127 for the unknown command.
    assert success
    assert "restoring" in content
    assert "Exit Code: 127" in content


def test_check_build(tmp_path, toolchain):
    success, content, _ = _check_build_impl(str(tmp_path))
    assert success
    assert "checked" in content


def test_execute_passes_arguments(tmp_path, toolchain):
    success, content, _ = _execute_impl(str(tmp_path), "alpha beta")
    assert success
    assert "running -- alpha beta" in content


def test_execute_missing_project(tmp_path, toolchain):
    success, _, error = _execute_impl(str(tmp_path / "missing"))
    assert not success
    assert error.startswith("NotFound:")


def _make_exe(path: Path, body: str) -> Path:
    path.write_text(f"#!/bin/sh\n{body}\n")
    path.chmod(path.stat().st_mode | stat.S_IXUSR)
    return path


def test_run_exe_defaults_to_its_directory(tmp_path):
    exe = _make_exe(tmp_path / "tool.sh", 'echo "arg=$1"; pwd')
    success, content, error = _run_exe_impl(str(exe), "'two words'")
    assert success, error
    assert "arg=two words" in content
    assert str(tmp_path.resolve()) in content


def test_run_exe_working_dir(tmp_path):
    exe = _make_exe(tmp_path / "tool.sh", "pwd")
    work = tmp_path / "work"
    work.mkdir()
    success, content, _ = _run_exe_impl(str(exe), working_dir=str(work))
    assert success
    assert f"Working Directory: {work.resolve()}" in content


def test_run_exe_missing(tmp_path):
    success, _, error = _run_exe_impl(str(tmp_path / "nope"))
    assert not success
    assert error.startswith("NotFound:")


def test_snippet_python_with_imports():
    success, content, error = _snippet_impl("print(json.dumps({'a': 1}))", imports="json, os")
    assert success, error
    assert "Exit Code: 0" in content
    assert '{"a": 1}' in content


def test_snippet_temp_file_is_removed():
    success, content, _ = _snippet_impl("print(__file__)")
    assert success
    script = content.split("Output:\n", 1)[1].splitlines()[0]
    assert script.endswith(".py")
    assert not Path(script).exists()


def test_snippet_bash():
    success, content, _ = _snippet_impl("echo from-bash", language="bash")
    assert success
    assert "from-bash" in content


def test_snippet_times_out(monkeypatch):
    monkeypatch.setitem(sft_exec.CONFIG, "snippet_timeout_s", 0.5)
    success, content, _ = _snippet_impl("import time\ntime.sleep(10)")
    assert success
    assert "timed out" in content


def test_snippet_unknown_language():
    success, _, error = _snippet_impl("x", language="cobol")
    assert not success
    assert error.startswith("InvalidArgument:")


def test_snippet_empty_code():
    success, _, error = _snippet_impl("   ")
    assert not success
    assert error.startswith("InvalidArgument:")


def test_run_exe_unbalanced_quote(tmp_path):
    exe = _make_exe(tmp_path / "tool.sh", "echo never")
    success, content, error = _run_exe_impl(str(exe), 'a "b')
    assert not success
    assert content == ""
    assert error.startswith("InvalidArgument:")
