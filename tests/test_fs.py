import os

import pytest

from sft_fs import (
    ErrorCode,
    _abspath_impl,
    _append_impl,
    _copy_impl,
    _count_lines_impl,
    _delete_impl,
    _delete_line_impl,
    _dir_exists_impl,
    _exists_impl,
    _info_impl,
    _insert_line_impl,
    _list_files_impl,
    _mkdir_impl,
    _move_impl,
    _read_impl,
    _read_lines_impl,
    _replace_impl,
    _replace_line_impl,
    _rmdir_impl,
    _search_impl,
    _write_impl,
)


@pytest.fixture
def notes(tmp_path):
    path = tmp_path / "notes.txt"
    path.write_bytes(b"alpha\nbeta\ngamma\n")
    return path


def test_write_creates_parents_and_verifies(tmp_path):
    target = tmp_path / "a" / "b" / "out.txt"
    success, content, error = _write_impl(str(target), "hello\n")
    assert success, error
    assert content.startswith("Created ")
    assert content.endswith("[verified]")
    assert target.read_text() == "hello\n"


def test_write_overwrites(notes):
    success, content, _ = _write_impl(str(notes), "new")
    assert success
    assert content.startswith("Wrote ")
    assert notes.read_text() == "new"


def test_write_to_directory_is_invalid(tmp_path):
    success, _, error = _write_impl(str(tmp_path), "x")
    assert not success
    assert error.startswith("InvalidArgument:")


def test_read(notes):
    assert _read_impl(str(notes)) == (True, "alpha\nbeta\ngamma\n", "")


def test_read_missing(tmp_path):
    success, _, error = _read_impl(str(tmp_path / "missing.txt"))
    assert not success
    assert error.startswith("NotFound:")


def test_read_lines_range(notes):
    assert _read_lines_impl(str(notes), 2, 3) == (True, "beta\ngamma", "")


def test_read_lines_to_end(notes):
    assert _read_lines_impl(str(notes), 2) == (True, "beta\ngamma", "")


@pytest.mark.parametrize("start,end", [(0, 1), (4, 0), (2, 1), (1, 9)])
def test_read_lines_out_of_range(notes, start, end):
    success, _, error = _read_lines_impl(str(notes), start, end)
    assert not success
    assert error.startswith("InvalidArgument:")


def test_append_creates_and_appends(tmp_path):
    target = tmp_path / "log.txt"
    assert _append_impl(str(target), "one\n")[0]
    assert _append_impl(str(target), "two\n")[0]
    assert target.read_text() == "one\ntwo\n"


def test_replace_all_occurrences(tmp_path):
    target = tmp_path / "t.txt"
    target.write_text("a-a-a")
    success, content, _ = _replace_impl(str(target), "a", "b")
    assert success
    assert "3 occurrence" in content
    assert target.read_text() == "b-b-b"


def test_replace_absent_text(notes):
    success, _, error = _replace_impl(str(notes), "delta", "x")
    assert not success
    assert error.startswith("NotFound:")


def test_replace_line(notes):
    assert _replace_line_impl(str(notes), 2, "BETA")[0]
    assert notes.read_bytes() == b"alpha\nBETA\ngamma\n"


def test_replace_line_out_of_range(notes):
    success, _, error = _replace_line_impl(str(notes), 4, "x")
    assert not success
    assert error.startswith("InvalidArgument:")


def test_insert_line_first_and_last(notes):
    assert _insert_line_impl(str(notes), 1, "zero")[0]
    assert _insert_line_impl(str(notes), 5, "omega")[0]
    assert notes.read_bytes() == b"zero\nalpha\nbeta\ngamma\nomega\n"


def test_insert_line_out_of_range(notes):
    success, _, error = _insert_line_impl(str(notes), 5, "x")
    assert not success
    assert error.startswith("InvalidArgument:")


def test_insert_line_into_empty_file(tmp_path):
    target = tmp_path / "empty.txt"
    target.write_bytes(b"")
    assert _insert_line_impl(str(target), 1, "first")[0]
    assert target.read_bytes() == b"first\n"


def test_delete_line(notes):
    assert _delete_line_impl(str(notes), 1)[0]
    assert notes.read_bytes() == b"beta\ngamma\n"


def test_line_edits_keep_crlf(tmp_path):
    target = tmp_path / "win.txt"
    target.write_bytes(b"one\r\ntwo\r\n")
    assert _replace_line_impl(str(target), 2, "TWO")[0]
    assert target.read_bytes() == b"one\r\nTWO\r\n"


def test_line_edits_keep_missing_trailing_newline(tmp_path):
    target = tmp_path / "bare.txt"
    target.write_bytes(b"one\ntwo")
    assert _delete_line_impl(str(target), 1)[0]
    assert target.read_bytes() == b"two"


def test_count_lines(notes):
    assert _count_lines_impl(str(notes)) == (True, "3", "")


def test_search(notes):
    success, content, _ = _search_impl(str(notes), "A")
    assert success
    assert content.splitlines() == [
        "Found 3 matching line(s):",
        "Line 1: alpha",
        "Line 2: beta",
        "Line 3: gamma",
    ]


def test_search_case_sensitive_no_hits(notes):
    success, content, _ = _search_impl(str(notes), "A", case_sensitive=True)
    assert success
    assert content.startswith("No matches found")


def test_exists_and_dir_exists(notes, tmp_path):
    assert _exists_impl(str(notes)) is True
    assert _exists_impl(str(tmp_path)) is False
    assert _dir_exists_impl(str(tmp_path)) is True
    assert _dir_exists_impl(str(notes)) is False


def test_info(notes):
    success, content, _ = _info_impl(str(notes))
    assert success
    assert "Size: 17 bytes" in content
    assert "Extension: .txt" in content
    assert "Is Read-Only:" in content


def test_delete(notes):
    assert _delete_impl(str(notes))[0]
    assert not notes.exists()
    success, _, error = _delete_impl(str(notes))
    assert not success
    assert error.startswith("NotFound:")


def test_copy_refuses_overwrite_by_default(notes, tmp_path):
    dest = tmp_path / "copy.txt"
    assert _copy_impl(str(notes), str(dest))[0]
    assert dest.read_bytes() == notes.read_bytes()
    success, _, error = _copy_impl(str(notes), str(dest))
    assert not success
    assert error.startswith("InvalidArgument:")
    assert _copy_impl(str(notes), str(dest), overwrite=True)[0]


def test_move_with_overwrite(notes, tmp_path):
    dest = tmp_path / "moved.txt"
    dest.write_text("old")
    assert not _move_impl(str(notes), str(dest))[0]
    success, content, _ = _move_impl(str(notes), str(dest), overwrite=True)
    assert success
    assert content.startswith("Moved: ")
    assert not notes.exists()
    assert dest.read_text() == "alpha\nbeta\ngamma\n"


def test_move_missing_source(tmp_path):
    success, _, error = _move_impl(str(tmp_path / "a"), str(tmp_path / "b"))
    assert not success
    assert error.startswith("NotFound:")


def test_list_files(tmp_path):
    (tmp_path / "b.txt").write_text("")
    (tmp_path / "a.txt").write_text("")
    (tmp_path / "c.log").write_text("")
    (tmp_path / "sub").mkdir()
    assert _list_files_impl(str(tmp_path)) == (True, "a.txt\nb.txt\nc.log", "")
    assert _list_files_impl(str(tmp_path), "*.txt") == (True, "a.txt\nb.txt", "")


def test_mkdir_and_rmdir(tmp_path):
    target = tmp_path / "x" / "y"
    success, content, _ = _mkdir_impl(str(target))
    assert success and content.startswith("Created directory")
    success, content, _ = _mkdir_impl(str(target))
    assert success and content.startswith("Directory already exists")
    assert _rmdir_impl(str(target))[0]
    assert not target.exists()


def test_rmdir_non_empty_needs_recursive(tmp_path):
    target = tmp_path / "full"
    target.mkdir()
    (target / "f.txt").write_text("x")
    success, _, error = _rmdir_impl(str(target))
    assert not success
    assert error.startswith("InvalidArgument:")
    assert _rmdir_impl(str(target), recursive=True)[0]
    assert not target.exists()


def test_abspath(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    assert _abspath_impl("sub/file.txt") == (True, os.path.join(str(tmp_path), "sub", "file.txt"), "")


@pytest.mark.skipif(os.name != "posix" or os.geteuid() == 0, reason="root ignores file modes")
def test_permission_denied(tmp_path):
    target = tmp_path / "locked.txt"
    target.write_text("secret")
    target.chmod(0)
    try:
        success, _, error = _read_impl(str(target))
        assert not success
        assert error.startswith("PermissionDenied:")
    finally:
        target.chmod(0o644)


@pytest.mark.parametrize("pattern", ["/etc/*", "**x"])
def test_list_files_bad_pattern(tmp_path, pattern):
    success, _, error = _list_files_impl(str(tmp_path), pattern)
    assert not success
    assert error.startswith("InvalidArgument:")


def test_nul_in_path_is_an_error_value(tmp_path):
    bad = f"{tmp_path}/a\x00b.txt"
    for result in (_read_impl(bad), _write_impl(bad, "x"), _delete_impl(bad), _info_impl(bad)):
        success, _, error = result
        assert not success
        assert error.split(":", 1)[0] in ("InvalidArgument", "NotFound")
    assert _exists_impl(bad) is False
    assert _dir_exists_impl(bad) is False


def test_error_codes_render_as_values():
    assert ErrorCode.IO_FAILURE.value == "IOFailure"
    assert [code.value for code in ErrorCode] == [
        "NotFound",
        "InvalidArgument",
        "PermissionDenied",
        "IOFailure",
    ]
