from __future__ import annotations

from pathlib import Path

import pytest

from dircontxt.config import AppConfig, OutputMode
from dircontxt.errors import ClipboardError
from dircontxt.models import ChangeType, index_by_path
from dircontxt.reader import open_archive
from dircontxt.snapshot import take_snapshot

from conftest import DEEP_LEVELS, set_mtime, write_files


@pytest.fixture
def project(tmp_path) -> Path:
    root = write_files(
        tmp_path / "proj",
        {
            "src/main.c": "int main(void) { return 0; }\n",
            "README.md": "# proj\n",
            "build/out.o": b"\x7fELF\x00\x00",
            ".dircontxtignore": "build/\n",
        },
    )
    for path in root.rglob("*"):
        if path.is_file():
            set_mtime(path, 1_700_000_000)
    return root


def _snap(target: Path, **kwargs):
    kwargs.setdefault("config", AppConfig())
    kwargs.setdefault("global_ignore", target.parent / "no-global-ignore")
    return take_snapshot(target, **kwargs)


def test_first_snapshot_writes_archive_and_text(project, tmp_path) -> None:
    result = _snap(project)

    assert result.version == "V1"
    assert result.previous_version is None
    assert result.report is None
    assert result.written == [tmp_path / "proj.dircontxt", tmp_path / "proj.llmcontext.txt"]
    text = (tmp_path / "proj.llmcontext.txt").read_text(encoding="utf-8")
    assert text.startswith("[DIRCONTXT_LLM_SNAPSHOT_V1]\n")
    assert "src/main.c" in text
    assert "build" not in text
    assert ".dircontxtignore" not in text


def test_archive_content_can_be_recovered(project, tmp_path) -> None:
    result = _snap(project)

    with open_archive(result.paths.archive) as archive:
        index = index_by_path(archive.root)
        assert "build" not in index
        assert ".dircontxtignore" not in index
        assert archive.read(index["src/main.c"]) == b"int main(void) { return 0; }\n"
        assert index["src/main.c"].mtime == 1_700_000_000
    assert result.files == 2


def test_second_snapshot_bumps_version_and_writes_diff(project, tmp_path) -> None:
    _snap(project)
    (project / "src" / "main.c").write_text("int main(void) { return 1 + 1; }\n", encoding="utf-8")
    (project / "NEW.txt").write_text("hello\n", encoding="utf-8")
    (project / "README.md").unlink()

    result = _snap(project)

    assert result.version == "V1.1"
    assert result.previous_version == "V1"
    changes = {(entry.change, entry.relpath) for entry in result.report.entries}
    assert changes == {
        (ChangeType.MODIFIED, "src/main.c"),
        (ChangeType.ADDED, "NEW.txt"),
        (ChangeType.REMOVED, "README.md"),
    }
    diff_path = tmp_path / "proj.llmcontext-V1.1-diff.txt"
    assert diff_path in result.written
    diff = diff_path.read_text(encoding="utf-8")
    assert diff.startswith("[DIRCONTXT_LLM_DIFF_V1_TO_V1.1]\n")
    assert "return 1 + 1" in diff
    snapshot = (tmp_path / "proj.llmcontext.txt").read_text(encoding="utf-8")
    assert snapshot.startswith("[DIRCONTXT_LLM_SNAPSHOT_V1.1]\n")


def test_touch_only_change_produces_no_diff(project, tmp_path) -> None:
    _snap(project)
    set_mtime(project / "src" / "main.c", 1_800_000_000)

    result = _snap(project)

    assert result.version == "V1.1"
    assert result.report is not None
    assert not result.report.has_changes
    assert not (tmp_path / "proj.llmcontext-V1.1-diff.txt").exists()


def test_binary_mode_keeps_only_the_archive(project, tmp_path) -> None:
    result = _snap(project, config=AppConfig(OutputMode.BINARY))

    assert result.written == [tmp_path / "proj.dircontxt"]
    assert (tmp_path / "proj.dircontxt").exists()
    assert not (tmp_path / "proj.llmcontext.txt").exists()


def test_clipboard_mode_leaves_no_files(project, tmp_path, monkeypatch) -> None:
    copied: list[str] = []
    monkeypatch.setattr("pyperclip.copy", copied.append)

    result = _snap(project, clipboard=True)

    assert result.copied_to_clipboard
    assert result.written == []
    assert len(copied) == 1
    assert copied[0].startswith("[DIRCONTXT_LLM_SNAPSHOT_V1]\n")
    assert not (tmp_path / "proj.dircontxt").exists()
    assert not (tmp_path / "proj.llmcontext.txt").exists()


def test_clipboard_failure_still_removes_archive(project, tmp_path, monkeypatch) -> None:
    import pyperclip

    def broken_copy(text: str) -> None:
        raise pyperclip.PyperclipException("no clipboard mechanism")

    monkeypatch.setattr("pyperclip.copy", broken_copy)

    with pytest.raises(ClipboardError):
        _snap(project, clipboard=True)
    assert not (tmp_path / "proj.dircontxt").exists()


def test_corrupt_previous_archive_is_ignored(project, tmp_path) -> None:
    _snap(project)
    (tmp_path / "proj.dircontxt").write_bytes(b"not an archive")

    result = _snap(project)

    assert result.version == "V1.1"
    assert result.report is None
    assert not (tmp_path / "proj.llmcontext-V1.1-diff.txt").exists()
    with open_archive(tmp_path / "proj.dircontxt") as archive:
        assert "src/main.c" in index_by_path(archive.root)


def test_missing_text_snapshot_restarts_versioning(project, tmp_path) -> None:
    _snap(project)
    (tmp_path / "proj.llmcontext.txt").unlink()

    result = _snap(project)

    assert result.version == "V1"
    assert result.report is None


def test_deep_tree_snapshots_and_diffs(deep_tree, tmp_path) -> None:
    first = _snap(deep_tree)
    second = _snap(deep_tree)

    assert first.files == 1
    assert second.version == "V1.1"
    assert not second.report.has_changes
    leaf = "a/" * DEEP_LEVELS + "f.txt"
    with open_archive(tmp_path / "deep.dircontxt") as archive:
        assert archive.read(index_by_path(archive.root)[leaf]) == b"bottom\n"
    assert f'PATH="{leaf}"' in (tmp_path / "deep.llmcontext.txt").read_text(encoding="utf-8")


def test_pre_epoch_mtimes_survive_snapshots(project, tmp_path) -> None:
    set_mtime(project / "README.md", -86400)
    set_mtime(project / "src", -1)

    first = _snap(project)
    second = _snap(project)

    with open_archive(first.paths.archive) as archive:
        index = index_by_path(archive.root)
        assert index["README.md"].mtime == -86400
        assert index["src"].mtime == -1
    assert not second.report.has_changes
    assert "MOD:-86400" in (tmp_path / "proj.llmcontext.txt").read_text(encoding="utf-8")
