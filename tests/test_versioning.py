from __future__ import annotations

import pytest

from dircontxt.versioning import (
    OutputPaths,
    next_version,
    parse_version_from_file,
    snapshot_header,
)


@pytest.mark.parametrize(
    ("old", "new"),
    [("V1", "V1.1"), ("V1.1", "V1.2"), ("V3.9", "V3.10"), ("garbage", "V1")],
)
def test_next_version(old, new) -> None:
    assert next_version(old) == new


def test_parse_version_from_header_line(tmp_path) -> None:
    path = tmp_path / "p.llmcontext.txt"
    path.write_text(f"{snapshot_header('V2.4')}\n\nbody\n", encoding="utf-8")

    assert parse_version_from_file(path) == "V2.4"


def test_parse_version_rejects_foreign_files(tmp_path) -> None:
    path = tmp_path / "p.llmcontext.txt"
    path.write_text("hello\n", encoding="utf-8")

    assert parse_version_from_file(path) is None
    assert parse_version_from_file(tmp_path / "missing.txt") is None


def test_output_paths_sit_next_to_target(tmp_path) -> None:
    target = tmp_path / "proj"

    first = OutputPaths.for_target(target, "V1")
    update = OutputPaths.for_target(target, "V1.3")

    assert first.archive == tmp_path / "proj.dircontxt"
    assert first.snapshot == tmp_path / "proj.llmcontext.txt"
    assert first.diff is None
    assert update.diff == tmp_path / "proj.llmcontext-V1.3-diff.txt"
    assert first.names == ("proj.dircontxt", "proj.llmcontext.txt")
