from pathlib import Path
import os
import threading

import pytest

from qcp.matcher import InclusionPredicate
from qcp.models import JobResult
from qcp.walker import TraversalError, copy_action, destination_for, walk


def _write(path: Path, content: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")


def _walker_threads() -> list[threading.Thread]:
    return [thread for thread in threading.enumerate() if thread.name == "qcp-walker"]


def test_walk_emits_only_matching_files_in_traversal_order(tmp_path: Path) -> None:
    source = tmp_path / "home"
    destination = tmp_path / "backup"
    _write(source / "Documents" / "b.txt", "b")
    _write(source / "Documents" / "a.txt", "a")
    _write(source / "Documents" / "sub" / "c.txt", "c")
    _write(source / "Documents" / ".DS_Store", "meta")
    _write(source / "Secret" / "b.txt", "hidden")
    _write(source / "top.txt", "top")

    operations = list(walk(source, destination, InclusionPredicate(["Documents/"])))

    assert [op.source for op in operations] == [
        source / "Documents" / "a.txt",
        source / "Documents" / "b.txt",
        source / "Documents" / "sub" / "c.txt",
    ]


def test_walk_preserves_relative_structure_under_destination(tmp_path: Path) -> None:
    source = tmp_path / "home"
    destination = tmp_path / "backup"
    _write(source / "Documents" / "x" / "y" / "z.txt", "z")
    _write(source / "Pictures" / "p.jpg", "p")

    operations = list(walk(source, destination, InclusionPredicate(["Documents/", "Pictures/"])))

    assert len(operations) == 2
    for op in operations:
        assert op.destination == destination / op.source.relative_to(source)


def test_walk_never_emits_directories(tmp_path: Path) -> None:
    source = tmp_path / "home"
    (source / "Documents" / "empty").mkdir(parents=True)

    operations = list(walk(source, tmp_path / "backup", InclusionPredicate(["Documents"])))

    assert operations == []


def test_walk_binds_copy_action_by_default(tmp_path: Path) -> None:
    source = tmp_path / "home"
    destination = tmp_path / "backup"
    _write(source / "Documents" / "a.txt", "hello")

    [operation] = list(walk(source, destination, InclusionPredicate(["Documents/"])))
    result = operation.execute()

    assert result.ok
    assert result.bytes_copied == 5
    assert (destination / "Documents" / "a.txt").read_text(encoding="utf-8") == "hello"


def test_walk_uses_injected_action_factory(tmp_path: Path) -> None:
    source = tmp_path / "home"
    _write(source / "Documents" / "a.txt", "hello")
    calls: list[tuple[Path, Path]] = []

    def fake_factory(src: Path, dst: Path):
        def action() -> JobResult:
            calls.append((src, dst))
            return JobResult(bytes_copied=42)

        return action

    [operation] = list(
        walk(source, tmp_path / "backup", InclusionPredicate(["Documents/"]), action_factory=fake_factory)
    )

    assert calls == []
    assert operation.execute().bytes_copied == 42
    assert calls == [(operation.source, operation.destination)]
    assert not (tmp_path / "backup").exists()


def test_walk_missing_root_raises_traversal_error(tmp_path: Path) -> None:
    with pytest.raises(TraversalError) as excinfo:
        list(walk(tmp_path / "missing", tmp_path / "backup", InclusionPredicate(["Documents/"])))

    assert str(tmp_path / "missing") in str(excinfo.value)
    assert isinstance(excinfo.value.cause, FileNotFoundError)


def test_walk_missing_root_is_silent_under_skip_policy(tmp_path: Path) -> None:
    operations = list(
        walk(tmp_path / "missing", tmp_path / "backup", InclusionPredicate(["Documents/"]), on_error="skip")
    )

    assert operations == []


@pytest.mark.skipif(hasattr(os, "geteuid") and os.geteuid() == 0, reason="root can read any directory")
def test_walk_aborts_on_unreadable_directory(tmp_path: Path) -> None:
    source = tmp_path / "home"
    _write(source / "Documents" / "a.txt", "a")
    locked = source / "Documents" / "locked"
    _write(locked / "b.txt", "b")
    locked.chmod(0o000)
    try:
        with pytest.raises(TraversalError, match="locked"):
            list(walk(source, tmp_path / "backup", InclusionPredicate(["Documents/"])))
    finally:
        locked.chmod(0o755)


@pytest.mark.skipif(hasattr(os, "geteuid") and os.geteuid() == 0, reason="root can read any directory")
def test_walk_skips_unreadable_directory_under_skip_policy(tmp_path: Path, caplog) -> None:
    source = tmp_path / "home"
    _write(source / "Documents" / "a.txt", "a")
    locked = source / "Documents" / "locked"
    _write(locked / "b.txt", "b")
    locked.chmod(0o000)
    try:
        with caplog.at_level("WARNING", logger="qcp.walker"):
            operations = list(
                walk(source, tmp_path / "backup", InclusionPredicate(["Documents/"]), on_error="skip")
            )
    finally:
        locked.chmod(0o755)

    assert [op.source.name for op in operations] == ["a.txt"]
    assert "skipping unreadable directory" in caplog.text


def test_walk_closed_early_stops_producer(tmp_path: Path) -> None:
    source = tmp_path / "home"
    for index in range(20):
        _write(source / "Documents" / f"{index:02d}.txt", str(index))

    operations = walk(source, tmp_path / "backup", InclusionPredicate(["Documents/"]))
    first = next(operations)
    operations.close()

    assert first.source.name == "00.txt"
    assert _walker_threads() == []


def test_walk_is_restartable_only_by_walking_again(tmp_path: Path) -> None:
    source = tmp_path / "home"
    _write(source / "Documents" / "a.txt", "a")
    predicate = InclusionPredicate(["Documents/"])

    first = list(walk(source, tmp_path / "backup", predicate))
    _write(source / "Documents" / "b.txt", "b")
    second = list(walk(source, tmp_path / "backup", predicate))

    assert len(first) == 1
    assert len(second) == 2


def test_destination_for_and_copy_action(tmp_path: Path) -> None:
    source_root = tmp_path / "home"
    destination_root = tmp_path / "backup"
    source = source_root / "Documents" / "a.txt"
    _write(source, "abc")

    destination = destination_for(source_root, destination_root, source)
    result = copy_action(source, destination)()

    assert destination == destination_root / "Documents" / "a.txt"
    assert result.bytes_copied == 3


def _deny_scandir(monkeypatch, locked: Path) -> None:
    real_scandir = os.scandir

    def scandir(path="."):
        if os.fspath(path) == str(locked):
            raise PermissionError(13, "Permission denied", str(locked))
        return real_scandir(path)

    monkeypatch.setattr(os, "scandir", scandir)


def test_walk_aborts_when_directory_listing_fails(tmp_path: Path, monkeypatch) -> None:
    source = tmp_path / "home"
    _write(source / "Documents" / "a.txt", "a")
    _write(source / "Documents" / "locked" / "b.txt", "b")
    _deny_scandir(monkeypatch, source / "Documents" / "locked")

    seen: list[Path] = []
    with pytest.raises(TraversalError) as excinfo:
        for operation in walk(source, tmp_path / "backup", InclusionPredicate(["Documents/"])):
            seen.append(operation.source)

    assert seen == [source / "Documents" / "a.txt"]
    assert excinfo.value.path == str(source / "Documents" / "locked")
    assert isinstance(excinfo.value.cause, PermissionError)
    assert _walker_threads() == []


def test_walk_skip_policy_leaves_out_failed_listing(tmp_path: Path, monkeypatch, caplog) -> None:
    source = tmp_path / "home"
    _write(source / "Documents" / "a.txt", "a")
    _write(source / "Documents" / "locked" / "b.txt", "b")
    _write(source / "Documents" / "z.txt", "z")
    _deny_scandir(monkeypatch, source / "Documents" / "locked")

    with caplog.at_level("WARNING", logger="qcp.walker"):
        operations = list(
            walk(source, tmp_path / "backup", InclusionPredicate(["Documents/"]), on_error="skip")
        )

    assert [op.source.name for op in operations] == ["a.txt", "z.txt"]
    assert f"skipping unreadable directory {source / 'Documents' / 'locked'}" in caplog.text


def test_walk_logs_symlinked_directory_it_does_not_follow(tmp_path: Path, caplog) -> None:
    source = tmp_path / "home"
    _write(source / "Documents" / "a.txt", "a")
    _write(tmp_path / "elsewhere" / "b.txt", "b")
    (source / "Documents" / "linked").symlink_to(tmp_path / "elsewhere", target_is_directory=True)

    with caplog.at_level("DEBUG", logger="qcp.walker"):
        operations = list(walk(source, tmp_path / "backup", InclusionPredicate(["Documents/"])))

    assert [op.source.name for op in operations] == ["a.txt"]
    assert f"not following symlinked directory {source / 'Documents' / 'linked'}" in caplog.text


def test_walk_follows_symlinked_directory_when_enabled(tmp_path: Path) -> None:
    source = tmp_path / "home"
    _write(source / "Documents" / "a.txt", "a")
    _write(tmp_path / "elsewhere" / "b.txt", "b")
    (source / "Documents" / "linked").symlink_to(tmp_path / "elsewhere", target_is_directory=True)

    operations = list(
        walk(source, tmp_path / "backup", InclusionPredicate(["Documents/"]), follow_symlinks=True)
    )

    assert [op.source.name for op in operations] == ["a.txt", "b.txt"]
    assert operations[1].destination == tmp_path / "backup" / "Documents" / "linked" / "b.txt"
