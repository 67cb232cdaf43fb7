import os

import pytest

from backup.errors import BackupError
from backup.mirror import copy_into, mirror_tree


def _tree(root):
    (root / "a").mkdir(parents=True)
    (root / "a" / "one.txt").write_text("one", encoding="utf-8")
    (root / "two.txt").write_text("two", encoding="utf-8")


def test_mirror_copies_then_reports_unchanged(tmp_path):
    source = tmp_path / "src"
    dest = tmp_path / "dst"
    _tree(source)

    first = mirror_tree(source, dest)
    second = mirror_tree(source, dest)

    assert first.copied == ["two.txt", "a/one.txt"]
    assert first.bytes_copied == 6
    assert second.copied == []
    assert second.unchanged == 2


def test_mirror_refreshes_changed_files_and_keeps_extras(tmp_path):
    source = tmp_path / "src"
    dest = tmp_path / "dst"
    _tree(source)
    mirror_tree(source, dest)
    (dest / "only-in-backup.txt").write_text("keep", encoding="utf-8")
    (source / "two.txt").write_text("two, edited", encoding="utf-8")
    (source / "a" / "one.txt").unlink()

    summary = mirror_tree(source, dest)

    assert summary.copied == ["two.txt"]
    assert (dest / "two.txt").read_text(encoding="utf-8") == "two, edited"
    assert (dest / "a" / "one.txt").read_text(encoding="utf-8") == "one"
    assert (dest / "only-in-backup.txt").read_text(encoding="utf-8") == "keep"


def test_mirror_detects_same_size_rewrite_by_mtime(tmp_path):
    source = tmp_path / "src"
    dest = tmp_path / "dst"
    _tree(source)
    mirror_tree(source, dest)
    target = source / "two.txt"
    target.write_text("TWO", encoding="utf-8")
    later = os.stat(target).st_mtime + 5
    os.utime(target, (later, later))

    summary = mirror_tree(source, dest)

    assert summary.copied == ["two.txt"]
    assert (dest / "two.txt").read_text(encoding="utf-8") == "TWO"


def test_mirror_requires_source_directory(tmp_path):
    with pytest.raises(BackupError):
        mirror_tree(tmp_path / "missing", tmp_path / "dst")


def test_copy_into_refuses_existing_destination(tmp_path):
    source = tmp_path / "ssl"
    _tree(source)
    dest = tmp_path / "backup" / "ssl-20261018_040000"

    copy_into(source, dest)
    assert (dest / "a" / "one.txt").is_file()

    with pytest.raises(BackupError):
        copy_into(source, dest)


def test_copy_into_copies_single_file(tmp_path):
    env = tmp_path / ".env"
    env.write_text("KEY=value\n", encoding="utf-8")

    copy_into(env, tmp_path / "out" / "env-20261018_040000")

    assert (tmp_path / "out" / "env-20261018_040000").read_text(encoding="utf-8") == "KEY=value\n"
