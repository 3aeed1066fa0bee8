"""
release-train-planner — hashing and filesystem utility tests

File: tests/unit/utils/test_hashing_fs.py
Last updated: 2026-10-18

Purpose
- Pin SHA-256 helper outputs and the canonical fingerprint contract.
- Check atomic artifact writes and cleanup on failure.
"""

from __future__ import annotations

import os
from pathlib import Path

import pytest

from release_train.utils import fs
from release_train.utils.fs import atomic_write
from release_train.utils.hashing import fingerprint, sha256_bytes, sha256_file, sha256_text

pytestmark = pytest.mark.unit

_EMPTY_SHA256 = "e3b0c44298fc1c149afbf4c8996fb92427ae41e4649b934ca495991b7852b855"
_ABC_SHA256 = "ba7816bf8f01cfea414140de5dae2223b00361a396177a9cb410ff61f20015ad"


def test_sha256_helpers_agree(tmp_path: Path) -> None:
    target = tmp_path / "payload.txt"
    target.write_bytes(b"abc")

    assert sha256_bytes(b"") == _EMPTY_SHA256
    assert sha256_bytes(b"abc") == _ABC_SHA256
    assert sha256_text("abc") == _ABC_SHA256
    assert sha256_file(target) == _ABC_SHA256
    assert sha256_file(target, chunk_size=1) == _ABC_SHA256


def test_sha256_file_rejects_nonpositive_chunk(tmp_path: Path) -> None:
    target = tmp_path / "payload.txt"
    target.write_bytes(b"abc")

    with pytest.raises(ValueError, match="chunk_size"):
        sha256_file(target, chunk_size=0)


def test_fingerprint_ignores_mapping_order() -> None:
    first = fingerprint({"b": [1, 2], "a": {"y": True, "x": None}})
    second = fingerprint({"a": {"x": None, "y": True}, "b": [1, 2]})

    assert first == second
    assert len(first) == 64
    assert fingerprint({"b": [2, 1], "a": {"x": None, "y": True}}) != first


def test_atomic_write_replaces_target(tmp_path: Path) -> None:
    target = tmp_path / "plan.json"
    target.write_text("old\n", encoding="utf-8")

    result = atomic_write(target, '{"ok":true}\n')

    assert result == tmp_path.resolve() / "plan.json"
    assert target.read_text(encoding="utf-8") == '{"ok":true}\n'
    assert sorted(path.name for path in tmp_path.iterdir()) == ["plan.json"]


def test_atomic_write_failure_keeps_previous_artifact(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    target = tmp_path / "plan.json"
    target.write_text("old\n", encoding="utf-8")

    def _broken_replace(src: str | os.PathLike[str], dst: str | os.PathLike[str]) -> None:
        raise OSError("disk full")

    monkeypatch.setattr(fs.os, "replace", _broken_replace)

    with pytest.raises(OSError, match="disk full"):
        atomic_write(target, "new\n")

    assert target.read_text(encoding="utf-8") == "old\n"
    assert sorted(path.name for path in tmp_path.iterdir()) == ["plan.json"]


def test_atomic_write_requires_existing_directory(tmp_path: Path) -> None:
    with pytest.raises(FileNotFoundError):
        atomic_write(tmp_path / "missing" / "plan.json", "{}")
