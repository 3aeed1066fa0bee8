"""
release-train-planner — hashing utilities

File: src/release_train/utils/hashing.py
Last updated: 2026-10-18

Purpose
- Provide deterministic SHA-256 helpers for bytes, text, and files.
- Fingerprint JSON-compatible payloads through their canonical encoding.

Functional requirements
- Equal payloads yield equal fingerprints regardless of mapping insertion order.

Non-functional requirements
- Standard library only; behavior is cross-platform deterministic.
"""

from __future__ import annotations

import hashlib
import os
from pathlib import Path

from release_train.domain.models import JSONValue, canonical_json

PathLike = str | os.PathLike[str]

_FILE_READ_CHUNK_BYTES = 1024 * 1024

__all__ = [
    "fingerprint",
    "sha256_bytes",
    "sha256_file",
    "sha256_text",
]


def sha256_bytes(data: bytes) -> str:
    """Return SHA-256 hex digest for raw bytes."""

    return hashlib.sha256(data).hexdigest()


def sha256_text(text: str, *, encoding: str = "utf-8") -> str:
    """Return SHA-256 hex digest for text encoded with ``encoding``."""

    return sha256_bytes(text.encode(encoding))


def sha256_file(path: PathLike, *, chunk_size: int = _FILE_READ_CHUNK_BYTES) -> str:
    """Return SHA-256 hex digest for a file read in chunks."""

    if chunk_size <= 0:
        raise ValueError("chunk_size must be > 0")
    digest = hashlib.sha256()
    with Path(path).open("rb") as handle:
        while chunk := handle.read(chunk_size):
            digest.update(chunk)
    return digest.hexdigest()


def fingerprint(payload: JSONValue) -> str:
    """Return the SHA-256 of ``payload``'s canonical JSON encoding."""

    return sha256_text(canonical_json(payload))
