"""Utility exports for hashing and atomic file output."""

from release_train.utils.fs import atomic_write
from release_train.utils.hashing import fingerprint, sha256_bytes, sha256_file, sha256_text

__all__ = ["atomic_write", "fingerprint", "sha256_bytes", "sha256_file", "sha256_text"]
