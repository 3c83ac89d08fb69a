"""Lockfile model, checksums, computation and persistence."""

from .checksum import compute_checksum, parse_checksum, verify_checksum
from .models import IntegrityViolation, LockEntry, Lockfile
from .manager import LockfileManager, collect_content
from .diff import UpdateDiff
from .store import load_lockfile, lockfile_path, save_lockfile, with_rollback

__all__ = [
    "compute_checksum",
    "parse_checksum",
    "verify_checksum",
    "IntegrityViolation",
    "LockEntry",
    "Lockfile",
    "LockfileManager",
    "collect_content",
    "UpdateDiff",
    "load_lockfile",
    "lockfile_path",
    "save_lockfile",
    "with_rollback",
]
