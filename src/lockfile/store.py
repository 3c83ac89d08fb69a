"""Lockfile persistence with atomic writes and rollback."""

from __future__ import annotations

import logging
import os
import tempfile
from contextlib import contextmanager
from typing import Iterator, Optional

from common.errors import LockfileError
from constants import Constants

from .models import Lockfile

logger = logging.getLogger(__name__)


def lockfile_path(project_root: str) -> str:
    return os.path.join(project_root, Constants.LOCKFILE_NAME)


def load_lockfile(project_root: str) -> Optional[Lockfile]:
    """The project's lockfile, or None when it has none yet."""
    path = lockfile_path(project_root)
    try:
        with open(path, "r", encoding="utf-8") as fh:
            text = fh.read()
    except FileNotFoundError:
        return None
    except OSError as exc:
        raise LockfileError(f"{path}: {exc}") from exc
    try:
        return Lockfile.loads(text)
    except LockfileError as exc:
        raise LockfileError(f"{path}: {exc}") from exc


def _atomic_write(path: str, data: bytes) -> None:
    directory = os.path.dirname(os.path.abspath(path))
    fd, tmp_path = tempfile.mkstemp(prefix=".rockyard-", suffix=".tmp", dir=directory)
    try:
        with os.fdopen(fd, "wb") as fh:
            fh.write(data)
            fh.flush()
            os.fsync(fh.fileno())
        os.replace(tmp_path, path)
    except BaseException:
        if os.path.exists(tmp_path):
            os.unlink(tmp_path)
        raise


def save_lockfile(project_root: str, lockfile: Lockfile) -> str:
    """Write the canonical serialization atomically; returns the path."""
    path = lockfile_path(project_root)
    _atomic_write(path, lockfile.dumps().encode("utf-8"))
    logger.debug("Wrote %s (%d packages)", path, len(lockfile))
    return path


@contextmanager
def with_rollback(project_root: str) -> Iterator[None]:
    """Restore the lockfile as it was on entry if the wrapped block raises."""
    path = lockfile_path(project_root)
    snapshot: Optional[bytes] = None
    if os.path.isfile(path):
        with open(path, "rb") as fh:
            snapshot = fh.read()
    try:
        yield
    except BaseException:
        if snapshot is not None:
            _atomic_write(path, snapshot)
        elif os.path.exists(path):
            os.unlink(path)
        logger.warning("Operation failed; restored %s to its previous state", path)
        raise
