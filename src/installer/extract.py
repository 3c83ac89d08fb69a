"""Placing fetched content into the install directory.

Archives (``.tar.gz``/``.tgz``, plain tar, ``.zip``) are detected by their
magic bytes and unpacked with a single top-level directory stripped. Any
other content is a single Lua module and becomes ``<name>/init.lua``.

The raw fetched bytes are also kept under ``<dest>/.rockyard/store`` so the
installed state can be re-verified against lockfile checksums.
"""
from __future__ import annotations

import io
import logging
import os
import posixpath
import shutil
import tarfile
import tempfile
import urllib.parse
import zipfile
import zlib
from typing import Dict, List, Optional

from common.errors import ExtractionError
from constants import Constants

logger = logging.getLogger(__name__)

_GZIP_MAGIC = b"\x1f\x8b"
_ZIP_MAGIC = b"PK\x03\x04"
_TAR_MAGIC_OFFSET = 257
_SINGLE_MODULE = "init.lua"


def detect_format(content: bytes) -> Optional[str]:
    """``tar.gz``, ``tar``, ``zip`` or None for plain content."""
    if content.startswith(_GZIP_MAGIC):
        return "tar.gz"
    if content.startswith(_ZIP_MAGIC):
        return "zip"
    if content[_TAR_MAGIC_OFFSET:_TAR_MAGIC_OFFSET + 5] == b"ustar":
        return "tar"
    return None


def store_dir(dest: str) -> str:
    return os.path.join(dest, Constants.STATE_DIR, Constants.STORE_SUBDIR)


def _store_key(name: str) -> str:
    return urllib.parse.quote(name, safe="")


def _check_name(name: str) -> None:
    if not name or name in (".", "..") or "/" in name or "\\" in name or name.startswith("."):
        raise ExtractionError(f"refusing to install package with unsafe name '{name}'")


def _safe_member(name: str, package: str) -> str:
    normalized = posixpath.normpath(name.replace("\\", "/"))
    if normalized.startswith("/") or normalized == ".." or normalized.startswith("../") or ":" in normalized.split("/")[0]:
        raise ExtractionError(f"{package}: archive entry escapes the package directory: {name}")
    return normalized


def _extract_tar(content: bytes, target: str, package: str, compressed: bool) -> None:
    mode = "r:gz" if compressed else "r:"
    try:
        with tarfile.open(fileobj=io.BytesIO(content), mode=mode) as tar:
            members = []
            for member in tar.getmembers():
                _safe_member(member.name, package)
                if member.issym() or member.islnk():
                    raise ExtractionError(f"{package}: links are not allowed in package archives: {member.name}")
                if member.isdev() or member.isfifo():
                    raise ExtractionError(f"{package}: special files are not allowed: {member.name}")
                members.append(member)
            if hasattr(tarfile, "data_filter"):
                tar.extractall(target, members=members, filter="data")
            else:
                tar.extractall(target, members=members)
    except (tarfile.TarError, EOFError, OSError, zlib.error) as exc:
        raise ExtractionError(f"{package}: corrupt tar archive: {exc}") from exc


def _extract_zip(content: bytes, target: str, package: str) -> None:
    try:
        with zipfile.ZipFile(io.BytesIO(content)) as archive:
            for info in archive.infolist():
                _safe_member(info.filename, package)
            archive.extractall(target)
    except (zipfile.BadZipFile, OSError, zlib.error) as exc:
        raise ExtractionError(f"{package}: corrupt zip archive: {exc}") from exc
    except (RuntimeError, NotImplementedError) as exc:
        # encrypted entries and unsupported compression methods
        raise ExtractionError(f"{package}: unsupported zip archive: {exc}") from exc


def _content_root(staging: str) -> str:
    entries = os.listdir(staging)
    if len(entries) == 1 and os.path.isdir(os.path.join(staging, entries[0])):
        return os.path.join(staging, entries[0])
    return staging


def _write_atomic(path: str, data: bytes) -> None:
    fd, tmp = tempfile.mkstemp(dir=os.path.dirname(path), prefix=".tmp-")
    with os.fdopen(fd, "wb") as fh:
        fh.write(data)
    os.replace(tmp, path)


def place_package(dest: str, name: str, version: str, content: bytes) -> str:
    """Unpack ``content`` into ``<dest>/<name>`` and record it in the store.

    The previous install of ``name`` is only replaced once the new content
    has been unpacked completely.

    Returns:
        str: the package directory.
    """
    _check_name(name)
    os.makedirs(dest, exist_ok=True)
    target = os.path.join(dest, name)
    staging = tempfile.mkdtemp(prefix=f".{name}-", dir=dest)
    try:
        kind = detect_format(content)
        if kind in ("tar.gz", "tar"):
            _extract_tar(content, staging, name, compressed=kind == "tar.gz")
        elif kind == "zip":
            _extract_zip(content, staging, name)
        else:
            with open(os.path.join(staging, _SINGLE_MODULE), "wb") as fh:
                fh.write(content)

        root = _content_root(staging)
        if os.path.isdir(target):
            shutil.rmtree(target)
        shutil.move(root, target)
    finally:
        if os.path.isdir(staging):
            shutil.rmtree(staging, ignore_errors=True)

    store = store_dir(dest)
    os.makedirs(store, exist_ok=True)
    key = _store_key(name)
    for stale in os.listdir(store):
        if stale.rpartition("@")[0] == key:
            os.unlink(os.path.join(store, stale))
    _write_atomic(os.path.join(store, f"{key}@{version}"), content)
    logger.debug("Placed %s@%s into %s (%s)", name, version, target, kind or "module")
    return target


def installed_packages(dest: str) -> Dict[str, str]:
    """Name -> version of every package recorded in the store."""
    store = store_dir(dest)
    if not os.path.isdir(store):
        return {}
    found = {}
    for entry in sorted(os.listdir(store)):
        key, sep, version = entry.rpartition("@")
        if sep and key and not entry.startswith(".tmp-"):
            found[urllib.parse.unquote(key)] = version
    return found


def read_installed_content(dest: str, names: Optional[List[str]] = None) -> Dict[str, Optional[bytes]]:
    """Stored bytes per installed package.

    A package whose directory has gone missing maps to None; so does every
    name in ``names`` that is not installed at all.
    """
    result: Dict[str, Optional[bytes]] = {n: None for n in names or []}
    for name, version in installed_packages(dest).items():
        if not os.path.isdir(os.path.join(dest, name)):
            result[name] = None
            continue
        with open(os.path.join(store_dir(dest), f"{_store_key(name)}@{version}"), "rb") as fh:
            result[name] = fh.read()
    return result


def remove_package(dest: str, name: str) -> None:
    """Delete an installed package and its stored content."""
    _check_name(name)
    target = os.path.join(dest, name)
    if os.path.isdir(target):
        shutil.rmtree(target)
    store = store_dir(dest)
    if os.path.isdir(store):
        key = _store_key(name)
        for entry in os.listdir(store):
            if entry.rpartition("@")[0] == key:
                os.unlink(os.path.join(store, entry))
