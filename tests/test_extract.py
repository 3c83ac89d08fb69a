"""Tests for placing fetched content into the install directory."""

import io
import os
import tarfile
import zipfile

import pytest

from common.errors import ExtractionError
from installer.extract import (
    detect_format,
    installed_packages,
    place_package,
    read_installed_content,
    remove_package,
    store_dir,
)


def make_tar(files, compressed=True, symlink=None):
    buffer = io.BytesIO()
    with tarfile.open(fileobj=buffer, mode="w:gz" if compressed else "w") as tar:
        for name, data in files.items():
            info = tarfile.TarInfo(name)
            info.size = len(data)
            tar.addfile(info, io.BytesIO(data))
        if symlink:
            info = tarfile.TarInfo(symlink[0])
            info.type = tarfile.SYMTYPE
            info.linkname = symlink[1]
            tar.addfile(info)
    return buffer.getvalue()


def make_zip(files):
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as archive:
        for name, data in files.items():
            archive.writestr(name, data)
    return buffer.getvalue()


def encrypted_zip(files):
    """A single-entry zip whose entry carries the "encrypted" flag bit."""
    data = bytearray(make_zip(files))
    data[6] |= 0x01
    central = data.find(b"PK\x01\x02")
    data[central + 8] |= 0x01
    return bytes(data)


class TestDetectFormat:
    """Tests for archive detection by magic bytes."""

    def test_formats(self):
        """Each archive kind is recognised; Lua source is not an archive."""
        assert detect_format(make_tar({"a.lua": b"x"})) == "tar.gz"
        assert detect_format(make_tar({"a.lua": b"x"}, compressed=False)) == "tar"
        assert detect_format(make_zip({"a.lua": b"x"})) == "zip"
        assert detect_format(b"return {}\n") is None


class TestPlacePackage:
    """Tests for place_package."""

    def test_single_module(self, tmp_path):
        """Plain content becomes init.lua."""
        target = place_package(str(tmp_path), "lpeg", "1.1.0", b"return {}\n")
        assert target == os.path.join(str(tmp_path), "lpeg")
        assert (tmp_path / "lpeg" / "init.lua").read_bytes() == b"return {}\n"

    def test_tar_root_directory_stripped(self, tmp_path):
        """A single top-level directory is removed."""
        content = make_tar({
            "penlight-1.13.0/init.lua": b"return require('pl')",
            "penlight-1.13.0/pl/utils.lua": b"return {}",
        })
        place_package(str(tmp_path), "penlight", "1.13.0", content)
        assert (tmp_path / "penlight" / "init.lua").exists()
        assert (tmp_path / "penlight" / "pl" / "utils.lua").read_bytes() == b"return {}"

    def test_zip_without_root(self, tmp_path):
        """Archives with several top-level entries are unpacked as is."""
        place_package(str(tmp_path), "argparse", "0.7.1", make_zip({"init.lua": b"a", "extra.lua": b"b"}))
        assert sorted(os.listdir(tmp_path / "argparse")) == ["extra.lua", "init.lua"]

    @pytest.mark.parametrize("bad", ["../evil.lua", "/etc/evil.lua"])
    def test_traversal_rejected(self, tmp_path, bad):
        """Entries escaping the package directory abort the install."""
        with pytest.raises(ExtractionError):
            place_package(str(tmp_path), "evil", "1.0.0", make_tar({bad: b"x"}))
        assert not (tmp_path / "evil").exists()
        assert not (tmp_path.parent / "evil.lua").exists()

    def test_zip_traversal_rejected(self, tmp_path):
        """Zip entries are checked the same way."""
        with pytest.raises(ExtractionError):
            place_package(str(tmp_path), "evil", "1.0.0", make_zip({"../evil.lua": b"x"}))

    def test_links_rejected(self, tmp_path):
        """Symlinks inside archives are refused."""
        content = make_tar({"pkg/init.lua": b"x"}, symlink=("pkg/link", "/etc/passwd"))
        with pytest.raises(ExtractionError):
            place_package(str(tmp_path), "pkg", "1.0.0", content)

    def test_corrupt_archive(self, tmp_path):
        """Truncated archives raise ExtractionError."""
        content = make_tar({"pkg/init.lua": b"x" * 2048})[:40]
        with pytest.raises(ExtractionError):
            place_package(str(tmp_path), "pkg", "1.0.0", content)

    @pytest.mark.parametrize("name", ["", "..", "a/b", ".hidden"])
    def test_unsafe_names(self, tmp_path, name):
        """Package names must be a single plain path segment."""
        with pytest.raises(ExtractionError):
            place_package(str(tmp_path), name, "1.0.0", b"x")

    def test_encrypted_zip(self, tmp_path):
        """Password-protected zip entries are an extraction error."""
        content = encrypted_zip({"init.lua": b"return {}\n"})
        with pytest.raises(ExtractionError) as exc_info:
            place_package(str(tmp_path), "pkg", "1.0.0", content)
        assert "unsupported zip archive" in str(exc_info.value)
        assert not (tmp_path / "pkg").exists()

    def test_unknown_zip_compression(self, tmp_path):
        """Entries using a compression method zipfile cannot read are rejected."""
        data = bytearray(make_zip({"init.lua": b"return {}\n"}))
        central = data.find(b"PK\x01\x02")
        data[8] = 99
        data[central + 10] = 99
        with pytest.raises(ExtractionError):
            place_package(str(tmp_path), "pkg", "1.0.0", bytes(data))

    def test_reinstall_replaces(self, tmp_path):
        """A new version replaces the old files and store entry."""
        place_package(str(tmp_path), "lfs", "1.8.0", make_zip({"old.lua": b"1", "init.lua": b"1"}))
        place_package(str(tmp_path), "lfs", "1.8.1", b"return 2")
        assert os.listdir(tmp_path / "lfs") == ["init.lua"]
        assert installed_packages(str(tmp_path)) == {"lfs": "1.8.1"}
        assert os.listdir(store_dir(str(tmp_path))) == ["lfs@1.8.1"]


class TestInstalledState:
    """Tests for reading and removing installed packages."""

    def test_read_installed_content(self, tmp_path):
        """Stored bytes are returned; absent packages map to None."""
        place_package(str(tmp_path), "a", "1.0.0", b"return 'a'")
        place_package(str(tmp_path), "b", "2.0.0", b"return 'b'")
        content = read_installed_content(str(tmp_path), ["a", "c"])
        assert content == {"a": b"return 'a'", "b": b"return 'b'", "c": None}

    def test_deleted_directory_reads_as_missing(self, tmp_path):
        """A package whose directory was removed by hand is missing."""
        place_package(str(tmp_path), "a", "1.0.0", b"x")
        (tmp_path / "a" / "init.lua").unlink()
        (tmp_path / "a").rmdir()
        assert read_installed_content(str(tmp_path)) == {"a": None}

    def test_remove_package(self, tmp_path):
        """Removal deletes files and the store entry."""
        place_package(str(tmp_path), "a", "1.0.0", b"x")
        remove_package(str(tmp_path), "a")
        assert not (tmp_path / "a").exists()
        assert installed_packages(str(tmp_path)) == {}

    def test_empty_destination(self, tmp_path):
        """Nothing installed yet reads as empty."""
        assert installed_packages(str(tmp_path / "missing")) == {}
