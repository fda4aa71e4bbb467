"""Tests for builds/artifacts.py module.

Tests image packaging, digest records, and working directory handling.
"""

import hashlib
import os
import tarfile
from pathlib import Path
from unittest.mock import patch

import pytest

from br_imagegen.builds.artifacts import (
    ArtifactLayout,
    PackageError,
    compute_file_md5,
    package_images,
    strip_defconfig_suffix,
    verify_digest,
    working_directory,
    write_digest,
)


@pytest.fixture
def images_dir(tmp_path) -> Path:
    """Images directory as Buildroot leaves it for the Rockchip board."""
    images = tmp_path / "output" / "board_defconfig" / "images"
    images.mkdir(parents=True)
    (images / "u-boot-rockchip.bin").write_bytes(b"bootloader" * 100)
    (images / "rootfs.squashfs").write_bytes(b"rootfs" * 1000)
    (images / "sdcard.img").write_bytes(b"sdcard" * 500)
    return images


class TestStripDefconfigSuffix:
    """Tests for strip_defconfig_suffix."""

    def test_strips_suffix(self):
        assert strip_defconfig_suffix("board_defconfig") == "board"

    def test_no_suffix_is_noop(self):
        assert strip_defconfig_suffix("board") == "board"

    def test_only_trailing_suffix(self):
        assert strip_defconfig_suffix("my_defconfig_board") == "my_defconfig_board"
        assert strip_defconfig_suffix("a_defconfig_defconfig") == "a_defconfig"


class TestWriteDigest:
    """Tests for write_digest and verify_digest."""

    def test_md5sum_format(self, tmp_path):
        """Should write '<md5>  <name>' next to the file."""
        data = b"Hello, World!"
        target = tmp_path / "rootfs.squashfs"
        target.write_bytes(data)

        digest_path = write_digest(target)

        assert digest_path == tmp_path / "rootfs.squashfs.md5sum"
        expected = hashlib.md5(data).hexdigest()
        assert digest_path.read_text() == f"{expected}  rootfs.squashfs\n"

    def test_verify_matches(self, tmp_path):
        """Should verify an untouched file."""
        target = tmp_path / "u-boot.bin"
        target.write_bytes(b"\x00" * 4096)
        assert verify_digest(write_digest(target)) is True

    def test_verify_detects_change(self, tmp_path):
        """Should fail verification after the file changes."""
        target = tmp_path / "u-boot.bin"
        target.write_bytes(b"original")
        digest_path = write_digest(target)
        target.write_bytes(b"modified")
        assert verify_digest(digest_path) is False

    def test_verify_missing_file(self, tmp_path):
        """Should fail verification when the named file is gone."""
        target = tmp_path / "u-boot.bin"
        target.write_bytes(b"data")
        digest_path = write_digest(target)
        target.unlink()
        assert verify_digest(digest_path) is False

    def test_missing_file_raises(self, tmp_path):
        """Should raise PackageError for a missing artifact."""
        with pytest.raises(PackageError) as exc_info:
            write_digest(tmp_path / "rootfs.squashfs")
        assert exc_info.value.code == "missing_artifact"

    def test_compute_file_md5_chunks(self, tmp_path):
        """Should hash files larger than one chunk."""
        data = os.urandom(200 * 1024)
        target = tmp_path / "big.img"
        target.write_bytes(data)
        assert compute_file_md5(target, chunk_size=1024) == hashlib.md5(data).hexdigest()


class TestWorkingDirectory:
    """Tests for the working_directory context manager."""

    def test_restores_after_error(self, tmp_path, monkeypatch):
        """Should restore the previous directory when the block raises."""
        monkeypatch.chdir(tmp_path)
        inner = tmp_path / "inner"
        inner.mkdir()

        with pytest.raises(RuntimeError), working_directory(inner):
            assert Path.cwd() == inner.resolve()
            raise RuntimeError("boom")

        assert Path.cwd() == tmp_path.resolve()


class TestPackageImages:
    """Tests for package_images."""

    def test_bundle_named_from_defconfig(self, images_dir):
        """Should name the bundle after the defconfig without its suffix."""
        result = package_images(images_dir, "board_defconfig")

        assert result.bundle == images_dir.resolve() / "board.tar.gz"
        assert result.bundle.is_file()

    def test_bundle_name_without_suffix(self, images_dir):
        """Should leave a defconfig name without suffix unchanged."""
        result = package_images(images_dir, "board")
        assert result.bundle.name == "board.tar.gz"

    def test_bootloader_copied_to_canonical_name(self, images_dir):
        """Should copy the Rockchip bootloader to u-boot.bin."""
        package_images(images_dir, "board_defconfig")

        assert (images_dir / "u-boot.bin").read_bytes() == (
            images_dir / "u-boot-rockchip.bin"
        ).read_bytes()
        assert (images_dir / "u-boot-rockchip.bin").exists()

    def test_prefixed_copies_skip_absent_files(self, images_dir):
        """Should copy present images with the board prefix only."""
        result = package_images(images_dir, "board_defconfig")

        names = sorted(p.name for p in result.copies)
        assert names == [
            "board_rootfs.squashfs",
            "board_sdcard.img",
            "board_u-boot.bin",
        ]
        assert not (images_dir / "board_emmc_bootloader.img").exists()
        assert (images_dir / "board_sdcard.img").read_bytes() == (
            images_dir / "sdcard.img"
        ).read_bytes()

    def test_digests_verify(self, images_dir):
        """Should write digests that verify against their artifacts."""
        result = package_images(images_dir, "board_defconfig")

        assert [p.name for p in result.digests] == [
            "rootfs.squashfs.md5sum",
            "u-boot.bin.md5sum",
        ]
        for digest_path in result.digests:
            assert verify_digest(digest_path)

    def test_bundle_contents(self, images_dir):
        """Should bundle rootfs, bootloader and every digest file."""
        (images_dir / "extra.md5sum").write_text("0  nothing\n")

        result = package_images(images_dir, "board_defconfig")

        with tarfile.open(result.bundle, "r:gz") as tar:
            members = sorted(tar.getnames())
        assert members == [
            "extra.md5sum",
            "rootfs.squashfs",
            "rootfs.squashfs.md5sum",
            "u-boot.bin",
            "u-boot.bin.md5sum",
        ]
        assert result.bundle_members[:2] == ["rootfs.squashfs", "u-boot.bin"]

    def test_restores_working_directory(self, images_dir, tmp_path, monkeypatch):
        """Should leave the caller's working directory unchanged."""
        monkeypatch.chdir(tmp_path)
        package_images(images_dir, "board_defconfig")
        assert Path.cwd() == tmp_path.resolve()

    def test_missing_bootloader(self, images_dir, tmp_path, monkeypatch):
        """Should raise and restore the directory when the bootloader is missing."""
        monkeypatch.chdir(tmp_path)
        (images_dir / "u-boot-rockchip.bin").unlink()

        with pytest.raises(PackageError) as exc_info:
            package_images(images_dir, "board_defconfig")

        assert exc_info.value.code == "missing_artifact"
        assert Path.cwd() == tmp_path.resolve()

    @patch("br_imagegen.builds.artifacts.shutil.copyfile")
    def test_copy_failure(self, mock_copy, images_dir, tmp_path, monkeypatch):
        """Should report an unwritable images directory as PackageError."""
        monkeypatch.chdir(tmp_path)
        mock_copy.side_effect = PermissionError(13, "Permission denied")

        with pytest.raises(PackageError) as exc_info:
            package_images(images_dir, "board_defconfig")

        assert exc_info.value.code == "copy_error"
        assert "Permission denied" in str(exc_info.value)
        assert isinstance(exc_info.value.__cause__, PermissionError)
        assert Path.cwd() == tmp_path.resolve()

    def test_missing_rootfs(self, images_dir):
        """Should raise when the root filesystem image is missing."""
        (images_dir / "rootfs.squashfs").unlink()

        with pytest.raises(PackageError) as exc_info:
            package_images(images_dir, "board_defconfig")
        assert exc_info.value.code == "missing_artifact"

    def test_missing_images_dir(self, tmp_path):
        """Should raise when the images directory does not exist."""
        with pytest.raises(PackageError) as exc_info:
            package_images(tmp_path / "nope", "board_defconfig")
        assert exc_info.value.code == "missing_images_dir"

    def test_custom_layout(self, tmp_path):
        """Should honour a different bootloader name."""
        images = tmp_path / "images"
        images.mkdir()
        (images / "u-boot-sunxi-with-spl.bin").write_bytes(b"spl")
        (images / "rootfs.squashfs").write_bytes(b"rootfs")
        layout = ArtifactLayout(bootloader_source="u-boot-sunxi-with-spl.bin")

        result = package_images(images, "orangepi_defconfig", layout=layout)

        assert result.bundle.name == "orangepi.tar.gz"
        assert (images / "u-boot.bin").read_bytes() == b"spl"
