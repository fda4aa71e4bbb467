"""Image packaging and digest records.

This module handles:
- Copying the bootloader to its canonical name
- Board-prefixed copies of the produced images
- md5sum-format digest records
- The distributable tarball

All work happens inside the images directory; the previous working
directory is restored afterwards.
"""

from __future__ import annotations

import hashlib
import logging
import os
import shutil
import tarfile
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path

from br_imagegen.types import ArtifactSet

logger = logging.getLogger(__name__)

DEFCONFIG_SUFFIX = "_defconfig"
DIGEST_SUFFIX = ".md5sum"

# Default chunk size for hashing
HASH_CHUNK_SIZE = 64 * 1024  # 64KB


class PackageError(Exception):
    """Raised when images cannot be packaged."""

    def __init__(self, message: str, code: str = "package_error") -> None:
        super().__init__(message)
        self.code = code


@dataclass(frozen=True)
class ArtifactLayout:
    """File names produced by the board's Buildroot configuration.

    Attributes:
        bootloader_source: Bootloader binary as written by Buildroot.
        bootloader: Canonical bootloader name used in the bundle.
        rootfs: Root filesystem image.
        images: Files given a board-prefixed copy when present.
    """

    bootloader_source: str = "u-boot-rockchip.bin"
    bootloader: str = "u-boot.bin"
    rootfs: str = "rootfs.squashfs"
    images: tuple[str, ...] = (
        "sdcard.img",
        "u-boot.bin",
        "emmc_bootloader.img",
        "rootfs.squashfs",
    )


@contextmanager
def working_directory(path: Path) -> Iterator[Path]:
    """Change into path for the duration of the block."""
    previous = Path.cwd()
    os.chdir(path)
    try:
        yield path
    finally:
        os.chdir(previous)


def strip_defconfig_suffix(name: str) -> str:
    """Board name from a defconfig name ('board_defconfig' -> 'board')."""
    if name.endswith(DEFCONFIG_SUFFIX):
        return name[: -len(DEFCONFIG_SUFFIX)]
    return name


def compute_file_md5(file_path: Path, chunk_size: int = HASH_CHUNK_SIZE) -> str:
    """Compute MD5 hex digest of a file."""
    md5 = hashlib.md5()
    with file_path.open("rb") as f:
        while chunk := f.read(chunk_size):
            md5.update(chunk)
    return md5.hexdigest()


def write_digest(file_path: Path) -> Path:
    """Write ``<file>.md5sum`` next to file_path in md5sum(1) format.

    Raises:
        PackageError: If the file is missing or cannot be read.
    """
    if not file_path.is_file():
        raise PackageError(
            f"Cannot checksum missing artifact: {file_path.name}",
            code="missing_artifact",
        )
    digest_path = file_path.with_name(file_path.name + DIGEST_SUFFIX)
    try:
        digest = compute_file_md5(file_path)
        digest_path.write_text(f"{digest}  {file_path.name}\n", encoding="utf-8")
    except OSError as e:
        raise PackageError(
            f"Failed to checksum {file_path.name}: {e}",
            code="digest_error",
        ) from e

    logger.debug("Wrote %s (%s)", digest_path.name, digest)
    return digest_path


def copy_artifact(source: Path, dest: Path) -> None:
    """Copy one image file, reporting failures as PackageError."""
    try:
        shutil.copyfile(source, dest)
    except OSError as e:
        raise PackageError(
            f"Failed to copy {source} to {dest}: {e}",
            code="copy_error",
        ) from e


def verify_digest(digest_path: Path) -> bool:
    """Check an md5sum record against the file it names.

    The named file is looked up next to the record.
    """
    line = digest_path.read_text(encoding="utf-8").strip()
    parts = line.split(maxsplit=1)
    if len(parts) != 2:
        return False
    expected, filename = parts
    filename = filename.lstrip("*").strip()
    target = digest_path.parent / filename
    if not target.is_file():
        return False
    return compute_file_md5(target) == expected.lower()


def package_images(
    images_dir: Path,
    defconfig: str,
    layout: ArtifactLayout | None = None,
) -> ArtifactSet:
    """Package Buildroot images into a board tarball with checksums.

    Args:
        images_dir: Workspace images directory.
        defconfig: Defconfig name; a trailing '_defconfig' is dropped to
            name the copies and the bundle.
        layout: Artifact file names; defaults to the Rockchip board layout.

    Returns:
        ArtifactSet with absolute paths of everything written.

    Raises:
        PackageError: If a required artifact is missing or cannot be hashed.
    """
    layout = layout or ArtifactLayout()
    images_dir = images_dir.resolve()
    board = strip_defconfig_suffix(defconfig)

    if not images_dir.is_dir():
        raise PackageError(
            f"Images directory does not exist: {images_dir}",
            code="missing_images_dir",
        )

    with working_directory(images_dir):
        source = Path(layout.bootloader_source)
        if not source.is_file():
            raise PackageError(
                f"Bootloader {layout.bootloader_source} not found in {images_dir}",
                code="missing_artifact",
            )
        copy_artifact(source, Path(layout.bootloader))

        copies: list[Path] = []
        for name in layout.images:
            if not Path(name).is_file():
                logger.debug("Skipping absent image %s", name)
                continue
            dest = Path(f"{board}_{name}")
            copy_artifact(Path(name), dest)
            copies.append(images_dir / dest)

        digests = [
            images_dir / write_digest(Path(layout.rootfs)),
            images_dir / write_digest(Path(layout.bootloader)),
        ]

        members = [layout.rootfs, layout.bootloader]
        members += sorted(p.name for p in Path(".").glob(f"*{DIGEST_SUFFIX}"))

        bundle = Path(f"{board}.tar.gz")
        try:
            with tarfile.open(bundle, "w:gz") as tar:
                for member in members:
                    tar.add(member)
        except (OSError, tarfile.TarError) as e:
            raise PackageError(
                f"Failed to write {bundle}: {e}",
                code="bundle_error",
            ) from e

    logger.info("Packaged %s", images_dir / bundle)
    return ArtifactSet(
        images_dir=images_dir,
        bundle=images_dir / bundle,
        copies=copies,
        digests=digests,
        bundle_members=members,
    )


__all__ = [
    "ArtifactLayout",
    "DEFCONFIG_SUFFIX",
    "PackageError",
    "compute_file_md5",
    "copy_artifact",
    "package_images",
    "strip_defconfig_suffix",
    "verify_digest",
    "working_directory",
    "write_digest",
]
