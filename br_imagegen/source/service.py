"""Buildroot source service module.

This module provides the high-level API for the Buildroot tree:
- ensure_source(): Ensure the pinned Buildroot release is unpacked on disk

An existing target directory is trusted as-is: it is neither re-downloaded
nor re-verified.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

from br_imagegen.source.fetch import (
    ExtractionError,
    Transport,
    build_transports,
    extract_archive,
    select_transport,
)

if TYPE_CHECKING:
    from br_imagegen.config import Settings

logger = logging.getLogger(__name__)


@dataclass
class SourceResult:
    """Result of ensure_source.

    Attributes:
        source_dir: Path to the Buildroot tree.
        downloaded: Whether this call fetched and unpacked the source.
        transport: Name of the transport used, if any.
    """

    source_dir: Path
    downloaded: bool
    transport: str | None = None


def ensure_source(
    version: str,
    source_url: str,
    target_dir: Path,
    transports: Sequence[Transport] | None = None,
    workdir: Path | None = None,
) -> SourceResult:
    """Ensure the Buildroot source tree exists at ``target_dir``.

    Args:
        version: Buildroot release, e.g. '2025.08.1'.
        source_url: URL of the release tarball.
        target_dir: Final location of the tree. Relative paths resolve
            against ``workdir``.
        transports: Ordered download transports; defaults to wget, curl, httpx.
        workdir: Directory for the temporary archive and extraction
            (defaults to the current directory).

    Returns:
        SourceResult describing what happened.

    Raises:
        ProvisionError: If no transport is available, or download,
            extraction or rename fails.
    """
    workdir = workdir or Path.cwd()
    if not target_dir.is_absolute():
        target_dir = workdir / target_dir

    if target_dir.exists():
        logger.info("Buildroot source already exists at %s", target_dir)
        return SourceResult(source_dir=target_dir, downloaded=False)

    if transports is None:
        transports = build_transports(["wget", "curl", "httpx"])
    transport = select_transport(transports)

    top_level = f"buildroot-{version}"
    archive_path = workdir / f"{top_level}.tar.gz"

    logger.info("Downloading Buildroot %s...", version)
    try:
        transport.fetch(source_url, archive_path)
        extracted = extract_archive(archive_path, workdir, top_level)
    finally:
        archive_path.unlink(missing_ok=True)

    try:
        extracted.rename(target_dir)
    except OSError as e:
        raise ExtractionError(
            f"Failed to move {extracted} to {target_dir}: {e}",
            code="rename_error",
        ) from e

    logger.info("Buildroot %s ready at %s", version, target_dir)
    return SourceResult(
        source_dir=target_dir,
        downloaded=True,
        transport=transport.name,
    )


def ensure_source_from_settings(settings: Settings) -> SourceResult:
    """Ensure the Buildroot source using the configured release and transports."""
    return ensure_source(
        version=settings.buildroot_version,
        source_url=settings.buildroot_url,
        target_dir=settings.source_dir,
        transports=build_transports(
            settings.transports, timeout=settings.download_timeout
        ),
    )


__all__ = ["SourceResult", "ensure_source", "ensure_source_from_settings"]
