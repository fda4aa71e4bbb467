"""Board configuration handling.

This module handles:
- Loading a named defconfig into the output workspace
- Saving the current configuration back (savedefconfig)
- Sanity checks and local overlay directories of the BR2_EXTERNAL tree
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from pathlib import Path

from br_imagegen.builds.runner import BuildSystem, DelegatedCommandError, run_step
from br_imagegen.types import Action

logger = logging.getLogger(__name__)


class ConfigError(DelegatedCommandError):
    """Raised when make cannot load the requested defconfig."""

    def __init__(self, defconfig: str, exit_code: int | None) -> None:
        super().__init__(
            defconfig,
            exit_code,
            message=(
                f"Applying defconfig {defconfig} failed with exit code {exit_code}"
            ),
            code="config_error",
        )
        self.defconfig = defconfig


def apply_defconfig(build_system: BuildSystem, defconfig: str) -> None:
    """Expand a named defconfig into the workspace's .config.

    Raises:
        ConfigError: If make rejects the defconfig.
        DelegatedCommandError: If make cannot be started at all.
    """
    logger.info("Running defconfig: %s", defconfig)
    try:
        run_step(build_system, defconfig)
    except DelegatedCommandError as e:
        if e.code == "execution_error":
            raise
        raise ConfigError(defconfig, e.exit_code) from e


def save_defconfig(build_system: BuildSystem) -> None:
    """Write the workspace configuration back to the board defconfig."""
    logger.info("Saving current configuration")
    run_step(build_system, Action.SAVEDEFCONFIG.value)


def check_external_tree(external_root: Path) -> bool:
    """Warn unless external_root looks like a BR2_EXTERNAL tree.

    Returns:
        True if external.mk or external.desc is present.
    """
    found = (external_root / "external.mk").is_file() or (
        external_root / "external.desc"
    ).is_file()
    if not found:
        logger.warning(
            "%s doesn't appear to be a BR2_EXTERNAL directory "
            "(no external.mk or external.desc)",
            external_root,
        )
    return found


def ensure_local_overlay(external_root: Path, overlay_dirs: Iterable[str]) -> list[Path]:
    """Create the board's local overlay directories if missing.

    Args:
        external_root: BR2_EXTERNAL project root.
        overlay_dirs: Directories relative to external_root.

    Returns:
        Absolute paths of the overlay directories.
    """
    created: list[Path] = []
    for rel in overlay_dirs:
        path = external_root / rel
        path.mkdir(parents=True, exist_ok=True)
        created.append(path)
    return created


__all__ = [
    "ConfigError",
    "apply_defconfig",
    "check_external_tree",
    "ensure_local_overlay",
    "save_defconfig",
]
