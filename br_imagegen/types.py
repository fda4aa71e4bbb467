"""Shared type definitions for br_imagegen.

This module contains dataclasses, enums, and type aliases shared across
subpackages to avoid circular imports.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path


class Action(str, Enum):
    """Actions with dedicated handling; any other string is a make target."""

    ALL = "all"
    SAVEDEFCONFIG = "savedefconfig"
    PIXELPILOT_FAST = "pixelpilot_fast"


class StepStatus(str, Enum):
    """Outcome of one delegated build-system call."""

    SUCCEEDED = "succeeded"
    RECOVERED = "recovered"


@dataclass(frozen=True)
class BuildRequest:
    """One invocation's worth of user input.

    Attributes:
        output_dir: Root of the output workspaces (Buildroot O= parent).
        defconfig: Board defconfig name, e.g. ``runcam_wifilink_defconfig``.
        action: Requested action or literal make target.
    """

    output_dir: Path
    defconfig: str
    action: str = Action.ALL.value

    def __post_init__(self) -> None:
        """Validate fields after initialization."""
        if not self.defconfig:
            raise ValueError("defconfig must be provided")
        if not self.action:
            raise ValueError("action must be provided")

    @property
    def workspace(self) -> Path:
        """Per-configuration Buildroot output directory."""
        return self.output_dir / self.defconfig

    @property
    def images_dir(self) -> Path:
        """Directory Buildroot writes final images to."""
        return self.workspace / "images"

    @property
    def config_path(self) -> Path:
        """Expanded configuration file inside the workspace."""
        return self.workspace / ".config"


@dataclass
class StepOutcome:
    """Result of a delegated step.

    A best-effort step that failed is ``RECOVERED`` and keeps the original
    error for diagnostics.
    """

    target: str
    status: StepStatus
    exit_code: int = 0
    error: Exception | None = None

    @property
    def recovered(self) -> bool:
        return self.status is StepStatus.RECOVERED


@dataclass
class ArtifactSet:
    """Files written by the artifact packager."""

    images_dir: Path
    bundle: Path
    copies: list[Path] = field(default_factory=list)
    digests: list[Path] = field(default_factory=list)
    bundle_members: list[str] = field(default_factory=list)


__all__ = [
    "Action",
    "ArtifactSet",
    "BuildRequest",
    "StepOutcome",
    "StepStatus",
]
