"""Build runner for executing Buildroot make commands.

This module handles:
- Composing `make -C <buildroot> O=<workspace> <target>` commands
- Executing targets with subprocess, optionally logging to a file
- Dry-run probing of whether make knows a target
- Fail-fast and best-effort step execution
"""

from __future__ import annotations

import logging
import os
import shlex
import subprocess
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Protocol

from br_imagegen.types import StepOutcome, StepStatus

logger = logging.getLogger(__name__)


class DelegatedCommandError(Exception):
    """Raised when a non best-effort make target fails."""

    def __init__(
        self,
        target: str,
        exit_code: int | None,
        message: str | None = None,
        code: str = "command_failed",
    ) -> None:
        if message is None:
            message = f"make {target} failed with exit code {exit_code}"
        super().__init__(message)
        self.target = target
        self.exit_code = exit_code
        self.code = code


class BuildSystem(Protocol):
    """What the orchestrator needs from Buildroot."""

    def invoke(self, target: str) -> int: ...

    def try_resolve_target(self, target: str) -> bool: ...


@dataclass(frozen=True)
class Toolchain:
    """Handle on a Buildroot tree driving one output workspace.

    Attributes:
        source_dir: Unpacked Buildroot tree (make -C).
        external_root: BR2_EXTERNAL project root.
        workspace: Output directory for this defconfig (make O=).
    """

    source_dir: Path
    external_root: Path
    workspace: Path

    def command(self, target: str, dry_run: bool = False) -> list[str]:
        """Compose the make command for a target.

        Args:
            target: Make target.
            dry_run: Ask make to only print what it would do.

        Returns:
            Command as list of strings suitable for subprocess.
        """
        cmd = ["make", "-C", str(self.source_dir), f"O={self.workspace}"]
        if dry_run:
            cmd.append("-n")
        cmd.append(target)
        return cmd

    def environment(self) -> dict[str, str]:
        """Process environment with BR2_EXTERNAL pointing at the project."""
        env = dict(os.environ)
        env["BR2_EXTERNAL"] = str(self.external_root)
        return env


class MakeBuildSystem:
    """BuildSystem implementation running make in a subprocess."""

    def __init__(self, toolchain: Toolchain, log_path: Path | None = None) -> None:
        self.toolchain = toolchain
        self.log_path = log_path

    def invoke(self, target: str) -> int:
        """Run a make target and return its exit code.

        Raises:
            DelegatedCommandError: If make cannot be started.
        """
        cmd = self.toolchain.command(target)
        cmd_str = shlex.join(cmd)
        logger.info("Executing: %s", cmd_str)

        if self.log_path is None:
            return self._run(cmd, target)

        self.log_path.parent.mkdir(parents=True, exist_ok=True)
        started_at = datetime.now(timezone.utc)
        with self.log_path.open("a") as log_file:
            log_file.write(f"# Command: {cmd_str}\n")
            log_file.write(f"# Started: {started_at.isoformat()}\n")
            log_file.write("# " + "=" * 70 + "\n")
            log_file.flush()

            exit_code = self._run(
                cmd, target, stdout=log_file, stderr=subprocess.STDOUT
            )

            finished_at = datetime.now(timezone.utc)
            duration = (finished_at - started_at).total_seconds()
            log_file.write(f"# Exit code: {exit_code}\n")
            log_file.write(f"# Duration: {duration:.1f}s\n\n")

        return exit_code

    def try_resolve_target(self, target: str) -> bool:
        """Return whether make can resolve a target, without building it."""
        cmd = self.toolchain.command(target, dry_run=True)
        logger.debug("Probing: %s", shlex.join(cmd))
        exit_code = self._run(
            cmd, target, stdout=subprocess.DEVNULL, stderr=subprocess.DEVNULL
        )
        return exit_code == 0

    def _run(self, cmd: list[str], target: str, **kwargs) -> int:
        try:
            result = subprocess.run(
                cmd,
                env=self.toolchain.environment(),
                check=False,
                **kwargs,
            )
        except OSError as e:
            raise DelegatedCommandError(
                target,
                exit_code=None,
                message=f"Failed to execute make for {target}: {e}",
                code="execution_error",
            ) from e
        return result.returncode


def run_step(
    build_system: BuildSystem,
    target: str,
    best_effort: bool = False,
) -> StepOutcome:
    """Invoke one make target.

    Args:
        build_system: Build system to delegate to.
        target: Make target.
        best_effort: Log failures instead of raising.

    Returns:
        StepOutcome; RECOVERED carries the error of a failed best-effort step.

    Raises:
        DelegatedCommandError: If a required step exits non-zero.
    """
    exit_code = build_system.invoke(target)
    if exit_code == 0:
        return StepOutcome(target=target, status=StepStatus.SUCCEEDED)

    error = DelegatedCommandError(target, exit_code)
    if not best_effort:
        logger.error("%s", error)
        raise error

    logger.warning("%s; continuing", error)
    return StepOutcome(
        target=target,
        status=StepStatus.RECOVERED,
        exit_code=exit_code,
        error=error,
    )


__all__ = [
    "BuildSystem",
    "DelegatedCommandError",
    "MakeBuildSystem",
    "Toolchain",
    "run_step",
]
