"""Build orchestration.

This module provides the high-level build API:
- BuildOrchestrator.run(): dispatch one BuildRequest to the right sequence
  of make targets

Actions:
- ``savedefconfig``: save the current configuration, nothing else
- ``pixelpilot_fast``: rebuild one package, regenerate the rootfs and
  images, then package them
- anything else: passed to make as-is; ``all`` is followed by packaging

Every action except ``savedefconfig`` loads the defconfig first.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from pathlib import Path

from br_imagegen.builds.artifacts import package_images
from br_imagegen.builds.defconfig import apply_defconfig, save_defconfig
from br_imagegen.builds.resolver import PackageResolver, ResolveContext
from br_imagegen.builds.runner import BuildSystem, run_step
from br_imagegen.types import Action, ArtifactSet, BuildRequest, StepOutcome

logger = logging.getLogger(__name__)

Packager = Callable[[Path, str], ArtifactSet]


class ResolutionError(Exception):
    """Raised when the fast rebuild cannot tell which package to rebuild."""

    def __init__(
        self,
        candidates: Sequence[str],
        code: str = "package_not_resolved",
    ) -> None:
        self.candidates = list(candidates)
        super().__init__(
            "Could not detect the Buildroot package to rebuild "
            f"(searched: {', '.join(self.candidates)}). "
            "Search your BR2_EXTERNAL tree for the package .mk file and add "
            "its name to the fast rebuild candidates."
        )
        self.code = code


@dataclass
class FastRebuildTargets:
    """Targets used by the fast rebuild after the package itself."""

    finalize: str = "target-finalize"
    rootfs: str = "rootfs-squashfs"
    legal_info: str = "legal-info"
    image_probe: str = "sdcard.img"
    image_fallback: str = "all"


@dataclass
class BuildReport:
    """What a run did.

    Attributes:
        action: The requested action.
        steps: Outcomes of the delegated steps, in order.
        package: Package rebuilt by the fast path.
        image_target: Image target chosen by the fast path.
        artifacts: Packaging result, when packaging ran.
    """

    action: str
    steps: list[StepOutcome] = field(default_factory=list)
    package: str | None = None
    image_target: str | None = None
    artifacts: ArtifactSet | None = None

    @property
    def recovered_steps(self) -> list[StepOutcome]:
        return [s for s in self.steps if s.recovered]


class BuildOrchestrator:
    """Runs exactly one action per invocation against a build system."""

    def __init__(
        self,
        build_system: BuildSystem,
        resolver: PackageResolver,
        external_root: Path,
        packager: Packager = package_images,
        targets: FastRebuildTargets | None = None,
    ) -> None:
        self.build_system = build_system
        self.resolver = resolver
        self.external_root = external_root
        self.packager = packager
        self.targets = targets or FastRebuildTargets()

    def run(self, request: BuildRequest) -> BuildReport:
        """Dispatch a request.

        Raises:
            ConfigError: If the defconfig cannot be applied.
            ResolutionError: If the fast rebuild finds no package.
            DelegatedCommandError: If a required make target fails.
            PackageError: If packaging fails.
        """
        report = BuildReport(action=request.action)

        if request.action == Action.SAVEDEFCONFIG:
            save_defconfig(self.build_system)
            return report

        apply_defconfig(self.build_system, request.defconfig)

        if request.action == Action.PIXELPILOT_FAST:
            self._fast_rebuild(request, report)
        else:
            self._named(request, report)
        return report

    def _step(
        self, report: BuildReport, target: str, best_effort: bool = False
    ) -> StepOutcome:
        outcome = run_step(self.build_system, target, best_effort=best_effort)
        report.steps.append(outcome)
        return outcome

    def _named(self, request: BuildRequest, report: BuildReport) -> None:
        logger.info("Starting build of %s", request.action)
        self._step(report, request.action)
        if request.action == Action.ALL:
            report.artifacts = self.packager(request.images_dir, request.defconfig)

    def _fast_rebuild(self, request: BuildRequest, report: BuildReport) -> None:
        logger.info("Fast path: rebuild package and regenerate images")
        context = ResolveContext(
            config_path=request.config_path,
            external_root=self.external_root,
        )
        package = self.resolver.resolve(context)
        if package is None:
            raise ResolutionError(self.resolver.candidates)
        logger.info("Detected package: %s", package)
        report.package = package

        self._step(report, f"{package}-dirclean")
        self._step(report, package)
        self._step(report, f"{package}-reinstall")
        self._step(report, self.targets.finalize)
        self._step(report, self.targets.rootfs, best_effort=True)
        self._step(report, self.targets.legal_info, best_effort=True)

        report.image_target = self.select_image_target()
        self._step(report, report.image_target)

        report.artifacts = self.packager(request.images_dir, request.defconfig)

    def select_image_target(self) -> str:
        """Prefer the specific image target when make can resolve it."""
        if self.build_system.try_resolve_target(self.targets.image_probe):
            return self.targets.image_probe
        logger.info(
            "%s not available; falling back to %s",
            self.targets.image_probe,
            self.targets.image_fallback,
        )
        return self.targets.image_fallback


__all__ = [
    "BuildOrchestrator",
    "BuildReport",
    "FastRebuildTargets",
    "Packager",
    "ResolutionError",
]
