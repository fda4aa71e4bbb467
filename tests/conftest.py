"""Shared fixtures for br_imagegen tests."""

from pathlib import Path

import pytest

from br_imagegen.types import ArtifactSet


class FakeBuildSystem:
    """In-memory BuildSystem recording every call.

    Attributes:
        failures: Exit codes returned for specific targets (default 0).
        known_targets: Targets the dry-run probe reports as resolvable.
        calls: ("invoke" | "probe", target) tuples in call order.
    """

    def __init__(
        self,
        failures: dict[str, int] | None = None,
        known_targets: set[str] | None = None,
    ) -> None:
        self.failures = failures or {}
        self.known_targets = known_targets or set()
        self.calls: list[tuple[str, str]] = []

    def invoke(self, target: str) -> int:
        self.calls.append(("invoke", target))
        return self.failures.get(target, 0)

    def try_resolve_target(self, target: str) -> bool:
        self.calls.append(("probe", target))
        return target in self.known_targets

    @property
    def invoked(self) -> list[str]:
        return [target for kind, target in self.calls if kind == "invoke"]


class RecordingPackager:
    """Packager stand-in recording its arguments."""

    def __init__(self) -> None:
        self.calls: list[tuple[Path, str]] = []

    def __call__(self, images_dir: Path, defconfig: str) -> ArtifactSet:
        self.calls.append((images_dir, defconfig))
        return ArtifactSet(images_dir=images_dir, bundle=images_dir / "board.tar.gz")


@pytest.fixture
def build_system() -> FakeBuildSystem:
    return FakeBuildSystem()


@pytest.fixture
def packager() -> RecordingPackager:
    return RecordingPackager()


@pytest.fixture
def build_system_factory():
    """Factory for FakeBuildSystem with configured failures and known targets."""
    return FakeBuildSystem
