"""Tests for builds/runner.py module.

Tests make command composition and execution.
Uses mocked subprocess for execution tests.
"""

import subprocess
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from br_imagegen.builds.runner import (
    DelegatedCommandError,
    MakeBuildSystem,
    Toolchain,
    run_step,
)
from br_imagegen.types import StepStatus


@pytest.fixture
def toolchain(tmp_path) -> Toolchain:
    """Toolchain rooted in tmp_path."""
    return Toolchain(
        source_dir=tmp_path / "buildroot",
        external_root=tmp_path,
        workspace=tmp_path / "output" / "board_defconfig",
    )


class TestToolchain:
    """Tests for Toolchain command composition."""

    def test_command(self, toolchain, tmp_path):
        """Should compose make -C <source> O=<workspace> <target>."""
        cmd = toolchain.command("all")

        assert cmd == [
            "make",
            "-C",
            str(tmp_path / "buildroot"),
            f"O={tmp_path / 'output' / 'board_defconfig'}",
            "all",
        ]

    def test_dry_run_command(self, toolchain):
        """Should insert -n before the target."""
        cmd = toolchain.command("sdcard.img", dry_run=True)
        assert cmd[-2:] == ["-n", "sdcard.img"]

    def test_command_is_pure(self, toolchain):
        """Should return the same command for the same target."""
        assert toolchain.command("legal-info") == toolchain.command("legal-info")

    def test_environment_sets_br2_external(self, toolchain, tmp_path):
        """Should export BR2_EXTERNAL."""
        env = toolchain.environment()
        assert env["BR2_EXTERNAL"] == str(tmp_path)
        assert "PATH" in env


class TestMakeBuildSystem:
    """Tests for MakeBuildSystem."""

    @patch("br_imagegen.builds.runner.subprocess.run")
    def test_invoke_returns_exit_code(self, mock_run, toolchain, tmp_path):
        """Should run make and return its exit code."""
        mock_run.return_value = MagicMock(returncode=2)

        exit_code = MakeBuildSystem(toolchain).invoke("all")

        assert exit_code == 2
        args, kwargs = mock_run.call_args
        assert args[0] == toolchain.command("all")
        assert kwargs["env"]["BR2_EXTERNAL"] == str(tmp_path)
        assert kwargs["check"] is False

    @patch("br_imagegen.builds.runner.subprocess.run")
    def test_invoke_with_log(self, mock_run, toolchain, tmp_path):
        """Should append command and exit code to the build log."""
        mock_run.return_value = MagicMock(returncode=0)
        log_path = tmp_path / "logs" / "build.log"

        build_system = MakeBuildSystem(toolchain, log_path=log_path)
        build_system.invoke("pixelpilot")
        build_system.invoke("target-finalize")

        content = log_path.read_text()
        assert content.count("# Command: make") == 2
        assert "pixelpilot" in content
        assert "# Exit code: 0" in content
        kwargs = mock_run.call_args.kwargs
        assert kwargs["stderr"] == subprocess.STDOUT

    @patch("br_imagegen.builds.runner.subprocess.run")
    def test_try_resolve_target(self, mock_run, toolchain):
        """Should report resolvability from the dry-run exit code."""
        build_system = MakeBuildSystem(toolchain)

        mock_run.return_value = MagicMock(returncode=0)
        assert build_system.try_resolve_target("sdcard.img") is True
        args, kwargs = mock_run.call_args
        assert "-n" in args[0]
        assert kwargs["stdout"] == subprocess.DEVNULL

        mock_run.return_value = MagicMock(returncode=2)
        assert build_system.try_resolve_target("sdcard.img") is False

    @patch("br_imagegen.builds.runner.subprocess.run")
    def test_make_not_found(self, mock_run, toolchain):
        """Should raise DelegatedCommandError when make cannot start."""
        mock_run.side_effect = FileNotFoundError("make")

        with pytest.raises(DelegatedCommandError) as exc_info:
            MakeBuildSystem(toolchain).invoke("all")

        assert exc_info.value.code == "execution_error"
        assert exc_info.value.exit_code is None
        assert exc_info.value.target == "all"


class TestRunStep:
    """Tests for run_step."""

    def test_success(self, build_system):
        """Should return SUCCEEDED for exit code 0."""
        outcome = run_step(build_system, "all")

        assert outcome.status is StepStatus.SUCCEEDED
        assert outcome.recovered is False
        assert build_system.invoked == ["all"]

    def test_required_failure_raises(self, build_system_factory):
        """Should raise with target and exit code."""
        build_system = build_system_factory(failures={"all": 2})

        with pytest.raises(DelegatedCommandError) as exc_info:
            run_step(build_system, "all")

        assert exc_info.value.target == "all"
        assert exc_info.value.exit_code == 2
        assert "exit code 2" in str(exc_info.value)

    def test_best_effort_failure_recovered(self, build_system_factory, caplog):
        """Should return RECOVERED with the original error and log a warning."""
        build_system = build_system_factory(failures={"legal-info": 1})

        outcome = run_step(build_system, "legal-info", best_effort=True)

        assert outcome.status is StepStatus.RECOVERED
        assert outcome.recovered is True
        assert outcome.exit_code == 1
        assert isinstance(outcome.error, DelegatedCommandError)
        assert outcome.error.target == "legal-info"
        assert any(r.levelname == "WARNING" for r in caplog.records)

    def test_best_effort_success(self, build_system):
        """Should return SUCCEEDED when a best-effort step passes."""
        outcome = run_step(build_system, "rootfs-squashfs", best_effort=True)
        assert outcome.status is StepStatus.SUCCEEDED
        assert outcome.error is None


def test_toolchain_is_frozen(toolchain):
    """Toolchain should be immutable."""
    with pytest.raises(AttributeError):
        toolchain.workspace = Path("/elsewhere")
