"""Thin CLI wrapper for br_imagegen.

This module provides the command-line interface using Typer.
All business logic is delegated to core modules.
"""

import logging
import sys
from pathlib import Path
from typing import Annotated

import click
import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape

from br_imagegen import __version__
from br_imagegen.builds.artifacts import PackageError
from br_imagegen.builds.defconfig import (
    ConfigError,
    check_external_tree,
    ensure_local_overlay,
)
from br_imagegen.builds.orchestrator import (
    BuildOrchestrator,
    BuildReport,
    FastRebuildTargets,
    ResolutionError,
)
from br_imagegen.builds.resolver import default_resolver
from br_imagegen.builds.runner import (
    DelegatedCommandError,
    MakeBuildSystem,
    Toolchain,
)
from br_imagegen.config import Settings, get_settings, print_settings_json
from br_imagegen.source.fetch import ProvisionError
from br_imagegen.source.service import ensure_source_from_settings
from br_imagegen.types import Action, BuildRequest

ACTIONS_EPILOG = (
    "Actions: all (full build, default), "
    "pixelpilot_fast (rebuild PixelPilot, regenerate rootfs/images, package tar), "
    "savedefconfig (save the current configuration), "
    "or any other Buildroot make target."
)

app = typer.Typer(
    name="brbuild",
    help="Buildroot Image Generator - build and package firmware images",
    add_completion=False,
    context_settings={"help_option_names": ["-h", "--help"]},
)
console = Console()


def configure_logging(level: str) -> None:
    """Send log records through rich on stderr."""
    root = logging.getLogger()
    if any(isinstance(h, RichHandler) for h in root.handlers):
        root.setLevel(level)
        return
    handler = RichHandler(console=Console(stderr=True), show_path=False)
    handler.setFormatter(logging.Formatter("%(message)s"))
    root.addHandler(handler)
    root.setLevel(level)


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"buildroot-imagegen version {__version__}")
        raise typer.Exit()


def show_config_callback(value: bool) -> None:
    """Print effective settings as JSON and exit."""
    if value:
        typer.echo(print_settings_json(get_settings()))
        raise typer.Exit()


def _step_failure(kind: str, step: str, error: DelegatedCommandError) -> str:
    prefix = f"Error: {kind} '{escape(step)}' failed"
    if error.exit_code is None:
        return f"{prefix}: {escape(str(error))}"
    return f"{prefix} (exit status {error.exit_code})"


def create_orchestrator(
    settings: Settings, source_dir: Path, request: BuildRequest
) -> BuildOrchestrator:
    """Wire the make-backed orchestrator for one request."""
    external_root = settings.external_root.resolve()
    toolchain = Toolchain(
        source_dir=source_dir.resolve(),
        external_root=external_root,
        workspace=request.workspace,
    )
    return BuildOrchestrator(
        build_system=MakeBuildSystem(toolchain, log_path=settings.build_log),
        resolver=default_resolver(
            settings.fast_candidates, settings.package_search_depth
        ),
        external_root=external_root,
        targets=FastRebuildTargets(
            image_probe=settings.image_probe_target,
            image_fallback=settings.fallback_image_target,
        ),
    )


def _print_report(report: BuildReport) -> None:
    for step in report.recovered_steps:
        console.print(
            f"[yellow]Warning: {escape(step.target)} failed "
            f"(exit status {step.exit_code}), continued[/yellow]"
        )
    if report.artifacts is not None:
        console.print(f"Bundle: {report.artifacts.bundle}")
    if report.action == Action.PIXELPILOT_FAST:
        console.print("[green]Fast build completed successfully![/green]")
    else:
        console.print("[green]Build completed successfully![/green]")


@app.command(epilog=ACTIONS_EPILOG)
def build(
    action: Annotated[
        str | None,
        typer.Argument(help="Action or make target (default: all)", show_default=False),
    ] = None,
    output_dir: Annotated[
        Path | None,
        typer.Option("--output-dir", "-o", help="Buildroot O= output directory"),
    ] = None,
    defconfig: Annotated[
        str | None,
        typer.Option("--defconfig", "-d", help="Board defconfig name"),
    ] = None,
    version: Annotated[
        bool | None,
        typer.Option(
            "--version",
            "-V",
            help="Show version and exit",
            callback=version_callback,
            is_eager=True,
        ),
    ] = None,
    show_config: Annotated[
        bool | None,
        typer.Option(
            "--show-config",
            help="Show effective configuration as JSON and exit",
            callback=show_config_callback,
            is_eager=True,
        ),
    ] = None,
) -> None:
    """Build a Buildroot firmware image for a board defconfig."""
    settings = get_settings()
    configure_logging(settings.log_level)

    try:
        request = BuildRequest(
            output_dir=(output_dir or settings.output_dir).resolve(),
            defconfig=defconfig or settings.defconfig,
            action=action or settings.default_action,
        )
    except ValueError as e:
        console.print(f"[red]Error: {escape(str(e))}[/red]")
        raise typer.Exit(code=1) from None

    console.print(f"Starting Buildroot build for {request.defconfig}")
    external_root = settings.external_root.resolve()

    stage = "Buildroot setup"
    try:
        source = ensure_source_from_settings(settings)
        stage = "workspace setup"
        check_external_tree(external_root)
        ensure_local_overlay(external_root, settings.overlay_dirs)
        request.output_dir.mkdir(parents=True, exist_ok=True)
        console.print(f"Using output directory: {request.workspace}")
        console.print(f"Building with BR2_EXTERNAL={external_root}")

        orchestrator = create_orchestrator(settings, source.source_dir, request)
        stage = request.action
        report = orchestrator.run(request)
    except ProvisionError as e:
        console.print(f"[red]Error: Buildroot setup failed: {escape(str(e))}[/red]")
        raise typer.Exit(code=1) from None
    except ResolutionError as e:
        console.print(f"[red]Error: {escape(str(e))}[/red]")
        console.print(f"Candidates searched: {', '.join(e.candidates)}")
        console.print(f"Tip: grep -R -i {escape(e.candidates[-1])} . | head")
        raise typer.Exit(code=1) from None
    except ConfigError as e:
        console.print(f"[red]{_step_failure('defconfig step', e.defconfig, e)}[/red]")
        raise typer.Exit(code=1) from None
    except DelegatedCommandError as e:
        console.print(f"[red]{_step_failure('step', e.target, e)}[/red]")
        raise typer.Exit(code=1) from None
    except PackageError as e:
        console.print(f"[red]Error: packaging failed: {escape(str(e))}[/red]")
        raise typer.Exit(code=1) from None
    except OSError as e:
        console.print(f"[red]Error: {escape(stage)} failed: {escape(str(e))}[/red]")
        raise typer.Exit(code=1) from None

    _print_report(report)


def main(argv: list[str] | None = None) -> int:
    """Run the CLI and return its exit code.

    Usage errors exit with 1 rather than click's default of 2.
    """
    command = typer.main.get_command(app)
    try:
        rv = command.main(args=argv, prog_name="brbuild", standalone_mode=False)
    except click.UsageError as e:
        e.show()
        return 1
    except click.ClickException as e:
        e.show()
        return e.exit_code
    except click.Abort:
        console.print("[red]Aborted[/red]")
        return 130
    return rv if isinstance(rv, int) else 0


def run() -> None:
    """Console script entry point."""
    sys.exit(main())


if __name__ == "__main__":
    run()
