"""Configuration settings for br_imagegen.

Uses pydantic-settings for config parsing from environment variables
and defaults. Configuration precedence: CLI flags > env vars > defaults.
"""

from pathlib import Path
from typing import Literal

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_BUILDROOT_VERSION = "2025.08.1"
DEFAULT_BUILDROOT_URL = "https://buildroot.org/downloads/buildroot-{version}.tar.gz"


def _default_output_dir() -> Path:
    """Return the default Buildroot O= root."""
    return Path.cwd() / "output"


class Settings(BaseSettings):
    """Application settings.

    Settings are loaded from environment variables with the BRBUILD_ prefix.
    A few settings also honour the plain variables Buildroot users already
    export (DEFCONFIG, BR2_EXTERNAL). CLI flags can override these
    at runtime.
    """

    model_config = SettingsConfigDict(
        env_prefix="BRBUILD_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    # Buildroot source
    buildroot_version: str = Field(
        default=DEFAULT_BUILDROOT_VERSION,
        description="Pinned Buildroot release",
    )
    buildroot_url_template: str = Field(
        default=DEFAULT_BUILDROOT_URL,
        description="Download URL template, formatted with {version}",
    )
    source_dir: Path = Field(
        default=Path("buildroot"),
        description="Directory holding the unpacked Buildroot tree",
    )
    transports: list[Literal["httpx", "wget", "curl"]] = Field(
        default_factory=lambda: ["wget", "curl", "httpx"],
        description=(
            "Download transports in order of preference; httpx is always "
            "available, so leave it out to require wget or curl"
        ),
    )
    download_timeout: int = Field(
        default=3600,
        ge=60,
        description="Timeout for the Buildroot download (seconds)",
    )

    # Paths
    external_root: Path = Field(
        default_factory=Path.cwd,
        validation_alias=AliasChoices("BRBUILD_EXTERNAL_ROOT", "BR2_EXTERNAL"),
        description="BR2_EXTERNAL project root",
    )
    output_dir: Path = Field(
        default_factory=_default_output_dir,
        description="Root of the per-defconfig output workspaces",
    )
    overlay_dirs: list[str] = Field(
        default_factory=lambda: ["board/local/overlay/etc/network/interfaces.d"],
        description="Local overlay directories created under the external root",
    )
    build_log: Path | None = Field(
        default=None,
        description="Append make output to this file instead of the terminal",
    )

    # Build selection
    defconfig: str = Field(
        default="runcam_wifilink_defconfig",
        min_length=1,
        validation_alias=AliasChoices("BRBUILD_DEFCONFIG", "DEFCONFIG"),
        description="Board defconfig name",
    )
    default_action: str = Field(
        default="all",
        min_length=1,
        description="Action used when none is given on the command line",
    )

    # Fast rebuild
    fast_candidates: list[str] = Field(
        default_factory=lambda: ["pixelpilot-rk", "pixelpilot"],
        min_length=1,
        description="Package names tried, in order, for the fast rebuild",
    )
    package_search_depth: int = Field(
        default=4,
        ge=1,
        description="Maximum depth searched for <package>.mk files",
    )
    image_probe_target: str = Field(
        default="sdcard.img",
        description="Image target preferred by the fast rebuild when make knows it",
    )
    fallback_image_target: str = Field(
        default="all",
        description="Target used when the preferred image target is unknown",
    )

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Logging level",
    )

    @property
    def buildroot_url(self) -> str:
        """Download URL for the pinned Buildroot release."""
        return self.buildroot_url_template.format(version=self.buildroot_version)


def get_settings() -> Settings:
    """Get the application settings.

    Returns:
        Settings instance loaded from environment.
    """
    return Settings()


def print_settings_json(settings: Settings | None = None) -> str:
    """Render effective settings as JSON.

    Args:
        settings: Optional settings instance; uses default if not provided.

    Returns:
        JSON string of effective settings.
    """
    if settings is None:
        settings = get_settings()
    return settings.model_dump_json(indent=2)


__all__ = [
    "DEFAULT_BUILDROOT_URL",
    "DEFAULT_BUILDROOT_VERSION",
    "Settings",
    "get_settings",
    "print_settings_json",
]
