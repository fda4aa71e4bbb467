"""Buildroot source fetch module.

This module handles:
- Download transports (in-process httpx, wget, curl) and their selection
- Streaming the release tarball to a temporary archive
- Extraction of the archive into the working directory
"""

from __future__ import annotations

import logging
import shutil
import subprocess
import tarfile
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

import httpx

logger = logging.getLogger(__name__)

# Timeout for downloads (seconds)
DOWNLOAD_TIMEOUT = 3600

# Chunk size for downloads (bytes)
DOWNLOAD_CHUNK_SIZE = 64 * 1024  # 64 KB


class ProvisionError(Exception):
    """Raised when the Buildroot source cannot be provisioned."""

    def __init__(self, message: str, code: str = "provision_error") -> None:
        """Initialize ProvisionError.

        Args:
            message: Error description.
            code: Error code for structured error handling.
        """
        super().__init__(message)
        self.code = code


class DownloadError(ProvisionError):
    """Raised when the source archive download fails."""

    def __init__(self, message: str, code: str = "download_error") -> None:
        super().__init__(message, code=code)


class ExtractionError(ProvisionError):
    """Raised when archive extraction fails."""

    def __init__(self, message: str, code: str = "extraction_error") -> None:
        super().__init__(message, code=code)


class Transport(Protocol):
    """A way of fetching bytes from a URL into a file."""

    name: str

    def is_available(self) -> bool: ...

    def fetch(self, url: str, dest_path: Path) -> None: ...


class HttpxTransport:
    """In-process streaming download with httpx."""

    name = "httpx"

    def __init__(
        self,
        client: httpx.Client | None = None,
        timeout: float = DOWNLOAD_TIMEOUT,
        chunk_size: int = DOWNLOAD_CHUNK_SIZE,
    ) -> None:
        self._client = client
        self.timeout = timeout
        self.chunk_size = chunk_size

    def is_available(self) -> bool:
        return True

    def fetch(self, url: str, dest_path: Path) -> None:
        if self._client is not None:
            download_file(self._client, url, dest_path, self.timeout, self.chunk_size)
            return
        with httpx.Client(follow_redirects=True) as client:
            download_file(client, url, dest_path, self.timeout, self.chunk_size)


@dataclass
class CommandTransport:
    """Download by running an external tool such as wget or curl.

    Attributes:
        name: Executable name looked up on PATH.
        args: Argument template; ``{url}`` and ``{dest}`` are substituted.
    """

    name: str
    args: tuple[str, ...]

    def is_available(self) -> bool:
        return shutil.which(self.name) is not None

    def fetch(self, url: str, dest_path: Path) -> None:
        cmd = [self.name] + [
            arg.format(url=url, dest=str(dest_path)) for arg in self.args
        ]
        logger.info("Downloading %s with %s", url, self.name)
        try:
            result = subprocess.run(cmd, check=False)
        except OSError as e:
            raise DownloadError(
                f"Failed to run {self.name}: {e}",
                code="execution_error",
            ) from e
        if result.returncode != 0:
            raise DownloadError(
                f"{self.name} failed downloading {url} (exit {result.returncode})",
                code="download_error",
            )


WGET_TRANSPORT = CommandTransport("wget", ("{url}", "-O", "{dest}"))
CURL_TRANSPORT = CommandTransport("curl", ("-fL", "-o", "{dest}", "{url}"))


def build_transports(
    names: Sequence[str],
    timeout: float = DOWNLOAD_TIMEOUT,
) -> list[Transport]:
    """Build transports from their configured names, keeping order.

    Args:
        names: Transport names ("httpx", "wget", "curl").
        timeout: Timeout applied to the in-process transport.

    Returns:
        List of transports.

    Raises:
        ValueError: If a name is unknown.
    """
    transports: list[Transport] = []
    for name in names:
        if name == "httpx":
            transports.append(HttpxTransport(timeout=timeout))
        elif name == "wget":
            transports.append(WGET_TRANSPORT)
        elif name == "curl":
            transports.append(CURL_TRANSPORT)
        else:
            raise ValueError(f"Unknown transport: {name}")
    return transports


def select_transport(transports: Sequence[Transport]) -> Transport:
    """Return the first available transport.

    Raises:
        ProvisionError: If none of the transports is available.
    """
    for transport in transports:
        if transport.is_available():
            logger.debug("Using %s transport", transport.name)
            return transport

    names = ", ".join(t.name for t in transports) or "(none configured)"
    raise ProvisionError(
        f"No download transport available (tried: {names}). "
        "Please install wget or curl.",
        code="no_transport",
    )


def download_file(
    client: httpx.Client,
    url: str,
    dest_path: Path,
    timeout: float = DOWNLOAD_TIMEOUT,
    chunk_size: int = DOWNLOAD_CHUNK_SIZE,
) -> int:
    """Stream a URL to a file.

    Args:
        client: HTTPX client instance.
        url: URL to download from.
        dest_path: Destination path for the downloaded file.
        timeout: Download timeout in seconds.
        chunk_size: Size of chunks to download.

    Returns:
        Number of bytes written.

    Raises:
        DownloadError: If download fails.
    """
    logger.info("Downloading %s to %s", url, dest_path)

    try:
        with client.stream("GET", url, timeout=timeout) as response:
            response.raise_for_status()

            total_bytes = 0
            dest_path.parent.mkdir(parents=True, exist_ok=True)

            with dest_path.open("wb") as f:
                for chunk in response.iter_bytes(chunk_size):
                    f.write(chunk)
                    total_bytes += len(chunk)

    except httpx.HTTPStatusError as e:
        dest_path.unlink(missing_ok=True)
        raise DownloadError(
            f"HTTP error downloading {url}: {e.response.status_code} {e.response.reason_phrase}",
            code="http_error",
        ) from e
    except httpx.TimeoutException as e:
        dest_path.unlink(missing_ok=True)
        raise DownloadError(
            f"Timeout downloading {url}",
            code="timeout",
        ) from e
    except httpx.RequestError as e:
        dest_path.unlink(missing_ok=True)
        raise DownloadError(
            f"Network error downloading {url}: {e}",
            code="network_error",
        ) from e

    logger.info("Downloaded %s (%d bytes)", dest_path.name, total_bytes)
    return total_bytes


def extract_archive(archive_path: Path, dest_dir: Path, top_level: str) -> Path:
    """Extract a gzip tarball and return its top-level directory.

    Args:
        archive_path: Path to the ``.tar.gz`` archive.
        dest_dir: Directory to extract into.
        top_level: Name of the directory the archive is expected to create.

    Returns:
        Path to the extracted top-level directory.

    Raises:
        ExtractionError: If extraction fails or the directory is missing.
    """
    logger.info("Extracting %s to %s", archive_path.name, dest_dir)

    dest_dir.mkdir(parents=True, exist_ok=True)

    try:
        with tarfile.open(archive_path, "r:gz") as tar:
            members = tar.getmembers()
            if not members:
                raise ExtractionError(
                    f"Archive {archive_path} is empty",
                    code="empty_archive",
                )

            for member in members:
                member_path = Path(member.name)
                if member_path.is_absolute() or ".." in member_path.parts:
                    raise ExtractionError(
                        f"Refusing to extract {member.name}: path traversal detected",
                        code="path_traversal",
                    )

            tar.extractall(dest_dir, filter="data")

    except tarfile.TarError as e:
        raise ExtractionError(
            f"Failed to extract {archive_path}: {e}",
            code="tar_error",
        ) from e
    except OSError as e:
        raise ExtractionError(
            f"OS error extracting {archive_path}: {e}",
            code="os_error",
        ) from e

    root_dir = dest_dir / top_level
    if not root_dir.is_dir():
        raise ExtractionError(
            f"Archive {archive_path.name} did not contain {top_level}/",
            code="missing_top_level",
        )
    return root_dir


__all__ = [
    "CURL_TRANSPORT",
    "CommandTransport",
    "DOWNLOAD_TIMEOUT",
    "DownloadError",
    "ExtractionError",
    "HttpxTransport",
    "ProvisionError",
    "Transport",
    "WGET_TRANSPORT",
    "build_transports",
    "download_file",
    "extract_archive",
    "select_transport",
]
