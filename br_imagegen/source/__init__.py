"""Buildroot source management module.

This module handles:
- Selecting a download transport (httpx, wget, curl)
- Downloading the pinned Buildroot release tarball
- Extracting it once into the working tree
"""

from br_imagegen.source.fetch import (
    CommandTransport,
    DownloadError,
    ExtractionError,
    HttpxTransport,
    ProvisionError,
    Transport,
    build_transports,
    select_transport,
)
from br_imagegen.source.service import (
    SourceResult,
    ensure_source,
    ensure_source_from_settings,
)

__all__ = [
    # Fetch module
    "CommandTransport",
    "DownloadError",
    "ExtractionError",
    "HttpxTransport",
    "ProvisionError",
    "Transport",
    "build_transports",
    "select_transport",
    # Service module
    "SourceResult",
    "ensure_source",
    "ensure_source_from_settings",
]
