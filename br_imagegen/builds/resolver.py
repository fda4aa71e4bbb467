"""Package name resolution for the fast rebuild.

A component can be packaged under more than one name (for example
``pixelpilot-rk`` and ``pixelpilot``). The resolver tries each candidate in
order against an ordered list of matchers and returns the first candidate
any matcher accepts.

``None`` means no candidate matched. Filesystem errors hit while searching
(other than a missing .config) propagate as ``OSError``.
"""

from __future__ import annotations

import logging
import os
import re
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from pathlib import Path

logger = logging.getLogger(__name__)

DEFAULT_SEARCH_DEPTH = 4


@dataclass(frozen=True)
class ResolveContext:
    """Where matchers look.

    Attributes:
        config_path: The workspace's expanded .config.
        external_root: BR2_EXTERNAL project root.
    """

    config_path: Path
    external_root: Path


Matcher = Callable[[str, ResolveContext], bool]


def config_symbol_matcher(candidate: str, context: ResolveContext) -> bool:
    """Match when a .config line starts with the candidate and whitespace."""
    pattern = re.compile(rf"{re.escape(candidate)}\s")
    try:
        with context.config_path.open(encoding="utf-8", errors="replace") as f:
            return any(pattern.match(line) for line in f)
    except FileNotFoundError:
        return False


def _raise(error: OSError) -> None:
    raise error


def find_package_makefile(
    root: Path,
    candidate: str,
    max_depth: int = DEFAULT_SEARCH_DEPTH,
) -> Path | None:
    """Find ``<candidate>.mk`` at most ``max_depth`` levels below root.

    Depth counts like ``find -maxdepth``: root's direct children are at
    depth 1.
    """
    filename = f"{candidate}.mk"
    for dirpath, dirnames, filenames in os.walk(root, onerror=_raise):
        depth = len(Path(dirpath).relative_to(root).parts) + 1
        if filename in filenames:
            return Path(dirpath) / filename
        if depth >= max_depth:
            dirnames[:] = []
        else:
            dirnames.sort()
    return None


def package_makefile_matcher(max_depth: int = DEFAULT_SEARCH_DEPTH) -> Matcher:
    """Build a matcher looking for ``<candidate>.mk`` under the external root."""

    def matcher(candidate: str, context: ResolveContext) -> bool:
        return (
            find_package_makefile(context.external_root, candidate, max_depth)
            is not None
        )

    matcher.__name__ = "package_makefile_matcher"
    return matcher


@dataclass
class PackageResolver:
    """Ordered candidates tried against ordered matchers."""

    candidates: Sequence[str]
    matchers: Sequence[Matcher] = field(
        default_factory=lambda: [config_symbol_matcher, package_makefile_matcher()]
    )

    def resolve(self, context: ResolveContext) -> str | None:
        """Return the first candidate accepted by any matcher, or None."""
        for candidate in self.candidates:
            for matcher in self.matchers:
                if matcher(candidate, context):
                    logger.debug(
                        "Candidate %s matched by %s",
                        candidate,
                        getattr(matcher, "__name__", repr(matcher)),
                    )
                    return candidate
        logger.debug("No package candidate matched: %s", list(self.candidates))
        return None


def default_resolver(
    candidates: Sequence[str],
    max_depth: int = DEFAULT_SEARCH_DEPTH,
) -> PackageResolver:
    """Resolver with the .config and package makefile checks."""
    return PackageResolver(
        candidates=list(candidates),
        matchers=[config_symbol_matcher, package_makefile_matcher(max_depth)],
    )


__all__ = [
    "DEFAULT_SEARCH_DEPTH",
    "Matcher",
    "PackageResolver",
    "ResolveContext",
    "config_symbol_matcher",
    "default_resolver",
    "find_package_makefile",
    "package_makefile_matcher",
]
