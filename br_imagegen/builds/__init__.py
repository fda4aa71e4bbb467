"""Build orchestration module.

This module handles:
- Running Buildroot make targets (fail-fast or best-effort)
- Applying and saving defconfigs
- Resolving the package rebuilt by the fast path
- Dispatching build actions
- Packaging images with checksums
"""

from br_imagegen.builds.orchestrator import (
    BuildOrchestrator,
    BuildReport,
    ResolutionError,
)

__all__ = ["BuildOrchestrator", "BuildReport", "ResolutionError"]

# Access other submodules directly, e.g. br_imagegen.builds.runner
