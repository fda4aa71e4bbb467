"""Buildroot Image Generator - build orchestration for Buildroot firmware images.

This package drives a pinned Buildroot release with a BR2_EXTERNAL project
tree: fetching the source, applying a board defconfig, running full or fast
incremental builds, and packaging the resulting images.
"""

__version__ = "0.1.0"
__all__ = ["__version__"]
