"""Centralized package information for polyvalid.

This module provides a single source of truth for the package name
and version.
"""

from importlib.metadata import PackageNotFoundError, version

__all__ = ["PACKAGE_NAME", "PACKAGE_VERSION"]

PACKAGE_NAME = "polyvalid"

try:
    PACKAGE_VERSION = version(PACKAGE_NAME)
except PackageNotFoundError:
    # Running from a source checkout without an install
    PACKAGE_VERSION = "unknown"
