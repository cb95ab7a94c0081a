"""Deterministic lock files for Python virtual environments."""

from __future__ import annotations

from .environment import VirtualEnvironment, locate_environment
from .errors import (
    EnvironmentIntrospectionError,
    NotInVirtualEnvironment,
    OutputWriteError,
    PylockError,
)
from .inventory import Inventory, PackageRecord, PackageSource, SkippedEntry, scan_environment
from .lockfile import LockDocument, build_lock_document, render_lock, write_lock
from .pipeline import LockResult, lock_environment

__all__ = [
    "EnvironmentIntrospectionError",
    "Inventory",
    "LockDocument",
    "LockResult",
    "NotInVirtualEnvironment",
    "OutputWriteError",
    "PackageRecord",
    "PackageSource",
    "PylockError",
    "SkippedEntry",
    "VirtualEnvironment",
    "build_lock_document",
    "locate_environment",
    "lock_environment",
    "render_lock",
    "scan_environment",
    "write_lock",
]
