"""Locate the active virtual environment from an environment snapshot."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping

from .errors import EnvironmentIntrospectionError, NotInVirtualEnvironment

__all__ = [
    "VIRTUAL_ENV_MARKER",
    "VirtualEnvironment",
    "locate_environment",
]

logger = logging.getLogger(__name__)

VIRTUAL_ENV_MARKER = "VIRTUAL_ENV"
PYVENV_CFG = "pyvenv.cfg"

_INTERPRETER_CANDIDATES = (
    Path("bin") / "python",
    Path("bin") / "python3",
    Path("Scripts") / "python.exe",
)
_LIB_DIR_RE = re.compile(r"^python(\d+)\.(\d+)t?$")
_VERSION_RE = re.compile(r"^(\d+)\.(\d+)(?:\.(\d+))?")


@dataclass(frozen=True)
class VirtualEnvironment:
    """Resolved, read-only view of one virtual environment."""

    root: Path
    interpreter: Path
    site_packages: tuple[Path, ...]
    python_version: str

    @property
    def python_minor(self) -> str:
        """``X.Y`` part of the interpreter version."""
        major, minor = self.python_version.split(".")[:2]
        return f"{major}.{minor}"


def locate_environment(environ: Mapping[str, str]) -> VirtualEnvironment:
    """Resolve the virtual environment named by the ``VIRTUAL_ENV`` marker.

    ``environ`` is a snapshot of the process environment; nothing is read
    from ``os.environ`` directly.
    """

    marker = (environ.get(VIRTUAL_ENV_MARKER) or "").strip()
    if not marker:
        raise NotInVirtualEnvironment()

    root = Path(marker).expanduser()
    if not root.is_dir():
        raise EnvironmentIntrospectionError(
            f"{VIRTUAL_ENV_MARKER} points to {marker}, which is not a directory"
        )
    root = root.resolve()

    interpreter = _find_interpreter(root)
    site_packages = _find_site_packages(root)
    python_version = _read_python_version(root, site_packages)
    logger.debug(
        "located virtual environment root=%s python=%s site-packages=%d",
        root,
        python_version,
        len(site_packages),
    )
    return VirtualEnvironment(
        root=root,
        interpreter=interpreter,
        site_packages=site_packages,
        python_version=python_version,
    )


def _find_interpreter(root: Path) -> Path:
    for candidate in _INTERPRETER_CANDIDATES:
        path = root / candidate
        if path.exists():
            return path
    raise EnvironmentIntrospectionError(f"no Python interpreter found in {root}")


def _find_site_packages(root: Path) -> tuple[Path, ...]:
    candidates: list[Path] = []
    for lib_name in ("lib", "lib64"):
        lib_dir = root / lib_name
        if lib_dir.is_dir():
            candidates.extend(sorted(lib_dir.glob("python*/site-packages")))
    candidates.append(root / "Lib" / "site-packages")

    found: list[Path] = []
    seen: set[Path] = set()
    for candidate in candidates:
        if not candidate.is_dir():
            continue
        resolved = candidate.resolve()
        if resolved in seen:
            continue
        seen.add(resolved)
        found.append(candidate)
    if not found:
        raise EnvironmentIntrospectionError(f"no site-packages directory found in {root}")
    return tuple(found)


def _read_pyvenv_cfg(root: Path) -> dict[str, str]:
    path = root / PYVENV_CFG
    try:
        lines = path.read_text(encoding="utf-8").splitlines()
    except (OSError, UnicodeDecodeError):
        return {}
    out: dict[str, str] = {}
    for raw in lines:
        line = raw.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, value = line.split("=", 1)
        out[key.strip().lower()] = value.strip()
    return out


def _read_python_version(root: Path, site_packages: tuple[Path, ...]) -> str:
    cfg = _read_pyvenv_cfg(root)
    # uv writes version_info, the stdlib venv module writes version
    for key in ("version_info", "version"):
        match = _VERSION_RE.match(cfg.get(key, ""))
        if match:
            return ".".join(part for part in match.groups() if part is not None)

    for site_dir in site_packages:
        match = _LIB_DIR_RE.match(site_dir.parent.name)
        if match:
            return f"{match.group(1)}.{match.group(2)}"
    raise EnvironmentIntrospectionError(f"cannot determine the Python version of {root}")
