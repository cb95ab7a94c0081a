"""Render, write and verify ``pylock.toml`` documents."""

from __future__ import annotations

import difflib
import logging
import os
import re
import stat
import tempfile
from dataclasses import dataclass
from pathlib import Path

import tomli_w

from .environment import VirtualEnvironment
from .errors import OutputWriteError, PylockError
from .inventory import Inventory, PackageRecord, PackageSource

__all__ = [
    "CREATED_BY",
    "DEFAULT_LOCKFILE_NAME",
    "LOCK_VERSION",
    "LockCheck",
    "LockDocument",
    "build_lock_document",
    "check_lock",
    "is_pylock_filename",
    "render_lock",
    "write_lock",
]

logger = logging.getLogger(__name__)

LOCK_VERSION = "1.0"
CREATED_BY = "pylock"
DEFAULT_LOCKFILE_NAME = "pylock.toml"

_FILENAME_RE = re.compile(r"^pylock(?:\.[^.]+)?\.toml$")
_PACKAGE_HEADER = "[packages]\n"


@dataclass(frozen=True)
class LockDocument:
    requires_python: str
    packages: tuple[PackageRecord, ...]
    lock_version: str = LOCK_VERSION
    created_by: str = CREATED_BY


@dataclass(frozen=True)
class LockCheck:
    ok: bool
    missing: bool
    diff: tuple[str, ...] = ()


def is_pylock_filename(path: Path | str) -> bool:
    """True for ``pylock.toml`` and ``pylock.<label>.toml``."""
    return bool(_FILENAME_RE.match(Path(path).name))


def build_lock_document(env: VirtualEnvironment, inventory: Inventory) -> LockDocument:
    return LockDocument(
        requires_python=f">={env.python_minor}",
        packages=inventory.sorted(),
    )


# ---------------------------- rendering ----------------------------


def _source_fields(source: PackageSource) -> tuple[str, object]:
    hashes = {algo: digest for algo, digest in source.hashes}
    fields: dict[str, object] = {}
    if source.kind == "vcs":
        fields["type"] = source.vcs
        fields["url"] = source.url
        fields["path"] = source.path
        fields["requested-revision"] = source.requested_revision
        fields["commit-id"] = source.commit_id
        fields["subdirectory"] = source.subdirectory
        key = "vcs"
    elif source.kind == "directory":
        fields["path"] = source.path
        fields["url"] = source.url
        fields["editable"] = source.editable
        fields["subdirectory"] = source.subdirectory
        key = "directory"
    elif source.kind == "archive":
        fields["url"] = source.url
        fields["path"] = source.path
        fields["hashes"] = hashes or None
        fields["subdirectory"] = source.subdirectory
        key = "archive"
    elif source.kind == "wheel":
        fields["name"] = source.filename
        fields["url"] = source.url
        fields["path"] = source.path
        fields["hashes"] = hashes or None
        key = "wheels"
    else:
        raise ValueError(f"unknown source kind: {source.kind}")
    table = {name: value for name, value in fields.items() if value is not None}
    if key == "wheels":
        return key, [table]
    return key, table


def _package_table(record: PackageRecord) -> dict[str, object]:
    table: dict[str, object] = {"name": record.name, "version": record.version}
    if record.source is not None:
        key, value = _source_fields(record.source)
        table[key] = value
    return table


def _render_package(record: PackageRecord) -> str:
    # tomli_w inlines short array-of-tables entries, so each package is
    # rendered as a lone [packages] table and promoted to [[packages]].
    rendered = tomli_w.dumps({"packages": _package_table(record)})
    if not rendered.startswith(_PACKAGE_HEADER):
        raise PylockError(f"unexpected rendering for package {record.name}")
    return "[[packages]]\n" + rendered[len(_PACKAGE_HEADER) :]


def render_lock(document: LockDocument) -> str:
    """Render ``document`` as TOML text.

    Only values derived from the environment's contents end up in the text,
    so the same environment always renders to the same bytes.
    """

    header: dict[str, object] = {
        "lock-version": document.lock_version,
        "created-by": document.created_by,
        "requires-python": document.requires_python,
    }
    if not document.packages:
        header["packages"] = []
    chunks = [tomli_w.dumps(header)]
    chunks.extend("\n" + _render_package(record) for record in document.packages)
    return "".join(chunks)


# ------------------------------ output ------------------------------


def _file_mode(path: Path) -> int:
    try:
        return stat.S_IMODE(path.stat().st_mode)
    except OSError:
        pass
    umask = os.umask(0)
    os.umask(umask)
    return 0o666 & ~umask


def write_lock(path: Path | str, text: str) -> Path:
    """Atomically replace ``path`` with ``text``.

    The parent directory must already exist. On any failure the destination
    is left untouched and the temporary file is removed.
    """

    target = Path(path)
    parent = target.parent
    if not parent.is_dir():
        raise OutputWriteError(target, f"directory {parent} does not exist")

    try:
        fd, temp_name = tempfile.mkstemp(prefix=f".{target.name}.", suffix=".tmp", dir=parent)
    except OSError as exc:
        raise OutputWriteError(target, str(exc)) from exc

    try:
        with os.fdopen(fd, "wb") as handle:
            handle.write(text.encode("utf-8"))
            handle.flush()
            os.fsync(handle.fileno())
        os.chmod(temp_name, _file_mode(target))
        os.replace(temp_name, target)
    except OSError as exc:
        raise OutputWriteError(target, str(exc)) from exc
    finally:
        if os.path.exists(temp_name):
            os.unlink(temp_name)
    logger.debug("wrote %s (%d bytes)", target, len(text))
    return target


def check_lock(path: Path | str, text: str) -> LockCheck:
    """Compare the lock file at ``path`` with freshly rendered ``text``."""

    target = Path(path)
    try:
        current = target.read_text(encoding="utf-8")
    except FileNotFoundError:
        return LockCheck(ok=False, missing=True)
    except (OSError, UnicodeDecodeError) as exc:
        raise PylockError(f"cannot read {target}: {exc}") from exc

    if current == text:
        return LockCheck(ok=True, missing=False)
    diff = difflib.unified_diff(
        current.splitlines(keepends=True),
        text.splitlines(keepends=True),
        fromfile=f"{target.name} (on disk)",
        tofile=f"{target.name} (environment)",
    )
    return LockCheck(ok=False, missing=False, diff=tuple(diff))
