"""Scan the installed distributions of a virtual environment."""

from __future__ import annotations

import email
import json
import logging
import os
from dataclasses import dataclass
from importlib import metadata as importlib_metadata
from pathlib import Path
from typing import Any, Iterable, Mapping
from urllib.parse import unquote, urlparse
from urllib.request import url2pathname

from .environment import VirtualEnvironment
from .errors import EnvironmentIntrospectionError
from .versions import canonical_name, version_key

__all__ = [
    "Inventory",
    "PackageRecord",
    "PackageSource",
    "SkippedEntry",
    "scan_environment",
]

logger = logging.getLogger(__name__)

METADATA_SUFFIXES = (".dist-info", ".egg-info")
DIRECT_URL_FILE = "direct_url.json"
PROVENANCE_URL_FILE = "provenance_url.json"


@dataclass(frozen=True)
class PackageSource:
    """Where an installed distribution came from, when the installer recorded it."""

    kind: str
    url: str | None = None
    path: str | None = None
    hashes: tuple[tuple[str, str], ...] = ()
    vcs: str | None = None
    commit_id: str | None = None
    requested_revision: str | None = None
    subdirectory: str | None = None
    editable: bool | None = None
    filename: str | None = None


@dataclass(frozen=True)
class PackageRecord:
    name: str
    version: str
    source: PackageSource | None = None
    origin: str = ""


@dataclass(frozen=True)
class SkippedEntry:
    origin: str
    reason: str


@dataclass(frozen=True)
class Inventory:
    """De-duplicated package records of one environment."""

    records: tuple[PackageRecord, ...]
    skipped: tuple[SkippedEntry, ...] = ()

    def __len__(self) -> int:
        return len(self.records)

    def names(self) -> list[str]:
        return [record.name for record in self.records]

    def sorted(self) -> tuple[PackageRecord, ...]:
        """Records in canonical-name order, ties broken by version order."""
        return tuple(
            sorted(self.records, key=lambda record: (record.name, version_key(record.version)))
        )


class _CorruptEntry(Exception):
    """A single metadata entry cannot be used."""


def scan_environment(
    env: VirtualEnvironment,
    *,
    exclude: Iterable[str] = (),
    relative_to: Path | None = None,
) -> Inventory:
    """Enumerate the distributions installed in ``env``.

    Every ``*.dist-info`` / ``*.egg-info`` entry of every site-packages
    directory is read in sorted order. Corrupt entries are skipped and
    reported; records sharing a canonical name are reduced to one (higher
    version wins, then the lexically higher version string, then the
    lexically higher entry name). ``relative_to`` is the directory local
    source paths are expressed against, normally the lock file's directory.
    """

    base_dir = (relative_to or env.root.parent).resolve()
    excluded = {canonical_name(name) for name in exclude if name and name.strip()}

    candidates: dict[str, list[PackageRecord]] = {}
    skipped: list[SkippedEntry] = []
    for site_dir in env.site_packages:
        for entry in _metadata_entries(site_dir):
            try:
                record = _load_record(entry, base_dir)
            except _CorruptEntry as exc:
                logger.warning("skipping %s: %s", entry.name, exc)
                skipped.append(SkippedEntry(origin=entry.name, reason=str(exc)))
                continue
            logger.debug("found %s %s in %s", record.name, record.version, entry.name)
            candidates.setdefault(record.name, []).append(record)

    records: list[PackageRecord] = []
    for name in sorted(candidates):
        if name in excluded:
            logger.info("excluding %s", name)
            continue
        records.append(_pick_one(candidates[name]))

    return Inventory(records=tuple(records), skipped=tuple(skipped))


def _metadata_entries(site_dir: Path) -> list[Path]:
    try:
        children = sorted(site_dir.iterdir(), key=lambda child: child.name)
    except OSError as exc:
        raise EnvironmentIntrospectionError(f"cannot read {site_dir}: {exc}") from exc
    return [child for child in children if child.suffix in METADATA_SUFFIXES]


def _pick_one(records: list[PackageRecord]) -> PackageRecord:
    if len(records) == 1:
        return records[0]
    ordered = sorted(records, key=lambda record: (version_key(record.version), record.origin))
    chosen = ordered[-1]
    for dropped in ordered[:-1]:
        logger.warning(
            "duplicate metadata for %s: keeping %s (%s), ignoring %s (%s)",
            chosen.name,
            chosen.origin,
            chosen.version,
            dropped.origin,
            dropped.version,
        )
    return chosen


def _load_record(entry: Path, base_dir: Path) -> PackageRecord:
    try:
        if entry.is_dir():
            dist = importlib_metadata.PathDistribution(entry)
            if dist.read_text("METADATA") is None and dist.read_text("PKG-INFO") is None:
                raise _CorruptEntry("no METADATA or PKG-INFO file")
            message = dist.metadata
        else:
            # legacy single-file egg-info
            dist = None
            message = email.message_from_string(entry.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError) as exc:
        raise _CorruptEntry(f"unreadable metadata ({exc})") from exc

    if message is None:
        raise _CorruptEntry("empty metadata")
    raw_name = (message.get("Name") or "").strip()
    version = (message.get("Version") or "").strip()
    if not raw_name:
        raise _CorruptEntry("metadata has no Name field")
    if not version:
        raise _CorruptEntry(f"metadata for {raw_name} has no Version field")

    source = _read_source(dist, entry, base_dir) if dist is not None else None
    return PackageRecord(
        name=canonical_name(raw_name),
        version=version,
        source=source,
        origin=entry.name,
    )


def _read_json(dist: importlib_metadata.PathDistribution, filename: str) -> dict[str, Any] | None:
    text = dist.read_text(filename)
    if text is None:
        return None
    payload = json.loads(text)
    if not isinstance(payload, dict):
        raise ValueError(f"{filename} must contain an object")
    return payload


def _read_source(
    dist: importlib_metadata.PathDistribution,
    entry: Path,
    base_dir: Path,
) -> PackageSource | None:
    for filename, parser in (
        (DIRECT_URL_FILE, _direct_url_source),
        (PROVENANCE_URL_FILE, _provenance_url_source),
    ):
        try:
            payload = _read_json(dist, filename)
            if payload is None:
                continue
            return parser(payload, base_dir)
        except (OSError, UnicodeDecodeError, ValueError, TypeError) as exc:
            logger.warning("ignoring %s in %s: %s", filename, entry.name, exc)
            return None
    return None


def _hashes(info: Mapping[str, Any]) -> tuple[tuple[str, str], ...]:
    found: dict[str, str] = {}
    legacy = info.get("hash")
    if isinstance(legacy, str) and "=" in legacy:
        algo, digest = legacy.split("=", 1)
        found[algo.strip().lower()] = digest.strip()
    hashes = info.get("hashes")
    if isinstance(hashes, Mapping):
        for algo, digest in hashes.items():
            found[str(algo).lower()] = str(digest)
    return tuple(sorted(found.items()))


def _local_path(url: str, base_dir: Path) -> str | None:
    parsed = urlparse(url)
    if parsed.scheme != "file":
        return None
    local = Path(url2pathname(parsed.path))
    try:
        relative = os.path.relpath(local, base_dir)
    except ValueError as exc:
        # different drive on Windows
        raise ValueError(f"cannot express {local} relative to {base_dir}") from exc
    return Path(relative).as_posix()


def _direct_url_source(payload: Mapping[str, Any], base_dir: Path) -> PackageSource:
    url = str(payload.get("url") or "").strip()
    if not url:
        raise ValueError("missing url")
    path = _local_path(url, base_dir)
    location = {"url": None, "path": path} if path is not None else {"url": url, "path": None}
    subdirectory = str(payload["subdirectory"]) if payload.get("subdirectory") else None

    if isinstance(payload.get("vcs_info"), Mapping):
        info = payload["vcs_info"]
        return PackageSource(
            kind="vcs",
            vcs=str(info.get("vcs") or "") or None,
            commit_id=str(info.get("commit_id") or "") or None,
            requested_revision=str(info.get("requested_revision") or "") or None,
            subdirectory=subdirectory,
            **location,
        )
    if isinstance(payload.get("dir_info"), Mapping):
        return PackageSource(
            kind="directory",
            editable=bool(payload["dir_info"].get("editable", False)),
            subdirectory=subdirectory,
            **location,
        )
    if isinstance(payload.get("archive_info"), Mapping):
        return PackageSource(
            kind="archive",
            hashes=_hashes(payload["archive_info"]),
            subdirectory=subdirectory,
            **location,
        )
    raise ValueError("no archive_info, vcs_info or dir_info")


def _provenance_url_source(payload: Mapping[str, Any], base_dir: Path) -> PackageSource:
    url = str(payload.get("url") or "").strip()
    if not url:
        raise ValueError("missing url")
    info = payload.get("archive_info")
    hashes = _hashes(info) if isinstance(info, Mapping) else ()
    filename = unquote(urlparse(url).path.rsplit("/", 1)[-1]) or None
    path = _local_path(url, base_dir)
    if path is not None:
        return PackageSource(kind="wheel", path=path, hashes=hashes, filename=filename)
    return PackageSource(kind="wheel", url=url, hashes=hashes, filename=filename)
