"""Locate, scan and serialize in one pass."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Mapping

from .environment import locate_environment
from .inventory import Inventory, scan_environment
from .lockfile import (
    LockCheck,
    LockDocument,
    build_lock_document,
    check_lock,
    is_pylock_filename,
    render_lock,
    write_lock,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LockResult:
    path: Path
    document: LockDocument
    inventory: Inventory
    text: str
    written: bool
    check: LockCheck | None = None


def lock_environment(
    environ: Mapping[str, str],
    output: Path | str,
    *,
    exclude: Iterable[str] = (),
    check: bool = False,
) -> LockResult:
    """Lock the active environment into ``output``.

    With ``check`` nothing is written; the result carries the comparison
    against the existing file instead.
    """

    target = Path(output)
    if not is_pylock_filename(target):
        logger.warning(
            "%s does not follow the pylock.toml / pylock.<name>.toml naming convention",
            target.name,
        )

    env = locate_environment(environ)
    inventory = scan_environment(env, exclude=exclude, relative_to=target.parent.resolve())
    document = build_lock_document(env, inventory)
    text = render_lock(document)

    if check:
        return LockResult(
            path=target,
            document=document,
            inventory=inventory,
            text=text,
            written=False,
            check=check_lock(target, text),
        )

    write_lock(target, text)
    logger.info("locked %d packages from %s into %s", len(inventory), env.root, target)
    return LockResult(path=target, document=document, inventory=inventory, text=text, written=True)
