"""Name canonicalization and version ordering helpers used by the scanner."""

from __future__ import annotations

from typing import Any, List, Tuple

from packaging.utils import canonicalize_name
from packaging.version import InvalidVersion, Version

__all__ = [
    "canonical_name",
    "compare_versions",
    "version_key",
]

_STAGE_ORDER: dict[str, int] = {
    "dev": 0,
    "snapshot": 0,
    "nightly": 0,

    "a": 10,
    "alpha": 10,

    "b": 20,
    "beta": 20,

    "pre": 30,
    "preview": 30,

    "rc": 40,
    "candidate": 40,

    "stable": 90,
    "release": 90,
    "ga": 90,

    "final": 100,
}


def canonical_name(name: str) -> str:
    """Return the PEP 503 form of ``name``: lowercase, ``-``/``_``/``.`` runs as ``-``."""

    stripped = (name or "").strip()
    if not stripped:
        raise ValueError("empty package name")
    return str(canonicalize_name(stripped))


def _split_segment_tokens(seg: str) -> Tuple[str, List[str]]:
    s = (seg or "").strip()
    if "-" not in s:
        return s, []
    parts = [p for p in s.split("-") if p != ""]
    if not parts:
        return s, []
    return parts[0], parts[1:]


def _tokenize_text_and_int(s: str) -> List[Any]:
    s = (s or "").strip()
    if not s:
        return []
    out: List[Any] = []
    i = 0
    while i < len(s):
        if s[i].isdigit():
            j = i
            while j < len(s) and s[j].isdigit():
                j += 1
            out.append((0, int(s[i:j])))
            i = j
        else:
            j = i
            while j < len(s) and not s[j].isdigit():
                j += 1
            out.append((1, s[i:j].lower()))
            i = j
    return out


def _qualifier_stage_and_num(tokens: List[str]) -> Tuple[int, int, Tuple[Any, ...]]:
    if not tokens:
        return (1000, 0, ())

    flat: List[Any] = []
    for token in tokens:
        flat.extend(_tokenize_text_and_int(token))

    stage_rank = None
    stage_num = 0
    extra: List[Any] = []

    for typ, val in flat:
        if typ == 1 and val in _STAGE_ORDER:
            stage_rank = _STAGE_ORDER[val]
            continue
        extra.append((typ, val))
        if stage_rank is not None:
            break

    if stage_rank is None:
        stage_rank = 50

    seen_stage = False
    for typ, val in flat:
        if typ == 1 and val in _STAGE_ORDER and not seen_stage:
            seen_stage = True
            continue
        if seen_stage and typ == 0:
            stage_num = val
            break

    return (stage_rank, stage_num, tuple(extra))


def _loose_key(version: str) -> Tuple[Any, ...]:
    segs = [s for s in (version or "").split(".") if s != ""]
    out: List[Tuple[Any, ...]] = []
    for seg in segs:
        base, qual = _split_segment_tokens(seg)
        base_tokens = tuple(_tokenize_text_and_int(base))
        stage_rank, stage_num, extra = _qualifier_stage_and_num(qual)
        out.append((base_tokens, stage_rank, stage_num, extra))
    return tuple(out)


def version_key(version: str) -> Tuple[Any, ...]:
    """Sort key giving a total order over installed version strings.

    PEP 440 versions compare by ``packaging.version.Version``. Anything else
    (old setuptools-era strings, local builds) falls back to a segment-wise
    token comparison and always sorts below a valid PEP 440 version. The raw
    string is the final component so distinct strings never compare equal.
    """

    text = (version or "").strip()
    try:
        parsed = Version(text)
    except InvalidVersion:
        return (0, _loose_key(text), text)
    return (1, parsed, text)


def compare_versions(a: str, b: str) -> int:
    ka = version_key(a)
    kb = version_key(b)
    if ka == kb:
        return 0
    return 1 if ka > kb else -1
