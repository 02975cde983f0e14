"""
Header resolution.

Export tools disagree on header spelling ("Wait Time", "wait_time",
"WAIT-TIME"), so logical fields are looked up through a ranked list of
candidate names compared on a canonical form: lowercased with every
non-alphanumeric character removed.
"""

from __future__ import annotations

import re
from typing import Iterable, Sequence

CANONICAL_RE = re.compile(r"[^a-z0-9]+")


def canonical_text(value: object) -> str:
    return CANONICAL_RE.sub("", str(value or "").replace("\ufeff", "").lower())


def resolve_header(actual_headers: Iterable[str], candidates: Sequence[str]) -> str | None:
    """
    Return the actual header matching the highest-priority candidate.

    The returned name keeps its original casing and spacing so it can be used
    as a key into the raw record. Candidate order decides ties: the first
    candidate with any match wins even if a later one would also match.
    """
    lookup: dict[str, str] = {}
    for header in actual_headers:
        key = canonical_text(header)
        if key and key not in lookup:
            lookup[key] = header
    for candidate in candidates:
        hit = lookup.get(canonical_text(candidate))
        if hit is not None:
            return hit
    return None


def resolve_exact_or_canonical(actual_headers: Sequence[str], name: str) -> str | None:
    """Well-known fixed-schema column: exact name first, then canonical match."""
    if name in actual_headers:
        return name
    return resolve_header(actual_headers, [name])


def clean_header(header: object) -> str:
    return str(header if header is not None else "").replace("\ufeff", "").strip()
