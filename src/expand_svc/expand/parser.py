"""Expand parameter parsing utilities."""

from __future__ import annotations

from .types import ExpandPath


def parse_expand_param(raw: str | None) -> list[ExpandPath]:
    """
    Parse the raw `expand` query parameter into structured paths.

    Examples:
        "person"                          -> [person]
        "person,primaryProvider.person"   -> [person, primaryProvider.person]
        " person , ,a..b "                -> [person, a.b]
        ""                                -> []

    Never raises: malformed input yields fewer (or no) paths.
    """
    if not raw:
        return []

    paths: list[ExpandPath] = []
    for token in raw.split(","):
        token = token.strip()
        if not token:
            continue
        path = ExpandPath.from_string(token)
        if path.depth:
            paths.append(path)
    return paths


def parse_expand_values(values: list[str]) -> list[ExpandPath]:
    """Parse repeated `expand` parameters (?expand=a&expand=b.c)."""
    paths: list[ExpandPath] = []
    for raw in values:
        paths.extend(parse_expand_param(raw))
    return paths


def max_depth(paths: list[ExpandPath]) -> int:
    """Longest requested path, 0 when nothing was requested."""
    return max((p.depth for p in paths), default=0)


def group_by_first_segment(paths: list[ExpandPath]) -> dict[str, list[ExpandPath]]:
    """
    Group paths by the field they expand at the current level.

    Examples:
        [person, primaryProvider.person, primaryProvider.address]
            -> {"person": [<leaf>],
                "primaryProvider": [person, address]}

    Keys keep first-appearance order. A single-segment path contributes a
    leaf entry so the field itself is expanded even without sub-paths.
    """
    grouped: dict[str, list[ExpandPath]] = {}
    for path in paths:
        head = path.head
        if not head:
            continue
        remaining = grouped.setdefault(head, [])
        rest = path.tail()
        if rest not in remaining:
            remaining.append(rest)
    return grouped


def subpaths(remaining: list[ExpandPath]) -> list[ExpandPath]:
    """Drop leaf markers, keeping only paths that still need work."""
    return [p for p in remaining if not p.is_leaf]
