"""
Root grouping by label prefix.

Partitions the root services into tabs named by the first ``depth``
dot-separated parts of their label, e.g. ``shop.checkout.api (v1.2.0)``
groups under ``shop.checkout.api`` at depth 3 and ``shop`` at depth 1.
"""

import re
from typing import Dict, Iterable, List

from ..core.types import NodeStatus, ServiceNode

OTHER_GROUP = "(other)"
ALL_GROUP = "(all)"

_VERSION_SUFFIX = re.compile(r"\s*\(v[\d.]+\)\s*$", re.IGNORECASE)
_WHITESPACE = re.compile(r"\s+")
_DOTS = re.compile(r"\.+")


def group_key(label: str, depth: int = 3) -> str:
    if not label:
        return OTHER_GROUP
    base = _VERSION_SUFFIX.sub("", label)
    base = _WHITESPACE.sub(".", base)
    base = _DOTS.sub(".", base).strip(".")
    parts = base.split(".")
    return ".".join(parts[:max(1, depth)]) or OTHER_GROUP


def worst_status(nodes: Iterable[ServiceNode]) -> NodeStatus:
    """Worst status anywhere in the given subtrees."""
    worst = NodeStatus.HEALTHY
    stack = list(nodes)
    seen = set()
    while stack:
        node = stack.pop()
        if id(node) in seen:
            continue
        seen.add(id(node))
        if node.status.rank > worst.rank:
            worst = node.status
            if worst is NodeStatus.CRITICAL:
                break
        stack.extend(node.children)
    return worst


def group_roots(tree_roots: List[ServiceNode], depth: int = 3,
                include_all: bool = False) -> Dict[str, List[ServiceNode]]:
    """
    Group roots by label prefix. Groups are sorted by name; members keep
    their original order. The optional all-group comes first.
    """
    groups: Dict[str, List[ServiceNode]] = {}
    for node in tree_roots:
        groups.setdefault(group_key(node.label, depth), []).append(node)

    ordered = {name: groups[name] for name in sorted(groups, key=str.casefold)}
    if include_all:
        return {ALL_GROUP: list(tree_roots), **ordered}
    return ordered
