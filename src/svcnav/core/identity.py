"""
Identity and label normalization.

Turns a raw per-series label map into canonical node ids and display labels.

- Ids are lower-cased, trimmed and joined as ``group::name`` (just ``name``
  when there is no group). An empty name means no identity can be formed.
- Labels keep the original casing, join as ``group.name`` and carry a
  ``(vMAJOR.MINOR.PATCH)`` suffix when the version holds any digits.
"""

import re
from dataclasses import dataclass
from typing import Mapping, Optional, Sequence

from .types import EdgeLabels, ServiceGraph

ID_SEPARATOR = "::"
LABEL_SEPARATOR = "."

# The metric exposes no target group label on most deployments.
DEFAULT_TARGET_GROUP = "default"

# Primary label names first, legacy names after.
SOURCE_GROUP_KEYS = ("executableGroupName", "sourceServiceGroupName")
SOURCE_NAME_KEYS = ("executableName", "sourceServiceName")
SOURCE_VERSION_KEYS = ("executableVersion", "sourceServiceVersion")
TARGET_GROUP_KEYS = ("targetServiceGroupName",)
TARGET_NAME_KEYS = ("targetServiceName",)
TARGET_VERSION_KEYS = ("targetServiceVersion",)

_NON_DIGITS = re.compile(r"[^\d]+")


def norm(value: Optional[str]) -> str:
    """Trim and lower-case; ``None`` becomes an empty string."""
    return (value or "").strip().lower()


def first_label(labels: Mapping[str, str], keys: Sequence[str]) -> str:
    """Return the first non-empty (trimmed) value among ``keys``."""
    for key in keys:
        value = str(labels.get(key) or "").strip()
        if value:
            return value
    return ""


def normalize_version(raw: Optional[str]) -> str:
    """
    Reduce a version string to ``MAJOR.MINOR.PATCH``.

    Numeric runs are extracted (leading zeros dropped), padded with zeros to
    three parts and truncated to three.

    >>> normalize_version("1.2")
    '1.2.0'
    >>> normalize_version("v2-rc07")
    '2.7.0'
    >>> normalize_version("")
    ''
    """
    text = (raw or "").strip()
    if not text:
        return ""
    parts = [str(int(token)) for token in _NON_DIGITS.split(text) if token]
    if not parts:
        return ""
    while len(parts) < 3:
        parts.append("0")
    return ".".join(parts[:3])


def append_version(label: str, version: str) -> str:
    """Append `` (vX.Y.Z)`` when ``version`` is non-empty."""
    return f"{label} (v{version})" if version else label


def make_id(group: Optional[str], name: Optional[str]) -> str:
    """
    Canonical node id. Returns an empty string when the name is empty.

    >>> make_id("Auth", " Service ")
    'auth::service'
    """
    normalized_name = norm(name)
    if not normalized_name:
        return ""
    normalized_group = norm(group)
    if normalized_group:
        return f"{normalized_group}{ID_SEPARATOR}{normalized_name}"
    return normalized_name


def make_label(group: Optional[str], name: Optional[str], version: Optional[str] = None,
               lowercase: bool = False) -> str:
    """Human-readable label, optionally lower-cased."""
    group_part = (group or "").strip()
    name_part = (name or "").strip()
    if lowercase:
        group_part = group_part.lower()
        name_part = name_part.lower()
    base = f"{group_part}{LABEL_SEPARATOR}{name_part}" if group_part else name_part
    return append_version(base, normalize_version(version))


@dataclass(frozen=True)
class EdgeIdentity:
    """Resolved identity of one raw sample."""
    source_id: str
    source_label: str
    target_id: str
    target_label: str
    labels: EdgeLabels

    @property
    def edge_id(self) -> str:
        return ServiceGraph.edge_id(self.source_id, self.target_id)


def extract_edge_labels(labels: Mapping[str, str]) -> EdgeLabels:
    """Pull the raw source/target label tuple out of a series label map."""
    return EdgeLabels(
        source_group=first_label(labels, SOURCE_GROUP_KEYS),
        source_name=first_label(labels, SOURCE_NAME_KEYS),
        source_version=first_label(labels, SOURCE_VERSION_KEYS),
        target_group=first_label(labels, TARGET_GROUP_KEYS),
        target_name=first_label(labels, TARGET_NAME_KEYS),
        target_version=first_label(labels, TARGET_VERSION_KEYS),
    )


def resolve_edge(labels: Mapping[str, str], lowercase_source_label: bool = False) -> Optional[EdgeIdentity]:
    """
    Resolve a series label map into source/target ids and labels.

    Returns ``None`` when either side has no name, since such a sample cannot
    be placed in the graph.
    """
    raw = extract_edge_labels(labels)
    source_id = make_id(raw.source_group, raw.source_name)
    target_group = raw.target_group or DEFAULT_TARGET_GROUP
    target_id = make_id(target_group, raw.target_name)
    if not source_id or not target_id:
        return None

    return EdgeIdentity(
        source_id=source_id,
        source_label=make_label(raw.source_group, raw.source_name, raw.source_version,
                                lowercase=lowercase_source_label),
        target_id=target_id,
        target_label=make_label(raw.target_group, raw.target_name, raw.target_version),
        labels=raw,
    )
