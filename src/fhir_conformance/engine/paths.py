"""Element path resolution over FHIR JSON resources.

Paths are dot-separated field names such as ``participant.individual``.
Whenever a field holds an array, the rest of the path is applied to every
element, so one path can reach zero, one or many leaves. A segment may pin a
single array element with an index suffix (``identifier[0].value``).

Resolution is lazy and short-circuits on the first leaf that satisfies the
caller's predicate. Resources are never modified.
"""

import re
from functools import lru_cache
from typing import Any, Callable, Iterator, Optional, Tuple

from fhir_conformance.utils.exceptions import ConfigurationError

Predicate = Callable[[Any], bool]

_SEGMENT_PATTERN = re.compile(r"^(?P<name>[A-Za-z_][A-Za-z0-9_\-]*)(?:\[(?P<index>\d+)\])?$")


PathSegment = Tuple[str, Optional[int]]


@lru_cache(maxsize=512)
def parse_path(path: str) -> Tuple[PathSegment, ...]:
    """Split a path into ``(name, index)`` segments.

    Raises:
        ConfigurationError: If the path is empty or a segment is malformed
    """
    if not isinstance(path, str) or not path.strip():
        raise ConfigurationError(f"Element path must be a non-empty string: {path!r}")

    segments = []
    for raw in path.split("."):
        match = _SEGMENT_PATTERN.match(raw)
        if not match:
            raise ConfigurationError(f"Malformed segment {raw!r} in element path {path!r}")
        index = match.group("index")
        segments.append((match.group("name"), int(index) if index is not None else None))
    return tuple(segments)


def is_populated(value: Any) -> bool:
    """Whether a leaf carries data (JSON null and empty containers do not)."""
    if value is None:
        return False
    if isinstance(value, (str, list, dict)):
        return len(value) > 0
    return True


def iter_leaves(resource: Any, path: str) -> Iterator[Any]:
    """Yield every leaf reachable from ``resource`` along ``path``."""
    yield from _walk(resource, parse_path(path))


def _walk(node: Any, segments: Tuple[PathSegment, ...]) -> Iterator[Any]:
    if node is None:
        return
    if isinstance(node, list):
        for item in node:
            yield from _walk(item, segments)
        return
    if not segments:
        yield node
        return
    if not isinstance(node, dict):
        # Scalar reached before the path ended
        return

    name, index = segments[0]
    child = node.get(name)
    if index is not None:
        if not isinstance(child, list):
            child = [child] if index == 0 and child is not None else None
        elif index < len(child):
            child = child[index]
        else:
            child = None
    yield from _walk(child, segments[1:])


def find_element(
    resource: Any, path: str, predicate: Predicate = is_populated
) -> Optional[Any]:
    """Return the first leaf at ``path`` satisfying ``predicate``, else None."""
    for leaf in iter_leaves(resource, path):
        if predicate(leaf):
            return leaf
    return None


def resolve_element_from_path(
    resource: Any, path: str, predicate: Predicate = is_populated
) -> bool:
    """Whether any leaf at ``path`` satisfies ``predicate``."""
    return find_element(resource, path, predicate) is not None
