"""Four-lane component selection shared by results and operands."""

from __future__ import annotations

from enum import IntEnum
from typing import Dict, Sequence, Tuple


class SwizzleSource(IntEnum):
    """Source of a single output lane.

    ``X`` to ``W`` read the corresponding source lane while ``ZERO`` and
    ``ONE`` synthesise a constant instead of reading anything.
    """

    X = 0
    Y = 1
    Z = 2
    W = 3
    ZERO = 4
    ONE = 5

    @property
    def is_constant(self) -> bool:
        return self >= SwizzleSource.ZERO


STANDARD_SWIZZLE: Tuple[SwizzleSource, ...] = (
    SwizzleSource.X,
    SwizzleSource.Y,
    SwizzleSource.Z,
    SwizzleSource.W,
)

_COMPONENT_CHARS = "xyzw"
_SWIZZLE_CHARS = "xyzw01"
_SWIZZLE_BY_CHAR: Dict[str, SwizzleSource] = {
    char: SwizzleSource(index) for index, char in enumerate(_SWIZZLE_CHARS)
}


def swizzle_from_component_index(index: int) -> SwizzleSource:
    return SwizzleSource(min(max(index, 0), 3))


def char_for_component_index(index: int) -> str:
    return _COMPONENT_CHARS[min(max(index, 0), 3)]


def char_for_swizzle(source: SwizzleSource) -> str:
    return _SWIZZLE_CHARS[source]


def swizzle_from_char(char: str) -> SwizzleSource:
    """Inverse of :func:`char_for_swizzle`; raises ``ValueError`` otherwise."""

    try:
        return _SWIZZLE_BY_CHAR[char.lower()]
    except KeyError:
        raise ValueError(f"invalid swizzle character {char!r}") from None


def get_component(
    components: Sequence[SwizzleSource], component_count: int, index: int
) -> SwizzleSource:
    """Return the selector of lane ``index``.

    Lanes at or past ``component_count`` repeat the rightmost specified lane,
    which is how the shader compiler fills unspecified components.  Both
    arguments are clamped so malformed values never index out of range.
    """

    last = min(max(component_count, 1), len(components), 4) - 1
    return components[min(max(index, 0), last)]


def is_identity(components: Sequence[SwizzleSource]) -> bool:
    return tuple(components[:4]) == STANDARD_SWIZZLE


__all__ = [
    "SwizzleSource",
    "STANDARD_SWIZZLE",
    "swizzle_from_component_index",
    "char_for_component_index",
    "char_for_swizzle",
    "swizzle_from_char",
    "get_component",
    "is_identity",
]
