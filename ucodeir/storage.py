"""Result and operand descriptors of ALU and fetch instructions.

The descriptors keep every field present in the microcode, including bits
that have no effect on execution (for example write mask bits for lanes a
target does not have), because disassembled text must reassemble into the
identical words.  Translators should consult the derived helpers such as
:meth:`InstructionResult.get_used_write_mask` instead of the raw fields.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, auto
from typing import Dict, Tuple

from .swizzle import STANDARD_SWIZZLE, SwizzleSource, get_component, is_identity


class InstructionStorageTarget(Enum):
    """Destination of an instruction result."""

    NONE = auto()
    # Temporary register, index [0-31].
    REGISTER = auto()
    # Vertex shader interpolator export, index [0-15].
    INTERPOLATOR = auto()
    POSITION = auto()
    # Point size (x), edge flag (y) and kill vertex (z) export.
    POINT_SIZE_EDGE_FLAG_KILL_VERTEX = auto()
    # Memexport destination address (eA).
    EXPORT_ADDRESS = auto()
    # Memexport destination data (eM#), index [0-4].
    EXPORT_DATA = auto()
    # Color target export, index [0-3].
    COLOR = auto()
    # Only X is stored to the depth export.
    DEPTH = auto()


class InstructionStorageSource(Enum):
    """Origin of an instruction operand."""

    REGISTER = auto()
    CONSTANT_FLOAT = auto()
    VERTEX_FETCH_CONSTANT = auto()
    TEXTURE_FETCH_CONSTANT = auto()


class InstructionStorageAddressingMode(Enum):
    STATIC = auto()
    # Index offset by the a0 address register.
    ADDRESS_ABSOLUTE = auto()
    # Index offset by the aL loop counter.
    ADDRESS_RELATIVE = auto()


_TARGET_USED_COMPONENTS: Dict[InstructionStorageTarget, int] = {
    InstructionStorageTarget.NONE: 0b0000,
    InstructionStorageTarget.POINT_SIZE_EDGE_FLAG_KILL_VERTEX: 0b0111,
    InstructionStorageTarget.DEPTH: 0b0001,
}

TARGET_INDEX_LIMITS: Dict[InstructionStorageTarget, int] = {
    InstructionStorageTarget.REGISTER: 32,
    InstructionStorageTarget.INTERPOLATOR: 16,
    InstructionStorageTarget.EXPORT_DATA: 5,
    InstructionStorageTarget.COLOR: 4,
}

SOURCE_INDEX_LIMITS: Dict[InstructionStorageSource, int] = {
    InstructionStorageSource.REGISTER: 32,
    InstructionStorageSource.CONSTANT_FLOAT: 512,
    InstructionStorageSource.VERTEX_FETCH_CONSTANT: 96,
    InstructionStorageSource.TEXTURE_FETCH_CONSTANT: 32,
}


def get_storage_target_used_components(target: InstructionStorageTarget) -> int:
    """Return the mask of lanes ``target`` actually has.

    Only meant for translation: the disassembler must keep authored lanes the
    target lacks, otherwise the text would not assemble back.
    """

    return _TARGET_USED_COMPONENTS.get(target, 0b1111)


def _check_components(components: Tuple[SwizzleSource, ...]) -> None:
    if len(components) != 4:
        raise ValueError(f"expected 4 swizzle selectors, got {len(components)}")


@dataclass(frozen=True)
class InstructionResult:
    """Where and how an instruction stores its result."""

    storage_target: InstructionStorageTarget = InstructionStorageTarget.NONE
    storage_index: int = 0
    storage_addressing_mode: InstructionStorageAddressingMode = (
        InstructionStorageAddressingMode.STATIC
    )
    is_clamped: bool = False
    # Write mask as authored, regardless of which lanes the target has.
    original_write_mask: int = 0b0000
    components: Tuple[SwizzleSource, ...] = STANDARD_SWIZZLE

    def __post_init__(self) -> None:
        _check_components(self.components)

    def get_used_write_mask(self) -> int:
        return (self.original_write_mask & 0b1111) & get_storage_target_used_components(
            self.storage_target
        )

    def is_standard_swizzle(self) -> bool:
        return self.get_used_write_mask() == 0b1111 and is_identity(self.components)

    def get_used_result_components(self) -> int:
        """Return the source lanes consumed by the written, non-constant lanes."""

        used_write_mask = self.get_used_write_mask()
        used_components = 0
        for i in range(4):
            component = self.components[i]
            if used_write_mask & (1 << i) and not component.is_constant:
                used_components |= 1 << int(component)
        return used_components


@dataclass(frozen=True)
class InstructionOperand:
    """A source operand read by an instruction."""

    storage_source: InstructionStorageSource = InstructionStorageSource.REGISTER
    storage_index: int = 0
    storage_addressing_mode: InstructionStorageAddressingMode = (
        InstructionStorageAddressingMode.STATIC
    )
    is_negated: bool = False
    # Applied before the negation.
    is_absolute_value: bool = False
    component_count: int = 4
    components: Tuple[SwizzleSource, ...] = STANDARD_SWIZZLE

    def __post_init__(self) -> None:
        _check_components(self.components)

    def get_component(self, index: int) -> SwizzleSource:
        return get_component(self.components, self.component_count, index)

    def is_standard_swizzle(self) -> bool:
        return self.component_count == 4 and is_identity(self.components)

    def get_absolute_identical_components(self, other: "InstructionOperand") -> int:
        """Mask of lanes that always hold the same value up to the sign."""

        if (
            self.storage_source != other.storage_source
            or self.storage_index != other.storage_index
            or self.storage_addressing_mode != other.storage_addressing_mode
        ):
            return 0
        identical_components = 0
        for i in range(4):
            if self.get_component(i) == other.get_component(i):
                identical_components |= 1 << i
        return identical_components

    def get_identical_components(self, other: "InstructionOperand") -> int:
        """Mask of lanes that are always bitwise equal."""

        if (
            self.is_negated != other.is_negated
            or self.is_absolute_value != other.is_absolute_value
        ):
            return 0
        return self.get_absolute_identical_components(other)


def make_operand_components(*sources: SwizzleSource) -> Tuple[SwizzleSource, ...]:
    """Pad ``sources`` to four lanes by repeating the rightmost one."""

    if not 1 <= len(sources) <= 4:
        raise ValueError("an operand reads between 1 and 4 components")
    return tuple(sources) + (sources[-1],) * (4 - len(sources))


__all__ = [
    "InstructionStorageTarget",
    "InstructionStorageSource",
    "InstructionStorageAddressingMode",
    "TARGET_INDEX_LIMITS",
    "SOURCE_INDEX_LIMITS",
    "get_storage_target_used_components",
    "InstructionResult",
    "InstructionOperand",
    "make_operand_components",
]
