"""Dataclasses describing parsed shader microcode instructions.

The structures are shared by disassembly and translation.  Converting
microcode into them must only generalise, never optimise (no nop skipping or
replacement), so that the parsed form is always enough to reassemble the exact
microcode.  Translators are free to optimise afterwards using the derived
predicates exposed here.

Every instruction is a frozen dataclass which keeps the values hashable and
easy to compare in tests.  :data:`ParsedInstruction` is the closed union of all
of them; consumers dispatch over it with ``isinstance`` checks.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional, Tuple, Union

from ..constants import (
    ALU_SCALAR_OPCODE_NAMES,
    ALU_VECTOR_OPCODE_NAMES,
    AllocType,
    AluScalarOpcode,
    AluVectorOpcode,
    AnisoFilter,
    ControlFlowOpcode,
    FetchOpcode,
    TextureDimension,
    TextureFilter,
    VertexFormat,
    alu_vector_op_has_side_effects,
)
from ..storage import (
    InstructionOperand,
    InstructionResult,
    InstructionStorageAddressingMode,
    InstructionStorageSource,
    InstructionStorageTarget,
)


# ---------------------------------------------------------------------------
# Gating
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Unconditional:
    """The instruction always executes."""


@dataclass(frozen=True)
class BoolConstantCondition:
    """Execution depends on a boolean constant matching ``condition``."""

    bool_constant_index: int
    condition: bool


@dataclass(frozen=True)
class PredicateCondition:
    """Execution depends on the predicate register matching ``condition``."""

    condition: bool


UNCONDITIONAL = Unconditional()

Gating = Union[Unconditional, BoolConstantCondition, PredicateCondition]


# ---------------------------------------------------------------------------
# Control flow
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ParsedExecInstruction:
    """Executes ``instruction_count`` ALU/fetch instructions."""

    dword_index: int = 0
    # Address of the first ALU/fetch instruction, in 3-dword units.
    instruction_address: int = 0
    instruction_count: int = 0
    gating: Gating = UNCONDITIONAL
    # Whether this exec ends the shader.
    is_end: bool = False
    # Whether the current predicate is reset.
    clean: bool = True
    # Meaning unconfirmed; kept for reassembly only.
    is_yield: bool = False
    # Two bits per instruction: bit 0 marks fetch, bit 1 marks serialize.
    sequence: int = 0

    @property
    def opcode(self) -> ControlFlowOpcode:
        gating = self.gating
        if isinstance(gating, PredicateCondition):
            return (
                ControlFlowOpcode.COND_EXEC_PRED_END
                if self.is_end
                else ControlFlowOpcode.COND_EXEC_PRED
            )
        if isinstance(gating, BoolConstantCondition):
            if self.clean:
                return (
                    ControlFlowOpcode.COND_EXEC_PRED_CLEAN_END
                    if self.is_end
                    else ControlFlowOpcode.COND_EXEC_PRED_CLEAN
                )
            return (
                ControlFlowOpcode.COND_EXEC_END
                if self.is_end
                else ControlFlowOpcode.COND_EXEC
            )
        return ControlFlowOpcode.EXEC_END if self.is_end else ControlFlowOpcode.EXEC

    def is_fetch(self, index: int) -> bool:
        """Return ``True`` if the ``index``-th instruction of the block is a fetch."""

        if not 0 <= index < 16:
            return False
        return bool((self.sequence >> (index * 2)) & 0b01)

    def is_serialized(self, index: int) -> bool:
        if not 0 <= index < 16:
            return False
        return bool((self.sequence >> (index * 2)) & 0b10)


@dataclass(frozen=True)
class LoopConstant:
    """Byte-wise fields of an integer loop constant register."""

    count: int
    start: int
    step: int

    @classmethod
    def unpack(cls, value: int) -> "LoopConstant":
        step = (value >> 16) & 0xFF
        if step >= 0x80:
            step -= 0x100
        return cls(count=value & 0xFF, start=(value >> 8) & 0xFF, step=step)

    def pack(self) -> int:
        return (self.count & 0xFF) | ((self.start & 0xFF) << 8) | ((self.step & 0xFF) << 16)


@dataclass(frozen=True)
class ParsedLoopStartInstruction:
    dword_index: int = 0
    # Integer constant register holding the loop parameters, [0-31].
    loop_constant_index: int = 0
    # Reuse the current aL instead of resetting it to the loop start.
    is_repeat: bool = False
    loop_skip_address: int = 0


@dataclass(frozen=True)
class ParsedLoopEndInstruction:
    dword_index: int = 0
    # Break out of the loop when the predicate matches, if set.
    predicated_break: Optional[PredicateCondition] = None
    loop_constant_index: int = 0
    loop_body_address: int = 0


@dataclass(frozen=True)
class ParsedCallInstruction:
    dword_index: int = 0
    target_address: int = 0
    gating: Gating = UNCONDITIONAL


@dataclass(frozen=True)
class ParsedReturnInstruction:
    dword_index: int = 0


@dataclass(frozen=True)
class ParsedJumpInstruction:
    dword_index: int = 0
    target_address: int = 0
    gating: Gating = UNCONDITIONAL


@dataclass(frozen=True)
class ParsedAllocInstruction:
    dword_index: int = 0
    type: AllocType = AllocType.NONE
    count: int = 0
    # Selects between the interpolator and color export namespaces.
    is_vertex_shader: bool = False


# ---------------------------------------------------------------------------
# Fetch
# ---------------------------------------------------------------------------


def _fetch_constant_index(
    operands: Tuple[InstructionOperand, ...], source: InstructionStorageSource
) -> Optional[int]:
    for operand in operands:
        if operand.storage_source is source:
            return operand.storage_index
    return None


@dataclass(frozen=True)
class VertexFetchAttributes:
    data_format: VertexFormat = VertexFormat.UNDEFINED
    # Offset and stride are in words.
    offset: int = 0
    stride: int = 0
    exp_adjust: int = 0
    is_index_rounded: bool = False
    is_signed: bool = False
    is_integer: bool = False
    prefetch_count: int = 0


@dataclass(frozen=True)
class ParsedVertexFetchInstruction:
    opcode: FetchOpcode = FetchOpcode.VERTEX_FETCH
    # Mini fetches reuse the address and constant of the previous full fetch,
    # whose operands are copied here.
    is_mini_fetch: bool = False
    predicate: Optional[PredicateCondition] = None
    result: InstructionResult = field(default_factory=InstructionResult)
    operands: Tuple[InstructionOperand, ...] = ()
    attributes: VertexFetchAttributes = field(default_factory=VertexFetchAttributes)

    @property
    def fetch_constant_index(self) -> Optional[int]:
        return _fetch_constant_index(
            self.operands, InstructionStorageSource.VERTEX_FETCH_CONSTANT
        )


@dataclass(frozen=True)
class TextureFetchAttributes:
    fetch_valid_only: bool = True
    unnormalized_coordinates: bool = False
    mag_filter: TextureFilter = TextureFilter.USE_FETCH_CONST
    min_filter: TextureFilter = TextureFilter.USE_FETCH_CONST
    mip_filter: TextureFilter = TextureFilter.USE_FETCH_CONST
    aniso_filter: AnisoFilter = AnisoFilter.USE_FETCH_CONST
    vol_mag_filter: TextureFilter = TextureFilter.USE_FETCH_CONST
    vol_min_filter: TextureFilter = TextureFilter.USE_FETCH_CONST
    use_computed_lod: bool = True
    use_register_lod: bool = False
    use_register_gradients: bool = False
    lod_bias: float = 0.0
    offset_x: float = 0.0
    offset_y: float = 0.0
    offset_z: float = 0.0


@dataclass(frozen=True)
class ParsedTextureFetchInstruction:
    opcode: FetchOpcode = FetchOpcode.TEXTURE_FETCH
    # Only meaningful for opcodes that have multiple dimension forms.
    dimension: TextureDimension = TextureDimension.DIM_1D
    predicate: Optional[PredicateCondition] = None
    result: InstructionResult = field(default_factory=InstructionResult)
    operands: Tuple[InstructionOperand, ...] = ()
    attributes: TextureFetchAttributes = field(default_factory=TextureFetchAttributes)

    def has_result(self) -> bool:
        return self.result.storage_target is not InstructionStorageTarget.NONE

    @property
    def fetch_constant_index(self) -> Optional[int]:
        return _fetch_constant_index(
            self.operands, InstructionStorageSource.TEXTURE_FETCH_CONSTANT
        )


# ---------------------------------------------------------------------------
# ALU
# ---------------------------------------------------------------------------


def _is_default_nop_operand(operands: Tuple[InstructionOperand, ...], index: int) -> bool:
    if index >= len(operands):
        return False
    operand = operands[index]
    return (
        operand.storage_source is InstructionStorageSource.REGISTER
        and operand.storage_index == 0
        and operand.storage_addressing_mode is InstructionStorageAddressingMode.STATIC
        and not operand.is_negated
        and not operand.is_absolute_value
        and operand.is_standard_swizzle()
    )


def _is_default_register_target(result: InstructionResult) -> bool:
    return (
        result.storage_index == 0
        and result.storage_addressing_mode is InstructionStorageAddressingMode.STATIC
    )


@dataclass(frozen=True)
class ParsedAluInstruction:
    """A vector operation paired with a scalar operation.

    Both operations read their operands before either result is stored:
    shaders exist that feed the vector result into the scalar operation of the
    same instruction (or the other way around) and expect the old value.

    ``vector_and_constant_result`` also carries constant 0/1 lanes written to
    exports, since the disassembly has to express them on some operation even
    when only constants are exported.
    """

    vector_opcode: AluVectorOpcode = AluVectorOpcode.ADD
    scalar_opcode: AluScalarOpcode = AluScalarOpcode.ADDS
    predicate: Optional[PredicateCondition] = None
    vector_and_constant_result: InstructionResult = field(default_factory=InstructionResult)
    scalar_result: InstructionResult = field(default_factory=InstructionResult)
    vector_operands: Tuple[InstructionOperand, ...] = ()
    scalar_operands: Tuple[InstructionOperand, ...] = ()

    @property
    def vector_opcode_name(self) -> str:
        return ALU_VECTOR_OPCODE_NAMES[self.vector_opcode]

    @property
    def scalar_opcode_name(self) -> str:
        return ALU_SCALAR_OPCODE_NAMES[self.scalar_opcode]

    def is_vector_op_default_nop(self) -> bool:
        """Whether omitting the vector operation from the text reassembles to
        the same microcode.

        This is a disassembly concern only.  Translators must use the write
        masks and :meth:`is_nop` instead, as this covers one specific encoding.
        """

        result = self.vector_and_constant_result
        if (
            self.vector_opcode is not AluVectorOpcode.MAX
            or result.original_write_mask
            or result.is_clamped
            or not _is_default_nop_operand(self.vector_operands, 0)
            or not _is_default_nop_operand(self.vector_operands, 1)
        ):
            return False
        if result.storage_target is InstructionStorageTarget.REGISTER:
            return _is_default_register_target(result)
        # If both operations are nops, the vector one is kept so the text still
        # states that the destination is an export.
        return not self.is_scalar_op_default_nop()

    def is_scalar_op_default_nop(self) -> bool:
        """Scalar counterpart of :meth:`is_vector_op_default_nop`."""

        result = self.scalar_result
        if (
            self.scalar_opcode is not AluScalarOpcode.RETAIN_PREV
            or result.original_write_mask
            or result.is_clamped
        ):
            return False
        if result.storage_target is InstructionStorageTarget.REGISTER:
            return _is_default_register_target(result)
        return True

    def is_nop(self, has_side_effects=alu_vector_op_has_side_effects) -> bool:
        """For translation: whether the instruction has no effect at all."""

        return (
            self.scalar_opcode is AluScalarOpcode.RETAIN_PREV
            and not self.scalar_result.get_used_write_mask()
            and not self.vector_and_constant_result.get_used_write_mask()
            and not has_side_effects(self.vector_opcode)
        )

    def get_mem_export_stream_constant(self) -> Optional[int]:
        """Return the stream constant of a recognised ``eA`` write.

        The memexport address is normally computed as ``mad eA, r#, c_one,
        c_stream``; for that form the index of ``c_stream`` is returned,
        otherwise ``None``.
        """

        result = self.vector_and_constant_result
        if (
            result.storage_target is not InstructionStorageTarget.EXPORT_ADDRESS
            or self.vector_opcode is not AluVectorOpcode.MAD
            or result.get_used_result_components() != 0b1111
            or result.is_clamped
            or len(self.vector_operands) < 3
        ):
            return None
        addend = self.vector_operands[2]
        if (
            addend.storage_source is InstructionStorageSource.CONSTANT_FLOAT
            and addend.storage_addressing_mode is InstructionStorageAddressingMode.STATIC
            and addend.is_standard_swizzle()
            and not addend.is_negated
            and not addend.is_absolute_value
        ):
            return addend.storage_index
        return None


ControlFlowInstruction = Union[
    ParsedExecInstruction,
    ParsedLoopStartInstruction,
    ParsedLoopEndInstruction,
    ParsedCallInstruction,
    ParsedReturnInstruction,
    ParsedJumpInstruction,
    ParsedAllocInstruction,
]

FetchInstruction = Union[ParsedVertexFetchInstruction, ParsedTextureFetchInstruction]

ParsedInstruction = Union[ControlFlowInstruction, FetchInstruction, ParsedAluInstruction]


__all__ = [
    "Unconditional",
    "BoolConstantCondition",
    "PredicateCondition",
    "UNCONDITIONAL",
    "Gating",
    "ParsedExecInstruction",
    "LoopConstant",
    "ParsedLoopStartInstruction",
    "ParsedLoopEndInstruction",
    "ParsedCallInstruction",
    "ParsedReturnInstruction",
    "ParsedJumpInstruction",
    "ParsedAllocInstruction",
    "VertexFetchAttributes",
    "ParsedVertexFetchInstruction",
    "TextureFetchAttributes",
    "ParsedTextureFetchInstruction",
    "ParsedAluInstruction",
    "ControlFlowInstruction",
    "FetchInstruction",
    "ParsedInstruction",
]
