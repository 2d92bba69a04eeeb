"""Render parsed instructions into microcode assembly text.

Every function here is pure: the text of an instruction only depends on the
instruction itself, which keeps each variant trivially testable.  The layout
follows the shader assembler syntax closely enough for the listing to be read
back by :mod:`ucodeir.ir.parser`.
"""

from __future__ import annotations

from pathlib import Path
from typing import Iterable, List, Optional

from ..constants import (
    ALU_SCALAR_OPCODE_NAMES,
    ALU_VECTOR_OPCODE_NAMES,
    ANISO_FILTER_NAMES,
    TEXTURE_DIMENSION_NAMES,
    TEXTURE_FETCH_OPCODE_NAMES,
    TEXTURE_FETCH_OPCODES_WITH_DIMENSION,
    TEXTURE_FILTER_NAMES,
    AllocType,
    TextureDimension,
)
from ..storage import (
    InstructionOperand,
    InstructionResult,
    InstructionStorageAddressingMode,
    InstructionStorageSource,
    InstructionStorageTarget,
)
from ..swizzle import char_for_swizzle, is_identity
from .model import (
    BoolConstantCondition,
    Gating,
    ParsedAluInstruction,
    ParsedAllocInstruction,
    ParsedCallInstruction,
    ParsedExecInstruction,
    ParsedInstruction,
    ParsedJumpInstruction,
    ParsedLoopEndInstruction,
    ParsedLoopStartInstruction,
    ParsedReturnInstruction,
    ParsedTextureFetchInstruction,
    ParsedVertexFetchInstruction,
    PredicateCondition,
    TextureFetchAttributes,
)


INDENT = "      "
SCALAR_PAIR_INDENT = "    + "

TARGET_PREFIXES = {
    InstructionStorageTarget.NONE: "null",
    InstructionStorageTarget.REGISTER: "r",
    InstructionStorageTarget.INTERPOLATOR: "o",
    InstructionStorageTarget.POSITION: "oPos",
    InstructionStorageTarget.POINT_SIZE_EDGE_FLAG_KILL_VERTEX: "oPts",
    InstructionStorageTarget.EXPORT_ADDRESS: "eA",
    InstructionStorageTarget.EXPORT_DATA: "eM",
    InstructionStorageTarget.COLOR: "oC",
    InstructionStorageTarget.DEPTH: "oDepth",
}

INDEXED_TARGETS = frozenset(
    {
        InstructionStorageTarget.REGISTER,
        InstructionStorageTarget.INTERPOLATOR,
        InstructionStorageTarget.EXPORT_DATA,
        InstructionStorageTarget.COLOR,
    }
)

SOURCE_PREFIXES = {
    InstructionStorageSource.REGISTER: "r",
    InstructionStorageSource.CONSTANT_FLOAT: "c",
    InstructionStorageSource.VERTEX_FETCH_CONSTANT: "vf",
    InstructionStorageSource.TEXTURE_FETCH_CONSTANT: "tf",
}

ADDRESS_REGISTER_NAMES = {
    InstructionStorageAddressingMode.ADDRESS_ABSOLUTE: "a0",
    InstructionStorageAddressingMode.ADDRESS_RELATIVE: "aL",
}

ALLOC_TYPE_NAMES = {
    AllocType.NONE: "none",
    AllocType.VS_POSITION: "position",
    AllocType.MEMORY: "export",
}


# ---------------------------------------------------------------------------
# operands and results
# ---------------------------------------------------------------------------


def format_index(index: int, mode: InstructionStorageAddressingMode) -> str:
    register = ADDRESS_REGISTER_NAMES.get(mode)
    if register is None:
        return str(index)
    return f"[{index}+{register}]"


def format_result(result: InstructionResult) -> str:
    prefix = TARGET_PREFIXES[result.storage_target]
    text = prefix
    if result.storage_target in INDEXED_TARGETS:
        text += format_index(result.storage_index, result.storage_addressing_mode)
    if result.original_write_mask == 0b1111 and is_identity(result.components):
        return text
    lanes = []
    for i in range(4):
        if result.original_write_mask & (1 << i):
            lanes.append(char_for_swizzle(result.components[i]))
        else:
            lanes.append("_")
    return text + "." + "".join(lanes)


def format_operand(operand: InstructionOperand) -> str:
    text = SOURCE_PREFIXES[operand.storage_source] + format_index(
        operand.storage_index, operand.storage_addressing_mode
    )
    if operand.is_absolute_value:
        text = f"|{text}|"
    if operand.is_negated:
        text = "-" + text
    if not operand.is_standard_swizzle():
        count = min(max(operand.component_count, 1), 4)
        text += "." + "".join(
            char_for_swizzle(operand.get_component(i)) for i in range(count)
        )
    return text


def format_predicate(predicate: Optional[PredicateCondition]) -> str:
    if predicate is None:
        return ""
    return "(p0) " if predicate.condition else "(!p0) "


def _format_bool_condition(gating: BoolConstantCondition) -> str:
    return ("" if gating.condition else "!") + f"b{gating.bool_constant_index}"


def _gated_prefix(gating: Gating) -> str:
    if isinstance(gating, PredicateCondition):
        return format_predicate(gating)
    return ""


def _join(mnemonic: str, arguments: Iterable[str]) -> str:
    arguments = [argument for argument in arguments if argument]
    if not arguments:
        return mnemonic
    return f"{mnemonic} {', '.join(arguments)}"


def _with_comment(text: str, **fields: object) -> str:
    rendered = " ".join(f"{key}={value}" for key, value in fields.items())
    return f"{text}  // {rendered}"


# ---------------------------------------------------------------------------
# control flow
# ---------------------------------------------------------------------------


def disassemble_exec(instr: ParsedExecInstruction) -> str:
    gating = instr.gating
    arguments: List[str] = []
    if isinstance(gating, BoolConstantCondition):
        mnemonic = "cexece" if instr.is_end else "cexec"
        arguments.append(_format_bool_condition(gating))
    else:
        mnemonic = "exece" if instr.is_end else "exec"
    if instr.is_yield:
        arguments.append("Yield=true")
    if not instr.clean:
        arguments.append("PredicateClean=false")
    text = INDENT + _gated_prefix(gating) + _join(mnemonic, arguments)
    return _with_comment(
        text,
        dword=instr.dword_index,
        addr=instr.instruction_address,
        cnt=instr.instruction_count,
        seq=f"0x{instr.sequence:X}",
    )


def disassemble_loop_start(instr: ParsedLoopStartInstruction) -> str:
    arguments = [f"i{instr.loop_constant_index}", f"L{instr.loop_skip_address}"]
    if instr.is_repeat:
        arguments.append("Repeat=true")
    return _with_comment(INDENT + _join("loop", arguments), dword=instr.dword_index)


def disassemble_loop_end(instr: ParsedLoopEndInstruction) -> str:
    text = INDENT + format_predicate(instr.predicated_break) + _join(
        "endloop", [f"i{instr.loop_constant_index}", f"L{instr.loop_body_address}"]
    )
    return _with_comment(text, dword=instr.dword_index)


def _disassemble_branch(
    mnemonic: str, dword_index: int, target_address: int, gating: Gating
) -> str:
    arguments: List[str] = []
    if isinstance(gating, BoolConstantCondition):
        arguments.append(_format_bool_condition(gating))
    if not isinstance(gating, (BoolConstantCondition, PredicateCondition)):
        name = mnemonic
    else:
        name = "c" + mnemonic
    arguments.append(f"L{target_address}")
    text = INDENT + _gated_prefix(gating) + _join(name, arguments)
    return _with_comment(text, dword=dword_index)


def disassemble_call(instr: ParsedCallInstruction) -> str:
    return _disassemble_branch("call", instr.dword_index, instr.target_address, instr.gating)


def disassemble_jump(instr: ParsedJumpInstruction) -> str:
    return _disassemble_branch("jmp", instr.dword_index, instr.target_address, instr.gating)


def disassemble_return(instr: ParsedReturnInstruction) -> str:
    return _with_comment(INDENT + "ret", dword=instr.dword_index)


def disassemble_alloc(instr: ParsedAllocInstruction) -> str:
    if instr.type is AllocType.VS_INTERPOLATORS:
        kind = "interpolators" if instr.is_vertex_shader else "colors"
    else:
        kind = ALLOC_TYPE_NAMES[instr.type]
    arguments = [kind]
    if instr.count:
        arguments.append(f"Size={instr.count}")
    return _with_comment(INDENT + _join("alloc", arguments), dword=instr.dword_index)


# ---------------------------------------------------------------------------
# fetch
# ---------------------------------------------------------------------------


def disassemble_vertex_fetch(instr: ParsedVertexFetchInstruction) -> str:
    attributes = instr.attributes
    arguments = [format_result(instr.result)]
    if instr.is_mini_fetch:
        mnemonic = "vfetch_mini"
    else:
        mnemonic = "vfetch_full"
        arguments.extend(format_operand(operand) for operand in instr.operands)
    arguments.append(f"DataFormat={attributes.data_format.name}")
    if attributes.offset:
        arguments.append(f"Offset={attributes.offset}")
    if attributes.stride:
        arguments.append(f"Stride={attributes.stride}")
    if attributes.exp_adjust:
        arguments.append(f"ExpAdjust={attributes.exp_adjust}")
    if attributes.is_index_rounded:
        arguments.append("RoundIndex=true")
    if attributes.is_signed:
        arguments.append("Signed=true")
    if attributes.is_integer:
        arguments.append("NumFormat=integer")
    if attributes.prefetch_count:
        arguments.append(f"PrefetchCount={attributes.prefetch_count}")
    return INDENT + format_predicate(instr.predicate) + _join(mnemonic, arguments)


_TEXTURE_FILTER_ATTRIBUTES = (
    ("MagFilter", "mag_filter"),
    ("MinFilter", "min_filter"),
    ("MipFilter", "mip_filter"),
    ("VolMagFilter", "vol_mag_filter"),
    ("VolMinFilter", "vol_min_filter"),
)

_TEXTURE_FLAG_ATTRIBUTES = (
    ("UnnormalizedTextureCoords", "unnormalized_coordinates"),
    ("FetchValidOnly", "fetch_valid_only"),
    ("UseComputedLOD", "use_computed_lod"),
    ("UseRegisterLOD", "use_register_lod"),
    ("UseRegisterGradients", "use_register_gradients"),
)

_TEXTURE_FLOAT_ATTRIBUTES = (
    ("LODBias", "lod_bias"),
    ("OffsetX", "offset_x"),
    ("OffsetY", "offset_y"),
    ("OffsetZ", "offset_z"),
)

_DEFAULT_TEXTURE_ATTRIBUTES = TextureFetchAttributes()


def _texture_attribute_arguments(attributes: TextureFetchAttributes) -> List[str]:
    arguments: List[str] = []
    for key, name in _TEXTURE_FILTER_ATTRIBUTES:
        value = getattr(attributes, name)
        if value != getattr(_DEFAULT_TEXTURE_ATTRIBUTES, name):
            arguments.append(f"{key}={TEXTURE_FILTER_NAMES[value]}")
    if attributes.aniso_filter != _DEFAULT_TEXTURE_ATTRIBUTES.aniso_filter:
        arguments.append(f"AnisoFilter={ANISO_FILTER_NAMES[attributes.aniso_filter]}")
    for key, name in _TEXTURE_FLAG_ATTRIBUTES:
        value = getattr(attributes, name)
        if value != getattr(_DEFAULT_TEXTURE_ATTRIBUTES, name):
            arguments.append(f"{key}={'true' if value else 'false'}")
    for key, name in _TEXTURE_FLOAT_ATTRIBUTES:
        value = getattr(attributes, name)
        if value != getattr(_DEFAULT_TEXTURE_ATTRIBUTES, name):
            arguments.append(f"{key}={float(value)!r}")
    return arguments


def disassemble_texture_fetch(instr: ParsedTextureFetchInstruction) -> str:
    mnemonic = TEXTURE_FETCH_OPCODE_NAMES[instr.opcode]
    arguments = [format_result(instr.result)]
    arguments.extend(format_operand(operand) for operand in instr.operands)
    if instr.opcode in TEXTURE_FETCH_OPCODES_WITH_DIMENSION:
        mnemonic += TEXTURE_DIMENSION_NAMES[instr.dimension]
    elif instr.dimension is not TextureDimension.DIM_1D:
        arguments.append(f"Dimension={TEXTURE_DIMENSION_NAMES[instr.dimension]}")
    arguments.extend(_texture_attribute_arguments(instr.attributes))
    return INDENT + format_predicate(instr.predicate) + _join(mnemonic, arguments)


# ---------------------------------------------------------------------------
# ALU
# ---------------------------------------------------------------------------


def _alu_operation(
    name: str,
    result: InstructionResult,
    operands: Iterable[InstructionOperand],
) -> str:
    if result.is_clamped:
        name += "_sat"
    arguments = [format_result(result)]
    arguments.extend(format_operand(operand) for operand in operands)
    return _join(name, arguments)


def disassemble_alu(instr: ParsedAluInstruction) -> str:
    """Render the vector and scalar halves, omitting default nops.

    Returns one line, or two when both halves are kept, joined by a newline.
    """

    predicate = format_predicate(instr.predicate)
    keep_vector = not instr.is_vector_op_default_nop()
    keep_scalar = not instr.is_scalar_op_default_nop()
    if not keep_vector and not keep_scalar:
        return INDENT + predicate + "nop"
    lines: List[str] = []
    if keep_vector:
        lines.append(
            INDENT
            + predicate
            + _alu_operation(
                ALU_VECTOR_OPCODE_NAMES[instr.vector_opcode],
                instr.vector_and_constant_result,
                instr.vector_operands,
            )
        )
    if keep_scalar:
        scalar = _alu_operation(
            ALU_SCALAR_OPCODE_NAMES[instr.scalar_opcode],
            instr.scalar_result,
            instr.scalar_operands,
        )
        if keep_vector:
            lines.append(SCALAR_PAIR_INDENT + scalar)
        else:
            lines.append(INDENT + predicate + scalar)
    return "\n".join(lines)


# ---------------------------------------------------------------------------
# dispatch
# ---------------------------------------------------------------------------


def disassemble(instr: ParsedInstruction) -> str:
    """Render any parsed instruction; raises ``TypeError`` for other objects."""

    if isinstance(instr, ParsedAluInstruction):
        return disassemble_alu(instr)
    if isinstance(instr, ParsedVertexFetchInstruction):
        return disassemble_vertex_fetch(instr)
    if isinstance(instr, ParsedTextureFetchInstruction):
        return disassemble_texture_fetch(instr)
    if isinstance(instr, ParsedExecInstruction):
        return disassemble_exec(instr)
    if isinstance(instr, ParsedLoopStartInstruction):
        return disassemble_loop_start(instr)
    if isinstance(instr, ParsedLoopEndInstruction):
        return disassemble_loop_end(instr)
    if isinstance(instr, ParsedCallInstruction):
        return disassemble_call(instr)
    if isinstance(instr, ParsedJumpInstruction):
        return disassemble_jump(instr)
    if isinstance(instr, ParsedReturnInstruction):
        return disassemble_return(instr)
    if isinstance(instr, ParsedAllocInstruction):
        return disassemble_alloc(instr)
    raise TypeError(f"unsupported instruction type: {type(instr).__name__}")


class UcodeListing:
    """Append-only accumulator of disassembled instructions."""

    def __init__(self) -> None:
        self._lines: List[str] = []

    def append(self, instr: ParsedInstruction) -> None:
        self._lines.extend(disassemble(instr).split("\n"))

    def extend(self, instructions: Iterable[ParsedInstruction]) -> None:
        for instr in instructions:
            self.append(instr)

    def __len__(self) -> int:
        return len(self._lines)

    @property
    def text(self) -> str:
        if not self._lines:
            return ""
        return "\n".join(self._lines) + "\n"


class UcodeTextRenderer:
    """Render whole instruction streams into a listing."""

    def render(self, instructions: Iterable[ParsedInstruction]) -> str:
        listing = UcodeListing()
        listing.extend(instructions)
        return listing.text

    def write(self, instructions: Iterable[ParsedInstruction], output_path: Path) -> None:
        output_path.write_text(self.render(instructions), "utf-8")


def render_listing(instructions: Iterable[ParsedInstruction]) -> str:
    return UcodeTextRenderer().render(instructions)


__all__ = [
    "format_index",
    "format_result",
    "format_operand",
    "format_predicate",
    "disassemble_exec",
    "disassemble_loop_start",
    "disassemble_loop_end",
    "disassemble_call",
    "disassemble_jump",
    "disassemble_return",
    "disassemble_alloc",
    "disassemble_vertex_fetch",
    "disassemble_texture_fetch",
    "disassemble_alu",
    "disassemble",
    "UcodeListing",
    "UcodeTextRenderer",
    "render_listing",
]
