from pathlib import Path

import pytest

from ucodeir.constants import (
    AllocType,
    AluScalarOpcode,
    AluVectorOpcode,
    FetchOpcode,
    TextureDimension,
    TextureFilter,
    VertexFormat,
)
from ucodeir.ir.model import (
    BoolConstantCondition,
    ParsedAllocInstruction,
    ParsedAluInstruction,
    ParsedCallInstruction,
    ParsedExecInstruction,
    ParsedJumpInstruction,
    ParsedLoopEndInstruction,
    ParsedLoopStartInstruction,
    ParsedReturnInstruction,
    ParsedTextureFetchInstruction,
    ParsedVertexFetchInstruction,
    PredicateCondition,
    TextureFetchAttributes,
    VertexFetchAttributes,
)
from ucodeir.ir.printer import (
    UcodeListing,
    UcodeTextRenderer,
    disassemble,
    format_operand,
    format_result,
)
from ucodeir.storage import (
    InstructionOperand,
    InstructionResult,
    InstructionStorageAddressingMode,
    InstructionStorageSource,
    InstructionStorageTarget,
    make_operand_components,
)
from ucodeir.swizzle import SwizzleSource


X, Y, Z, W = SwizzleSource.X, SwizzleSource.Y, SwizzleSource.Z, SwizzleSource.W
REGISTER = InstructionStorageTarget.REGISTER


def _register(index, mask=0b1111, components=(X, Y, Z, W)):
    return InstructionResult(
        storage_target=REGISTER,
        storage_index=index,
        original_write_mask=mask,
        components=components,
    )


def _constant(index, **kwargs):
    return InstructionOperand(
        storage_source=InstructionStorageSource.CONSTANT_FLOAT, storage_index=index, **kwargs
    )


def test_format_result():
    assert format_result(_register(2)) == "r2"
    assert format_result(_register(2, 0b0101)) == "r2.x_z_"
    assert format_result(_register(2, 0b1000, (X, Y, Z, SwizzleSource.ONE))) == "r2.___1"
    assert format_result(_register(0, 0b1111, (W, Z, Y, X))) == "r0.wzyx"
    assert (
        format_result(
            InstructionResult(
                storage_target=REGISTER,
                storage_index=3,
                storage_addressing_mode=InstructionStorageAddressingMode.ADDRESS_ABSOLUTE,
                original_write_mask=0b1111,
            )
        )
        == "r[3+a0]"
    )
    assert (
        format_result(
            InstructionResult(
                storage_target=InstructionStorageTarget.DEPTH, original_write_mask=0b0001
            )
        )
        == "oDepth.x___"
    )
    assert (
        format_result(
            InstructionResult(
                storage_target=InstructionStorageTarget.EXPORT_DATA,
                storage_index=1,
                original_write_mask=0b1111,
            )
        )
        == "eM1"
    )
    assert format_result(InstructionResult()) == "null.____"


def test_format_operand():
    assert format_operand(_constant(5)) == "c5"
    assert (
        format_operand(
            InstructionOperand(
                storage_index=1,
                is_negated=True,
                is_absolute_value=True,
                component_count=1,
                components=make_operand_components(X),
            )
        )
        == "-|r1|.x"
    )
    assert (
        format_operand(
            _constant(4, storage_addressing_mode=InstructionStorageAddressingMode.ADDRESS_RELATIVE)
        )
        == "c[4+aL]"
    )
    assert (
        format_operand(
            InstructionOperand(component_count=2, components=make_operand_components(W, X))
        )
        == "r0.wx"
    )


def test_control_flow_lines():
    assert (
        disassemble(
            ParsedExecInstruction(
                dword_index=0, instruction_address=1, instruction_count=2, sequence=0x12
            )
        )
        == "      exec  // dword=0 addr=1 cnt=2 seq=0x12"
    )
    assert disassemble(
        ParsedExecInstruction(
            dword_index=1,
            instruction_address=3,
            instruction_count=1,
            gating=BoolConstantCondition(3, False),
            is_end=True,
            clean=False,
            is_yield=True,
        )
    ) == (
        "      cexece !b3, Yield=true, PredicateClean=false"
        "  // dword=1 addr=3 cnt=1 seq=0x0"
    )
    assert disassemble(
        ParsedExecInstruction(dword_index=2, gating=PredicateCondition(False))
    ).startswith("      (!p0) exec  //")
    assert (
        disassemble(
            ParsedCallInstruction(
                dword_index=1, target_address=5, gating=BoolConstantCondition(1, True)
            )
        )
        == "      ccall b1, L5  // dword=1"
    )
    assert (
        disassemble(
            ParsedJumpInstruction(
                dword_index=2, target_address=7, gating=PredicateCondition(True)
            )
        )
        == "      (p0) cjmp L7  // dword=2"
    )
    assert (
        disassemble(ParsedJumpInstruction(dword_index=2, target_address=0))
        == "      jmp L0  // dword=2"
    )
    assert disassemble(ParsedReturnInstruction(dword_index=3)) == "      ret  // dword=3"
    assert (
        disassemble(
            ParsedLoopStartInstruction(
                dword_index=0, loop_constant_index=2, is_repeat=True, loop_skip_address=9
            )
        )
        == "      loop i2, L9, Repeat=true  // dword=0"
    )
    assert (
        disassemble(
            ParsedLoopEndInstruction(
                dword_index=4,
                predicated_break=PredicateCondition(True),
                loop_constant_index=2,
                loop_body_address=3,
            )
        )
        == "      (p0) endloop i2, L3  // dword=4"
    )


def test_alloc_lines():
    assert (
        disassemble(
            ParsedAllocInstruction(
                dword_index=0, type=AllocType.VS_INTERPOLATORS, count=3, is_vertex_shader=False
            )
        )
        == "      alloc colors, Size=3  // dword=0"
    )
    assert (
        disassemble(
            ParsedAllocInstruction(
                dword_index=0, type=AllocType.VS_INTERPOLATORS, count=3, is_vertex_shader=True
            )
        )
        == "      alloc interpolators, Size=3  // dword=0"
    )
    assert (
        disassemble(ParsedAllocInstruction(dword_index=1, type=AllocType.VS_POSITION))
        == "      alloc position  // dword=1"
    )


def test_fetch_lines():
    vfetch = ParsedVertexFetchInstruction(
        result=_register(1),
        operands=(
            InstructionOperand(component_count=1, components=make_operand_components(X)),
            InstructionOperand(
                storage_source=InstructionStorageSource.VERTEX_FETCH_CONSTANT, storage_index=3
            ),
        ),
        attributes=VertexFetchAttributes(
            data_format=VertexFormat.FMT_32_32_32_FLOAT, offset=2, stride=5
        ),
    )
    assert disassemble(vfetch) == (
        "      vfetch_full r1, r0.x, vf3, DataFormat=FMT_32_32_32_FLOAT, Offset=2, Stride=5"
    )
    mini = ParsedVertexFetchInstruction(
        is_mini_fetch=True,
        predicate=PredicateCondition(True),
        result=_register(2, 0b0011),
        operands=vfetch.operands,
        attributes=VertexFetchAttributes(data_format=VertexFormat.FMT_16_16, offset=5),
    )
    assert disassemble(mini) == (
        "      (p0) vfetch_mini r2.xy__, DataFormat=FMT_16_16, Offset=5"
    )

    tfetch = ParsedTextureFetchInstruction(
        dimension=TextureDimension.DIM_2D,
        result=_register(2, 0b0011),
        operands=(
            InstructionOperand(
                storage_index=1, component_count=2, components=make_operand_components(X, Y)
            ),
            InstructionOperand(storage_source=InstructionStorageSource.TEXTURE_FETCH_CONSTANT),
        ),
        attributes=TextureFetchAttributes(mag_filter=TextureFilter.LINEAR, lod_bias=0.5),
    )
    assert disassemble(tfetch) == (
        "      tfetch2D r2.xy__, r1.xy, tf0, MagFilter=linear, LODBias=0.5"
    )
    set_lod = ParsedTextureFetchInstruction(
        opcode=FetchOpcode.SET_TEXTURE_LOD,
        dimension=TextureDimension.CUBE,
        operands=(InstructionOperand(component_count=1, components=make_operand_components(Z)),),
    )
    assert disassemble(set_lod) == "      setTexLOD null.____, r0.z, Dimension=Cube"


def test_alu_pairs_vector_and_scalar():
    instr = ParsedAluInstruction(
        vector_opcode=AluVectorOpcode.MUL,
        scalar_opcode=AluScalarOpcode.RCP,
        vector_and_constant_result=_register(0),
        scalar_result=_register(3, 0b0001),
        vector_operands=(InstructionOperand(storage_index=1), _constant(2)),
        scalar_operands=(
            _constant(4, component_count=1, components=make_operand_components(Z)),
        ),
    )
    assert disassemble(instr) == "      mul r0, r1, c2\n    + rcp r3.x___, c4.z"


def test_alu_omits_default_halves():
    register_nop = InstructionResult(storage_target=REGISTER)
    nop = ParsedAluInstruction(
        vector_opcode=AluVectorOpcode.MAX,
        scalar_opcode=AluScalarOpcode.RETAIN_PREV,
        vector_and_constant_result=register_nop,
        scalar_result=register_nop,
        vector_operands=(InstructionOperand(), InstructionOperand()),
    )
    assert disassemble(nop) == "      nop"

    scalar_only = ParsedAluInstruction(
        vector_opcode=AluVectorOpcode.MAX,
        scalar_opcode=AluScalarOpcode.EXP,
        predicate=PredicateCondition(False),
        vector_and_constant_result=register_nop,
        scalar_result=InstructionResult(
            storage_target=REGISTER, storage_index=1, original_write_mask=0b0001, is_clamped=True
        ),
        vector_operands=(InstructionOperand(), InstructionOperand()),
        scalar_operands=(
            InstructionOperand(
                is_negated=True, component_count=1, components=make_operand_components(W)
            ),
        ),
    )
    assert disassemble(scalar_only) == "      (!p0) exp_sat r1.x___, -r0.w"


def test_listing_accumulates_lines(tmp_path: Path):
    instructions = [
        ParsedExecInstruction(instruction_address=1, instruction_count=1, is_end=True),
        ParsedAluInstruction(
            vector_opcode=AluVectorOpcode.ADD,
            vector_and_constant_result=_register(0),
            scalar_result=_register(1, 0b0001),
            vector_operands=(InstructionOperand(), _constant(0)),
            scalar_operands=(_constant(1, component_count=1, components=make_operand_components(X)),),
        ),
    ]
    listing = UcodeListing()
    listing.extend(instructions)
    assert len(listing) == 3
    assert listing.text.endswith("\n")
    assert UcodeListing().text == ""

    output_path = tmp_path / "listing.txt"
    UcodeTextRenderer().write(instructions, output_path)
    assert output_path.read_text("utf-8") == listing.text


def test_unsupported_objects_are_rejected():
    with pytest.raises(TypeError):
        disassemble(object())
