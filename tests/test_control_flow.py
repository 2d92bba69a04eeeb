from ucodeir.constants import AllocType, ControlFlowOpcode
from ucodeir.ir.model import (
    UNCONDITIONAL,
    BoolConstantCondition,
    LoopConstant,
    ParsedAllocInstruction,
    ParsedExecInstruction,
    PredicateCondition,
)


def test_exec_opcode_follows_gating():
    assert ParsedExecInstruction().opcode is ControlFlowOpcode.EXEC
    assert ParsedExecInstruction(is_end=True).opcode is ControlFlowOpcode.EXEC_END
    assert (
        ParsedExecInstruction(gating=PredicateCondition(True)).opcode
        is ControlFlowOpcode.COND_EXEC_PRED
    )
    assert (
        ParsedExecInstruction(gating=PredicateCondition(False), is_end=True).opcode
        is ControlFlowOpcode.COND_EXEC_PRED_END
    )
    bool_gated = BoolConstantCondition(bool_constant_index=4, condition=True)
    assert (
        ParsedExecInstruction(gating=bool_gated).opcode
        is ControlFlowOpcode.COND_EXEC_PRED_CLEAN
    )
    assert (
        ParsedExecInstruction(gating=bool_gated, clean=False).opcode
        is ControlFlowOpcode.COND_EXEC
    )
    assert (
        ParsedExecInstruction(gating=bool_gated, clean=False, is_end=True).opcode
        is ControlFlowOpcode.COND_EXEC_END
    )


def test_exec_sequence_bits():
    exec_instr = ParsedExecInstruction(instruction_count=3, sequence=0b10_01_10)
    assert not exec_instr.is_fetch(0)
    assert exec_instr.is_serialized(0)
    assert exec_instr.is_fetch(1)
    assert not exec_instr.is_serialized(1)
    assert exec_instr.is_serialized(2)
    assert not exec_instr.is_fetch(16)
    assert not exec_instr.is_serialized(-1)


def test_unconditional_is_shared():
    assert ParsedExecInstruction().gating is UNCONDITIONAL
    assert ParsedExecInstruction().gating == ParsedExecInstruction(is_end=True).gating


def test_loop_constant_fields():
    constant = LoopConstant.unpack(0x00FF0210)
    assert constant == LoopConstant(count=0x10, start=0x02, step=-1)
    assert constant.pack() == 0x00FF0210
    assert LoopConstant.unpack(0x00040103).step == 4


def test_alloc_defaults():
    alloc = ParsedAllocInstruction()
    assert alloc.type is AllocType.NONE
    assert alloc.count == 0
    assert not alloc.is_vertex_shader
