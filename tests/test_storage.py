import itertools

import pytest

from ucodeir.storage import (
    InstructionOperand,
    InstructionResult,
    InstructionStorageAddressingMode,
    InstructionStorageSource,
    InstructionStorageTarget,
    get_storage_target_used_components,
    make_operand_components,
)
from ucodeir.swizzle import STANDARD_SWIZZLE, SwizzleSource


X, Y, Z, W = SwizzleSource.X, SwizzleSource.Y, SwizzleSource.Z, SwizzleSource.W


def _result(target, mask, components=STANDARD_SWIZZLE):
    return InstructionResult(
        storage_target=target, original_write_mask=mask, components=components
    )


def test_target_capabilities():
    assert get_storage_target_used_components(InstructionStorageTarget.NONE) == 0b0000
    assert get_storage_target_used_components(InstructionStorageTarget.DEPTH) == 0b0001
    assert (
        get_storage_target_used_components(
            InstructionStorageTarget.POINT_SIZE_EDGE_FLAG_KILL_VERTEX
        )
        == 0b0111
    )
    assert get_storage_target_used_components(InstructionStorageTarget.COLOR) == 0b1111


def test_used_write_mask_is_contained_in_mask_and_capability():
    for target in InstructionStorageTarget:
        capability = get_storage_target_used_components(target)
        for mask in range(16):
            used = _result(target, mask).get_used_write_mask()
            assert used & ~mask == 0
            assert used & ~capability == 0


def test_depth_result_is_never_standard():
    assert _result(InstructionStorageTarget.REGISTER, 0b1111).is_standard_swizzle()
    assert not _result(InstructionStorageTarget.DEPTH, 0b1111).is_standard_swizzle()
    assert not _result(
        InstructionStorageTarget.REGISTER, 0b1111, (Y, X, Z, W)
    ).is_standard_swizzle()


def test_used_result_components_skip_constants_and_unwritten_lanes():
    result = _result(
        InstructionStorageTarget.REGISTER, 0b0011, (W, SwizzleSource.ONE, X, X)
    )
    assert result.get_used_result_components() == 0b1000
    assert _result(InstructionStorageTarget.NONE, 0b1111).get_used_result_components() == 0


def test_result_requires_four_selectors():
    with pytest.raises(ValueError):
        InstructionResult(components=(X, Y, Z))


def test_operand_replicates_last_component():
    operand = InstructionOperand(component_count=2, components=make_operand_components(Y, X))
    assert operand.get_component(0) is Y
    assert operand.get_component(1) is X
    assert operand.get_component(3) is X
    assert not operand.is_standard_swizzle()
    assert InstructionOperand().is_standard_swizzle()
    assert not InstructionOperand(component_count=3).is_standard_swizzle()


def test_make_operand_components():
    assert make_operand_components(Z) == (Z, Z, Z, Z)
    assert make_operand_components(X, Y, W) == (X, Y, W, W)
    with pytest.raises(ValueError):
        make_operand_components()
    with pytest.raises(ValueError):
        make_operand_components(X, Y, Z, W, X)


def test_identical_components():
    full = InstructionOperand(storage_index=1)
    partial = InstructionOperand(storage_index=1, components=(X, Y, W, W))
    assert full.get_identical_components(partial) == 0b1011
    assert full.get_identical_components(InstructionOperand(storage_index=2)) == 0
    assert (
        full.get_identical_components(
            InstructionOperand(
                storage_index=1,
                storage_addressing_mode=InstructionStorageAddressingMode.ADDRESS_RELATIVE,
            )
        )
        == 0
    )
    assert (
        full.get_identical_components(
            InstructionOperand(storage_source=InstructionStorageSource.CONSTANT_FLOAT, storage_index=1)
        )
        == 0
    )


def test_absolute_identical_components_ignore_modifiers():
    plain = InstructionOperand(storage_index=3)
    negated = InstructionOperand(storage_index=3, is_negated=True)
    absolute = InstructionOperand(storage_index=3, is_absolute_value=True)
    assert plain.get_identical_components(negated) == 0
    assert plain.get_identical_components(absolute) == 0
    assert plain.get_absolute_identical_components(negated) == 0b1111
    assert plain.get_absolute_identical_components(absolute) == 0b1111


def test_identical_components_are_symmetric():
    operands = [
        InstructionOperand(),
        InstructionOperand(is_negated=True),
        InstructionOperand(component_count=1, components=make_operand_components(Z)),
        InstructionOperand(component_count=2, components=make_operand_components(X, Z)),
        InstructionOperand(components=(W, Z, Y, X)),
        InstructionOperand(storage_index=4),
        InstructionOperand(is_absolute_value=True, components=(X, Y, Y, W)),
    ]
    for a, b in itertools.product(operands, repeat=2):
        assert a.get_identical_components(b) == b.get_identical_components(a)
        assert a.get_absolute_identical_components(b) == b.get_absolute_identical_components(a)
