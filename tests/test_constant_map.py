import itertools

import pytest

from ucodeir.constant_map import (
    BOOL_CONSTANT_COUNT,
    FLOAT_CONSTANT_WINDOW,
    ConstantBitmap,
    ConstantRegisterMap,
)


def _float_map(*indices) -> ConstantRegisterMap:
    return ConstantRegisterMap(
        float_bitmap=ConstantBitmap.from_indices(FLOAT_CONSTANT_WINDOW, indices)
    )


def test_empty_map():
    constants = ConstantRegisterMap()
    assert constants.float_count == 0
    assert not constants.float_bitmap
    assert not constants.loop_bitmap
    assert not constants.bool_bitmap
    assert constants.float_bitmap_words() == (0, 0, 0, 0)
    assert constants.bool_bitmap_words() == (0,) * 8
    assert constants.get_packed_float_constant_index(0) is None


def test_packed_index_is_rank_among_used_constants():
    constants = _float_map(3, 10, 200)
    assert constants.float_count == 3
    assert constants.get_packed_float_constant_index(3) == 0
    assert constants.get_packed_float_constant_index(10) == 1
    assert constants.get_packed_float_constant_index(200) == 2
    assert constants.get_packed_float_constant_index(4) is None
    assert constants.get_packed_float_constant_index(-1) is None
    assert constants.get_packed_float_constant_index(FLOAT_CONSTANT_WINDOW) is None


def test_packing_is_monotonic():
    used = [0, 1, 5, 63, 64, 65, 127, 128, 254, 255]
    constants = _float_map(*used)
    for i, j in itertools.combinations(used, 2):
        assert constants.get_packed_float_constant_index(
            i
        ) < constants.get_packed_float_constant_index(j)


def test_dynamic_addressing_disables_packing():
    constants = ConstantRegisterMap(
        float_bitmap=ConstantBitmap.full(FLOAT_CONSTANT_WINDOW),
        float_dynamic_addressing=True,
    )
    assert constants.float_count == FLOAT_CONSTANT_WINDOW
    for index in (0, 17, 255):
        assert constants.get_packed_float_constant_index(index) == index
    assert constants.get_packed_float_constant_index(256) is None
    assert constants.get_packed_float_constant_index(-4) is None


def test_bitmap_words_are_little_endian():
    constants = ConstantRegisterMap(
        float_bitmap=ConstantBitmap.from_indices(FLOAT_CONSTANT_WINDOW, [64, 255]),
        bool_bitmap=ConstantBitmap.from_indices(BOOL_CONSTANT_COUNT, [33]),
    )
    assert constants.float_bitmap_words() == (0, 1, 0, 1 << 63)
    assert constants.bool_bitmap_words()[1] == 0b10
    assert constants.is_float_constant_used(64)
    assert not constants.is_float_constant_used(65)
    assert constants.is_bool_constant_used(33)
    assert not constants.is_loop_constant_used(0)


def test_bitmap_rejects_out_of_range_indices():
    with pytest.raises(ValueError):
        ConstantBitmap(4, 0b10000)
    with pytest.raises(ValueError):
        ConstantBitmap(0)
    with pytest.raises(ValueError):
        ConstantBitmap(32).with_index(32)
    with pytest.raises(ValueError):
        ConstantBitmap.from_indices(32, [-1])


def test_bitmap_queries():
    bitmap = ConstantBitmap(32).with_index(9).with_index(2).with_index(31)
    assert list(bitmap) == [2, 9, 31]
    assert bitmap.popcount() == 3
    assert bitmap.rank(0) == 0
    assert bitmap.rank(9) == 1
    assert bitmap.rank(100) == 3
    assert bitmap.test(31)
    assert not bitmap.test(32)
    assert not bitmap.test(-1)
