"""Bitmaps of the constant registers a shader reads."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterator, Optional, Tuple


FLOAT_CONSTANT_WINDOW = 256
LOOP_CONSTANT_COUNT = 32
BOOL_CONSTANT_COUNT = 256


@dataclass(frozen=True)
class ConstantBitmap:
    """Fixed-width bit set with rank queries.

    ``bits`` is a plain integer; bit ``i`` stands for register ``i``.
    """

    width: int
    bits: int = 0

    def __post_init__(self) -> None:
        if self.width <= 0:
            raise ValueError("bitmap width must be positive")
        if self.bits < 0 or self.bits >> self.width:
            raise ValueError(f"bits do not fit into {self.width} bits")

    @classmethod
    def full(cls, width: int) -> "ConstantBitmap":
        return cls(width, (1 << width) - 1)

    @classmethod
    def from_indices(cls, width: int, indices) -> "ConstantBitmap":
        bits = 0
        for index in indices:
            if not 0 <= index < width:
                raise ValueError(f"index {index} outside of [0, {width})")
            bits |= 1 << index
        return cls(width, bits)

    def with_index(self, index: int) -> "ConstantBitmap":
        if not 0 <= index < self.width:
            raise ValueError(f"index {index} outside of [0, {self.width})")
        return ConstantBitmap(self.width, self.bits | (1 << index))

    def test(self, index: int) -> bool:
        if not 0 <= index < self.width:
            return False
        return bool((self.bits >> index) & 1)

    def popcount(self) -> int:
        return bin(self.bits).count("1")

    def rank(self, index: int) -> int:
        """Number of set bits strictly below ``index``."""

        index = min(max(index, 0), self.width)
        return bin(self.bits & ((1 << index) - 1)).count("1")

    def words(self, word_bits: int) -> Tuple[int, ...]:
        """Split the bitmap into little-endian ``word_bits``-wide words."""

        mask = (1 << word_bits) - 1
        count = -(-self.width // word_bits)
        return tuple((self.bits >> (i * word_bits)) & mask for i in range(count))

    def __iter__(self) -> Iterator[int]:
        bits = self.bits
        index = 0
        while bits:
            if bits & 1:
                yield index
            bits >>= 1
            index += 1

    def __bool__(self) -> bool:
        return bool(self.bits)


@dataclass(frozen=True)
class ConstantRegisterMap:
    """Constant registers read by a shader.

    Only 256 of the 512 float constants are visible to one shader; the base
    depends on the shader type and on the SQ_VS/PS_CONST registers, and each
    bit of ``float_bitmap`` is an index relative to that base.
    """

    float_bitmap: ConstantBitmap = field(
        default_factory=lambda: ConstantBitmap(FLOAT_CONSTANT_WINDOW)
    )
    loop_bitmap: ConstantBitmap = field(
        default_factory=lambda: ConstantBitmap(LOOP_CONSTANT_COUNT)
    )
    bool_bitmap: ConstantBitmap = field(
        default_factory=lambda: ConstantBitmap(BOOL_CONSTANT_COUNT)
    )
    # With dynamic addressing every float constant may be read, so the bitmap
    # is full and packing is disabled.
    float_dynamic_addressing: bool = False

    @property
    def float_count(self) -> int:
        return self.float_bitmap.popcount()

    def is_float_constant_used(self, index: int) -> bool:
        return self.float_bitmap.test(index)

    def is_loop_constant_used(self, index: int) -> bool:
        return self.loop_bitmap.test(index)

    def is_bool_constant_used(self, index: int) -> bool:
        return self.bool_bitmap.test(index)

    def float_bitmap_words(self) -> Tuple[int, ...]:
        return self.float_bitmap.words(64)

    def bool_bitmap_words(self) -> Tuple[int, ...]:
        return self.bool_bitmap.words(32)

    def get_packed_float_constant_index(self, float_constant: int) -> Optional[int]:
        """Index of ``float_constant`` in a buffer holding only the constants
        the shader reads, or ``None`` if it is never read.
        """

        if not 0 <= float_constant < FLOAT_CONSTANT_WINDOW:
            return None
        if self.float_dynamic_addressing:
            # Any register may be read at runtime, nothing can be packed.
            return float_constant
        if not self.float_bitmap.test(float_constant):
            return None
        return self.float_bitmap.rank(float_constant)


__all__ = [
    "FLOAT_CONSTANT_WINDOW",
    "LOOP_CONSTANT_COUNT",
    "BOOL_CONSTANT_COUNT",
    "ConstantBitmap",
    "ConstantRegisterMap",
]
