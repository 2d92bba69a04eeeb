from ucodeir.constants import (
    AnisoFilter,
    FetchOpcode,
    TextureFilter,
    VertexFormat,
    vertex_format_size_words,
)
from ucodeir.ir.model import (
    ParsedTextureFetchInstruction,
    ParsedVertexFetchInstruction,
    TextureFetchAttributes,
)
from ucodeir.storage import (
    InstructionOperand,
    InstructionResult,
    InstructionStorageSource,
    InstructionStorageTarget,
)


def test_vertex_fetch_constant_comes_from_operands():
    fetch = ParsedVertexFetchInstruction(
        operands=(
            InstructionOperand(),
            InstructionOperand(
                storage_source=InstructionStorageSource.VERTEX_FETCH_CONSTANT, storage_index=7
            ),
        )
    )
    assert fetch.fetch_constant_index == 7
    assert ParsedVertexFetchInstruction().fetch_constant_index is None


def test_texture_fetch_constant_and_result():
    fetch = ParsedTextureFetchInstruction(
        operands=(
            InstructionOperand(),
            InstructionOperand(
                storage_source=InstructionStorageSource.TEXTURE_FETCH_CONSTANT, storage_index=3
            ),
        ),
        result=InstructionResult(
            storage_target=InstructionStorageTarget.REGISTER, original_write_mask=0b0011
        ),
    )
    assert fetch.fetch_constant_index == 3
    assert fetch.has_result()
    assert not ParsedTextureFetchInstruction(opcode=FetchOpcode.SET_TEXTURE_LOD).has_result()


def test_texture_attributes_default_to_fetch_constant():
    attributes = TextureFetchAttributes()
    assert attributes.mag_filter is TextureFilter.USE_FETCH_CONST
    assert attributes.aniso_filter is AnisoFilter.USE_FETCH_CONST
    assert attributes.fetch_valid_only
    assert attributes.use_computed_lod
    assert attributes.lod_bias == 0.0


def test_vertex_format_sizes():
    assert vertex_format_size_words(VertexFormat.FMT_8_8_8_8) == 1
    assert vertex_format_size_words(VertexFormat.FMT_32_32_32_FLOAT) == 3
    assert vertex_format_size_words(VertexFormat.FMT_32_32_32_32_FLOAT) == 4
    assert vertex_format_size_words(VertexFormat.UNDEFINED) == 0
