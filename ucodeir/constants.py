"""Opcode tables and enumerations of the shader microcode format."""

from __future__ import annotations

from enum import IntEnum
from typing import Dict, FrozenSet


# ---------------------------------------------------------------------------
# Shader stages
# ---------------------------------------------------------------------------


class ShaderType(IntEnum):
    VERTEX = 0
    PIXEL = 1


class HostVertexShaderType(IntEnum):
    """Shape of a translated vertex shader in a D3D11-like host pipeline.

    The values are persisted by shader storages, so they must never be
    renumbered.
    """

    VERTEX = 0
    LINE_DOMAIN_CONSTANT = 1
    LINE_DOMAIN_ADAPTIVE = 2
    TRIANGLE_DOMAIN_CONSTANT = 3
    TRIANGLE_DOMAIN_ADAPTIVE = 4
    QUAD_DOMAIN_CONSTANT = 5
    QUAD_DOMAIN_ADAPTIVE = 6


SHADER_TYPE_EXTENSIONS: Dict[ShaderType, str] = {
    ShaderType.VERTEX: "vert",
    ShaderType.PIXEL: "frag",
}


# ---------------------------------------------------------------------------
# Control flow
# ---------------------------------------------------------------------------


class ControlFlowOpcode(IntEnum):
    NOP = 0
    EXEC = 1
    EXEC_END = 2
    COND_EXEC = 3
    COND_EXEC_END = 4
    COND_EXEC_PRED = 5
    COND_EXEC_PRED_END = 6
    LOOP_START = 7
    LOOP_END = 8
    COND_CALL = 9
    RETURN = 10
    COND_JMP = 11
    ALLOC = 12
    COND_EXEC_PRED_CLEAN = 13
    COND_EXEC_PRED_CLEAN_END = 14
    MARK_VS_FETCH_DONE = 15


class AllocType(IntEnum):
    NONE = 0
    VS_POSITION = 1
    # Interpolators in vertex shaders, colors in pixel shaders.
    VS_INTERPOLATORS = 2
    MEMORY = 3


# ---------------------------------------------------------------------------
# ALU
# ---------------------------------------------------------------------------


class AluVectorOpcode(IntEnum):
    ADD = 0
    MUL = 1
    MAX = 2
    MIN = 3
    SEQ = 4
    SGT = 5
    SGE = 6
    SNE = 7
    FRC = 8
    TRUNC = 9
    FLOOR = 10
    MAD = 11
    CND_EQ = 12
    CND_GE = 13
    CND_GT = 14
    DP4 = 15
    DP3 = 16
    DP2_ADD = 17
    CUBE = 18
    MAX4 = 19
    SETP_EQ_PUSH = 20
    SETP_NE_PUSH = 21
    SETP_GT_PUSH = 22
    SETP_GE_PUSH = 23
    KILL_EQ = 24
    KILL_GT = 25
    KILL_GE = 26
    KILL_NE = 27
    DST = 28
    MAX_A = 29


class AluScalarOpcode(IntEnum):
    ADDS = 0
    ADDS_PREV = 1
    MULS = 2
    MULS_PREV = 3
    MULS_PREV2 = 4
    MAXS = 5
    MINS = 6
    SEQS = 7
    SGTS = 8
    SGES = 9
    SNES = 10
    FRCS = 11
    TRUNCS = 12
    FLOORS = 13
    EXP = 14
    LOGC = 15
    LOG = 16
    RCPC = 17
    RCPF = 18
    RCP = 19
    RSQC = 20
    RSQF = 21
    RSQ = 22
    MAX_AS = 23
    MAX_ASF = 24
    SUBS = 25
    SUBS_PREV = 26
    SETP_EQ = 27
    SETP_NE = 28
    SETP_GT = 29
    SETP_GE = 30
    SETP_INV = 31
    SETP_POP = 32
    SETP_CLR = 33
    SETP_RSTR = 34
    KILLS_EQ = 35
    KILLS_GT = 36
    KILLS_GE = 37
    KILLS_NE = 38
    KILLS_ONE = 39
    SQRT = 40
    MULSC0 = 42
    MULSC1 = 43
    ADDSC0 = 44
    ADDSC1 = 45
    SUBSC0 = 46
    SUBSC1 = 47
    SIN = 48
    COS = 49
    RETAIN_PREV = 50


ALU_VECTOR_OPCODE_NAMES: Dict[AluVectorOpcode, str] = {
    AluVectorOpcode.ADD: "add",
    AluVectorOpcode.MUL: "mul",
    AluVectorOpcode.MAX: "max",
    AluVectorOpcode.MIN: "min",
    AluVectorOpcode.SEQ: "seq",
    AluVectorOpcode.SGT: "sgt",
    AluVectorOpcode.SGE: "sge",
    AluVectorOpcode.SNE: "sne",
    AluVectorOpcode.FRC: "frc",
    AluVectorOpcode.TRUNC: "trunc",
    AluVectorOpcode.FLOOR: "floor",
    AluVectorOpcode.MAD: "mad",
    AluVectorOpcode.CND_EQ: "cndeq",
    AluVectorOpcode.CND_GE: "cndge",
    AluVectorOpcode.CND_GT: "cndgt",
    AluVectorOpcode.DP4: "dp4",
    AluVectorOpcode.DP3: "dp3",
    AluVectorOpcode.DP2_ADD: "dp2add",
    AluVectorOpcode.CUBE: "cube",
    AluVectorOpcode.MAX4: "max4",
    AluVectorOpcode.SETP_EQ_PUSH: "setp_eq_push",
    AluVectorOpcode.SETP_NE_PUSH: "setp_ne_push",
    AluVectorOpcode.SETP_GT_PUSH: "setp_gt_push",
    AluVectorOpcode.SETP_GE_PUSH: "setp_ge_push",
    AluVectorOpcode.KILL_EQ: "kill_eq",
    AluVectorOpcode.KILL_GT: "kill_gt",
    AluVectorOpcode.KILL_GE: "kill_ge",
    AluVectorOpcode.KILL_NE: "kill_ne",
    AluVectorOpcode.DST: "dst",
    AluVectorOpcode.MAX_A: "maxa",
}

ALU_VECTOR_OPERAND_COUNTS: Dict[AluVectorOpcode, int] = {
    opcode: 2 for opcode in AluVectorOpcode
}
ALU_VECTOR_OPERAND_COUNTS.update(
    {
        AluVectorOpcode.FRC: 1,
        AluVectorOpcode.TRUNC: 1,
        AluVectorOpcode.FLOOR: 1,
        AluVectorOpcode.MAX4: 1,
        AluVectorOpcode.MAD: 3,
        AluVectorOpcode.CND_EQ: 3,
        AluVectorOpcode.CND_GE: 3,
        AluVectorOpcode.CND_GT: 3,
        AluVectorOpcode.DP2_ADD: 3,
    }
)

# Mnemonics are unique per encoding so the opcode survives a trip through the
# listing; the constant/register forms of mulsc/addsc/subsc differ only in the
# register bank bit folded into the opcode.
ALU_SCALAR_OPCODE_NAMES: Dict[AluScalarOpcode, str] = {
    AluScalarOpcode.ADDS: "adds",
    AluScalarOpcode.ADDS_PREV: "adds_prev",
    AluScalarOpcode.MULS: "muls",
    AluScalarOpcode.MULS_PREV: "muls_prev",
    AluScalarOpcode.MULS_PREV2: "muls_prev2",
    AluScalarOpcode.MAXS: "maxs",
    AluScalarOpcode.MINS: "mins",
    AluScalarOpcode.SEQS: "seqs",
    AluScalarOpcode.SGTS: "sgts",
    AluScalarOpcode.SGES: "sges",
    AluScalarOpcode.SNES: "snes",
    AluScalarOpcode.FRCS: "frcs",
    AluScalarOpcode.TRUNCS: "truncs",
    AluScalarOpcode.FLOORS: "floors",
    AluScalarOpcode.EXP: "exp",
    AluScalarOpcode.LOGC: "logc",
    AluScalarOpcode.LOG: "log",
    AluScalarOpcode.RCPC: "rcpc",
    AluScalarOpcode.RCPF: "rcpf",
    AluScalarOpcode.RCP: "rcp",
    AluScalarOpcode.RSQC: "rsqc",
    AluScalarOpcode.RSQF: "rsqf",
    AluScalarOpcode.RSQ: "rsq",
    AluScalarOpcode.MAX_AS: "maxas",
    AluScalarOpcode.MAX_ASF: "maxasf",
    AluScalarOpcode.SUBS: "subs",
    AluScalarOpcode.SUBS_PREV: "subs_prev",
    AluScalarOpcode.SETP_EQ: "setp_eq",
    AluScalarOpcode.SETP_NE: "setp_ne",
    AluScalarOpcode.SETP_GT: "setp_gt",
    AluScalarOpcode.SETP_GE: "setp_ge",
    AluScalarOpcode.SETP_INV: "setp_inv",
    AluScalarOpcode.SETP_POP: "setp_pop",
    AluScalarOpcode.SETP_CLR: "setp_clr",
    AluScalarOpcode.SETP_RSTR: "setp_rstr",
    AluScalarOpcode.KILLS_EQ: "kills_eq",
    AluScalarOpcode.KILLS_GT: "kills_gt",
    AluScalarOpcode.KILLS_GE: "kills_ge",
    AluScalarOpcode.KILLS_NE: "kills_ne",
    AluScalarOpcode.KILLS_ONE: "kills_one",
    AluScalarOpcode.SQRT: "sqrt",
    AluScalarOpcode.MULSC0: "mulsc0",
    AluScalarOpcode.MULSC1: "mulsc1",
    AluScalarOpcode.ADDSC0: "addsc0",
    AluScalarOpcode.ADDSC1: "addsc1",
    AluScalarOpcode.SUBSC0: "subsc0",
    AluScalarOpcode.SUBSC1: "subsc1",
    AluScalarOpcode.SIN: "sin",
    AluScalarOpcode.COS: "cos",
    AluScalarOpcode.RETAIN_PREV: "retain_prev",
}

ALU_SCALAR_OPERAND_COUNTS: Dict[AluScalarOpcode, int] = {
    opcode: 1 for opcode in AluScalarOpcode
}
ALU_SCALAR_OPERAND_COUNTS.update(
    {
        AluScalarOpcode.MULSC0: 2,
        AluScalarOpcode.MULSC1: 2,
        AluScalarOpcode.ADDSC0: 2,
        AluScalarOpcode.ADDSC1: 2,
        AluScalarOpcode.SUBSC0: 2,
        AluScalarOpcode.SUBSC1: 2,
        AluScalarOpcode.SETP_CLR: 0,
        AluScalarOpcode.RETAIN_PREV: 0,
    }
)

ALU_VECTOR_OPCODES_WITH_SIDE_EFFECTS: FrozenSet[AluVectorOpcode] = frozenset(
    {
        AluVectorOpcode.SETP_EQ_PUSH,
        AluVectorOpcode.SETP_NE_PUSH,
        AluVectorOpcode.SETP_GT_PUSH,
        AluVectorOpcode.SETP_GE_PUSH,
        AluVectorOpcode.KILL_EQ,
        AluVectorOpcode.KILL_GT,
        AluVectorOpcode.KILL_GE,
        AluVectorOpcode.KILL_NE,
        AluVectorOpcode.MAX_A,
    }
)

ALU_VECTOR_KILL_OPCODES: FrozenSet[AluVectorOpcode] = frozenset(
    {
        AluVectorOpcode.KILL_EQ,
        AluVectorOpcode.KILL_GT,
        AluVectorOpcode.KILL_GE,
        AluVectorOpcode.KILL_NE,
    }
)

ALU_SCALAR_KILL_OPCODES: FrozenSet[AluScalarOpcode] = frozenset(
    {
        AluScalarOpcode.KILLS_EQ,
        AluScalarOpcode.KILLS_GT,
        AluScalarOpcode.KILLS_GE,
        AluScalarOpcode.KILLS_NE,
        AluScalarOpcode.KILLS_ONE,
    }
)


def alu_vector_op_has_side_effects(opcode: AluVectorOpcode) -> bool:
    """Return ``True`` when ``opcode`` changes state beyond its result.

    Predicate pushes, pixel kills and the address register write of ``maxa``
    must be kept even when nothing is written to the destination.
    """

    return opcode in ALU_VECTOR_OPCODES_WITH_SIDE_EFFECTS


# ---------------------------------------------------------------------------
# Fetch
# ---------------------------------------------------------------------------


class FetchOpcode(IntEnum):
    VERTEX_FETCH = 0
    TEXTURE_FETCH = 1
    GET_TEXTURE_BORDER_COLOR_FRAC = 16
    GET_TEXTURE_COMPUTED_LOD = 17
    GET_TEXTURE_GRADIENTS = 18
    GET_TEXTURE_WEIGHTS = 19
    SET_TEXTURE_LOD = 24
    SET_TEXTURE_GRADIENTS_HORZ = 25
    SET_TEXTURE_GRADIENTS_VERT = 26
    UNKNOWN_TEXTURE_OP = 27


TEXTURE_FETCH_OPCODE_NAMES: Dict[FetchOpcode, str] = {
    FetchOpcode.TEXTURE_FETCH: "tfetch",
    FetchOpcode.GET_TEXTURE_BORDER_COLOR_FRAC: "getBCF",
    FetchOpcode.GET_TEXTURE_COMPUTED_LOD: "getCompTexLOD",
    FetchOpcode.GET_TEXTURE_GRADIENTS: "getGradients",
    FetchOpcode.GET_TEXTURE_WEIGHTS: "getWeights",
    FetchOpcode.SET_TEXTURE_LOD: "setTexLOD",
    FetchOpcode.SET_TEXTURE_GRADIENTS_HORZ: "setGradientH",
    FetchOpcode.SET_TEXTURE_GRADIENTS_VERT: "setGradientV",
    FetchOpcode.UNKNOWN_TEXTURE_OP: "UnknownTextureOp",
}

# Opcodes whose mnemonic carries the texture dimension (tfetch2D, ...).
TEXTURE_FETCH_OPCODES_WITH_DIMENSION: FrozenSet[FetchOpcode] = frozenset(
    {
        FetchOpcode.TEXTURE_FETCH,
        FetchOpcode.GET_TEXTURE_BORDER_COLOR_FRAC,
        FetchOpcode.GET_TEXTURE_COMPUTED_LOD,
        FetchOpcode.GET_TEXTURE_WEIGHTS,
    }
)


class TextureDimension(IntEnum):
    DIM_1D = 0
    DIM_2D = 1
    DIM_3D = 2
    CUBE = 3


TEXTURE_DIMENSION_NAMES: Dict[TextureDimension, str] = {
    TextureDimension.DIM_1D: "1D",
    TextureDimension.DIM_2D: "2D",
    TextureDimension.DIM_3D: "3D",
    TextureDimension.CUBE: "Cube",
}


class TextureFilter(IntEnum):
    POINT = 0
    LINEAR = 1
    BASE_MAP = 2
    USE_FETCH_CONST = 3


TEXTURE_FILTER_NAMES: Dict[TextureFilter, str] = {
    TextureFilter.POINT: "point",
    TextureFilter.LINEAR: "linear",
    TextureFilter.BASE_MAP: "basemap",
    TextureFilter.USE_FETCH_CONST: "keep",
}


class AnisoFilter(IntEnum):
    DISABLED = 0
    MAX_1_TO_1 = 1
    MAX_2_TO_1 = 2
    MAX_4_TO_1 = 3
    MAX_8_TO_1 = 4
    MAX_16_TO_1 = 5
    USE_FETCH_CONST = 7


ANISO_FILTER_NAMES: Dict[AnisoFilter, str] = {
    AnisoFilter.DISABLED: "disabled",
    AnisoFilter.MAX_1_TO_1: "max1to1",
    AnisoFilter.MAX_2_TO_1: "max2to1",
    AnisoFilter.MAX_4_TO_1: "max4to1",
    AnisoFilter.MAX_8_TO_1: "max8to1",
    AnisoFilter.MAX_16_TO_1: "max16to1",
    AnisoFilter.USE_FETCH_CONST: "keep",
}


class VertexFormat(IntEnum):
    UNDEFINED = 0
    FMT_8_8_8_8 = 6
    FMT_2_10_10_10 = 7
    FMT_10_11_11 = 16
    FMT_11_11_10 = 17
    FMT_16_16 = 25
    FMT_16_16_16_16 = 26
    FMT_16_16_FLOAT = 31
    FMT_16_16_16_16_FLOAT = 32
    FMT_32 = 33
    FMT_32_32 = 34
    FMT_32_32_32_32 = 35
    FMT_32_FLOAT = 36
    FMT_32_32_FLOAT = 37
    FMT_32_32_32_32_FLOAT = 38
    FMT_32_32_32_FLOAT = 57


VERTEX_FORMAT_SIZE_WORDS: Dict[VertexFormat, int] = {
    VertexFormat.UNDEFINED: 0,
    VertexFormat.FMT_8_8_8_8: 1,
    VertexFormat.FMT_2_10_10_10: 1,
    VertexFormat.FMT_10_11_11: 1,
    VertexFormat.FMT_11_11_10: 1,
    VertexFormat.FMT_16_16: 1,
    VertexFormat.FMT_16_16_16_16: 2,
    VertexFormat.FMT_16_16_FLOAT: 1,
    VertexFormat.FMT_16_16_16_16_FLOAT: 2,
    VertexFormat.FMT_32: 1,
    VertexFormat.FMT_32_32: 2,
    VertexFormat.FMT_32_32_32_32: 4,
    VertexFormat.FMT_32_FLOAT: 1,
    VertexFormat.FMT_32_32_FLOAT: 2,
    VertexFormat.FMT_32_32_32_32_FLOAT: 4,
    VertexFormat.FMT_32_32_32_FLOAT: 3,
}


def vertex_format_size_words(data_format: VertexFormat) -> int:
    return VERTEX_FORMAT_SIZE_WORDS.get(data_format, 0)


__all__ = [
    "ShaderType",
    "HostVertexShaderType",
    "SHADER_TYPE_EXTENSIONS",
    "ControlFlowOpcode",
    "AllocType",
    "AluVectorOpcode",
    "AluScalarOpcode",
    "ALU_VECTOR_OPCODE_NAMES",
    "ALU_VECTOR_OPERAND_COUNTS",
    "ALU_SCALAR_OPCODE_NAMES",
    "ALU_SCALAR_OPERAND_COUNTS",
    "ALU_VECTOR_OPCODES_WITH_SIDE_EFFECTS",
    "ALU_VECTOR_KILL_OPCODES",
    "ALU_SCALAR_KILL_OPCODES",
    "alu_vector_op_has_side_effects",
    "FetchOpcode",
    "TEXTURE_FETCH_OPCODE_NAMES",
    "TEXTURE_FETCH_OPCODES_WITH_DIMENSION",
    "TextureDimension",
    "TEXTURE_DIMENSION_NAMES",
    "TextureFilter",
    "TEXTURE_FILTER_NAMES",
    "AnisoFilter",
    "ANISO_FILTER_NAMES",
    "VertexFormat",
    "VERTEX_FORMAT_SIZE_WORDS",
    "vertex_format_size_words",
]
