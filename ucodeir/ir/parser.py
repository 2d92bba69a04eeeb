"""Read microcode assembly listings back into parsed instructions.

The parser accepts exactly the syntax produced by :mod:`ucodeir.ir.printer`,
so ``parse_listing(render(instructions))`` reproduces the instructions.  Parts
of the encoding that the text does not spell out are filled the way the shader
assembler fills them:

* an omitted ALU half becomes the default nop (``max r0._, r0, r0`` or
  ``retain_prev r0._``); when the other half writes an export, the omitted
  half targets export 0 of the stage (``o0`` or ``oC0``);
* result lanes that are not written select their own component;
* operand lanes past the written swizzle repeat the last one;
* mini vertex fetches inherit the operands of the previous full fetch;
* alloc instructions other than ``interpolators``/``colors`` take the stage
  from the shader type the listing is parsed for.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, replace
from typing import Dict, List, Optional, Tuple

from ..constants import (
    ALU_SCALAR_OPCODE_NAMES,
    ALU_SCALAR_OPERAND_COUNTS,
    ALU_VECTOR_OPCODE_NAMES,
    ALU_VECTOR_OPERAND_COUNTS,
    ANISO_FILTER_NAMES,
    TEXTURE_DIMENSION_NAMES,
    TEXTURE_FETCH_OPCODE_NAMES,
    TEXTURE_FETCH_OPCODES_WITH_DIMENSION,
    TEXTURE_FILTER_NAMES,
    AllocType,
    AluScalarOpcode,
    AluVectorOpcode,
    ShaderType,
    TextureDimension,
    VertexFormat,
)
from ..storage import (
    InstructionOperand,
    InstructionResult,
    InstructionStorageAddressingMode,
    InstructionStorageTarget,
    make_operand_components,
)
from ..swizzle import STANDARD_SWIZZLE, SwizzleSource, swizzle_from_char
from .model import (
    UNCONDITIONAL,
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
    VertexFetchAttributes,
)
from .printer import ADDRESS_REGISTER_NAMES, ALLOC_TYPE_NAMES, SOURCE_PREFIXES, TARGET_PREFIXES


class UcodeSyntaxError(ValueError):
    """Raised for listing text that cannot be read back."""

    def __init__(self, message: str, line: Optional[int] = None) -> None:
        self.line = line
        super().__init__(f"line {line}: {message}" if line is not None else message)


_PREDICATE_RE = re.compile(r"^\((!?)p0\)\s*")
_INDEX_RE = re.compile(r"^(?:(\d+)|\[(\d+)\+(a0|aL)\])$")
_OPERAND_RE = re.compile(
    r"^(?P<neg>-)?(?P<abs>\|)?(?P<base>[a-z]+)(?P<index>\d+|\[\d+\+(?:a0|aL)\])"
    r"(?P<close>\|)?(?:\.(?P<swizzle>[xyzw01]{1,4}))?$"
)
_CONDITION_RE = re.compile(r"^(!?)b(\d+)$")
_LABEL_RE = re.compile(r"^L(\d+)$")
_LOOP_CONSTANT_RE = re.compile(r"^i(\d+)$")

_ADDRESSING_BY_NAME = {name: mode for mode, name in ADDRESS_REGISTER_NAMES.items()}
_SOURCE_BY_PREFIX = {prefix: source for source, prefix in SOURCE_PREFIXES.items()}
# Longest prefixes first so "oPos" is not read as "o" + "Pos".
_TARGET_PREFIXES = sorted(
    ((prefix, target) for target, prefix in TARGET_PREFIXES.items()),
    key=lambda item: -len(item[0]),
)
_VECTOR_OPCODES = {name: opcode for opcode, name in ALU_VECTOR_OPCODE_NAMES.items()}
_SCALAR_OPCODES = {name: opcode for opcode, name in ALU_SCALAR_OPCODE_NAMES.items()}
_TEXTURE_FILTERS = {name: value for value, name in TEXTURE_FILTER_NAMES.items()}
_ANISO_FILTERS = {name: value for value, name in ANISO_FILTER_NAMES.items()}
_DIMENSIONS = {name: value for value, name in TEXTURE_DIMENSION_NAMES.items()}
_ALLOC_TYPES = {name: value for value, name in ALLOC_TYPE_NAMES.items()}

_TEXTURE_MNEMONICS: Dict[str, Tuple] = {}
for _opcode, _name in TEXTURE_FETCH_OPCODE_NAMES.items():
    if _opcode in TEXTURE_FETCH_OPCODES_WITH_DIMENSION:
        for _dimension, _suffix in TEXTURE_DIMENSION_NAMES.items():
            _TEXTURE_MNEMONICS[_name + _suffix] = (_opcode, _dimension)
    else:
        _TEXTURE_MNEMONICS[_name] = (_opcode, None)


@dataclass
class _Line:
    """A listing line split into its syntactic parts."""

    number: int
    paired: bool
    predicate: Optional[PredicateCondition]
    mnemonic: str
    positional: List[str]
    keywords: Dict[str, str]
    comment: Dict[str, str]


def _split_line(raw: str, number: int) -> Optional[_Line]:
    code, _, comment = raw.partition("//")
    code = code.strip()
    if not code or code.startswith(";"):
        return None
    paired = code.startswith("+")
    if paired:
        code = code[1:].lstrip()
    predicate = None
    match = _PREDICATE_RE.match(code)
    if match:
        predicate = PredicateCondition(condition=not match.group(1))
        code = code[match.end():]
    mnemonic, _, rest = code.partition(" ")
    positional: List[str] = []
    keywords: Dict[str, str] = {}
    for argument in rest.split(","):
        argument = argument.strip()
        if not argument:
            continue
        key, sep, value = argument.partition("=")
        if sep:
            keywords[key.strip()] = value.strip()
        else:
            positional.append(argument)
    fields: Dict[str, str] = {}
    for item in comment.split():
        key, sep, value = item.partition("=")
        if sep:
            fields[key] = value
    return _Line(number, paired, predicate, mnemonic, positional, keywords, fields)


def _parse_int(text: str, line: _Line, what: str) -> int:
    try:
        return int(text, 0)
    except ValueError:
        raise UcodeSyntaxError(f"invalid {what} {text!r}", line.number) from None


def _parse_bool(text: str, line: _Line) -> bool:
    lowered = text.lower()
    if lowered == "true":
        return True
    if lowered == "false":
        return False
    raise UcodeSyntaxError(f"invalid boolean {text!r}", line.number)


def _parse_index(text: str, line: _Line) -> Tuple[int, InstructionStorageAddressingMode]:
    match = _INDEX_RE.match(text)
    if not match:
        raise UcodeSyntaxError(f"invalid storage index {text!r}", line.number)
    if match.group(1) is not None:
        return int(match.group(1)), InstructionStorageAddressingMode.STATIC
    return int(match.group(2)), _ADDRESSING_BY_NAME[match.group(3)]


def parse_result(text: str, line: _Line) -> InstructionResult:
    base, _, mask = text.partition(".")
    for prefix, target in _TARGET_PREFIXES:
        if not base.startswith(prefix):
            continue
        remainder = base[len(prefix):]
        index, mode = 0, InstructionStorageAddressingMode.STATIC
        if remainder:
            if not remainder[0].isdigit() and not remainder.startswith("["):
                continue
            index, mode = _parse_index(remainder, line)
        break
    else:
        raise UcodeSyntaxError(f"invalid destination {text!r}", line.number)

    write_mask = 0b1111
    components = STANDARD_SWIZZLE
    if mask:
        if len(mask) != 4:
            raise UcodeSyntaxError(f"invalid write mask {mask!r}", line.number)
        write_mask = 0
        lanes: List[SwizzleSource] = []
        for i, char in enumerate(mask):
            if char == "_":
                lanes.append(STANDARD_SWIZZLE[i])
                continue
            try:
                lanes.append(swizzle_from_char(char))
            except ValueError as exc:
                raise UcodeSyntaxError(str(exc), line.number) from None
            write_mask |= 1 << i
        components = tuple(lanes)
    return InstructionResult(
        storage_target=target,
        storage_index=index,
        storage_addressing_mode=mode,
        original_write_mask=write_mask,
        components=components,
    )


def parse_operand(text: str, line: _Line) -> InstructionOperand:
    match = _OPERAND_RE.match(text)
    if not match or match.group("base") not in _SOURCE_BY_PREFIX:
        raise UcodeSyntaxError(f"invalid operand {text!r}", line.number)
    if bool(match.group("abs")) != bool(match.group("close")):
        raise UcodeSyntaxError(f"unbalanced absolute value in {text!r}", line.number)
    index, mode = _parse_index(match.group("index"), line)
    swizzle = match.group("swizzle")
    component_count = 4
    components = STANDARD_SWIZZLE
    if swizzle:
        component_count = len(swizzle)
        components = make_operand_components(*(swizzle_from_char(c) for c in swizzle))
    return InstructionOperand(
        storage_source=_SOURCE_BY_PREFIX[match.group("base")],
        storage_index=index,
        storage_addressing_mode=mode,
        is_negated=bool(match.group("neg")),
        is_absolute_value=bool(match.group("abs")),
        component_count=component_count,
        components=components,
    )


def _parse_label(text: str, line: _Line) -> int:
    match = _LABEL_RE.match(text)
    if not match:
        raise UcodeSyntaxError(f"invalid label {text!r}", line.number)
    return int(match.group(1))


def _parse_loop_constant(text: str, line: _Line) -> int:
    match = _LOOP_CONSTANT_RE.match(text)
    if not match:
        raise UcodeSyntaxError(f"invalid loop constant {text!r}", line.number)
    return int(match.group(1))


def _parse_bool_condition(text: str, line: _Line) -> BoolConstantCondition:
    match = _CONDITION_RE.match(text)
    if not match:
        raise UcodeSyntaxError(f"invalid boolean constant {text!r}", line.number)
    return BoolConstantCondition(
        bool_constant_index=int(match.group(2)), condition=not match.group(1)
    )


def _expect_positional(line: _Line, count: int) -> None:
    if len(line.positional) != count:
        raise UcodeSyntaxError(
            f"{line.mnemonic} expects {count} argument(s), got {len(line.positional)}",
            line.number,
        )


def _dword_index(line: _Line) -> int:
    return _parse_int(line.comment.get("dword", "0"), line, "dword index")


class UcodeListingParser:
    """Stateful reader turning listing lines into parsed instructions."""

    def __init__(self, shader_type: ShaderType = ShaderType.VERTEX) -> None:
        self.shader_type = shader_type

    def parse(self, text: str) -> List[ParsedInstruction]:
        instructions: List[ParsedInstruction] = []
        # Index of an ALU instruction whose scalar half may still follow.
        open_alu: Optional[int] = None
        last_full_vfetch: Tuple[InstructionOperand, ...] = ()

        for number, raw in enumerate(text.splitlines(), start=1):
            line = _split_line(raw, number)
            if line is None:
                continue

            if line.paired:
                if open_alu is None:
                    raise UcodeSyntaxError("scalar pair without a vector operation", number)
                instructions[open_alu] = self._pair_scalar(instructions[open_alu], line)
                open_alu = None
                continue
            open_alu = None

            mnemonic = line.mnemonic
            base = mnemonic[:-4] if mnemonic.endswith("_sat") else mnemonic
            if mnemonic == "nop":
                instructions.append(self._alu_nop(line))
            elif base in _VECTOR_OPCODES:
                instructions.append(self._alu_vector(line, _VECTOR_OPCODES[base]))
                open_alu = len(instructions) - 1
            elif base in _SCALAR_OPCODES:
                instructions.append(self._alu_scalar_only(line, _SCALAR_OPCODES[base]))
            elif mnemonic in ("vfetch_full", "vfetch_mini"):
                instr = self._vertex_fetch(line, last_full_vfetch)
                if not instr.is_mini_fetch:
                    last_full_vfetch = instr.operands
                instructions.append(instr)
            elif mnemonic in _TEXTURE_MNEMONICS:
                instructions.append(self._texture_fetch(line))
            else:
                instructions.append(self._control_flow(line))
        return instructions

    # ------------------------------------------------------------------
    # control flow
    # ------------------------------------------------------------------
    def _control_flow(self, line: _Line) -> ParsedInstruction:
        mnemonic = line.mnemonic
        dword_index = _dword_index(line)
        if mnemonic in ("exec", "exece", "cexec", "cexece"):
            gating: Gating = line.predicate or UNCONDITIONAL
            if mnemonic.startswith("c"):
                _expect_positional(line, 1)
                gating = _parse_bool_condition(line.positional[0], line)
            else:
                _expect_positional(line, 0)
            return ParsedExecInstruction(
                dword_index=dword_index,
                instruction_address=_parse_int(line.comment.get("addr", "0"), line, "address"),
                instruction_count=_parse_int(line.comment.get("cnt", "0"), line, "count"),
                gating=gating,
                is_end=mnemonic.endswith("e"),
                clean=_parse_bool(line.keywords.get("PredicateClean", "true"), line),
                is_yield=_parse_bool(line.keywords.get("Yield", "false"), line),
                sequence=_parse_int(line.comment.get("seq", "0"), line, "sequence"),
            )
        if mnemonic == "loop":
            _expect_positional(line, 2)
            return ParsedLoopStartInstruction(
                dword_index=dword_index,
                loop_constant_index=_parse_loop_constant(line.positional[0], line),
                is_repeat=_parse_bool(line.keywords.get("Repeat", "false"), line),
                loop_skip_address=_parse_label(line.positional[1], line),
            )
        if mnemonic == "endloop":
            _expect_positional(line, 2)
            return ParsedLoopEndInstruction(
                dword_index=dword_index,
                predicated_break=line.predicate,
                loop_constant_index=_parse_loop_constant(line.positional[0], line),
                loop_body_address=_parse_label(line.positional[1], line),
            )
        if mnemonic in ("call", "ccall", "jmp", "cjmp"):
            gating, target = self._branch(line)
            cls = ParsedCallInstruction if mnemonic.endswith("call") else ParsedJumpInstruction
            return cls(dword_index=dword_index, target_address=target, gating=gating)
        if mnemonic == "ret":
            _expect_positional(line, 0)
            return ParsedReturnInstruction(dword_index=dword_index)
        if mnemonic == "alloc":
            return self._alloc(line, dword_index)
        raise UcodeSyntaxError(f"unknown mnemonic {mnemonic!r}", line.number)

    def _branch(self, line: _Line) -> Tuple[Gating, int]:
        conditional = line.mnemonic.startswith("c")
        if not conditional:
            _expect_positional(line, 1)
            return UNCONDITIONAL, _parse_label(line.positional[0], line)
        if line.predicate is not None:
            _expect_positional(line, 1)
            return line.predicate, _parse_label(line.positional[0], line)
        _expect_positional(line, 2)
        return (
            _parse_bool_condition(line.positional[0], line),
            _parse_label(line.positional[1], line),
        )

    def _alloc(self, line: _Line, dword_index: int) -> ParsedAllocInstruction:
        _expect_positional(line, 1)
        kind = line.positional[0]
        is_vertex_shader = self.shader_type is ShaderType.VERTEX
        if kind in ("interpolators", "colors"):
            alloc_type = AllocType.VS_INTERPOLATORS
            is_vertex_shader = kind == "interpolators"
        elif kind in _ALLOC_TYPES:
            alloc_type = _ALLOC_TYPES[kind]
        else:
            raise UcodeSyntaxError(f"unknown allocation {kind!r}", line.number)
        return ParsedAllocInstruction(
            dword_index=dword_index,
            type=alloc_type,
            count=_parse_int(line.keywords.get("Size", "0"), line, "size"),
            is_vertex_shader=is_vertex_shader,
        )

    # ------------------------------------------------------------------
    # fetch
    # ------------------------------------------------------------------
    def _vertex_fetch(
        self, line: _Line, previous_operands: Tuple[InstructionOperand, ...]
    ) -> ParsedVertexFetchInstruction:
        is_mini_fetch = line.mnemonic == "vfetch_mini"
        if not line.positional:
            raise UcodeSyntaxError("vertex fetch without a destination", line.number)
        result = parse_result(line.positional[0], line)
        if is_mini_fetch:
            _expect_positional(line, 1)
            operands = previous_operands
        else:
            operands = tuple(parse_operand(text, line) for text in line.positional[1:])
        keywords = line.keywords
        format_name = keywords.get("DataFormat", VertexFormat.UNDEFINED.name)
        try:
            data_format = VertexFormat[format_name]
        except KeyError:
            raise UcodeSyntaxError(f"unknown vertex format {format_name!r}", line.number) from None
        attributes = VertexFetchAttributes(
            data_format=data_format,
            offset=_parse_int(keywords.get("Offset", "0"), line, "offset"),
            stride=_parse_int(keywords.get("Stride", "0"), line, "stride"),
            exp_adjust=_parse_int(keywords.get("ExpAdjust", "0"), line, "exponent adjust"),
            is_index_rounded=_parse_bool(keywords.get("RoundIndex", "false"), line),
            is_signed=_parse_bool(keywords.get("Signed", "false"), line),
            is_integer=keywords.get("NumFormat", "fraction") == "integer",
            prefetch_count=_parse_int(keywords.get("PrefetchCount", "0"), line, "prefetch count"),
        )
        return ParsedVertexFetchInstruction(
            is_mini_fetch=is_mini_fetch,
            predicate=line.predicate,
            result=result,
            operands=operands,
            attributes=attributes,
        )

    def _texture_fetch(self, line: _Line) -> ParsedTextureFetchInstruction:
        opcode, dimension = _TEXTURE_MNEMONICS[line.mnemonic]
        keywords = line.keywords
        if dimension is None:
            dimension_name = keywords.get("Dimension", TEXTURE_DIMENSION_NAMES[TextureDimension.DIM_1D])
            if dimension_name not in _DIMENSIONS:
                raise UcodeSyntaxError(f"unknown dimension {dimension_name!r}", line.number)
            dimension = _DIMENSIONS[dimension_name]
        if not line.positional:
            raise UcodeSyntaxError("texture fetch without a destination", line.number)
        result = parse_result(line.positional[0], line)
        operands = tuple(parse_operand(text, line) for text in line.positional[1:])

        defaults = TextureFetchAttributes()
        values = {}
        for key, name in (
            ("MagFilter", "mag_filter"),
            ("MinFilter", "min_filter"),
            ("MipFilter", "mip_filter"),
            ("VolMagFilter", "vol_mag_filter"),
            ("VolMinFilter", "vol_min_filter"),
        ):
            if key in keywords:
                if keywords[key] not in _TEXTURE_FILTERS:
                    raise UcodeSyntaxError(f"unknown filter {keywords[key]!r}", line.number)
                values[name] = _TEXTURE_FILTERS[keywords[key]]
        if "AnisoFilter" in keywords:
            if keywords["AnisoFilter"] not in _ANISO_FILTERS:
                raise UcodeSyntaxError(
                    f"unknown anisotropic filter {keywords['AnisoFilter']!r}", line.number
                )
            values["aniso_filter"] = _ANISO_FILTERS[keywords["AnisoFilter"]]
        for key, name in (
            ("UnnormalizedTextureCoords", "unnormalized_coordinates"),
            ("FetchValidOnly", "fetch_valid_only"),
            ("UseComputedLOD", "use_computed_lod"),
            ("UseRegisterLOD", "use_register_lod"),
            ("UseRegisterGradients", "use_register_gradients"),
        ):
            if key in keywords:
                values[name] = _parse_bool(keywords[key], line)
        for key, name in (
            ("LODBias", "lod_bias"),
            ("OffsetX", "offset_x"),
            ("OffsetY", "offset_y"),
            ("OffsetZ", "offset_z"),
        ):
            if key in keywords:
                try:
                    values[name] = float(keywords[key])
                except ValueError:
                    raise UcodeSyntaxError(f"invalid {key} {keywords[key]!r}", line.number) from None
        return ParsedTextureFetchInstruction(
            opcode=opcode,
            dimension=dimension,
            predicate=line.predicate,
            result=result,
            operands=operands,
            attributes=replace(defaults, **values),
        )

    # ------------------------------------------------------------------
    # ALU
    # ------------------------------------------------------------------
    def _stage_export(self) -> InstructionResult:
        if self.shader_type is ShaderType.PIXEL:
            return InstructionResult(storage_target=InstructionStorageTarget.COLOR)
        return InstructionResult(storage_target=InstructionStorageTarget.INTERPOLATOR)

    def _default_result(self, other: InstructionResult) -> InstructionResult:
        if other.storage_target in (
            InstructionStorageTarget.REGISTER,
            InstructionStorageTarget.NONE,
        ):
            return InstructionResult(storage_target=InstructionStorageTarget.REGISTER)
        return self._stage_export()

    def _operation(
        self, line: _Line, operand_count: int
    ) -> Tuple[InstructionResult, Tuple[InstructionOperand, ...]]:
        if not line.positional:
            raise UcodeSyntaxError(f"{line.mnemonic} without a destination", line.number)
        if len(line.positional) - 1 != operand_count:
            raise UcodeSyntaxError(
                f"{line.mnemonic} expects {operand_count} operand(s), "
                f"got {len(line.positional) - 1}",
                line.number,
            )
        result = parse_result(line.positional[0], line)
        if line.mnemonic.endswith("_sat"):
            result = replace(result, is_clamped=True)
        operands = tuple(parse_operand(text, line) for text in line.positional[1:])
        return result, operands

    def _alu_nop(self, line: _Line) -> ParsedAluInstruction:
        _expect_positional(line, 0)
        register = InstructionResult(storage_target=InstructionStorageTarget.REGISTER)
        return ParsedAluInstruction(
            vector_opcode=AluVectorOpcode.MAX,
            scalar_opcode=AluScalarOpcode.RETAIN_PREV,
            predicate=line.predicate,
            vector_and_constant_result=register,
            scalar_result=register,
            vector_operands=(InstructionOperand(), InstructionOperand()),
        )

    def _alu_vector(self, line: _Line, opcode: AluVectorOpcode) -> ParsedAluInstruction:
        result, operands = self._operation(line, ALU_VECTOR_OPERAND_COUNTS[opcode])
        return ParsedAluInstruction(
            vector_opcode=opcode,
            scalar_opcode=AluScalarOpcode.RETAIN_PREV,
            predicate=line.predicate,
            vector_and_constant_result=result,
            scalar_result=self._default_result(result),
            vector_operands=operands,
        )

    def _alu_scalar_only(self, line: _Line, opcode: AluScalarOpcode) -> ParsedAluInstruction:
        result, operands = self._operation(line, ALU_SCALAR_OPERAND_COUNTS[opcode])
        return ParsedAluInstruction(
            vector_opcode=AluVectorOpcode.MAX,
            scalar_opcode=opcode,
            predicate=line.predicate,
            vector_and_constant_result=self._default_result(result),
            scalar_result=result,
            vector_operands=(InstructionOperand(), InstructionOperand()),
            scalar_operands=operands,
        )

    def _pair_scalar(self, instr: ParsedAluInstruction, line: _Line) -> ParsedAluInstruction:
        base = line.mnemonic[:-4] if line.mnemonic.endswith("_sat") else line.mnemonic
        if base not in _SCALAR_OPCODES:
            raise UcodeSyntaxError(f"unknown scalar operation {line.mnemonic!r}", line.number)
        opcode = _SCALAR_OPCODES[base]
        result, operands = self._operation(line, ALU_SCALAR_OPERAND_COUNTS[opcode])
        return replace(
            instr,
            scalar_opcode=opcode,
            predicate=instr.predicate or line.predicate,
            scalar_result=result,
            scalar_operands=operands,
        )


def parse_listing(
    text: str, shader_type: ShaderType = ShaderType.VERTEX
) -> List[ParsedInstruction]:
    """Parse a whole listing produced by :class:`~ucodeir.ir.printer.UcodeListing`."""

    return UcodeListingParser(shader_type).parse(text)


__all__ = [
    "UcodeSyntaxError",
    "UcodeListingParser",
    "parse_listing",
    "parse_result",
    "parse_operand",
]
