"""Single-pass gathering of shader metadata from the instruction stream."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterable, List, Optional, Set, Tuple

from .constant_map import (
    BOOL_CONSTANT_COUNT,
    FLOAT_CONSTANT_WINDOW,
    LOOP_CONSTANT_COUNT,
    ConstantBitmap,
    ConstantRegisterMap,
)
from .constants import (
    ALU_SCALAR_KILL_OPCODES,
    ALU_VECTOR_KILL_OPCODES,
    FetchOpcode,
    HostVertexShaderType,
    ShaderType,
    TextureDimension,
    VertexFormat,
    vertex_format_size_words,
)
from .ir.model import (
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
)
from .ir.printer import UcodeListing
from .shader import (
    Shader,
    ShaderError,
    ShaderStateError,
    TextureBinding,
    TranslationResult,
    VertexBinding,
    VertexBindingAttribute,
)
from .storage import (
    SOURCE_INDEX_LIMITS,
    TARGET_INDEX_LIMITS,
    InstructionOperand,
    InstructionResult,
    InstructionStorageAddressingMode,
    InstructionStorageSource,
    InstructionStorageTarget,
)


logger = logging.getLogger(__name__)

# Each ALU or fetch instruction occupies three dwords.
DWORDS_PER_INSTRUCTION = 3

# Fetches that only change sampler state and do not read a texture.
_TEXTURE_STATE_OPCODES = frozenset(
    {
        FetchOpcode.SET_TEXTURE_LOD,
        FetchOpcode.SET_TEXTURE_GRADIENTS_HORZ,
        FetchOpcode.SET_TEXTURE_GRADIENTS_VERT,
    }
)


@dataclass(frozen=True)
class EarlyZObservations:
    """What the translation pass saw that may forbid early depth/stencil."""

    shader_type: ShaderType
    writes_depth: bool = False
    writes_memexport: bool = False
    uses_kill: bool = False


EarlyZPolicy = Callable[[EarlyZObservations], bool]


def default_early_z_policy(observations: EarlyZObservations) -> bool:
    """Allow implicit early depth/stencil unless the shader can change the
    depth outcome or has side effects that must not be skipped."""

    return not (
        observations.writes_depth
        or observations.writes_memexport
        or observations.uses_kill
    )


@dataclass
class TranslatorSettings:
    """Knobs controlling a translation pass."""

    host_vertex_shader_type: HostVertexShaderType = HostVertexShaderType.VERTEX
    early_z_policy: EarlyZPolicy = default_early_z_policy


@dataclass
class _VertexBindingBuilder:
    binding_index: int
    fetch_constant: int
    stride_words: int
    attributes: List[VertexBindingAttribute] = field(default_factory=list)

    def has_attribute(self, offset: int, data_format: VertexFormat) -> bool:
        for attribute in self.attributes:
            attrs = attribute.fetch_instr.attributes
            if attrs.offset == offset and attrs.data_format is data_format:
                return True
        return False

    def build(self) -> VertexBinding:
        return VertexBinding(
            binding_index=self.binding_index,
            fetch_constant=self.fetch_constant,
            stride_words=self.stride_words,
            attributes=tuple(self.attributes),
        )


class ShaderTranslator:
    """Walk a parsed instruction stream once and commit its metadata.

    Subclasses targeting a host language override :meth:`complete_translation`
    and :meth:`process_instruction` and may set :attr:`host_disassembly`,
    :attr:`host_error_log` and :attr:`host_binary`; the gathering done here
    is shared by all of them.  Diagnostics go to the shader error log through
    :meth:`emit_error` and are mirrored to the module logger.
    """

    def __init__(self, settings: Optional[TranslatorSettings] = None) -> None:
        self.settings = settings or TranslatorSettings()
        self._shader: Optional[Shader] = None
        self._reset()

    def _reset(self) -> None:
        self._errors: List[ShaderError] = []
        self._output_incorrect = False
        self._listing = UcodeListing()
        self._float_indices: Set[int] = set()
        self._float_dynamic_addressing = False
        self._loop_indices: Set[int] = set()
        self._bool_indices: Set[int] = set()
        self._vertex_bindings: Dict[int, _VertexBindingBuilder] = {}
        self._attribute_count = 0
        self._previous_full_vfetch: Optional[ParsedVertexFetchInstruction] = None
        self._texture_bindings: List[TextureBinding] = []
        self._texture_keys: Set[Tuple[int, TextureDimension]] = set()
        self._memexport_stream_constants: List[int] = []
        self._writes_color_targets = [False, False, False, False]
        self._writes_depth = False
        self._writes_memexport = False
        self._uses_kill = False
        # Host-side outputs; subclasses fill these before complete_translation returns.
        self.host_disassembly = ""
        self.host_error_log = ""
        self.host_binary = b""

    # ------------------------------------------------------------------
    # diagnostics
    # ------------------------------------------------------------------
    @property
    def shader(self) -> Shader:
        if self._shader is None:
            raise ShaderStateError("no translation in progress")
        return self._shader

    @property
    def errors(self) -> Tuple[ShaderError, ...]:
        return tuple(self._errors)

    def emit_error(self, is_fatal: bool, message: str) -> None:
        error = ShaderError(is_fatal, message)
        self._errors.append(error)
        if is_fatal:
            logger.warning("shader %016X: %s", self._hash(), message)
        else:
            logger.info("shader %016X: %s", self._hash(), message)

    def mark_output_incorrect(self, message: Optional[str] = None) -> None:
        """Flag that the translated output will not behave like the microcode."""

        self._output_incorrect = True
        if message:
            logger.info("shader %016X: output incorrect: %s", self._hash(), message)

    def _hash(self) -> int:
        return self._shader.ucode_data_hash if self._shader is not None else 0

    # ------------------------------------------------------------------
    # entry point
    # ------------------------------------------------------------------
    def translate(self, shader: Shader, instructions: Iterable[ParsedInstruction]) -> bool:
        """Translate ``shader`` and return whether the result is valid."""

        if shader.is_translated:
            raise ShaderStateError(f"{shader!r} has already been translated")
        self._shader = shader
        self._reset()
        try:
            logger.debug("translating %r", shader)
            self.start_translation()
            for instr in instructions:
                self._listing.append(instr)
                self._gather(instr)
                self.process_instruction(instr)
            translated_binary = self.complete_translation()
            result = self._build_result(translated_binary)
            shader._commit_translation(result)
        finally:
            self._shader = None
        return shader.is_valid

    # ------------------------------------------------------------------
    # hooks for host translators
    # ------------------------------------------------------------------
    def start_translation(self) -> None:
        """Called before the first instruction is processed."""

    def process_instruction(self, instr: ParsedInstruction) -> None:
        """Called for every instruction after its metadata was gathered."""

    def complete_translation(self) -> bytes:
        """Return the translated binary; the base translator emits nothing."""

        return b""

    @property
    def ucode_disassembly(self) -> str:
        return self._listing.text

    # ------------------------------------------------------------------
    # gathering
    # ------------------------------------------------------------------
    def _gather(self, instr: ParsedInstruction) -> None:
        if isinstance(instr, ParsedExecInstruction):
            self._gather_exec(instr)
        elif isinstance(instr, ParsedLoopStartInstruction):
            self._use_loop_constant(instr.loop_constant_index)
        elif isinstance(instr, ParsedLoopEndInstruction):
            self._use_loop_constant(instr.loop_constant_index)
        elif isinstance(instr, (ParsedCallInstruction, ParsedJumpInstruction)):
            self._gather_gating(instr.gating)
        elif isinstance(instr, (ParsedReturnInstruction, ParsedAllocInstruction)):
            pass
        elif isinstance(instr, ParsedVertexFetchInstruction):
            self._gather_vertex_fetch(instr)
        elif isinstance(instr, ParsedTextureFetchInstruction):
            self._gather_texture_fetch(instr)
        elif isinstance(instr, ParsedAluInstruction):
            self._gather_alu(instr)
        else:
            raise TypeError(f"unsupported instruction type: {type(instr).__name__}")

    def _gather_exec(self, instr: ParsedExecInstruction) -> None:
        self._gather_gating(instr.gating)
        available = self.shader.ucode_dword_count // DWORDS_PER_INSTRUCTION
        if instr.instruction_address + instr.instruction_count > available:
            self.emit_error(
                True,
                f"exec at dword {instr.dword_index} reads instructions "
                f"{instr.instruction_address}..{instr.instruction_address + instr.instruction_count} "
                f"beyond the {available} present in the microcode",
            )

    def _gather_gating(self, gating: Gating) -> None:
        if isinstance(gating, BoolConstantCondition):
            index = self._clamp("bool constant", gating.bool_constant_index, BOOL_CONSTANT_COUNT)
            self._bool_indices.add(index)

    def _use_loop_constant(self, index: int) -> None:
        self._loop_indices.add(self._clamp("loop constant", index, LOOP_CONSTANT_COUNT))

    def _clamp(self, what: str, index: int, limit: int) -> int:
        if 0 <= index < limit:
            return index
        clamped = min(max(index, 0), limit - 1)
        self.emit_error(False, f"{what} index {index} outside of [0, {limit}), using {clamped}")
        return clamped

    def _gather_operands(self, operands: Iterable[InstructionOperand]) -> None:
        for operand in operands:
            limit = SOURCE_INDEX_LIMITS[operand.storage_source]
            index = self._clamp(operand.storage_source.name.lower(), operand.storage_index, limit)
            if operand.storage_source is not InstructionStorageSource.CONSTANT_FLOAT:
                continue
            if operand.storage_addressing_mode is not InstructionStorageAddressingMode.STATIC:
                self._float_dynamic_addressing = True
            elif index >= FLOAT_CONSTANT_WINDOW:
                self.emit_error(
                    False,
                    f"float constant c{index} is outside of the "
                    f"{FLOAT_CONSTANT_WINDOW}-register window and is ignored",
                )
            else:
                self._float_indices.add(index)

    def _gather_result(self, result: InstructionResult) -> None:
        target = result.storage_target
        limit = TARGET_INDEX_LIMITS.get(target)
        index = result.storage_index
        if limit is not None:
            index = self._clamp(target.name.lower(), index, limit)
        if not result.get_used_write_mask():
            return
        if target is InstructionStorageTarget.COLOR:
            self._writes_color_targets[index] = True
        elif target is InstructionStorageTarget.DEPTH:
            self._writes_depth = True
        elif target in (
            InstructionStorageTarget.EXPORT_ADDRESS,
            InstructionStorageTarget.EXPORT_DATA,
        ):
            self._writes_memexport = True

    def _gather_vertex_fetch(self, instr: ParsedVertexFetchInstruction) -> None:
        self._gather_result(instr.result)
        if instr.is_mini_fetch:
            full = self._previous_full_vfetch
            if full is None:
                self.emit_error(True, "mini vertex fetch without a previous full fetch")
                return
        else:
            self._gather_operands(instr.operands)
            full = instr
            self._previous_full_vfetch = instr
        fetch_constant = full.fetch_constant_index
        if fetch_constant is None:
            self.emit_error(True, "vertex fetch without a vertex fetch constant operand")
            return
        # Already reported when the operands were gathered.
        limit = SOURCE_INDEX_LIMITS[InstructionStorageSource.VERTEX_FETCH_CONSTANT]
        fetch_constant = min(fetch_constant, limit - 1)

        binding = self._vertex_bindings.get(fetch_constant)
        if binding is None:
            binding = _VertexBindingBuilder(
                binding_index=len(self._vertex_bindings),
                fetch_constant=fetch_constant,
                stride_words=full.attributes.stride,
            )
            self._vertex_bindings[fetch_constant] = binding
        attributes = instr.attributes
        if binding.has_attribute(attributes.offset, attributes.data_format):
            return
        binding.attributes.append(
            VertexBindingAttribute(
                attrib_index=self._attribute_count,
                fetch_instr=instr,
                size_words=vertex_format_size_words(attributes.data_format),
            )
        )
        self._attribute_count += 1

    def _gather_texture_fetch(self, instr: ParsedTextureFetchInstruction) -> None:
        self._gather_result(instr.result)
        self._gather_operands(instr.operands)
        if instr.opcode in _TEXTURE_STATE_OPCODES:
            return
        fetch_constant = instr.fetch_constant_index
        if fetch_constant is None:
            self.emit_error(True, "texture fetch without a texture fetch constant operand")
            return
        # Already reported when the operands were gathered.
        limit = SOURCE_INDEX_LIMITS[InstructionStorageSource.TEXTURE_FETCH_CONSTANT]
        fetch_constant = min(fetch_constant, limit - 1)
        key = (fetch_constant, instr.dimension)
        if key in self._texture_keys:
            return
        self._texture_keys.add(key)
        self._texture_bindings.append(
            TextureBinding(
                binding_index=len(self._texture_bindings),
                fetch_constant=fetch_constant,
                fetch_instr=instr,
            )
        )

    def _gather_alu(self, instr: ParsedAluInstruction) -> None:
        self._gather_operands(instr.vector_operands)
        self._gather_operands(instr.scalar_operands)
        self._gather_result(instr.vector_and_constant_result)
        self._gather_result(instr.scalar_result)
        if (
            instr.vector_opcode in ALU_VECTOR_KILL_OPCODES
            or instr.scalar_opcode in ALU_SCALAR_KILL_OPCODES
        ):
            self._uses_kill = True
        stream_constant = instr.get_mem_export_stream_constant()
        if stream_constant is not None and stream_constant not in self._memexport_stream_constants:
            self._memexport_stream_constants.append(stream_constant)

    # ------------------------------------------------------------------
    # commit
    # ------------------------------------------------------------------
    def _constant_register_map(self) -> ConstantRegisterMap:
        if self._float_dynamic_addressing:
            float_bitmap = ConstantBitmap.full(FLOAT_CONSTANT_WINDOW)
        else:
            float_bitmap = ConstantBitmap.from_indices(FLOAT_CONSTANT_WINDOW, self._float_indices)
        return ConstantRegisterMap(
            float_bitmap=float_bitmap,
            loop_bitmap=ConstantBitmap.from_indices(LOOP_CONSTANT_COUNT, self._loop_indices),
            bool_bitmap=ConstantBitmap.from_indices(BOOL_CONSTANT_COUNT, self._bool_indices),
            float_dynamic_addressing=self._float_dynamic_addressing,
        )

    def _build_result(self, translated_binary: bytes) -> TranslationResult:
        shader = self.shader
        observations = EarlyZObservations(
            shader_type=shader.type,
            writes_depth=self._writes_depth,
            writes_memexport=self._writes_memexport,
            uses_kill=self._uses_kill,
        )
        has_fatal = any(error.is_fatal for error in self._errors)
        return TranslationResult(
            vertex_bindings=tuple(binding.build() for binding in self._vertex_bindings.values()),
            texture_bindings=tuple(self._texture_bindings),
            constant_register_map=self._constant_register_map(),
            memexport_stream_constants=tuple(self._memexport_stream_constants),
            writes_color_targets=tuple(self._writes_color_targets),
            writes_depth=self._writes_depth,
            implicit_early_z_allowed=bool(self.settings.early_z_policy(observations)),
            host_vertex_shader_type=self.settings.host_vertex_shader_type,
            errors=tuple(self._errors),
            is_valid=not has_fatal and not self._output_incorrect,
            ucode_disassembly=self._listing.text,
            translated_binary=translated_binary,
            host_disassembly=self.host_disassembly,
            host_error_log=self.host_error_log,
            host_binary=bytes(self.host_binary),
        )


class ListingTranslator(ShaderTranslator):
    """Translator whose output is the canonical microcode listing itself."""

    def complete_translation(self) -> bytes:
        return self.ucode_disassembly.encode("utf-8")


__all__ = [
    "DWORDS_PER_INSTRUCTION",
    "EarlyZObservations",
    "EarlyZPolicy",
    "default_early_z_policy",
    "TranslatorSettings",
    "ShaderTranslator",
    "ListingTranslator",
]
