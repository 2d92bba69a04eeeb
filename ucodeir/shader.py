"""The shader aggregate owning microcode and its translated metadata."""

from __future__ import annotations

import hashlib
import struct
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Optional, Sequence, Tuple

from .constant_map import ConstantRegisterMap
from .constants import SHADER_TYPE_EXTENSIONS, HostVertexShaderType, ShaderType
from .ir.model import ParsedTextureFetchInstruction, ParsedVertexFetchInstruction


class ShaderStateError(RuntimeError):
    """Raised when a shader is used out of its lifecycle order."""


@dataclass(frozen=True)
class ShaderError:
    """A diagnostic produced while translating a shader."""

    is_fatal: bool
    message: str

    def describe(self) -> str:
        severity = "fatal" if self.is_fatal else "warning"
        return f"{severity}: {self.message}"


@dataclass(frozen=True)
class VertexBindingAttribute:
    # Attribute index, 0-based in the entire shader.
    attrib_index: int
    fetch_instr: ParsedVertexFetchInstruction
    size_words: int


@dataclass(frozen=True)
class VertexBinding:
    binding_index: int
    # Vertex fetch constant index [0-95].
    fetch_constant: int
    stride_words: int
    attributes: Tuple[VertexBindingAttribute, ...] = ()


@dataclass(frozen=True)
class TextureBinding:
    binding_index: int
    # Texture fetch constant index [0-31].
    fetch_constant: int
    fetch_instr: ParsedTextureFetchInstruction


@dataclass(frozen=True)
class TranslationResult:
    """Everything a translation pass hands over to :class:`Shader` at once."""

    vertex_bindings: Tuple[VertexBinding, ...] = ()
    texture_bindings: Tuple[TextureBinding, ...] = ()
    constant_register_map: ConstantRegisterMap = field(default_factory=ConstantRegisterMap)
    memexport_stream_constants: Tuple[int, ...] = ()
    writes_color_targets: Tuple[bool, bool, bool, bool] = (False, False, False, False)
    writes_depth: bool = False
    implicit_early_z_allowed: bool = True
    host_vertex_shader_type: HostVertexShaderType = HostVertexShaderType.VERTEX
    errors: Tuple[ShaderError, ...] = ()
    is_valid: bool = False
    ucode_disassembly: str = ""
    translated_binary: bytes = b""
    host_disassembly: str = ""
    host_error_log: str = ""
    host_binary: bytes = b""


def compute_ucode_hash(ucode_dwords: Sequence[int]) -> int:
    """Return a 64-bit content hash of the microcode words."""

    digest = hashlib.blake2b(_pack_words(ucode_dwords), digest_size=8).digest()
    return int.from_bytes(digest, "little")


def _pack_words(ucode_dwords: Sequence[int]) -> bytes:
    return struct.pack(f"={len(ucode_dwords)}I", *ucode_dwords)


def _write_file(path: Path, data: bytes) -> None:
    path.write_bytes(data)


class Shader:
    """Microcode of one shader plus what translation learned about it.

    A shader starts untranslated with empty metadata.  A single translation
    pass (see :class:`ucodeir.translator.ShaderTranslator`) commits all derived
    data at once, after which the object no longer changes and can be shared
    between readers.  Shaders are identified by their microcode hash.
    """

    def __init__(
        self,
        shader_type: ShaderType,
        ucode_data_hash: int,
        ucode_dwords: Sequence[int],
    ) -> None:
        if not ucode_dwords:
            raise ValueError("shader microcode must not be empty")
        for word in ucode_dwords:
            if not 0 <= word <= 0xFFFFFFFF:
                raise ValueError(f"microcode word {word!r} is not a 32-bit value")
        self._shader_type = ShaderType(shader_type)
        self._ucode_data: Tuple[int, ...] = tuple(ucode_dwords)
        self._ucode_data_hash = ucode_data_hash
        self._translation: Optional[TranslationResult] = None

    @classmethod
    def from_ucode(cls, shader_type: ShaderType, ucode_dwords: Sequence[int]) -> "Shader":
        return cls(shader_type, compute_ucode_hash(ucode_dwords), ucode_dwords)

    def __repr__(self) -> str:
        state = "translated" if self.is_translated else "untranslated"
        return (
            f"Shader({self._shader_type.name.lower()}, hash={self._ucode_data_hash:016X}, "
            f"dwords={len(self._ucode_data)}, {state})"
        )

    # ------------------------------------------------------------------
    # microcode
    # ------------------------------------------------------------------
    @property
    def type(self) -> ShaderType:
        return self._shader_type

    @property
    def ucode_data(self) -> Tuple[int, ...]:
        return self._ucode_data

    @property
    def ucode_data_hash(self) -> int:
        return self._ucode_data_hash

    @property
    def ucode_dword_count(self) -> int:
        return len(self._ucode_data)

    # ------------------------------------------------------------------
    # lifecycle
    # ------------------------------------------------------------------
    @property
    def is_translated(self) -> bool:
        return self._translation is not None

    @property
    def is_valid(self) -> bool:
        return self._translation is not None and self._translation.is_valid

    def _commit_translation(self, result: TranslationResult) -> None:
        if self._translation is not None:
            raise ShaderStateError(f"{self!r} has already been translated")
        self._translation = result

    def _translated(self) -> TranslationResult:
        if self._translation is None:
            raise ShaderStateError(f"{self!r} has not been translated yet")
        return self._translation

    # ------------------------------------------------------------------
    # translated outputs
    # ------------------------------------------------------------------
    @property
    def errors(self) -> Tuple[ShaderError, ...]:
        if self._translation is None:
            return ()
        return self._translation.errors

    @property
    def host_vertex_shader_type(self) -> HostVertexShaderType:
        return self._translated().host_vertex_shader_type

    @property
    def vertex_bindings(self) -> Tuple[VertexBinding, ...]:
        return self._translated().vertex_bindings

    @property
    def texture_bindings(self) -> Tuple[TextureBinding, ...]:
        return self._translated().texture_bindings

    @property
    def constant_register_map(self) -> ConstantRegisterMap:
        return self._translated().constant_register_map

    @property
    def memexport_stream_constants(self) -> Tuple[int, ...]:
        return self._translated().memexport_stream_constants

    def writes_color_target(self, index: int) -> bool:
        if not 0 <= index < 4:
            return False
        return self._translated().writes_color_targets[index]

    @property
    def writes_depth(self) -> bool:
        return self._translated().writes_depth

    @property
    def implicit_early_z_allowed(self) -> bool:
        return self._translated().implicit_early_z_allowed

    @property
    def ucode_disassembly(self) -> str:
        return self._translated().ucode_disassembly

    @property
    def translated_binary(self) -> bytes:
        return self._translated().translated_binary

    def get_translated_binary_string(self) -> str:
        """Translated output as text; only meaningful for textual targets."""

        return self.translated_binary.decode("utf-8", "replace")

    @property
    def host_disassembly(self) -> str:
        return self._translated().host_disassembly

    @property
    def host_error_log(self) -> str:
        return self._translated().host_error_log

    @property
    def host_binary(self) -> bytes:
        return self._translated().host_binary

    # ------------------------------------------------------------------
    # dumping
    # ------------------------------------------------------------------
    def dump_paths(self, base_path: Path, path_prefix: str) -> Tuple[Path, Path]:
        extension = SHADER_TYPE_EXTENSIONS[self._shader_type]
        stem = f"{path_prefix}_shader_{self._ucode_data_hash:016X}"
        return (
            Path(base_path) / f"{stem}.{extension}",
            Path(base_path) / f"{stem}.bin.{extension}",
        )

    def dump(
        self,
        base_path: Path,
        path_prefix: str,
        *,
        writer: Optional[Callable[[Path, bytes], None]] = None,
    ) -> Tuple[Path, Path]:
        """Persist the translated output and the raw microcode.

        The files are named after the microcode hash.  Returns the path of the
        translated output followed by the path of the microcode binary.  An
        untranslated shader dumps an empty translated file.
        """

        write = writer or _write_file
        text_path, binary_path = self.dump_paths(base_path, path_prefix)
        translated = self._translation.translated_binary if self._translation else b""
        write(text_path, translated)
        write(binary_path, _pack_words(self._ucode_data))
        return text_path, binary_path


__all__ = [
    "ShaderStateError",
    "ShaderError",
    "VertexBindingAttribute",
    "VertexBinding",
    "TextureBinding",
    "TranslationResult",
    "compute_ucode_hash",
    "Shader",
]
