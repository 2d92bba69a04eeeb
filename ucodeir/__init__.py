"""Public package exports for the Xenos shader microcode IR."""

from .constant_map import ConstantBitmap, ConstantRegisterMap
from .constants import HostVertexShaderType, ShaderType
from .ir import UcodeListingParser, UcodeSyntaxError, UcodeTextRenderer, parse_listing
from .shader import (
    Shader,
    ShaderError,
    ShaderStateError,
    TextureBinding,
    VertexBinding,
    VertexBindingAttribute,
    compute_ucode_hash,
)
from .storage import InstructionOperand, InstructionResult
from .swizzle import SwizzleSource
from .translator import (
    ListingTranslator,
    ShaderTranslator,
    TranslatorSettings,
    default_early_z_policy,
)

__all__ = [
    "ShaderType",
    "HostVertexShaderType",
    "SwizzleSource",
    "InstructionResult",
    "InstructionOperand",
    "ConstantBitmap",
    "ConstantRegisterMap",
    "Shader",
    "ShaderError",
    "ShaderStateError",
    "VertexBinding",
    "VertexBindingAttribute",
    "TextureBinding",
    "compute_ucode_hash",
    "ShaderTranslator",
    "ListingTranslator",
    "TranslatorSettings",
    "default_early_z_policy",
    "UcodeListingParser",
    "UcodeSyntaxError",
    "UcodeTextRenderer",
    "parse_listing",
]
