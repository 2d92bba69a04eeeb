"""Public exports for the parsed microcode representation."""

from .model import (
    BoolConstantCondition,
    LoopConstant,
    ParsedAllocInstruction,
    ParsedAluInstruction,
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
    UNCONDITIONAL,
    Unconditional,
    VertexFetchAttributes,
)
from .parser import UcodeListingParser, UcodeSyntaxError, parse_listing
from .printer import UcodeListing, UcodeTextRenderer, disassemble, render_listing

__all__ = [
    "Unconditional",
    "UNCONDITIONAL",
    "BoolConstantCondition",
    "PredicateCondition",
    "ParsedExecInstruction",
    "LoopConstant",
    "ParsedLoopStartInstruction",
    "ParsedLoopEndInstruction",
    "ParsedCallInstruction",
    "ParsedReturnInstruction",
    "ParsedJumpInstruction",
    "ParsedAllocInstruction",
    "VertexFetchAttributes",
    "ParsedVertexFetchInstruction",
    "TextureFetchAttributes",
    "ParsedTextureFetchInstruction",
    "ParsedAluInstruction",
    "ParsedInstruction",
    "disassemble",
    "render_listing",
    "UcodeListing",
    "UcodeTextRenderer",
    "UcodeListingParser",
    "UcodeSyntaxError",
    "parse_listing",
]
