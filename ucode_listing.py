#!/usr/bin/env python3
"""Translate a microcode listing against its raw microcode and summarise it."""

from __future__ import annotations

import argparse
import logging
import struct
import time
from pathlib import Path
from typing import Tuple

from ucodeir import (
    ListingTranslator,
    Shader,
    ShaderType,
    UcodeListingParser,
    UcodeSyntaxError,
    UcodeTextRenderer,
    compute_ucode_hash,
)


SHADER_TYPE_CHOICES = {
    "vertex": ShaderType.VERTEX,
    "pixel": ShaderType.PIXEL,
}


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("listing", type=Path, help="Microcode assembly listing")
    parser.add_argument(
        "ucode",
        type=Path,
        help="Raw microcode words (native endianness) the listing was produced from",
    )
    parser.add_argument(
        "--shader-type",
        choices=sorted(SHADER_TYPE_CHOICES),
        default=None,
        help="Shader stage; guessed from a .vert/.frag suffix when omitted",
    )
    parser.add_argument(
        "--listing-out",
        type=Path,
        default=None,
        help="Override the default <listing>.canonical.txt output path",
    )
    parser.add_argument(
        "--dump-dir",
        type=Path,
        default=None,
        help="Also dump the translated shader and its microcode to this directory",
    )
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")
    return parser.parse_args()


def validate_inputs(*paths: Path) -> None:
    for path in paths:
        if not path.exists():
            raise SystemExit(f"missing input file: {path}")


def resolve_shader_type(args: argparse.Namespace) -> ShaderType:
    if args.shader_type:
        return SHADER_TYPE_CHOICES[args.shader_type]
    for path in (args.listing, args.ucode):
        if path.suffix == ".frag":
            return ShaderType.PIXEL
    return ShaderType.VERTEX


def load_ucode(path: Path) -> Tuple[int, ...]:
    data = path.read_bytes()
    if not data or len(data) % 4:
        raise SystemExit(f"{path}: expected a non-empty sequence of 32-bit words")
    return struct.unpack(f"={len(data) // 4}I", data)


def describe_shader(shader: Shader) -> str:
    constants = shader.constant_register_map
    lines = [
        f"shader {shader.ucode_data_hash:016X} ({shader.type.name.lower()}, "
        f"{shader.ucode_dword_count} dwords)",
        f"  valid: {shader.is_valid}",
        f"  float constants: {constants.float_count}"
        + (" (dynamic addressing)" if constants.float_dynamic_addressing else ""),
        f"  bool constants: {constants.bool_bitmap.popcount()}",
        f"  loop constants: {constants.loop_bitmap.popcount()}",
        f"  vertex bindings: {len(shader.vertex_bindings)}",
        f"  texture bindings: {len(shader.texture_bindings)}",
        "  color targets: "
        + "".join("1" if shader.writes_color_target(i) else "0" for i in range(4)),
        f"  writes depth: {shader.writes_depth}",
        f"  early z allowed: {shader.implicit_early_z_allowed}",
    ]
    if shader.memexport_stream_constants:
        streams = ", ".join(f"c{index}" for index in shader.memexport_stream_constants)
        lines.append(f"  memexport streams: {streams}")
    for error in shader.errors:
        lines.append(f"  {error.describe()}")
    return "\n".join(lines)


def main() -> None:
    start_time = time.perf_counter()
    args = parse_args()
    if args.verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(levelname)s %(name)s: %(message)s")
    validate_inputs(args.listing, args.ucode)

    shader_type = resolve_shader_type(args)
    words = load_ucode(args.ucode)
    try:
        instructions = UcodeListingParser(shader_type).parse(args.listing.read_text("utf-8"))
    except UcodeSyntaxError as exc:
        raise SystemExit(f"{args.listing}: {exc}")

    shader = Shader(shader_type, compute_ucode_hash(words), words)
    ListingTranslator().translate(shader, instructions)

    listing_output_path = args.listing_out or args.listing.with_suffix(".canonical.txt")
    UcodeTextRenderer().write(instructions, listing_output_path)
    print(f"listing written to {listing_output_path}")

    if args.dump_dir is not None:
        args.dump_dir.mkdir(parents=True, exist_ok=True)
        text_path, binary_path = shader.dump(args.dump_dir, "ucode")
        print(f"shader dumped to {text_path} and {binary_path}")

    print(describe_shader(shader))

    total_time = time.perf_counter() - start_time
    print(f"total execution time: {total_time:.2f}s")


if __name__ == "__main__":
    main()
