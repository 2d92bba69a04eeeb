import struct
import subprocess
import sys
from pathlib import Path


SCRIPT = Path(__file__).resolve().parents[1] / "ucode_listing.py"

LISTING = (
    "      alloc colors, Size=1  // dword=0\n"
    "      exece  // dword=0 addr=1 cnt=2 seq=0x0\n"
    "      tfetch2D r1, r0.xy, tf2\n"
    "      mul oC0, r1, c4\n"
    "    + rcp r2.x___, c7.w\n"
)


def _write_inputs(base: Path) -> tuple:
    listing_path = base / "sample.frag"
    listing_path.write_text(LISTING, "utf-8")
    ucode_path = base / "sample.bin"
    ucode_path.write_bytes(struct.pack("=9I", *range(9)))
    return listing_path, ucode_path


def _run(*args, check=True):
    return subprocess.run(
        [sys.executable, str(SCRIPT), *map(str, args)],
        check=check,
        capture_output=True,
        text=True,
    )


def test_cli_translates_listing(tmp_path: Path) -> None:
    listing_path, ucode_path = _write_inputs(tmp_path)
    dump_dir = tmp_path / "dump"

    result = _run(listing_path, ucode_path, "--dump-dir", dump_dir)

    canonical_path = listing_path.with_suffix(".canonical.txt")
    assert f"listing written to {canonical_path}" in result.stdout
    assert canonical_path.read_text("utf-8") == LISTING
    assert "(pixel, 9 dwords)" in result.stdout
    assert "valid: True" in result.stdout
    assert "float constants: 2" in result.stdout
    assert "texture bindings: 1" in result.stdout
    assert "color targets: 1000" in result.stdout

    dumped = sorted(path.name for path in dump_dir.iterdir())
    assert len(dumped) == 2
    assert dumped[0].startswith("ucode_shader_")
    assert dumped[0].endswith(".bin.frag")
    assert dumped[1].endswith(".frag")
    binary = next(dump_dir.glob("*.bin.frag"))
    assert binary.read_bytes() == ucode_path.read_bytes()


def test_cli_reports_invalid_exec(tmp_path: Path) -> None:
    listing_path, ucode_path = _write_inputs(tmp_path)
    ucode_path.write_bytes(struct.pack("=3I", 0, 0, 0))
    listing_out = tmp_path / "out.txt"

    result = _run(listing_path, ucode_path, "--shader-type", "pixel", "--listing-out", listing_out)

    assert listing_out.exists()
    assert "valid: False" in result.stdout
    assert "fatal:" in result.stdout


def test_cli_rejects_malformed_listing(tmp_path: Path) -> None:
    listing_path, ucode_path = _write_inputs(tmp_path)
    listing_path.write_text("      exec\n      bogus r0\n", "utf-8")

    result = _run(listing_path, ucode_path, check=False)

    assert result.returncode != 0
    assert "line 2" in result.stderr


def test_cli_rejects_truncated_microcode(tmp_path: Path) -> None:
    listing_path, ucode_path = _write_inputs(tmp_path)
    ucode_path.write_bytes(b"\x00\x01\x02")

    result = _run(listing_path, ucode_path, check=False)

    assert result.returncode != 0
    assert "32-bit words" in result.stderr
