"""Shared fixtures: deterministic assembler and codec fakes."""

from pathlib import Path

import pytest

from rpxpatch.errors import AssemblyError, ExternalToolError

NOP = b"\x60\x00\x00\x00"


class FakeAssembler:
    """Looks instructions up in a table; unknown ones encode as nop."""

    def __init__(self, table: dict[str, bytes] | None = None):
        self.table = table or {}
        self.calls: list[tuple[str, int]] = []

    def assemble(self, instruction: str, address: int) -> bytes:
        self.calls.append((instruction, address))
        if instruction.startswith("bad"):
            raise AssemblyError(address, f"invalid mnemonic in {instruction!r}")
        return self.table.get(instruction, NOP)


class FakeCodec:
    """Copies files instead of running wiiurpxtool."""

    def __init__(self, image: bytes = b"", fail_compress: bool = False):
        self.image = image
        self.fail_compress = fail_compress
        self.calls: list[tuple[str, Path, Path]] = []
        self.compressed: bytes | None = None

    def decompress(self, input_path: Path, output_path: Path) -> None:
        self.calls.append(("decompress", input_path, output_path))
        output_path.write_bytes(self.image)

    def compress(self, input_path: Path, output_path: Path) -> None:
        self.calls.append(("compress", input_path, output_path))
        if self.fail_compress:
            raise ExternalToolError("wiiurpxtool", "compression failed")
        self.compressed = input_path.read_bytes()
        output_path.write_bytes(b"RPX" + self.compressed)


@pytest.fixture
def fake_assembler():
    return FakeAssembler()


@pytest.fixture
def fake_codec():
    # 0x48B5E0 is where logical 0x2000000 lands; leave room for a few patches.
    return FakeCodec(image=bytes(0x48B5E0 + 0x100))
