"""Legacy ``.hax`` patch lists.

Big-endian layout::

    u16 count
    count x { u16 size (always 4), u32 address, u8[4] bytes }

Addresses are stored offset by the target's legacy address bias.
"""

from __future__ import annotations

import logging
import struct
from collections.abc import Sequence
from pathlib import Path

from rpxpatch.binary.patcher import OPCODE_SIZE, Patch
from rpxpatch.config import DEFAULT_TARGET, TargetProfile
from rpxpatch.errors import ConfigError, PatchIOError

logger = logging.getLogger(__name__)

_COUNT = struct.Struct(">H")
_RECORD = struct.Struct(">HI4s")


def decode_hax(data: bytes, target: TargetProfile = DEFAULT_TARGET) -> list[Patch]:
    """Decode a legacy patch list into Patches with logical addresses."""
    if len(data) < _COUNT.size:
        raise ConfigError("Patch list is missing its record count", code="MalformedRecord")
    (count,) = _COUNT.unpack_from(data, 0)

    patches: list[Patch] = []
    offset = _COUNT.size
    for index in range(count):
        if offset + _RECORD.size > len(data):
            raise ConfigError(
                f"Patch list truncated at record {index} of {count}", code="MalformedRecord"
            )
        size, address, opcode = _RECORD.unpack_from(data, offset)
        if size != OPCODE_SIZE:
            raise ConfigError(
                f"Record {index} has size {size}, expected {OPCODE_SIZE}", code="MalformedRecord"
            )
        logical = address - target.legacy_address_bias
        if logical < 0:
            raise ConfigError(
                f"Record {index} address 0x{address:08X} is below the legacy base",
                code="MalformedRecord",
            )
        patches.append(Patch(address=logical, opcode=opcode))
        offset += _RECORD.size

    if offset != len(data):
        logger.warning("Ignoring %d trailing bytes in patch list", len(data) - offset)
    return patches


def encode_hax(patches: Sequence[Patch], target: TargetProfile = DEFAULT_TARGET) -> bytes:
    """Encode Patches into the legacy patch-list format."""
    if len(patches) > 0xFFFF:
        raise ConfigError(
            f"Too many patches for a legacy list: {len(patches)}", code="MalformedRecord"
        )
    out = bytearray(_COUNT.pack(len(patches)))
    for patch in patches:
        address = patch.address + target.legacy_address_bias
        if address > 0xFFFFFFFF:
            raise ConfigError(
                f"Address 0x{patch.address:08X} does not fit a legacy record",
                code="MalformedRecord",
            )
        out += _RECORD.pack(OPCODE_SIZE, address, patch.opcode)
    return bytes(out)


def read_hax(path: Path, target: TargetProfile = DEFAULT_TARGET) -> list[Patch]:
    try:
        data = path.read_bytes()
    except OSError as e:
        raise PatchIOError(f"Failed to read patch list {path}: {e}") from e
    patches = decode_hax(data, target)
    logger.info("Read %d patches from %s", len(patches), path)
    return patches


def write_hax(patches: Sequence[Patch], path: Path, target: TargetProfile = DEFAULT_TARGET) -> None:
    data = encode_hax(patches, target)
    try:
        path.write_bytes(data)
    except OSError as e:
        raise PatchIOError(f"Failed to write patch list {path}: {e}") from e
    logger.info("Wrote %d patches to %s", len(patches), path)
