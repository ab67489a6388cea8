"""Applying compiled patches to the RPX image.

The RPX is decompressed once into a cached ELF, patched in memory, and
recompressed to the destination:

- Cache: the decompressed ELF is reused across runs when present
- All-or-nothing: every offset is bounds-checked before any byte changes
- Order: patches are written in list order, so a later patch at the same
  offset wins
"""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from pathlib import Path

from rpxpatch.binary.codec import ImageCodec
from rpxpatch.config import DEFAULT_TARGET, TargetProfile
from rpxpatch.errors import AddressError, ConfigError, PatchError, PatchIOError

logger = logging.getLogger(__name__)

OPCODE_SIZE = 4


@dataclass(frozen=True)
class Patch:
    """One 4-byte instruction written at a logical address."""

    address: int
    opcode: bytes

    def __post_init__(self):
        if len(self.opcode) != OPCODE_SIZE:
            raise ValueError(
                f"Opcode at 0x{self.address:08X} must be {OPCODE_SIZE} bytes, "
                f"got {len(self.opcode)}"
            )
        if not 0 <= self.address <= 0xFFFFFFFF:
            raise ValueError(f"Address out of u32 range: {self.address:#x}")

    def to_dict(self) -> dict:
        return {"address": self.address, "opcode": self.opcode.hex()}

    @classmethod
    def from_dict(cls, d: dict) -> Patch:
        return cls(address=d["address"], opcode=bytes.fromhex(d["opcode"]))


@dataclass
class PatchResult:
    """Result of applying a patch list."""

    output_path: Path
    patches_applied: int
    used_cache: bool


def save_patch_list(patches: Sequence[Patch], path: Path) -> None:
    """Save a patch list to a JSON file."""
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps([p.to_dict() for p in patches], indent=2) + "\n")


def load_patch_list(path: Path) -> list[Patch]:
    """Load a patch list saved by save_patch_list."""
    try:
        data = json.loads(path.read_text())
    except OSError as e:
        raise PatchIOError(f"Failed to read patch list {path}: {e}") from e
    except json.JSONDecodeError as e:
        raise ConfigError(f"Invalid patch list {path}: {e}", code="InvalidPatchList") from e
    try:
        return [Patch.from_dict(d) for d in data]
    except (KeyError, TypeError, ValueError) as e:
        raise ConfigError(f"Invalid patch entry in {path}: {e}", code="InvalidPatchList") from e


def apply_to_image(
    image: bytearray,
    patches: Iterable[Patch],
    target: TargetProfile = DEFAULT_TARGET,
) -> int:
    """Overwrite opcodes in ``image`` at each patch's physical offset.

    Raises AddressError before touching the image if any patch falls
    outside it. Returns the number of patches written.
    """
    placed: list[tuple[int, Patch]] = []
    for patch in patches:
        offset = target.physical_offset(patch.address)
        if offset < 0 or offset + OPCODE_SIZE > len(image):
            raise AddressError(
                f"Patch at 0x{patch.address:08X} maps to offset 0x{offset:X}, "
                f"outside image of {len(image)} bytes",
                code="OutOfBounds",
            )
        placed.append((offset, patch))

    for offset, patch in placed:
        image[offset : offset + OPCODE_SIZE] = patch.opcode
        logger.debug(
            "Wrote %s at 0x%X (address 0x%08X)", patch.opcode.hex(), offset, patch.address
        )
    return len(placed)


class PatchApplier:
    """Decompresses, patches and recompresses an RPX image.

    Usage:
        applier = PatchApplier(WiiuRpxTool(tool_path), cache_path=Path.home() / "U-King.elf")
        applier.apply(Path("U-King.rpx"), Path("out/U-King.rpx"), patches)
    """

    TEMP_NAME = "U-King.tmp.elf"

    def __init__(
        self,
        codec: ImageCodec,
        cache_path: Path,
        target: TargetProfile = DEFAULT_TARGET,
    ):
        self.codec = codec
        self.cache_path = cache_path
        self.target = target

    def ensure_decompressed(self, input_path: Path) -> bool:
        """Decompress ``input_path`` into the cache unless already there.

        Returns True when the cached image was reused.
        """
        if self.cache_path.exists():
            logger.info("Using cached decompressed image: %s", self.cache_path)
            return True
        logger.info("Decompressing %s -> %s", input_path, self.cache_path)
        # The cache only ever holds a complete image.
        partial = self.cache_path.with_name(self.cache_path.name + ".part")
        try:
            self.codec.decompress(input_path, partial)
            partial.replace(self.cache_path)
        except OSError as e:
            partial.unlink(missing_ok=True)
            raise PatchIOError(f"Failed to cache decompressed image: {e}") from e
        except PatchError:
            partial.unlink(missing_ok=True)
            raise
        return False

    def apply(self, input_path: Path, output_path: Path, patches: Sequence[Patch]) -> PatchResult:
        """Apply ``patches`` to ``input_path`` and write the result to ``output_path``."""
        if not input_path.exists():
            raise PatchIOError(f"Input RPX does not exist: {input_path}", code="SourceMissing")

        used_cache = self.ensure_decompressed(input_path)
        try:
            image = bytearray(self.cache_path.read_bytes())
        except OSError as e:
            raise PatchIOError(f"Failed to read decompressed image: {e}") from e

        applied = apply_to_image(image, patches, self.target)
        logger.info("Applied %d patches", applied)

        self._compress(bytes(image), output_path)
        return PatchResult(output_path=output_path, patches_applied=applied, used_cache=used_cache)

    def _compress(self, data: bytes, output_path: Path) -> None:
        tmp_path = output_path.with_name(self.TEMP_NAME)
        try:
            tmp_path.write_bytes(data)
        except OSError as e:
            raise PatchIOError(f"Failed to save new RPX: {e}") from e

        try:
            self.codec.compress(tmp_path, output_path)
            logger.info("Wrote %s", output_path)
        finally:
            try:
                tmp_path.unlink(missing_ok=True)
            except OSError as e:
                logger.warning("Failed to delete temp file %s: %s", tmp_path, e)
