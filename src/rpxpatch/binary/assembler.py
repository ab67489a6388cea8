"""PowerPC assembly of single patch instructions.

Patch templates write registers as ``r3`` / ``f1``; keystone's PPC
backend expects bare register numbers, so templates are passed through
normalize_registers before they reach an Assembler.
"""

from __future__ import annotations

import logging
import re
from typing import Protocol

from rpxpatch.errors import AssemblyError

logger = logging.getLogger(__name__)

_REGISTER_ALIAS = re.compile(r"\b[rf](\d{1,2})\b")


def normalize_registers(instruction: str) -> str:
    """Rewrite ``rN`` / ``fN`` register tokens to bare ``N``."""
    return _REGISTER_ALIAS.sub(r"\1", instruction)


class Assembler(Protocol):
    """Turns one instruction into machine code at a given address."""

    def assemble(self, instruction: str, address: int) -> bytes:
        """Return the encoded bytes, raising AssemblyError on bad input."""
        ...


class KeystoneAssembler:
    """32-bit big-endian PowerPC assembler backed by keystone."""

    def __init__(self):
        try:
            from keystone import KS_ARCH_PPC, KS_MODE_BIG_ENDIAN, KS_MODE_PPC32, Ks, KsError
        except ImportError:
            raise ImportError(
                "keystone is required for assembling patches. "
                "Install with: pip install keystone-engine"
            )
        self._ks = Ks(KS_ARCH_PPC, KS_MODE_PPC32 | KS_MODE_BIG_ENDIAN)
        self._error_type = KsError

    def assemble(self, instruction: str, address: int) -> bytes:
        try:
            encoding, _count = self._ks.asm(instruction, address)
        except self._error_type as e:
            raise AssemblyError(address, f"{instruction!r}: {e}") from e
        if not encoding:
            raise AssemblyError(address, f"{instruction!r}: no code produced")
        logger.debug("Assembled 0x%08X: %s -> %s", address, instruction, bytes(encoding).hex())
        return bytes(encoding)
