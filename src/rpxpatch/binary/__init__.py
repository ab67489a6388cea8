"""Patch compilation, legacy patch lists, and RPX patching."""

from rpxpatch.binary.assembler import Assembler, KeystoneAssembler
from rpxpatch.binary.codec import ImageCodec, WiiuRpxTool
from rpxpatch.binary.compiler import PatchCompiler
from rpxpatch.binary.hax import decode_hax, encode_hax, read_hax, write_hax
from rpxpatch.binary.patcher import Patch, PatchApplier, PatchResult, apply_to_image

__all__ = [
    "Assembler",
    "ImageCodec",
    "KeystoneAssembler",
    "Patch",
    "PatchApplier",
    "PatchCompiler",
    "PatchResult",
    "WiiuRpxTool",
    "apply_to_image",
    "decode_hax",
    "encode_hax",
    "read_hax",
    "write_hax",
]
