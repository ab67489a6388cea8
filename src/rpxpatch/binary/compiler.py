"""Compiling Cemu-style patch templates into opcode patches.

A graphic pack directory holds a ``patches.txt``-like file::

    [FPS_V150]
    moduleMatches = 0x6267BFD0
    0x02D90790 = li r3, $fps
    0x02D907A0 = fmuls f1, f1, f13

Compilation runs in two stages: preset values are substituted into the
raw text, then the text is parsed and each address line is assembled.
Substitution is plain text replacement over the whole file, so a
variable name that also appears elsewhere in the file is replaced there
too.
"""

from __future__ import annotations

import configparser
import json
import logging
import re
from collections.abc import Mapping
from pathlib import Path

from rpxpatch.binary.assembler import Assembler, normalize_registers
from rpxpatch.binary.patcher import OPCODE_SIZE, Patch
from rpxpatch.config import DEFAULT_TARGET, TargetProfile
from rpxpatch.errors import (
    AddressError,
    AssemblyError,
    ConfigError,
    PatchIOError,
    UnsupportedFeatureError,
)
from rpxpatch.ini import IniMap, parse_ini
from rpxpatch.presets.values import Number, strip_marker

logger = logging.getLogger(__name__)

PATCH_FILE_PREFIX = "patch"
MODULE_KEY = "modulematches"
CODE_CAVE_DIRECTIVES = ("codecave", "codeCave")

# "0x02D452A0 = _fpsHook:" followed by a line break declares a label.
_LABEL_DECLARATION = re.compile(r"(0x[0-9a-fA-F]+) *= *(.+):\r*\n")
_VARIABLE_REFERENCE = re.compile(r"\$\w+")


def find_patch_file(pack_dir: Path) -> Path:
    """Find the patch template in a graphic pack directory."""
    try:
        candidates = sorted(
            p for p in pack_dir.iterdir() if p.is_file() and p.name.startswith(PATCH_FILE_PREFIX)
        )
    except OSError as e:
        raise PatchIOError(f"Failed to list {pack_dir}: {e}") from e
    if not candidates:
        raise ConfigError(f"No patch file found in {pack_dir}", code="NoPatchFile")
    return candidates[0]


def substitute_variables(text: str, substitutions: Mapping[str, Number]) -> str:
    """Replace every occurrence of each variable with its JSON rendering."""
    for key, value in substitutions.items():
        text = text.replace(strip_marker(key), json.dumps(value))
    return text


def resolve_labels(text: str) -> str:
    """Inline label declarations.

    Each ``ADDRESS = LABEL:`` line is removed and every remaining
    occurrence of LABEL is replaced with ADDRESS.
    """
    for match in _LABEL_DECLARATION.finditer(text):
        address, label = match.group(1), match.group(2)
        text = text.replace(match.group(0), "")
        text = text.replace(label, address)
    return text


def _module_ids(value: str | None) -> list[str]:
    if not value:
        return []
    return [part.strip().lower() for part in value.split(",") if part.strip()]


def select_module_section(ini: IniMap, module_id: str) -> tuple[str, dict[str, str | None]]:
    """Return the section whose ``moduleMatches`` lists ``module_id``."""
    wanted = module_id.lower()
    for name, section in ini.items():
        for key, value in section.items():
            if key.lower() == MODULE_KEY and wanted in _module_ids(value):
                return name, section
    raise ConfigError(f"No section matches module {module_id}", code="ModuleMismatch")


def parse_address(text: str) -> int:
    """Parse a ``0x``-prefixed hex address."""
    try:
        address = int(text, 16)
    except ValueError:
        raise AddressError(f"Bad address {text}", code="BadAddress") from None
    if not 0 <= address <= 0xFFFFFFFF:
        raise AddressError(f"Bad address {text}: out of 32-bit range", code="BadAddress")
    return address


class PatchCompiler:
    """Turns a graphic pack's patch template into a list of Patches.

    Usage:
        compiler = PatchCompiler(KeystoneAssembler())
        patches = compiler.compile(Path("graphicPacks/FPS++"), {"$fps": 60})
    """

    def __init__(self, assembler: Assembler, target: TargetProfile = DEFAULT_TARGET):
        self.assembler = assembler
        self.target = target

    def assemble(self, address: int, instruction: str) -> Patch:
        """Assemble one instruction at ``address`` into a Patch."""
        opcode = self.assembler.assemble(normalize_registers(instruction), address)
        if len(opcode) != OPCODE_SIZE:
            raise AssemblyError(
                address, f"{instruction!r} encodes to {len(opcode)} bytes, expected {OPCODE_SIZE}"
            )
        return Patch(address=address, opcode=opcode)

    def compile_text(
        self,
        text: str,
        substitutions: Mapping[str, Number] | None = None,
        source: str = "<string>",
    ) -> list[Patch]:
        """Compile template text. Patches keep the order they are declared in."""
        if any(directive in text for directive in CODE_CAVE_DIRECTIVES):
            raise UnsupportedFeatureError("Code cave patches are not supported")

        if substitutions:
            text = substitute_variables(text, substitutions)
        text = resolve_labels(text)

        try:
            ini = parse_ini(text, source=source)
        except configparser.Error as e:
            raise ConfigError(f"Invalid patch file {source}: {e}", code="InvalidTemplate") from e

        section_name, section = select_module_section(ini, self.target.module_id)
        logger.debug("Using section [%s] from %s", section_name, source)

        instructions = {
            key: instruction
            for key, instruction in section.items()
            if key.startswith("0x") and instruction
        }
        unresolved = sorted(
            {name for text in instructions.values() for name in _VARIABLE_REFERENCE.findall(text)}
        )
        if unresolved:
            raise ConfigError(
                f"No value for variables referenced in {source}: {', '.join(unresolved)}",
                code="UnresolvedVariable",
            )

        patches = [
            self.assemble(parse_address(key), instruction)
            for key, instruction in instructions.items()
        ]
        logger.info("Compiled %d patches from %s", len(patches), source)
        return patches

    def compile(
        self,
        pack_dir: Path,
        substitutions: Mapping[str, Number] | None = None,
    ) -> list[Patch]:
        """Compile the patch file in ``pack_dir``.

        ``pack_dir`` may also be a file inside the pack (e.g. its rules.txt).
        """
        if not pack_dir.is_dir():
            pack_dir = pack_dir.parent
        patch_file = find_patch_file(pack_dir)
        try:
            text = patch_file.read_text(encoding="utf-8")
        except OSError as e:
            raise PatchIOError(f"Failed to read {patch_file}: {e}") from e
        return self.compile_text(text, substitutions, source=str(patch_file))
