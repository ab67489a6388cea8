"""Preset rules parsing.

A rules file is INI text with a ``[default]`` section listing every
variable a patch template may reference, and any number of ``[Preset]``
sections. Each preset names a ``category`` and a ``name`` and either
carries its own ``$``-prefixed values or reuses the shared defaults
(when it has a ``default`` key or no values of its own).

Example:
    [default]
    $fps:int = 30
    $delta = 1/30

    [Preset]
    category = FPS Limit
    name = 30 FPS (default)
    default = 1

    [Preset]
    category = FPS Limit
    name = 60 FPS
    $fps:int = 60
    $delta = 1/60
"""

from __future__ import annotations

import configparser
import logging
import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType

from rpxpatch.errors import ConfigError, PatchIOError
from rpxpatch.ini import IniMap, parse_ini
from rpxpatch.presets.values import (
    VARIABLE_MARKER,
    Number,
    resolve_values,
    strip_marker,
)

logger = logging.getLogger(__name__)

PRESET_HEADER = "[Preset]"
DEFAULTS_SECTION = "default"
# Every disambiguated "[PresetN]" header contains this.
PRESET_SECTION_TAG = "reset"


@dataclass(frozen=True)
class Preset:
    """A named, categorized bundle of variable values."""

    name: str
    category: str
    values: Mapping[str, Number]

    def to_dict(self) -> dict:
        return {"name": self.name, "category": self.category, "values": dict(self.values)}


@dataclass
class RulesDocument:
    """Variable catalogue plus presets grouped by category."""

    source_path: str
    variables: list[str] = field(default_factory=list)
    defaults: Mapping[str, Number] = field(default_factory=dict)
    categories: dict[str, list[Preset]] = field(default_factory=dict)

    @property
    def is_empty(self) -> bool:
        return not self.categories

    def find(self, category: str, name: str) -> Preset:
        """Look up a preset by category and name."""
        if category not in self.categories:
            raise ConfigError(f"Unknown preset category: {category}", code="UnknownCategory")
        for preset in self.categories[category]:
            if preset.name == name:
                return preset
        raise ConfigError(f"No preset named {name!r} in {category}", code="UnknownPreset")

    def select(self, choices: Mapping[str, str]) -> dict[str, Number]:
        """Build a substitution map from ``category -> preset name`` choices.

        Chosen presets are merged in category order over the shared
        defaults, later categories overriding earlier ones. An empty
        ``choices`` yields the defaults alone.
        """
        for category in choices:
            if category not in self.categories:
                raise ConfigError(f"Unknown preset category: {category}", code="UnknownCategory")

        merged = dict(self.defaults)
        for category in self.categories:
            if category in choices:
                merged.update(self.find(category, choices[category]).values)
        return merged

    def to_dict(self) -> dict:
        return {
            "path": self.source_path,
            "vars": list(self.variables),
            "categories": {
                category: [p.to_dict() for p in presets]
                for category, presets in self.categories.items()
            },
        }


def disambiguate_presets(text: str) -> str:
    """Number each bare ``[Preset]`` header so section names are unique.

    The first header becomes ``[Preset1]``, the second ``[Preset2]`` and
    so on. Nothing else in the text changes.
    """
    counter = 0

    def _number(_match: re.Match) -> str:
        nonlocal counter
        counter += 1
        return f"[Preset{counter}]"

    return re.sub(re.escape(PRESET_HEADER), _number, text)


def _find_ci(mapping: Mapping, key: str) -> str | None:
    """Return the actual key in ``mapping`` equal to ``key`` ignoring case."""
    for candidate in mapping:
        if candidate.lower() == key:
            return candidate
    return None


def _required(section: Mapping[str, str | None], key: str, label: str) -> str:
    actual = _find_ci(section, key)
    if actual is None:
        raise ConfigError(f"Preset missing {key} field", code=f"Missing{label}")
    value = section[actual]
    if not value:
        raise ConfigError(f"Preset {key} empty", code=f"Empty{label}")
    return value


def build_rules(ini: IniMap, source_path: str) -> RulesDocument:
    """Build a RulesDocument from an already-parsed rules map."""
    defaults_name = _find_ci(ini, DEFAULTS_SECTION)
    if defaults_name is None:
        raise ConfigError("No preset defaults found", code="MissingDefaults")
    defaults = ini[defaults_name]

    rules = RulesDocument(
        source_path=source_path,
        variables=[strip_marker(key) for key in defaults],
        defaults=MappingProxyType(resolve_values(defaults)),
    )

    for section_name, section in ini.items():
        if PRESET_SECTION_TAG not in section_name.lower():
            continue
        category = _required(section, "category", "Category")
        name = _required(section, "name", "Name")

        own = {k: v for k, v in section.items() if VARIABLE_MARKER in k}
        if _find_ci(section, "default") is not None or not own:
            values = rules.defaults
        else:
            values = MappingProxyType(resolve_values(own))

        rules.categories.setdefault(category, []).append(
            Preset(name=name, category=category, values=values)
        )

    logger.info(
        "Parsed %d presets in %d categories from %s",
        sum(len(p) for p in rules.categories.values()),
        len(rules.categories),
        source_path,
    )
    return rules


def parse_rules_text(text: str, source_path: str = "<string>") -> RulesDocument:
    """Parse rules text into a RulesDocument.

    Text without any ``[Preset]`` header yields an empty document.
    """
    text = disambiguate_presets(text)
    if "[Preset" not in text:
        logger.info("No presets defined in %s", source_path)
        return RulesDocument(source_path=source_path)

    try:
        ini = parse_ini(text, source=source_path)
    except configparser.Error as e:
        raise ConfigError(f"Invalid rules file {source_path}: {e}", code="InvalidRules") from e
    return build_rules(ini, source_path)


def parse_rules(path: Path) -> RulesDocument:
    """Read and parse a rules file."""
    try:
        text = Path(path).read_text(encoding="utf-8")
    except OSError as e:
        raise PatchIOError(f"Failed to read rules file {path}: {e}") from e
    return parse_rules_text(text, source_path=str(path).replace("\\", "/"))
