"""Preset rules and variable value resolution."""

from rpxpatch.presets.rules import Preset, RulesDocument, parse_rules, parse_rules_text
from rpxpatch.presets.values import evaluate_expression, resolve_value

__all__ = [
    "Preset",
    "RulesDocument",
    "evaluate_expression",
    "parse_rules",
    "parse_rules_text",
    "resolve_value",
]
