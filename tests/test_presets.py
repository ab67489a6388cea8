"""Tests for preset rules parsing and variable value resolution."""

import math

import pytest

from rpxpatch.errors import ConfigError, PatchIOError
from rpxpatch.presets.rules import (
    RulesDocument,
    disambiguate_presets,
    parse_rules,
    parse_rules_text,
)
from rpxpatch.presets.values import evaluate_expression, resolve_value, strip_marker

FPS_RULES = """\
[Definition]
titleIds = 00050000101C9300
name = FPS++
version = 4

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

[Preset]
category = Frame Average
name = 8 frames
$fps:int = 8
$delta = 0.125
"""


# ============================================================
# Value resolution
# ============================================================


class TestExpressions:
    def test_precedence(self):
        assert evaluate_expression("2+3*4") == 14

    def test_parentheses_and_unary(self):
        assert evaluate_expression("-(2+3)*2") == -10

    def test_power_caret(self):
        assert evaluate_expression("2^10") == 1024

    @pytest.mark.parametrize("text", ["9**9**9", "9^9^9", "10^400"])
    def test_power_overflow_fails_fast(self, text):
        with pytest.raises(ValueError):
            evaluate_expression(text)

    def test_functions_and_constants(self):
        assert evaluate_expression("sqrt(16) + floor(2.7)") == 6
        assert evaluate_expression("2*pi") == pytest.approx(2 * math.pi)

    def test_division_is_float(self):
        assert evaluate_expression("1/4") == 0.25

    @pytest.mark.parametrize("text", ["", "abc", "__import__('os')", "1/0", "2 +", "'x'"])
    def test_rejects_invalid(self, text):
        with pytest.raises(ValueError):
            evaluate_expression(text)


class TestResolveValue:
    def test_literal_int(self):
        assert resolve_value("$a", "42") == ("$a", 42)

    def test_literal_float(self):
        assert resolve_value("$a", "3.5") == ("$a", 3.5)

    def test_expression(self):
        name, value = resolve_value("$a", "2+3*4")
        assert name == "$a"
        assert value == 14
        assert isinstance(value, float)

    def test_int_marker_truncates_literal(self):
        name, value = resolve_value("$fps:int", "3.9")
        assert name == "$fps"
        assert value == 3
        assert isinstance(value, int)

    def test_int_marker_truncates_toward_zero(self):
        assert resolve_value("$a:int", "-3.9") == ("$a", -3)

    def test_int_marker_on_expression(self):
        assert resolve_value("$a:int", "10/4") == ("$a", 2)

    def test_missing_value(self):
        with pytest.raises(ConfigError) as exc:
            resolve_value("$a", None)
        assert exc.value.code == "MissingValue"

    def test_invalid_expression(self):
        with pytest.raises(ConfigError) as exc:
            resolve_value("$a", "sixty")
        assert exc.value.code == "InvalidExpression"

    def test_nan_literal_rejected(self):
        with pytest.raises(ConfigError):
            resolve_value("$a", "NaN")

    @pytest.mark.parametrize("key", ["$a", "$a:int"])
    def test_overflowing_literal_rejected(self, key):
        with pytest.raises(ConfigError) as exc:
            resolve_value(key, "1e400")
        assert exc.value.code == "InvalidExpression"

    def test_huge_power_rejected(self):
        with pytest.raises(ConfigError) as exc:
            resolve_value("$a:int", "9^9^9")
        assert exc.value.code == "InvalidExpression"

    def test_strip_marker(self):
        assert strip_marker("$fps:int") == "$fps"
        assert strip_marker("$delta") == "$delta"


# ============================================================
# Rules parsing
# ============================================================


class TestDisambiguate:
    def test_numbers_headers_positionally(self):
        text = "[Preset]\na=1\n[Preset]\nb=2\n"
        assert disambiguate_presets(text) == "[Preset1]\na=1\n[Preset2]\nb=2\n"

    def test_leaves_other_content(self):
        text = "[default]\n$x = 1\n"
        assert disambiguate_presets(text) == text


class TestParseRules:
    def test_no_presets_is_empty_document(self):
        rules = parse_rules_text("[Definition]\nname = Mod\n", source_path="mod/rules.txt")
        assert rules == RulesDocument(source_path="mod/rules.txt")
        assert rules.is_empty

    def test_no_presets_ignores_missing_defaults(self):
        rules = parse_rules_text("not even ini")
        assert rules.variables == []
        assert rules.categories == {}

    def test_defaults_section_any_case(self):
        text = "[Default]\n$fps = 30\n[Preset]\ncategory = C\nname = P\n$fps = 60\n"
        rules = parse_rules_text(text)
        assert rules.variables == ["$fps"]
        assert rules.categories["C"][0].values == {"$fps": 60}

    def test_preset_keys_any_case(self):
        text = "[Default]\n$fps = 30\n[Preset]\nCategory = C\nName = P\nDefault = 1\n"
        preset = parse_rules_text(text).categories["C"][0]
        assert preset.name == "P"
        assert preset.values == {"$fps": 30}

    def test_variables_in_file_order(self):
        rules = parse_rules_text(FPS_RULES)
        assert rules.variables == ["$fps", "$delta"]

    def test_categories_and_presets_keep_order(self):
        rules = parse_rules_text(FPS_RULES)
        assert list(rules.categories) == ["FPS Limit", "Frame Average"]
        assert [p.name for p in rules.categories["FPS Limit"]] == ["30 FPS (default)", "60 FPS"]

    def test_default_preset_uses_shared_defaults(self):
        rules = parse_rules_text(FPS_RULES)
        preset = rules.categories["FPS Limit"][0]
        assert dict(preset.values) == {"$fps": 30, "$delta": pytest.approx(1 / 30)}

    def test_own_values(self):
        rules = parse_rules_text(FPS_RULES)
        preset = rules.categories["FPS Limit"][1]
        assert preset.category == "FPS Limit"
        assert preset.values["$fps"] == 60
        assert preset.values["$delta"] == pytest.approx(1 / 60)

    def test_preset_without_own_values_inherits_defaults(self):
        text = "[default]\na = 1\nb = 2\n[Preset]\ncategory = C\nname = P\n"
        rules = parse_rules_text(text)
        assert dict(rules.categories["C"][0].values) == {"a": 1, "b": 2}

    def test_default_key_overrides_own_values(self):
        text = "[default]\n$a = 1\n[Preset]\ncategory = C\nname = P\ndefault = 1\n$a = 7\n"
        rules = parse_rules_text(text)
        assert dict(rules.categories["C"][0].values) == {"$a": 1}

    def test_shared_defaults_resolved_once(self):
        rules = parse_rules_text(FPS_RULES + "\n[Preset]\ncategory = X\nname = Y\n")
        assert rules.categories["X"][0].values is rules.categories["FPS Limit"][0].values

    def test_only_dollar_keys_are_values(self):
        text = "[default]\n$a = 1\n[Preset]\ncategory = C\nname = P\n$a = 5\nnote = 9\n"
        rules = parse_rules_text(text)
        assert dict(rules.categories["C"][0].values) == {"$a": 5}

    def test_presets_are_immutable(self):
        rules = parse_rules_text(FPS_RULES)
        with pytest.raises(TypeError):
            rules.categories["FPS Limit"][0].values["$fps"] = 1

    def test_missing_defaults(self):
        with pytest.raises(ConfigError) as exc:
            parse_rules_text("[Preset]\ncategory = C\nname = P\n")
        assert exc.value.code == "MissingDefaults"

    @pytest.mark.parametrize(
        "body, code",
        [
            ("name = P\n", "MissingCategory"),
            ("category =\nname = P\n", "EmptyCategory"),
            ("category = C\n", "MissingName"),
            ("category = C\nname\n", "EmptyName"),
        ],
    )
    def test_required_fields(self, body, code):
        with pytest.raises(ConfigError) as exc:
            parse_rules_text(f"[default]\n$a = 1\n[Preset]\n{body}")
        assert exc.value.code == code

    def test_bad_value_fails_whole_parse(self):
        text = FPS_RULES + "\n[Preset]\ncategory = X\nname = Broken\n$fps:int = fast\n"
        with pytest.raises(ConfigError) as exc:
            parse_rules_text(text)
        assert exc.value.code == "InvalidExpression"

    def test_invalid_ini(self):
        with pytest.raises(ConfigError) as exc:
            parse_rules_text("$a = 1\n[Preset]\n")
        assert exc.value.code == "InvalidRules"

    def test_parse_rules_from_file(self, tmp_path):
        path = tmp_path / "rules.txt"
        path.write_text(FPS_RULES)
        rules = parse_rules(path)
        assert rules.source_path == str(path).replace("\\", "/")
        assert len(rules.categories["FPS Limit"]) == 2

    def test_parse_rules_missing_file(self, tmp_path):
        with pytest.raises(PatchIOError):
            parse_rules(tmp_path / "missing.txt")


class TestSelect:
    def test_merges_in_category_order(self):
        rules = parse_rules_text(FPS_RULES)
        values = rules.select({"Frame Average": "8 frames", "FPS Limit": "60 FPS"})
        # Frame Average comes later in the file, so it wins.
        assert values == {"$fps": 8, "$delta": 0.125}

    def test_single_choice(self):
        rules = parse_rules_text(FPS_RULES)
        assert rules.select({"FPS Limit": "60 FPS"})["$fps"] == 60

    def test_unset_variables_inherit_defaults(self):
        text = "[default]\n$a = 1\n$b = 2\n[Preset]\ncategory = C\nname = P\n$a = 3\n"
        rules = parse_rules_text(text)
        assert rules.select({"C": "P"}) == {"$a": 3, "$b": 2}

    def test_no_choices_gives_defaults(self):
        rules = parse_rules_text(FPS_RULES)
        assert rules.select({}) == {"$fps": 30, "$delta": pytest.approx(1 / 30)}

    def test_unknown_preset(self):
        rules = parse_rules_text(FPS_RULES)
        with pytest.raises(ConfigError) as exc:
            rules.select({"FPS Limit": "144 FPS"})
        assert exc.value.code == "UnknownPreset"

    def test_unknown_category(self):
        rules = parse_rules_text(FPS_RULES)
        with pytest.raises(ConfigError) as exc:
            rules.select({"Resolution": "4K"})
        assert exc.value.code == "UnknownCategory"

    def test_to_dict(self):
        data = parse_rules_text(FPS_RULES, source_path="p/rules.txt").to_dict()
        assert data["path"] == "p/rules.txt"
        assert data["vars"] == ["$fps", "$delta"]
        assert data["categories"]["Frame Average"][0]["values"] == {"$fps": 8, "$delta": 0.125}
