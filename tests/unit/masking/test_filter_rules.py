"""
Tests for building masking rules from configuration.
"""

import pytest

from logrelay.config import MaskingSettings
from logrelay.core.masking import FilterRule, MaskingEngine


class TestFilterRuleCreation:
    """Test construction-time validation of masking rules."""
    
    def test_markers_trimmed(self) -> None:
        rule = FilterRule.create("  <ele> ", " <ele/>  ")
        assert rule == FilterRule(start_marker="<ele>", end_marker="<ele/>")
    
    def test_fixed_length_rule(self) -> None:
        rule = FilterRule.create("<ele>", None, " 3 ")
        assert rule == FilterRule(start_marker="<ele>", fixed_length=3)
    
    def test_end_marker_wins_over_fixed_length(self) -> None:
        rule = FilterRule.create("<ele>", "<ele/>", "3")
        assert rule is not None
        assert rule.end_marker == "<ele/>"
        assert rule.fixed_length is None
    
    @pytest.mark.parametrize("start,end,length", [
        ("", "<ele/>", None),
        ("   ", "<ele/>", None),
        (None, "<ele/>", None),
        ("<ele>", None, None),
        ("<ele>", "", ""),
        ("<ele>", "   ", None),
        ("<ele>", None, "abc"),
        ("<ele>", None, "0"),
        ("<ele>", None, -2),
    ])
    def test_unusable_rules_discarded(self, start, end, length) -> None:
        """Test rules without an end marker or positive length are dropped."""
        assert FilterRule.create(start, end, length) is None


class TestRulesFromProperties:
    """Test discovery of rules from writer-style key/value properties."""
    
    def test_rules_grouped_by_extension(self) -> None:
        properties = {
            "filter.prefix": "<ele>",
            "filter.suffix": "<ele/>",
            "filter.prefix.pin": "pin=",
            "filter.fixedlength.pin": "4",
            "filter.prefix.orphan": "orphan",
        }
        
        engine = MaskingEngine.from_settings(MaskingSettings.from_properties(properties))
        
        assert engine.rules == (
            FilterRule(start_marker="<ele>", end_marker="<ele/>"),
            FilterRule(start_marker="pin=", fixed_length=4),
        )
    
    def test_malformed_fixed_length_rule_discarded(self) -> None:
        """Test a non-numeric fixed length disables the rule, not the engine."""
        properties = {
            "filter.prefix1": "[",
            "filter.fixedlength1": "three",
            "filter.prefix2": "<",
            "filter.suffix2": ">",
        }
        
        settings = MaskingSettings.from_properties(properties)
        engine = MaskingEngine.from_settings(settings)
        
        assert len(settings.rules) == 2
        assert settings.rules[0].fixed_length is None
        assert engine.rules == (FilterRule(start_marker="<", end_marker=">"),)
    
    def test_replace_character_and_search_length(self) -> None:
        settings = MaskingSettings.from_properties({
            "filter.prefix": "<ele>",
            "filter.suffix": "<ele/>",
            "replacecharacter": "x",
            "searchlength": "20",
        })
        
        assert settings.replace_character == "x"
        assert settings.search_length == 20
    
    def test_defaults_when_unset_or_invalid(self) -> None:
        settings = MaskingSettings.from_properties({
            "replacecharacter": "",
            "searchlength": "twenty",
        })
        
        assert settings.rules == []
        assert settings.replace_character == "*"
        assert settings.search_length is None
    
    def test_include_and_exclude_keys_are_not_rules(self) -> None:
        settings = MaskingSettings.from_properties({
            "filter.include": "error",
            "filter.exclude": "heartbeat",
        })
        assert settings.rules == []
