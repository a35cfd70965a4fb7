"""
Tests for fixed-length masking, search length limits and rule ordering.
"""

from logrelay.core.masking import FilterRule, MaskingEngine


class TestFixedLengthMasking:
    """Test masking a fixed number of characters after the start marker."""
    
    def setup_method(self) -> None:
        self.engine = MaskingEngine([FilterRule(start_marker="<ele>", fixed_length=3)])
    
    def test_fixed_length_masks_each_occurrence(self) -> None:
        assert self.engine.mask_message("<ele>123456<ele>xyz") == "<ele>***456<ele>***"
        assert self.engine.mask_message("<ele>123456<ele>wxyz") == "<ele>***456<ele>***z"
    
    def test_fixed_length_ignores_end_markers(self) -> None:
        assert self.engine.mask_message("abc<ele>123456<ele/>xyz") == "abc<ele>***456<ele/>xyz"
    
    def test_fixed_length_truncated_at_message_end(self) -> None:
        """Test fewer characters are masked when the message ends first."""
        assert self.engine.mask_message("<ele>12") == "<ele>**"
    
    def test_adjacent_occurrences_masked(self) -> None:
        engine = MaskingEngine([FilterRule(start_marker="ab", fixed_length=1)])
        assert engine.mask_message("ab1ab2") == "ab*ab*"


class TestSearchLength:
    """Test bounding the scanned part of the message."""
    
    def setup_method(self) -> None:
        self.engine = MaskingEngine(
            [FilterRule(start_marker="<ele>", end_marker="<ele/>")],
            search_length=20,
        )
    
    def test_unterminated_within_bound_unchanged(self) -> None:
        assert self.engine.mask_message("<ele>123456<ele>xyz") == "<ele>123456<ele>xyz"
    
    def test_pair_within_bound_masked(self) -> None:
        assert self.engine.mask_message("ab<ele>123456<ele/>xyz") == "ab<ele>******<ele/>xyz"
        assert self.engine.mask_message("abc<ele>123456<ele/>") == "abc<ele>******<ele/>"
    
    def test_content_beyond_bound_reattached_verbatim(self) -> None:
        """Test a matching pair past the bound is never masked."""
        assert (
            self.engine.mask_message("abc<ele>123456<ele/><ele>0<ele/>")
            == "abc<ele>******<ele/><ele>0<ele/>"
        )
        assert (
            self.engine.mask_message("abc<ele>123456<ele/>xyz<ele>0<ele/>")
            == "abc<ele>******<ele/>xyz<ele>0<ele/>"
        )
    
    def test_end_marker_beyond_bound_not_found(self) -> None:
        """Test an end marker straddling the bound leaves the message unmasked."""
        message = "abcdefghijkl<ele>1234<ele/>"
        assert self.engine.mask_message(message) == message
    
    def test_invalid_search_length_means_unbounded(self) -> None:
        for value in (None, 0, -5, "abc", ""):
            engine = MaskingEngine([FilterRule("<ele>", "<ele/>")], search_length=value)
            assert engine.search_length is None


class TestRuleOrdering:
    """Test several rules applied cumulatively in configuration order."""
    
    def test_rules_applied_in_order(self) -> None:
        engine = MaskingEngine([
            FilterRule(start_marker="pin=", fixed_length=4),
            FilterRule(start_marker="<card>", end_marker="</card>"),
        ])
        message = "pin=1234 <card>4111111111111111</card>"
        assert engine.mask_message(message) == "pin=**** <card>****************</card>"
    
    def test_later_rule_sees_earlier_replacement(self) -> None:
        """Test a later rule scans text already masked by an earlier one."""
        engine = MaskingEngine([
            FilterRule(start_marker="[", end_marker="]"),
            FilterRule(start_marker="*]", fixed_length=2),
        ])
        assert engine.mask_message("[ab]cd") == "[**]**"
