"""
Tests for the include/exclude record filter.
"""

from logrelay.config import DispatchSettings
from logrelay.core.filtering import RecordFilter


class TestIncludeFilter:
    """Test include tokens."""
    
    def test_no_tokens_accepts_everything(self, make_record) -> None:
        assert RecordFilter().accepts(make_record("anything"))
    
    def test_record_without_include_token_rejected(self, make_record) -> None:
        record_filter = RecordFilter(include=["payment", "refund"])
        assert not record_filter.accepts(make_record("user logged in"))
    
    def test_record_with_any_include_token_accepted(self, make_record) -> None:
        record_filter = RecordFilter(include=["payment", "refund"])
        assert record_filter.accepts(make_record("Refund issued for order 42"))
    
    def test_matching_is_case_insensitive(self, make_record) -> None:
        record_filter = RecordFilter(include=["PAYMENT"])
        assert record_filter.accepts(make_record("payment declined"))
    
    def test_tokens_are_substrings_not_patterns(self, make_record) -> None:
        record_filter = RecordFilter(include=["a.c"])
        assert not record_filter.accepts(make_record("abc"))
        assert record_filter.accepts(make_record("see a.c above"))


class TestExcludeFilter:
    """Test exclude tokens against message and attached error."""
    
    def test_message_match_rejected(self, make_record) -> None:
        record_filter = RecordFilter(exclude=["heartbeat"])
        assert not record_filter.accepts(make_record("HeartBeat ok"))
        assert record_filter.accepts(make_record("disk full"))
    
    def test_error_class_match_rejected(self, make_record) -> None:
        record_filter = RecordFilter(exclude=["timeouterror"])
        record = make_record("request failed", error_class="builtins.TimeoutError", error_message="read")
        assert not record_filter.accepts(record)
    
    def test_error_message_match_rejected(self, make_record) -> None:
        record_filter = RecordFilter(exclude=["connection reset"])
        record = make_record(
            "request failed",
            error_class="builtins.OSError",
            error_message="Connection reset by peer",
        )
        assert not record_filter.accepts(record)
    
    def test_exclude_applies_after_include(self, make_record) -> None:
        record_filter = RecordFilter(include=["payment"], exclude=["test-card"])
        assert not record_filter.accepts(make_record("payment with test-card"))
        assert record_filter.accepts(make_record("payment with visa"))
    
    def test_missing_error_fields_ignored(self, make_record) -> None:
        record_filter = RecordFilter(exclude=["valueerror"])
        assert record_filter.accepts(make_record("plain message"))


class TestFilterFromSettings:
    """Test token lists parsed from configuration."""
    
    def test_semicolon_delimited_tokens(self, make_record) -> None:
        settings = DispatchSettings.from_properties({
            "filter.include": "Payment; Refund ;;",
            "filter.exclude": "test",
        })
        
        assert settings.include == ["Payment", "Refund"]
        record_filter = RecordFilter.from_settings(settings)
        assert record_filter.include == ("payment", "refund")
        assert record_filter.exclude == ("test",)
        assert record_filter.accepts(make_record("refund done"))
