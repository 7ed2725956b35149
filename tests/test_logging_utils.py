"""
Tests for correlation ID scoping in the logging utilities.
"""

from extension_guard.app.utils.logging import correlation_context, get_correlation_id


class TestCorrelationContext:
    """Test suite for correlation_context."""

    def test_sets_and_restores(self):
        assert get_correlation_id() is None

        with correlation_context("req-1") as correlation_id:
            assert correlation_id == "req-1"
            assert get_correlation_id() == "req-1"

        assert get_correlation_id() is None

    def test_nested_scopes_restore_outer_id(self):
        with correlation_context("outer"):
            with correlation_context("inner"):
                assert get_correlation_id() == "inner"
            assert get_correlation_id() == "outer"

    def test_generates_id_when_missing(self):
        with correlation_context() as correlation_id:
            assert correlation_id
            assert get_correlation_id() == correlation_id
