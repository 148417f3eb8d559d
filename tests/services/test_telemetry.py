"""Tests for spans, @traced and trace_span."""

from __future__ import annotations

import pytest

from edgectl.services.result import ServiceResult
from edgectl.services.telemetry import (
    Span,
    enable_telemetry,
    get_current_span,
    trace_span,
    traced,
)


class _Service:
    @traced
    def work(self) -> ServiceResult:
        with trace_span("proxy", state="absent"):
            pass
        with trace_span("network"):
            span = get_current_span()
            if span is not None:
                span.annotate("created", True)
        return ServiceResult(ok=True, op="work")

    @traced
    def broken(self) -> ServiceResult:
        with trace_span("apply"):
            raise RuntimeError("boom")

    @traced
    def failing(self) -> ServiceResult:
        return ServiceResult(ok=False, op="failing")


class TestDisabled:
    def test_no_meta(self) -> None:
        result = _Service().work()
        assert result.meta is None

    def test_trace_span_yields_none(self) -> None:
        with trace_span("anything") as span:
            assert span is None
        assert get_current_span() is None


class TestEnabled:
    def test_span_tree_attached(self) -> None:
        enable_telemetry()
        result = _Service().work()
        assert result.meta is not None
        tree = result.meta["telemetry"]
        assert tree["name"] == "_Service.work"
        assert [c["name"] for c in tree["children"]] == ["proxy", "network"]
        assert tree["children"][0]["annotations"] == {"state": "absent"}
        assert tree["children"][1]["annotations"] == {"created": True}
        assert "failed" not in tree

    def test_failed_result_marks_span(self) -> None:
        enable_telemetry()
        result = _Service().failing()
        assert result.meta is not None
        assert result.meta["telemetry"]["failed"] is True

    def test_exception_propagates(self) -> None:
        enable_telemetry()
        with pytest.raises(RuntimeError, match="boom"):
            _Service().broken()
        assert get_current_span() is None

    def test_span_outside_traced_call(self) -> None:
        enable_telemetry()
        with trace_span("orphan") as span:
            assert span is None


class TestSpan:
    def test_to_dict_minimal(self) -> None:
        span = Span(name="x")
        assert span.to_dict() == {"name": "x", "duration_ms": 0.0}

    def test_duration(self) -> None:
        span = Span(name="x", start_time=1.0)
        span.end_time = 1.5
        assert span.duration_ms == 500.0
