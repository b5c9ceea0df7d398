"""
Unit tests for report tracing.
"""
import json

import pytest

from src.core.observability import SpanKind, SpanStatus, Tracer


class TestTracer:

    def test_spans_and_fetch_count(self):
        tracer = Tracer()
        with tracer.start_trace("region", "r1") as trace:
            with tracer.start_span("fetch_month", SpanKind.DATA_RETRIEVAL) as span:
                span.attributes["rows"] = 10
            with tracer.start_span("fetch_ytd", SpanKind.DATA_RETRIEVAL):
                pass
            with tracer.start_span("assemble", SpanKind.ASSEMBLY):
                pass

        assert trace.fetch_count == 2
        assert trace.end_time is not None
        assert trace.spans[0].attributes == {"rows": 10}
        assert tracer.current_trace is None

    def test_nested_span_parent(self):
        tracer = Tracer()
        with tracer.start_trace("district", "d1") as trace:
            with tracer.start_span("assemble", SpanKind.ASSEMBLY) as outer:
                with tracer.start_span("fetch", SpanKind.DATA_RETRIEVAL) as inner:
                    pass
        assert inner.parent_span_id == outer.span_id
        assert trace.spans[0].parent_span_id is None

    def test_span_outside_trace(self):
        with Tracer().start_span("fetch", SpanKind.DATA_RETRIEVAL) as span:
            assert span is None

    def test_error_marks_span_and_trace(self):
        tracer = Tracer()
        with pytest.raises(ValueError):
            with tracer.start_trace("district", "d1") as trace:
                with tracer.start_span("fetch", SpanKind.DATA_RETRIEVAL):
                    raise ValueError("bad")

        assert trace.status == SpanStatus.ERROR
        assert trace.spans[0].status == SpanStatus.ERROR
        assert trace.spans[0].error_message == "ValueError: bad"

    def test_export(self, tmp_path, caplog):
        caplog.set_level("INFO")
        tracer = Tracer(export_dir=tmp_path / "traces")
        with tracer.start_trace("subsidiary", "s1") as trace:
            with tracer.start_span("fetch", SpanKind.DATA_RETRIEVAL):
                pass

        exported = json.loads((tmp_path / "traces" / f"{trace.trace_id}.json").read_text())
        assert exported["fetch_count"] == 1
        assert exported["spans"][0]["kind"] == "data_retrieval"
        assert "with 1 warehouse queries" in caplog.text

    def test_rows_and_phase_durations(self):
        tracer = Tracer()
        with tracer.start_trace("district", "tag_Pacific") as trace:
            with tracer.start_span("members_month", SpanKind.DATA_RETRIEVAL, {"rows": 12}):
                pass
            with tracer.start_span("assemble", SpanKind.ASSEMBLY):
                with tracer.start_span("members_ytd", SpanKind.DATA_RETRIEVAL, {"rows": 30}):
                    pass

        assert trace.rows_fetched == 42
        assert set(trace.duration_by_kind()) == {"data_retrieval", "assembly"}
        assert trace.trace_id.startswith("district_tag-pacific_")
        assert "(42 rows)" in trace.summary()
