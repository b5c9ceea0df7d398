"""
Report Tracing

One trace per report request and one span per unit of work inside it
(each warehouse fetch, and building the report tree in memory).

The trace is what makes the fixed query budget observable: every
DATA_RETRIEVAL span is one warehouse query, and the summary line logged at
the end of a trace reports the count next to the rows fetched and the time
spent per phase.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional, Dict, Any, List
from contextlib import contextmanager
from enum import Enum
from pathlib import Path
import itertools
import json
import logging
import re

logger = logging.getLogger(__name__)


class SpanKind(Enum):
    DATA_RETRIEVAL = "data_retrieval"
    ASSEMBLY = "assembly"


class SpanStatus(Enum):
    OK = "ok"
    ERROR = "error"


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _elapsed_ms(start: datetime, end: Optional[datetime]) -> float:
    return (end - start).total_seconds() * 1000 if end else 0.0


@dataclass
class Span:
    """One timed operation within a report trace."""
    span_id: str
    name: str
    kind: SpanKind
    start_time: datetime = field(default_factory=_now)
    end_time: Optional[datetime] = None
    status: SpanStatus = SpanStatus.OK
    parent_span_id: Optional[str] = None
    attributes: Dict[str, Any] = field(default_factory=dict)
    error_message: Optional[str] = None

    @property
    def duration_ms(self) -> float:
        return _elapsed_ms(self.start_time, self.end_time)

    def set_error(self, error: Exception):
        self.status = SpanStatus.ERROR
        self.error_message = f"{type(error).__name__}: {error}"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "span_id": self.span_id,
            "name": self.name,
            "kind": self.kind.value,
            "start_time": self.start_time.isoformat(),
            "end_time": self.end_time.isoformat() if self.end_time else None,
            "duration_ms": round(self.duration_ms, 2),
            "status": self.status.value,
            "parent_span_id": self.parent_span_id,
            "attributes": self.attributes,
            "error_message": self.error_message,
        }


@dataclass
class ReportTrace:
    """All spans of one report request (level + selector)."""
    trace_id: str
    level: str
    selector: str
    start_time: datetime = field(default_factory=_now)
    end_time: Optional[datetime] = None
    spans: List[Span] = field(default_factory=list)
    status: SpanStatus = SpanStatus.OK
    error_message: Optional[str] = None

    @property
    def duration_ms(self) -> float:
        return _elapsed_ms(self.start_time, self.end_time)

    @property
    def fetch_count(self) -> int:
        """Warehouse queries issued during the request."""
        return sum(1 for s in self.spans if s.kind == SpanKind.DATA_RETRIEVAL)

    @property
    def rows_fetched(self) -> int:
        return sum(int(s.attributes.get("rows", 0)) for s in self.spans if s.kind == SpanKind.DATA_RETRIEVAL)

    def duration_by_kind(self) -> Dict[str, float]:
        """Milliseconds per span kind, top-level spans only (nested time is not double counted)."""
        totals: Dict[str, float] = {}
        for span in self.spans:
            if span.parent_span_id is None:
                totals[span.kind.value] = totals.get(span.kind.value, 0.0) + span.duration_ms
        return totals

    def summary(self) -> str:
        phases = ", ".join(f"{kind} {ms:.0f}ms" for kind, ms in self.duration_by_kind().items())
        text = (
            f"Completed {self.level} report {self.selector!r} in {self.duration_ms:.0f}ms "
            f"with {self.fetch_count} warehouse queries ({self.rows_fetched} rows)"
        )
        return f"{text}; {phases}" if phases else text

    def to_dict(self) -> Dict[str, Any]:
        return {
            "trace_id": self.trace_id,
            "level": self.level,
            "selector": self.selector,
            "start_time": self.start_time.isoformat(),
            "end_time": self.end_time.isoformat() if self.end_time else None,
            "duration_ms": round(self.duration_ms, 2),
            "status": self.status.value,
            "error_message": self.error_message,
            "fetch_count": self.fetch_count,
            "rows_fetched": self.rows_fetched,
            "duration_by_kind": self.duration_by_kind(),
            "spans": [s.to_dict() for s in self.spans],
        }


class Tracer:
    """
    Tracer for report requests.

    Usage:
        tracer = Tracer()

        with tracer.start_trace("region", "r1") as trace:
            with tracer.start_span("region_summary_month", SpanKind.DATA_RETRIEVAL) as span:
                facts = warehouse.fetch_facts(...)
                span.attributes["rows"] = len(facts)

    Spans opened outside a trace are no-ops (the context yields None).
    With `export_dir` set, each finished trace is written there as JSON.
    """

    def __init__(self, export_dir: Optional[Path] = None):
        self.export_dir = Path(export_dir) if export_dir else None
        if self.export_dir:
            self.export_dir.mkdir(parents=True, exist_ok=True)

        self._current_trace: Optional[ReportTrace] = None
        self._open_spans: List[Span] = []
        self._ids = itertools.count(1)

    @property
    def current_trace(self) -> Optional[ReportTrace]:
        return self._current_trace

    @staticmethod
    def _trace_id(level: str, selector: str) -> str:
        slug = re.sub(r"[^A-Za-z0-9]+", "-", selector).strip("-").lower() or "all"
        return f"{level}_{slug}_{_now().strftime('%Y%m%dT%H%M%S%f')}"

    @contextmanager
    def start_trace(self, level: str, selector: str):
        trace = ReportTrace(trace_id=self._trace_id(level, selector), level=level, selector=selector)
        self._current_trace = trace
        self._open_spans = []
        self._ids = itertools.count(1)

        try:
            yield trace
        except Exception as e:
            trace.status = SpanStatus.ERROR
            trace.error_message = f"{type(e).__name__}: {e}"
            raise
        finally:
            trace.end_time = _now()
            self._current_trace = None
            logger.info(trace.summary())
            if self.export_dir:
                self._export_trace(trace)

    @contextmanager
    def start_span(self, name: str, kind: SpanKind, attributes: Dict[str, Any] = None):
        trace = self._current_trace
        if trace is None:
            yield None
            return

        span = Span(
            span_id=f"{trace.trace_id}:{next(self._ids)}",
            name=name,
            kind=kind,
            parent_span_id=self._open_spans[-1].span_id if self._open_spans else None,
            attributes=dict(attributes or {}),
        )
        trace.spans.append(span)
        self._open_spans.append(span)

        try:
            yield span
        except Exception as e:
            span.set_error(e)
            raise
        finally:
            span.end_time = _now()
            self._open_spans.pop()
            if span.error_message:
                logger.debug(f"Span {name} failed after {span.duration_ms:.0f}ms: {span.error_message}")
            else:
                logger.debug(f"Span {name} completed in {span.duration_ms:.0f}ms")

    def _export_trace(self, trace: ReportTrace):
        path = self.export_dir / f"{trace.trace_id}.json"
        try:
            path.write_text(json.dumps(trace.to_dict(), indent=2, default=str), encoding="utf-8")
            logger.debug(f"Exported trace to {path}")
        except OSError as e:
            logger.error(f"Failed to export trace {trace.trace_id}: {e}")
