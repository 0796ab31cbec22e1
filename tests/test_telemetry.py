"""Tests for the operation_span wrapper."""

from __future__ import annotations

import asyncio

import pytest
from opentelemetry import trace
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import SimpleSpanProcessor
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter

from voyages.core.telemetry import init_telemetry, operation_span
from voyages.errors import ConflictError

pytestmark = pytest.mark.unit


def _reset_otel_global_state():
    """Fully reset the OpenTelemetry global tracer provider state."""
    trace._TRACER_PROVIDER_SET_ONCE = trace.Once()
    trace._TRACER_PROVIDER = None


@pytest.fixture(autouse=True)
def otel_provider():
    """Set up an in-memory TracerProvider for every test, then tear down."""
    _reset_otel_global_state()
    exporter = InMemorySpanExporter()
    provider = TracerProvider(resource=Resource.create({"service.name": "voyages-test"}))
    provider.add_span_processor(SimpleSpanProcessor(exporter))
    trace.set_tracer_provider(provider)
    yield exporter
    provider.shutdown()
    _reset_otel_global_state()


class TestOperationSpan:
    def test_context_manager_names_span(self, otel_provider):
        with operation_span("itinerary.update"):
            pass
        (span,) = otel_provider.get_finished_spans()
        assert span.name == "voyages.itinerary.update"
        assert span.attributes["voyages.operation"] == "itinerary.update"

    def test_domain_error_code_recorded(self, otel_provider):
        with pytest.raises(ConflictError):
            with operation_span("booking.submit"):
                raise ConflictError("CANNOT_SUBMIT")
        (span,) = otel_provider.get_finished_spans()
        assert span.status.status_code == trace.StatusCode.ERROR
        assert span.attributes["voyages.error_code"] == "CANNOT_SUBMIT"
        assert span.events[0].name == "exception"

    def test_plain_error_has_no_code(self, otel_provider):
        with pytest.raises(RuntimeError):
            with operation_span("booking.submit"):
                raise RuntimeError("boom")
        (span,) = otel_provider.get_finished_spans()
        assert "voyages.error_code" not in span.attributes

    async def test_decorator_preserves_result_and_name(self, otel_provider):
        @operation_span("booking.get")
        async def get_booking(x):
            return x * 2

        assert await get_booking(21) == 42
        assert get_booking.__name__ == "get_booking"
        assert otel_provider.get_finished_spans()[0].name == "voyages.booking.get"

    async def test_concurrent_calls_get_separate_spans(self, otel_provider):
        @operation_span("booking.create")
        async def create(i):
            await asyncio.sleep(0)
            return i

        assert await asyncio.gather(*(create(i) for i in range(5))) == [0, 1, 2, 3, 4]
        spans = otel_provider.get_finished_spans()
        assert len(spans) == 5
        assert len({s.context.span_id for s in spans}) == 5


def test_init_without_endpoint_returns_tracer(monkeypatch):
    monkeypatch.delenv("OTEL_EXPORTER_OTLP_ENDPOINT", raising=False)
    assert init_telemetry("voyages-test") is not None
