"""Telemetry test fixtures."""

from __future__ import annotations

from collections.abc import Generator

import pytest
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import SimpleSpanProcessor
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter

from patchgate.telemetry.tracing import set_tracer


@pytest.fixture
def span_exporter() -> Generator[InMemorySpanExporter, None, None]:
    """Route patchgate spans to an in-memory exporter.

    The provider is not installed globally; only the patchgate tracer is
    replaced, and the autouse reset fixture drops it afterwards.
    """
    exporter = InMemorySpanExporter()
    provider = TracerProvider()
    provider.add_span_processor(SimpleSpanProcessor(exporter))
    set_tracer(provider.get_tracer("patchgate"))
    yield exporter
    exporter.clear()
    provider.shutdown()
