from __future__ import annotations

import os
import uuid
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Any, Dict

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor


_ANALYSIS_ID: ContextVar[str | None] = ContextVar("analysis_id", default=None)
_MODEL: ContextVar[str | None] = ContextVar("analysis_model", default=None)


def init_telemetry(settings: Dict[str, Any]) -> None:
    conf = settings.get("telemetry", {}) if settings else {}
    if not conf.get("enabled"):
        return
    service_name = conf.get("service_name", "log-whisperer")
    endpoint = conf.get("otlp_endpoint") or os.environ.get("OTEL_EXPORTER_OTLP_ENDPOINT")
    if not endpoint:
        return
    insecure = conf.get("otlp_insecure", True)
    resource = Resource.create({"service.name": service_name})
    provider = TracerProvider(resource=resource)
    exporter = OTLPSpanExporter(endpoint=endpoint, insecure=insecure)
    provider.add_span_processor(BatchSpanProcessor(exporter))
    trace.set_tracer_provider(provider)


def set_analysis_context(model: str | None = None) -> str:
    analysis_id = uuid.uuid4().hex
    _ANALYSIS_ID.set(analysis_id)
    if model:
        _MODEL.set(model)
    return analysis_id


@contextmanager
def span(name: str, **attrs: Any):
    tracer = trace.get_tracer("log_whisperer")
    with tracer.start_as_current_span(name) as current:
        _apply_common_attrs(current)
        for key, value in attrs.items():
            if value is None:
                continue
            current.set_attribute(key, value)
        yield current


def _apply_common_attrs(span_obj) -> None:
    analysis_id = _ANALYSIS_ID.get()
    model = _MODEL.get()
    if analysis_id:
        span_obj.set_attribute("analysis_id", analysis_id)
    if model:
        span_obj.set_attribute("analysis_model", model)
