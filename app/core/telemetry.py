"""Tracing and metrics for the trading desk service.

Spans and counters are created through :func:`get_tracer` and
:func:`get_meter` everywhere in the service. Until :func:`setup_telemetry`
installs SDK providers those are OpenTelemetry's no-op implementations.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from fastapi import FastAPI
from opentelemetry import metrics, trace
from opentelemetry.exporter.otlp.proto.grpc.metric_exporter import OTLPMetricExporter
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.instrumentation.sqlalchemy import SQLAlchemyInstrumentor
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import PeriodicExportingMetricReader
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from opentelemetry.sdk.trace.sampling import ParentBased, TraceIdRatioBased
from opentelemetry.semconv.resource import ResourceAttributes
from sqlalchemy.engine import Engine

from app.config import AppSettings

logger = logging.getLogger(__name__)

SCOPE = "tradedesk"
METRIC_EXPORT_INTERVAL_MS = 15_000


@dataclass(frozen=True)
class TelemetryProviders:
    tracer_provider: TracerProvider
    meter_provider: MeterProvider


_installed: TelemetryProviders | None = None


def get_tracer() -> trace.Tracer:
    return trace.get_tracer(SCOPE)


def get_meter() -> metrics.Meter:
    return metrics.get_meter(SCOPE)


def build_providers(settings: AppSettings) -> TelemetryProviders:
    """OTLP-exporting SDK providers tagged with the configured service name."""

    resource = Resource.create(
        {
            ResourceAttributes.SERVICE_NAME: settings.telemetry_service_name or settings.app_name,
            ResourceAttributes.SERVICE_NAMESPACE: "trading-desk",
        }
    )
    endpoint = {"endpoint": settings.telemetry_otlp_endpoint} if settings.telemetry_otlp_endpoint else {}
    insecure = settings.telemetry_otlp_insecure

    tracer_provider = TracerProvider(
        resource=resource,
        sampler=ParentBased(TraceIdRatioBased(settings.telemetry_sample_ratio)),
    )
    tracer_provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(insecure=insecure, **endpoint)))

    reader = PeriodicExportingMetricReader(
        OTLPMetricExporter(insecure=insecure, **endpoint),
        export_interval_millis=METRIC_EXPORT_INTERVAL_MS,
    )
    return TelemetryProviders(tracer_provider, MeterProvider(resource=resource, metric_readers=[reader]))


def setup_telemetry(app: FastAPI, settings: AppSettings, engine: Engine | None = None) -> TelemetryProviders | None:
    """Install global providers once per process and instrument ``app`` and ``engine``.

    Returns the installed providers, or ``None`` when telemetry is disabled.
    """

    global _installed

    if not settings.telemetry_enabled:
        logger.info("Telemetry disabled via configuration")
        return None
    if _installed is None:
        _installed = build_providers(settings)
        trace.set_tracer_provider(_installed.tracer_provider)
        metrics.set_meter_provider(_installed.meter_provider)
        if engine is not None:
            SQLAlchemyInstrumentor().instrument(engine=engine, tracer_provider=_installed.tracer_provider)
        logger.info("Telemetry exporting as %s", settings.telemetry_service_name or settings.app_name)

    FastAPIInstrumentor.instrument_app(
        app,
        tracer_provider=_installed.tracer_provider,
        meter_provider=_installed.meter_provider,
    )
    return _installed


__all__ = ["TelemetryProviders", "build_providers", "get_meter", "get_tracer", "setup_telemetry"]
