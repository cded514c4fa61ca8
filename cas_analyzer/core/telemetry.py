"""OpenTelemetry wiring for the worker process.

Traces, metrics and log records are exported over OTLP/gRPC when
``telemetry_enabled`` is set. The providers are kept so
``shutdown_telemetry`` can flush them before the worker exits.
"""

from __future__ import annotations

import logging
import os
import socket
from dataclasses import dataclass
from typing import Any

from opentelemetry import metrics, trace
from opentelemetry._logs import set_logger_provider
from opentelemetry.exporter.otlp.proto.grpc._log_exporter import OTLPLogExporter
from opentelemetry.exporter.otlp.proto.grpc.metric_exporter import OTLPMetricExporter
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.httpx import HTTPXClientInstrumentor
from opentelemetry.instrumentation.logging import LoggingInstrumentor
from opentelemetry.instrumentation.sqlalchemy import SQLAlchemyInstrumentor
from opentelemetry.instrumentation.system_metrics import SystemMetricsInstrumentor
from opentelemetry.sdk._logs import LoggerProvider
from opentelemetry.sdk._logs.export import BatchLogRecordProcessor
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import PeriodicExportingMetricReader
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from opentelemetry.sdk.trace.sampling import ParentBased, TraceIdRatioBased
from opentelemetry.semconv.resource import ResourceAttributes
from sqlalchemy.ext.asyncio import AsyncEngine

from cas_analyzer.config import WorkerSettings

logger = logging.getLogger(__name__)

METRIC_EXPORT_INTERVAL_MS = 10000


@dataclass
class _Providers:
    tracing: TracerProvider
    metering: MeterProvider
    logging: LoggerProvider

    def shutdown(self) -> None:
        for provider in (self.tracing, self.metering, self.logging):
            provider.shutdown()


_providers: _Providers | None = None


def worker_resource(settings: WorkerSettings) -> Resource:
    """Resource attributes identifying this worker process."""

    attributes: dict[str, Any] = {
        ResourceAttributes.SERVICE_NAME: settings.telemetry_service_name or settings.app_name,
        ResourceAttributes.SERVICE_NAMESPACE: "cas-analyzer",
        ResourceAttributes.SERVICE_INSTANCE_ID: f"{socket.gethostname()}-{os.getpid()}",
    }
    return Resource.create(attributes)


def setup_telemetry(settings: WorkerSettings, engine: AsyncEngine | None = None) -> bool:
    """Install OTLP exporters and instrument httpx, SQLAlchemy and logging.

    Safe to call more than once. Returns ``True`` when telemetry is active.
    """

    global _providers  # noqa: PLW0603 - process-wide providers

    if _providers is not None:
        return True
    if not settings.telemetry_enabled:
        logger.info("Telemetry disabled via configuration")
        return False

    resource = worker_resource(settings)
    exporter_options: dict[str, Any] = {"insecure": settings.telemetry_otlp_insecure}
    if settings.telemetry_otlp_endpoint:
        exporter_options["endpoint"] = settings.telemetry_otlp_endpoint

    tracing = TracerProvider(
        resource=resource,
        sampler=ParentBased(TraceIdRatioBased(settings.telemetry_sample_ratio)),
    )
    tracing.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(**exporter_options)))
    trace.set_tracer_provider(tracing)

    reader = PeriodicExportingMetricReader(
        OTLPMetricExporter(**exporter_options),
        export_interval_millis=METRIC_EXPORT_INTERVAL_MS,
    )
    metering = MeterProvider(resource=resource, metric_readers=[reader])
    metrics.set_meter_provider(metering)

    log_records = LoggerProvider(resource=resource)
    log_records.add_log_record_processor(BatchLogRecordProcessor(OTLPLogExporter(**exporter_options)))
    set_logger_provider(log_records)
    LoggingInstrumentor().instrument(set_logging_format=False)

    # NAV lookups
    HTTPXClientInstrumentor().instrument(tracer_provider=tracing)
    SystemMetricsInstrumentor().instrument(meter_provider=metering)
    if engine is not None:
        SQLAlchemyInstrumentor().instrument(engine=engine.sync_engine, tracer_provider=tracing)

    _providers = _Providers(tracing=tracing, metering=metering, logging=log_records)
    logger.info("Telemetry exporting to %s", settings.telemetry_otlp_endpoint or "the default OTLP endpoint")
    return True


def shutdown_telemetry() -> None:
    """Flush pending spans, metrics and log records; no-op when telemetry is off."""

    global _providers  # noqa: PLW0603 - process-wide providers

    if _providers is None:
        return
    try:
        _providers.shutdown()
    except Exception:  # pragma: no cover - exporter failures at exit are only logged
        logger.exception("Telemetry shutdown failed")
    _providers = None


__all__ = ["setup_telemetry", "shutdown_telemetry", "worker_resource"]
