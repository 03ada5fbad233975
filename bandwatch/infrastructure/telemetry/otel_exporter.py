"""
OpenTelemetry Exporter for bandwatch

Architectural Intent:
- Exports bandwidth samples and incident outcomes to OTLP-compatible backends
- Telemetry is optional: with no endpoint configured, metrics are only
  buffered locally and nothing is exported

Security:
- Endpoint defaults to empty string (must be explicitly configured)
- Non-localhost http:// endpoints rejected unless insecure=True
- Validation in __post_init__ prevents accidental plaintext export
"""

from __future__ import annotations
from dataclasses import dataclass
from datetime import datetime, UTC
from typing import Any, Optional
from urllib.parse import urlparse
import logging

from opentelemetry import metrics, trace
from opentelemetry.exporter.otlp.proto.grpc.metric_exporter import OTLPMetricExporter
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import PeriodicExportingMetricReader
from opentelemetry.sdk.resources import Resource, SERVICE_NAME
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor

logger = logging.getLogger(__name__)


@dataclass
class OTELConfig:
    endpoint: str = ""
    service_name: str = "bandwatch"
    environment: str = "production"
    enable_traces: bool = True
    enable_metrics: bool = True
    insecure: bool = False

    def __post_init__(self) -> None:
        if self.endpoint:
            parsed = urlparse(self.endpoint)
            is_localhost = parsed.hostname in ("localhost", "127.0.0.1", "::1")
            if parsed.scheme == "http" and not is_localhost and not self.insecure:
                raise ValueError(
                    f"Non-localhost HTTP endpoint '{self.endpoint}' requires "
                    "insecure=True or use https://. "
                    "Set insecure=True to explicitly allow plaintext export."
                )


class OTELExporter:
    """OpenTelemetry exporter for bandwidth checks."""

    def __init__(self, config: OTELConfig):
        self.config = config
        self._initialized = False
        self._metrics_buffer: list[dict[str, Any]] = []
        self._meter: Any = None
        self._gauges: dict[str, Any] = {}
        self._counters: dict[str, Any] = {}

    @property
    def initialized(self) -> bool:
        return self._initialized

    async def initialize(self) -> None:
        """Initialize OpenTelemetry SDK and exporters."""
        if not self.config.endpoint:
            logger.info("OTEL endpoint not configured, telemetry disabled")
            return

        try:
            resource = Resource(
                attributes={
                    SERVICE_NAME: self.config.service_name,
                    "environment": self.config.environment,
                }
            )

            if self.config.enable_traces:
                trace.set_tracer_provider(TracerProvider(resource=resource))
                trace.get_tracer_provider().add_span_processor(
                    BatchSpanProcessor(
                        OTLPSpanExporter(
                            endpoint=self.config.endpoint, insecure=self.config.insecure
                        )
                    )
                )

            if self.config.enable_metrics:
                reader = PeriodicExportingMetricReader(
                    OTLPMetricExporter(
                        endpoint=self.config.endpoint, insecure=self.config.insecure
                    )
                )
                metrics.set_meter_provider(
                    MeterProvider(resource=resource, metric_readers=[reader])
                )
                self._meter = metrics.get_meter(__name__)

            self._initialized = True
        except Exception as e:
            logger.error("Failed to initialize OTEL: %s", e)
            self._initialized = False

    def _buffer(self, name: str, value: float, unit: str, attributes: dict[str, str]) -> None:
        self._metrics_buffer.append(
            {
                "name": name,
                "value": value,
                "unit": unit,
                "attributes": attributes,
                "timestamp": datetime.now(UTC).isoformat(),
            }
        )

    def record_metric(
        self,
        name: str,
        value: float,
        unit: str = "",
        attributes: Optional[dict[str, str]] = None,
    ) -> None:
        """Record a gauge value."""
        attributes = attributes or {}
        self._buffer(name, value, unit, attributes)
        if self._initialized and self._meter:
            if name not in self._gauges:
                self._gauges[name] = self._meter.create_gauge(name, unit=unit)
            self._gauges[name].set(value, attributes=attributes)

    def increment(
        self, name: str, attributes: Optional[dict[str, str]] = None
    ) -> None:
        """Add one to a counter."""
        attributes = attributes or {}
        self._buffer(name, 1.0, "", attributes)
        if self._initialized and self._meter:
            if name not in self._counters:
                self._counters[name] = self._meter.create_counter(name)
            self._counters[name].add(1, attributes=attributes)

    def record_speed_sample(self, speed_mbps: float, threshold_mbps: float) -> None:
        self.record_metric(
            "bandwatch.download.mbps",
            speed_mbps,
            unit="Mbit/s",
            attributes={"below_threshold": str(speed_mbps < threshold_mbps)},
        )

    def record_incident_outcome(self, outcome: str) -> None:
        self.increment("bandwatch.incident.outcome", attributes={"outcome": outcome})

    def record_ticket_submission(self, success: bool, trigger: str) -> None:
        self.increment(
            "bandwatch.ticket.submissions",
            attributes={"success": str(success), "trigger": trigger},
        )

    def start_span(
        self,
        name: str,
        attributes: Optional[dict[str, str]] = None,
    ) -> Optional[Any]:
        """Start a tracing span."""
        if not self._initialized:
            return None
        return trace.get_tracer(__name__).start_span(name, attributes=attributes or {})

    def end_span(self, span: Any) -> None:
        if span is not None:
            span.end()

    async def export(self) -> None:
        """Drop the local buffer once the SDK has taken over exporting."""
        if not self._initialized:
            return

        # PeriodicExportingMetricReader exports on its own schedule
        exported_count = len(self._metrics_buffer)
        self._metrics_buffer.clear()
        if exported_count:
            logger.debug("Flushed %d buffered metrics", exported_count)


async def create_exporter(
    endpoint: Optional[str] = None,
    insecure: bool = False,
    service_name: str = "bandwatch",
) -> OTELExporter:
    """Factory function to create OTEL exporter."""
    config = OTELConfig(
        endpoint=endpoint or "",
        insecure=insecure,
        service_name=service_name,
    )
    exporter = OTELExporter(config)
    await exporter.initialize()
    return exporter
