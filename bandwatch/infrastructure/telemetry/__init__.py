"""
bandwatch Telemetry Infrastructure

Architectural Intent:
- OpenTelemetry metrics and traces for bandwidth checks and ticket submissions
"""

from bandwatch.infrastructure.telemetry.otel_exporter import (
    OTELExporter,
    OTELConfig,
    create_exporter,
)

__all__ = [
    "OTELExporter",
    "OTELConfig",
    "create_exporter",
]
