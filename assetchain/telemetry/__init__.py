"""Live telemetry fan-out."""

from assetchain.telemetry.fanout import Subscriber, TelemetryEvent, TelemetryFanout

__all__ = ["Subscriber", "TelemetryEvent", "TelemetryFanout"]
