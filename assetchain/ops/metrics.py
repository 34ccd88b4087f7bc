"""
assetchain/ops/metrics.py

Prometheus text exposition for the scheduler, the telemetry fan-out and the
ledger gateway. Rendered on demand by GET /metrics; nothing here is cached.

Exposes:
  * active sensor jobs and in-flight ticks
  * per-job tick, failure, anomaly and skipped-slot counters
  * fan-out channels, subscribers, published and dropped events
  * gas coins and owned objects leased by in-flight submissions
"""

from __future__ import annotations

import math
import time
from dataclasses import dataclass
from typing import Any, Dict, List, Tuple


# -----------------------------
# Metric formatting
# -----------------------------

@dataclass(frozen=True)
class MetricLine:
    name: str
    labels: Dict[str, str]
    value: float

    def render(self) -> str:
        value = float(self.value)
        if not math.isfinite(value):
            value = 0.0
        if self.labels:
            lbl = ",".join(f'{k}="{_escape_label(v)}"' for k, v in sorted(self.labels.items()))
            return f"{self.name}{{{lbl}}} {value}"
        return f"{self.name} {value}"


def _escape_label(s: str) -> str:
    return str(s).replace("\\", "\\\\").replace('"', '\\"').replace("\n", "\\n")


_HELP: Dict[str, Tuple[str, str]] = {
    "assetchain_up": ("gauge", "API process is running (1)."),
    "assetchain_metrics_generated_at_unix": ("gauge", "UNIX timestamp when metrics were generated."),
    "assetchain_sensor_jobs_active": ("gauge", "Registered recurring sensor jobs."),
    "assetchain_sensor_ticks_in_flight": ("gauge", "Ticks currently waiting on the ledger."),
    "assetchain_sensor_ticks_total": ("counter", "Confirmed sensor ticks per job."),
    "assetchain_sensor_tick_failures_total": ("counter", "Failed sensor ticks per job."),
    "assetchain_sensor_anomalies_total": ("counter", "Anomalous readings per job."),
    "assetchain_sensor_ticks_skipped_total": ("counter", "Schedule slots skipped while the previous tick was still writing."),
    "assetchain_telemetry_channels": ("gauge", "Asset channels with at least one subscriber."),
    "assetchain_telemetry_subscribers": ("gauge", "Subscribers per asset channel."),
    "assetchain_telemetry_published_total": ("counter", "Events published to the fan-out."),
    "assetchain_telemetry_dropped_total": ("counter", "Events dropped from full subscriber outboxes."),
    "assetchain_ledger_gas_coins_leased": ("gauge", "Gas coins leased by in-flight submissions."),
    "assetchain_ledger_objects_leased": ("gauge", "Owned objects leased by in-flight submissions."),
}


# -----------------------------
# Collection
# -----------------------------

def collect(scheduler: Any = None, fanout: Any = None, gateway: Any = None) -> List[MetricLine]:
    out: List[MetricLine] = [
        MetricLine("assetchain_up", {}, 1.0),
        MetricLine("assetchain_metrics_generated_at_unix", {}, float(int(time.time()))),
    ]

    if scheduler is not None:
        out.append(MetricLine("assetchain_sensor_jobs_active", {}, float(len(scheduler.list_jobs()))))
        out.append(MetricLine("assetchain_sensor_ticks_in_flight", {}, float(scheduler.in_flight)))
        for (asset_id, kind), stats in sorted(scheduler.all_stats().items()):
            labels = {"asset_id": asset_id, "sensor_kind": kind}
            out.append(MetricLine("assetchain_sensor_ticks_total", labels, float(stats.ticks)))
            out.append(MetricLine("assetchain_sensor_tick_failures_total", labels, float(stats.failures)))
            out.append(MetricLine("assetchain_sensor_anomalies_total", labels, float(stats.anomalies)))
            out.append(MetricLine("assetchain_sensor_ticks_skipped_total", labels, float(stats.skipped)))

    if fanout is not None:
        sizes = fanout.channel_sizes()
        out.append(MetricLine("assetchain_telemetry_channels", {}, float(len(sizes))))
        for asset_id, count in sorted(sizes.items()):
            out.append(MetricLine("assetchain_telemetry_subscribers", {"asset_id": asset_id}, float(count)))
        out.append(MetricLine("assetchain_telemetry_published_total", {}, float(fanout.published)))
        out.append(MetricLine("assetchain_telemetry_dropped_total", {}, float(fanout.dropped_events())))

    if gateway is not None:
        out.append(MetricLine("assetchain_ledger_gas_coins_leased", {}, float(gateway.gas_coins_in_use)))
        out.append(MetricLine("assetchain_ledger_objects_leased", {}, float(gateway.objects_in_use)))

    return out


def render_metrics(scheduler: Any = None, fanout: Any = None, gateway: Any = None) -> str:
    # one HELP/TYPE header per family, samples grouped under it
    families: Dict[str, List[MetricLine]] = {}
    for metric in collect(scheduler, fanout, gateway):
        families.setdefault(metric.name, []).append(metric)

    lines: List[str] = []
    for name, metrics in families.items():
        kind, help_text = _HELP.get(name, ("gauge", name))
        lines.append(f"# HELP {name} {help_text}")
        lines.append(f"# TYPE {name} {kind}")
        lines.extend(m.render() for m in metrics)
    return "\n".join(lines) + "\n"
