from assetchain.ops.metrics import MetricLine, collect, render_metrics

__all__ = ["MetricLine", "collect", "render_metrics"]
