"""OpenTelemetry クォータメトリクス定義"""

from __future__ import annotations

from opentelemetry import metrics

_meter = metrics.get_meter("usage_quota", version="0.1.0")

quota_decisions_total = _meter.create_counter(
    name="quota_decisions_total",
    description="Total number of quota decisions by outcome",
    unit="1",
)

quota_store_errors_total = _meter.create_counter(
    name="quota_store_errors_total",
    description="Total number of counter store failures",
    unit="1",
)

quota_swept_keys_total = _meter.create_counter(
    name="quota_swept_keys_total",
    description="Total number of expired counters removed by sweeps",
    unit="1",
)
