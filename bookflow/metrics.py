"""Prometheus metrics for the bookflow gateway.

Usage::

    metrics = GatewayMetrics()
    metrics.record_command("pause", "ok", latency_seconds=0.012)
    metrics.stream_opened()
    metrics.record_frame("state")
    metrics.stream_closed()

Each instance owns its own ``CollectorRegistry`` so several gateways (or
tests) can coexist in one process; ``/metrics`` serves ``exposition()``.
"""

from __future__ import annotations

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)

CONTENT_TYPE = CONTENT_TYPE_LATEST


class GatewayMetrics:
    def __init__(self, registry: CollectorRegistry | None = None):
        self.registry = registry or CollectorRegistry()

        self.commands = Counter(
            "bookflow_commands_total",
            "Update commands handled by the dispatcher",
            ["kind", "outcome"],
            registry=self.registry,
        )
        self.command_latency = Histogram(
            "bookflow_command_latency_seconds",
            "Time spent forwarding an update to the engine",
            ["kind"],
            registry=self.registry,
        )
        self.active_streams = Gauge(
            "bookflow_active_streams",
            "Progress streams currently open",
            registry=self.registry,
        )
        self.stream_frames = Counter(
            "bookflow_stream_frames_total",
            "Frames pushed to progress stream clients",
            ["kind"],
            registry=self.registry,
        )

    def record_command(
        self, kind: str, outcome: str, latency_seconds: float | None = None
    ) -> None:
        self.commands.labels(kind=kind, outcome=outcome).inc()
        if latency_seconds is not None:
            self.command_latency.labels(kind=kind).observe(latency_seconds)

    def stream_opened(self) -> None:
        self.active_streams.inc()

    def stream_closed(self) -> None:
        self.active_streams.dec()

    def record_frame(self, kind: str) -> None:
        self.stream_frames.labels(kind=kind).inc()

    def exposition(self) -> bytes:
        return generate_latest(self.registry)
