from __future__ import annotations

from prometheus_client import CollectorRegistry, Counter, generate_latest

OUTCOMES = ("acked", "discarded", "requeued")


class ConsumerMetrics:
    def __init__(self) -> None:
        self._registry = CollectorRegistry()
        self._consumed = Counter(
            "rating_events_consumed",
            "Rating events consumed, by delivery outcome",
            labelnames=("outcome",),
            registry=self._registry,
        )
        for outcome in OUTCOMES:
            self._consumed.labels(outcome)

    def observe(self, outcome: str) -> None:
        self._consumed.labels(outcome).inc()

    def count(self, outcome: str) -> float:
        return self._registry.get_sample_value("rating_events_consumed_total", {"outcome": outcome}) or 0.0

    def render(self) -> str:
        return generate_latest(self._registry).decode("utf-8")
