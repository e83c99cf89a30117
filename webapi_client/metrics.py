from typing import Any, Dict, List

from prometheus_client import CollectorRegistry, Counter, Histogram, generate_latest

from .models import RequestMetrics

_MAX_LATENCY_SAMPLES = 1000


class MetricsCollector:
    """Aggregates RequestMetrics events into Prometheus series and a snapshot.

    Subscribe ``collector.record`` to a client's ``request_completed``
    channel (``WebAPIClient.attach_metrics`` does this). Each collector owns
    its registry so several clients can live in one process.
    """

    def __init__(self, client_name: str = "webapi-client", registry: CollectorRegistry = None):
        self.client_name = client_name
        self.registry = registry or CollectorRegistry()

        self.request_count = Counter(
            'webapi_client_requests_total',
            'Total logical requests completed by the client',
            ['client', 'method', 'status'],
            registry=self.registry
        )

        self.request_duration = Histogram(
            'webapi_client_request_duration_seconds',
            'Logical request duration in seconds, retries included',
            ['client', 'method'],
            buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0],
            registry=self.registry
        )

        self.retries_total = Counter(
            'webapi_client_retries_total',
            'Total retry attempts',
            ['client', 'method'],
            registry=self.registry
        )

        self._metrics: Dict[str, Any] = {}
        self._latencies: List[float] = []
        self._status_codes: Dict[int, int] = {}
        self.reset()

    def __call__(self, metrics: RequestMetrics):
        self.record(metrics)

    def record(self, metrics: RequestMetrics):
        """Record one completed logical request"""
        self._metrics["requests_total"] += 1
        if metrics.success:
            self._metrics["requests_success"] += 1
        else:
            self._metrics["requests_failed"] += 1
        self._metrics["retries_total"] += metrics.retry_count
        self._status_codes[metrics.status_code] = self._status_codes.get(metrics.status_code, 0) + 1

        self._latencies.append(metrics.duration)
        # Keep only the most recent samples for percentiles
        if len(self._latencies) > _MAX_LATENCY_SAMPLES:
            self._latencies.pop(0)

        self.request_count.labels(
            client=self.client_name,
            method=metrics.method,
            status="success" if metrics.success else "failure"
        ).inc()

        self.request_duration.labels(
            client=self.client_name,
            method=metrics.method
        ).observe(metrics.duration)

        if metrics.retry_count:
            self.retries_total.labels(
                client=self.client_name,
                method=metrics.method
            ).inc(metrics.retry_count)

    def get_metrics(self) -> Dict[str, Any]:
        """Get current metrics snapshot"""
        latencies = sorted(self._latencies)
        total_requests = self._metrics["requests_total"]

        metrics = self._metrics.copy()
        metrics["status_codes"] = dict(self._status_codes)

        if latencies:
            metrics.update({
                "latency_p50": latencies[int(len(latencies) * 0.5)],
                "latency_p95": latencies[int(len(latencies) * 0.95)],
                "latency_p99": latencies[int(len(latencies) * 0.99)],
                "latency_avg": sum(latencies) / len(latencies),
            })

        if total_requests > 0:
            metrics.update({
                "success_rate": self._metrics["requests_success"] / total_requests,
                "error_rate": self._metrics["requests_failed"] / total_requests,
            })

        return metrics

    def get_prometheus_metrics(self) -> bytes:
        """Get metrics in Prometheus exposition format"""
        return generate_latest(self.registry)

    def reset(self):
        """Reset the in-memory snapshot; Prometheus series are cumulative"""
        self._latencies.clear()
        self._status_codes.clear()
        self._metrics.clear()
        self._metrics.update({
            "requests_total": 0,
            "requests_success": 0,
            "requests_failed": 0,
            "retries_total": 0,
        })
