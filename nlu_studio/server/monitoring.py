"""Request metrics and periodic monitoring log lines."""
import asyncio
import logging
import time
from typing import Dict

from fastapi import Request
from prometheus_client import CollectorRegistry, Counter, Histogram

logger = logging.getLogger(__name__)


class RequestMonitor:
    def __init__(self):
        # One registry per app so several apps can live in the same process.
        self.registry = CollectorRegistry()
        self.requests = Counter(
            "nlu_server_requests",
            "HTTP requests handled",
            ["method", "status"],
            registry=self.registry,
        )
        self.latency = Histogram(
            "nlu_server_request_duration_seconds",
            "HTTP request latency",
            registry=self.registry,
        )

    def observe(self, method: str, status_code: int, duration: float) -> None:
        self.requests.labels(method=method, status=str(status_code)).inc()
        self.latency.observe(duration)

    def snapshot(self) -> Dict[str, float]:
        total = 0.0
        errors = 0.0
        for metric in self.requests.collect():
            for sample in metric.samples:
                if not sample.name.endswith("_total"):
                    continue
                total += sample.value
                if sample.labels.get("status", "").startswith("5"):
                    errors += sample.value
        count = self.registry.get_sample_value("nlu_server_request_duration_seconds_count") or 0.0
        duration = self.registry.get_sample_value("nlu_server_request_duration_seconds_sum") or 0.0
        return {
            "requests": total,
            "errors": errors,
            "avg_latency_ms": round(duration / count * 1000, 2) if count else 0.0,
        }

    async def run(self, interval: float) -> None:
        """Log a snapshot every ``interval`` seconds until cancelled."""
        logger.info(f"Monitoring started, reporting every {interval}s")
        while True:
            await asyncio.sleep(interval)
            stats = self.snapshot()
            logger.info(
                f"Monitoring: {stats['requests']:.0f} requests, {stats['errors']:.0f} errors, "
                f"{stats['avg_latency_ms']}ms average latency"
            )


def install_monitoring_middleware(app, *, monitor: RequestMonitor) -> None:
    @app.middleware("http")
    async def monitoring_middleware(request: Request, call_next):  # type: ignore[no-redef]
        start_time = time.perf_counter()
        status_code = 500
        try:
            response = await call_next(request)
            status_code = response.status_code
            return response
        finally:
            monitor.observe(request.method, status_code, time.perf_counter() - start_time)
