import time
from typing import Optional

from prometheus_client import Counter, Histogram

STAGE_DURATION_SECONDS = Histogram(
    "intake_stage_duration_seconds",
    "Wall time of an intake stage",
    ["stage"],
)
STAGE_ITEMS_TOTAL = Counter(
    "intake_stage_items_total",
    "Photos or incidents handled by an intake stage",
    ["stage"],
)


class PerformanceMonitor:
    """
    Times one run of a stage and records it in Prometheus.

        with PerformanceMonitor("grouping") as monitor:
            ...
        logger.info(monitor.report(count=n))
    """

    def __init__(self, stage: str):
        self.stage = stage
        self.started_at: Optional[float] = None
        self.duration = 0.0

    def __enter__(self) -> "PerformanceMonitor":
        self.started_at = time.perf_counter()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.duration = time.perf_counter() - self.started_at
        STAGE_DURATION_SECONDS.labels(stage=self.stage).observe(self.duration)

    def report(self, count: Optional[int] = None) -> str:
        if count is not None:
            STAGE_ITEMS_TOTAL.labels(stage=self.stage).inc(count)
            return f"[{self.stage}] (N={count}) Time: {self.duration:.4f}s"
        return f"[{self.stage}] Time: {self.duration:.4f}s"
