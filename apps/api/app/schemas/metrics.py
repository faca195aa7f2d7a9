from pydantic import BaseModel, Field


class TimingMetricStats(BaseModel):
    count: int
    avg_s: float
    max_s: float


class MetricsResponse(BaseModel):
    """In-process counters and timings, e.g. ``suspicious_orders_flagged_total``
    or ``order_detection_seconds``. Reset on restart."""

    counters: dict[str, int] = Field(default_factory=dict)
    timings: dict[str, TimingMetricStats] = Field(default_factory=dict)
