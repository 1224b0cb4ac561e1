from greentech.workers.pipeline import TelemetryPipeline
from greentech.workers.scheduler import IntervalJob, IntervalScheduler

__all__ = ["IntervalJob", "IntervalScheduler", "TelemetryPipeline"]
