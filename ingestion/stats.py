"""
Throughput and ETA reporting for a running ingestion.

Pure observer: nothing here feeds back into fetching, writing or
checkpointing.
"""

import logging
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Optional

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ThroughputSnapshot:
    total: int
    target: int
    window_rate: float
    average_rate: float
    eta_seconds: Optional[float]

    def describe(self) -> str:
        eta = f"{round(self.eta_seconds)}s" if self.eta_seconds is not None else "?"
        return (
            f"Ingested: {self.total:,} / {self.target:,} | "
            f"{round(self.window_rate)}/s (avg {round(self.average_rate)}/s) | ETA: {eta}"
        )


class StatsMonitor:
    """
    Accumulates the processed counter and reports rates on a fixed interval.

    The average rate covers this run only; ``initial_total`` (events
    processed by earlier runs) counts toward the total and the ETA but not
    toward the rate.
    """

    def __init__(
        self,
        target_total: int,
        interval: float = 5.0,
        initial_total: int = 0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.target_total = target_total
        self.interval = interval
        self.total = initial_total
        self._initial_total = initial_total
        self._clock = clock
        self._started_at = clock()
        self._last_report_at = self._started_at
        self._last_report_total = initial_total

    @property
    def processed_this_run(self) -> int:
        return self.total - self._initial_total

    def snapshot(self) -> ThroughputSnapshot:
        now = self._clock()
        window = now - self._last_report_at
        elapsed = now - self._started_at

        window_rate = (self.total - self._last_report_total) / window if window > 0 else 0.0
        average_rate = self.processed_this_run / elapsed if elapsed > 0 else 0.0

        eta = None
        if average_rate > 0:
            eta = max(0.0, (self.target_total - self.total) / average_rate)

        return ThroughputSnapshot(
            total=self.total,
            target=self.target_total,
            window_rate=window_rate,
            average_rate=average_rate,
            eta_seconds=eta,
        )

    def update(self, count: int) -> Optional[ThroughputSnapshot]:
        """Add ``count`` processed events; returns a snapshot when one is due"""
        self.total += count

        now = self._clock()
        if now - self._last_report_at < self.interval:
            return None

        snap = self.snapshot()
        logger.info(f"[{datetime.now(timezone.utc).isoformat()}] {snap.describe()}")
        self._last_report_at = now
        self._last_report_total = self.total
        return snap
