"""Per-dispatch stage timing."""

from __future__ import annotations

import logging
import time
from contextlib import contextmanager
from typing import Dict, Iterator

logger = logging.getLogger(__name__)


class JobTimer:
    """Accumulates wall-clock seconds per named stage of one dispatch."""

    def __init__(self, job_id: str):
        self.job_id = job_id
        self.stage_times: Dict[str, float] = {}
        self._started = time.perf_counter()

    @contextmanager
    def stage(self, name: str) -> Iterator[None]:
        start_time = time.perf_counter()
        try:
            yield
        finally:
            elapsed = time.perf_counter() - start_time
            self.stage_times[name] = self.stage_times.get(name, 0.0) + elapsed

    @property
    def total(self) -> float:
        return time.perf_counter() - self._started

    def breakdown(self) -> Dict[str, int]:
        """Stage durations in milliseconds, plus ``total``."""
        result = {name: int(seconds * 1000) for name, seconds in self.stage_times.items()}
        result["total"] = int(self.total * 1000)
        return result

    def log(self, outcome: str) -> None:
        parts = ", ".join(f"{name}={ms}ms" for name, ms in self.breakdown().items())
        logger.info(f"Job {self.job_id} {outcome}: {parts}")
