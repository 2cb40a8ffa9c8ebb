import logging
from typing import List

from queue_monitor.executors.base import ScalingExecutor


class SimulatedExecutor(ScalingExecutor):
    """Track the worker count in memory only. Used when scaling is not enabled."""

    def __init__(self, initial_count: int = 0):
        self._count = initial_count
        self.history: List[int] = []

    def current_count(self) -> int:
        return self._count

    def set_count(self, target: int) -> None:
        logging.info(f"Simulated scaling: {self._count} -> {target} workers (no external change made)")
        self.history.append(target)
        self._count = target
