"""Scaling executors: the authorities that actually change the running worker count."""

from queue_monitor.executors.base import ScalingExecutor
from queue_monitor.executors.simulated import SimulatedExecutor

__all__ = ['ScalingExecutor', 'SimulatedExecutor']
