import logging
import math
from enum import Enum
from typing import NamedTuple

from queue_monitor.config import MonitorConfig


class ScalingAction(str, Enum):
    UP = 'up'
    DOWN = 'down'
    HOLD = 'hold'


class ScalingDecision(NamedTuple):
    """Outcome of one scaling evaluation. amount is 0 for HOLD."""
    action: ScalingAction
    amount: int = 0

    @property
    def is_hold(self) -> bool:
        return self.action == ScalingAction.HOLD

    def apply(self, current_worker_count: int, config: MonitorConfig) -> int:
        """Return the worker count this decision leads to, clamped to the configured bounds."""
        if self.action == ScalingAction.UP:
            target = current_worker_count + self.amount
        elif self.action == ScalingAction.DOWN:
            target = current_worker_count - self.amount
        else:
            target = current_worker_count
        return clamp_worker_count(target, config)


HOLD = ScalingDecision(ScalingAction.HOLD, 0)


def clamp_worker_count(count: int, config: MonitorConfig) -> int:
    return max(config.min_workers, min(config.max_workers, count))


def decide(total_messages: int, current_worker_count: int, config: MonitorConfig) -> ScalingDecision:
    """
    Decide whether to add workers, remove workers, or hold.

    Scale up is checked first, so a misconfiguration where both thresholds
    match still scales up. Both comparisons are strict: a backlog equal to a
    threshold holds. The step size is the backlog divided by the threshold,
    rounded up, and never exceeds the distance to max_workers/min_workers.

    Args:
        total_messages: Backlog summed over all watched queues
        current_worker_count: Worker count recorded by the monitor
        config: Monitor configuration with thresholds and bounds

    Returns:
        ScalingDecision: UP or DOWN with a positive amount, or HOLD
    """
    if total_messages > config.scale_up_threshold and current_worker_count < config.max_workers:
        amount = min(config.max_workers - current_worker_count,
                     math.ceil(total_messages / config.scale_up_threshold))
        if amount > 0:
            logging.debug(f"Scale up: {total_messages} messages > threshold ({config.scale_up_threshold}), "
                          f"adding {amount} to {current_worker_count} workers")
            return ScalingDecision(ScalingAction.UP, amount)

    elif total_messages < config.scale_down_threshold and current_worker_count > config.min_workers:
        amount = min(current_worker_count - config.min_workers,
                     math.ceil((config.scale_down_threshold - total_messages) / config.scale_down_threshold))
        if amount > 0:
            logging.debug(f"Scale down: {total_messages} messages < threshold ({config.scale_down_threshold}), "
                          f"removing {amount} from {current_worker_count} workers")
            return ScalingDecision(ScalingAction.DOWN, amount)

    return HOLD
