class QueueMonitorError(Exception):
    """Base class for all queue monitor errors."""


class InvalidConfig(QueueMonitorError, ValueError):
    """Configuration is unusable. Raised at construction and never retried."""


class BrokerConnectError(QueueMonitorError):
    """Opening the broker connection or session failed."""


class BrokerDepthReadError(QueueMonitorError):
    """Reading a queue depth failed. The current tick is skipped."""

    def __init__(self, message: str, queue_name: str = None):
        super().__init__(message)
        self.queue_name = queue_name


class BrokerUnavailable(BrokerDepthReadError):
    """The broker session is closed or otherwise unusable."""


class ExecutorError(QueueMonitorError):
    """The scaling executor failed to read or change the worker count."""
