from abc import ABC, abstractmethod


class ScalingExecutor(ABC):
    """
    Changes the number of running workers.

    Implementations raise ExecutorError when the count cannot be read or
    changed. The monitor never assumes anything about the mechanism behind it.
    """

    @abstractmethod
    def current_count(self) -> int:
        """Return the number of workers actually running."""

    @abstractmethod
    def set_count(self, target: int) -> None:
        """Scale the workers to exactly target."""
