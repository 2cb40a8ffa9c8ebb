import logging
import subprocess
from typing import List, Optional

from queue_monitor.exceptions import ExecutorError
from queue_monitor.executors.base import ScalingExecutor


class ComposeExecutor(ScalingExecutor):
    """
    Scale a docker compose service.

    The running count is the number of container ids `docker compose ps -q`
    lists for the service; scaling runs `docker compose up -d --scale`.
    """

    def __init__(self, service_name: str, compose_file: Optional[str] = None,
                 command: str = 'docker', timeout: float = 120.0):
        self.service_name = service_name
        self.compose_file = compose_file
        self.command = command
        self.timeout = timeout

    def _base_command(self) -> List[str]:
        args = [self.command, 'compose']
        if self.compose_file:
            args += ['-f', self.compose_file]
        return args

    def _run(self, args: List[str]) -> str:
        try:
            result = subprocess.run(args, capture_output=True, text=True, timeout=self.timeout)
        except (OSError, subprocess.TimeoutExpired) as e:
            raise ExecutorError(f"Could not run {' '.join(args)}: {e}") from e

        if result.returncode != 0:
            raise ExecutorError(f"{' '.join(args)} exited with {result.returncode}: {result.stderr.strip()}")
        if result.stderr:
            # compose reports progress on stderr even on success
            logging.debug(f"compose output: {result.stderr.strip()}")
        return result.stdout

    def current_count(self) -> int:
        output = self._run(self._base_command() + ['ps', '-q', self.service_name])
        return len([line for line in output.splitlines() if line.strip()])

    def set_count(self, target: int) -> None:
        logging.info(f"Scaling {self.service_name} to {target} workers via docker compose")
        self._run(self._base_command() + ['up', '-d', '--no-recreate', '--scale', f"{self.service_name}={target}",
                                          self.service_name])
        logging.info(f"Updated {self.service_name} to {target} workers")
