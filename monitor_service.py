"""
Entry point for the queue-monitor container.
"""

# Configure logging first
from queue_monitor.common.logger import setup_logging

setup_logging()

import sys

from queue_monitor.main import run


if __name__ == '__main__':
    sys.exit(run())
