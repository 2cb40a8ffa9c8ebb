import logging
import signal
import sys
import threading
from urllib.parse import urlparse

from queue_monitor.aws.wrapper import AWSWrapper
from queue_monitor.common.logger import setup_logging
from queue_monitor.config import load_config, mask_url, MonitorConfig
from queue_monitor.exceptions import InvalidConfig
from queue_monitor.executors.base import ScalingExecutor
from queue_monitor.executors.compose import ComposeExecutor
from queue_monitor.executors.ecs import EcsExecutor
from queue_monitor.monitor import QueueMonitor

# Depth readers
from queue_monitor.queue_metrics.rabbitmq import RabbitMQDepthReader
from queue_monitor.queue_metrics.redis import RedisDepthReader


def build_depth_reader(config: MonitorConfig):
    """
    Create the depth reader matching the broker URL scheme.

    Raises:
        InvalidConfig: If the scheme is not supported
    """
    scheme = urlparse(config.broker_url).scheme.lower()

    if scheme in ('amqp', 'amqps'):
        return RabbitMQDepthReader(config.broker_url, durable=config.queue_durable)
    if scheme in ('redis', 'rediss'):
        return RedisDepthReader(config.broker_url)

    raise InvalidConfig(f"Unsupported broker URL scheme: {scheme!r}. Supported schemes: amqp, amqps, redis, rediss")


def build_executor(config: MonitorConfig) -> ScalingExecutor:
    """
    Create the scaling executor for the configured backend.

    Returns None in simulated mode, where the monitor keeps the count in memory.
    """
    if not config.scaling_enabled:
        return None

    if config.scaling_backend == 'ecs':
        if not config.cluster_name or not config.service_name:
            raise InvalidConfig("ECS_CLUSTER and WORKER_SERVICE must be configured for the ecs backend")
        aws_wrapper = AWSWrapper(
            sso_profile_name=config.sso_profile,
            region_name=config.region
        )
        return EcsExecutor(aws_wrapper, config.cluster_name, config.service_name)

    return ComposeExecutor(config.service_name, compose_file=config.compose_file)


def build_monitor(config: MonitorConfig) -> QueueMonitor:
    return QueueMonitor(config, build_depth_reader(config), build_executor(config))


def run(overrides=None) -> int:
    """
    Run the queue monitor until SIGTERM or SIGINT.

    Returns:
        int: Process exit code
    """
    logging.info("Queue monitor starter: initializing...")
    try:
        config = load_config(overrides)
        monitor = build_monitor(config)
    except InvalidConfig as e:
        logging.error(f"Invalid queue monitor configuration: {e}")
        return 2

    logging.info(f"Configuration: {config._replace(broker_url=mask_url(config.broker_url))}")

    shutdown = threading.Event()
    received = []

    def handle_signal(signum, frame):
        received.append(signal.Signals(signum).name)
        shutdown.set()

    signal.signal(signal.SIGTERM, handle_signal)
    signal.signal(signal.SIGINT, handle_signal)

    monitor.start()
    while not shutdown.wait(1.0):
        pass

    logging.info(f"Queue monitor starter: received {received[0]}, shutting down gracefully...")
    try:
        monitor.stop(timeout=30)
    except Exception as e:
        logging.error(f"Queue monitor starter: error during shutdown: {e}", exc_info=True)
        return 1
    logging.info("Queue monitor starter: shutdown complete")
    return 0


def main():
    setup_logging()
    sys.exit(run())
