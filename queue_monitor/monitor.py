import dataclasses
import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from enum import Enum
from typing import Any, Optional

from queue_monitor.config import MonitorConfig, validate_config, mask_url
from queue_monitor.exceptions import BrokerDepthReadError, ExecutorError, InvalidConfig
from queue_monitor.executors.base import ScalingExecutor
from queue_monitor.executors.simulated import SimulatedExecutor
from queue_monitor.scaler import ScalingDecision, HOLD, clamp_worker_count, decide


class MonitorPhase(str, Enum):
    STOPPED = 'stopped'
    STARTING = 'starting'
    RUNNING = 'running'
    RECONNECTING = 'reconnecting'
    STOPPING = 'stopping'


class PollTimer:
    """
    Fixed-rate schedule for ticks.

    Firings that fall inside an overrunning tick are dropped rather than
    queued, so ticks never pile up or overlap.
    """

    def __init__(self, interval: float):
        self.interval = interval
        self._cancelled = threading.Event()
        self._next = time.monotonic() + interval

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def cancel(self):
        self._cancelled.set()

    def wait(self) -> Optional[int]:
        """
        Block until the next firing.

        Returns:
            int: Number of firings dropped because the previous tick overran,
                 or None if the timer was cancelled
        """
        now = time.monotonic()
        missed = 0
        if now > self._next:
            missed = int((now - self._next) // self.interval) + 1
            self._next += missed * self.interval
        if self._cancelled.wait(max(0.0, self._next - now)):
            return None
        self._next += self.interval
        return missed


@dataclasses.dataclass
class MonitorState:
    """Mutable state of one QueueMonitor. Only the monitor itself writes to it."""
    current_worker_count: int
    phase: MonitorPhase = MonitorPhase.STOPPED
    is_running: bool = False
    connection: Any = None
    channel: Any = None
    poll_timer: Optional[PollTimer] = None
    ticks: int = 0
    failed_ticks: int = 0
    skipped_ticks: int = 0
    last_total_messages: Optional[int] = None
    last_decision: Optional[ScalingDecision] = None


class QueueMonitor:
    """
    Poll queue depths and scale workers to match the backlog.

    start() launches a supervisor thread that connects to the broker, keeps
    the workers at or above min_workers, and runs one tick per poll interval.
    If the connection is lost or cannot be opened, the supervisor waits
    reconnect_delay and tries again, for as long as the monitor is not stopped.

    Args:
        config: Monitor configuration; validated here
        reader: Broker depth reader (see queue_monitor.queue_metrics)
        executor: Scaling executor. Ignored in simulated mode, where the
                  worker count is only tracked in memory.

    Raises:
        InvalidConfig: If the configuration is unusable or an executor is
                       missing while scaling is enabled
    """

    def __init__(self, config: MonitorConfig, reader, executor: ScalingExecutor = None):
        self.config = validate_config(config)
        if config.scaling_enabled:
            if executor is None:
                raise InvalidConfig("A scaling executor is required when scaling is enabled")
            self._executor = executor
        else:
            self._executor = SimulatedExecutor(config.min_workers)

        self._reader = reader
        self._reader.add_close_listener(self._on_connection_closed)

        self._state = MonitorState(current_worker_count=config.min_workers)
        self._lock = threading.RLock()
        self._tick_lock = threading.Lock()
        self._stop_requested = threading.Event()
        self._running = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def executor(self) -> ScalingExecutor:
        return self._executor

    @property
    def phase(self) -> MonitorPhase:
        with self._lock:
            return self._state.phase

    @property
    def is_running(self) -> bool:
        with self._lock:
            return self._state.is_running

    @property
    def current_worker_count(self) -> int:
        with self._lock:
            return self._state.current_worker_count

    def snapshot(self) -> MonitorState:
        """Return a copy of the current state."""
        with self._lock:
            return dataclasses.replace(self._state)

    def wait_until_running(self, timeout: float = None) -> bool:
        return self._running.wait(timeout)

    def start(self):
        """
        Start monitoring in a background thread.

        Does nothing if already started, or if a previous stop() timed out and
        its supervisor has not exited yet.
        """
        with self._lock:
            if self._thread is not None and self._thread.is_alive():
                if self._stop_requested.is_set():
                    # One supervisor at a time: the stopped one still has a tick in flight
                    logging.warning("Queue monitor service is still stopping, start() ignored")
                else:
                    logging.info("Queue monitor service is already running")
                return
            self._stop_requested.clear()
            self._state.phase = MonitorPhase.STARTING
            self._thread = threading.Thread(target=self._supervise, name='queue-monitor', daemon=True)
            thread = self._thread

        logging.info(f"Starting queue monitor service for {mask_url(self.config.broker_url)}, "
                     f"queues: {', '.join(self.config.queues)}")
        logging.info(f"Scaling mode: {'enabled' if self.config.scaling_enabled else 'simulated'}")
        thread.start()

    def stop(self, timeout: float = None):
        """
        Stop monitoring and close the broker connection.

        Safe to call in any phase and never raises. An in-flight tick is not
        interrupted; the connection is closed once it settles, or after
        timeout seconds if given.
        """
        with self._lock:
            thread = self._thread
            if thread is None and self._state.phase == MonitorPhase.STOPPED:
                logging.info("Queue monitor service is not running")
                return
            logging.info("Stopping queue monitor service...")
            self._state.phase = MonitorPhase.STOPPING
            self._stop_requested.set()
            self._clear_timer()
            self._state.is_running = False
            self._running.clear()

        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout)
            if thread.is_alive():
                logging.warning("In-flight tick did not settle before the stop timeout, closing connection anyway")

        self._close_resources()
        with self._lock:
            self._state.phase = MonitorPhase.STOPPED
            if self._thread is thread and not thread.is_alive():
                self._thread = None
        logging.info("Queue monitor service stopped")

    def tick(self) -> Optional[ScalingDecision]:
        """
        Run one poll-decide-act cycle.

        Errors are logged and never propagate. Only one tick runs at a time;
        a call made while another tick is in flight is skipped.

        Returns:
            ScalingDecision: The decision taken (HOLD if depths could not be read),
                             or None if the tick was skipped or the monitor is not running
        """
        if not self._tick_lock.acquire(blocking=False):
            with self._lock:
                self._state.skipped_ticks += 1
            logging.warning("Previous queue check still in flight, skipping this one")
            return None
        try:
            return self._check_queue_depths()
        except Exception as e:
            logging.error(f"Unexpected error checking queue depths: {e}", exc_info=True)
            with self._lock:
                self._state.failed_ticks += 1
            return None
        finally:
            self._tick_lock.release()

    def ensure_minimum_workers(self):
        """
        Bring the actual worker count into [min_workers, max_workers].

        The count is read from the executor rather than assumed from config.
        """
        try:
            actual = self._executor.current_count()
        except ExecutorError as e:
            logging.error(f"Error reading current worker count: {e}")
            return

        with self._lock:
            self._state.current_worker_count = actual
        logging.info(f"Current worker count: {actual}")

        if actual < self.config.min_workers:
            self._scale_to(actual, self.config.min_workers)
        elif actual > self.config.max_workers:
            logging.warning(f"Worker count {actual} exceeds max_workers ({self.config.max_workers})")
            self._scale_to(actual, self.config.max_workers)

    def _supervise(self):
        try:
            self._supervise_until_stopped()
        finally:
            self._close_resources()
            with self._lock:
                if self._thread is threading.current_thread():
                    self._thread = None

    def _supervise_until_stopped(self):
        while not self._stop_requested.is_set():
            try:
                if self._attempt_start():
                    self._poll_until_interrupted()
            except Exception as e:
                logging.error(f"Unexpected error in queue monitor supervisor: {e}", exc_info=True)
                with self._lock:
                    self._clear_timer()
                    self._state.is_running = False
                    self._running.clear()
            if self._stop_requested.is_set():
                break
            logging.info(f"Queue monitor: attempting to reconnect in {self.config.reconnect_delay} seconds...")
            if self._stop_requested.wait(self.config.reconnect_delay):
                break

    def _attempt_start(self) -> bool:
        with self._lock:
            if self._stop_requested.is_set():
                return False
            self._state.phase = MonitorPhase.STARTING

        try:
            self._reader.connect()
            for queue_name in self.config.queues:
                self._reader.declare(queue_name)
        except Exception as e:
            logging.error(f"Error starting queue monitor service: {e}", exc_info=True)
            self._close_resources()
            return False

        timer = PollTimer(self.config.poll_interval)
        with self._lock:
            if self._stop_requested.is_set():
                return False
            self._state.connection = self._reader.connection
            self._state.channel = self._reader.channel
            self._state.is_running = True
            self._state.poll_timer = timer

        try:
            self.ensure_minimum_workers()
        except Exception as e:
            logging.error(f"Error ensuring minimum workers: {e}", exc_info=True)
            with self._lock:
                if self._state.poll_timer is timer:
                    self._clear_timer()
            self._close_resources()
            return False

        with self._lock:
            if self._state.poll_timer is not timer:
                # Stopped or disconnected while ensuring minimum workers
                return False
            self._state.phase = MonitorPhase.RUNNING
            self._running.set()
        logging.info("Queue monitor service started successfully")
        return True

    def _poll_until_interrupted(self):
        while True:
            with self._lock:
                timer = self._state.poll_timer
            if timer is None:
                return
            missed = timer.wait()
            if missed is None:
                return
            if missed:
                with self._lock:
                    self._state.skipped_ticks += missed
                logging.warning(f"Queue check overran the poll interval, skipped {missed} tick(s)")
            self.tick()

    def _check_queue_depths(self) -> Optional[ScalingDecision]:
        with self._lock:
            if not self._state.is_running:
                logging.debug("Queue monitor is not running, nothing to check")
                return None
            current_worker_count = self._state.current_worker_count
            self._state.ticks += 1

        try:
            total_messages = self._read_total_messages()
        except BrokerDepthReadError as e:
            logging.error(f"Error checking queue depths: {e}")
            with self._lock:
                self._state.failed_ticks += 1
            return HOLD

        logging.info(f"Total messages across all queues: {total_messages}")
        decision = decide(total_messages, current_worker_count, self.config)
        with self._lock:
            self._state.last_total_messages = total_messages
            self._state.last_decision = decision

        if decision.is_hold:
            logging.info(f"No scaling needed. Current workers: {current_worker_count}, messages: {total_messages}")
            return decision

        self._scale_to(current_worker_count, decision.apply(current_worker_count, self.config))
        return decision

    def _read_total_messages(self) -> int:
        queues = self.config.queues
        if len(queues) == 1:
            return self._reader.depth_of(queues[0])
        with ThreadPoolExecutor(max_workers=len(queues), thread_name_prefix='depth-reader') as pool:
            return sum(pool.map(self._reader.depth_of, queues))

    def _scale_to(self, current: int, target: int) -> bool:
        target = clamp_worker_count(target, self.config)
        direction = 'up' if target > current else 'down'
        logging.info(f"Scaling {direction}: {current} -> {target} workers")
        try:
            self._executor.set_count(target)
        except ExecutorError as e:
            logging.error(f"Error scaling {direction} workers: {e}")
            return False

        with self._lock:
            self._state.current_worker_count = target
        logging.info(f"New worker count: {target}")
        return True

    def _on_connection_closed(self, cause):
        with self._lock:
            if self._state.phase in (MonitorPhase.STOPPING, MonitorPhase.STOPPED):
                return
            self._clear_timer()
            self._state.is_running = False
            self._state.connection = None
            self._state.channel = None
            self._state.phase = MonitorPhase.RECONNECTING
            self._running.clear()
        logging.error(f"Queue monitor: broker connection closed: {cause}")

    def _clear_timer(self):
        timer, self._state.poll_timer = self._state.poll_timer, None
        if timer is not None:
            timer.cancel()

    def _close_resources(self):
        try:
            self._reader.close()
        except Exception as e:
            logging.error(f"Error closing connection: {e}")
        with self._lock:
            self._state.connection = None
            self._state.channel = None
            self._state.is_running = False
