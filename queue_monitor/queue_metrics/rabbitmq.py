import logging
import threading

import pika
from pika.exceptions import AMQPChannelError, AMQPConnectionError, AMQPError

from queue_monitor.exceptions import BrokerConnectError, BrokerDepthReadError, BrokerUnavailable


class RabbitMQDepthReader:
    """
    Read queue depths from RabbitMQ over a single blocking connection.

    The blocking channel is not thread-safe, so concurrent depth_of calls
    are serialised on an internal lock.
    """

    def __init__(self, url: str, durable: bool = True, connection_attempts: int = 1,
                 socket_timeout: float = 10.0):
        self._url = url
        self._durable = durable
        self._connection_attempts = connection_attempts
        self._socket_timeout = socket_timeout
        self._connection = None
        self._channel = None
        self._lock = threading.RLock()
        self._close_listeners = []
        self._closed_notified = False

    @property
    def connection(self):
        return self._connection

    @property
    def channel(self):
        return self._channel

    def add_close_listener(self, callback):
        """Register callback(cause) to run once when the connection is found closed."""
        self._close_listeners.append(callback)

    def connect(self):
        """
        Open the connection and a channel.

        Raises:
            BrokerConnectError: If the broker cannot be reached
        """
        with self._lock:
            self.close()
            try:
                params = pika.URLParameters(self._url)
                params.connection_attempts = self._connection_attempts
                params.socket_timeout = self._socket_timeout
                self._connection = pika.BlockingConnection(params)
                self._channel = self._connection.channel()
            except (AMQPError, OSError) as e:
                self.close()
                raise BrokerConnectError(f"Could not connect to RabbitMQ: {e}") from e
            self._closed_notified = False
            logging.info("Connected to RabbitMQ")

    def declare(self, queue_name: str) -> int:
        """Declare the queue if it is absent and return its ready message count."""
        with self._lock:
            channel = self._ensure_channel(queue_name)
            try:
                queue_info = channel.queue_declare(queue=queue_name, durable=self._durable)
            except AMQPConnectionError as e:
                self._mark_closed(e)
                raise BrokerUnavailable(f"RabbitMQ connection lost while reading {queue_name}: {e}",
                                        queue_name) from e
            except AMQPChannelError as e:
                # The broker closes the channel on errors such as a durability mismatch
                self._channel = None
                raise BrokerDepthReadError(f"Channel error while reading {queue_name}: {e}", queue_name) from e
            except AMQPError as e:
                raise BrokerDepthReadError(f"Error reading {queue_name}: {e}", queue_name) from e
            return queue_info.method.message_count

    def depth_of(self, queue_name: str) -> int:
        message_count = self.declare(queue_name)
        logging.info(f"Queue {queue_name}: {message_count} messages")
        return message_count

    def close(self):
        """Close the connection. Never raises."""
        with self._lock:
            connection, self._connection, self._channel = self._connection, None, None
            if connection is None:
                return
            try:
                if connection.is_open:
                    connection.close()
            except Exception as e:
                logging.warning(f"Error closing RabbitMQ connection: {e}")

    def _ensure_channel(self, queue_name):
        if self._connection is None or not self._connection.is_open:
            cause = 'connection is closed' if self._connection is not None else 'not connected'
            if self._connection is not None:
                self._mark_closed(cause)
            raise BrokerUnavailable(f"RabbitMQ session unusable: {cause}", queue_name)

        if self._channel is None or not self._channel.is_open:
            try:
                self._channel = self._connection.channel()
                logging.info("Reopened RabbitMQ channel")
            except AMQPConnectionError as e:
                self._mark_closed(e)
                raise BrokerUnavailable(f"RabbitMQ connection lost: {e}", queue_name) from e
            except AMQPError as e:
                raise BrokerUnavailable(f"Could not reopen RabbitMQ channel: {e}", queue_name) from e
        return self._channel

    def _mark_closed(self, cause):
        self._channel = None
        if self._closed_notified:
            return
        self._closed_notified = True
        logging.error(f"RabbitMQ connection closed: {cause}")
        for callback in list(self._close_listeners):
            try:
                callback(cause)
            except Exception as e:
                logging.error(f"Error in connection close listener: {e}", exc_info=True)
