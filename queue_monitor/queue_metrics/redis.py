import logging

import redis

from queue_monitor.exceptions import BrokerConnectError, BrokerDepthReadError, BrokerUnavailable


class RedisDepthReader:
    """
    Read queue depths from Redis list-based queues.

    Each watched queue name is a list key; its depth is the list length. A
    missing key is an empty queue, so declare() has nothing to create.
    The client's connection pool is thread-safe, so concurrent reads are not
    serialised.
    """

    def __init__(self, url: str, socket_timeout: float = 10.0):
        self._url = url
        self._socket_timeout = socket_timeout
        self._client = None
        self._close_listeners = []
        self._closed_notified = False

    @property
    def connection(self):
        return self._client

    @property
    def channel(self):
        # Redis has no separate session object
        return self._client

    def add_close_listener(self, callback):
        self._close_listeners.append(callback)

    def connect(self):
        self.close()
        client = redis.Redis.from_url(self._url, socket_timeout=self._socket_timeout,
                                      socket_connect_timeout=self._socket_timeout)
        try:
            client.ping()
        except redis.exceptions.RedisError as e:
            client.close()
            raise BrokerConnectError(f"Could not connect to Redis: {e}") from e
        self._client = client
        self._closed_notified = False
        logging.info("Connected to Redis")

    def declare(self, queue_name: str) -> int:
        client = self._client
        if client is None:
            raise BrokerUnavailable("Redis session unusable: not connected", queue_name)
        try:
            key_type = client.type(queue_name)
            if isinstance(key_type, bytes):
                key_type = key_type.decode()
            if key_type not in ('list', 'none'):
                raise BrokerDepthReadError(f"Redis key {queue_name} is a {key_type}, not a list", queue_name)
            return client.llen(queue_name)
        except redis.exceptions.ConnectionError as e:
            self._mark_closed(e)
            raise BrokerUnavailable(f"Redis connection lost while reading {queue_name}: {e}", queue_name) from e
        except redis.exceptions.RedisError as e:
            raise BrokerDepthReadError(f"Error reading {queue_name}: {e}", queue_name) from e

    def depth_of(self, queue_name: str) -> int:
        queue_length = self.declare(queue_name)
        logging.info(f"Queue {queue_name}: {queue_length} messages")
        return queue_length

    def close(self):
        client, self._client = self._client, None
        if client is None:
            return
        try:
            client.close()
        except Exception as e:
            logging.warning(f"Error closing Redis connection: {e}")

    def _mark_closed(self, cause):
        if self._closed_notified:
            return
        self._closed_notified = True
        logging.error(f"Redis connection closed: {cause}")
        for callback in list(self._close_listeners):
            try:
                callback(cause)
            except Exception as e:
                logging.error(f"Error in connection close listener: {e}", exc_info=True)
