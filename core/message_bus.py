"""
Message bus gateway.

Adapts the dispatcher to a publish/subscribe transport. Printers listen on
``printer/{device_id}/commands`` and report back on a status topic; the
gateway publishes DeviceCommands and turns inbound payloads into
StatusEvents for subscribed handlers.

CONNECTIVITY:
    - is_connected is a flag, never a live round-trip, so checking it
      cannot hang a request thread
    - publish() fails fast with TransportUnavailableError while
      disconnected; there is no outbound queue
    - RedisMessageBus reconnects on its own with bounded exponential
      backoff

THREADING (RedisMessageBus):
    Main Thread
    └── start() - first connection attempt, spawns listener
    MessageBus Thread (background)
    └── owns the PubSub object, polls for status messages,
        reconnects after transport loss
    Request Threads
    └── publish() through the shared (thread-safe) Redis client

Usage:
    gateway = RedisMessageBus("redis://localhost:6379/0")
    gateway.subscribe("printer/*/status", dispatcher.handle_status_event)
    gateway.start()

    gateway.publish("printer/dev-1/commands", command)

    gateway.stop()
"""

from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from fnmatch import fnmatchcase
from typing import Any, Callable, List, Optional, Tuple

import redis

from core.exceptions import MessageBusError, TransportUnavailableError
from models.messages import DeviceCommand, StatusEvent
from logging_config import get_logger, set_thread_name


# Module logger
logger = get_logger(__name__)

StatusHandler = Callable[[StatusEvent], None]


class MessageBusGateway(ABC):
    """
    Transport-independent part of the gateway.

    Keeps the subscription table and turns raw inbound payloads into
    StatusEvents. Subclasses provide connectivity and publishing.
    """

    def __init__(self):
        self._subscriptions: List[Tuple[str, StatusHandler]] = []
        self._subscriptions_lock = threading.Lock()

    @property
    @abstractmethod
    def is_connected(self) -> bool:
        """Whether publish() can currently reach the transport."""

    @abstractmethod
    def publish(self, topic: str, command: DeviceCommand) -> int:
        """
        Publish a device command.

        Raises:
            TransportUnavailableError: If the transport is not connected
            MessageBusError: For any other transport failure
        """

    def start(self) -> None:
        """Open the transport. Default: nothing to open."""

    def stop(self) -> None:
        """Close the transport. Default: nothing to close."""

    def subscribe(self, topic_pattern: str, handler: StatusHandler) -> None:
        """
        Register a handler for status events.

        Args:
            topic_pattern: Glob-style topic pattern, e.g. "printer/*/status"
            handler: Called once per inbound StatusEvent
        """
        with self._subscriptions_lock:
            self._subscriptions.append((topic_pattern, handler))
        logger.info(f"Subscribed handler to '{topic_pattern}'")

    @property
    def topic_patterns(self) -> List[str]:
        with self._subscriptions_lock:
            return list(dict.fromkeys(pattern for pattern, _ in self._subscriptions))

    def _handlers_for(self, topic: str, pattern: Optional[str]) -> List[StatusHandler]:
        with self._subscriptions_lock:
            if pattern is not None:
                return [h for p, h in self._subscriptions if p == pattern]
            return [h for p, h in self._subscriptions if fnmatchcase(topic, p)]

    def _deliver(self, topic: str, payload: Any, pattern: Optional[str] = None) -> int:
        """
        Parse an inbound payload and hand it to matching handlers.

        Malformed payloads are logged and dropped. A failing handler is
        logged and does not prevent delivery to the others.

        Returns:
            Number of handlers invoked
        """
        try:
            event = StatusEvent.from_payload(payload)
        except (ValueError, UnicodeDecodeError) as e:
            logger.warning(f"Dropping malformed status payload on '{topic}': {e}")
            return 0

        handlers = self._handlers_for(topic, pattern)
        if not handlers:
            logger.debug(f"No handler for status on '{topic}'")

        for handler in handlers:
            try:
                handler(event)
            except Exception as e:
                logger.error(
                    f"Status handler failed for job {event.job_id[:8]} on '{topic}': {e}",
                    exc_info=True
                )

        return len(handlers)


class RedisMessageBus(MessageBusGateway):
    """
    Gateway over Redis pub/sub.

    Commands go out with PUBLISH; status topics are consumed with
    PSUBSCRIBE on a background listener thread that owns the PubSub
    connection and reconnects after transport loss.

    Attributes:
        is_connected: Connectivity flag maintained by publish() and the listener
        is_running: Whether the listener thread is active
    """

    def __init__(
        self,
        redis_url: str = "redis://localhost:6379/0",
        socket_timeout: float = 5.0,
        reconnect_initial_seconds: float = 0.5,
        reconnect_max_seconds: float = 30.0,
        poll_interval_seconds: float = 1.0,
        client: Optional[redis.Redis] = None,
    ):
        """
        Initialize the gateway.

        Args:
            redis_url: Broker URL
            socket_timeout: Bound on every Redis socket operation
            reconnect_initial_seconds: First reconnect delay
            reconnect_max_seconds: Cap for the doubling reconnect delay
            poll_interval_seconds: Listener wait per poll (also the
                latency of stop() and of new subscriptions)
            client: Pre-built client (tests)

        Note:
            This does NOT connect - call start() to do that.
        """
        super().__init__()
        self._redis_url = redis_url
        self._client = client or redis.Redis.from_url(
            redis_url,
            decode_responses=True,
            encoding_errors="replace",
            socket_timeout=socket_timeout,
            socket_connect_timeout=socket_timeout,
        )
        self._reconnect_initial = reconnect_initial_seconds
        self._reconnect_max = reconnect_max_seconds
        self._poll_interval = poll_interval_seconds

        self._connected = threading.Event()
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._is_running = False

        # Owned by the listener thread only
        self._pubsub = None
        self._active_patterns: List[str] = []

        logger.info(f"RedisMessageBus initialized for {_safe_url(redis_url)}")

    @property
    def is_connected(self) -> bool:
        return self._connected.is_set()

    @property
    def is_running(self) -> bool:
        return self._is_running

    def start(self) -> None:
        """
        Connect and start the listener thread.

        A failed first connection is not fatal: the listener keeps
        retrying and publish() reports TransportUnavailableError meanwhile.
        Safe to call multiple times.
        """
        if self._is_running:
            logger.warning("RedisMessageBus already running")
            return

        try:
            self._client.ping()
            self._connected.set()
            logger.info(f"Connected to Redis: {_safe_url(self._redis_url)}")
        except redis.RedisError as e:
            logger.warning(f"Redis not reachable at startup, will keep retrying: {e}")

        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._listen_loop,
            name="MessageBus",
            daemon=True
        )
        self._is_running = True
        self._thread.start()

    def stop(self) -> None:
        """Stop the listener thread. Safe to call multiple times."""
        if not self._is_running:
            return

        logger.info("Stopping message bus listener...")
        self._stop_event.set()

        if self._thread and self._thread.is_alive():
            self._thread.join(timeout=self._poll_interval + 5.0)
            if self._thread.is_alive():
                logger.warning("Message bus listener did not stop cleanly")

        self._is_running = False
        self._thread = None
        self._connected.clear()
        logger.info("Message bus listener stopped")

    def publish(self, topic: str, command: DeviceCommand) -> int:
        """
        Publish a command with PUBLISH.

        Returns:
            Number of subscribers that received the message

        Raises:
            TransportUnavailableError: Not connected, or the connection
                dropped during the call
            MessageBusError: Any other Redis error
        """
        if not self._connected.is_set():
            raise TransportUnavailableError()

        try:
            receivers = self._client.publish(topic, command.to_json())
        except (redis.ConnectionError, redis.TimeoutError) as e:
            self._mark_disconnected(e)
            raise TransportUnavailableError(f"Message bus connection lost: {e}") from e
        except redis.RedisError as e:
            raise MessageBusError(f"Publish to '{topic}' failed: {e}", {"topic": topic}) from e

        if receivers == 0:
            logger.debug(f"No subscriber on '{topic}' for job {command.job_id[:8]}")
        return receivers

    # =========================================================================
    # LISTENER THREAD
    # =========================================================================

    def _listen_loop(self) -> None:
        """Connect, poll until failure, back off, repeat until stopped."""
        set_thread_name("MessageBus")
        logger.info("Message bus listener starting")

        delay = self._reconnect_initial
        attempts = 0

        while not self._stop_event.is_set():
            try:
                self._open_pubsub()
                if attempts:
                    logger.info(f"Reconnected to Redis after {attempts} attempt(s)")
                attempts = 0
                delay = self._reconnect_initial
                self._poll()
            except redis.RedisError as e:
                attempts += 1
                self._mark_disconnected(e)
                self._close_pubsub()

                if attempts == 1 or attempts % 10 == 0:
                    logger.warning(f"Redis unavailable (attempt {attempts}), retrying in {delay:.1f}s")
            except Exception as e:
                # Anything else (e.g. an undecodable frame) restarts the subscription
                attempts += 1
                logger.error(f"Message bus listener error, restarting in {delay:.1f}s: {e}", exc_info=True)
                self._mark_disconnected(e)
                self._close_pubsub()

            if self._stop_event.wait(timeout=delay):
                break
            delay = min(delay * 2, self._reconnect_max)

        self._close_pubsub()
        logger.info("Message bus listener exiting")

    def _open_pubsub(self) -> None:
        self._client.ping()
        self._pubsub = self._client.pubsub(ignore_subscribe_messages=True)
        self._active_patterns = []
        self._sync_patterns()
        self._connected.set()

    def _sync_patterns(self) -> None:
        """Subscribe to patterns registered since the last sync."""
        new_patterns = [p for p in self.topic_patterns if p not in self._active_patterns]
        if new_patterns:
            self._pubsub.psubscribe(*new_patterns)
            self._active_patterns.extend(new_patterns)
            logger.info(f"Listening on {', '.join(new_patterns)}")

    def _poll(self) -> None:
        while not self._stop_event.is_set():
            self._sync_patterns()

            if not self._connected.is_set():
                # publish() saw a failure; confirm the link before reopening the gate
                self._client.ping()
                self._connected.set()

            if not self._active_patterns:
                self._client.ping()
                self._stop_event.wait(timeout=self._poll_interval)
                continue

            message = self._pubsub.get_message(timeout=self._poll_interval)
            if message is None or message.get("type") != "pmessage":
                continue

            self._deliver(message["channel"], message["data"], pattern=message["pattern"])

    def _close_pubsub(self) -> None:
        if self._pubsub is None:
            return
        try:
            self._pubsub.close()
        except redis.RedisError as e:
            logger.debug(f"Error closing pubsub: {e}")
        self._pubsub = None
        self._active_patterns = []

    def _mark_disconnected(self, error: Exception) -> None:
        if self._connected.is_set():
            logger.error(f"Message bus disconnected: {error}")
        self._connected.clear()


class LocalMessageBus(MessageBusGateway):
    """
    In-process gateway for development and tests.

    Published commands are recorded instead of sent. Printers are
    simulated with inject_status(); transport loss with set_connected().
    Delivery is synchronous on the calling thread.
    """

    def __init__(self, connected: bool = True):
        super().__init__()
        self._connected = connected
        self._published: List[Tuple[str, DeviceCommand]] = []
        self._published_lock = threading.Lock()
        logger.info("LocalMessageBus initialized")

    @property
    def is_connected(self) -> bool:
        return self._connected

    @property
    def published(self) -> List[Tuple[str, DeviceCommand]]:
        """(topic, command) pairs in publish order."""
        with self._published_lock:
            return list(self._published)

    def set_connected(self, connected: bool) -> None:
        if connected != self._connected:
            logger.info(f"LocalMessageBus {'connected' if connected else 'disconnected'}")
        self._connected = connected

    def publish(self, topic: str, command: DeviceCommand) -> int:
        if not self._connected:
            raise TransportUnavailableError()

        with self._published_lock:
            self._published.append((topic, command))
        logger.debug(f"Recorded command for job {command.job_id[:8]} on '{topic}'")
        return 1

    def inject_status(self, topic: str, payload: Any) -> int:
        """
        Simulate a printer status report.

        Returns:
            Number of handlers invoked
        """
        return self._deliver(topic, payload)


def _safe_url(url: str) -> str:
    """Strip credentials from a broker URL for logging."""
    if "@" in url:
        scheme, _, rest = url.partition("://")
        return f"{scheme}://***@{rest.split('@')[-1]}"
    return url
