# services/notifications/dedup.py
"""
Redis notification tracker.

Tracks which events have already been forwarded to the webhook. Lives outside
the state store, so it survives reindexes: when the state store is rebuilt
from genesis every event is replayed, and this tracker is what keeps the
webhook quiet.

Per scope (chain + contract) it stores:

- a high-water mark: the latest block a notification was sent for
- one short-lived key per notified event, for dedup inside the watermark block

Any Redis problem fails closed: ``should_notify`` returns False. A missed
notification is acceptable, a flood of duplicates on resync is not.
"""

import enum
import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional

import redis

EVENT_TTL_SECONDS = 60 * 60 * 24 * 30  # 30 days


def notification_scope(chain_id: int, contract_address: str) -> str:
    return f"{chain_id}:{contract_address.lower()}"


def _parse_watermark(raw) -> Optional[int]:
    if raw is None:
        return None
    watermark = int(raw)
    if watermark < 0:
        raise ValueError(f"negative watermark {watermark}")
    return watermark


class ConnectionState(enum.Enum):
    DISCONNECTED = "disconnected"
    CONNECTED = "connected"
    CIRCUIT_OPEN = "circuit_open"


@dataclass(frozen=True)
class NotificationStoreConfig:
    redis_url: str = "redis://localhost:6379"
    key_prefix: str = "belt:notifications"
    event_ttl_seconds: int = EVENT_TTL_SECONDS
    max_connect_attempts: int = 3
    retry_backoff_seconds: float = 0.2
    max_backoff_seconds: float = 2.0
    socket_timeout_seconds: float = 2.0
    # None: an open circuit stays open for the process lifetime
    circuit_reset_seconds: Optional[float] = None


class NotificationTracker:
    """
    Watermark + event cache per scope, with an explicit connection state
    machine: DISCONNECTED -> CONNECTED, or CIRCUIT_OPEN once the retry budget
    is spent. An open circuit stays open for the lifetime of the process
    unless ``circuit_reset_seconds`` is set, in which case the next call after
    that interval tries to connect again with a fresh retry budget.
    """

    def __init__(
        self,
        config: NotificationStoreConfig,
        logger: Optional[logging.Logger] = None,
        client_factory: Optional[Callable[[], redis.Redis]] = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.config = config
        self.logger = logger or logging.getLogger(__name__)
        self._client_factory = client_factory or self._default_client_factory
        self._sleep = sleep
        self._clock = clock

        self._client: Optional[redis.Redis] = None
        self._state = ConnectionState.DISCONNECTED
        self._consecutive_failures = 0
        self._circuit_opened_at: Optional[float] = None
        self._state_lock = threading.Lock()

        self._scope_locks: Dict[str, threading.Lock] = {}
        self._scope_locks_guard = threading.Lock()

    @property
    def state(self) -> ConnectionState:
        return self._state

    # -----------------------------
    # Keys
    # -----------------------------

    def watermark_key(self, scope: str) -> str:
        return f"{self.config.key_prefix}:{scope}:watermark"

    def event_key(self, scope: str, event_id: str) -> str:
        return f"{self.config.key_prefix}:{scope}:event:{event_id}"

    # -----------------------------
    # Public API
    # -----------------------------

    def should_notify(self, event_id: str, block_number: int, scope: str) -> bool:
        """
        Check if an event should be notified, and record it if so.

        Returns:
            True if the event is new (send it), False if it was already sent,
            is behind the watermark, or Redis is unavailable
        """
        client = self._get_client()
        if client is None:
            return False

        watermark_key = self.watermark_key(scope)
        event_key = self.event_key(scope, event_id)

        def check_and_record(pipe) -> bool:
            watermark = _parse_watermark(pipe.get(watermark_key))

            if watermark is not None:
                if block_number < watermark:
                    return False
                # Same block as watermark: check the individual event
                if block_number == watermark and pipe.exists(event_key):
                    return False

            pipe.multi()
            pipe.set(event_key, "1", ex=self.config.event_ttl_seconds)
            if watermark is None or block_number > watermark:
                pipe.set(watermark_key, str(block_number))
            return True

        try:
            with self._scope_lock(scope):
                decision = client.transaction(
                    check_and_record,
                    watermark_key,
                    event_key,
                    value_from_callable=True,
                )
        except (redis.ConnectionError, redis.TimeoutError) as exc:
            self._record_connection_failure(exc)
            return False
        except redis.RedisError as exc:
            self.logger.error(f"Redis error in should_notify for {event_id}: {exc}")
            return False
        except ValueError as exc:
            self.logger.error(f"Unreadable watermark for {scope}, skipping {event_id}: {exc}")
            return False

        with self._state_lock:
            self._consecutive_failures = 0
        return decision

    def get_watermark(self, scope: str) -> Optional[int]:
        """Current watermark for a scope (health checks / debugging)"""
        client = self._get_client()
        if client is None:
            return None

        try:
            raw = client.get(self.watermark_key(scope))
        except (redis.ConnectionError, redis.TimeoutError) as exc:
            self._record_connection_failure(exc)
            return None
        except redis.RedisError as exc:
            self.logger.error(f"Redis error reading watermark for {scope}: {exc}")
            return None

        try:
            return _parse_watermark(raw)
        except ValueError as exc:
            self.logger.error(f"Unreadable watermark for {scope}: {exc}")
            return None

    def close(self) -> None:
        with self._state_lock:
            if self._client is not None:
                try:
                    self._client.close()
                except redis.RedisError as exc:
                    self.logger.debug(f"Error closing Redis client: {exc}")
                self._client = None
            if self._state is ConnectionState.CONNECTED:
                self._state = ConnectionState.DISCONNECTED

    # -----------------------------
    # Connection state machine
    # -----------------------------

    def _default_client_factory(self) -> redis.Redis:
        return redis.Redis.from_url(
            self.config.redis_url,
            socket_timeout=self.config.socket_timeout_seconds,
            socket_connect_timeout=self.config.socket_timeout_seconds,
            decode_responses=True,
        )

    def _get_client(self) -> Optional[redis.Redis]:
        with self._state_lock:
            if self._state is ConnectionState.CIRCUIT_OPEN:
                if not self._circuit_reset_due():
                    return None
                self.logger.info("Retrying Redis connection after circuit reset interval")
                self._state = ConnectionState.DISCONNECTED
                self._consecutive_failures = 0
            if self._state is ConnectionState.CONNECTED:
                return self._client

            attempts = self.config.max_connect_attempts - self._consecutive_failures
            last_error: Optional[BaseException] = None
            for attempt in range(1, max(attempts, 1) + 1):
                try:
                    client = self._client or self._client_factory()
                    self._client = client
                    client.ping()
                # ValueError: malformed redis_url
                except (redis.RedisError, ValueError) as exc:
                    last_error = exc
                    self._consecutive_failures += 1
                    if self._consecutive_failures >= self.config.max_connect_attempts:
                        break
                    self._sleep(self._backoff(attempt))
                    continue

                self._state = ConnectionState.CONNECTED
                self._consecutive_failures = 0
                return client

            self._open_circuit(last_error)
            return None

    def _record_connection_failure(self, exc: BaseException) -> None:
        with self._state_lock:
            self._consecutive_failures += 1
            if self._consecutive_failures >= self.config.max_connect_attempts:
                self._open_circuit(exc)
            else:
                self.logger.warning(
                    f"Redis connection error ({self._consecutive_failures}/"
                    f"{self.config.max_connect_attempts}), skipping notification: {exc}"
                )
                self._state = ConnectionState.DISCONNECTED

    def _open_circuit(self, exc: Optional[BaseException]) -> None:
        # Caller holds _state_lock
        if self._state is ConnectionState.CIRCUIT_OPEN:
            return
        self._state = ConnectionState.CIRCUIT_OPEN
        self._circuit_opened_at = self._clock()
        if self.config.circuit_reset_seconds is None:
            scope_note = "notifications are disabled for this process"
        else:
            scope_note = f"retrying in {self.config.circuit_reset_seconds:g}s"
        self.logger.warning(
            f"Redis connection failed after {self.config.max_connect_attempts} attempts, "
            f"{scope_note}: {exc}"
        )

    def _circuit_reset_due(self) -> bool:
        if self.config.circuit_reset_seconds is None or self._circuit_opened_at is None:
            return False
        return self._clock() - self._circuit_opened_at >= self.config.circuit_reset_seconds

    def _backoff(self, attempt: int) -> float:
        return min(attempt * self.config.retry_backoff_seconds, self.config.max_backoff_seconds)

    def _scope_lock(self, scope: str) -> threading.Lock:
        with self._scope_locks_guard:
            lock = self._scope_locks.get(scope)
            if lock is None:
                lock = threading.Lock()
                self._scope_locks[scope] = lock
            return lock
