# services/notifications/webhook.py
"""
Fire-and-forget webhook delivery.

Ingestion hands notifications to ``WebhookNotifier.submit`` which only puts
them on a bounded queue. A single worker thread consumes the queue in order:
dedup check, render, then POST in batches of at most ``batch_size`` embeds,
pausing ``batch_interval`` seconds between consecutive batches to stay under
the sink's rate limit. Failed deliveries are logged and dropped.
"""

import logging
import queue
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Union

import httpx

from belt_indexer.constants import EXPLORER_URL
from belt_indexer.services.aggregation import AccountSnapshot
from .dedup import NotificationTracker
from .render import DeployInfo, UserOpInfo, build_deploy_embed, build_user_op_embed

MAX_EMBEDS_PER_MESSAGE = 10  # Discord limit

_STOP = object()


@dataclass(frozen=True)
class Notification:
    event_id: str
    scope: str
    block_number: int
    subject: Union[UserOpInfo, DeployInfo]
    wallet: Optional[AccountSnapshot] = None

    def render(self, explorer_url: str = EXPLORER_URL) -> Dict[str, Any]:
        if isinstance(self.subject, DeployInfo):
            return build_deploy_embed(self.subject, explorer_url)
        return build_user_op_embed(self.subject, self.wallet, explorer_url)


class WebhookNotifier:
    """Background sender for Discord-compatible webhooks"""

    def __init__(
        self,
        webhook_url: Optional[str],
        tracker: NotificationTracker,
        logger: Optional[logging.Logger] = None,
        batch_size: int = MAX_EMBEDS_PER_MESSAGE,
        batch_interval: float = 1.0,
        queue_size: int = 1000,
        timeout: float = 10.0,
        username: str = "Belt Indexer",
        explorer_url: str = EXPLORER_URL,
        http_client: Optional[httpx.Client] = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
        autostart: bool = True,
    ):
        if not 1 <= batch_size <= MAX_EMBEDS_PER_MESSAGE:
            raise ValueError(
                f"batch_size must be between 1 and {MAX_EMBEDS_PER_MESSAGE}, got {batch_size}"
            )

        self.webhook_url = webhook_url
        self.tracker = tracker
        self.logger = logger or logging.getLogger(__name__)
        self.batch_size = batch_size
        self.batch_interval = batch_interval
        self.username = username
        self.explorer_url = explorer_url
        self._sleep = sleep
        self._clock = clock
        self._last_sent_at: Optional[float] = None

        self._owns_client = http_client is None
        self._http = http_client or httpx.Client(timeout=timeout)
        self._queue: "queue.Queue[Any]" = queue.Queue(maxsize=queue_size)
        self._worker: Optional[threading.Thread] = None
        self._worker_lock = threading.Lock()

        if autostart:
            self.start()

    @property
    def enabled(self) -> bool:
        return bool(self.webhook_url)

    def start(self) -> None:
        if not self.enabled:
            return
        with self._worker_lock:
            if self._worker is not None and self._worker.is_alive():
                return
            self._worker = threading.Thread(
                target=self._run, name="webhook-notifier", daemon=True
            )
            self._worker.start()

    def submit(self, notification: Notification) -> bool:
        """
        Queue a notification without blocking.

        Returns:
            True if queued, False if the notifier is disabled or the queue is full
        """
        if not self.enabled:
            return False

        try:
            self._queue.put_nowait(notification)
        except queue.Full:
            self.logger.warning(
                f"Notification queue full, dropping {notification.event_id}"
            )
            return False
        return True

    def flush(self, timeout: Optional[float] = None) -> bool:
        """
        Wait until every queued notification has been handled.

        Returns:
            True if the queue drained, False on timeout
        """
        deadline = None if timeout is None else time.monotonic() + timeout
        while self._queue.unfinished_tasks:
            if deadline is not None and time.monotonic() >= deadline:
                return False
            time.sleep(0.05)
        return True

    def close(self, timeout: Optional[float] = 30.0) -> None:
        if self._worker is not None and self._worker.is_alive():
            self.flush(timeout)
            self._queue.put(_STOP)
            self._worker.join(timeout)
        self._worker = None
        if self._owns_client:
            self._http.close()

    # -----------------------------
    # Worker
    # -----------------------------

    def _run(self) -> None:
        stopping = False
        while not stopping:
            item = self._queue.get()
            pulled = 1
            if item is _STOP:
                self._queue.task_done()
                break

            embeds: List[Dict[str, Any]] = []
            try:
                self._collect(item, embeds)
                while len(embeds) < self.batch_size:
                    try:
                        item = self._queue.get_nowait()
                    except queue.Empty:
                        break
                    pulled += 1
                    if item is _STOP:
                        stopping = True
                        break
                    self._collect(item, embeds)

                if embeds:
                    self._wait_for_pacing()
                    self.send_batch(embeds)
                    self._last_sent_at = self._clock()
            except Exception as exc:
                self.logger.error(f"Notification worker failed on a batch: {exc}")
            finally:
                for _ in range(pulled):
                    self._queue.task_done()

    def _wait_for_pacing(self) -> None:
        # Rate limit: at least batch_interval between consecutive POSTs
        if self._last_sent_at is None:
            return
        remaining = self.batch_interval - (self._clock() - self._last_sent_at)
        if remaining > 0:
            self._sleep(remaining)

    def _collect(self, notification: Notification, embeds: List[Dict[str, Any]]) -> None:
        if not self.tracker.should_notify(
            notification.event_id, notification.block_number, notification.scope
        ):
            self.logger.debug(f"Skipping already-notified event {notification.event_id}")
            return
        embeds.append(notification.render(self.explorer_url))

    def send_batch(self, embeds: List[Dict[str, Any]]) -> bool:
        """POST one message; failures are logged and dropped"""
        if not self.webhook_url or not embeds:
            return False

        try:
            response = self._http.post(
                self.webhook_url,
                json={"username": self.username, "embeds": embeds},
            )
        except httpx.HTTPError as exc:
            self.logger.error(f"Discord webhook error: {exc}")
            return False

        if not response.is_success:
            self.logger.error(
                f"Discord webhook failed: {response.status_code} {response.text[:200]}"
            )
            return False

        self.logger.info(f"Sent {len(embeds)} embed(s) to Discord")
        return True
