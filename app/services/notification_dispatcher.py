"""
Notification dispatcher: a bounded queue between the account flows and the
email notifier.

Account and OTP flows call enqueue() and move on; a single worker task drains
the queue and calls notifier.send(). Nothing that happens on the worker side
can reach the caller. A failed send is logged and counted; the already
committed account change stands.

Backpressure is explicit: when the queue is full enqueue() returns False and
the drop is logged, instead of piling up unbounded background work.

Lifecycle is owned by the FastAPI lifespan (start on startup, stop on shutdown).
"""
import asyncio
import concurrent.futures
import logging
from dataclasses import dataclass, field
from typing import Optional

from app.services.email_service import EmailNotifier

logger = logging.getLogger(__name__)


@dataclass
class Notification:
    destination: str
    purpose: str
    data: dict = field(default_factory=dict)


class NotificationDispatcher:
    def __init__(self, notifier: EmailNotifier, maxsize: int = 100, enqueue_timeout: float = 2.0):
        self.notifier = notifier
        self.maxsize = maxsize
        self.enqueue_timeout = enqueue_timeout
        self.sent = 0
        self.failed = 0
        self.dropped = 0
        self._queue: Optional[asyncio.Queue] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._worker: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._worker is not None and not self._worker.done()

    def start(self) -> None:
        """Must be called from inside the event loop that will run the worker."""
        if self.running:
            return
        self._loop = asyncio.get_running_loop()
        self._queue = asyncio.Queue(maxsize=self.maxsize)
        self._worker = self._loop.create_task(self._run(), name="notification-dispatcher")
        logger.info(f"Notification dispatcher started (queue size {self.maxsize})")

    async def stop(self, timeout: float = 5.0) -> None:
        if not self.running:
            return
        try:
            await asyncio.wait_for(self._queue.join(), timeout)
        except asyncio.TimeoutError:
            logger.warning(f"Dispatcher stopped with {self._queue.qsize()} notification(s) unsent")
        self._worker.cancel()
        try:
            await self._worker
        except asyncio.CancelledError:
            pass
        self._worker = None
        logger.info("Notification dispatcher stopped")

    async def drain(self) -> None:
        """Wait until everything queued so far has been handled."""
        if self._queue is not None:
            await self._queue.join()

    def enqueue(self, destination: str, purpose: str, data: Optional[dict] = None) -> bool:
        """
        Returns False when the notification was not accepted (dispatcher not
        running or queue full). Never blocks on a full queue.

        Safe to call from worker threads: the put runs on the dispatcher's loop
        and the caller waits (up to enqueue_timeout) for its outcome, so a drop
        is reported to sync handlers too.
        """
        if not self.running:
            logger.warning(f"Dispatcher not running; dropping {purpose} notification to {destination}")
            self.dropped += 1
            return False
        notification = Notification(destination, purpose, data or {})
        try:
            on_loop = asyncio.get_running_loop() is self._loop
        except RuntimeError:
            on_loop = False
        if on_loop:
            return self._put(notification)
        future = asyncio.run_coroutine_threadsafe(self._put_on_loop(notification), self._loop)
        try:
            return future.result(timeout=self.enqueue_timeout)
        except concurrent.futures.TimeoutError:
            if future.cancel():
                self.dropped += 1
                logger.warning(
                    f"Dispatcher loop did not answer in {self.enqueue_timeout}s; "
                    f"dropping {purpose} notification to {destination}"
                )
                return False
            # the put ran after all, between the timeout and the cancel
            return future.result()

    async def _put_on_loop(self, notification: Notification) -> bool:
        return self._put(notification)

    def _put(self, notification: Notification) -> bool:
        try:
            self._queue.put_nowait(notification)
        except asyncio.QueueFull:
            self.dropped += 1
            logger.warning(
                f"Notification queue full; dropping {notification.purpose} "
                f"notification to {notification.destination}"
            )
            return False
        return True

    async def _run(self) -> None:
        while True:
            notification = await self._queue.get()
            try:
                ok = await self.notifier.send(
                    notification.destination, notification.purpose, notification.data
                )
                if ok:
                    self.sent += 1
                else:
                    self.failed += 1
                    logger.warning(
                        f"{notification.purpose} notification to {notification.destination} was not delivered"
                    )
            except Exception:
                self.failed += 1
                logger.exception(f"Notifier crashed on {notification.purpose} notification")
            finally:
                self._queue.task_done()
