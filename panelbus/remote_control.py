"""Remote control for WebSocket clients: per-control queue (thread-safe queue.Queue), drain task sends events via callback."""

import asyncio
import queue
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable, Dict

from panelbus.panel import Control
from panelbus.protocol import ws_event, ws_ts

# Sentinel to unblock drain_loop when stopping
_DRAIN_SENTINEL = (None, None)

DEFAULT_QUEUE_MAX_SIZE = 1024


class RemoteControl(Control):
    """Control whose signals are queued and drained to a client's send callback.

    ``notify`` only enqueues, so a slow client never stalls a publish. When the
    queue is full the oldest signal is dropped.

    Each drain loop waits on its own single-thread executor, so any number of
    attached controls can block in ``queue.get`` at once.
    """

    def __init__(self, name: str, queue_max_size: int = DEFAULT_QUEUE_MAX_SIZE) -> None:
        super().__init__(name)
        self._send_callback: Callable[[Dict[str, Any]], None] | None = None
        self._queue: queue.Queue = queue.Queue(maxsize=max(1, queue_max_size))
        self._drain_task: asyncio.Task | None = None
        self._executor: ThreadPoolExecutor | None = None
        self._closed = False
        self.dropped = 0

    def set_send_callback(self, callback: Callable[[Dict[str, Any]], None] | None) -> None:
        """Set or clear the callback that sends a JSON-serializable dict (e.g. WS event/info)."""
        self._send_callback = callback
        if callback is None:
            self.stop_drain()

    def pending(self) -> int:
        return self._queue.qsize()

    def notify(self, key: str, data: Any = None) -> None:
        """Enqueue (key, data) for the client. On queue full, drop oldest and enqueue new."""
        if self._closed:
            return
        try:
            self._queue.put((key, data), block=False)
        except queue.Full:
            try:
                dropped_key, _ = self._queue.get(block=False)
                self._queue.put((key, data), block=False)
                self.dropped += 1
                self._logger.warning(
                    "queue_full_dropped_oldest",
                    extra={"dropped_key": dropped_key, "control": self.name},
                )
            except (queue.Full, queue.Empty):
                self._logger.exception("queue_evict_failed", extra={"control": self.name})

    def flush(self) -> int:
        """Send everything queued right now through the callback; returns the count sent."""
        sent = 0
        while True:
            try:
                key, data = self._queue.get(block=False)
            except queue.Empty:
                return sent
            if key is None:
                continue
            self._send(key, data)
            sent += 1

    def _send(self, key: str, data: Any) -> None:
        if self._send_callback is not None:
            self._send_callback(ws_event(self.name, key, data, ws_ts()))
        self._logger.debug("event_sent", extra={"topic": key, "control": self.name})

    async def drain_loop(self) -> None:
        """Consume from the queue (blocking get in executor) and send events until closed."""
        loop = asyncio.get_running_loop()
        while not self._closed:
            try:
                key, data = await loop.run_in_executor(self._executor, self._queue.get)
                if key is None:
                    break
                self._send(key, data)
            except asyncio.CancelledError:
                break
            except Exception as e:
                self._logger.exception("drain_error", extra={"error": str(e)})

    def start_drain(self, loop: asyncio.AbstractEventLoop) -> None:
        """Start the drain task (idempotent). Call when send_callback is set."""
        if self._drain_task is not None and not self._drain_task.done():
            return
        self._closed = False
        if self._executor is None:
            self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix=f"drain-{self.name}")
        self._drain_task = loop.create_task(self.drain_loop())

    def stop_drain(self) -> None:
        """Unblock drain and mark closed. Puts sentinel so blocking queue.get() returns."""
        self._closed = True
        try:
            self._queue.put(_DRAIN_SENTINEL, block=False)
        except queue.Full:
            try:
                self._queue.get(block=False)
                self._queue.put(_DRAIN_SENTINEL, block=False)
            except (queue.Full, queue.Empty):
                self._logger.warning("drain_sentinel_not_queued", extra={"control": self.name})
        if self._drain_task is not None:
            self._drain_task.cancel()
            self._drain_task = None
        if self._executor is not None:
            self._executor.shutdown(wait=False)
            self._executor = None
