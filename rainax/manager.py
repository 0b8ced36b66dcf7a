"""Queue of downloads and scheduling of the workers that run them."""

from __future__ import annotations

import threading
from typing import Any, Callable, Optional, Protocol

from rainax.item import DownloadItem
from rainax.status import DownloadStatus

DEFAULT_MAX_CONCURRENT = 3

EVENT_ITEM_ADDED = "item_added"
EVENT_ITEM_UPDATED = "item_updated"
EVENT_QUEUE_CHANGED = "queue_changed"
EVENT_LOG = "log"

_ACTIVE = frozenset(
    {DownloadStatus.RUNNING, DownloadStatus.STARTING, DownloadStatus.CANCELLING}
)


class Worker(Protocol):
    """What the manager needs from a worker running one download."""

    def start(self) -> None: ...

    def request_pause(self) -> None: ...

    def request_cancel(self) -> None: ...


class DownloadManager:
    """Holds the download queue and keeps at most ``max_concurrent`` active.

    ``worker_factory(item)`` builds a worker for an item; workers report back
    through :meth:`on_progress`, :meth:`on_status`, :meth:`on_filename` and
    :meth:`on_log`.  ``on_event(name, payload)`` is told about changes, where
    ``name`` is one of ``item_added``, ``item_updated``, ``queue_changed`` or
    ``log``.  ``persist(items)`` is called whenever the queue should be saved.
    """

    def __init__(
        self,
        worker_factory: Callable[[DownloadItem], Worker],
        *,
        max_concurrent: int = DEFAULT_MAX_CONCURRENT,
        persist: Optional[Callable[[list[DownloadItem]], None]] = None,
        filename_filter: Optional[Callable[[str], str]] = None,
        on_event: Optional[Callable[[str, Any], None]] = None,
    ) -> None:
        self._worker_factory = worker_factory
        self.max_concurrent = max_concurrent
        self._persist = persist
        self._filename_filter = filename_filter or (lambda name: name)
        self._on_event = on_event
        self.queue: list[DownloadItem] = []
        self._workers: dict[str, Worker] = {}
        self._lock = threading.RLock()

    # ── public API ──────────────────────────────────────────────────────

    def add(self, item: DownloadItem) -> None:
        """Append an item, start it if a slot is free, and save the queue."""
        with self._lock:
            self.queue.append(item)
            self._emit(EVENT_ITEM_ADDED, item)
            self._try_start_next()
            self._save()

    def restore_item(self, item: DownloadItem) -> None:
        """Append a previously saved item without starting anything."""
        with self._lock:
            self.queue.append(item)

    def start_item(self, item_id: str) -> None:
        """Start or resume an item that is queued, failed or paused."""
        with self._lock:
            item = self.get_item(item_id)
            if item is None:
                return
            if item.status is DownloadStatus.PAUSED:
                self._resume(item)
            elif item.status in (DownloadStatus.QUEUED, DownloadStatus.FAILED):
                item.logs.clear()
                item.transition(DownloadStatus.QUEUED)
                self._launch(item)

    def pause_item(self, item_id: str) -> None:
        """Ask the worker of a running item to pause."""
        with self._lock:
            item = self.get_item(item_id)
            if item is None or item.status is not DownloadStatus.RUNNING:
                return
            worker = self._workers.get(item_id)
            if worker is None:
                return
            worker.request_pause()
            item.speed = ""
            item.eta = ""
            self._emit(EVENT_ITEM_UPDATED, item)

    def resume_item(self, item_id: str) -> None:
        """Relaunch a paused item."""
        with self._lock:
            item = self.get_item(item_id)
            if item is None or item.status is not DownloadStatus.PAUSED:
                return
            self._resume(item)

    def cancel_item(self, item_id: str) -> None:
        """Cancel an item, directly if idle or through its worker if active."""
        with self._lock:
            item = self.get_item(item_id)
            if item is None:
                return
            if item.status is DownloadStatus.QUEUED:
                item.transition(DownloadStatus.CANCELLED)
                self._emit(EVENT_ITEM_UPDATED, item)
                self._try_start_next()
                self._save()
                return
            if item.status is DownloadStatus.PAUSED:
                item.transition(DownloadStatus.CANCELLING)
                item.transition(DownloadStatus.CANCELLED)
                self._emit(EVENT_ITEM_UPDATED, item)
                self._save()
                return
            worker = self._workers.get(item_id)
            if worker is not None:
                item.transition(DownloadStatus.CANCELLING)
                self._emit(EVENT_ITEM_UPDATED, item)
                worker.request_cancel()

    def cancel_all(self) -> None:
        """Cancel every item that has not finished."""
        with self._lock:
            for item in list(self.queue):
                if not item.status.is_terminal():
                    self.cancel_item(item.id)

    def clear_finished(self) -> None:
        """Drop completed, failed and cancelled items from the queue."""
        with self._lock:
            self.queue = [i for i in self.queue if not i.status.is_terminal()]
            self._emit(EVENT_QUEUE_CHANGED, None)
            self._save()

    def url_in_queue(self, url: str) -> bool:
        """True if an unfinished item already downloads ``url``."""
        with self._lock:
            return any(
                item.url == url and not item.status.is_terminal()
                for item in self.queue
            )

    def get_item(self, item_id: str) -> Optional[DownloadItem]:
        """Return the item with ``item_id`` or None."""
        with self._lock:
            return next((i for i in self.queue if i.id == item_id), None)

    def running_count(self) -> int:
        """Number of items occupying a download slot."""
        with self._lock:
            return sum(1 for item in self.queue if item.status in _ACTIVE)

    # ── reports from workers ────────────────────────────────────────────

    def on_progress(
        self, item_id: str, percent: float, speed: str, eta: str, size: str
    ) -> None:
        """Record progress of a running item."""
        with self._lock:
            item = self.get_item(item_id)
            if item is None or item.status is not DownloadStatus.RUNNING:
                return
            item.progress = percent
            item.speed = speed
            item.eta = eta
            if size:
                item.filesize = size
            self._emit(EVENT_ITEM_UPDATED, item)

    def on_status(self, item_id: str, status: DownloadStatus) -> None:
        """Apply a status reported by a worker and reschedule as needed."""
        with self._lock:
            item = self.get_item(item_id)
            if item is not None:
                if (
                    item.status is DownloadStatus.CANCELLING
                    and status is DownloadStatus.FAILED
                ):
                    status = DownloadStatus.CANCELLED
                if not item.transition(status) and status.is_terminal():
                    item.status = status
                if status is DownloadStatus.COMPLETED:
                    item.progress = 100.0
                    item.speed = ""
                    item.eta = ""
                elif status is DownloadStatus.PAUSED:
                    item.speed = ""
                    item.eta = ""
                self._emit(EVENT_ITEM_UPDATED, item)

            if status.is_terminal() or status is DownloadStatus.PAUSED:
                self._workers.pop(item_id, None)
            if status.is_terminal():
                self._try_start_next()
            self._save()

    def on_filename(self, item_id: str, filename: str) -> None:
        """Record the output filename a worker discovered."""
        with self._lock:
            item = self.get_item(item_id)
            if item is None or not filename:
                return
            item.filename = self._filename_filter(filename)
            self._emit(EVENT_ITEM_UPDATED, item)
            self._save()

    def on_log(self, item_id: str, line: str) -> None:
        """Append a log line to an item and pass it on."""
        with self._lock:
            item = self.get_item(item_id)
            if item is not None:
                item.logs.append(line)
            self._emit(EVENT_LOG, (item_id, line))

    # ── internals ───────────────────────────────────────────────────────

    def _emit(self, name: str, payload: Any) -> None:
        if self._on_event is not None:
            self._on_event(name, payload)

    def _save(self) -> None:
        if self._persist is not None:
            self._persist(list(self.queue))

    def _try_start_next(self) -> None:
        while self.running_count() < self.max_concurrent:
            nxt = next(
                (i for i in self.queue if i.status is DownloadStatus.QUEUED), None
            )
            if nxt is None:
                break
            self._launch(nxt)

    def _launch(self, item: DownloadItem) -> None:
        if item.id in self._workers:
            return
        item.transition(DownloadStatus.STARTING)
        self._emit(EVENT_ITEM_UPDATED, item)
        worker = self._worker_factory(item)
        self._workers[item.id] = worker
        worker.start()

    def _resume(self, item: DownloadItem) -> None:
        if item.status is not DownloadStatus.PAUSED:
            return
        item.status = DownloadStatus.QUEUED
        item.logs.append("[RESUME] Resuming...\n")
        self._launch(item)