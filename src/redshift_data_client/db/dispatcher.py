from __future__ import annotations

from concurrent.futures import Future
from typing import Any, Callable, Optional, Set
import itertools
import queue
import threading

from redshift_data_client.exceptions.errors import ClientClosedError
from redshift_data_client.logging.logger import get_logger

log = get_logger("db.dispatcher")

_pool_ids = itertools.count(1)


class _WorkItem:
    __slots__ = ("future", "fn", "args", "kwargs")

    def __init__(self, future: Future, fn: Callable[..., Any], args: tuple, kwargs: dict):
        self.future = future
        self.fn = fn
        self.args = args
        self.kwargs = kwargs

    def run(self) -> None:
        if not self.future.set_running_or_notify_cancel():
            return
        try:
            result = self.fn(*self.args, **self.kwargs)
        except BaseException as exc:
            self.future.set_exception(exc)
            # Drop the reference cycle exc -> traceback -> frame -> self
            self = None
        else:
            self.future.set_result(result)


class StatementDispatcher:
    """Elastic pool of daemon threads that runs blocking Data API calls.

    Threads are started on demand when no worker is idle, reused while work
    keeps arriving and retire after ``keep_alive`` idle seconds. Unlike
    ``ThreadPoolExecutor`` the workers are daemons and are not joined at
    interpreter exit, so a long statement poll never holds the process open.

    ``max_workers=None`` leaves the pool unbounded; otherwise extra work queues
    until a worker frees up.
    """

    def __init__(
        self,
        max_workers: Optional[int] = None,
        keep_alive: float = 60.0,
        thread_name_prefix: str = "",
    ):
        if max_workers is not None and max_workers <= 0:
            raise ValueError("max_workers must be greater than 0")
        if keep_alive <= 0:
            raise ValueError("keep_alive must be greater than 0")
        self._max_workers = max_workers
        self._keep_alive = keep_alive
        self._prefix = thread_name_prefix or f"redshift-data-{next(_pool_ids)}"
        self._work: "queue.SimpleQueue[Optional[_WorkItem]]" = queue.SimpleQueue()
        self._lock = threading.Lock()
        self._threads: Set[threading.Thread] = set()
        self._thread_seq = itertools.count(1)
        # Both counters are guarded by _lock.
        self._queued = 0
        self._idle = 0
        self._shutdown = False

    @property
    def closed(self) -> bool:
        return self._shutdown

    @property
    def worker_count(self) -> int:
        with self._lock:
            return len(self._threads)

    def submit(self, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> Future:
        with self._lock:
            if self._shutdown:
                raise ClientClosedError("cannot schedule new work after the dispatcher was shut down")
            future: Future = Future()
            self._work.put(_WorkItem(future, fn, args, kwargs))
            self._queued += 1
            self._ensure_worker()
        return future

    def _ensure_worker(self) -> None:
        # Idle workers already parked on the queue will pick the item up.
        if self._queued <= self._idle:
            return
        if self._max_workers is not None and len(self._threads) >= self._max_workers:
            return
        t = threading.Thread(
            target=self._worker,
            name=f"{self._prefix}-worker-{next(self._thread_seq)}",
            daemon=True,
        )
        self._threads.add(t)
        t.start()

    def _worker(self) -> None:
        me = threading.current_thread()
        try:
            while True:
                with self._lock:
                    self._idle += 1
                try:
                    item = self._work.get(timeout=self._keep_alive)
                except queue.Empty:
                    with self._lock:
                        self._idle -= 1
                        # Work queued after the timeout fired still needs a taker.
                        if self._queued == 0:
                            self._threads.discard(me)
                            return
                    continue

                with self._lock:
                    self._idle -= 1
                    if item is not None:
                        self._queued -= 1
                if item is None:
                    # Shutdown sentinel
                    return
                item.run()
                del item
        finally:
            with self._lock:
                self._threads.discard(me)

    def shutdown(self, wait: bool = False, cancel_futures: bool = True) -> None:
        """Stop accepting work and release the workers.

        Pending (not yet started) work is cancelled unless ``cancel_futures`` is
        False, in which case the remaining workers drain it first. Running
        calls are not interrupted; owners signal them separately.
        """
        with self._lock:
            if self._shutdown:
                return
            self._shutdown = True
            threads = list(self._threads)

            if cancel_futures:
                while True:
                    try:
                        item = self._work.get_nowait()
                    except queue.Empty:
                        break
                    if item is not None:
                        self._queued -= 1
                        item.future.cancel()

            for _ in threads:
                self._work.put(None)

        log.debug("Dispatcher shut down", extra={"pool": self._prefix, "workers": len(threads)})
        if wait:
            for t in threads:
                if t is not threading.current_thread():
                    t.join()

    def __enter__(self) -> "StatementDispatcher":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.shutdown(wait=True, cancel_futures=False)
