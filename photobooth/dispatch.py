
"""
Single-threaded coordination context.

The booth keeps all of its mutable pipeline state (session state, the
capture-in-progress flag, the pipeline-active flag) on one thread. Work from
other threads (hardware callbacks, the pipeline worker) is handed to that
thread with :meth:`Dispatcher.submit`, which returns a
:class:`concurrent.futures.Future` for the result.
"""

from __future__ import annotations

import logging
import queue
import threading
from concurrent.futures import Future
from typing import Any, Callable, Optional, Tuple

_STOP = object()


class Dispatcher:
    """Runs submitted callables one at a time on a dedicated thread."""

    def __init__(self, name: str = 'Coordinator') -> None:
        self.name = name
        self._queue: 'queue.Queue[Any]' = queue.Queue()
        self._thread: Optional[threading.Thread] = None
        self._lock = threading.Lock()
        self._closing = False
        self.logger = logging.getLogger(__name__)

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive() and not self._closing

    def in_context(self) -> bool:
        """True when called from the dispatcher thread itself."""
        return self._thread is not None and threading.current_thread() is self._thread

    def start(self) -> None:
        with self._lock:
            if self.is_running:
                return
            self._closing = False
            self._thread = threading.Thread(name=self.name, target=self._loop)
            self._thread.daemon = True
            self._thread.start()

    def stop(self, timeout: float = 5.0) -> None:
        """Finish queued work, then stop the thread.

        Submissions are refused from the moment this is called.
        """
        with self._lock:
            thread = self._thread
            if thread is None or self._closing:
                return
            self._closing = True
            self._queue.put(_STOP)
        if thread is not threading.current_thread():
            thread.join(timeout=timeout)
        self._thread = None

    def _loop(self) -> None:
        while True:
            item = self._queue.get()
            if item is _STOP:
                break
            future, fn, args, kwargs = item
            if not future.set_running_or_notify_cancel():
                continue
            try:
                result = fn(*args, **kwargs)
            except BaseException as exc:
                future.set_exception(exc)
            else:
                future.set_result(result)
        self._fail_pending()

    def _fail_pending(self) -> None:
        while True:
            try:
                item = self._queue.get_nowait()
            except queue.Empty:
                return
            if item is _STOP:
                continue
            future = item[0]
            if future.set_running_or_notify_cancel():
                future.set_exception(RuntimeError(f'Dispatcher {self.name} stopped before running this task'))

    def submit(self, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> Future:
        """Queue ``fn(*args, **kwargs)`` on the dispatcher thread."""
        future: Future = Future()
        item: Tuple[Future, Callable[..., Any], tuple, dict] = (future, fn, args, kwargs)
        with self._lock:
            if not self.is_running:
                raise RuntimeError(f'Dispatcher {self.name} is not running')
            self._queue.put(item)
        return future

    def call(self, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
        """Run ``fn`` on the dispatcher thread and wait for its result.

        Runs inline when already on the dispatcher thread, which would
        otherwise deadlock waiting on itself.
        """
        if self.in_context():
            return fn(*args, **kwargs)
        return self.submit(fn, *args, **kwargs).result()
