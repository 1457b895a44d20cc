"""
Cooperative cancellation for background queries.

A `CancellableTask` pairs the outcome of work running on a background
thread with an independent cancel capability. Cancelling runs the
registered cancel callbacks (for a query, a server-side KILL issued on
another connection) and fixes the outcome: once cancelled, the task fails
with `QueryCancelledError` even if the work later returns a result or
raises a different error.
"""
import logging
import threading
from collections.abc import Callable
from concurrent.futures import Future
from typing import Any

from mysql_driver.exceptions import QueryCancelledError

logger = logging.getLogger(__name__)

__all__ = ['CancellableTask', 'cancel_combinator']


class CancellableTask:
    """Outcome of background work plus a cancel handle.
    """

    def __init__(self, name: str | None = None) -> None:
        self.name = name or 'cancellable-task'
        self._future: Future = Future()
        self._lock = threading.Lock()
        self._cancelled = False
        self._callbacks: list[Callable[[], Any]] = []

    def __repr__(self) -> str:
        if self._cancelled:
            state = 'cancelled'
        elif self._future.done():
            state = 'done'
        else:
            state = 'running'
        return f'<CancellableTask {self.name} {state}>'

    def start(self, fn: Callable, *args: Any, **kwargs: Any) -> 'CancellableTask':
        """Run `fn(*args, **kwargs)` on a daemon thread.
        """
        thread = threading.Thread(target=self._run, args=(fn, args, kwargs),
                                  name=self.name, daemon=True)
        thread.start()
        return self

    def _run(self, fn, args, kwargs) -> None:
        try:
            result = fn(*args, **kwargs)
        except BaseException as err:
            self._settle(error=err)
        else:
            self._settle(result=result)

    def _settle(self, result: Any = None, error: BaseException | None = None) -> None:
        with self._lock:
            if self._cancelled:
                if isinstance(error, QueryCancelledError):
                    self._future.set_exception(error)
                    return
                cancelled = QueryCancelledError()
                cancelled.__cause__ = error
                if result is not None:
                    logger.debug(f'{self.name}: discarding result that arrived after cancel')
                self._future.set_exception(cancelled)
            elif error is not None:
                self._future.set_exception(error)
            else:
                self._future.set_result(result)

    @property
    def cancelled(self) -> bool:
        """True once cancellation was requested.
        """
        return self._cancelled

    def done(self) -> bool:
        return self._future.done()

    def result(self, timeout: float | None = None) -> Any:
        """Block until the work finishes and return its result.

        Raises
            QueryCancelledError: The task was cancelled
            TimeoutError: `timeout` elapsed first
        """
        return self._future.result(timeout)

    def exception(self, timeout: float | None = None) -> BaseException | None:
        return self._future.exception(timeout)

    def add_done_callback(self, fn: Callable[['CancellableTask'], Any]) -> None:
        self._future.add_done_callback(lambda _: fn(self))

    def add_cancel_callback(self, fn: Callable[[], Any]) -> None:
        self._callbacks.append(fn)

    def remove_cancel_callback(self, fn: Callable[[], Any]) -> None:
        try:
            self._callbacks.remove(fn)
        except ValueError:
            pass

    def cancel(self) -> bool:
        """Request cancellation.

        Runs the registered cancel callbacks in the calling thread; an error
        from a callback propagates to the caller after the task is marked
        cancelled.

        Returns
            False if the task had already finished or been cancelled
        """
        with self._lock:
            if self._cancelled or self._future.done():
                return False
            self._cancelled = True
            callbacks = list(self._callbacks)
        logger.debug(f'{self.name}: cancel requested')
        for callback in callbacks:
            callback()
        return True


def cancel_combinator(fn: Callable[[Callable[[CancellableTask], Any]], Any],
                      name: str | None = None) -> CancellableTask:
    """Run a sequence of cancellable steps as one task.

    `fn` receives `save_cancel`; each step is passed through it:

        def steps(save_cancel):
            save_cancel(driver.submit_query('...'))
            return save_cancel(driver.submit_query('...'))

    `save_cancel(sub_task)` waits for the sub-task and returns its result.
    Cancelling the combined task cancels whichever sub-task is running, and
    any sub-task saved afterwards is cancelled immediately.
    """
    task = CancellableTask(name=name or 'cancel-combinator')
    lock = threading.Lock()
    current: list[CancellableTask] = []

    def cancel_current():
        with lock:
            running = list(current)
        for sub_task in running:
            sub_task.cancel()

    def save_cancel(sub_task: CancellableTask) -> Any:
        with lock:
            current.append(sub_task)
        try:
            if task.cancelled:
                sub_task.cancel()
            return sub_task.result()
        finally:
            with lock:
                current.remove(sub_task)

    task.add_cancel_callback(cancel_current)
    return task.start(fn, save_cancel)
