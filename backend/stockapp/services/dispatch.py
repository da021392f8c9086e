# Overview: Worker dispatch for store-touching operations, one in flight per resource.

from __future__ import annotations

import threading
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, Callable

from flask import Flask

from ..extensions import db


class BusyError(RuntimeError):
    """An operation for this resource is still in flight."""

    def __init__(self, resource: str):
        super().__init__(f"operation already in progress: {resource}")
        self.resource = resource


class WorkerDispatcher:
    """
    Runs blocking database work off the interactive thread.

    - One operation per resource key at a time (e.g. "checkout",
      "categories"); a second submit() while busy raises BusyError.
    - Each job runs inside its own app context and removes its scoped
      session afterwards.
    - The busy flag is released only after on_done has received the
      outcome, success or failure. Jobs are not cancellable.

    on_done(result, error) is called on the worker thread; UI collaborators
    marshal it to their own event loop.
    """

    def __init__(self, app: Flask, *, max_workers: int | None = None):
        self.app = app
        self.max_workers = max_workers or app.config.get("WORKER_THREADS", 4)
        self._executor = ThreadPoolExecutor(
            max_workers=self.max_workers,
            thread_name_prefix="store-worker",
        )
        self._lock = threading.Lock()
        self._busy: set[str] = set()

    def is_busy(self, resource: str) -> bool:
        with self._lock:
            return resource in self._busy

    def submit(
        self,
        resource: str,
        func: Callable[..., Any],
        *args,
        on_done: Callable[[Any, BaseException | None], None] | None = None,
        **kwargs,
    ) -> Future:
        with self._lock:
            if resource in self._busy:
                raise BusyError(resource)
            self._busy.add(resource)

        def _job():
            result = None
            error: BaseException | None = None
            try:
                with self.app.app_context():
                    try:
                        result = func(*args, **kwargs)
                    finally:
                        db.session.remove()
            except Exception as exc:
                error = exc

            try:
                if on_done is not None:
                    try:
                        on_done(result, error)
                    except Exception:
                        self.app.logger.exception("Completion callback for %s failed", resource)
            finally:
                with self._lock:
                    self._busy.discard(resource)

            if error is not None:
                raise error
            return result

        try:
            return self._executor.submit(_job)
        except Exception:
            with self._lock:
                self._busy.discard(resource)
            raise

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)
