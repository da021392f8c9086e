# Overview: Service-layer operations for maintenance; retention purge and its scheduler.

from __future__ import annotations

import threading

from flask import Flask, current_app
from sqlalchemy import delete, select

from ..extensions import db
from ..models import Sale, SaleItem
from stockapp.time_utils import utcnow, years_before
from .concurrency import run_with_retry


def purge_sales_older_than(years: int | None = None) -> int:
    """
    Delete sales (and their items) older than `years` years.

    Items are deleted explicitly in the same transaction so the purge does
    not depend on the backend enforcing ON DELETE CASCADE.
    """
    if years is None:
        years = int(current_app.config.get("SALES_RETENTION_YEARS", 3))
    if years < 1:
        raise ValueError("years must be >= 1")

    cutoff = years_before(utcnow(), years)

    def _op():
        old_sale_ids = select(Sale.id).where(Sale.sale_date < cutoff)
        db.session.execute(
            delete(SaleItem)
            .where(SaleItem.sale_id.in_(old_sale_ids))
            .execution_options(synchronize_session=False)
        )
        deleted = db.session.execute(
            delete(Sale)
            .where(Sale.sale_date < cutoff)
            .execution_options(synchronize_session=False)
        ).rowcount
        db.session.commit()
        return deleted

    deleted = run_with_retry(_op)
    current_app.logger.info("Purged %d sale(s) older than %d year(s)", deleted, years)
    return deleted


class MaintenanceScheduler:
    """
    Runs housekeeping tasks periodically on a daemon thread.

    Each run happens inside its own app context. A failing task is logged
    and the loop keeps going; nothing propagates to the interactive side.
    """

    def __init__(self, app: Flask, *, interval_seconds: float | None = None, tasks=None):
        self.app = app
        self.interval_seconds = (
            interval_seconds
            if interval_seconds is not None
            else app.config.get("MAINTENANCE_INTERVAL_SECONDS", 86400)
        )
        self.tasks = list(tasks) if tasks is not None else [purge_sales_older_than]
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None
        self.runs = 0
        self.failures = 0

    def run_once(self) -> None:
        with self.app.app_context():
            try:
                for task in self.tasks:
                    try:
                        task()
                    except Exception:
                        self.failures += 1
                        self.app.logger.exception(
                            "Maintenance task %s failed", getattr(task, "__name__", task)
                        )
            finally:
                db.session.remove()
        self.runs += 1

    def _loop(self) -> None:
        while not self._stop.is_set():
            self.run_once()
            self._stop.wait(self.interval_seconds)

    def start(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._loop, name="maintenance", daemon=True)
        self._thread.start()

    def stop(self, timeout: float | None = 5.0) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()
