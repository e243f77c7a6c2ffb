"""Signals and run loop shared by the ingestion and preview jobs."""

from __future__ import annotations

import logging
from threading import Event

from PySide6.QtCore import QObject, Signal

logger = logging.getLogger("themestore.workers")


class JobCancelled(Exception):
    """Raised from inside execute() once cancel() has been requested."""


class BaseWorker(QObject):
    """Batch job over archives or themes that reports per-item progress.

    Subclasses implement execute() and return the payload for finished. They
    call checkpoint() between items; once cancel() was requested it stops the
    job and cancelled is emitted instead of finished.

    The command line calls run() directly. On a QThread:
        worker.moveToThread(thread)
        thread.started.connect(worker.run)
        worker.finished.connect(thread.quit)
    """

    job_name = "job"

    started = Signal()
    progress = Signal(int, int, str)    # done, total, archive or theme name
    finished = Signal(object)           # payload of execute()
    error = Signal(str)
    cancelled = Signal()

    def __init__(self, parent: QObject | None = None) -> None:
        super().__init__(parent)
        self._cancel_event = Event()

    def cancel(self) -> None:
        self._cancel_event.set()

    @property
    def is_cancelled(self) -> bool:
        return self._cancel_event.is_set()

    def checkpoint(self) -> None:
        if self._cancel_event.is_set():
            raise JobCancelled(self.job_name)

    def run(self) -> None:
        self.started.emit()
        try:
            payload = self.execute()
        except JobCancelled:
            logger.info("%s cancelled", self.job_name)
            self.cancelled.emit()
        except Exception as exc:
            logger.exception("%s failed", self.job_name)
            self.error.emit(str(exc) or exc.__class__.__name__)
        else:
            self.finished.emit(payload)

    def execute(self) -> object:
        raise NotImplementedError
