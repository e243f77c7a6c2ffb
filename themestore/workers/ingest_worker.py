"""Worker that ingests a batch of uploaded theme archives."""

from __future__ import annotations

from concurrent.futures import CancelledError, Future, ThreadPoolExecutor, as_completed
import logging
from pathlib import Path
from typing import TypedDict

from PySide6.QtCore import Signal

from themestore.core.pipeline import IngestOutcome, ThemeIngestor
from themestore.workers.base_worker import BaseWorker

logger = logging.getLogger("themestore.workers.ingest")

IngestFailure = tuple[Path, str]


class IngestFinishedPayload(TypedDict):
    outcomes: list[IngestOutcome]
    failures: list[IngestFailure]
    registered: int


class IngestWorker(BaseWorker):
    """Runs every archive through the ingestor on a bounded thread pool.

    Each archive is independent; one failing upload never affects another.
    Outcomes are reported in the order the archives were given.
    """

    job_name = "ingestion"

    outcome_ready = Signal(object)

    def __init__(
        self,
        ingestor: ThemeIngestor,
        paths: list[str | Path],
        *,
        max_workers: int = 4,
    ) -> None:
        super().__init__()
        self._ingestor = ingestor
        self._paths = [Path(p) for p in paths]
        self._max_workers = max(1, max_workers)

    def execute(self) -> IngestFinishedPayload:
        total = len(self._paths)
        if total == 0:
            return _payload([], [])

        slots: list[IngestOutcome | None] = [None] * total
        failures: list[IngestFailure] = []
        with ThreadPoolExecutor(max_workers=min(self._max_workers, total)) as executor:
            futures: dict[Future[IngestOutcome], int] = {
                executor.submit(self._ingestor.ingest, path): index
                for index, path in enumerate(self._paths)
            }
            try:
                for completed, future in enumerate(as_completed(futures), start=1):
                    self.checkpoint()
                    index = futures[future]
                    path = self._paths[index]
                    try:
                        outcome = future.result()
                    except CancelledError:
                        continue
                    except Exception as exc:
                        logger.exception("ingestion of %s crashed", path.name)
                        failures.append((path, str(exc) or exc.__class__.__name__))
                    else:
                        slots[index] = outcome
                        self.outcome_ready.emit(outcome)
                    self.progress.emit(completed, total, path.name)
            finally:
                if self.is_cancelled:
                    for pending in futures:
                        pending.cancel()

        return _payload([o for o in slots if o is not None], failures)


def _payload(outcomes: list[IngestOutcome], failures: list[IngestFailure]) -> IngestFinishedPayload:
    return {
        "outcomes": outcomes,
        "failures": failures,
        "registered": sum(1 for outcome in outcomes if outcome.registered),
    }
