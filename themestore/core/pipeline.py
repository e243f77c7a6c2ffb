"""Ingestion of uploaded theme archives: extract, parse, reconcile, persist."""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field, replace
from enum import Enum
from pathlib import Path
from typing import Any

from themestore.core.archive import ExtractionLimits, extract_archive, scratch_directory
from themestore.core.blob_store import BlobStore, archive_key
from themestore.core.manifest import manifest_path_for, parse_manifest_file
from themestore.core.models import RevisionDecision, ThemeMetadata
from themestore.core.previews import PreviewService
from themestore.core.reconciler import IdentityReconciler
from themestore.core.retry import NO_RETRY, RetryPolicy, call_with_retry
from themestore.core.theme_db import ThemeDatabase
from themestore.errors import (
    BlobStoreError,
    ExtractionError,
    MalformedManifestError,
    MissingManifestError,
    PaletteIncompleteError,
    PersistenceError,
    ThemeStoreError,
    classify_exception,
)

logger = logging.getLogger("themestore.pipeline")

ZIP_CONTENT_TYPE = "application/zip"


class IngestState(Enum):
    RECEIVED = "received"
    EXTRACTING = "extracting"
    PARSING_MANIFEST = "parsing_manifest"
    RECONCILING = "reconciling"
    PERSISTED = "persisted"
    EXTRACTION_FAILED = "extraction_failed"
    MANIFEST_INVALID = "manifest_invalid"
    UNREGISTERED = "unregistered"
    PERSISTENCE_FAILED = "persistence_failed"


TERMINAL_STATES: frozenset[IngestState] = frozenset(
    {
        IngestState.PERSISTED,
        IngestState.EXTRACTION_FAILED,
        IngestState.MANIFEST_INVALID,
        IngestState.UNREGISTERED,
        IngestState.PERSISTENCE_FAILED,
    }
)

_TRANSITIONS: dict[IngestState, frozenset[IngestState]] = {
    IngestState.RECEIVED: frozenset({IngestState.EXTRACTING}),
    IngestState.EXTRACTING: frozenset({IngestState.PARSING_MANIFEST, IngestState.EXTRACTION_FAILED}),
    IngestState.PARSING_MANIFEST: frozenset(
        {IngestState.RECONCILING, IngestState.MANIFEST_INVALID, IngestState.UNREGISTERED}
    ),
    IngestState.RECONCILING: frozenset({IngestState.PERSISTED, IngestState.PERSISTENCE_FAILED}),
}


@dataclass
class IngestOutcome:
    """What happened to one uploaded archive."""

    archive_name: str
    state: IngestState = IngestState.RECEIVED
    metadata: ThemeMetadata | None = None
    decision: RevisionDecision | None = None
    errors: list[dict[str, Any]] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    previews: list[str] = field(default_factory=list)
    history: list[IngestState] = field(default_factory=lambda: [IngestState.RECEIVED])

    @property
    def registered(self) -> bool:
        """True when a theme record was written for this archive."""
        return self.state is IngestState.PERSISTED

    @property
    def accepted(self) -> bool:
        """True when the archive itself was readable, registered or not."""
        return self.state in (IngestState.PERSISTED, IngestState.UNREGISTERED, IngestState.PERSISTENCE_FAILED)

    def advance(self, state: IngestState) -> None:
        allowed = _TRANSITIONS.get(self.state, frozenset())
        if state not in allowed:
            raise RuntimeError(f"Invalid ingestion transition {self.state.value} -> {state.value}")
        self.state = state
        self.history.append(state)

    def fail(self, state: IngestState, error: ThemeStoreError) -> IngestOutcome:
        self.advance(state)
        self.errors.append(error.to_dict())
        return self


class ThemeIngestor:
    """Runs one archive through the ingestion state machine.

    Extraction and manifest failures end the ingestion before the store is
    touched. Archive staging and eager preview rendering happen after the
    record is persisted and never undo it.
    """

    def __init__(
        self,
        store: ThemeDatabase,
        blob_store: BlobStore,
        cache_dir: Path,
        *,
        reconciler: IdentityReconciler | None = None,
        previews: PreviewService | None = None,
        eager_previews: bool = False,
        limits: ExtractionLimits | None = None,
        retry_policy: RetryPolicy = NO_RETRY,
        keep_local_archive: bool = False,
    ) -> None:
        self._store = store
        self._blob_store = blob_store
        self._cache_dir = Path(cache_dir)
        self._reconciler = reconciler or IdentityReconciler(store)
        self._previews = previews
        self._eager_previews = eager_previews
        self._limits = limits or ExtractionLimits()
        self._retry_policy = retry_policy
        self._keep_local_archive = keep_local_archive

    def ingest(self, archive_path: Path) -> IngestOutcome:
        archive_path = Path(archive_path)
        outcome = IngestOutcome(archive_name=archive_path.name)
        logger.info("handling uploaded file: %s", archive_path.name)

        metadata = self._extract_and_parse(archive_path, outcome)
        if metadata is None or outcome.state in TERMINAL_STATES:
            return outcome
        # New themes are stored under a fresh name; revisions take the stored one back.
        metadata = replace(metadata, file_name=stored_archive_name(archive_path))

        outcome.advance(IngestState.RECONCILING)
        with self._reconciler.lock_for(metadata.file_id):
            try:
                reconciliation = self._reconciler.reconcile(metadata)
                if reconciliation.rename_to:
                    archive_path = _rename_archive(archive_path, reconciliation.rename_to)
                self._store.upsert_theme(reconciliation.metadata)
            except PersistenceError as exc:
                logger.error("could not persist theme %s: %s", metadata.file_id, exc.message)
                outcome.metadata = metadata
                return outcome.fail(IngestState.PERSISTENCE_FAILED, exc)
            except OSError as exc:
                error = PersistenceError(
                    f"could not rename archive to {reconciliation.rename_to}",
                    path=archive_path,
                    details={"original": str(exc)},
                )
                logger.error("%s", error.message)
                outcome.metadata = metadata
                return outcome.fail(IngestState.PERSISTENCE_FAILED, error)

        outcome.metadata = reconciliation.metadata
        outcome.decision = reconciliation.decision
        outcome.advance(IngestState.PERSISTED)
        logger.info(
            "theme %s persisted as %s (%s)",
            reconciliation.metadata.file_id,
            reconciliation.decision.value,
            reconciliation.metadata.file_name,
        )

        self._stage_archive(archive_path, reconciliation.metadata, outcome)
        if self._eager_previews and self._previews is not None:
            outcome.previews = self._previews.render_and_stage(reconciliation.metadata)
        return outcome

    def _extract_and_parse(self, archive_path: Path, outcome: IngestOutcome) -> ThemeMetadata | None:
        outcome.advance(IngestState.EXTRACTING)
        try:
            with scratch_directory(self._cache_dir, archive_path) as scratch:
                try:
                    extract_archive(archive_path, scratch, limits=self._limits)
                except ExtractionError as exc:
                    logger.error("error while unzipping %s: %s", archive_path.name, exc.message)
                    outcome.fail(IngestState.EXTRACTION_FAILED, exc)
                    return None

                outcome.advance(IngestState.PARSING_MANIFEST)
                try:
                    return parse_manifest_file(manifest_path_for(scratch), archive_path.name)
                except (MissingManifestError, MalformedManifestError) as exc:
                    logger.error("manifest of %s rejected: %s", archive_path.name, exc.message)
                    outcome.fail(IngestState.MANIFEST_INVALID, exc)
                    return None
                except PaletteIncompleteError as exc:
                    # The archive is accepted but no theme record is created.
                    logger.warning("palette incomplete for %s: %s", archive_path.name, exc.message)
                    outcome.fail(IngestState.UNREGISTERED, exc)
                    return None
        except OSError as exc:
            # Scratch directory could not be created.
            outcome.fail(IngestState.EXTRACTION_FAILED, classify_exception(exc, archive_path))
            return None

    def _stage_archive(self, archive_path: Path, metadata: ThemeMetadata, outcome: IngestOutcome) -> None:
        key = archive_key(metadata.file_name)
        try:
            call_with_retry(
                lambda: self._blob_store.put_file(key, archive_path, ZIP_CONTENT_TYPE),
                self._retry_policy,
                description=f"staging {key}",
            )
        except BlobStoreError as exc:
            logger.error("archive %s persisted but not staged: %s", key, exc.message)
            outcome.warnings.append(f"archive not staged: {exc.message}")
            return
        if not self._keep_local_archive:
            archive_path.unlink(missing_ok=True)


def stored_archive_name(archive_path: Path) -> str:
    """Name under which a new theme's archive is staged.

    Upload names are chosen by clients and collide freely, so they never
    become blob keys.
    """
    return f"{uuid.uuid4().hex}{Path(archive_path).suffix.lower() or '.zip'}"


def _rename_archive(archive_path: Path, file_name: str) -> Path:
    target = archive_path.with_name(Path(file_name).name)
    if target != archive_path:
        archive_path.replace(target)
    return target
