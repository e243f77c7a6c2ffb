"""Decide whether an upload is a new theme or a revision of a stored one."""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import replace
from typing import Protocol

from themestore.core.models import (
    ApprovalState,
    Reconciliation,
    RevisionDecision,
    ThemeMetadata,
    with_identity_of,
)

logger = logging.getLogger("themestore.reconciler")


class ThemeLookup(Protocol):
    def find_by_id(self, file_id: str) -> ThemeMetadata | None: ...


class KeyedLocks:
    """One lock per key, dropped again once nobody holds or waits for it."""

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: dict[str, tuple[threading.Lock, int]] = {}

    @contextmanager
    def hold(self, key: str) -> Iterator[None]:
        with self._guard:
            lock, users = self._locks.get(key, (threading.Lock(), 0))
            self._locks[key] = (lock, users + 1)
        lock.acquire()
        try:
            yield
        finally:
            lock.release()
            with self._guard:
                lock, users = self._locks[key]
                if users <= 1:
                    del self._locks[key]
                else:
                    self._locks[key] = (lock, users - 1)

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)


class IdentityReconciler:
    """Reconciles freshly parsed metadata against the metadata store."""

    def __init__(self, store: ThemeLookup, locks: KeyedLocks | None = None) -> None:
        self._store = store
        self._locks = locks or KeyedLocks()

    def lock_for(self, file_id: str):
        """Critical section for everything that reads then writes one identity."""
        return self._locks.hold(file_id)

    def reconcile(self, metadata: ThemeMetadata) -> Reconciliation:
        existing = self._store.find_by_id(metadata.file_id)
        if existing is None:
            logger.info("new theme %s (%s)", metadata.file_id, metadata.file_name)
            return Reconciliation(
                decision=RevisionDecision.NEW,
                metadata=replace(metadata, approval_state=ApprovalState.PENDING),
            )

        # A revision keeps the stored file name and message reference, and
        # goes back to moderation.
        revised = replace(
            with_identity_of(metadata, existing),
            approval_state=ApprovalState.PENDING,
        )
        logger.info(
            "revision of theme %s: %s -> %s (was %s)",
            metadata.file_id,
            metadata.file_name,
            existing.file_name,
            existing.approval_state.value,
        )
        rename_to = existing.file_name if existing.file_name != metadata.file_name else None
        return Reconciliation(
            decision=RevisionDecision.REVISION,
            metadata=revised,
            rename_to=rename_to,
        )
