"""Read and moderation operations over stored themes."""

from __future__ import annotations

import logging
from typing import Any, BinaryIO, Mapping

from themestore.core.blob_store import BlobStore, archive_key
from themestore.core.models import ApprovalState, ThemeMetadata
from themestore.core.previews import PreviewService
from themestore.core.theme_db import ThemeDatabase
from themestore.errors import BlobNotFoundError, BlobStoreError, PersistenceError

logger = logging.getLogger("themestore.catalog")


class ThemeCatalog:
    """Store-facing operations behind the public theme endpoints.

    Store and blob failures are logged and turned into empty results or False.
    """

    def __init__(
        self,
        store: ThemeDatabase,
        blob_store: BlobStore,
        previews: PreviewService | None = None,
        *,
        url_ttl_seconds: int = 3600,
        default_limit: int = 100,
    ) -> None:
        self._store = store
        self._blob_store = blob_store
        self._previews = previews
        self._url_ttl_seconds = url_ttl_seconds
        self._default_limit = default_limit

    # -- queries --

    def get_theme(self, file_id: str) -> ThemeMetadata | None:
        try:
            return self._store.find_by_id(file_id)
        except PersistenceError as exc:
            logger.error("lookup of %s failed: %s", file_id, exc.message)
            return None

    def get_theme_by_message(self, message_id: str) -> ThemeMetadata | None:
        try:
            return self._store.find_by_message_id(message_id)
        except PersistenceError as exc:
            logger.error("lookup of message %s failed: %s", message_id, exc.message)
            return None

    def search(self, name: str) -> list[ThemeMetadata]:
        try:
            return self._store.find_by_name(name)
        except PersistenceError as exc:
            logger.error("search for %r failed: %s", name, exc.message)
            return []

    def list_accepted(self, limit: int | None = None, offset: int = 0) -> list[ThemeMetadata]:
        try:
            return self._store.list_accepted(limit if limit is not None else self._default_limit, offset)
        except PersistenceError as exc:
            logger.error("listing themes failed: %s", exc.message)
            return []

    def status(self, file_id: str) -> ApprovalState | None:
        try:
            return self._store.status(file_id)
        except PersistenceError as exc:
            logger.error("status of %s failed: %s", file_id, exc.message)
            return None

    # -- changes --

    def update(self, file_id: str, partial: Mapping[str, Any]) -> bool:
        try:
            return self._store.update_fields(file_id, partial)
        except PersistenceError as exc:
            logger.error("update of %s failed: %s", file_id, exc.message)
            return False

    def delete(self, file_id: str) -> bool:
        try:
            return self._store.delete_by_id(file_id)
        except PersistenceError as exc:
            logger.error("delete of %s failed: %s", file_id, exc.message)
            return False

    def moderate(self, file_id: str, decision: ApprovalState) -> bool:
        """Move a pending theme to accepted or denied."""
        current = self.status(file_id)
        if current is None:
            return False
        if current is ApprovalState.PENDING:
            allowed = decision in (ApprovalState.ACCEPTED, ApprovalState.DENIED)
        elif current is ApprovalState.ACCEPTED:
            allowed = decision is ApprovalState.ACCEPTED
        elif current is ApprovalState.DENIED:
            allowed = decision is ApprovalState.DENIED
        else:
            raise AssertionError(f"Unhandled approval state: {current!r}")
        if not allowed:
            logger.warning(
                "refusing to move theme %s from %s to %s",
                file_id,
                current.value,
                decision.value,
            )
            return False
        return self.update(file_id, {"approval_state": decision})

    # -- files --

    def download_url(self, file_id: str) -> str | None:
        theme = self.get_theme(file_id)
        if theme is None:
            return None
        try:
            return self._blob_store.signed_url(archive_key(theme.file_name), self._url_ttl_seconds)
        except BlobStoreError as exc:
            logger.error("signing download of %s failed: %s", file_id, exc.message)
            return None

    def open_attachment(self, file_id: str) -> BinaryIO | None:
        """Open the stored archive of a theme, or None when it is not available."""
        theme = self.get_theme(file_id)
        if theme is None:
            return None
        key = archive_key(theme.file_name)
        try:
            return self._blob_store.get_stream(key)
        except BlobNotFoundError:
            logger.error("the specified key does not exist: %s", key)
            return None
        except BlobStoreError as exc:
            logger.error("streaming %s failed: %s", key, exc.message)
            return None

    def preview_urls(self, file_id: str) -> list[str]:
        """Signed URLs of the preview images, rendering them on first request."""
        theme = self.get_theme(file_id)
        if theme is None or self._previews is None:
            return []
        try:
            keys = self._previews.ensure(theme)
            return [self._blob_store.signed_url(key, self._url_ttl_seconds) for key in keys]
        except BlobStoreError as exc:
            logger.error("preview URLs for %s failed: %s", file_id, exc.message)
            return []
