"""Stage rendered previews and regenerate missing ones on demand."""

from __future__ import annotations

import logging
import shutil
from contextlib import closing
from pathlib import Path

from themestore.core.archive import ExtractionLimits, extract_archive, scratch_directory
from themestore.core.blob_store import BlobStore, archive_key, preview_key
from themestore.core.colorizer import TemplateColorizer
from themestore.core.manifest import manifest_path_for, try_parse_manifest_file
from themestore.core.models import ThemeMetadata, Variant
from themestore.core.reconciler import KeyedLocks
from themestore.core.retry import NO_RETRY, RetryPolicy, call_with_retry
from themestore.errors import BlobStoreError, ThemeStoreError

logger = logging.getLogger("themestore.previews")

PNG_CONTENT_TYPE = "image/png"


class PreviewService:
    """Owns preview images from rendering to their staged blob keys."""

    def __init__(
        self,
        colorizer: TemplateColorizer,
        blob_store: BlobStore,
        cache_dir: Path,
        *,
        limits: ExtractionLimits | None = None,
        retry_policy: RetryPolicy = NO_RETRY,
    ) -> None:
        self._colorizer = colorizer
        self._blob_store = blob_store
        self._cache_dir = Path(cache_dir)
        self._limits = limits or ExtractionLimits()
        self._retry_policy = retry_policy
        self._locks = KeyedLocks()

    def expected_keys(self, file_id: str) -> list[str]:
        """Blob keys of every preview of a theme, dark before light per template."""
        return [
            preview_key(index, variant, file_id)
            for index in range(len(self._colorizer.bundle.templates))
            for variant in (Variant.DARK, Variant.LIGHT)
        ]

    def present_keys(self, file_id: str) -> list[str]:
        return [key for key in self.expected_keys(file_id) if self._blob_store.exists(key)]

    def missing_keys(self, file_id: str) -> list[str]:
        return [key for key in self.expected_keys(file_id) if not self._blob_store.exists(key)]

    def render_and_stage(self, metadata: ThemeMetadata) -> list[str]:
        """Render previews for metadata, upload them and delete the local files."""
        result = self._colorizer.render(metadata)
        staged: list[str] = []
        for preview in result.previews:
            key = preview_key(preview.index, preview.variant, metadata.file_id)
            try:
                call_with_retry(
                    lambda: self._blob_store.put_file(key, preview.path, PNG_CONTENT_TYPE),
                    self._retry_policy,
                    description=f"staging {key}",
                )
                staged.append(key)
            except BlobStoreError as exc:
                logger.error("could not stage preview %s: %s", key, exc.message)
            finally:
                preview.path.unlink(missing_ok=True)
        if result.failures:
            logger.warning(
                "%d preview(s) failed for %s",
                len(result.failures),
                metadata.file_id,
            )
        return staged

    def ensure(self, theme: ThemeMetadata) -> list[str]:
        """Make sure every preview of a stored theme exists, rendering if needed.

        Records read from the store carry no palettes, so the archive is
        fetched back from blob storage and its manifest parsed again.
        Concurrent calls for one theme render once.
        """
        if not self.missing_keys(theme.file_id):
            return self.expected_keys(theme.file_id)

        with self._locks.hold(theme.file_id):
            if not self.missing_keys(theme.file_id):
                return self.expected_keys(theme.file_id)
            metadata = theme if theme.has_palettes else self._reload_palettes(theme)
            if metadata is not None:
                self.render_and_stage(metadata)
        return self.present_keys(theme.file_id)

    def _reload_palettes(self, theme: ThemeMetadata) -> ThemeMetadata | None:
        key = archive_key(theme.file_name)
        archive_path = Path(theme.file_name)
        try:
            with scratch_directory(self._cache_dir, archive_path) as scratch:
                local_archive = scratch / archive_path.name
                with closing(self._blob_store.get_stream(key)) as source, local_archive.open("wb") as sink:
                    shutil.copyfileobj(source, sink)
                extract_root = extract_archive(local_archive, scratch / "contents", limits=self._limits)
                parsed = try_parse_manifest_file(manifest_path_for(extract_root), theme.file_name)
        except (ThemeStoreError, OSError) as exc:
            logger.error("cannot regenerate previews for %s: %s", theme.file_id, exc)
            return None
        if parsed is None:
            return None
        if parsed.file_id != theme.file_id:
            logger.error(
                "archive %s declares id %s, expected %s",
                key,
                parsed.file_id,
                theme.file_id,
            )
            return None
        return parsed
