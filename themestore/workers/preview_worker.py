"""Worker that makes sure stored themes have their preview images."""

from __future__ import annotations

import logging

from themestore.core.models import ThemeMetadata
from themestore.core.previews import PreviewService
from themestore.workers.base_worker import BaseWorker

logger = logging.getLogger("themestore.workers.preview")


class PreviewWorker(BaseWorker):
    """Renders missing previews for a list of themes, one theme at a time."""

    job_name = "preview rendering"

    def __init__(self, previews: PreviewService, themes: list[ThemeMetadata]) -> None:
        super().__init__()
        self._previews = previews
        self._themes = list(themes)

    def execute(self) -> dict[str, list[str]]:
        total = len(self._themes)
        staged: dict[str, list[str]] = {}
        for done, theme in enumerate(self._themes, start=1):
            self.checkpoint()
            keys = self._previews.ensure(theme)
            expected = len(self._previews.expected_keys(theme.file_id))
            if len(keys) < expected:
                logger.warning("theme %s has %d of %d previews", theme.file_id, len(keys), expected)
            staged[theme.file_id] = keys
            self.progress.emit(done, total, theme.file_id)
        return staged
