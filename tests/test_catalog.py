"""Tests for themestore.core.catalog and lazy preview rendering."""

from __future__ import annotations

import threading
from unittest.mock import MagicMock

import pytest

from themestore.core.blob_store import LocalBlobStore, archive_key
from themestore.core.catalog import ThemeCatalog
from themestore.core.colorizer import TemplateColorizer
from themestore.core.models import ApprovalState
from themestore.core.pipeline import ThemeIngestor
from themestore.core.previews import PreviewService
from themestore.core.theme_db import ThemeDatabase
from themestore.errors import BlobStoreError, PersistenceError


@pytest.fixture
def db(tmp_path):
    database = ThemeDatabase(tmp_path / "themes.db")
    database.open()
    yield database
    database.close()


@pytest.fixture
def blobs(tmp_path):
    return LocalBlobStore(tmp_path / "blobs")


@pytest.fixture
def previews(qapp, tmp_path, blobs, template_bundle):
    cache = tmp_path / "cache"
    cache.mkdir()
    return PreviewService(TemplateColorizer(template_bundle, cache / "renders"), blobs, cache)


@pytest.fixture
def catalog(db, blobs, previews):
    return ThemeCatalog(db, blobs, previews, url_ttl_seconds=600, default_limit=2)


@pytest.fixture
def ingest(db, blobs, tmp_path, theme_zip, manifest_factory):
    cache = tmp_path / "ingest-cache"
    cache.mkdir()
    ingestor = ThemeIngestor(db, blobs, cache)

    def _ingest(file_id: str, name: str):
        return ingestor.ingest(theme_zip(f"{file_id}.zip", manifest_factory(file_id=file_id, name=name)))

    return _ingest


class TestQueries:
    def test_get_and_search(self, catalog, ingest):
        ingest("alpha", "Alpha Night")
        ingest("beta", "Beta Day")
        assert catalog.get_theme("alpha").theme_name == "Alpha Night"
        assert catalog.get_theme("ghost") is None
        assert [t.file_id for t in catalog.search("night")] == ["alpha"]

    def test_list_accepted_uses_default_limit(self, catalog, ingest):
        for file_id in ("a", "b", "c"):
            ingest(file_id, file_id.upper())
            catalog.moderate(file_id, ApprovalState.ACCEPTED)
        assert len(catalog.list_accepted()) == 2
        assert [t.file_id for t in catalog.list_accepted(limit=5, offset=1)] == ["b", "c"]

    def test_store_failures_become_empty_results(self, blobs):
        store = MagicMock()
        for name in ("find_by_id", "find_by_name", "list_accepted", "status", "update_fields", "delete_by_id"):
            getattr(store, name).side_effect = PersistenceError("down")
        catalog = ThemeCatalog(store, blobs)
        assert catalog.get_theme("a") is None
        assert catalog.search("a") == []
        assert catalog.list_accepted() == []
        assert catalog.status("a") is None
        assert catalog.update("a", {"theme_name": "x"}) is False
        assert catalog.delete("a") is False
        assert catalog.download_url("a") is None


class TestModeration:
    def test_pending_can_be_accepted(self, catalog, ingest):
        ingest("alpha", "Alpha")
        assert catalog.status("alpha") is ApprovalState.PENDING
        assert catalog.moderate("alpha", ApprovalState.ACCEPTED) is True
        assert catalog.status("alpha") is ApprovalState.ACCEPTED

    def test_pending_can_be_denied(self, catalog, ingest):
        ingest("alpha", "Alpha")
        assert catalog.moderate("alpha", ApprovalState.DENIED) is True
        assert catalog.status("alpha") is ApprovalState.DENIED

    def test_terminal_states_do_not_move(self, catalog, ingest):
        ingest("alpha", "Alpha")
        catalog.moderate("alpha", ApprovalState.DENIED)
        assert catalog.moderate("alpha", ApprovalState.ACCEPTED) is False
        assert catalog.moderate("alpha", ApprovalState.PENDING) is False
        assert catalog.status("alpha") is ApprovalState.DENIED

    def test_unknown_theme(self, catalog):
        assert catalog.moderate("ghost", ApprovalState.ACCEPTED) is False

    def test_update_and_delete(self, catalog, ingest):
        ingest("alpha", "Alpha")
        assert catalog.update("alpha", {"message_id": "m-1"}) is True
        assert catalog.get_theme_by_message("m-1").file_id == "alpha"
        assert catalog.update("alpha", {"file_id": "beta"}) is False
        assert catalog.delete("alpha") is True
        assert catalog.get_theme("alpha") is None


class TestFiles:
    def test_download_url(self, catalog, ingest):
        outcome = ingest("alpha", "Alpha")
        url = catalog.download_url("alpha")
        assert url.startswith("file://")
        assert f"/themes/{outcome.metadata.file_name}?expires=" in url
        assert catalog.download_url("ghost") is None

    def test_open_attachment(self, catalog, ingest):
        ingest("alpha", "Alpha")
        stream = catalog.open_attachment("alpha")
        with stream:
            assert stream.read(2) == b"PK"

    def test_open_attachment_missing_blob(self, catalog, ingest, blobs):
        outcome = ingest("alpha", "Alpha")
        blobs.delete(archive_key(outcome.metadata.file_name))
        assert catalog.open_attachment("alpha") is None

    def test_preview_urls_render_lazily(self, catalog, ingest, blobs):
        ingest("alpha", "Alpha")
        assert not blobs.exists("images/dark/0-dark-alpha.png")

        urls = catalog.preview_urls("alpha")

        assert len(urls) == 2
        assert "0-dark-alpha.png" in urls[0]
        assert "0-light-alpha.png" in urls[1]
        assert blobs.exists("images/dark/0-dark-alpha.png")
        assert blobs.exists("images/light/0-light-alpha.png")

    def test_preview_urls_reuse_existing_images(self, catalog, ingest, previews, monkeypatch):
        ingest("alpha", "Alpha")
        catalog.preview_urls("alpha")
        render = MagicMock(side_effect=AssertionError("rendered twice"))
        monkeypatch.setattr(previews, "render_and_stage", render)
        assert len(catalog.preview_urls("alpha")) == 2
        render.assert_not_called()

    def test_preview_urls_without_archive(self, catalog, ingest, blobs):
        outcome = ingest("alpha", "Alpha")
        blobs.delete(archive_key(outcome.metadata.file_name))
        assert catalog.preview_urls("alpha") == []

    def test_preview_urls_signing_failure(self, db, ingest, previews):
        ingest("alpha", "Alpha")
        blobs = MagicMock()
        blobs.signed_url.side_effect = BlobStoreError("down")
        catalog = ThemeCatalog(db, blobs, previews)
        previews.ensure = MagicMock(return_value=["images/dark/0-dark-alpha.png"])
        assert catalog.preview_urls("alpha") == []

    def test_concurrent_requests_render_once(self, catalog, ingest, previews, monkeypatch):
        ingest("alpha", "Alpha")
        original = previews.render_and_stage
        calls = []

        def counting(metadata):
            calls.append(metadata.file_id)
            return original(metadata)

        monkeypatch.setattr(previews, "render_and_stage", counting)
        results = []
        threads = [threading.Thread(target=lambda: results.append(catalog.preview_urls("alpha"))) for _ in range(4)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert calls == ["alpha"]
        assert all(len(urls) == 2 for urls in results)
