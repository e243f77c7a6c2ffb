"""Service bootstrap and command line interface."""

from __future__ import annotations

import argparse
import json
import logging
from logging.handlers import RotatingFileHandler
import os
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Sequence

from PySide6.QtGui import QGuiApplication

from themestore.config.settings import AppSettings
from themestore.core.blob_store import BlobStore, open_blob_store
from themestore.core.catalog import ThemeCatalog
from themestore.core.colorizer import TemplateBundle, TemplateColorizer
from themestore.core.models import ApprovalState
from themestore.core.pipeline import ThemeIngestor
from themestore.core.previews import PreviewService
from themestore.core.theme_db import ThemeDatabase
from themestore.errors import ThemeStoreError, format_error_for_user
from themestore.runtime_paths import is_frozen, package_root
from themestore.workers.ingest_worker import IngestWorker
from themestore.workers.preview_worker import PreviewWorker

logger = logging.getLogger("themestore.app")

_LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"


def configure_logging(settings: AppSettings, *, verbose: bool = False) -> logging.Logger:
    root = logging.getLogger("themestore")
    if root.handlers:
        return root

    root.setLevel(logging.DEBUG if verbose else logging.INFO)
    file_handler = RotatingFileHandler(
        settings.log_dir / "themestore.log",
        maxBytes=512_000,
        backupCount=3,
        encoding="utf-8",
    )
    file_handler.setFormatter(logging.Formatter(_LOG_FORMAT))
    root.addHandler(file_handler)

    stream_handler = logging.StreamHandler(sys.stderr)
    stream_handler.setFormatter(logging.Formatter("%(levelname)s %(message)s"))
    stream_handler.setLevel(logging.DEBUG if verbose else logging.WARNING)
    root.addHandler(stream_handler)
    root.propagate = False
    return root


@dataclass
class Services:
    """Collaborators wired from settings."""

    settings: AppSettings
    database: ThemeDatabase
    blob_store: BlobStore
    previews: PreviewService
    ingestor: ThemeIngestor
    catalog: ThemeCatalog

    def close(self) -> None:
        self.database.close()


def build_services(settings: AppSettings, *, keep_local_archive: bool = False) -> Services:
    database = ThemeDatabase(settings.database_path)
    database.open()
    try:
        blob_store = open_blob_store(settings)
        bundle = TemplateBundle.load(settings.templates_dir)
    except ThemeStoreError:
        database.close()
        raise
    cache_dir = settings.cache_dir
    colorizer = TemplateColorizer(
        bundle,
        cache_dir / "renders",
        max_seconds=settings.render_seconds,
    )
    previews = PreviewService(
        colorizer,
        blob_store,
        cache_dir,
        limits=settings.extraction_limits,
        retry_policy=settings.retry_policy,
    )
    ingestor = ThemeIngestor(
        database,
        blob_store,
        cache_dir,
        previews=previews,
        eager_previews=settings.eager_previews,
        limits=settings.extraction_limits,
        retry_policy=settings.retry_policy,
        keep_local_archive=keep_local_archive,
    )
    catalog = ThemeCatalog(
        database,
        blob_store,
        previews,
        url_ttl_seconds=settings.url_ttl_seconds,
        default_limit=settings.catalog_default_limit,
    )
    return Services(settings, database, blob_store, previews, ingestor, catalog)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="themestore", description="Theme archive store")
    parser.add_argument("--config", type=Path, help="INI settings file")
    parser.add_argument("-v", "--verbose", action="store_true", help="log debug output to stderr")
    commands = parser.add_subparsers(dest="command", required=True)

    ingest = commands.add_parser("ingest", help="ingest uploaded theme archives")
    ingest.add_argument("archives", nargs="+", type=Path)
    ingest.add_argument("--keep", action="store_true", help="keep local archives after staging")

    listing = commands.add_parser("list", help="list accepted themes")
    listing.add_argument("--limit", type=int)
    listing.add_argument("--offset", type=int, default=0)

    search = commands.add_parser("search", help="find themes by name")
    search.add_argument("name")

    for name, help_text in (
        ("show", "show one theme"),
        ("status", "print the approval state of a theme"),
        ("delete", "delete a theme record"),
        ("url", "print a signed download URL"),
        ("previews", "print signed preview URLs, rendering them if needed"),
    ):
        command = commands.add_parser(name, help=help_text)
        command.add_argument("file_id")

    moderate = commands.add_parser("moderate", help="accept or deny a pending theme")
    moderate.add_argument("file_id")
    moderate.add_argument("decision", choices=["accepted", "denied"])

    render = commands.add_parser("render", help="render missing previews of stored themes")
    render.add_argument("file_ids", nargs="+")
    return parser


def run_app(argv: Sequence[str] | None = None) -> int:
    """Parse arguments, wire services and run one command."""
    args = build_parser().parse_args(argv)
    settings = AppSettings(args.config)
    configure_logging(settings, verbose=args.verbose)
    logger.info("startup mode frozen=%s package_root=%s", is_frozen(), package_root())

    # Rasterization needs a GUI application object; no display is required.
    os.environ.setdefault("QT_QPA_PLATFORM", "offscreen")
    app = QGuiApplication.instance() or QGuiApplication([sys.argv[0]])
    app.setApplicationName("ThemeStore")

    try:
        services = build_services(settings, keep_local_archive=getattr(args, "keep", False))
    except ThemeStoreError as exc:
        logger.error("startup failed: %s", exc.message)
        print(format_error_for_user(exc), file=sys.stderr)
        return 2

    try:
        return _dispatch(args, services)
    finally:
        services.close()


def _dispatch(args: argparse.Namespace, services: Services) -> int:
    catalog = services.catalog
    command = args.command

    if command == "ingest":
        return _ingest(args, services)
    if command == "list":
        _print_json([theme.to_dict() for theme in catalog.list_accepted(args.limit, args.offset)])
        return 0
    if command == "search":
        _print_json([theme.to_dict() for theme in catalog.search(args.name)])
        return 0
    if command == "show":
        theme = catalog.get_theme(args.file_id)
        if theme is None:
            print(f"no theme {args.file_id}", file=sys.stderr)
            return 1
        _print_json(theme.to_dict())
        return 0
    if command == "status":
        state = catalog.status(args.file_id)
        if state is None:
            print(f"no theme {args.file_id}", file=sys.stderr)
            return 1
        print(state.value)
        return 0
    if command == "delete":
        return 0 if catalog.delete(args.file_id) else 1
    if command == "moderate":
        return 0 if catalog.moderate(args.file_id, ApprovalState.from_value(args.decision)) else 1
    if command == "url":
        url = catalog.download_url(args.file_id)
        if url is None:
            return 1
        print(url)
        return 0
    if command == "previews":
        urls = catalog.preview_urls(args.file_id)
        for url in urls:
            print(url)
        return 0 if urls else 1
    if command == "render":
        return _render(args, services)
    raise AssertionError(f"Unhandled command: {command!r}")


def _ingest(args: argparse.Namespace, services: Services) -> int:
    worker = IngestWorker(services.ingestor, args.archives, max_workers=services.settings.max_workers)
    results: list[dict] = []
    errors: list[str] = []
    worker.finished.connect(results.append)
    worker.error.connect(errors.append)
    worker.run()
    if errors:
        print(f"ingestion failed: {errors[0]}", file=sys.stderr)
        return 2

    payload = results[0]
    for outcome in payload["outcomes"]:
        if outcome.registered:
            decision = outcome.decision.value if outcome.decision else ""
            print(f"{outcome.archive_name}: {outcome.state.value} {outcome.metadata.file_id} ({decision})")
        else:
            print(f"{outcome.archive_name}: {outcome.state.value}")
        for error in outcome.errors:
            print(f"  [{error['code']}] {error['message']}")
        for warning in outcome.warnings:
            print(f"  warning: {warning}")
    for path, message in payload["failures"]:
        print(f"{path.name}: {message}", file=sys.stderr)
    return 0 if payload["registered"] == len(args.archives) else 1


def _render(args: argparse.Namespace, services: Services) -> int:
    themes = [theme for theme in map(services.catalog.get_theme, args.file_ids) if theme is not None]
    worker = PreviewWorker(services.previews, themes)
    results: list[dict[str, list[str]]] = []
    worker.finished.connect(results.append)
    worker.error.connect(lambda message: print(message, file=sys.stderr))
    worker.run()
    if not results:
        return 2
    for file_id, keys in results[0].items():
        print(f"{file_id}: {len(keys)} preview(s)")
    return 0 if len(themes) == len(args.file_ids) else 1


def _print_json(data: object) -> None:
    print(json.dumps(data, indent=2, ensure_ascii=False))
