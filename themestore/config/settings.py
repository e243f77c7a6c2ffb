"""Service settings via QSettings (INI format)."""

from __future__ import annotations

import os
from pathlib import Path

from PySide6.QtCore import QSettings

from themestore.core.archive import ExtractionLimits
from themestore.core.retry import RetryPolicy
from themestore.runtime_paths import templates_root

_BLOB_BACKENDS = {"local", "s3"}


class AppSettings:
    """Wraps QSettings for persistent service configuration."""

    def __init__(self, ini_path: str | Path | None = None) -> None:
        path = Path(ini_path) if ini_path else self.app_data_dir / "themestore.ini"
        self._path = path
        self._qs = QSettings(str(path), QSettings.Format.IniFormat)

    @property
    def file_path(self) -> Path:
        return self._path

    def sync(self) -> None:
        self._qs.sync()

    # -- paths --

    @property
    def cache_dir(self) -> Path:
        raw = self._qs.value("paths/cache_dir", "", type=str)
        path = Path(raw) if raw else self.app_data_dir / "cache"
        path.mkdir(parents=True, exist_ok=True)
        return path

    @cache_dir.setter
    def cache_dir(self, value: str | Path) -> None:
        self._qs.setValue("paths/cache_dir", str(value))

    @property
    def database_path(self) -> Path:
        raw = self._qs.value("paths/database", "", type=str)
        return Path(raw) if raw else self.app_data_dir / "themes.db"

    @database_path.setter
    def database_path(self, value: str | Path) -> None:
        self._qs.setValue("paths/database", str(value))

    @property
    def templates_dir(self) -> Path:
        raw = self._qs.value("paths/templates_dir", "", type=str)
        return Path(raw) if raw else templates_root()

    @templates_dir.setter
    def templates_dir(self, value: str | Path) -> None:
        self._qs.setValue("paths/templates_dir", str(value))

    # -- blob storage --

    @property
    def blob_backend(self) -> str:
        raw = self._qs.value("blob/backend", "local", type=str)
        backend = (raw or "").strip().lower()
        if backend in _BLOB_BACKENDS:
            return backend
        return "local"

    @blob_backend.setter
    def blob_backend(self, value: str) -> None:
        backend = (value or "").strip().lower()
        if backend not in _BLOB_BACKENDS:
            backend = "local"
        self._qs.setValue("blob/backend", backend)

    @property
    def blob_local_root(self) -> Path:
        raw = self._qs.value("blob/local_root", "", type=str)
        return Path(raw) if raw else self.app_data_dir / "blobs"

    @blob_local_root.setter
    def blob_local_root(self, value: str | Path) -> None:
        self._qs.setValue("blob/local_root", str(value))

    @property
    def blob_retry_attempts(self) -> int:
        return max(1, self._qs.value("blob/retry_attempts", 3, type=int))

    @blob_retry_attempts.setter
    def blob_retry_attempts(self, value: int) -> None:
        self._qs.setValue("blob/retry_attempts", int(value))

    @property
    def retry_policy(self) -> RetryPolicy:
        return RetryPolicy(max_attempts=self.blob_retry_attempts)

    # -- s3 --

    @property
    def s3_bucket(self) -> str:
        return (self._qs.value("s3/bucket", "", type=str) or "").strip()

    @s3_bucket.setter
    def s3_bucket(self, value: str) -> None:
        self._qs.setValue("s3/bucket", value)

    @property
    def s3_endpoint(self) -> str | None:
        value = (self._qs.value("s3/endpoint", "", type=str) or "").strip()
        return value or None

    @s3_endpoint.setter
    def s3_endpoint(self, value: str) -> None:
        self._qs.setValue("s3/endpoint", value)

    @property
    def s3_region(self) -> str | None:
        value = (self._qs.value("s3/region", "", type=str) or "").strip()
        return value or None

    @s3_region.setter
    def s3_region(self, value: str) -> None:
        self._qs.setValue("s3/region", value)

    @property
    def s3_key_id(self) -> str | None:
        value = (self._qs.value("s3/key_id", "", type=str) or "").strip()
        return value or os.environ.get("S3_KEY_ID") or None

    @s3_key_id.setter
    def s3_key_id(self, value: str) -> None:
        self._qs.setValue("s3/key_id", value)

    @property
    def s3_key(self) -> str | None:
        value = (self._qs.value("s3/key", "", type=str) or "").strip()
        return value or os.environ.get("S3_KEY") or None

    @s3_key.setter
    def s3_key(self, value: str) -> None:
        self._qs.setValue("s3/key", value)

    # -- urls --

    @property
    def url_ttl_seconds(self) -> int:
        value = self._qs.value("urls/ttl_seconds", 3600, type=int)
        return value if value > 0 else 3600

    @url_ttl_seconds.setter
    def url_ttl_seconds(self, value: int) -> None:
        self._qs.setValue("urls/ttl_seconds", int(value))

    # -- limits --

    @property
    def extraction_limits(self) -> ExtractionLimits:
        defaults = ExtractionLimits()
        return ExtractionLimits(
            max_members=self._qs.value("limits/max_members", defaults.max_members, type=int),
            max_total_bytes=self._qs.value("limits/max_bytes", defaults.max_total_bytes, type=int),
            max_seconds=self._qs.value("limits/max_seconds", defaults.max_seconds, type=float),
        )

    @property
    def render_seconds(self) -> float:
        return self._qs.value("limits/render_seconds", 60.0, type=float)

    @render_seconds.setter
    def render_seconds(self, value: float) -> None:
        self._qs.setValue("limits/render_seconds", float(value))

    # -- workers --

    @property
    def max_workers(self) -> int:
        default = min(os.cpu_count() or 4, 8)
        return max(1, self._qs.value("workers/max_workers", default, type=int))

    @max_workers.setter
    def max_workers(self, value: int) -> None:
        self._qs.setValue("workers/max_workers", int(value))

    @property
    def eager_previews(self) -> bool:
        return self._qs.value("previews/eager", False, type=bool)

    @eager_previews.setter
    def eager_previews(self, value: bool) -> None:
        self._qs.setValue("previews/eager", bool(value))

    # -- catalog --

    @property
    def catalog_default_limit(self) -> int:
        value = self._qs.value("catalog/default_limit", 100, type=int)
        return value if value > 0 else 100

    @catalog_default_limit.setter
    def catalog_default_limit(self, value: int) -> None:
        self._qs.setValue("catalog/default_limit", int(value))

    # -- helpers --

    @property
    def app_data_dir(self) -> Path:
        path = self._app_data_dir()
        path.mkdir(parents=True, exist_ok=True)
        return path

    @property
    def log_dir(self) -> Path:
        path = self.app_data_dir / "logs"
        path.mkdir(parents=True, exist_ok=True)
        return path

    @staticmethod
    def _app_data_dir() -> Path:
        override = os.environ.get("THEMESTORE_HOME")
        if override:
            return Path(override)
        base = Path(os.environ.get("APPDATA", Path.home() / ".config"))
        return base / "themestore"
