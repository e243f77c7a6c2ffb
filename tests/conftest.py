"""Shared fixtures: a headless Qt application and theme archive builders."""

from __future__ import annotations

import copy
import json
import os
import struct
import zipfile
from pathlib import Path
from typing import Any, Callable

import pytest

os.environ.setdefault("QT_QPA_PLATFORM", "offscreen")

from PySide6.QtGui import QGuiApplication  # noqa: E402

from themestore.core.colorizer import TemplateBundle  # noqa: E402
from themestore.runtime_paths import templates_root  # noqa: E402

BASE_MANIFEST: dict[str, Any] = {
    "id": "alpha",
    "metadata": {
        "name": "Alpha",
        "author": "Ada",
        "description": "A calm theme",
        "color": {"hex": "#FF4500", "alpha": 1},
        "icon": "alpha.png",
    },
    "posts": {
        "bg": {"color": {"_0": {"light": {"hex": "#FAFAFA"}, "dark": {"hex": "#101010"}}}},
    },
    "general": {
        "accentColor": {"light": {"hex": "#0A84FF"}, "dark": {"hex": "#64D2FF"}},
        "tabBarBG": {
            "blurry": False,
            "color": {"light": {"hex": "#EEEEEE"}, "dark": {"hex": "#222222"}},
        },
    },
    "lists": {
        "dividersColors": {"light": {"hex": "#DDDDDD"}, "dark": {"hex": "#333333"}},
    },
    "postLinks": {
        "theme": {
            "titleText": {"color": {"light": {"hex": "#111111"}, "dark": {"hex": "#EEEEEF"}}},
            "bodyText": {"color": {"light": {"hex": "#444444"}, "dark": {"hex": "#BBBBBB"}}},
        }
    },
}


def build_manifest(file_id: str = "alpha", name: str = "Alpha", **sections: Any) -> dict[str, Any]:
    data = copy.deepcopy(BASE_MANIFEST)
    data["id"] = file_id
    data["metadata"]["name"] = name
    data.update(sections)
    return data


@pytest.fixture(scope="session")
def qapp() -> QGuiApplication:
    app = QGuiApplication.instance()
    if app is None:
        app = QGuiApplication(["themestore-tests"])
    return app


@pytest.fixture
def manifest_factory() -> Callable[..., dict[str, Any]]:
    return build_manifest


@pytest.fixture
def upload_dir(tmp_path: Path) -> Path:
    path = tmp_path / "uploads"
    path.mkdir()
    return path


@pytest.fixture
def theme_zip(upload_dir: Path) -> Callable[..., Path]:
    """Write a zip archive with a theme.json at its root."""

    def _make(
        name: str = "alpha.zip",
        manifest: dict[str, Any] | None = None,
        *,
        extra: dict[str, bytes] | None = None,
        include_manifest: bool = True,
    ) -> Path:
        path = upload_dir / name
        with zipfile.ZipFile(path, "w") as archive:
            if include_manifest:
                archive.writestr("theme.json", json.dumps(manifest or build_manifest()))
            for member, data in (extra or {}).items():
                archive.writestr(member, data)
        return path

    return _make


@pytest.fixture
def damaged_zip(upload_dir: Path) -> Callable[..., Path]:
    """Write a deflated archive whose theme.json data stream is garbage."""

    def _make(name: str = "damaged.zip") -> Path:
        path = upload_dir / name
        manifest = build_manifest(padding="x" * 4096)
        with zipfile.ZipFile(path, "w", compression=zipfile.ZIP_DEFLATED) as archive:
            archive.writestr("theme.json", json.dumps(manifest))
            offset = archive.getinfo("theme.json").header_offset
        data = bytearray(path.read_bytes())
        name_len, extra_len = struct.unpack_from("<HH", data, offset + 26)
        start = offset + 30 + name_len + extra_len
        # 0xFF opens a deflate block of the reserved type.
        data[start : start + 16] = b"\xff" * 16
        path.write_bytes(bytes(data))
        return path

    return _make


@pytest.fixture(scope="session")
def template_bundle() -> TemplateBundle:
    return TemplateBundle.load(templates_root())
