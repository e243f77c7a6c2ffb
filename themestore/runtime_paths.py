"""Where the bundled preview templates live, from source or a PyInstaller build."""

from __future__ import annotations

from pathlib import Path
import sys

from themestore.core.constants import TEMPLATE_INDEX_FILENAME

PACKAGE_DIR = "themestore"
TEMPLATES_DIR = "templates"


def is_frozen() -> bool:
    return bool(getattr(sys, "frozen", False))


def resource_roots() -> list[Path]:
    """Directories that may hold package resources, most specific first.

    A frozen build unpacks into _MEIPASS and may keep the package directory
    or flatten it into the bundle root.
    """
    if not is_frozen():
        return [Path(__file__).resolve().parent]
    meipass = getattr(sys, "_MEIPASS", None)
    bundle = Path(meipass) if meipass else Path(__file__).resolve().parent.parent
    return [bundle / PACKAGE_DIR, bundle]


def package_root() -> Path:
    roots = resource_roots()
    for root in roots:
        if root.is_dir():
            return root
    return roots[-1]


def templates_root() -> Path:
    """The first templates directory that carries an index, else the default one."""
    for root in resource_roots():
        candidate = root / TEMPLATES_DIR
        if (candidate / TEMPLATE_INDEX_FILENAME).is_file():
            return candidate
    return package_root() / TEMPLATES_DIR
