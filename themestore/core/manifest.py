"""theme.json parsing, validation and palette derivation."""

from __future__ import annotations

import json
import logging
import re
from pathlib import Path
from typing import Any, Mapping

from themestore.core.constants import (
    MANIFEST_FILENAME,
    SUBREDDIT_PILL_BACKGROUND,
    TAB_BAR_INACTIVE_COLOR,
    TAB_BAR_INACTIVE_TEXT_COLOR,
    WHITE_HEX,
)
from themestore.core.models import ApprovalState, MetadataColor, Palette, ThemeMetadata, Variant
from themestore.errors import (
    ErrorCode,
    MalformedManifestError,
    MissingManifestError,
    PaletteIncompleteError,
)

logger = logging.getLogger("themestore.manifest")

_HEX_BODY_RE = re.compile(r"^(?:[0-9a-fA-F]{3}|[0-9a-fA-F]{6}|[0-9a-fA-F]{8})$")

_MAX_MANIFEST_BYTES = 256 * 1024
_MAX_ID_LEN = 128

# Manifest paths; "{variant}" is replaced by "light" or "dark".
BACKGROUND_PATH = ("posts", "bg", "color", "_0", "{variant}", "hex")
ACCENT_PATH = ("general", "accentColor", "{variant}", "hex")
TAB_BAR_PATH = ("general", "tabBarBG", "color", "{variant}", "hex")
TAB_BAR_BLURRY_PATH = ("general", "tabBarBG", "blurry")
DIVIDER_PATH = ("lists", "dividersColors", "{variant}", "hex")
TITLE_TEXT_PATH = ("postLinks", "theme", "titleText", "color", "{variant}", "hex")
BODY_TEXT_PATH = ("postLinks", "theme", "bodyText", "color", "{variant}", "hex")


def manifest_path_for(extract_root: Path) -> Path:
    return Path(extract_root) / MANIFEST_FILENAME


def load_manifest(path: Path) -> Mapping[str, Any]:
    """Read theme.json and return its top-level object."""
    path = Path(path)
    if not path.is_file():
        raise MissingManifestError(path=path)
    try:
        size = path.stat().st_size
    except OSError as exc:
        raise MissingManifestError(path=path, details={"original": str(exc)}) from exc
    if size > _MAX_MANIFEST_BYTES:
        raise MalformedManifestError(
            f"{MANIFEST_FILENAME} exceeds max size ({_MAX_MANIFEST_BYTES} bytes)",
            path=path,
        )
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise MalformedManifestError(
            f"Invalid JSON in {MANIFEST_FILENAME}: {exc}",
            path=path,
        ) from exc
    if not isinstance(data, dict):
        raise MalformedManifestError(f"Expected JSON object in {MANIFEST_FILENAME}", path=path)
    return data


def parse_manifest_file(manifest_path: Path, original_archive_name: str) -> ThemeMetadata:
    """Load and parse theme.json into complete theme metadata."""
    metadata = parse_manifest(load_manifest(manifest_path), original_archive_name)
    logger.debug("parsed manifest of %s: id=%s", original_archive_name, metadata.file_id)
    return metadata


def try_parse_manifest_file(manifest_path: Path, original_archive_name: str) -> ThemeMetadata | None:
    """Like parse_manifest_file, but an incomplete palette yields None.

    Missing or malformed manifests still raise.
    """
    try:
        return parse_manifest_file(manifest_path, original_archive_name)
    except PaletteIncompleteError as exc:
        logger.warning("no metadata for %s: %s", original_archive_name, exc.message)
        return None


def parse_manifest(data: Mapping[str, Any], original_archive_name: str) -> ThemeMetadata:
    """Build ThemeMetadata from a decoded manifest.

    Raises MalformedManifestError for structural problems and
    PaletteIncompleteError when the accent color or a preview color is absent.
    Either both palettes are returned fully populated or nothing is returned.
    """
    section = data.get("metadata")
    if not isinstance(section, dict):
        raise MalformedManifestError("theme.json has no metadata section")

    file_id = _identity(data)
    color = _accent_color(section)

    light = resolve_palette(data, Variant.LIGHT)
    dark = resolve_palette(data, Variant.DARK)

    return ThemeMetadata(
        file_id=file_id,
        file_name=original_archive_name,
        theme_name=_optional_str(section, "name"),
        theme_author=_optional_str(section, "author"),
        theme_description=_optional_str(section, "description"),
        message_id=None,
        approval_state=ApprovalState.PENDING,
        color=color,
        icon=_optional_str(section, "icon"),
        light=light,
        dark=dark,
    )


def resolve_palette(data: Mapping[str, Any], variant: Variant) -> Palette:
    """Resolve the ten preview colors of one variant from raw manifest fields."""
    post_background = _hex_at(data, BACKGROUND_PATH, variant)
    return Palette(
        background=post_background,
        accent_color=_hex_at(data, ACCENT_PATH, variant),
        tab_bar_background=_tab_bar_background(data, variant, post_background),
        subreddit_pill_background=SUBREDDIT_PILL_BACKGROUND,
        divider=_hex_at(data, DIVIDER_PATH, variant),
        tab_bar_inactive_color=TAB_BAR_INACTIVE_COLOR,
        tab_bar_inactive_text_color=TAB_BAR_INACTIVE_TEXT_COLOR,
        post_background=post_background,
        post_title_text=_hex_at(data, TITLE_TEXT_PATH, variant),
        post_body_text=_hex_at(data, BODY_TEXT_PATH, variant),
    )


def resolve_tab_bar_background(
    configured_hex: Any,
    *,
    blurry: bool,
    variant: Variant,
    post_background: str,
) -> str:
    """Apply the tab bar fallback rules to one variant.

    A blurry tab bar shows the posts behind it, so it takes the post
    background. A pure white dark-mode tab bar also takes the post background.
    """
    if blurry:
        return post_background
    if configured_hex is None:
        raise PaletteIncompleteError(
            f"missing {_dotted(TAB_BAR_PATH, variant)}",
            details={"path": _dotted(TAB_BAR_PATH, variant)},
        )
    body = normalize_hex(configured_hex, _dotted(TAB_BAR_PATH, variant))
    if variant is Variant.DARK and body.lstrip("#").upper() == WHITE_HEX:
        return post_background
    return body


def normalize_hex(value: Any, where: str) -> str:
    """Return value as a '#'-prefixed hex color."""
    if not isinstance(value, str) or not value.strip():
        raise PaletteIncompleteError(f"missing {where}", details={"path": where})
    body = value.strip()
    if body.startswith("#"):
        body = body[1:]
    if not _HEX_BODY_RE.match(body):
        raise PaletteIncompleteError(
            f"invalid color {value!r} at {where}",
            details={"path": where, "value": value},
        )
    return "#" + body


def _tab_bar_background(data: Mapping[str, Any], variant: Variant, post_background: str) -> str:
    blurry = _lookup(data, TAB_BAR_BLURRY_PATH, variant)
    configured = _lookup(data, TAB_BAR_PATH, variant)
    return resolve_tab_bar_background(
        configured,
        blurry=bool(blurry),
        variant=variant,
        post_background=post_background,
    )


def _hex_at(data: Mapping[str, Any], path: tuple[str, ...], variant: Variant) -> str:
    where = _dotted(path, variant)
    return normalize_hex(_lookup(data, path, variant), where)


def _lookup(data: Mapping[str, Any], path: tuple[str, ...], variant: Variant) -> Any:
    node: Any = data
    for part in path:
        key = part.format(variant=variant.value)
        if not isinstance(node, dict) or key not in node:
            return None
        node = node[key]
    return node


def _dotted(path: tuple[str, ...], variant: Variant) -> str:
    return ".".join(part.format(variant=variant.value) for part in path)


def _identity(data: Mapping[str, Any]) -> str:
    raw = data.get("id")
    if raw is None or (isinstance(raw, str) and not raw.strip()):
        raise MalformedManifestError(code=ErrorCode.MANIFEST_MISSING_ID)
    if not isinstance(raw, (str, int)) or isinstance(raw, bool):
        raise MalformedManifestError(
            "theme.json id must be a string",
            code=ErrorCode.MANIFEST_MISSING_ID,
        )
    file_id = str(raw).strip()
    if len(file_id) > _MAX_ID_LEN or any(ch in file_id for ch in ("/", "\\", "\n", "\r", "\t")):
        raise MalformedManifestError(
            f"theme.json id is not usable as a storage key: {file_id!r}",
            code=ErrorCode.MANIFEST_MISSING_ID,
        )
    return file_id


def _accent_color(section: Mapping[str, Any]) -> MetadataColor:
    """Absent fields leave the palette incomplete; present but mistyped ones are malformed."""
    raw = section.get("color")
    if raw is None:
        raise PaletteIncompleteError("missing metadata.color", details={"path": "metadata.color"})
    if not isinstance(raw, dict):
        raise MalformedManifestError("metadata.color must be an object with hex and alpha")
    for key in ("hex", "alpha"):
        if raw.get(key) is None:
            raise PaletteIncompleteError(
                f"missing metadata.color.{key}",
                details={"path": f"metadata.color.{key}"},
            )
    hex_value = raw["hex"]
    alpha = raw["alpha"]
    if not isinstance(hex_value, str) or not hex_value.strip():
        raise MalformedManifestError("metadata.color.hex must be a non-empty string")
    if isinstance(alpha, bool) or not isinstance(alpha, (int, float)):
        raise MalformedManifestError("metadata.color.alpha must be a number")
    if not 0.0 <= float(alpha) <= 1.0:
        raise MalformedManifestError(f"metadata.color.alpha must be within [0, 1], got {alpha!r}")
    return MetadataColor(hex=hex_value.strip(), alpha=float(alpha))


def _optional_str(section: Mapping[str, Any], key: str) -> str:
    value = section.get(key)
    if value is None:
        return ""
    if not isinstance(value, str):
        raise MalformedManifestError(f"metadata.{key} must be a string")
    return value.strip()
