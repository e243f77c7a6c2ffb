"""Render theme preview images from the bundled SVG templates."""

from __future__ import annotations

import logging
import re
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping

import yaml
from PySide6.QtCore import QSize, Qt
from PySide6.QtGui import QImage, QPainter
from PySide6.QtSvg import QSvgRenderer

from themestore.core.blob_store import preview_name
from themestore.core.constants import (
    FOREGROUND_COLORS,
    FOREGROUND_SENTINEL,
    SENTINEL_SLOTS,
    TEMPLATE_INDEX_FILENAME,
)
from themestore.core.models import ThemeMetadata, Variant
from themestore.errors import ErrorCode, RasterizationError, ThemeStoreError

logger = logging.getLogger("themestore.colorizer")

_MAX_TEMPLATE_BYTES = 512 * 1024
_MAX_TEMPLATES = 2


@dataclass(frozen=True, slots=True)
class SvgTemplate:
    name: str
    text: str


@dataclass(frozen=True, slots=True)
class TemplateBundle:
    """The read-only set of preview templates shipped with the service."""

    version: str
    templates: tuple[SvgTemplate, ...]

    @classmethod
    def load(cls, root: Path) -> TemplateBundle:
        root = Path(root)
        index_path = root / TEMPLATE_INDEX_FILENAME
        try:
            data = yaml.safe_load(index_path.read_text(encoding="utf-8"))
        except (OSError, yaml.YAMLError) as exc:
            raise ThemeStoreError(
                ErrorCode.TEMPLATE_INVALID,
                path=index_path,
                details={"original": str(exc)},
            ) from exc
        if not isinstance(data, dict):
            raise ThemeStoreError(ErrorCode.TEMPLATE_INVALID, path=index_path)

        names = data.get("templates")
        if not isinstance(names, list) or not names or not all(isinstance(n, str) for n in names):
            raise ThemeStoreError(
                ErrorCode.TEMPLATE_INVALID,
                message="templates.yaml must list at least one SVG file",
                path=index_path,
            )
        if len(names) > _MAX_TEMPLATES:
            raise ThemeStoreError(
                ErrorCode.TEMPLATE_INVALID,
                message=f"at most {_MAX_TEMPLATES} preview templates are supported",
                path=index_path,
            )

        templates: list[SvgTemplate] = []
        for name in names:
            path = root / name
            try:
                if path.stat().st_size > _MAX_TEMPLATE_BYTES:
                    raise ThemeStoreError(
                        ErrorCode.TEMPLATE_INVALID,
                        message=f"template {name} is too large",
                        path=path,
                    )
                templates.append(SvgTemplate(name=name, text=path.read_text(encoding="utf-8")))
            except OSError as exc:
                raise ThemeStoreError(
                    ErrorCode.TEMPLATE_INVALID,
                    path=path,
                    details={"original": str(exc)},
                ) from exc
        return cls(version=str(data.get("version", "")), templates=tuple(templates))


@dataclass(frozen=True, slots=True)
class RenderedPreview:
    index: int
    variant: Variant
    path: Path


@dataclass
class RenderResult:
    previews: list[RenderedPreview] = field(default_factory=list)
    failures: list[RasterizationError] = field(default_factory=list)

    @property
    def paths(self) -> list[Path]:
        return [preview.path for preview in self.previews]

    @property
    def ok(self) -> bool:
        return not self.failures


def substitution_map(metadata: ThemeMetadata, variant: Variant) -> dict[str, str]:
    """Sentinel token -> resolved color for one variant."""
    palette = metadata.palette(variant).as_dict()
    replacements = {token: palette[slot] for token, slot in SENTINEL_SLOTS.items()}
    replacements[FOREGROUND_SENTINEL] = FOREGROUND_COLORS[variant.value]
    return replacements


def colorize(svg_text: str, replacements: Mapping[str, str]) -> str:
    """Replace every occurrence of every token, literally and case-sensitively.

    All tokens are replaced in a single pass, so a replacement value is never
    matched again as a token.
    """
    if not replacements:
        return svg_text
    tokens = sorted(replacements, key=len, reverse=True)
    pattern = re.compile("|".join(re.escape(token) for token in tokens))
    return pattern.sub(lambda match: replacements[match.group(0)], svg_text)


def rasterize(svg_path: Path, png_path: Path) -> Path:
    """Rasterize an SVG file to PNG at the SVG's native size."""
    renderer = QSvgRenderer(str(svg_path))
    if not renderer.isValid():
        raise RasterizationError("SVG could not be parsed", path=svg_path)
    size: QSize = renderer.defaultSize()
    if size.isEmpty():
        raise RasterizationError("SVG has no intrinsic size", path=svg_path)

    image = QImage(size, QImage.Format.Format_ARGB32_Premultiplied)
    image.fill(Qt.GlobalColor.transparent)
    painter = QPainter(image)
    try:
        renderer.render(painter)
    finally:
        painter.end()
    if not image.save(str(png_path), "PNG"):
        raise RasterizationError("PNG could not be written", path=png_path)
    return png_path


class TemplateColorizer:
    """Produces light and dark preview PNGs for a theme."""

    def __init__(
        self,
        bundle: TemplateBundle,
        scratch_dir: Path,
        *,
        max_seconds: float = 60.0,
    ) -> None:
        self._bundle = bundle
        self._scratch_dir = Path(scratch_dir)
        self._max_seconds = max_seconds

    @property
    def bundle(self) -> TemplateBundle:
        return self._bundle

    def render(self, metadata: ThemeMetadata) -> RenderResult:
        """Render every template in both variants.

        The returned PNG files belong to the caller, which stages and deletes
        them. Per-file failures are logged and collected, not raised.
        """
        if not metadata.has_palettes:
            raise ValueError(f"Theme {metadata.file_id!r} has no palettes to render")

        self._scratch_dir.mkdir(parents=True, exist_ok=True)
        result = RenderResult()
        started = time.monotonic()
        for index, template in enumerate(self._bundle.templates):
            for variant in (Variant.LIGHT, Variant.DARK):
                if time.monotonic() - started > self._max_seconds:
                    error = RasterizationError(
                        code=ErrorCode.RENDER_TIMEOUT,
                        details={"template": template.name, "variant": variant.value},
                    )
                    logger.warning("skipping %s/%s for %s: render budget spent",
                                   template.name, variant.value, metadata.file_id)
                    result.failures.append(error)
                    continue
                try:
                    path = self._render_one(index, template, variant, metadata)
                except RasterizationError as exc:
                    logger.error(
                        "preview %s (%s) failed for %s: %s",
                        template.name,
                        variant.value,
                        metadata.file_id,
                        exc.message,
                    )
                    result.failures.append(exc)
                    continue
                result.previews.append(RenderedPreview(index=index, variant=variant, path=path))
        return result

    def _render_one(
        self,
        index: int,
        template: SvgTemplate,
        variant: Variant,
        metadata: ThemeMetadata,
    ) -> Path:
        svg_path = self._scratch_dir / preview_name(index, variant, metadata.file_id, ".svg")
        png_path = self._scratch_dir / preview_name(index, variant, metadata.file_id, ".png")
        try:
            svg_path.write_text(
                colorize(template.text, substitution_map(metadata, variant)),
                encoding="utf-8",
            )
            return rasterize(svg_path, png_path)
        except OSError as exc:
            raise RasterizationError(path=svg_path, details={"original": str(exc)}) from exc
        finally:
            svg_path.unlink(missing_ok=True)
