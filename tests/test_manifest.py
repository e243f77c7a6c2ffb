"""Tests for theme.json parsing and palette derivation."""

from __future__ import annotations

import json

import pytest

from themestore.core.manifest import (
    load_manifest,
    normalize_hex,
    parse_manifest,
    parse_manifest_file,
    resolve_palette,
    resolve_tab_bar_background,
    try_parse_manifest_file,
)
from themestore.core.models import ApprovalState, Variant
from themestore.errors import (
    ErrorCode,
    MalformedManifestError,
    MissingManifestError,
    PaletteIncompleteError,
)


class TestParseManifest:
    def test_complete_manifest(self, manifest_factory):
        metadata = parse_manifest(manifest_factory(), "upload.zip")
        assert metadata.file_id == "alpha"
        assert metadata.file_name == "upload.zip"
        assert metadata.theme_name == "Alpha"
        assert metadata.theme_author == "Ada"
        assert metadata.theme_description == "A calm theme"
        assert metadata.icon == "alpha.png"
        assert metadata.color.hex == "#FF4500"
        assert metadata.color.alpha == 1.0
        assert metadata.message_id is None
        assert metadata.approval_state is ApprovalState.PENDING
        assert metadata.has_palettes

    def test_light_palette_values(self, manifest_factory):
        light = parse_manifest(manifest_factory(), "a.zip").palette(Variant.LIGHT)
        assert light.background == "#FAFAFA"
        assert light.post_background == "#FAFAFA"
        assert light.accent_color == "#0A84FF"
        assert light.tab_bar_background == "#EEEEEE"
        assert light.divider == "#DDDDDD"
        assert light.post_title_text == "#111111"
        assert light.post_body_text == "#444444"
        assert light.subreddit_pill_background == "#CCE4FF"
        assert light.tab_bar_inactive_color == "#A1A1A1"
        assert light.tab_bar_inactive_text_color == "#ADAEAE"

    def test_missing_metadata_section(self, manifest_factory):
        data = manifest_factory()
        del data["metadata"]
        with pytest.raises(MalformedManifestError) as excinfo:
            parse_manifest(data, "a.zip")
        assert excinfo.value.code is ErrorCode.MANIFEST_MALFORMED

    @pytest.mark.parametrize("file_id", [None, "", "   "])
    def test_missing_identity_is_rejected(self, manifest_factory, file_id):
        data = manifest_factory()
        data["id"] = file_id
        with pytest.raises(MalformedManifestError) as excinfo:
            parse_manifest(data, "a.zip")
        assert excinfo.value.code is ErrorCode.MANIFEST_MISSING_ID

    def test_identity_with_path_separator_is_rejected(self, manifest_factory):
        with pytest.raises(MalformedManifestError):
            parse_manifest(manifest_factory(file_id="../etc"), "a.zip")

    @pytest.mark.parametrize(
        ("missing", "where"),
        [(None, "metadata.color"), ("hex", "metadata.color.hex"), ("alpha", "metadata.color.alpha")],
    )
    def test_absent_accent_color_is_incomplete(self, manifest_factory, missing, where):
        data = manifest_factory()
        if missing is None:
            del data["metadata"]["color"]
        else:
            del data["metadata"]["color"][missing]
        with pytest.raises(PaletteIncompleteError) as excinfo:
            parse_manifest(data, "a.zip")
        assert excinfo.value.details["path"] == where

    @pytest.mark.parametrize("color", ["#FF4500", {"hex": 12, "alpha": 1}, {"hex": "#FF4500", "alpha": "1"}])
    def test_mistyped_accent_color_is_malformed(self, manifest_factory, color):
        data = manifest_factory()
        data["metadata"]["color"] = color
        with pytest.raises(MalformedManifestError):
            parse_manifest(data, "a.zip")

    def test_accent_alpha_out_of_range_is_malformed(self, manifest_factory):
        data = manifest_factory()
        data["metadata"]["color"]["alpha"] = 1.5
        with pytest.raises(MalformedManifestError):
            parse_manifest(data, "a.zip")

    def test_optional_strings_default_to_empty(self, manifest_factory):
        data = manifest_factory()
        del data["metadata"]["icon"]
        del data["metadata"]["description"]
        metadata = parse_manifest(data, "a.zip")
        assert metadata.icon == ""
        assert metadata.theme_description == ""

    def test_missing_color_in_one_variant_fails_both(self, manifest_factory):
        data = manifest_factory()
        del data["lists"]["dividersColors"]["dark"]
        with pytest.raises(PaletteIncompleteError) as excinfo:
            parse_manifest(data, "a.zip")
        assert excinfo.value.code is ErrorCode.PALETTE_INCOMPLETE
        assert "lists.dividersColors.dark.hex" in excinfo.value.message


class TestTabBarFallback:
    def test_blurry_uses_post_background(self, manifest_factory):
        data = manifest_factory()
        data["general"]["tabBarBG"]["blurry"] = True
        metadata = parse_manifest(data, "a.zip")
        assert metadata.palette(Variant.LIGHT).tab_bar_background == "#FAFAFA"
        assert metadata.palette(Variant.DARK).tab_bar_background == "#101010"

    @pytest.mark.parametrize("blurry", [1, "true", "yes"])
    def test_truthy_blurry_uses_post_background(self, manifest_factory, blurry):
        data = manifest_factory()
        data["general"]["tabBarBG"]["blurry"] = blurry
        metadata = parse_manifest(data, "a.zip")
        assert metadata.palette(Variant.LIGHT).tab_bar_background == "#FAFAFA"
        assert metadata.palette(Variant.DARK).tab_bar_background == "#101010"

    @pytest.mark.parametrize("blurry", [0, "", None])
    def test_falsy_blurry_uses_configured_color(self, manifest_factory, blurry):
        data = manifest_factory()
        data["general"]["tabBarBG"]["blurry"] = blurry
        metadata = parse_manifest(data, "a.zip")
        assert metadata.palette(Variant.LIGHT).tab_bar_background == "#EEEEEE"

    def test_blurry_does_not_need_configured_color(self, manifest_factory):
        data = manifest_factory()
        data["general"]["tabBarBG"] = {"blurry": True}
        metadata = parse_manifest(data, "a.zip")
        assert metadata.palette(Variant.DARK).tab_bar_background == "#101010"

    @pytest.mark.parametrize("white", ["#FFFFFF", "ffffff", "FFFFFF"])
    def test_white_dark_tab_bar_replaced(self, manifest_factory, white):
        data = manifest_factory()
        data["general"]["tabBarBG"]["color"]["dark"]["hex"] = white
        dark = resolve_palette(data, Variant.DARK)
        assert dark.tab_bar_background == "#101010"

    def test_white_light_tab_bar_kept(self, manifest_factory):
        data = manifest_factory()
        data["general"]["tabBarBG"]["color"]["light"]["hex"] = "#FFFFFF"
        light = resolve_palette(data, Variant.LIGHT)
        assert light.tab_bar_background == "#FFFFFF"

    def test_missing_configured_color_without_blur(self):
        with pytest.raises(PaletteIncompleteError):
            resolve_tab_bar_background(None, blurry=False, variant=Variant.LIGHT, post_background="#000000")


class TestNormalizeHex:
    def test_adds_hash(self):
        assert normalize_hex("1A2B3C", "x") == "#1A2B3C"

    def test_does_not_double_hash(self):
        assert normalize_hex("#1A2B3C", "x") == "#1A2B3C"

    @pytest.mark.parametrize("value", [None, "", "#GGGGGG", 123, "#12345"])
    def test_rejects_invalid(self, value):
        with pytest.raises(PaletteIncompleteError):
            normalize_hex(value, "x")


class TestLoadManifest:
    def test_missing_file(self, tmp_path):
        with pytest.raises(MissingManifestError):
            load_manifest(tmp_path / "theme.json")

    def test_invalid_json(self, tmp_path):
        path = tmp_path / "theme.json"
        path.write_text("{not json", encoding="utf-8")
        with pytest.raises(MalformedManifestError):
            load_manifest(path)

    def test_non_object(self, tmp_path):
        path = tmp_path / "theme.json"
        path.write_text("[1, 2]", encoding="utf-8")
        with pytest.raises(MalformedManifestError):
            load_manifest(path)

    def test_parse_manifest_file(self, tmp_path, manifest_factory):
        path = tmp_path / "theme.json"
        path.write_text(json.dumps(manifest_factory(file_id="beta", name="Beta")), encoding="utf-8")
        metadata = parse_manifest_file(path, "beta.zip")
        assert metadata.file_id == "beta"
        assert metadata.theme_name == "Beta"


class TestTryParse:
    def test_incomplete_palette_yields_none(self, tmp_path, manifest_factory):
        data = manifest_factory()
        del data["general"]["accentColor"]
        path = tmp_path / "theme.json"
        path.write_text(json.dumps(data), encoding="utf-8")
        assert try_parse_manifest_file(path, "a.zip") is None

    def test_structural_errors_still_raise(self, tmp_path):
        with pytest.raises(MissingManifestError):
            try_parse_manifest_file(tmp_path / "theme.json", "a.zip")
