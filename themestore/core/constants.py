"""Theme store constants."""

from __future__ import annotations

MANIFEST_FILENAME = "theme.json"

# Palette slots without a manifest source.
SUBREDDIT_PILL_BACKGROUND = "#CCE4FF"
TAB_BAR_INACTIVE_COLOR = "#A1A1A1"
TAB_BAR_INACTIVE_TEXT_COLOR = "#ADAEAE"

# Dark tab bars of this color are replaced by the post background.
WHITE_HEX = "FFFFFF"

# Sentinel color baked into the SVG templates -> palette slot it stands for.
SENTINEL_SLOTS: dict[str, str] = {
    "#F2F2F7": "background",
    "#007AFF": "accent_color",
    "#CCE4FF": "subreddit_pill_background",
    "#F2F2F2": "divider",
    "#A1A1A1": "tab_bar_inactive_color",
    "#ADAEAE": "tab_bar_inactive_text_color",
    "#FFFFFE": "post_background",
    "#F7F7F8": "tab_bar_background",
    "#000001": "post_title_text",
    "#000002": "post_body_text",
}

# Sentinels with a fixed replacement per variant.
FOREGROUND_SENTINEL = "#000003"
FOREGROUND_COLORS: dict[str, str] = {
    "light": "#000000",
    "dark": "#FFFFFF",
}

TEMPLATE_INDEX_FILENAME = "templates.yaml"

ARCHIVE_KEY_PREFIX = "themes"
PREVIEW_KEY_PREFIX = "images"
