"""Theme metadata models."""

from __future__ import annotations

from dataclasses import dataclass, field, fields, replace
from enum import Enum


class ApprovalState(Enum):
    """Moderation state of a theme record."""

    PENDING = "waiting for approval"
    ACCEPTED = "accepted"
    DENIED = "denied"

    @classmethod
    def from_value(cls, value: str | None) -> ApprovalState:
        """Map a stored string back to a state; unknown values are rejected."""
        for state in cls:
            if state.value == value or state.name.lower() == (value or "").lower():
                return state
        raise ValueError(f"Unknown approval state: {value!r}")

    @property
    def is_terminal(self) -> bool:
        if self is ApprovalState.PENDING:
            return False
        if self is ApprovalState.ACCEPTED:
            return True
        if self is ApprovalState.DENIED:
            return True
        raise AssertionError(f"Unhandled approval state: {self!r}")


class Variant(Enum):
    """Palette variant."""

    LIGHT = "light"
    DARK = "dark"


class RevisionDecision(Enum):
    """Outcome of looking a theme identity up in the store."""

    NEW = "new"
    REVISION = "revision"


@dataclass(frozen=True, slots=True)
class MetadataColor:
    """Accent color declared in the manifest."""

    hex: str
    alpha: float


@dataclass(frozen=True, slots=True)
class Palette:
    """Ten resolved preview colors for one variant."""

    background: str
    accent_color: str
    tab_bar_background: str
    subreddit_pill_background: str
    divider: str
    tab_bar_inactive_color: str
    tab_bar_inactive_text_color: str
    post_background: str
    post_title_text: str
    post_body_text: str

    def as_dict(self) -> dict[str, str]:
        return {f.name: getattr(self, f.name) for f in fields(self)}


@dataclass(slots=True)
class ThemeMetadata:
    """Everything known about one uploaded theme."""

    file_id: str
    file_name: str
    theme_name: str = ""
    theme_author: str = ""
    theme_description: str = ""
    message_id: str | None = None
    approval_state: ApprovalState = ApprovalState.PENDING
    color: MetadataColor = field(default_factory=lambda: MetadataColor(hex="", alpha=0.0))
    icon: str = ""
    light: Palette | None = None
    dark: Palette | None = None

    @property
    def has_palettes(self) -> bool:
        return self.light is not None and self.dark is not None

    def palette(self, variant: Variant) -> Palette:
        chosen = self.light if variant is Variant.LIGHT else self.dark
        if chosen is None:
            raise ValueError(f"Theme {self.file_id!r} has no {variant.value} palette")
        return chosen

    def to_savable(self) -> SavableMetadata:
        return SavableMetadata(
            file_name=self.file_name,
            file_id=self.file_id,
            theme_name=self.theme_name,
            theme_author=self.theme_author,
            theme_description=self.theme_description,
            message_id=self.message_id,
            approval_state=self.approval_state,
            color=self.color.hex,
            alpha=float(self.color.alpha),
            icon=self.icon,
        )

    def to_dict(self) -> dict[str, object]:
        """JSON-friendly view, as returned to API consumers."""
        return {
            "file_name": self.file_name,
            "file_id": self.file_id,
            "theme_name": self.theme_name,
            "theme_author": self.theme_author,
            "theme_description": self.theme_description,
            "message_id": self.message_id,
            "approval_state": self.approval_state.value,
            "color": {"hex": self.color.hex, "alpha": self.color.alpha},
            "icon": self.icon,
        }


@dataclass(frozen=True, slots=True)
class SavableMetadata:
    """Flat row persisted by the metadata store."""

    file_name: str
    file_id: str
    theme_name: str
    theme_author: str
    theme_description: str
    message_id: str | None
    approval_state: ApprovalState
    color: str
    alpha: float
    icon: str

    def to_metadata(self) -> ThemeMetadata:
        return ThemeMetadata(
            file_id=self.file_id,
            file_name=self.file_name,
            theme_name=self.theme_name,
            theme_author=self.theme_author,
            theme_description=self.theme_description,
            message_id=self.message_id,
            approval_state=self.approval_state,
            color=MetadataColor(hex=self.color, alpha=self.alpha),
            icon=self.icon,
        )


@dataclass(frozen=True, slots=True)
class Reconciliation:
    """Result of reconciling freshly parsed metadata against the store."""

    decision: RevisionDecision
    metadata: ThemeMetadata
    rename_to: str | None = None


def with_identity_of(metadata: ThemeMetadata, existing: ThemeMetadata) -> ThemeMetadata:
    """Copy the stable storage fields of an existing record onto new metadata."""
    return replace(
        metadata,
        file_name=existing.file_name,
        message_id=existing.message_id,
    )
