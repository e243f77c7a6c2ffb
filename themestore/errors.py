"""Error codes and error handling utilities for the theme store."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum, auto
from pathlib import Path
from typing import Any


class ErrorCode(Enum):
    """Standardized error codes for theme store operations."""

    # Archive errors
    ARCHIVE_NOT_FOUND = auto()
    ARCHIVE_CORRUPT = auto()
    ARCHIVE_UNSAFE_PATH = auto()
    ARCHIVE_TOO_LARGE = auto()
    ARCHIVE_TIMEOUT = auto()

    # Manifest errors
    MANIFEST_MISSING = auto()
    MANIFEST_MALFORMED = auto()
    MANIFEST_MISSING_ID = auto()
    PALETTE_INCOMPLETE = auto()

    # Storage errors
    STORE_UNAVAILABLE = auto()
    STORE_CONSTRAINT = auto()
    BLOB_NOT_FOUND = auto()
    BLOB_UNAVAILABLE = auto()

    # Rendering errors
    RASTERIZATION_FAILED = auto()
    RENDER_TIMEOUT = auto()
    TEMPLATE_INVALID = auto()

    # Operation errors
    OPERATION_FAILED = auto()

    # Configuration errors
    CONFIG_INVALID = auto()


ERROR_MESSAGES: dict[ErrorCode, str] = {
    ErrorCode.ARCHIVE_NOT_FOUND: "The uploaded archive was not found on disk.",
    ErrorCode.ARCHIVE_CORRUPT: "The archive could not be read. It may be corrupt or not a zip file.",
    ErrorCode.ARCHIVE_UNSAFE_PATH: "The archive contains paths outside its own root.",
    ErrorCode.ARCHIVE_TOO_LARGE: "The archive expands beyond the allowed size or member count.",
    ErrorCode.ARCHIVE_TIMEOUT: "Extracting the archive took too long.",

    ErrorCode.MANIFEST_MISSING: "theme.json was not found at the root of the archive.",
    ErrorCode.MANIFEST_MALFORMED: "theme.json is not valid or lacks the metadata section.",
    ErrorCode.MANIFEST_MISSING_ID: "theme.json does not declare a theme id.",
    ErrorCode.PALETTE_INCOMPLETE: "theme.json is missing a color required for the previews.",

    ErrorCode.STORE_UNAVAILABLE: "The theme database is unavailable.",
    ErrorCode.STORE_CONSTRAINT: "The theme record conflicts with an existing record.",
    ErrorCode.BLOB_NOT_FOUND: "The requested file does not exist in storage.",
    ErrorCode.BLOB_UNAVAILABLE: "File storage is unavailable. Try again later.",

    ErrorCode.RASTERIZATION_FAILED: "A preview image could not be rendered.",
    ErrorCode.RENDER_TIMEOUT: "Rendering previews took too long; remaining previews were skipped.",
    ErrorCode.TEMPLATE_INVALID: "The preview template bundle is invalid.",

    ErrorCode.OPERATION_FAILED: "Operation failed. See details for more information.",

    ErrorCode.CONFIG_INVALID: "Configuration is invalid. Check the settings file.",
}


@dataclass
class ThemeStoreError(Exception):
    """Base exception with error code and context."""

    code: ErrorCode
    message: str = ""
    path: Path | None = None
    details: dict[str, Any] = field(default_factory=dict)
    suggestion: str = ""

    def __post_init__(self) -> None:
        if not self.message:
            self.message = ERROR_MESSAGES.get(self.code, "An unexpected error occurred.")
        if not self.suggestion and self.code in ERROR_MESSAGES:
            self.suggestion = ERROR_MESSAGES[self.code]

    def __str__(self) -> str:
        parts = [self.message]
        if self.path:
            parts.append(f"\nFile: {self.path}")
        if self.details:
            details_str = " | ".join(f"{k}={v}" for k, v in self.details.items())
            parts.append(f"\nDetails: {details_str}")
        return "".join(parts)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging or API responses."""
        return {
            "code": self.code.name,
            "message": self.message,
            "path": str(self.path) if self.path else None,
            "details": self.details,
            "suggestion": self.suggestion,
        }


class _CodedError(ThemeStoreError):
    """Base for errors that carry a default code."""

    default_code = ErrorCode.OPERATION_FAILED

    def __init__(
        self,
        message: str = "",
        *,
        code: ErrorCode | None = None,
        path: Path | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(code or self.default_code, message, path, dict(details or {}))


class ExtractionError(_CodedError):
    """The archive is unreadable, corrupt, unsafe or over its limits."""

    default_code = ErrorCode.ARCHIVE_CORRUPT


class MissingManifestError(_CodedError):
    """theme.json is absent from the extraction root."""

    default_code = ErrorCode.MANIFEST_MISSING


class MalformedManifestError(_CodedError):
    """theme.json is not a JSON object, or the metadata section is missing."""

    default_code = ErrorCode.MANIFEST_MALFORMED


class PaletteIncompleteError(_CodedError):
    """A color required by one of the palettes is missing."""

    default_code = ErrorCode.PALETTE_INCOMPLETE


class PersistenceError(_CodedError):
    """The metadata store failed or rejected a write."""

    default_code = ErrorCode.STORE_UNAVAILABLE


class RasterizationError(_CodedError):
    """One preview file could not be produced."""

    default_code = ErrorCode.RASTERIZATION_FAILED


class BlobStoreError(_CodedError):
    """The blob store failed to read or write an object."""

    default_code = ErrorCode.BLOB_UNAVAILABLE


class BlobNotFoundError(BlobStoreError):
    """The requested key does not exist."""

    default_code = ErrorCode.BLOB_NOT_FOUND


def classify_exception(exc: Exception, path: Path | None = None) -> ThemeStoreError:
    """Classify a generic exception into a ThemeStoreError with appropriate code."""
    if isinstance(exc, ThemeStoreError):
        return exc

    exc_name = type(exc).__name__
    exc_str = str(exc).lower()

    if "FileNotFoundError" in exc_name or "no such file" in exc_str:
        return ThemeStoreError(ErrorCode.ARCHIVE_NOT_FOUND, path=path, details={"original": exc_str})
    if "BadZipFile" in exc_name or "not a zip file" in exc_str:
        return ThemeStoreError(ErrorCode.ARCHIVE_CORRUPT, path=path, details={"original": exc_str})
    if "JSONDecodeError" in exc_name:
        return ThemeStoreError(ErrorCode.MANIFEST_MALFORMED, path=path, details={"original": exc_str})
    if "IntegrityError" in exc_name or "unique constraint" in exc_str:
        return ThemeStoreError(ErrorCode.STORE_CONSTRAINT, details={"original": exc_str})
    if "OperationalError" in exc_name or "database is locked" in exc_str:
        return ThemeStoreError(ErrorCode.STORE_UNAVAILABLE, details={"original": exc_str})
    if "NoSuchKey" in exc_name or "404" in exc_str or "not found" in exc_str:
        return ThemeStoreError(ErrorCode.BLOB_NOT_FOUND, path=path, details={"original": exc_str})
    if (
        "EndpointConnectionError" in exc_name
        or "timeout" in exc_str
        or "connection" in exc_str
    ):
        return ThemeStoreError(ErrorCode.BLOB_UNAVAILABLE, details={"original": exc_str})

    return ThemeStoreError(
        ErrorCode.OPERATION_FAILED,
        message=f"{exc_name}: {exc}",
        path=path,
        details={"original": exc_str},
    )


def format_error_for_user(error: ThemeStoreError | Exception) -> str:
    """Format an error for display with actionable suggestions."""
    if isinstance(error, ThemeStoreError):
        parts = [f"[{error.code.name}] {error.message}"]
        if error.suggestion and error.suggestion != error.message:
            parts.append(f"\n  {error.suggestion}")
        if error.path:
            parts.append(f"\n  File: {error.path.name}")
        return "".join(parts)

    classified = classify_exception(error)
    return format_error_for_user(classified)
