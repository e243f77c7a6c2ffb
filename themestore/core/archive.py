"""Unpack uploaded theme archives into per-upload scratch directories."""

from __future__ import annotations

import logging
import secrets
import shutil
import time
import zipfile
import zlib
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path, PurePosixPath

from themestore.errors import ErrorCode, ExtractionError

logger = logging.getLogger("themestore.archive")

_COPY_CHUNK = 64 * 1024


@dataclass(frozen=True, slots=True)
class ExtractionLimits:
    """Upper bounds applied while unpacking an untrusted archive."""

    max_members: int = 512
    max_total_bytes: int = 64 * 1024 * 1024
    max_seconds: float = 30.0


def scratch_name(archive_path: Path) -> str:
    """Directory name for one extraction: archive stem plus a random token."""
    return f"{archive_path.stem}-{secrets.token_hex(4)}"


@contextmanager
def scratch_directory(cache_dir: Path, archive_path: Path) -> Iterator[Path]:
    """Create a scratch directory for one archive and always remove it."""
    path = Path(cache_dir) / scratch_name(Path(archive_path))
    path.mkdir(parents=True, exist_ok=False)
    try:
        yield path
    finally:
        shutil.rmtree(path, ignore_errors=True)
        if path.exists():
            logger.error("scratch directory could not be removed: %s", path)
        else:
            logger.debug("scratch directory removed: %s", path)


def extract_archive(
    archive_path: Path,
    destination: Path,
    *,
    limits: ExtractionLimits | None = None,
) -> Path:
    """Extract a zip archive into destination and return destination."""
    archive_path = Path(archive_path)
    destination = Path(destination)
    limits = limits or ExtractionLimits()

    if not archive_path.is_file():
        raise ExtractionError(code=ErrorCode.ARCHIVE_NOT_FOUND, path=archive_path)

    started = time.monotonic()
    written = 0
    try:
        with zipfile.ZipFile(archive_path) as archive:
            members = archive.infolist()
            if len(members) > limits.max_members:
                raise ExtractionError(
                    code=ErrorCode.ARCHIVE_TOO_LARGE,
                    path=archive_path,
                    details={"members": len(members), "limit": limits.max_members},
                )
            root = destination.resolve()
            for info in members:
                if time.monotonic() - started > limits.max_seconds:
                    raise ExtractionError(
                        code=ErrorCode.ARCHIVE_TIMEOUT,
                        path=archive_path,
                        details={"limit_seconds": limits.max_seconds},
                    )
                target = _member_target(root, info.filename, archive_path)
                if info.is_dir():
                    target.mkdir(parents=True, exist_ok=True)
                    continue
                target.parent.mkdir(parents=True, exist_ok=True)
                written = _copy_member(archive, info, target, written, limits, archive_path)
    except ExtractionError:
        raise
    except (
        zipfile.BadZipFile,
        zipfile.LargeZipFile,
        zlib.error,
        EOFError,
        OSError,
        RuntimeError,
        ValueError,
    ) as exc:
        # RuntimeError covers encrypted members, ValueError unsupported compression.
        raise ExtractionError(
            path=archive_path,
            details={"original": str(exc)},
        ) from exc

    logger.info(
        "extracted %s (%d bytes) into %s in %.2fs",
        archive_path.name,
        written,
        destination,
        time.monotonic() - started,
    )
    return destination


def _member_target(root: Path, name: str, archive_path: Path) -> Path:
    member = PurePosixPath(name.replace("\\", "/"))
    if member.is_absolute() or ".." in member.parts or (member.parts and ":" in member.parts[0]):
        raise ExtractionError(
            code=ErrorCode.ARCHIVE_UNSAFE_PATH,
            path=archive_path,
            details={"member": name},
        )
    target = root.joinpath(*member.parts).resolve()
    if target != root and root not in target.parents:
        raise ExtractionError(
            code=ErrorCode.ARCHIVE_UNSAFE_PATH,
            path=archive_path,
            details={"member": name},
        )
    return target


def _copy_member(
    archive: zipfile.ZipFile,
    info: zipfile.ZipInfo,
    target: Path,
    written: int,
    limits: ExtractionLimits,
    archive_path: Path,
) -> int:
    with archive.open(info) as source, target.open("wb") as sink:
        while True:
            chunk = source.read(_COPY_CHUNK)
            if not chunk:
                break
            written += len(chunk)
            if written > limits.max_total_bytes:
                raise ExtractionError(
                    code=ErrorCode.ARCHIVE_TOO_LARGE,
                    path=archive_path,
                    details={"limit_bytes": limits.max_total_bytes},
                )
            sink.write(chunk)
    return written
