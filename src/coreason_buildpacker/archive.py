# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_buildpacker

import lzma
import os
import shutil
import tarfile
import tempfile
import zipfile
import zlib
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

from loguru import logger

from coreason_buildpacker.exceptions import ExtractionError


def _extract_zip(archive_path: Path, destination: Path) -> None:
    with zipfile.ZipFile(archive_path) as archive:
        bad_member = archive.testzip()
        if bad_member is not None:
            raise zipfile.BadZipFile(f"corrupt member {bad_member!r}")

        for info in archive.infolist():
            extracted = archive.extract(info, destination)
            # zipfile drops permission bits; buildpack scripts must stay executable
            mode = (info.external_attr >> 16) & 0o777
            if mode:
                os.chmod(extracted, mode)


def _extract_tar(archive_path: Path, destination: Path) -> None:
    with tarfile.open(archive_path, mode="r:*") as archive:
        archive.extractall(destination, filter="data")


def extract(archive_path: Path | str) -> Path:
    """Extract an archive into a freshly created temporary directory.

    The format (zip, or tar with optional gzip/bzip2/xz compression) is detected
    from the file content. The caller owns the returned directory and must
    remove it; prefer ``extracted`` which does so on every exit path.

    Args:
        archive_path: The local archive to extract.

    Returns:
        Path: The temporary directory holding the extracted tree.

    Raises:
        ExtractionError: If the archive is missing, unreadable, malformed, or of
            an unknown format.
    """
    archive_path = Path(archive_path)

    try:
        if zipfile.is_zipfile(archive_path):
            extractor = _extract_zip
        elif tarfile.is_tarfile(archive_path):
            extractor = _extract_tar
        else:
            raise ExtractionError(f"unrecognized archive format: {archive_path}")
    except OSError as e:
        raise ExtractionError(f"cannot read archive {archive_path}: {e}") from e

    extraction_dir = Path(tempfile.mkdtemp(prefix="extracted"))
    logger.debug(f"Extracting {archive_path} into {extraction_dir}")

    try:
        extractor(archive_path, extraction_dir)
    except (OSError, EOFError, zlib.error, lzma.LZMAError, zipfile.BadZipFile, tarfile.TarError) as e:
        shutil.rmtree(extraction_dir, ignore_errors=True)
        raise ExtractionError(f"failed to extract {archive_path}: {e}") from e

    return extraction_dir


@contextmanager
def extracted(archive_path: Path | str) -> Iterator[Path]:
    """Context manager yielding an extraction directory that is always removed."""
    extraction_dir = extract(archive_path)
    try:
        yield extraction_dir
    finally:
        shutil.rmtree(extraction_dir, ignore_errors=True)
