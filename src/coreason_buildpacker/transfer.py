# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_buildpacker

"""Moves files, directory trees and archives into and out of a sandbox.

Every copy-in pairs one tar-encoding producer thread with the runtime's
ingestion call; the two are connected by a synchronous pipe, so payloads are
streamed rather than buffered.
"""

import posixpath
from pathlib import Path

import anyio
from loguru import logger

from coreason_buildpacker.archive import extracted
from coreason_buildpacker.exceptions import DecodeError, NotFoundError, TransferError
from coreason_buildpacker.pipe import PipeReader
from coreason_buildpacker.runtime import SandboxRuntime
from coreason_buildpacker.tarstream import encode_directory, encode_file, read_first_entry


async def _stream_in(runtime: SandboxRuntime, target: str, stream: PipeReader, source: Path, destination: str) -> None:
    try:
        await runtime.stream_in(target, stream)
    except Exception as e:
        cause = stream.error or e
        logger.error(f"Copy of {source} to {destination} failed: {cause}")
        raise TransferError(f"failed to copy {source} to {destination}: {cause}") from cause
    finally:
        producer_error = stream.error
        stream.close()

    if producer_error is not None:
        raise TransferError(f"failed to copy {source} to {destination}: {producer_error}") from producer_error


async def copy_file_in(runtime: SandboxRuntime, source: Path | str, destination: str) -> None:
    """Copy a single local file to ``destination`` inside the sandbox.

    Raises:
        TransferError: If the file could not be read or the sandbox rejected it.
    """
    source = Path(source)
    logger.info(f"Copying file {source} to {destination} in sandbox")

    stream = encode_file(source, posixpath.basename(destination))
    await _stream_in(runtime, posixpath.dirname(destination) or ".", stream, source, destination)


async def copy_directory_in(runtime: SandboxRuntime, source: Path | str, destination: str) -> None:
    """Copy a local directory tree so that its contents land in ``destination``.

    Raises:
        TransferError: If the tree could not be read or the sandbox rejected it.
    """
    source = Path(source)
    logger.info(f"Copying directory {source} to {destination} in sandbox")

    stream = encode_directory(source)
    await _stream_in(runtime, destination, stream, source, destination)


async def copy_archive_in(runtime: SandboxRuntime, archive: Path | str, destination: str) -> None:
    """Extract a local archive and copy its contents to ``destination``.

    The temporary extraction directory is removed whatever the outcome.

    Raises:
        ExtractionError: If the archive could not be extracted.
        TransferError: If the extracted tree could not be copied in.
    """
    logger.info(f"Copying archive {archive} to {destination} in sandbox")

    with extracted(archive) as extraction_dir:
        await copy_directory_in(runtime, extraction_dir, destination)


async def fetch_contents(runtime: SandboxRuntime, path: str) -> bytes:
    """Read the contents of a single file inside the sandbox.

    Raises:
        NotFoundError: If ``path`` does not exist in the sandbox.
        DecodeError: If the sandbox returned a malformed or empty archive.
        TransferError: If the sandbox could not be read from.
    """
    logger.info(f"Fetching {path} from sandbox")

    try:
        stream = await runtime.stream_out(path)
    except FileNotFoundError as e:
        raise NotFoundError(f"{path} does not exist in sandbox") from e
    except Exception as e:
        logger.error(f"Fetch of {path} failed: {e}")
        raise TransferError(f"failed to fetch {path}: {e}") from e

    try:
        return await anyio.to_thread.run_sync(read_first_entry, stream)
    except DecodeError:
        raise
    except Exception as e:
        raise TransferError(f"failed to read {path}: {e}") from e
    finally:
        stream.close()
