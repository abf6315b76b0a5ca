# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_buildpacker

"""Streaming tar encoding of local files/directories and first-entry decoding."""

import os
import tarfile
import threading
import time
from collections.abc import Callable
from pathlib import Path
from typing import BinaryIO

from loguru import logger

from coreason_buildpacker.exceptions import DecodeError, LocalIOError
from coreason_buildpacker.pipe import PipeReader, PipeWriter, pipe

DEFAULT_MODE = 0o777


def _spawn(target: Callable[[PipeWriter], None], description: str) -> PipeReader:
    """Runs ``target`` in a producer thread feeding the returned reader.

    The pipe is closed cleanly only when ``target`` returns; any failure closes
    it with a LocalIOError so the consumer never mistakes a partial archive for
    a complete one.
    """
    reader, writer = pipe()

    def produce() -> None:
        try:
            target(writer)
        except BrokenPipeError:
            logger.debug(f"Consumer closed the stream for {description} early")
            writer.close_with_error(LocalIOError(f"stream for {description} was abandoned by its reader"))
        except (OSError, tarfile.TarError) as e:
            logger.error(f"Failed to encode {description}: {e}")
            writer.close_with_error(LocalIOError(f"failed to encode {description}: {e}"))
        except Exception as e:
            logger.exception(f"Unexpected error encoding {description}")
            writer.close_with_error(LocalIOError(f"failed to encode {description}: {type(e).__name__}: {e}"))
        else:
            writer.close()

    threading.Thread(target=produce, name=f"tar-encoder:{description}", daemon=True).start()
    return reader


def encode_file(source: Path | str, name: str, mode: int = DEFAULT_MODE) -> PipeReader:
    """Encodes a single file as a one-entry tar stream.

    Args:
        source: The local file to encode.
        name: The entry name written into the header.
        mode: The permission bits recorded for the entry.

    Returns:
        PipeReader: A readable stream of the tar archive, produced concurrently.
    """
    source = Path(source)

    def write(writer: PipeWriter) -> None:
        with open(source, "rb") as f:
            size = os.fstat(f.fileno()).st_size
            now = time.time()

            info = tarfile.TarInfo(name=name)
            info.size = size
            info.mode = mode
            info.mtime = int(now)
            info.pax_headers = {"atime": f"{now:.6f}", "ctime": f"{now:.6f}"}

            tar = tarfile.open(fileobj=writer, mode="w|", format=tarfile.PAX_FORMAT)  # type: ignore[call-overload]
            tar.addfile(info, f)
            tar.close()

    return _spawn(write, str(source))


def encode_directory(source: Path | str) -> PipeReader:
    """Encodes a directory tree as a tar stream.

    Entries are named relative to the source root (``./``, ``./bin/run``, ...)
    so that unpacking at a destination reconstructs the tree there rather than
    one level deeper.
    """
    source = Path(source)

    def write(writer: PipeWriter) -> None:
        if not source.is_dir():
            raise NotADirectoryError(f"not a directory: {source}")

        tar = tarfile.open(fileobj=writer, mode="w|", format=tarfile.PAX_FORMAT)  # type: ignore[call-overload]
        tar.add(source, arcname=".", recursive=True)
        tar.close()

    return _spawn(write, str(source))


def read_first_entry(stream: BinaryIO) -> bytes:
    """Reads the payload of the first entry of a tar stream.

    Only the first entry is consumed; anything after it is left unread.

    Raises:
        DecodeError: If the stream is not a tar archive, holds no entries, or
            its first entry is not a regular file.
    """
    try:
        with tarfile.open(fileobj=stream, mode="r|") as tar:  # type: ignore[call-overload]
            member = tar.next()
            if member is None:
                raise DecodeError("tar stream contains no entries")

            f = tar.extractfile(member)
            if f is None:
                raise DecodeError(f"first tar entry {member.name!r} is not a regular file")

            data = f.read()
            if len(data) != member.size:
                raise DecodeError(f"tar entry {member.name!r} truncated: expected {member.size} bytes, got {len(data)}")
            return data
    except tarfile.TarError as e:
        raise DecodeError(f"malformed tar stream: {e}") from e
