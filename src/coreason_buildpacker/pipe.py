# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_buildpacker

"""Synchronous in-process pipe connecting a producer thread to a consumer.

Writes block until the reader has drained every byte, so memory use is bounded
by a single write regardless of payload size. The writer may end the stream
abnormally with ``close_with_error``; the reader then raises that error on its
next read instead of reporting a clean end-of-stream.
"""

import io
import threading


class _PipeState:
    def __init__(self) -> None:
        self.cond = threading.Condition()
        self.pending: memoryview | None = None
        self.writer_closed = False
        self.reader_closed = False
        self.error: BaseException | None = None


class PipeReader(io.RawIOBase):
    """Read end of a pipe."""

    def __init__(self, state: _PipeState):
        self._state = state

    @property
    def error(self) -> BaseException | None:
        """The error the writer closed the pipe with, if any."""
        return self._state.error

    def readable(self) -> bool:
        return True

    def readinto(self, buffer: bytearray | memoryview) -> int:  # type: ignore[override]
        state = self._state
        with state.cond:
            while state.pending is None and not state.writer_closed:
                if state.reader_closed:
                    raise ValueError("read from closed pipe")
                state.cond.wait()

            if state.pending is not None:
                n = min(len(buffer), len(state.pending))
                buffer[:n] = state.pending[:n]
                rest = state.pending[n:]
                state.pending = rest if len(rest) else None
                if state.pending is None:
                    state.cond.notify_all()
                return n

            if state.error is not None:
                raise state.error
            return 0

    def close(self) -> None:
        state = self._state
        with state.cond:
            state.reader_closed = True
            state.pending = None
            state.cond.notify_all()
        super().close()


class PipeWriter:
    """Write end of a pipe."""

    def __init__(self, state: _PipeState):
        self._state = state

    def write(self, data: bytes | bytearray | memoryview) -> int:
        state = self._state
        chunk = memoryview(bytes(data))
        if not len(chunk):
            return 0

        with state.cond:
            if state.writer_closed:
                raise ValueError("write to closed pipe")
            if state.reader_closed:
                raise BrokenPipeError("pipe reader closed")

            state.pending = chunk
            state.cond.notify_all()
            while state.pending is not None and not state.reader_closed:
                state.cond.wait()

            if state.reader_closed:
                raise BrokenPipeError("pipe reader closed")
        return len(chunk)

    def flush(self) -> None:
        pass

    def close(self) -> None:
        """Ends the stream cleanly; the reader sees EOF."""
        self.close_with_error(None)

    def close_with_error(self, error: BaseException | None) -> None:
        """Ends the stream; the reader raises ``error`` instead of reporting EOF."""
        state = self._state
        with state.cond:
            if state.writer_closed:
                return
            state.writer_closed = True
            state.error = error
            state.cond.notify_all()

    @property
    def closed(self) -> bool:
        return self._state.writer_closed


def pipe() -> tuple[PipeReader, PipeWriter]:
    """Creates a connected (reader, writer) pair."""
    state = _PipeState()
    return PipeReader(state), PipeWriter(state)
