# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_buildpacker

"""Error taxonomy for artifact transport and the staging protocol."""


class BuildpackerError(Exception):
    """Base class for every error raised by coreason-buildpacker."""


class LocalIOError(BuildpackerError):
    """A local source file or directory could not be read."""


class ExtractionError(BuildpackerError):
    """An archive is malformed, unreadable, or of an undetectable format."""


class TransferError(BuildpackerError):
    """The sandbox rejected an ingestion/egestion, or the connection failed."""


class NotFoundError(TransferError):
    """The egestion target does not exist inside the sandbox."""


class DecodeError(BuildpackerError):
    """A tar stream or result document could not be decoded."""


class StagingResultInvalid(DecodeError):
    """The staging result document is missing a required field or is unparseable."""


class ProcessFailed(BuildpackerError):
    """A remote process exited with a non-zero code."""

    def __init__(self, message: str, exit_code: int):
        super().__init__(message)
        self.exit_code = exit_code


class StagingFailed(ProcessFailed):
    """The build agent exited non-zero."""


class RelocationFailed(ProcessFailed):
    """The droplet relocation step exited non-zero."""


class HealthCheckFailed(BuildpackerError):
    """The launched application did not answer its liveness probe in time."""
