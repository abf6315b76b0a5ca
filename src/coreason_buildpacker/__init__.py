# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_buildpacker

"""
coreason-buildpacker
"""

__version__ = "0.1.0"
__author__ = "Gowtham A Rao"
__email__ = "gowtham.rao@coreason.ai"

from .buildpacker import Buildpacker, BuildpackerAsync
from .config import BuildpackerConfig
from .exceptions import (
    BuildpackerError,
    DecodeError,
    ExtractionError,
    HealthCheckFailed,
    LocalIOError,
    NotFoundError,
    RelocationFailed,
    StagingFailed,
    StagingResultInvalid,
    TransferError,
)
from .models import SandboxPaths, StagingResult
from .runtime import SandboxProcess, SandboxRuntime
from .runtimes.docker import DockerRuntime
from .staging import StagingSession
from .transfer import copy_archive_in, copy_directory_in, copy_file_in, fetch_contents

__all__ = [
    "Buildpacker",
    "BuildpackerAsync",
    "BuildpackerConfig",
    "BuildpackerError",
    "DecodeError",
    "DockerRuntime",
    "ExtractionError",
    "HealthCheckFailed",
    "LocalIOError",
    "NotFoundError",
    "RelocationFailed",
    "SandboxPaths",
    "SandboxProcess",
    "SandboxRuntime",
    "StagingFailed",
    "StagingResult",
    "StagingResultInvalid",
    "StagingSession",
    "TransferError",
    "copy_archive_in",
    "copy_directory_in",
    "copy_file_in",
    "fetch_contents",
]
