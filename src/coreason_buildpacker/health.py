# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_buildpacker

import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import anyio
import httpx
from loguru import logger

from coreason_buildpacker.exceptions import HealthCheckFailed


class LivenessProbe:
    """Polls a launched application over HTTP until it answers 200."""

    def __init__(
        self,
        client: httpx.AsyncClient | None = None,
        timeout: float = 15.0,
        interval: float = 0.5,
    ):
        """Initializes the LivenessProbe.

        Args:
            client: Optional httpx.AsyncClient for connection pooling.
            timeout: Seconds to keep polling before giving up.
            interval: Seconds between polls.
        """
        self._client = client
        self.timeout = timeout
        self.interval = interval

    async def _check(self, client: httpx.AsyncClient, url: str) -> str | None:
        """Returns None when healthy, otherwise a description of the failure."""
        try:
            response = await client.get(url, timeout=self.interval * 4)
        except httpx.HTTPError as e:
            return f"{type(e).__name__}: {e}"
        if response.status_code != 200:
            return f"status {response.status_code}"
        return None

    async def wait_until_healthy(self, url: str) -> None:
        """Poll ``url`` until it returns 200.

        Raises:
            HealthCheckFailed: If no 200 arrived within ``timeout``.
        """
        logger.info(f"Waiting for {url} to become healthy")
        async with self._session() as client:
            deadline = time.monotonic() + self.timeout
            while True:
                failure = await self._check(client, url)
                if failure is None:
                    logger.info(f"{url} is healthy")
                    return
                if time.monotonic() >= deadline:
                    raise HealthCheckFailed(f"{url} not healthy after {self.timeout}s: {failure}")
                await anyio.sleep(self.interval)

    async def stays_healthy(self, url: str, duration: float) -> None:
        """Poll ``url`` for ``duration`` seconds, requiring 200 every time.

        Raises:
            HealthCheckFailed: On the first poll that does not return 200.
        """
        async with self._session() as client:
            deadline = time.monotonic() + duration
            while True:
                failure = await self._check(client, url)
                if failure is not None:
                    raise HealthCheckFailed(f"{url} became unhealthy: {failure}")
                if time.monotonic() >= deadline:
                    return
                await anyio.sleep(self.interval)

    @asynccontextmanager
    async def _session(self) -> AsyncIterator[httpx.AsyncClient]:
        if self._client is not None:
            yield self._client
            return
        async with httpx.AsyncClient() as client:
            yield client
