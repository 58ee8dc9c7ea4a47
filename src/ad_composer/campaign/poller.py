"""Long-running job poller for remote video generation."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, Protocol

import structlog

from ad_composer.config import settings
from ad_composer.errors import JobTimeoutError

logger = structlog.get_logger()


@dataclass(frozen=True)
class JobHandle:
    """Snapshot of a remote job. ``result`` is a locator for the produced clip."""

    name: str
    done: bool = False
    result: str | None = None
    error: str | None = None
    operation: Any = None  # provider-specific object needed to poll again


class VideoJobService(Protocol):
    async def submit(self, prompt: str, image_bytes: bytes, mime_type: str) -> JobHandle: ...

    async def poll(self, handle: JobHandle) -> JobHandle: ...

    async def fetch(self, locator: str) -> bytes: ...


class JobPoller:
    """Submit a job, then sleep a fixed interval and poll until it is done.

    There is no cap on the number of polls; generation may legitimately take
    minutes. ``timeout`` is an optional caller deadline in seconds and the
    wait is cancellable like any other asyncio task.
    """

    def __init__(
        self,
        service: VideoJobService,
        interval: float | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.service = service
        self.interval = settings.video_poll_interval_sec if interval is None else interval
        self._sleep = sleep

    async def run(
        self,
        prompt: str,
        image_bytes: bytes,
        mime_type: str,
        timeout: float | None = None,
    ) -> JobHandle:
        handle = await self.service.submit(prompt, image_bytes, mime_type)
        logger.info("poller.submitted", job=handle.name)
        return await self.wait(handle, timeout=timeout)

    async def wait(self, handle: JobHandle, timeout: float | None = None) -> JobHandle:
        if timeout is None:
            return await self._poll_until_done(handle)
        try:
            return await asyncio.wait_for(self._poll_until_done(handle), timeout)
        except asyncio.TimeoutError as exc:
            raise JobTimeoutError(
                f"Video job {handle.name} did not finish within {timeout}s"
            ) from exc

    async def _poll_until_done(self, handle: JobHandle) -> JobHandle:
        polls = 0
        while not handle.done:
            await self._sleep(self.interval)
            handle = await self.service.poll(handle)
            polls += 1
            logger.debug("poller.polled", job=handle.name, polls=polls, done=handle.done)

        logger.info(
            "poller.done",
            job=handle.name,
            polls=polls,
            failed=handle.error is not None,
        )
        return handle
