"""Bounded polling for readiness conditions."""

from __future__ import annotations

import asyncio
import math
from typing import Awaitable, Callable

import structlog

logger = structlog.get_logger(__name__)

Sleep = Callable[[float], Awaitable[None]]
Check = Callable[[], Awaitable[bool]]


class ReadinessPoller:
    """Retries an async predicate a fixed number of times with a fixed delay."""

    def __init__(self, attempts: int, interval_s: float, sleep: Sleep = asyncio.sleep) -> None:
        if attempts < 1:
            raise ValueError("attempts must be at least 1")
        self.attempts = attempts
        self.interval_s = interval_s
        self._sleep = sleep

    @classmethod
    def for_timeout(cls, timeout_s: float, interval_s: float, sleep: Sleep = asyncio.sleep) -> "ReadinessPoller":
        attempts = max(1, math.ceil(timeout_s / interval_s)) if interval_s > 0 else 1
        return cls(attempts, interval_s, sleep)

    async def until(self, check: Check) -> bool:
        for attempt in range(1, self.attempts + 1):
            if await check():
                return True
            if attempt < self.attempts:
                await self._sleep(self.interval_s)
        return False

    async def wait_for_port(self, port: int, probe: Callable[[int], Awaitable[bool]]) -> bool:
        logger.info("waiting_for_port", port=port, attempts=self.attempts, interval_s=self.interval_s)

        async def check() -> bool:
            return await probe(port)

        ready = await self.until(check)
        if ready:
            logger.info("port_ready", port=port)
        else:
            logger.warning("port_timeout", port=port)
        return ready
