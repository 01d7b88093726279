from __future__ import annotations

import asyncio
import time
from typing import Awaitable, Callable

from loguru import logger

# (token, lifetime in seconds)
TokenFetcher = Callable[[], Awaitable[tuple[str, float]]]


class TokenManager:
    """Caches one bearer token and refreshes it single-flight.

    Concurrent callers that find the token expired wait on the same lock;
    only the first performs the refresh.
    """

    def __init__(
        self,
        name: str,
        fetcher: TokenFetcher,
        *,
        skew_seconds: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.name = name
        self._fetcher = fetcher
        self._skew = skew_seconds
        self._clock = clock
        self._token: str | None = None
        self._expires_at = 0.0
        self._lock = asyncio.Lock()

    def _valid(self) -> bool:
        return self._token is not None and self._clock() < self._expires_at

    async def get_token(self) -> str:
        if self._valid():
            return self._token  # type: ignore[return-value]
        async with self._lock:
            if self._valid():
                return self._token  # type: ignore[return-value]
            token, lifetime = await self._fetcher()
            self._token = token
            self._expires_at = self._clock() + max(0.0, lifetime - self._skew)
            logger.debug(f"{self.name} token refreshed, valid for {lifetime:.0f}s")
            return token

    def invalidate(self) -> None:
        self._token = None
        self._expires_at = 0.0
