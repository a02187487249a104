"""
In-flight request registry.

A process-wide registry of tokens for requests currently being forwarded to a
remote service. A second request carrying the same token while the first is
outstanding is rejected instead of triggering a second remote call. Tokens
are removed when the request completes or fails and are never persisted.
"""

import time
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict, Optional

from mangamotion.core.exceptions import RequestInProgressError
from mangamotion.core.logging_config import get_logger

logger = get_logger("proxy.guard")


def request_token(operation: str, timestamp: Optional[str] = None) -> str:
    """Derive the registry key for an operation and a client-issued timestamp."""
    stamp = timestamp or str(int(time.time() * 1000))
    return f"{operation}-{stamp}"


class InFlightRegistry:
    """Tracks tokens of requests that have started but not finished."""

    def __init__(self):
        self._started: Dict[str, float] = {}

    def try_acquire(self, token: str) -> bool:
        """Register a token; False if it is already in flight."""
        if token in self._started:
            return False
        self._started[token] = time.monotonic()
        return True

    def release(self, token: str) -> None:
        self._started.pop(token, None)

    def __contains__(self, token: str) -> bool:
        return token in self._started

    def __len__(self) -> int:
        return len(self._started)

    @asynccontextmanager
    async def hold(self, token: str) -> AsyncIterator[str]:
        """Hold a token for the duration of a block.

        Raises:
            RequestInProgressError: if the token is already held
        """
        if not self.try_acquire(token):
            logger.info(f"Request {token} is already in progress")
            raise RequestInProgressError(token)
        try:
            yield token
        finally:
            self.release(token)


_registry: Optional[InFlightRegistry] = None


def get_registry() -> InFlightRegistry:
    """Get the process-wide registry."""
    global _registry
    if _registry is None:
        _registry = InFlightRegistry()
    return _registry
