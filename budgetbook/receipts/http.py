"""Shared httpx client handling for the HTTP-backed adapters."""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import httpx


@asynccontextmanager
async def http_session(
    client: httpx.AsyncClient | None, timeout_s: float = 30.0
) -> AsyncIterator[httpx.AsyncClient]:
    """Yield ``client`` if one was injected, else a short-lived client.

    Injected clients are left open; the caller owns them.
    """
    if client is not None:
        yield client
        return
    async with httpx.AsyncClient(timeout=timeout_s, follow_redirects=True) as own:
        yield own
