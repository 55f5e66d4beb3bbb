"""Minimal request/response client for the fleet backend API.

All clients in the process share one aiohttp session through the
resource registry.
"""

from __future__ import annotations

import asyncio
import logging

import aiohttp

from tracker.config import BackendConfig
from tracker.resources import ResourceRegistry, registry as default_registry

logger = logging.getLogger(__name__)

SESSION_RESOURCE = "backend-http-session"


async def _open_session() -> aiohttp.ClientSession:
    return aiohttp.ClientSession()


async def _close_session(session: aiohttp.ClientSession) -> None:
    await session.close()


class BackendError(Exception):
    """Non-2xx response or transport failure."""

    def __init__(self, message: str, status: int | None = None):
        super().__init__(message)
        self.status = status


class BackendClient:
    """POSTs JSON to the backend and returns the decoded body.

    Usage:
        async with BackendClient(BackendConfig(base_url=...)) as client:
            body = await client.post_json("/mobile/gps/log", payload)
    """

    def __init__(self, config: BackendConfig, resources: ResourceRegistry | None = None):
        self._config = config
        self._resources = resources or default_registry
        self._handle = None

    @property
    def config(self) -> BackendConfig:
        return self._config

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self._config.api_token:
            headers["Authorization"] = f"Bearer {self._config.api_token}"
        return headers

    async def _session(self) -> aiohttp.ClientSession:
        if self._handle is None:
            self._handle = self._resources.acquire(SESSION_RESOURCE, _open_session, _close_session)
        return await self._handle.ensure_loaded()

    async def post_json(self, path: str, payload: dict) -> dict:
        session = await self._session()
        url = self._config.base_url.rstrip("/") + path
        timeout = aiohttp.ClientTimeout(total=self._config.timeout_s)
        logger.debug("POST %s", url)
        try:
            async with session.post(url, json=payload, headers=self._headers(), timeout=timeout) as resp:
                if resp.status >= 400:
                    text = await resp.text()
                    raise BackendError(f"POST {path} -> HTTP {resp.status}: {text[:200]}", resp.status)
                return await resp.json(content_type=None) or {}
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise BackendError(f"POST {path} failed: {e}") from e

    async def close(self) -> None:
        if self._handle is not None:
            handle, self._handle = self._handle, None
            await handle.release()

    async def __aenter__(self) -> BackendClient:
        return self

    async def __aexit__(self, *args) -> None:
        await self.close()
