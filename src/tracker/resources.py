"""Process-wide registry of lazily loaded, reference-counted resources.

A resource (e.g. the shared HTTP session) is loaded on the first
ensure_loaded() call and closed when the last holder releases it.
Concurrent ensure_loaded() calls share a single load.

Usage:
    handle = registry.acquire("http", loader=make_session, closer=close_session)
    session = await handle.ensure_loaded()
    ...
    await handle.release()
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any

logger = logging.getLogger(__name__)

Loader = Callable[[], Awaitable[Any]]
Closer = Callable[[Any], Awaitable[None]]


class ResourceHandle:
    """Reference-counted holder of one lazily loaded resource."""

    def __init__(self, name: str, loader: Loader, closer: Closer | None = None):
        self._name = name
        self._loader = loader
        self._closer = closer
        self._refs = 0
        self._value: Any = None
        self._loaded = False
        self._lock: asyncio.Lock | None = None

    @property
    def name(self) -> str:
        return self._name

    @property
    def refs(self) -> int:
        return self._refs

    @property
    def loaded(self) -> bool:
        return self._loaded

    def _retain(self) -> None:
        self._refs += 1

    async def ensure_loaded(self) -> Any:
        """Return the resource, loading it once if needed."""
        if self._loaded:
            return self._value
        if self._lock is None:
            self._lock = asyncio.Lock()
        async with self._lock:
            if not self._loaded:
                logger.debug("Loading resource %s", self._name)
                self._value = await self._loader()
                self._loaded = True
        return self._value

    async def release(self) -> None:
        """Drop one reference; the last one closes the resource."""
        if self._refs == 0:
            return
        self._refs -= 1
        if self._refs > 0 or not self._loaded:
            return
        value, self._value = self._value, None
        self._loaded = False
        self._lock = None
        if self._closer is not None:
            logger.debug("Closing resource %s", self._name)
            await self._closer(value)


class ResourceRegistry:
    """Name → handle map shared by the whole process."""

    def __init__(self):
        self._handles: dict[str, ResourceHandle] = {}

    def acquire(self, name: str, loader: Loader, closer: Closer | None = None) -> ResourceHandle:
        """Get (creating if needed) the handle for name and take a reference.

        loader/closer are only used when the handle is created.
        """
        handle = self._handles.get(name)
        if handle is None:
            handle = ResourceHandle(name, loader, closer)
            self._handles[name] = handle
        handle._retain()
        return handle

    def get(self, name: str) -> ResourceHandle | None:
        return self._handles.get(name)

    def __contains__(self, name: str) -> bool:
        return name in self._handles


registry = ResourceRegistry()
