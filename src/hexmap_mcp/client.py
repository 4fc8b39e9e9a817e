"""aiohttp client for the proxy's config API.

The API serves three endpoints:

    GET  /api/config         → [{name, enabled, settings, is_server}, ...]
    POST /api/toggle/<name>  → {name, enabled}
    POST /api/update/<name>  → {status: "saved"}   (body: field map)

Errors come back as ``{"error": "..."}`` with a 4xx/5xx status.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Iterable, Optional
from urllib.parse import quote

import aiohttp

from . import config
from .models import Module

logger = logging.getLogger(__name__)


class AdminAPIError(Exception):
    """A config API call failed (transport error or non-2xx response)."""

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status


def order_modules(modules: Iterable[Module]) -> list[Module]:
    """Core modules first, then everything else alphabetically by name."""
    return sorted(modules, key=lambda m: (not m.is_core, m.name))


class AdminClient:
    """Fetches and edits module configuration over HTTP.

    Use as an async context manager, or call ``close()`` when done.  A
    session passed in by the caller is left open.
    """

    def __init__(
        self,
        base_url: str = config.ADMIN_URL,
        api_key: str = config.API_KEY,
        timeout: float = config.REQUEST_TIMEOUT,
        session: Optional[aiohttp.ClientSession] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout = aiohttp.ClientTimeout(total=timeout)
        self._session = session
        self._owns_session = session is None

    async def __aenter__(self) -> AdminClient:
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    async def close(self) -> None:
        if self._owns_session and self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self.timeout)
            self._owns_session = True
        return self._session

    async def _request(self, method: str, path: str, payload: Optional[dict] = None) -> Any:
        headers = {"X-API-Key": self.api_key} if self.api_key else {}
        url = f"{self.base_url}{path}"
        session = self._get_session()
        try:
            async with session.request(method, url, json=payload, headers=headers) as resp:
                data = await resp.json(content_type=None)
                if resp.status >= 400:
                    message = data.get("error") if isinstance(data, dict) else None
                    raise AdminAPIError(message or f"HTTP {resp.status}", status=resp.status)
                return data
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.warning(f"{method} {url} failed: {e}")
            raise AdminAPIError(f"{method} {path} failed: {e}") from e
        except ValueError as e:
            raise AdminAPIError(f"{method} {path} returned invalid JSON: {e}") from e

    async def fetch_modules(self) -> list[Module]:
        """Current module list, core first then alphabetical."""
        data = await self._request("GET", "/api/config")
        if data is None:
            return []
        if not isinstance(data, list):
            raise AdminAPIError(f"Expected a module list, got {type(data).__name__}")
        return order_modules(Module.model_validate(item) for item in data)

    async def toggle_module(self, name: str) -> bool:
        """Flip a module's enabled flag server-side.  Returns the new value."""
        if not name or name == "server":
            raise ValueError("The server module cannot be toggled")
        data = await self._request("POST", f"/api/toggle/{quote(name, safe='')}")
        enabled = bool(data.get("enabled")) if isinstance(data, dict) else False
        logger.info(f"Toggled {name} -> {'on' if enabled else 'off'}")
        return enabled

    async def update_module(self, name: str, fields: dict[str, Any]) -> None:
        """Apply already-coerced field edits to a module."""
        if not name:
            raise ValueError("Module name is required")
        await self._request("POST", f"/api/update/{quote(name, safe='')}", payload=fields)
        logger.info(f"Updated {name}: {sorted(fields)}")
