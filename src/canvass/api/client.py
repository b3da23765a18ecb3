"""HTTP client for the zone backend (overlap check, zones, locations)."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from typing import Any

import httpx

from canvass.core.config import ApiConfig
from canvass.geo.models import Point
from canvass.zones.locations import LocationOption
from canvass.zones.payloads import AgentZone, OverlapCheckResult, build_overlap_request

logger = logging.getLogger(__name__)


def _unwrap(body: Any) -> Any:
    """Most endpoints wrap their payload as ``{"success": ..., "data": ...}``."""
    if isinstance(body, dict) and "data" in body:
        return body["data"]
    return body


class ZoneApiClient:
    """Talks to the zone backend over HTTP.

    Implements :class:`~canvass.api.base.OverlapChecker`,
    :class:`~canvass.api.base.ZoneRepository` and
    :class:`~canvass.api.base.LocationDirectory`.
    """

    def __init__(self, config: ApiConfig | None = None) -> None:
        self.config = config or ApiConfig()
        headers: dict[str, str] = {}
        if self.config.auth_token:
            headers["Authorization"] = f"Bearer {self.config.auth_token}"
        self._http = httpx.AsyncClient(
            base_url=self.config.base_url,
            timeout=httpx.Timeout(self.config.timeout_seconds),
            headers=headers,
        )

    # -- overlap -------------------------------------------------------------

    async def check_overlap(
        self, polygon: Sequence[Point], exclude_zone_id: str | None = None
    ) -> OverlapCheckResult:
        payload = build_overlap_request(polygon, exclude_zone_id)
        body = await self._json("POST", "/agent-zones/check-overlap", json=payload)
        return OverlapCheckResult.model_validate(_unwrap(body) or {})

    # -- zones ---------------------------------------------------------------

    async def create_zone(self, payload: dict[str, Any]) -> AgentZone:
        body = await self._json("POST", "/agent-zones", json=payload)
        return AgentZone.model_validate(_unwrap(body))

    async def update_zone(self, zone_id: str, payload: dict[str, Any]) -> AgentZone:
        body = await self._json("PUT", f"/agent-zones/{zone_id}", json=payload)
        return AgentZone.model_validate(_unwrap(body))

    async def fetch_zone(self, zone_id: str) -> AgentZone:
        body = await self._json("GET", f"/agent-zones/{zone_id}")
        data = _unwrap(body)
        if not data:
            raise KeyError(f"Zone {zone_id!r} not found")
        return AgentZone.model_validate(data)

    async def list_zones(self) -> list[dict[str, Any]]:
        body = await self._json(
            "GET", "/zones/list-all", params={"visualization": "true"}
        )
        return list(_unwrap(body) or [])

    async def fetch_map_view(self, zone_id: str) -> list[dict[str, Any]]:
        body = await self._json("GET", f"/zones/map-view/{zone_id}")
        data = _unwrap(body)
        if not isinstance(data, dict):
            return []
        return list(data.get("properties") or [])

    # -- locations -----------------------------------------------------------

    async def list_areas(self) -> list[LocationOption]:
        return await self._options("/areas")

    async def list_municipalities(self, area_id: str) -> list[LocationOption]:
        if not area_id:
            return []
        return await self._options(f"/areas/{area_id}/municipalities")

    async def list_communities(self, municipality_id: str) -> list[LocationOption]:
        if not municipality_id:
            return []
        return await self._options(f"/municipalities/{municipality_id}/communities")

    async def close(self) -> None:
        await self._http.aclose()

    # -- internal ------------------------------------------------------------

    async def _options(self, url: str) -> list[LocationOption]:
        body = await self._json("GET", url)
        return [LocationOption.model_validate(item) for item in _unwrap(body) or []]

    async def _json(self, method: str, url: str, **kwargs: Any) -> Any:
        resp = await self._request_with_retry(method, url, **kwargs)
        resp.raise_for_status()
        return resp.json()

    async def _request_with_retry(
        self,
        method: str,
        url: str,
        **kwargs: Any,
    ) -> httpx.Response:
        """Execute an HTTP request with retry on 5xx and transport errors."""
        max_attempts = max(1, self.config.max_retries + 1)
        last_resp: httpx.Response | None = None

        for attempt in range(max_attempts):
            try:
                resp = await self._http.request(method, url, **kwargs)
                # Client errors are final
                if resp.status_code < 500:
                    return resp
                last_resp = resp
                if attempt < max_attempts - 1:
                    delay = 0.5 * (2 ** attempt)
                    logger.warning(
                        "Request to %s returned %d, retrying in %.1fs (%d/%d)",
                        url, resp.status_code, delay, attempt + 1, max_attempts,
                    )
                    await asyncio.sleep(delay)
                    continue
                return resp
            except httpx.TransportError as exc:
                if attempt < max_attempts - 1:
                    delay = 0.5 * (2 ** attempt)
                    logger.warning(
                        "Transport error on %s: %s, retrying in %.1fs (%d/%d)",
                        url, exc, delay, attempt + 1, max_attempts,
                    )
                    await asyncio.sleep(delay)
                    continue
                raise

        return last_resp  # type: ignore[return-value]


def server_message(exc: BaseException) -> str | None:
    """Extract the backend's ``message`` field from an HTTP error, if any."""
    if not isinstance(exc, httpx.HTTPStatusError):
        return None
    try:
        body = exc.response.json()
    except ValueError:
        return None
    if isinstance(body, dict):
        message = body.get("message")
        if isinstance(message, str) and message.strip():
            return message
    return None
