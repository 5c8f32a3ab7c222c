import logging
from typing import Protocol

import httpx

logger = logging.getLogger(__name__)


class RegistryError(Exception):
    """The device registry could not answer (transport or protocol failure)."""


class DeviceRegistry(Protocol):
    async def resolve_device_id(self, imei: str) -> int | None: ...


class StaticDeviceRegistry:
    """Fixed IMEI -> device id table, usually loaded from settings."""

    def __init__(self, devices: dict[str, int] | None = None) -> None:
        self._devices = dict(devices or {})

    async def resolve_device_id(self, imei: str) -> int | None:
        return self._devices.get(imei)


class HttpDeviceRegistry:
    """Resolves IMEIs against a REST device registry.

    ``GET {base_url}/devices/{imei}`` answers 200 with ``{"id": <int>}`` for
    known devices and 404 for unknown ones.
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 2.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport
        self._http: httpx.AsyncClient | None = None

    # ── Lifecycle ──────────────────────────────────────────

    async def start(self) -> None:
        self._http = httpx.AsyncClient(
            base_url=self.base_url, timeout=self.timeout, transport=self._transport
        )
        logger.info("HttpDeviceRegistry started (target: %s)", self.base_url)

    async def stop(self) -> None:
        if self._http:
            await self._http.aclose()
            self._http = None
        logger.info("HttpDeviceRegistry stopped")

    # ── Lookup ─────────────────────────────────────────────

    async def resolve_device_id(self, imei: str) -> int | None:
        if not self._http:
            raise RegistryError("registry client not started")
        try:
            resp = await self._http.get(f"/devices/{imei}")
        except httpx.RequestError as exc:
            logger.error("Registry lookup for %s failed: %s", imei, exc)
            raise RegistryError(str(exc)) from exc

        if resp.status_code == 404:
            return None
        if resp.status_code != 200:
            raise RegistryError(
                f"registry answered {resp.status_code} for IMEI {imei}"
            )
        try:
            return int(resp.json()["id"])
        except (ValueError, KeyError, TypeError) as exc:
            raise RegistryError(f"malformed registry response: {exc}") from exc
