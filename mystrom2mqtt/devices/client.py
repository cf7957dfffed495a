"""Async HTTP client for the myStrom switch REST API."""

import logging
from typing import Optional

import aiohttp

from ..models import Device

logger = logging.getLogger(__name__)


class DeviceError(Exception):
    """A device answered with an unexpected HTTP status."""

    def __init__(self, device: Device, url: str, status: int, reason: Optional[str] = None):
        self.device = device
        self.url = url
        self.status = status
        self.reason = reason
        super().__init__(
            f"{device.name}: unexpected HTTP status from {url}: got {status} {reason or ''}".rstrip()
            + ", want 200"
        )


class DeviceClient:
    """HTTP access to switches.

    Shares one aiohttp session between all pollers and relay dispatches.
    Every request carries its own total timeout.
    """

    def __init__(
        self,
        report_timeout: float = 5.0,
        relay_timeout: Optional[float] = 10.0,
        session: Optional[aiohttp.ClientSession] = None,
    ):
        """Initialize the client.

        Args:
            report_timeout: Total timeout for GET /report in seconds
            relay_timeout: Total timeout for GET /relay in seconds (None = no limit)
            session: Optional existing session (not closed by close())
        """
        self.report_timeout = report_timeout
        self.relay_timeout = relay_timeout
        self._session = session
        self._owns_session = session is None

    async def _ensure_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
            self._owns_session = True
        return self._session

    async def fetch_report(self, device: Device) -> bytes:
        """Fetch the raw JSON status report of a device.

        Args:
            device: Target device

        Returns:
            Response body, unparsed

        Raises:
            DeviceError: On a non-200 response
            aiohttp.ClientError: If the request fails
            asyncio.TimeoutError: If the request exceeds report_timeout
        """
        session = await self._ensure_session()
        url = device.report_url
        timeout = aiohttp.ClientTimeout(total=self.report_timeout)

        async with session.get(url, timeout=timeout) as response:
            if response.status != 200:
                raise DeviceError(device, url, response.status, response.reason)
            return await response.read()

    async def set_relay(self, device: Device, state: str) -> None:
        """Switch the relay of a device.

        Args:
            device: Target device
            state: State token ("1", "0" or a pass-through value)

        Raises:
            DeviceError: On a non-200 response
            aiohttp.ClientError: If the request fails
            asyncio.TimeoutError: If the request exceeds relay_timeout
        """
        session = await self._ensure_session()
        url = device.relay_url
        timeout = aiohttp.ClientTimeout(total=self.relay_timeout)

        async with session.get(url, params={"state": state}, timeout=timeout) as response:
            if response.status != 200:
                raise DeviceError(device, url, response.status, response.reason)
            logger.debug(f"{device.name}: relay state={state} accepted")

    async def close(self) -> None:
        """Close the HTTP session if this client created it."""
        if self._owns_session and self._session is not None:
            await self._session.close()
        self._session = None
