"""Switch registry, HTTP access and report polling."""

from .registry import DeviceRegistry
from .client import DeviceClient, DeviceError
from .poller import ReportPoller, start_pollers

__all__ = ["DeviceRegistry", "DeviceClient", "DeviceError", "ReportPoller", "start_pollers"]
