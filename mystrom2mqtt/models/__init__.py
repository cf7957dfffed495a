"""Data models for devices and relay commands."""

from .device import Device

from .commands import (
    RelayAction,
    RelayCommand,
    CommandResult,
    action_to_state,
)

__all__ = [
    # Device models
    "Device",
    # Command models
    "RelayAction",
    "RelayCommand",
    "CommandResult",
    "action_to_state",
]
