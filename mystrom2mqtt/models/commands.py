"""Relay command models.

A relay command is derived entirely from the MQTT topic; the payload is kept
only so it can be logged.
"""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class RelayAction(str, Enum):
    """Human relay actions and the state token the device expects."""

    ON = "on"
    OFF = "off"

    @property
    def state(self) -> str:
        return "1" if self is RelayAction.ON else "0"


def action_to_state(action: str) -> str:
    """Translate an action into a ``/relay?state=`` token.

    ``on`` and ``off`` map to ``1`` and ``0``; any other action is passed
    through unchanged so newer firmware states keep working.
    """
    try:
        return RelayAction(action).state
    except ValueError:
        return action


class RelayCommand(BaseModel):
    """A parsed relay command addressed to one device."""

    device: str = Field(..., description="Target device name")
    action: str = Field(..., description="Action segment from the topic")
    payload: bytes = Field(default=b"", description="Inbound payload (logged only)")

    @property
    def state(self) -> str:
        """State token sent to the device."""
        return action_to_state(self.action)

    def __str__(self) -> str:
        return f"{self.device}/{self.action} (state={self.state})"


class CommandResult(BaseModel):
    """Outcome of handling one inbound command message."""

    success: bool
    message: str
    device: Optional[str] = None
    action: Optional[str] = None
