"""Pydantic model for a registered switch."""

from pydantic import BaseModel, ConfigDict, Field, field_validator


class Device(BaseModel):
    """A myStrom switch reachable over HTTP."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(
        ...,
        min_length=1,
        description="Logical device name, used as an MQTT topic level"
    )
    address: str = Field(
        ...,
        min_length=1,
        description="Hostname or IP, optionally with :port"
    )

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        """Reject names that would break the topic namespace."""
        if any(c in v for c in "/+#"):
            raise ValueError(f"Device name may not contain '/', '+' or '#': {v!r}")
        return v

    @property
    def base_url(self) -> str:
        """HTTP base URL of the device."""
        return f"http://{self.address}"

    @property
    def report_url(self) -> str:
        """URL of the JSON status report."""
        return f"{self.base_url}/report"

    @property
    def relay_url(self) -> str:
        """URL of the relay control endpoint (without query)."""
        return f"{self.base_url}/relay"
