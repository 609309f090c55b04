"""
Data models for NUT (Network UPS Tools) integration.

This module defines the Pydantic model for a single power-status reading
polled from the NUT server.
"""

from typing import Any, FrozenSet, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator

ONLINE = "OL"
BOOST = "BOOST"

DEFAULT_NUT_PORT = 3493


class PowerReading(BaseModel):
    """
    A snapshot of the UPS power state.

    All fields are optional: a variable the UPS does not report is simply
    unknown. A reading without ``ups.status`` is treated as unreadable.
    """

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    source: str = ""
    status: str | None = Field(None, alias="ups.status")
    battery_charge: float | None = Field(None, alias="battery.charge")
    battery_runtime: float | None = Field(None, alias="battery.runtime")

    @field_validator("status", mode="before")
    @classmethod
    def _blank_status_is_unknown(cls, value: Any) -> Any:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @field_validator("battery_charge", "battery_runtime", mode="before")
    @classmethod
    def _unparsable_number_is_unknown(cls, value: Any) -> Any:
        if value is None or isinstance(value, (int, float)):
            return value
        try:
            return float(str(value).strip())
        except ValueError:
            return None

    @property
    def is_unknown(self) -> bool:
        return self.status is None

    @property
    def status_tokens(self) -> FrozenSet[str] | None:
        if self.status is None:
            return None
        return frozenset(self.status.upper().split())

    def status_line(self) -> str:
        """Render the reading for the status log."""
        status = self.status or "UNKNOWN"
        charge = _format_number(self.battery_charge, "%")
        runtime = _format_number(self.battery_runtime, "s")
        return f"ups={self.source} status={status} charge={charge} runtime={runtime}"


def _format_number(value: float | None, unit: str) -> str:
    if value is None:
        return "unknown"
    if float(value).is_integer():
        return f"{int(value)}{unit}"
    return f"{value}{unit}"


def parse_ups_identifier(identifier: str) -> Tuple[str, str, int]:
    """
    Split an upsc-style identifier ``<upsname>[@<host>[:<port>]]``.

    Returns:
        A (ups_name, host, port) tuple.

    Raises:
        ValueError: If the identifier has no UPS name or a non-numeric port.
    """
    ups_name, _, location = identifier.strip().partition("@")
    if not ups_name:
        raise ValueError(f"Invalid UPS identifier: {identifier!r}")
    host, _, port = (location or "localhost").partition(":")
    if port and not port.isdigit():
        raise ValueError(f"Invalid port in UPS identifier: {identifier!r}")
    return ups_name, host or "localhost", int(port) if port else DEFAULT_NUT_PORT
