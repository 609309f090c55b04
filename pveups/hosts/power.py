"""
Local host power operations.
"""

import logging
from typing import Protocol

from pveups.utils.process import CommandResult, run_command

logger = logging.getLogger(__name__)

POWER_OFF_MESSAGE = "UPS power failure detected. System shutting down."


class HostPower(Protocol):
    """Flush and power-off operations on the node itself."""

    async def sync(self) -> CommandResult:
        ...

    async def power_off(self, message: str = POWER_OFF_MESSAGE) -> CommandResult:
        ...


class LocalHostPower:
    """
    Runs `sync` and `shutdown -h now` on the local machine.
    """

    def __init__(self, sync_timeout: float = 60.0):
        self.sync_timeout = sync_timeout

    async def sync(self) -> CommandResult:
        result = await run_command(["sync"], self.sync_timeout)
        if not result.success:
            logger.warning("sync failed: %s", result.failure_reason)
        return result

    async def power_off(self, message: str = POWER_OFF_MESSAGE) -> CommandResult:
        # The process is normally terminated by this call
        result = await run_command(["shutdown", "-h", "now", message])
        if not result.success:
            logger.error("Host shutdown request failed: %s", result.failure_reason)
        return result
