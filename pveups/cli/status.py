import logging
from datetime import datetime, timezone

import click
from rich.console import Console

from pveups.config import load_config
from pveups.nut.classifier import classify
from pveups.nut.client import NUTPowerSource
from pveups.utils.logging import STATUS_LOGGER_NAME

from .utils import handle_async_command

console = Console()
status_logger = logging.getLogger(STATUS_LOGGER_NAME)


@click.command()
@click.option('--json', 'as_json', is_flag=True, help='Print the reading as JSON.')
@click.pass_context
@handle_async_command
async def status(ctx, as_json):
    """Read the UPS once and record whether it calls for a shutdown."""
    config = load_config(ctx.obj['CONFIG_FILE'])
    reading = await NUTPowerSource(config.ups_identifier).read()
    # The monitor never overrides an unreadable UPS
    decision = classify(reading, boost_low_battery_threshold=config.boost_low_battery_threshold)

    line = f"{reading.status_line()} shutdown={decision.decision.verdict} reason={decision.reason}"
    status_logger.info("%s", line)

    if as_json:
        console.print_json(data={
            "timestamp": datetime.now(timezone.utc).isoformat(timespec="seconds"),
            "ups": reading.source,
            "status": reading.status,
            "battery_charge": reading.battery_charge,
            "battery_runtime": reading.battery_runtime,
            "shutdown": decision.decision.verdict,
            "reason": decision.reason,
        })
    else:
        console.print(line, markup=False, highlight=False, soft_wrap=True)
    return 0
