
import click
import logging

from pveups import __version__
from pveups.config import settings
from pveups.utils.logging import setup_logging

from .config import config_cli
from .shutdown import plan, run, trigger
from .status import status


@click.group()
@click.option('--verbose', '-v', is_flag=True, help='Enables verbose mode.')
@click.option('--quiet', '-q', is_flag=True, help='Enables quiet mode.')
@click.option(
    '--config', 'config_file', type=click.Path(dir_okay=False),
    default=None, help='Path to the orchestrator configuration (YAML).',
)
@click.version_option(__version__, prog_name='pveups')
@click.pass_context
def app(ctx, verbose, quiet, config_file):
    """
    UPS-triggered layered shutdown for Proxmox VE guests.
    """
    ctx.ensure_object(dict)
    ctx.obj['VERBOSE'] = verbose
    ctx.obj['QUIET'] = quiet
    ctx.obj['CONFIG_FILE'] = config_file or settings.CONFIG_FILE

    if verbose:
        level = logging.DEBUG
    elif quiet:
        level = logging.ERROR
    else:
        level = None

    setup_logging(
        level=level,
        log_dir=settings.LOG_DIR or None,
        retention_days=settings.LOG_RETENTION_DAYS,
        syslog_tag=settings.SYSLOG_TAG if settings.SYSLOG_ENABLED else None,
    )

# Add subcommands
app.add_command(run, name='run')
app.add_command(plan, name='plan')
app.add_command(status, name='status')
app.add_command(trigger, name='trigger')
app.add_command(config_cli, name='config')

if __name__ == '__main__':
    app()
