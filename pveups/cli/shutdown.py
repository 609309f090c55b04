import click
from rich.console import Console

from pveups.config import load_config, settings
from pveups.policies.plan import format_plan
from pveups.shutdown.orchestrator import RunOptions, RunResult, ShutdownOrchestrator, create_orchestrator
from pveups.shutdown.triggers import dispatch_event

from .utils import handle_async_command

console = Console()


def _orchestrator(ctx) -> ShutdownOrchestrator:
    config = load_config(ctx.obj['CONFIG_FILE'])
    return create_orchestrator(config, settings.LOCK_FILE)


async def _print_plan(orchestrator: ShutdownOrchestrator) -> int:
    plan = await orchestrator.build_plan()
    console.print(format_plan(plan), markup=False, highlight=False, soft_wrap=True)
    return 0


def _print_summary(result: RunResult) -> None:
    console.print(
        f"Run finished: state={result.state.value} actions={len(result.outcomes)} "
        f"forced={len(result.forced)} failed={result.failed_actions}",
        markup=False, highlight=False, soft_wrap=True,
    )


@click.command()
@click.option('--plan', 'print_plan', is_flag=True, help='Print the ordered shutdown plan and exit.')
@click.option('--test', 'test_mode', is_flag=True, help='Test mode: log what would happen, change nothing.')
@click.option('--dry-run-host', is_flag=True, help='Run guest actions but skip host shutdown.')
@click.option('--simulate', is_flag=True, help='Ignore UPS status and proceed.')
@click.option('--no-wait', is_flag=True, help='Skip the initial wait for power restoration.')
@click.option(
    '--event', envvar=['EVENT', 'NOTIFYTYPE'], default=None,
    help='Event label for logs (defaults to $EVENT or $NOTIFYTYPE).',
)
@click.pass_context
@handle_async_command
async def run(ctx, print_plan, test_mode, dry_run_host, simulate, no_wait, event):
    """Run the layered shutdown sequence."""
    orchestrator = _orchestrator(ctx)
    if print_plan:
        return await _print_plan(orchestrator)

    options = RunOptions(
        test_mode=test_mode,
        dry_run_host=dry_run_host,
        simulate_failure=simulate,
        skip_initial_wait=no_wait,
        event=event or None,
    )
    result = await orchestrator.run(options)
    _print_summary(result)
    return result.exit_code


@click.command()
@click.pass_context
@handle_async_command
async def plan(ctx):
    """Print the ordered shutdown plan."""
    return await _print_plan(_orchestrator(ctx))


@click.command()
@click.argument('event', required=False)
@click.pass_context
@handle_async_command
async def trigger(ctx, event):
    """Entry point for upssched (CMDSCRIPT)."""
    options = dispatch_event(event)
    if options is None:
        return 0
    result = await _orchestrator(ctx).run(options)
    _print_summary(result)
    return result.exit_code
