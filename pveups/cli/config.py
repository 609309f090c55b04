import sys
from pathlib import Path

import click
from rich.console import Console
from rich.markup import escape

from pveups.config import ConfigError, dump_config, load_config, parse_legacy_config

console = Console()


def _fail(error: ConfigError) -> None:
    console.print(f"[red]{escape(str(error))}[/red]", soft_wrap=True)
    sys.exit(1)


@click.group(name='config')
def config_cli():
    """Configuration commands."""
    pass


@config_cli.command()
@click.pass_context
def show(ctx):
    """Prints the effective configuration as YAML."""
    try:
        config = load_config(ctx.obj['CONFIG_FILE'])
    except ConfigError as e:
        _fail(e)
    console.print(dump_config(config), markup=False, highlight=False, soft_wrap=True, end="")


@config_cli.command()
@click.pass_context
def validate(ctx):
    """Validates the configuration file."""
    path = Path(ctx.obj['CONFIG_FILE'])
    try:
        config = load_config(path)
    except ConfigError as e:
        _fail(e)
    for location in config.unsupported_actions():
        console.print(
            f"[yellow]Warning:[/yellow] {escape(location)} is not a supported action; "
            "a graceful shutdown will be used.",
            soft_wrap=True,
        )
    if path.exists():
        console.print(f"[green]Configuration OK:[/green] {escape(str(path))}", soft_wrap=True)
    else:
        console.print(f"[yellow]{escape(str(path))} not found; built-in defaults apply.[/yellow]", soft_wrap=True)


@config_cli.command(name='import-legacy')
@click.argument('source', type=click.Path(exists=True, dir_okay=False))
@click.option('--output', '-o', type=click.Path(dir_okay=False), help='Write the YAML here instead of stdout.')
def import_legacy(source, output):
    """Converts an old shell-style configuration file to YAML."""
    text = Path(source).read_text(encoding="utf-8")
    try:
        config = parse_legacy_config(text, source)
    except ConfigError as e:
        _fail(e)

    data = dump_config(config)
    if output:
        Path(output).write_text(data, encoding="utf-8")
        console.print(f"[green]Wrote[/green] {escape(output)}")
    else:
        console.print(data, markup=False, highlight=False, soft_wrap=True, end="")
