import asyncio
import functools
import sys
from rich.console import Console
from rich.markup import escape

from pveups.config import ConfigError

console = Console()


def handle_async_command(async_func):
    """Decorator to handle async CLI commands.

    The coroutine may return an exit code; a non-zero code ends the process
    with that status.
    """
    @functools.wraps(async_func)
    def wrapper(*args, **kwargs):
        try:
            exit_code = asyncio.run(async_func(*args, **kwargs))
        except KeyboardInterrupt:
            console.print("\n[yellow]Operation cancelled by user[/yellow]")
            sys.exit(1)
        except ConfigError as e:
            console.print(f"[red]{escape(str(e))}[/red]", soft_wrap=True)
            sys.exit(1)
        except Exception as e:
            console.print(f"[red]Error: {escape(str(e))}[/red]", soft_wrap=True)
            sys.exit(1)
        if exit_code:
            sys.exit(exit_code)
    return wrapper
