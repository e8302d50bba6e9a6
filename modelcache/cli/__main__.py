"""ModelCache CLI - Main Entry Point.

The `mcache` command manages the query-result cache from the shell.

Commands:
    flush    - Flush one model's cached queries, or all of them
    check    - Validate configuration and probe the store
    inspect  - Show the effective configuration
"""

import sys
from typing import Optional

import click

from . import __version__, __cli_name__
from .utils.colors import error, _CROSS


@click.group()
@click.version_option(version=__version__, prog_name=__cli_name__)
@click.option('--config', '-c', 'config_path', type=click.Path(dir_okay=False),
              default=None, help='YAML config file (default: modelcache.yaml)')
@click.option('--verbose', '-v', is_flag=True, help='Verbose output')
@click.pass_context
def cli(ctx, config_path: Optional[str], verbose: bool):
    """Query-result cache maintenance.

    \b
    Quick start:
      mcache check
      mcache flush app.models:Post
      mcache flush
    """
    ctx.ensure_object(dict)
    ctx.obj['config_path'] = config_path
    ctx.obj['verbose'] = verbose


@cli.command('flush')
@click.argument('model', required=False)
@click.pass_context
def flush(ctx, model: Optional[str]):
    """
    Flush cached queries for MODEL, or for every model.

    MODEL is an import path such as ``app.models:Post`` or
    ``app.models.Post``. An unknown model is reported, not treated as a
    failure.

    Examples:
      mcache flush app.models:Post
      mcache flush
    """
    from .commands.cache import cmd_flush

    cmd_flush(model_path=model, config_path=ctx.obj['config_path'])


@cli.command('check')
@click.pass_context
def check(ctx):
    """
    Validate cache configuration and test store connectivity.

    Examples:
      mcache check
      mcache --config config/cache.yaml check
    """
    from .commands.cache import cmd_check

    try:
        cmd_check(config_path=ctx.obj['config_path'], verbose=ctx.obj['verbose'])
    except click.ClickException:
        raise
    except Exception as e:
        error(f"  {_CROSS} cache check failed: {e}")
        sys.exit(1)


@cli.command('inspect')
@click.pass_context
def inspect(ctx):
    """
    Display the effective cache configuration as JSON.

    Examples:
      mcache inspect
      mcache -v inspect
    """
    from .commands.cache import cmd_inspect

    try:
        cmd_inspect(config_path=ctx.obj['config_path'], verbose=ctx.obj['verbose'])
    except click.ClickException:
        raise
    except Exception as e:
        error(f"  {_CROSS} cache inspect failed: {e}")
        sys.exit(1)


def main():
    """Entry point for `mcache` command."""
    cli(obj={})


if __name__ == '__main__':
    main()
