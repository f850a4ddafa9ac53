"""patched-sync CLI - sync a JSON object with a remote peer from the command line.

The transport is read from a YAML config file (see patched_sync.config):

    transport: polling-http
    get_url: https://example.com/doc/1
    patch_url: https://example.com/doc/1

Examples:
    patched-sync --config sync.yaml fetch
    patched-sync --config sync.yaml patch target.json
    patched-sync --config sync.yaml change changes.json
"""
import asyncio
import json
import logging
import sys
from typing import Any, Awaitable, Callable, Optional

import click

from . import __version__
from .config import load_config
from .engine import PatchedSync
from .exceptions import PatchedSyncError
from .merge import DELETE
from .transports import list_transports

# Marker for DELETE in change files
DELETE_TOKEN = "$delete"

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


@click.group()
@click.version_option(version=__version__, prog_name="patched-sync")
@click.option('--config', 'config_path', type=click.Path(dir_okay=False), default=None,
              envvar='PATCHED_SYNC_CONFIG',
              help='Transport config file (default: ~/.patched-sync/config.yaml)')
@click.option('--verbose', '-v', is_flag=True, default=False,
              help='Enable debug logging')
@click.option('--quiet', '-q', is_flag=True, default=False,
              help='Only log errors')
@click.pass_context
def cli(ctx, config_path, verbose, quiet):
    """patched-sync - keep a JSON object in sync through JSON Patch.

    \b
    Commands:
        fetch        Print the remote object
        patch FILE   Make the remote object equal to FILE
        change FILE  Merge the partial change in FILE into the remote object
        transports   List available transports
    """
    ctx.ensure_object(dict)

    if verbose and quiet:
        raise click.UsageError("--verbose and --quiet are mutually exclusive")

    if verbose:
        level = logging.DEBUG
    elif quiet:
        level = logging.ERROR
    else:
        level = logging.WARNING
    logging.basicConfig(level=level, format=LOG_FORMAT)

    ctx.obj['config_path'] = config_path


def build_engine(config_path: Optional[str]) -> PatchedSync:
    """Create an engine for the configured transport."""
    return PatchedSync(load_config(config_path))


def _replace_delete_tokens(value: Any) -> Any:
    if isinstance(value, dict):
        return {
            key: DELETE if item == DELETE_TOKEN else _replace_delete_tokens(item)
            for key, item in value.items()
        }
    if isinstance(value, list):
        return [_replace_delete_tokens(item) for item in value]
    return value


def _read_json(file) -> Any:
    try:
        return json.load(file)
    except ValueError as e:
        raise click.BadParameter(f"{file.name} is not valid JSON: {e}")


def _run(ctx, operation: Callable[[PatchedSync], Awaitable[Any]]) -> None:
    """Run one engine operation and print the resulting state as JSON."""
    async def run() -> Any:
        async with build_engine(ctx.obj.get('config_path')) as sync:
            return await operation(sync)

    try:
        state = asyncio.run(run())
    except PatchedSyncError as e:
        click.echo(click.style(f"Error: {e}", fg="red"))
        sys.exit(1)

    click.echo(json.dumps(state, indent=2, sort_keys=True))


@cli.command()
@click.pass_context
def fetch(ctx) -> None:
    """Print the remote object."""
    _run(ctx, lambda sync: sync.fetch())


@cli.command('patch')
@click.argument('file', type=click.File('r'))
@click.pass_context
def patch_command(ctx, file) -> None:
    """Make the remote object equal to the JSON object in FILE.

    The remote object is fetched first; only the difference is sent.
    """
    target = _read_json(file)

    async def operation(sync: PatchedSync) -> Any:
        await sync.fetch()
        return await sync.patch(target)

    _run(ctx, operation)


@cli.command()
@click.argument('file', type=click.File('r'))
@click.pass_context
def change(ctx, file) -> None:
    """Merge the partial change in FILE into the remote object.

    Use the string "$delete" as a value to remove a key, and
    {"operations": [...]} in place of an array to push, unshift, splice or
    remove elements.
    """
    changes = _replace_delete_tokens(_read_json(file))

    async def operation(sync: PatchedSync) -> Any:
        await sync.fetch()
        return await sync.change(changes)

    _run(ctx, operation)


@cli.command()
def transports() -> None:
    """List available transports."""
    for name in list_transports():
        click.echo(name)


def main() -> None:
    cli(obj={})


if __name__ == '__main__':
    main()
