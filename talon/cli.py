"""Talon CLI - Main Entry Point.

Commands:
    inspect  - Show the resolved HTTP binding of an interface
    version  - Show version information
"""

import json
import logging
import sys

import click

from . import __version__
from .contract.metadata import MethodDescriptor, describe_interface
from .faults import Fault
from .http_api import resolve_identity


def _error(message: str) -> None:
    click.secho(message, fg="red", err=True)


@click.group()
@click.version_option(version=__version__, prog_name="talon")
@click.option('--verbose', '-v', is_flag=True, help='Verbose output')
@click.pass_context
def cli(ctx, verbose: bool):
    """Typed HTTP API clients from declared interfaces."""
    ctx.ensure_object(dict)
    ctx.obj['verbose'] = verbose
    if verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(name)s: %(message)s")


@cli.command('inspect')
@click.argument('identity')
@click.option('--json', 'as_json', is_flag=True, help='Output as JSON')
@click.pass_context
def inspect_interface(ctx, identity: str, as_json: bool):
    """
    Resolve an interface and print its request bindings.

    Examples:
      talon inspect myapp.clients:Accounts
      talon inspect myapp.clients:Accounts --json
    """
    try:
        contract = describe_interface(resolve_identity(identity))
    except Fault as e:
        _error(f"  x {e}")
        sys.exit(1)

    if as_json:
        click.echo(json.dumps(contract.to_dict(), indent=2))
        return

    click.secho(contract.identity, fg="cyan", bold=True)
    if contract.prefix:
        click.echo(f"  prefix: {contract.prefix}")
    for method in contract.methods:
        _print_method(method, verbose=ctx.obj['verbose'])


def _print_method(method: MethodDescriptor, verbose: bool = False) -> None:
    verb = click.style(method.http_method.ljust(7), fg="green")
    click.echo(f"  {verb} {method.route or '/'}  -> {method.name}() [{method.return_shape.value}]")
    for param in method.parameters:
        click.echo(f"      {param.name}: {param.kind.value} '{param.alias}'")
    if verbose:
        for name, value in method.headers:
            click.echo(f"      header {name}: {value}")
        if method.timeout is not None:
            click.echo(f"      timeout: {method.timeout}s")


@cli.command('version')
def version():
    """Show version information."""
    click.echo(f"talon {__version__}")
    click.echo(f"Python {sys.version.split()[0]}")


def main():
    """Entry point for `talon` command."""
    cli(obj={})


if __name__ == '__main__':
    main()
