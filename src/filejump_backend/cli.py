"""Command-line helpers for configuring the FileJump backend."""

import click

from filejump_backend import __version__
from filejump_backend.obscure import obscure as obscure_secret
from filejump_backend.obscure import reveal as reveal_secret


@click.group()
@click.version_option(__version__)
def main() -> None:
    """FileJump backend configuration tools."""


@main.command()
@click.argument("secret")
def obscure(secret: str) -> None:
    """Obscure SECRET for use as FJ_OBSCURED_ACCESS_TOKEN."""
    click.echo(obscure_secret(secret))


@main.command()
@click.argument("obscured")
def reveal(obscured: str) -> None:
    """Reveal a value produced by the obscure command."""
    try:
        click.echo(reveal_secret(obscured))
    except ValueError as exc:
        raise click.BadParameter(str(exc), param_hint="OBSCURED") from exc
