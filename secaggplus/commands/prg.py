"""Print self-mask PRG output for cross-platform comparison."""

from __future__ import annotations

import sys

import click

from secaggplus.masking import SECAGG_PLUS_MOD_RANGE, pseudo_rand_gen


@click.command()
@click.argument("seed_hex")
@click.option("--count", "-c", default=8, show_default=True, type=click.IntRange(min=0), help="Number of values.")
@click.option("--mod-range", default=SECAGG_PLUS_MOD_RANGE, show_default=True, type=click.IntRange(min=2), help="Modulus.")
def prg(seed_hex: str, count: int, mod_range: int) -> None:
    """Print COUNT self-mask values for the hex-encoded SEED_HEX.

    Other platforms must print the same numbers for the same seed.

    \b
    Example:
        secaggplus prg 000102030405060708090a0b0c0d0e0f --count 4
    """
    try:
        seed = bytes.fromhex(seed_hex)
    except ValueError:
        click.echo(f"Invalid hex seed: {seed_hex!r}", err=True)
        sys.exit(1)

    for value in pseudo_rand_gen(seed, mod_range, count):
        click.echo(str(value))


def register(cli: click.Group) -> None:
    cli.add_command(prg)
