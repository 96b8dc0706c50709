"""
secaggplus command-line interface.

Usage::

    secaggplus simulate --clients 5 --threshold 3 --drop 3
    secaggplus simulate --clients 4 --threshold 2 --length 64 --format json
    secaggplus prg 00112233... --count 8
"""

from __future__ import annotations

import logging

import click

from secaggplus import __version__


# ---------------------------------------------------------------------------
# CLI group
# ---------------------------------------------------------------------------


@click.group()
@click.version_option(version=__version__, prog_name="secaggplus")
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging.")
def main(verbose: bool) -> None:
    """secaggplus — client-side SecAgg+ engine for federated learning."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


# ---------------------------------------------------------------------------
# Register command modules
# ---------------------------------------------------------------------------

from secaggplus.commands import prg, simulate  # noqa: E402

for _mod in [simulate, prg]:
    _mod.register(main)
