"""Local round simulation command.

Runs every client of a SecAgg+ round in-process and reports whether dropped
clients' seeds can be rebuilt from the shares the survivors reveal.
"""

from __future__ import annotations

import json
import sys

import click

from secaggplus.errors import SecAggError


@click.command()
@click.option("--clients", "-n", default=5, show_default=True, type=click.IntRange(min=2), help="Number of participating clients.")
@click.option("--threshold", "-t", default=3, show_default=True, type=click.IntRange(min=1), help="Shamir reconstruction threshold.")
@click.option("--length", "-l", default=16, show_default=True, type=click.IntRange(min=1), help="Update vector length.")
@click.option("--drop", "drops", multiple=True, type=int, help="Index of a client that drops after share keys (repeatable).")
@click.option("--clipping-range", default=3.0, show_default=True, type=float, help="Symmetric clipping range.")
@click.option("--target-range", default=1 << 16, show_default=True, type=int, help="Quantization target range.")
@click.option("--seed", "rng_seed", default=None, type=int, help="Seed for the random updates.")
@click.option(
    "--format",
    "-f",
    "output_format",
    default="text",
    type=click.Choice(["text", "json"]),
    help="Output format (text or json).",
)
def simulate(
    clients: int,
    threshold: int,
    length: int,
    drops: tuple[int, ...],
    clipping_range: float,
    target_range: int,
    rng_seed: int | None,
    output_format: str,
) -> None:
    """Simulate one SecAgg+ round with in-memory clients.

    \b
    Examples:
        secaggplus simulate --clients 5 --threshold 3 --drop 3
        secaggplus simulate -n 4 -t 2 --length 64 --format json
    """
    from secaggplus.simulation import simulate_round

    try:
        report = simulate_round(
            total_clients=clients,
            threshold=threshold,
            vector_length=length,
            dropouts=drops,
            rng_seed=rng_seed,
            clipping_range=clipping_range,
            target_range=target_range,
        )
    except SecAggError as exc:
        click.echo(click.style(f"Error: {exc}", fg="red"), err=True)
        sys.exit(1)

    if output_format == "json":
        click.echo(json.dumps(report.to_dict(), indent=2))
    else:
        click.echo(f"Clients: {report.total_clients}  threshold: {report.threshold}  length: {report.vector_length}")
        click.echo(f"Survivors: {', '.join(map(str, report.survivors)) or '-'}")
        if report.dropped:
            for idx in report.dropped:
                ok = report.seeds_recovered.get(idx, False)
                status = click.style("recovered", fg="green") if ok else click.style("NOT recovered", fg="red")
                click.echo(f"Client {idx} dropped: {report.revealed_counts.get(idx, 0)} share(s) revealed, seed {status}")
        else:
            click.echo("No dropouts.")
        ok = bool(report.aggregate_matches)
        status = click.style("cancel", fg="green") if ok else click.style("do NOT cancel", fg="red")
        click.echo(f"Pairwise masks {status} in the aggregate.")
        if not report.tags_valid:
            click.echo(click.style("Verification tag mismatch on a masked update.", fg="red"))

    failed = any(not ok for ok in report.seeds_recovered.values())
    if failed or report.aggregate_matches is False or not report.tags_valid:
        sys.exit(2)


def register(cli: click.Group) -> None:
    cli.add_command(simulate)
