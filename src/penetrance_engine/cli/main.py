"""Main CLI entry point for penetrance-engine.

Provides the command group with global options and the estimation and
evaluation subcommands.
"""

import logging
from pathlib import Path

import click

from penetrance_engine import __version__
from penetrance_engine.config.loader import load_config
from penetrance_engine.cli.estimate_cmd import estimate
from penetrance_engine.cli.evaluate_cmd import evaluate
from penetrance_engine.cli.coverage_cmd import coverage


logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)


@click.group()
@click.option(
    '--config',
    type=click.Path(exists=True, path_type=Path),
    default='config/default.yaml',
    help='Path to engine configuration YAML file'
)
@click.option(
    '--verbose',
    is_flag=True,
    help='Enable verbose logging (DEBUG level)'
)
@click.pass_context
def cli(ctx, config, verbose):
    """Penetrance-engine: empirical-Bayes penetrance estimates for ion-channel variants.

    Combines sparse affected/unaffected carrier counts with variant covariates
    through an empirical Beta prior and an EM-style regression loop, and
    evaluates the result by cross-validation and interval coverage.
    """
    ctx.ensure_object(dict)
    ctx.obj['config_path'] = config
    ctx.obj['verbose'] = verbose

    if verbose:
        logging.getLogger().setLevel(logging.DEBUG)
        logging.debug("Verbose logging enabled")


@cli.command()
@click.pass_context
def info(ctx):
    """Display engine version and configuration summary."""
    config_path = ctx.obj['config_path']

    click.echo(f"Penetrance Engine v{__version__}")
    click.echo(f"Config: {config_path}")
    click.echo()

    try:
        config = load_config(config_path)

        click.echo(f"Config Hash: {config.config_hash()[:16]}...")
        click.echo(f"Target: {config.gene} / {config.phenotype}")
        click.echo()

        click.echo(click.style("EM Settings:", bold=True))
        click.echo(f"  Max Iterations:   {config.em.max_iterations}")
        click.echo(f"  Delta Threshold:  {config.em.delta_threshold}")
        click.echo(f"  Degenerate Floor: {config.em.degenerate_floor}")
        click.echo(f"  Tuning Constant:  {config.em.tuning_constant}")
        click.echo()

        click.echo(click.style("Covariates:", bold=True))
        click.echo(f"  Required: {', '.join(config.covariates.required) or '-'}")
        click.echo(f"  Optional: {', '.join(config.covariates.optional) or '-'}")
        click.echo()

        click.echo(click.style("Paths:", bold=True))
        click.echo(f"  Data Directory: {config.data_dir}")
        click.echo(f"  DuckDB Path: {config.duckdb_path}")

    except Exception as e:
        click.echo(click.style(f"Error loading config: {e}", fg='red'), err=True)
        ctx.exit(1)


cli.add_command(estimate)
cli.add_command(evaluate)
cli.add_command(coverage)


if __name__ == '__main__':
    cli()
