"""Coverage command: bootstrap check of credible-interval coverage."""

import logging
import sys

import click

from penetrance_engine.config.loader import load_config_with_overrides
from penetrance_engine.evaluation import coverage_by_variant, flag_coverage
from penetrance_engine.persistence import ESTIMATES_TABLE, EngineStore, ProvenanceTracker

logger = logging.getLogger(__name__)


@click.command('coverage')
@click.option(
    '--trials',
    type=int,
    default=None,
    help='Simulated trials per variant (default: coverage.n_trials)'
)
@click.option(
    '--carriers',
    type=int,
    default=None,
    help='Carriers per simulated trial (default: coverage.n_carriers)'
)
@click.pass_context
def coverage(ctx, trials, carriers):
    """Simulate credible-interval coverage for every estimated variant.

    Each variant's posterior mean is taken as its true penetrance; carrier
    outcomes are redrawn and the fraction of intervals containing the truth
    is reported. Variants outside [0.90, 0.99] are flagged.

    Run this after 'penetrance estimate'.
    """
    config_path = ctx.obj['config_path']

    click.echo(click.style("=== Credible Interval Coverage ===", bold=True))
    click.echo()

    store = None
    try:
        config = load_config_with_overrides(config_path, {
            "coverage.n_trials": trials,
            "coverage.n_carriers": carriers,
        })
        settings = config.coverage
        store = EngineStore.from_config(config)
        provenance = ProvenanceTracker.from_config(config)

        estimates = store.load_dataframe(ESTIMATES_TABLE)
        if estimates is None:
            click.echo(click.style(
                f"Error: {ESTIMATES_TABLE} not found. Run 'penetrance estimate' first.",
                fg='red'
            ), err=True)
            sys.exit(1)

        click.echo(
            f"Simulating {settings.n_trials} trials of {settings.n_carriers} carriers "
            f"for {estimates.height} variants..."
        )
        result = coverage_by_variant(
            estimates,
            n_carriers=settings.n_carriers,
            n_trials=settings.n_trials,
            step=settings.interval_step,
            level=settings.level,
            seed=settings.seed,
        )
        flagged = flag_coverage(result)

        mean_coverage = result['coverage'].mean() if result.height else None
        if mean_coverage is not None:
            click.echo(click.style(f"  Mean coverage: {mean_coverage:.4f}", fg='green'))
        if flagged.height:
            click.echo(click.style(f"  {flagged.height} variants outside [0.90, 0.99]:", fg='yellow'))
            for row in flagged.head(10).iter_rows(named=True):
                click.echo(click.style(
                    f"    {row['variant_id']}: {row['coverage']:.3f}",
                    fg='yellow'
                ))
        else:
            click.echo(click.style("  All variants within [0.90, 0.99]", fg='green'))
        click.echo()

        store.save_dataframe(result, 'interval_coverage', description=f"{settings.n_trials} trials")
        provenance.record_step('simulate_coverage', {
            'n_trials': settings.n_trials,
            'n_carriers': settings.n_carriers,
            'interval_step': settings.interval_step,
            'mean_coverage': mean_coverage,
            'flagged': flagged.height,
        })
        provenance.save_to_store(store)
        click.echo(click.style("Coverage simulation complete!", fg='green', bold=True))

    except Exception as e:
        click.echo(click.style(f"Coverage command failed: {e}", fg='red'), err=True)
        logger.exception("Coverage command failed")
        sys.exit(1)
    finally:
        if store is not None:
            store.close()
