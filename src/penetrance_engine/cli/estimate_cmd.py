"""Estimate command: empirical prior and EM loop over a variant table."""

import logging
import sys
import warnings
from pathlib import Path

import click

from penetrance_engine.config.loader import load_config
from penetrance_engine.dataset import read_variant_table
from penetrance_engine.engine import estimate_penetrance
from penetrance_engine.errors import NonConvergenceWarning
from penetrance_engine.output import build_run_summary
from penetrance_engine.persistence import ESTIMATES_TABLE, EngineStore, ProvenanceTracker

logger = logging.getLogger(__name__)


@click.command('estimate')
@click.argument('input_path', type=click.Path(exists=True, path_type=Path))
@click.option(
    '--force',
    is_flag=True,
    help=f'Re-run estimation even if the {ESTIMATES_TABLE} checkpoint exists'
)
@click.pass_context
def estimate(ctx, input_path, force):
    """Estimate per-variant penetrance from INPUT_PATH (TSV, CSV or Parquet).

    Supports checkpoint-restart: skips processing if the posterior_estimates
    table exists (use --force to re-run).

    Steps:
    1. Read and validate the variant table
    2. Fit the empirical prior and run the EM loop
    3. Persist variant_table and posterior_estimates to DuckDB
    4. Write the run summary and provenance sidecar

    Examples:

        penetrance estimate variants.tsv

        penetrance --config my.yaml estimate variants.parquet --force
    """
    config_path = ctx.obj['config_path']

    click.echo(click.style("=== Penetrance Estimation ===", bold=True))
    click.echo()

    store = None
    try:
        click.echo("Loading configuration...")
        config = load_config(config_path)
        click.echo(click.style(f"  Config loaded: {config_path}", fg='green'))
        click.echo()

        store = EngineStore.from_config(config)
        provenance = ProvenanceTracker.from_config(config)

        if store.has_checkpoint(ESTIMATES_TABLE) and not force:
            click.echo(click.style(
                f"{ESTIMATES_TABLE} checkpoint exists. Skipping estimation (use --force to re-run).",
                fg='yellow'
            ))
            df = store.load_dataframe(ESTIMATES_TABLE)
            if df is not None:
                click.echo(f"Variants: {df.height}")
                click.echo(f"Mean posterior penetrance: {df['posterior_mean'].mean():.4f}")
            click.echo(f"DuckDB Path: {config.duckdb_path}")
            click.echo(click.style("Estimation complete (used existing checkpoint)", fg='green'))
            return

        # Step 1: Read input
        click.echo(click.style("Step 1: Reading variant table...", bold=True))
        variants = read_variant_table(
            input_path,
            covariates=config.covariates.all,
            weight_epsilon=config.em.weight_epsilon,
        )
        with_carriers = variants.filter(variants['total'] > 0).height
        click.echo(click.style(
            f"  {variants.height} variants ({with_carriers} with carriers)",
            fg='green'
        ))
        click.echo()
        provenance.record_step('read_variant_table', {
            'input_path': str(input_path),
            'variants': variants.height,
            'with_carriers': with_carriers,
        })
        store.save_dataframe(variants, 'variant_table', description=f"Prepared input from {input_path.name}")

        # Step 2: Estimate
        click.echo(click.style("Step 2: Fitting prior and running EM loop...", bold=True))
        with warnings.catch_warnings(record=True) as caught:
            warnings.simplefilter("always", NonConvergenceWarning)
            result = estimate_penetrance(variants, config)

        prior = result.prior
        click.echo(f"  Empirical prior: Beta({prior.alpha:.4f}, {prior.beta:.4f})")
        if prior.degenerate:
            click.echo(click.style(f"  Prior degenerate, fallback used: {prior.reason}", fg='yellow'))
        if result.converged:
            click.echo(click.style(f"  Converged after {result.iterations} iterations", fg='green'))
        else:
            click.echo(click.style(
                f"  Not converged after {result.iterations} iterations",
                fg='yellow'
            ))
            for w in caught:
                if issubclass(w.category, NonConvergenceWarning):
                    click.echo(click.style(f"    {w.message}", fg='yellow'))
        click.echo(f"  Eligible records: {result.eligible_count}")
        click.echo(f"  Prior fallbacks: {result.fallback_count}")
        click.echo(f"  Carried forward: {result.carried_forward_count}")
        click.echo()
        provenance.record_step('estimate_penetrance', {
            'state': result.state.value,
            'iterations': result.iterations,
            'deltas': result.deltas,
            'alpha0': prior.alpha,
            'beta0': prior.beta,
            'prior_degenerate': prior.degenerate,
        })

        # Step 3: Persist
        click.echo(click.style("Step 3: Persisting estimates to DuckDB...", bold=True))
        store.save_dataframe(
            result.table,
            ESTIMATES_TABLE,
            description=f"EM {result.state.value} after {result.iterations} iterations",
        )
        provenance.save_to_store(store)
        click.echo(click.style(f"  Saved to '{ESTIMATES_TABLE}' table", fg='green'))
        click.echo()

        # Step 4: Summary
        summary = build_run_summary(config, result, provenance)
        summary_path = summary.to_json(Path(config.data_dir) / "run_summary.json")
        summary.to_markdown(Path(config.data_dir) / "run_summary.md")
        provenance_path = provenance.save_sidecar(Path(config.data_dir) / ESTIMATES_TABLE)

        click.echo(f"Summary: {summary_path}")
        click.echo(f"Provenance: {provenance_path}")
        click.echo()
        click.echo(click.style("Estimation complete!", fg='green', bold=True))

    except Exception as e:
        click.echo(click.style(f"Estimate command failed: {e}", fg='red'), err=True)
        logger.exception("Estimate command failed")
        sys.exit(1)
    finally:
        if store is not None:
            store.close()
