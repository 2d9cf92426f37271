"""Evaluate command: k-fold cross-validation and covariate correlations."""

import logging
import sys

import click

from penetrance_engine.config.loader import load_config_with_overrides
from penetrance_engine.evaluation import correlate_covariates, cross_validate
from penetrance_engine.persistence import EngineStore, ProvenanceTracker

logger = logging.getLogger(__name__)


def _fmt(values: list[float | None]) -> str:
    return ", ".join("N/A" if v is None else f"{v:.3f}" for v in values)


def _mean(values: list[float | None]) -> float | None:
    present = [v for v in values if v is not None]
    return sum(present) / len(present) if present else None


@click.command('evaluate')
@click.option(
    '--folds',
    type=int,
    default=None,
    help='Number of cross-validation folds (default: evaluation.n_folds)'
)
@click.option(
    '--skip-correlation',
    is_flag=True,
    help='Skip covariate/penetrance correlations with permutation p-values'
)
@click.pass_context
def evaluate(ctx, folds, skip_correlation):
    """Cross-validate the covariate-derived prior on the stored variant table.

    Each fold's reliability weights are set to zero, the prior and EM loop
    are re-estimated, and the fold's predicted prior means are scored
    against observed penetrance (weighted Spearman/Pearson and Brier).

    Run this after 'penetrance estimate'.

    Examples:

        penetrance evaluate

        penetrance evaluate --folds 5 --skip-correlation
    """
    config_path = ctx.obj['config_path']

    click.echo(click.style("=== Penetrance Evaluation ===", bold=True))
    click.echo()

    store = None
    try:
        config = load_config_with_overrides(config_path, {"evaluation.n_folds": folds})
        store = EngineStore.from_config(config)
        provenance = ProvenanceTracker.from_config(config)

        variants = store.load_dataframe('variant_table')
        if variants is None:
            click.echo(click.style(
                "Error: variant_table not found. Run 'penetrance estimate' first.",
                fg='red'
            ), err=True)
            sys.exit(1)

        # Step 1: Cross-validation
        k = config.evaluation.n_folds
        click.echo(click.style(f"Step 1: {k}-fold cross-validation...", bold=True))
        cv = cross_validate(variants, config)

        click.echo(f"  Spearman: {_fmt(cv.spearman)}")
        click.echo(f"  Pearson:  {_fmt(cv.pearson)}")
        click.echo(f"  Brier:    {_fmt(cv.brier)}")
        for name, values in (("spearman", cv.spearman), ("pearson", cv.pearson), ("brier", cv.brier)):
            mean = _mean(values)
            if mean is not None:
                click.echo(click.style(f"  Mean {name}: {mean:.4f}", fg='green'))
        click.echo()

        store.save_dataframe(cv.to_frame(), 'cv_folds', description=f"{k}-fold metrics")
        store.save_dataframe(cv.predictions, 'cv_predictions', description="Held-out prior means")
        provenance.record_step('cross_validate', {
            'n_folds': k,
            'seed': config.evaluation.seed,
            'mean_spearman': _mean(cv.spearman),
            'mean_pearson': _mean(cv.pearson),
            'mean_brier': _mean(cv.brier),
        })

        # Step 2: Correlations
        if not skip_correlation:
            method = config.evaluation.correlation_method
            click.echo(click.style(f"Step 2: Weighted {method} correlations...", bold=True))
            correlations = correlate_covariates(
                variants,
                target="penetrance",
                covariates=config.covariates.all,
                method=method,
                n_permutations=config.evaluation.n_permutations,
                seed=config.evaluation.seed,
            )
            for row in correlations.iter_rows(named=True):
                if row['correlation'] is None:
                    click.echo(f"  {row['covariate']}: N/A (n={row['n']})")
                else:
                    click.echo(
                        f"  {row['covariate']}: {row['correlation']:.3f} "
                        f"(p={row['p_value']:.3f}, n={row['n']})"
                    )
            store.save_dataframe(correlations, 'covariate_correlations', description=method)
            provenance.record_step('correlate_covariates', {
                'method': method,
                'n_permutations': config.evaluation.n_permutations,
            })
        else:
            click.echo(click.style("Step 2: Skipping correlations (--skip-correlation)", fg='yellow'))
        click.echo()

        provenance.save_to_store(store)
        click.echo(click.style("Evaluation complete!", fg='green', bold=True))

    except Exception as e:
        click.echo(click.style(f"Evaluate command failed: {e}", fg='red'), err=True)
        logger.exception("Evaluate command failed")
        sys.exit(1)
    finally:
        if store is not None:
            store.close()
