"""Run summaries for estimation runs."""

from penetrance_engine.output.report import RunSummary, build_run_summary

__all__ = ["RunSummary", "build_run_summary"]
