"""Concrete pipeline declarations."""

from .webapp import build_webapp_pipeline, run_webapp_pipeline, PIPELINE_NAME

__all__ = ["build_webapp_pipeline", "run_webapp_pipeline", "PIPELINE_NAME"]
