"""Pipeline engine: run context, runner and build history."""

from .context import PipelineContext
from .history import BuildHistory
from .runner import PipelineRunner

__all__ = [
    "PipelineContext",
    "BuildHistory",
    "PipelineRunner",
]
