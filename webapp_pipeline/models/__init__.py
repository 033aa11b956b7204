"""Data models for the pipeline."""

from .pipeline import (
    ActionStep,
    Pipeline,
    PostActions,
    PostCondition,
    ShellStep,
    Stage,
    StepOutcome,
    When,
    branch_is,
)
from .report import (
    PipelineReport,
    PipelineStatus,
    PostActionResult,
    StageResult,
    StageStatus,
    StepResult,
)

__all__ = [
    "ActionStep",
    "Pipeline",
    "PostActions",
    "PostCondition",
    "ShellStep",
    "Stage",
    "StepOutcome",
    "When",
    "branch_is",
    "PipelineReport",
    "PipelineStatus",
    "PostActionResult",
    "StageResult",
    "StageStatus",
    "StepResult",
]
