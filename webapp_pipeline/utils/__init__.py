"""Utility functions for the pipeline."""

from .validators import validate_workspace_path, validate_config, validate_env_vars
from .helpers import format_duration, truncate_text, tail_lines

__all__ = [
    "validate_workspace_path",
    "validate_config",
    "validate_env_vars",
    "format_duration",
    "truncate_text",
    "tail_lines",
]
