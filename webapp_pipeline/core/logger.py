"""
Structured logging for the pipeline.
Uses structlog for contextual logging and rich for console output.
"""

import sys

import structlog
from rich.console import Console
from rich.theme import Theme
from typing import Any

# Custom theme for rich output
custom_theme = Theme({
    "info": "cyan",
    "warning": "yellow",
    "error": "bold red",
    "success": "bold green",
    "step": "bold magenta",
    "skip": "dim",
})

console = Console(theme=custom_theme)


def setup_logging(verbose: bool = False, to_stderr: bool = False) -> None:
    """
    Configure structured logging.

    With to_stderr, log lines and stage output go to stderr so stdout
    carries only machine-readable output.
    """
    console.stderr = to_stderr

    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.dev.set_exc_info,
        structlog.processors.TimeStamper(fmt="iso"),
    ]

    if verbose:
        processors.append(structlog.dev.ConsoleRenderer(colors=True))
    else:
        processors.append(structlog.processors.JSONRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(0),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr if to_stderr else None),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> structlog.BoundLogger:
    """Get a logger instance with the given name."""
    return structlog.get_logger(name)


def bind_build(build_number: str, branch: str) -> None:
    """Attach build identifiers to every log line of the current run."""
    structlog.contextvars.bind_contextvars(build=build_number, branch=branch)


def clear_build() -> None:
    structlog.contextvars.clear_contextvars()


class StageLogger:
    """High-level logger for stage operations with rich output."""

    def __init__(self, stage_name: str):
        self.stage_name = stage_name
        self.logger = get_logger(stage_name)

    def step(self, message: str, step_num: int = None) -> None:
        """Log a step in the pipeline."""
        prefix = f"[Stage {step_num}]" if step_num else "[→]"
        console.print(f"[step]{prefix}[/step] [{self.stage_name}] {message}")
        self.logger.info(message, step=step_num)

    def success(self, message: str) -> None:
        """Log a success message."""
        console.print(f"[success]✓[/success] [{self.stage_name}] {message}")
        self.logger.info(message, status="success")

    def skip(self, message: str) -> None:
        console.print(f"[skip]↷ [{self.stage_name}] {message}[/skip]")
        self.logger.info(message, status="skipped")

    def warning(self, message: str) -> None:
        """Log a warning message."""
        console.print(f"[warning]⚠[/warning] [{self.stage_name}] {message}")
        self.logger.warning(message)

    def error(self, message: str, exc: Exception = None) -> None:
        """Log an error message."""
        console.print(f"[error]✗[/error] [{self.stage_name}] {message}")
        self.logger.error(message, exc_info=exc)

    def info(self, message: str, **kwargs: Any) -> None:
        """Log an info message."""
        console.print(f"[info]ℹ[/info] [{self.stage_name}] {message}")
        self.logger.info(message, **kwargs)

    def debug(self, message: str, **kwargs: Any) -> None:
        """Log a debug message."""
        self.logger.debug(message, **kwargs)
