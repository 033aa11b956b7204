"""Core module initialization."""

from .executor import CommandExecutor, CommandResult
from .logger import get_logger, setup_logging, StageLogger
from .docker_client import DockerClient, DockerResult
from .compose_client import ComposeClient, ComposeResult
from .health_checker import HealthChecker, HealthCheckResult
from .notifier import Notifier, BuildEvent, BuildEventType
from .credentials import CredentialStore, CredentialsError, UsernamePassword
from .security import (
    InputValidator,
    SecretsMasker,
    SecurityError,
)


__all__ = [
    "CommandExecutor",
    "CommandResult",
    "get_logger",
    "setup_logging",
    "StageLogger",
    # Docker
    "DockerClient",
    "DockerResult",
    "ComposeClient",
    "ComposeResult",
    # Health check
    "HealthChecker",
    "HealthCheckResult",
    # Notifications
    "Notifier",
    "BuildEvent",
    "BuildEventType",
    # Credentials
    "CredentialStore",
    "CredentialsError",
    "UsernamePassword",
    # Security
    "InputValidator",
    "SecretsMasker",
    "SecurityError",
]
