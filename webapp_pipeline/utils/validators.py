"""Input validation utilities."""

import os
from pathlib import Path
from typing import List, Optional

from ..config import Config
from ..core.credentials import env_prefix


def validate_workspace_path(path: str | Path) -> tuple[bool, Optional[str]]:
    """
    Validate that a workspace path exists and is a directory.

    Returns:
        Tuple of (is_valid, error_message)
    """
    path = Path(path)

    if not path.exists():
        return False, f"Path does not exist: {path}"

    if not path.is_dir():
        return False, f"Path is not a directory: {path}"

    if not (path / "package.json").exists():
        return False, f"No package.json in workspace: {path}"

    return True, None


def validate_config(config: Config) -> List[str]:
    """
    Collect configuration warnings that do not block a run.

    Blocking problems are reported by Config.validate().
    """
    issues = []

    if config.is_main_branch:
        prefix = env_prefix(config.image.credentials_id)
        if validate_env_vars([f"{prefix}_USR", f"{prefix}_PSW"]) and not os.getenv("PIPELINE_SECRETS_PASSPHRASE"):
            issues.append(
                f"Registry credentials '{config.image.credentials_id}' are not in the environment; "
                "the push stage will need the encrypted credentials file"
            )

    if not config.image.registry and not config.image.image:
        issues.append("DOCKER_REGISTRY is not set; images will be pushed to Docker Hub")

    return issues


def validate_env_vars(required: List[str]) -> List[str]:
    """
    Check if required environment variables are set.

    Returns:
        List of missing environment variables
    """
    missing = []
    for var in required:
        if not os.getenv(var):
            missing.append(var)

    return missing
