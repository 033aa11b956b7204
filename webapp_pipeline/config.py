"""
Configuration management for the web application pipeline.
Handles all environment variables and settings.
"""

import os
from pathlib import Path
from dataclasses import dataclass, field, replace
from typing import Optional
from dotenv import load_dotenv

from .core.credentials import env_prefix
from .core.security import InputValidator, SecurityError

# Load environment variables
load_dotenv()


class ConfigError(Exception):
    """Raised when the pipeline configuration is unusable."""
    pass


def _env_number(name: str, default: str, cast):
    """Read a numeric setting; None when the value does not parse, reported by validate()."""
    try:
        return cast(os.getenv(name, default))
    except ValueError:
        return None


@dataclass
class BuildConfig:
    """Variables normally provided by the CI host for each build."""
    build_number: str = field(default_factory=lambda: os.getenv("BUILD_NUMBER", "0"))
    branch_name: str = field(default_factory=lambda: os.getenv("BRANCH_NAME", "main"))
    repo_url: str = field(default_factory=lambda: os.getenv("REPO_URL", ""))
    main_branch: str = "main"


@dataclass
class ImageConfig:
    """Configuration for the application image and its registry."""
    registry: str = field(default_factory=lambda: os.getenv("DOCKER_REGISTRY", ""))
    name: str = field(default_factory=lambda: os.getenv("IMAGE_NAME", "webapp"))
    # Empty means "derive": tag from the build number, image from registry/name
    tag: str = field(default_factory=lambda: os.getenv("IMAGE_TAG", ""))
    image: str = field(default_factory=lambda: os.getenv("DOCKER_IMAGE", ""))
    credentials_id: str = field(default_factory=lambda: os.getenv("REGISTRY_CREDENTIALS", "registry-credentials"))
    dockerfile: str = "Dockerfile"


@dataclass
class RuntimeConfig:
    """Toolchain and application runtime settings."""
    node_version: str = field(default_factory=lambda: os.getenv("NODE_VERSION", "18"))
    db_type: str = field(default_factory=lambda: os.getenv("DB_TYPE", "sqlite"))
    client_dir: str = "client"
    compose_file: Optional[str] = field(default_factory=lambda: os.getenv("COMPOSE_FILE") or None)
    health_check_url: str = field(default_factory=lambda: os.getenv("HEALTH_CHECK_URL", "http://localhost:3000/health"))
    health_check_retries: int = 3


@dataclass
class HistoryConfig:
    """Build history retention."""
    directory: Path = field(default_factory=lambda: Path(os.getenv("BUILD_HISTORY_DIR", "/tmp/webapp_pipeline/builds")))
    keep: Optional[int] = field(default_factory=lambda: _env_number("BUILD_HISTORY_KEEP", "10", int))
    enabled: bool = True


@dataclass
class Config:
    """Main configuration container."""
    build: BuildConfig = field(default_factory=BuildConfig)
    image: ImageConfig = field(default_factory=ImageConfig)
    runtime: RuntimeConfig = field(default_factory=RuntimeConfig)
    history: HistoryConfig = field(default_factory=HistoryConfig)

    # Paths
    workspace_dir: Path = field(default_factory=lambda: Path(os.getenv("WORKSPACE", os.getcwd())))

    # Pipeline settings
    timeout_minutes: Optional[float] = field(
        default_factory=lambda: _env_number("PIPELINE_TIMEOUT_MINUTES", "30", float)
    )
    step_timeout_seconds: int = 900
    webhook_url: str = field(default_factory=lambda: os.getenv("WEBHOOK_URL", ""))
    verbose: bool = field(default_factory=lambda: os.getenv("VERBOSE", "false").lower() == "true")

    @property
    def image_tag(self) -> str:
        """Per-build tag; unique per build number unless IMAGE_TAG pins it."""
        return self.image.tag or self.build.build_number

    @property
    def docker_image(self) -> str:
        if self.image.image:
            return self.image.image
        if self.image.registry:
            return f"{self.image.registry.rstrip('/')}/{self.image.name}"
        return self.image.name

    @property
    def image_tags(self) -> list[str]:
        """Both references the image is built with: the build tag and latest."""
        return [
            f"{self.docker_image}:{self.image_tag}",
            f"{self.docker_image}:latest",
        ]

    @property
    def is_main_branch(self) -> bool:
        return self.build.branch_name == self.build.main_branch

    @property
    def timeout_seconds(self) -> float:
        return self.timeout_minutes * 60

    def pipeline_env(self) -> dict[str, str]:
        """Environment variables exported to every pipeline step."""
        return {
            "BUILD_NUMBER": self.build.build_number,
            "BRANCH_NAME": self.build.branch_name,
            "DOCKER_REGISTRY": self.image.registry,
            "IMAGE_NAME": self.image.name,
            "IMAGE_TAG": self.image_tag,
            "DOCKER_IMAGE": self.docker_image,
            "NODE_VERSION": self.runtime.node_version,
            "DB_TYPE": self.runtime.db_type,
            "REGISTRY_CREDENTIALS": self.image.credentials_id,
        }

    def with_overrides(
        self,
        branch: Optional[str] = None,
        build_number: Optional[str] = None,
        workspace: Optional[Path] = None,
    ) -> "Config":
        """Return a copy with command-line overrides applied."""
        build = replace(
            self.build,
            branch_name=branch or self.build.branch_name,
            build_number=build_number or self.build.build_number,
        )
        return replace(self, build=build, workspace_dir=workspace or self.workspace_dir)

    def validate(self) -> list[str]:
        """Validate configuration and return list of issues."""
        issues = []

        for tag in self.image_tags:
            try:
                InputValidator.validate_docker_image(tag)
            except SecurityError as e:
                issues.append(str(e))

        try:
            InputValidator.validate_build_number(self.build.build_number)
        except SecurityError as e:
            issues.append(str(e))

        try:
            InputValidator.validate_branch_name(self.build.branch_name)
        except SecurityError as e:
            issues.append(str(e))

        try:
            InputValidator.validate_env_var_name(f"{env_prefix(self.image.credentials_id)}_USR")
        except SecurityError:
            issues.append(
                f"REGISTRY_CREDENTIALS '{self.image.credentials_id}' does not map to an environment variable name"
            )

        if self.timeout_minutes is None:
            issues.append("PIPELINE_TIMEOUT_MINUTES must be a number")
        elif not self.timeout_minutes > 0:
            issues.append("PIPELINE_TIMEOUT_MINUTES must be positive")

        if self.history.keep is None:
            issues.append("BUILD_HISTORY_KEEP must be a whole number")
        elif self.history.keep < 1:
            issues.append("BUILD_HISTORY_KEEP must be at least 1")

        if self.runtime.health_check_retries < 1:
            issues.append("Health check retries must be at least 1")

        return issues

    def ensure_valid(self) -> None:
        """Raise ConfigError when validate() reports any issue."""
        issues = self.validate()
        if issues:
            raise ConfigError("; ".join(issues))

    @classmethod
    def from_env(cls) -> "Config":
        """Create configuration from environment variables."""
        return cls()


# Global config instance
config = Config.from_env()


def get_config() -> Config:
    """Get the global configuration instance."""
    return config
