"""
Shared fixtures for pipeline tests.
"""

from pathlib import Path
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

from webapp_pipeline.config import (
    BuildConfig,
    Config,
    HistoryConfig,
    ImageConfig,
    RuntimeConfig,
)
from webapp_pipeline.core.compose_client import ComposeResult
from webapp_pipeline.core.credentials import UsernamePassword
from webapp_pipeline.core.docker_client import DockerResult
from webapp_pipeline.core.executor import CommandResult
from webapp_pipeline.core.health_checker import HealthCheckResult
from webapp_pipeline.core.notifier import Notifier
from webapp_pipeline.core.security import SecretsMasker
from webapp_pipeline.engine.context import PipelineContext


def command_result(command: str, success: bool = True, stdout: str = "", stderr: str = "") -> CommandResult:
    return CommandResult(
        command=command,
        return_code=0 if success else 1,
        stdout=stdout,
        stderr=stderr,
        success=success,
        duration_seconds=0.01,
    )


class FakeExecutor:
    """Records commands instead of running them; commands in `fail_on` fail."""

    def __init__(self, fail_on=(), node_version: str = "v18.19.0"):
        self.fail_on = set(fail_on)
        self.node_version = node_version
        self.calls = []

    @property
    def commands(self):
        return [call.command for call in self.calls]

    async def run(self, command, timeout=300, env=None, cwd=None, **kwargs):
        self.calls.append(SimpleNamespace(command=command, timeout=timeout, env=env, cwd=cwd))
        if command in self.fail_on:
            return command_result(command, success=False, stderr=f"{command} exited with 1")
        stdout = "3f2c9a1e\n" if command == "git rev-parse HEAD" else ""
        return command_result(command, stdout=stdout)

    async def get_tool_version(self, tool, version_flag="--version"):
        if tool == "node":
            return self.node_version
        return f"{tool} 1.0.0"


@pytest.fixture(autouse=True)
def reset_masker():
    """Registered secrets are process-wide; keep tests independent."""
    yield
    SecretsMasker._known_secrets.clear()


@pytest.fixture
def workspace(tmp_path) -> Path:
    path = tmp_path / "workspace"
    (path / "client").mkdir(parents=True)
    (path / "package.json").write_text('{"name": "webapp"}')
    (path / "client" / "package.json").write_text('{"name": "webapp-client"}')
    return path


@pytest.fixture
def make_config(tmp_path, workspace):
    """Factory for configs that do not depend on the host environment."""

    def factory(branch: str = "main", build_number: str = "42", **overrides) -> Config:
        values = dict(
            build=BuildConfig(build_number=build_number, branch_name=branch, repo_url=""),
            image=ImageConfig(
                registry="registry.example.com",
                name="webapp",
                tag="",
                image="",
                credentials_id="registry-credentials",
            ),
            runtime=RuntimeConfig(
                node_version="18",
                db_type="sqlite",
                compose_file=None,
                health_check_url="http://app.test/health",
            ),
            history=HistoryConfig(directory=tmp_path / "builds", keep=10),
            workspace_dir=workspace,
            timeout_minutes=30,
            webhook_url="",
            verbose=False,
        )
        values.update(overrides)
        return Config(**values)

    return factory


@pytest.fixture
def make_context(make_config, workspace):
    """Factory for a run context whose tools are all mocked."""

    def factory(config: Config = None, executor=None, healthy: bool = True) -> PipelineContext:
        config = config or make_config()

        docker = MagicMock()
        docker.build = AsyncMock(
            side_effect=lambda path, tags, **kwargs: DockerResult(
                success=True, operation="build", image_tags=list(tags)
            )
        )
        docker.login = AsyncMock(return_value=DockerResult(success=True, operation="login"))
        docker.push = AsyncMock(
            side_effect=lambda tags: DockerResult(success=True, operation="push", image_tags=list(tags))
        )
        docker.logout = AsyncMock(return_value=command_result("docker logout"))
        docker.prune = AsyncMock(return_value=command_result("docker system prune -f"))

        compose = MagicMock()
        compose.with_cwd.return_value = compose
        compose.down = AsyncMock(return_value=ComposeResult(success=True, operation="down"))
        compose.up = AsyncMock(return_value=ComposeResult(success=True, operation="up"))

        health_checker = MagicMock()
        health_checker.check_once = AsyncMock(return_value=HealthCheckResult(
            healthy=healthy,
            url=config.runtime.health_check_url,
            status_code=200 if healthy else 503,
            message="OK" if healthy else "Unexpected status code: 503",
            checks_performed=1,
        ))

        credentials = MagicMock()
        credentials.get_credentials.return_value = UsernamePassword("ci-bot", "registry-pass-123")

        return PipelineContext(
            config=config,
            workspace=workspace,
            executor=executor or FakeExecutor(),
            docker=docker,
            compose=compose,
            health_checker=health_checker,
            credentials=credentials,
            notifier=Notifier(),
        )

    return factory


@pytest.fixture
def fake_executor():
    """Factory for FakeExecutor instances."""
    return FakeExecutor
