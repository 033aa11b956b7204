"""
Run context shared by every stage of a pipeline run.
"""

import shutil
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Dict, Any

from ..config import Config
from ..core.compose_client import ComposeClient
from ..core.credentials import CredentialStore
from ..core.docker_client import DockerClient
from ..core.executor import CommandExecutor
from ..core.health_checker import HealthChecker
from ..core.logger import StageLogger
from ..core.notifier import Notifier
from ..core.security import InputValidator
from ..models.report import PipelineReport, PipelineStatus


@dataclass
class PipelineContext:
    """
    Everything a step may touch: config, workspace and tool clients.

    `owned_dir` is set when the run created its own workspace (a fresh
    checkout); only then may cleanup delete the workspace itself.
    """
    config: Config
    workspace: Path
    executor: CommandExecutor
    docker: DockerClient
    compose: ComposeClient
    health_checker: HealthChecker
    credentials: CredentialStore
    notifier: Notifier
    logger: StageLogger = field(default_factory=lambda: StageLogger("Pipeline"))
    owned_dir: Optional[Path] = None
    report: Optional[PipelineReport] = None
    outcome: Optional[PipelineStatus] = None
    state: Dict[str, Any] = field(default_factory=dict)

    @property
    def branch(self) -> str:
        return self.config.build.branch_name

    @property
    def build_number(self) -> str:
        return self.config.build.build_number

    @property
    def env(self) -> Dict[str, str]:
        return self.config.pipeline_env()

    def resolve_path(self, relative: Optional[str]) -> Path:
        """Resolve a step directory, refusing anything outside the workspace."""
        if not relative:
            return self.workspace
        return InputValidator.sanitize_path(relative, self.workspace)

    @classmethod
    def create(
        cls,
        config: Config,
        credentials: CredentialStore = None,
        notifier: Notifier = None,
        health_checker: HealthChecker = None,
    ) -> "PipelineContext":
        """
        Build a context from configuration.

        With a repository URL the run checks out into a fresh temporary
        directory it owns; otherwise it works in the configured workspace.
        """
        owned_dir = None
        if config.build.repo_url:
            owned_dir = Path(tempfile.mkdtemp(prefix=f"webapp-pipeline-{config.build.build_number}-"))
            workspace = owned_dir / "src"
        else:
            workspace = Path(config.workspace_dir).resolve()

        logger = StageLogger("Pipeline")
        executor = CommandExecutor(
            working_dir=workspace,
            logger=logger,
            base_env=config.pipeline_env(),
        )

        return cls(
            config=config,
            workspace=workspace,
            executor=executor,
            docker=DockerClient(executor),
            compose=ComposeClient(
                executor,
                compose_file=config.runtime.compose_file,
                env=config.pipeline_env(),
            ),
            health_checker=health_checker or HealthChecker(),
            credentials=credentials or CredentialStore(),
            notifier=notifier or Notifier(webhook_url=config.webhook_url or None),
            logger=logger,
            owned_dir=owned_dir,
        )

    def clean_workspace(self, artifacts: tuple = ()) -> list[str]:
        """
        Remove what this run left behind and return the removed paths.

        An owned workspace is deleted outright; a borrowed one only loses
        the given build artifacts.
        """
        removed = []

        if self.owned_dir is not None:
            if self.owned_dir.exists():
                shutil.rmtree(self.owned_dir)
                removed.append(str(self.owned_dir))
            return removed

        for relative in artifacts:
            path = self.resolve_path(relative)
            if path.is_dir():
                shutil.rmtree(path)
                removed.append(str(path))
            elif path.exists():
                path.unlink()
                removed.append(str(path))

        return removed
