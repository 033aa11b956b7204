"""
Compose Client - docker-compose CLI wrapper for deploying the application stack.

Provides:
- up/down/ps operations
- Optional explicit compose file
- Image coordinates exported into the compose environment
"""

import shlex
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Dict, List, Callable

from .executor import CommandExecutor, CommandResult
from .logger import get_logger


@dataclass
class ComposeResult:
    """Result of a docker-compose operation."""
    success: bool
    operation: str
    output: str = ""
    errors: List[str] = field(default_factory=list)
    duration_seconds: float = 0


class ComposeClient:
    """
    docker-compose wrapper used by the deploy stage.

    Usage:
        compose = ComposeClient(executor, env={"IMAGE_TAG": "42"})
        await compose.down()
        result = await compose.up()
    """

    def __init__(
        self,
        executor: CommandExecutor = None,
        compose_file: Optional[str] = None,
        env: Dict[str, str] = None,
        compose_bin: str = "docker-compose",
    ):
        self.executor = executor or CommandExecutor()
        self.compose_file = compose_file
        self.env = env or {}
        self.compose_bin = compose_bin
        self.logger = get_logger("ComposeClient")

    def _command(self, *args: str) -> str:
        cmd_parts = [self.compose_bin]
        if self.compose_file:
            cmd_parts.extend(["-f", self.compose_file])
        cmd_parts.extend(args)
        return shlex.join(cmd_parts)

    def _result(self, operation: str, exec_result: CommandResult) -> ComposeResult:
        result = ComposeResult(
            success=exec_result.success,
            operation=operation,
            output=exec_result.stdout,
            duration_seconds=exec_result.duration_seconds,
        )
        if not exec_result.success:
            result.errors.append(exec_result.stderr.strip() or f"docker-compose {operation} failed")
        return result

    async def down(self, remove_orphans: bool = True) -> ComposeResult:
        """Stop and remove the running stack."""
        args = ["down"]
        if remove_orphans:
            args.append("--remove-orphans")
        self.logger.info("Stopping compose stack")
        exec_result = await self.executor.run(self._command(*args), timeout=300, env=self.env)
        return self._result("down", exec_result)

    async def up(
        self,
        detach: bool = True,
        pull: bool = False,
        on_output: Callable[[str], None] = None,
    ) -> ComposeResult:
        """
        Start the stack.

        Args:
            detach: Run containers in the background
            pull: Pull images before starting
            on_output: Callback for streamed output

        Returns:
            ComposeResult
        """
        if pull:
            pull_result = await self.executor.run(self._command("pull"), timeout=600, env=self.env)
            if not pull_result.success:
                return self._result("pull", pull_result)

        args = ["up"]
        if detach:
            args.append("-d")

        self.logger.info("Starting compose stack", image_tag=self.env.get("IMAGE_TAG"))
        exec_result = await self.executor.run(
            self._command(*args),
            timeout=600,
            env=self.env,
            stream_output=on_output is not None,
            on_output=on_output,
        )
        return self._result("up", exec_result)

    async def ps(self) -> ComposeResult:
        exec_result = await self.executor.run(self._command("ps"), timeout=60, env=self.env)
        return self._result("ps", exec_result)

    def with_cwd(self, path: Path) -> "ComposeClient":
        """Return a client whose commands run in `path`."""
        executor = CommandExecutor(
            working_dir=path,
            logger=self.executor.logger,
            base_env=self.executor.base_env,
        )
        return ComposeClient(executor, self.compose_file, self.env, self.compose_bin)
