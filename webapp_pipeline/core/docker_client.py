"""
Docker Client - Docker CLI integration for building and pushing images.

Provides:
- Multi-tag builds
- Streaming build logs
- Registry authentication over stdin
- Resource pruning
"""

import shlex
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Optional, Dict, Any, List, Callable

from .executor import CommandExecutor, CommandResult
from .logger import get_logger
from .security import InputValidator


@dataclass
class DockerResult:
    """Result of a Docker operation."""
    success: bool
    operation: str
    image_tags: List[str] = field(default_factory=list)
    logs: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)
    duration_seconds: float = 0
    started_at: datetime = field(default_factory=datetime.now)
    finished_at: Optional[datetime] = None

    def finish(self) -> "DockerResult":
        self.finished_at = datetime.now()
        self.duration_seconds = (self.finished_at - self.started_at).total_seconds()
        return self

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "operation": self.operation,
            "image_tags": self.image_tags,
            "errors": self.errors,
            "duration_seconds": self.duration_seconds,
        }


class DockerClient:
    """
    Docker CLI wrapper for the image stages of the pipeline.

    Usage:
        client = DockerClient(executor)
        result = await client.build(Path("."), ["webapp:42", "webapp:latest"])
    """

    BUILD_TIMEOUT = 900
    PUSH_TIMEOUT = 600

    def __init__(self, executor: CommandExecutor = None, docker_bin: str = "docker"):
        self.executor = executor or CommandExecutor()
        self.docker_bin = docker_bin
        self.logger = get_logger("DockerClient")

    async def build(
        self,
        path: Path,
        tags: List[str],
        dockerfile: str = "Dockerfile",
        build_args: Dict[str, str] = None,
        pull: bool = False,
        on_output: Callable[[str], None] = None,
    ) -> DockerResult:
        """
        Build an image with every tag in `tags`.

        Args:
            path: Path to build context
            tags: Image references (e.g. ["webapp:42", "webapp:latest"])
            dockerfile: Dockerfile name relative to the context
            build_args: Build arguments
            pull: Pull base image before build
            on_output: Callback for streamed build output

        Returns:
            DockerResult with the tags that were built
        """
        result = DockerResult(success=False, operation="build")

        if not tags:
            result.errors.append("At least one tag is required")
            return result.finish()

        for tag in tags:
            InputValidator.validate_docker_image(tag)

        cmd_parts = [self.docker_bin, "build"]
        for tag in tags:
            cmd_parts.extend(["-t", tag])
        cmd_parts.extend(["-f", dockerfile])

        for key, value in (build_args or {}).items():
            cmd_parts.extend(["--build-arg", f"{key}={value}"])

        if pull:
            cmd_parts.append("--pull")

        cmd_parts.append(".")
        cmd = shlex.join(cmd_parts)
        self.logger.info(f"Building image: {', '.join(tags)}")

        def capture(line: str):
            result.logs.append(line.rstrip())
            if on_output:
                on_output(line)

        exec_result = await self.executor.run(
            cmd,
            timeout=self.BUILD_TIMEOUT,
            cwd=path,
            stream_output=True,
            on_output=capture,
        )

        result.success = exec_result.success
        if exec_result.success:
            result.image_tags = list(tags)
            self.logger.info(f"Build succeeded: {tags[0]}")
        else:
            result.errors.append(exec_result.stderr.strip() or "Build failed")
            self.logger.error(f"Build failed: {tags[0]}")

        return result.finish()

    async def tag(self, source: str, target: str) -> bool:
        """Tag an image."""
        InputValidator.validate_docker_image(source)
        InputValidator.validate_docker_image(target)
        result = await self.executor.run(
            shlex.join([self.docker_bin, "tag", source, target]), timeout=30
        )
        if not result.success:
            self.logger.error(f"Tag failed: {source} -> {target}")
        return result.success

    async def login(self, registry: str, username: str, password: str) -> DockerResult:
        """Authenticate against a registry, passing the password on stdin."""
        result = DockerResult(success=False, operation="login")

        cmd_parts = [self.docker_bin, "login"]
        if registry:
            cmd_parts.append(registry)
        cmd_parts.extend(["-u", username, "--password-stdin"])

        exec_result = await self.executor.run(
            shlex.join(cmd_parts), timeout=60, input_data=password
        )
        result.success = exec_result.success
        if not exec_result.success:
            result.errors.append(exec_result.stderr.strip() or "Docker login failed")
        return result.finish()

    async def logout(self, registry: str = None) -> CommandResult:
        cmd_parts = [self.docker_bin, "logout"]
        if registry:
            cmd_parts.append(registry)
        return await self.executor.run(shlex.join(cmd_parts), timeout=30)

    async def push(self, tags: List[str]) -> DockerResult:
        """
        Push each tag in order, stopping at the first failure.

        Returns:
            DockerResult listing the tags that were pushed
        """
        result = DockerResult(success=False, operation="push")

        for tag in tags:
            InputValidator.validate_docker_image(tag)
            self.logger.info(f"Pushing image: {tag}")
            exec_result = await self.executor.run(
                shlex.join([self.docker_bin, "push", tag]), timeout=self.PUSH_TIMEOUT
            )
            if not exec_result.success:
                result.errors.append(exec_result.stderr.strip() or f"Push failed: {tag}")
                self.logger.error(f"Push failed: {tag}")
                return result.finish()
            result.image_tags.append(tag)

        result.success = True
        return result.finish()

    async def prune(self, all_images: bool = False) -> CommandResult:
        """Remove stopped containers, dangling images and unused networks."""
        cmd_parts = [self.docker_bin, "system", "prune", "-f"]
        if all_images:
            cmd_parts.append("-a")
        return await self.executor.run(shlex.join(cmd_parts), timeout=120)
