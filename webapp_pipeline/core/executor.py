"""
Command execution utility for the pipeline.
Handles running shell commands with output capture and error handling.
SECURITY: Command lines and output are masked before they are logged.
"""

import asyncio
import os
import signal
import subprocess
import time
from pathlib import Path
from dataclasses import dataclass
from typing import Optional, Callable
from .logger import StageLogger
from .security import SecretsMasker


@dataclass
class CommandResult:
    """Result of a command execution."""
    command: str
    return_code: int
    stdout: str
    stderr: str
    success: bool
    duration_seconds: float
    timed_out: bool = False

    @property
    def output(self) -> str:
        """Combined stdout and stderr."""
        return f"{self.stdout}\n{self.stderr}".strip()

    def to_dict(self) -> dict:
        """Convert to dictionary with secrets masked."""
        return {
            "command": SecretsMasker.mask_secrets(self.command),
            "return_code": self.return_code,
            "stdout": SecretsMasker.mask_secrets(self.stdout),
            "stderr": SecretsMasker.mask_secrets(self.stderr),
            "success": self.success,
            "duration_seconds": self.duration_seconds,
            "timed_out": self.timed_out,
        }


class CommandExecutor:
    """Executes shell commands with proper error handling and logging."""

    # Bytes read per chunk when streaming; lines may be longer than this
    STREAM_CHUNK_SIZE = 64 * 1024

    def __init__(
        self,
        working_dir: Path = None,
        logger: StageLogger = None,
        base_env: dict = None,
    ):
        self.working_dir = working_dir or Path.cwd()
        self.logger = logger or StageLogger("CommandExecutor")
        self.base_env = base_env or {}

    async def run(
        self,
        command: str,
        timeout: float = 300,
        env: dict = None,
        cwd: Path = None,
        input_data: str = None,
        stream_output: bool = False,
        on_output: Callable[[str], None] = None,
    ) -> CommandResult:
        """
        Execute a shell command asynchronously.

        Args:
            command: The command to execute
            timeout: Maximum execution time in seconds
            env: Additional environment variables
            cwd: Directory to run in (defaults to the executor's working dir)
            input_data: Text written to the command's stdin, never logged
            stream_output: Whether to stream output line by line
            on_output: Callback for streamed output

        Returns:
            CommandResult with execution details
        """
        safe_command = SecretsMasker.mask_secrets(command)
        self.logger.debug(f"Executing: {safe_command}")
        start_time = time.time()

        full_env = os.environ.copy()
        full_env.update(self.base_env)
        if env:
            full_env.update(env)

        run_dir = Path(cwd) if cwd else self.working_dir

        try:
            if stream_output:
                result = await self._run_streaming(
                    command, timeout, full_env, run_dir, input_data, on_output
                )
            else:
                result = await self._run_simple(command, timeout, full_env, run_dir, input_data)

            duration = time.time() - start_time

            cmd_result = CommandResult(
                command=command,
                return_code=result.returncode,
                stdout=result.stdout.decode(errors="replace") if result.stdout else "",
                stderr=result.stderr.decode(errors="replace") if result.stderr else "",
                success=result.returncode == 0,
                duration_seconds=duration,
            )

            if cmd_result.success:
                self.logger.debug(f"Command succeeded in {duration:.2f}s")
            else:
                self.logger.warning(
                    f"Command failed with code {result.returncode}: {safe_command}"
                )

            return cmd_result

        except asyncio.TimeoutError:
            duration = time.time() - start_time
            self.logger.error(f"Command timed out after {timeout}s: {safe_command}")
            return CommandResult(
                command=command,
                return_code=-1,
                stdout="",
                stderr=f"Command timed out after {timeout} seconds",
                success=False,
                duration_seconds=duration,
                timed_out=True,
            )
        except OSError as e:
            duration = time.time() - start_time
            self.logger.error(f"Command execution failed: {e}", exc=e)
            return CommandResult(
                command=command,
                return_code=-1,
                stdout="",
                stderr=str(e),
                success=False,
                duration_seconds=duration,
            )


    async def _spawn(self, command: str, env: dict, cwd: Path, with_stdin: bool):
        return await asyncio.create_subprocess_shell(
            command,
            stdin=asyncio.subprocess.PIPE if with_stdin else asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            cwd=cwd,
            env=env,
            start_new_session=True,
        )

    @staticmethod
    async def _terminate(process) -> None:
        """Kill a command, and anything it spawned, if it is still running."""
        if process.returncode is None:
            try:
                os.killpg(process.pid, signal.SIGKILL)
            except ProcessLookupError:
                return
            await process.wait()

    async def _run_simple(
        self,
        command: str,
        timeout: float,
        env: dict,
        cwd: Path,
        input_data: Optional[str],
    ) -> subprocess.CompletedProcess:
        """Run command without streaming."""
        process = await self._spawn(command, env, cwd, input_data is not None)

        try:
            stdout, stderr = await asyncio.wait_for(
                process.communicate(input_data.encode() if input_data is not None else None),
                timeout=timeout,
            )
        finally:
            await self._terminate(process)

        return subprocess.CompletedProcess(
            args=command,
            returncode=process.returncode,
            stdout=stdout,
            stderr=stderr,
        )

    async def _run_streaming(
        self,
        command: str,
        timeout: float,
        env: dict,
        cwd: Path,
        input_data: Optional[str],
        on_output: Callable[[str], None] = None,
    ) -> subprocess.CompletedProcess:
        """Run command with real-time output streaming."""
        process = await self._spawn(command, env, cwd, input_data is not None)

        stdout_lines = []
        stderr_lines = []

        def emit(raw: bytes, lines: list):
            decoded = raw.decode(errors="replace")
            lines.append(decoded)
            if on_output:
                on_output(decoded)

        async def read_stream(stream, lines: list):
            # Lines can exceed the StreamReader limit, so chunks are split here
            pending = b""
            while True:
                chunk = await stream.read(self.STREAM_CHUNK_SIZE)
                if not chunk:
                    break
                pending += chunk
                *complete, pending = pending.split(b"\n")
                for line in complete:
                    emit(line + b"\n", lines)
            if pending:
                emit(pending, lines)

        async def feed_stdin():
            process.stdin.write(input_data.encode())
            await process.stdin.drain()
            process.stdin.close()

        try:
            if input_data is not None:
                await feed_stdin()
            await asyncio.wait_for(
                asyncio.gather(
                    read_stream(process.stdout, stdout_lines),
                    read_stream(process.stderr, stderr_lines),
                ),
                timeout=timeout
            )
            await process.wait()
        finally:
            await self._terminate(process)

        return subprocess.CompletedProcess(
            args=command,
            returncode=process.returncode,
            stdout="".join(stdout_lines).encode(),
            stderr="".join(stderr_lines).encode(),
        )

    async def get_tool_version(self, tool: str, version_flag: str = "--version") -> Optional[str]:
        """Get the version of a tool."""
        result = await self.run(f"{tool} {version_flag}", timeout=10)
        if result.success:
            return result.stdout.strip().split("\n")[0]
        return None
