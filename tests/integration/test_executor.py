"""
Integration tests for the command executor using real shell commands.
"""

import asyncio

import pytest
from webapp_pipeline.core.executor import CommandExecutor


@pytest.fixture
def executor(tmp_path):
    return CommandExecutor(working_dir=tmp_path, base_env={"BUILD_NUMBER": "42"})


class TestCommandExecutor:
    """Test running real commands."""

    @pytest.mark.asyncio
    async def test_success(self, executor):
        result = await executor.run("true")
        assert result.success
        assert result.return_code == 0
        assert not result.timed_out

    @pytest.mark.asyncio
    async def test_failure_does_not_raise(self, executor):
        result = await executor.run("false")
        assert not result.success
        assert result.return_code == 1

    @pytest.mark.asyncio
    async def test_captures_output(self, executor):
        result = await executor.run("echo hello && echo oops >&2")
        assert result.stdout.strip() == "hello"
        assert result.stderr.strip() == "oops"
        assert result.output.splitlines()[0] == "hello"
        assert result.output.splitlines()[-1] == "oops"

    @pytest.mark.asyncio
    async def test_environment_layers(self, executor):
        result = await executor.run('echo "$BUILD_NUMBER-$STEP_VAR"', env={"STEP_VAR": "x"})
        assert result.stdout.strip() == "42-x"

    @pytest.mark.asyncio
    async def test_step_env_overrides_base(self, executor):
        result = await executor.run('echo "$BUILD_NUMBER"', env={"BUILD_NUMBER": "43"})
        assert result.stdout.strip() == "43"

    @pytest.mark.asyncio
    async def test_working_directory(self, executor, tmp_path):
        sub = tmp_path / "client"
        sub.mkdir()

        default = await executor.run("pwd")
        nested = await executor.run("pwd", cwd=sub)

        assert default.stdout.strip() == str(tmp_path)
        assert nested.stdout.strip() == str(sub)

    @pytest.mark.asyncio
    async def test_stdin(self, executor):
        result = await executor.run("cat", input_data="from-stdin")
        assert result.stdout == "from-stdin"

    @pytest.mark.asyncio
    async def test_no_stdin_by_default(self, executor):
        result = await asyncio.wait_for(executor.run("cat"), timeout=5)
        assert result.success
        assert result.stdout == ""

    @pytest.mark.asyncio
    async def test_timeout_kills_command(self, executor):
        result = await executor.run("sleep 5", timeout=0.2)
        assert not result.success
        assert result.timed_out
        assert result.duration_seconds < 3

    @pytest.mark.asyncio
    async def test_streaming(self, executor):
        lines = []
        result = await executor.run(
            "printf 'one\\ntwo\\n'",
            stream_output=True,
            on_output=lines.append,
        )
        assert result.success
        assert lines == ["one\n", "two\n"]
        assert result.stdout == "one\ntwo\n"

    @pytest.mark.asyncio
    async def test_streaming_with_stdin(self, executor):
        result = await executor.run("cat", input_data="streamed", stream_output=True)
        assert result.stdout == "streamed"

    @pytest.mark.asyncio
    async def test_streaming_very_long_line(self, executor):
        lines = []
        result = await executor.run(
            "head -c 70000 /dev/zero | tr '\\0' x; echo; echo done",
            stream_output=True,
            on_output=lines.append,
        )
        assert result.success
        assert lines == ["x" * 70000 + "\n", "done\n"]
        assert result.stdout.splitlines()[0] == "x" * 70000

    @pytest.mark.asyncio
    async def test_streaming_output_without_trailing_newline(self, executor):
        lines = []
        result = await executor.run("printf partial", stream_output=True, on_output=lines.append)
        assert lines == ["partial"]
        assert result.stdout == "partial"

    @pytest.mark.asyncio
    async def test_streaming_timeout_kills_command(self, executor):
        result = await executor.run("echo started; sleep 5", timeout=0.3, stream_output=True)
        assert result.timed_out
        assert result.duration_seconds < 3

    @pytest.mark.asyncio
    async def test_tool_version(self, executor):
        assert await executor.get_tool_version("sh", "-c 'echo sh 1.0'") == "sh 1.0"
        assert await executor.get_tool_version("definitely-not-a-real-tool-xyz") is None

    def test_to_dict_masks_secrets(self):
        from webapp_pipeline.core.executor import CommandResult

        result = CommandResult(
            command="curl -H token=abc123",
            return_code=0,
            stdout="",
            stderr="",
            success=True,
            duration_seconds=0.1,
        )
        assert "abc123" not in result.to_dict()["command"]


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
