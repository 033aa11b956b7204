"""
Integration tests running small pipelines through the real executor.
"""

import pytest
from webapp_pipeline.engine.context import PipelineContext
from webapp_pipeline.engine.history import BuildHistory
from webapp_pipeline.engine.runner import PipelineRunner
from webapp_pipeline.models.pipeline import (
    ActionStep,
    Pipeline,
    PostActions,
    ShellStep,
    Stage,
    branch_is,
)
from webapp_pipeline.models.report import PipelineStatus, StageStatus
from webapp_pipeline.pipelines import actions


def shell_pipeline(*stages, timeout_seconds: float = 60) -> Pipeline:
    return Pipeline(
        "integration",
        stages=stages,
        post=PostActions(always=[ActionStep("clean workspace", actions.clean_workspace)]),
        timeout_seconds=timeout_seconds,
    )


class TestShellPipeline:
    """Pipelines made of real shell commands."""

    @pytest.mark.asyncio
    async def test_successful_run(self, make_config, workspace):
        config = make_config(build_number="12")
        context = PipelineContext.create(config)
        pipeline = shell_pipeline(
            Stage("Build", steps=[ShellStep('echo "$IMAGE_TAG" > tag.txt')]),
            Stage("Install", parallel=[
                Stage("Backend", steps=[ShellStep("mkdir -p node_modules && echo ok")]),
                Stage("Client", steps=[ShellStep("mkdir -p build && pwd", cwd="client")]),
            ]),
            Stage("Push Image", when=branch_is("release"), steps=[ShellStep("false")]),
        )

        report = await PipelineRunner().run(pipeline, context)

        assert report.status == PipelineStatus.SUCCESS
        assert (workspace / "tag.txt").read_text().strip() == "12"
        client_step = report.get_stage("Client").steps[0]
        assert client_step.output.strip() == str((workspace / "client").resolve())
        assert report.stage_status("Push Image") == StageStatus.SKIPPED
        # build artifacts are cleaned up, sources stay
        assert not (workspace / "node_modules").exists()
        assert not (workspace / "client" / "build").exists()
        assert (workspace / "tag.txt").exists()

    @pytest.mark.asyncio
    async def test_failing_command_halts(self, make_config, workspace):
        context = PipelineContext.create(make_config())
        pipeline = shell_pipeline(
            Stage("Unit Tests", steps=[ShellStep("echo 'expected 1 to be 2' >&2; exit 3")]),
            Stage("Build Image", steps=[ShellStep("touch image-built")]),
        )

        report = await PipelineRunner().run(pipeline, context)

        assert report.status == PipelineStatus.FAILURE
        step = report.get_stage("Unit Tests").steps[0]
        assert step.return_code == 3
        assert step.message == "expected 1 to be 2"
        assert report.stage_status("Build Image") == StageStatus.NOT_RUN
        assert not (workspace / "image-built").exists()

    @pytest.mark.asyncio
    async def test_allow_failure_command(self, make_config):
        context = PipelineContext.create(make_config())
        pipeline = shell_pipeline(
            Stage("Deploy", steps=[
                ShellStep("false", name="compose down", allow_failure=True),
                ShellStep("true", name="compose up"),
            ]),
        )

        report = await PipelineRunner().run(pipeline, context)

        assert report.success
        assert report.get_stage("Deploy").warnings

    @pytest.mark.asyncio
    async def test_timeout_kills_running_command(self, make_config, workspace):
        context = PipelineContext.create(make_config())
        pipeline = shell_pipeline(
            Stage("Slow", steps=[ShellStep("sleep 10 && touch finished")]),
            Stage("After", steps=[ShellStep("true")]),
            timeout_seconds=0.5,
        )

        report = await PipelineRunner().run(pipeline, context)

        assert report.timed_out
        assert report.stage_status("Slow") == StageStatus.ABORTED
        assert report.stage_status("After") == StageStatus.NOT_RUN
        assert report.duration_seconds < 5
        assert [post.step.name for post in report.post_actions] == ["clean workspace"]
        assert not (workspace / "finished").exists()

    @pytest.mark.asyncio
    async def test_secrets_masked_in_output(self, make_config, monkeypatch):
        monkeypatch.setenv("DEPLOY_KEY", "hush-hush-value")
        from webapp_pipeline.core.security import SecretsMasker
        SecretsMasker.register("hush-hush-value")

        context = PipelineContext.create(make_config())
        pipeline = shell_pipeline(Stage("Leak", steps=[ShellStep('echo "$DEPLOY_KEY"')]))

        report = await PipelineRunner().run(pipeline, context)

        assert "hush-hush-value" not in report.to_json()

    @pytest.mark.asyncio
    async def test_history_written(self, make_config, tmp_path):
        history = BuildHistory(tmp_path / "history", keep=2)
        for number in ("1", "2", "3"):
            context = PipelineContext.create(make_config(build_number=number))
            await PipelineRunner(history=history).run(
                shell_pipeline(Stage("Build", steps=[ShellStep("true")])), context
            )

        assert [record["build_number"] for record in history.list()] == ["3", "2"]


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
