"""
Unit tests for the web application pipeline declaration and its behaviour
on main and feature branches, with every external tool mocked.
"""

import pytest
from webapp_pipeline.core.compose_client import ComposeResult
from webapp_pipeline.core.credentials import CredentialsError
from webapp_pipeline.core.notifier import BuildEventType
from webapp_pipeline.engine.history import BuildHistory
from webapp_pipeline.models.report import PipelineStatus, StageStatus
from webapp_pipeline.pipelines import PIPELINE_NAME, build_webapp_pipeline, run_webapp_pipeline


MAIN_ONLY = ("Push Image", "Deploy", "Health Check")


class TestDeclaration:
    """Shape of the declared pipeline."""

    def test_stage_order(self, make_config):
        pipeline = build_webapp_pipeline(make_config())

        assert pipeline.name == PIPELINE_NAME
        assert pipeline.stage_names == [
            "Checkout",
            "Setup",
            "Install Dependencies",
            "Quality Checks",
            "Unit Tests",
            "Build Client",
            "Build Image",
            "Security Scan",
            "Push Image",
            "Deploy",
            "Health Check",
        ]

    def test_parallel_groups(self, make_config):
        pipeline = build_webapp_pipeline(make_config())

        install = pipeline.get_stage("Install Dependencies")
        checks = pipeline.get_stage("Quality Checks")
        assert [b.name for b in install.parallel] == ["Backend Dependencies", "Client Dependencies"]
        assert [b.name for b in checks.parallel] == ["Backend Format", "Client Lint"]
        assert pipeline.get_stage("Client Lint").steps[0].cwd == "client"

    def test_health_check_retries_three_times(self, make_config):
        pipeline = build_webapp_pipeline(make_config())
        assert pipeline.get_stage("Health Check").retry == 3

    def test_main_only_gates(self, make_config):
        pipeline = build_webapp_pipeline(make_config())
        for name in MAIN_ONLY:
            assert pipeline.get_stage(name).when.description == "branch is main"
        assert pipeline.get_stage("Build Image").when is None

    def test_timeout(self, make_config):
        assert build_webapp_pipeline(make_config(timeout_minutes=30)).timeout_seconds == 1800

    def test_post_actions(self, make_config):
        post = build_webapp_pipeline(make_config()).post
        assert [step.label for step in post.always] == ["docker prune", "clean workspace"]
        assert post.always[0].allow_failure
        assert [step.label for step in post.success] == ["notify success"]
        assert [step.label for step in post.failure] == ["notify failure"]


class TestFeatureBranch:
    """Runs on a branch other than main."""

    @pytest.mark.asyncio
    async def test_never_pushes_or_deploys(self, make_config, make_context):
        config = make_config(branch="feature/cart")
        context = make_context(config)

        report = await run_webapp_pipeline(config, record_history=False, context=context)

        assert report.status == PipelineStatus.SUCCESS
        for name in MAIN_ONLY:
            assert report.stage_status(name) == StageStatus.SKIPPED
            assert name not in report.executed_stages
        context.credentials.get_credentials.assert_not_called()
        context.docker.login.assert_not_awaited()
        context.docker.push.assert_not_awaited()
        context.compose.up.assert_not_awaited()
        context.health_checker.check_once.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_still_builds_image(self, make_config, make_context):
        config = make_config(branch="feature/cart", build_number="8")
        context = make_context(config)

        report = await run_webapp_pipeline(config, record_history=False, context=context)

        assert report.stage_status("Build Image") == StageStatus.SUCCESS
        assert report.image_tags == ["registry.example.com/webapp:8", "registry.example.com/webapp:latest"]


class TestMainBranch:
    """Full runs on main."""

    @pytest.mark.asyncio
    async def test_full_run(self, make_config, make_context):
        config = make_config(branch="main", build_number="42")
        context = make_context(config)

        report = await run_webapp_pipeline(config, record_history=False, context=context)

        assert report.success
        assert all(stage.status == StageStatus.SUCCESS for stage in report.stages)
        assert report.commit == "3f2c9a1e"
        assert report.deployment_url == "http://app.test/health"
        context.health_checker.check_once.assert_awaited_once_with("http://app.test/health")
        assert [event.event for event in context.notifier.sent] == [BuildEventType.SUCCEEDED]

    @pytest.mark.asyncio
    async def test_build_and_push_use_build_tag_and_latest(self, make_config, make_context):
        config = make_config(branch="main", build_number="42")
        context = make_context(config)
        expected = ["registry.example.com/webapp:42", "registry.example.com/webapp:latest"]

        report = await run_webapp_pipeline(config, record_history=False, context=context)

        build_call = context.docker.build.await_args
        assert build_call.args[0] == context.workspace
        assert build_call.args[1] == expected
        assert build_call.kwargs["build_args"] == {"NODE_VERSION": "18"}
        context.docker.login.assert_awaited_once_with("registry.example.com", "ci-bot", "registry-pass-123")
        context.docker.push.assert_awaited_once_with(expected)
        assert report.image_tags == expected

    @pytest.mark.asyncio
    async def test_commands_and_directories(self, make_config, make_context, fake_executor, workspace):
        executor = fake_executor()
        config = make_config()
        await run_webapp_pipeline(config, record_history=False, context=make_context(config, executor=executor))

        client_dir = (workspace / "client").resolve()
        by_command = {}
        for call in executor.calls:
            by_command.setdefault(call.command, []).append(call)

        assert {call.cwd for call in by_command["npm ci"]} == {workspace.resolve(), client_dir}
        assert by_command["npm run lint"][0].cwd == client_dir
        assert by_command["npm run build"][0].cwd == client_dir
        assert by_command["npm test"][0].env == {"DB_TYPE": "sqlite", "CI": "true"}
        for tool in ("npm --version", "docker --version", "docker-compose --version"):
            assert tool in by_command

    @pytest.mark.asyncio
    async def test_unhealthy_deployment_retries_then_fails(self, make_config, make_context):
        config = make_config(branch="main")
        context = make_context(config, healthy=False)

        report = await run_webapp_pipeline(config, record_history=False, context=context)

        assert report.status == PipelineStatus.FAILURE
        health = report.get_stage("Health Check")
        assert health.status == StageStatus.FAILED
        assert health.attempts == 3
        assert context.health_checker.check_once.await_count == 3
        event = context.notifier.sent[-1]
        assert event.event == BuildEventType.FAILED
        assert event.error == "Stage 'Health Check' failed"

    @pytest.mark.asyncio
    async def test_missing_credentials_fail_push(self, make_config, make_context):
        config = make_config(branch="main")
        context = make_context(config)
        context.credentials.get_credentials.side_effect = CredentialsError(
            "Credentials 'registry-credentials' not found"
        )

        report = await run_webapp_pipeline(config, record_history=False, context=context)

        assert report.stage_status("Push Image") == StageStatus.FAILED
        assert report.stage_status("Deploy") == StageStatus.NOT_RUN
        assert report.stage_status("Health Check") == StageStatus.NOT_RUN
        context.docker.push.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_compose_down_failure_is_tolerated(self, make_config, make_context):
        config = make_config(branch="main")
        context = make_context(config)
        context.compose.down.return_value = ComposeResult(
            success=False, operation="down", errors=["no such service"]
        )

        report = await run_webapp_pipeline(config, record_history=False, context=context)

        assert report.stage_status("Deploy") == StageStatus.SUCCESS
        context.compose.up.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_records_history(self, make_config, make_context, tmp_path):
        config = make_config(build_number="77")

        await run_webapp_pipeline(config, context=make_context(config))

        stored = BuildHistory(tmp_path / "builds").load("77")
        assert stored is not None
        assert stored.status == PipelineStatus.SUCCESS


class TestFailuresStopBeforeImage:
    """A failing check or test never reaches the image build."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("failing, failed_stage", [
        ("npm run lint", "Quality Checks"),
        ("npm run format:check", "Quality Checks"),
        ("npm test", "Unit Tests"),
    ])
    async def test_halts_before_build_image(
        self, make_config, make_context, fake_executor, failing, failed_stage
    ):
        executor = fake_executor(fail_on={failing})
        config = make_config(branch="main")
        context = make_context(config, executor=executor)

        report = await run_webapp_pipeline(config, record_history=False, context=context)

        assert report.status == PipelineStatus.FAILURE
        assert report.failed_stage.name == failed_stage
        assert report.stage_status("Build Image") == StageStatus.NOT_RUN
        assert "Build Image" not in report.executed_stages
        context.docker.build.assert_not_awaited()
        context.docker.push.assert_not_awaited()
        assert "npm run build" not in executor.commands

    @pytest.mark.asyncio
    async def test_lint_failure_lets_format_finish(self, make_config, make_context, fake_executor):
        executor = fake_executor(fail_on={"npm run lint"})
        config = make_config()

        report = await run_webapp_pipeline(
            config, record_history=False, context=make_context(config, executor=executor)
        )

        assert report.stage_status("Client Lint") == StageStatus.FAILED
        assert report.stage_status("Backend Format") == StageStatus.SUCCESS
        assert report.stage_status("Unit Tests") == StageStatus.NOT_RUN


class TestCleanup:
    """Workspace cleanup runs whatever the outcome."""

    @staticmethod
    def make_artifacts(workspace):
        artifacts = [workspace / "node_modules", workspace / "client" / "node_modules", workspace / "client" / "build"]
        for path in artifacts:
            path.mkdir(parents=True)
            (path / "marker.txt").write_text("x")
        return artifacts

    @pytest.mark.asyncio
    async def test_cleanup_after_success(self, make_config, make_context, workspace):
        artifacts = self.make_artifacts(workspace)
        config = make_config()

        report = await run_webapp_pipeline(config, record_history=False, context=make_context(config))

        assert report.success
        assert not any(path.exists() for path in artifacts)
        assert (workspace / "package.json").exists()

    @pytest.mark.asyncio
    async def test_cleanup_after_failure(self, make_config, make_context, fake_executor, workspace):
        artifacts = self.make_artifacts(workspace)
        config = make_config()
        context = make_context(config, executor=fake_executor(fail_on={"npm test"}))

        report = await run_webapp_pipeline(config, record_history=False, context=context)

        assert not report.success
        assert not any(path.exists() for path in artifacts)
        cleanup = [post for post in report.post_actions if post.step.name == "clean workspace"]
        assert len(cleanup) == 1
        assert cleanup[0].condition == "always"
        assert cleanup[0].step.success

    @pytest.mark.asyncio
    async def test_prune_failure_does_not_block_cleanup(self, make_config, make_context, workspace):
        artifacts = self.make_artifacts(workspace)
        config = make_config()
        context = make_context(config)
        context.docker.prune.return_value.success = False

        report = await run_webapp_pipeline(config, record_history=False, context=context)

        assert report.success
        assert not any(path.exists() for path in artifacts)
        assert [post.step.name for post in report.post_actions] == [
            "docker prune", "clean workspace", "notify success",
        ]


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
