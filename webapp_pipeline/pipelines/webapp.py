"""
Build-test-deploy pipeline for the web application.

Backend lives at the workspace root, the client in `client/`. Push,
deploy and health check only run on the main branch.
"""

from ..config import Config
from ..engine import BuildHistory, PipelineContext, PipelineRunner
from ..models.pipeline import (
    ActionStep,
    Pipeline,
    PostActions,
    ShellStep,
    Stage,
    branch_is,
)
from ..models.report import PipelineReport
from . import actions


PIPELINE_NAME = "webapp"


def build_webapp_pipeline(config: Config) -> Pipeline:
    """Declare the pipeline for the given configuration."""
    client_dir = config.runtime.client_dir
    on_main = branch_is(config.build.main_branch)

    stages = [
        Stage("Checkout", steps=[ActionStep("checkout", actions.checkout)]),
        Stage("Setup", steps=[
            ActionStep("node version", actions.verify_node_version),
            ShellStep("npm --version"),
            ShellStep("docker --version"),
            ShellStep("docker-compose --version"),
        ]),
        Stage("Install Dependencies", parallel=[
            Stage("Backend Dependencies", steps=[ShellStep("npm ci")]),
            Stage("Client Dependencies", steps=[ShellStep("npm ci", cwd=client_dir)]),
        ]),
        Stage("Quality Checks", parallel=[
            Stage("Backend Format", steps=[ShellStep("npm run format:check")]),
            Stage("Client Lint", steps=[ShellStep("npm run lint", cwd=client_dir)]),
        ]),
        Stage("Unit Tests", steps=[
            ShellStep("npm test", env={"DB_TYPE": config.runtime.db_type, "CI": "true"}),
        ]),
        Stage("Build Client", steps=[ShellStep("npm run build", cwd=client_dir)]),
        Stage("Build Image", steps=[ActionStep("docker build", actions.build_image)]),
        Stage("Security Scan", steps=[ActionStep("scan image", actions.security_scan)]),
        Stage("Push Image", when=on_main, steps=[ActionStep("docker push", actions.push_image)]),
        Stage("Deploy", when=on_main, steps=[ActionStep("docker-compose up", actions.deploy_stack)]),
        Stage(
            "Health Check",
            when=on_main,
            retry=config.runtime.health_check_retries,
            steps=[ActionStep("http probe", actions.health_check)],
        ),
    ]

    post = PostActions(
        always=[
            ActionStep("docker prune", actions.prune_docker, allow_failure=True),
            ActionStep("clean workspace", actions.clean_workspace),
        ],
        success=[ActionStep("notify success", actions.notify_success)],
        failure=[ActionStep("notify failure", actions.notify_failure)],
    )

    return Pipeline(
        name=PIPELINE_NAME,
        stages=stages,
        post=post,
        timeout_seconds=config.timeout_seconds,
    )


# Convenience function for direct usage
async def run_webapp_pipeline(
    config: Config,
    record_history: bool = True,
    context: PipelineContext = None,
) -> PipelineReport:
    """
    Run the web application pipeline.

    Args:
        config: Pipeline configuration
        record_history: Persist the report to build history
        context: Pre-built run context (defaults to one built from config)

    Returns:
        PipelineReport with all results
    """
    history = None
    if record_history and config.history.enabled:
        history = BuildHistory(config.history.directory, keep=config.history.keep)

    runner = PipelineRunner(history=history)
    return await runner.run(
        build_webapp_pipeline(config),
        context or PipelineContext.create(config),
    )
