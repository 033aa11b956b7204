"""
Action steps used by the web application pipeline.

Each action takes the run context and returns a StepOutcome. Operational
failures come back as unsuccessful outcomes; exceptions (for instance a
missing credential) are turned into step failures by the runner.
"""

import shlex

from ..core.security import InputValidator
from ..engine.context import PipelineContext
from ..models.pipeline import StepOutcome


# Artifacts removed from a borrowed workspace at cleanup
BUILD_ARTIFACTS = ("node_modules", "client/node_modules", "client/build")


async def checkout(context: PipelineContext) -> StepOutcome:
    """Clone the repository into an owned workspace, or use the existing one."""
    repo_url = context.config.build.repo_url

    if repo_url:
        InputValidator.validate_branch_name(context.branch)
        context.workspace.parent.mkdir(parents=True, exist_ok=True)
        command = shlex.join([
            "git", "clone", "--branch", context.branch, "--depth", "1",
            repo_url, str(context.workspace),
        ])
        result = await context.executor.run(command, timeout=600, cwd=context.workspace.parent)
        if not result.success:
            return StepOutcome(success=False, message=result.stderr.strip() or "git clone failed")
        message = f"Cloned {context.branch} into {context.workspace}"
    else:
        if not context.workspace.is_dir():
            return StepOutcome(success=False, message=f"Workspace does not exist: {context.workspace}")
        message = f"Using existing workspace {context.workspace}"

    outcome = StepOutcome(success=True, message=message)

    rev = await context.executor.run("git rev-parse HEAD", timeout=30, cwd=context.workspace)
    if rev.success:
        commit = rev.stdout.strip()
        outcome.outputs["commit"] = commit
        if context.report is not None:
            context.report.commit = commit
    else:
        outcome.warnings.append("Workspace is not a git checkout; commit not recorded")

    return outcome


async def verify_node_version(context: PipelineContext) -> StepOutcome:
    """Compare the installed node major version with NODE_VERSION."""
    version = await context.executor.get_tool_version("node")
    if version is None:
        return StepOutcome(success=False, message="node is not installed")

    wanted = context.config.runtime.node_version
    installed_major = version.lstrip("v").split(".")[0]
    outcome = StepOutcome(success=True, message=f"node {version}", outputs={"node": version})
    if wanted and installed_major != wanted.split(".")[0]:
        outcome.warnings.append(f"NODE_VERSION is {wanted} but node {version} is installed")
    return outcome


async def build_image(context: PipelineContext) -> StepOutcome:
    """Build the application image with the build tag and latest."""
    tags = context.config.image_tags
    result = await context.docker.build(
        context.workspace,
        tags,
        dockerfile=context.config.image.dockerfile,
        build_args={"NODE_VERSION": context.config.runtime.node_version},
    )
    if not result.success:
        return StepOutcome(success=False, message="; ".join(result.errors) or "docker build failed")

    if context.report is not None:
        context.report.image_tags = list(result.image_tags)
    return StepOutcome(
        success=True,
        message=f"Built {', '.join(result.image_tags)}",
        outputs={"image_tags": result.image_tags},
    )


async def security_scan(context: PipelineContext) -> StepOutcome:
    """Placeholder: no scanner is wired into this pipeline yet."""
    return StepOutcome(
        success=True,
        message=f"No security scanner configured; {context.config.image_tags[0]} not scanned",
    )


async def push_image(context: PipelineContext) -> StepOutcome:
    """Log in to the registry, push both tags, then log out."""
    registry = context.config.image.registry
    creds = context.credentials.get_credentials(context.config.image.credentials_id)

    login = await context.docker.login(registry, creds.username, creds.password)
    if not login.success:
        return StepOutcome(success=False, message="; ".join(login.errors))

    result = await context.docker.push(context.config.image_tags)

    outcome = StepOutcome(
        success=result.success,
        message=f"Pushed {', '.join(result.image_tags)}" if result.success else "; ".join(result.errors),
        outputs={"pushed": result.image_tags},
    )

    logout = await context.docker.logout(registry or None)
    if not logout.success:
        outcome.warnings.append("docker logout failed")

    return outcome


async def deploy_stack(context: PipelineContext) -> StepOutcome:
    """Replace the running compose stack with the freshly built image."""
    compose = context.compose.with_cwd(context.workspace)

    down = await compose.down()
    warnings = []
    if not down.success:
        warnings.append(f"docker-compose down failed: {'; '.join(down.errors)}")

    up = await compose.up(detach=True)
    if not up.success:
        return StepOutcome(success=False, message="; ".join(up.errors), warnings=warnings)

    if context.report is not None:
        context.report.deployment_url = context.config.runtime.health_check_url
    return StepOutcome(
        success=True,
        message=f"Stack started with {context.config.image_tags[0]}",
        warnings=warnings,
    )


async def health_check(context: PipelineContext) -> StepOutcome:
    """A single probe; the stage's retry count bounds the attempts."""
    result = await context.health_checker.check_once(context.config.runtime.health_check_url)
    return StepOutcome(
        success=result.healthy,
        message=result.message,
        outputs=result.to_dict(),
    )


async def prune_docker(context: PipelineContext) -> StepOutcome:
    result = await context.docker.prune()
    return StepOutcome(
        success=result.success,
        message="Docker resources pruned" if result.success else result.stderr.strip(),
    )


async def clean_workspace(context: PipelineContext) -> StepOutcome:
    removed = context.clean_workspace(BUILD_ARTIFACTS)
    message = f"Removed {len(removed)} path(s)" if removed else "Nothing to clean"
    return StepOutcome(success=True, message=message, outputs={"removed": removed})


async def notify_success(context: PipelineContext) -> StepOutcome:
    details = {"image_tags": context.report.image_tags if context.report else []}
    await context.notifier.succeeded(context.build_number, context.branch, details)
    return StepOutcome(success=True)


async def notify_failure(context: PipelineContext) -> StepOutcome:
    failed = context.report.failed_stage if context.report else None
    error = None
    if failed is not None:
        error = f"Stage '{failed.name}' {failed.status.value}"
    elif context.report is not None and context.report.errors:
        error = context.report.errors[0]
    await context.notifier.failed(context.build_number, context.branch, error=error)
    return StepOutcome(success=True)
