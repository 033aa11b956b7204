"""
Pipeline Runner - executes a pipeline declaration against a run context.

Stages run in order; a parallel stage runs its branches as concurrent
tasks. After the first failed stage nothing else runs except post actions,
which always run. The whole stage sequence is bounded by the pipeline timeout.
"""

import asyncio
from typing import Optional, List

from .context import PipelineContext
from .history import BuildHistory
from ..core.logger import StageLogger, bind_build, clear_build
from ..core.security import SecretsMasker, SecurityError
from ..models.pipeline import (
    ActionStep,
    Pipeline,
    PostActions,
    PostCondition,
    ShellStep,
    Stage,
    Step,
)
from ..models.report import (
    PipelineReport,
    PipelineStatus,
    PostActionResult,
    StageResult,
    StageStatus,
    StepResult,
)
from ..utils.helpers import format_duration, tail_lines


class PipelineRunner:
    """
    Runs a Pipeline and produces a PipelineReport.

    Usage:
        runner = PipelineRunner(history=BuildHistory(Path("/var/builds")))
        report = await runner.run(pipeline, context)
    """

    def __init__(self, history: Optional[BuildHistory] = None):
        self.history = history
        self.logger = StageLogger("Runner")

    async def run(self, pipeline: Pipeline, context: PipelineContext) -> PipelineReport:
        report = PipelineReport(
            pipeline_name=pipeline.name,
            build_number=context.build_number,
            branch=context.branch,
        )
        context.report = report
        bind_build(context.build_number, context.branch)

        self.logger.step(f"Starting {pipeline.name} build #{context.build_number} on {context.branch}")

        try:
            await asyncio.wait_for(
                self._run_stages(pipeline, context, report),
                timeout=pipeline.timeout_seconds,
            )
        except asyncio.TimeoutError:
            report.timed_out = True
            message = f"Pipeline timed out after {format_duration(pipeline.timeout_seconds)}"
            report.errors.append(message)
            self.logger.error(message)
            self._mark_not_run(pipeline, report, "Pipeline timed out")
        except Exception as e:
            message = f"Pipeline failed: {e}"
            report.errors.append(message)
            self.logger.error(message, exc=e)
            self._fail_unfinished(report, message)
            self._mark_not_run(pipeline, report, "Pipeline failed")

        try:
            failed = report.timed_out or report.failed_stage is not None or bool(report.errors)
            report.status = PipelineStatus.FAILURE if failed else PipelineStatus.SUCCESS
            context.outcome = report.status

            await self._run_post(pipeline.post, context, report)
            report.finalize()

            if report.success:
                self.logger.success(
                    f"Build #{report.build_number} succeeded in {format_duration(report.duration_seconds)}"
                )
            else:
                self.logger.error(f"Build #{report.build_number} failed")

            if self.history is not None:
                self._save_history(report)
        finally:
            clear_build()

        return report

    def _save_history(self, report: PipelineReport) -> None:
        try:
            path = self.history.save(report)
        except (OSError, SecurityError) as e:
            message = f"Could not write build record: {e}"
            report.errors.append(message)
            self.logger.error(message, exc=e)
        else:
            self.logger.debug(f"Build record written to {path}")

    async def _run_stages(
        self,
        pipeline: Pipeline,
        context: PipelineContext,
        report: PipelineReport,
    ) -> None:
        halted_by: Optional[str] = None

        for index, stage in enumerate(pipeline.stages, 1):
            if halted_by is not None:
                report.add_stage_result(
                    StageResult.not_run(stage.name, f"Not run: stage '{halted_by}' failed")
                )
                continue

            result = StageResult(name=stage.name)
            report.add_stage_result(result)
            self.logger.step(stage.name, index)

            await self._run_stage(stage, context, result)

            if not result.success:
                halted_by = stage.name

    def _fail_unfinished(self, report: PipelineReport, reason: str) -> None:
        """Mark the stages (and branches) that were running when the run broke off as failed."""
        unfinished = [stage for stage in report.stages if stage.status == StageStatus.PENDING]
        for stage in unfinished:
            unfinished.extend(b for b in stage.branches if b.status == StageStatus.PENDING)
            stage.status = StageStatus.FAILED
            stage.errors.append(reason)
            stage.finish()

    def _mark_not_run(self, pipeline: Pipeline, report: PipelineReport, reason: str) -> None:
        """Record a NOT_RUN result for every stage the report does not have yet."""
        seen = {stage.name for stage in report.stages}
        for stage in pipeline.stages:
            if stage.name not in seen:
                report.add_stage_result(StageResult.not_run(stage.name, f"Not run: {reason.lower()}"))

    async def _run_stage(
        self,
        stage: Stage,
        context: PipelineContext,
        result: StageResult,
    ) -> None:
        """Run one stage (or parallel branch), filling in `result`."""
        logger = StageLogger(stage.name)

        if stage.when is not None and not stage.when.evaluate(context):
            result.status = StageStatus.SKIPPED
            result.message = f"Skipped: requires {stage.when.description}"
            logger.skip(result.message)
            result.finish()
            return

        try:
            for attempt in range(1, stage.retry + 1):
                result.attempts = attempt
                result.errors = []

                if stage.is_parallel:
                    ok = await self._run_parallel(stage, context, result)
                else:
                    ok = await self._run_steps(stage.steps, context, result, logger)

                if ok:
                    result.status = StageStatus.SUCCESS
                    break

                if attempt < stage.retry:
                    logger.warning(f"Attempt {attempt}/{stage.retry} failed, retrying")
            else:
                result.status = StageStatus.FAILED
        except asyncio.CancelledError:
            result.status = StageStatus.ABORTED
            result.errors.append("Stage aborted while running")
            result.finish()
            raise

        if stage.retry > 1 and result.attempts > 1:
            result.message = f"{result.status.value} after {result.attempts} attempt(s)"

        result.finish()
        if result.status == StageStatus.SUCCESS:
            logger.success(f"Completed in {format_duration(result.duration_seconds)}")
        else:
            logger.error("; ".join(result.errors) or "Stage failed")

    async def _run_parallel(
        self,
        stage: Stage,
        context: PipelineContext,
        result: StageResult,
    ) -> bool:
        branch_results = [StageResult(name=branch.name) for branch in stage.parallel]
        result.branches = branch_results

        tasks = [
            asyncio.ensure_future(self._run_stage(branch, context, branch_result))
            for branch, branch_result in zip(stage.parallel, branch_results)
        ]

        try:
            if stage.fail_fast:
                pending = set(tasks)
                while pending:
                    _, pending = await asyncio.wait(pending, return_when=asyncio.FIRST_COMPLETED)
                    if any(r.status == StageStatus.FAILED for r in branch_results):
                        for task in pending:
                            task.cancel()
                        await asyncio.gather(*pending, return_exceptions=True)
                        break
            else:
                await asyncio.gather(*tasks)
        except BaseException:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

        failed = [r.name for r in branch_results if not r.success]
        if failed:
            result.errors.append(f"Failed branches: {', '.join(failed)}")
            return False
        return True

    async def _run_steps(
        self,
        steps: tuple,
        context: PipelineContext,
        result: StageResult,
        logger: StageLogger,
    ) -> bool:
        for step in steps:
            step_result = await self._run_step(step, context, logger)
            step_result.attempt = result.attempts
            result.steps.append(step_result)

            if step_result.success:
                continue

            if step.allow_failure:
                warning = f"Ignored failure of '{step_result.name}': {step_result.message}"
                result.warnings.append(warning)
                logger.warning(warning)
                continue

            result.errors.append(f"{step_result.name}: {step_result.message}")
            return False

        return True

    async def _run_step(
        self,
        step: Step,
        context: PipelineContext,
        logger: StageLogger,
    ) -> StepResult:
        if isinstance(step, ShellStep):
            return await self._run_shell_step(step, context, logger)
        if isinstance(step, ActionStep):
            return await self._run_action_step(step, context, logger)
        raise TypeError(f"Unsupported step type: {type(step).__name__}")

    async def _run_shell_step(
        self,
        step: ShellStep,
        context: PipelineContext,
        logger: StageLogger,
    ) -> StepResult:
        step_result = StepResult(name=step.label, success=False, allow_failure=step.allow_failure)

        try:
            cwd = context.resolve_path(step.cwd)
        except SecurityError as e:
            step_result.message = str(e)
            return step_result

        logger.info(f"$ {SecretsMasker.mask_secrets(step.command)}")
        cmd_result = await context.executor.run(
            step.command,
            timeout=step.timeout or context.config.step_timeout_seconds,
            env=dict(step.env),
            cwd=cwd,
        )

        step_result.success = cmd_result.success
        step_result.return_code = cmd_result.return_code
        step_result.duration_seconds = cmd_result.duration_seconds
        step_result.output = SecretsMasker.mask_secrets(tail_lines(cmd_result.output))
        if not cmd_result.success:
            step_result.message = (
                SecretsMasker.mask_secrets(cmd_result.stderr.strip().splitlines()[-1])
                if cmd_result.stderr.strip()
                else f"exit code {cmd_result.return_code}"
            )
        return step_result

    async def _run_action_step(
        self,
        step: ActionStep,
        context: PipelineContext,
        logger: StageLogger,
    ) -> StepResult:
        step_result = StepResult(name=step.label, success=False, allow_failure=step.allow_failure)
        loop = asyncio.get_running_loop()
        started = loop.time()

        try:
            outcome = await step.action(context)
        except Exception as e:
            logger.error(f"{step.label} raised: {e}", exc=e)
            step_result.message = SecretsMasker.mask_secrets(str(e) or e.__class__.__name__)
        else:
            step_result.success = outcome.success
            step_result.message = SecretsMasker.mask_secrets(outcome.message)
            step_result.outputs = outcome.outputs
            for warning in outcome.warnings:
                logger.warning(warning)
            if outcome.message:
                logger.info(outcome.message)

        step_result.duration_seconds = loop.time() - started
        return step_result

    async def _run_post(
        self,
        post: PostActions,
        context: PipelineContext,
        report: PipelineReport,
    ) -> None:
        """Run `always`, then `success` or `failure`; failures are recorded, not raised."""
        logger = StageLogger("Post")
        outcome = PostCondition.SUCCESS if report.success else PostCondition.FAILURE

        for condition in (PostCondition.ALWAYS, outcome):
            steps: List[Step] = list(post.for_condition(condition))
            for step in steps:
                step_result = await self._run_step(step, context, logger)
                report.post_actions.append(
                    PostActionResult(condition=condition.value, step=step_result)
                )
                if not step_result.success:
                    logger.warning(f"Post action '{step_result.name}' failed: {step_result.message}")
