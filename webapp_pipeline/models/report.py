"""
Pipeline report models.
Final output that summarizes a pipeline run; also the persisted build record.
"""

import json
from enum import Enum
from typing import Optional, List, Dict, Any
from dataclasses import dataclass, field
from datetime import datetime


class PipelineStatus(Enum):
    """Overall pipeline status."""
    SUCCESS = "success"
    FAILURE = "failure"


class StageStatus(Enum):
    """Status of a single stage or parallel branch."""
    PENDING = "pending"
    SUCCESS = "success"
    FAILED = "failed"
    SKIPPED = "skipped"    # `when` gate was false
    NOT_RUN = "not_run"    # an earlier stage failed or the run timed out
    ABORTED = "aborted"    # cancelled while running


@dataclass
class StepResult:
    """Result of one step attempt."""
    name: str
    success: bool
    allow_failure: bool = False
    attempt: int = 1
    return_code: Optional[int] = None
    duration_seconds: float = 0.0
    message: str = ""
    output: str = ""
    outputs: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "success": self.success,
            "allow_failure": self.allow_failure,
            "attempt": self.attempt,
            "return_code": self.return_code,
            "duration_seconds": self.duration_seconds,
            "message": self.message,
            "output": self.output,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "StepResult":
        return cls(
            name=data["name"],
            success=data["success"],
            allow_failure=data.get("allow_failure", False),
            attempt=data.get("attempt", 1),
            return_code=data.get("return_code"),
            duration_seconds=data.get("duration_seconds", 0.0),
            message=data.get("message", ""),
            output=data.get("output", ""),
        )


@dataclass
class StageResult:
    """Result of a single pipeline stage."""
    name: str
    status: StageStatus = StageStatus.PENDING

    # Timing
    started_at: datetime = field(default_factory=datetime.now)
    finished_at: Optional[datetime] = None
    duration_seconds: float = 0.0
    attempts: int = 0

    # Details
    message: str = ""
    steps: List[StepResult] = field(default_factory=list)
    branches: List["StageResult"] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return self.status in (StageStatus.SUCCESS, StageStatus.SKIPPED)

    @property
    def executed(self) -> bool:
        """Whether any of this stage's work actually started."""
        return self.attempts > 0

    def finish(self) -> "StageResult":
        """Finalize timing."""
        self.finished_at = datetime.now()
        self.duration_seconds = (self.finished_at - self.started_at).total_seconds()
        return self

    @classmethod
    def not_run(cls, name: str, reason: str) -> "StageResult":
        result = cls(name=name, status=StageStatus.NOT_RUN, message=reason)
        return result.finish()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "status": self.status.value,
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "duration_seconds": self.duration_seconds,
            "attempts": self.attempts,
            "message": self.message,
            "steps": [step.to_dict() for step in self.steps],
            "branches": [branch.to_dict() for branch in self.branches],
            "errors": self.errors,
            "warnings": self.warnings,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "StageResult":
        return cls(
            name=data["name"],
            status=StageStatus(data["status"]),
            started_at=datetime.fromisoformat(data["started_at"]),
            finished_at=datetime.fromisoformat(data["finished_at"]) if data.get("finished_at") else None,
            duration_seconds=data.get("duration_seconds", 0.0),
            attempts=data.get("attempts", 0),
            message=data.get("message", ""),
            steps=[StepResult.from_dict(step) for step in data.get("steps", [])],
            branches=[cls.from_dict(branch) for branch in data.get("branches", [])],
            errors=data.get("errors", []),
            warnings=data.get("warnings", []),
        )


@dataclass
class PostActionResult:
    """Result of a post action step."""
    condition: str
    step: StepResult

    def to_dict(self) -> Dict[str, Any]:
        return {"condition": self.condition, **self.step.to_dict()}


@dataclass
class PipelineReport:
    """
    Complete pipeline execution report.
    """
    # Identification
    pipeline_name: str
    build_number: str
    branch: str

    # Status
    status: PipelineStatus = PipelineStatus.FAILURE
    timed_out: bool = False

    # Timing
    started_at: datetime = field(default_factory=datetime.now)
    finished_at: Optional[datetime] = None
    duration_seconds: float = 0.0

    # Stage results, in declaration order
    stages: List[StageResult] = field(default_factory=list)
    post_actions: List[PostActionResult] = field(default_factory=list)

    # Key outputs
    commit: Optional[str] = None
    image_tags: List[str] = field(default_factory=list)
    deployment_url: Optional[str] = None
    errors: List[str] = field(default_factory=list)

    def add_stage_result(self, result: StageResult) -> None:
        """Add a stage result to the report."""
        self.stages.append(result)

    def get_stage(self, name: str) -> Optional[StageResult]:
        """Find a stage result by name, including parallel branches."""
        for stage in self.stages:
            if stage.name == name:
                return stage
            for branch in stage.branches:
                if branch.name == name:
                    return branch
        return None

    def stage_status(self, name: str) -> Optional[StageStatus]:
        stage = self.get_stage(name)
        return stage.status if stage else None

    @property
    def executed_stages(self) -> List[str]:
        """Names of top-level stages whose work started."""
        return [stage.name for stage in self.stages if stage.executed]

    @property
    def failed_stage(self) -> Optional[StageResult]:
        """The first stage that failed or was aborted."""
        for stage in self.stages:
            if stage.status in (StageStatus.FAILED, StageStatus.ABORTED):
                return stage
        return None

    @property
    def success(self) -> bool:
        return self.status == PipelineStatus.SUCCESS

    def finalize(self) -> "PipelineReport":
        self.finished_at = datetime.now()
        self.duration_seconds = (self.finished_at - self.started_at).total_seconds()
        return self

    def get_summary(self) -> Dict[str, Any]:
        """Get a summary of the pipeline execution."""
        return {
            "pipeline_name": self.pipeline_name,
            "build_number": self.build_number,
            "branch": self.branch,
            "status": self.status.value,
            "timed_out": self.timed_out,
            "started_at": self.started_at.isoformat(),
            "duration_seconds": self.duration_seconds,
            "commit": self.commit,
            "failed_stage": self.failed_stage.name if self.failed_stage else None,
        }

    def to_dict(self) -> Dict[str, Any]:
        """Convert to full dictionary."""
        return {
            "pipeline_name": self.pipeline_name,
            "build_number": self.build_number,
            "branch": self.branch,
            "status": self.status.value,
            "timed_out": self.timed_out,
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "duration_seconds": self.duration_seconds,
            "stages": [stage.to_dict() for stage in self.stages],
            "post_actions": [post.to_dict() for post in self.post_actions],
            "commit": self.commit,
            "image_tags": self.image_tags,
            "deployment_url": self.deployment_url,
            "errors": self.errors,
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), indent=2)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PipelineReport":
        report = cls(
            pipeline_name=data["pipeline_name"],
            build_number=str(data["build_number"]),
            branch=data["branch"],
            status=PipelineStatus(data["status"]),
            timed_out=data.get("timed_out", False),
            started_at=datetime.fromisoformat(data["started_at"]),
            finished_at=datetime.fromisoformat(data["finished_at"]) if data.get("finished_at") else None,
            duration_seconds=data.get("duration_seconds", 0.0),
            stages=[StageResult.from_dict(stage) for stage in data.get("stages", [])],
            commit=data.get("commit"),
            image_tags=data.get("image_tags", []),
            deployment_url=data.get("deployment_url"),
            errors=data.get("errors", []),
        )
        for post in data.get("post_actions", []):
            report.post_actions.append(PostActionResult(
                condition=post["condition"],
                step=StepResult.from_dict(post),
            ))
        return report

    def to_markdown(self) -> str:
        """Generate a markdown report."""
        lines = [
            f"# Pipeline Report: {self.pipeline_name} #{self.build_number}",
            "",
            f"**Branch:** `{self.branch}`",
            f"**Status:** {self.status.value.upper()}" + (" (timed out)" if self.timed_out else ""),
            f"**Duration:** {self.duration_seconds:.2f} seconds",
            "",
        ]

        if self.commit:
            lines.extend([f"**Commit:** `{self.commit}`", ""])

        if self.image_tags:
            lines.extend(["## Image", ""])
            for tag in self.image_tags:
                lines.append(f"- `{tag}`")
            lines.append("")

        lines.extend(["## Stages", ""])

        icons = {
            StageStatus.SUCCESS: "✅",
            StageStatus.FAILED: "❌",
            StageStatus.SKIPPED: "⏭️",
            StageStatus.NOT_RUN: "⏸️",
            StageStatus.ABORTED: "🛑",
            StageStatus.PENDING: "…",
        }

        for stage in self.stages:
            lines.append(f"### {icons[stage.status]} {stage.name}")
            lines.append(f"- Duration: {stage.duration_seconds:.2f}s")
            if stage.message:
                lines.append(f"- {stage.message}")
            for branch in stage.branches:
                lines.append(f"- {icons[branch.status]} {branch.name} ({branch.status.value})")
            for error in stage.errors:
                lines.append(f"  - {error}")
            lines.append("")

        if self.post_actions:
            lines.extend(["## Post Actions", ""])
            for post in self.post_actions:
                icon = "✅" if post.step.success else "⚠️"
                lines.append(f"- {icon} [{post.condition}] {post.step.name}")

        return "\n".join(lines)
