"""
Pipeline declaration models.

A pipeline is an ordered tuple of stages plus post actions. Stages hold
either sequential steps or parallel branches (which are stages themselves).
Declarations are frozen once built; run state lives in the report models.
"""

from enum import Enum
from typing import Optional, Dict, Any, List, Callable, Awaitable, Union, TYPE_CHECKING
from dataclasses import dataclass, field

if TYPE_CHECKING:
    from ..engine.context import PipelineContext


class PostCondition(Enum):
    """When a post action runs."""
    ALWAYS = "always"
    SUCCESS = "success"
    FAILURE = "failure"


@dataclass
class StepOutcome:
    """What an action step reports back to the runner."""
    success: bool
    message: str = ""
    outputs: Dict[str, Any] = field(default_factory=dict)
    warnings: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class When:
    """A stage gate, evaluated against the run context just before the stage."""
    description: str
    predicate: Callable[["PipelineContext"], bool]

    def evaluate(self, context: "PipelineContext") -> bool:
        return bool(self.predicate(context))


def branch_is(branch: str) -> When:
    """Gate a stage on the branch being built."""
    return When(
        description=f"branch is {branch}",
        predicate=lambda context: context.branch == branch,
    )


@dataclass(frozen=True)
class ShellStep:
    """A shell command run in the workspace."""
    command: str
    name: str = ""
    cwd: Optional[str] = None
    env: Dict[str, str] = field(default_factory=dict)
    allow_failure: bool = False
    timeout: Optional[float] = None

    @property
    def label(self) -> str:
        return self.name or self.command


@dataclass(frozen=True)
class ActionStep:
    """A named coroutine that receives the run context."""
    name: str
    action: Callable[["PipelineContext"], Awaitable[StepOutcome]]
    allow_failure: bool = False

    @property
    def label(self) -> str:
        return self.name


Step = Union[ShellStep, ActionStep]


@dataclass(frozen=True)
class Stage:
    """
    A named unit of pipeline work.

    Exactly one of `steps` or `parallel` is non-empty. `retry` is the
    total number of attempts; `fail_fast` only matters for parallel stages.
    """
    name: str
    steps: tuple = ()
    parallel: tuple = ()
    when: Optional[When] = None
    retry: int = 1
    fail_fast: bool = False

    def __post_init__(self):
        object.__setattr__(self, "steps", tuple(self.steps))
        object.__setattr__(self, "parallel", tuple(self.parallel))

        if bool(self.steps) == bool(self.parallel):
            raise ValueError(f"Stage '{self.name}' needs either steps or parallel branches")
        if self.retry < 1:
            raise ValueError(f"Stage '{self.name}' retry must be at least 1")
        for branch in self.parallel:
            if not isinstance(branch, Stage):
                raise TypeError(f"Parallel branch of '{self.name}' must be a Stage")

    @property
    def is_parallel(self) -> bool:
        return bool(self.parallel)


@dataclass(frozen=True)
class PostActions:
    """Steps run after all stages, keyed by overall outcome."""
    always: tuple = ()
    success: tuple = ()
    failure: tuple = ()

    def __post_init__(self):
        object.__setattr__(self, "always", tuple(self.always))
        object.__setattr__(self, "success", tuple(self.success))
        object.__setattr__(self, "failure", tuple(self.failure))

    def for_condition(self, condition: PostCondition) -> tuple:
        return getattr(self, condition.value)


@dataclass(frozen=True)
class Pipeline:
    """A complete pipeline declaration."""
    name: str
    stages: tuple
    post: PostActions = field(default_factory=PostActions)
    timeout_seconds: float = 30 * 60

    def __post_init__(self):
        object.__setattr__(self, "stages", tuple(self.stages))
        names = [stage.name for stage in self.stages]
        duplicates = {name for name in names if names.count(name) > 1}
        if duplicates:
            raise ValueError(f"Duplicate stage names: {sorted(duplicates)}")
        if self.timeout_seconds <= 0:
            raise ValueError("Pipeline timeout must be positive")

    @property
    def stage_names(self) -> List[str]:
        return [stage.name for stage in self.stages]

    def get_stage(self, name: str) -> Optional[Stage]:
        """Find a stage by name, including parallel branches."""
        for stage in self.stages:
            if stage.name == name:
                return stage
            for branch in stage.parallel:
                if branch.name == name:
                    return branch
        return None
