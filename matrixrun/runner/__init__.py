from .runner import run_all
from .types import (
    LAUNCH_FAILED,
    AggregateResult,
    Job,
    JobLaunchError,
    RunnerError,
    RunResult,
    SetupError,
)

__all__ = [
    "run_all",
    "LAUNCH_FAILED",
    "AggregateResult",
    "Job",
    "JobLaunchError",
    "RunnerError",
    "RunResult",
    "SetupError",
]
