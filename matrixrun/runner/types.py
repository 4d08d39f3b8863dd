from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO, Callable

# Exit code recorded for a job whose action could not be started or raised.
LAUNCH_FAILED = 127

Action = Callable[[BinaryIO], int]


@dataclass(frozen=True)
class Job:
    name: str
    action: Action
    log_path: Path


@dataclass(frozen=True)
class RunResult:
    job_name: str
    exit_code: int
    log_path: Path
    duration_s: float

    @property
    def succeeded(self) -> bool:
        return self.exit_code == 0


@dataclass(frozen=True)
class AggregateResult:
    results: tuple[RunResult, ...]

    @property
    def succeeded(self) -> bool:
        return all(result.succeeded for result in self.results)

    @property
    def failed(self) -> list[str]:
        return [result.job_name for result in self.results if not result.succeeded]

    @property
    def exit_code(self) -> int:
        return 0 if self.succeeded else 1


class RunnerError(Exception):
    def __init__(self, *args: object) -> None:
        super().__init__(*args)


class SetupError(RunnerError):
    def __init__(self, *args: object) -> None:
        super().__init__(*args)


class JobLaunchError(RunnerError):
    def __init__(self, *args: object) -> None:
        super().__init__(*args)
