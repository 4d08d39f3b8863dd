import logging
import time
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Iterable

from .types import LAUNCH_FAILED, AggregateResult, Job, JobLaunchError, RunResult, SetupError

log = logging.getLogger(__name__)


def run_all(
    jobs: Iterable[Job],
    output_dir: str | Path,
    *,
    max_parallel: int | None = None,
) -> AggregateResult:
    """Run every job concurrently and fold their exit codes.

    All jobs run to completion; a failing job never stops its siblings.
    Results come back in launch order regardless of completion order.
    ``max_parallel=None`` starts one worker per job.
    """
    if max_parallel is not None and max_parallel < 1:
        raise ValueError(f"max_parallel must be at least 1, got {max_parallel}")

    _prepare_output_dir(Path(output_dir))

    jobs = list(jobs)
    if not jobs:
        return AggregateResult(())

    workers = len(jobs) if max_parallel is None else min(max_parallel, len(jobs))
    log.debug("running %d job(s) on %d worker(s)", len(jobs), workers)

    with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="job") as pool:
        futures = [pool.submit(_run_job, job) for job in jobs]
        results = tuple(future.result() for future in futures)

    return AggregateResult(results)


def _prepare_output_dir(output_dir: Path) -> None:
    try:
        output_dir.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise SetupError(f"Can't create output directory {output_dir}: {exc}") from exc


def _run_job(job: Job) -> RunResult:
    log.info("'%s' started, logging to %s", job.name, job.log_path)
    start = time.monotonic()

    try:
        job.log_path.parent.mkdir(parents=True, exist_ok=True)
        stream = open(job.log_path, "wb")
    except OSError as exc:
        log.error("'%s' can't open log file %s: %s", job.name, job.log_path, exc)
        return RunResult(job.name, LAUNCH_FAILED, job.log_path, time.monotonic() - start)

    with stream:
        try:
            exit_code = job.action(stream)
        except (OSError, JobLaunchError) as exc:
            log.exception("'%s' failed to launch", job.name)
            stream.write(f"Failed to launch job:\n{exc}\n".encode())
            exit_code = LAUNCH_FAILED
        except Exception as exc:
            log.exception("'%s' raised an unexpected error", job.name)
            stream.write(f"Job aborted:\n{exc!r}\n".encode())
            exit_code = LAUNCH_FAILED

    duration = time.monotonic() - start
    log.info("'%s' done, exit code = %d, %.3fs", job.name, exit_code, duration)

    return RunResult(job.name, exit_code, job.log_path, duration)
