# tests/test_runner.py
from __future__ import annotations

import subprocess
import sys
import threading
import time
from pathlib import Path

import pytest

from matrixrun.runner.runner import run_all
from matrixrun.runner.types import LAUNCH_FAILED, Job, JobLaunchError, SetupError


def _exits(code: int, output: bytes = b""):
    def action(log) -> int:
        log.write(output)
        return code

    return action


def _job(tmp_path: Path, name: str, action) -> Job:
    return Job(name, action, tmp_path / "logs" / f"{name}.log")


def test_all_successful_jobs_succeed(tmp_path: Path) -> None:
    jobs = [_job(tmp_path, n, _exits(0)) for n in ("a", "b", "c")]

    rr = run_all(jobs, tmp_path / "logs")

    assert rr.succeeded
    assert rr.exit_code == 0
    assert rr.failed == []
    assert [r.job_name for r in rr.results] == ["a", "b", "c"]


def test_one_failure_fails_the_aggregate(tmp_path: Path) -> None:
    jobs = [
        _job(tmp_path, "A", _exits(0)),
        _job(tmp_path, "B", _exits(1)),
        _job(tmp_path, "C", _exits(0)),
    ]

    rr = run_all(jobs, tmp_path / "logs")

    assert [(r.job_name, r.succeeded) for r in rr.results] == [
        ("A", True),
        ("B", False),
        ("C", True),
    ]
    assert rr.results[1].exit_code == 1
    assert not rr.succeeded
    assert rr.failed == ["B"]
    assert rr.exit_code != 0


def test_aggregate_exit_code_is_one_not_a_sum(tmp_path: Path) -> None:
    jobs = [_job(tmp_path, "x", _exits(3)), _job(tmp_path, "y", _exits(5))]

    rr = run_all(jobs, tmp_path / "logs")

    assert [r.exit_code for r in rr.results] == [3, 5]
    assert rr.exit_code == 1


def test_empty_job_list_succeeds(tmp_path: Path) -> None:
    rr = run_all([], tmp_path / "logs")

    assert rr.results == ()
    assert rr.succeeded
    assert (tmp_path / "logs").is_dir()


def test_output_is_written_to_each_log(tmp_path: Path) -> None:
    jobs = [
        _job(tmp_path, "one", _exits(0, b"first\n")),
        _job(tmp_path, "two", _exits(2, b"second\n")),
    ]

    rr = run_all(jobs, tmp_path / "logs")

    assert (tmp_path / "logs" / "one.log").read_bytes() == b"first\n"
    assert (tmp_path / "logs" / "two.log").read_bytes() == b"second\n"
    assert rr.results[1].log_path == tmp_path / "logs" / "two.log"


def test_subprocess_output_is_not_truncated(tmp_path: Path) -> None:
    code = "import sys\nfor i in range(50000): print(i)\nsys.exit(0)"

    def action(log) -> int:
        return subprocess.run(
            [sys.executable, "-c", code], stdout=log, stderr=subprocess.STDOUT
        ).returncode

    rr = run_all([_job(tmp_path, "chatty", action)], tmp_path / "logs")

    lines = (tmp_path / "logs" / "chatty.log").read_text(encoding="utf-8").splitlines()
    assert rr.succeeded
    assert len(lines) == 50000
    assert lines[-1] == "49999"


def test_missing_executable_is_recorded_not_raised(tmp_path: Path) -> None:
    def action(log) -> int:
        return subprocess.run([str(tmp_path / "does-not-exist")], stdout=log).returncode

    jobs = [_job(tmp_path, "broken", action), _job(tmp_path, "fine", _exits(0))]

    rr = run_all(jobs, tmp_path / "logs")

    assert rr.results[0].exit_code == LAUNCH_FAILED
    assert rr.results[1].succeeded
    assert rr.failed == ["broken"]
    log = (tmp_path / "logs" / "broken.log").read_text(encoding="utf-8")
    assert "Failed to launch job" in log


def test_job_launch_error_is_recorded(tmp_path: Path) -> None:
    def action(log) -> int:
        raise JobLaunchError("no docker daemon")

    rr = run_all([_job(tmp_path, "j", action)], tmp_path / "logs")

    assert rr.results[0].exit_code == LAUNCH_FAILED
    assert "no docker daemon" in (tmp_path / "logs" / "j.log").read_text(encoding="utf-8")


def test_jobs_run_concurrently_when_unbounded(tmp_path: Path) -> None:
    barrier = threading.Barrier(4, timeout=10)

    def action(log) -> int:
        barrier.wait()
        return 0

    jobs = [_job(tmp_path, f"j{i}", action) for i in range(4)]

    rr = run_all(jobs, tmp_path / "logs")

    assert rr.succeeded


def test_max_parallel_bounds_concurrency(tmp_path: Path) -> None:
    lock = threading.Lock()
    active = 0
    peak = 0

    def action(log) -> int:
        nonlocal active, peak
        with lock:
            active += 1
            peak = max(peak, active)
        time.sleep(0.05)
        with lock:
            active -= 1
        return 0

    jobs = [_job(tmp_path, f"j{i}", action) for i in range(5)]

    rr = run_all(jobs, tmp_path / "logs", max_parallel=2)

    assert rr.succeeded
    assert peak <= 2


def test_results_follow_launch_order_not_completion_order(tmp_path: Path) -> None:
    def slow(log) -> int:
        time.sleep(0.2)
        return 0

    jobs = [_job(tmp_path, "slow", slow), _job(tmp_path, "fast", _exits(0))]

    rr = run_all(jobs, tmp_path / "logs")

    assert [r.job_name for r in rr.results] == ["slow", "fast"]


def test_rerun_overwrites_logs(tmp_path: Path) -> None:
    first = run_all([_job(tmp_path, "j", _exits(1, b"first run\n"))], tmp_path / "logs")
    second = run_all([_job(tmp_path, "j", _exits(0, b"second\n"))], tmp_path / "logs")

    assert not first.succeeded
    assert second.succeeded
    assert (tmp_path / "logs" / "j.log").read_bytes() == b"second\n"


def test_duplicate_names_share_a_log_file(tmp_path: Path) -> None:
    jobs = [_job(tmp_path, "dup", _exits(0, b"x\n")), _job(tmp_path, "dup", _exits(0, b"x\n"))]

    rr = run_all(jobs, tmp_path / "logs")

    assert len(rr.results) == 2
    assert [p.name for p in (tmp_path / "logs").iterdir()] == ["dup.log"]


def test_nested_output_dir_is_created(tmp_path: Path) -> None:
    out = tmp_path / "a" / "b" / "c"

    run_all([Job("j", _exits(0), out / "j.log")], out)

    assert (out / "j.log").is_file()


def test_uncreatable_output_dir_is_fatal(tmp_path: Path) -> None:
    blocker = tmp_path / "file"
    blocker.write_text("not a dir", encoding="utf-8")
    called = []

    def action(log) -> int:
        called.append(True)
        return 0

    with pytest.raises(SetupError):
        run_all([Job("j", action, blocker / "j.log")], blocker / "logs")

    assert called == []


def test_max_parallel_below_one_is_rejected(tmp_path: Path) -> None:
    with pytest.raises(ValueError):
        run_all([], tmp_path / "logs", max_parallel=0)


def test_unexpected_error_is_recorded_and_siblings_kept(tmp_path: Path) -> None:
    def action(log) -> int:
        raise RuntimeError("boom")

    jobs = [_job(tmp_path, "a", action), _job(tmp_path, "b", _exits(0))]

    rr = run_all(jobs, tmp_path / "logs")

    assert [(r.job_name, r.exit_code) for r in rr.results] == [("a", LAUNCH_FAILED), ("b", 0)]
    assert rr.failed == ["a"]
    assert "boom" in (tmp_path / "logs" / "a.log").read_text(encoding="utf-8")


def test_launch_failure_is_logged_with_traceback(
    tmp_path: Path, caplog: pytest.LogCaptureFixture
) -> None:
    def action(log) -> int:
        raise JobLaunchError("no docker daemon")

    with caplog.at_level("ERROR", logger="matrixrun.runner.runner"):
        run_all([_job(tmp_path, "j", action)], tmp_path / "logs")

    records = [r for r in caplog.records if r.name == "matrixrun.runner.runner"]
    assert records and records[0].exc_info is not None
