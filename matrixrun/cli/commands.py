from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import Mapping

from matrixrun.config import ConfigError, default_project, load_project, settings_from_env
from matrixrun.dispatch import Dispatcher
from matrixrun.docker import DockerExecutor
from matrixrun.runner import AggregateResult, SetupError, run_all

from .args import build_parser

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def run_cli(
    argv: list[str] | None = None, environ: Mapping[str, str] | None = None
) -> int:
    parser = build_parser()
    try:
        args = parser.parse_args(argv)
        _configure_logging(args.verbose)
        return cmd_run(args, environ)

    except (ConfigError, SetupError) as exc:
        print(str(exc), file=sys.stderr)
        return 2

    except KeyboardInterrupt:
        return 130


def main() -> None:
    sys.exit(run_cli())


def cmd_run(args: argparse.Namespace, environ: Mapping[str, str] | None = None) -> int:
    settings = settings_from_env(environ)
    project = load_project(args.config) if args.config else default_project()
    executor = DockerExecutor(
        args.source_dir,
        mount_point=project.mount_point,
        parallelism=settings.parallelism,
        timeout=settings.timeout,
        docker=args.docker,
    )
    dispatcher = Dispatcher(settings, project, executor, args.source_dir)
    jobs = dispatcher.jobs_for(args.mode)
    saving = dispatcher.is_save(args.mode)

    if saving:
        for job in jobs:
            print(f"Building and saving {job.name} ...")
        print("Waiting...")
    elif dispatcher.is_wildcard(args.mode):
        print("No individual test environment specified, running tests for all environments.")
        print(f"Started all tests. Follow logs in {settings.output_dir}. Waiting...")

    rr = run_all(jobs, settings.output_dir, max_parallel=args.max_parallel)
    _print_result(rr)
    _print_summary(rr, saving, settings.output_dir)
    return rr.exit_code


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format=LOG_FORMAT,
        stream=sys.stderr,
    )


def _print_result(rr: AggregateResult) -> None:
    for result in rr.results:
        status = "OK" if result.succeeded else "FAIL"
        print(
            f"{status} {result.job_name}, {result.duration_s:.3f}s, "
            f"exit code = {result.exit_code}, log = {result.log_path}"
        )


def _print_summary(rr: AggregateResult, saving: bool, output_dir: Path) -> None:
    if saving:
        if rr.succeeded:
            print("All saves succeeded")
        else:
            print(f"Some saves failed, check logs in {output_dir}")
    elif rr.succeeded:
        print("All tests have passed")
    else:
        print(f"Some tests failed, check logs in {output_dir}")
