from __future__ import annotations

import logging
from functools import partial
from pathlib import Path
from typing import BinaryIO

from matrixrun.config import Environment, ProjectConfig, Settings
from matrixrun.docker import DockerError, Executor
from matrixrun.runner import Job

SAVE = "save"

log = logging.getLogger(__name__)


class Dispatcher:
    """Turns a mode selector into the jobs the runner should execute.

    ``"0"``..``"3"`` (or whatever modes the project defines) pick a single
    environment, ``"save"`` archives every build context, and anything else
    means every environment at once.
    """

    def __init__(
        self,
        settings: Settings,
        project: ProjectConfig,
        executor: Executor,
        source_dir: str | Path = ".",
    ):
        self.settings = settings
        self.project = project
        self.executor = executor
        self.source_dir = Path(source_dir)

    def is_save(self, mode: str | None) -> bool:
        return mode == SAVE

    def is_wildcard(self, mode: str | None) -> bool:
        return not self.is_save(mode) and not (
            mode is not None and self.project.has_mode(mode)
        )

    def jobs_for(self, mode: str | None) -> list[Job]:
        if self.is_save(mode):
            return self.save_jobs()

        if self.is_wildcard(mode):
            log.debug("mode %r expands to every environment", mode)
            return [self.test_job(environment) for environment in self.project]

        return [self.test_job(self.project.get_environment(mode))]

    def test_job(self, environment: Environment) -> Job:
        action = partial(run_test, self.executor, self.project, environment)
        return Job(environment.name, action, self._log_path(environment.name))

    def save_jobs(self) -> list[Job]:
        jobs = []
        for dockerfile in self.build_contexts():
            action = partial(
                save_image, self.executor, self.project, self.settings.save_dir, dockerfile
            )
            jobs.append(Job(dockerfile, action, self._log_path(dockerfile)))
        return jobs

    def build_contexts(self) -> list[str]:
        return sorted(
            path.name
            for path in self.source_dir.glob(self.project.build_glob)
            if path.is_file()
        )

    def _log_path(self, name: str) -> Path:
        return self.settings.output_dir / f"{name}.log"


def run_test(
    executor: Executor,
    project: ProjectConfig,
    environment: Environment,
    stream: BinaryIO,
) -> int:
    image = project.image_name(environment.dockerfile)

    _note(stream, f"Building docker image {image}")
    try:
        executor.build_image(environment.dockerfile, image, stream)
    except DockerError as exc:
        _note(stream, str(exc))
        return exc.returncode

    _note(
        stream,
        f"Running test in docker {environment.name} with args {' '.join(environment.flags)}",
    )
    return executor.run_container(image, environment.env, environment.flags, stream)


def save_image(
    executor: Executor,
    project: ProjectConfig,
    save_dir: Path,
    dockerfile: str,
    stream: BinaryIO,
) -> int:
    image = project.image_name(dockerfile)
    archive = save_dir / f"{image}.tar.gz"

    save_dir.mkdir(parents=True, exist_ok=True)

    if archive.exists():
        _note(stream, f"Loading cached image from {archive}")
        try:
            executor.import_image(archive, stream)
        except DockerError as exc:
            log.warning("loading %s failed: %s", archive, exc)
            _note(stream, str(exc))

    _note(stream, f"Building docker image {image}")
    try:
        executor.build_image(dockerfile, image, stream)
        executor.export_image(image, archive, stream)
    except DockerError as exc:
        _note(stream, str(exc))
        return exc.returncode

    _note(stream, f"Saved {image} to {archive}")
    return 0


def _note(stream: BinaryIO, message: str) -> None:
    stream.write(f"{message}\n".encode())
    stream.flush()
