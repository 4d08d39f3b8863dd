import gzip
import logging
import os
import shutil
import subprocess
import zlib
from pathlib import Path
from typing import BinaryIO, Mapping, Sequence

from .types import DockerError

log = logging.getLogger(__name__)


class DockerExecutor:
    """Builds, runs and archives images with the ``docker`` CLI.

    Every command streams its combined output into the job's log stream.
    """

    def __init__(
        self,
        source_dir: str | Path,
        *,
        mount_point: str,
        parallelism: int = 1,
        timeout: str = "480s",
        docker: str = "docker",
    ):
        self.source_dir = Path(source_dir).resolve()
        self.mount_point = mount_point
        self.parallelism = parallelism
        self.timeout = timeout
        self.docker = docker

    def build_command(self, context_file: str, image: str) -> list[str]:
        return [self.docker, "build", "-f", str(context_file), "-t", image, "."]

    def run_command(
        self, image: str, env: Mapping[str, str], flags: Sequence[str]
    ) -> list[str]:
        cmd = [self.docker, "run", "--rm", "-v", f"{self.source_dir}:{self.mount_point}"]
        for key in sorted(env):
            cmd += ["-e", f"{key}={env[key]}"]
        cmd.append(image)
        cmd += [f"--parallel={self.parallelism}", f"--timeout={self.timeout}"]
        cmd += list(flags)
        return cmd

    def build_image(self, context_file: str, image: str, stream: BinaryIO) -> str:
        cmd = self.build_command(context_file, image)
        returncode = self._call(cmd, stream)
        if returncode != 0:
            raise DockerError(cmd, returncode)
        return image

    def run_container(
        self,
        image: str,
        env: Mapping[str, str],
        flags: Sequence[str],
        stream: BinaryIO,
    ) -> int:
        return self._call(self.run_command(image, env, flags), stream)

    def export_image(self, image: str, archive: Path, stream: BinaryIO) -> Path:
        cmd = [self.docker, "save", image]
        partial = archive.with_name(archive.name + ".partial")
        _announce(stream, cmd)

        proc = subprocess.Popen(
            cmd, cwd=self.source_dir, stdout=subprocess.PIPE, stderr=stream
        )
        try:
            with gzip.open(partial, "wb") as out:
                shutil.copyfileobj(proc.stdout, out)
        finally:
            proc.stdout.close()
            returncode = proc.wait()

        if returncode != 0:
            partial.unlink(missing_ok=True)
            raise DockerError(cmd, returncode)

        os.replace(partial, archive)
        return archive

    def import_image(self, archive: Path, stream: BinaryIO) -> None:
        cmd = [self.docker, "load"]
        _announce(stream, cmd)

        proc = subprocess.Popen(
            cmd,
            cwd=self.source_dir,
            stdin=subprocess.PIPE,
            stdout=stream,
            stderr=subprocess.STDOUT,
        )
        feed_error = None
        try:
            try:
                with gzip.open(archive, "rb") as src:
                    shutil.copyfileobj(src, proc.stdin)
            finally:
                proc.stdin.close()
        except (OSError, EOFError, zlib.error) as exc:
            # corrupt or truncated archive, or docker load hung up early
            feed_error = exc
        finally:
            returncode = proc.wait()

        if feed_error is not None:
            log.warning("feeding %s to '%s' failed: %s", archive, " ".join(cmd), feed_error)
            stream.write(f"Reading {archive} failed: {feed_error}\n".encode())
            stream.flush()
            raise DockerError(cmd, returncode or 1) from feed_error

        if returncode != 0:
            raise DockerError(cmd, returncode)

    def _call(self, cmd: list[str], stream: BinaryIO) -> int:
        _announce(stream, cmd)
        return subprocess.run(
            cmd, cwd=self.source_dir, stdout=stream, stderr=subprocess.STDOUT
        ).returncode


def _announce(stream: BinaryIO, cmd: Sequence[str]) -> None:
    line = " ".join(cmd)
    log.debug("executing '%s'", line)
    stream.write(f"Executing '{line}'\n".encode())
    # the child writes straight to the fd, so our buffer goes first
    stream.flush()
