from pathlib import Path
from typing import BinaryIO, Mapping, Protocol, Sequence


class Executor(Protocol):
    def build_image(self, context_file: str, image: str, stream: BinaryIO) -> str: ...

    def run_container(
        self,
        image: str,
        env: Mapping[str, str],
        flags: Sequence[str],
        stream: BinaryIO,
    ) -> int: ...

    def export_image(self, image: str, archive: Path, stream: BinaryIO) -> Path: ...

    def import_image(self, archive: Path, stream: BinaryIO) -> None: ...


class DockerError(Exception):
    def __init__(self, command: Sequence[str], returncode: int):
        super().__init__(f"'{' '.join(command)}' returned {returncode}.")
        self.command = list(command)
        self.returncode = returncode
