# tests/conftest.py
from __future__ import annotations

import json
import sys
from dataclasses import dataclass
from pathlib import Path

import pytest

_FAKE_DOCKER = """#!{exe}
import json, os, sys

args = sys.argv[1:]
with open(os.environ["FAKE_DOCKER_CALLS"], "a") as calls:
    calls.write(json.dumps(args) + "\\n")

cmd = args[0]
if cmd == "save":
    sys.stdout.buffer.write(b"image:" + args[-1].encode())
elif cmd == "load":
    print("Loaded", sys.stdin.buffer.read().decode())
else:
    print("fake docker " + " ".join(args))

# FAKE_DOCKER_FAIL: comma separated "<cmd>" or "<cmd>:<argument>" entries
for entry in filter(None, os.environ.get("FAKE_DOCKER_FAIL", "").split(",")):
    name, _, arg = entry.partition(":")
    if name == cmd and (not arg or arg in args):
        print("fake docker failure", file=sys.stderr)
        raise SystemExit(int(os.environ.get("FAKE_DOCKER_CODE", "1")))
"""


@dataclass
class FakeDocker:
    path: Path
    calls_file: Path

    def calls(self) -> list[list[str]]:
        if not self.calls_file.exists():
            return []
        lines = self.calls_file.read_text(encoding="utf-8").splitlines()
        return [json.loads(line) for line in lines]


@pytest.fixture
def fake_docker(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> FakeDocker:
    """
    A `docker` stand-in that records its argv and echoes it.
    Set FAKE_DOCKER_FAIL to make chosen subcommands exit non-zero.
    """
    bin_dir = tmp_path / "bin"
    bin_dir.mkdir()
    script = bin_dir / "docker"
    script.write_text(_FAKE_DOCKER.format(exe=sys.executable), encoding="utf-8")
    script.chmod(0o755)

    calls_file = tmp_path / "docker-calls.jsonl"
    monkeypatch.setenv("FAKE_DOCKER_CALLS", str(calls_file))
    monkeypatch.delenv("FAKE_DOCKER_FAIL", raising=False)
    return FakeDocker(script, calls_file)
