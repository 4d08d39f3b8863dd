from dataclasses import dataclass, field
from pathlib import Path

DEFAULT_IMAGE_PREFIX = "influxdb"
DEFAULT_MOUNT_POINT = "/root/go/src/github.com/influxdb/influxdb"
DEFAULT_BUILD_GLOB = "Dockerfile_build*"


@dataclass(frozen=True)
class Environment:
    mode: str
    dockerfile: str
    name: str
    env: dict[str, str] = field(default_factory=dict)
    flags: tuple[str, ...] = ()


@dataclass
class ProjectConfig:
    environments: dict[str, Environment]
    image_prefix: str = DEFAULT_IMAGE_PREFIX
    mount_point: str = DEFAULT_MOUNT_POINT
    build_glob: str = DEFAULT_BUILD_GLOB

    def __iter__(self):
        for mode in self.modes():
            yield self.environments[mode]

    def __len__(self):
        return len(self.environments)

    def has_mode(self, mode: str) -> bool:
        return mode in self.environments

    def get_environment(self, mode: str) -> Environment:
        if not self.has_mode(mode):
            raise KeyError(mode)

        return self.environments[mode]

    def modes(self) -> list[str]:
        return sorted(self.environments, key=int)

    def image_name(self, dockerfile: str) -> str:
        return Path(dockerfile).name.replace("Dockerfile", self.image_prefix)


@dataclass(frozen=True)
class Settings:
    output_dir: Path
    save_dir: Path
    parallelism: int = 1
    timeout: str = "480s"


class ConfigError(Exception):
    def __init__(self, *args: object) -> None:
        super().__init__(*args)


class UnsupportedConfigFormatError(ConfigError):
    def __init__(self, *args: object) -> None:
        super().__init__(*args)
