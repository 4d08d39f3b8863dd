import json
import os
import re
import tomllib
from dataclasses import replace
from pathlib import Path
from typing import Any, Mapping

import yaml

from .types import (
    DEFAULT_BUILD_GLOB,
    DEFAULT_IMAGE_PREFIX,
    DEFAULT_MOUNT_POINT,
    ConfigError,
    Environment,
    ProjectConfig,
    Settings,
    UnsupportedConfigFormatError,
)

_DURATION = re.compile(r"^(\d+(\.\d+)?(ns|us|µs|ms|s|m|h))+$")

_DEFAULT_ENVIRONMENTS = (
    Environment("0", "Dockerfile_build_ubuntu64", "test_64bit", {}, ("--test",)),
    Environment(
        "1",
        "Dockerfile_build_ubuntu64",
        "test_64bit_tsm",
        {"INFLUXDB_DATA_ENGINE": "tsm1"},
        ("--test",),
    ),
    Environment(
        "2",
        "Dockerfile_build_ubuntu64",
        "test_64bit_race",
        {"GORACE": "halt_on_error=1"},
        ("--test", "--race"),
    ),
    Environment("3", "Dockerfile_build_ubuntu32", "test_32bit", {}, ("--test",)),
)


def default_project() -> ProjectConfig:
    return ProjectConfig(
        environments={e.mode: replace(e, env=dict(e.env)) for e in _DEFAULT_ENVIRONMENTS}
    )


def settings_from_env(
    environ: Mapping[str, str] | None = None, home: str | Path | None = None
) -> Settings:
    """Read the runner knobs from the process environment.

    Set-but-empty variables are taken as is, the way the shell
    ``${VAR-default}`` expansion behaves.
    """
    environ = os.environ if environ is None else environ
    home = Path(home) if home is not None else Path.home()

    output_dir = environ.get("OUTPUT_DIR", "./test-logs")
    save_dir = environ.get("DOCKER_SAVE_DIR", str(home / "docker"))
    raw_parallelism = environ.get("PARALLELISM", "1")
    timeout = environ.get("TIMEOUT", "480s").strip()

    try:
        parallelism = int(raw_parallelism)
    except ValueError as exc:
        raise ConfigError(
            f"PARALLELISM must be an integer, got {raw_parallelism!r}"
        ) from exc

    if parallelism < 1:
        raise ConfigError(f"PARALLELISM must be at least 1, got {parallelism}")

    if not _DURATION.match(timeout):
        raise ConfigError(
            f"TIMEOUT must be a duration like 480s or 10m, got {timeout!r}"
        )

    if not output_dir:
        raise ConfigError("OUTPUT_DIR can't be empty")

    if not save_dir:
        raise ConfigError("DOCKER_SAVE_DIR can't be empty")

    return Settings(
        output_dir=Path(output_dir),
        save_dir=Path(save_dir).expanduser(),
        parallelism=parallelism,
        timeout=timeout,
    )


def load_project(path: str | Path) -> ProjectConfig:
    pure_path = Path(path).expanduser().resolve()

    if not pure_path.exists():
        raise ConfigError(f"Config file not found: {pure_path}")

    if not pure_path.is_file():
        raise ConfigError(f"Config path is not a file: {pure_path}")

    fmt = _detect_format(pure_path)
    raw_file = _parse_file(pure_path, fmt)
    project = _build_project_config(raw_file)
    return project


def _detect_format(path: Path) -> str:
    fmt = path.suffix
    match fmt:
        case ".yaml" | ".yml":
            return "yaml"
        case ".toml":
            return "toml"
        case ".json":
            return "json"
        case _:
            raise UnsupportedConfigFormatError(
                f"Non supported file extension: {fmt}\n Expected format: .yml/.yaml, .toml, .json"
            )


def _parse_file(path: Path, fmt: str) -> Mapping[str, Any]:
    match fmt:
        case "yaml":
            return _parse_yaml(path)
        case "toml":
            return _parse_toml(path)
        case "json":
            return _parse_json(path)
        case _:
            raise AssertionError("Unreachable")


def _parse_yaml(path: Path) -> Mapping[str, Any]:
    try:
        raw_file = yaml.safe_load(path.read_text(encoding="utf-8"))
    except yaml.YAMLError as exc:
        raise ConfigError(f"{path}: invalid YAML") from exc

    return _expect_mapping(path, "YAML", raw_file)


def _parse_toml(path: Path) -> Mapping[str, Any]:
    try:
        raw_file = tomllib.loads(path.read_text(encoding="utf-8"))
    except tomllib.TOMLDecodeError as exc:
        raise ConfigError(f"{path}: invalid TOML") from exc

    return _expect_mapping(path, "TOML", raw_file)


def _parse_json(path: Path) -> Mapping[str, Any]:
    try:
        raw_file = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise ConfigError(f"{path}: invalid JSON") from exc

    return _expect_mapping(path, "JSON", raw_file)


def _expect_mapping(path: Path, fmt: str, raw_file: Any) -> Mapping[str, Any]:
    if not isinstance(raw_file, Mapping):
        raise ConfigError(
            f"{path}: {fmt} parsed successfully but top-level value is not an object: {type(raw_file)}"
        )

    return raw_file


def _build_project_config(raw: Mapping[str, Any]) -> ProjectConfig:
    keys = {"environments", "image_prefix", "mount_point", "build_glob"}

    for field in raw.keys():
        if field not in keys:
            raise ConfigError(f"Can't process: {field}")

    image_prefix = _optional_str(raw, "image_prefix", DEFAULT_IMAGE_PREFIX)
    mount_point = _optional_str(raw, "mount_point", DEFAULT_MOUNT_POINT)
    build_glob = _optional_str(raw, "build_glob", DEFAULT_BUILD_GLOB)

    if "environments" not in raw:
        environments = dict(default_project().environments)
    else:
        environments = _build_environments(raw["environments"])

    return ProjectConfig(
        environments=environments,
        image_prefix=image_prefix,
        mount_point=mount_point,
        build_glob=build_glob,
    )


def _optional_str(raw: Mapping[str, Any], key: str, default: str) -> str:
    if key not in raw:
        return default

    if not isinstance(raw[key], str) or len(raw[key].strip()) < 1:
        raise ConfigError(f"'{key}' must be a non empty string")

    return raw[key].strip()


def _build_environments(raw: Any) -> dict[str, Environment]:
    if not isinstance(raw, Mapping):
        raise ConfigError(f"'environments' must be a mapping, got {type(raw)}")

    if len(raw) < 1:
        raise ConfigError("There must be at least one environment in the config file")

    environments: dict[str, Environment] = {}

    for key, fields in raw.items():
        mode = _normalize_mode(key)

        if mode in environments:
            raise ConfigError(f"Duplicate mode after normalization: {mode}")

        if not isinstance(fields, Mapping):
            raise ConfigError(f"Mode {mode} must be a mapping")

        environments[mode] = _build_environment(mode, fields)

    return environments


def _normalize_mode(key: Any) -> str:
    # bool is an int subclass; YAML turns "yes"/"no" keys into bools
    if isinstance(key, bool) or not isinstance(key, (int, str)):
        raise ConfigError(f"Mode must be an integer, got {type(key)}")

    mode = str(key).strip()

    if not mode.isdigit():
        raise ConfigError(f"Mode must be a non negative integer, got {mode!r}")

    return str(int(mode))


def _build_environment(mode: str, fields: Mapping[str, Any]) -> Environment:
    keys = {"dockerfile", "name", "env", "flags"}
    env = {}
    flags = []

    for field in fields.keys():
        if field not in keys:
            raise ConfigError(f"Mode {mode}: Can't process: {field}")

    for required in ("dockerfile", "name"):
        if required not in fields:
            raise ConfigError(f"Mode {mode}: missing '{required}'")

        if not isinstance(fields[required], str):
            raise ConfigError(f"Mode {mode}: '{required}' should be a string")

        if len(fields[required].strip()) < 1:
            raise ConfigError(f"Mode {mode}: '{required}' can't be empty")

    dockerfile = fields["dockerfile"].strip()
    name = fields["name"].strip()

    if "env" in fields:
        if not isinstance(fields["env"], Mapping):
            raise ConfigError(f"Mode {mode}: Env should be a mapping")

        for key, item in fields["env"].items():
            if not isinstance(key, str):
                raise ConfigError(f"Mode {mode}: {key} should be a string")

            if len(key.strip()) < 1:
                raise ConfigError(f"Mode {mode}: A key can't be empty")

            if not isinstance(item, str):
                raise ConfigError(f"Mode {mode}: {item} should be a string")

            env[key.strip()] = item

    if "flags" in fields:
        if not isinstance(fields["flags"], list):
            raise ConfigError(f"Mode {mode}: Flags should be in a list.")

        for item in fields["flags"]:
            if not isinstance(item, str):
                raise ConfigError(
                    f"Mode {mode}: {item} should be a string in the flags list"
                )

            if len(item.strip()) < 1:
                raise ConfigError(f"Mode {mode}: A flag is empty")

            flags.append(item.strip())

    return Environment(mode, dockerfile, name, env, tuple(flags))
