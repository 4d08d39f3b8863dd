from __future__ import annotations

import argparse


def _positive_int(value: str) -> int:
    try:
        number = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"expected an integer, got {value!r}")
    if number < 1:
        raise argparse.ArgumentTypeError(f"must be at least 1, got {number}")
    return number


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="matrixrun",
        description="Run the test suite in every build environment using docker.",
        epilog=(
            "Environment: OUTPUT_DIR (./test-logs), DOCKER_SAVE_DIR ($HOME/docker), "
            "PARALLELISM (1), TIMEOUT (480s)"
        ),
    )

    parser.add_argument(
        "mode",
        nargs="?",
        default=None,
        help="Environment index, 'save' to build and archive every image, "
        "anything else (or nothing) to run all environments",
    )
    parser.add_argument(
        "--config",
        default=None,
        help="Path to an environments file (.yml/.yaml, .toml, .json)",
    )
    parser.add_argument(
        "--source-dir",
        default=".",
        help="Directory holding the Dockerfiles, mounted into the containers",
    )
    parser.add_argument(
        "--max-parallel",
        type=_positive_int,
        default=None,
        help="Upper bound on concurrently running jobs (default: no bound)",
    )
    parser.add_argument(
        "--docker",
        default="docker",
        help="Docker client executable",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable debug logging",
    )

    return parser
