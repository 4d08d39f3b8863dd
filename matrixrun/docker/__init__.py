from .executor import DockerExecutor
from .types import DockerError, Executor

__all__ = ["DockerExecutor", "DockerError", "Executor"]
