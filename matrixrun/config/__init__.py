from .loader import default_project, load_project, settings_from_env
from .types import ConfigError, Environment, ProjectConfig, Settings

__all__ = [
    "default_project",
    "load_project",
    "settings_from_env",
    "ConfigError",
    "Environment",
    "ProjectConfig",
    "Settings",
]
