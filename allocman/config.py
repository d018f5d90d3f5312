"""
Configuration management for allocman.

Loads config.yaml from the allocman home directory ($ALLOCMAN_HOME, default
~/.config/allocman) and an optional .env file.
"""

import os
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

import yaml
from dotenv import load_dotenv


DEFAULT_TOOLCHAIN = ["{python}", "-m", "py_compile", "{source}"]


class ConfigError(Exception):
    """Configuration validation error."""
    pass


def get_allocman_home() -> Path:
    """Resolve the allocman home directory."""
    home = os.environ.get("ALLOCMAN_HOME")
    if home:
        return Path(home).expanduser()
    return Path("~/.config/allocman").expanduser()


@dataclass
class AllocmanConfig:
    """
    allocman configuration.

    Attributes:
        allocators_dir: Directory holding one <name>.py per allocator
        toolchain: Compile command argv; "{source}" is replaced with the
            source path and "{python}" with the running interpreter
        compile_timeout: Seconds before a toolchain run is abandoned
        max_workers: Upper bound on concurrent compiles
        log_level: Logging level name
        log_format: "structured" or "pretty"
        log_file: Optional log file path
        env_file: Optional .env file loaded into the environment
    """
    allocators_dir: str
    toolchain: list[str] = field(default_factory=lambda: list(DEFAULT_TOOLCHAIN))
    compile_timeout: float = 60.0
    max_workers: int = 4
    log_level: str = "INFO"
    log_format: str = "structured"
    log_file: Optional[str] = None
    env_file: Optional[str] = None

    def __post_init__(self):
        if not self.allocators_dir:
            raise ConfigError("allocators_dir is required")
        if not isinstance(self.toolchain, list) or not self.toolchain:
            raise ConfigError("toolchain must be a non-empty list of arguments")
        if not any("{source}" in arg for arg in self.toolchain):
            raise ConfigError("toolchain must reference {source}")
        if self.compile_timeout <= 0:
            raise ConfigError("compile_timeout must be > 0")
        if self.max_workers < 1:
            raise ConfigError("max_workers must be >= 1")
        if self.log_format not in ("structured", "pretty"):
            raise ConfigError(f"Unknown log_format: {self.log_format}")

    @property
    def allocators_path(self) -> Path:
        return Path(self.allocators_dir).expanduser()

    @property
    def log_path(self) -> Optional[Path]:
        return Path(self.log_file).expanduser() if self.log_file else None

    def toolchain_command(self) -> list[str]:
        """Toolchain argv with {python} resolved; {source} is left for the compiler."""
        return [arg.replace("{python}", sys.executable) for arg in self.toolchain]

    @classmethod
    def from_dict(cls, data: dict[str, Any], home: Path) -> "AllocmanConfig":
        known = {
            "allocators_dir", "toolchain", "compile_timeout", "max_workers",
            "log_level", "log_format", "log_file", "env_file",
        }
        unknown = set(data) - known
        if unknown:
            raise ConfigError(f"Unknown config keys: {', '.join(sorted(unknown))}")

        kwargs = dict(data)
        kwargs.setdefault("allocators_dir", str(home / "allocators"))
        try:
            if "compile_timeout" in kwargs:
                kwargs["compile_timeout"] = float(kwargs["compile_timeout"])
            if "max_workers" in kwargs:
                kwargs["max_workers"] = int(kwargs["max_workers"])
        except (TypeError, ValueError) as e:
            raise ConfigError(f"Invalid numeric config value: {e}")
        return cls(**kwargs)

    def to_dict(self) -> dict[str, Any]:
        return {
            "allocators_dir": self.allocators_dir,
            "toolchain": list(self.toolchain),
            "compile_timeout": self.compile_timeout,
            "max_workers": self.max_workers,
            "log_level": self.log_level,
            "log_format": self.log_format,
            "log_file": self.log_file,
            "env_file": self.env_file,
        }


def default_config(home: Optional[Path] = None) -> AllocmanConfig:
    """Configuration written by `allocman init`."""
    home = home or get_allocman_home()
    return AllocmanConfig(
        allocators_dir=str(home / "allocators"),
        env_file=str(home / ".env"),
    )


def load_config(config_path: Optional[Path] = None) -> AllocmanConfig:
    """
    Load allocman configuration from YAML.

    Args:
        config_path: Path to config file. Defaults to <home>/config.yaml

    Returns:
        AllocmanConfig instance

    Raises:
        FileNotFoundError: If the config file does not exist
        ConfigError: If the config is invalid
    """
    home = get_allocman_home()
    if config_path is None:
        config_path = home / "config.yaml"

    if not config_path.exists():
        raise FileNotFoundError(
            f"allocman config.yaml not found at {config_path}. Run 'allocman init'."
        )

    try:
        data = yaml.safe_load(config_path.read_text()) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML syntax: {e}")
    if not isinstance(data, dict):
        raise ConfigError("Configuration file must contain a mapping")

    config = AllocmanConfig.from_dict(data, home)

    if config.env_file:
        env_path = Path(config.env_file).expanduser()
        if env_path.exists():
            load_dotenv(env_path)

    return config
