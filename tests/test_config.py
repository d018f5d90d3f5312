import os
import sys
from pathlib import Path

import pytest
import yaml

from allocman.config import (
    AllocmanConfig,
    ConfigError,
    default_config,
    get_allocman_home,
    load_config,
)


def test_home_from_env(tmp_path, monkeypatch):
    monkeypatch.setenv("ALLOCMAN_HOME", str(tmp_path / "home"))
    assert get_allocman_home() == tmp_path / "home"


def test_home_default(monkeypatch):
    monkeypatch.delenv("ALLOCMAN_HOME", raising=False)
    assert get_allocman_home() == Path("~/.config/allocman").expanduser()


def test_load_config_missing(tmp_path, monkeypatch):
    monkeypatch.setenv("ALLOCMAN_HOME", str(tmp_path))
    with pytest.raises(FileNotFoundError, match="allocman init"):
        load_config()


def test_load_config_defaults(tmp_path, monkeypatch):
    monkeypatch.setenv("ALLOCMAN_HOME", str(tmp_path))
    (tmp_path / "config.yaml").write_text("max_workers: 2\n")

    config = load_config()
    assert config.allocators_path == tmp_path / "allocators"
    assert config.max_workers == 2
    assert config.compile_timeout == 60.0
    assert config.log_format == "structured"


def test_load_config_empty_file(tmp_path, monkeypatch):
    monkeypatch.setenv("ALLOCMAN_HOME", str(tmp_path))
    (tmp_path / "config.yaml").write_text("")
    assert load_config().max_workers == 4


def test_load_config_explicit_path(tmp_path):
    path = tmp_path / "other.yaml"
    path.write_text(yaml.safe_dump({"allocators_dir": str(tmp_path / "mine"), "compile_timeout": "5"}))
    config = load_config(path)
    assert config.allocators_path == tmp_path / "mine"
    assert config.compile_timeout == 5.0


def test_load_config_loads_env_file(tmp_path, monkeypatch):
    monkeypatch.setenv("ALLOCMAN_HOME", str(tmp_path))
    monkeypatch.delenv("ALLOCMAN_TEST_FLAG", raising=False)
    (tmp_path / ".env").write_text("ALLOCMAN_TEST_FLAG=on\n")
    (tmp_path / "config.yaml").write_text(yaml.safe_dump({"env_file": str(tmp_path / ".env")}))

    load_config()
    assert os.environ["ALLOCMAN_TEST_FLAG"] == "on"
    monkeypatch.delenv("ALLOCMAN_TEST_FLAG")


def test_invalid_yaml(tmp_path, monkeypatch):
    monkeypatch.setenv("ALLOCMAN_HOME", str(tmp_path))
    (tmp_path / "config.yaml").write_text("max_workers: [unclosed\n")
    with pytest.raises(ConfigError, match="Invalid YAML"):
        load_config()


def test_non_mapping(tmp_path, monkeypatch):
    monkeypatch.setenv("ALLOCMAN_HOME", str(tmp_path))
    (tmp_path / "config.yaml").write_text("- a\n- b\n")
    with pytest.raises(ConfigError, match="mapping"):
        load_config()


def test_unknown_keys(tmp_path):
    with pytest.raises(ConfigError, match="Unknown config keys: bogus"):
        AllocmanConfig.from_dict({"bogus": 1}, tmp_path)


def test_bad_numeric(tmp_path):
    with pytest.raises(ConfigError):
        AllocmanConfig.from_dict({"max_workers": "many"}, tmp_path)


@pytest.mark.parametrize("overrides", [
    {"toolchain": []},
    {"toolchain": ["mypy", "--strict"]},
    {"compile_timeout": 0},
    {"max_workers": 0},
    {"log_format": "xml"},
    {"allocators_dir": ""},
])
def test_validation(tmp_path, overrides):
    kwargs = {"allocators_dir": str(tmp_path)}
    kwargs.update(overrides)
    with pytest.raises(ConfigError):
        AllocmanConfig(**kwargs)


def test_toolchain_command_resolves_python(tmp_path):
    config = AllocmanConfig(allocators_dir=str(tmp_path))
    assert config.toolchain_command() == [sys.executable, "-m", "py_compile", "{source}"]


def test_default_config_round_trip(tmp_path):
    config = default_config(tmp_path)
    assert config.env_file == str(tmp_path / ".env")
    restored = AllocmanConfig.from_dict(config.to_dict(), tmp_path)
    assert restored == config


def test_log_path(tmp_path):
    assert AllocmanConfig(allocators_dir=str(tmp_path)).log_path is None
    config = AllocmanConfig(allocators_dir=str(tmp_path), log_file=str(tmp_path / "a.log"))
    assert config.log_path == tmp_path / "a.log"
