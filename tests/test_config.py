"""
单元测试：配置加载
"""

from pathlib import Path

import pytest
from pydantic import ValidationError

from mcbe_rank import config as config_module
from mcbe_rank.config import DataFiles, get_config, load_config, reset_config


@pytest.fixture(autouse=True)
def _clean_global_config():
    reset_config()
    yield
    reset_config()


def _write_config(directory: Path, text: str) -> Path:
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / "config.yaml"
    path.write_text(text, encoding="utf-8")
    return path


def test_missing_file_gives_defaults(tmp_path):
    config = load_config(str(tmp_path / "absent.yaml"))

    assert config.files == DataFiles()
    assert config.probe.ping_attempts == 3
    assert config.probe.query_attempts == 2
    assert config.probe.timeout_ms == 2000
    assert config.schedule.interval == 60


def test_relative_paths_follow_config_location(tmp_path):
    conf_dir = tmp_path / "conf"
    path = _write_config(conf_dir, "files:\n  addresses: lists/addresses.json\n")

    config = load_config(str(path))

    assert config.files.addresses == str((conf_dir / "lists" / "addresses.json").resolve())
    assert config.files.servers_dir == str((conf_dir / "data" / "servers").resolve())


def test_absolute_paths_are_kept(tmp_path):
    target = tmp_path / "elsewhere" / "plugins.json"
    path = _write_config(tmp_path / "conf", f"files:\n  plugins: {target}\n")

    assert load_config(str(path)).files.plugins == str(target)


def test_sections_are_read(tmp_path):
    path = _write_config(tmp_path, (
        "probe:\n  ping_attempts: 5\n  timeout_ms: 1500\n"
        "schedule:\n  interval: 300\n  align: false\n"
        "logging:\n  level: DEBUG\n  file: logs/collector.log\n"
    ))

    config = load_config(str(path))

    assert config.probe.ping_attempts == 5
    assert config.probe.timeout_ms == 1500
    assert config.schedule.interval == 300
    assert config.schedule.align is False
    assert config.logging.level == "DEBUG"
    assert config.logging.file == str((tmp_path / "logs" / "collector.log").resolve())


def test_environment_fills_unset_values(tmp_path, monkeypatch):
    monkeypatch.setenv("MCBE_RANK_PROBE__TIMEOUT_MS", "3000")
    path = _write_config(tmp_path, "schedule:\n  interval: 120\n")

    config = load_config(str(path))

    assert config.probe.timeout_ms == 3000
    assert config.schedule.interval == 120


def test_invalid_value_is_rejected(tmp_path):
    path = _write_config(tmp_path, "probe:\n  ping_attempts: 0\n")

    with pytest.raises(ValidationError):
        load_config(str(path))


def test_get_config_uses_environment_path(tmp_path, monkeypatch):
    path = _write_config(tmp_path, "schedule:\n  interval: 30\n")
    monkeypatch.setenv("MCBE_RANK_CONFIG_PATH", str(path))

    config = get_config()

    assert config.schedule.interval == 30
    assert get_config() is config
    assert config_module._config is config
