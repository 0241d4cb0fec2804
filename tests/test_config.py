from pathlib import Path

import pytest
import yaml

from warporch.config import WarporchConfig, get_warporch_home, load_config
from warporch.errors import SettingsError


def test_get_warporch_home_default(monkeypatch):
    monkeypatch.delenv("WARPORCH_HOME", raising=False)
    home = get_warporch_home()
    assert home == Path("~/.config/warporch").expanduser()


def test_get_warporch_home_env_var(monkeypatch, tmp_path):
    custom_home = tmp_path / "custom_home"
    monkeypatch.setenv("WARPORCH_HOME", str(custom_home))
    assert get_warporch_home() == custom_home


def test_load_config_missing_file(monkeypatch, tmp_path):
    monkeypatch.setenv("WARPORCH_HOME", str(tmp_path))
    with pytest.raises(FileNotFoundError, match="warporch config.yaml not found"):
        load_config()


def test_load_config_valid(monkeypatch, tmp_path):
    monkeypatch.setenv("WARPORCH_HOME", str(tmp_path))
    config_path = tmp_path / "config.yaml"

    config_data = {
        "max_attempts": 5,
        "backoff_seconds": 0.5,
        "step_timeout_s": 30,
        "log_format": "pretty",
    }
    config_path.write_text(yaml.dump(config_data))

    cfg = load_config()
    assert isinstance(cfg, WarporchConfig)
    assert cfg.max_attempts == 5
    assert cfg.backoff_seconds == 0.5
    assert cfg.step_timeout_s == 30
    assert cfg.log_format == "pretty"
    # Untouched fields keep their defaults
    assert cfg.report_max_attempts == 5
    assert cfg.confirmation_timeout_s == 120.0


def test_load_config_explicit_path(tmp_path):
    config_path = tmp_path / "elsewhere.yaml"
    config_path.write_text(yaml.dump({"max_attempts": 7}))
    assert load_config(config_path).max_attempts == 7


def test_load_config_empty_file_gives_defaults(tmp_path):
    config_path = tmp_path / "config.yaml"
    config_path.write_text("")
    assert load_config(config_path) == WarporchConfig()


def test_load_config_invalid_yaml(tmp_path):
    config_path = tmp_path / "config.yaml"
    config_path.write_text("max_attempts: [unclosed")
    with pytest.raises(SettingsError, match="Invalid YAML"):
        load_config(config_path)


def test_load_config_not_a_mapping(tmp_path):
    config_path = tmp_path / "config.yaml"
    config_path.write_text("- 1\n- 2\n")
    with pytest.raises(SettingsError, match="mapping"):
        load_config(config_path)


def test_load_config_unknown_key(tmp_path):
    config_path = tmp_path / "config.yaml"
    config_path.write_text(yaml.dump({"max_atempts": 3}))
    with pytest.raises(SettingsError, match="Unknown settings"):
        load_config(config_path)


@pytest.mark.parametrize(
    "overrides",
    [
        {"max_attempts": 0},
        {"report_max_attempts": 0},
        {"backoff_seconds": -1},
        {"backoff_multiplier": 0.5},
        {"step_timeout_s": 0},
        {"log_level": "LOUD"},
        {"log_format": "xml"},
    ],
)
def test_invalid_values_rejected(overrides):
    with pytest.raises(SettingsError):
        WarporchConfig(**overrides)


def test_backoff_delay_grows_and_caps():
    cfg = WarporchConfig(backoff_seconds=2.0, backoff_multiplier=2.0, max_backoff_seconds=10.0)
    assert [cfg.backoff_delay(n) for n in range(1, 5)] == [2.0, 4.0, 8.0, 10.0]


def test_to_dict_round_trips_through_from_dict():
    cfg = WarporchConfig(max_attempts=4, log_file="/tmp/warporch.log")
    assert WarporchConfig.from_dict(cfg.to_dict()) == cfg
