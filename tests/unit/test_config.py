"""Unit tests for config.py"""

import pytest

from adfmd.config import load_config


def test_load_config_defaults(monkeypatch, tmp_path):
    """Settings defaults apply when no config.yaml, env var, or override exists."""
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv("ADFMD_STRICT", raising=False)
    settings = load_config()
    assert settings.strict is False
    assert settings.preserve_unknown_nodes is True
    assert settings.nesting_lookahead == 3
    assert settings.output_dir == "dist"


def test_load_config_reads_config_yaml(tmp_path, monkeypatch):
    """Values in config.yaml are applied."""
    monkeypatch.chdir(tmp_path)
    (tmp_path / "config.yaml").write_text("nesting_lookahead: 5\nstrict: true\n")
    settings = load_config()
    assert settings.nesting_lookahead == 5
    assert settings.strict is True


def test_load_config_env_strict(monkeypatch, tmp_path):
    """ADFMD_STRICT env var is coerced to bool."""
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("ADFMD_STRICT", "true")
    assert load_config().strict is True


def test_load_config_env_overrides_config_yaml(tmp_path, monkeypatch):
    """ADFMD_NESTING_LOOKAHEAD takes precedence over config.yaml."""
    monkeypatch.chdir(tmp_path)
    (tmp_path / "config.yaml").write_text("nesting_lookahead: 4\n")
    monkeypatch.setenv("ADFMD_NESTING_LOOKAHEAD", "1")
    assert load_config().nesting_lookahead == 1


def test_load_config_cli_overrides_env(monkeypatch, tmp_path):
    """A non-None CLI override beats the env var."""
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("ADFMD_OUTPUT_DIR", "env-out")
    settings = load_config(overrides={"output_dir": "cli-out"})
    assert settings.output_dir == "cli-out"


def test_load_config_none_override_ignored(monkeypatch, tmp_path):
    """None overrides leave lower-precedence values in place."""
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("ADFMD_OUTPUT_DIR", "env-out")
    settings = load_config(overrides={"output_dir": None})
    assert settings.output_dir == "env-out"


def test_load_config_invalid_yaml(tmp_path, monkeypatch):
    """load_config raises ValueError when config.yaml contains invalid YAML."""
    monkeypatch.chdir(tmp_path)
    (tmp_path / "config.yaml").write_text("key: [unclosed\n")
    with pytest.raises(ValueError, match="Invalid config.yaml"):
        load_config()


def test_load_config_rejects_bad_log_level(monkeypatch, tmp_path):
    """An unknown log level fails validation."""
    monkeypatch.chdir(tmp_path)
    with pytest.raises(ValueError):
        load_config(overrides={"log_level": "LOUD"})


def test_load_config_rejects_negative_lookahead(monkeypatch, tmp_path):
    """nesting_lookahead must be >= 0."""
    monkeypatch.chdir(tmp_path)
    with pytest.raises(ValueError):
        load_config(overrides={"nesting_lookahead": -1})
