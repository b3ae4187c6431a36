"""Tests for configuration loading."""

import pytest

from tokenauth.config import (
    DEFAULT_DB_PATH,
    StoreConfig,
    TokenAuthConfig,
    load_config,
    parse_store_config,
)
from tokenauth.errors import ConfigurationError


def test_load_config_from_env(tmp_path, monkeypatch):
    config_path = tmp_path / "tokenauth.yaml"
    config_path.write_text(
        """
backend: inmemory
store:
  path: /tmp/tokens.db
token_period: 60
janitor_interval: 5
"""
    )
    monkeypatch.setenv("TOKENAUTH_CONFIG", str(config_path))
    monkeypatch.delenv("TOKENAUTH_BACKEND", raising=False)
    monkeypatch.delenv("TOKENAUTH_DB_PATH", raising=False)

    config = load_config()
    assert config.backend == "inmemory"
    assert config.store.path == "/tmp/tokens.db"
    assert config.token_period == 60
    assert config.janitor_interval == 5


def test_load_config_defaults_when_file_missing(tmp_path, monkeypatch):
    monkeypatch.delenv("TOKENAUTH_BACKEND", raising=False)
    monkeypatch.delenv("TOKENAUTH_DB_PATH", raising=False)

    config = load_config(str(tmp_path / "missing.yaml"))
    assert config == TokenAuthConfig()
    assert config.store.path == DEFAULT_DB_PATH
    assert config.token_period == 7200
    assert config.janitor_interval == 300


def test_env_overrides_file(tmp_path, monkeypatch):
    config_path = tmp_path / "tokenauth.yaml"
    config_path.write_text("store:\n  path: from-file.db\n")
    monkeypatch.setenv("TOKENAUTH_DB_PATH", str(tmp_path / "from-env.db"))
    monkeypatch.setenv("TOKENAUTH_BACKEND", "inmemory")

    config = load_config(str(config_path))
    assert config.store.path == str(tmp_path / "from-env.db")
    assert config.backend == "inmemory"


def test_invalid_config_file_is_a_configuration_error(tmp_path):
    config_path = tmp_path / "tokenauth.yaml"
    config_path.write_text("store:\n  path: ''\n")

    with pytest.raises(ConfigurationError):
        load_config(str(config_path))


@pytest.mark.parametrize(
    "raw",
    [None, "", "path", "{}", '{"goodpath": ""}', '{"path": ""}', "[1, 2]", {"path": "  "}],
)
def test_parse_store_config_rejects_bad_payloads(raw):
    with pytest.raises(ConfigurationError):
        parse_store_config(raw)


def test_parse_store_config_accepts_json_mapping_and_model():
    assert parse_store_config('{"path": "a.db"}') == StoreConfig(path="a.db")
    assert parse_store_config({"path": "b.db"}) == StoreConfig(path="b.db")
    model = StoreConfig(path="c.db")
    assert parse_store_config(model) is model


@pytest.mark.parametrize(
    "overrides",
    [{"token_period": -5}, {"janitor_interval": 0}, {"janitor_interval": -1}],
)
def test_out_of_range_values_are_rejected(tmp_path, overrides):
    with pytest.raises(ValueError):
        TokenAuthConfig(**overrides)

    config_path = tmp_path / "tokenauth.yaml"
    key, value = next(iter(overrides.items()))
    config_path.write_text(f"{key}: {value}\n")
    with pytest.raises(ConfigurationError):
        load_config(str(config_path))


def test_zero_token_period_is_allowed():
    assert TokenAuthConfig(token_period=0).token_period == 0
