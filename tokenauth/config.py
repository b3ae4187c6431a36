from __future__ import annotations

import json
import os
from typing import Any, Mapping, Optional, Union

import yaml
from pydantic import BaseModel, Field, field_validator
from pydantic import ValidationError as PydanticValidationError

from .errors import ConfigurationError

DEFAULT_DB_PATH = "./data/tokendb.bolt"
DEFAULT_TOKEN_PERIOD = 7200
DEFAULT_JANITOR_INTERVAL = 300.0


class StoreConfig(BaseModel):
    """Configuration payload handed to ``TokenStore.open``."""

    path: str

    @field_validator("path")
    @classmethod
    def _path_not_empty(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("path must not be empty")
        return value


class TokenAuthConfig(BaseModel):
    """Top-level configuration model."""

    backend: str = "default"
    store: StoreConfig = StoreConfig(path=DEFAULT_DB_PATH)
    token_period: int = Field(DEFAULT_TOKEN_PERIOD, ge=0)
    janitor_interval: float = Field(DEFAULT_JANITOR_INTERVAL, gt=0)


StoreConfigLike = Union[StoreConfig, Mapping[str, Any], str, None]


def parse_store_config(raw: StoreConfigLike) -> StoreConfig:
    """Normalise a store config given as a model, mapping or JSON string.

    Raises:
        ConfigurationError: the payload is empty, is not valid JSON, or has
            no usable ``path``.
    """

    if isinstance(raw, StoreConfig):
        return raw
    if raw is None or (isinstance(raw, str) and not raw.strip()):
        raise ConfigurationError("store config is empty")
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise ConfigurationError(f"store config is not valid JSON: {exc}") from exc
    if not isinstance(raw, Mapping):
        raise ConfigurationError("store config must be a JSON object")
    try:
        return StoreConfig.model_validate(dict(raw))
    except PydanticValidationError as exc:
        raise ConfigurationError(f"invalid store config: {exc}") from exc


def load_config(path: Optional[str] = None) -> TokenAuthConfig:
    """Load configuration from YAML file.

    Args:
        path: Optional path to config file. Falls back to TOKENAUTH_CONFIG env
            variable or 'tokenauth.yaml' in the current directory.
    """

    config_path = path or os.getenv("TOKENAUTH_CONFIG", "tokenauth.yaml")
    if os.path.exists(config_path):
        with open(config_path) as f:
            data = yaml.safe_load(f) or {}
        try:
            config = TokenAuthConfig(**data)
        except PydanticValidationError as exc:
            raise ConfigurationError(f"invalid config file {config_path}: {exc}") from exc
    else:
        config = TokenAuthConfig()

    env_backend = os.getenv("TOKENAUTH_BACKEND")
    if env_backend:
        config.backend = env_backend
    env_db_path = os.getenv("TOKENAUTH_DB_PATH")
    if env_db_path:
        config.store = StoreConfig(path=env_db_path)
    return config
