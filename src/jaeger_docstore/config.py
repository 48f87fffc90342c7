"""Configuration loading: YAML file, then environment overrides."""

import logging
import os
from typing import Any

import yaml

from jaeger_docstore.models import PluginConfig

_ENV_MAP = {
    "ROCKSET_APISERVER": "api_server",
    "ROCKSET_APIKEY": "api_key",
    "JAEGER_DOCSTORE_LOG_LEVEL": "log_level",
}

_STORE_ENV_MAP = {
    "JAEGER_DOCSTORE_WORKSPACE": "workspace",
}


def load_config(path: str | None = None, environ: dict[str, str] | None = None) -> PluginConfig:
    """Build a ``PluginConfig`` from an optional YAML file and env vars."""
    env = os.environ if environ is None else environ
    data: dict[str, Any] = {}

    # 1. YAML file (lowest priority)
    if path:
        with open(path) as f:
            data.update(yaml.safe_load(f) or {})

    # 2. Env vars
    for env_key, config_key in _ENV_MAP.items():
        val = env.get(env_key)
        if val is not None:
            data[config_key] = val

    store_data = dict(data.get("config") or {})
    for env_key, config_key in _STORE_ENV_MAP.items():
        val = env.get(env_key)
        if val is not None:
            store_data[config_key] = val
    data["config"] = store_data

    return PluginConfig(**data)


def configure_logging(config: PluginConfig) -> None:
    logging.basicConfig(level=getattr(logging, config.log_level.upper(), logging.INFO))
