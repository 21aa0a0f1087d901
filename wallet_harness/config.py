"""
Configuration loading and logging setup.

Configuration lives in a YAML file (``wallet_harness.yaml`` by default) whose
string values may reference environment variables as ``${VAR}``.  Without a
file, defaults are used with a few environment overrides.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any

import yaml

from wallet_harness.models import HarnessConfig

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_FILE = "wallet_harness.yaml"
LOG_FORMAT = "%(asctime)s | %(levelname)-7s | %(name)s | %(message)s"


def _resolve_env(value: Any) -> Any:
    """Recursively resolve ${ENV_VAR} placeholders in config values."""
    if isinstance(value, str) and value.startswith("${") and value.endswith("}"):
        env_key = value[2:-1]
        return os.environ.get(env_key, value)
    if isinstance(value, dict):
        return {k: _resolve_env(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_resolve_env(v) for v in value]
    return value


def load_config(config_path: str | Path | None = None) -> HarnessConfig:
    """
    Load harness config from a YAML file.  Falls back to env vars and defaults.
    """
    path = Path(config_path) if config_path else Path(DEFAULT_CONFIG_FILE)

    if path.exists():
        with open(path, "r", encoding="utf-8") as fh:
            raw = yaml.safe_load(fh) or {}
        raw = _resolve_env(raw)
        return HarnessConfig.model_validate(raw)

    logger.warning("No config file found at %s, using defaults + env vars.", path)
    overrides = {
        "api_url": os.getenv("WALLET_API_URL"),
        "service_id": os.getenv("WALLET_SERVICE_ID"),
        "log_level": os.getenv("WALLET_LOG_LEVEL"),
    }
    return HarnessConfig(**{k: v for k, v in overrides.items() if v})


def configure_logging(config: HarnessConfig) -> None:
    logging.basicConfig(
        level=getattr(logging, config.log_level.upper(), logging.INFO),
        format=LOG_FORMAT,
        datefmt="%H:%M:%S",
    )
