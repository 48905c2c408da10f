"""Configuration loader with YAML and environment variable support.

This module provides a configuration loader that reads from ~/.config/notesorter/config.yaml
and allows environment variable overrides using NOTESORTER_* prefix.

Environment variables:
- NOTESORTER_LLM_ENDPOINT: Override LLM API endpoint
- NOTESORTER_LLM_API_KEY: Override LLM API key
- NOTESORTER_LLM_MODEL: Override primary model name
- NOTESORTER_LLM_FALLBACK_MODEL: Override fallback model name
- NOTESORTER_STORE_PATH: Override document store directory
- NOTESORTER_IDLE_TIMEOUT: Override organizer idle timeout (seconds)
"""

import os
import stat
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from notesorter.models.config import Config


DEFAULT_CONFIG_PATH = Path.home() / ".config" / "notesorter" / "config.yaml"


def load_config(config_path: Optional[Path] = None) -> Config:
    """Load configuration from YAML file with environment variable overrides.

    Args:
        config_path: Path to config file. If None, uses ~/.config/notesorter/config.yaml

    Returns:
        Validated Config object

    Raises:
        FileNotFoundError: If config file doesn't exist and no overrides are set
        PermissionError: If the config file is group/world accessible
        ValueError: If config file is invalid
    """
    if config_path is None:
        config_path = DEFAULT_CONFIG_PATH

    if config_path.exists():
        mode = os.stat(config_path).st_mode
        if mode & (stat.S_IRWXG | stat.S_IRWXO):
            raise PermissionError(
                f"Config file has overly permissive permissions: {oct(mode)}\n"
                f"Run: chmod 600 {config_path}"
            )
        with config_path.open() as f:
            data = yaml.safe_load(f) or {}
    else:
        # If no config file, start with empty dict (env vars will fill it in)
        data = {}

    data = _apply_env_overrides(data)

    if not data.get("llm"):
        raise FileNotFoundError(
            f"Configuration file not found at {config_path} and no NOTESORTER_* environment variables set.\n"
            "Either create a config file or set environment variables."
        )

    return Config(**data)


def _apply_env_overrides(data: Dict[str, Any]) -> Dict[str, Any]:
    """Apply environment variable overrides to configuration data.

    Environment variables use the format: NOTESORTER_SECTION_KEY
    For example: NOTESORTER_LLM_ENDPOINT sets data['llm']['endpoint']

    Args:
        data: Base configuration dictionary from YAML

    Returns:
        Configuration dictionary with environment overrides applied
    """
    llm = dict(data.get("llm") or {})
    organizer = dict(data.get("organizer") or {})
    store = dict(data.get("store") or {})

    if env_endpoint := os.getenv("NOTESORTER_LLM_ENDPOINT"):
        llm["endpoint"] = env_endpoint

    if env_api_key := os.getenv("NOTESORTER_LLM_API_KEY"):
        llm["api_key"] = env_api_key

    if env_model := os.getenv("NOTESORTER_LLM_MODEL"):
        llm["model"] = env_model

    if env_fallback := os.getenv("NOTESORTER_LLM_FALLBACK_MODEL"):
        llm["fallback_model"] = env_fallback

    if env_store := os.getenv("NOTESORTER_STORE_PATH"):
        store["path"] = env_store

    if env_idle := os.getenv("NOTESORTER_IDLE_TIMEOUT"):
        try:
            organizer["idle_timeout_seconds"] = float(env_idle)
        except ValueError:
            pass  # Invalid value, ignore

    result = dict(data)
    if llm:
        result["llm"] = llm
    if organizer:
        result["organizer"] = organizer
    if store:
        result["store"] = store
    return result
