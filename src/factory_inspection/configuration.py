from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, Optional

from dotenv import load_dotenv
from omegaconf import DictConfig, OmegaConf

load_dotenv()

_HERE = Path(__file__).resolve()
_CANDIDATE_CONFIG_PATHS = [parent / "config/config.yaml" for parent in _HERE.parents[:3]]

_env_config = os.environ.get("FACTORY_INSPECTION_CONFIG")
if _env_config:
    _CANDIDATE_CONFIG_PATHS.insert(0, Path(_env_config))

CONFIG_PATH = next((path for path in _CANDIDATE_CONFIG_PATHS if path.exists()), None)
if CONFIG_PATH is None:  # pragma: no cover - fail fast in misconfigured environments
    raise FileNotFoundError("Default config.yaml could not be located; ensure the package data was installed.")

# Environment variable -> dotted config key
ENV_OVERRIDES: Dict[str, str] = {
    "FACTORY_INSPECTION_DB": "server.database_path",
    "FACTORY_INSPECTION_API_URL": "client.base_url",
    "FACTORY_INSPECTION_LOG_LEVEL": "logging.level",
    "S3_BUCKET_NAME": "report_archive.bucket",
}


@lru_cache(maxsize=1)
def _load_default_config() -> DictConfig:
    if not CONFIG_PATH.exists():
        raise FileNotFoundError(f"Default config not found at {CONFIG_PATH}")
    return OmegaConf.load(CONFIG_PATH)


def get_default_config_container(resolve: bool = False) -> Dict[str, Any]:
    config = _load_default_config()
    return OmegaConf.to_container(config, resolve=resolve, enum_to_str=True)  # type: ignore[return-value]


def _apply_environment(config: DictConfig) -> None:
    for variable, key in ENV_OVERRIDES.items():
        value = os.environ.get(variable)
        if value:
            OmegaConf.update(config, key, value, merge=False)


def load_config(overrides: Optional[Dict[str, Any]] = None) -> DictConfig:
    """
    Build the runtime configuration.

    Precedence, lowest first: packaged config.yaml, environment variables,
    explicit overrides. The result is in struct mode, so overriding a key
    that does not exist in config.yaml raises.
    """
    base_container = OmegaConf.to_container(_load_default_config(), resolve=False)
    base = OmegaConf.create(base_container)
    OmegaConf.set_struct(base, True)
    _apply_environment(base)

    if not overrides:
        return base
    return DictConfig(OmegaConf.merge(base, OmegaConf.create(overrides)))


@lru_cache(maxsize=1)
def get_config() -> DictConfig:
    return load_config()
