"""
Config Loader - Central config loading with stage-specific access.

Usage:
    from frame_sampler.config import get_sampler_config, get_transfer_config

    config = get_sampler_config()  # Returns SamplerConfig
    print(config.filter.change_threshold)
"""

import os
from functools import lru_cache
from pathlib import Path
from typing import Any, Optional

from dotenv import load_dotenv
from omegaconf import OmegaConf

from .config import (
    ExtractionConfig,
    FilterConfig,
    LoggingConfig,
    SamplerConfig,
    StorageConfig,
    TransferConfig,
    WorkspaceConfig,
)

# Load .env file (looks in cwd and parent directories)
load_dotenv()

# Environment variable for config override
CONFIG_PATH_ENV = "FRAME_SAMPLER_CONFIG"

# Packaged defaults
DEFAULT_CONFIG = Path(__file__).parent / "default.yaml"


@lru_cache(maxsize=4)
def _load_yaml(config_path: Optional[str] = None) -> dict[str, Any]:
    """
    Load and merge YAML config (cached).

    Priority:
    1. Explicit config_path argument
    2. FRAME_SAMPLER_CONFIG environment variable
    3. Packaged default.yaml
    """
    if config_path:
        path = Path(config_path)
    elif os.getenv(CONFIG_PATH_ENV):
        path = Path(os.getenv(CONFIG_PATH_ENV))
    else:
        path = DEFAULT_CONFIG

    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    # Load with OmegaConf (supports merging, interpolation)
    cfg = OmegaConf.load(path)

    # If custom config, merge on top of defaults
    if path != DEFAULT_CONFIG and DEFAULT_CONFIG.exists():
        base = OmegaConf.load(DEFAULT_CONFIG)
        cfg = OmegaConf.merge(base, cfg)

    return OmegaConf.to_container(cfg, resolve=True)


def reload_config(config_path: Optional[str] = None) -> None:
    """Clear cache and reload config."""
    _load_yaml.cache_clear()
    _load_yaml(config_path)


def load_config(
    config_path: Optional[str] = None,
    overrides: Optional[dict[str, Any]] = None,
) -> dict[str, Any]:
    """
    Load the merged configuration as a plain dict.

    Merge order (later overrides earlier):
    1. default.yaml
    2. user config (config_path or FRAME_SAMPLER_CONFIG)
    3. overrides dict (CLI/programmatic)

    Dotted keys are allowed in overrides, e.g. {"filter.change_threshold": 0.3}.
    """
    data = _load_yaml(str(config_path) if config_path else None)
    if not overrides:
        return dict(data)

    merged = OmegaConf.create(data)
    for key, value in overrides.items():
        if value is None:
            continue
        OmegaConf.update(merged, key, value, merge=True)
    return OmegaConf.to_container(merged, resolve=True)


def print_config(config: SamplerConfig) -> str:
    """Render a config as YAML, with secrets masked."""
    data = config.model_dump(mode="json")
    storage = data.get("storage", {})
    for secret in ("access_key_id", "secret_access_key"):
        if storage.get(secret):
            storage[secret] = "****"
    return OmegaConf.to_yaml(OmegaConf.create(data))


# =============================================================================
# Stage-specific config getters
# =============================================================================

def get_sampler_config(
    config_path: Optional[str] = None,
    overrides: Optional[dict[str, Any]] = None,
) -> SamplerConfig:
    """Get the full sampler configuration."""
    return SamplerConfig(**load_config(config_path, overrides))


def get_extraction_config(config_path: Optional[str] = None) -> ExtractionConfig:
    """Get extraction stage configuration."""
    yaml = _load_yaml(config_path)
    return ExtractionConfig(**yaml.get("extraction", {}))


def get_filter_config(config_path: Optional[str] = None) -> FilterConfig:
    """Get filter stage configuration."""
    yaml = _load_yaml(config_path)
    return FilterConfig(**yaml.get("filter", {}))


def get_transfer_config(config_path: Optional[str] = None) -> TransferConfig:
    """Get transfer pool configuration."""
    yaml = _load_yaml(config_path)
    return TransferConfig(**yaml.get("transfer", {}))


def get_storage_config(config_path: Optional[str] = None) -> StorageConfig:
    """Get object storage configuration."""
    yaml = _load_yaml(config_path)
    return StorageConfig(**yaml.get("storage", {}))


def get_workspace_config(config_path: Optional[str] = None) -> WorkspaceConfig:
    yaml = _load_yaml(config_path)
    return WorkspaceConfig(**yaml.get("workspace", {}))


def get_logging_config(config_path: Optional[str] = None) -> LoggingConfig:
    """Get logging configuration."""
    yaml = _load_yaml(config_path)
    return LoggingConfig(**yaml.get("logging", {}))
