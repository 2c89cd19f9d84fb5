"""
Python Configuration Loader

Loads generation and model-loading defaults from YAML files so the
resolution layer has no hardcoded values
"""

import logging
import os
import threading
import yaml
from pathlib import Path
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "LLM_RUNTIME_CONFIG"
ENVIRONMENT_ENV_VAR = "LLM_RUNTIME_ENV"


class Config:
    """Runtime configuration loaded from YAML"""

    def __init__(self, config_dict: Dict[str, Any]):
        # Generation defaults (applied when the user leaves a knob unset)
        generation = config_dict.get("generation", {})
        self.batch_size = generation.get("batch_size", 8)
        self.repeat_last_n = generation.get("repeat_last_n", 64)
        self.repeat_penalty = generation.get("repeat_penalty", 1.30)
        self.temperature = generation.get("temperature", 0.80)
        self.top_k = generation.get("top_k", 40)
        self.top_p = generation.get("top_p", 0.95)
        self.float16 = generation.get("float16", False)
        self.num_predict = generation.get("num_predict")

        # Model loading
        model = config_dict.get("model", {})
        self.num_ctx_tokens = model.get("num_ctx_tokens", 2048)
        self.use_mmap = model.get("use_mmap", True)
        self.progress_log_interval = model.get("progress_log_interval", 8)

    def validate(self) -> None:
        """
        Validate configuration values

        Catches invalid defaults at startup instead of at the first
        invocation that happens to rely on them

        Raises:
            ValueError: If any configuration value is invalid
        """
        if self.batch_size < 1:
            raise ValueError(f"batch_size must be >= 1, got {self.batch_size}")

        if self.repeat_last_n < 0:
            raise ValueError(f"repeat_last_n must be >= 0, got {self.repeat_last_n}")

        if self.repeat_penalty <= 0:
            raise ValueError(f"repeat_penalty must be > 0, got {self.repeat_penalty}")

        if self.temperature <= 0:
            raise ValueError(f"temperature must be > 0, got {self.temperature}")

        if self.top_k < 1:
            raise ValueError(f"top_k must be >= 1, got {self.top_k}")

        if not (0 < self.top_p <= 1):
            raise ValueError(f"top_p must be in (0, 1], got {self.top_p}")

        if self.num_predict is not None and self.num_predict < 0:
            raise ValueError(f"num_predict must be >= 0, got {self.num_predict}")

        if self.num_ctx_tokens < 1:
            raise ValueError(f"num_ctx_tokens must be >= 1, got {self.num_ctx_tokens}")

        if self.progress_log_interval < 1:
            raise ValueError(
                f"progress_log_interval must be >= 1, got {self.progress_log_interval}"
            )


def deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """Deep merge two dictionaries"""
    result = base.copy()

    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = deep_merge(result[key], value)
        else:
            result[key] = value

    return result


def _find_default_config_path() -> str:
    """Locate config/runtime.yaml by walking up from this module"""
    current = Path(__file__).parent
    for _ in range(5):  # Search up to 5 levels
        candidate = current / "config" / "runtime.yaml"
        if candidate.exists():
            return str(candidate)
        parent = current.parent
        if parent == current:
            break
        current = parent

    return str(Path(__file__).parent.parent / "config" / "runtime.yaml")


def load_config(
    config_path: Optional[str] = None, environment: Optional[str] = None
) -> Config:
    """
    Load configuration from YAML file

    Args:
        config_path: Path to config file (defaults to $LLM_RUNTIME_CONFIG,
            then project_root/config/runtime.yaml)
        environment: Environment name (production/development/test)

    Returns:
        Config instance

    Raises:
        FileNotFoundError: If config file not found
        ValueError: If config file is invalid YAML or holds invalid values
    """
    if config_path is None:
        config_path = os.getenv(CONFIG_ENV_VAR) or _find_default_config_path()

    try:
        with open(config_path, "r", encoding="utf-8") as f:
            base_config = yaml.safe_load(f) or {}
    except FileNotFoundError:
        raise FileNotFoundError(f"Configuration file not found: {config_path}")
    except yaml.YAMLError as exc:
        raise ValueError(f"Failed to parse YAML config file '{config_path}': {exc}") from exc

    if not isinstance(base_config, dict):
        raise ValueError(f"Config file '{config_path}' must contain a mapping")

    env = environment or os.getenv(ENVIRONMENT_ENV_VAR) or "development"

    # Apply environment-specific overrides
    final_config = base_config
    environments = base_config.get("environments") or {}
    if env in environments:
        final_config = deep_merge(base_config, environments[env])

    final_config = {k: v for k, v in final_config.items() if k != "environments"}

    config = Config(final_config)
    config.validate()
    logger.debug("Loaded configuration from %s (environment=%s)", config_path, env)
    return config


# Global config instance
_global_config: Optional[Config] = None
_config_lock = threading.Lock()


def initialize_config(
    config_path: Optional[str] = None, environment: Optional[str] = None
) -> Config:
    """Initialize global configuration (thread-safe)"""
    global _global_config
    with _config_lock:
        _global_config = load_config(config_path, environment)
        return _global_config


def get_config() -> Config:
    """
    Get global configuration (lazy initialization)

    Uses double-checked locking so concurrent first callers load the
    file only once.
    """
    global _global_config

    if _global_config is not None:
        return _global_config

    with _config_lock:
        if _global_config is None:
            _global_config = load_config()
        return _global_config
