"""Application configuration helpers."""

from __future__ import annotations

from .env import optional_env_float, optional_env_int, require_env_vars
from .errors import ConfigurationError, InvalidConfigurationError, MissingConfigurationError
from .execution import ExecutionConfig, get_execution_config
from .http_resilience import HttpRetryPolicy, RateLimit, ResilienceConfig
from .logging import configure_logging, resolve_log_level
from .resource_api import ResourceApiConfig, get_resource_api_config
from .storage import StateStoreConfig, StorageConfig, get_state_store_config, get_storage_config

__all__ = [
    "ConfigurationError",
    "ExecutionConfig",
    "InvalidConfigurationError",
    "HttpRetryPolicy",
    "MissingConfigurationError",
    "RateLimit",
    "ResilienceConfig",
    "ResourceApiConfig",
    "StateStoreConfig",
    "StorageConfig",
    "configure_logging",
    "get_execution_config",
    "get_resource_api_config",
    "get_state_store_config",
    "get_storage_config",
    "optional_env_float",
    "optional_env_int",
    "require_env_vars",
    "resolve_log_level",
]
