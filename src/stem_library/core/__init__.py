"""Core infrastructure layer - no business logic dependencies.

This module provides foundation-level services:
- Configuration management (TOML)
- Keyed local storage (JSON file)
- Console management (Rich)
- Logging (Loguru)

Clean architecture principle: The core layer has no dependencies on
domain or application layers.
"""

# Configuration
from .config import (
    BackendConfig,
    Config,
    LibraryConfig,
    LoggingConfig,
    create_default_config,
    ensure_directories,
    get_blob_dir,
    get_config_dir,
    get_config_path,
    get_data_dir,
    get_storage_path,
    load_config,
)

# Storage
from .storage import LocalStorage, StorageQuotaExceededError

# Console
from .console import get_console

__all__ = [
    # Config
    "BackendConfig",
    "Config",
    "LibraryConfig",
    "LoggingConfig",
    "create_default_config",
    "ensure_directories",
    "get_blob_dir",
    "get_config_dir",
    "get_config_path",
    "get_data_dir",
    "get_storage_path",
    "load_config",
    # Storage
    "LocalStorage",
    "StorageQuotaExceededError",
    # Console
    "get_console",
]
