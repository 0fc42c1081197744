"""
Configuration management for Stem Library
"""

import os
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional


@dataclass
class BackendConfig:
    """Configuration for the stem separation backend."""

    api_base_url: str = "http://localhost:8000"
    timeout_seconds: Optional[float] = None  # None = requests default (no deadline)


@dataclass
class LibraryConfig:
    """Configuration for the local library store."""

    storage_key: str = "music-analyzer-library"
    undo_grace_seconds: float = 5.0
    max_upload_mb: int = 10
    dev_placeholder_titles: bool = False  # Random demo titles when no title is known

    def validate(self) -> None:
        """Validate library configuration values.

        Raises:
            ValueError: If configuration values are invalid
        """
        if self.undo_grace_seconds < 0:
            raise ValueError(
                f"undo_grace_seconds must be >= 0, got {self.undo_grace_seconds}"
            )
        if self.max_upload_mb <= 0:
            raise ValueError(f"max_upload_mb must be > 0, got {self.max_upload_mb}")
        if not self.storage_key:
            raise ValueError("storage_key must not be empty")


@dataclass
class LoggingConfig:
    """Configuration for logging."""

    level: str = "INFO"  # DEBUG, INFO, WARNING, ERROR, CRITICAL
    log_file: Optional[str] = (
        None  # Custom log file path (default: ~/.local/share/stem-library/stem-library.log)
    )
    max_file_size_mb: int = 10  # Maximum log file size before rotation
    backup_count: int = 5  # Number of backup files to keep
    console_output: bool = False  # Also output to console (for debugging)


@dataclass
class Config:
    """Main configuration object."""

    backend: BackendConfig = field(default_factory=BackendConfig)
    library: LibraryConfig = field(default_factory=LibraryConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


def get_config_dir() -> Path:
    """Get the configuration directory path."""
    config_home = os.environ.get("XDG_CONFIG_HOME")
    if config_home:
        return Path(config_home) / "stem-library"
    return Path.home() / ".config" / "stem-library"


def get_config_path() -> Path:
    """Get the main configuration file path.

    Checks for config.toml in the following order:
    1. Current working directory
    2. XDG_CONFIG_HOME/stem-library (or ~/.config/stem-library)
    """
    local_config = Path.cwd() / "config.toml"
    if local_config.exists():
        return local_config

    return get_config_dir() / "config.toml"


def get_data_dir() -> Path:
    """Get the data directory path."""
    data_home = os.environ.get("XDG_DATA_HOME")
    if data_home:
        return Path(data_home) / "stem-library"
    return Path.home() / ".local" / "share" / "stem-library"


def get_storage_path() -> Path:
    """Get the path of the persisted library record file."""
    return get_data_dir() / "local-storage.json"


def get_blob_dir() -> Path:
    """Get the directory holding extracted stems for the current session."""
    return get_data_dir() / "blobs"


def create_default_config() -> str:
    """Create a default configuration TOML content."""
    return """
# Stem Library Configuration

[backend]
# Base URL of the stem separation service
api_base_url = "http://localhost:8000"

# Request timeout in seconds (omit to wait indefinitely)
# timeout_seconds = 120

[library]
# Storage key for the persisted library (shared with sign-in cleanup)
storage_key = "music-analyzer-library"

# Seconds a deleted item can still be restored with undo
undo_grace_seconds = 5.0

# Maximum upload size in MB
max_upload_mb = 10

# Use random demo titles when the backend reports none (development only)
dev_placeholder_titles = false

[logging]
# Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
level = "INFO"

# Custom log file path (default: ~/.local/share/stem-library/stem-library.log)
# log_file = "/path/to/custom/stem-library.log"

# Maximum log file size in MB before rotation
max_file_size_mb = 10

# Number of backup log files to keep
backup_count = 5

# Also output logs to console (useful for debugging)
console_output = false
""".strip()


def parse_config(toml_data: dict) -> Config:
    """Build a Config from parsed TOML data, keeping defaults for missing keys.

    Args:
        toml_data: Dictionary produced by tomllib

    Returns:
        Populated Config
    """
    config = Config()

    if "backend" in toml_data:
        backend_data = toml_data["backend"]
        config.backend = BackendConfig(
            api_base_url=backend_data.get(
                "api_base_url", config.backend.api_base_url
            ).rstrip("/"),
            timeout_seconds=backend_data.get(
                "timeout_seconds", config.backend.timeout_seconds
            ),
        )

    if "library" in toml_data:
        library_data = toml_data["library"]
        config.library = LibraryConfig(
            storage_key=library_data.get("storage_key", config.library.storage_key),
            undo_grace_seconds=float(
                library_data.get(
                    "undo_grace_seconds", config.library.undo_grace_seconds
                )
            ),
            max_upload_mb=library_data.get(
                "max_upload_mb", config.library.max_upload_mb
            ),
            dev_placeholder_titles=library_data.get(
                "dev_placeholder_titles", config.library.dev_placeholder_titles
            ),
        )
        try:
            config.library.validate()
        except ValueError as e:
            print(f"Warning: Invalid library configuration: {e}")
            print("Using default library configuration.")
            config.library = LibraryConfig()

    if "logging" in toml_data:
        logging_data = toml_data["logging"]
        log_file = logging_data.get("log_file")
        if log_file:
            log_file = str(Path(log_file).expanduser())
        config.logging = LoggingConfig(
            level=logging_data.get("level", config.logging.level).upper(),
            log_file=log_file,
            max_file_size_mb=logging_data.get(
                "max_file_size_mb", config.logging.max_file_size_mb
            ),
            backup_count=logging_data.get(
                "backup_count", config.logging.backup_count
            ),
            console_output=logging_data.get(
                "console_output", config.logging.console_output
            ),
        )

    return config


def apply_env_overrides(config: Config) -> Config:
    """Override configuration values from environment variables.

    - STEM_LIBRARY_API_BASE_URL
    - STEM_LIBRARY_LOG_LEVEL
    """
    api_base_url = os.environ.get("STEM_LIBRARY_API_BASE_URL")
    log_level = os.environ.get("STEM_LIBRARY_LOG_LEVEL")

    if api_base_url:
        config.backend.api_base_url = api_base_url.rstrip("/")
    if log_level:
        config.logging.level = log_level.upper()

    return config


def load_config() -> Config:
    """Load configuration from file or create default.

    Environment variables override TOML values (see apply_env_overrides).
    """
    # Load .env file from config directory if it exists
    from dotenv import load_dotenv

    env_path = get_config_dir() / ".env"
    if env_path.exists():
        load_dotenv(env_path)

    config_path = get_config_path()

    if not config_path.exists():
        # Create config directory and default file
        config_path.parent.mkdir(parents=True, exist_ok=True)
        with open(config_path, "w", encoding="utf-8") as f:
            f.write(create_default_config())
        print(f"Created default configuration at: {config_path}")
        return apply_env_overrides(Config())

    try:
        with open(config_path, "rb") as f:
            toml_data = tomllib.load(f)
        return apply_env_overrides(parse_config(toml_data))

    except (OSError, tomllib.TOMLDecodeError) as e:
        print(f"Error loading configuration from {config_path}: {e}")
        print("Using default configuration.")
        return apply_env_overrides(Config())


def ensure_directories() -> None:
    """Ensure all necessary directories exist."""
    get_config_dir().mkdir(parents=True, exist_ok=True)
    get_data_dir().mkdir(parents=True, exist_ok=True)
