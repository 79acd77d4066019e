"""Configuration loading and management for remote-explorer.

This module provides configuration discovery and validation. Configuration
sources are merged in priority order:
    1. Defaults (defined in ExplorerConfig)
    2. Global config (~/.remote-explorer.toml)
    3. Project config (./remote-explorer.toml)
    4. Explicit config file
    5. Environment variables (REMOTE_EXPLORER_* prefix)
    6. CLI overrides (passed as kwargs)

Example:
    >>> config = load_config(batch_size=10)
    >>> config.batch_size
    10
    >>> config.read_timeout_seconds
    10.0
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Literal, Optional, get_type_hints

from .bootstrap import DEFAULT_BOOTSTRAP_PATHS
from .exceptions import ConfigurationError, InvalidConfigError

Verbosity = Literal["quiet", "normal", "verbose"]

ENV_PREFIX = "REMOTE_EXPLORER_"


@dataclass(frozen=True)
class ExplorerConfig:
    """Configuration for an exploration run.

    All fields have working defaults; most users only touch the scan pacing
    and the store location.

    Attributes:
        Scan pacing:
            batch_size: Paths dispatched concurrently per batch
            batch_delay_ms: Delay inserted between batches
            read_timeout_seconds: Upper bound on a single remote read

        Transport addressing:
            read_function: Bridge function name used to read a file
            path_prefix: Relative prefix that replaces the leading "/"

        Error handling:
            error_threshold: Consecutive transient errors that force a pause
            error_window_seconds: Rolling window for error-rate statistics
            max_retries: Transient retries per path per run before parking

        Variable resolution:
            max_expansion_depth: Recursion ceiling for template expansion
            variable_source_excludes: Sources never mined for variables

        Persistence:
            snapshot_every: Finalized records between periodic snapshots
            max_persisted_content_bytes: Larger text content is not persisted
            store_path: SQLite file used by the CLI

        Discovery:
            bootstrap_paths: Paths queued before any content is read
    """

    # Scan pacing
    batch_size: int = 5
    batch_delay_ms: int = 50
    read_timeout_seconds: float = 10.0

    # Transport addressing
    read_function: str = "FileRead"
    path_prefix: str = "../../../"

    # Error handling
    error_threshold: int = 3
    error_window_seconds: float = 60.0
    max_retries: int = 2

    # Variable resolution
    max_expansion_depth: int = 10
    variable_source_excludes: tuple[str, ...] = ("/proc/cmdline", "mapping.ini")

    # Persistence
    snapshot_every: int = 25
    max_persisted_content_bytes: int = 1024 * 1024
    store_path: str = ".remote-explorer/sessions.db"

    # Output control
    verbosity: Verbosity = "normal"

    # Discovery
    bootstrap_paths: tuple[str, ...] = field(default_factory=lambda: DEFAULT_BOOTSTRAP_PATHS)

    def __post_init__(self) -> None:
        """Validate configuration after initialization."""
        if self.batch_size < 1:
            raise InvalidConfigError("batch_size", self.batch_size, "must be at least 1")
        if self.batch_delay_ms < 0:
            raise InvalidConfigError("batch_delay_ms", self.batch_delay_ms, "must be non-negative")
        if self.read_timeout_seconds <= 0:
            raise InvalidConfigError(
                "read_timeout_seconds", self.read_timeout_seconds, "must be positive"
            )
        if not self.read_function:
            raise InvalidConfigError("read_function", self.read_function, "must not be empty")

        if self.error_threshold < 1:
            raise InvalidConfigError("error_threshold", self.error_threshold, "must be at least 1")
        if self.error_window_seconds <= 0:
            raise InvalidConfigError(
                "error_window_seconds", self.error_window_seconds, "must be positive"
            )
        if self.max_retries < 0:
            raise InvalidConfigError("max_retries", self.max_retries, "must be non-negative")

        if self.max_expansion_depth < 1:
            raise InvalidConfigError(
                "max_expansion_depth", self.max_expansion_depth, "must be at least 1"
            )

        if self.snapshot_every < 1:
            raise InvalidConfigError("snapshot_every", self.snapshot_every, "must be at least 1")
        if self.max_persisted_content_bytes < 0:
            raise InvalidConfigError(
                "max_persisted_content_bytes",
                self.max_persisted_content_bytes,
                "must be non-negative",
            )

        if self.verbosity not in ("quiet", "normal", "verbose"):
            raise InvalidConfigError("verbosity", self.verbosity, "expected quiet/normal/verbose")

        for path in self.bootstrap_paths:
            if not path.startswith("/"):
                raise InvalidConfigError("bootstrap_paths", path, "paths must be absolute")

    @property
    def batch_delay_seconds(self) -> float:
        """Get the inter-batch delay in seconds."""
        return self.batch_delay_ms / 1000.0


def load_config(config_file: Optional[Path] = None, **overrides) -> ExplorerConfig:
    """Load configuration with auto-discovery and merging.

    Args:
        config_file: Optional explicit config file path
        **overrides: Direct overrides (typically from CLI flags). ``None``
            values are ignored so unset CLI options fall through.

    Returns:
        Validated ExplorerConfig instance

    Raises:
        ConfigurationError: If a config file is invalid or missing
        InvalidConfigError: If a value fails validation
    """
    merged: dict = {}

    global_config = Path.home() / ".remote-explorer.toml"
    if global_config.exists():
        try:
            merged.update(_load_toml_file(global_config))
        except ConfigurationError:
            raise
        except Exception as e:
            raise ConfigurationError(f"Invalid global config '{global_config}': {e}")

    project_config = Path.cwd() / "remote-explorer.toml"
    if project_config.exists():
        try:
            merged.update(_load_toml_file(project_config))
        except ConfigurationError:
            raise
        except Exception as e:
            raise ConfigurationError(f"Invalid project config '{project_config}': {e}")

    if config_file is not None:
        if not config_file.exists():
            raise ConfigurationError(f"Config file not found: {config_file}")
        try:
            merged.update(_load_toml_file(config_file))
        except ConfigurationError:
            raise
        except Exception as e:
            raise ConfigurationError(f"Invalid config file '{config_file}': {e}")

    merged.update(_load_env_vars())

    # Convert verbosity boolean flags to string
    if "verbose" in overrides:
        if overrides["verbose"]:
            overrides["verbosity"] = "verbose"
        del overrides["verbose"]
    if "quiet" in overrides:
        if overrides["quiet"]:
            overrides["verbosity"] = "quiet"
        del overrides["quiet"]

    merged.update({k: v for k, v in overrides.items() if v is not None})

    # TOML arrays arrive as lists
    for key in ("bootstrap_paths", "variable_source_excludes"):
        if key in merged and isinstance(merged[key], list):
            merged[key] = tuple(merged[key])

    try:
        return ExplorerConfig(**merged)
    except TypeError as e:
        # Unknown field in config
        raise ConfigurationError(f"Invalid configuration: {e}")


def _load_env_vars() -> dict[str, Any]:
    """Load configuration from REMOTE_EXPLORER_* environment variables.

    Every scalar field can be set, e.g. ``REMOTE_EXPLORER_BATCH_SIZE=10`` or
    ``REMOTE_EXPLORER_STORE_PATH=/data/sessions.db``. Tuple fields are
    TOML-only.

    Returns:
        Dict of field_name -> parsed_value for any REMOTE_EXPLORER_* vars found.
    """
    type_hints = get_type_hints(ExplorerConfig)

    result: dict[str, Any] = {}

    for field_name in ExplorerConfig.__dataclass_fields__:
        env_key = f"{ENV_PREFIX}{field_name.upper()}"
        env_value = os.environ.get(env_key)

        if env_value is None:
            continue

        type_hint = type_hints.get(field_name)
        if type_hint is None:
            continue

        try:
            parsed = _parse_env_value(env_value, type_hint)
            if parsed is not None:
                result[field_name] = parsed
        except ValueError as e:
            raise InvalidConfigError(field_name, env_value, f"{env_key}: {e}")

    return result


def _parse_env_value(value: str, type_hint: Any) -> Any:
    """Parse environment variable string to the correct type.

    Args:
        value: Raw string from environment
        type_hint: Type annotation from dataclass

    Returns:
        Parsed value or None if the type cannot come from the environment

    Raises:
        ValueError: If value can't be parsed to expected type
    """
    origin = getattr(type_hint, "__origin__", None)

    # Skip tuple types (bootstrap_paths, excludes) - too complex for env vars
    if origin is tuple or type_hint is tuple:
        return None

    if type_hint is bool:
        lower = value.lower()
        if lower in ("true", "1", "yes", "on"):
            return True
        elif lower in ("false", "0", "no", "off"):
            return False
        else:
            raise ValueError(f"expected true/false, got '{value}'")

    if type_hint is int:
        return int(value)

    if type_hint is float:
        return float(value)

    # String (including Literal types like Verbosity)
    if type_hint is str or origin is Literal:
        return value

    return None


def _load_toml_file(path: Path) -> dict:
    """Load TOML file and return parsed dict.

    Args:
        path: Path to TOML file

    Returns:
        Parsed TOML as dict

    Raises:
        ConfigurationError: If tomllib/tomli not available
        Exception: If TOML parsing fails
    """
    try:
        # Python 3.11+ has tomllib in stdlib
        import tomllib
    except ModuleNotFoundError:
        try:
            # Fallback to tomli for Python 3.9-3.10
            import tomli as tomllib  # type: ignore
        except ImportError:
            raise ConfigurationError(
                "TOML support requires Python 3.11+ or 'tomli' package. "
                "Install with: pip install tomli"
            )

    with open(path, "rb") as f:
        data = tomllib.load(f)

    # Accept both a flat file and a [remote-explorer] table
    return data.get("remote-explorer", data)
