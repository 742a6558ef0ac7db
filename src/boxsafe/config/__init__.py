"""
boxsafe config package public API.

Loads ``boxsafe.toml`` merged over built-in defaults, applies ``BOXSAFE_`` env and CLI
overrides, and exposes the result as a typed ``BoxSafeSettings`` value.
"""

from boxsafe.config.loader import (
    DEFAULT_CONFIG_FILE,
    ConfigLoadError,
    load_config,
    normalize_paths,
)
from boxsafe.config.schema import (
    DEFAULT_CONFIG,
    PATH_FIELDS,
    BoxSafeConfig,
    ConfigValidationError,
    ConfigValidationIssue,
    ConfigValidationResult,
    assert_valid_config,
    default_config,
    merge_config,
    parse_loop_limit,
    redact_config,
    validate_config,
)
from boxsafe.config.settings import BoxSafeSettings, ModelSettings, VersionControlSettings

__all__ = [
    "DEFAULT_CONFIG",
    "DEFAULT_CONFIG_FILE",
    "PATH_FIELDS",
    "BoxSafeConfig",
    "BoxSafeSettings",
    "ConfigLoadError",
    "ConfigValidationError",
    "ConfigValidationIssue",
    "ConfigValidationResult",
    "ModelSettings",
    "VersionControlSettings",
    "assert_valid_config",
    "default_config",
    "load_config",
    "merge_config",
    "normalize_paths",
    "parse_loop_limit",
    "redact_config",
    "validate_config",
]
