"""
Configuration management for cargo-bitbake.

Settings come from defaults, an optional config file, environment variables
and finally the command line, in increasing order of precedence.
"""

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from rich.console import Console

console = Console(stderr=True)

VALID_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@dataclass
class RecipeConfig:
    """Recipe generation policy."""

    reproducible: bool = False
    checksums: bool = True
    legacy_overrides: bool = False
    output_dir: Optional[str] = None


@dataclass
class LoggingConfig:
    """Logging configuration."""

    log_level: str = "ERROR"
    log_format: str = "json"


@dataclass
class ComprehensiveConfig:
    """Main configuration containing all subsections."""

    recipe: RecipeConfig = field(default_factory=RecipeConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


_global_config: Optional[ComprehensiveConfig] = None


def validate_config_values(config: ComprehensiveConfig) -> List[str]:
    """
    Validate configuration values and return any errors.

    Args:
        config: Configuration to validate

    Returns:
        List[str]: List of validation errors (empty if valid)
    """
    errors = []

    for key in ("reproducible", "checksums", "legacy_overrides"):
        if not isinstance(getattr(config.recipe, key), bool):
            errors.append(f"recipe.{key} must be a boolean")
    if config.recipe.output_dir is not None and not isinstance(config.recipe.output_dir, str):
        errors.append("recipe.output_dir must be a string")

    if str(config.logging.log_level).upper() not in VALID_LOG_LEVELS:
        errors.append(f"logging.log_level must be one of {', '.join(VALID_LOG_LEVELS)}")
    if config.logging.log_format != "json":
        errors.append("logging.log_format must be 'json'")

    return errors


def load_config_file(config_path: Path) -> Optional[Dict[str, Any]]:
    """Load config from file."""
    if not config_path.exists():
        return None

    try:
        with open(config_path, encoding="utf-8") as f:
            if config_path.suffix.lower() in [".yaml", ".yml"]:
                return yaml.safe_load(f)
            elif config_path.suffix.lower() == ".json":
                return json.load(f)
    except (OSError, ValueError, yaml.YAMLError) as e:
        console.print(f"⚠️  Error loading config from {config_path}: {e}", style="yellow")

    return None


def find_config_file() -> Optional[Path]:
    """Find config file in standard locations."""
    locations = [
        Path.cwd() / ".cargo-bitbake.json",
        Path.cwd() / ".cargo-bitbake.yaml",
        Path.cwd() / ".cargo-bitbake.yml",
        Path.home() / ".config" / "cargo-bitbake" / "config.json",
        Path.home() / ".config" / "cargo-bitbake" / "config.yaml",
    ]

    for location in locations:
        if location.exists():
            return location

    return None


def load_environment_overrides(config: ComprehensiveConfig) -> None:
    """Load environment variable overrides."""

    def get_env_bool(key: str, default: bool = False) -> bool:
        value = os.environ.get(key, "").lower()
        return value in ["true", "1", "yes", "on"] if value else default

    config.recipe.reproducible = get_env_bool("CARGO_BITBAKE_REPRODUCIBLE", config.recipe.reproducible)
    config.recipe.checksums = not get_env_bool("CARGO_BITBAKE_NO_CHECKSUMS", not config.recipe.checksums)
    config.recipe.legacy_overrides = get_env_bool(
        "CARGO_BITBAKE_LEGACY_OVERRIDES", config.recipe.legacy_overrides
    )

    if output_dir := os.environ.get("CARGO_BITBAKE_OUTPUT_DIR"):
        config.recipe.output_dir = output_dir
    if log_level := os.environ.get("CARGO_BITBAKE_LOG_LEVEL"):
        config.logging.log_level = log_level.upper()


def apply_config_section(config: Any, section_data: Dict[str, Any], section_name: str) -> None:
    """Apply configuration from dictionary to config section."""
    for key, value in section_data.items():
        if hasattr(config, key):
            setattr(config, key, value)
        else:
            console.print(f"⚠️  Unknown config key in {section_name}: {key}", style="yellow")


def load_config() -> ComprehensiveConfig:
    """Load configuration from file and environment."""
    global _global_config

    if _global_config is not None:
        return _global_config

    config = ComprehensiveConfig()

    config_file = find_config_file()
    if config_file:
        file_config = load_config_file(config_file)
        if isinstance(file_config, dict):
            if isinstance(file_config.get("recipe"), dict):
                apply_config_section(config.recipe, file_config["recipe"], "recipe")
            if isinstance(file_config.get("logging"), dict):
                apply_config_section(config.logging, file_config["logging"], "logging")
            for section in file_config:
                if section not in ("recipe", "logging"):
                    console.print(f"⚠️  Unknown config section: {section}", style="yellow")

    load_environment_overrides(config)

    validation_errors = validate_config_values(config)
    if validation_errors:
        console.print("⚠️  Configuration validation errors:", style="red")
        for error in validation_errors:
            console.print(f"  • {error}", style="red")
        console.print("Using default values for invalid settings.", style="yellow")
        config = _replace_invalid(config)

    _global_config = config
    return config


def _replace_invalid(config: ComprehensiveConfig) -> ComprehensiveConfig:
    defaults = ComprehensiveConfig()
    for key in ("reproducible", "checksums", "legacy_overrides"):
        if not isinstance(getattr(config.recipe, key), bool):
            setattr(config.recipe, key, getattr(defaults.recipe, key))
    if config.recipe.output_dir is not None and not isinstance(config.recipe.output_dir, str):
        config.recipe.output_dir = defaults.recipe.output_dir
    if str(config.logging.log_level).upper() not in VALID_LOG_LEVELS:
        config.logging.log_level = defaults.logging.log_level
    config.logging.log_format = defaults.logging.log_format
    return config


def reset_config() -> None:
    """Reset the global configuration (useful for testing)."""
    global _global_config
    _global_config = None


def create_sample_config() -> str:
    """Generate sample configuration."""
    sample_config = {
        "recipe": {
            "reproducible": False,
            "checksums": True,
            "legacy_overrides": False,
            "output_dir": None,
        },
        "logging": {
            "log_level": "ERROR",
            "log_format": "json",
        },
    }

    return json.dumps(sample_config, indent=2)
