"""
Configuration management for licensed.

Settings come from defaults, then a project config file (.licensed.json or
[tool.licensed] in pyproject.toml), then LICENSED_* environment variables,
and finally command-line flags.
"""

import json
import keyword
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import toml
from rich.console import Console

from .error_handling import ConfigurationError

console = Console(stderr=True)

STDOUT_SENTINEL = "-"

# Names the skeleton itself binds at module level.
RESERVED_NAMES = {"List", "NamedTuple"}


@dataclass
class GenerateConfig:
    """Defaults for the generate command."""

    output: str = "licenses_generated.py"
    function_name: str = "get_license_infos"
    type_name: str = "LicenseInfo"


@dataclass
class DiscoveryConfig:
    """Project root, dependency tool and license file discovery."""

    vendor_dir: str = "vendor"
    pip_executable: str = "pip"
    tool_timeout_seconds: int = 60
    license_patterns: List[str] = field(
        default_factory=lambda: ["LICENSE*", "LICENCE*", "COPYING*"]
    )


@dataclass
class LoggingConfig:
    """Logging configuration."""

    log_level: str = "WARNING"
    enable_json: bool = True
    log_format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


@dataclass
class LicensedConfig:
    """Main configuration containing all subsections."""

    generate: GenerateConfig = field(default_factory=GenerateConfig)
    discovery: DiscoveryConfig = field(default_factory=DiscoveryConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


@dataclass(frozen=True)
class GenerationConfig:
    """Parameters of a single generation run."""

    output: str
    function_name: str
    type_name: str
    package_name: str

    @property
    def to_stdout(self) -> bool:
        return self.output == STDOUT_SENTINEL


def validate_generated_names(function_name: str, type_name: str) -> None:
    """
    Check the names the generated module will define.

    Raises:
        ConfigurationError: If either name cannot be used in the output module
    """
    for kind, name in (("function", function_name), ("type", type_name)):
        if not name or not name.isidentifier() or keyword.iskeyword(name):
            raise ConfigurationError(
                f"Generated {kind} name {name!r} is not a valid Python identifier"
            )
        if name in RESERVED_NAMES:
            raise ConfigurationError(
                f"Generated {kind} name {name!r} collides with a name the module imports"
            )
    if function_name == type_name:
        raise ConfigurationError(
            f"Generated function and type must have different names (both {function_name!r})"
        )


def resolve_destination_dir(output: str, cwd: Path) -> Path:
    """
    Directory the generated module lands in.

    Raises:
        ConfigurationError: If the destination is not a writable location
    """
    if output == STDOUT_SENTINEL:
        return cwd

    destination = Path(output)
    if not destination.is_absolute():
        destination = cwd / destination
    if destination.is_dir():
        raise ConfigurationError(f"Output path {output} is a directory")

    directory = destination.parent
    if not directory.is_dir():
        raise ConfigurationError(f"Output directory {directory} does not exist")
    if not os.access(directory, os.W_OK):
        raise ConfigurationError(f"Output directory {directory} is not writable")
    if destination.exists() and not os.access(destination, os.W_OK):
        raise ConfigurationError(f"Output file {destination} is not writable")
    return directory


_global_config: Optional[LicensedConfig] = None

_FIELD_TYPES = {
    "generate": {"output": str, "function_name": str, "type_name": str},
    "discovery": {
        "vendor_dir": str,
        "pip_executable": str,
        "tool_timeout_seconds": int,
        "license_patterns": list,
    },
    "logging": {"log_level": str, "enable_json": bool, "log_format": str},
}


def _check_value_types(config: LicensedConfig) -> List[str]:
    errors = []
    for section_name, fields in _FIELD_TYPES.items():
        section = getattr(config, section_name)
        for key, expected in fields.items():
            value = getattr(section, key)
            # bool is an int subclass; only enable_json takes one
            if not isinstance(value, expected) or (
                isinstance(value, bool) and expected is not bool
            ):
                errors.append(
                    f"{section_name}.{key} must be of type {expected.__name__}, "
                    f"got {type(value).__name__}"
                )

    patterns = config.discovery.license_patterns
    if isinstance(patterns, list) and not all(isinstance(p, str) for p in patterns):
        errors.append("discovery.license_patterns must be a list of strings")
    return errors


def validate_config_values(config: LicensedConfig) -> List[str]:
    """
    Validate configuration values and return any errors.

    Type problems are reported first; values are only range-checked once
    every field has the expected type.

    Args:
        config: Configuration to validate

    Returns:
        List[str]: List of validation errors (empty if valid)
    """
    errors = _check_value_types(config)
    if errors:
        return errors

    if not config.generate.output:
        errors.append("generate.output must not be empty")
    try:
        validate_generated_names(
            config.generate.function_name, config.generate.type_name
        )
    except ConfigurationError as e:
        errors.append(f"generate: {e}")

    if not config.discovery.vendor_dir:
        errors.append("discovery.vendor_dir must not be empty")
    if Path(config.discovery.vendor_dir).is_absolute():
        errors.append("discovery.vendor_dir must be relative to the project root")
    if not config.discovery.pip_executable:
        errors.append("discovery.pip_executable must not be empty")
    if config.discovery.tool_timeout_seconds <= 0:
        errors.append("discovery.tool_timeout_seconds must be positive")
    if not config.discovery.license_patterns:
        errors.append("discovery.license_patterns must not be empty")

    if config.logging.log_level.upper() not in {
        "DEBUG",
        "INFO",
        "WARNING",
        "ERROR",
        "CRITICAL",
    }:
        errors.append(f"logging.log_level {config.logging.log_level!r} is not a level")

    return errors


def load_config_file(config_path: Path) -> Optional[Dict[str, Any]]:
    """Load config from file."""
    if not config_path.exists():
        return None

    try:
        with open(config_path, encoding="utf-8") as f:
            if config_path.name == "pyproject.toml":
                return toml.load(f).get("tool", {}).get("licensed")
            elif config_path.suffix.lower() == ".toml":
                return toml.load(f)
            elif config_path.suffix.lower() == ".json":
                return json.load(f)
    except (OSError, ValueError, toml.TomlDecodeError) as e:
        console.print(
            f"⚠️  Error loading config from {config_path}: {e}", style="yellow"
        )

    return None


def find_config_file(base_dir: Path) -> Optional[Path]:
    """Find config file in standard locations."""
    json_config = base_dir / ".licensed.json"
    if json_config.exists():
        return json_config

    pyproject = base_dir / "pyproject.toml"
    if pyproject.exists() and load_config_file(pyproject):
        return pyproject

    return None


def load_environment_overrides(config: LicensedConfig) -> None:
    """Apply LICENSED_* environment variable overrides."""

    def get_env_int(key: str) -> Optional[int]:
        try:
            return int(os.environ[key]) if key in os.environ else None
        except ValueError:
            console.print(f"⚠️  Invalid integer value for {key}, using default", style="yellow")
            return None

    if output := os.environ.get("LICENSED_OUTPUT"):
        config.generate.output = output
    if function_name := os.environ.get("LICENSED_FUNC"):
        config.generate.function_name = function_name
    if type_name := os.environ.get("LICENSED_TYPE"):
        config.generate.type_name = type_name

    if vendor_dir := os.environ.get("LICENSED_VENDOR_DIR"):
        config.discovery.vendor_dir = vendor_dir
    if pip_executable := os.environ.get("LICENSED_PIP"):
        config.discovery.pip_executable = pip_executable
    timeout = get_env_int("LICENSED_TOOL_TIMEOUT")
    if timeout is not None:
        config.discovery.tool_timeout_seconds = timeout

    if log_level := os.environ.get("LICENSED_LOG_LEVEL"):
        config.logging.log_level = log_level.upper()


def apply_config_section(
    config: Any, section_data: Dict[str, Any], section_name: str
) -> None:
    """Apply configuration from dictionary to config section."""
    for key, value in section_data.items():
        if hasattr(config, key):
            setattr(config, key, value)
        else:
            console.print(
                f"⚠️  Unknown config key in {section_name}: {key}", style="yellow"
            )


def load_config(base_dir: Optional[Path] = None) -> LicensedConfig:
    """Load configuration from file and environment."""
    global _global_config

    if _global_config is not None:
        return _global_config

    config = LicensedConfig()

    config_file = find_config_file(base_dir or Path.cwd())
    if config_file:
        file_config = load_config_file(config_file)
        if file_config:
            for section_name in ("generate", "discovery", "logging"):
                if section_name in file_config:
                    apply_config_section(
                        getattr(config, section_name),
                        file_config[section_name],
                        section_name,
                    )

    load_environment_overrides(config)

    validation_errors = validate_config_values(config)
    if validation_errors:
        raise ConfigurationError(
            "Invalid configuration: " + "; ".join(validation_errors)
        )

    _global_config = config
    return config


def reset_config() -> None:
    """Reset the global configuration (useful for testing)."""
    global _global_config
    _global_config = None


def create_sample_config() -> str:
    """Generate a sample .licensed.json."""
    defaults = LicensedConfig()
    sample_config = {
        "generate": {
            "output": defaults.generate.output,
            "function_name": defaults.generate.function_name,
            "type_name": defaults.generate.type_name,
        },
        "discovery": {
            "vendor_dir": defaults.discovery.vendor_dir,
            "pip_executable": defaults.discovery.pip_executable,
            "tool_timeout_seconds": defaults.discovery.tool_timeout_seconds,
            "license_patterns": defaults.discovery.license_patterns,
        },
        "logging": {
            "log_level": defaults.logging.log_level,
            "enable_json": defaults.logging.enable_json,
            "log_format": defaults.logging.log_format,
        },
    }

    return json.dumps(sample_config, indent=2)
