"""Configuration loading and validation module.

This module handles all YAML configuration loading and provides a typed
Config dataclass consumed by all other modules.

A config holds either a single ``sampler:`` block with a top-level
``output:``, or a ``samplers:`` list where every entry carries its own
``name`` and may override the top-level ``output``.
"""

from dataclasses import dataclass, field
from typing import Any, List, Optional
import yaml

from scraper import DEFAULT_INTERFACE


START_AT_VALUES = ("beginning", "end")
DELTA_POLICY_VALUES = ("wrap", "clamp", "reset")
OUTPUT_TYPE_VALUES = ("file_logger", "pipeline_emitter")


class ConfigError(Exception):
    """Raised when configuration is invalid or missing required fields."""
    pass


@dataclass
class OutputConfig:
    """Output sink configuration."""
    type: str
    path: Optional[str] = None
    max_bytes: int = 102400  # 100 KiB
    backup_count: int = 20


@dataclass
class SamplerConfig:
    """Sampling configuration for one interface."""
    uri: str
    poll_interval_seconds: float
    output: OutputConfig
    name: str = ""
    interface: str = DEFAULT_INTERFACE
    start_at: str = "beginning"
    delta_policy: str = "wrap"


@dataclass
class StorageConfig:
    """State storage configuration."""
    path: str


@dataclass
class IdentityConfig:
    """Identity fields attached to every usage record."""
    root_org_id: str = ""
    org_id: str = ""
    env_id: str = ""
    asset_id: str = ""
    worker_id: str = ""
    billable: bool = False


@dataclass
class Config:
    """Root configuration dataclass."""
    samplers: List[SamplerConfig]
    storage: StorageConfig
    record: IdentityConfig = field(default_factory=IdentityConfig)


def _get_nested(data: dict, path: str, required: bool = True, default: Any = None) -> Any:
    """Get a nested value from a dictionary using dot notation.

    Args:
        data: The dictionary to search
        path: Dot-separated path to the value (e.g., "sampler.uri")
        required: If True, raises ConfigError when value is missing
        default: Default value if not required and missing

    Returns:
        The value at the path, or default if not required and missing

    Raises:
        ConfigError: If required value is missing
    """
    keys = path.split(".")
    current = data

    for key in keys:
        if not isinstance(current, dict):
            if required:
                raise ConfigError(f"Configuration path '{path}' is not a valid nested structure")
            return default
        if key not in current:
            if required:
                raise ConfigError(f"Missing required configuration field: {path}")
            return default
        current = current[key]

    return current


def _validate_type(value: Any, expected_type: type, field_name: str) -> None:
    """Validate that a value is of the expected type.

    Args:
        value: The value to validate
        expected_type: The expected type
        field_name: Name of the field for error messages

    Raises:
        ConfigError: If value is not of the expected type
    """
    if expected_type is int:
        if not isinstance(value, int) or isinstance(value, bool):
            raise ConfigError(
                f"Field '{field_name}' must be an integer, got {type(value).__name__}"
            )
    elif expected_type is float:
        if not isinstance(value, (int, float)) or isinstance(value, bool):
            raise ConfigError(
                f"Field '{field_name}' must be a number, got {type(value).__name__}"
            )
    elif expected_type is str:
        if not isinstance(value, str):
            raise ConfigError(
                f"Field '{field_name}' must be a string, got {type(value).__name__}"
            )
    else:
        if not isinstance(value, expected_type):
            raise ConfigError(
                f"Field '{field_name}' must be of type {expected_type.__name__}, got {type(value).__name__}"
            )


def _validate_choice(value: str, choices: tuple, field_name: str) -> None:
    """Validate that a string is one of the allowed values.

    Raises:
        ConfigError: If value is not in choices
    """
    if value not in choices:
        raise ConfigError(
            f"Field '{field_name}' has invalid value '{value}', "
            f"expected one of: {', '.join(choices)}"
        )




def _get_field(section: dict, key: str, prefix: str, required: bool = True, default: Any = None) -> Any:
    """Get a single key from a config section, naming it with its prefix in errors."""
    if key not in section:
        if required:
            raise ConfigError(f"Missing required configuration field: {prefix}.{key}")
        return default
    return section[key]


def _load_output(output_data: Any, prefix: str) -> OutputConfig:
    _validate_type(output_data, dict, prefix)

    output_type = _get_field(output_data, "type", prefix)
    _validate_type(output_type, str, f"{prefix}.type")
    _validate_choice(output_type, OUTPUT_TYPE_VALUES, f"{prefix}.type")

    path = _get_field(output_data, "path", prefix, required=False)
    if path is not None:
        _validate_type(path, str, f"{prefix}.path")
    if output_type == "file_logger" and not path:
        raise ConfigError(f"Missing required configuration field: {prefix}.path")

    max_bytes = _get_field(output_data, "max_bytes", prefix, required=False, default=102400)
    _validate_type(max_bytes, int, f"{prefix}.max_bytes")
    if max_bytes <= 0:
        raise ConfigError(f"{prefix}.max_bytes must be > 0")

    backup_count = _get_field(output_data, "backup_count", prefix, required=False, default=20)
    _validate_type(backup_count, int, f"{prefix}.backup_count")
    if backup_count < 0:
        raise ConfigError(f"{prefix}.backup_count must be >= 0")

    return OutputConfig(
        type=output_type,
        path=path,
        max_bytes=max_bytes,
        backup_count=backup_count,
    )


def _load_sampler(
    sampler_data: Any, prefix: str, output: OutputConfig, name_required: bool = False
) -> SamplerConfig:
    _validate_type(sampler_data, dict, prefix)

    name = _get_field(sampler_data, "name", prefix, required=name_required, default="")
    _validate_type(name, str, f"{prefix}.name")
    if name_required and not name.strip():
        raise ConfigError(f"{prefix}.name must not be empty")

    uri = _get_field(sampler_data, "uri", prefix)
    _validate_type(uri, str, f"{prefix}.uri")
    if not uri:
        raise ConfigError(f"{prefix}.uri must not be empty")

    poll_interval_seconds = _get_field(sampler_data, "poll_interval_seconds", prefix)
    _validate_type(poll_interval_seconds, float, f"{prefix}.poll_interval_seconds")
    if poll_interval_seconds <= 0:
        raise ConfigError(f"{prefix}.poll_interval_seconds must be > 0")

    interface = _get_field(sampler_data, "interface", prefix, required=False)
    if interface is not None:
        _validate_type(interface, str, f"{prefix}.interface")
    # Empty selector falls back to the default interface
    interface = interface or DEFAULT_INTERFACE

    start_at = _get_field(sampler_data, "start_at", prefix, required=False, default="beginning")
    _validate_type(start_at, str, f"{prefix}.start_at")
    _validate_choice(start_at, START_AT_VALUES, f"{prefix}.start_at")

    delta_policy = _get_field(sampler_data, "delta_policy", prefix, required=False, default="wrap")
    _validate_type(delta_policy, str, f"{prefix}.delta_policy")
    _validate_choice(delta_policy, DELTA_POLICY_VALUES, f"{prefix}.delta_policy")

    return SamplerConfig(
        uri=uri,
        poll_interval_seconds=float(poll_interval_seconds),
        output=output,
        name=name,
        interface=interface,
        start_at=start_at,
        delta_policy=delta_policy,
    )


def _load_samplers(data: dict) -> List[SamplerConfig]:
    if "sampler" in data and "samplers" in data:
        raise ConfigError("Configure either 'sampler' or 'samplers', not both")

    if "samplers" not in data:
        if "sampler" not in data:
            raise ConfigError("Missing required configuration field: sampler (or samplers)")
        output = _load_output(_get_nested(data, "output"), "output")
        return [_load_sampler(data["sampler"], "sampler", output)]

    entries = data["samplers"]
    _validate_type(entries, list, "samplers")
    if not entries:
        raise ConfigError("samplers must contain at least one entry")

    default_output = None
    if data.get("output") is not None:
        default_output = _load_output(data["output"], "output")

    samplers = []
    for i, entry in enumerate(entries):
        prefix = f"samplers[{i}]"
        _validate_type(entry, dict, prefix)

        if entry.get("output") is not None:
            output = _load_output(entry["output"], f"{prefix}.output")
        elif default_output is not None:
            output = default_output
        else:
            raise ConfigError(f"Missing required configuration field: {prefix}.output")

        samplers.append(_load_sampler(entry, prefix, output, name_required=True))

    names = [s.name for s in samplers]
    for name in names:
        if names.count(name) > 1:
            raise ConfigError(f"Duplicate sampler name: '{name}'")

    file_paths = [s.output.path for s in samplers if s.output.type == "file_logger"]
    for path in file_paths:
        if file_paths.count(path) > 1:
            raise ConfigError(
                f"Output file '{path}' is used by more than one sampler, "
                f"give each sampler its own output.path"
            )

    return samplers


def _load_identity(data: dict) -> IdentityConfig:
    record_data = _get_nested(data, "record", required=False, default={})
    if record_data is None:
        record_data = {}
    _validate_type(record_data, dict, "record")

    values = {}
    for name in ("root_org_id", "org_id", "env_id", "asset_id", "worker_id"):
        value = _get_nested(record_data, name, required=False, default="")
        _validate_type(value, str, f"record.{name}")
        values[name] = value

    billable = _get_nested(record_data, "billable", required=False, default=False)
    _validate_type(billable, bool, "record.billable")

    return IdentityConfig(billable=billable, **values)


def load_config(path: str) -> Config:
    """Load and validate configuration from a YAML file.

    Args:
        path: Path to the YAML configuration file

    Returns:
        Config: Validated configuration object

    Raises:
        ConfigError: If the file cannot be read or configuration is invalid
    """
    try:
        with open(path, 'r') as f:
            data = yaml.safe_load(f)
    except FileNotFoundError:
        raise ConfigError(f"Configuration file not found: {path}")
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in configuration file: {e}")

    if data is None:
        raise ConfigError("Configuration file is empty")

    if not isinstance(data, dict):
        raise ConfigError("Configuration file must contain a YAML dictionary")

    samplers = _load_samplers(data)

    # Storage configuration
    storage_data = _get_nested(data, "storage")
    storage_path = _get_nested(storage_data, "path")
    _validate_type(storage_path, str, "storage.path")

    storage = StorageConfig(path=storage_path)

    record = _load_identity(data)

    return Config(
        samplers=samplers,
        storage=storage,
        record=record,
    )
