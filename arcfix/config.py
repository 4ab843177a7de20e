"""
Configuration for a repair run.

Values come from three layers: the built-in defaults below, an optional
JSON settings file, and command-line flags. Numeric values that are missing
fall back to their documented default, values that cannot be parsed fall
back with a warning, and non-positive values are rejected.
"""

import json
import sys
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Callable, Mapping

DEFAULT_POPULATION_SIZE = 30
DEFAULT_GENERATIONS = 30
DEFAULT_RUNS = 15
DEFAULT_VALIDATION_RUNS = 150
DEFAULT_TIMEOUT = 300.0  # seconds
DEFAULT_MEMORY_MB = 1024
DEFAULT_POLL_INTERVAL = 0.15  # seconds
DEFAULT_TIMEOUT_MULTIPLIER = 15.0
TIMEOUT_MULTIPLIER_FALLBACK = 10.0
DEFAULT_CALIBRATION_RUNS = 15

DEFAULT_COMPILE_COMMAND = "ant compile"
DEFAULT_TXL_PROGRAM = "txl"
DEFAULT_SOURCE_SUFFIX = ".java"


class ConfigError(ValueError):
    """Raised when a configuration value makes the run impossible."""


def _warn(message: str) -> None:
    print(f"[!] Warning: {message}", file=sys.stderr)


@dataclass
class RepairConfig:
    """All tunables of a repair run."""

    original_project_dir: Path | None = None
    test_command: str | None = None
    population_size: int = DEFAULT_POPULATION_SIZE
    generations: int = DEFAULT_GENERATIONS
    runs: int = DEFAULT_RUNS
    validation_runs: int = DEFAULT_VALIDATION_RUNS
    timeout: float = DEFAULT_TIMEOUT
    memory_mb: int = DEFAULT_MEMORY_MB
    poll_interval: float = DEFAULT_POLL_INTERVAL
    timeout_multiplier: float = DEFAULT_TIMEOUT_MULTIPLIER
    calibration_runs: int = DEFAULT_CALIBRATION_RUNS
    calibrate: bool = False
    compile_command: str = DEFAULT_COMPILE_COMMAND
    txl_program: str = DEFAULT_TXL_PROGRAM
    operators_dir: Path = Path("operators")
    source_suffix: str = DEFAULT_SOURCE_SUFFIX
    work_dir: Path = Path("arc_work")
    output_dir: Path = Path("arc_output")
    logs_dir: Path = Path("logs")
    extra: dict[str, Any] = field(default_factory=dict)

    # Integer and float tunables, with the fallback used when parsing fails.
    _INT_FIELDS = {
        "population_size": DEFAULT_POPULATION_SIZE,
        "generations": DEFAULT_GENERATIONS,
        "runs": DEFAULT_RUNS,
        "validation_runs": DEFAULT_VALIDATION_RUNS,
        "memory_mb": DEFAULT_MEMORY_MB,
        "calibration_runs": DEFAULT_CALIBRATION_RUNS,
    }
    _FLOAT_FIELDS = {
        "timeout": DEFAULT_TIMEOUT,
        "poll_interval": DEFAULT_POLL_INTERVAL,
        "timeout_multiplier": TIMEOUT_MULTIPLIER_FALLBACK,
    }
    _PATH_FIELDS = ("original_project_dir", "operators_dir", "work_dir", "output_dir", "logs_dir")

    @property
    def project_dir(self) -> Path:
        """The shared working copy used for compiling and testing."""
        return self.work_dir / "project"

    @property
    def tmp_dir(self) -> Path:
        """Root of the per-individual source trees (``tmp/<gen>/<id>``)."""
        return self.work_dir / "tmp"

    @property
    def mutants_dir(self) -> Path:
        """Root of the mutation applier output (``mutants/<gen>/<id>/<op>``)."""
        return self.work_dir / "mutants"

    @classmethod
    def from_mapping(
        cls,
        values: Mapping[str, Any],
        warn: Callable[[str], None] = _warn,
    ) -> "RepairConfig":
        """Build a configuration from a flat mapping of setting names.

        Unknown keys are kept in ``extra``. Raises ConfigError for
        non-positive numeric values.
        """
        config = cls()
        known = {f.name for f in fields(cls)}
        for key, raw in values.items():
            if raw is None:
                continue
            if key in cls._INT_FIELDS:
                setattr(config, key, _parse_number(key, raw, int, cls._INT_FIELDS[key], warn))
            elif key in cls._FLOAT_FIELDS:
                setattr(config, key, _parse_number(key, raw, float, cls._FLOAT_FIELDS[key], warn))
            elif key in cls._PATH_FIELDS:
                setattr(config, key, Path(raw))
            elif key in known:
                setattr(config, key, raw)
            else:
                config.extra[key] = raw
        config.validate()
        return config

    def validate(self) -> None:
        """Reject non-positive numeric settings."""
        for name in list(self._INT_FIELDS) + list(self._FLOAT_FIELDS):
            value = getattr(self, name)
            if value <= 0:
                raise ConfigError(f"'{name}' must be positive, got {value}.")

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {}
        for f in fields(self):
            value = getattr(self, f.name)
            data[f.name] = str(value) if isinstance(value, Path) else value
        return data


def _parse_number(
    key: str,
    raw: Any,
    kind: type,
    fallback: int | float,
    warn: Callable[[str], None],
) -> int | float:
    try:
        if kind is int and isinstance(raw, float) and not raw.is_integer():
            raise ValueError(raw)
        return kind(raw)
    except (TypeError, ValueError):
        warn(f"could not parse '{key}' value {raw!r}; using {fallback}.")
        return fallback


def load_config(path: Path | None, overrides: Mapping[str, Any] | None = None) -> RepairConfig:
    """Load settings from a JSON file, then apply non-None ``overrides``."""
    values: dict[str, Any] = {}
    if path is not None:
        try:
            with open(path, "r", encoding="utf-8") as f:
                loaded = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise ConfigError(f"could not read settings file '{path}': {e}") from e
        if not isinstance(loaded, dict):
            raise ConfigError(f"settings file '{path}' must contain a JSON object.")
        values.update(loaded)
    if overrides:
        values.update({k: v for k, v in overrides.items() if v is not None})
    return RepairConfig.from_mapping(values)
