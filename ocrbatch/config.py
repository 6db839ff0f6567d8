"""Scheduler configuration module.

This module provides:
- SchedulerConfig: Dataclass for all scheduler configuration options
- RunOptions: Per-call overrides accepted by ``BatchScheduler.run``
- YAML configuration file loading
"""

from __future__ import annotations

import argparse
import dataclasses
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from .constants import (
    DEFAULT_BATCH_RETRY_ATTEMPTS,
    DEFAULT_BATCH_SIZE,
    DEFAULT_DPI,
    DEFAULT_LANGUAGES,
    DEFAULT_MAX_CONCURRENT,
    DEFAULT_OEM,
    DEFAULT_PSM,
    DEFAULT_RECOGNITION_CONCURRENCY,
    DEFAULT_REINITIALIZE_EVERY,
    DEFAULT_STATUS_INTERVAL,
    LOW_CONFIDENCE,
    LOW_SUCCESS_RATE,
    MEMORY_CEILING_MB,
    OUTPUT_FORMATS,
    PREPROCESS_STEPS,
    REPORT_FILENAME,
)
from .exceptions import InvalidConfigError, MissingConfigError

logger = logging.getLogger(__name__)


def _load_yaml_config(config_path: Path) -> dict[str, Any]:
    """Load a YAML configuration file.

    Args:
        config_path: Path to YAML config file

    Returns:
        Configuration dict (empty for an empty file)

    Raises:
        MissingConfigError: If the file does not exist
        InvalidConfigError: If the file is not valid YAML or not a mapping
    """
    if not config_path.exists():
        raise MissingConfigError(f"Config file not found: {config_path}")

    try:
        with open(config_path, encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise InvalidConfigError(f"Failed to parse config file {config_path}: {e}") from e

    if not isinstance(data, dict):
        raise InvalidConfigError(f"Config file {config_path} must contain a mapping")
    return data


@dataclass(frozen=True)
class RunOptions:
    """Per-run overrides for ``BatchScheduler.run``.

    Any field left as None keeps the scheduler's configured value.
    """

    output_dir: Path | str | None = None
    batch_size: int | None = None
    max_concurrent: int | None = None
    preprocess: bool | None = None


@dataclass
class SchedulerConfig:
    """Batch scheduler configuration with validation.

    Configuration Sources (in order of precedence):
    1. RunOptions passed to ``run`` (highest priority)
    2. Constructor arguments / CLI arguments via from_cli()
    3. YAML configuration files via from_yaml()
    4. Default values (lowest priority)

    Example:
        >>> config = SchedulerConfig(batch_size=20, max_concurrent=2)
        >>> config.validate()

        >>> config = SchedulerConfig.from_yaml(Path("settings/config.yaml"))
        >>> per_run = config.with_options(RunOptions(preprocess=False))
    """

    # ==================== Batching ====================
    batch_size: int = DEFAULT_BATCH_SIZE
    max_concurrent: int = DEFAULT_MAX_CONCURRENT
    batch_retry_attempts: int = DEFAULT_BATCH_RETRY_ATTEMPTS

    # ==================== Pre-processing ====================
    preprocess: bool = True
    preprocess_steps: tuple[str, ...] = PREPROCESS_STEPS

    # ==================== Recognition ====================
    recognition_concurrency: int = DEFAULT_RECOGNITION_CONCURRENCY
    reinitialize_every: int = DEFAULT_REINITIALIZE_EVERY
    page_timeout: float | None = None
    languages: tuple[str, ...] = DEFAULT_LANGUAGES
    psm: int = DEFAULT_PSM
    oem: int = DEFAULT_OEM

    # ==================== Rendering ====================
    dpi: int = DEFAULT_DPI

    # ==================== Output ====================
    output_formats: tuple[str, ...] = OUTPUT_FORMATS
    report_filename: str = REPORT_FILENAME

    # ==================== Reporting ====================
    status_interval: int = DEFAULT_STATUS_INTERVAL
    low_success_rate: float = LOW_SUCCESS_RATE
    memory_ceiling_mb: float = MEMORY_CEILING_MB
    low_confidence: float = LOW_CONFIDENCE

    # ==================== Paths ====================
    output_dir: Path = field(default_factory=lambda: Path("output"))
    temp_dir: Path = field(default_factory=lambda: Path(".tmp"))

    def __post_init__(self) -> None:
        """Normalize paths and sequences coming from YAML/CLI."""
        if isinstance(self.output_dir, str):
            self.output_dir = Path(self.output_dir)
        if isinstance(self.temp_dir, str):
            self.temp_dir = Path(self.temp_dir)
        if isinstance(self.languages, str):
            self.languages = tuple(lang for lang in self.languages.split("+") if lang)
        self.languages = tuple(self.languages)
        self.preprocess_steps = tuple(self.preprocess_steps)
        self.output_formats = tuple(self.output_formats)

    @classmethod
    def from_yaml(cls, config_path: Path, **overrides: Any) -> SchedulerConfig:
        """Load configuration from a YAML file.

        Unknown keys are ignored with a warning. Nested ``batch``/``output``
        sections are flattened, so both of these work::

            batch_size: 20

            batch:
              batch_size: 20

        Args:
            config_path: Path to YAML configuration file
            **overrides: Values to override from file

        Returns:
            SchedulerConfig instance
        """
        yaml_config = _load_yaml_config(Path(config_path))

        flat: dict[str, Any] = {}
        for key, value in yaml_config.items():
            if isinstance(value, dict):
                flat.update(value)
            else:
                flat[key] = value

        known = {f.name for f in dataclasses.fields(cls)}
        kwargs: dict[str, Any] = {}
        for key, value in flat.items():
            if key in known:
                kwargs[key] = value
            else:
                logger.warning("Ignoring unknown config key '%s' in %s", key, config_path)

        kwargs.update(overrides)
        return cls(**kwargs)

    @classmethod
    def from_cli(cls, args: argparse.Namespace, base: SchedulerConfig | None = None) -> SchedulerConfig:
        """Create configuration from CLI arguments.

        Args:
            args: Parsed CLI arguments
            base: Configuration to start from (defaults when None)

        Returns:
            SchedulerConfig instance
        """
        # Format: (cli_name, config_name, transform_func)
        mappings: list[tuple[str, str, Any]] = [
            ("output", "output_dir", Path),
            ("batch_size", "batch_size", None),
            ("concurrent", "max_concurrent", None),
            ("recognition_concurrency", "recognition_concurrency", None),
            ("dpi", "dpi", None),
            ("temp_dir", "temp_dir", Path),
            ("languages", "languages", None),
        ]

        kwargs: dict[str, Any] = {}
        for cli_name, config_name, transform in mappings:
            value = getattr(args, cli_name, None)
            if value is not None:
                kwargs[config_name] = transform(value) if transform else value

        if getattr(args, "no_preprocess", False):
            kwargs["preprocess"] = False

        config = base if base is not None else cls()
        return dataclasses.replace(config, **kwargs)

    def with_options(self, options: RunOptions | None) -> SchedulerConfig:
        """Return a validated copy with ``options`` applied.

        Raises:
            InvalidConfigError: If the merged configuration is invalid
        """
        merged = self
        if options is not None:
            overrides = {
                name: value
                for name, value in dataclasses.asdict(options).items()
                if value is not None
            }
            merged = dataclasses.replace(self, **overrides)
        merged.validate()
        return merged

    def validate(self) -> None:
        """Validate configuration values.

        Raises:
            InvalidConfigError: If any value is out of range
        """
        positive_ints = {
            "batch_size": self.batch_size,
            "max_concurrent": self.max_concurrent,
            "recognition_concurrency": self.recognition_concurrency,
            "reinitialize_every": self.reinitialize_every,
            "status_interval": self.status_interval,
            "dpi": self.dpi,
        }
        for name, value in positive_ints.items():
            if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
                raise InvalidConfigError(f"{name} must be a positive integer, got {value!r}")

        if not isinstance(self.batch_retry_attempts, int) or self.batch_retry_attempts < 0:
            raise InvalidConfigError(
                f"batch_retry_attempts must be a non-negative integer, got {self.batch_retry_attempts!r}"
            )

        if self.page_timeout is not None and self.page_timeout <= 0:
            raise InvalidConfigError(f"page_timeout must be positive, got {self.page_timeout!r}")

        unknown_steps = [s for s in self.preprocess_steps if s not in PREPROCESS_STEPS]
        if unknown_steps:
            raise InvalidConfigError(
                f"Unknown preprocess steps: {unknown_steps}. Must be among: {list(PREPROCESS_STEPS)}"
            )

        unknown_formats = [f for f in self.output_formats if f not in OUTPUT_FORMATS]
        if unknown_formats:
            raise InvalidConfigError(
                f"Unknown output formats: {unknown_formats}. Must be among: {list(OUTPUT_FORMATS)}"
            )

        if not 0 <= self.low_success_rate <= 100:
            raise InvalidConfigError(f"low_success_rate must be within 0-100, got {self.low_success_rate!r}")

        if self.memory_ceiling_mb <= 0:
            raise InvalidConfigError(f"memory_ceiling_mb must be positive, got {self.memory_ceiling_mb!r}")

        if not self.languages:
            raise InvalidConfigError("At least one recognition language is required")

        logger.debug(
            "Configuration validated: batch_size=%d, max_concurrent=%d, recognition_concurrency=%d",
            self.batch_size,
            self.max_concurrent,
            self.recognition_concurrency,
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert configuration to a JSON-serializable dictionary."""
        data = dataclasses.asdict(self)
        data["output_dir"] = str(self.output_dir)
        data["temp_dir"] = str(self.temp_dir)
        data["languages"] = list(self.languages)
        data["preprocess_steps"] = list(self.preprocess_steps)
        data["output_formats"] = list(self.output_formats)
        return data
