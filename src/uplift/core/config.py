"""Engine configuration models.

Pydantic models loaded from a YAML file. Every section has defaults, so an
empty file yields a usable configuration for evaluation; applying patterns
needs an explicit ``mutator.type``.

Example YAML:
    state_path: .uplift/state.json
    metrics_path: data/metrics.jsonl
    selection:
      min_sample_conversions: 30
    strategy:
      trailing_window: 5
      params:
        min_improvement: 5.0
        iteration_frequency: bi-weekly
    mutator:
      type: http
      url: https://cms.example.com/api/patterns/apply
      headers:
        Authorization: "Bearer ${CMS_TOKEN}"
"""

from __future__ import annotations

from pathlib import Path
from typing import Literal

import yaml
from pydantic import BaseModel, Field, ValidationError, model_validator

from uplift.core.errors import ConfigurationError
from uplift.core.models import StrategyParams


class SignificanceConfig(BaseModel):
    """Settings for confidence intervals reported alongside each test."""

    interval_level: Literal[0.95, 0.99] = Field(
        default=0.95,
        description="Confidence level for the per-arm rate interval.",
    )


class SelectionConfig(BaseModel):
    """Sample-size floors below which no winner is declared."""

    min_sample_conversions: int = Field(
        default=30,
        ge=0,
        description="Every arm needs at least this many conversions.",
    )
    min_sample_views: int = Field(
        default=100,
        ge=0,
        description="Every arm needs at least this many views.",
    )


class StrategyConfig(BaseModel):
    """Strategy optimizer settings and the initial strategy parameters."""

    trailing_window: int = Field(default=5, ge=2)
    stagnation_iterations: int = Field(
        default=3,
        ge=1,
        description="Consecutive low-velocity iterations that count as stagnation.",
    )
    min_improvement_floor: float = Field(
        default=1.0,
        ge=0.0,
        description="The optimizer never lowers min_improvement below this.",
    )
    min_improvement_step: float = Field(default=0.8, gt=0.0, le=1.0)
    max_cycle_duration_days: int = Field(default=30, ge=1)
    trend_retention: int = Field(default=30, ge=1)
    exploratory_candidates: int = Field(default=3, ge=1)
    revenue_per_lift_point: float = Field(
        default=1.0,
        ge=0.0,
        description="Proxy revenue credited per lift point for each scaled target.",
    )
    params: StrategyParams = Field(default_factory=StrategyParams)

    @model_validator(mode="after")
    def _floor_below_initial(self) -> StrategyConfig:
        if self.min_improvement_floor > self.params.min_improvement:
            raise ValueError(
                f"min_improvement_floor ({self.min_improvement_floor}) must not exceed "
                f"params.min_improvement ({self.params.min_improvement})"
            )
        return self


class RetryConfig(BaseModel):
    """Backoff for Content Mutator calls. Pure computation is never retried."""

    max_retries: int = Field(default=3, ge=0)
    base_delay: float = Field(default=0.5, ge=0.0)
    max_delay: float = Field(default=30.0, gt=0.0)
    exponential_base: float = Field(default=2.0, ge=1.0)
    jitter: bool = True

    @model_validator(mode="after")
    def _delays_ordered(self) -> RetryConfig:
        if self.base_delay > self.max_delay:
            raise ValueError(
                f"base_delay ({self.base_delay}) must not exceed max_delay ({self.max_delay})"
            )
        return self


class MutatorConfig(BaseModel):
    """Where pattern applications are sent.

    ``type`` has no default: without it no content is changed and every
    application fails. ``memory`` records calls without touching any page
    and exists for dry runs and tests.
    """

    type: Literal["http", "memory"] | None = None
    url: str | None = None
    url_env: str | None = None
    headers: dict[str, str] = Field(default_factory=dict)
    timeout: float = Field(default=30.0, gt=0.0)

    @model_validator(mode="after")
    def _http_needs_url(self) -> MutatorConfig:
        if self.type == "http" and not (self.url or self.url_env):
            raise ValueError("http mutator requires url or url_env")
        return self


class LogConfig(BaseModel):
    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    format: Literal["json", "console", "both"] = "console"
    file_path: Path | None = None

    @model_validator(mode="after")
    def _both_needs_file(self) -> LogConfig:
        if self.format == "both" and self.file_path is None:
            raise ValueError("logging.format 'both' requires logging.file_path")
        return self


class EngineConfig(BaseModel):
    """Top-level engine configuration."""

    state_path: Path = Path(".uplift/state.json")
    metrics_path: Path | None = None
    significance: SignificanceConfig = Field(default_factory=SignificanceConfig)
    selection: SelectionConfig = Field(default_factory=SelectionConfig)
    strategy: StrategyConfig = Field(default_factory=StrategyConfig)
    retry: RetryConfig = Field(default_factory=RetryConfig)
    mutator: MutatorConfig = Field(default_factory=MutatorConfig)
    logging: LogConfig = Field(default_factory=LogConfig)

    @classmethod
    def from_yaml(cls, path: Path) -> EngineConfig:
        """Load configuration from a YAML file.

        Raises:
            ConfigurationError: If the file is unreadable, not YAML, or invalid.
        """
        try:
            with open(path) as f:
                data = yaml.safe_load(f)
        except (OSError, yaml.YAMLError) as e:
            raise ConfigurationError(f"Cannot read config {path}: {e}") from e
        return cls.from_dict(data or {})

    @classmethod
    def from_yaml_string(cls, yaml_str: str) -> EngineConfig:
        try:
            data = yaml.safe_load(yaml_str)
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML: {e}") from e
        return cls.from_dict(data or {})

    @classmethod
    def from_dict(cls, data: dict) -> EngineConfig:
        try:
            return cls.model_validate(data)
        except ValidationError as e:
            raise ConfigurationError(str(e)) from e
