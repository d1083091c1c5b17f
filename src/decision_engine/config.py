"""
Configuration management for the decision engine.

Centralised configuration with YAML loading and sensible defaults.  The
config drives every layer: significance and power defaults, Monte Carlo
sample counts, prior regularisation, and the tolerances and iteration
limits of the constraint strategies.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field


# ---------------------------------------------------------------------------
# Section configs
# ---------------------------------------------------------------------------

class StatisticsConfig(BaseModel):
    """Defaults for A/B significance testing and early stopping."""

    confidence_level: float = Field(default=0.95, gt=0, lt=1)
    power: float = Field(default=0.8, gt=0, lt=1)
    futility_threshold: float = Field(
        default=0.01, ge=0, description="Relative uplift below which a test is futile"
    )
    sample_size_mde: float = Field(
        default=0.1, gt=0, description="Relative MDE used for the sample-size adequacy check"
    )
    monte_carlo_samples: int = Field(default=10_000, gt=0)
    early_stop_sample_multiplier: float = Field(
        default=4.0, gt=0, description="Safety valve: stop after this many x the required sample"
    )
    seed: int | None = Field(default=None, description="Seed for the Monte Carlo generator")


class PowerConfig(BaseModel):
    """Experiment planning heuristics."""

    typical_daily_impressions: float = Field(default=1000, gt=0)
    max_extension_days: int = Field(default=14, ge=0)


class PriorsConfig(BaseModel):
    """Hierarchical prior settings."""

    regularization_strength: float = Field(default=0.1, ge=0)


class ConstraintsConfig(BaseModel):
    """Constraint projection and optimisation settings."""

    tolerance: float = Field(default=0.01, gt=0)
    optimization_tolerance: float = Field(default=0.001, gt=0)
    max_iterations: int = Field(default=100, ge=0)
    patience: int = Field(default=10, ge=1, description="Non-improving iterations before stopping")
    gradient_epsilon: float = Field(default=0.01, gt=0)
    initial_step: float = Field(default=0.01, gt=0)


# ---------------------------------------------------------------------------
# Root config
# ---------------------------------------------------------------------------

class DecisionEngineConfig(BaseModel):
    """Root configuration for the decision engine."""

    project_name: str = Field(default="decision-engine")
    environment: str = Field(default="development")

    statistics: StatisticsConfig = Field(default_factory=StatisticsConfig)
    power: PowerConfig = Field(default_factory=PowerConfig)
    priors: PriorsConfig = Field(default_factory=PriorsConfig)
    constraints: ConstraintsConfig = Field(default_factory=ConstraintsConfig)

    @classmethod
    def from_yaml(cls, path: Path | str) -> "DecisionEngineConfig":
        """Load config from a YAML file."""
        with open(Path(path)) as f:
            data = yaml.safe_load(f) or {}
        return cls(**data)

    def to_yaml(self, path: Path | str) -> None:
        """Write config to a YAML file."""
        with open(Path(path), "w") as f:
            yaml.dump(self.model_dump(), f, default_flow_style=False, sort_keys=False)

    def to_flat_dict(self) -> dict[str, Any]:
        """Return a plain dict snapshot of the config."""
        return self.model_dump()


# ---------------------------------------------------------------------------
# Global default
# ---------------------------------------------------------------------------

_config: DecisionEngineConfig | None = None


def get_config() -> DecisionEngineConfig:
    """Return the global config instance (creates default if needed)."""
    global _config
    if _config is None:
        _config = DecisionEngineConfig()
    return _config


def set_config(config: DecisionEngineConfig) -> None:
    """Override the global config instance."""
    global _config
    _config = config


def load_config(path: Path | str | None = None) -> DecisionEngineConfig:
    """
    Load config from file, falling back to standard locations, then defaults.
    """
    global _config

    if path is not None:
        _config = DecisionEngineConfig.from_yaml(path)
    else:
        for candidate in [Path("config.yaml"), Path("config/config.yaml")]:
            if candidate.exists():
                _config = DecisionEngineConfig.from_yaml(candidate)
                break
        else:
            _config = DecisionEngineConfig()

    return _config
