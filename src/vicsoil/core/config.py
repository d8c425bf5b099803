"""
Configuration system with validation and environment awareness.
Based on Pydantic Settings for robust configuration management.
"""
import logging
from pathlib import Path
from typing import Literal, Optional, Union

import yaml
from pydantic import ConfigDict, Field, ValidationError, model_validator
from pydantic_settings import BaseSettings

from vicsoil.core.exceptions import ConfigurationError


class ModelOptions(BaseSettings):
    """Simulation switches consumed by the soil column solver"""

    full_energy: bool = Field(False, description="Solve the full energy balance (enables residual moisture)")
    frozen_soil: bool = Field(False, description="Split layers into thawed/frozen/unfrozen sublayers")
    dist_prcp: bool = Field(False, description="Solve wet and dry precipitation fractions separately")
    n_layers: int = Field(3, ge=1, description="Number of soil moisture layers")
    n_nodes: int = Field(5, ge=1, description="Number of soil thermal nodes")

    model_config = ConfigDict(env_prefix="VICSOIL_OPTIONS_", case_sensitive=False)

    @model_validator(mode="after")
    def validate_thermal_nodes(self):
        """Thermal reconciliation writes the top two nodes"""
        if (self.full_energy or self.frozen_soil) and self.n_nodes < 2:
            raise ValueError(
                "At least two thermal nodes are required when full_energy "
                "or frozen_soil is enabled"
            )
        return self

    @property
    def thermal_enabled(self) -> bool:
        return self.full_energy or self.frozen_soil

    @property
    def n_dist(self) -> int:
        """Number of precipitation branches solved per step"""
        return 2 if self.dist_prcp else 1


class NumericsConfig(BaseSettings):
    """Configuration for mass balance checking"""

    check_water_balance: bool = Field(True, description="Compute a balance for every branch")
    balance_tolerance_mm: float = Field(1e-6, gt=0, description="Tolerated closure error (mm)")
    strict_balance: bool = Field(False, description="Raise WaterBalanceError instead of warning")


class MonitoringConfig(BaseSettings):
    """Configuration for logging and diagnostics"""

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    log_format: str = Field(
        "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )


class VicsoilConfig(BaseSettings):
    """Main configuration for the vicsoil system"""

    project_name: str = "vicsoil"

    options: ModelOptions = Field(default_factory=ModelOptions)
    numerics: NumericsConfig = Field(default_factory=NumericsConfig)
    monitoring: MonitoringConfig = Field(default_factory=MonitoringConfig)

    model_config = ConfigDict(
        env_prefix="VICSOIL_",
        env_nested_delimiter="__",
        case_sensitive=False,
    )

    @classmethod
    def from_yaml(cls, yaml_path: Union[str, Path]) -> "VicsoilConfig":
        """Load configuration from YAML file"""
        yaml_path = Path(yaml_path)
        if not yaml_path.exists():
            raise FileNotFoundError(f"Config file not found: {yaml_path}")

        with open(yaml_path, encoding="utf-8") as f:
            yaml_config = yaml.safe_load(f) or {}

        try:
            return cls(**yaml_config)
        except ValidationError as e:
            raise ConfigurationError(f"Invalid configuration in {yaml_path}: {e}") from e

    def to_yaml(self, yaml_path: Union[str, Path]):
        """Save configuration to YAML file"""
        yaml_path = Path(yaml_path)
        yaml_path.parent.mkdir(parents=True, exist_ok=True)

        with open(yaml_path, "w", encoding="utf-8") as f:
            yaml.dump(self.model_dump(), f, default_flow_style=False)


def configure_logging(config: Optional[VicsoilConfig] = None):
    """Apply logging settings (intended for scripts, not library code)"""
    config = config or get_config()
    logging.basicConfig(
        level=getattr(logging, config.monitoring.log_level),
        format=config.monitoring.log_format,
    )


# Global configuration instance
_config: Optional[VicsoilConfig] = None


def get_config(config_path: Optional[Path] = None) -> VicsoilConfig:
    """Get or create configuration instance (singleton pattern)"""
    global _config

    if _config is None:
        if config_path and Path(config_path).exists():
            _config = VicsoilConfig.from_yaml(config_path)
        else:
            # Try to load from environment
            _config = VicsoilConfig()

    return _config


def set_config(config: Optional[VicsoilConfig]):
    """Set configuration (useful for testing)"""
    global _config
    _config = config
