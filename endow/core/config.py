"""
Treasury configuration.

Defines the initial economic parameters, emergency timelock window and
operational paths. Values come from (later wins):

1. Defaults below
2. A JSON config file
3. A .env file
4. ENDOW_* environment variables (e.g. ENDOW_BURN_LIMIT=20000000000000000)
"""

import json
import os
from pathlib import Path
from typing import Optional

from dotenv import dotenv_values
from pydantic import BaseModel, Field, ValidationError, model_validator

from endow.core.emergency import EMERGENCY_DELAY, EMERGENCY_EXPIRY
from endow.core.errors import InvalidParameter
from endow.core.fixed_point import PERCENT_PRECISION, PRECISION
from endow.core.parameters import (
    DEFAULT_BURN_LIMIT,
    DEFAULT_BURN_MULTIPLIER,
    DEFAULT_ENDOWMENT_PERCENT,
    DEFAULT_LP_WEIGHT,
    DEFAULT_PRIMARY_WEIGHT,
    TreasuryParameters,
)
from endow.core.state import PoolKind

ENV_PREFIX = "ENDOW_"


class TreasuryConfig(BaseModel):
    """Treasury-wide configuration parameters"""

    # Economic parameters
    endowment_percent: int = Field(DEFAULT_ENDOWMENT_PERCENT, ge=0, le=PERCENT_PRECISION)
    burn_limit: int = Field(DEFAULT_BURN_LIMIT, ge=0, le=PRECISION)
    burn_endowment_multiplier: int = Field(DEFAULT_BURN_MULTIPLIER, gt=0)
    weight_primary: int = Field(DEFAULT_PRIMARY_WEIGHT, ge=0)
    weight_lp: int = Field(DEFAULT_LP_WEIGHT, ge=0)

    # Emergency timelock (seconds)
    emergency_delay: int = Field(EMERGENCY_DELAY, ge=0)
    emergency_expiry: int = Field(EMERGENCY_EXPIRY, gt=0)

    # Paths
    data_dir: Path = Path("~/.endow")
    log_dir: Path = Path("logs")
    db_name: str = "treasury.db"

    @model_validator(mode="after")
    def _check_window(self) -> "TreasuryConfig":
        if self.emergency_expiry <= self.emergency_delay:
            raise ValueError("emergency_expiry must be greater than emergency_delay")
        return self

    def to_parameters(self) -> TreasuryParameters:
        """Initial parameter record for a new treasury."""
        return TreasuryParameters(
            endowment_percent=self.endowment_percent,
            burn_limit=self.burn_limit,
            burn_endowment_multiplier=self.burn_endowment_multiplier,
            weights={
                PoolKind.PRIMARY: self.weight_primary,
                PoolKind.LP: self.weight_lp,
            },
        )


def _prefixed(values: dict) -> dict:
    """Strip ENV_PREFIX from matching keys and lowercase them."""
    return {
        key[len(ENV_PREFIX):].lower(): value
        for key, value in values.items()
        if key.startswith(ENV_PREFIX) and value is not None
    }


def load_config(
    config_path: Optional[str] = None,
    env_file: Optional[str] = ".env",
) -> TreasuryConfig:
    """
    Load configuration from file and environment, or use defaults.

    Args:
        config_path: Optional path to a JSON config file
        env_file: .env file to read (None to skip)

    Returns:
        TreasuryConfig instance

    Raises:
        InvalidParameter: if any value fails validation
    """
    data = {}
    if config_path:
        data.update(json.loads(Path(config_path).read_text()))

    if env_file and Path(env_file).exists():
        data.update(_prefixed(dotenv_values(env_file)))

    data.update(_prefixed(dict(os.environ)))

    try:
        return TreasuryConfig(**data)
    except ValidationError as e:
        raise InvalidParameter(f"Invalid treasury config: {e}") from e
