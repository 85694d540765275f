"""
Treasury Parameters - mutable configuration consumed by the accounting
engine.

Values are fixed-point ints:
- endowment_percent: share of profit kept as endowment (1e20 == 100%)
- burn_limit: max burn per call as a fraction of primary supply (1e18 == 100%)
- burn_endowment_multiplier: factor applied to the endowment portion of a
  burn payout (1e18 == 1x)
- pool weights: relative influence of each pool on the bonus split

Operations take a snapshot() at their start and read from it, so a
parameter change never affects an operation already in progress.
"""

from dataclasses import dataclass, field
from typing import Dict

from endow.core.errors import InvalidParameter
from endow.core.fixed_point import PERCENT_PRECISION, PRECISION
from endow.core.state.pools import PoolKind
from endow.utils.logger import get_logger

logger = get_logger("parameters")


DEFAULT_ENDOWMENT_PERCENT = 50 * 10**18      # 50%
DEFAULT_BURN_LIMIT = 10**16                  # 1% of supply per burn
DEFAULT_BURN_MULTIPLIER = PRECISION          # 1x
DEFAULT_PRIMARY_WEIGHT = 1
DEFAULT_LP_WEIGHT = 1


@dataclass(frozen=True)
class ParameterSnapshot:
    """Read-only copy of the parameters at the start of an operation."""
    endowment_percent: int
    burn_limit: int
    burn_endowment_multiplier: int
    weights: Dict[PoolKind, int]


@dataclass
class TreasuryParameters:
    """Admin-set treasury configuration."""

    endowment_percent: int = DEFAULT_ENDOWMENT_PERCENT
    burn_limit: int = DEFAULT_BURN_LIMIT
    burn_endowment_multiplier: int = DEFAULT_BURN_MULTIPLIER
    weights: Dict[PoolKind, int] = field(default_factory=lambda: {
        PoolKind.PRIMARY: DEFAULT_PRIMARY_WEIGHT,
        PoolKind.LP: DEFAULT_LP_WEIGHT,
    })

    def __post_init__(self):
        self._check_endowment_percent(self.endowment_percent)
        self._check_burn_limit(self.burn_limit)
        self._check_burn_multiplier(self.burn_endowment_multiplier)
        for kind, weight in self.weights.items():
            self._check_weight(kind, weight)

    # =========================================================================
    # Setters
    # =========================================================================

    def set_endowment_percent(self, value: int) -> None:
        self._check_endowment_percent(value)
        logger.info(f"endowment_percent: {self.endowment_percent} -> {value}")
        self.endowment_percent = value

    def set_burn_limit(self, value: int) -> None:
        self._check_burn_limit(value)
        logger.info(f"burn_limit: {self.burn_limit} -> {value}")
        self.burn_limit = value

    def set_burn_multiplier(self, value: int) -> None:
        self._check_burn_multiplier(value)
        logger.info(f"burn_endowment_multiplier: {self.burn_endowment_multiplier} -> {value}")
        self.burn_endowment_multiplier = value

    def set_pool_weight(self, kind: PoolKind, weight: int) -> None:
        self._check_weight(kind, weight)
        logger.info(f"{kind.name} weight: {self.weights.get(kind)} -> {weight}")
        self.weights[kind] = weight

    def snapshot(self) -> ParameterSnapshot:
        return ParameterSnapshot(
            endowment_percent=self.endowment_percent,
            burn_limit=self.burn_limit,
            burn_endowment_multiplier=self.burn_endowment_multiplier,
            weights=dict(self.weights),
        )

    def to_dict(self) -> dict:
        return {
            "endowment_percent": self.endowment_percent,
            "burn_limit": self.burn_limit,
            "burn_endowment_multiplier": self.burn_endowment_multiplier,
            "weight_primary": self.weights[PoolKind.PRIMARY],
            "weight_lp": self.weights[PoolKind.LP],
        }

    @classmethod
    def from_dict(cls, data: dict) -> "TreasuryParameters":
        return cls(
            endowment_percent=int(data["endowment_percent"]),
            burn_limit=int(data["burn_limit"]),
            burn_endowment_multiplier=int(data["burn_endowment_multiplier"]),
            weights={
                PoolKind.PRIMARY: int(data["weight_primary"]),
                PoolKind.LP: int(data["weight_lp"]),
            },
        )

    # =========================================================================
    # Validation
    # =========================================================================

    @staticmethod
    def _check_int(value, name: str) -> None:
        if not isinstance(value, int) or isinstance(value, bool):
            raise InvalidParameter(f"{name} must be int, got {type(value).__name__}")

    def _check_endowment_percent(self, value: int) -> None:
        self._check_int(value, "endowment_percent")
        if not 0 <= value <= PERCENT_PRECISION:
            raise InvalidParameter(f"endowment_percent must be in [0, {PERCENT_PRECISION}], got {value}")

    def _check_burn_limit(self, value: int) -> None:
        self._check_int(value, "burn_limit")
        if not 0 <= value <= PRECISION:
            raise InvalidParameter(f"burn_limit must be in [0, {PRECISION}], got {value}")

    def _check_burn_multiplier(self, value: int) -> None:
        self._check_int(value, "burn_endowment_multiplier")
        if value <= 0:
            raise InvalidParameter(f"burn_endowment_multiplier must be > 0, got {value}")

    def _check_weight(self, kind, weight: int) -> None:
        if not isinstance(kind, PoolKind):
            raise InvalidParameter(f"Unknown pool: {kind}")
        self._check_int(weight, f"{kind.name} weight")
        if weight < 0:
            raise InvalidParameter(f"{kind.name} weight must be >= 0, got {weight}")
