"""
Engine configuration.

Thresholds and assumptions shared by the impairment, sensitivity,
exemption and disclosure calculations. Defaults follow common IFRS 16
practice; callers may pass their own ``EngineConfig`` to any engine.
"""

import logging
import os
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Dict, Mapping, Optional, Tuple

logger = logging.getLogger(__name__)


def _default_low_value_thresholds() -> Dict[str, Decimal]:
    return {
        "BRL": Decimal("5000"),
        "USD": Decimal("1000"),
        "EUR": Decimal("1000"),
        "GBP": Decimal("1000"),
        "JPY": Decimal("100000"),
        "CAD": Decimal("1000"),
        "AUD": Decimal("1000"),
        "CHF": Decimal("1000"),
    }


def _default_asset_risk_premiums() -> Dict[str, Decimal]:
    return {
        "real_estate": Decimal("0.2"),
        "equipment": Decimal("0.5"),
        "vehicle": Decimal("0.8"),
        "machinery": Decimal("0.6"),
        "technology": Decimal("1.2"),
        "other": Decimal("0.7"),
    }


@dataclass(frozen=True)
class EngineConfig:
    """Configuration for the lease calculation engines."""

    # Impairment
    costs_to_sell_rate: Decimal = Decimal("0.05")
    market_decline_threshold: Decimal = Decimal("0.20")
    rate_divergence_points: Decimal = Decimal("2")
    rate_divergence_low_points: Decimal = Decimal("1")
    market_rate_premium_points: Decimal = Decimal("1")
    asset_age_ratio: Decimal = Decimal("0.70")
    growth_rate: Decimal = Decimal("0.02")
    high_severity_retest_months: int = 6
    annual_retest_months: int = 12

    # Exemptions
    short_term_threshold_months: int = 12
    renewal_probability_limit: Decimal = Decimal("50")
    low_value_thresholds: Mapping[str, Decimal] = field(default_factory=_default_low_value_thresholds)
    default_low_value_threshold: Decimal = Decimal("1000")
    building_asset_types: Tuple[str, ...] = ("real_estate", "building", "property")

    # Sensitivity
    rate_variations: Tuple[Decimal, ...] = tuple(Decimal(v) for v in ("-2", "-1", "-0.5", "0.5", "1", "2"))
    payment_variations: Tuple[Decimal, ...] = tuple(Decimal(v) for v in ("-20", "-10", "-5", "5", "10", "20"))
    term_variations: Tuple[int, ...] = (-12, -6, -3, 3, 6, 12)

    # Monte Carlo
    monte_carlo_iterations: int = 1000
    monte_carlo_rate_std: float = 1.0
    monte_carlo_payment_std: float = 0.05
    monte_carlo_term_std: float = 2.0
    histogram_buckets: int = 10

    # Discount rate, in percentage points
    reference_base_rate: Decimal = Decimal("10.5")
    credit_spread: Decimal = Decimal("2.0")
    currency_risk_points: Decimal = Decimal("0.5")
    asset_risk_premiums: Mapping[str, Decimal] = field(default_factory=_default_asset_risk_premiums)
    default_asset_risk_points: Decimal = Decimal("0.7")

    # Disclosures
    default_currency: str = "BRL"

    def __post_init__(self):
        if not Decimal("0") <= self.costs_to_sell_rate < Decimal("1"):
            raise ValueError("costs_to_sell_rate must be in [0, 1)")
        if self.short_term_threshold_months <= 0:
            raise ValueError("short_term_threshold_months must be positive")
        if self.monte_carlo_iterations <= 0:
            raise ValueError("monte_carlo_iterations must be positive")
        if self.histogram_buckets <= 0:
            raise ValueError("histogram_buckets must be positive")
        if self.default_low_value_threshold < 0:
            raise ValueError("default_low_value_threshold cannot be negative")
        if self.reference_base_rate < 0 or self.credit_spread < 0:
            raise ValueError("reference_base_rate and credit_spread cannot be negative")

        logger.debug(
            "engine_config_initialized",
            extra={
                "costs_to_sell_rate": str(self.costs_to_sell_rate),
                "short_term_threshold_months": self.short_term_threshold_months,
                "monte_carlo_iterations": self.monte_carlo_iterations,
            },
        )

    def low_value_threshold(self, currency_code: Optional[str]) -> Decimal:
        return self.low_value_thresholds.get(
            (currency_code or self.default_currency).upper(),
            self.default_low_value_threshold,
        )

    def asset_risk_points(self, asset_type: Optional[str]) -> Decimal:
        return self.asset_risk_premiums.get((asset_type or "").lower(), self.default_asset_risk_points)

    @classmethod
    def with_defaults(cls) -> "EngineConfig":
        """Create config with the standard IFRS 16 defaults."""
        return cls()

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "EngineConfig":
        """
        Build a config from ``IFRS16_*`` environment variables.

        Recognised: IFRS16_COSTS_TO_SELL_RATE, IFRS16_SHORT_TERM_MONTHS,
        IFRS16_MONTE_CARLO_ITERATIONS, IFRS16_DEFAULT_CURRENCY,
        IFRS16_REFERENCE_BASE_RATE.
        """
        env = os.environ if environ is None else environ
        overrides = {}
        if "IFRS16_COSTS_TO_SELL_RATE" in env:
            overrides["costs_to_sell_rate"] = Decimal(env["IFRS16_COSTS_TO_SELL_RATE"])
        if "IFRS16_SHORT_TERM_MONTHS" in env:
            overrides["short_term_threshold_months"] = int(env["IFRS16_SHORT_TERM_MONTHS"])
        if "IFRS16_MONTE_CARLO_ITERATIONS" in env:
            overrides["monte_carlo_iterations"] = int(env["IFRS16_MONTE_CARLO_ITERATIONS"])
        if "IFRS16_DEFAULT_CURRENCY" in env:
            overrides["default_currency"] = env["IFRS16_DEFAULT_CURRENCY"].upper()
        if "IFRS16_REFERENCE_BASE_RATE" in env:
            overrides["reference_base_rate"] = Decimal(env["IFRS16_REFERENCE_BASE_RATE"])
        return cls(**overrides)


DEFAULT_CONFIG = EngineConfig()
