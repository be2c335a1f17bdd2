# discount_rate.py
"""
Discount rate determination (IFRS 16.26).

The incremental borrowing rate is built from a reference rate plus credit,
asset, term and currency adjustments. When the asset's fair value is known
the rate implicit in the lease is solved for instead, and a market rate
built from observable spreads is the last resort.

All rates are annual percentages, in the form ``LeaseTerms.discount_rate_annual``
takes them.
"""

import logging
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Any, Callable, List, Mapping, Optional, Tuple

from engine_config import DEFAULT_CONFIG, EngineConfig
from lease_calculations import (
    ZERO,
    ONE,
    HUNDRED,
    InvalidLeaseTermsError,
    LeaseTerms,
    months_between,
    optional_decimal,
)

logger = logging.getLogger(__name__)

RATE_QUANTUM = Decimal("0.0001")
IMPLICIT_RATE_GUESS = Decimal("0.01")
IMPLICIT_RATE_TOLERANCE = Decimal("0.0001")
IMPLICIT_RATE_MAX_ITERATIONS = 100
HIGH_RISK_MARGIN = Decimal("5")

HIGH_RISK = "high risk"
MODERATE_RISK = "moderate risk"


class CalculationMethod(Enum):
    INCREMENTAL_BORROWING_RATE = "incremental_borrowing_rate"
    IMPLICIT_RATE = "implicit_rate"
    MARKET_RATE = "market_rate"


class ConfidenceLevel(Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


@dataclass(frozen=True)
class RiskAdjustment:
    factor: str
    adjustment: Decimal
    justification: str


@dataclass(frozen=True)
class MarketRateData:
    """Market inputs in percentage points."""

    base_rate: Decimal
    credit_spread: Decimal
    asset_type_adjustment: Decimal
    term_adjustment: Decimal

    def __post_init__(self):
        for name in ("base_rate", "credit_spread", "asset_type_adjustment", "term_adjustment"):
            object.__setattr__(self, name, optional_decimal(getattr(self, name)))


@dataclass(frozen=True)
class RateValidation:
    is_reasonable: bool
    comparison_with_market: Decimal
    risk_assessment: str


@dataclass(frozen=True)
class DiscountRateResult:
    calculated_rate: Decimal
    calculation_method: CalculationMethod
    confidence_level: ConfidenceLevel
    base_rate: Decimal
    risk_adjustments: Tuple[RiskAdjustment, ...]
    justification: str
    market_data: MarketRateData
    validation: RateValidation

    @property
    def total_adjustment(self) -> Decimal:
        return sum((adj.adjustment for adj in self.risk_adjustments), ZERO)


def lease_term(terms: LeaseTerms) -> int:
    """Term in months, from the contract or else from its dates."""
    months = terms.lease_term_months
    if months is None and terms.lease_start_date is not None and terms.lease_end_date is not None:
        months = months_between(terms.lease_start_date, terms.lease_end_date) + 1
    if months is None or months <= 0:
        raise InvalidLeaseTermsError(["Lease term must be greater than zero"])
    return months


def credit_risk_points(term_months: int) -> Decimal:
    if term_months <= 12:
        return Decimal("0.5")
    if term_months <= 36:
        return Decimal("1.0")
    return Decimal("1.5")


def term_risk_points(term_months: int) -> Decimal:
    for limit, points in ((12, "0.0"), (24, "0.2"), (36, "0.4"), (60, "0.6")):
        if term_months <= limit:
            return Decimal(points)
    return Decimal("0.8")


def resolve_market_data(
    terms: LeaseTerms,
    market_data: Optional[Mapping[str, Any]] = None,
    config: EngineConfig = DEFAULT_CONFIG,
) -> MarketRateData:
    """Fill the inputs the caller did not supply from config and the contract's own risk profile."""
    supplied = dict(market_data or {})
    defaults = {
        "base_rate": config.reference_base_rate,
        "credit_spread": config.credit_spread,
        "asset_type_adjustment": config.asset_risk_points(terms.asset_type),
        "term_adjustment": term_risk_points(lease_term(terms)),
    }
    return MarketRateData(**{
        name: default if supplied.get(name) is None else supplied[name]
        for name, default in defaults.items()
    })


def calculate_risk_adjustments(terms: LeaseTerms, config: EngineConfig = DEFAULT_CONFIG) -> List[RiskAdjustment]:
    months = lease_term(terms)
    adjustments = [
        RiskAdjustment("Credit risk", credit_risk_points(months), "Lessee credit profile over the lease term"),
        RiskAdjustment("Asset risk", config.asset_risk_points(terms.asset_type), "Type and characteristics of the asset"),
        RiskAdjustment("Term risk", term_risk_points(months), "Length of the lease term"),
    ]
    currency = (terms.currency_code or config.default_currency).upper()
    if currency != config.default_currency.upper():
        adjustments.append(
            RiskAdjustment("Currency risk", config.currency_risk_points, f"Exposure to {currency} exchange rates")
        )
    return adjustments


def assess_confidence_level(rate: Decimal) -> ConfidenceLevel:
    if 0 <= rate <= 25:
        return ConfidenceLevel.HIGH
    if 25 < rate <= 50:
        return ConfidenceLevel.MEDIUM
    return ConfidenceLevel.LOW


def validate_rate(rate: Decimal, market: MarketRateData) -> RateValidation:
    return RateValidation(
        is_reasonable=ZERO <= rate <= HUNDRED,
        comparison_with_market=abs(rate - market.base_rate),
        risk_assessment=HIGH_RISK if rate > market.base_rate + HIGH_RISK_MARGIN else MODERATE_RISK,
    )


def calculate_incremental_borrowing_rate(
    terms: LeaseTerms,
    market: Optional[MarketRateData] = None,
    config: EngineConfig = DEFAULT_CONFIG,
) -> DiscountRateResult:
    market = market or resolve_market_data(terms, config=config)
    adjustments = tuple(calculate_risk_adjustments(terms, config))
    total = sum((adj.adjustment for adj in adjustments), ZERO)
    rate = market.base_rate + total

    return DiscountRateResult(
        calculated_rate=rate,
        calculation_method=CalculationMethod.INCREMENTAL_BORROWING_RATE,
        confidence_level=assess_confidence_level(rate),
        base_rate=market.base_rate,
        risk_adjustments=adjustments,
        justification=(
            f"Incremental borrowing rate: base rate ({market.base_rate}%) plus "
            f"contract-specific risk adjustments ({total}%). IFRS 16.26."
        ),
        market_data=market,
        validation=validate_rate(rate, market),
    )


def annuity_present_value(payment: Decimal, monthly_rate: Decimal, periods: int) -> Decimal:
    if monthly_rate == 0:
        return payment * periods
    return payment * (ONE - (ONE + monthly_rate) ** -periods) / monthly_rate


def _annuity_slope(payment: Decimal, monthly_rate: Decimal, periods: int) -> Decimal:
    """d(present value)/d(rate)."""
    if monthly_rate == 0:
        return -payment * periods * (periods + 1) / 2
    pv = annuity_present_value(payment, monthly_rate, periods)
    return (payment * periods * (ONE + monthly_rate) ** (-periods - 1) - pv) / monthly_rate


def solve_implicit_monthly_rate(fair_value: Decimal, payment: Decimal, periods: int) -> Decimal:
    """
    Monthly rate at which ``periods`` end-of-month payments are worth ``fair_value``.

    Newton-Raphson from 1% a month. Raises ``ValueError`` when no positive
    rate exists, i.e. the payments do not exceed the fair value.
    """
    if payment <= 0 or fair_value <= 0:
        raise ValueError("Fair value and payment must be positive")
    if fair_value >= payment * periods:
        raise ValueError("Payments do not exceed the asset fair value; no positive implicit rate")

    rate = IMPLICIT_RATE_GUESS
    for _ in range(IMPLICIT_RATE_MAX_ITERATIONS):
        pv = annuity_present_value(payment, rate, periods)
        new_rate = rate - (pv - fair_value) / _annuity_slope(payment, rate, periods)
        if new_rate <= -1:
            raise ValueError("Implicit rate iteration diverged")
        if abs(new_rate - rate) < IMPLICIT_RATE_TOLERANCE:
            return new_rate
        rate = new_rate

    logger.warning(
        "implicit_rate_not_converged",
        extra={"iterations": IMPLICIT_RATE_MAX_ITERATIONS, "monthly_rate": str(rate)},
    )
    return rate


def calculate_implicit_rate(
    terms: LeaseTerms,
    market: Optional[MarketRateData] = None,
    config: EngineConfig = DEFAULT_CONFIG,
) -> DiscountRateResult:
    fair_value = terms.asset_fair_value
    if fair_value is None or fair_value <= 0:
        raise ValueError("Asset fair value is required for the implicit rate")
    if terms.monthly_payment is None or terms.monthly_payment <= 0:
        raise InvalidLeaseTermsError(["Monthly payment must be greater than zero"])

    market = market or resolve_market_data(terms, config=config)
    monthly = solve_implicit_monthly_rate(fair_value, terms.monthly_payment, lease_term(terms))
    # Annual effective, so monthly compounding in the schedule reproduces the fair value.
    rate = (((ONE + monthly) ** 12 - ONE) * HUNDRED).quantize(RATE_QUANTUM)

    return DiscountRateResult(
        calculated_rate=rate,
        calculation_method=CalculationMethod.IMPLICIT_RATE,
        confidence_level=ConfidenceLevel.MEDIUM,
        base_rate=rate,
        risk_adjustments=(),
        justification=(
            f"Rate implicit in the lease, solved from the asset fair value ({fair_value}) "
            f"and the monthly payments ({terms.monthly_payment})."
        ),
        market_data=market,
        validation=validate_rate(rate, market),
    )


def calculate_market_based_rate(
    terms: LeaseTerms,
    market: Optional[MarketRateData] = None,
    config: EngineConfig = DEFAULT_CONFIG,
) -> DiscountRateResult:
    market = market or resolve_market_data(terms, config=config)
    adjustments = (
        RiskAdjustment("Credit spread", market.credit_spread, "Lessee credit risk"),
        RiskAdjustment("Asset type", market.asset_type_adjustment, "Risk of the underlying asset class"),
        RiskAdjustment("Term", market.term_adjustment, "Length of the lease term"),
    )
    rate = market.base_rate + sum((adj.adjustment for adj in adjustments), ZERO)

    return DiscountRateResult(
        calculated_rate=rate,
        calculation_method=CalculationMethod.MARKET_RATE,
        confidence_level=ConfidenceLevel.MEDIUM,
        base_rate=market.base_rate,
        risk_adjustments=adjustments,
        justification="Market reference rate plus observable spreads for credit, asset type and term.",
        market_data=market,
        validation=validate_rate(rate, market),
    )


def calculate_discount_rate(
    terms: LeaseTerms,
    market_data: Optional[Mapping[str, Any]] = None,
    config: EngineConfig = DEFAULT_CONFIG,
) -> DiscountRateResult:
    """
    Pick the discount rate for a lease.

    Methods are tried in order: incremental borrowing rate, implicit rate,
    market rate. The first with high or medium confidence wins; a method
    that cannot be applied is skipped. The market rate is the fallback.
    """
    market = resolve_market_data(terms, market_data, config)
    methods: List[Callable[..., DiscountRateResult]] = [
        calculate_incremental_borrowing_rate,
        calculate_implicit_rate,
        calculate_market_based_rate,
    ]

    for method in methods:
        try:
            result = method(terms, market, config)
        except ValueError as exc:
            logger.warning(
                "discount_rate_method_failed",
                extra={"contract_id": terms.contract_id, "method": method.__name__, "error": str(exc)},
            )
            continue
        if result.confidence_level in (ConfidenceLevel.HIGH, ConfidenceLevel.MEDIUM):
            break
    else:
        result = calculate_market_based_rate(terms, market, config)

    logger.info(
        "discount_rate_calculated",
        extra={
            "contract_id": terms.contract_id,
            "method": result.calculation_method.value,
            "rate": str(result.calculated_rate),
            "confidence": result.confidence_level.value,
        },
    )
    return result
