"""
Impairment testing of right-of-use assets (IFRS 16.33 / IAS 36).

Indicators are gathered from the contract data plus caller-supplied
observations; the carrying amount comes from the core calculation and is
compared with the recoverable amount, the higher of value in use and fair
value less costs to sell.
"""

import logging
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import List, Optional, Sequence, Tuple

from engine_config import DEFAULT_CONFIG, EngineConfig
from lease_calculations import (
    ZERO,
    ONE,
    LeaseTerms,
    add_months,
    calculate_all,
    discount_factor,
    ensure_valid,
    monthly_discount_rate,
    months_between,
    optional_decimal,
    or_zero,
    round_money,
    to_decimal,
)

logger = logging.getLogger(__name__)


class IndicatorType(Enum):
    EXTERNAL = "external"
    INTERNAL = "internal"
    ASSET_SPECIFIC = "asset_specific"


class Severity(Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


_IMPACT_BY_SEVERITY = {
    Severity.LOW: "minimal",
    Severity.MEDIUM: "moderate",
    Severity.HIGH: "significant",
}


@dataclass(frozen=True)
class ImpairmentObservations:
    """Conditions observed by the entity that cannot be derived from contract data."""

    adverse_economic_conditions: bool = False
    usage_pattern_changed: bool = False
    physical_damage: bool = False
    regulatory_change: bool = False


@dataclass(frozen=True)
class ImpairmentIndicator:
    indicator_type: IndicatorType
    description: str
    severity: Severity
    impact_on_value: str
    evidence: Tuple[str, ...]
    assessment_date: date


@dataclass(frozen=True)
class RecoverableAmount:
    value_in_use: Decimal
    fair_value_less_costs_to_sell: Decimal
    recoverable_amount: Decimal
    calculation_method: str
    discount_rate: Decimal
    growth_rate: Decimal
    useful_life_months: int
    residual_value: Decimal
    calculation_date: date


@dataclass(frozen=True)
class ImpairmentTest:
    test_date: date
    carrying_amount: Decimal
    recoverable_amount: Decimal
    impairment_loss: Decimal
    indicators_present: List[ImpairmentIndicator]
    recoverable_amount_calculation: RecoverableAmount
    conclusion: str
    next_test_date: date

    @property
    def is_impaired(self) -> bool:
        return self.conclusion == "impaired"


@dataclass(frozen=True)
class ImpairmentReversal:
    reversal_date: date
    previous_impairment_loss: Decimal
    new_recoverable_amount: Decimal
    reversal_amount: Decimal
    reversal_reason: str
    evidence: Tuple[str, ...] = ()


@dataclass(frozen=True)
class ImpairmentAnalysis:
    contract_id: Optional[str]
    asset_description: str
    current_tests: List[ImpairmentTest]
    reversal_history: List[ImpairmentReversal]
    impairment_status: str
    total_impairment_loss: Decimal
    net_carrying_amount: Decimal
    analysis_date: date
    next_required_test: Optional[date] = None


def _indicator(indicator_type, description, severity, evidence, as_of) -> ImpairmentIndicator:
    return ImpairmentIndicator(
        indicator_type=indicator_type,
        description=description,
        severity=severity,
        impact_on_value=_IMPACT_BY_SEVERITY[severity],
        evidence=tuple(evidence),
        assessment_date=as_of,
    )


def carrying_amount(terms: LeaseTerms) -> Decimal:
    """Current (period 1) right-of-use asset balance."""
    return calculate_all(terms).right_of_use_asset_current


def estimate_market_rate(terms: LeaseTerms, config: EngineConfig = DEFAULT_CONFIG) -> Decimal:
    return terms.discount_rate_annual + config.market_rate_premium_points


def _external_indicators(terms, as_of, observations, market_rate, carrying, config):
    indicators = []

    if terms.asset_fair_value is not None:
        threshold = carrying * (ONE - config.market_decline_threshold)
        if terms.asset_fair_value < threshold:
            indicators.append(_indicator(
                IndicatorType.EXTERNAL,
                "Significant decline in the market value of the asset",
                Severity.HIGH,
                [f"Market value: {terms.asset_fair_value}", f"Carrying amount: {carrying}"],
                as_of,
            ))

    divergence = abs(terms.discount_rate_annual - market_rate)
    if divergence > config.rate_divergence_points:
        severity = Severity.MEDIUM
    elif divergence > config.rate_divergence_low_points:
        severity = Severity.LOW
    else:
        severity = None
    if severity is not None:
        indicators.append(_indicator(
            IndicatorType.EXTERNAL,
            "Significant change in market interest rates",
            severity,
            [f"Contract rate: {terms.discount_rate_annual}%", f"Market rate: {market_rate}%"],
            as_of,
        ))

    if observations.adverse_economic_conditions:
        indicators.append(_indicator(
            IndicatorType.EXTERNAL,
            "Adverse economic conditions in the sector",
            Severity.MEDIUM,
            ["Sector market analysis", "Economic indicators"],
            as_of,
        ))

    return indicators


def _internal_indicators(terms, as_of, observations, config):
    indicators = []

    asset_age = max(0, months_between(terms.lease_start_date, as_of))
    useful_life = terms.lease_term_months
    if asset_age > useful_life * config.asset_age_ratio:
        indicators.append(_indicator(
            IndicatorType.INTERNAL,
            "Asset is approaching the end of its useful life",
            Severity.MEDIUM,
            [f"Asset age: {asset_age} months", f"Useful life: {useful_life} months"],
            as_of,
        ))

    if observations.usage_pattern_changed:
        indicators.append(_indicator(
            IndicatorType.INTERNAL,
            "Significant change in how the asset is used",
            Severity.MEDIUM,
            ["Utilisation analysis", "Operating reports"],
            as_of,
        ))

    if observations.physical_damage:
        indicators.append(_indicator(
            IndicatorType.INTERNAL,
            "Evidence of physical damage or deterioration",
            Severity.HIGH,
            ["Physical inspection", "Maintenance reports"],
            as_of,
        ))

    return indicators


def _asset_specific_indicators(terms, as_of, observations):
    indicators = []

    if (terms.asset_type or "").lower() == "technology":
        indicators.append(_indicator(
            IndicatorType.ASSET_SPECIFIC,
            "Risk of technological obsolescence",
            Severity.HIGH,
            ["Technology review", "Market trends"],
            as_of,
        ))

    if observations.regulatory_change:
        indicators.append(_indicator(
            IndicatorType.ASSET_SPECIFIC,
            "Regulatory changes affecting the use of the asset",
            Severity.MEDIUM,
            ["Regulatory analysis", "Business impact"],
            as_of,
        ))

    return indicators


def identify_all_indicators(
    terms: LeaseTerms,
    as_of: Optional[date] = None,
    observations: Optional[ImpairmentObservations] = None,
    market_rate=None,
    config: EngineConfig = DEFAULT_CONFIG,
) -> List[ImpairmentIndicator]:
    """Every indicator found, whatever its severity."""
    ensure_valid(terms)
    as_of = as_of or date.today()
    observations = observations or ImpairmentObservations()
    market_rate = optional_decimal(market_rate)
    if market_rate is None:
        market_rate = estimate_market_rate(terms, config)
    carrying = carrying_amount(terms)

    return (
        _external_indicators(terms, as_of, observations, market_rate, carrying, config)
        + _internal_indicators(terms, as_of, observations, config)
        + _asset_specific_indicators(terms, as_of, observations)
    )


def identify_impairment_indicators(
    terms: LeaseTerms,
    as_of: Optional[date] = None,
    observations: Optional[ImpairmentObservations] = None,
    market_rate=None,
    config: EngineConfig = DEFAULT_CONFIG,
) -> List[ImpairmentIndicator]:
    """Indicators of medium or high severity, the ones treated as present."""
    indicators = identify_all_indicators(terms, as_of, observations, market_rate, config)
    return [indicator for indicator in indicators if indicator.severity is not Severity.LOW]


def remaining_term_months(terms: LeaseTerms, as_of: date) -> int:
    if as_of >= terms.lease_end_date:
        return 0
    return max(0, months_between(as_of, terms.lease_end_date))


def calculate_value_in_use(terms: LeaseTerms, as_of: Optional[date] = None) -> Decimal:
    """Remaining payments and residual value discounted at the monthly rate."""
    as_of = as_of or date.today()
    r = monthly_discount_rate(terms.discount_rate_annual)
    remaining = remaining_term_months(terms, as_of)

    value = sum((terms.monthly_payment * discount_factor(r, i) for i in range(1, remaining + 1)), ZERO)
    value += or_zero(terms.asset_residual_value) * discount_factor(r, remaining)
    return round_money(value)


def calculate_fair_value_less_costs_to_sell(
    terms: LeaseTerms, config: EngineConfig = DEFAULT_CONFIG
) -> Decimal:
    fair_value = or_zero(terms.asset_fair_value)
    return round_money(max(ZERO, fair_value * (ONE - config.costs_to_sell_rate)))


def calculate_recoverable_amount(
    terms: LeaseTerms,
    as_of: Optional[date] = None,
    config: EngineConfig = DEFAULT_CONFIG,
) -> RecoverableAmount:
    ensure_valid(terms)
    as_of = as_of or date.today()
    value_in_use = calculate_value_in_use(terms, as_of)
    fair_value_less_costs = calculate_fair_value_less_costs_to_sell(terms, config)

    if value_in_use >= fair_value_less_costs:
        method = "value_in_use"
    else:
        method = "fair_value_less_costs_to_sell"

    return RecoverableAmount(
        value_in_use=value_in_use,
        fair_value_less_costs_to_sell=fair_value_less_costs,
        recoverable_amount=max(value_in_use, fair_value_less_costs),
        calculation_method=method,
        discount_rate=terms.discount_rate_annual,
        growth_rate=config.growth_rate,
        useful_life_months=terms.lease_term_months,
        residual_value=or_zero(terms.asset_residual_value),
        calculation_date=as_of,
    )


def calculate_next_test_date(
    indicators: Sequence[ImpairmentIndicator],
    as_of: date,
    config: EngineConfig = DEFAULT_CONFIG,
) -> date:
    if any(indicator.severity is Severity.HIGH for indicator in indicators):
        return add_months(as_of, config.high_severity_retest_months)
    return add_months(as_of, config.annual_retest_months)


def perform_impairment_test(
    terms: LeaseTerms,
    as_of: Optional[date] = None,
    observations: Optional[ImpairmentObservations] = None,
    market_rate=None,
    carrying=None,
    config: EngineConfig = DEFAULT_CONFIG,
) -> ImpairmentTest:
    """
    Compare the carrying amount of the right-of-use asset with its
    recoverable amount.

    ``carrying`` overrides the carrying amount taken from the core
    calculation, e.g. when a previous impairment has already been booked.
    """
    as_of = as_of or date.today()
    indicators = identify_impairment_indicators(terms, as_of, observations, market_rate, config)
    recoverable = calculate_recoverable_amount(terms, as_of, config)
    carrying = carrying_amount(terms) if carrying is None else to_decimal(carrying)

    impairment_loss = max(ZERO, carrying - recoverable.recoverable_amount)
    conclusion = "impaired" if impairment_loss > 0 else "not_impaired"

    logger.info(
        "impairment_test_performed",
        extra={
            "contract_id": terms.contract_id,
            "carrying_amount": str(carrying),
            "recoverable_amount": str(recoverable.recoverable_amount),
            "conclusion": conclusion,
            "indicators": len(indicators),
        },
    )

    return ImpairmentTest(
        test_date=as_of,
        carrying_amount=carrying,
        recoverable_amount=recoverable.recoverable_amount,
        impairment_loss=impairment_loss,
        indicators_present=indicators,
        recoverable_amount_calculation=recoverable,
        conclusion=conclusion,
        next_test_date=calculate_next_test_date(indicators, as_of, config),
    )


def assess_impairment_reversal(
    terms: LeaseTerms,
    previous_impairment_loss,
    as_of: Optional[date] = None,
    config: EngineConfig = DEFAULT_CONFIG,
) -> Optional[ImpairmentReversal]:
    """Reversal capped at the loss previously recognised; ``None`` when nothing reverses."""
    as_of = as_of or date.today()
    previous_impairment_loss = to_decimal(previous_impairment_loss)
    recoverable = calculate_recoverable_amount(terms, as_of, config)
    carrying = carrying_amount(terms)

    reversal_amount = min(previous_impairment_loss, carrying - recoverable.recoverable_amount)
    if reversal_amount <= 0:
        return None

    return ImpairmentReversal(
        reversal_date=as_of,
        previous_impairment_loss=previous_impairment_loss,
        new_recoverable_amount=recoverable.recoverable_amount,
        reversal_amount=reversal_amount,
        reversal_reason="Recovery in asset value due to changed conditions",
        evidence=("Updated market analysis", "Improved economic conditions"),
    )


def perform_impairment_analysis(
    terms: LeaseTerms,
    as_of: Optional[date] = None,
    observations: Optional[ImpairmentObservations] = None,
    reversal_history: Sequence[ImpairmentReversal] = (),
    market_rate=None,
    config: EngineConfig = DEFAULT_CONFIG,
) -> ImpairmentAnalysis:
    as_of = as_of or date.today()
    current_test = perform_impairment_test(terms, as_of, observations, market_rate, config=config)
    reversals = list(reversal_history)

    if current_test.impairment_loss > 0:
        status = "impaired"
    elif reversals:
        status = "reversed"
    else:
        status = "not_impaired"

    total_reversed = sum((reversal.reversal_amount for reversal in reversals), ZERO)
    total_loss = max(ZERO, current_test.impairment_loss - total_reversed)

    return ImpairmentAnalysis(
        contract_id=terms.contract_id,
        asset_description=terms.asset_description or "Unspecified asset",
        current_tests=[current_test],
        reversal_history=reversals,
        impairment_status=status,
        total_impairment_loss=total_loss,
        net_carrying_amount=current_test.carrying_amount - total_loss,
        analysis_date=as_of,
        next_required_test=current_test.next_test_date,
    )
