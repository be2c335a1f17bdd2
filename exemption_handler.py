# exemption_handler.py
"""
Recognition exemptions of IFRS 16.5-8: short-term leases and leases of
low-value assets. Exempt leases skip the liability and right-of-use asset
and expense their payments over the lease term.
"""

import logging
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import List, Optional, Sequence

import pandas as pd
from dateutil.relativedelta import relativedelta

from engine_config import DEFAULT_CONFIG, EngineConfig
from lease_calculations import (
    ZERO,
    HUNDRED,
    LeaseTerms,
    calculate_total_lease_payments,
    ensure_valid,
    or_zero,
    round_money,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ShortTermCriteria:
    lease_term_months: int
    is_short_term: bool
    has_purchase_option: bool
    renewal_probability: Decimal
    meets_criteria: bool


@dataclass(frozen=True)
class LowValueCriteria:
    asset_fair_value: Optional[Decimal]
    currency_code: str
    low_value_threshold: Decimal
    is_low_value: bool
    asset_type: str
    meets_criteria: bool


@dataclass(frozen=True)
class SimplifiedAccounting:
    expense_recognition: str
    disclosure_requirements: List[str]
    measurement_basis: str


@dataclass(frozen=True)
class ExemptionAnalysis:
    contract_id: Optional[str]
    exemption_type: str
    short_term_criteria: ShortTermCriteria
    low_value_criteria: LowValueCriteria
    accounting_treatment: str
    simplified_accounting: SimplifiedAccounting
    justification: str
    analysis_date: date
    review_required: bool

    @property
    def is_exempt(self) -> bool:
        return self.exemption_type != "none"


@dataclass(frozen=True)
class ExemptionSummary:
    total_contracts: int
    short_term_contracts: int
    low_value_contracts: int
    exemption_contracts: int
    total_exemption_value: Decimal
    currency_code: str
    percentage_of_total: Decimal


@dataclass(frozen=True)
class ExemptionValidation:
    is_valid: bool
    errors: List[str] = field(default_factory=list)
    recommendations: List[str] = field(default_factory=list)


def renewal_probability(terms: LeaseTerms) -> Decimal:
    """Mean probability of the renewal options, 0 when there are none."""
    if not terms.renewal_options:
        return ZERO
    total = sum((or_zero(option.probability) for option in terms.renewal_options), ZERO)
    return total / len(terms.renewal_options)


def has_purchase_option(terms: LeaseTerms) -> bool:
    return terms.purchase_option is not None and terms.purchase_option.exercisable


def is_building_asset(asset_type: str, config: EngineConfig = DEFAULT_CONFIG) -> bool:
    return asset_type.lower() in config.building_asset_types


def analyze_short_term_lease(
    terms: LeaseTerms, config: EngineConfig = DEFAULT_CONFIG
) -> ShortTermCriteria:
    term = terms.lease_term_months or 0
    purchase_option = has_purchase_option(terms)
    probability = renewal_probability(terms)
    is_short_term = term <= config.short_term_threshold_months

    return ShortTermCriteria(
        lease_term_months=term,
        is_short_term=is_short_term,
        has_purchase_option=purchase_option,
        renewal_probability=probability,
        meets_criteria=is_short_term and not purchase_option and probability < config.renewal_probability_limit,
    )


def analyze_low_value_asset(
    terms: LeaseTerms, config: EngineConfig = DEFAULT_CONFIG
) -> LowValueCriteria:
    """An asset without a known fair value never qualifies as low value."""
    currency = (terms.currency_code or config.default_currency).upper()
    asset_type = terms.asset_type or "other"
    threshold = config.low_value_threshold(currency)
    fair_value = terms.asset_fair_value
    is_low_value = fair_value is not None and fair_value <= threshold

    return LowValueCriteria(
        asset_fair_value=fair_value,
        currency_code=currency,
        low_value_threshold=threshold,
        is_low_value=is_low_value,
        asset_type=asset_type,
        meets_criteria=is_low_value and not is_building_asset(asset_type, config),
    )


def _simplified_accounting(exemption_type: str) -> SimplifiedAccounting:
    if exemption_type == "short_term":
        return SimplifiedAccounting(
            expense_recognition="straight_line",
            disclosure_requirements=[
                "Identification of short-term leases",
                "Total short-term lease payments",
                "Expense recognition policy",
            ],
            measurement_basis="Payments expensed on a straight-line basis over the lease term",
        )
    if exemption_type == "low_value":
        return SimplifiedAccounting(
            expense_recognition="systematic_basis",
            disclosure_requirements=[
                "Identification of low-value assets",
                "Total value of low-value assets",
                "Classification criteria applied",
            ],
            measurement_basis="Payments expensed on a systematic basis over the lease term",
        )
    if exemption_type == "both":
        return SimplifiedAccounting(
            expense_recognition="straight_line",
            disclosure_requirements=[
                "Identification of short-term and low-value leases",
                "Total value of exempt leases",
                "Consolidated recognition policy",
            ],
            measurement_basis="Payments expensed on a straight-line basis (both exemptions apply)",
        )
    return SimplifiedAccounting(
        expense_recognition="straight_line",
        disclosure_requirements=[],
        measurement_basis="Full application of IFRS 16",
    )


def _justification(exemption_type: str, short_term: ShortTermCriteria, low_value: LowValueCriteria) -> str:
    if exemption_type == "none":
        return "The lease does not qualify for the IFRS 16.5-8 exemptions. Full IFRS 16 accounting applies."

    reasons = []
    if short_term.meets_criteria:
        reasons.append(
            f"Short-term lease (IFRS 16.6): term of {short_term.lease_term_months} months, "
            f"no purchase option and low renewal probability ({short_term.renewal_probability}%)"
        )
    if low_value.meets_criteria:
        reasons.append(
            f"Low-value asset (IFRS 16.5): fair value of {low_value.asset_fair_value} {low_value.currency_code} "
            f"within the {low_value.low_value_threshold} {low_value.currency_code} threshold, "
            f"asset type {low_value.asset_type}"
        )
    return "; ".join(reasons)


def analyze_exemptions(
    terms: LeaseTerms,
    as_of: Optional[date] = None,
    config: EngineConfig = DEFAULT_CONFIG,
) -> ExemptionAnalysis:
    short_term = analyze_short_term_lease(terms, config)
    low_value = analyze_low_value_asset(terms, config)

    if short_term.meets_criteria and low_value.meets_criteria:
        exemption_type = "both"
    elif short_term.meets_criteria:
        exemption_type = "short_term"
    elif low_value.meets_criteria:
        exemption_type = "low_value"
    else:
        exemption_type = "none"

    logger.debug(
        "exemptions_analyzed",
        extra={"contract_id": terms.contract_id, "exemption_type": exemption_type},
    )

    return ExemptionAnalysis(
        contract_id=terms.contract_id,
        exemption_type=exemption_type,
        short_term_criteria=short_term,
        low_value_criteria=low_value,
        accounting_treatment="simplified" if exemption_type != "none" else "full_ifrs16",
        simplified_accounting=_simplified_accounting(exemption_type),
        justification=_justification(exemption_type, short_term, low_value),
        analysis_date=as_of or date.today(),
        review_required=exemption_type != "none",
    )


def validate_exception_criteria(
    terms: LeaseTerms, config: EngineConfig = DEFAULT_CONFIG
) -> ExemptionValidation:
    errors = []
    recommendations = []
    short_term = analyze_short_term_lease(terms, config)
    low_value = analyze_low_value_asset(terms, config)

    if short_term.is_short_term and short_term.has_purchase_option:
        errors.append("A short-term lease with a purchase option does not qualify for the exemption")
        recommendations.append("Remove the purchase option or apply full IFRS 16")

    if short_term.is_short_term and short_term.renewal_probability >= config.renewal_probability_limit:
        errors.append("A high renewal probability prevents the short-term exemption")
        recommendations.append("Review the renewal probability or apply full IFRS 16")

    if low_value.is_low_value and is_building_asset(low_value.asset_type, config):
        errors.append("Real estate assets do not qualify for the low-value exemption")
        recommendations.append("Apply full IFRS 16 to real estate assets")

    if low_value.asset_fair_value is not None and low_value.asset_fair_value > low_value.low_value_threshold * 2:
        recommendations.append("Asset value is well above the low-value threshold - review the classification")

    return ExemptionValidation(is_valid=not errors, errors=errors, recommendations=recommendations)


def _nominal_value(terms: LeaseTerms) -> Decimal:
    return or_zero(terms.monthly_payment) * (terms.lease_term_months or 0)


def summarize_exemptions(
    contracts: Sequence[LeaseTerms], config: EngineConfig = DEFAULT_CONFIG
) -> ExemptionSummary:
    """Portfolio view: how many contracts, and how much value, sit outside the balance sheet."""
    short_term_count = low_value_count = exempt_count = 0
    exempt_value = ZERO

    for terms in contracts:
        analysis = analyze_exemptions(terms, config=config)
        if analysis.short_term_criteria.meets_criteria:
            short_term_count += 1
        if analysis.low_value_criteria.meets_criteria:
            low_value_count += 1
        if analysis.is_exempt:
            exempt_count += 1
            exempt_value += _nominal_value(terms)

    total_value = sum((_nominal_value(terms) for terms in contracts), ZERO)
    currency = contracts[0].currency_code if contracts and contracts[0].currency_code else config.default_currency

    return ExemptionSummary(
        total_contracts=len(contracts),
        short_term_contracts=short_term_count,
        low_value_contracts=low_value_count,
        exemption_contracts=exempt_count,
        total_exemption_value=exempt_value,
        currency_code=currency,
        percentage_of_total=round_money(exempt_value / total_value * HUNDRED) if total_value > 0 else ZERO,
    )


def exempt_expense_schedule(terms: LeaseTerms) -> pd.DataFrame:
    """Straight-line expense of an exempt lease: total payments spread evenly over the term."""
    ensure_valid(terms)
    term_months = terms.lease_term_months
    total = calculate_total_lease_payments(terms)
    monthly_expense = round_money(total / term_months)
    expenses = [monthly_expense] * (term_months - 1)
    expenses.append(total - monthly_expense * (term_months - 1))

    return pd.DataFrame({
        "Period": list(range(1, term_months + 1)),
        "Date": [terms.lease_start_date + relativedelta(months=i) for i in range(term_months)],
        "Lease Expense": [float(expense) for expense in expenses],
    })
