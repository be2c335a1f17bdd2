# lease_disclosures.py
"""
IFRS 16.51-59 disclosures: maturity analysis, exercised options,
contractual restrictions, qualitative notes and the reporting-date
figures for the statements of financial position and comprehensive income.
"""

import logging
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Dict, List, Optional, Sequence, Tuple

import pandas as pd
from dateutil.relativedelta import relativedelta

from engine_config import DEFAULT_CONFIG, EngineConfig
from lease_calculations import (
    ZERO,
    AmortizationPeriod,
    LeaseTerms,
    calculate_total_lease_payments,
    ensure_valid,
    generate_amortization_schedule,
    months_between,
    schedule_to_frame,
)
from lease_modifications import (
    Modification,
    ModificationType,
    apply_modifications,
    calculate_modification_impact,
)

logger = logging.getLogger(__name__)

_OPTION_TYPES = {
    ModificationType.RENEWAL: "renewal",
    ModificationType.TERM_EXTENSION: "renewal",
    ModificationType.TERMINATION: "termination",
}


@dataclass(frozen=True)
class MaturityPeriod:
    year: int
    period_start: date
    period_end: date
    lease_liability: Decimal
    interest_expense: Decimal
    principal_payment: Decimal
    total_payment: Decimal


@dataclass(frozen=True)
class MaturityAnalysis:
    periods: List[MaturityPeriod]
    total_liability: Decimal
    total_interest: Decimal
    total_principal: Decimal
    analysis_date: date


@dataclass(frozen=True)
class ExercisedOption:
    option_type: str
    exercise_date: Optional[date]
    original_contract_id: Optional[str]
    new_terms: Dict[str, Decimal]
    liability_change: Decimal
    asset_change: Decimal
    payment_change: Decimal
    justification: str


@dataclass(frozen=True)
class ContractualRestriction:
    restriction_type: str
    description: str
    impact_level: str
    monitoring_required: bool
    compliance_status: str = "compliant"
    last_review_date: Optional[date] = None


@dataclass(frozen=True)
class QualitativeDisclosures:
    lease_policy: str
    significant_judgments: List[str]
    future_commitments: str
    risk_factors: List[str]


@dataclass(frozen=True)
class LeaseDisclosures:
    contract_id: Optional[str]
    maturity_analysis: MaturityAnalysis
    exercised_options: List[ExercisedOption]
    contractual_restrictions: List[ContractualRestriction]
    qualitative_disclosures: QualitativeDisclosures
    reporting_metrics: Dict[str, Dict[str, float]]
    disclosure_date: date
    reporting_period: str


def generate_maturity_analysis(terms: LeaseTerms, as_of: Optional[date] = None) -> MaturityAnalysis:
    """Schedule grouped by calendar year (IFRS 16.58)."""
    schedule = generate_amortization_schedule(terms)

    by_year: Dict[int, List[AmortizationPeriod]] = {}
    for row in schedule:
        by_year.setdefault(row.date.year, []).append(row)

    periods = []
    for year in sorted(by_year):
        rows = by_year[year]
        interest = sum((row.interest_expense for row in rows), ZERO)
        principal = sum((row.principal_payment for row in rows), ZERO)
        periods.append(MaturityPeriod(
            year=year,
            period_start=date(year, 1, 1),
            period_end=date(year, 12, 31),
            lease_liability=sum((row.ending_liability for row in rows), ZERO),
            interest_expense=interest,
            principal_payment=principal,
            total_payment=interest + principal,
        ))

    return MaturityAnalysis(
        periods=periods,
        total_liability=sum((p.lease_liability for p in periods), ZERO),
        total_interest=sum((p.interest_expense for p in periods), ZERO),
        total_principal=sum((p.principal_payment for p in periods), ZERO),
        analysis_date=as_of or date.today(),
    )


def _exercised_from_modification(terms, modification, prior) -> ExercisedOption:
    impact = calculate_modification_impact(terms, modification, prior)
    if impact.modified_terms is not None:
        new_terms = {
            "term_months": Decimal(impact.modified_terms.lease_term_months),
            "monthly_payment": impact.modified_terms.monthly_payment,
            "discount_rate": impact.modified_terms.discount_rate_annual,
        }
    else:
        new_terms = {"term_months": Decimal(terms.lease_term_months + impact.term_change)}

    return ExercisedOption(
        option_type=_OPTION_TYPES[modification.modification_type],
        exercise_date=modification.modification_date or modification.effective_date,
        original_contract_id=terms.contract_id,
        new_terms=new_terms,
        liability_change=impact.liability_change,
        asset_change=impact.asset_change,
        payment_change=impact.payment_change,
        justification=modification.justification or modification.description or "",
    )


def analyze_exercised_options(
    terms: LeaseTerms,
    modifications: Sequence[Modification] = (),
    as_of: Optional[date] = None,
) -> List[ExercisedOption]:
    """
    Options exercised up to ``as_of`` (IFRS 16.59(b)): renewal, extension and
    termination modifications already effective, plus contractual renewal
    options whose renewal date has passed.
    """
    as_of = as_of or date.today()
    exercised = []

    ordered = sorted(
        (m for m in modifications if m.is_effective and m.effective_date is not None),
        key=lambda m: m.effective_date,
    )
    for index, modification in enumerate(ordered):
        if modification.effective_date > as_of:
            break
        if modification.modification_type in _OPTION_TYPES:
            exercised.append(_exercised_from_modification(terms, modification, ordered[:index]))

    for option in terms.renewal_options:
        if option.renewal_date is None or option.renewal_date > as_of:
            continue
        renewal = Modification(
            modification_type=ModificationType.RENEWAL,
            effective_date=option.renewal_date,
            modification_date=option.renewal_date,
            description="Renewal option exercised under the original contract",
            renewal_term_months=option.term_months,
            renewal_monthly_payment=option.monthly_payment,
        )
        exercised.append(_exercised_from_modification(terms, renewal, ()))

    return exercised


def identify_contractual_restrictions(
    terms: LeaseTerms, config: EngineConfig = DEFAULT_CONFIG
) -> List[ContractualRestriction]:
    restrictions = []
    currency = terms.currency_code or config.default_currency

    if terms.guaranteed_residual_value is not None and terms.guaranteed_residual_value > 0:
        restrictions.append(ContractualRestriction(
            restriction_type="financial_covenant",
            description=f"Guaranteed residual value of {terms.guaranteed_residual_value} {currency}",
            impact_level="high",
            monitoring_required=True,
        ))

    if terms.asset_type:
        restrictions.append(ContractualRestriction(
            restriction_type="use_restriction",
            description=f"Use restrictions specific to {terms.asset_type}",
            impact_level="medium",
            monitoring_required=True,
        ))

    restrictions.append(ContractualRestriction(
        restriction_type="transfer_restriction",
        description="The asset cannot be transferred without the lessor's consent",
        impact_level="medium",
        monitoring_required=False,
    ))
    return restrictions


LEASE_POLICY = (
    "The entity applies IFRS 16 to all lease contracts. The lease liability is measured "
    "at the present value of future lease payments, and the right-of-use asset is "
    "depreciated straight-line over the lease term in accordance with IFRS 16.31."
)


def remaining_term_months(terms: LeaseTerms, as_of: date) -> int:
    if as_of >= terms.lease_end_date:
        return 0
    return max(0, months_between(as_of, terms.lease_end_date))


def generate_qualitative_disclosures(
    terms: LeaseTerms,
    as_of: Optional[date] = None,
    config: EngineConfig = DEFAULT_CONFIG,
) -> QualitativeDisclosures:
    as_of = as_of or date.today()
    currency = terms.currency_code or config.default_currency

    judgments = [
        f"Discount rate applied: {terms.discount_rate_annual}% p.a., "
        "based on the entity's incremental borrowing rate"
    ]
    if terms.lease_classification is not None:
        judgments.append(
            f"Lease classification: {terms.lease_classification.value}, "
            "based on the transfer of risks and rewards"
        )
    if terms.asset_fair_value is not None:
        judgments.append(
            f"Asset fair value: {terms.asset_fair_value} {currency}, based on an independent valuation"
        )

    total_payments = calculate_total_lease_payments(terms)
    commitments = (
        f"The entity has future lease commitments totalling {total_payments:,.2f} {currency} "
        f"over the next {remaining_term_months(terms, as_of)} months, including fixed and "
        "variable payments under the contracts in force."
    )

    risks = [
        "Interest rate risk: changes in market rates may affect the present value of lease liabilities",
    ]
    if currency.upper() != config.default_currency:
        risks.append("Currency risk: exposure to exchange rate fluctuations on contracts in foreign currency")
    risks.append("Credit risk: dependence on the lessor's ability to perform")
    risks.append("Obsolescence risk: assets may become obsolete before the end of the contract")

    return QualitativeDisclosures(
        lease_policy=LEASE_POLICY,
        significant_judgments=judgments,
        future_commitments=commitments,
        risk_factors=risks,
    )


def _liability_maturity(df: pd.DataFrame, ref_date: date) -> Tuple[float, float]:
    one_year_later = pd.Timestamp(ref_date + relativedelta(years=1))
    mask = (df["date"] > pd.Timestamp(ref_date)) & (df["date"] <= one_year_later)
    current = df[mask]["principal_payment"].sum()
    non_current = df[df["date"] > one_year_later]["principal_payment"].sum()
    return float(current), float(non_current)


def _year_metrics(df: pd.DataFrame, year_data: pd.DataFrame, ref_date: date) -> Dict[str, float]:
    current, non_current = _liability_maturity(df, ref_date)
    return {
        "depreciation": float(year_data["amortization"].sum()),
        "interest": float(year_data["interest_expense"].sum()),
        "principal_payments": float(year_data["principal_payment"].sum()),
        "liability_current": current,
        "liability_noncurrent": non_current,
        "rou_balance": float(year_data.iloc[-1]["ending_asset"]) if not year_data.empty else 0.0,
    }


def calculate_reporting_metrics(
    schedule: Sequence[AmortizationPeriod], reporting_date: date
) -> Dict[str, Dict[str, float]]:
    """Current and prior year figures for the primary statements."""
    df = schedule_to_frame(schedule)

    cy_data = df[df["date"].dt.year == reporting_date.year]
    py_data = df[df["date"].dt.year == reporting_date.year - 1]

    return {
        "current_year": _year_metrics(df, cy_data, reporting_date),
        "prior_year": _year_metrics(df, py_data, reporting_date - relativedelta(years=1)),
    }


def reporting_period(as_of: date) -> str:
    return f"{as_of.year}-{as_of.month:02d}"


def generate_disclosures(
    terms: LeaseTerms,
    modifications: Sequence[Modification] = (),
    as_of: Optional[date] = None,
    config: EngineConfig = DEFAULT_CONFIG,
) -> LeaseDisclosures:
    """
    Disclosures as at ``as_of``. ``terms`` are the original contract terms;
    the quantitative notes use them with every modification effective by
    ``as_of`` applied.
    """
    ensure_valid(terms)
    as_of = as_of or date.today()
    current_terms = apply_modifications(
        terms, [m for m in modifications if m.effective_date is not None and m.effective_date <= as_of]
    )
    maturity = generate_maturity_analysis(current_terms, as_of)
    schedule = generate_amortization_schedule(current_terms)

    disclosures = LeaseDisclosures(
        contract_id=terms.contract_id,
        maturity_analysis=maturity,
        exercised_options=analyze_exercised_options(terms, modifications, as_of),
        contractual_restrictions=identify_contractual_restrictions(current_terms, config),
        qualitative_disclosures=generate_qualitative_disclosures(current_terms, as_of, config),
        reporting_metrics=calculate_reporting_metrics(schedule, as_of),
        disclosure_date=as_of,
        reporting_period=reporting_period(as_of),
    )
    logger.debug(
        "disclosures_generated",
        extra={
            "contract_id": terms.contract_id,
            "reporting_period": disclosures.reporting_period,
            "maturity_years": len(maturity.periods),
            "exercised_options": len(disclosures.exercised_options),
        },
    )
    return disclosures
