"""
IFRS 16 contract modifications.

Modifications are applied in effective-date order to a base ``LeaseTerms``;
each step yields a new terms record and the original is never touched.
Impacts are measured by running the core calculation before and after.
"""

import logging
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Iterable, List, Optional, Sequence

from lease_calculations import (
    ZERO,
    HUNDRED,
    ONE,
    AmortizationPeriod,
    LeaseTerms,
    ValidationResult,
    add_months,
    calculate_all,
    find_period,
    months_between,
    optional_decimal,
    or_zero,
    to_date,
    validate_lease_data,
)

logger = logging.getLogger(__name__)


class ModificationType(Enum):
    TERM_EXTENSION = "term_extension"
    TERM_REDUCTION = "term_reduction"
    PAYMENT_CHANGE = "payment_change"
    RATE_CHANGE = "rate_change"
    ASSET_CHANGE = "asset_change"
    RENEWAL = "renewal"
    TERMINATION = "termination"


class ModificationStatus(Enum):
    DRAFT = "draft"
    APPROVED = "approved"
    EFFECTIVE = "effective"
    CANCELLED = "cancelled"


_AMOUNT_FIELDS = (
    "new_monthly_payment",
    "payment_change_amount",
    "payment_change_percentage",
    "new_discount_rate_annual",
    "rate_change_amount",
    "rate_change_percentage",
    "new_asset_fair_value",
    "asset_change_amount",
    "renewal_monthly_payment",
    "renewal_discount_rate",
    "termination_fee",
    "modification_fee",
    "additional_costs",
    "incentives_received",
)


@dataclass(frozen=True)
class Modification:
    """A change to a lease contract. Fields left as ``None`` are not part of the change."""

    modification_type: ModificationType
    effective_date: Optional[date]
    modification_date: Optional[date] = None
    description: Optional[str] = None
    status: ModificationStatus = ModificationStatus.EFFECTIVE
    new_term_months: Optional[int] = None
    term_change_months: Optional[int] = None
    new_monthly_payment: Optional[Decimal] = None
    payment_change_amount: Optional[Decimal] = None
    payment_change_percentage: Optional[Decimal] = None
    new_discount_rate_annual: Optional[Decimal] = None
    rate_change_amount: Optional[Decimal] = None
    rate_change_percentage: Optional[Decimal] = None
    new_asset_fair_value: Optional[Decimal] = None
    asset_change_amount: Optional[Decimal] = None
    renewal_term_months: Optional[int] = None
    renewal_monthly_payment: Optional[Decimal] = None
    renewal_discount_rate: Optional[Decimal] = None
    termination_date: Optional[date] = None
    termination_fee: Optional[Decimal] = None
    modification_fee: Optional[Decimal] = None
    additional_costs: Optional[Decimal] = None
    incentives_received: Optional[Decimal] = None
    justification: Optional[str] = None

    def __post_init__(self):
        set_ = object.__setattr__
        set_(self, "modification_type", ModificationType(self.modification_type))
        set_(self, "status", ModificationStatus(self.status))
        for name in ("effective_date", "modification_date", "termination_date"):
            set_(self, name, to_date(getattr(self, name)))
        for name in _AMOUNT_FIELDS:
            set_(self, name, optional_decimal(getattr(self, name)))

    @property
    def is_effective(self) -> bool:
        return self.status is ModificationStatus.EFFECTIVE


@dataclass(frozen=True)
class ContractSnapshot:
    lease_liability: Decimal
    right_of_use_asset: Decimal
    remaining_term_months: int
    monthly_payment: Decimal
    discount_rate_annual: Decimal


@dataclass(frozen=True)
class ModificationImpact:
    modification_type: ModificationType
    effective_date: Optional[date]
    before: ContractSnapshot
    after: ContractSnapshot
    liability_change: Decimal
    asset_change: Decimal
    payment_change: Decimal
    rate_change: Decimal
    term_change: int
    net_impact: Decimal
    new_amortization_schedule: List[AmortizationPeriod]
    new_total_payments: Decimal
    new_total_interest: Decimal
    new_effective_rate: Decimal
    modified_terms: Optional[LeaseTerms] = None


@dataclass(frozen=True)
class ModificationHistoryEntry:
    modification: Modification
    impact: ModificationImpact


def _sort_key(modification: Modification) -> date:
    return modification.effective_date or date.min


def _with_term(terms: LeaseTerms, term_months: int) -> LeaseTerms:
    return terms.replace(
        lease_term_months=term_months,
        lease_end_date=add_months(terms.lease_start_date, term_months),
    )


def _changed_value(
    current: Decimal,
    absolute: Optional[Decimal],
    delta: Optional[Decimal],
    percentage: Optional[Decimal],
) -> Decimal:
    if absolute is not None:
        return absolute
    if delta is not None:
        return current + delta
    if percentage is not None:
        return current * (ONE + percentage / HUNDRED)
    return current


def apply_single_modification(terms: LeaseTerms, modification: Modification) -> LeaseTerms:
    kind = modification.modification_type

    if kind in (ModificationType.TERM_EXTENSION, ModificationType.TERM_REDUCTION):
        if modification.new_term_months is not None:
            return _with_term(terms, modification.new_term_months)
        if modification.term_change_months is not None:
            return _with_term(terms, terms.lease_term_months + modification.term_change_months)
        return terms

    if kind is ModificationType.PAYMENT_CHANGE:
        return terms.replace(monthly_payment=_changed_value(
            terms.monthly_payment,
            modification.new_monthly_payment,
            modification.payment_change_amount,
            modification.payment_change_percentage,
        ))

    if kind is ModificationType.RATE_CHANGE:
        return terms.replace(discount_rate_annual=_changed_value(
            terms.discount_rate_annual,
            modification.new_discount_rate_annual,
            modification.rate_change_amount,
            modification.rate_change_percentage,
        ))

    if kind is ModificationType.ASSET_CHANGE:
        if modification.new_asset_fair_value is not None:
            return terms.replace(asset_fair_value=modification.new_asset_fair_value)
        if modification.asset_change_amount is not None:
            return terms.replace(
                asset_fair_value=or_zero(terms.asset_fair_value) + modification.asset_change_amount
            )
        return terms

    if kind is ModificationType.RENEWAL:
        modified = terms
        if modification.renewal_term_months is not None:
            modified = _with_term(modified, modified.lease_term_months + modification.renewal_term_months)
        if modification.renewal_monthly_payment is not None:
            modified = modified.replace(monthly_payment=modification.renewal_monthly_payment)
        if modification.renewal_discount_rate is not None:
            modified = modified.replace(discount_rate_annual=modification.renewal_discount_rate)
        return modified

    # Terminations are measured by calculate_termination_impact, not applied to the terms.
    return terms


def apply_modifications(terms: LeaseTerms, modifications: Iterable[Modification]) -> LeaseTerms:
    """Fold every effective modification, oldest effective date first, over the terms."""
    modified = terms
    for modification in sorted((m for m in modifications if m.is_effective), key=_sort_key):
        modified = apply_single_modification(modified, modification)
        logger.debug(
            "modification_applied",
            extra={
                "contract_id": terms.contract_id,
                "modification_type": modification.modification_type.value,
                "effective_date": str(modification.effective_date),
            },
        )
    return modified


def _remaining_term(terms: LeaseTerms, as_of: Optional[date]) -> int:
    if as_of is None:
        return terms.lease_term_months
    return max(0, terms.lease_term_months - months_between(terms.lease_start_date, as_of))


def calculate_modification_impact(
    terms: LeaseTerms,
    modification: Modification,
    prior_modifications: Sequence[Modification] = (),
) -> ModificationImpact:
    if modification.modification_type is ModificationType.TERMINATION:
        return calculate_termination_impact(
            terms,
            modification.termination_date or modification.effective_date,
            or_zero(modification.termination_fee),
            prior_modifications,
        )

    current_terms = apply_modifications(terms, prior_modifications)
    current = calculate_all(current_terms)
    modified_terms = apply_single_modification(current_terms, modification)
    modified = calculate_all(modified_terms)

    liability_change = modified.lease_liability_initial - current.lease_liability_initial
    net_impact = (
        liability_change
        + or_zero(modification.modification_fee)
        + or_zero(modification.additional_costs)
        - or_zero(modification.incentives_received)
    )

    impact = ModificationImpact(
        modification_type=modification.modification_type,
        effective_date=modification.effective_date,
        before=ContractSnapshot(
            lease_liability=current.lease_liability_initial,
            right_of_use_asset=current.right_of_use_asset_initial,
            remaining_term_months=_remaining_term(current_terms, modification.effective_date),
            monthly_payment=current_terms.monthly_payment,
            discount_rate_annual=current_terms.discount_rate_annual,
        ),
        after=ContractSnapshot(
            lease_liability=modified.lease_liability_initial,
            right_of_use_asset=modified.right_of_use_asset_initial,
            remaining_term_months=_remaining_term(modified_terms, modification.effective_date),
            monthly_payment=modified_terms.monthly_payment,
            discount_rate_annual=modified_terms.discount_rate_annual,
        ),
        liability_change=liability_change,
        asset_change=modified.right_of_use_asset_initial - current.right_of_use_asset_initial,
        payment_change=modified_terms.monthly_payment - current_terms.monthly_payment,
        rate_change=modified_terms.discount_rate_annual - current_terms.discount_rate_annual,
        term_change=modified_terms.lease_term_months - current_terms.lease_term_months,
        net_impact=net_impact,
        new_amortization_schedule=modified.amortization_schedule,
        new_total_payments=modified.total_lease_payments,
        new_total_interest=modified.total_interest_expense,
        new_effective_rate=modified.effective_interest_rate_annual,
        modified_terms=modified_terms,
    )
    logger.info(
        "modification_impact_calculated",
        extra={
            "contract_id": terms.contract_id,
            "modification_type": modification.modification_type.value,
            "net_impact": str(net_impact),
        },
    )
    return impact


def calculate_termination_impact(
    terms: LeaseTerms,
    termination_date: date,
    termination_fee: Decimal = ZERO,
    prior_modifications: Sequence[Modification] = (),
) -> ModificationImpact:
    """
    Derecognize the balances outstanding at the termination date.

    The balances are those at the start of the period containing the
    termination date: the initial amounts on the start date itself, zero
    once the term has run out.
    """
    termination_date = to_date(termination_date)
    termination_fee = or_zero(optional_decimal(termination_fee))
    current_terms = apply_modifications(terms, prior_modifications)
    current = calculate_all(current_terms)
    schedule = current.amortization_schedule

    elapsed = months_between(current_terms.lease_start_date, termination_date)
    remaining_term = max(0, current_terms.lease_term_months - elapsed)

    if elapsed <= 0:
        remaining_liability = current.lease_liability_initial
        remaining_asset = current.right_of_use_asset_initial
    else:
        row = find_period(schedule, min(elapsed, len(schedule)))
        remaining_liability = row.ending_liability
        remaining_asset = row.ending_asset

    net_impact = -remaining_liability - remaining_asset - termination_fee
    logger.info(
        "termination_impact_calculated",
        extra={
            "contract_id": terms.contract_id,
            "termination_date": termination_date.isoformat(),
            "remaining_liability": str(remaining_liability),
            "remaining_asset": str(remaining_asset),
        },
    )

    return ModificationImpact(
        modification_type=ModificationType.TERMINATION,
        effective_date=termination_date,
        before=ContractSnapshot(
            lease_liability=remaining_liability,
            right_of_use_asset=remaining_asset,
            remaining_term_months=remaining_term,
            monthly_payment=current_terms.monthly_payment,
            discount_rate_annual=current_terms.discount_rate_annual,
        ),
        after=ContractSnapshot(
            lease_liability=ZERO,
            right_of_use_asset=ZERO,
            remaining_term_months=0,
            monthly_payment=ZERO,
            discount_rate_annual=ZERO,
        ),
        liability_change=-remaining_liability,
        asset_change=-remaining_asset,
        payment_change=-current_terms.monthly_payment,
        rate_change=ZERO,
        term_change=-remaining_term,
        net_impact=net_impact,
        new_amortization_schedule=[],
        new_total_payments=ZERO,
        new_total_interest=ZERO,
        new_effective_rate=ZERO,
    )


def get_current_contract_state(terms: LeaseTerms, modifications: Iterable[Modification]):
    return calculate_all(apply_modifications(terms, modifications))


def get_modification_history(
    terms: LeaseTerms, modifications: Iterable[Modification]
) -> List[ModificationHistoryEntry]:
    """Each modification with its impact against the effective ones preceding it."""
    ordered = sorted(modifications, key=_sort_key)
    history = []
    for index, modification in enumerate(ordered):
        prior = [m for m in ordered[:index] if m.is_effective]
        history.append(ModificationHistoryEntry(
            modification=modification,
            impact=calculate_modification_impact(terms, modification, prior),
        ))
    return history


def _present(*values) -> int:
    return sum(1 for value in values if value is not None)


def validate_modification(
    modification: Modification, base_terms: Optional[LeaseTerms] = None
) -> ValidationResult:
    errors: List[str] = []
    m = modification

    if m.modification_date is None:
        errors.append("Modification date is required")
    if m.effective_date is None:
        errors.append("Effective date is required")
    if not (m.description or "").strip():
        errors.append("Modification description is required")
    if m.modification_date is not None and m.effective_date is not None:
        if m.effective_date < m.modification_date:
            errors.append("Effective date must be on or after the modification date")

    kind = m.modification_type
    if kind in (ModificationType.TERM_EXTENSION, ModificationType.TERM_REDUCTION):
        forms = _present(m.new_term_months, m.term_change_months)
        label = "Term extension" if kind is ModificationType.TERM_EXTENSION else "Term reduction"
        if forms == 0:
            errors.append(f"{label} requires a new term or a term change")
        elif forms > 1:
            errors.append(f"{label} must specify only one of new term or term change")
    elif kind is ModificationType.PAYMENT_CHANGE:
        forms = _present(m.new_monthly_payment, m.payment_change_amount, m.payment_change_percentage)
        if forms == 0:
            errors.append("Payment change requires a new payment, a change amount or a change percentage")
        elif forms > 1:
            errors.append("Payment change must specify only one of new payment, change amount or change percentage")
    elif kind is ModificationType.RATE_CHANGE:
        forms = _present(m.new_discount_rate_annual, m.rate_change_amount, m.rate_change_percentage)
        if forms == 0:
            errors.append("Rate change requires a new rate, a change amount or a change percentage")
        elif forms > 1:
            errors.append("Rate change must specify only one of new rate, change amount or change percentage")
    elif kind is ModificationType.ASSET_CHANGE:
        forms = _present(m.new_asset_fair_value, m.asset_change_amount)
        if forms == 0:
            errors.append("Asset change requires a new fair value or a change amount")
        elif forms > 1:
            errors.append("Asset change must specify only one of new fair value or change amount")
    elif kind is ModificationType.TERMINATION:
        if m.termination_date is None:
            errors.append("Termination requires a termination date")
    elif kind is ModificationType.RENEWAL:
        if m.renewal_term_months is None:
            errors.append("Renewal requires a renewal term")

    if not errors and base_terms is not None and validate_lease_data(base_terms).is_valid:
        modified = apply_single_modification(base_terms, m)
        if modified.lease_term_months <= 0:
            errors.append("Modified lease term must be greater than zero")
        if modified.monthly_payment <= 0:
            errors.append("Modified monthly payment must be greater than zero")
        if not ZERO <= modified.discount_rate_annual <= HUNDRED:
            errors.append("Modified discount rate must be between 0% and 100%")

    return ValidationResult.from_errors(errors)
