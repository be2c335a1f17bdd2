# lease_calculations.py
"""
Core IFRS 16 calculations: lease liability, right-of-use asset and the
monthly amortization schedule.

Every function takes a frozen ``LeaseTerms`` record and returns plain
values or frozen result records. Monetary values are ``Decimal`` and are
rounded to cents only where they are reported.
"""

import logging
from dataclasses import dataclass, field, fields, replace
from datetime import date
from decimal import Decimal, ROUND_HALF_UP
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

import pandas as pd
from dateutil.relativedelta import relativedelta

logger = logging.getLogger(__name__)

ZERO = Decimal("0")
ONE = Decimal("1")
HUNDRED = Decimal("100")
CENT = Decimal("0.01")


class PaymentTiming(Enum):
    BEGINNING = "beginning"
    END = "end"


class PaymentFrequency(Enum):
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    SEMI_ANNUAL = "semi-annual"
    ANNUAL = "annual"


class LeaseClassification(Enum):
    FINANCE = "finance"
    OPERATING = "operating"


class InvalidLeaseTermsError(ValueError):
    """Raised when a calculation is requested for terms that fail validation."""

    def __init__(self, errors: Sequence[str]):
        self.errors = list(errors)
        super().__init__("; ".join(self.errors))


def to_decimal(value: Any) -> Decimal:
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool):
        raise TypeError("Boolean is not a monetary amount")
    return Decimal(str(value))


def optional_decimal(value: Any) -> Optional[Decimal]:
    return None if value is None else to_decimal(value)


def to_date(value: Any) -> Optional[date]:
    if value is None or isinstance(value, date):
        return value
    return date.fromisoformat(str(value))


def round_money(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def or_zero(value: Optional[Decimal]) -> Decimal:
    """Unspecified optional amounts count as zero in arithmetic."""
    return ZERO if value is None else value


def months_between(start: date, end: date) -> int:
    """Calendar-month difference; the day of month is ignored."""
    return (end.year - start.year) * 12 + (end.month - start.month)


def add_months(start: date, months: int) -> date:
    return start + relativedelta(months=months)


@dataclass(frozen=True)
class VariablePayment:
    date: date
    amount: Decimal
    description: Optional[str] = None

    def __post_init__(self):
        object.__setattr__(self, "date", to_date(self.date))
        object.__setattr__(self, "amount", to_decimal(self.amount))


@dataclass(frozen=True)
class PurchaseOption:
    price: Decimal
    exercisable: bool = False
    exercise_date: Optional[date] = None

    def __post_init__(self):
        object.__setattr__(self, "price", to_decimal(self.price))
        object.__setattr__(self, "exercise_date", to_date(self.exercise_date))


@dataclass(frozen=True)
class RenewalOption:
    term_months: int
    monthly_payment: Decimal
    probability: Optional[Decimal] = None
    renewal_date: Optional[date] = None

    def __post_init__(self):
        object.__setattr__(self, "monthly_payment", to_decimal(self.monthly_payment))
        object.__setattr__(self, "probability", optional_decimal(self.probability))
        object.__setattr__(self, "renewal_date", to_date(self.renewal_date))


def _coerce_items(items, item_type):
    if items is None:
        return ()
    return tuple(item if isinstance(item, item_type) else item_type(**item) for item in items)


@dataclass(frozen=True)
class LeaseTerms:
    """Commercial terms of one lease contract, immutable per calculation."""

    lease_start_date: Optional[date]
    lease_end_date: Optional[date]
    lease_term_months: Optional[int]
    monthly_payment: Optional[Decimal]
    discount_rate_annual: Optional[Decimal]
    payment_timing: PaymentTiming = PaymentTiming.END
    payment_frequency: PaymentFrequency = PaymentFrequency.MONTHLY
    initial_payment: Optional[Decimal] = None
    guaranteed_residual_value: Optional[Decimal] = None
    initial_direct_costs: Optional[Decimal] = None
    lease_incentives: Optional[Decimal] = None
    variable_payments: Tuple[VariablePayment, ...] = ()
    purchase_option: Optional[PurchaseOption] = None
    renewal_options: Tuple[RenewalOption, ...] = ()
    contract_id: Optional[str] = None
    title: Optional[str] = None
    currency_code: Optional[str] = None
    asset_fair_value: Optional[Decimal] = None
    asset_residual_value: Optional[Decimal] = None
    asset_type: Optional[str] = None
    asset_description: Optional[str] = None
    lease_classification: Optional[LeaseClassification] = None

    def __post_init__(self):
        set_ = object.__setattr__
        set_(self, "lease_start_date", to_date(self.lease_start_date))
        set_(self, "lease_end_date", to_date(self.lease_end_date))
        for name in (
            "monthly_payment",
            "discount_rate_annual",
            "initial_payment",
            "guaranteed_residual_value",
            "initial_direct_costs",
            "lease_incentives",
            "asset_fair_value",
            "asset_residual_value",
        ):
            set_(self, name, optional_decimal(getattr(self, name)))
        set_(self, "payment_timing", PaymentTiming(self.payment_timing))
        set_(self, "payment_frequency", PaymentFrequency(self.payment_frequency))
        if self.lease_classification is not None:
            set_(self, "lease_classification", LeaseClassification(self.lease_classification))
        set_(self, "variable_payments", _coerce_items(self.variable_payments, VariablePayment))
        set_(self, "renewal_options", _coerce_items(self.renewal_options, RenewalOption))
        if isinstance(self.purchase_option, Mapping):
            set_(self, "purchase_option", PurchaseOption(**self.purchase_option))

    def replace(self, **changes) -> "LeaseTerms":
        return replace(self, **changes)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "LeaseTerms":
        """Build terms from a plain record, ignoring keys that are not lease fields."""
        names = {f.name for f in fields(cls)}
        return cls(**{key: value for key, value in data.items() if key in names})


@dataclass(frozen=True)
class AmortizationPeriod:
    period: int
    date: date
    beginning_liability: Decimal
    interest_expense: Decimal
    principal_payment: Decimal
    ending_liability: Decimal
    payment: Decimal
    beginning_asset: Decimal
    amortization: Decimal
    ending_asset: Decimal
    liability_clamped: bool = False


@dataclass(frozen=True)
class CalculationResult:
    lease_liability_initial: Decimal
    lease_liability_current: Decimal
    right_of_use_asset_initial: Decimal
    right_of_use_asset_current: Decimal
    monthly_interest_expense: Decimal
    monthly_principal_payment: Decimal
    monthly_amortization: Decimal
    amortization_schedule: List[AmortizationPeriod]
    total_interest_expense: Decimal
    total_principal_payments: Decimal
    total_lease_payments: Decimal
    effective_interest_rate_annual: Decimal
    effective_interest_rate_monthly: Decimal
    clamping_occurred: bool = False


@dataclass(frozen=True)
class ValidationResult:
    is_valid: bool
    errors: List[str] = field(default_factory=list)

    @classmethod
    def from_errors(cls, errors: Sequence[str]) -> "ValidationResult":
        return cls(is_valid=not errors, errors=list(errors))


def validate_lease_data(terms: LeaseTerms) -> ValidationResult:
    errors: List[str] = []

    if terms.lease_start_date is None:
        errors.append("Lease start date is required")
    if terms.lease_end_date is None:
        errors.append("Lease end date is required")
    if terms.monthly_payment is None or terms.monthly_payment <= 0:
        errors.append("Monthly payment must be greater than zero")
    if terms.lease_term_months is None or terms.lease_term_months <= 0:
        errors.append("Lease term must be greater than zero")
    if terms.discount_rate_annual is None:
        errors.append("Discount rate is required")
    elif terms.discount_rate_annual < 0 or terms.discount_rate_annual > HUNDRED:
        errors.append("Discount rate must be between 0% and 100%")

    if terms.lease_start_date is not None and terms.lease_end_date is not None:
        if terms.lease_end_date <= terms.lease_start_date:
            errors.append("Lease end date must be after the start date")

    return ValidationResult.from_errors(errors)


def ensure_valid(terms: LeaseTerms) -> None:
    validation = validate_lease_data(terms)
    if not validation.is_valid:
        raise InvalidLeaseTermsError(validation.errors)


def monthly_discount_rate(discount_rate_annual: Any) -> Decimal:
    """Compound the annual percentage rate down to a monthly rate."""
    annual = to_decimal(discount_rate_annual) / HUNDRED
    if annual == 0:
        return ZERO
    return (ONE + annual) ** (ONE / 12) - ONE


def discount_factor(monthly_rate: Decimal, months: int) -> Decimal:
    return (ONE + monthly_rate) ** -months


def variable_payments_by_offset(terms: LeaseTerms) -> Dict[int, Decimal]:
    """Variable payments falling inside the term, keyed by month offset from lease start."""
    by_offset: Dict[int, Decimal] = {}
    for payment in terms.variable_payments:
        offset = months_between(terms.lease_start_date, payment.date)
        if 0 <= offset < terms.lease_term_months:
            by_offset[offset] = by_offset.get(offset, ZERO) + payment.amount
    return by_offset


def present_value(terms: LeaseTerms) -> Decimal:
    """Present value of the lease payments, without validating the terms."""
    r = monthly_discount_rate(terms.discount_rate_annual)
    n = terms.lease_term_months
    payment = terms.monthly_payment

    if r == 0:
        pv = payment * n
    else:
        pv = payment * (ONE - discount_factor(r, n)) / r
        if terms.payment_timing is PaymentTiming.BEGINNING:
            pv *= ONE + r

    pv += or_zero(terms.initial_payment)

    if terms.guaranteed_residual_value:
        pv += terms.guaranteed_residual_value * discount_factor(r, n)

    for offset, amount in variable_payments_by_offset(terms).items():
        pv += amount * discount_factor(r, offset)

    return round_money(pv)


def calculate_lease_liability(terms: LeaseTerms) -> Decimal:
    ensure_valid(terms)
    return present_value(terms)


def _right_of_use_asset(terms: LeaseTerms, liability: Decimal) -> Decimal:
    # Incentives beyond liability plus direct costs do not create a negative asset.
    return max(round_money(liability + or_zero(terms.initial_direct_costs) - or_zero(terms.lease_incentives)), ZERO)


def calculate_right_of_use_asset(terms: LeaseTerms, liability: Optional[Decimal] = None) -> Decimal:
    if liability is None:
        liability = calculate_lease_liability(terms)
    return _right_of_use_asset(terms, to_decimal(liability))


def _build_schedule(terms: LeaseTerms, liability: Decimal, asset: Decimal) -> List[AmortizationPeriod]:
    r = monthly_discount_rate(terms.discount_rate_annual)
    n = terms.lease_term_months
    payment = terms.monthly_payment
    beginning = terms.payment_timing is PaymentTiming.BEGINNING
    variable = variable_payments_by_offset(terms)
    initial_payment = or_zero(terms.initial_payment)
    residual = or_zero(terms.guaranteed_residual_value)

    running_liability = liability
    running_asset = asset
    straight_line = running_asset / n
    reported_liability = round_money(running_liability)
    reported_asset = round_money(running_asset)

    schedule: List[AmortizationPeriod] = []
    for period in range(1, n + 1):
        # Flows settled at the start of the period reduce the balance before interest accrues.
        upfront = variable.get(period - 1, ZERO)
        if beginning:
            upfront += payment
        if period == 1:
            upfront += initial_payment
        in_arrears = ZERO if beginning else payment
        if period == n:
            in_arrears += residual

        interest = max(ZERO, (running_liability - upfront) * r)
        period_payment = upfront + in_arrears
        running_liability = running_liability + interest - period_payment

        clamped = False
        if running_liability < 0 or (period == n and round_money(running_liability) != 0):
            logger.info(
                "liability_clamped",
                extra={"period": period, "residue": str(running_liability), "contract_id": terms.contract_id},
            )
            clamped = True
        if running_liability < 0 or period == n:
            # The final period settles any sub-cent residue left by rounding the initial liability.
            running_liability = ZERO

        amortization = running_asset if period == n else min(straight_line, running_asset)
        running_asset -= amortization

        ending_liability = round_money(running_liability)
        ending_asset = round_money(running_asset)
        schedule.append(AmortizationPeriod(
            period=period,
            date=add_months(terms.lease_start_date, period - 1),
            beginning_liability=reported_liability,
            interest_expense=round_money(interest),
            principal_payment=reported_liability - ending_liability,
            ending_liability=ending_liability,
            payment=round_money(period_payment),
            beginning_asset=reported_asset,
            amortization=reported_asset - ending_asset,
            ending_asset=ending_asset,
            liability_clamped=clamped,
        ))
        reported_liability = ending_liability
        reported_asset = ending_asset

    return schedule


def generate_amortization_schedule(terms: LeaseTerms) -> List[AmortizationPeriod]:
    ensure_valid(terms)
    liability = present_value(terms)
    return _build_schedule(terms, liability, _right_of_use_asset(terms, liability))


def find_period(schedule: Sequence[AmortizationPeriod], period: int) -> Optional[AmortizationPeriod]:
    if 1 <= period <= len(schedule) and schedule[period - 1].period == period:
        return schedule[period - 1]
    return next((row for row in schedule if row.period == period), None)


def _period_value(terms: LeaseTerms, period: int, attribute: str) -> Decimal:
    row = find_period(generate_amortization_schedule(terms), period)
    return getattr(row, attribute) if row is not None else ZERO


def get_current_lease_liability(terms: LeaseTerms, period: int) -> Decimal:
    return _period_value(terms, period, "ending_liability")


def get_current_right_of_use_asset(terms: LeaseTerms, period: int) -> Decimal:
    return _period_value(terms, period, "ending_asset")


def get_monthly_interest_expense(terms: LeaseTerms, period: int) -> Decimal:
    return _period_value(terms, period, "interest_expense")


def get_monthly_amortization(terms: LeaseTerms, period: int) -> Decimal:
    return _period_value(terms, period, "amortization")


def calculate_total_interest_expense(terms: LeaseTerms) -> Decimal:
    return sum((row.interest_expense for row in generate_amortization_schedule(terms)), ZERO)


def calculate_total_principal_payments(terms: LeaseTerms) -> Decimal:
    return sum((row.principal_payment for row in generate_amortization_schedule(terms)), ZERO)


def calculate_total_lease_payments(terms: LeaseTerms) -> Decimal:
    fixed = or_zero(terms.monthly_payment) * (terms.lease_term_months or 0)
    variable = sum((payment.amount for payment in terms.variable_payments), ZERO)
    return fixed + or_zero(terms.initial_payment) + variable + or_zero(terms.guaranteed_residual_value)


def calculate_effective_interest_rate(terms: LeaseTerms) -> Decimal:
    """Monthly rate as a percentage, 2 decimals."""
    return round_money(monthly_discount_rate(terms.discount_rate_annual) * HUNDRED)


def calculate_effective_interest_rate_annual(terms: LeaseTerms) -> Decimal:
    monthly = monthly_discount_rate(terms.discount_rate_annual)
    return round_money(((ONE + monthly) ** 12 - ONE) * HUNDRED)


def calculate_all(terms: LeaseTerms) -> CalculationResult:
    """
    Perform the complete IFRS 16 calculation for one contract.

    The "current" figures are those of period 1.
    """
    ensure_valid(terms)
    liability = present_value(terms)
    asset = _right_of_use_asset(terms, liability)
    schedule = _build_schedule(terms, liability, asset)
    first = schedule[0]

    result = CalculationResult(
        lease_liability_initial=liability,
        lease_liability_current=first.ending_liability,
        right_of_use_asset_initial=asset,
        right_of_use_asset_current=first.ending_asset,
        monthly_interest_expense=first.interest_expense,
        monthly_principal_payment=first.principal_payment,
        monthly_amortization=first.amortization,
        amortization_schedule=schedule,
        total_interest_expense=sum((row.interest_expense for row in schedule), ZERO),
        total_principal_payments=sum((row.principal_payment for row in schedule), ZERO),
        total_lease_payments=calculate_total_lease_payments(terms),
        effective_interest_rate_annual=calculate_effective_interest_rate_annual(terms),
        effective_interest_rate_monthly=calculate_effective_interest_rate(terms),
        clamping_occurred=any(row.liability_clamped for row in schedule),
    )
    logger.debug(
        "lease_calculated",
        extra={
            "contract_id": terms.contract_id,
            "lease_liability_initial": str(liability),
            "right_of_use_asset_initial": str(asset),
            "periods": len(schedule),
        },
    )
    return result


SCHEDULE_COLUMNS = [
    "period",
    "date",
    "beginning_liability",
    "interest_expense",
    "principal_payment",
    "ending_liability",
    "payment",
    "beginning_asset",
    "amortization",
    "ending_asset",
    "liability_clamped",
]


def schedule_to_frame(schedule: Sequence[AmortizationPeriod]) -> pd.DataFrame:
    """Schedule as a DataFrame with float amounts, ready for CSV/JSON export."""
    rows = []
    for row in schedule:
        record = {name: getattr(row, name) for name in SCHEDULE_COLUMNS}
        for name, value in record.items():
            if isinstance(value, Decimal):
                record[name] = float(value)
        rows.append(record)
    df = pd.DataFrame(rows, columns=SCHEDULE_COLUMNS)
    df["date"] = pd.to_datetime(df["date"])
    return df


def _plain(value: Any) -> Any:
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    return value


def result_to_dict(result: CalculationResult) -> Dict[str, Any]:
    """JSON-serialisable view of a calculation result."""
    payload: Dict[str, Any] = {}
    for f in fields(result):
        value = getattr(result, f.name)
        if f.name == "amortization_schedule":
            payload[f.name] = [
                {name: _plain(getattr(row, name)) for name in SCHEDULE_COLUMNS} for row in value
            ]
        else:
            payload[f.name] = _plain(value)
    return payload
