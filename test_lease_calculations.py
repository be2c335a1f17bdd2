import logging
from datetime import date
from decimal import Decimal

import pandas as pd

from lease_calculations import (
    SCHEDULE_COLUMNS,
    InvalidLeaseTermsError,
    PaymentTiming,
    calculate_all,
    calculate_effective_interest_rate,
    calculate_effective_interest_rate_annual,
    calculate_lease_liability,
    calculate_right_of_use_asset,
    calculate_total_lease_payments,
    find_period,
    generate_amortization_schedule,
    get_current_lease_liability,
    get_monthly_interest_expense,
    monthly_discount_rate,
    months_between,
    result_to_dict,
    schedule_to_frame,
    validate_lease_data,
)


def assert_close(actual, expected, tol: float = 1.0, label: str = "") -> None:
    assert abs(float(actual) - float(expected)) < tol, f"{label}: expected {expected}, got {actual}"


def test_reference_lease_with_initial_payment_and_residual(example_terms) -> None:
    result = calculate_all(example_terms)
    schedule = result.amortization_schedule

    assert result.lease_liability_initial > Decimal("1500") * 36
    assert len(schedule) == 36
    assert schedule[-1].ending_liability == 0
    assert schedule[-1].ending_asset == 0


def test_initial_payment_and_residual_settle_on_schedule(example_terms) -> None:
    schedule = generate_amortization_schedule(example_terms)
    assert_close(schedule[0].payment, 6500.0, tol=0.01, label="Initial payment settled in period 1")
    assert_close(schedule[-1].payment, 11500.0, tol=0.01, label="RVG included in final payment")


def test_zero_discount_rate(make_terms) -> None:
    terms = make_terms(discount_rate_annual=0, initial_payment=5000, guaranteed_residual_value=10000)
    liability = calculate_lease_liability(terms)
    assert liability == Decimal("69000.00")

    schedule = generate_amortization_schedule(terms)
    assert all(row.interest_expense == 0 for row in schedule)
    assert schedule[-1].ending_liability == 0


def test_higher_rate_lowers_liability(make_terms) -> None:
    liabilities = [calculate_lease_liability(make_terms(discount_rate_annual=rate)) for rate in (0, 2, 5, 8.5, 15)]
    assert liabilities == sorted(liabilities, reverse=True)
    assert len(set(liabilities)) == len(liabilities)


def test_principal_and_depreciation_conservation(make_terms) -> None:
    terms = make_terms(initial_payment=2500, guaranteed_residual_value=4000, initial_direct_costs=800, lease_incentives=300)
    result = calculate_all(terms)
    schedule = result.amortization_schedule

    assert sum(row.principal_payment for row in schedule) == result.lease_liability_initial
    assert sum(row.amortization for row in schedule) == result.right_of_use_asset_initial
    for row in schedule:
        assert row.ending_liability == row.beginning_liability - row.principal_payment
        assert row.ending_asset == row.beginning_asset - row.amortization


def test_incentives_and_direct_costs(plain_terms) -> None:
    liability = calculate_lease_liability(plain_terms)
    rou = calculate_right_of_use_asset(
        plain_terms.replace(initial_direct_costs=500, lease_incentives=300), liability
    )
    assert rou == liability + Decimal("200")


def test_incentives_beyond_liability_floor_the_asset(make_terms) -> None:
    terms = make_terms(lease_incentives=100000)
    result = calculate_all(terms)
    schedule = result.amortization_schedule

    assert result.lease_liability_initial < Decimal("100000")
    assert result.right_of_use_asset_initial == 0
    assert calculate_right_of_use_asset(terms) == 0
    assert schedule[0].beginning_asset == 0
    assert sum(row.amortization for row in schedule) == result.right_of_use_asset_initial
    assert sum(row.principal_payment for row in schedule) == result.lease_liability_initial


def test_final_period_clamp_is_flagged_and_logged(plain_terms, caplog) -> None:
    with caplog.at_level(logging.INFO, logger="lease_calculations"):
        result = calculate_all(plain_terms)

    clamped = [row.period for row in result.amortization_schedule if row.liability_clamped]
    assert clamped == [36]
    assert result.clamping_occurred

    records = [r for r in caplog.records if r.getMessage() == "liability_clamped"]
    assert len(records) == 1
    assert records[0].levelno == logging.INFO
    assert records[0].period == 36
    assert records[0].contract_id == "CT-001"


def test_exact_schedule_needs_no_clamp(plain_terms, caplog) -> None:
    with caplog.at_level(logging.INFO, logger="lease_calculations"):
        result = calculate_all(plain_terms.replace(discount_rate_annual=0))

    assert not result.clamping_occurred
    assert not any(row.liability_clamped for row in result.amortization_schedule)
    assert not any(r.getMessage() == "liability_clamped" for r in caplog.records)


def test_beginning_timing_is_annuity_due(plain_terms) -> None:
    due = plain_terms.replace(payment_timing=PaymentTiming.BEGINNING)
    r = monthly_discount_rate(8.5)

    end_liability = calculate_lease_liability(plain_terms)
    due_liability = calculate_lease_liability(due)
    assert_close(due_liability, end_liability * (1 + r), tol=0.02, label="Annuity due PV")

    schedule = generate_amortization_schedule(due)
    first = schedule[0]
    assert_close(first.interest_expense, (due_liability - Decimal("1500")) * r, tol=0.01, label="Period 1 interest")
    assert first.ending_liability == first.beginning_liability - first.principal_payment
    assert schedule[-1].ending_liability == 0


def test_variable_payments_inside_term_only(plain_terms) -> None:
    base = calculate_lease_liability(plain_terms)
    r = monthly_discount_rate(8.5)

    with_variable = plain_terms.replace(variable_payments=[{"date": "2024-06-15", "amount": 2000}])
    expected = base + Decimal("2000") * (1 + r) ** -5
    assert_close(calculate_lease_liability(with_variable), expected, tol=0.02, label="Variable payment PV")

    beyond_term = plain_terms.replace(variable_payments=[{"date": "2027-06-01", "amount": 2000}])
    assert calculate_lease_liability(beyond_term) == base


def test_total_lease_payments(example_terms) -> None:
    terms = example_terms.replace(variable_payments=[{"date": date(2024, 3, 1), "amount": 750}])
    assert calculate_total_lease_payments(terms) == Decimal("69750")


def test_effective_rates(plain_terms) -> None:
    assert calculate_effective_interest_rate_annual(plain_terms) == Decimal("8.50")
    assert calculate_effective_interest_rate(plain_terms) == Decimal("0.68")


def test_monthly_rate_compounds() -> None:
    assert_close(monthly_discount_rate(12), 0.0094888, tol=1e-6, label="Monthly rate at 12%")
    assert monthly_discount_rate(0) == 0


def test_months_between_ignores_day() -> None:
    assert months_between(date(2024, 1, 31), date(2024, 2, 1)) == 1
    assert months_between(date(2024, 1, 1), date(2026, 12, 31)) == 35
    assert months_between(date(2024, 5, 1), date(2024, 2, 1)) == -3


def test_current_figures_are_period_one(plain_terms) -> None:
    result = calculate_all(plain_terms)
    first = result.amortization_schedule[0]
    assert result.lease_liability_current == first.ending_liability
    assert result.monthly_interest_expense == first.interest_expense
    assert result.monthly_amortization == first.amortization


def test_period_lookup_outside_schedule(plain_terms) -> None:
    schedule = generate_amortization_schedule(plain_terms)
    assert find_period(schedule, 0) is None
    assert find_period(schedule, 37) is None
    assert find_period(schedule, 12).period == 12
    assert get_current_lease_liability(plain_terms, 99) == 0
    assert get_monthly_interest_expense(plain_terms, -1) == 0


def test_input_validation(make_terms) -> None:
    empty = make_terms(
        lease_start_date=None,
        lease_end_date=None,
        lease_term_months=None,
        monthly_payment=None,
        discount_rate_annual=None,
    )
    validation = validate_lease_data(empty)
    assert not validation.is_valid
    assert "Lease start date is required" in validation.errors
    assert "Monthly payment must be greater than zero" in validation.errors
    assert "Discount rate is required" in validation.errors
    assert validate_lease_data(empty) == validation

    backwards = make_terms(lease_end_date=date(2023, 12, 31), discount_rate_annual=150)
    errors = validate_lease_data(backwards).errors
    assert "Lease end date must be after the start date" in errors
    assert "Discount rate must be between 0% and 100%" in errors

    try:
        calculate_all(make_terms(monthly_payment=0))
        assert False, "Zero payment should raise error"
    except InvalidLeaseTermsError as exc:
        assert isinstance(exc, ValueError)
        assert "Monthly payment must be greater than zero" in exc.errors


def test_valid_terms_pass_validation(example_terms) -> None:
    assert validate_lease_data(example_terms).is_valid
    assert validate_lease_data(example_terms).errors == []


def test_schedule_frame_export(example_terms) -> None:
    df = schedule_to_frame(generate_amortization_schedule(example_terms))
    assert list(df.columns) == SCHEDULE_COLUMNS
    assert len(df) == 36
    assert pd.api.types.is_datetime64_any_dtype(df["date"])
    assert_close(df["ending_liability"].iloc[-1], 0.0, tol=0.01, label="Frame closing liability")
    assert_close(df["principal_payment"].sum(), float(calculate_lease_liability(example_terms)), tol=0.01)


def test_result_to_dict_is_plain(example_terms) -> None:
    payload = result_to_dict(calculate_all(example_terms))
    assert isinstance(payload["lease_liability_initial"], float)
    assert payload["amortization_schedule"][0]["date"] == "2024-01-01"
    assert len(payload["amortization_schedule"]) == 36
