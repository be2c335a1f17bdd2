from dataclasses import replace
from decimal import Decimal

import pytest

from lease_calculations import PaymentTiming, calculate_all
from qa_checks import ScheduleQAError, assert_schedule_passes, run_schedule_checks


@pytest.mark.parametrize(
    "overrides",
    [
        {},
        {"initial_payment": 5000, "guaranteed_residual_value": 10000},
        {"payment_timing": PaymentTiming.BEGINNING, "initial_direct_costs": 750},
        {"discount_rate_annual": 0, "lease_incentives": 400},
        {"variable_payments": [{"date": "2024-09-01", "amount": 1200}]},
        {"lease_term_months": 1, "lease_end_date": "2024-01-31"},
    ],
)
def test_computed_schedules_pass(make_terms, overrides) -> None:
    result = calculate_all(make_terms(**overrides))
    checks = assert_schedule_passes(result)
    assert all(check.passed for check in checks)
    assert all(check.detail == "" for check in checks)


def test_tampered_schedule_fails(plain_terms) -> None:
    result = calculate_all(plain_terms)
    schedule = list(result.amortization_schedule)
    schedule[-1] = replace(schedule[-1], ending_liability=Decimal("12.34"))
    tampered = replace(result, amortization_schedule=schedule)

    failed = {check.name: check for check in run_schedule_checks(tampered) if not check.passed}
    assert "Liability amortizes to zero" in failed
    assert "Liability rows reconcile" in failed
    assert "12.34" in failed["Liability amortizes to zero"].detail

    with pytest.raises(ScheduleQAError) as excinfo:
        assert_schedule_passes(tampered)
    assert isinstance(excinfo.value, AssertionError)
    assert {f.name for f in excinfo.value.failures} == set(failed)


def test_uneven_depreciation_is_flagged(plain_terms) -> None:
    result = calculate_all(plain_terms)
    schedule = list(result.amortization_schedule)
    first, second = schedule[0], schedule[1]
    schedule[0] = replace(first, amortization=first.amortization + 100, ending_asset=first.ending_asset - 100)
    schedule[1] = replace(
        second,
        beginning_asset=second.beginning_asset - 100,
        amortization=second.amortization - 100,
    )
    checks = {check.name: check for check in run_schedule_checks(replace(result, amortization_schedule=schedule))}

    assert not checks["Straight-line depreciation verified"].passed
    assert checks["Asset rows reconcile"].passed
    assert checks["Balances carry forward"].passed
    assert checks["Depreciation equals initial ROU asset"].passed


def test_empty_schedule(plain_terms) -> None:
    result = replace(calculate_all(plain_terms), amortization_schedule=[])
    checks = run_schedule_checks(result)
    assert len(checks) == 1
    assert not checks[0].passed
