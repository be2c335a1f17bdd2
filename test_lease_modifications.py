from datetime import date
from decimal import Decimal

from lease_calculations import calculate_all
from lease_modifications import (
    Modification,
    ModificationStatus,
    ModificationType,
    apply_modifications,
    apply_single_modification,
    calculate_modification_impact,
    calculate_termination_impact,
    get_current_contract_state,
    get_modification_history,
    validate_modification,
)


def assert_close(actual, expected, tol: float = 1.0, label: str = "") -> None:
    assert abs(float(actual) - float(expected)) < tol, f"{label}: expected {expected}, got {actual}"


def payment_change(effective: date, **fields) -> Modification:
    return Modification(
        modification_type=ModificationType.PAYMENT_CHANGE,
        effective_date=effective,
        modification_date=effective,
        description="Payment renegotiation",
        **fields,
    )


def test_payment_change_round_trip(plain_terms) -> None:
    modified = apply_single_modification(plain_terms, payment_change(date(2024, 6, 1), new_monthly_payment=1800))
    assert modified.monthly_payment == Decimal("1800")
    assert modified.replace(monthly_payment=plain_terms.monthly_payment) == plain_terms
    assert plain_terms.monthly_payment == Decimal("1500")


def test_payment_change_priority(plain_terms) -> None:
    when = date(2024, 6, 1)
    everything = payment_change(when, new_monthly_payment=2000, payment_change_amount=100, payment_change_percentage=10)
    assert apply_single_modification(plain_terms, everything).monthly_payment == Decimal("2000")

    delta_and_percentage = payment_change(when, payment_change_amount=100, payment_change_percentage=10)
    assert apply_single_modification(plain_terms, delta_and_percentage).monthly_payment == Decimal("1600")

    percentage = payment_change(when, payment_change_percentage=10)
    assert apply_single_modification(plain_terms, percentage).monthly_payment == Decimal("1650")


def test_zero_is_a_real_value(plain_terms) -> None:
    to_zero = Modification(
        modification_type="rate_change",
        effective_date="2024-06-01",
        new_discount_rate_annual=0,
    )
    assert apply_single_modification(plain_terms, to_zero).discount_rate_annual == 0


def test_term_changes_recompute_end_date(plain_terms) -> None:
    extension = Modification(ModificationType.TERM_EXTENSION, date(2024, 6, 1), new_term_months=48)
    extended = apply_single_modification(plain_terms, extension)
    assert extended.lease_term_months == 48
    assert extended.lease_end_date == date(2028, 1, 1)

    reduction = Modification(ModificationType.TERM_REDUCTION, date(2024, 6, 1), term_change_months=-12)
    reduced = apply_single_modification(plain_terms, reduction)
    assert reduced.lease_term_months == 24
    assert reduced.lease_end_date == date(2026, 1, 1)


def test_renewal_extends_term_and_resets_payment(plain_terms) -> None:
    renewal = Modification(
        ModificationType.RENEWAL,
        date(2026, 12, 1),
        renewal_term_months=12,
        renewal_monthly_payment=1600,
    )
    renewed = apply_single_modification(plain_terms, renewal)
    assert renewed.lease_term_months == 48
    assert renewed.monthly_payment == Decimal("1600")
    assert renewed.discount_rate_annual == plain_terms.discount_rate_annual


def test_modifications_apply_in_effective_date_order(plain_terms) -> None:
    later = payment_change(date(2024, 6, 1), new_monthly_payment=2000)
    earlier = payment_change(date(2024, 3, 1), payment_change_percentage=10)
    draft = Modification(
        ModificationType.PAYMENT_CHANGE,
        date(2024, 9, 1),
        new_monthly_payment=9999,
        status=ModificationStatus.DRAFT,
    )
    modified = apply_modifications(plain_terms, [later, earlier, draft])
    assert modified.monthly_payment == Decimal("2000")

    reordered = apply_modifications(plain_terms, [payment_change(date(2024, 3, 1), new_monthly_payment=2000),
                                                  payment_change(date(2024, 6, 1), payment_change_percentage=10)])
    assert reordered.monthly_payment == Decimal("2200")


def test_modification_impact(plain_terms) -> None:
    modification = payment_change(
        date(2024, 7, 1),
        payment_change_percentage=10,
        modification_fee=500,
        incentives_received=200,
    )
    impact = calculate_modification_impact(plain_terms, modification)
    base = calculate_all(plain_terms)

    assert impact.before.lease_liability == base.lease_liability_initial
    assert impact.liability_change > 0
    assert impact.payment_change == Decimal("150")
    assert impact.net_impact == impact.liability_change + Decimal("300")
    assert impact.before.remaining_term_months == 30
    assert len(impact.new_amortization_schedule) == 36
    assert impact.new_amortization_schedule[-1].ending_liability == 0


def test_termination_on_start_date(plain_terms) -> None:
    result = calculate_all(plain_terms)
    impact = calculate_termination_impact(plain_terms, plain_terms.lease_start_date, termination_fee=1000)

    assert impact.before.lease_liability == result.lease_liability_initial
    assert impact.before.right_of_use_asset == result.right_of_use_asset_initial
    assert impact.net_impact == -result.lease_liability_initial - result.right_of_use_asset_initial - Decimal("1000")
    assert impact.after.lease_liability == 0


def test_termination_mid_lease(plain_terms) -> None:
    schedule = calculate_all(plain_terms).amortization_schedule
    impact = calculate_termination_impact(plain_terms, date(2025, 1, 15))

    assert impact.before.lease_liability == schedule[11].ending_liability
    assert impact.before.right_of_use_asset == schedule[11].ending_asset
    assert impact.before.remaining_term_months == 24
    assert impact.liability_change == -schedule[11].ending_liability


def test_termination_after_term_has_nothing_left(plain_terms) -> None:
    impact = calculate_termination_impact(plain_terms, date(2027, 6, 1))
    assert impact.before.lease_liability == 0
    assert impact.before.right_of_use_asset == 0
    assert impact.net_impact == 0


def test_termination_modification_is_delegated(plain_terms) -> None:
    termination = Modification(
        ModificationType.TERMINATION,
        date(2025, 1, 1),
        termination_date=date(2025, 1, 1),
        termination_fee=250,
    )
    impact = calculate_modification_impact(plain_terms, termination)
    direct = calculate_termination_impact(plain_terms, date(2025, 1, 1), Decimal("250"))
    assert impact == direct


def test_history_measures_each_step_against_the_previous(plain_terms) -> None:
    first = payment_change(date(2024, 3, 1), new_monthly_payment=1700)
    second = Modification(
        ModificationType.RATE_CHANGE,
        date(2024, 9, 1),
        modification_date=date(2024, 9, 1),
        description="Rate reset",
        rate_change_amount=1,
    )
    history = get_modification_history(plain_terms, [second, first])

    assert [entry.modification for entry in history] == [first, second]
    assert history[1].impact.before.monthly_payment == Decimal("1700")
    assert history[1].impact.after.discount_rate_annual == Decimal("9.5")

    state = get_current_contract_state(plain_terms, [first, second])
    assert state.lease_liability_initial == history[1].impact.after.lease_liability


def test_validate_modification(plain_terms) -> None:
    valid = payment_change(date(2024, 6, 1), new_monthly_payment=1800)
    assert validate_modification(valid, plain_terms).is_valid

    missing = Modification(ModificationType.PAYMENT_CHANGE, None)
    errors = validate_modification(missing).errors
    assert "Modification date is required" in errors
    assert "Effective date is required" in errors
    assert "Modification description is required" in errors
    assert any("Payment change requires" in error for error in errors)

    backdated = Modification(
        ModificationType.TERMINATION,
        date(2024, 1, 1),
        modification_date=date(2024, 2, 1),
        description="Early exit",
    )
    errors = validate_modification(backdated).errors
    assert "Effective date must be on or after the modification date" in errors
    assert "Termination requires a termination date" in errors

    ambiguous = payment_change(date(2024, 6, 1), new_monthly_payment=1800, payment_change_percentage=5)
    assert not validate_modification(ambiguous).is_valid

    too_short = Modification(
        ModificationType.TERM_REDUCTION,
        date(2024, 6, 1),
        modification_date=date(2024, 6, 1),
        description="Cut term",
        term_change_months=-36,
    )
    assert validate_modification(too_short).is_valid
    assert "Modified lease term must be greater than zero" in validate_modification(too_short, plain_terms).errors


def test_fields_are_coerced() -> None:
    modification = Modification("payment_change", "2024-06-01", new_monthly_payment="1800.50")
    assert modification.modification_type is ModificationType.PAYMENT_CHANGE
    assert modification.effective_date == date(2024, 6, 1)
    assert modification.new_monthly_payment == Decimal("1800.50")
    assert modification.is_effective


def test_asset_change(make_terms) -> None:
    terms = make_terms(asset_fair_value=60000)
    revalued = Modification(ModificationType.ASSET_CHANGE, date(2024, 6, 1), new_asset_fair_value=55000)
    assert apply_single_modification(terms, revalued).asset_fair_value == Decimal("55000")

    written_down = Modification(ModificationType.ASSET_CHANGE, date(2024, 6, 1), asset_change_amount=-5000)
    modified = apply_single_modification(terms, written_down)
    assert modified.asset_fair_value == Decimal("55000")
    assert calculate_all(modified).lease_liability_initial == calculate_all(terms).lease_liability_initial
