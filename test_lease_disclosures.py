from datetime import date
from decimal import Decimal

from lease_calculations import (
    RenewalOption,
    calculate_all,
    calculate_lease_liability,
    generate_amortization_schedule,
)
from lease_disclosures import (
    LEASE_POLICY,
    analyze_exercised_options,
    calculate_reporting_metrics,
    generate_disclosures,
    generate_maturity_analysis,
    generate_qualitative_disclosures,
    identify_contractual_restrictions,
    reporting_period,
)
from lease_modifications import Modification, ModificationType, apply_modifications


def assert_close(actual, expected, tol: float = 1.0, label: str = "") -> None:
    assert abs(float(actual) - float(expected)) < tol, f"{label}: expected {expected}, got {actual}"


def test_maturity_analysis_groups_by_year(plain_terms) -> None:
    result = calculate_all(plain_terms)
    maturity = generate_maturity_analysis(plain_terms, date(2024, 12, 31))

    assert [p.year for p in maturity.periods] == [2024, 2025, 2026]
    assert maturity.periods[0].period_start == date(2024, 1, 1)
    assert maturity.periods[0].period_end == date(2024, 12, 31)
    assert maturity.total_principal == result.lease_liability_initial
    assert maturity.total_interest == sum(row.interest_expense for row in result.amortization_schedule)
    assert_close(maturity.total_interest + maturity.total_principal, 54000, tol=0.5, label="Lifetime payments")
    for period in maturity.periods:
        assert period.total_payment == period.interest_expense + period.principal_payment
    assert maturity.analysis_date == date(2024, 12, 31)


def test_reporting_metrics(plain_terms) -> None:
    schedule = generate_amortization_schedule(plain_terms)
    metrics = calculate_reporting_metrics(schedule, date(2025, 6, 30))
    cy, py = metrics["current_year"], metrics["prior_year"]

    in_2025 = [row for row in schedule if row.date.year == 2025]
    assert_close(cy["depreciation"], sum(row.amortization for row in in_2025), tol=0.01, label="CY depreciation")
    assert_close(cy["interest"], sum(row.interest_expense for row in in_2025), tol=0.01, label="CY interest")
    assert_close(cy["rou_balance"], in_2025[-1].ending_asset, tol=0.01, label="CY closing ROU")

    next_twelve = [row for row in schedule if date(2025, 6, 30) < row.date <= date(2026, 6, 30)]
    beyond = [row for row in schedule if row.date > date(2026, 6, 30)]
    assert len(next_twelve) == 12
    assert_close(cy["liability_current"], sum(r.principal_payment for r in next_twelve), tol=0.01)
    assert_close(cy["liability_noncurrent"], sum(r.principal_payment for r in beyond), tol=0.01)

    assert_close(py["interest"], sum(row.interest_expense for row in schedule[:12]), tol=0.01, label="PY interest")
    assert cy["interest"] < py["interest"]


def test_reporting_metrics_outside_the_lease(plain_terms) -> None:
    metrics = calculate_reporting_metrics(generate_amortization_schedule(plain_terms), date(2024, 3, 31))
    assert metrics["prior_year"]["depreciation"] == 0.0
    assert metrics["prior_year"]["rou_balance"] == 0.0


def test_reporting_period_label() -> None:
    assert reporting_period(date(2025, 6, 30)) == "2025-06"
    assert reporting_period(date(2024, 12, 1)) == "2024-12"


def test_exercised_options(make_terms) -> None:
    terms = make_terms(
        renewal_options=[{"term_months": 12, "monthly_payment": 1600, "renewal_date": "2024-12-01"}],
    )
    renewal = Modification(
        ModificationType.RENEWAL,
        date(2025, 1, 1),
        modification_date=date(2024, 11, 15),
        description="Renewal negotiated with the lessor",
        renewal_term_months=12,
        renewal_monthly_payment=1550,
    )
    payment = Modification(ModificationType.PAYMENT_CHANGE, date(2024, 6, 1), new_monthly_payment=1400)
    termination = Modification(
        ModificationType.TERMINATION,
        date(2026, 1, 1),
        termination_date=date(2026, 1, 1),
    )

    options = analyze_exercised_options(terms, [termination, renewal, payment], date(2025, 6, 30))
    assert [o.option_type for o in options] == ["renewal", "renewal"]

    negotiated, contractual = options
    assert negotiated.exercise_date == date(2024, 11, 15)
    assert negotiated.new_terms["term_months"] == Decimal("48")
    assert negotiated.payment_change == Decimal("150")
    assert negotiated.liability_change > 0
    assert negotiated.justification == "Renewal negotiated with the lessor"
    assert negotiated.original_contract_id == "CT-001"

    assert contractual.exercise_date == date(2024, 12, 1)
    assert contractual.payment_change == Decimal("100")

    later = analyze_exercised_options(terms, [termination], date(2026, 3, 31))
    assert later[0].option_type == "termination"
    assert later[0].liability_change < 0


def test_no_options_before_they_are_exercised(make_terms) -> None:
    terms = make_terms(renewal_options=[RenewalOption(12, 1600, renewal_date=date(2026, 12, 1))])
    assert analyze_exercised_options(terms, [], date(2025, 6, 30)) == []


def test_contractual_restrictions(plain_terms, example_terms) -> None:
    plain = identify_contractual_restrictions(plain_terms)
    assert [r.restriction_type for r in plain] == ["transfer_restriction"]
    assert not plain[0].monitoring_required

    detailed = identify_contractual_restrictions(example_terms.replace(asset_type="vehicle"))
    assert [r.restriction_type for r in detailed] == [
        "financial_covenant",
        "use_restriction",
        "transfer_restriction",
    ]
    assert detailed[0].impact_level == "high"
    assert "BRL" in detailed[0].description
    assert all(r.compliance_status == "compliant" for r in detailed)


def test_qualitative_disclosures(plain_terms) -> None:
    notes = generate_qualitative_disclosures(plain_terms, date(2025, 1, 1))
    assert notes.lease_policy == LEASE_POLICY
    assert len(notes.significant_judgments) == 1
    assert "8.5%" in notes.significant_judgments[0]
    assert "54,000.00 BRL" in notes.future_commitments
    assert "over the next 23 months" in notes.future_commitments
    assert not any(r.startswith("Currency risk") for r in notes.risk_factors)

    foreign = generate_qualitative_disclosures(
        plain_terms.replace(currency_code="USD", asset_fair_value=80000, lease_classification="operating"),
        date(2025, 1, 1),
    )
    assert len(foreign.significant_judgments) == 3
    assert any(r.startswith("Currency risk") for r in foreign.risk_factors)


def test_disclosures_use_terms_in_force(plain_terms) -> None:
    in_force = Modification(ModificationType.PAYMENT_CHANGE, date(2024, 6, 1), new_monthly_payment=1700)
    future = Modification(ModificationType.PAYMENT_CHANGE, date(2025, 9, 1), new_monthly_payment=9000)
    as_of = date(2025, 6, 30)

    disclosures = generate_disclosures(plain_terms, [future, in_force], as_of)
    expected = calculate_lease_liability(apply_modifications(plain_terms, [in_force]))

    assert disclosures.maturity_analysis.total_principal == expected
    assert disclosures.reporting_period == "2025-06"
    assert disclosures.disclosure_date == as_of
    assert disclosures.contract_id == "CT-001"
    assert disclosures.exercised_options == []
    assert set(disclosures.reporting_metrics) == {"current_year", "prior_year"}
