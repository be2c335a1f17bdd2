from datetime import date
from decimal import Decimal

import pandas as pd

from journal_entries import (
    CASH,
    EXCESS_INCENTIVE,
    LEASE_LIABILITY,
    MODIFICATION_GAIN_LOSS,
    ROUNDING,
    ROU_ASSET,
    TERMINATION_GAIN,
    TERMINATION_LOSS,
    generate_journal_entries,
    initial_recognition_entry,
    journals_to_frame,
    modification_entry,
    period_entry,
)
from lease_calculations import calculate_all
from lease_modifications import (
    Modification,
    ModificationType,
    calculate_modification_impact,
    calculate_termination_impact,
)


def amounts(entry):
    return {line.account: (line.debit, line.credit) for line in entry.lines}


def test_initial_recognition(make_terms) -> None:
    terms = make_terms(initial_direct_costs=800, lease_incentives=300)
    result = calculate_all(terms)
    entry = initial_recognition_entry(terms, result)
    posted = amounts(entry)

    assert entry.is_balanced
    assert entry.entry_date == date(2024, 1, 1)
    assert posted[ROU_ASSET] == (result.right_of_use_asset_initial, 0)
    assert posted[LEASE_LIABILITY] == (0, result.lease_liability_initial)
    assert posted[f"{CASH} (initial direct costs)"] == (0, Decimal("800"))
    assert posted[f"{CASH} (lease incentives received)"] == (Decimal("300"), 0)


def test_excess_incentive_is_credited_not_rounded(make_terms) -> None:
    terms = make_terms(lease_incentives=100000)
    result = calculate_all(terms)
    entry = initial_recognition_entry(terms, result)
    posted = amounts(entry)

    assert entry.is_balanced
    assert ROU_ASSET not in posted
    assert posted[EXCESS_INCENTIVE] == (0, Decimal("100000") - result.lease_liability_initial)
    assert ROUNDING not in posted


def test_every_entry_balances(example_terms) -> None:
    terms = example_terms.replace(initial_direct_costs=500, lease_incentives=250)
    result = calculate_all(terms)
    entries = generate_journal_entries(terms, result)

    assert len(entries) == 1 + 36
    assert all(entry.is_balanced for entry in entries)

    rounding = [line for entry in entries for line in entry.lines if line.account == ROUNDING]
    assert all(line.debit + line.credit <= Decimal("0.02") for line in rounding)


def test_period_entry_follows_the_schedule(plain_terms) -> None:
    row = calculate_all(plain_terms).amortization_schedule[4]
    entry = period_entry(row)
    posted = amounts(entry)

    assert entry.description == "Lease period 5"
    assert entry.entry_date == row.date
    assert posted["Interest Expense"] == (row.interest_expense, 0)
    assert posted["Depreciation Expense"] == (row.amortization, 0)
    assert posted[LEASE_LIABILITY] == (row.principal_payment, 0)
    assert posted[CASH] == (0, row.payment)


def test_modification_entry(plain_terms) -> None:
    modification = Modification(
        ModificationType.PAYMENT_CHANGE,
        date(2024, 7, 1),
        payment_change_percentage=10,
        modification_fee=500,
        incentives_received=200,
    )
    impact = calculate_modification_impact(plain_terms, modification)
    entry = modification_entry(impact)
    posted = amounts(entry)

    assert entry.is_balanced
    assert entry.entry_date == date(2024, 7, 1)
    assert posted[f"{LEASE_LIABILITY} (modification)"] == (0, impact.liability_change)
    assert posted[f"{ROU_ASSET} (modification costs)"] == (Decimal("300"), 0)
    assert posted[CASH] == (0, Decimal("300"))
    assert MODIFICATION_GAIN_LOSS not in posted


def test_decrease_posts_on_the_other_side(plain_terms) -> None:
    cut = Modification(ModificationType.PAYMENT_CHANGE, date(2024, 7, 1), new_monthly_payment=1200)
    entry = modification_entry(calculate_modification_impact(plain_terms, cut))
    posted = amounts(entry)

    assert entry.is_balanced
    debit, credit = posted[f"{LEASE_LIABILITY} (modification)"]
    assert debit > 0 and credit == 0


def test_termination_entry(plain_terms) -> None:
    impact = calculate_termination_impact(plain_terms, date(2025, 1, 15), termination_fee=250)
    entry = modification_entry(impact)
    posted = amounts(entry)

    assert entry.is_balanced
    assert entry.description == "Derecognition on lease termination"
    assert posted[LEASE_LIABILITY] == (impact.before.lease_liability, 0)
    assert posted[ROU_ASSET] == (0, impact.before.right_of_use_asset)
    assert posted[f"{CASH} (termination fee)"] == (0, Decimal("250"))
    assert (TERMINATION_GAIN in posted) != (TERMINATION_LOSS in posted)


def test_journal_frame(plain_terms) -> None:
    result = calculate_all(plain_terms)
    df = journals_to_frame(generate_journal_entries(plain_terms, result))

    assert list(df.columns) == ["Date", "Description", "Account", "Debit", "Credit"]
    assert abs(df["Debit"].sum() - df["Credit"].sum()) < 0.001
    assert df["Date"].iloc[0] == pd.Timestamp("2024-01-01")
