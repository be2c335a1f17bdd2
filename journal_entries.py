# journal_entries.py
"""Double-entry journals for a lease: recognition, monthly, modification and termination."""

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Iterable, List, Optional

import pandas as pd

from lease_calculations import ZERO, AmortizationPeriod, CalculationResult, LeaseTerms, or_zero
from lease_modifications import ModificationImpact, ModificationType

ROU_ASSET = "Right-of-use Asset"
ACCUMULATED_DEPRECIATION = "Accumulated Depreciation - Right-of-use Asset"
LEASE_LIABILITY = "Lease Liability"
CASH = "Cash/Bank"
DEPRECIATION_EXPENSE = "Depreciation Expense"
INTEREST_EXPENSE = "Interest Expense"
ROUNDING = "Rounding Difference"
MODIFICATION_GAIN_LOSS = "Gain or Loss on Modification (P&L)"
TERMINATION_GAIN = "Gain on Lease Termination (P&L)"
TERMINATION_LOSS = "Loss on Lease Termination (P&L)"
EXCESS_INCENTIVE = "Excess Lease Incentive (P&L)"


@dataclass(frozen=True)
class JournalLine:
    account: str
    debit: Decimal = ZERO
    credit: Decimal = ZERO


@dataclass(frozen=True)
class JournalEntry:
    entry_date: Optional[date]
    description: str
    lines: List[JournalLine] = field(default_factory=list)

    @property
    def total_debits(self) -> Decimal:
        return sum((line.debit for line in self.lines), ZERO)

    @property
    def total_credits(self) -> Decimal:
        return sum((line.credit for line in self.lines), ZERO)

    @property
    def is_balanced(self) -> bool:
        return self.total_debits == self.total_credits


def _debit(lines: List[JournalLine], account: str, amount: Decimal) -> None:
    """Post ``amount`` as a debit, or as a credit when negative. Zero posts nothing."""
    if amount > 0:
        lines.append(JournalLine(account, debit=amount))
    elif amount < 0:
        lines.append(JournalLine(account, credit=-amount))


def _credit(lines: List[JournalLine], account: str, amount: Decimal) -> None:
    _debit(lines, account, -amount)


def initial_recognition_entry(terms: LeaseTerms, result: CalculationResult) -> JournalEntry:
    lines: List[JournalLine] = []
    _debit(lines, ROU_ASSET, result.right_of_use_asset_initial)
    _credit(lines, LEASE_LIABILITY, result.lease_liability_initial)
    _credit(lines, f"{CASH} (initial direct costs)", or_zero(terms.initial_direct_costs))
    _debit(lines, f"{CASH} (lease incentives received)", or_zero(terms.lease_incentives))

    excess = or_zero(terms.lease_incentives) - result.lease_liability_initial - or_zero(terms.initial_direct_costs)
    _credit(lines, EXCESS_INCENTIVE, max(excess, ZERO))

    # Absorbs the cents the right-of-use rounding can leave behind.
    imbalance = sum((l.credit for l in lines), ZERO) - sum((l.debit for l in lines), ZERO)
    _debit(lines, ROUNDING, imbalance)
    return JournalEntry(terms.lease_start_date, "Initial recognition of lease", lines)


def period_entry(row: AmortizationPeriod) -> JournalEntry:
    lines: List[JournalLine] = []
    _debit(lines, DEPRECIATION_EXPENSE, row.amortization)
    _credit(lines, ACCUMULATED_DEPRECIATION, row.amortization)
    _debit(lines, INTEREST_EXPENSE, row.interest_expense)
    _debit(lines, LEASE_LIABILITY, row.principal_payment)
    _credit(lines, CASH, row.payment)
    _debit(lines, ROUNDING, row.payment - row.interest_expense - row.principal_payment)
    return JournalEntry(row.date, f"Lease period {row.period}", lines)


def modification_entry(impact: ModificationImpact) -> JournalEntry:
    """Remeasurement of the liability with the matching right-of-use adjustment (IFRS 16.39)."""
    if impact.modification_type is ModificationType.TERMINATION:
        return termination_entry(impact)

    lines: List[JournalLine] = []
    _debit(lines, f"{ROU_ASSET} (modification)", impact.asset_change)
    _credit(lines, f"{LEASE_LIABILITY} (modification)", impact.liability_change)

    # Fees and costs less incentives are capitalised and settled in cash.
    costs = impact.net_impact - impact.liability_change
    _debit(lines, f"{ROU_ASSET} (modification costs)", costs)
    _credit(lines, CASH, costs)

    imbalance = sum((l.credit for l in lines), ZERO) - sum((l.debit for l in lines), ZERO)
    _debit(lines, MODIFICATION_GAIN_LOSS, imbalance)
    return JournalEntry(
        impact.effective_date,
        f"Lease modification: {impact.modification_type.value}",
        lines,
    )


def termination_entry(impact: ModificationImpact) -> JournalEntry:
    remaining_liability = impact.before.lease_liability
    remaining_asset = impact.before.right_of_use_asset
    fee = -(impact.net_impact + remaining_liability + remaining_asset)

    lines: List[JournalLine] = []
    _debit(lines, LEASE_LIABILITY, remaining_liability)
    _credit(lines, ROU_ASSET, remaining_asset)
    _credit(lines, f"{CASH} (termination fee)", fee)

    gain = remaining_liability - remaining_asset - fee
    if gain > 0:
        lines.append(JournalLine(TERMINATION_GAIN, credit=gain))
    elif gain < 0:
        lines.append(JournalLine(TERMINATION_LOSS, debit=-gain))
    return JournalEntry(impact.effective_date, "Derecognition on lease termination", lines)


def generate_journal_entries(
    terms: LeaseTerms,
    result: CalculationResult,
    impacts: Iterable[ModificationImpact] = (),
) -> List[JournalEntry]:
    entries = [initial_recognition_entry(terms, result)]
    entries.extend(period_entry(row) for row in result.amortization_schedule)
    entries.extend(modification_entry(impact) for impact in impacts)
    return entries


def journals_to_frame(entries: Iterable[JournalEntry]) -> pd.DataFrame:
    """One row per journal line, for CSV export."""
    rows = []
    for entry in entries:
        for line in entry.lines:
            rows.append({
                "Date": entry.entry_date,
                "Description": entry.description,
                "Account": line.account,
                "Debit": float(line.debit),
                "Credit": float(line.credit),
            })
    df = pd.DataFrame(rows, columns=["Date", "Description", "Account", "Debit", "Credit"])
    df["Date"] = pd.to_datetime(df["Date"])
    return df
