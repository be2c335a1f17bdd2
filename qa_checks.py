# qa_checks.py
"""Self-checks run over a computed amortization schedule."""

import logging
from dataclasses import dataclass
from typing import List, Sequence

from lease_calculations import ZERO, CENT, AmortizationPeriod, CalculationResult

logger = logging.getLogger(__name__)


class ScheduleQAError(AssertionError):
    """Raised when a schedule fails one or more QA checks."""

    def __init__(self, failures: Sequence["QACheck"]):
        self.failures = list(failures)
        super().__init__("QA validation failed: " + "; ".join(f.name for f in self.failures))


@dataclass(frozen=True)
class QACheck:
    name: str
    passed: bool
    detail: str = ""


def _check(name: str, passed: bool, detail: str = "") -> QACheck:
    return QACheck(name=name, passed=bool(passed), detail="" if passed else detail)


def _straight_line(schedule: Sequence[AmortizationPeriod]) -> QACheck:
    # The final period absorbs the remainder, so it is left out.
    amounts = [row.amortization for row in schedule[:-1]]
    if not amounts:
        return _check("Straight-line depreciation verified", True)
    mean = sum(amounts, ZERO) / len(amounts)
    deviation = max(abs(a - mean) for a in amounts)
    return _check(
        "Straight-line depreciation verified",
        deviation <= CENT,
        f"largest deviation from the mean charge is {deviation}",
    )


def run_schedule_checks(result: CalculationResult) -> List[QACheck]:
    schedule = result.amortization_schedule
    if not schedule:
        return [_check("Schedule has periods", False, "schedule is empty")]

    last = schedule[-1]
    principal = sum((row.principal_payment for row in schedule), ZERO)
    amortization = sum((row.amortization for row in schedule), ZERO)

    liability_rows_ok = all(
        row.ending_liability == row.beginning_liability - row.principal_payment for row in schedule
    )
    asset_rows_ok = all(row.ending_asset == row.beginning_asset - row.amortization for row in schedule)
    continuity_ok = all(
        current.beginning_liability == previous.ending_liability
        and current.beginning_asset == previous.ending_asset
        for previous, current in zip(schedule, schedule[1:])
    )

    return [
        _check(
            "Liability amortizes to zero",
            abs(last.ending_liability) < CENT,
            f"closing liability is {last.ending_liability}",
        ),
        _check(
            "ROU asset depreciates to zero",
            abs(last.ending_asset) < CENT,
            f"closing asset is {last.ending_asset}",
        ),
        _check(
            "Principal equals initial liability",
            principal == result.lease_liability_initial,
            f"principal {principal} vs liability {result.lease_liability_initial}",
        ),
        _check(
            "Depreciation equals initial ROU asset",
            amortization == max(result.right_of_use_asset_initial, ZERO),
            f"depreciation {amortization} vs asset {result.right_of_use_asset_initial}",
        ),
        _straight_line(schedule),
        _check("Liability rows reconcile", liability_rows_ok, "ending != beginning - principal"),
        _check("Asset rows reconcile", asset_rows_ok, "ending != beginning - depreciation"),
        _check("Balances carry forward", continuity_ok, "opening balance differs from prior closing"),
    ]


def assert_schedule_passes(result: CalculationResult) -> List[QACheck]:
    checks = run_schedule_checks(result)
    failures = [check for check in checks if not check.passed]
    if failures:
        for failure in failures:
            logger.error("qa_check_failed", extra={"check": failure.name, "detail": failure.detail})
        raise ScheduleQAError(failures)
    return checks
