import logging
from dataclasses import dataclass, field
from datetime import date
from typing import List, Optional, Sequence

import pandas as pd

from engine_config import DEFAULT_CONFIG, EngineConfig
from exemption_handler import ExemptionAnalysis, analyze_exemptions, exempt_expense_schedule
from journal_entries import JournalEntry, generate_journal_entries, modification_entry
from lease_calculations import (
    CalculationResult,
    LeaseTerms,
    ValidationResult,
    calculate_all,
    calculate_total_lease_payments,
    or_zero,
    validate_lease_data,
)
from lease_disclosures import LeaseDisclosures, generate_disclosures
from lease_modifications import (
    Modification,
    ModificationHistoryEntry,
    apply_modifications,
    get_modification_history,
)
from qa_checks import QACheck, run_schedule_checks

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LeaseModelReport:
    status: str  # "invalid", "exempt" or "recognized"
    terms: LeaseTerms
    validation: ValidationResult
    effective_terms: Optional[LeaseTerms] = None
    exemption: Optional[ExemptionAnalysis] = None
    exempt_schedule: Optional[pd.DataFrame] = None
    result: Optional[CalculationResult] = None
    qa_checks: List[QACheck] = field(default_factory=list)
    disclosures: Optional[LeaseDisclosures] = None
    journal_entries: List[JournalEntry] = field(default_factory=list)
    modification_entries: List[JournalEntry] = field(default_factory=list)
    modification_history: List[ModificationHistoryEntry] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    @property
    def qa_passed(self) -> bool:
        return all(check.passed for check in self.qa_checks)


def _sanity_warnings(terms: LeaseTerms) -> List[str]:
    warnings = []
    if or_zero(terms.guaranteed_residual_value) >= terms.monthly_payment * terms.lease_term_months:
        warnings.append("Residual value exceeds total fixed lease payments")
    if or_zero(terms.lease_incentives) > or_zero(terms.initial_direct_costs) + calculate_total_lease_payments(terms):
        warnings.append("Lease incentives exceed the lease payments and direct costs")
    return warnings


def run_ifrs16_model(
    terms: LeaseTerms,
    modifications: Sequence[Modification] = (),
    as_of: Optional[date] = None,
    config: Optional[EngineConfig] = None,
) -> LeaseModelReport:
    """
    Run the full model for one lease: validation, exemptions, modifications
    effective by ``as_of``, calculation, QA, disclosures and journals.
    """
    config = config or DEFAULT_CONFIG
    as_of = as_of or date.today()

    validation = validate_lease_data(terms)
    if not validation.is_valid:
        logger.warning(
            "lease_validation_failed",
            extra={"contract_id": terms.contract_id, "errors": validation.errors},
        )
        return LeaseModelReport(status="invalid", terms=terms, validation=validation)

    # === Handle IFRS 16 Exemptions ===
    exemption = analyze_exemptions(terms, as_of, config)
    if exemption.is_exempt:
        logger.info(
            "lease_exempt",
            extra={"contract_id": terms.contract_id, "exemption_type": exemption.exemption_type},
        )
        return LeaseModelReport(
            status="exempt",
            terms=terms,
            validation=validation,
            exemption=exemption,
            exempt_schedule=exempt_expense_schedule(terms),
        )

    warnings = _sanity_warnings(terms)
    for warning in warnings:
        logger.warning("lease_sanity_check", extra={"contract_id": terms.contract_id, "warning": warning})

    # === Modifications effective at the reporting date ===
    in_force = [m for m in modifications if m.effective_date is not None and m.effective_date <= as_of]
    effective_terms = apply_modifications(terms, in_force)
    history = get_modification_history(terms, in_force)

    result = calculate_all(effective_terms)
    checks = run_schedule_checks(result)
    for check in checks:
        if not check.passed:
            logger.warning(
                "qa_check_failed",
                extra={"contract_id": terms.contract_id, "check": check.name, "detail": check.detail},
            )

    report = LeaseModelReport(
        status="recognized",
        terms=terms,
        validation=validation,
        effective_terms=effective_terms,
        exemption=exemption,
        result=result,
        qa_checks=checks,
        disclosures=generate_disclosures(terms, in_force, as_of, config),
        journal_entries=generate_journal_entries(effective_terms, result),
        modification_entries=[modification_entry(entry.impact) for entry in history if entry.modification.is_effective],
        modification_history=history,
        warnings=warnings,
    )
    logger.info(
        "lease_model_completed",
        extra={
            "contract_id": terms.contract_id,
            "lease_liability_initial": str(result.lease_liability_initial),
            "qa_passed": report.qa_passed,
        },
    )
    return report
