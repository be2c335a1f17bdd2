"""
Sensitivity, stress and Monte Carlo analysis of a lease.

Every variation is a fresh core calculation on a modified copy of the
terms; the base contract is never touched.
"""

import logging
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Dict, List, Optional, Sequence

import numpy as np

from engine_config import DEFAULT_CONFIG, EngineConfig
from lease_calculations import (
    ZERO,
    ONE,
    HUNDRED,
    CalculationResult,
    LeaseTerms,
    add_months,
    calculate_all,
    calculate_right_of_use_asset,
    ensure_valid,
    present_value,
)

logger = logging.getLogger(__name__)

RATE_PARAMETER = "Discount Rate"
PAYMENT_PARAMETER = "Monthly Payment"
TERM_PARAMETER = "Lease Term"

HIGH_RISK_WEIGHTED_IMPACT = Decimal("10000")
MEDIUM_RISK_WEIGHTED_IMPACT = Decimal("5000")
RATE_HEDGE_IMPACT = Decimal("10")
PAYMENT_CLAUSE_IMPACT = Decimal("15")
HIGH_PROBABILITY = Decimal("10")


@dataclass(frozen=True)
class SensitivityVariation:
    variation_percent: Decimal
    new_value: Decimal
    lease_liability_change: Decimal
    right_of_use_asset_change: Decimal
    total_payment_change: Decimal
    impact_percentage: Decimal


@dataclass(frozen=True)
class SensitivityResult:
    parameter: str
    base_value: Decimal
    variations: List[SensitivityVariation]

    @property
    def max_impact(self) -> Decimal:
        return max((abs(v.impact_percentage) for v in self.variations), default=ZERO)


@dataclass(frozen=True)
class StressImpact:
    lease_liability_change: Decimal
    right_of_use_asset_change: Decimal
    total_financial_impact: Decimal
    probability_weighted_impact: Decimal


@dataclass(frozen=True)
class StressScenario:
    scenario_name: str
    scenario_type: str
    description: str
    probability: Decimal
    severity: str
    parameters: Dict[str, Decimal]
    impact: StressImpact


@dataclass(frozen=True)
class DistributionStats:
    mean: float
    median: float
    std_dev: float
    min: float
    max: float
    percentile_5: float
    percentile_95: float


@dataclass(frozen=True)
class DistributionBucket:
    range_start: float
    range_end: float
    count: int
    probability: float

    @property
    def label(self) -> str:
        return f"{self.range_start:.0f} - {self.range_end:.0f}"


@dataclass(frozen=True)
class MonteCarloSimulation:
    simulation_name: str
    iterations: int
    seed: Optional[int]
    parameters: Dict[str, float]
    lease_liability_stats: DistributionStats
    right_of_use_asset_stats: DistributionStats
    probability_distribution: List[DistributionBucket]


@dataclass(frozen=True)
class SensitivityAnalysis:
    contract_id: Optional[str]
    analysis_date: date
    base_calculation: CalculationResult
    sensitivity_results: List[SensitivityResult]
    stress_scenarios: List[StressScenario]
    monte_carlo_simulation: Optional[MonteCarloSimulation]
    key_findings: List[str] = field(default_factory=list)
    recommendations: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class _ScenarioDefinition:
    name: str
    scenario_type: str
    description: str
    probability: Decimal
    severity: str
    rate_change: Decimal = ZERO
    payment_change_percent: Decimal = ZERO
    term_change_months: int = 0
    market_value_decline: Optional[Decimal] = None


STRESS_SCENARIOS = (
    _ScenarioDefinition(
        name="Interest Rate Shock",
        scenario_type="interest_rate_shock",
        description="Sudden 3 percentage point increase in the discount rate",
        probability=Decimal("15"),
        severity="high",
        rate_change=Decimal("3"),
    ),
    _ScenarioDefinition(
        name="Payment Reduction",
        scenario_type="payment_reduction",
        description="20% reduction in monthly payments due to financial difficulties",
        probability=Decimal("10"),
        severity="medium",
        payment_change_percent=Decimal("-20"),
    ),
    _ScenarioDefinition(
        name="Early Termination",
        scenario_type="early_termination",
        description="Contract terminated 12 months before the original end date",
        probability=Decimal("5"),
        severity="high",
        term_change_months=-12,
    ),
    _ScenarioDefinition(
        name="Market Crash",
        scenario_type="market_crash",
        description="Economic crisis with a 5 percentage point increase in the discount rate",
        probability=Decimal("3"),
        severity="extreme",
        rate_change=Decimal("5"),
        market_value_decline=Decimal("30"),
    ),
)


def _clamp_rate(rate: Decimal) -> Decimal:
    return min(max(rate, ZERO), HUNDRED)


def with_term(terms: LeaseTerms, term_months: int) -> LeaseTerms:
    term_months = max(1, term_months)
    return terms.replace(
        lease_term_months=term_months,
        lease_end_date=add_months(terms.lease_start_date, term_months),
    )


def _impact_percentage(change: Decimal, base_liability: Decimal) -> Decimal:
    if base_liability == 0:
        return ZERO
    return (change / base_liability * HUNDRED).quantize(Decimal("0.01"))


def _variation(base: CalculationResult, modified_terms: LeaseTerms, variation_percent, new_value):
    modified = calculate_all(modified_terms)
    liability_change = modified.lease_liability_initial - base.lease_liability_initial
    return SensitivityVariation(
        variation_percent=Decimal(variation_percent),
        new_value=Decimal(new_value),
        lease_liability_change=liability_change,
        right_of_use_asset_change=modified.right_of_use_asset_initial - base.right_of_use_asset_initial,
        total_payment_change=modified.total_lease_payments - base.total_lease_payments,
        impact_percentage=_impact_percentage(liability_change, base.lease_liability_initial),
    )


def calculate_interest_rate_sensitivity(
    terms: LeaseTerms,
    base: Optional[CalculationResult] = None,
    config: EngineConfig = DEFAULT_CONFIG,
) -> SensitivityResult:
    base = base or calculate_all(terms)
    variations = []
    for points in config.rate_variations:
        new_rate = _clamp_rate(terms.discount_rate_annual + points)
        variations.append(_variation(base, terms.replace(discount_rate_annual=new_rate), points, new_rate))
    return SensitivityResult(RATE_PARAMETER, terms.discount_rate_annual, variations)


def calculate_payment_sensitivity(
    terms: LeaseTerms,
    base: Optional[CalculationResult] = None,
    config: EngineConfig = DEFAULT_CONFIG,
) -> SensitivityResult:
    base = base or calculate_all(terms)
    variations = []
    for percent in config.payment_variations:
        new_payment = terms.monthly_payment * (ONE + percent / HUNDRED)
        variations.append(_variation(base, terms.replace(monthly_payment=new_payment), percent, new_payment))
    return SensitivityResult(PAYMENT_PARAMETER, terms.monthly_payment, variations)


def calculate_term_sensitivity(
    terms: LeaseTerms,
    base: Optional[CalculationResult] = None,
    config: EngineConfig = DEFAULT_CONFIG,
) -> SensitivityResult:
    base = base or calculate_all(terms)
    base_term = terms.lease_term_months
    variations = []
    for months in config.term_variations:
        modified_terms = with_term(terms, base_term + months)
        variation_percent = (Decimal(months) / Decimal(base_term) * HUNDRED).quantize(Decimal("0.01"))
        variations.append(_variation(base, modified_terms, variation_percent, modified_terms.lease_term_months))
    return SensitivityResult(TERM_PARAMETER, Decimal(base_term), variations)


def calculate_sensitivity_results(
    terms: LeaseTerms,
    base: Optional[CalculationResult] = None,
    config: EngineConfig = DEFAULT_CONFIG,
) -> List[SensitivityResult]:
    base = base or calculate_all(terms)
    return [
        calculate_interest_rate_sensitivity(terms, base, config),
        calculate_payment_sensitivity(terms, base, config),
        calculate_term_sensitivity(terms, base, config),
    ]


def _stress_terms(terms: LeaseTerms, definition: _ScenarioDefinition) -> LeaseTerms:
    stressed = terms
    if definition.rate_change:
        stressed = stressed.replace(discount_rate_annual=_clamp_rate(terms.discount_rate_annual + definition.rate_change))
    if definition.payment_change_percent:
        stressed = stressed.replace(
            monthly_payment=terms.monthly_payment * (ONE + definition.payment_change_percent / HUNDRED)
        )
    if definition.term_change_months:
        stressed = with_term(stressed, terms.lease_term_months + definition.term_change_months)
    return stressed


def _scenario_parameters(definition: _ScenarioDefinition) -> Dict[str, Decimal]:
    parameters = {}
    if definition.rate_change:
        parameters["discount_rate_change"] = definition.rate_change
    if definition.payment_change_percent:
        parameters["payment_change_percent"] = definition.payment_change_percent
    if definition.term_change_months:
        parameters["term_reduction_months"] = Decimal(definition.term_change_months)
    if definition.market_value_decline is not None:
        parameters["market_value_decline"] = definition.market_value_decline
    return parameters


def generate_stress_scenarios(
    terms: LeaseTerms, base: Optional[CalculationResult] = None
) -> List[StressScenario]:
    base = base or calculate_all(terms)
    scenarios = []
    for definition in STRESS_SCENARIOS:
        stressed = calculate_all(_stress_terms(terms, definition))
        liability_change = stressed.lease_liability_initial - base.lease_liability_initial
        asset_change = stressed.right_of_use_asset_initial - base.right_of_use_asset_initial
        total = liability_change + asset_change
        scenarios.append(StressScenario(
            scenario_name=definition.name,
            scenario_type=definition.scenario_type,
            description=definition.description,
            probability=definition.probability,
            severity=definition.severity,
            parameters=_scenario_parameters(definition),
            impact=StressImpact(
                lease_liability_change=liability_change,
                right_of_use_asset_change=asset_change,
                total_financial_impact=total,
                probability_weighted_impact=total * definition.probability / HUNDRED,
            ),
        ))
    return scenarios


def normal_variates(rng: np.random.Generator, size, mean: float = 0.0, std: float = 1.0) -> np.ndarray:
    """Box-Muller transform over the generator's uniform draws."""
    u1 = 1.0 - rng.random(size)  # (0, 1], keeps log finite
    u2 = rng.random(size)
    z = np.sqrt(-2.0 * np.log(u1)) * np.cos(2.0 * np.pi * u2)
    return mean + std * z


def describe_distribution(values: Sequence[float]) -> DistributionStats:
    data = np.asarray(values, dtype=float)
    return DistributionStats(
        mean=float(np.mean(data)),
        median=float(np.median(data)),
        std_dev=float(np.std(data)),
        min=float(np.min(data)),
        max=float(np.max(data)),
        percentile_5=float(np.percentile(data, 5)),
        percentile_95=float(np.percentile(data, 95)),
    )


def probability_distribution(values: Sequence[float], buckets: int = 10) -> List[DistributionBucket]:
    data = np.asarray(values, dtype=float)
    counts, edges = np.histogram(data, bins=buckets)
    return [
        DistributionBucket(
            range_start=float(edges[i]),
            range_end=float(edges[i + 1]),
            count=int(counts[i]),
            probability=float(counts[i]) / len(data) * 100,
        )
        for i in range(len(counts))
    ]


def run_monte_carlo_simulation(
    terms: LeaseTerms,
    iterations: Optional[int] = None,
    seed: Optional[int] = None,
    config: EngineConfig = DEFAULT_CONFIG,
) -> MonteCarloSimulation:
    """
    Simulate the initial liability and asset under random rate, payment
    and term shocks. The same seed always yields the same simulation.
    """
    ensure_valid(terms)
    if iterations is None:
        iterations = config.monte_carlo_iterations
    if iterations <= 0:
        raise ValueError("iterations must be positive")

    rng = np.random.default_rng(seed)
    rate_shocks = normal_variates(rng, iterations, std=config.monte_carlo_rate_std)
    payment_shocks = normal_variates(rng, iterations, std=config.monte_carlo_payment_std)
    term_shocks = normal_variates(rng, iterations, std=config.monte_carlo_term_std)

    base_rate = float(terms.discount_rate_annual)
    base_payment = float(terms.monthly_payment)
    liabilities = np.empty(iterations)
    assets = np.empty(iterations)

    for i in range(iterations):
        rate = min(max(0.0, base_rate + rate_shocks[i]), 100.0)
        payment = max(0.0, base_payment * (1.0 + payment_shocks[i]))
        term = max(1, terms.lease_term_months + int(round(term_shocks[i])))
        simulated = with_term(terms, term).replace(
            discount_rate_annual=float(rate),
            monthly_payment=float(payment),
        )
        liability = present_value(simulated)
        liabilities[i] = float(liability)
        assets[i] = float(calculate_right_of_use_asset(simulated, liability))

    simulation = MonteCarloSimulation(
        simulation_name="Monte Carlo Simulation",
        iterations=iterations,
        seed=seed,
        parameters={
            "discount_rate_mean": base_rate,
            "discount_rate_std": config.monte_carlo_rate_std,
            "payment_mean": base_payment,
            "payment_std": base_payment * config.monte_carlo_payment_std,
            "term_mean": float(terms.lease_term_months),
            "term_std": config.monte_carlo_term_std,
        },
        lease_liability_stats=describe_distribution(liabilities),
        right_of_use_asset_stats=describe_distribution(assets),
        probability_distribution=probability_distribution(liabilities, config.histogram_buckets),
    )
    logger.info(
        "monte_carlo_completed",
        extra={
            "contract_id": terms.contract_id,
            "iterations": iterations,
            "seed": seed,
            "liability_mean": simulation.lease_liability_stats.mean,
        },
    )
    return simulation


def overall_risk_level(stress_scenarios: Sequence[StressScenario]) -> str:
    weighted = sum((s.impact.probability_weighted_impact for s in stress_scenarios), ZERO)
    if weighted > HIGH_RISK_WEIGHTED_IMPACT:
        return "high"
    if weighted > MEDIUM_RISK_WEIGHTED_IMPACT:
        return "medium"
    return "low"


_RISK_FINDINGS = {
    "high": "Overall risk level: HIGH - significant financial impact in probable scenarios",
    "medium": "Overall risk level: MEDIUM - moderate financial impact in probable scenarios",
    "low": "Overall risk level: LOW - limited financial impact in probable scenarios",
}


def generate_key_findings(
    sensitivity_results: Sequence[SensitivityResult],
    stress_scenarios: Sequence[StressScenario],
    currency_code: str = DEFAULT_CONFIG.default_currency,
) -> List[str]:
    findings = []

    if sensitivity_results:
        most_sensitive = max(sensitivity_results, key=lambda result: result.max_impact)
        findings.append(
            f"The most sensitive parameter is {most_sensitive.parameter} "
            f"with a maximum impact of {most_sensitive.max_impact:.1f}%"
        )

    if stress_scenarios:
        riskiest = max(stress_scenarios, key=lambda s: s.impact.total_financial_impact)
        findings.append(
            f'The highest-risk scenario is "{riskiest.scenario_name}" with a financial impact of '
            f"{riskiest.impact.total_financial_impact:,.2f} {currency_code}"
        )

    findings.append(_RISK_FINDINGS[overall_risk_level(stress_scenarios)])
    return findings


def generate_recommendations(
    sensitivity_results: Sequence[SensitivityResult],
    stress_scenarios: Sequence[StressScenario],
) -> List[str]:
    recommendations = []
    by_parameter = {result.parameter: result for result in sensitivity_results}

    rate_result = by_parameter.get(RATE_PARAMETER)
    if rate_result is not None and rate_result.max_impact > RATE_HEDGE_IMPACT:
        recommendations.append("Consider an interest rate hedge given the contract's high rate sensitivity")

    payment_result = by_parameter.get(PAYMENT_PARAMETER)
    if payment_result is not None and payment_result.max_impact > PAYMENT_CLAUSE_IMPACT:
        recommendations.append("Add adjustment clauses to mitigate payment variation risk")

    if any(s.severity == "extreme" for s in stress_scenarios):
        recommendations.append("Develop contingency plans for the extreme scenarios identified")

    if any(s.probability > HIGH_PROBABILITY for s in stress_scenarios):
        recommendations.append("Monitor market indicators for the high-probability scenarios")

    return recommendations


def perform_sensitivity_analysis(
    terms: LeaseTerms,
    seed: Optional[int] = None,
    include_monte_carlo: bool = True,
    as_of: Optional[date] = None,
    config: EngineConfig = DEFAULT_CONFIG,
) -> SensitivityAnalysis:
    base = calculate_all(terms)
    sensitivity_results = calculate_sensitivity_results(terms, base, config)
    stress_scenarios = generate_stress_scenarios(terms, base)
    monte_carlo = run_monte_carlo_simulation(terms, seed=seed, config=config) if include_monte_carlo else None
    currency = terms.currency_code or config.default_currency

    return SensitivityAnalysis(
        contract_id=terms.contract_id,
        analysis_date=as_of or date.today(),
        base_calculation=base,
        sensitivity_results=sensitivity_results,
        stress_scenarios=stress_scenarios,
        monte_carlo_simulation=monte_carlo,
        key_findings=generate_key_findings(sensitivity_results, stress_scenarios, currency),
        recommendations=generate_recommendations(sensitivity_results, stress_scenarios),
    )
