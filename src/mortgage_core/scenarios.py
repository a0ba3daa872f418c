"""Scenario and stress-test analysis.

Each scenario perturbs the baseline loan (rate, term, payment or extra
payments), reruns the amortization engine and reports signed deltas against
the baseline together with a risk classification.

Risk level from the total-cost increase relative to the baseline total amount:
    pct < 5        → low
    5 ≤ pct ≤ 15   → medium
    pct > 15       → high
"""
from __future__ import annotations

import uuid
from dataclasses import dataclass, field, replace
from typing import Optional, Sequence

from .calculator import CalculationResult, NonAmortizingLoanError, calculate, calculate_plan
from .config import (
    EXTRA_PAYMENT_BOUNDS,
    FIXED_RATE_HINT_RATIO,
    MAX_ANNUAL_RATE_PERCENT,
    MAX_SCENARIOS,
    MAX_TERM_YEARS,
    MIN_COMPARISON_RATE_PERCENT,
    MIN_SCENARIOS,
    MIN_TERM_YEARS,
    OVERALL_HIGH_SHARE,
    OVERALL_MEDIUM_SHARE,
    PAYMENT_CHANGE_BOUNDS,
    PAYMENT_SHOCK_RATIO,
    RATE_CHANGE_BOUNDS,
    RISK_THRESHOLD_HIGH,
    RISK_THRESHOLD_LOW,
    TERM_CHANGE_BOUNDS,
    VALID_SCENARIO_TYPES,
    ZERO,
    RiskLevel,
    ScenarioType,
)
from .presets import (
    RATE_CHANGE_TEMPLATES,
    STRESS_LEVELS,
    SUPPORTED_STRESS_LEVELS,
    StressLevelName,
    get_stress_level,
)
from .resolver import (
    ExtraPaymentInstruction,
    LoanTerms,
    ValidationError,
)


@dataclass(frozen=True)
class ScenarioParameters:
    rate_change: Optional[float] = None          # rate-change: percentage points
    stress_level: Optional[StressLevelName] = None
    payment_change: Optional[float] = None       # what-if: percent of scheduled payment
    extra_payment: Optional[float] = None        # what-if: monthly extra principal
    term_change: Optional[int] = None            # what-if: years


@dataclass(frozen=True)
class ScenarioData:
    name: str
    type: ScenarioType
    parameters: ScenarioParameters = field(default_factory=ScenarioParameters)
    id: str = ""


@dataclass(frozen=True)
class ScenarioImpact:
    monthly_payment_diff: float
    total_interest_diff: float
    total_cost_diff: float
    payoff_date_diff: int  # signed months
    risk_level: RiskLevel


@dataclass(frozen=True)
class ScenarioOutcome:
    scenario: ScenarioData
    result: CalculationResult
    impact: ScenarioImpact


@dataclass(frozen=True)
class CaseHighlight:
    scenario_id: str
    amount: float  # savings for the best case, additional cost for the worst
    description: str


@dataclass(frozen=True)
class RiskAssessment:
    overall: RiskLevel
    factors: tuple[str, ...]


@dataclass(frozen=True)
class ScenarioAnalysis:
    best_case: CaseHighlight
    worst_case: CaseHighlight
    recommendations: tuple[str, ...]
    risk_assessment: RiskAssessment


@dataclass(frozen=True)
class ScenarioResult:
    baseline: CalculationResult
    scenarios: tuple[ScenarioOutcome, ...]
    analysis: ScenarioAnalysis


def _check_bounds(value: Optional[float], bounds: tuple, label: str, index: int) -> None:
    if value is None:
        return
    low, high = bounds
    if not low <= value <= high:
        raise ValidationError(
            f"Scenario {index}: {label} must be between {low:g} and {high:g} (got {value:g})."
        )


def validate_scenarios(scenarios: Sequence[ScenarioData]) -> None:
    if not MIN_SCENARIOS <= len(scenarios) <= MAX_SCENARIOS:
        raise ValidationError(
            f"Must have between {MIN_SCENARIOS} and {MAX_SCENARIOS} scenarios "
            f"(got {len(scenarios)})."
        )
    for index, scenario in enumerate(scenarios, start=1):
        params = scenario.parameters
        if not scenario.name or not scenario.name.strip():
            raise ValidationError(f"Scenario {index} must have a name.")
        if scenario.type not in VALID_SCENARIO_TYPES:
            raise ValidationError(f"Scenario {index} has invalid type '{scenario.type}'.")

        if scenario.type == "rate-change":
            _check_bounds(params.rate_change, RATE_CHANGE_BOUNDS, "rate change", index)
        elif scenario.type == "stress-test":
            if params.stress_level is not None and params.stress_level not in SUPPORTED_STRESS_LEVELS:
                raise ValidationError(
                    f"Scenario {index} has invalid stress level '{params.stress_level}'."
                )
        else:
            _check_bounds(params.payment_change, PAYMENT_CHANGE_BOUNDS, "payment change (%)", index)
            _check_bounds(params.extra_payment, EXTRA_PAYMENT_BOUNDS, "extra payment", index)
            _check_bounds(params.term_change, TERM_CHANGE_BOUNDS, "term change (years)", index)


def classify_risk(total_cost_diff: float, baseline_total: float) -> RiskLevel:
    """Classify a cost increase against the baseline total amount."""
    if baseline_total <= ZERO:
        return "low"
    pct = total_cost_diff / baseline_total * 100
    if pct > RISK_THRESHOLD_HIGH:
        return "high"
    if pct >= RISK_THRESHOLD_LOW:
        return "medium"
    return "low"


def _clamp_rate(rate: float) -> float:
    return max(MIN_COMPARISON_RATE_PERCENT, min(MAX_ANNUAL_RATE_PERCENT, rate))


def run_scenario(
    terms: LoanTerms,
    scenario: ScenarioData,
    extra_payments: Sequence[ExtraPaymentInstruction] = (),
) -> CalculationResult:
    """Apply *scenario* to *terms* and rerun the engine."""
    params = scenario.parameters
    shift = ZERO
    term_years = terms.term_years
    instructions = list(extra_payments)

    if scenario.type == "rate-change" and params.rate_change:
        shift = params.rate_change
    elif scenario.type == "stress-test" and params.stress_level:
        shift = get_stress_level(params.stress_level).rate_increase
    elif scenario.type == "what-if":
        if params.term_change:
            term_years += params.term_change
        if params.extra_payment:
            instructions.append(
                ExtraPaymentInstruction(month=1, amount=params.extra_payment, recurrence="monthly")
            )

    # Perturbed values are pulled back into the engine's accepted range.
    rate = terms.annual_rate_percent
    rate_periods = terms.rate_periods
    if shift:
        rate = _clamp_rate(rate + shift)
        rate_periods = tuple(
            replace(p, annual_rate_percent=_clamp_rate(p.annual_rate_percent + shift))
            for p in rate_periods
        )
    term_years = max(MIN_TERM_YEARS, min(MAX_TERM_YEARS, term_years))
    modified = replace(
        terms,
        annual_rate_percent=rate,
        term_years=term_years,
        rate_periods=rate_periods,
    )

    scheduled_payment = None
    if scenario.type == "what-if" and params.payment_change:
        if modified.repayment_model == "decreasing-installments":
            raise ValidationError(
                f"Scenario '{scenario.name}': a payment change needs equal installments."
            )
        base = calculate(modified).monthly_payment
        scheduled_payment = base * (1 + params.payment_change / 100)

    return calculate_plan(modified, instructions, scheduled_payment=scheduled_payment)


def _months_between(baseline: CalculationResult, result: CalculationResult) -> int:
    return (
        (result.payoff_date.year - baseline.payoff_date.year) * 12
        + (result.payoff_date.month - baseline.payoff_date.month)
    )


def calculate_impact(baseline: CalculationResult, result: CalculationResult) -> ScenarioImpact:
    total_cost_diff = result.total_amount - baseline.total_amount
    return ScenarioImpact(
        monthly_payment_diff=result.monthly_payment - baseline.monthly_payment,
        total_interest_diff=result.total_interest - baseline.total_interest,
        total_cost_diff=total_cost_diff,
        payoff_date_diff=_months_between(baseline, result),
        risk_level=classify_risk(total_cost_diff, baseline.total_amount),
    )


def generate_analysis(
    baseline: CalculationResult,
    outcomes: Sequence[ScenarioOutcome],
) -> ScenarioAnalysis:
    """Best/worst case, recommendations and the overall risk assessment."""
    by_cost = sorted(outcomes, key=lambda o: o.impact.total_cost_diff)
    best, worst = by_cost[0], by_cost[-1]

    recommendations: list[str] = []
    if best.impact.total_cost_diff < ZERO:
        recommendations.append(
            f"Consider {best.scenario.name} to save {abs(best.impact.total_cost_diff):,.2f}"
        )
    if worst.impact.risk_level == "high":
        recommendations.append(
            f"Prepare for potential rate increases - worst case could cost an additional "
            f"{worst.impact.total_cost_diff:,.2f}"
        )
    rate_changes = [o for o in outcomes if o.scenario.type == "rate-change"]
    if rate_changes:
        mean_impact = sum(o.impact.total_cost_diff for o in rate_changes) / len(rate_changes)
        if mean_impact > baseline.total_amount * FIXED_RATE_HINT_RATIO:
            recommendations.append("Consider a fixed-rate loan to protect against rate volatility")

    high_share = sum(1 for o in outcomes if o.impact.risk_level == "high") / len(outcomes)
    overall: RiskLevel = "low"
    if high_share > OVERALL_HIGH_SHARE:
        overall = "high"
    elif high_share > OVERALL_MEDIUM_SHARE:
        overall = "medium"

    factors: list[str] = []
    if overall == "high":
        factors.append("High sensitivity to interest rate changes")
    if worst.impact.monthly_payment_diff > baseline.monthly_payment * PAYMENT_SHOCK_RATIO:
        factors.append("Significant payment increase in adverse scenarios")

    return ScenarioAnalysis(
        best_case=CaseHighlight(
            scenario_id=best.scenario.id,
            amount=abs(best.impact.total_cost_diff),
            description=best.scenario.name,
        ),
        worst_case=CaseHighlight(
            scenario_id=worst.scenario.id,
            amount=worst.impact.total_cost_diff,
            description=worst.scenario.name,
        ),
        recommendations=tuple(recommendations),
        risk_assessment=RiskAssessment(overall=overall, factors=tuple(factors)),
    )


def analyze_scenarios(
    terms: LoanTerms,
    scenarios: Sequence[ScenarioData],
    *,
    baseline: Optional[CalculationResult] = None,
    extra_payments: Sequence[ExtraPaymentInstruction] = (),
) -> ScenarioResult:
    """Run every scenario against the baseline for *terms*.

    *baseline* is regenerated from *terms* and *extra_payments* when omitted.
    """
    validate_scenarios(scenarios)
    if baseline is None:
        baseline = calculate_plan(terms, extra_payments)

    outcomes = []
    for scenario in scenarios:
        try:
            result = run_scenario(terms, scenario, extra_payments)
        except NonAmortizingLoanError as exc:
            raise NonAmortizingLoanError(f"Scenario '{scenario.name}': {exc}") from exc
        outcomes.append(
            ScenarioOutcome(
                scenario=scenario,
                result=result,
                impact=calculate_impact(baseline, result),
            )
        )

    return ScenarioResult(
        baseline=baseline,
        scenarios=tuple(outcomes),
        analysis=generate_analysis(baseline, outcomes),
    )


def generate_rate_change_scenarios() -> list[ScenarioData]:
    """One rate-change scenario per template, each with a fresh id."""
    return [
        ScenarioData(
            id=str(uuid.uuid4()),
            name=template.description,
            type="rate-change",
            parameters=ScenarioParameters(rate_change=template.change),
        )
        for template in RATE_CHANGE_TEMPLATES
    ]


def generate_stress_test_scenarios() -> list[ScenarioData]:
    """One stress-test scenario per level, mildest first."""
    return [
        ScenarioData(
            id=str(uuid.uuid4()),
            name=level.description,
            type="stress-test",
            parameters=ScenarioParameters(stress_level=level.name),  # type: ignore[arg-type]
        )
        for level in STRESS_LEVELS.values()
    ]
