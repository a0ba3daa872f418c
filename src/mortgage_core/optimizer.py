"""Grid-search overpayment optimizer.

Searches over all (monthly, one-time) overpayment pairs and selects the best
allocation according to the declared strategy.

Search space:
- monthly overpayment: 0 to max_monthly_overpayment in SWEEP_STEPS equal steps
- one-time overpayment (month 1): 0 to max_one_time_overpayment, same resolution

Both budgets bound every single instruction's amount.  Ties are broken in
favour of the allocation applying less extra principal.
"""
from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Optional, Sequence

from .calculator import CalculationResult, calculate_plan
from .config import (
    BALANCED_INTEREST_WEIGHT,
    BALANCED_TERM_WEIGHT,
    DEFAULT_IMPACT_STEPS,
    MONTHS_PER_YEAR,
    SWEEP_STEPS,
    VALID_STRATEGIES,
    ZERO,
    Strategy,
)
from .resolver import (
    ExtraPaymentInstruction,
    LoanTerms,
    OverpaymentPlan,
    ValidationError,
)


class InfeasibleOptimizationError(Exception):
    """Raised when the overpayment budgets describe an empty search space."""


@dataclass(frozen=True)
class OptimizationParameters:
    max_monthly_overpayment: float
    max_one_time_overpayment: float
    strategy: Strategy = "balanced"
    fee_percentage: float = ZERO


@dataclass(frozen=True)
class ComparisonChart:
    labels: tuple[str, ...]
    original_data: tuple[float, ...]   # cumulative interest, baseline
    optimized_data: tuple[float, ...]  # cumulative interest, optimized


@dataclass(frozen=True)
class OptimizationResult:
    interest_saved: float
    time_or_payment_saved: float  # years
    optimized_overpayments: tuple[OverpaymentPlan, ...]
    comparison_chart: ComparisonChart
    optimization_value: float
    optimization_fee: float
    baseline: CalculationResult
    optimized: CalculationResult


@dataclass(frozen=True)
class ImpactPoint:
    amount: float
    interest_saved: float
    term_reduction: int  # periods


@dataclass(frozen=True)
class OverpaymentOutcome:
    interest_saved: float
    term_reduction: int  # periods


@dataclass(frozen=True)
class LumpSumComparison:
    lump_sum: OverpaymentOutcome
    monthly: OverpaymentOutcome
    break_even_month: Optional[int]


def _check_budget(value: float, name: str) -> None:
    if value < ZERO:
        raise InfeasibleOptimizationError(f"{name} must be >= 0 (got {value:,.2f}).")


def _run(
    terms: LoanTerms,
    existing: Sequence[ExtraPaymentInstruction],
    plans: Sequence[OverpaymentPlan] = (),
) -> CalculationResult:
    instructions = list(existing) + list(plans)
    return calculate_plan(terms, instructions)


def _plans_for(monthly: float, one_time: float) -> tuple[OverpaymentPlan, ...]:
    plans: list[OverpaymentPlan] = []
    if one_time > ZERO:
        plans.append(OverpaymentPlan(month=1, amount=one_time, recurrence="one-time"))
    if monthly > ZERO:
        plans.append(OverpaymentPlan(month=1, amount=monthly, recurrence="monthly"))
    return tuple(plans)


def _sweep_levels(maximum: float, steps: int = SWEEP_STEPS) -> list[float]:
    if maximum == ZERO:
        return [ZERO]
    return [maximum * i / steps for i in range(steps + 1)]


def _score(
    strategy: str,
    result: CalculationResult,
    baseline: CalculationResult,
) -> tuple:
    """Return a sort key (lower is better) for the given run."""
    extra_paid = result.total_extra_paid

    if strategy == "maximizeInterestSavings":
        return (result.total_interest, extra_paid)
    elif strategy == "minimizeTerm":
        return (result.period_count, extra_paid)
    else:  # balanced
        # Equal weight on the normalized interest and term reductions
        interest_part = (
            (baseline.total_interest - result.total_interest) / baseline.total_interest
            if baseline.total_interest > ZERO else ZERO
        )
        term_part = (
            (baseline.period_count - result.period_count) / baseline.period_count
            if baseline.period_count else ZERO
        )
        score = BALANCED_INTEREST_WEIGHT * interest_part + BALANCED_TERM_WEIGHT * term_part
        return (-score, extra_paid)


def build_comparison_chart(
    baseline: CalculationResult,
    optimized: CalculationResult,
) -> ComparisonChart:
    """Yearly cumulative interest for both runs, padded to the longer one."""
    original = baseline.yearly_interest()
    improved = optimized.yearly_interest()
    years = max(len(original), len(improved))

    while len(original) < years:
        original.append(original[-1] if original else ZERO)
    while len(improved) < years:
        improved.append(improved[-1] if improved else ZERO)

    return ComparisonChart(
        labels=tuple(f"Year {i}" for i in range(1, years + 1)),
        original_data=tuple(original),
        optimized_data=tuple(improved),
    )


def optimize_overpayments(
    terms: LoanTerms,
    params: OptimizationParameters,
    extra_payments: Sequence[ExtraPaymentInstruction] = (),
) -> OptimizationResult:
    """Run the grid search and return the best allocation for the strategy.

    The baseline is the loan with its existing *extra_payments*; the optimized
    plans are layered on top of them.
    """
    if params.strategy not in VALID_STRATEGIES:
        raise ValidationError(
            f"Unknown optimization strategy '{params.strategy}'. "
            f"Valid values: {', '.join(sorted(VALID_STRATEGIES))}"
        )
    _check_budget(params.max_monthly_overpayment, "max_monthly_overpayment")
    _check_budget(params.max_one_time_overpayment, "max_one_time_overpayment")
    _check_budget(params.fee_percentage, "fee_percentage")

    baseline = _run(terms, extra_payments)

    best_plans: tuple[OverpaymentPlan, ...] = ()
    best_result = baseline
    best_score = _score(params.strategy, baseline, baseline)

    for monthly in _sweep_levels(params.max_monthly_overpayment):
        for one_time in _sweep_levels(params.max_one_time_overpayment):
            plans = _plans_for(monthly, one_time)
            if not plans:
                continue
            result = _run(terms, extra_payments, plans)
            score = _score(params.strategy, result, baseline)
            if score < best_score:
                best_score = score
                best_plans = plans
                best_result = result

    interest_saved = baseline.total_interest - best_result.total_interest
    periods_saved = baseline.period_count - best_result.period_count

    return OptimizationResult(
        interest_saved=interest_saved,
        time_or_payment_saved=periods_saved / MONTHS_PER_YEAR,
        optimized_overpayments=best_plans,
        comparison_chart=build_comparison_chart(baseline, best_result),
        optimization_value=interest_saved,
        optimization_fee=round(interest_saved * params.fee_percentage / 100, 2),
        baseline=baseline,
        optimized=best_result,
    )


def analyze_overpayment_impact(
    terms: LoanTerms,
    max_monthly: float,
    steps: int = DEFAULT_IMPACT_STEPS,
    extra_payments: Sequence[ExtraPaymentInstruction] = (),
) -> list[ImpactPoint]:
    """Interest saved and term reduction for *steps* increasing monthly overpayments.

    Levels are ``max_monthly * i / steps`` for i = 1..steps.
    """
    _check_budget(max_monthly, "max_monthly")
    if steps < 1:
        raise ValidationError(f"steps must be >= 1 (got {steps}).")

    baseline = _run(terms, extra_payments)
    points: list[ImpactPoint] = []
    for i in range(1, steps + 1):
        amount = max_monthly * i / steps
        result = _run(terms, extra_payments, _plans_for(amount, ZERO))
        points.append(
            ImpactPoint(
                amount=amount,
                interest_saved=baseline.total_interest - result.total_interest,
                term_reduction=baseline.period_count - result.period_count,
            )
        )
    return points


def compare_lump_sum_vs_regular(
    terms: LoanTerms,
    max_one_time: float,
    max_monthly: float,
    extra_payments: Sequence[ExtraPaymentInstruction] = (),
) -> LumpSumComparison:
    """Compare one lump sum at month 1 against a recurring monthly overpayment."""
    _check_budget(max_one_time, "max_one_time")
    _check_budget(max_monthly, "max_monthly")

    baseline = _run(terms, extra_payments)
    lump = _run(terms, extra_payments, _plans_for(ZERO, max_one_time))
    regular = _run(terms, extra_payments, _plans_for(max_monthly, ZERO))

    def _outcome(result: CalculationResult) -> OverpaymentOutcome:
        return OverpaymentOutcome(
            interest_saved=baseline.total_interest - result.total_interest,
            term_reduction=baseline.period_count - result.period_count,
        )

    return LumpSumComparison(
        lump_sum=_outcome(lump),
        monthly=_outcome(regular),
        break_even_month=math.ceil(max_one_time / max_monthly) if max_monthly > ZERO else None,
    )
