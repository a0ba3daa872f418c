"""Loan comparison and ranking.

Each variant is run through the amortization engine, then ranked by total cost
(principal net of down payment + total interest).  Savings are measured against
the most expensive variant, not against any baseline.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Optional, Sequence

from .calculator import AmortizationEntry, CalculationResult, calculate_with_savings
from .config import (
    MAX_ANNUAL_RATE_PERCENT,
    MAX_COMPARED_LOANS,
    MAX_LOAN_AMOUNT,
    MAX_TERM_YEARS,
    MAX_TITLE_LENGTH,
    MIN_COMPARED_LOANS,
    MIN_COMPARISON_RATE_PERCENT,
    MIN_LOAN_AMOUNT,
    MIN_TERM_YEARS,
    ZERO,
)
from .resolver import ExtraPaymentInstruction, LoanTerms, ValidationError


@dataclass(frozen=True)
class LoanVariant:
    title: str
    loan_amount: float
    annual_rate_percent: float
    term_years: int
    down_payment: float = ZERO
    extra_payments: tuple[ExtraPaymentInstruction, ...] = ()
    id: str = ""
    start_date: Optional[date] = None

    @property
    def principal(self) -> float:
        return self.loan_amount - self.down_payment

    def to_terms(self) -> LoanTerms:
        return LoanTerms(
            principal=self.principal,
            annual_rate_percent=self.annual_rate_percent,
            term_years=self.term_years,
            start_date=self.start_date,
        )


@dataclass(frozen=True)
class ComparisonMetrics:
    total_cost: float
    monthly_payment: float
    total_interest: float
    interest_savings: float  # vs. the most expensive loan
    payoff_date: date
    rank: int


@dataclass(frozen=True)
class ComparedLoan:
    loan: LoanVariant
    result: CalculationResult
    metrics: ComparisonMetrics


@dataclass(frozen=True)
class LoanHighlight:
    id: str
    title: str
    reason: str


@dataclass(frozen=True)
class ComparisonSummary:
    best_loan: LoanHighlight
    worst_loan: LoanHighlight
    total_savings: float
    average_rate: float


@dataclass(frozen=True)
class ChartPoint:
    loan_id: str
    amount: float


@dataclass(frozen=True)
class ComparisonCharts:
    monthly_payments: tuple[ChartPoint, ...]
    total_costs: tuple[ChartPoint, ...]
    interest_comparison: tuple[ChartPoint, ...]


@dataclass(frozen=True)
class ComparisonResult:
    loans: tuple[ComparedLoan, ...]  # ordered by rank
    summary: ComparisonSummary
    charts: ComparisonCharts


def validate_loans(loans: Sequence[LoanVariant]) -> None:
    """Reject the whole comparison if any variant is out of bounds."""
    if not MIN_COMPARED_LOANS <= len(loans) <= MAX_COMPARED_LOANS:
        raise ValidationError(
            f"Must compare between {MIN_COMPARED_LOANS} and {MAX_COMPARED_LOANS} loans "
            f"(got {len(loans)})."
        )
    for index, loan in enumerate(loans, start=1):
        if not loan.title or not loan.title.strip() or len(loan.title) > MAX_TITLE_LENGTH:
            raise ValidationError(
                f"Loan {index} must have a title of 1 to {MAX_TITLE_LENGTH} characters."
            )
        if not MIN_LOAN_AMOUNT <= loan.loan_amount <= MAX_LOAN_AMOUNT:
            raise ValidationError(
                f"Loan {index} amount must be between {MIN_LOAN_AMOUNT:,.0f} "
                f"and {MAX_LOAN_AMOUNT:,.0f} (got {loan.loan_amount:,.2f})."
            )
        if not MIN_COMPARISON_RATE_PERCENT <= loan.annual_rate_percent <= MAX_ANNUAL_RATE_PERCENT:
            raise ValidationError(
                f"Loan {index} interest rate must be between {MIN_COMPARISON_RATE_PERCENT}% "
                f"and {MAX_ANNUAL_RATE_PERCENT:g}% (got {loan.annual_rate_percent}%)."
            )
        if not MIN_TERM_YEARS <= loan.term_years <= MAX_TERM_YEARS:
            raise ValidationError(
                f"Loan {index} term must be between {MIN_TERM_YEARS} and {MAX_TERM_YEARS} "
                f"years (got {loan.term_years})."
            )
        if not ZERO <= loan.down_payment < loan.loan_amount:
            raise ValidationError(
                f"Loan {index} down payment must be >= 0 and below the loan amount "
                f"(got {loan.down_payment:,.2f})."
            )


def rank_by_total_cost(total_costs: Sequence[float]) -> list[int]:
    """Dense ranks (1 = cheapest) for *total_costs*, in input order."""
    distinct = sorted(set(total_costs))
    position = {cost: rank for rank, cost in enumerate(distinct, start=1)}
    return [position[cost] for cost in total_costs]


def compare_loans(loans: Sequence[LoanVariant]) -> ComparisonResult:
    """Run every variant, rank them and build the summary and chart series."""
    validate_loans(loans)

    results = [calculate_with_savings(loan.to_terms(), loan.extra_payments) for loan in loans]
    total_costs = [loan.principal + result.total_interest for loan, result in zip(loans, results)]
    ranks = rank_by_total_cost(total_costs)
    worst_cost = max(total_costs)

    compared = [
        ComparedLoan(
            loan=loan,
            result=result,
            metrics=ComparisonMetrics(
                total_cost=cost,
                monthly_payment=result.monthly_payment,
                total_interest=result.total_interest,
                interest_savings=worst_cost - cost,
                payoff_date=result.payoff_date,
                rank=rank,
            ),
        )
        for loan, result, cost, rank in zip(loans, results, total_costs, ranks)
    ]
    # sorted() is stable: tied loans keep their input order
    ranked = sorted(compared, key=lambda c: c.metrics.total_cost)
    best, worst = ranked[0], ranked[-1]

    charts = ComparisonCharts(
        monthly_payments=tuple(ChartPoint(c.loan.id, c.metrics.monthly_payment) for c in compared),
        total_costs=tuple(ChartPoint(c.loan.id, c.metrics.total_cost) for c in compared),
        interest_comparison=tuple(ChartPoint(c.loan.id, c.metrics.total_interest) for c in compared),
    )

    return ComparisonResult(
        loans=tuple(ranked),
        summary=ComparisonSummary(
            best_loan=LoanHighlight(
                id=best.loan.id,
                title=best.loan.title,
                reason=f"Lowest total cost: {best.metrics.total_cost:,.2f}",
            ),
            worst_loan=LoanHighlight(
                id=worst.loan.id,
                title=worst.loan.title,
                reason=f"Highest total cost: {worst.metrics.total_cost:,.2f}",
            ),
            total_savings=worst.metrics.total_cost - best.metrics.total_cost,
            average_rate=sum(loan.annual_rate_percent for loan in loans) / len(loans),
        ),
        charts=charts,
    )


# ── Pairwise schedule analysis ─────────────────────────────────────────────────

def calculate_break_even_point(
    schedule_a: Sequence[AmortizationEntry],
    schedule_b: Sequence[AmortizationEntry],
) -> Optional[int]:
    """Return the first period where the initially dearer schedule stops being dearer.

    Compares cumulative total payments over the overlapping periods; returns
    None when the two never cross (or either schedule is empty).
    """
    if not schedule_a or not schedule_b:
        return None

    a_starts_dearer = schedule_a[0].total_payment > schedule_b[0].total_payment
    cumulative_a = cumulative_b = ZERO
    for entry_a, entry_b in zip(schedule_a, schedule_b):
        cumulative_a += entry_a.total_payment
        cumulative_b += entry_b.total_payment
        if a_starts_dearer and cumulative_a <= cumulative_b:
            return entry_a.period
        if not a_starts_dearer and cumulative_a >= cumulative_b:
            return entry_a.period
    return None


def cumulative_cost_difference(
    schedule_a: Sequence[AmortizationEntry],
    schedule_b: Sequence[AmortizationEntry],
) -> list[float]:
    """Running (cumulative A − cumulative B) for every period of the longer schedule."""
    differences: list[float] = []
    cumulative_a = cumulative_b = ZERO
    for i in range(max(len(schedule_a), len(schedule_b))):
        if i < len(schedule_a):
            cumulative_a += schedule_a[i].total_payment
        if i < len(schedule_b):
            cumulative_b += schedule_b[i].total_payment
        differences.append(cumulative_a - cumulative_b)
    return differences


def monthly_payment_difference(
    schedule_a: Sequence[AmortizationEntry],
    schedule_b: Sequence[AmortizationEntry],
) -> list[float]:
    """Per-period (A − B) total payment; a finished schedule counts as paying 0."""
    differences: list[float] = []
    for i in range(max(len(schedule_a), len(schedule_b))):
        payment_a = schedule_a[i].total_payment if i < len(schedule_a) else ZERO
        payment_b = schedule_b[i].total_payment if i < len(schedule_b) else ZERO
        differences.append(payment_a - payment_b)
    return differences
