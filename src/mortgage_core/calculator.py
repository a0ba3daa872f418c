"""Core amortization engine.

All monetary values are floats in units of the loan currency.  No intermediate
rounding is applied; invariants hold to within one cent (BALANCE_EPSILON).
"""
from __future__ import annotations

import calendar
from dataclasses import dataclass, replace
from datetime import date
from typing import AbstractSet, Iterable, Optional, Sequence

from .config import (
    APR_MAX_ITERATIONS,
    APR_TOLERANCE,
    BALANCE_EPSILON,
    MAX_PERIOD_MULTIPLIER,
    MONTHS_PER_YEAR,
    ZERO,
)
from .resolver import (
    AdditionalCosts,
    ExtraPaymentInstruction,
    LoanTerms,
    ResolvedExtraPaymentMap,
    ValidationError,
    resolve_extra_payments,
    resolve_recast_periods,
    validate_loan_terms,
)


class NonAmortizingLoanError(Exception):
    """Raised when the scheduled payment cannot pay the loan off within 2N periods."""


@dataclass(frozen=True)
class AmortizationEntry:
    period: int
    scheduled_payment: float
    principal_portion: float
    interest_portion: float
    extra_payment: float
    total_payment: float
    ending_balance: float
    fees: float = ZERO  # recurring fees, not part of total_payment


@dataclass(frozen=True)
class CalculationSummary:
    principal_paid: float
    interest_paid: float
    period_count: int
    # Only set when a zero-extra-payment baseline was supplied
    interest_saved: Optional[float] = None
    time_saved: Optional[int] = None  # periods


@dataclass(frozen=True)
class CalculationResult:
    monthly_payment: float
    total_interest: float
    total_amount: float
    payoff_date: date
    schedule: tuple[AmortizationEntry, ...]
    summary: CalculationSummary
    one_time_fees: float = ZERO
    recurring_fees: float = ZERO
    apr: Optional[float] = None  # annual percent, only when the loan carries costs

    @property
    def period_count(self) -> int:
        return self.summary.period_count

    @property
    def total_extra_paid(self) -> float:
        return sum((entry.extra_payment for entry in self.schedule), ZERO)

    @property
    def total_cost(self) -> float:
        """Everything the borrower pays: principal, interest and all fees."""
        return self.total_amount + self.one_time_fees + self.recurring_fees

    def yearly_interest(self) -> list[float]:
        """Cumulative interest paid at the end of each loan year."""
        totals: list[float] = []
        running = ZERO
        for entry in self.schedule:
            running += entry.interest_portion
            if entry.period % MONTHS_PER_YEAR == 0 or entry is self.schedule[-1]:
                totals.append(running)
        return totals


def add_months(start: date, months: int) -> date:
    """Return *start* shifted by *months*, clamping the day to the month's end."""
    year = start.year + (start.month - 1 + months) // 12
    month = (start.month - 1 + months) % 12 + 1
    day = min(start.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


def compute_monthly_payment(
    principal: float,
    annual_rate_percent: float,
    duration_months: int,
) -> float:
    """Return the standard annuity payment.

    Uses the reducing-balance formula:
        payment = P * r * (1 + r)^n / ((1 + r)^n - 1)

    Special case: if the rate is zero, payment = P / n.
    """
    if duration_months <= 0:
        raise ValueError("duration_months must be > 0")
    if principal < ZERO:
        raise ValueError("principal must be >= 0")

    r = annual_rate_percent / 100 / MONTHS_PER_YEAR
    if r == ZERO:
        return principal / duration_months

    factor = (1 + r) ** duration_months
    return principal * r * factor / (factor - 1)


def compute_one_time_fees(principal: float, costs: Optional[AdditionalCosts]) -> float:
    """Up-front fees: the origination fee, fixed or a percent of the principal."""
    if costs is None:
        return ZERO
    if costs.origination_fee_type == "percentage":
        return principal * costs.origination_fee / 100
    return costs.origination_fee


def compute_recurring_fees(opening_balance: float, costs: Optional[AdditionalCosts]) -> float:
    """Insurance plus administrative fees charged for one period.

    A percentage fee is an annual percent of the period's opening balance.
    """
    if costs is None:
        return ZERO
    total = ZERO
    for amount, fee_type in (
        (costs.loan_insurance, costs.loan_insurance_type),
        (costs.administrative_fees, costs.administrative_fees_type),
    ):
        if fee_type == "percentage":
            total += opening_balance * amount / 100 / MONTHS_PER_YEAR
        else:
            total += amount
    return total


def compute_apr(net_amount: float, cash_flows: Sequence[float]) -> Optional[float]:
    """Compute APR via Newton-Raphson on the present-value equation.

    NPV(r) = sum_{t=1}^{n} CF_t / (1+r)^t - net_amount = 0,  r = monthly rate.

    *net_amount* is what the borrower actually receives (principal less
    one-time fees) and *cash_flows* their outlay in each period.  Returns the
    annual percent (monthly rate * 12 * 100), or None when nothing is received.
    """
    if net_amount <= ZERO or not cash_flows:
        return None

    n = len(cash_flows)
    # Simple-interest starting point
    r = (sum(cash_flows) / net_amount - 1) / n

    for _ in range(APR_MAX_ITERATIONS):
        try:
            f = -net_amount
            df = ZERO
            for t, flow in enumerate(cash_flows, start=1):
                discount = (1 + r) ** t
                f += flow / discount
                df -= t * flow / (discount * (1 + r))
            if df == 0:
                break
            r_new = r - f / df
            if abs(r_new - r) < APR_TOLERANCE:
                r = r_new
                break
            r = r_new
        except (ZeroDivisionError, OverflowError):
            break

    return r * MONTHS_PER_YEAR * 100


def calculate(
    terms: LoanTerms,
    extra_payments: Optional[ResolvedExtraPaymentMap] = None,
    *,
    scheduled_payment: Optional[float] = None,
    recast_periods: AbstractSet[int] = frozenset(),
) -> CalculationResult:
    """Build the full month-by-month schedule for *terms*.

    *extra_payments* is a resolved period → amount map (see
    ``resolver.resolve_extra_payments``).  *scheduled_payment* overrides the
    annuity payment; it is used by what-if scenarios and is kept as given for
    the whole schedule.  After each period in *recast_periods* the installment
    is recomputed over the remaining contractual periods.
    """
    validate_loan_terms(terms)
    decreasing = terms.repayment_model == "decreasing-installments"
    if decreasing and scheduled_payment is not None:
        raise ValidationError("A scheduled payment cannot be set for decreasing installments.")

    extras = extra_payments or {}
    costs = terms.additional_costs
    n = terms.period_count
    annual_rate = terms.annual_rate_at(1)
    principal_part = terms.principal / n
    if scheduled_payment is not None:
        payment = scheduled_payment
    else:
        payment = compute_monthly_payment(terms.principal, annual_rate, n)

    rows: list[AmortizationEntry] = []
    balance = terms.principal
    total_interest = ZERO
    total_principal = ZERO
    total_fees = ZERO
    period = 0

    while not rows or balance > BALANCE_EPSILON:
        period += 1
        if period > n * MAX_PERIOD_MULTIPLIER:
            raise NonAmortizingLoanError(
                f"Loan of {terms.principal:,.2f} {terms.currency} is not paid off after "
                f"{n * MAX_PERIOD_MULTIPLIER} periods (remaining balance {balance:,.2f})."
            )

        rate_now = terms.annual_rate_at(period)
        if rate_now != annual_rate:
            annual_rate = rate_now
            if not decreasing and scheduled_payment is None:
                payment = compute_monthly_payment(balance, annual_rate, max(1, n - period + 1))

        interest = balance * annual_rate / 100 / MONTHS_PER_YEAR
        if decreasing:
            payment = principal_part + interest
        elif payment <= interest:
            raise NonAmortizingLoanError(
                f"Scheduled payment {payment:,.2f} does not cover the interest "
                f"{interest:,.2f} due in period {period}."
            )

        principal_portion = min(payment - interest, balance)
        extra = min(extras.get(period, ZERO), balance - principal_portion)
        closing = balance - principal_portion - extra
        # Absorb sub-cent residue so the final balance is exactly zero.
        if closing <= BALANCE_EPSILON:
            if extra > ZERO:
                extra += closing
            else:
                principal_portion += closing
            closing = ZERO

        fees = compute_recurring_fees(balance, costs)
        rows.append(
            AmortizationEntry(
                period=period,
                scheduled_payment=payment,
                principal_portion=principal_portion,
                interest_portion=interest,
                extra_payment=extra,
                total_payment=principal_portion + interest + extra,
                ending_balance=closing,
                fees=fees,
            )
        )
        total_interest += interest
        total_principal += principal_portion + extra
        total_fees += fees
        balance = closing

        remaining = n - period
        if period in recast_periods and closing > ZERO and remaining > 0 and scheduled_payment is None:
            if decreasing:
                principal_part = closing / remaining
            else:
                payment = compute_monthly_payment(closing, annual_rate, remaining)

    one_time_fees = compute_one_time_fees(terms.principal, costs)
    apr = None
    if costs is not None:
        apr = compute_apr(
            terms.principal - one_time_fees,
            [entry.total_payment + entry.fees for entry in rows],
        )

    start = terms.start_date or date.today()
    return CalculationResult(
        monthly_payment=rows[0].scheduled_payment,
        total_interest=total_interest,
        total_amount=terms.principal + total_interest,
        payoff_date=add_months(start, len(rows)),
        schedule=tuple(rows),
        summary=CalculationSummary(
            principal_paid=total_principal,
            interest_paid=total_interest,
            period_count=len(rows),
        ),
        one_time_fees=one_time_fees,
        recurring_fees=total_fees,
        apr=apr,
    )


def calculate_plan(
    terms: LoanTerms,
    instructions: Iterable[ExtraPaymentInstruction] = (),
    *,
    scheduled_payment: Optional[float] = None,
) -> CalculationResult:
    """Resolve *instructions* (amounts and reduce-payment recasts) and run the engine."""
    instructions = list(instructions)
    return calculate(
        terms,
        resolve_extra_payments(instructions, terms.term_years),
        scheduled_payment=scheduled_payment,
        recast_periods=resolve_recast_periods(instructions, terms.term_years),
    )


def with_savings(result: CalculationResult, baseline: CalculationResult) -> CalculationResult:
    """Return *result* with interest/time saved filled in against *baseline*."""
    summary = replace(
        result.summary,
        interest_saved=baseline.total_interest - result.total_interest,
        time_saved=baseline.period_count - result.period_count,
    )
    return replace(result, summary=summary)


def calculate_with_savings(
    terms: LoanTerms,
    instructions: Iterable[ExtraPaymentInstruction] = (),
) -> CalculationResult:
    """Run the engine with and without *instructions* and annotate the savings.

    Without any instructions the result is returned un-annotated.
    """
    instructions = list(instructions)
    result = calculate_plan(terms, instructions)
    if not instructions:
        return result
    return with_savings(result, calculate(terms))
