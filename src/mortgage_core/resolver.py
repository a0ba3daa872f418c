"""Loan inputs, validation and extra-payment resolution.

Resolution rules (N = term_years × 12):
1. one-time: contributes only at ``month``; ignored when ``month > N``.
2. monthly: contributes to every period from ``month`` through N.
3. yearly: contributes at ``month``, ``month + 12``, ``month + 24`` … up to N.
4. Recurring instructions stop after ``end_month`` when one is given.
5. Instructions landing on the same period are summed.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Iterable, Iterator, Optional

from .config import (
    DEFAULT_CURRENCY,
    MAX_ANNUAL_RATE_PERCENT,
    MAX_FEE_PERCENT,
    MAX_TERM_YEARS,
    MIN_TERM_YEARS,
    MONTHS_PER_YEAR,
    VALID_EFFECTS,
    VALID_FEE_TYPES,
    VALID_RECURRENCES,
    VALID_REPAYMENT_MODELS,
    ZERO,
    FeeType,
    PaymentEffect,
    Recurrence,
    RepaymentModel,
)


class ValidationError(ValueError):
    """Raised when an input lies outside its documented bounds."""


@dataclass(frozen=True)
class RatePeriod:
    """From ``start_month`` on, ``annual_rate_percent`` replaces the base rate."""
    start_month: int
    annual_rate_percent: float


@dataclass(frozen=True)
class AdditionalCosts:
    """Loan fees.

    The origination fee is charged once, up front.  Insurance and
    administrative fees are charged every period.  A ``percentage`` fee is a
    percent of the principal (origination) or an annual percent of the
    period's opening balance (recurring).
    """
    origination_fee: float = ZERO
    origination_fee_type: FeeType = "fixed"
    loan_insurance: float = ZERO
    loan_insurance_type: FeeType = "fixed"
    administrative_fees: float = ZERO
    administrative_fees_type: FeeType = "fixed"


@dataclass(frozen=True)
class LoanTerms:
    principal: float
    annual_rate_percent: float
    term_years: int
    start_date: Optional[date] = None
    currency: str = DEFAULT_CURRENCY
    repayment_model: RepaymentModel = "equal-installments"
    rate_periods: tuple[RatePeriod, ...] = ()
    additional_costs: Optional[AdditionalCosts] = None

    @property
    def period_count(self) -> int:
        """Nominal number of monthly periods."""
        return self.term_years * MONTHS_PER_YEAR

    @property
    def monthly_rate(self) -> float:
        return self.annual_rate_percent / 100 / MONTHS_PER_YEAR

    def annual_rate_at(self, period: int) -> float:
        """Annual rate in force for *period*, after any variable-rate periods."""
        rate = self.annual_rate_percent
        latest = 0
        for rate_period in self.rate_periods:
            if latest < rate_period.start_month <= period:
                latest = rate_period.start_month
                rate = rate_period.annual_rate_percent
        return rate


@dataclass(frozen=True)
class ExtraPaymentInstruction:
    """One extra-principal instruction.  ``month`` is the 1-based anchor period.

    ``reduce-term`` keeps the installment and ends the loan earlier;
    ``reduce-payment`` recomputes the installment over the remaining
    contractual periods once the extra payment is made.
    """
    month: int
    amount: float
    recurrence: Recurrence = "one-time"
    end_month: Optional[int] = None  # last period a recurring instruction applies to
    effect: PaymentEffect = "reduce-term"


# Optimizer output uses the same shape as user-supplied instructions.
OverpaymentPlan = ExtraPaymentInstruction

ResolvedExtraPaymentMap = dict[int, float]


def _check_rate(value: float, label: str) -> None:
    if not ZERO <= value <= MAX_ANNUAL_RATE_PERCENT:
        raise ValidationError(
            f"{label} must be between 0 and {MAX_ANNUAL_RATE_PERCENT:g} (got {value})."
        )


def _check_fee(amount: float, fee_type: str, label: str) -> None:
    if fee_type not in VALID_FEE_TYPES:
        raise ValidationError(
            f"Unknown {label}_type '{fee_type}'. "
            f"Valid values: {', '.join(sorted(VALID_FEE_TYPES))}"
        )
    if amount < ZERO:
        raise ValidationError(f"{label} must be >= 0 (got {amount}).")
    if fee_type == "percentage" and amount > MAX_FEE_PERCENT:
        raise ValidationError(
            f"{label} must be at most {MAX_FEE_PERCENT:g}% (got {amount})."
        )


def validate_additional_costs(costs: AdditionalCosts) -> None:
    _check_fee(costs.origination_fee, costs.origination_fee_type, "origination_fee")
    _check_fee(costs.loan_insurance, costs.loan_insurance_type, "loan_insurance")
    _check_fee(costs.administrative_fees, costs.administrative_fees_type, "administrative_fees")


def validate_loan_terms(terms: LoanTerms) -> None:
    """Raise ValidationError unless *terms* are inside the engine's bounds."""
    if not terms.principal > ZERO:
        raise ValidationError(f"principal must be > 0 (got {terms.principal}).")
    _check_rate(terms.annual_rate_percent, "annual_rate_percent")
    if (
        isinstance(terms.term_years, bool)
        or not isinstance(terms.term_years, int)
        or not MIN_TERM_YEARS <= terms.term_years <= MAX_TERM_YEARS
    ):
        raise ValidationError(
            f"term_years must be an integer between {MIN_TERM_YEARS} and {MAX_TERM_YEARS} "
            f"(got {terms.term_years!r})."
        )
    if terms.repayment_model not in VALID_REPAYMENT_MODELS:
        raise ValidationError(
            f"Unknown repayment_model '{terms.repayment_model}'. "
            f"Valid values: {', '.join(sorted(VALID_REPAYMENT_MODELS))}"
        )

    seen: set[int] = set()
    for rate_period in terms.rate_periods:
        if rate_period.start_month < 1:
            raise ValidationError(
                f"Rate period start_month must be >= 1 (got {rate_period.start_month})."
            )
        if rate_period.start_month in seen:
            raise ValidationError(
                f"Duplicate rate period for start_month {rate_period.start_month}."
            )
        seen.add(rate_period.start_month)
        _check_rate(
            rate_period.annual_rate_percent,
            f"Rate period annual_rate_percent (month {rate_period.start_month})",
        )

    if terms.additional_costs is not None:
        validate_additional_costs(terms.additional_costs)


def validate_instruction(instruction: ExtraPaymentInstruction) -> None:
    if instruction.month < 1:
        raise ValidationError(f"Extra payment month must be >= 1 (got {instruction.month}).")
    if instruction.amount < ZERO:
        raise ValidationError(
            f"Extra payment amount must be >= 0 (got {instruction.amount}) "
            f"for month {instruction.month}."
        )
    if instruction.recurrence not in VALID_RECURRENCES:
        raise ValidationError(
            f"Unknown recurrence '{instruction.recurrence}'. "
            f"Valid values: {', '.join(sorted(VALID_RECURRENCES))}"
        )
    if instruction.end_month is not None and instruction.end_month < instruction.month:
        raise ValidationError(
            f"Extra payment end_month ({instruction.end_month}) is before "
            f"its start month ({instruction.month})."
        )
    if instruction.effect not in VALID_EFFECTS:
        raise ValidationError(
            f"Unknown effect '{instruction.effect}'. "
            f"Valid values: {', '.join(sorted(VALID_EFFECTS))}"
        )


def _periods_for(instruction: ExtraPaymentInstruction, n: int) -> Iterator[int]:
    last = n if instruction.end_month is None else min(n, instruction.end_month)
    if instruction.recurrence == "one-time":
        if instruction.month <= n:
            yield instruction.month
    elif instruction.recurrence == "monthly":
        yield from range(instruction.month, last + 1)
    else:  # yearly
        yield from range(instruction.month, last + 1, MONTHS_PER_YEAR)


def resolve_extra_payments(
    instructions: Iterable[ExtraPaymentInstruction],
    term_years: int,
) -> ResolvedExtraPaymentMap:
    """Expand *instructions* into a period → additional principal map.

    Every instruction is validated before any of them is resolved, so a bad
    entry never yields a partial map.
    """
    instructions = list(instructions)
    for instruction in instructions:
        validate_instruction(instruction)

    n = term_years * MONTHS_PER_YEAR
    resolved: ResolvedExtraPaymentMap = {}
    for instruction in instructions:
        if instruction.amount == ZERO:
            continue
        for period in _periods_for(instruction, n):
            resolved[period] = resolved.get(period, ZERO) + instruction.amount
    return resolved


def resolve_recast_periods(
    instructions: Iterable[ExtraPaymentInstruction],
    term_years: int,
) -> frozenset[int]:
    """Periods after which the installment is recomputed (``reduce-payment``)."""
    n = term_years * MONTHS_PER_YEAR
    periods: set[int] = set()
    for instruction in instructions:
        validate_instruction(instruction)
        if instruction.effect == "reduce-payment" and instruction.amount > ZERO:
            periods.update(_periods_for(instruction, n))
    return frozenset(periods)
