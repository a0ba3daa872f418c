"""Command-line front end — click command group rendering with rich.

Commands:
  calculate    amortization schedule with optional extra payments
  compare      rank 2–5 loan variants by total cost
  optimize     search the best overpayment allocation under a budget
  impact       interest saved for increasing monthly overpayments
  lumpsum      one lump sum vs. a recurring monthly overpayment
  scenarios    rate-change / stress-test / what-if analysis
  market-rate  latest published mortgage rate from FRED

Extra payments are given as MONTH:AMOUNT[:RECURRENCE[:END_MONTH]], loans as
TITLE:AMOUNT:RATE:TERM[:DOWN_PAYMENT].
"""
from __future__ import annotations

import sys
from datetime import date, datetime
from typing import NoReturn, Optional

import click
from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich import box

from .calculator import CalculationResult, NonAmortizingLoanError, calculate_with_savings
from .comparison import ComparisonResult, LoanVariant, compare_loans
from .config import (
    DEFAULT_IMPACT_STEPS,
    VALID_EFFECTS,
    VALID_RECURRENCES,
    VALID_REPAYMENT_MODELS,
    VALID_STRATEGIES,
)
from .fetcher import DEFAULT_SERIES, FetchError, fetch_market_rate
from .optimizer import (
    InfeasibleOptimizationError,
    OptimizationParameters,
    OptimizationResult,
    analyze_overpayment_impact,
    compare_lump_sum_vs_regular,
    optimize_overpayments,
)
from .presets import SUPPORTED_STRESS_LEVELS
from .resolver import AdditionalCosts, ExtraPaymentInstruction, LoanTerms, RatePeriod, ValidationError
from .scenarios import (
    ScenarioData,
    ScenarioParameters,
    ScenarioResult,
    analyze_scenarios,
    generate_rate_change_scenarios,
    generate_stress_test_scenarios,
)
from .serialization import to_json

console = Console()
err_console = Console(stderr=True, style="bold red")

_CORE_ERRORS = (ValidationError, NonAmortizingLoanError, InfeasibleOptimizationError, FetchError)

# ──────────────────────────────────────────────────────────────────────────────
# Formatting helpers
# ──────────────────────────────────────────────────────────────────────────────

def _fmt_money(value: float, currency: str) -> str:
    return f"{value:,.2f} {currency}"


def _fmt_months(n: int) -> str:
    years, months = divmod(abs(n), 12)
    sign = "-" if n < 0 else ""
    if months == 0:
        return f"{sign}{abs(n)} months ({years} years)"
    return f"{sign}{abs(n)} months ({years}y {months}m)"


def _fmt_signed(value: float) -> str:
    return f"{value:+,.2f}"


# ──────────────────────────────────────────────────────────────────────────────
# Argument parsing
# ──────────────────────────────────────────────────────────────────────────────

def _parse_extra(raw: str) -> ExtraPaymentInstruction:
    parts = raw.split(":")
    if not 2 <= len(parts) <= 5:
        raise click.BadParameter(f"'{raw}' is not MONTH:AMOUNT[:RECURRENCE[:END_MONTH[:EFFECT]]]")
    try:
        month = int(parts[0])
        amount = float(parts[1])
        end_month = int(parts[3]) if len(parts) >= 4 and parts[3] else None
    except ValueError:
        raise click.BadParameter(f"'{raw}' contains an invalid number") from None
    recurrence = parts[2].strip().lower() if len(parts) >= 3 and parts[2] else "one-time"
    if recurrence not in VALID_RECURRENCES:
        raise click.BadParameter(
            f"recurrence must be one of {', '.join(sorted(VALID_RECURRENCES))} (got '{recurrence}')"
        )
    effect = parts[4].strip().lower() if len(parts) == 5 else "reduce-term"
    if effect not in VALID_EFFECTS:
        raise click.BadParameter(
            f"effect must be one of {', '.join(sorted(VALID_EFFECTS))} (got '{effect}')"
        )
    return ExtraPaymentInstruction(
        month=month,
        amount=amount,
        recurrence=recurrence,  # type: ignore[arg-type]
        end_month=end_month,
        effect=effect,  # type: ignore[arg-type]
    )


def _parse_rate_period(raw: str) -> RatePeriod:
    month, sep, rate = raw.partition(":")
    if not sep:
        raise click.BadParameter(f"'{raw}' is not MONTH:RATE")
    try:
        return RatePeriod(start_month=int(month), annual_rate_percent=float(rate))
    except ValueError:
        raise click.BadParameter(f"'{raw}' contains an invalid number") from None


def _parse_fee(raw: Optional[str]) -> tuple[float, str]:
    """``1500`` is a fixed fee, ``0.5%`` a percentage fee."""
    if raw is None:
        return 0.0, "fixed"
    text = raw.strip()
    fee_type = "fixed"
    if text.endswith("%"):
        text, fee_type = text[:-1], "percentage"
    try:
        return float(text), fee_type
    except ValueError:
        raise click.BadParameter(f"Invalid fee '{raw}'. Use AMOUNT or PERCENT%.") from None


def _parse_loan(raw: str, index: int) -> LoanVariant:
    parts = raw.split(":")
    if not 4 <= len(parts) <= 5:
        raise click.BadParameter(f"'{raw}' is not TITLE:AMOUNT:RATE:TERM[:DOWN_PAYMENT]")
    try:
        return LoanVariant(
            id=f"loan-{index}",
            title=parts[0],
            loan_amount=float(parts[1]),
            annual_rate_percent=float(parts[2]),
            term_years=int(parts[3]),
            down_payment=float(parts[4]) if len(parts) == 5 else 0.0,
        )
    except ValueError:
        raise click.BadParameter(f"'{raw}' contains an invalid number") from None


def _parse_date(raw: Optional[str]) -> Optional[date]:
    if raw is None:
        return None
    try:
        return datetime.strptime(raw, "%Y-%m-%d").date()
    except ValueError:
        raise click.BadParameter(f"Invalid date '{raw}'. Use YYYY-MM-DD.") from None


def _fail(exc: Exception) -> NoReturn:
    err_console.print(f"Error: {exc}")
    sys.exit(1)


# ──────────────────────────────────────────────────────────────────────────────
# Result display
# ──────────────────────────────────────────────────────────────────────────────

def display_result(result: CalculationResult, currency: str) -> None:
    console.print()
    console.print(Panel("[bold green]Loan Calculation[/bold green]", expand=False))

    t = Table(box=box.SIMPLE, show_header=False, padding=(0, 2))
    t.add_column("Field", style="cyan")
    t.add_column("Value", justify="right")

    summary = result.summary
    varies = result.schedule[0].scheduled_payment != result.schedule[-1].scheduled_payment
    t.add_row("First payment" if varies else "Monthly payment", _fmt_money(result.monthly_payment, currency))
    t.add_row("Total interest", _fmt_money(result.total_interest, currency))
    t.add_row("Total amount", _fmt_money(result.total_amount, currency))
    t.add_row("Payments", _fmt_months(summary.period_count))
    t.add_row("Payoff date", result.payoff_date.isoformat())
    if result.apr is not None:
        t.add_row("One-time fees", _fmt_money(result.one_time_fees, currency))
        t.add_row("Recurring fees", _fmt_money(result.recurring_fees, currency))
        t.add_row("Total cost", _fmt_money(result.total_cost, currency))
        t.add_row("APR", f"{result.apr:.2f}%")
    if summary.interest_saved is not None:
        t.add_row("Interest saved", _fmt_money(summary.interest_saved, currency))
    if summary.time_saved is not None:
        t.add_row("Time saved", _fmt_months(summary.time_saved))
    console.print(t)


def display_schedule(result: CalculationResult, currency: str) -> None:
    with_fees = result.recurring_fees > 0
    columns = ["Period", "Payment", "Principal", "Interest", "Extra", "Total", "Balance"]
    if with_fees:
        columns.insert(6, "Fees")
    t = Table(title="Amortization Schedule", box=box.MINIMAL_HEAVY_HEAD)
    for col in columns:
        t.add_column(col, justify="right")

    for row in result.schedule:
        cells = [
            str(row.period),
            _fmt_money(row.scheduled_payment, currency),
            _fmt_money(row.principal_portion, currency),
            _fmt_money(row.interest_portion, currency),
            _fmt_money(row.extra_payment, currency),
            _fmt_money(row.total_payment, currency),
            _fmt_money(row.ending_balance, currency),
        ]
        if with_fees:
            cells.insert(6, _fmt_money(row.fees, currency))
        t.add_row(*cells)
    console.print(t)


def display_comparison(comparison: ComparisonResult, currency: str) -> None:
    t = Table(title="Loan Comparison", box=box.SIMPLE_HEAVY)
    t.add_column("Rank", justify="right")
    t.add_column("Loan", style="cyan")
    t.add_column("Monthly", justify="right")
    t.add_column("Total interest", justify="right")
    t.add_column("Total cost", justify="right")
    t.add_column("Savings", justify="right")
    t.add_column("Payoff", justify="right")

    for entry in comparison.loans:
        m = entry.metrics
        t.add_row(
            str(m.rank),
            entry.loan.title,
            _fmt_money(m.monthly_payment, currency),
            _fmt_money(m.total_interest, currency),
            _fmt_money(m.total_cost, currency),
            _fmt_money(m.interest_savings, currency),
            m.payoff_date.isoformat(),
        )
    console.print(t)

    s = comparison.summary
    console.print(f"[bold green]Best:[/bold green] {s.best_loan.title} — {s.best_loan.reason}")
    console.print(f"[bold red]Worst:[/bold red] {s.worst_loan.title} — {s.worst_loan.reason}")
    console.print(f"Total savings: [bold]{_fmt_money(s.total_savings, currency)}[/bold]   "
                  f"Average rate: {s.average_rate:.2f}%")


def display_optimization(result: OptimizationResult, currency: str) -> None:
    console.print()
    console.print(Panel("[bold yellow]Optimized Overpayments[/bold yellow]", expand=False))

    if not result.optimized_overpayments:
        console.print("  No overpayment improves on the current plan.")
    for plan in result.optimized_overpayments:
        console.print(f"  • {plan.recurrence} {_fmt_money(plan.amount, currency)} from month {plan.month}")

    t = Table(box=box.SIMPLE, show_header=False, padding=(0, 2))
    t.add_column("Field", style="cyan")
    t.add_column("Value", justify="right")
    t.add_row("Interest saved", _fmt_money(result.interest_saved, currency))
    t.add_row("Time saved", f"{result.time_or_payment_saved:.2f} years")
    t.add_row("New payoff date", result.optimized.payoff_date.isoformat())
    if result.optimization_fee:
        t.add_row("Optimization fee", _fmt_money(result.optimization_fee, currency))
    console.print(t)


def display_scenarios(analysis: ScenarioResult, currency: str) -> None:
    t = Table(title="Scenario Analysis", box=box.SIMPLE_HEAVY)
    t.add_column("Scenario", style="cyan")
    t.add_column("Monthly Δ", justify="right")
    t.add_column("Interest Δ", justify="right")
    t.add_column("Total cost Δ", justify="right")
    t.add_column("Payoff Δ", justify="right")
    t.add_column("Risk", justify="right")

    styles = {"low": "green", "medium": "yellow", "high": "red"}
    for outcome in analysis.scenarios:
        impact = outcome.impact
        style = styles[impact.risk_level]
        t.add_row(
            outcome.scenario.name,
            _fmt_signed(impact.monthly_payment_diff),
            _fmt_signed(impact.total_interest_diff),
            _fmt_signed(impact.total_cost_diff),
            _fmt_months(impact.payoff_date_diff) if impact.payoff_date_diff else "No change",
            f"[{style}]{impact.risk_level}[/{style}]",
        )
    console.print(t)

    a = analysis.analysis
    console.print(f"Best case: {a.best_case.description}   "
                  f"Worst case: {a.worst_case.description} "
                  f"(+{_fmt_money(a.worst_case.amount, currency)})")
    console.print(f"Overall risk: [bold]{a.risk_assessment.overall}[/bold]")
    for factor in a.risk_assessment.factors:
        console.print(f"  [yellow]! {factor}[/yellow]")
    for recommendation in a.recommendations:
        console.print(f"  → {recommendation}")


# ──────────────────────────────────────────────────────────────────────────────
# Click entry point
# ──────────────────────────────────────────────────────────────────────────────

def _loan_options(func):
    func = click.option("--admin-fee", default=None, help="Administrative fee per month: AMOUNT or yearly PERCENT%")(func)
    func = click.option("--insurance", default=None, help="Loan insurance per month: AMOUNT or yearly PERCENT%")(func)
    func = click.option("--origination-fee", default=None, help="One-time fee: AMOUNT or PERCENT% of principal")(func)
    func = click.option("--rate-period", "rate_periods", multiple=True, help="Variable rate from a month on: MONTH:RATE")(func)
    func = click.option(
        "--model",
        type=click.Choice(sorted(VALID_REPAYMENT_MODELS)),
        default="equal-installments",
        show_default=True,
    )(func)
    func = click.option("--currency", default="USD", show_default=True)(func)
    func = click.option("--start-date", type=str, default=None, help="First payment month (YYYY-MM-DD)")(func)
    func = click.option("--term", type=int, required=True, help="Term in years")(func)
    func = click.option("--rate", type=float, required=True, help="Annual rate in percent (e.g. 5 for 5%)")(func)
    func = click.option("--principal", type=float, required=True, help="Loan principal")(func)
    return func


def _terms(
    principal: float,
    rate: float,
    term: int,
    start_date: Optional[str],
    currency: str,
    model: str,
    rate_periods: tuple[str, ...],
    origination_fee: Optional[str],
    insurance: Optional[str],
    admin_fee: Optional[str],
) -> LoanTerms:
    costs = None
    if any(fee is not None for fee in (origination_fee, insurance, admin_fee)):
        origination, origination_type = _parse_fee(origination_fee)
        insurance_amount, insurance_type = _parse_fee(insurance)
        admin, admin_type = _parse_fee(admin_fee)
        costs = AdditionalCosts(
            origination_fee=origination,
            origination_fee_type=origination_type,  # type: ignore[arg-type]
            loan_insurance=insurance_amount,
            loan_insurance_type=insurance_type,  # type: ignore[arg-type]
            administrative_fees=admin,
            administrative_fees_type=admin_type,  # type: ignore[arg-type]
        )
    return LoanTerms(
        principal=principal,
        annual_rate_percent=rate,
        term_years=term,
        start_date=_parse_date(start_date),
        currency=currency,
        repayment_model=model,  # type: ignore[arg-type]
        rate_periods=tuple(_parse_rate_period(raw) for raw in rate_periods),
        additional_costs=costs,
    )


@click.group()
def main() -> None:
    """Mortgage calculator — amortization, comparison, optimization and scenarios."""


@main.command()
@_loan_options
@click.option("--extra", "extras", multiple=True, help="MONTH:AMOUNT[:RECURRENCE[:END_MONTH[:EFFECT]]]")
@click.option("--schedule", is_flag=True, help="Print the full amortization schedule")
@click.option("--json", "as_json", is_flag=True, help="Print the result as JSON")
def calculate(extras, schedule, as_json, **loan) -> None:
    """Amortization schedule with optional extra payments."""
    terms = _terms(**loan)
    currency = terms.currency
    try:
        result = calculate_with_savings(terms, [_parse_extra(raw) for raw in extras])
    except _CORE_ERRORS as exc:
        _fail(exc)

    if as_json:
        click.echo(to_json(result))
        return
    display_result(result, currency)
    if schedule:
        display_schedule(result, currency)


@main.command()
@click.option("--loan", "loans", multiple=True, required=True, help="TITLE:AMOUNT:RATE:TERM[:DOWN_PAYMENT]")
@click.option("--currency", default="USD", show_default=True)
@click.option("--json", "as_json", is_flag=True)
def compare(loans, currency, as_json) -> None:
    """Rank 2–5 loan variants by total cost."""
    variants = [_parse_loan(raw, i) for i, raw in enumerate(loans, start=1)]
    try:
        comparison = compare_loans(variants)
    except _CORE_ERRORS as exc:
        _fail(exc)

    if as_json:
        click.echo(to_json(comparison))
        return
    display_comparison(comparison, currency)


@main.command()
@_loan_options
@click.option("--max-monthly", type=float, default=0.0, show_default=True)
@click.option("--max-one-time", type=float, default=0.0, show_default=True)
@click.option("--strategy", type=click.Choice(sorted(VALID_STRATEGIES)), default="balanced", show_default=True)
@click.option("--fee", type=float, default=0.0, help="Fee as a percentage of interest saved")
@click.option("--extra", "extras", multiple=True, help="Existing extra payments")
@click.option("--json", "as_json", is_flag=True)
def optimize(max_monthly, max_one_time, strategy, fee, extras, as_json, **loan) -> None:
    """Search the best overpayment allocation under a budget."""
    terms = _terms(**loan)
    currency = terms.currency
    params = OptimizationParameters(
        max_monthly_overpayment=max_monthly,
        max_one_time_overpayment=max_one_time,
        strategy=strategy,
        fee_percentage=fee,
    )
    try:
        result = optimize_overpayments(terms, params, [_parse_extra(raw) for raw in extras])
    except _CORE_ERRORS as exc:
        _fail(exc)

    if as_json:
        click.echo(to_json(result))
        return
    display_optimization(result, currency)


@main.command()
@_loan_options
@click.option("--max-monthly", type=float, required=True)
@click.option("--steps", type=int, default=DEFAULT_IMPACT_STEPS, show_default=True)
def impact(max_monthly, steps, **loan) -> None:
    """Interest saved for increasing monthly overpayments."""
    terms = _terms(**loan)
    currency = terms.currency
    try:
        points = analyze_overpayment_impact(terms, max_monthly, steps)
    except _CORE_ERRORS as exc:
        _fail(exc)

    t = Table(title="Overpayment Impact", box=box.SIMPLE_HEAVY)
    t.add_column("Monthly overpayment", justify="right")
    t.add_column("Interest saved", justify="right")
    t.add_column("Term reduction", justify="right")
    for point in points:
        t.add_row(
            _fmt_money(point.amount, currency),
            _fmt_money(point.interest_saved, currency),
            _fmt_months(point.term_reduction),
        )
    console.print(t)


@main.command()
@_loan_options
@click.option("--max-one-time", type=float, required=True)
@click.option("--max-monthly", type=float, required=True)
def lumpsum(max_one_time, max_monthly, **loan) -> None:
    """One lump sum at month 1 vs. a recurring monthly overpayment."""
    terms = _terms(**loan)
    currency = terms.currency
    try:
        comparison = compare_lump_sum_vs_regular(terms, max_one_time, max_monthly)
    except _CORE_ERRORS as exc:
        _fail(exc)

    t = Table(title="Lump Sum vs. Monthly", box=box.SIMPLE_HEAVY)
    t.add_column("Approach", style="cyan")
    t.add_column("Interest saved", justify="right")
    t.add_column("Term reduction", justify="right")
    t.add_row("Lump sum", _fmt_money(comparison.lump_sum.interest_saved, currency),
              _fmt_months(comparison.lump_sum.term_reduction))
    t.add_row("Monthly", _fmt_money(comparison.monthly.interest_saved, currency),
              _fmt_months(comparison.monthly.term_reduction))
    console.print(t)
    if comparison.break_even_month is not None:
        console.print(f"Break-even month: [bold]{comparison.break_even_month}[/bold]")


@main.command()
@_loan_options
@click.option("--preset", type=click.Choice(["rate", "stress", "all", "none"]), default="all", show_default=True)
@click.option("--rate-change", "rate_changes", type=float, multiple=True, help="Extra rate-change scenario (points)")
@click.option("--stress", "stress_levels", type=click.Choice(sorted(SUPPORTED_STRESS_LEVELS)), multiple=True)
@click.option("--extra-payment", type=float, default=None, help="What-if: monthly extra payment")
@click.option("--json", "as_json", is_flag=True)
def scenarios(preset, rate_changes, stress_levels, extra_payment, as_json, **loan) -> None:
    """Rate-change, stress-test and what-if analysis against the baseline."""
    terms = _terms(**loan)
    currency = terms.currency

    selected: list[ScenarioData] = []
    if preset in ("rate", "all"):
        selected.extend(generate_rate_change_scenarios())
    if preset in ("stress", "all"):
        selected.extend(generate_stress_test_scenarios())
    for change in rate_changes:
        selected.append(ScenarioData(
            name=f"Rate change ({change:+g}%)",
            type="rate-change",
            parameters=ScenarioParameters(rate_change=change),
        ))
    for level in stress_levels:
        selected.append(ScenarioData(
            name=f"Stress test ({level})",
            type="stress-test",
            parameters=ScenarioParameters(stress_level=level),
        ))
    if extra_payment is not None:
        selected.append(ScenarioData(
            name=f"Extra {extra_payment:,.0f} per month",
            type="what-if",
            parameters=ScenarioParameters(extra_payment=extra_payment),
        ))

    try:
        result = analyze_scenarios(terms, selected)
    except _CORE_ERRORS as exc:
        _fail(exc)

    if as_json:
        click.echo(to_json(result))
        return
    display_scenarios(result, currency)


@main.command("market-rate")
@click.option("--series", default=DEFAULT_SERIES, show_default=True, help="FRED series id")
def market_rate(series) -> None:
    """Latest published mortgage rate from FRED (requires FRED_API_KEY)."""
    console.print(f"  Fetching latest {series} observation…")
    try:
        market = fetch_market_rate(series)
    except FetchError as exc:
        _fail(exc)
    console.print(
        f"  [green]{market.series_id}: {market.rate_percent:.2f}%[/green] "
        f"(as of {market.observed_on.isoformat()})"
    )
