"""Application-wide constants and configuration defaults.

All tuneable defaults live here so there is a single place to adjust them.
"""
from __future__ import annotations

from typing import Literal

# ── Type aliases ──────────────────────────────────────────────────────────────

Recurrence = Literal["one-time", "monthly", "yearly"]
Strategy = Literal["maximizeInterestSavings", "minimizeTerm", "balanced"]
RiskLevel = Literal["low", "medium", "high"]
ScenarioType = Literal["rate-change", "stress-test", "what-if"]
RepaymentModel = Literal["equal-installments", "decreasing-installments"]
FeeType = Literal["fixed", "percentage"]
PaymentEffect = Literal["reduce-term", "reduce-payment"]

VALID_RECURRENCES: frozenset[str] = frozenset({"one-time", "monthly", "yearly"})
VALID_STRATEGIES: frozenset[str] = frozenset({
    "maximizeInterestSavings",
    "minimizeTerm",
    "balanced",
})
VALID_SCENARIO_TYPES: frozenset[str] = frozenset({"rate-change", "stress-test", "what-if"})
VALID_REPAYMENT_MODELS: frozenset[str] = frozenset({"equal-installments", "decreasing-installments"})
VALID_FEE_TYPES: frozenset[str] = frozenset({"fixed", "percentage"})
VALID_EFFECTS: frozenset[str] = frozenset({"reduce-term", "reduce-payment"})

DEFAULT_CURRENCY: str = "USD"

# ── Amortization engine ───────────────────────────────────────────────────────

BALANCE_EPSILON: float = 0.01   # one cent: a balance at or below this is paid off
MAX_PERIOD_MULTIPLIER: int = 2  # hard cap = 2 × nominal period count
MONTHS_PER_YEAR: int = 12

# ── Fees & APR ────────────────────────────────────────────────────────────────

MAX_FEE_PERCENT: float = 100.0
APR_MAX_ITERATIONS: int = 100
APR_TOLERANCE: float = 1e-12

# ── Loan term bounds ──────────────────────────────────────────────────────────

MAX_ANNUAL_RATE_PERCENT: float = 50.0
MIN_TERM_YEARS: int = 1
MAX_TERM_YEARS: int = 50

# ── Comparison bounds ─────────────────────────────────────────────────────────

MIN_COMPARED_LOANS: int = 2
MAX_COMPARED_LOANS: int = 5
MAX_TITLE_LENGTH: int = 100
MIN_LOAN_AMOUNT: float = 1_000.0
MAX_LOAN_AMOUNT: float = 10_000_000.0
MIN_COMPARISON_RATE_PERCENT: float = 0.01

# ── Optimizer search parameters ───────────────────────────────────────────────

SWEEP_STEPS: int = 10          # grid resolution per budget axis: (SWEEP_STEPS + 1)² runs
DEFAULT_IMPACT_STEPS: int = 5
BALANCED_INTEREST_WEIGHT: float = 0.5
BALANCED_TERM_WEIGHT: float = 0.5

# ── Scenario analysis ─────────────────────────────────────────────────────────

# Cost increase (% of baseline total amount): below LOW → low, above HIGH → high.
RISK_THRESHOLD_LOW: float = 5.0
RISK_THRESHOLD_HIGH: float = 15.0

MIN_SCENARIOS: int = 1
MAX_SCENARIOS: int = 10
RATE_CHANGE_BOUNDS: tuple[float, float] = (-10.0, 10.0)
PAYMENT_CHANGE_BOUNDS: tuple[float, float] = (-50.0, 200.0)    # percent
EXTRA_PAYMENT_BOUNDS: tuple[float, float] = (0.0, 100_000.0)
TERM_CHANGE_BOUNDS: tuple[int, int] = (-20, 20)                # years

FIXED_RATE_HINT_RATIO: float = 0.10      # mean rate-change impact vs. baseline total
PAYMENT_SHOCK_RATIO: float = 0.20        # worst-case payment increase vs. baseline payment
OVERALL_HIGH_SHARE: float = 0.50
OVERALL_MEDIUM_SHARE: float = 0.25

# ── Numeric convenience ───────────────────────────────────────────────────────

ZERO: float = 0.0
