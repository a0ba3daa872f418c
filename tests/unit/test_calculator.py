"""Unit tests for calculator.py — payment formula, schedule invariants, savings."""
from datetime import date

import pytest

from mortgage_core.calculator import (
    NonAmortizingLoanError,
    add_months,
    calculate,
    calculate_plan,
    calculate_with_savings,
    compute_apr,
    compute_monthly_payment,
    compute_one_time_fees,
    compute_recurring_fees,
    with_savings,
)
from mortgage_core.resolver import (
    AdditionalCosts,
    ExtraPaymentInstruction,
    LoanTerms,
    RatePeriod,
    ValidationError,
    resolve_extra_payments,
)

START = date(2025, 1, 1)


def _terms(principal=300_000.0, rate=5.0, years=30, start=START) -> LoanTerms:
    return LoanTerms(principal=principal, annual_rate_percent=rate, term_years=years, start_date=start)


def _with_extras(terms: LoanTerms, *instructions: ExtraPaymentInstruction):
    return calculate(terms, resolve_extra_payments(instructions, terms.term_years))


class TestComputeMonthlyPayment:
    @pytest.mark.parametrize("principal,rate,months,expected", [
        # P=300000, 5%, 360 → 1610.46
        (300_000, 5.0, 360, 1610.46),
        # P=100000, 3.5%, 240 → 579.96
        (100_000, 3.5, 240, 579.96),
        # P=500000, 5%, 360 → 2684.11
        (500_000, 5.0, 360, 2684.11),
    ])
    def test_standard_cases(self, principal, rate, months, expected):
        assert compute_monthly_payment(principal, rate, months) == pytest.approx(expected, abs=0.01)

    def test_zero_interest(self):
        assert compute_monthly_payment(120_000, 0, 120) == pytest.approx(1000.0)

    def test_single_month(self):
        # 1000 * 0.01 * 1.01 / 0.01 = 1010
        assert compute_monthly_payment(1000, 12.0, 1) == pytest.approx(1010.0)

    def test_invalid_duration(self):
        with pytest.raises(ValueError, match="duration_months"):
            compute_monthly_payment(100_000, 3.5, 0)

    def test_negative_principal(self):
        with pytest.raises(ValueError, match="principal"):
            compute_monthly_payment(-1, 3.5, 120)


class TestScheduleInvariants:
    def test_conservation_without_extras(self):
        result = calculate(_terms())
        total_principal = sum(e.principal_portion for e in result.schedule)
        assert total_principal == pytest.approx(300_000, abs=1e-2)

    def test_conservation_with_extras(self):
        terms = _terms()
        result = _with_extras(
            terms,
            ExtraPaymentInstruction(month=1, amount=250, recurrence="monthly"),
            ExtraPaymentInstruction(month=6, amount=20_000),
        )
        paid = sum(e.principal_portion + e.extra_payment for e in result.schedule)
        assert paid == pytest.approx(terms.principal, abs=1e-2)
        assert result.summary.principal_paid == pytest.approx(terms.principal, abs=1e-2)

    def test_balance_non_increasing_and_ends_at_zero(self):
        result = _with_extras(_terms(), ExtraPaymentInstruction(month=12, amount=5000, recurrence="yearly"))
        balances = [e.ending_balance for e in result.schedule]
        assert all(balances[i] >= balances[i + 1] for i in range(len(balances) - 1))
        assert balances[-1] == 0.0
        assert min(balances) >= 0.0

    def test_nominal_period_count(self):
        result = calculate(_terms(years=15))
        assert result.period_count == 180
        assert len(result.schedule) == 180

    def test_first_period(self):
        entry = calculate(_terms()).schedule[0]
        assert entry.period == 1
        # 300000 * 0.05 / 12 = 1250
        assert entry.interest_portion == pytest.approx(1250.0)
        assert entry.principal_portion == pytest.approx(1610.46 - 1250.0, abs=0.01)
        assert entry.extra_payment == 0.0

    def test_total_payment_components(self):
        result = _with_extras(_terms(), ExtraPaymentInstruction(month=1, amount=100, recurrence="monthly"))
        for entry in result.schedule:
            expected = entry.principal_portion + entry.interest_portion + entry.extra_payment
            assert entry.total_payment == pytest.approx(expected)

    def test_totals_consistent(self):
        result = calculate(_terms())
        assert result.total_interest == pytest.approx(sum(e.interest_portion for e in result.schedule))
        assert result.total_amount == pytest.approx(300_000 + result.total_interest)
        # 30y @ 5% on 300k → ≈ 279,767 interest
        assert result.total_interest == pytest.approx(279_767, abs=5)


class TestZeroRate:
    def test_payment_is_principal_over_periods(self):
        result = calculate(_terms(principal=120_000, rate=0, years=10))
        assert result.monthly_payment == pytest.approx(1000.0)

    def test_no_interest(self):
        result = calculate(_terms(principal=120_000, rate=0, years=10))
        assert result.total_interest == 0.0
        assert result.period_count == 120
        assert result.schedule[-1].ending_balance == 0.0


class TestExtraPayments:
    @pytest.mark.parametrize("instruction", [
        ExtraPaymentInstruction(month=1, amount=200, recurrence="monthly"),
        ExtraPaymentInstruction(month=12, amount=3000, recurrence="yearly"),
        ExtraPaymentInstruction(month=24, amount=15_000, recurrence="one-time"),
        ExtraPaymentInstruction(month=359, amount=0.5, recurrence="one-time"),
    ])
    def test_never_lengthens_or_costs_more(self, instruction):
        terms = _terms()
        base = calculate(terms)
        result = _with_extras(terms, instruction)
        assert result.period_count <= base.period_count
        assert result.total_interest <= base.total_interest

    def test_monthly_extra_shortens_term(self):
        result = _with_extras(_terms(), ExtraPaymentInstruction(month=1, amount=500, recurrence="monthly"))
        assert result.period_count < 360

    def test_final_extra_truncated_to_balance(self):
        terms = _terms(principal=10_000, rate=6, years=1)
        result = _with_extras(terms, ExtraPaymentInstruction(month=3, amount=1_000_000))
        last = result.schedule[-1]
        assert result.period_count == 3
        assert last.ending_balance == 0.0
        assert last.extra_payment < 10_000

    def test_scheduled_payment_unchanged_by_extras(self):
        terms = _terms()
        base = calculate(terms)
        result = _with_extras(terms, ExtraPaymentInstruction(month=1, amount=300, recurrence="monthly"))
        assert result.monthly_payment == base.monthly_payment


class TestPayoffDate:
    def test_payoff_date_from_start(self):
        result = calculate(_terms(years=30, start=date(2025, 1, 15)))
        assert result.payoff_date == date(2055, 1, 15)

    def test_shortened_payoff_date(self):
        terms = _terms(principal=10_000, rate=6, years=1, start=date(2025, 1, 1))
        result = _with_extras(terms, ExtraPaymentInstruction(month=3, amount=1_000_000))
        assert result.payoff_date == date(2025, 4, 1)

    @pytest.mark.parametrize("start,months,expected", [
        (date(2025, 1, 31), 1, date(2025, 2, 28)),
        (date(2024, 1, 31), 1, date(2024, 2, 29)),
        (date(2025, 11, 15), 2, date(2026, 1, 15)),
        (date(2025, 6, 1), 0, date(2025, 6, 1)),
    ])
    def test_add_months(self, start, months, expected):
        assert add_months(start, months) == expected


class TestNonAmortizing:
    def test_payment_below_interest(self):
        with pytest.raises(NonAmortizingLoanError, match="does not cover"):
            calculate(_terms(), scheduled_payment=1000.0)

    def test_payment_equal_to_interest(self):
        with pytest.raises(NonAmortizingLoanError):
            calculate(_terms(), scheduled_payment=1250.0)

    def test_exceeds_period_cap(self):
        # Covers interest but needs far more than 2 × 360 periods
        with pytest.raises(NonAmortizingLoanError, match="not paid off"):
            calculate(_terms(), scheduled_payment=1251.0)

    def test_invalid_terms_rejected(self):
        with pytest.raises(ValidationError):
            calculate(_terms(principal=0))


class TestSavings:
    def test_without_instructions_no_savings_fields(self):
        result = calculate_with_savings(_terms())
        assert result.summary.interest_saved is None
        assert result.summary.time_saved is None

    def test_savings_against_baseline(self):
        terms = _terms()
        result = calculate_with_savings(
            terms, [ExtraPaymentInstruction(month=1, amount=500, recurrence="monthly")]
        )
        baseline = calculate(terms)
        assert result.summary.interest_saved == pytest.approx(baseline.total_interest - result.total_interest)
        assert result.summary.time_saved == 360 - result.period_count
        assert result.summary.interest_saved > 0
        assert result.summary.time_saved > 0

    def test_with_savings_does_not_mutate(self):
        terms = _terms()
        baseline = calculate(terms)
        result = _with_extras(terms, ExtraPaymentInstruction(month=1, amount=100, recurrence="monthly"))
        annotated = with_savings(result, baseline)
        assert result.summary.interest_saved is None
        assert annotated.schedule == result.schedule


class TestIdempotence:
    def test_identical_inputs_identical_schedules(self):
        terms = _terms()
        extras = resolve_extra_payments(
            [ExtraPaymentInstruction(month=6, amount=777, recurrence="yearly")], terms.term_years
        )
        assert calculate(terms, extras) == calculate(terms, extras)


class TestYearlyInterest:
    def test_one_value_per_year(self):
        result = calculate(_terms(years=10))
        yearly = result.yearly_interest()
        assert len(yearly) == 10
        assert yearly[-1] == pytest.approx(result.total_interest)
        assert yearly == sorted(yearly)

    def test_partial_final_year_counted(self):
        terms = _terms(principal=10_000, rate=6, years=1)
        result = _with_extras(terms, ExtraPaymentInstruction(month=3, amount=1_000_000))
        assert result.yearly_interest() == [pytest.approx(result.total_interest)]


class TestTinyPrincipal:
    def test_sub_cent_principal_repaid_in_one_period(self):
        result = calculate(LoanTerms(principal=0.005, annual_rate_percent=5.0, term_years=30))
        assert len(result.schedule) == 1
        entry = result.schedule[0]
        assert entry.principal_portion == pytest.approx(0.005)
        assert entry.ending_balance == 0.0
        assert result.period_count == 1
        assert result.monthly_payment > 0

    def test_one_cent_principal(self):
        result = calculate(_terms(principal=0.01, start=date(2025, 1, 1)))
        assert result.period_count == 1
        assert result.payoff_date == date(2025, 2, 1)


class TestDecreasingInstallments:
    def _decreasing(self, **kwargs) -> LoanTerms:
        defaults = dict(principal=120_000.0, rate=6.0, years=10)
        defaults.update(kwargs)
        return LoanTerms(
            principal=defaults["principal"],
            annual_rate_percent=defaults["rate"],
            term_years=defaults["years"],
            start_date=START,
            repayment_model="decreasing-installments",
        )

    def test_constant_principal_portion(self):
        result = calculate(self._decreasing())
        assert result.period_count == 120
        assert all(e.principal_portion == pytest.approx(1000.0) for e in result.schedule)
        assert result.schedule[-1].ending_balance == 0.0

    def test_payments_fall_with_balance(self):
        result = calculate(self._decreasing())
        payments = [e.scheduled_payment for e in result.schedule]
        # 1000 principal + 600 interest on the full balance
        assert payments[0] == pytest.approx(1600.0)
        assert payments[1] == pytest.approx(1595.0)
        assert payments[-1] == pytest.approx(1005.0)
        assert all(payments[i] > payments[i + 1] for i in range(len(payments) - 1))
        assert result.monthly_payment == pytest.approx(1600.0)

    def test_total_interest(self):
        # 0.005 × 1000 × (120 + 119 + … + 1)
        assert calculate(self._decreasing()).total_interest == pytest.approx(36_300.0)

    def test_cheaper_than_equal_installments(self):
        equal = calculate(_terms(principal=120_000, rate=6, years=10))
        assert calculate(self._decreasing()).total_interest < equal.total_interest

    def test_extra_payments_shorten_term(self):
        result = calculate_plan(
            self._decreasing(), [ExtraPaymentInstruction(month=1, amount=500, recurrence="monthly")]
        )
        assert result.period_count < 120
        paid = sum(e.principal_portion + e.extra_payment for e in result.schedule)
        assert paid == pytest.approx(120_000, abs=1e-2)

    def test_zero_rate(self):
        result = calculate(self._decreasing(rate=0))
        assert result.total_interest == 0.0
        assert result.monthly_payment == pytest.approx(1000.0)

    def test_scheduled_payment_override_rejected(self):
        with pytest.raises(ValidationError, match="decreasing"):
            calculate(self._decreasing(), scheduled_payment=2000.0)


class TestVariableRate:
    def test_unchanged_rate_matches_fixed_loan(self):
        terms = _terms(principal=100_000, rate=4, years=10)
        variable = LoanTerms(
            principal=100_000,
            annual_rate_percent=4,
            term_years=10,
            start_date=START,
            rate_periods=(RatePeriod(start_month=61, annual_rate_percent=4),),
        )
        assert calculate(variable) == calculate(terms)

    def test_rate_increase_reamortizes_remaining_term(self):
        terms = LoanTerms(
            principal=100_000,
            annual_rate_percent=4,
            term_years=10,
            start_date=START,
            rate_periods=(RatePeriod(start_month=61, annual_rate_percent=6),),
        )
        result = calculate(terms)
        before, after = result.schedule[59], result.schedule[60]
        assert before.scheduled_payment == pytest.approx(compute_monthly_payment(100_000, 4, 120))
        assert after.scheduled_payment == pytest.approx(
            compute_monthly_payment(before.ending_balance, 6, 60)
        )
        assert after.interest_portion == pytest.approx(before.ending_balance * 0.06 / 12)
        assert after.scheduled_payment > before.scheduled_payment
        assert result.period_count == 120
        assert result.schedule[-1].ending_balance == 0.0

    def test_rate_period_from_first_month(self):
        terms = LoanTerms(
            principal=100_000,
            annual_rate_percent=4,
            term_years=10,
            rate_periods=(RatePeriod(start_month=1, annual_rate_percent=5),),
        )
        assert calculate(terms).monthly_payment == pytest.approx(compute_monthly_payment(100_000, 5, 120))

    def test_decreasing_principal_unchanged_by_rate(self):
        terms = LoanTerms(
            principal=120_000,
            annual_rate_percent=6,
            term_years=10,
            repayment_model="decreasing-installments",
            rate_periods=(RatePeriod(start_month=13, annual_rate_percent=3),),
        )
        result = calculate(terms)
        assert result.schedule[12].principal_portion == pytest.approx(1000.0)
        # 108,000 outstanding at 3 %
        assert result.schedule[12].interest_portion == pytest.approx(270.0)

    def test_override_not_reamortized(self):
        terms = LoanTerms(
            principal=100_000,
            annual_rate_percent=4,
            term_years=10,
            rate_periods=(RatePeriod(start_month=13, annual_rate_percent=5),),
        )
        result = calculate(terms, scheduled_payment=1500.0)
        assert {e.scheduled_payment for e in result.schedule} == {1500.0}


class TestReducePayment:
    def _terms(self, **kwargs) -> LoanTerms:
        return LoanTerms(principal=100_000, annual_rate_percent=4, term_years=10, start_date=START, **kwargs)

    def test_payment_recomputed_after_extra(self):
        result = calculate_plan(
            self._terms(), [ExtraPaymentInstruction(month=12, amount=20_000, effect="reduce-payment")]
        )
        before, after = result.schedule[11], result.schedule[12]
        assert after.scheduled_payment == pytest.approx(
            compute_monthly_payment(before.ending_balance, 4, 108)
        )
        assert after.scheduled_payment < before.scheduled_payment
        assert result.period_count == 120
        assert result.schedule[-1].ending_balance == 0.0

    def test_reduce_term_ends_earlier(self):
        extra = dict(month=12, amount=20_000)
        reduce_term = calculate_plan(self._terms(), [ExtraPaymentInstruction(**extra)])
        reduce_payment = calculate_plan(
            self._terms(), [ExtraPaymentInstruction(**extra, effect="reduce-payment")]
        )
        assert reduce_term.period_count < reduce_payment.period_count == 120
        assert reduce_term.total_interest < reduce_payment.total_interest
        assert reduce_term.schedule[12].scheduled_payment == reduce_term.monthly_payment

    def test_conservation(self):
        result = calculate_plan(
            self._terms(),
            [ExtraPaymentInstruction(month=6, amount=1000, recurrence="yearly", effect="reduce-payment")],
        )
        paid = sum(e.principal_portion + e.extra_payment for e in result.schedule)
        assert paid == pytest.approx(100_000, abs=1e-2)

    def test_decreasing_principal_portion_recomputed(self):
        terms = self._terms(repayment_model="decreasing-installments")
        result = calculate_plan(terms, [ExtraPaymentInstruction(month=60, amount=10_000, effect="reduce-payment")])
        closing = result.schedule[59].ending_balance
        assert result.schedule[60].principal_portion == pytest.approx(closing / 60)
        assert result.period_count == 120

    def test_savings_reported(self):
        result = calculate_with_savings(
            self._terms(), [ExtraPaymentInstruction(month=12, amount=20_000, effect="reduce-payment")]
        )
        assert result.summary.interest_saved > 0
        assert result.summary.time_saved == 0


class TestFees:
    def _terms(self, costs=None) -> LoanTerms:
        return LoanTerms(
            principal=100_000, annual_rate_percent=4, term_years=10, start_date=START, additional_costs=costs
        )

    def test_no_costs_no_apr(self):
        result = calculate(self._terms())
        assert result.apr is None
        assert result.one_time_fees == 0.0
        assert result.recurring_fees == 0.0
        assert result.total_cost == result.total_amount

    def test_zero_costs_apr_equals_nominal(self):
        result = calculate(self._terms(AdditionalCosts()))
        assert result.apr == pytest.approx(4.0, abs=1e-6)

    def test_fees_raise_apr_above_nominal(self):
        costs = AdditionalCosts(origination_fee=1, origination_fee_type="percentage", loan_insurance=20)
        result = calculate(self._terms(costs))
        assert result.one_time_fees == pytest.approx(1000.0)
        assert result.recurring_fees == pytest.approx(20 * 120)
        assert result.total_cost == pytest.approx(result.total_amount + 1000 + 2400)
        assert result.apr > 4.0
        assert all(e.fees == pytest.approx(20.0) for e in result.schedule)

    def test_fees_excluded_from_total_payment(self):
        result = calculate(self._terms(AdditionalCosts(administrative_fees=15)))
        base = calculate(self._terms())
        assert [e.total_payment for e in result.schedule] == [e.total_payment for e in base.schedule]

    def test_percentage_recurring_fee_on_opening_balance(self):
        costs = AdditionalCosts(administrative_fees=0.12, administrative_fees_type="percentage")
        result = calculate(self._terms(costs))
        # 100,000 × 0.12 % / 12
        assert result.schedule[0].fees == pytest.approx(10.0)
        assert result.schedule[1].fees == pytest.approx(result.schedule[0].ending_balance * 0.0012 / 12)
        assert result.schedule[1].fees < result.schedule[0].fees

    @pytest.mark.parametrize("costs,expected", [
        (None, 0.0),
        (AdditionalCosts(origination_fee=2500), 2500.0),
        (AdditionalCosts(origination_fee=2, origination_fee_type="percentage"), 4000.0),
    ])
    def test_one_time_fees(self, costs, expected):
        assert compute_one_time_fees(200_000, costs) == pytest.approx(expected)

    def test_recurring_fees_combined(self):
        costs = AdditionalCosts(
            loan_insurance=0.6, loan_insurance_type="percentage", administrative_fees=5
        )
        # 200,000 × 0.6 % / 12 + 5
        assert compute_recurring_fees(200_000, costs) == pytest.approx(105.0)


class TestComputeApr:
    def test_plain_annuity(self):
        payment = compute_monthly_payment(100_000, 6, 360)
        assert compute_apr(100_000, [payment] * 360) == pytest.approx(6.0, abs=1e-6)

    def test_upfront_fee_raises_rate(self):
        payment = compute_monthly_payment(100_000, 6, 360)
        assert compute_apr(98_000, [payment] * 360) > 6.0

    def test_zero_rate(self):
        assert compute_apr(12_000, [1000.0] * 12) == pytest.approx(0.0, abs=1e-9)

    @pytest.mark.parametrize("net", [0.0, -500.0])
    def test_nothing_received(self, net):
        assert compute_apr(net, [100.0] * 12) is None
