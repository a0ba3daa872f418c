"""Unit tests for resolver.py — input validation and extra-payment resolution."""
import pytest

from mortgage_core.resolver import (
    AdditionalCosts,
    ExtraPaymentInstruction,
    LoanTerms,
    RatePeriod,
    ValidationError,
    resolve_extra_payments,
    resolve_recast_periods,
    validate_loan_terms,
)


def _instr(month=1, amount=100.0, recurrence="one-time", end_month=None) -> ExtraPaymentInstruction:
    return ExtraPaymentInstruction(month=month, amount=amount, recurrence=recurrence, end_month=end_month)


class TestOneTime:
    def test_single_period(self):
        resolved = resolve_extra_payments([_instr(month=5, amount=1000)], term_years=30)
        assert resolved == {5: 1000}

    def test_beyond_term_ignored(self):
        resolved = resolve_extra_payments([_instr(month=361, amount=1000)], term_years=30)
        assert resolved == {}

    def test_last_period_included(self):
        resolved = resolve_extra_payments([_instr(month=360, amount=50)], term_years=30)
        assert resolved == {360: 50}

    def test_zero_amount_contributes_nothing(self):
        assert resolve_extra_payments([_instr(amount=0)], term_years=10) == {}


class TestMonthly:
    def test_from_month_one_covers_full_term(self):
        resolved = resolve_extra_payments([_instr(amount=200, recurrence="monthly")], term_years=30)
        assert len(resolved) == 360
        assert all(amount == 200 for amount in resolved.values())

    def test_starts_at_anchor_month(self):
        resolved = resolve_extra_payments([_instr(month=25, amount=200, recurrence="monthly")], term_years=5)
        assert min(resolved) == 25
        assert max(resolved) == 60
        assert len(resolved) == 36

    def test_end_month_limits_range(self):
        resolved = resolve_extra_payments(
            [_instr(month=1, amount=100, recurrence="monthly", end_month=24)], term_years=30
        )
        assert sorted(resolved) == list(range(1, 25))


class TestYearly:
    def test_anchored_to_instruction_month(self):
        resolved = resolve_extra_payments([_instr(month=3, amount=500, recurrence="yearly")], term_years=3)
        assert resolved == {3: 500, 15: 500, 27: 500}

    def test_stops_at_term_end(self):
        resolved = resolve_extra_payments([_instr(month=12, amount=500, recurrence="yearly")], term_years=2)
        assert resolved == {12: 500, 24: 500}

    def test_end_month(self):
        resolved = resolve_extra_payments(
            [_instr(month=6, amount=500, recurrence="yearly", end_month=30)], term_years=10
        )
        assert sorted(resolved) == [6, 18, 30]


class TestAdditivity:
    def test_same_month_instructions_sum(self):
        resolved = resolve_extra_payments(
            [_instr(month=12, amount=100), _instr(month=12, amount=250)], term_years=5
        )
        assert resolved == {12: 350}

    def test_overlapping_recurrences_sum(self):
        resolved = resolve_extra_payments(
            [
                _instr(month=1, amount=100, recurrence="monthly"),
                _instr(month=12, amount=1000, recurrence="yearly"),
                _instr(month=12, amount=5000),
            ],
            term_years=2,
        )
        assert resolved[1] == 100
        assert resolved[12] == 100 + 1000 + 5000
        assert resolved[24] == 100 + 1000

    def test_order_does_not_matter(self):
        instructions = [
            _instr(month=3, amount=10, recurrence="monthly"),
            _instr(month=7, amount=99, recurrence="yearly"),
        ]
        forward = resolve_extra_payments(instructions, term_years=4)
        backward = resolve_extra_payments(list(reversed(instructions)), term_years=4)
        assert forward == backward


class TestInstructionValidation:
    def test_negative_amount_rejected(self):
        with pytest.raises(ValidationError, match="amount"):
            resolve_extra_payments([_instr(amount=-1)], term_years=30)

    def test_month_zero_rejected(self):
        with pytest.raises(ValidationError, match="month"):
            resolve_extra_payments([_instr(month=0)], term_years=30)

    def test_unknown_recurrence_rejected(self):
        with pytest.raises(ValidationError, match="recurrence"):
            resolve_extra_payments([_instr(recurrence="quarterly")], term_years=30)

    def test_unknown_effect_rejected(self):
        with pytest.raises(ValidationError, match="effect"):
            resolve_extra_payments([ExtraPaymentInstruction(month=1, amount=100, effect="shorten")], term_years=30)

    def test_end_before_start_rejected(self):
        with pytest.raises(ValidationError, match="end_month"):
            resolve_extra_payments([_instr(month=10, recurrence="monthly", end_month=5)], term_years=30)

    def test_bad_entry_rejects_whole_list(self):
        with pytest.raises(ValidationError):
            resolve_extra_payments([_instr(month=1, amount=100), _instr(amount=-5)], term_years=30)

    def test_validation_error_is_value_error(self):
        assert issubclass(ValidationError, ValueError)


class TestLoanTermsValidation:
    def test_valid_terms_pass(self):
        validate_loan_terms(LoanTerms(principal=300_000, annual_rate_percent=5, term_years=30))

    def test_zero_rate_accepted(self):
        validate_loan_terms(LoanTerms(principal=120_000, annual_rate_percent=0, term_years=10))

    @pytest.mark.parametrize("kwargs,match", [
        (dict(principal=0, annual_rate_percent=5, term_years=30), "principal"),
        (dict(principal=-1000, annual_rate_percent=5, term_years=30), "principal"),
        (dict(principal=1000, annual_rate_percent=-0.5, term_years=30), "annual_rate_percent"),
        (dict(principal=1000, annual_rate_percent=50.5, term_years=30), "annual_rate_percent"),
        (dict(principal=1000, annual_rate_percent=5, term_years=0), "term_years"),
        (dict(principal=1000, annual_rate_percent=5, term_years=51), "term_years"),
    ])
    def test_out_of_bounds(self, kwargs, match):
        with pytest.raises(ValidationError, match=match):
            validate_loan_terms(LoanTerms(**kwargs))

    def test_period_count_and_monthly_rate(self):
        terms = LoanTerms(principal=1000, annual_rate_percent=6, term_years=2)
        assert terms.period_count == 24
        assert terms.monthly_rate == pytest.approx(0.005)

    def test_unknown_repayment_model(self):
        with pytest.raises(ValidationError, match="repayment_model"):
            validate_loan_terms(
                LoanTerms(principal=1000, annual_rate_percent=5, term_years=2, repayment_model="balloon")
            )


def _base(**kwargs) -> LoanTerms:
    return LoanTerms(principal=100_000, annual_rate_percent=4, term_years=10, **kwargs)


class TestRatePeriods:
    def test_base_rate_before_first_period(self):
        terms = _base(rate_periods=(RatePeriod(start_month=13, annual_rate_percent=6),))
        assert terms.annual_rate_at(1) == 4
        assert terms.annual_rate_at(12) == 4

    def test_latest_started_period_wins(self):
        terms = _base(rate_periods=(RatePeriod(25, 7.5), RatePeriod(13, 6.0)))
        assert terms.annual_rate_at(13) == 6.0
        assert terms.annual_rate_at(24) == 6.0
        assert terms.annual_rate_at(25) == 7.5
        assert terms.annual_rate_at(120) == 7.5

    @pytest.mark.parametrize("periods,match", [
        ((RatePeriod(0, 5.0),), "start_month"),
        ((RatePeriod(12, 5.0), RatePeriod(12, 6.0)), "Duplicate"),
        ((RatePeriod(12, 55.0),), "Rate period"),
        ((RatePeriod(12, -1.0),), "Rate period"),
    ])
    def test_invalid_periods(self, periods, match):
        with pytest.raises(ValidationError, match=match):
            validate_loan_terms(_base(rate_periods=periods))


class TestAdditionalCostsValidation:
    def test_valid_costs_pass(self):
        validate_loan_terms(_base(additional_costs=AdditionalCosts(
            origination_fee=1.5,
            origination_fee_type="percentage",
            loan_insurance=25,
            administrative_fees=0.1,
            administrative_fees_type="percentage",
        )))

    @pytest.mark.parametrize("costs,match", [
        (AdditionalCosts(origination_fee=-1), "origination_fee"),
        (AdditionalCosts(loan_insurance=101, loan_insurance_type="percentage"), "loan_insurance"),
        (AdditionalCosts(administrative_fees=5, administrative_fees_type="monthly"), "administrative_fees_type"),
    ])
    def test_invalid_costs(self, costs, match):
        with pytest.raises(ValidationError, match=match):
            validate_loan_terms(_base(additional_costs=costs))

    def test_fixed_fee_above_hundred_allowed(self):
        validate_loan_terms(_base(additional_costs=AdditionalCosts(origination_fee=2500)))


class TestRecastPeriods:
    def test_only_reduce_payment_instructions(self):
        periods = resolve_recast_periods(
            [
                ExtraPaymentInstruction(month=6, amount=5000, effect="reduce-payment"),
                ExtraPaymentInstruction(month=9, amount=5000),
            ],
            term_years=10,
        )
        assert periods == frozenset({6})

    def test_recurring_instruction_recasts_every_contribution(self):
        periods = resolve_recast_periods(
            [ExtraPaymentInstruction(month=12, amount=1000, recurrence="yearly", effect="reduce-payment")],
            term_years=3,
        )
        assert periods == frozenset({12, 24, 36})

    def test_zero_amount_never_recasts(self):
        periods = resolve_recast_periods(
            [ExtraPaymentInstruction(month=3, amount=0, effect="reduce-payment")], term_years=5
        )
        assert periods == frozenset()
