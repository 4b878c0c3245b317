"""
Unit tests for the pricing snapshot builder.
"""

import pytest
from decimal import Decimal

from proposaldesk.exceptions import ValidationError
from proposaldesk.services.pricing_snapshot_service import (
    build_pricing_snapshot,
    calculate_monthly_payment,
    normalize_custom_adders
)


class TestMonthlyPayment:
    """Tests for the amortization helper."""

    def test_zero_rate_divides_evenly(self):
        assert calculate_monthly_payment(Decimal('1200'), 12, Decimal('0')) == Decimal('100.00')

    def test_zero_term_yields_zero(self):
        assert calculate_monthly_payment(Decimal('1200'), 0, Decimal('5.99')) == Decimal('0.00')

    def test_interest_makes_payment_exceed_principal_share(self):
        payment = calculate_monthly_payment(Decimal('12000'), 60, Decimal('5.99'))
        assert payment > Decimal('200.00')
        assert payment < Decimal('240.00')
        assert payment == payment.quantize(Decimal('0.01'))


class TestCustomAdders:

    def test_accepts_wizard_and_snake_case_keys(self):
        lines = normalize_custom_adders([
            {'productCategory': 'roofing', 'description': 'Permit fee', 'cost': '150'},
            {'product_category': 'hvac', 'description': 'Haul away', 'cost': 75.5},
        ])
        assert [l.product_category for l in lines] == ['roofing', 'hvac']
        assert lines[1].cost == Decimal('75.50')

    def test_missing_description_is_rejected(self):
        with pytest.raises(ValidationError):
            normalize_custom_adders([{'productCategory': 'roofing', 'cost': 10}])

    def test_non_dict_entry_is_rejected(self):
        with pytest.raises(ValidationError):
            normalize_custom_adders(['permit'])


class TestBuildPricingSnapshot:

    def test_client_totals_are_kept(self):
        snapshot = build_pricing_snapshot({
            'subtotal': '10,000.00',
            'discount': 500,
            'total': 9400,
            'monthlyPayment': 181.7,
            'financingTerm': 60,
            'interestRate': 5.99,
        })
        assert snapshot.subtotal == Decimal('10000.00')
        assert snapshot.total == Decimal('9400.00')
        assert snapshot.monthly_payment == Decimal('181.70')
        assert snapshot.breakdown['trace'] == []

    def test_missing_total_is_derived_from_adders_and_discount(self):
        snapshot = build_pricing_snapshot(
            {'subtotal': 1000, 'discount': 100},
            [{'productCategory': 'roofing', 'description': 'Permit', 'cost': 50}]
        )
        assert snapshot.total == Decimal('950.00')
        assert snapshot.breakdown['custom_adders_total'] == '50.00'
        assert snapshot.breakdown['custom_adder_count'] == 1
        assert any('total derived' in step for step in snapshot.breakdown['trace'])

    def test_missing_monthly_payment_uses_financing_terms(self):
        snapshot = build_pricing_snapshot({'subtotal': 1200, 'total': 1200, 'financingTerm': 12, 'interestRate': 0})
        assert snapshot.monthly_payment == Decimal('100.00')
        assert snapshot.financing_term == 12

    def test_defaults_apply_when_financing_is_blank(self):
        snapshot = build_pricing_snapshot({'subtotal': 100, 'total': 100}, default_term=48, default_rate=Decimal('3.5'))
        assert snapshot.financing_term == 48
        assert snapshot.interest_rate == Decimal('3.5')

    def test_discount_without_types_is_recorded_as_manual(self):
        snapshot = build_pricing_snapshot({'subtotal': 100, 'discount': 10, 'total': 90})
        assert snapshot.breakdown['discount_types'] == ['manual']

    def test_show_line_items_defaults_to_true(self):
        assert build_pricing_snapshot({}).show_line_items is True
        assert build_pricing_snapshot({'showLineItems': False}).show_line_items is False

    def test_header_values_match_proposal_columns(self):
        values = build_pricing_snapshot({'subtotal': 100, 'total': 100, 'financingPlanId': '7'}).header_values()
        assert values['financing_plan_id'] == 7
        assert set(values) >= {'subtotal', 'discount', 'total', 'monthly_payment', 'pricing_breakdown'}
