"""Pricing snapshot builder - the immutable pricing record saved with a proposal."""
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, List, Optional

from proposaldesk.exceptions import ValidationError
from proposaldesk.utils.number_format import MONEY_QUANT, parse_decimal, parse_int, parse_money

DEFAULT_FINANCING_TERM = 60
DEFAULT_INTEREST_RATE = Decimal('5.99')


@dataclass
class CustomAdderLine:
    product_category: str
    description: str
    cost: Decimal


@dataclass
class PricingSnapshot:
    subtotal: Decimal
    discount: Decimal
    total: Decimal
    monthly_payment: Decimal
    show_line_items: bool
    financing_term: int
    interest_rate: Decimal
    financing_plan_id: Optional[int] = None
    financing_plan_name: Optional[str] = None
    merchant_fee: Optional[Decimal] = None
    financing_notes: Optional[str] = None
    custom_adders: List[CustomAdderLine] = field(default_factory=list)
    breakdown: Dict[str, Any] = field(default_factory=dict)

    def header_values(self) -> Dict[str, Any]:
        """Column values for the proposal header."""
        return {
            'subtotal': self.subtotal,
            'discount': self.discount,
            'total': self.total,
            'monthly_payment': self.monthly_payment,
            'show_line_items': self.show_line_items,
            'financing_term': self.financing_term,
            'interest_rate': self.interest_rate,
            'financing_plan_id': self.financing_plan_id,
            'financing_plan_name': self.financing_plan_name,
            'merchant_fee': self.merchant_fee,
            'financing_notes': self.financing_notes,
            'pricing_breakdown': self.breakdown,
        }


def calculate_monthly_payment(total: Decimal, term: int, annual_rate: Decimal) -> Decimal:
    """Standard amortization; zero rate divides evenly, zero term yields zero."""
    if not term or term <= 0:
        return Decimal('0.00')

    monthly_rate = Decimal(annual_rate) / Decimal('100') / Decimal('12')
    if monthly_rate == 0:
        return (Decimal(total) / term).quantize(MONEY_QUANT)

    growth = (1 + monthly_rate) ** term
    denominator = growth - 1
    if denominator == 0:
        return Decimal('0.00')
    return (Decimal(total) * monthly_rate * growth / denominator).quantize(MONEY_QUANT)


def normalize_custom_adders(raw_adders) -> List[CustomAdderLine]:
    """Validate adder dicts ({productCategory, description, cost}) from the wizard."""
    if raw_adders is not None and not isinstance(raw_adders, list):
        raise ValidationError('Custom adders must be a list')
    lines = []
    for index, raw in enumerate(raw_adders or []):
        if not isinstance(raw, dict):
            raise ValidationError(f'Custom adder #{index + 1} is malformed')
        category = raw.get('productCategory') or raw.get('product_category') or raw.get('category') or ''
        description = raw.get('description') or ''
        if not isinstance(category, str) or not isinstance(description, str):
            raise ValidationError(f'Custom adder #{index + 1} is malformed')
        category, description = category.strip(), description.strip()
        if not category or not description:
            raise ValidationError(f'Custom adder #{index + 1} needs a category and a description')
        lines.append(CustomAdderLine(
            product_category=category,
            description=description,
            cost=parse_money(raw.get('cost'))
        ))
    return lines


def build_pricing_snapshot(
    pricing: Optional[Dict[str, Any]],
    custom_adders=None,
    default_term: int = DEFAULT_FINANCING_TERM,
    default_rate: Decimal = DEFAULT_INTEREST_RATE
) -> PricingSnapshot:
    """
    Assemble the pricing snapshot from the wizard's pricing block.

    Totals supplied by the client are kept as-is. A missing total is derived
    as subtotal + adders - discount, and a missing monthly payment is derived
    from the financing terms. Every derivation is recorded in the trace.
    """
    pricing = pricing or {}
    adders = normalize_custom_adders(custom_adders)
    trace = []

    subtotal = parse_money(pricing.get('subtotal'))
    discount = parse_money(pricing.get('discount'))
    adders_total = sum((a.cost for a in adders), Decimal('0.00'))

    if pricing.get('total') in (None, ''):
        total = (subtotal + adders_total - discount).quantize(MONEY_QUANT)
        trace.append(f'total derived: {subtotal} + {adders_total} - {discount} = {total}')
    else:
        total = parse_money(pricing.get('total'))

    financing_term = parse_int(pricing.get('financingTerm'), default_term) or default_term
    interest_rate = parse_decimal(pricing.get('interestRate'), Decimal(default_rate))

    monthly_payment = parse_money(pricing.get('monthlyPayment'))
    if monthly_payment <= 0 and total > 0:
        monthly_payment = calculate_monthly_payment(total, financing_term, interest_rate)
        trace.append(f'monthly payment derived: {financing_term} months at {interest_rate}% = {monthly_payment}')

    merchant_fee = pricing.get('merchantFee')
    discount_types = list(pricing.get('discountTypes') or [])
    if discount > 0 and not discount_types:
        discount_types = ['manual']

    breakdown = {
        'discount_types': discount_types,
        'custom_adders_total': str(adders_total),
        'custom_adder_count': len(adders),
        'trace': trace,
    }
    if isinstance(pricing.get('breakdown'), dict):
        breakdown['client'] = pricing['breakdown']

    return PricingSnapshot(
        subtotal=subtotal,
        discount=discount,
        total=total,
        monthly_payment=monthly_payment,
        show_line_items=pricing.get('showLineItems') is not False,
        financing_term=financing_term,
        interest_rate=interest_rate,
        financing_plan_id=parse_int(pricing.get('financingPlanId')),
        financing_plan_name=(pricing.get('financingPlanName') or None),
        merchant_fee=parse_decimal(merchant_fee) if merchant_fee not in (None, '') else None,
        financing_notes=(pricing.get('financingNotes') or None),
        custom_adders=adders,
        breakdown=breakdown,
    )
