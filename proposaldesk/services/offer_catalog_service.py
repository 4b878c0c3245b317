"""Offer catalog reader - read-only access to special offers and bundle rules."""
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy.orm import Session

from proposaldesk.models import SpecialOffer, BundleRule
from proposaldesk.services.cache_service import get_cache


def get_active_special_offers(session: Session, category: Optional[str] = None) -> List[SpecialOffer]:
    """Active special offers, newest first, optionally filtered by category."""
    query = session.query(SpecialOffer).filter(SpecialOffer.is_active.is_(True))
    if category:
        query = query.filter(SpecialOffer.category == category)
    return query.order_by(SpecialOffer.created_at.desc(), SpecialOffer.id.desc()).all()


def get_live_special_offer(session: Session, offer_id: int) -> Optional[SpecialOffer]:
    """Re-read one offer from the catalog; inactive offers are treated as missing."""
    return session.query(SpecialOffer).filter(
        SpecialOffer.id == offer_id,
        SpecialOffer.is_active.is_(True)
    ).first()


def rule_qualifies(rule: BundleRule, selected_services: Iterable[str]) -> bool:
    """A rule qualifies when every required service is selected."""
    selected = set(selected_services)
    required = set(rule.required_services or [])
    if not required:
        return False
    return required.issubset(selected) and len(required) <= len(selected)


def get_applicable_bundle_rules(
    session: Session,
    selected_services: Iterable[str],
    limit: Optional[int] = None
) -> List[BundleRule]:
    """
    Active bundle rules triggered by the selected services.

    Ranked by priority (desc), then by how many services they require (desc).
    """
    selected = list(dict.fromkeys(selected_services))
    rules = session.query(BundleRule).filter(BundleRule.is_active.is_(True)).all()

    qualifying = [rule for rule in rules if rule_qualifies(rule, selected)]
    qualifying.sort(key=lambda r: (r.priority or 0, len(r.required_services or []), -r.id), reverse=True)

    if limit is not None:
        return qualifying[:limit]
    return qualifying


def special_offer_to_dict(offer: SpecialOffer) -> Dict[str, Any]:
    return {
        'id': offer.id,
        'type': 'special',
        'name': offer.name,
        'description': offer.description,
        'category': offer.category,
        'discount_amount': offer.discount_amount,
        'discount_percentage': offer.discount_percentage,
        'free_product_service': offer.free_product_service,
        'expiration_type': offer.expiration_type,
        'expiration_value': offer.expiration_value,
        'is_active': offer.is_active,
    }


def bundle_rule_to_dict(rule: BundleRule) -> Dict[str, Any]:
    return {
        'id': rule.id,
        'type': 'bundle',
        'name': rule.name,
        'description': rule.description,
        'required_services': list(rule.required_services or []),
        'required_count': len(rule.required_services or []),
        'discount_type': rule.discount_type,
        'discount_value': rule.discount_value,
        'free_service': rule.free_service,
        'priority': rule.priority,
        'is_active': rule.is_active,
    }


def list_special_offers(session: Session, category: Optional[str] = None) -> List[Dict[str, Any]]:
    """Serialized active special offers, served from Redis when available."""
    return get_cache().listing(
        f"special:{category or 'all'}",
        lambda: [special_offer_to_dict(o) for o in get_active_special_offers(session, category)]
    )


def list_bundle_rules(session: Session, selected_services: Optional[List[str]] = None) -> List[Dict[str, Any]]:
    """Serialized bundle rules; filtered to the qualifying ones when services are given."""
    if selected_services:
        key = "bundle:" + ",".join(sorted(set(selected_services)))
        loader = lambda: [bundle_rule_to_dict(r) for r in get_applicable_bundle_rules(session, selected_services)]
    else:
        key = "bundle:all"
        loader = lambda: [
            bundle_rule_to_dict(r)
            for r in session.query(BundleRule).filter(BundleRule.is_active.is_(True))
            .order_by(BundleRule.priority.desc(), BundleRule.id).all()
        ]
    return get_cache().listing(key, loader)


def invalidate_offer_cache() -> Optional[int]:
    """Drop cached catalog listings (after seeding or catalog edits)."""
    return get_cache().invalidate()


def resolve_discount_amount(
    amount: Optional[Decimal],
    percentage: Optional[Decimal],
    subtotal: Decimal
) -> Decimal:
    """
    Turn an offer's discount shape into a money amount.

    Fixed amounts win; a percentage is taken from the proposal subtotal; a
    free item (neither set) resolves to zero.
    """
    if amount:
        return Decimal(amount).quantize(Decimal('0.01'))
    if percentage:
        return (Decimal(subtotal or 0) * Decimal(percentage) / Decimal('100')).quantize(Decimal('0.01'))
    return Decimal('0.00')
