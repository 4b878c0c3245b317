"""
Flask CLI commands.

Commands:
- flask init-db: Create all tables
- flask seed-catalog: Insert the default services, special offers and bundle rules
- flask abandon-drafts: Mark idle drafts as abandoned
"""

import click
from decimal import Decimal
from flask import current_app
from proposaldesk.database import create_schema, get_session
from proposaldesk.models import Service, SpecialOffer, BundleRule

DEFAULT_SERVICES = [
    ('roofing', 'Roofing'),
    ('hvac', 'HVAC'),
    ('windows-doors', 'Windows & Doors'),
    ('garage-doors', 'Garage Doors'),
    ('paint', 'Paint'),
]

DEFAULT_SPECIAL_OFFERS = [
    {
        'name': 'Spring Roofing Promo',
        'description': '$500 off any full roof replacement',
        'category': 'roofing',
        'discount_amount': Decimal('500.00'),
        'expiration_type': 'days',
        'expiration_value': 7,
    },
    {
        'name': 'HVAC Tune-Up Savings',
        'description': '10% off the HVAC package',
        'category': 'hvac',
        'discount_percentage': Decimal('10.00'),
        'expiration_type': 'hours',
        'expiration_value': 72,
    },
    {
        'name': 'Free Smart Thermostat',
        'description': 'Smart thermostat included at no cost',
        'category': 'hvac',
        'free_product_service': 'Smart Thermostat',
        'expiration_type': 'days',
        'expiration_value': 14,
    },
]

DEFAULT_BUNDLE_RULES = [
    {
        'name': 'Roof + HVAC Bundle',
        'description': '$750 off when roofing and HVAC are done together',
        'required_services': ['roofing', 'hvac'],
        'discount_type': 'fixed',
        'discount_value': Decimal('750.00'),
        'priority': 10,
    },
    {
        'name': 'Whole Home Exterior',
        'description': '5% off roofing, windows and paint',
        'required_services': ['roofing', 'windows-doors', 'paint'],
        'discount_type': 'percentage',
        'discount_value': Decimal('5.00'),
        'priority': 20,
    },
    {
        'name': 'Curb Appeal Bonus',
        'description': 'Free gutter cleaning with garage doors and paint',
        'required_services': ['garage-doors', 'paint'],
        'discount_type': 'free_service',
        'free_service': 'Gutter Cleaning',
        'priority': 5,
    },
]


def seed_catalog(db_session):
    """Insert catalog rows that do not exist yet. Returns counts per table."""
    counts = {'services': 0, 'special_offers': 0, 'bundle_rules': 0}

    existing_services = {name for (name,) in db_session.query(Service.name).all()}
    for name, display_name in DEFAULT_SERVICES:
        if name not in existing_services:
            db_session.add(Service(name=name, display_name=display_name, active=True))
            counts['services'] += 1

    existing_offers = {name for (name,) in db_session.query(SpecialOffer.name).all()}
    for offer in DEFAULT_SPECIAL_OFFERS:
        if offer['name'] not in existing_offers:
            db_session.add(SpecialOffer(is_active=True, **offer))
            counts['special_offers'] += 1

    existing_rules = {name for (name,) in db_session.query(BundleRule.name).all()}
    for rule in DEFAULT_BUNDLE_RULES:
        if rule['name'] not in existing_rules:
            db_session.add(BundleRule(is_active=True, **rule))
            counts['bundle_rules'] += 1

    db_session.commit()
    return counts


def init_cli_commands(app):
    """Register CLI commands with Flask app."""

    @app.cli.command('init-db')
    def init_db_command():
        """Create all tables."""
        create_schema()
        click.echo(click.style('✅ Database schema created', fg='green'))

    @app.cli.command('seed-catalog')
    def seed_catalog_command():
        """Insert default services, special offers and bundle rules if missing."""
        from proposaldesk.services.offer_catalog_service import invalidate_offer_cache

        db_session = get_session()
        try:
            counts = seed_catalog(db_session)
        except Exception as e:
            db_session.rollback()
            click.echo(click.style(f'❌ Error seeding catalog: {e}', fg='red'))
            raise SystemExit(1)

        invalidate_offer_cache()
        click.echo(click.style('✅ Catalog seeded', fg='green', bold=True))
        for table, count in counts.items():
            click.echo(f'   {table}: {count} new')

    @app.cli.command('abandon-drafts')
    @click.option('--days', type=int, default=None, help='Idle days before a draft is abandoned')
    def abandon_drafts_command(days):
        """Mark drafts not updated for N days as abandoned."""
        from proposaldesk.services.proposal_service import abandon_stale_drafts

        if days is None:
            days = current_app.config.get('DRAFT_ABANDON_DAYS', 7)
        if days < 1:
            click.echo(click.style('❌ --days must be at least 1', fg='red'))
            raise SystemExit(1)

        count = abandon_stale_drafts(get_session(), days=days)
        click.echo(click.style(f'✅ {count} draft(s) idle for {days}+ days marked abandoned', fg='green'))
