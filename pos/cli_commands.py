"""
Flask CLI commands.

Commands:
- flask init-db: Create tables and default store settings
- flask seed-demo: Load a small demo catalog
- flask create-cashier: Create a register user
- flask print-receipt: Print the receipt of a committed transaction
"""
from decimal import Decimal

import click
from flask import current_app

from pos.database import create_all, get_session
from pos.exceptions import BusinessLogicError
from pos.models import Product, UserRole

DEMO_PRODUCTS = [
    # name, brand, category, price, stock
    ('Bottled Water 500ml', 'Nature Spring', 'Beverages', '15.00', 120),
    ('Cola 1.5L', 'Coca-Cola', 'Beverages', '75.00', 40),
    ('Instant Noodles', 'Lucky Me', 'Groceries', '14.50', 200),
    ('Corned Beef 150g', 'Argentina', 'Groceries', '42.00', 60),
    ('Bath Soap', 'Safeguard', 'Personal Care', '38.00', 35),
    ('Shampoo Sachet', 'Palmolive', 'Personal Care', '8.00', 4),
    ('AA Batteries (2 pcs)', 'Eveready', 'Hardware', '55.00', 0),
]


def init_cli_commands(app):
    """Register CLI commands with Flask app."""

    @app.cli.command('init-db')
    def init_db_command():
        """Create all tables and the default store settings."""
        from pos.services.settings_service import get_settings, save_settings

        create_all()
        session = get_session()
        if get_settings(session) is None:
            save_settings(
                session,
                store_name=current_app.config['BUSINESS_NAME'],
                store_address=current_app.config['BUSINESS_ADDRESS'],
                store_phone=current_app.config['BUSINESS_PHONE'],
                store_email=current_app.config['BUSINESS_EMAIL'],
                receipt_footer=current_app.config['RECEIPT_FOOTER'],
                default_low_stock_threshold=current_app.config['LOW_STOCK_THRESHOLD'],
            )
        click.echo(click.style('Database initialized.', fg='green'))

    @app.cli.command('seed-demo')
    def seed_demo():
        """Insert the demo catalog (skips products that already exist by name)."""
        session = get_session()
        created = 0
        for name, brand, category, price, stock in DEMO_PRODUCTS:
            if session.query(Product).filter_by(name=name).first():
                continue
            session.add(Product(
                name=name,
                brand=brand,
                category=category,
                price=Decimal(price),
                stock=stock,
                min_stock_threshold=current_app.config['LOW_STOCK_THRESHOLD']
            ))
            created += 1
        session.commit()
        click.echo(click.style(f'{created} demo products created.', fg='green'))

    @app.cli.command('create-cashier')
    @click.option('--username', prompt=True, help='Login name')
    @click.option('--name', prompt=True, help='Name printed on receipts')
    @click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password (min 6 chars)')
    @click.option('--role', type=click.Choice([r.value for r in UserRole]), default=UserRole.EMPLOYEE.value)
    def create_cashier(username, name, password, role):
        """Create a register user."""
        from pos.services.auth_service import create_user

        try:
            user = create_user(get_session(), username, password, name, role=role)
        except BusinessLogicError as e:
            raise click.ClickException(e.message)
        click.echo(click.style(f'User {user.username} created (id={user.id}, role={user.role}).', fg='green'))

    @app.cli.command('print-receipt')
    @click.argument('transaction_id')
    @click.option('--layout', type=click.Choice(['thermal', 'page']), default=None,
                  help='Defaults to RECEIPT_LAYOUT')
    def print_receipt(transaction_id, layout):
        """Print the receipt of a committed transaction."""
        from pos.blueprints.terminal import fallback_store, get_backend
        from pos.checkout import get_layout, receipt_for_transaction, render_receipt

        config = current_app.config
        layout = layout or config['RECEIPT_LAYOUT']
        width = config['THERMAL_WIDTH'] if layout == 'thermal' else config['PAGE_WIDTH']

        result = receipt_for_transaction(get_backend(), transaction_id, fallback_store())
        if not result.ok:
            raise click.ClickException(result.message)
        click.echo(render_receipt(
            result.data,
            get_layout(layout, width=width, currency_symbol=config['CURRENCY_SYMBOL'])
        ), nl=False)
