"""
Flask CLI commands.

Commands:
- flask init-db: Create all tables
- flask next-order-number: Show the next order number for a day
- flask create-product: Create a product with its four-tier price list
"""

import click
from datetime import datetime
from flask import current_app

from salesorder import database
from salesorder.exceptions import OrderEngineError
from salesorder.models import UserRole
from salesorder.models.records import Actor, PriceList
from salesorder.services.order_number_service import next_order_number, order_day
from salesorder.services.product_service import create_product

SYSTEM_ACTOR = Actor(id='system', role=UserRole.ADMIN, name='CLI')


def init_cli_commands(app):
    """Register CLI commands with Flask app."""

    @app.cli.command('init-db')
    def init_db_command():
        """Create all database tables."""
        database.create_all()
        click.echo(click.style('✅ Tabel database berhasil dibuat.', fg='green'))

    @app.cli.command('next-order-number')
    @click.option('--date', 'day', default=None, help='Tanggal (YYYY-MM-DD), default hari ini')
    def next_order_number_command(day):
        """Show the next order number for a day."""
        if day:
            try:
                day = datetime.strptime(day, '%Y-%m-%d').date()
            except ValueError:
                click.echo(click.style('❌ Format tanggal tidak valid. Gunakan YYYY-MM-DD.', fg='red'))
                raise SystemExit(1)
        else:
            day = order_day(tz_name=current_app.config['ORDER_TIMEZONE'])

        number = next_order_number(
            database.get_session(), day, current_app.config['ORDER_NUMBER_PREFIX']
        )
        click.echo(number)

    @app.cli.command('create-product')
    @click.option('--name', prompt=True, help='Nama produk')
    @click.option('--code', default=None, help='Kode produk')
    @click.option('--grosir', prompt='Harga grosir', help='Harga grosir')
    @click.option('--semi-grosir', prompt='Harga semi grosir', help='Harga semi grosir')
    @click.option('--retail', prompt='Harga retail', help='Harga retail')
    @click.option('--modern', prompt='Harga modern', help='Harga modern')
    def create_product_command(name, code, grosir, semi_grosir, retail, modern):
        """Create a product with its price list."""
        price_list = PriceList(
            grosir_price=grosir,
            semi_grosir_price=semi_grosir,
            retail_price=retail,
            modern_price=modern,
        )
        try:
            product = create_product(database.get_session(), SYSTEM_ACTOR, name, price_list, code=code)
        except OrderEngineError as e:
            click.echo(click.style(f'❌ Gagal membuat produk: {e.message}', fg='red'))
            for violation in getattr(e, 'violations', []):
                click.echo(f'   {violation.dotted_path}: {violation.message}')
            raise SystemExit(1)

        click.echo(click.style('\n✅ Produk berhasil dibuat!', fg='green', bold=True))
        click.echo(f'   Nama: {product.name}')
        click.echo(f'   ID: {product.id}')
