"""
Integration tests for the application factory and CLI commands.
"""
from datetime import datetime, timezone

from salesorder.exceptions import InvalidTransition, NotFoundError, OrderEngineError
from salesorder.models import Order as OrderRow, OrderStatus, Product
from salesorder.models.records import OrderItemInput, OrderProposal
from salesorder.services.order_service import create_order

NOW = datetime(2025, 5, 29, 3, 0, tzinfo=timezone.utc)


def test_engine_errors_become_json(app, client):
    @app.route('/boom/<kind>')
    def boom(kind):
        if kind == 'missing':
            raise NotFoundError('Order tidak ditemukan')
        if kind == 'stale':
            raise InvalidTransition(OrderStatus.DISETUJUI, OrderStatus.TERKIRIM, reason=InvalidTransition.STALE)
        raise OrderEngineError()

    response = client.get('/boom/missing')
    assert response.status_code == 404
    assert response.get_json() == {'status': 'error', 'message': 'Order tidak ditemukan'}

    response = client.get('/boom/stale')
    assert response.status_code == 409
    assert response.get_json()['reason'] == 'stale'
    assert response.get_json()['currentStatus'] == 'DISETUJUI'

    assert client.get('/boom/other').status_code == 500


class TestCliCommands:

    def test_init_db(self, app):
        result = app.test_cli_runner().invoke(args=['init-db'])

        assert result.exit_code == 0
        assert 'berhasil' in result.output

    def test_next_order_number(self, app, session, admin, product):
        runner = app.test_cli_runner()

        result = runner.invoke(args=['next-order-number', '--date', '2025-05-29'])
        assert result.output.strip() == 'PO-20250529-001'

        create_order(session, admin, OrderProposal(items=[OrderItemInput(product.id, 1)], sales_id='sales-1',
                                                   store_id='store-1'),
                     now=NOW)
        result = runner.invoke(args=['next-order-number', '--date', '2025-05-29'])
        assert result.output.strip() == 'PO-20250529-002'
        assert session.query(OrderRow).count() == 1

    def test_next_order_number_bad_date(self, app):
        result = app.test_cli_runner().invoke(args=['next-order-number', '--date', '29-05-2025'])
        assert result.exit_code == 1

    def test_create_product(self, app, session):
        result = app.test_cli_runner().invoke(args=[
            'create-product', '--name', 'Wafer Coklat', '--code', 'WC-001',
            '--grosir', '5000', '--semi-grosir', '5500', '--retail', '6000', '--modern', '6500',
        ])

        assert result.exit_code == 0
        assert 'Wafer Coklat' in result.output
        assert session.query(Product).filter_by(code='WC-001').count() == 1

    def test_create_product_rejects_bad_prices(self, app, session):
        result = app.test_cli_runner().invoke(args=[
            'create-product', '--name', 'Wafer Coklat',
            '--grosir', '7000', '--semi-grosir', '5500', '--retail', '6000', '--modern', '6500',
        ])

        assert result.exit_code == 1
        assert 'priceList' in result.output
        assert session.query(Product).count() == 0
