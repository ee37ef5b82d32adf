"""
Integration tests for the stock management and ops endpoints.
"""

import pytest

from atelier.models import Product


@pytest.fixture
def ids(mug, vase):
    return {'mug': mug.id, 'vase': vase.id}


class TestUpdateStock:
    """Tests for single manual stock updates."""

    def test_add(self, client, user_headers, session, ids):
        """Test adding stock over HTTP."""
        response = client.patch('/stock-management/update-stock', headers=user_headers, json={
            'productId': ids['mug'], 'quantity': 5, 'updateType': 'ADD'
        })
        data = response.get_json()

        assert response.status_code == 200
        assert data['previousStock'] == 10
        assert data['newStock'] == 15
        assert session.get(Product, ids['mug']).stock == 15

    def test_set(self, client, user_headers, ids):
        response = client.patch('/stock-management/update-stock', headers=user_headers, json={
            'productId': ids['mug'], 'quantity': 0, 'updateType': 'set'
        })

        assert response.get_json()['newStock'] == 0

    def test_remove_below_zero(self, client, user_headers, session, ids):
        """Test manual REMOVE below zero answers 400."""
        response = client.patch('/stock-management/update-stock', headers=user_headers, json={
            'productId': ids['vase'], 'quantity': 3, 'updateType': 'REMOVE'
        })

        assert response.status_code == 400
        assert session.get(Product, ids['vase']).stock == 1

    def test_negative_quantity(self, client, user_headers, ids):
        response = client.patch('/stock-management/update-stock', headers=user_headers, json={
            'productId': ids['mug'], 'quantity': -3, 'updateType': 'SET'
        })

        assert response.status_code == 400

    def test_bad_update_type(self, client, user_headers, ids):
        response = client.patch('/stock-management/update-stock', headers=user_headers, json={
            'productId': ids['mug'], 'quantity': 1, 'updateType': 'MULTIPLY'
        })

        assert response.status_code == 400

    def test_unknown_product(self, client, user_headers):
        response = client.patch('/stock-management/update-stock', headers=user_headers, json={
            'productId': 9999, 'quantity': 1, 'updateType': 'ADD'
        })

        assert response.status_code == 404

    def test_requires_login(self, client, ids):
        """Test stock endpoints need a token."""
        response = client.patch('/stock-management/update-stock', json={
            'productId': ids['mug'], 'quantity': 1, 'updateType': 'ADD'
        })

        assert response.status_code == 401


class TestBulkAndLimits:
    """Tests for bulk updates and low-stock thresholds."""

    def test_bulk_update(self, client, user_headers, ids):
        """Test bulk updates report success per item."""
        response = client.patch('/stock-management/bulk-update-stock', headers=user_headers, json={
            'updates': [
                {'productId': ids['mug'], 'quantity': 2, 'updateType': 'REMOVE'},
                {'productId': ids['vase'], 'quantity': 2, 'updateType': 'REMOVE'},
            ]
        })
        data = response.get_json()

        assert response.status_code == 200
        assert data['successCount'] == 1
        assert data['failureCount'] == 1
        assert data['results'][0]['newStock'] == 8
        assert data['results'][1]['success'] is False

    def test_bulk_update_empty(self, client, user_headers):
        response = client.patch('/stock-management/bulk-update-stock', headers=user_headers, json={'updates': []})

        assert response.status_code == 400

    def test_update_stock_limit(self, client, user_headers, ids):
        response = client.patch('/stock-management/update-stock-limit', headers=user_headers, json={
            'productId': ids['mug'], 'lowStockAlert': 10
        })
        data = response.get_json()

        assert response.status_code == 200
        assert data['lowStockAlert'] == 10
        assert data['stockStatus'] == 'LOW'


class TestAlertsAndTypes:
    """Tests for the alert lists."""

    def test_low_stock(self, client, user_headers, ids):
        """Test the low-stock list."""
        response = client.get('/stock-management/low-stock', headers=user_headers)
        data = response.get_json()

        assert response.status_code == 200
        assert data['count'] == 1
        assert data['products'][0]['code'] == 'VASE-01'

    def test_negative_stock_after_backorder(self, client, user_headers, session, location, ids):
        """Test a backordered sale shows up in the negative list."""
        client.post('/record-sale/record', headers=user_headers, json={
            'locationId': location.id,
            'paymentMethod': 'CASH',
            'items': [{'productId': ids['vase'], 'quantity': 3}],
        })

        response = client.get('/stock-management/negative-stock', headers=user_headers)
        data = response.get_json()

        assert data['count'] == 1
        assert data['products'][0]['stock'] == -2
        assert data['products'][0]['stockStatus'] == 'NEGATIVE'

    def test_update_types(self, client, user_headers):
        response = client.get('/stock-management/update-types', headers=user_headers)

        assert set(response.get_json()) == {'ADD', 'REMOVE', 'SET'}


class TestOps:
    """Tests for health, metrics and error rendering."""

    def test_health(self, client):
        """Test the health check reports database and cache status."""
        response = client.get('/health')
        data = response.get_json()

        assert response.status_code == 200
        assert data['database'] is True
        assert data['cache'] is False

    def test_metrics(self, client, user_headers):
        client.get('/stock-management/update-types', headers=user_headers)

        response = client.get('/metrics')

        assert response.status_code == 200
        assert b'atelier_http_requests_total' in response.data

    def test_unknown_route_is_json(self, client):
        """Test unknown routes answer JSON 404."""
        response = client.get('/nope')

        assert response.status_code == 404
        assert response.get_json()['status'] == 'error'
