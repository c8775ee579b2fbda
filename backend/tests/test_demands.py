"""
Client demand tests.

Verifies:
- Clients create demands and see only their own
- Confirming a demand takes stock out; leaving confirmed puts it back
- Demand reports bundle nearby demands and go out over WhatsApp
- WhatsApp failures surface as 502 and 4xx answers are not retried
- Saved WhatsApp recipients
"""

import os

import pytest
import httpx

from ordercrm.extensions import db
from ordercrm.models import Product

from conftest import stock_of


class FakeResponse:

    def __init__(self, status_code, payload=None):
        self.status_code = status_code
        self._payload = payload if payload is not None else {}
        self.text = str(self._payload)

    def json(self):
        return self._payload


@pytest.fixture
def whatsapp_configured(app):
    app.config.update({
        'WHATSAPP_TOKEN': 'test-token',
        'WHATSAPP_PHONE_NUMBER_ID': '12345',
        'WHATSAPP_API_BASE': 'https://graph.example.com/v19.0',
        'WHATSAPP_MAX_ATTEMPTS': 2,
    })
    return app


@pytest.fixture
def sent_messages(monkeypatch, whatsapp_configured):
    sent = []

    def fake_post(url, json=None, headers=None, timeout=None):
        sent.append({"url": url, "json": json, "headers": headers})
        return FakeResponse(200, {"messages": [{"id": "wamid.1"}]})

    monkeypatch.setattr("ordercrm.services.whatsapp_service.httpx.post", fake_post)
    return sent


def _create_demand(client, headers, product_id, quantity=1, **extra):
    body = {"product_id": product_id, "quantity": quantity}
    body.update(extra)
    resp = client.post('/api/demands', json=body, headers=headers)
    assert resp.status_code == 201, resp.json
    return resp.json['data']


class TestCreateDemand:

    def test_client_creates_demand(self, client, client_headers, product):
        demand = _create_demand(client, client_headers, product.id, 3, notes="  urgent  ")
        assert demand['status'] == 'pending'
        assert demand['quantity'] == 3
        assert demand['notes'] == 'urgent'
        assert demand['username'] == 'client'

    def test_default_quantity_is_one(self, client, client_headers, product):
        resp = client.post('/api/demands', json={"product_id": product.id}, headers=client_headers)
        assert resp.json['data']['quantity'] == 1

    def test_field_errors_are_collected(self, client, client_headers):
        resp = client.post(
            '/api/demands',
            json={"product_id": "x", "quantity": 0, "notes": "n" * 501},
            headers=client_headers,
        )
        assert resp.status_code == 400
        assert {e['field'] for e in resp.json['errors']} == {'product_id', 'quantity', 'notes'}

    def test_inactive_product_is_404(self, client, client_headers, product):
        product.is_active = False
        db.session.commit()
        resp = client.post('/api/demands', json={"product_id": product.id}, headers=client_headers)
        assert resp.status_code == 404

    def test_vendor_cannot_create_demand(self, client, vendor_headers, product):
        resp = client.post('/api/demands', json={"product_id": product.id}, headers=vendor_headers)
        assert resp.status_code == 403

    def test_mine_only_lists_own(self, client, client_headers, admin_headers, product):
        _create_demand(client, client_headers, product.id)
        _create_demand(client, admin_headers, product.id)
        resp = client.get('/api/demands/mine', headers=client_headers)
        assert len(resp.json['data']) == 1
        assert len(client.get('/api/demands', headers=admin_headers).json['data']) == 2

    def test_client_cannot_list_all(self, client, client_headers):
        assert client.get('/api/demands', headers=client_headers).status_code == 403


class TestDemandStatus:

    def _status(self, client, headers, demand_id, status):
        return client.put(f'/api/demands/{demand_id}/status', json={"status": status}, headers=headers)

    def test_confirm_takes_stock_out(self, client, client_headers, admin_headers, product):
        product.stock = 10
        db.session.commit()
        demand = _create_demand(client, client_headers, product.id, 4)

        resp = self._status(client, admin_headers, demand['id'], 'confirmed')
        assert resp.status_code == 200
        assert resp.json['data']['stock_adjusted'] is True
        assert stock_of(product.id) == 6

        self._status(client, admin_headers, demand['id'], 'confirmed')
        assert stock_of(product.id) == 6

    def test_leaving_confirmed_puts_stock_back(self, client, client_headers, admin_headers, product):
        product.stock = 10
        db.session.commit()
        demand = _create_demand(client, client_headers, product.id, 4)
        self._status(client, admin_headers, demand['id'], 'confirmed')
        resp = self._status(client, admin_headers, demand['id'], 'rejected')
        assert resp.json['data']['stock_adjusted'] is False
        assert stock_of(product.id) == 10

    def test_pending_to_rejected_leaves_stock(self, client, client_headers, admin_headers, product):
        product.stock = 10
        db.session.commit()
        demand = _create_demand(client, client_headers, product.id, 4)
        self._status(client, admin_headers, demand['id'], 'rejected')
        assert stock_of(product.id) == 10

    def test_invalid_status(self, client, client_headers, admin_headers, product):
        demand = _create_demand(client, client_headers, product.id)
        assert self._status(client, admin_headers, demand['id'], 'approved').status_code == 400

    def test_unknown_demand(self, client, admin_headers):
        assert self._status(client, admin_headers, 999, 'confirmed').status_code == 404

    def test_confirmed_for_product(self, client, client_headers, admin_headers, product):
        first = _create_demand(client, client_headers, product.id)
        _create_demand(client, client_headers, product.id)
        self._status(client, admin_headers, first['id'], 'confirmed')
        resp = client.get(f'/api/demands/product/{product.id}/confirmed', headers=admin_headers)
        assert [d['id'] for d in resp.json['data']] == [first['id']]


class TestDemandReport:

    def test_report_bundles_and_sends(self, app, client, client_headers, admin_headers, product, sent_messages):
        second_product = Product(
            item_number="ITEM-002", name="Washer <M8>", description="Washer", images=[],
            specifications={}, selling_price_cents=100, stock=0, visible_to_clients=True, is_active=True,
        )
        db.session.add(second_product)
        db.session.commit()

        first = _create_demand(client, client_headers, product.id, 2)
        second = _create_demand(client, client_headers, second_product.id, 3)

        resp = client.post(
            f"/api/demands/{first['id']}/send-report",
            json={"recipient_phone": "+1 (555) 000-1234"},
            headers=admin_headers,
        )
        assert resp.status_code == 200, resp.json
        data = resp.json['data']
        assert set(data['demand_ids']) == {first['id'], second['id']}
        assert data['report_url'].startswith('https://crm.example.com/upload/demand_')

        assert len(sent_messages) == 1
        message = sent_messages[0]
        assert message['url'] == 'https://graph.example.com/v19.0/12345/messages'
        assert message['json']['to'] == '15550001234'
        body = message['json']['text']['body']
        assert 'ITEM-001' in body and 'ITEM-002' in body
        # 2 x $2.50 + 3 x $1.00
        assert 'Total (est): $8.00' in body
        assert data['report_url'] in body

        filename = data['report_url'].rsplit('/', 1)[1]
        with open(os.path.join(app.config['UPLOAD_FOLDER'], filename), encoding='utf-8') as fh:
            html = fh.read()
        assert 'Washer &lt;M8&gt;' in html

    def test_zero_window_only_reports_the_demand(self, client, client_headers, admin_headers, product, sent_messages):
        first = _create_demand(client, client_headers, product.id)
        resp = client.post(
            f"/api/demands/{first['id']}/send-report",
            json={"recipient_phone": "15550001234", "bundle_window_sec": 0},
            headers=admin_headers,
        )
        assert resp.json['data']['demand_ids'] == [first['id']]

    def test_window_out_of_range(self, client, client_headers, admin_headers, product, sent_messages):
        demand = _create_demand(client, client_headers, product.id)
        resp = client.post(
            f"/api/demands/{demand['id']}/send-report",
            json={"recipient_phone": "15550001234", "bundle_window_sec": 601},
            headers=admin_headers,
        )
        assert resp.status_code == 400
        assert sent_messages == []

    def test_missing_phone(self, client, client_headers, admin_headers, product, sent_messages):
        demand = _create_demand(client, client_headers, product.id)
        resp = client.post(f"/api/demands/{demand['id']}/send-report", json={}, headers=admin_headers)
        assert resp.status_code == 400

    def test_not_configured_is_502(self, app, client, client_headers, admin_headers, product):
        app.config.update({'WHATSAPP_TOKEN': None, 'WHATSAPP_PHONE_NUMBER_ID': None})
        demand = _create_demand(client, client_headers, product.id)
        resp = client.post(
            f"/api/demands/{demand['id']}/send-report",
            json={"recipient_phone": "15550001234"},
            headers=admin_headers,
        )
        assert resp.status_code == 502

    def test_client_error_is_not_retried(
        self, monkeypatch, client, client_headers, admin_headers, product, whatsapp_configured
    ):
        calls = []

        def fake_post(url, json=None, headers=None, timeout=None):
            calls.append(url)
            return FakeResponse(400, {"error": {"message": "bad recipient"}})

        monkeypatch.setattr("ordercrm.services.whatsapp_service.httpx.post", fake_post)
        demand = _create_demand(client, client_headers, product.id)
        resp = client.post(
            f"/api/demands/{demand['id']}/send-report",
            json={"recipient_phone": "15550001234"},
            headers=admin_headers,
        )
        assert resp.status_code == 502
        assert resp.json['details'] == {"error": {"message": "bad recipient"}}
        assert len(calls) == 1

    def test_connection_error_is_retried(
        self, monkeypatch, client, client_headers, admin_headers, product, whatsapp_configured
    ):
        calls = []

        def fake_post(url, json=None, headers=None, timeout=None):
            calls.append(url)
            if len(calls) == 1:
                raise httpx.ConnectError("connection reset")
            return FakeResponse(200, {"messages": [{"id": "wamid.2"}]})

        monkeypatch.setattr("ordercrm.services.whatsapp_service.httpx.post", fake_post)
        demand = _create_demand(client, client_headers, product.id)
        resp = client.post(
            f"/api/demands/{demand['id']}/send-report",
            json={"recipient_phone": "15550001234"},
            headers=admin_headers,
        )
        assert resp.status_code == 200
        assert len(calls) == 2


class TestRecipients:

    def test_crud(self, client, admin_headers):
        resp = client.post('/api/whatsapp-recipients', json={"phone": "+15550001234", "name": "Ops"}, headers=admin_headers)
        assert resp.status_code == 201
        recipient_id = resp.json['data']['id']

        listing = client.get('/api/whatsapp-recipients', headers=admin_headers).json['data']
        assert [r['phone'] for r in listing] == ['+15550001234']

        assert client.delete(f'/api/whatsapp-recipients/{recipient_id}', headers=admin_headers).status_code == 200
        assert client.delete(f'/api/whatsapp-recipients/{recipient_id}', headers=admin_headers).status_code == 404

    def test_short_phone_rejected(self, client, admin_headers):
        resp = client.post('/api/whatsapp-recipients', json={"phone": "123"}, headers=admin_headers)
        assert resp.status_code == 400
