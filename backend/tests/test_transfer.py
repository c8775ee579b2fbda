"""
Quantity transfer tests.

Verifies:
- Part of an item moves into a new pending order for the same vendor
- Moving the whole quantity removes the item from the source order
- Emptying the source order soft deletes it
- Counted stock is reduced by exactly what left the confirmed order
- Only admins and the owning vendor may transfer
"""

import pytest

from ordercrm.extensions import db
from ordercrm.models import ProductPurchase

from conftest import create_order, stock_of


def _transfer(client, headers, order_id, quantity, item_index=0):
    return client.post(
        f"/api/orders/{order_id}/items/{item_index}/transfer",
        json={"quantity": quantity},
        headers=headers,
    )


class TestTransfer:

    def test_partial_transfer_splits_item(self, client, admin_headers, vendor, product):
        order = create_order(
            client, admin_headers, vendor.id,
            [{"product_id": product.id, "quantity": 10, "unit_price_cents": 100, "notes": "fragile"}],
        )
        resp = _transfer(client, admin_headers, order['id'], 4)
        assert resp.status_code == 201

        source = resp.json['data']['source_order']
        new_order = resp.json['data']['new_order']
        assert source['items'][0]['quantity'] == 6
        assert source['total_amount_cents'] == 600
        assert new_order['vendor_id'] == vendor.id
        assert new_order['status'] == 'pending'
        assert new_order['order_number'] != source['order_number']
        assert new_order['items'][0]['quantity'] == 4
        assert new_order['items'][0]['notes'] == 'fragile'
        assert new_order['total_amount_cents'] == 400

    def test_full_transfer_removes_item(self, client, admin_headers, vendor, product):
        order = create_order(
            client, admin_headers, vendor.id,
            [{"product_id": product.id, "quantity": 2}, {"product_id": product.id, "quantity": 3}],
        )
        resp = _transfer(client, admin_headers, order['id'], 3, item_index=1)
        assert resp.status_code == 201
        assert len(resp.json['data']['source_order']['items']) == 1
        assert resp.json['data']['new_order']['items'][0]['quantity'] == 3

    @pytest.mark.parametrize("quantity", [0, 11, "abc", None])
    def test_out_of_range_quantity_rejected(self, client, admin_headers, vendor, product, quantity):
        order = create_order(client, admin_headers, vendor.id, [{"product_id": product.id, "quantity": 10}])
        assert _transfer(client, admin_headers, order['id'], quantity).status_code == 400

    def test_unknown_item_is_404(self, client, admin_headers, vendor, product):
        order = create_order(client, admin_headers, vendor.id, [{"product_id": product.id, "quantity": 10}])
        assert _transfer(client, admin_headers, order['id'], 1, item_index=5).status_code == 404

    def test_transfer_out_of_confirmed_order_reduces_stock(self, client, admin_headers, vendor, product):
        order = create_order(
            client, admin_headers, vendor.id,
            [{"product_id": product.id, "quantity": 10, "unit_price_cents": 100}],
        )
        client.put(f"/api/orders/{order['id']}", json={"status": "confirmed"}, headers=admin_headers)
        assert stock_of(product.id) == 10

        assert _transfer(client, admin_headers, order['id'], 4).status_code == 201
        assert stock_of(product.id) == 6
        purchase = db.session.query(ProductPurchase).filter_by(order_id=order['id']).one()
        assert purchase.quantity == 6

    def test_moving_last_item_out_soft_deletes_source(self, client, admin_headers, vendor, product):
        order = create_order(
            client, admin_headers, vendor.id,
            [{"product_id": product.id, "quantity": 5, "unit_price_cents": 100}],
        )
        client.put(f"/api/orders/{order['id']}", json={"status": "confirmed"}, headers=admin_headers)
        assert stock_of(product.id) == 5

        resp = _transfer(client, admin_headers, order['id'], 5)
        assert resp.status_code == 201
        source = resp.json['data']['source_order']
        assert source['is_active'] is False
        assert source['items'] == []
        assert resp.json['data']['new_order']['items'][0]['quantity'] == 5

        assert stock_of(product.id) == 0
        assert db.session.query(ProductPurchase).filter_by(order_id=order['id']).count() == 0
        assert client.get(f"/api/orders/{order['id']}", headers=admin_headers).status_code == 404


class TestTransferAccess:

    def test_owning_vendor_may_transfer(self, client, admin_headers, vendor, vendor_headers, product):
        order = create_order(client, admin_headers, vendor.id, [{"product_id": product.id, "quantity": 5}])
        assert _transfer(client, vendor_headers, order['id'], 1).status_code == 201

    def test_other_vendor_refused(self, client, admin_headers, vendor, other_vendor_headers, product):
        order = create_order(client, admin_headers, vendor.id, [{"product_id": product.id, "quantity": 5}])
        assert _transfer(client, other_vendor_headers, order['id'], 1).status_code == 403

    def test_supplier_refused(self, client, admin_headers, supplier_headers, vendor, product):
        order = create_order(client, admin_headers, vendor.id, [{"product_id": product.id, "quantity": 5}])
        assert _transfer(client, supplier_headers, order['id'], 1).status_code == 403
