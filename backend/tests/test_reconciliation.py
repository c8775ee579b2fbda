"""
Stock reconciliation tests.

Verifies:
- Order confirmation adds item quantities to stock exactly once
- Any move out of confirmed, or deleting, takes them back out
- Item confirmations and quantity edits only move the difference
- Purchase history rows follow the reconciled items
- A second claim of the same confirmation changes nothing
"""

import pytest

from ordercrm.extensions import db
from ordercrm.models import Order, OrderItem, Product, ProductPurchase
from ordercrm.services import reconciliation_service as recon

from conftest import create_order, stock_of


def _set_status(client, headers, order_id, status):
    resp = client.put(f"/api/orders/{order_id}", json={"status": status}, headers=headers)
    assert resp.status_code == 200, resp.json
    return resp.json['data']


def _purchase_count(order_id=None):
    db.session.expire_all()
    query = db.session.query(ProductPurchase)
    if order_id is not None:
        query = query.filter(ProductPurchase.order_id == order_id)
    return query.count()


class TestOrderConfirmation:

    def test_confirm_adds_stock_and_purchases(self, client, admin_headers, vendor, product):
        order = create_order(
            client, admin_headers, vendor.id,
            [
                {"product_id": product.id, "quantity": 4, "unit_price_cents": 100},
                {"product_id": product.id, "quantity": 6, "unit_price_cents": 100},
            ],
        )
        data = _set_status(client, admin_headers, order['id'], 'confirmed')
        assert data['stock_adjusted'] is True
        assert stock_of(product.id) == 10
        assert _purchase_count(order['id']) == 2

    def test_reconfirming_is_idempotent(self, client, admin_headers, vendor, product):
        order = create_order(client, admin_headers, vendor.id, [{"product_id": product.id, "quantity": 5}])
        _set_status(client, admin_headers, order['id'], 'confirmed')
        _set_status(client, admin_headers, order['id'], 'confirmed')
        assert stock_of(product.id) == 5
        assert _purchase_count(order['id']) == 1

    def test_back_to_pending_reverses(self, client, admin_headers, vendor, product):
        order = create_order(client, admin_headers, vendor.id, [{"product_id": product.id, "quantity": 5}])
        _set_status(client, admin_headers, order['id'], 'confirmed')
        data = _set_status(client, admin_headers, order['id'], 'pending')
        assert data['stock_adjusted'] is False
        assert stock_of(product.id) == 0
        assert _purchase_count(order['id']) == 0

    def test_cancel_reverses(self, client, admin_headers, vendor, product):
        order = create_order(client, admin_headers, vendor.id, [{"product_id": product.id, "quantity": 3}])
        _set_status(client, admin_headers, order['id'], 'confirmed')
        _set_status(client, admin_headers, order['id'], 'cancelled')
        assert stock_of(product.id) == 0

    @pytest.mark.parametrize("next_status", ["shipped", "delivered"])
    def test_moving_on_from_confirmed_reverses(self, client, admin_headers, vendor, product, next_status):
        order = create_order(client, admin_headers, vendor.id, [{"product_id": product.id, "quantity": 5}])
        _set_status(client, admin_headers, order["id"], "confirmed")
        data = _set_status(client, admin_headers, order["id"], next_status)
        assert data["stock_adjusted"] is False
        assert stock_of(product.id) == 0
        assert _purchase_count(order["id"]) == 0

    def test_later_moves_do_not_reverse_twice(self, client, admin_headers, vendor, product):
        order = create_order(client, admin_headers, vendor.id, [{"product_id": product.id, "quantity": 3}])
        _set_status(client, admin_headers, order["id"], "confirmed")
        _set_status(client, admin_headers, order["id"], "shipped")
        _set_status(client, admin_headers, order["id"], "delivered")
        _set_status(client, admin_headers, order["id"], "cancelled")
        assert stock_of(product.id) == 0

    def test_reconfirm_after_reversal_applies_again(self, client, admin_headers, vendor, product):
        order = create_order(client, admin_headers, vendor.id, [{"product_id": product.id, "quantity": 2}])
        _set_status(client, admin_headers, order['id'], 'confirmed')
        _set_status(client, admin_headers, order['id'], 'pending')
        _set_status(client, admin_headers, order['id'], 'confirmed')
        assert stock_of(product.id) == 2
        assert _purchase_count(order['id']) == 1

    def test_delete_reverses(self, client, admin_headers, vendor, product):
        order = create_order(client, admin_headers, vendor.id, [{"product_id": product.id, "quantity": 7}])
        _set_status(client, admin_headers, order['id'], 'confirmed')
        assert client.delete(f"/api/orders/{order['id']}", headers=admin_headers).status_code == 200
        assert stock_of(product.id) == 0
        assert _purchase_count(order['id']) == 0

    def test_existing_stock_is_added_to(self, client, admin_headers, vendor, product):
        product.stock = 10
        db.session.commit()
        order = create_order(client, admin_headers, vendor.id, [{"product_id": product.id, "quantity": 5}])
        _set_status(client, admin_headers, order['id'], 'confirmed')
        assert stock_of(product.id) == 15


class TestItemConfirmation:

    def test_confirm_item_moves_only_that_item(self, client, admin_headers, vendor, product):
        order = create_order(
            client, admin_headers, vendor.id,
            [{"product_id": product.id, "quantity": 2}, {"product_id": product.id, "quantity": 3}],
        )
        resp = client.post(f"/api/orders/{order['id']}/confirm-item", json={"item_index": 0}, headers=admin_headers)
        assert resp.status_code == 200
        assert stock_of(product.id) == 2

        client.post(f"/api/orders/{order['id']}/confirm-item", json={"item_index": 0}, headers=admin_headers)
        assert stock_of(product.id) == 2

    def test_order_confirmation_skips_items_already_counted(self, client, admin_headers, vendor, product):
        order = create_order(
            client, admin_headers, vendor.id,
            [{"product_id": product.id, "quantity": 2}, {"product_id": product.id, "quantity": 3}],
        )
        client.post(f"/api/orders/{order['id']}/confirm-item", json={"item_index": 0}, headers=admin_headers)
        _set_status(client, admin_headers, order['id'], 'confirmed')
        assert stock_of(product.id) == 5
        assert _purchase_count(order['id']) == 2

    def test_shipping_confirmed_item_reverses_it(self, client, admin_headers, vendor, product):
        order = create_order(
            client, admin_headers, vendor.id,
            [{"product_id": product.id, "quantity": 2}, {"product_id": product.id, "quantity": 3}],
        )
        client.post(f"/api/orders/{order['id']}/confirm-item", json={"item_index": 1}, headers=admin_headers)
        assert stock_of(product.id) == 3

        resp = client.put(
            f"/api/orders/{order['id']}",
            json={"item_index": 1, "item": {"status": "shipped"}},
            headers=admin_headers,
        )
        assert resp.status_code == 200
        assert stock_of(product.id) == 0
        assert _purchase_count(order['id']) == 0

    def test_cancelling_confirmed_item_reverses_it(self, client, admin_headers, vendor, product):
        order = create_order(
            client, admin_headers, vendor.id,
            [{"product_id": product.id, "quantity": 2}, {"product_id": product.id, "quantity": 3}],
        )
        client.post(f"/api/orders/{order['id']}/confirm-item", json={"item_index": 1}, headers=admin_headers)
        resp = client.put(
            f"/api/orders/{order['id']}",
            json={"item_index": 1, "item": {"status": "cancelled"}},
            headers=admin_headers,
        )
        assert resp.status_code == 200
        assert stock_of(product.id) == 0

    def test_quantity_edit_on_counted_item_moves_difference(self, client, admin_headers, vendor, product):
        order = create_order(
            client, admin_headers, vendor.id,
            [{"product_id": product.id, "quantity": 4, "unit_price_cents": 100}],
        )
        _set_status(client, admin_headers, order['id'], 'confirmed')
        resp = client.put(
            f"/api/orders/{order['id']}",
            json={"item_index": 0, "item": {"quantity": 9}},
            headers=admin_headers,
        )
        assert resp.status_code == 200
        assert stock_of(product.id) == 9

        purchase = db.session.query(ProductPurchase).filter_by(order_id=order['id']).one()
        assert purchase.quantity == 9
        assert purchase.total_amount_cents == 900

    def test_dropping_counted_item_in_bulk_update_reverses_it(self, client, admin_headers, vendor, product):
        order = create_order(
            client, admin_headers, vendor.id,
            [{"product_id": product.id, "quantity": 2}, {"product_id": product.id, "quantity": 3}],
        )
        client.post(f"/api/orders/{order['id']}/confirm-item", json={"item_index": 0}, headers=admin_headers)
        keep = order['items'][1]
        resp = client.put(
            f"/api/orders/{order['id']}",
            json={"items": [{"id": keep['id'], "quantity": 3}]},
            headers=admin_headers,
        )
        assert resp.status_code == 200
        assert stock_of(product.id) == 0


class TestClaimRace:

    def test_item_claim_is_single_shot(self, client, admin_headers, vendor, product):
        order_data = create_order(client, admin_headers, vendor.id, [{"product_id": product.id, "quantity": 2}])
        db.session.expire_all()
        order = db.session.get(Order, order_data['id'])
        item = db.session.get(OrderItem, order_data['items'][0]['id'])

        assert recon.apply_item(order, item) is True
        assert recon.apply_item(order, item) is False
        db.session.commit()
        assert stock_of(product.id) == 2
        assert _purchase_count(order.id) == 1


class TestEffectiveStock:

    def test_zero_stock_falls_back_to_confirmed_orders(self, client, admin_headers, vendor, product):
        order = create_order(client, admin_headers, vendor.id, [{"product_id": product.id, "quantity": 6}])
        _set_status(client, admin_headers, order['id'], 'confirmed')

        db.session.expire_all()
        db.session.get(Product, product.id).stock = 0
        db.session.commit()

        resp = client.get(f"/api/products/{product.id}", headers=admin_headers)
        assert resp.json['data']['stock'] == 6
        # Reported only; the stored value is untouched
        assert stock_of(product.id) == 0

    def test_purchase_history_statistics(self, client, admin_headers, vendor, product):
        order = create_order(
            client, admin_headers, vendor.id,
            [{"product_id": product.id, "quantity": 4, "unit_price_cents": 150}],
        )
        _set_status(client, admin_headers, order['id'], 'confirmed')

        resp = client.get(f"/api/products/{product.id}/purchases", headers=admin_headers)
        assert resp.status_code == 200
        stats = resp.json['data']['statistics']
        assert stats['total_purchases'] == 1
        assert stats['total_quantity'] == 4
        assert stats['total_amount_cents'] == 600
        assert stats['average_price_cents'] == 150
        assert stats['unique_vendors'] == 1
