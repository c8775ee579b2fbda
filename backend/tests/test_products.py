"""
Product catalogue tests.

Verifies:
- Item numbers are unique among active products
- Creating over a soft-deleted item number reactivates it
- Blank descriptions are generated from name and item number
- Vendors see no commercial fields; clients see the visible catalogue
"""

import pytest

from ordercrm.extensions import db
from ordercrm.models import Product


def _create(client, headers, **body):
    body.setdefault("item_number", "ITEM-100")
    body.setdefault("name", "Hex Nut")
    return client.post('/api/products', json=body, headers=headers)


class TestCreateProduct:

    def test_create(self, client, admin_headers):
        resp = _create(client, admin_headers, selling_price_cents=199, stock=5)
        assert resp.status_code == 201
        data = resp.json['data']
        assert data['item_number'] == 'ITEM-100'
        assert data['selling_price_cents'] == 199
        assert data['stock'] == 5
        assert data['images'] == []
        assert data['visible_to_clients'] is True

    def test_blank_description_is_generated(self, client, admin_headers):
        resp = _create(client, admin_headers, description="   ")
        assert resp.json['data']['description'] == 'Hex Nut (ITEM-100)'

    def test_specifications_become_strings(self, client, admin_headers):
        resp = _create(client, admin_headers, specifications={"size": 8, "finish": None})
        assert resp.json['data']['specifications'] == {"size": "8", "finish": ""}

    def test_specifications_must_be_object(self, client, admin_headers):
        resp = _create(client, admin_headers, specifications=["size"])
        assert resp.status_code == 400
        assert resp.json['errors'][0]['field'] == 'specifications'

    def test_duplicate_item_number(self, client, admin_headers, product):
        resp = _create(client, admin_headers, item_number=product.item_number)
        assert resp.status_code == 400
        assert resp.json['errors'][0]['field'] == 'item_number'

    def test_soft_deleted_item_number_is_reactivated(self, client, admin_headers, product):
        client.delete(f'/api/products/{product.id}', headers=admin_headers)
        resp = _create(client, admin_headers, item_number=product.item_number, name="Steel Bolt v2")
        assert resp.status_code == 200
        assert resp.json['data']['id'] == product.id
        assert resp.json['data']['name'] == 'Steel Bolt v2'

    @pytest.mark.parametrize("body, field", [
        ({"stock": -1}, "stock"),
        ({"reorder_level": -5}, "reorder_level"),
        ({"name": ""}, "name"),
    ])
    def test_invalid_fields(self, client, admin_headers, body, field):
        resp = _create(client, admin_headers, **body)
        assert resp.status_code == 400
        assert field in {e['field'] for e in resp.json['errors']}

    def test_negative_price_rejected(self, client, admin_headers):
        assert _create(client, admin_headers, selling_price_cents=-1).status_code == 400

    def test_vendor_creates_without_commercial_fields(self, client, vendor_headers):
        resp = _create(client, vendor_headers)
        assert resp.status_code == 201
        assert 'selling_price_cents' not in resp.json['data']
        assert 'stock' not in resp.json['data']


class TestUpdateProduct:

    def test_update(self, client, admin_headers, product):
        resp = client.put(
            f'/api/products/{product.id}',
            json={"name": "Zinc Bolt", "visible_to_clients": False},
            headers=admin_headers,
        )
        assert resp.status_code == 200
        assert resp.json['data']['name'] == 'Zinc Bolt'
        assert resp.json['data']['visible_to_clients'] is False

    def test_blanking_description_regenerates_it(self, client, admin_headers, product):
        resp = client.put(
            f'/api/products/{product.id}',
            json={"name": "Zinc Bolt", "description": ""},
            headers=admin_headers,
        )
        assert resp.json['data']['description'] == 'Zinc Bolt (ITEM-001)'

    def test_item_number_collision(self, client, admin_headers, product, hidden_product):
        resp = client.put(
            f'/api/products/{product.id}',
            json={"item_number": hidden_product.item_number},
            headers=admin_headers,
        )
        assert resp.status_code == 400

    def test_unknown_product(self, client, admin_headers):
        assert client.put('/api/products/999', json={"name": "x"}, headers=admin_headers).status_code == 404


class TestDeleteProduct:

    def test_admin_soft_deletes(self, client, admin_headers, product):
        assert client.delete(f'/api/products/{product.id}', headers=admin_headers).status_code == 200
        db.session.expire_all()
        assert db.session.get(Product, product.id).is_active is False
        assert client.get(f'/api/products/{product.id}', headers=admin_headers).status_code == 404

    def test_supplier_cannot_delete(self, client, supplier_headers, product):
        assert client.delete(f'/api/products/{product.id}', headers=supplier_headers).status_code == 403


class TestListing:

    def test_search(self, client, admin_headers, product, hidden_product):
        resp = client.get('/api/products?search=hidden', headers=admin_headers)
        assert [p['id'] for p in resp.json['data']] == [hidden_product.id]

    def test_visible_filter(self, client, admin_headers, product, hidden_product):
        resp = client.get('/api/products?visible=false', headers=admin_headers)
        assert [p['id'] for p in resp.json['data']] == [hidden_product.id]

    def test_visible_catalogue(self, client, supplier_headers, product, hidden_product):
        resp = client.get('/api/products/visible', headers=supplier_headers)
        assert [p['id'] for p in resp.json['data']] == [product.id]

    def test_sort_by_name(self, client, admin_headers, product, hidden_product):
        resp = client.get('/api/products?sort_by=name&sort_order=asc', headers=admin_headers)
        names = [p['name'] for p in resp.json['data']]
        assert names == sorted(names)
