"""
Catalogue exchange tests.

Verifies:
- The public catalogue lists visible products without authentication
- The share endpoint needs the configured API key
- Admins push the catalogue to a webhook, with dry runs and upstream failures
- Product and purchase statistics
- Excel and CSV product imports upsert by item number
- Invoice imports preview matches and take paid rows out of stock when applied
"""

import io

import httpx
import pytest
from openpyxl import Workbook

from ordercrm.extensions import db
from ordercrm.models import Product

from conftest import create_order, stock_of


def _workbook(rows):
    wb = Workbook()
    sheet = wb.active
    for row in rows:
        sheet.append(row)
    buf = io.BytesIO()
    wb.save(buf)
    buf.seek(0)
    return buf


def _upload(client, url, headers, buf, name="sheet.xlsx"):
    return client.post(
        url,
        data={"file": (buf, name)},
        headers=headers,
        content_type="multipart/form-data",
    )


class TestPublicCatalogue:

    def test_lists_visible_products_without_auth(self, client, product, hidden_product):
        resp = client.get('/api/products/public')
        assert resp.status_code == 200
        assert resp.headers['Cache-Control'] == 'no-store'
        data = resp.json['data']
        assert [p['item_number'] for p in data['products']] == ['ITEM-001']
        assert data['products'][0]['stock'] == 0
        assert data['meta']['total'] == 1
        assert data['meta']['include_hidden'] is False
        assert data['meta']['limit'] == 1000

    def test_hidden_flag_is_ignored(self, client, product, hidden_product):
        resp = client.get('/api/products/public?include_hidden=true&limit=1')
        assert [p['item_number'] for p in resp.json['data']['products']] == ['ITEM-001']
        assert resp.json['data']['meta']['limit'] == 1


class TestShare:

    def test_unconfigured_key_is_503(self, client, product):
        assert client.get('/api/products/export/share?key=abc').status_code == 503

    def test_key_required(self, app, client, product, hidden_product):
        app.config['EXTERNAL_PRODUCTS_API_KEY'] = 'share-secret'
        assert client.get('/api/products/export/share').status_code == 401
        assert client.get('/api/products/export/share?key=wrong').status_code == 401

        resp = client.get('/api/products/export/share', headers={'X-Api-Key': 'share-secret'})
        assert resp.status_code == 200
        assert len(resp.json['data']['products']) == 1

        resp = client.get(
            '/api/products/export/share?include_hidden=true',
            headers={'X-External-Api-Key': 'share-secret'},
        )
        assert len(resp.json['data']['products']) == 2


class TestWebhookSend:

    def test_dry_run_sends_nothing(self, monkeypatch, client, admin_headers, product):
        def fail_post(*args, **kwargs):
            raise AssertionError("dry run must not send")

        monkeypatch.setattr("ordercrm.services.catalog_export_service.httpx.post", fail_post)
        resp = client.post('/api/products/export/send', json={"dry_run": True}, headers=admin_headers)
        assert resp.status_code == 200
        assert resp.json['data']['destination_url'] is None
        assert resp.json['data']['meta']['total'] == 1
        assert resp.json['data']['preview'][0]['item_number'] == 'ITEM-001'

    def test_missing_destination(self, client, admin_headers, product):
        assert client.post('/api/products/export/send', json={}, headers=admin_headers).status_code == 400

    def test_sends_snapshot(self, monkeypatch, client, admin_headers, product, hidden_product):
        sent = []

        def fake_post(url, json=None, headers=None, timeout=None):
            sent.append({"url": url, "json": json})
            return httpx.Response(200, json={"received": len(json["products"])})

        monkeypatch.setattr("ordercrm.services.catalog_export_service.httpx.post", fake_post)
        resp = client.post(
            '/api/products/export/send',
            json={"target_url": "https://shop.example.com/hook"},
            headers=admin_headers,
        )
        assert resp.status_code == 200
        assert sent[0]["url"] == "https://shop.example.com/hook"
        assert len(sent[0]["json"]["products"]) == 2
        assert resp.json['data']['remote_response'] == {"status": 200, "ok": True, "body": {"received": 2}}

    def test_configured_webhook_and_upstream_error(self, monkeypatch, app, client, admin_headers, product):
        app.config['EXTERNAL_PRODUCTS_WEBHOOK_URL'] = 'https://shop.example.com/configured'

        def fake_post(url, json=None, headers=None, timeout=None):
            return httpx.Response(500, text="boom")

        monkeypatch.setattr("ordercrm.services.catalog_export_service.httpx.post", fake_post)
        resp = client.post('/api/products/export/send', json={"include_hidden": False}, headers=admin_headers)
        assert resp.status_code == 502
        assert resp.json['data']['destination_url'] == 'https://shop.example.com/configured'
        assert resp.json['data']['remote_response']['status'] == 500

    def test_unreachable_webhook(self, monkeypatch, client, admin_headers, product):
        def fake_post(url, json=None, headers=None, timeout=None):
            raise httpx.ReadTimeout("slow")

        monkeypatch.setattr("ordercrm.services.catalog_export_service.httpx.post", fake_post)
        resp = client.post(
            '/api/products/export/send',
            json={"target_url": "https://shop.example.com/hook"},
            headers=admin_headers,
        )
        assert resp.status_code == 502
        assert resp.json['message'] == 'Timed out while contacting external app'

    def test_admin_only(self, client, supplier_headers):
        assert client.post('/api/products/export/send', json={"dry_run": True}, headers=supplier_headers).status_code == 403


class TestStatistics:

    def test_product_statistics_cover_all_statuses(self, client, admin_headers, vendor, product):
        create_order(client, admin_headers, vendor.id, [{"product_id": product.id, "quantity": 2, "unit_price_cents": 100}])
        confirmed = create_order(
            client, admin_headers, vendor.id,
            [{"product_id": product.id, "quantity": 3, "unit_price_cents": 200}],
        )
        client.put(f"/api/orders/{confirmed['id']}", json={"status": "confirmed"}, headers=admin_headers)

        resp = client.get(f'/api/products/{product.id}/statistics', headers=admin_headers)
        assert resp.status_code == 200
        data = resp.json['data']
        assert data['total_purchases'] == 2
        assert data['total_quantity'] == 5
        assert data['total_amount_cents'] == 800
        assert data['average_price_cents'] == 160
        assert data['unique_vendors'] == 1
        assert len(data['purchases']) == 2

    def test_product_statistics_unknown_product(self, client, admin_headers):
        assert client.get('/api/products/999/statistics', headers=admin_headers).status_code == 404

    def test_purchase_overview(self, client, admin_headers, vendor, other_vendor, product, hidden_product):
        for vendor_id, product_id, qty in ((vendor.id, product.id, 4), (other_vendor.id, hidden_product.id, 6)):
            order = create_order(
                client, admin_headers, vendor_id,
                [{"product_id": product_id, "quantity": qty, "unit_price_cents": 50}],
            )
            client.put(f"/api/orders/{order['id']}", json={"status": "confirmed"}, headers=admin_headers)

        resp = client.get('/api/product-purchases/statistics/overview', headers=admin_headers)
        assert resp.status_code == 200
        assert resp.json['data'] == {
            "total_purchases": 2,
            "total_quantity": 10,
            "total_amount_cents": 500,
            "average_price_cents": 50,
            "unique_vendors": 2,
            "unique_products": 2,
        }

        resp = client.get(f'/api/product-purchases/statistics/overview?vendor_id={vendor.id}', headers=admin_headers)
        assert resp.json['data']['total_quantity'] == 4
        assert resp.json['data']['unique_products'] == 1

    def test_purchase_overview_empty_and_bad_date(self, client, admin_headers):
        resp = client.get('/api/product-purchases/statistics/overview', headers=admin_headers)
        assert resp.json['data']['total_purchases'] == 0
        assert resp.json['data']['average_price_cents'] == 0
        resp = client.get('/api/product-purchases/statistics/overview?start_date=soon', headers=admin_headers)
        assert resp.status_code == 400


class TestProductImport:

    def test_excel_import_finds_header_below_title(self, client, admin_headers, product):
        buf = _workbook([
            ["Supplier price list 2026"],
            [],
            ["OEM", "Name", "Description", "Qty"],
            ["ITEM-001", "Steel Bolt M8", "", 12],
            ["ITEM-200", "Washer", "Flat washer", 40],
            [None, "No number", "", 3],
            [],
        ])
        resp = _upload(client, '/api/products/import/excel', admin_headers, buf)
        assert resp.status_code == 200
        data = resp.json['data']
        assert (data['created'], data['updated'], data['skipped']) == (1, 1, 1)
        assert data['errors'][0]['row'] == 6

        db.session.expire_all()
        washer = db.session.query(Product).filter_by(item_number='ITEM-200').one()
        assert washer.stock == 40
        assert washer.description == 'Flat washer'
        bolt = db.session.get(Product, product.id)
        assert bolt.name == 'Steel Bolt M8'
        assert bolt.stock == 12
        assert bolt.description == 'Steel Bolt (ITEM-001)'

    def test_csv_import_generates_description(self, client, admin_headers):
        buf = io.BytesIO("Item Number,Name,Quantity\nCSV-1,Gasket,7\n".encode("utf-8"))
        resp = _upload(client, '/api/products/import/excel', admin_headers, buf, name="list.csv")
        assert resp.status_code == 200
        db.session.expire_all()
        gasket = db.session.query(Product).filter_by(item_number='CSV-1').one()
        assert gasket.description == 'Gasket (CSV-1)'
        assert gasket.stock == 7

    def test_import_reactivates_deleted_product(self, client, admin_headers, product):
        client.delete(f'/api/products/{product.id}', headers=admin_headers)
        buf = _workbook([["Item Number", "Qty"], ["ITEM-001", 2]])
        resp = _upload(client, '/api/products/import/excel', admin_headers, buf)
        assert resp.json['data']['updated'] == 1
        db.session.expire_all()
        assert db.session.get(Product, product.id).is_active is True

    @pytest.mark.parametrize("name, payload", [
        ("notes.txt", b"hello"),
        ("broken.xlsx", b"not a zip file"),
    ])
    def test_bad_files_rejected(self, client, admin_headers, name, payload):
        resp = _upload(client, '/api/products/import/excel', admin_headers, io.BytesIO(payload), name=name)
        assert resp.status_code == 400

    def test_missing_file_and_access(self, client, admin_headers, supplier_headers):
        assert client.post('/api/products/import/excel', headers=admin_headers).status_code == 400
        buf = _workbook([["Item Number", "Qty"], ["X-1", 1]])
        assert _upload(client, '/api/products/import/excel', supplier_headers, buf).status_code == 403


class TestInvoiceImport:

    def _invoice(self):
        return _workbook([
            ["Invoice MS002"],
            ["Item Nur", "QTY", "Payment"],
            ["ITEM-001", 4, "Paid"],
            ["ITEM-001", 1, "pending"],
            ["UNKNOWN-9", 2, "paid"],
            ["ITEM-001", 0, "paid"],
        ])

    def test_preview_leaves_stock(self, client, admin_headers, product):
        product.stock = 10
        db.session.commit()

        resp = _upload(client, '/api/products/invoices/import', admin_headers, self._invoice())
        assert resp.status_code == 200
        assert resp.json['message'] == 'Invoice parsed'
        preview = resp.json['data']['preview']
        assert [p['matched'] for p in preview] == [True, True, False, False]
        assert preview[0]['paid'] is True
        assert preview[0]['new_stock'] == 6
        assert preview[1]['new_stock'] == 10
        assert preview[2]['reason'] == 'Product not found'
        assert preview[3]['reason'] == 'Missing item number or qty'
        assert resp.json['data']['applied_count'] == 0
        assert stock_of(product.id) == 10

    def test_apply_takes_paid_rows_out_of_stock(self, client, admin_headers, product):
        product.stock = 10
        db.session.commit()

        resp = _upload(client, '/api/products/invoices/import?apply=true', admin_headers, self._invoice())
        assert resp.status_code == 200
        assert resp.json['message'] == 'Invoice applied'
        assert resp.json['data']['applied_count'] == 1
        assert stock_of(product.id) == 6
