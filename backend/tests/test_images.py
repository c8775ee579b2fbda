"""
Image upload tests.

Verifies:
- Order and item images are stored and served under /upload
- Uploaded order and item images are prepended to the product gallery
- Non-image files are rejected
"""

import io
import os

from ordercrm.extensions import db
from ordercrm.models import Product

from conftest import create_order


def _image(name="photo.png"):
    return {"image": (io.BytesIO(b"\x89PNG\r\n\x1a\nfake"), name)}


class TestOrderImages:

    def test_order_image_updates_order_and_gallery(self, app, client, admin_headers, vendor, product):
        order = create_order(client, admin_headers, vendor.id, [{"product_id": product.id, "quantity": 1}])
        resp = client.post(
            f"/api/orders/{order['id']}/image",
            data=_image(),
            headers=admin_headers,
            content_type="multipart/form-data",
        )
        assert resp.status_code == 200
        path = resp.json['data']['image_path']
        assert path.startswith('/upload/')
        assert path.endswith('-photo.png')
        assert resp.json['data']['order']['image_path'] == path

        stored = os.path.join(app.config['UPLOAD_FOLDER'], path.rsplit('/', 1)[1])
        assert os.path.exists(stored)

        db.session.expire_all()
        assert db.session.get(Product, product.id).images[0] == path

        served = client.get(path)
        assert served.status_code == 200

    def test_item_image(self, client, admin_headers, vendor, product):
        order = create_order(client, admin_headers, vendor.id, [{"product_id": product.id, "quantity": 1}])
        resp = client.post(
            f"/api/orders/{order['id']}/item/0/image",
            data=_image("item.jpg"),
            headers=admin_headers,
            content_type="multipart/form-data",
        )
        assert resp.status_code == 200
        path = resp.json['data']['image_path']
        assert resp.json['data']['order']['items'][0]['image_path'] == path

    def test_rejects_non_image(self, client, admin_headers, vendor, product):
        order = create_order(client, admin_headers, vendor.id, [{"product_id": product.id, "quantity": 1}])
        resp = client.post(
            f"/api/orders/{order['id']}/image",
            data={"image": (io.BytesIO(b"MZ"), "tool.exe")},
            headers=admin_headers,
            content_type="multipart/form-data",
        )
        assert resp.status_code == 400

    def test_missing_file(self, client, admin_headers, vendor, product):
        order = create_order(client, admin_headers, vendor.id, [{"product_id": product.id, "quantity": 1}])
        resp = client.post(f"/api/orders/{order['id']}/image", data={}, headers=admin_headers)
        assert resp.status_code == 400

    def test_other_vendor_cannot_upload(self, client, admin_headers, vendor, other_vendor_headers, product):
        order = create_order(client, admin_headers, vendor.id, [{"product_id": product.id, "quantity": 1}])
        resp = client.post(
            f"/api/orders/{order['id']}/image",
            data=_image(),
            headers=other_vendor_headers,
            content_type="multipart/form-data",
        )
        assert resp.status_code == 403


class TestProductImages:

    def test_newest_image_first(self, client, admin_headers, product):
        first = client.post(
            f"/api/products/{product.id}/image",
            data=_image("first.png"),
            headers=admin_headers,
            content_type="multipart/form-data",
        )
        second = client.post(
            f"/api/products/{product.id}/image",
            data=_image("second.png"),
            headers=admin_headers,
            content_type="multipart/form-data",
        )
        assert first.status_code == 200
        assert second.status_code == 200
        images = second.json['data']['images']
        assert len(images) == 2
        assert images[0].endswith('-second.png')
        assert images[1].endswith('-first.png')
