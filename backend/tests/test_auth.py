"""
Authentication tests.

Verifies:
- User and vendor login issue working session tokens
- Deactivated users are reactivated by logging in; vendors are not
- Logout revokes the token
- Deactivating a vendor also shuts its linked user login
"""

from ordercrm.extensions import db
from ordercrm.models import User

from conftest import PASSWORD, auth_headers, get_auth_token


class TestUserLogin:

    def test_login_returns_token_and_user(self, client, admin_user):
        resp = client.post('/api/auth/login', json={'username': 'admin', 'password': PASSWORD})
        assert resp.status_code == 200
        data = resp.json['data']
        assert data['token']
        assert data['user']['role'] == 'admin'
        assert data['reactivated'] is False

    def test_wrong_password_is_401(self, client, admin_user):
        resp = client.post('/api/auth/login', json={'username': 'admin', 'password': 'wrong-password'})
        assert resp.status_code == 401
        assert resp.json['success'] is False

    def test_short_credentials_are_400(self, client):
        resp = client.post('/api/auth/login', json={'username': 'ab', 'password': '123'})
        assert resp.status_code == 400
        fields = {e['field'] for e in resp.json['errors']}
        assert fields == {'username', 'password'}

    def test_me_returns_principal(self, client, admin_headers):
        resp = client.get('/api/auth/me', headers=admin_headers)
        assert resp.status_code == 200
        assert resp.json['data']['role'] == 'admin'
        assert resp.json['data']['user']['username'] == 'admin'

    def test_logout_revokes_token(self, client, admin_headers):
        assert client.post('/api/auth/logout', headers=admin_headers).status_code == 200
        assert client.get('/api/auth/me', headers=admin_headers).status_code == 401

    def test_missing_token_is_401(self, client):
        resp = client.get('/api/auth/me')
        assert resp.status_code == 401


class TestReactivation:

    def _deactivate(self, username):
        user = db.session.query(User).filter_by(username=username).one()
        user.is_active = False
        db.session.commit()

    def test_login_reactivates_deactivated_user(self, client, client_user):
        self._deactivate('client')
        resp = client.post('/api/auth/login', json={'username': 'client', 'password': PASSWORD})
        assert resp.status_code == 200
        assert resp.json['data']['reactivated'] is True
        db.session.expire_all()
        assert db.session.query(User).filter_by(username='client').one().is_active is True

    def test_reactivate_rejects_active_account(self, client, client_user):
        resp = client.post('/api/auth/reactivate', json={'username': 'client', 'password': PASSWORD})
        assert resp.status_code == 400

    def test_reactivate_endpoint(self, client, client_user):
        self._deactivate('client')
        resp = client.post('/api/auth/reactivate', json={'username': 'client', 'password': PASSWORD})
        assert resp.status_code == 200
        assert resp.json['data']['reactivated'] is True

    def test_deactivated_user_token_stops_working(self, client, client_headers):
        self._deactivate('client')
        assert client.get('/api/auth/me', headers=client_headers).status_code == 401


class TestVendorLogin:

    def test_vendor_login(self, client, vendor_account):
        vendor, password = vendor_account
        resp = client.post('/api/auth/vendor-login', json={'username': vendor.username, 'password': password})
        assert resp.status_code == 200
        assert resp.json['data']['vendor']['id'] == vendor.id

    def test_vendor_me_reports_unread_orders(self, client, vendor_headers):
        resp = client.get('/api/auth/vendor-me', headers=vendor_headers)
        assert resp.status_code == 200
        assert resp.json['data']['role'] == 'vendor'
        assert resp.json['data']['unread_orders'] == 0

    def test_vendor_cannot_use_user_me(self, client, vendor_headers):
        assert client.get('/api/auth/me', headers=vendor_headers).status_code == 403

    def test_linked_user_login_resolves_to_vendor(self, client, vendor_account):
        vendor, password = vendor_account
        token = get_auth_token(client, vendor.username, password)
        assert token
        resp = client.post('/api/auth/validate', headers=auth_headers(token))
        assert resp.status_code == 200
        assert resp.json['data']['role'] == 'vendor'
        assert resp.json['data']['vendor']['id'] == vendor.id

    def test_deactivated_vendor_cannot_log_in_either_way(self, client, admin_headers, vendor_account):
        vendor, password = vendor_account
        assert client.delete(f'/api/vendors/{vendor.id}', headers=admin_headers).status_code == 200

        resp = client.post('/api/auth/vendor-login', json={'username': vendor.username, 'password': password})
        assert resp.status_code == 401
        resp = client.post('/api/auth/login', json={'username': vendor.username, 'password': password})
        assert resp.status_code == 401
