"""
System endpoint and CLI tests.

Verifies:
- /health reports each subsystem and /version stays non-sensitive
- `flask system init` bootstraps an admin once
- User and vendor listings and maintenance commands run inside the app context
"""

from ordercrm.extensions import db
from ordercrm.models import User


class TestSystemEndpoints:

    def test_health(self, client):
        resp = client.get('/health')
        assert resp.status_code == 200
        assert resp.json['status'] == 'healthy'
        assert set(resp.json['checks']) == {'database', 'session_service', 'upload_storage'}

    def test_version(self, client):
        resp = client.get('/version')
        assert resp.status_code == 200
        assert resp.json['api_version'] == '1.0.0'
        assert 'database_url' not in resp.json

    def test_unknown_route_uses_envelope(self, client):
        resp = client.get('/api/nothing-here')
        assert resp.status_code == 404
        assert resp.json['success'] is False


class TestCli:

    def test_init_creates_admin_once(self, app):
        runner = app.test_cli_runner()
        result = runner.invoke(args=['system', 'init', '--admin-password', 'Secret123'])
        assert result.exit_code == 0
        assert 'PASS Created admin: admin' in result.output
        assert 'PASS Seeded 14 default field configs' in result.output

        db.session.expire_all()
        admin = db.session.query(User).filter_by(username='admin').one()
        assert admin.role == 'admin'

        result = runner.invoke(args=['system', 'init'])
        assert 'already exists' in result.output
        assert 'Seeded' not in result.output

    def test_users_create_and_list(self, app):
        runner = app.test_cli_runner()
        result = runner.invoke(args=[
            'users', 'create', '--username', 'buyer', '--password', 'Secret123', '--role', 'supplier',
        ])
        assert 'PASS Created user: buyer' in result.output

        result = runner.invoke(args=['users', 'list', '--role', 'supplier'])
        assert 'buyer' in result.output

    def test_weak_password_reported(self, app):
        result = app.test_cli_runner().invoke(args=[
            'users', 'create', '--username', 'buyer', '--password', 'x', '--role', 'client',
        ])
        assert 'FAIL' in result.output

    def test_vendors_list(self, app, vendor):
        result = app.test_cli_runner().invoke(args=['vendors', 'list'])
        assert 'Acme Supplies' in result.output

    def test_maintenance_commands(self, app):
        runner = app.test_cli_runner()
        assert 'Deleted 0 sessions' in runner.invoke(args=['maintenance', 'cleanup-sessions']).output
        result = runner.invoke(args=['maintenance', 'cleanup-notifications'])
        assert 'older than 7 days' in result.output
