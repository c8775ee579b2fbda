"""
Push channel tests.

Verifies:
- Committed changes show up in the event outbox in id order
- Vendors and clients only receive events that concern them
- The cursor lets a poller resume without repeats
- The SSE stream emits the same events in text/event-stream framing
"""

import json

from conftest import create_order


def _poll(client, headers, after_id=0):
    resp = client.get(f'/api/notifications?after_id={after_id}', headers=headers)
    assert resp.status_code == 200
    return resp.json['data']


class TestPolling:

    def test_order_creation_publishes(self, client, admin_headers, vendor, product):
        order = create_order(client, admin_headers, vendor.id, [{"product_id": product.id, "quantity": 1}])
        data = _poll(client, admin_headers)
        kinds = [e['event'] for e in data['events']]
        assert kinds == ['orders:created', 'notifications:push']
        assert data['events'][0]['payload']['id'] == order['id']
        assert data['events'][0]['actor_type'] == 'user'
        assert data['latest_id'] == data['events'][-1]['id']

    def test_cursor_resumes(self, client, admin_headers, vendor, product):
        create_order(client, admin_headers, vendor.id, [{"product_id": product.id, "quantity": 1}])
        latest = _poll(client, admin_headers)['latest_id']
        assert _poll(client, admin_headers, latest)['events'] == []

        client.put(f'/api/products/{product.id}', json={"name": "Renamed"}, headers=admin_headers)
        events = _poll(client, admin_headers, latest)['events']
        assert [e['event'] for e in events] == ['products:updated']

    def test_limit_caps_batch(self, client, admin_headers, vendor, product):
        create_order(client, admin_headers, vendor.id, [{"product_id": product.id, "quantity": 1}])
        resp = client.get('/api/notifications?limit=1', headers=admin_headers)
        assert len(resp.json['data']['events']) == 1

    def test_bad_cursor(self, client, admin_headers):
        assert client.get('/api/notifications?after_id=abc', headers=admin_headers).status_code == 400
        assert client.get('/api/notifications?after_id=-1', headers=admin_headers).status_code == 400

    def test_requires_auth(self, client):
        assert client.get('/api/notifications').status_code == 401


class TestVisibility:

    def test_vendor_sees_own_orders_only(
        self, client, admin_headers, vendor, vendor_headers, other_vendor_headers, product
    ):
        create_order(client, admin_headers, vendor.id, [{"product_id": product.id, "quantity": 1}])

        own = _poll(client, vendor_headers)
        assert {e['event'] for e in own['events']} == {'orders:created', 'notifications:push'}

        other = _poll(client, other_vendor_headers)
        assert other['events'] == []
        # The cursor still moves past events the caller cannot see
        assert other['latest_id'] == own['latest_id']

    def test_catalogue_events_reach_everyone(self, client, admin_headers, vendor_headers, client_headers, product):
        client.put(f'/api/products/{product.id}', json={"name": "Renamed"}, headers=admin_headers)
        assert [e['event'] for e in _poll(client, vendor_headers)['events']] == ['products:updated']
        assert [e['event'] for e in _poll(client, client_headers)['events']] == ['products:updated']

    def test_client_sees_own_demands(self, client, client_headers, supplier_headers, product, client_user):
        client.post('/api/demands', json={"product_id": product.id}, headers=client_headers)
        client.post('/api/demands', json={"product_id": product.id}, headers=supplier_headers)

        events = _poll(client, client_headers)['events']
        demand_events = [e for e in events if e['event'] == 'demands:created']
        assert len(demand_events) == 1
        assert demand_events[0]['payload']['user_id'] == client_user.id


class TestStream:

    def test_stream_replays_from_cursor(self, app, client, admin_headers, vendor, product):
        app.config['EVENT_STREAM_MAX_SECONDS'] = 0
        vendor_id = vendor.id
        create_order(client, admin_headers, vendor.id, [{"product_id": product.id, "quantity": 1}])

        resp = client.get('/api/notifications/stream?after_id=0', headers=admin_headers)
        assert resp.status_code == 200
        assert resp.mimetype == 'text/event-stream'
        assert resp.headers['Cache-Control'] == 'no-cache'

        body = resp.get_data(as_text=True)
        assert body.startswith('retry: ')
        frames = [f for f in body.split('\n\n') if f.startswith('id: ')]
        assert len(frames) == 2
        first = frames[0].split('\n')
        assert first[1] == 'event: orders:created'
        payload = json.loads(first[2][len('data: '):])
        assert payload['payload']['vendor_id'] == vendor_id

    def test_stream_honours_last_event_id(self, app, client, admin_headers, vendor, product):
        app.config['EVENT_STREAM_MAX_SECONDS'] = 0
        create_order(client, admin_headers, vendor.id, [{"product_id": product.id, "quantity": 1}])
        latest = _poll(client, admin_headers)['latest_id']

        headers = dict(admin_headers, **{'Last-Event-ID': str(latest)})
        body = client.get('/api/notifications/stream', headers=headers).get_data(as_text=True)
        assert 'id: ' not in body
