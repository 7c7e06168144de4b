from ispmanager import db
from ispmanager.models import PPPoEUser, Router, RouterStatus, UserRole


def _router_payload(**overrides):
    payload = {
        'name': 'Edge-7',
        'ip_address': '10.30.0.7',
        'port': 8728,
        'username': 'api',
        'password': 'edge-secret',
        'location': 'North POP',
    }
    payload.update(overrides)
    return payload


def test_create_router_checks_connectivity(client, app, tenant, routeros_network):
    online = client.post('/api/routers', json=_router_payload(), headers=tenant['owner_headers'])
    routeros_network.offline.add('10.30.0.8')
    offline = client.post(
        '/api/routers', json=_router_payload(name='Edge-8', ip_address='10.30.0.8'), headers=tenant['owner_headers'],
    )

    assert online.status_code == 201
    router = online.get_json()['router']
    assert router['status'] == RouterStatus.ONLINE
    assert router['tenant_id'] == tenant['tenant_id']
    assert router['last_connected'] is not None
    assert 'password' not in router
    assert offline.status_code == 201
    assert offline.get_json()['router']['status'] == RouterStatus.OFFLINE

    with app.app_context():
        stored = db.session.get(Router, router['id'])
        assert stored.password_encrypted != 'edge-secret'
        assert stored.password == 'edge-secret'


def test_create_router_validation(client, tenant):
    missing = client.post('/api/routers', json={'name': 'x'}, headers=tenant['owner_headers'])
    bad_ip = client.post('/api/routers', json=_router_payload(ip_address='300.1.1.1'), headers=tenant['owner_headers'])
    bad_port = client.post('/api/routers', json=_router_payload(port=70000), headers=tenant['owner_headers'])
    duplicate = client.post('/api/routers', json=_router_payload(ip_address='10.20.0.1'), headers=tenant['owner_headers'])
    as_customer = client.post('/api/routers', json=_router_payload(), headers=tenant['customer_headers'])

    assert missing.status_code == 400
    assert bad_ip.status_code == 400
    assert bad_ip.get_json()['error'] == 'Invalid IP address'
    assert bad_port.status_code == 400
    assert duplicate.status_code == 409
    assert as_customer.status_code == 403


def test_list_routers_reports_live_status(client, tenant, routeros_network):
    routeros_network.offline.add('10.20.0.1')

    checked = client.get('/api/routers', headers=tenant['owner_headers'])
    unchecked = client.get('/api/routers?check_status=false', headers=tenant['owner_headers'])

    router = checked.get_json()['routers'][0]
    assert router['status'] == RouterStatus.ONLINE
    assert router['actual_status'] == RouterStatus.OFFLINE
    assert 'actual_status' not in unchecked.get_json()['routers'][0]


def test_routers_hidden_across_tenants(client, make_user, auth_headers, tenant):
    rival = make_user('rival@test.local', UserRole.ISP_OWNER, company_name='Rival Net')
    headers = auth_headers(rival['id'])

    assert client.get('/api/routers', headers=headers).get_json()['routers'] == []
    assert client.get(f"/api/routers/{tenant['router_id']}", headers=headers).status_code == 404
    assert client.delete(f"/api/routers/{tenant['router_id']}", headers=headers).status_code == 404


def test_test_connection_endpoint(client, tenant, routeros_network):
    routeros_network.offline.add('10.99.0.2')

    ok = client.post(
        '/api/routers/test',
        json={'ip_address': '10.99.0.1', 'username': 'api', 'password': 'pw'},
        headers=tenant['owner_headers'],
    )
    failed = client.post(
        '/api/routers/test',
        json={'ip_address': '10.99.0.2', 'username': 'api', 'password': 'pw', 'port': 8729},
        headers=tenant['owner_headers'],
    )

    assert ok.status_code == 200
    assert ok.get_json()['success'] is True
    assert failed.status_code == 200
    assert failed.get_json()['success'] is False
    assert ('10.99.0.2', 8729) in routeros_network.connections


def test_update_router_rechecks_status_when_connection_changes(client, tenant, routeros_network):
    routeros_network.offline.add('10.20.0.50')

    renamed = client.put(
        f"/api/routers/{tenant['router_id']}", json={'name': 'Core-A'}, headers=tenant['owner_headers'],
    )
    moved = client.put(
        f"/api/routers/{tenant['router_id']}", json={'ip_address': '10.20.0.50'}, headers=tenant['owner_headers'],
    )

    assert renamed.get_json()['router']['name'] == 'Core-A'
    assert renamed.get_json()['router']['status'] == RouterStatus.ONLINE
    assert moved.status_code == 200
    assert moved.get_json()['router']['ip_address'] == '10.20.0.50'
    assert moved.get_json()['router']['status'] == RouterStatus.OFFLINE


def test_update_router_keeps_maintenance_status(client, tenant, routeros_network):
    response = client.put(
        f"/api/routers/{tenant['router_id']}",
        json={'status': 'maintenance', 'password': 'rotated'},
        headers=tenant['owner_headers'],
    )
    invalid = client.put(
        f"/api/routers/{tenant['router_id']}", json={'status': 'broken'}, headers=tenant['owner_headers'],
    )

    assert response.get_json()['router']['status'] == RouterStatus.MAINTENANCE
    assert invalid.status_code == 400


def test_router_check_status_action(client, tenant, routeros_network):
    routeros_network.offline.add('10.20.0.1')

    response = client.patch(
        f"/api/routers/{tenant['router_id']}", json={'action': 'check_status'}, headers=tenant['owner_headers'],
    )
    unknown = client.patch(
        f"/api/routers/{tenant['router_id']}", json={'action': 'reboot'}, headers=tenant['owner_headers'],
    )

    assert response.status_code == 200
    payload = response.get_json()
    assert payload['online'] is False
    assert payload['message'] == 'Router is offline'
    assert payload['router']['status'] == RouterStatus.OFFLINE
    assert unknown.status_code == 400
    assert unknown.get_json()['error'] == 'Invalid action'


def test_router_sync_action(client, app, tenant, routeros_network):
    with app.app_context():
        pppoe_user = PPPoEUser(
            username='jane-home',
            customer_id=tenant['customer_id'],
            router_id=tenant['router_id'],
            plan_id=tenant['plan_id'],
            download_speed='20M',
            upload_speed='5M',
        )
        pppoe_user.password = 'pppoe-pass'
        db.session.add(pppoe_user)
        db.session.commit()

    synced = client.patch(
        f"/api/routers/{tenant['router_id']}", json={'action': 'sync_pppoe'}, headers=tenant['owner_headers'],
    )
    routeros_network.offline.add('10.20.0.1')
    unreachable = client.patch(
        f"/api/routers/{tenant['router_id']}", json={'action': 'sync_pppoe'}, headers=tenant['owner_headers'],
    )

    assert synced.status_code == 200
    assert synced.get_json()['summary']['added'] == ['jane-home']
    assert [row['name'] for row in routeros_network.device('10.20.0.1').secrets()] == ['jane-home']
    assert unreachable.status_code == 502
    with app.app_context():
        assert db.session.get(Router, tenant['router_id']).status == RouterStatus.OFFLINE


def test_router_resources_and_sessions(client, tenant, routeros_network):
    routeros_network.device('10.20.0.1').active().append(
        {'id': '*5', 'name': 'jane-home', 'service': 'pppoe', 'caller-id': 'AA:BB:CC:00:11:22',
         'address': '100.64.0.10', 'uptime': '3h'}
    )

    resources = client.get(f"/api/routers/{tenant['router_id']}/resources", headers=tenant['owner_headers'])
    sessions = client.get(f"/api/routers/{tenant['router_id']}/active-sessions", headers=tenant['owner_headers'])

    assert resources.status_code == 200
    assert resources.get_json()['system_resource']['cpu_load'] == '4'
    assert len(resources.get_json()['interfaces']) == 2
    assert sessions.get_json()['count'] == 1
    assert sessions.get_json()['sessions'][0]['caller_id'] == 'AA:BB:CC:00:11:22'

    routeros_network.offline.add('10.20.0.1')
    failed = client.get(f"/api/routers/{tenant['router_id']}/resources", headers=tenant['owner_headers'])
    assert failed.status_code == 502


def test_delete_router(client, app, tenant):
    with app.app_context():
        pppoe_user = PPPoEUser(
            username='jane-home',
            customer_id=tenant['customer_id'],
            router_id=tenant['router_id'],
            plan_id=tenant['plan_id'],
        )
        pppoe_user.password = 'pppoe-pass'
        db.session.add(pppoe_user)
        db.session.commit()
        pppoe_user_id = pppoe_user.id

    blocked = client.delete(f"/api/routers/{tenant['router_id']}", headers=tenant['owner_headers'])
    with app.app_context():
        db.session.delete(db.session.get(PPPoEUser, pppoe_user_id))
        db.session.commit()
    deleted = client.delete(f"/api/routers/{tenant['router_id']}", headers=tenant['owner_headers'])

    assert blocked.status_code == 400
    assert deleted.status_code == 200
    with app.app_context():
        assert db.session.get(Router, tenant['router_id']) is None


def test_router_actions_report_unreadable_credentials(client, app, tenant):
    with app.app_context():
        db.session.get(Router, tenant['router_id']).password_encrypted = 'not-a-fernet-token'
        db.session.commit()

    resources = client.get(f"/api/routers/{tenant['router_id']}/resources", headers=tenant['owner_headers'])
    sessions = client.get(f"/api/routers/{tenant['router_id']}/active-sessions", headers=tenant['owner_headers'])
    synced = client.patch(
        f"/api/routers/{tenant['router_id']}", json={'action': 'sync_pppoe'}, headers=tenant['owner_headers'],
    )

    assert resources.status_code == 502
    assert sessions.status_code == 502
    assert synced.status_code == 502
    assert 'cannot be decrypted' in resources.get_json()['error']
