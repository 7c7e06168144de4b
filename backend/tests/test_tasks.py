from datetime import datetime, timedelta

import redis

from ispmanager import db, tasks
from ispmanager.models import Invoice, InvoiceStatus, Router, RouterStatus


class _FakeRedis:
    def __init__(self):
        self.store = {}

    def set(self, key, value, nx=False, ex=None):
        if nx and key in self.store:
            return None
        self.store[key] = value
        return True

    def get(self, key):
        return self.store.get(key)

    def delete(self, key):
        self.store.pop(key, None)


def test_mark_overdue_invoices_task(app, tenant):
    with app.app_context():
        db.session.add(Invoice(
            invoice_no='INV-000001',
            customer_id=tenant['customer_id'],
            isp_owner_id=tenant['tenant_id'],
            amount=25.0,
            due_date=datetime.utcnow() - timedelta(days=1),
            status=InvoiceStatus.PENDING,
        ))
        db.session.commit()

        result = tasks.mark_overdue_invoices.run()

        assert result == {'skipped': False, 'updated': 1}
        assert Invoice.query.one().status == InvoiceStatus.OVERDUE


def test_refresh_router_status_skips_maintenance(app, tenant, routeros_network):
    with app.app_context():
        down = Router(isp_owner_id=tenant['tenant_id'], name='Edge-2', ip_address='10.20.0.2', username='api')
        down.password = 'secret'
        parked = Router(
            isp_owner_id=tenant['tenant_id'], name='Lab', ip_address='10.20.0.3',
            username='api', status=RouterStatus.MAINTENANCE,
        )
        parked.password = 'secret'
        db.session.add_all([down, parked])
        db.session.commit()
        routeros_network.offline.add('10.20.0.2')

        result = tasks.refresh_router_status.run()

        assert result == {'skipped': False, 'online': 1, 'offline': 1}
        statuses = {router.ip_address: router.status for router in Router.query.all()}

    assert statuses == {
        '10.20.0.1': RouterStatus.ONLINE,
        '10.20.0.2': RouterStatus.OFFLINE,
        '10.20.0.3': RouterStatus.MAINTENANCE,
    }
    assert ('10.20.0.3', 8728) not in routeros_network.connections


def test_task_skips_when_lock_is_held(app, monkeypatch):
    fake = _FakeRedis()
    fake.store['tasks:mark_overdue_invoices'] = 'other-worker'
    monkeypatch.setattr(tasks, '_get_redis_client', lambda: fake)

    with app.app_context():
        assert tasks.mark_overdue_invoices.run() == {'skipped': True, 'updated': 0}


def test_lock_is_released_after_run(app, monkeypatch):
    fake = _FakeRedis()
    monkeypatch.setattr(tasks, '_get_redis_client', lambda: fake)

    with app.app_context():
        assert tasks.mark_overdue_invoices.run()['skipped'] is False

    assert fake.store == {}


def test_redis_errors_do_not_block_tasks(app, monkeypatch):
    class BrokenRedis(_FakeRedis):
        def set(self, *args, **kwargs):
            raise redis.ConnectionError('down')

    monkeypatch.setattr(tasks, '_get_redis_client', lambda: BrokenRedis())

    with app.app_context():
        assert tasks.mark_overdue_invoices.run() == {'skipped': False, 'updated': 0}
