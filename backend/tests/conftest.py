from datetime import datetime, timedelta

import pytest
from flask_jwt_extended import create_access_token
from routeros_api.exceptions import RouterOsApiConnectionError

from ispmanager import create_app, db
from ispmanager.models import Plan, Router, RouterStatus, UserRole
from ispmanager.services import routeros_client
from ispmanager.services.account_service import create_account

PASSWORD = 'supersecret'


class TestConfig:
    TESTING = True
    SECRET_KEY = "test-secret-key-with-at-least-32-bytes"
    JWT_SECRET_KEY = "test-jwt-secret-key-with-at-least-32-bytes"
    JWT_ACCESS_TOKEN_EXPIRES = timedelta(hours=1)
    ENCRYPTION_KEY = "itTQ-n1WYoDTC_iw8glZpwkfxAknjNtz85t-6xeUkso="
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    REDIS_URL = None
    CORS_ORIGINS = ["http://localhost:3000"]
    RATELIMIT_STORAGE_URI = "memory://"
    RATELIMIT_ENABLED = False
    CACHE_TYPE = "SimpleCache"
    CACHE_DEFAULT_TIMEOUT = 30
    METRICS_ENABLED = False
    MAIL_ENABLED = False
    MAIL_DEFAULT_SENDER = "noreply@test.local"
    ALLOW_SELF_SIGNUP = True
    BOOTSTRAP_TOKEN = None
    ROUTEROS_TIMEOUT_SECONDS = 1
    ROUTEROS_CONNECT_RETRIES = 1
    ROUTEROS_RETRY_DELAY_SECONDS = 0
    ROUTER_STATUS_CACHE_SECONDS = 30


class FakeResource:
    """In-memory stand-in for a routeros_api resource at one menu path."""

    def __init__(self, device, path):
        self.device = device
        self.rows = device.menus.setdefault(path, [])

    @staticmethod
    def _wire(kwargs):
        return {key.replace('_', '-'): value for key, value in kwargs.items()}

    def get(self, **query):
        query = self._wire(query)
        return [dict(row) for row in self.rows if all(row.get(k) == v for k, v in query.items())]

    def add(self, **kwargs):
        self.device.next_id += 1
        row = self._wire(kwargs)
        row['id'] = f"*{self.device.next_id:X}"
        self.rows.append(row)
        return []

    def set(self, id, **kwargs):
        for row in self.rows:
            if row['id'] == id:
                row.update(self._wire(kwargs))
        return []

    def remove(self, id):
        self.rows[:] = [row for row in self.rows if row['id'] != id]
        return []


class FakeDevice:
    def __init__(self, host):
        self.host = host
        self.next_id = 0
        self.menus = {
            '/system/resource': [{
                'uptime': '1w2d3h',
                'version': '7.14.2 (stable)',
                'board-name': 'CCR2004-16G-2S+',
                'architecture-name': 'arm64',
                'cpu-load': '4',
                'free-memory': '3500000000',
                'total-memory': '4294967296',
            }],
            '/system/identity': [{'name': f'router-{host}'}],
            '/interface': [
                {'id': '*1', 'name': 'ether1', 'type': 'ether', 'running': 'true', 'disabled': 'false',
                 'mac-address': '48:8F:5A:00:00:01', 'rx-byte': '1024', 'tx-byte': '2048'},
                {'id': '*2', 'name': 'pppoe-in', 'type': 'pppoe-in', 'running': 'false', 'disabled': 'false'},
            ],
        }

    def secrets(self):
        return self.menus.setdefault('/ppp/secret', [])

    def profiles(self):
        return self.menus.setdefault('/ppp/profile', [])

    def active(self):
        return self.menus.setdefault('/ppp/active', [])


class FakeApi:
    def __init__(self, device):
        self.device = device

    def get_resource(self, path):
        return FakeResource(self.device, path)


class FakePool:
    def __init__(self, network, host, **kwargs):
        self.network = network
        self.host = host
        self.kwargs = kwargs
        self.socket_timeout = 15.0

    def set_timeout(self, socket_timeout):
        self.socket_timeout = socket_timeout

    def get_api(self):
        self.network.connections.append((self.host, self.kwargs.get('port')))
        self.network.timeouts.append(self.socket_timeout)
        if self.host in self.network.offline:
            raise RouterOsApiConnectionError(f"connection to {self.host} refused")
        return FakeApi(self.network.device(self.host))

    def disconnect(self):
        return None


class FakeRouterNetwork:
    def __init__(self):
        self.devices = {}
        self.offline = set()
        self.connections = []
        self.timeouts = []

    def device(self, host):
        if host not in self.devices:
            self.devices[host] = FakeDevice(host)
        return self.devices[host]

    def pool(self, host, **kwargs):
        return FakePool(self, host, **kwargs)


@pytest.fixture()
def app():
    flask_app = create_app(TestConfig)

    with flask_app.app_context():
        db.create_all()

    yield flask_app

    with flask_app.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture()
def client(app):
    return app.test_client()


@pytest.fixture(autouse=True)
def routeros_network(monkeypatch):
    network = FakeRouterNetwork()
    monkeypatch.setattr(routeros_client.routeros_api, 'RouterOsApiPool', network.pool)
    return network


@pytest.fixture()
def make_user(app):
    """Create an account and return plain ids usable outside the app context."""

    def _make_user(email, role, password=PASSWORD, **extra):
        with app.app_context():
            user = create_account(
                email=email,
                password=password,
                name=extra.pop('name', email.split('@')[0].title()),
                role=role,
                **extra,
            )
            db.session.commit()
            return {
                'id': user.id,
                'email': user.email,
                'tenant_id': user.tenant_id,
                'customer_id': user.customer_profile.id if user.customer_profile else None,
            }

    return _make_user


@pytest.fixture()
def auth_headers(app):
    def _auth_headers(user_id):
        with app.app_context():
            token = create_access_token(identity=str(user_id))
        return {'Authorization': f'Bearer {token}'}

    return _auth_headers


@pytest.fixture()
def tenant(app, make_user, auth_headers):
    """An ISP owner with a plan, a router and one customer."""
    owner = make_user('owner@test.local', UserRole.ISP_OWNER, company_name='Fiber North')
    customer = make_user('jane@test.local', UserRole.CUSTOMER, name='Jane Doe', tenant_id=owner['tenant_id'])
    with app.app_context():
        plan = Plan(
            isp_owner_id=owner['tenant_id'],
            created_by=owner['id'],
            name='Home 20M',
            price=25.0,
            speed='20M/5M',
            data_limit='100GB',
            validity=30,
        )
        router = Router(
            isp_owner_id=owner['tenant_id'],
            name='Core-1',
            ip_address='10.20.0.1',
            port=8728,
            username='api',
            status=RouterStatus.ONLINE,
            last_connected=datetime.utcnow(),
        )
        router.password = 'router-secret'
        db.session.add_all([plan, router])
        db.session.commit()
        plan_id, router_id = plan.id, router.id

    return {
        'owner': owner,
        'customer': customer,
        'tenant_id': owner['tenant_id'],
        'customer_id': customer['customer_id'],
        'plan_id': plan_id,
        'router_id': router_id,
        'owner_headers': auth_headers(owner['id']),
        'customer_headers': auth_headers(customer['id']),
    }


@pytest.fixture()
def super_admin(make_user, auth_headers):
    user = make_user('root@test.local', UserRole.SUPER_ADMIN)
    user['headers'] = auth_headers(user['id'])
    return user


@pytest.fixture()
def sub_admin(make_user, auth_headers):
    user = make_user('helper@test.local', UserRole.SUB_ADMIN)
    user['headers'] = auth_headers(user['id'])
    return user
