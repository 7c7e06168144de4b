"""
RouterOS API client
Provisions PPPoE subscriber secrets and reads device state from MikroTik routers
"""
import logging
import math
import re
import time
from typing import Any, Dict, Iterable, List, Optional

import routeros_api
from flask import current_app
from routeros_api.exceptions import RouterOsApiConnectionError, RouterOsApiError

from ispmanager import cache
from ispmanager.models import PPPoEStatus

logger = logging.getLogger(__name__)

ROUTEROS_ERRORS = (RouterOsApiConnectionError, RouterOsApiError, OSError)
DEFAULT_SPEED = '10M'
SIZE_UNITS = {
    'B': 1,
    'KB': 1024,
    'MB': 1024 ** 2,
    'GB': 1024 ** 3,
    'TB': 1024 ** 4,
}
DATA_LIMIT_PATTERN = re.compile(r'^(\d+(?:\.\d+)?)\s*(B|KB|MB|GB|TB)$', re.IGNORECASE)


class RouterOSClientError(Exception):
    """Raised when a RouterOS call cannot be completed."""


def parse_data_limit(value: Any) -> str:
    """Convert a human size such as ``"100GB"`` into a byte count string.

    Units are 1024 based and the result is floored. Anything unparsable
    yields ``'0'``, which RouterOS treats as unlimited.
    """
    match = DATA_LIMIT_PATTERN.match(str(value or '').strip())
    if not match:
        return '0'
    number = float(match.group(1))
    unit = match.group(2).upper()
    return str(math.floor(number * SIZE_UNITS[unit]))


def _normalize(item: Dict[str, Any]) -> Dict[str, Any]:
    return {str(key).lstrip('.').replace('-', '_'): value for key, value in item.items()}


def _as_kwargs(payload: Dict[str, Any]) -> Dict[str, str]:
    # routeros_api maps underscores back to dashes on the wire
    return {key.replace('-', '_'): str(value) for key, value in payload.items() if value is not None}


def _as_bool(value: Any) -> bool:
    return str(value).strip().lower() in {'true', 'yes'}


class RouterOSClient:
    """Thin session wrapper around ``routeros_api`` for one router."""

    def __init__(
        self,
        host: str,
        port: int = 8728,
        username: str = 'admin',
        password: str = '',
        use_ssl: bool = False,
        timeout: float = 10,
        retries: int = 2,
        retry_delay: float = 1.0,
    ):
        self.host = host
        self.port = int(port or 8728)
        self.username = username
        self.password = password or ''
        self.use_ssl = bool(use_ssl)
        self.timeout = timeout
        self.retries = max(1, int(retries or 1))
        self.retry_delay = retry_delay
        self.api = None
        self.last_error: Optional[str] = None
        self._pool = None

    def __enter__(self):
        if not self.connect():
            raise RouterOSClientError(
                f"Unable to connect to RouterOS {self.host}:{self.port}: {self.last_error}"
            )
        return self

    def __exit__(self, exc_type, exc, tb):
        self.disconnect()
        return False

    def connect(self) -> bool:
        """Open an API session, retrying a bounded number of times."""
        if self.api is not None:
            return True

        for attempt in range(1, self.retries + 1):
            try:
                pool = routeros_api.RouterOsApiPool(
                    self.host,
                    username=self.username,
                    password=self.password,
                    port=self.port,
                    plaintext_login=True,
                    use_ssl=self.use_ssl,
                    ssl_verify=False,
                )
                pool.set_timeout(self.timeout)
                api = pool.get_api()
            except ROUTEROS_ERRORS as exc:
                self.last_error = str(exc) or exc.__class__.__name__
                logger.warning(
                    'RouterOS connection attempt %s/%s to %s:%s failed: %s',
                    attempt, self.retries, self.host, self.port, self.last_error,
                )
                if attempt < self.retries and self.retry_delay:
                    time.sleep(self.retry_delay)
                continue

            self._pool = pool
            self.api = api
            self.last_error = None
            logger.info('Connected to RouterOS %s:%s', self.host, self.port)
            return True

        logger.error('Giving up on RouterOS %s:%s after %s attempts', self.host, self.port, self.retries)
        return False

    def disconnect(self) -> None:
        if self._pool is not None:
            try:
                self._pool.disconnect()
            except ROUTEROS_ERRORS as exc:
                logger.debug('Ignoring RouterOS disconnect error for %s: %s', self.host, exc)
        self._pool = None
        self.api = None

    def is_connected(self) -> bool:
        if self.api is None:
            return False
        try:
            self.api.get_resource('/system/identity').get()
            return True
        except ROUTEROS_ERRORS:
            return False

    def _resource(self, path: str):
        if self.api is None:
            raise RouterOSClientError('Not connected to RouterOS')
        return self.api.get_resource(path)

    def _call(self, description: str, fn, *args, **kwargs):
        try:
            return fn(*args, **kwargs)
        except ROUTEROS_ERRORS as exc:
            logger.error('RouterOS %s failed on %s: %s', description, self.host, exc)
            raise RouterOSClientError(f"{description} failed: {exc}") from exc

    # ==================== SYSTEM ====================

    def get_system_resource(self) -> Dict[str, Any]:
        resource = self._resource('/system/resource')
        rows = self._call('system resource read', resource.get) or []
        info = _normalize(rows[0]) if rows else {}
        return {
            'uptime': info.get('uptime'),
            'version': info.get('version'),
            'board_name': info.get('board_name'),
            'architecture': info.get('architecture_name'),
            'cpu_load': info.get('cpu_load'),
            'free_memory': info.get('free_memory'),
            'total_memory': info.get('total_memory'),
            'free_hdd_space': info.get('free_hdd_space'),
        }

    def get_interfaces(self) -> List[Dict[str, Any]]:
        resource = self._resource('/interface')
        interfaces = []
        for row in self._call('interface list', resource.get) or []:
            item = _normalize(row)
            interfaces.append({
                'id': item.get('id'),
                'name': item.get('name'),
                'type': item.get('type'),
                'mac_address': item.get('mac_address'),
                'running': _as_bool(item.get('running')),
                'disabled': _as_bool(item.get('disabled')),
                'rx_bytes': item.get('rx_byte', '0'),
                'tx_bytes': item.get('tx_byte', '0'),
            })
        return interfaces

    # ==================== PPPoE ====================

    def get_pppoe_secrets(self) -> List[Dict[str, Any]]:
        resource = self._resource('/ppp/secret')
        return [_normalize(row) for row in self._call('PPPoE secret list', resource.get) or []]

    def find_pppoe_secret(self, name: str) -> Optional[Dict[str, Any]]:
        resource = self._resource('/ppp/secret')
        rows = self._call('PPPoE secret lookup', resource.get, name=name) or []
        return _normalize(rows[0]) if rows else None

    def add_pppoe_secret(self, secret: Dict[str, Any]) -> Dict[str, Any]:
        resource = self._resource('/ppp/secret')
        self._call('PPPoE secret add', resource.add, **_as_kwargs(secret))
        logger.info('Added PPPoE secret %s on %s', secret.get('name'), self.host)
        return self.find_pppoe_secret(secret['name']) or _normalize(secret)

    def update_pppoe_secret(self, name: str, changes: Dict[str, Any]) -> Dict[str, Any]:
        existing = self.find_pppoe_secret(name)
        if existing is None:
            raise RouterOSClientError(f"PPPoE secret {name} not found")
        resource = self._resource('/ppp/secret')
        self._call('PPPoE secret update', resource.set, id=existing['id'], **_as_kwargs(changes))
        logger.info('Updated PPPoE secret %s on %s', name, self.host)
        return self.find_pppoe_secret(changes.get('name') or name) or existing

    def delete_pppoe_secret(self, name: str) -> bool:
        existing = self.find_pppoe_secret(name)
        if existing is None:
            return False
        resource = self._resource('/ppp/secret')
        self._call('PPPoE secret delete', resource.remove, id=existing['id'])
        logger.info('Removed PPPoE secret %s from %s', name, self.host)
        return True

    def get_pppoe_active(self) -> List[Dict[str, Any]]:
        resource = self._resource('/ppp/active')
        sessions = []
        for row in self._call('PPPoE active list', resource.get) or []:
            item = _normalize(row)
            sessions.append({
                'id': item.get('id'),
                'name': item.get('name'),
                'service': item.get('service'),
                'caller_id': item.get('caller_id'),
                'address': item.get('address'),
                'uptime': item.get('uptime'),
            })
        return sessions

    def disconnect_pppoe_session(self, name: str) -> int:
        """Drop active sessions for ``name``; returns how many were removed."""
        resource = self._resource('/ppp/active')
        rows = self._call('PPPoE active lookup', resource.get, name=name) or []
        for row in rows:
            self._call('PPPoE session drop', resource.remove, id=_normalize(row)['id'])
        return len(rows)

    def ensure_pppoe_profile(self, name: str, rate_limit: str) -> None:
        resource = self._resource('/ppp/profile')
        rows = self._call('PPPoE profile lookup', resource.get, name=name) or []
        if rows:
            current = _normalize(rows[0])
            if current.get('rate_limit') != rate_limit:
                self._call('PPPoE profile update', resource.set, id=current['id'], rate_limit=rate_limit)
            return
        self._call('PPPoE profile add', resource.add, name=name, rate_limit=rate_limit)


def client_for_router(router) -> RouterOSClient:
    config = current_app.config
    return RouterOSClient(
        host=router.ip_address,
        port=router.port,
        username=router.username,
        password=router.password,
        use_ssl=router.use_ssl,
        timeout=config.get('ROUTEROS_TIMEOUT_SECONDS', 10),
        retries=config.get('ROUTEROS_CONNECT_RETRIES', 2),
        retry_delay=config.get('ROUTEROS_RETRY_DELAY_SECONDS', 1.0),
    )


def _status_cache_key(router) -> str:
    return f"router-online:{router.ip_address}:{router.port}:{router.username}"


def forget_router_status(router) -> None:
    cache.delete(_status_cache_key(router))


def check_router_online(router, use_cache: bool = True) -> bool:
    """Return whether the router accepts an API login, cached for a short window."""
    key = _status_cache_key(router)
    if use_cache:
        cached = cache.get(key)
        if cached is not None:
            return bool(cached)

    try:
        client = client_for_router(router)
    except ValueError as exc:
        logger.error('Router %s credentials unreadable: %s', router.id, exc)
        return False

    try:
        online = client.connect()
    finally:
        client.disconnect()

    cache.set(key, online, timeout=current_app.config.get('ROUTER_STATUS_CACHE_SECONDS', 30))
    return online


def probe_router_connection(host, port, username, password, use_ssl=False) -> Dict[str, Any]:
    config = current_app.config
    client = RouterOSClient(
        host=host,
        port=port,
        username=username,
        password=password,
        use_ssl=use_ssl,
        timeout=config.get('ROUTEROS_TIMEOUT_SECONDS', 10),
        retries=1,
    )
    if not client.connect():
        return {'success': False, 'message': f"Connection failed: {client.last_error}"}
    try:
        resource = client.get_system_resource()
    except RouterOSClientError as exc:
        return {'success': False, 'message': str(exc)}
    finally:
        client.disconnect()
    return {'success': True, 'message': 'Connection successful', 'system_resource': resource}


def profile_for_speeds(download: str, upload: str) -> Dict[str, str]:
    # rate-limit is rx/tx seen from the router: subscriber upload first
    return {
        'name': f"pppoe-{download}-{upload}",
        'rate_limit': f"{upload}/{download}",
    }


def build_secret_payload(pppoe_user) -> Dict[str, str]:
    download = pppoe_user.download_speed or DEFAULT_SPEED
    upload = pppoe_user.upload_speed or DEFAULT_SPEED
    enabled = pppoe_user.status == PPPoEStatus.ACTIVE and not pppoe_user.is_expired
    data_limit = parse_data_limit(pppoe_user.data_limit)
    customer_name = pppoe_user.customer.name if pppoe_user.customer else pppoe_user.username
    return {
        'name': pppoe_user.username,
        'password': pppoe_user.password,
        'service': 'pppoe',
        'profile': profile_for_speeds(download, upload)['name'],
        'disabled': 'no' if enabled else 'yes',
        'limit-bytes-in': data_limit,
        'limit-bytes-out': data_limit,
        'comment': f"Customer: {customer_name}",
    }


def provision_pppoe_user(client: RouterOSClient, pppoe_user, previous_username: Optional[str] = None):
    """Create or update the router secret that backs ``pppoe_user``."""
    profile = profile_for_speeds(
        pppoe_user.download_speed or DEFAULT_SPEED,
        pppoe_user.upload_speed or DEFAULT_SPEED,
    )
    client.ensure_pppoe_profile(profile['name'], profile['rate_limit'])

    payload = build_secret_payload(pppoe_user)
    lookup_name = previous_username or pppoe_user.username
    if client.find_pppoe_secret(lookup_name) is not None:
        secret = client.update_pppoe_secret(lookup_name, payload)
    else:
        secret = client.add_pppoe_secret(payload)

    if payload['disabled'] == 'yes':
        client.disconnect_pppoe_session(pppoe_user.username)
    return secret


def remove_pppoe_user(client: RouterOSClient, username: str) -> bool:
    removed = client.delete_pppoe_secret(username)
    client.disconnect_pppoe_session(username)
    return removed


def sync_pppoe_users(router, pppoe_users: Iterable) -> Dict[str, Any]:
    """Push every PPPoE user the router is missing. Existing secrets are left alone."""
    summary: Dict[str, Any] = {'total': 0, 'added': [], 'existing': [], 'failed': []}
    with client_for_router(router) as client:
        present = {secret.get('name') for secret in client.get_pppoe_secrets()}
        for pppoe_user in pppoe_users:
            summary['total'] += 1
            if pppoe_user.username in present:
                summary['existing'].append(pppoe_user.username)
                continue
            try:
                provision_pppoe_user(client, pppoe_user)
            except (RouterOSClientError, ValueError) as exc:
                logger.error('Failed to sync PPPoE user %s to router %s: %s', pppoe_user.username, router.id, exc)
                summary['failed'].append(pppoe_user.username)
                continue
            summary['added'].append(pppoe_user.username)

    logger.info(
        'PPPoE sync for router %s: %s added, %s existing, %s failed',
        router.id, len(summary['added']), len(summary['existing']), len(summary['failed']),
    )
    return summary
