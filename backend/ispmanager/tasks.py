from __future__ import annotations

from datetime import datetime
import hashlib
from typing import Any, Dict, Optional, Tuple

import redis
from flask import current_app

from ispmanager import celery, db
from ispmanager.models import Router, RouterStatus
from ispmanager.services import billing_service
from ispmanager.services.routeros_client import check_router_online


def _get_redis_client() -> Optional[redis.Redis]:
    redis_url = current_app.config.get('REDIS_URL')
    if not redis_url:
        return None
    try:
        return redis.from_url(redis_url, decode_responses=True)
    except (ValueError, redis.RedisError):
        current_app.logger.warning('Redis unavailable for task locking; continuing without lock.')
        return None


def _try_acquire_lock(lock_key: str, ttl_seconds: int) -> Tuple[Optional[redis.Redis], Optional[str], bool]:
    client = _get_redis_client()
    if client is None:
        return None, None, True

    token = hashlib.sha256(f"{lock_key}:{datetime.utcnow().isoformat()}".encode('utf-8')).hexdigest()
    try:
        acquired = bool(client.set(lock_key, token, nx=True, ex=ttl_seconds))
        return client, token, acquired
    except redis.RedisError:
        current_app.logger.warning('Failed to acquire Redis lock; continuing task execution.')
        return None, None, True


def _release_lock(client: Optional[redis.Redis], lock_key: str, token: Optional[str]) -> None:
    if client is None or token is None:
        return
    try:
        current = client.get(lock_key)
        if current == token:
            client.delete(lock_key)
    except redis.RedisError:
        current_app.logger.warning('Failed to release Redis task lock: %s', lock_key)


@celery.task(name='ispmanager.tasks.mark_overdue_invoices')
def mark_overdue_invoices() -> Dict[str, Any]:
    """Move pending invoices past their due date to OVERDUE."""
    lock_key = 'tasks:mark_overdue_invoices'
    lock_client, lock_token, acquired = _try_acquire_lock(lock_key, ttl_seconds=300)
    if not acquired:
        current_app.logger.info('Skipping mark_overdue_invoices because lock is already held.')
        return {'skipped': True, 'updated': 0}

    try:
        updated = billing_service.mark_overdue_invoices()
    finally:
        _release_lock(lock_client, lock_key, lock_token)
    return {'skipped': False, 'updated': updated}


@celery.task(name='ispmanager.tasks.refresh_router_status')
def refresh_router_status() -> Dict[str, Any]:
    """Probe every router not in maintenance and persist ONLINE/OFFLINE."""
    lock_key = f"tasks:refresh_router_status:{datetime.utcnow().strftime('%Y%m%d%H%M')}"
    lock_client, lock_token, acquired = _try_acquire_lock(lock_key, ttl_seconds=55)
    if not acquired:
        current_app.logger.info('Skipping refresh_router_status because lock is already held.')
        return {'skipped': True, 'online': 0, 'offline': 0}

    online_count = 0
    offline_count = 0
    try:
        routers = Router.query.filter(Router.status != RouterStatus.MAINTENANCE).all()
        current_app.logger.info('Refreshing status for %s routers.', len(routers))
        for router in routers:
            if check_router_online(router, use_cache=False):
                router.status = RouterStatus.ONLINE
                router.last_connected = datetime.utcnow()
                online_count += 1
            else:
                router.status = RouterStatus.OFFLINE
                offline_count += 1
        db.session.commit()
    finally:
        _release_lock(lock_client, lock_key, lock_token)

    return {'skipped': False, 'online': online_count, 'offline': offline_count}
