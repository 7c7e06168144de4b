"""
MikroTik router endpoints
"""
import ipaddress
import logging
from datetime import datetime

from flask import Blueprint, jsonify, request

from ispmanager import db
from ispmanager.models import ISPOwner, Router, RouterStatus, UserRole
from ispmanager.routes.helpers import as_bool, as_int, json_body, missing_fields, normalize_choice
from ispmanager.services.routeros_client import (
    RouterOSClientError,
    check_router_online,
    client_for_router,
    forget_router_status,
    probe_router_connection,
    sync_pppoe_users,
)
from ispmanager.tenancy import (
    TenantResolutionError,
    access_denied,
    current_user,
    requested_tenant_id,
    resolve_tenant_scope,
    roles_required,
    tenant_access_allowed,
)

routers_bp = Blueprint('routers', __name__)
logger = logging.getLogger(__name__)

STAFF_ROLES = (UserRole.SUPER_ADMIN, UserRole.SUB_ADMIN, UserRole.ISP_OWNER)
CONNECTION_FIELDS = ('ip_address', 'port', 'username', 'password', 'use_ssl')


def _valid_ip(value) -> bool:
    try:
        ipaddress.ip_address(str(value).strip())
        return True
    except ValueError:
        return False


def _valid_port(value):
    port = as_int(value)
    if port is None or not 1 <= port <= 65535:
        return None
    return port


def _router_for_request(router_id):
    router = db.session.get(Router, router_id)
    if not router or not tenant_access_allowed(current_user(), router.isp_owner_id):
        return None, (jsonify({'error': 'Router not found'}), 404)
    return router, None


def _refresh_status(router: Router, use_cache: bool = False) -> bool:
    online = check_router_online(router, use_cache=use_cache)
    if router.status != RouterStatus.MAINTENANCE:
        router.status = RouterStatus.ONLINE if online else RouterStatus.OFFLINE
    if online:
        router.last_connected = datetime.utcnow()
    return online


def _router_payload(router: Router, check_status: bool = True):
    payload = router.to_dict()
    if check_status:
        online = check_router_online(router)
        payload['actual_status'] = RouterStatus.ONLINE if online else RouterStatus.OFFLINE
    return payload


@routers_bp.route('', methods=['GET'])
@roles_required(*STAFF_ROLES)
def list_routers():
    try:
        tenant_id = resolve_tenant_scope(current_user(), requested_tenant_id())
    except TenantResolutionError:
        return access_denied()

    query = Router.query
    if tenant_id is not None:
        query = query.filter(Router.isp_owner_id == tenant_id)

    check_status = as_bool(request.args.get('check_status'), default=True)
    routers = query.order_by(Router.created_at.desc()).all()
    return jsonify({'routers': [_router_payload(router, check_status) for router in routers]}), 200


@routers_bp.route('', methods=['POST'])
@roles_required(*STAFF_ROLES)
def create_router():
    user = current_user()
    data = json_body()
    if missing_fields(data, ('name', 'ip_address', 'port', 'username', 'password')):
        return jsonify({'error': 'Name, IP address, port, username, and password are required'}), 400

    try:
        tenant_id = resolve_tenant_scope(user, requested_tenant_id(data))
    except TenantResolutionError:
        return access_denied()
    if tenant_id is None:
        return jsonify({'error': 'Tenant ID is required'}), 400
    if db.session.get(ISPOwner, tenant_id) is None:
        return jsonify({'error': 'ISP owner not found'}), 404

    ip_address = str(data['ip_address']).strip()
    if not _valid_ip(ip_address):
        return jsonify({'error': 'Invalid IP address'}), 400
    port = _valid_port(data['port'])
    if port is None:
        return jsonify({'error': 'Port must be between 1 and 65535'}), 400
    if Router.query.filter_by(ip_address=ip_address).first():
        return jsonify({'error': 'Router with this IP address already exists'}), 409

    router = Router(
        isp_owner_id=tenant_id,
        name=str(data['name']).strip(),
        ip_address=ip_address,
        port=port,
        username=str(data['username']).strip(),
        use_ssl=as_bool(data.get('use_ssl')),
        location=data.get('location'),
        model=data.get('model'),
        firmware=data.get('firmware'),
    )
    router.password = data['password']
    online = _refresh_status(router)

    db.session.add(router)
    db.session.commit()
    logger.info('Router %s (%s) added to tenant %s, online=%s', router.id, ip_address, tenant_id, online)
    return jsonify({'message': 'Router created successfully', 'router': router.to_dict()}), 201


@routers_bp.route('/test', methods=['POST'])
@roles_required(*STAFF_ROLES)
def test_connection():
    data = json_body()
    if missing_fields(data, ('ip_address', 'username', 'password')):
        return jsonify({'error': 'IP address, username, and password are required'}), 400
    port = _valid_port(data.get('port') or 8728)
    if port is None:
        return jsonify({'error': 'Port must be between 1 and 65535'}), 400

    result = probe_router_connection(
        host=str(data['ip_address']).strip(),
        port=port,
        username=data['username'],
        password=data['password'],
        use_ssl=as_bool(data.get('use_ssl')),
    )
    return jsonify(result), 200


@routers_bp.route('/<router_id>', methods=['GET'])
@roles_required(*STAFF_ROLES)
def get_router(router_id):
    router, error = _router_for_request(router_id)
    if error:
        return error
    return jsonify({'router': _router_payload(router)}), 200


@routers_bp.route('/<router_id>', methods=['PUT'])
@roles_required(*STAFF_ROLES)
def update_router(router_id):
    router, error = _router_for_request(router_id)
    if error:
        return error

    data = json_body()
    connection_changed = any(field in data for field in CONNECTION_FIELDS)
    if connection_changed:
        forget_router_status(router)

    if data.get('ip_address'):
        ip_address = str(data['ip_address']).strip()
        if not _valid_ip(ip_address):
            return jsonify({'error': 'Invalid IP address'}), 400
        duplicate = Router.query.filter(Router.ip_address == ip_address, Router.id != router.id).first()
        if duplicate:
            return jsonify({'error': 'Router with this IP address already exists'}), 409
        router.ip_address = ip_address
    if 'port' in data:
        port = _valid_port(data['port'])
        if port is None:
            return jsonify({'error': 'Port must be between 1 and 65535'}), 400
        router.port = port
    if data.get('username'):
        router.username = str(data['username']).strip()
    if data.get('password'):
        router.password = data['password']
    if 'use_ssl' in data:
        router.use_ssl = as_bool(data['use_ssl'])
    if data.get('name'):
        router.name = str(data['name']).strip()
    for field in ('location', 'model', 'firmware'):
        if field in data:
            setattr(router, field, data[field])
    if 'status' in data:
        status = normalize_choice(data['status'], RouterStatus.ALL)
        if status is None:
            return jsonify({'error': 'Invalid status'}), 400
        router.status = status

    if connection_changed:
        _refresh_status(router)

    db.session.commit()
    return jsonify({'message': 'Router updated successfully', 'router': router.to_dict()}), 200


@routers_bp.route('/<router_id>', methods=['DELETE'])
@roles_required(*STAFF_ROLES)
def delete_router(router_id):
    router, error = _router_for_request(router_id)
    if error:
        return error

    if router.pppoe_users.count() > 0:
        return jsonify({'error': 'Cannot delete router with active PPPoE users'}), 400

    forget_router_status(router)
    db.session.delete(router)
    db.session.commit()
    return jsonify({'message': 'Router deleted successfully'}), 200


@routers_bp.route('/<router_id>', methods=['PATCH'])
@roles_required(*STAFF_ROLES)
def router_action(router_id):
    router, error = _router_for_request(router_id)
    if error:
        return error

    action = str(json_body().get('action') or '').strip().lower()
    if action == 'check_status':
        online = _refresh_status(router)
        db.session.commit()
        return jsonify({
            'message': 'Router is online' if online else 'Router is offline',
            'online': online,
            'router': router.to_dict(),
        }), 200

    if action == 'sync_pppoe':
        try:
            summary = sync_pppoe_users(router, router.pppoe_users.all())
        except (RouterOSClientError, ValueError) as exc:
            router.status = RouterStatus.OFFLINE
            db.session.commit()
            return jsonify({'error': str(exc)}), 502
        router.status = RouterStatus.ONLINE
        router.last_connected = datetime.utcnow()
        db.session.commit()
        return jsonify({'message': 'PPPoE users synchronized', 'summary': summary}), 200

    return jsonify({'error': 'Invalid action'}), 400


@routers_bp.route('/<router_id>/resources', methods=['GET'])
@roles_required(*STAFF_ROLES)
def router_resources(router_id):
    router, error = _router_for_request(router_id)
    if error:
        return error

    try:
        with client_for_router(router) as client:
            system_resource = client.get_system_resource()
            interfaces = client.get_interfaces()
    except (RouterOSClientError, ValueError) as exc:
        return jsonify({'error': str(exc)}), 502
    return jsonify({'system_resource': system_resource, 'interfaces': interfaces}), 200


@routers_bp.route('/<router_id>/active-sessions', methods=['GET'])
@roles_required(*STAFF_ROLES)
def router_active_sessions(router_id):
    router, error = _router_for_request(router_id)
    if error:
        return error

    try:
        with client_for_router(router) as client:
            sessions = client.get_pppoe_active()
    except (RouterOSClientError, ValueError) as exc:
        return jsonify({'error': str(exc)}), 502
    return jsonify({'sessions': sessions, 'count': len(sessions)}), 200
