"""
PPPoE subscriber endpoints, kept in sync with router secrets
"""
import logging
from typing import Optional, Tuple

from flask import Blueprint, jsonify, request

from ispmanager import db
from ispmanager.models import Customer, Plan, PPPoEStatus, PPPoEUser, Router, UserRole
from ispmanager.routes.helpers import json_body, missing_fields, normalize_choice, parse_datetime
from ispmanager.services.routeros_client import (
    DEFAULT_SPEED,
    RouterOSClientError,
    client_for_router,
    provision_pppoe_user,
    remove_pppoe_user,
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

pppoe_users_bp = Blueprint('pppoe_users', __name__)
logger = logging.getLogger(__name__)

STAFF_ROLES = (UserRole.SUPER_ADMIN, UserRole.SUB_ADMIN, UserRole.ISP_OWNER)


def plan_speeds(plan: Plan) -> Tuple[str, str]:
    """Split a plan speed such as ``"20M/5M"`` into (download, upload)."""
    raw = str(plan.speed or '').strip() if plan else ''
    if not raw:
        return DEFAULT_SPEED, DEFAULT_SPEED
    if '/' in raw:
        download, upload = raw.split('/', 1)
        return download.strip() or DEFAULT_SPEED, upload.strip() or DEFAULT_SPEED
    return raw, raw


def _push_to_router(pppoe_user: PPPoEUser, previous_username: Optional[str] = None) -> bool:
    try:
        with client_for_router(pppoe_user.router) as client:
            provision_pppoe_user(client, pppoe_user, previous_username=previous_username)
    except (RouterOSClientError, ValueError) as exc:
        logger.error('Could not provision PPPoE user %s on router %s: %s', pppoe_user.username, pppoe_user.router_id, exc)
        return False
    return True


def _remove_from_router(router: Router, username: str) -> bool:
    try:
        with client_for_router(router) as client:
            remove_pppoe_user(client, username)
    except (RouterOSClientError, ValueError) as exc:
        logger.error('Could not remove PPPoE user %s from router %s: %s', username, router.id, exc)
        return False
    return True


def _pppoe_user_for_request(pppoe_user_id):
    pppoe_user = db.session.get(PPPoEUser, pppoe_user_id)
    if not pppoe_user:
        return None, (jsonify({'error': 'PPPoE user not found'}), 404)
    user = current_user()
    if user.role == UserRole.CUSTOMER:
        if pppoe_user.customer.user_id != user.id:
            return None, access_denied()
    elif not tenant_access_allowed(user, pppoe_user.router.isp_owner_id):
        return None, (jsonify({'error': 'PPPoE user not found'}), 404)
    return pppoe_user, None


@pppoe_users_bp.route('', methods=['GET'])
@roles_required()
def list_pppoe_users():
    user = current_user()
    query = PPPoEUser.query

    if user.role == UserRole.CUSTOMER:
        query = query.join(Customer, PPPoEUser.customer_id == Customer.id).filter(Customer.user_id == user.id)
    else:
        try:
            tenant_id = resolve_tenant_scope(user, requested_tenant_id())
        except TenantResolutionError:
            return access_denied()
        if tenant_id is not None:
            query = query.join(Router, PPPoEUser.router_id == Router.id).filter(Router.isp_owner_id == tenant_id)

    if request.args.get('router_id'):
        query = query.filter(PPPoEUser.router_id == request.args['router_id'])
    if request.args.get('customer_id'):
        query = query.filter(PPPoEUser.customer_id == request.args['customer_id'])

    status = normalize_choice(request.args.get('status'), PPPoEStatus.ALL)
    if status:
        query = query.filter(PPPoEUser.status == status)

    pppoe_users = query.order_by(PPPoEUser.created_at.desc()).all()
    return jsonify({'pppoe_users': [item.to_dict() for item in pppoe_users]}), 200


@pppoe_users_bp.route('', methods=['POST'])
@roles_required(*STAFF_ROLES)
def create_pppoe_user():
    user = current_user()
    data = json_body()
    if missing_fields(data, ('username', 'password', 'customer_id', 'router_id', 'plan_id')):
        return jsonify({
            'error': 'Username, password, customer ID, router ID, and plan ID are required'
        }), 400

    username = str(data['username']).strip()
    if PPPoEUser.query.filter_by(username=username).first():
        return jsonify({'error': 'Username already exists'}), 400

    customer = db.session.get(Customer, data['customer_id'])
    router = db.session.get(Router, data['router_id'])
    plan = db.session.get(Plan, data['plan_id'])
    if customer is None or not tenant_access_allowed(user, customer.isp_owner_id):
        return jsonify({'error': 'Customer not found'}), 404
    if router is None or not tenant_access_allowed(user, router.isp_owner_id):
        return jsonify({'error': 'Router not found'}), 404
    if plan is None or not tenant_access_allowed(user, plan.isp_owner_id):
        return jsonify({'error': 'Plan not found'}), 404
    if not customer.isp_owner_id == router.isp_owner_id == plan.isp_owner_id:
        return jsonify({'error': 'Customer, router, and plan must belong to the same ISP owner'}), 400

    status = PPPoEStatus.ACTIVE
    if data.get('status'):
        status = normalize_choice(data['status'], PPPoEStatus.ALL)
        if status is None:
            return jsonify({'error': 'Invalid status'}), 400

    expires_at = None
    if data.get('expires_at'):
        expires_at = parse_datetime(data['expires_at'])
        if expires_at is None:
            return jsonify({'error': 'Invalid expiry date'}), 400

    default_download, default_upload = plan_speeds(plan)
    pppoe_user = PPPoEUser(
        username=username,
        customer_id=customer.id,
        router_id=router.id,
        plan_id=plan.id,
        status=status,
        download_speed=data.get('download_speed') or default_download,
        upload_speed=data.get('upload_speed') or default_upload,
        data_limit=data.get('data_limit') or plan.data_limit,
        expires_at=expires_at,
    )
    pppoe_user.password = data['password']
    db.session.add(pppoe_user)
    db.session.commit()

    router_synced = _push_to_router(pppoe_user)
    logger.info('PPPoE user %s created on router %s (synced=%s)', username, router.id, router_synced)
    return jsonify({
        'message': 'PPPoE user created successfully',
        'pppoe_user': pppoe_user.to_dict(),
        'router_synced': router_synced,
    }), 201


@pppoe_users_bp.route('/<pppoe_user_id>', methods=['GET'])
@roles_required()
def get_pppoe_user(pppoe_user_id):
    pppoe_user, error = _pppoe_user_for_request(pppoe_user_id)
    if error:
        return error
    return jsonify({'pppoe_user': pppoe_user.to_dict()}), 200


@pppoe_users_bp.route('/<pppoe_user_id>', methods=['PUT'])
@roles_required(*STAFF_ROLES)
def update_pppoe_user(pppoe_user_id):
    pppoe_user, error = _pppoe_user_for_request(pppoe_user_id)
    if error:
        return error

    data = json_body()
    previous_username = pppoe_user.username
    previous_router = pppoe_user.router
    tenant_id = previous_router.isp_owner_id

    if data.get('username'):
        username = str(data['username']).strip()
        if username != pppoe_user.username:
            if PPPoEUser.query.filter(PPPoEUser.username == username, PPPoEUser.id != pppoe_user.id).first():
                return jsonify({'error': 'Username already exists'}), 400
            pppoe_user.username = username
    if data.get('password'):
        pppoe_user.password = data['password']

    if data.get('router_id') and data['router_id'] != pppoe_user.router_id:
        router = db.session.get(Router, data['router_id'])
        if router is None or router.isp_owner_id != tenant_id:
            return jsonify({'error': 'Router not found'}), 404
        pppoe_user.router_id = router.id
        pppoe_user.router = router

    if data.get('plan_id') and data['plan_id'] != pppoe_user.plan_id:
        plan = db.session.get(Plan, data['plan_id'])
        if plan is None or plan.isp_owner_id != tenant_id:
            return jsonify({'error': 'Plan not found'}), 404
        pppoe_user.plan_id = plan.id
        pppoe_user.plan = plan
        pppoe_user.download_speed, pppoe_user.upload_speed = plan_speeds(plan)
        pppoe_user.data_limit = plan.data_limit

    for field in ('download_speed', 'upload_speed', 'data_limit'):
        if data.get(field):
            setattr(pppoe_user, field, str(data[field]).strip())

    if 'status' in data:
        status = normalize_choice(data['status'], PPPoEStatus.ALL)
        if status is None:
            return jsonify({'error': 'Invalid status'}), 400
        pppoe_user.status = status

    if 'expires_at' in data:
        if data['expires_at'] in (None, ''):
            pppoe_user.expires_at = None
        else:
            expires_at = parse_datetime(data['expires_at'])
            if expires_at is None:
                return jsonify({'error': 'Invalid expiry date'}), 400
            pppoe_user.expires_at = expires_at

    db.session.commit()

    if previous_router.id != pppoe_user.router_id:
        _remove_from_router(previous_router, previous_username)
        router_synced = _push_to_router(pppoe_user)
    else:
        router_synced = _push_to_router(pppoe_user, previous_username=previous_username)

    return jsonify({
        'message': 'PPPoE user updated successfully',
        'pppoe_user': pppoe_user.to_dict(),
        'router_synced': router_synced,
    }), 200


@pppoe_users_bp.route('/<pppoe_user_id>', methods=['DELETE'])
@roles_required(*STAFF_ROLES)
def delete_pppoe_user(pppoe_user_id):
    pppoe_user, error = _pppoe_user_for_request(pppoe_user_id)
    if error:
        return error

    router_synced = _remove_from_router(pppoe_user.router, pppoe_user.username)
    db.session.delete(pppoe_user)
    db.session.commit()
    return jsonify({'message': 'PPPoE user deleted successfully', 'router_synced': router_synced}), 200
