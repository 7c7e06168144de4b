"""
Service plan endpoints
"""
import logging

from flask import Blueprint, jsonify, request

from ispmanager import db
from ispmanager.models import Customer, Invoice, ISPOwner, Plan, UserRole
from ispmanager.routes.helpers import as_bool, as_float, as_int, json_body, missing_fields
from ispmanager.tenancy import (
    TenantResolutionError,
    access_denied,
    current_user,
    requested_tenant_id,
    resolve_tenant_scope,
    roles_required,
    tenant_access_allowed,
)

plans_bp = Blueprint('plans', __name__)
logger = logging.getLogger(__name__)

STAFF_ROLES = (UserRole.SUPER_ADMIN, UserRole.SUB_ADMIN, UserRole.ISP_OWNER)


def _plan_for_request(plan_id):
    plan = db.session.get(Plan, plan_id)
    if not plan or not tenant_access_allowed(current_user(), plan.isp_owner_id):
        return None, (jsonify({'error': 'Plan not found'}), 404)
    return plan, None


def _apply_plan_fields(plan: Plan, data):
    """Copy editable fields onto ``plan``; returns an error message or None."""
    if 'name' in data:
        if not str(data['name'] or '').strip():
            return 'Name cannot be empty'
        plan.name = str(data['name']).strip()
    if 'description' in data:
        plan.description = data['description']
    if 'price' in data:
        price = as_float(data['price'])
        if price is None or price < 0:
            return 'Price must be a non-negative number'
        plan.price = price
    if 'speed' in data:
        if not str(data['speed'] or '').strip():
            return 'Speed cannot be empty'
        plan.speed = str(data['speed']).strip()
    if 'data_limit' in data:
        plan.data_limit = str(data['data_limit']).strip() if data['data_limit'] else None
    if 'validity' in data:
        validity = as_int(data['validity'])
        if validity is None or validity <= 0:
            return 'Validity must be a positive number of days'
        plan.validity = validity
    if 'is_active' in data:
        plan.is_active = as_bool(data['is_active'], default=True)
    return None


@plans_bp.route('', methods=['GET'])
@roles_required()
def list_plans():
    user = current_user()
    try:
        tenant_id = resolve_tenant_scope(user, requested_tenant_id())
    except TenantResolutionError:
        return access_denied()

    query = Plan.query
    if tenant_id is not None:
        query = query.filter(Plan.isp_owner_id == tenant_id)

    if user.role == UserRole.CUSTOMER:
        query = query.filter(Plan.is_active.is_(True))
    elif request.args.get('is_active') not in (None, ''):
        query = query.filter(Plan.is_active.is_(as_bool(request.args.get('is_active'))))

    plans = query.order_by(Plan.price.asc()).all()
    return jsonify({'plans': [plan.to_dict() for plan in plans]}), 200


@plans_bp.route('', methods=['POST'])
@roles_required(*STAFF_ROLES)
def create_plan():
    user = current_user()
    data = json_body()
    if missing_fields(data, ('name', 'price', 'speed', 'validity')):
        return jsonify({'error': 'Name, price, speed, and validity are required'}), 400

    try:
        tenant_id = resolve_tenant_scope(user, requested_tenant_id(data))
    except TenantResolutionError:
        return access_denied()
    if tenant_id is None:
        return jsonify({'error': 'Tenant ID is required'}), 400
    if db.session.get(ISPOwner, tenant_id) is None:
        return jsonify({'error': 'ISP owner not found'}), 404

    plan = Plan(isp_owner_id=tenant_id, created_by=user.id, is_active=True)
    error = _apply_plan_fields(plan, data)
    if error:
        return jsonify({'error': error}), 400

    db.session.add(plan)
    db.session.commit()
    logger.info('Plan %s created in tenant %s', plan.id, tenant_id)
    return jsonify({'message': 'Plan created successfully', 'plan': plan.to_dict()}), 201


@plans_bp.route('/<plan_id>', methods=['GET'])
@roles_required()
def get_plan(plan_id):
    plan, error = _plan_for_request(plan_id)
    if error:
        return error
    return jsonify({'plan': plan.to_dict()}), 200


@plans_bp.route('/<plan_id>', methods=['PUT'])
@roles_required(*STAFF_ROLES)
def update_plan(plan_id):
    plan, error = _plan_for_request(plan_id)
    if error:
        return error

    message = _apply_plan_fields(plan, json_body())
    if message:
        db.session.rollback()
        return jsonify({'error': message}), 400

    db.session.commit()
    return jsonify({'message': 'Plan updated successfully', 'plan': plan.to_dict()}), 200


@plans_bp.route('/<plan_id>', methods=['DELETE'])
@roles_required(*STAFF_ROLES)
def delete_plan(plan_id):
    plan, error = _plan_for_request(plan_id)
    if error:
        return error

    if plan.pppoe_users.count() > 0:
        return jsonify({'error': 'Cannot delete plan with active PPPoE users'}), 400

    Customer.query.filter_by(plan_id=plan.id).update({'plan_id': None}, synchronize_session=False)
    Invoice.query.filter_by(plan_id=plan.id).update({'plan_id': None}, synchronize_session=False)
    db.session.delete(plan)
    db.session.commit()
    return jsonify({'message': 'Plan deleted successfully'}), 200
