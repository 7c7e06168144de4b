"""
Customer endpoints
"""
import logging

from flask import Blueprint, jsonify, request
from sqlalchemy import or_

from ispmanager import db
from ispmanager.models import Customer, CustomerStatus, ISPOwner, Plan, UserRole
from ispmanager.routes.helpers import json_body, missing_fields, normalize_choice, paginate
from ispmanager.security import generate_temp_password
from ispmanager.services.account_service import (
    AccountError,
    create_account,
    delete_customer_records,
    email_taken,
    normalize_email,
)
from ispmanager.services.notification_service import send_customer_credentials
from ispmanager.tenancy import (
    TenantResolutionError,
    access_denied,
    current_user,
    requested_tenant_id,
    resolve_tenant_scope,
    roles_required,
    tenant_access_allowed,
)

customers_bp = Blueprint('customers', __name__)
logger = logging.getLogger(__name__)

STAFF_ROLES = (UserRole.SUPER_ADMIN, UserRole.SUB_ADMIN, UserRole.ISP_OWNER)


def _customer_for_request(customer_id):
    """Return (customer, error_response) honoring tenant and ownership rules."""
    customer = db.session.get(Customer, customer_id)
    if not customer:
        return None, (jsonify({'error': 'Customer not found'}), 404)
    user = current_user()
    if user.role == UserRole.CUSTOMER:
        if customer.user_id != user.id:
            return None, access_denied()
    elif not tenant_access_allowed(user, customer.isp_owner_id):
        return None, (jsonify({'error': 'Customer not found'}), 404)
    return customer, None


def _plan_in_tenant(plan_id, tenant_id):
    plan = db.session.get(Plan, plan_id)
    if plan is None or plan.isp_owner_id != tenant_id:
        return None
    return plan


@customers_bp.route('', methods=['GET'])
@roles_required()
def list_customers():
    user = current_user()
    query = Customer.query

    if user.role == UserRole.CUSTOMER:
        query = query.filter(Customer.user_id == user.id)
    else:
        try:
            tenant_id = resolve_tenant_scope(user, requested_tenant_id())
        except TenantResolutionError:
            return access_denied()
        if tenant_id is not None:
            query = query.filter(Customer.isp_owner_id == tenant_id)

    status = normalize_choice(request.args.get('status'), CustomerStatus.ALL)
    if status:
        query = query.filter(Customer.status == status)

    search = str(request.args.get('search') or '').strip()
    if search:
        pattern = f"%{search}%"
        query = query.filter(
            or_(
                Customer.name.ilike(pattern),
                Customer.email.ilike(pattern),
                Customer.phone.ilike(pattern),
            )
        )

    return jsonify(paginate(query.order_by(Customer.created_at.desc()), 'customers')), 200


@customers_bp.route('', methods=['POST'])
@roles_required(*STAFF_ROLES)
def create_customer():
    user = current_user()
    data = json_body()
    if missing_fields(data, ('name', 'email')):
        return jsonify({'error': 'Name and email are required'}), 400

    try:
        tenant_id = resolve_tenant_scope(user, requested_tenant_id(data))
    except TenantResolutionError:
        return access_denied()
    if tenant_id is None:
        return jsonify({'error': 'Tenant ID is required'}), 400
    owner = db.session.get(ISPOwner, tenant_id)
    if owner is None:
        return jsonify({'error': 'ISP owner not found'}), 404

    plan_id = data.get('plan_id')
    if plan_id and _plan_in_tenant(plan_id, tenant_id) is None:
        return jsonify({'error': 'Plan not found'}), 404

    temp_password = generate_temp_password()
    try:
        login = create_account(
            email=data['email'],
            password=temp_password,
            name=str(data['name']).strip(),
            role=UserRole.CUSTOMER,
            phone=data.get('phone'),
            address=data.get('address'),
            tenant_id=tenant_id,
            plan_id=plan_id,
        )
    except AccountError as exc:
        db.session.rollback()
        return jsonify({'error': str(exc)}), 400

    customer = login.customer_profile
    status = normalize_choice(data.get('status'), CustomerStatus.ALL)
    if status:
        customer.status = status
    db.session.commit()

    send_customer_credentials(customer, temp_password, company_name=owner.company_name)
    logger.info('Customer %s created in tenant %s by %s', customer.id, tenant_id, user.id)
    return jsonify({
        'message': 'Customer created successfully',
        'customer': customer.to_dict(),
        'temp_password': temp_password,
    }), 201


@customers_bp.route('/<customer_id>', methods=['GET'])
@roles_required()
def get_customer(customer_id):
    customer, error = _customer_for_request(customer_id)
    if error:
        return error
    payload = customer.to_dict()
    payload['pppoe_users'] = [item.to_dict() for item in customer.pppoe_users]
    return jsonify({'customer': payload}), 200


@customers_bp.route('/<customer_id>', methods=['PUT'])
@roles_required(*STAFF_ROLES)
def update_customer(customer_id):
    customer, error = _customer_for_request(customer_id)
    if error:
        return error

    data = json_body()
    if data.get('email'):
        email = normalize_email(data['email'])
        if email != customer.email:
            if email_taken(email, exclude_user_id=customer.user_id):
                return jsonify({'error': 'User with this email already exists'}), 400
            customer.email = email
            if customer.user is not None:
                customer.user.email = email

    if data.get('name'):
        customer.name = str(data['name']).strip()
        if customer.user is not None:
            customer.user.name = customer.name
    for field in ('phone', 'address'):
        if field in data:
            setattr(customer, field, data[field])

    if 'status' in data:
        status = normalize_choice(data['status'], CustomerStatus.ALL)
        if status is None:
            return jsonify({'error': 'Invalid status'}), 400
        customer.status = status

    if 'plan_id' in data:
        if data['plan_id'] and _plan_in_tenant(data['plan_id'], customer.isp_owner_id) is None:
            return jsonify({'error': 'Plan not found'}), 404
        customer.plan_id = data['plan_id'] or None

    db.session.commit()
    return jsonify({'message': 'Customer updated successfully', 'customer': customer.to_dict()}), 200


@customers_bp.route('/<customer_id>', methods=['DELETE'])
@roles_required(*STAFF_ROLES)
def delete_customer(customer_id):
    customer, error = _customer_for_request(customer_id)
    if error:
        return error

    delete_customer_records(customer)
    db.session.commit()
    logger.info('Customer %s deleted by %s', customer_id, current_user().id)
    return jsonify({'message': 'Customer deleted successfully'}), 200
