"""
ISP owner (tenant) management for platform administrators
"""
import logging

from flask import Blueprint, jsonify

from ispmanager import db
from ispmanager.models import ISPOwner, UserRole
from ispmanager.routes.helpers import as_bool, json_body, missing_fields
from ispmanager.services.account_service import (
    AccountError,
    create_account,
    delete_isp_owner_records,
    email_taken,
    normalize_email,
)
from ispmanager.services.stats_service import stats_service
from ispmanager.tenancy import current_user, roles_required

isp_owners_bp = Blueprint('isp_owners', __name__)
logger = logging.getLogger(__name__)


def _owner_list():
    owners = ISPOwner.query.order_by(ISPOwner.created_at.desc()).all()
    return [stats_service.isp_owner_summary(owner) for owner in owners]


@isp_owners_bp.route('/super-admin/isp-owners', methods=['GET'])
@roles_required(UserRole.SUPER_ADMIN)
def list_isp_owners():
    return jsonify({'isp_owners': _owner_list()}), 200


@isp_owners_bp.route('/sub-admin/isp-owners', methods=['GET'])
@roles_required(UserRole.SUB_ADMIN)
def sub_admin_isp_owners():
    return jsonify({'isp_owners': _owner_list()}), 200


@isp_owners_bp.route('/super-admin/isp-owners', methods=['POST'])
@roles_required(UserRole.SUPER_ADMIN)
def create_isp_owner():
    data = json_body()
    if missing_fields(data, ('email', 'password', 'name', 'company_name')):
        return jsonify({'error': 'Email, password, name, and company name are required'}), 400

    try:
        user = create_account(
            email=data['email'],
            password=data['password'],
            name=data['name'],
            role=UserRole.ISP_OWNER,
            company_name=data['company_name'],
            phone=data.get('phone'),
            address=data.get('address'),
        )
    except AccountError as exc:
        db.session.rollback()
        return jsonify({'error': str(exc)}), 400

    db.session.commit()
    logger.info('ISP owner %s created by %s', user.isp_owner.id, current_user().id)
    return jsonify({
        'message': 'ISP owner created successfully',
        'isp_owner': stats_service.isp_owner_summary(user.isp_owner),
    }), 201


@isp_owners_bp.route('/super-admin/isp-owners/<owner_id>', methods=['GET'])
@roles_required(UserRole.SUPER_ADMIN)
def get_isp_owner(owner_id):
    owner = db.session.get(ISPOwner, owner_id)
    if not owner:
        return jsonify({'error': 'ISP owner not found'}), 404
    payload = stats_service.isp_owner_summary(owner)
    payload['customers'] = [customer.to_dict() for customer in owner.customers.limit(50)]
    payload['routers'] = [router.to_dict() for router in owner.routers]
    payload['plans'] = [plan.to_dict() for plan in owner.plans]
    return jsonify({'isp_owner': payload}), 200


@isp_owners_bp.route('/super-admin/isp-owners/<owner_id>', methods=['PUT'])
@roles_required(UserRole.SUPER_ADMIN)
def update_isp_owner(owner_id):
    owner = db.session.get(ISPOwner, owner_id)
    if not owner:
        return jsonify({'error': 'ISP owner not found'}), 404

    data = json_body()
    user = owner.user

    if data.get('email'):
        email = normalize_email(data['email'])
        if email != user.email:
            if email_taken(email, exclude_user_id=user.id):
                return jsonify({'error': 'Email already in use'}), 400
            user.email = email
    if data.get('name'):
        user.name = str(data['name']).strip()
    if data.get('password'):
        user.set_password(data['password'])
    if 'is_active' in data:
        user.is_active = as_bool(data['is_active'])

    if data.get('company_name'):
        owner.company_name = str(data['company_name']).strip()
    for field in ('phone', 'address'):
        if field in data:
            setattr(owner, field, data[field])

    db.session.commit()
    return jsonify({
        'message': 'ISP owner updated successfully',
        'isp_owner': stats_service.isp_owner_summary(owner),
    }), 200


@isp_owners_bp.route('/super-admin/isp-owners/<owner_id>', methods=['DELETE'])
@roles_required(UserRole.SUPER_ADMIN)
def delete_isp_owner(owner_id):
    owner = db.session.get(ISPOwner, owner_id)
    if not owner:
        return jsonify({'error': 'ISP owner not found'}), 404
    if owner.user_id == current_user().id:
        return jsonify({'error': 'Cannot delete your own account'}), 400

    delete_isp_owner_records(owner)
    db.session.commit()
    return jsonify({'message': 'ISP owner deleted successfully'}), 200
