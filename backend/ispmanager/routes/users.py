"""
User administration endpoints (super admin and sub admin)
"""
import logging

from flask import Blueprint, jsonify, request
from sqlalchemy import or_

from ispmanager import db
from ispmanager.models import User, UserRole
from ispmanager.routes.helpers import as_bool, json_body, missing_fields, normalize_choice, paginate
from ispmanager.services.account_service import (
    AccountError,
    change_role,
    create_account,
    delete_user_account,
    email_taken,
    normalize_email,
)
from ispmanager.tenancy import current_user, roles_required

users_bp = Blueprint('users', __name__)
logger = logging.getLogger(__name__)

SUB_ADMIN_MANAGED_ROLES = (UserRole.ISP_OWNER, UserRole.CUSTOMER)


def _can_manage(actor: User, target_role: str) -> bool:
    if actor.role == UserRole.SUPER_ADMIN:
        return True
    return target_role in SUB_ADMIN_MANAGED_ROLES


@users_bp.route('', methods=['GET'])
@roles_required(UserRole.SUPER_ADMIN, UserRole.SUB_ADMIN)
def list_users():
    actor = current_user()
    query = User.query

    if actor.role == UserRole.SUB_ADMIN:
        query = query.filter(User.role.in_(SUB_ADMIN_MANAGED_ROLES))

    role = normalize_choice(request.args.get('role'), UserRole.ALL)
    if role:
        query = query.filter(User.role == role)

    search = str(request.args.get('search') or '').strip()
    if search:
        pattern = f"%{search}%"
        query = query.filter(or_(User.name.ilike(pattern), User.email.ilike(pattern)))

    return jsonify(paginate(query.order_by(User.created_at.desc()), 'users')), 200


@users_bp.route('', methods=['POST'])
@roles_required(UserRole.SUPER_ADMIN, UserRole.SUB_ADMIN)
def create_user():
    data = json_body()
    if missing_fields(data, ('email', 'password', 'name', 'role')):
        return jsonify({'error': 'Email, password, name, and role are required'}), 400

    role = normalize_choice(data['role'], UserRole.ALL)
    if role is None:
        return jsonify({'error': 'Invalid role'}), 400
    if not _can_manage(current_user(), role):
        return jsonify({'error': 'Insufficient permissions'}), 403

    try:
        user = create_account(
            email=data['email'],
            password=data['password'],
            name=data['name'],
            role=role,
            company_name=data.get('company_name'),
            phone=data.get('phone'),
            address=data.get('address'),
            tenant_id=data.get('tenant_id'),
        )
    except AccountError as exc:
        db.session.rollback()
        return jsonify({'error': str(exc)}), 400

    db.session.commit()
    return jsonify({'message': 'User created successfully', 'user': user.to_dict(include_profile=True)}), 201


@users_bp.route('/<user_id>', methods=['GET'])
@roles_required(UserRole.SUPER_ADMIN, UserRole.SUB_ADMIN)
def get_user(user_id):
    user = db.session.get(User, user_id)
    if not user:
        return jsonify({'error': 'User not found'}), 404
    if not _can_manage(current_user(), user.role):
        return jsonify({'error': 'Access denied'}), 403
    return jsonify({'user': user.to_dict(include_profile=True)}), 200


@users_bp.route('/<user_id>', methods=['PUT'])
@roles_required(UserRole.SUPER_ADMIN, UserRole.SUB_ADMIN)
def update_user(user_id):
    actor = current_user()
    user = db.session.get(User, user_id)
    if not user:
        return jsonify({'error': 'User not found'}), 404
    if not _can_manage(actor, user.role):
        return jsonify({'error': 'Access denied'}), 403

    data = json_body()

    if 'role' in data:
        role = normalize_choice(data['role'], UserRole.ALL)
        if role is None:
            return jsonify({'error': 'Invalid role'}), 400
        if role != user.role:
            if actor.role != UserRole.SUPER_ADMIN:
                return jsonify({'error': 'Only super admins can change roles'}), 403
            if user.id == actor.id:
                return jsonify({'error': 'Cannot change your own role'}), 400
            try:
                change_role(user, role, company_name=data.get('company_name'), tenant_id=data.get('tenant_id'))
            except AccountError as exc:
                db.session.rollback()
                return jsonify({'error': str(exc)}), 400

    if data.get('email'):
        email = normalize_email(data['email'])
        if email != user.email:
            if email_taken(email, exclude_user_id=user.id):
                return jsonify({'error': 'Email already in use'}), 400
            user.email = email
            if user.customer_profile is not None:
                user.customer_profile.email = email

    if data.get('name'):
        user.name = str(data['name']).strip()
    if 'is_active' in data:
        user.is_active = as_bool(data['is_active'])
    if data.get('password'):
        user.set_password(data['password'])

    profile = user.isp_owner or user.customer_profile
    if profile is not None:
        for field in ('phone', 'address'):
            if field in data:
                setattr(profile, field, data[field])
    if user.isp_owner is not None and data.get('company_name'):
        user.isp_owner.company_name = str(data['company_name']).strip()

    db.session.commit()
    return jsonify({'message': 'User updated successfully', 'user': user.to_dict(include_profile=True)}), 200


@users_bp.route('/<user_id>', methods=['DELETE'])
@roles_required(UserRole.SUPER_ADMIN)
def delete_user(user_id):
    actor = current_user()
    user = db.session.get(User, user_id)
    if not user:
        return jsonify({'error': 'User not found'}), 404
    if user.id == actor.id:
        return jsonify({'error': 'Cannot delete your own account'}), 400

    delete_user_account(user)
    db.session.commit()
    logger.info('User %s deleted by %s', user_id, actor.id)
    return jsonify({'message': 'User deleted successfully'}), 200
