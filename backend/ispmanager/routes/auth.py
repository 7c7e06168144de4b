"""
Authentication endpoints
"""
import hmac
import logging
from datetime import datetime

from flask import Blueprint, current_app, jsonify, request
from flask_jwt_extended import create_access_token

from ispmanager import db, limiter
from ispmanager.models import PPPoEStatus, PPPoEUser, User, UserRole
from ispmanager.routes.helpers import json_body, missing_fields
from ispmanager.services.account_service import (
    AccountError,
    create_account,
    normalize_email,
)
from ispmanager.tenancy import current_user, roles_required

auth_bp = Blueprint('auth', __name__)
logger = logging.getLogger(__name__)

SELF_SIGNUP_ROLES = (UserRole.ISP_OWNER, UserRole.CUSTOMER)


def issue_token(user: User) -> str:
    return create_access_token(
        identity=str(user.id),
        additional_claims={
            'role': user.role,
            'tenant_id': user.tenant_id,
            'email': user.email,
        },
    )


@auth_bp.route('/login', methods=['POST'])
@limiter.limit("10/minute")
def login():
    data = json_body()
    if not data.get('email') or not data.get('password'):
        return jsonify({'error': 'Email and password are required'}), 400

    user = User.query.filter_by(email=normalize_email(data['email'])).first()
    if not user or not user.check_password(data['password']):
        logger.info('Failed login for %s', data.get('email'))
        return jsonify({'error': 'Invalid credentials'}), 401
    if not user.is_active:
        return jsonify({'error': 'Account is deactivated'}), 401

    user.last_login = datetime.utcnow()
    db.session.commit()
    return jsonify({
        'message': 'Login successful',
        'token': issue_token(user),
        'user': user.to_dict(include_profile=True),
    }), 200


@auth_bp.route('/register', methods=['POST'])
@limiter.limit("5/minute")
def register():
    if not current_app.config.get('ALLOW_SELF_SIGNUP', True):
        return jsonify({'error': 'Self registration is disabled'}), 403

    data = json_body()
    missing = missing_fields(data, ('email', 'password', 'name', 'role'))
    if missing:
        return jsonify({'error': 'Email, password, name, and role are required'}), 400

    role = str(data['role']).strip().upper()
    if role not in SELF_SIGNUP_ROLES:
        return jsonify({'error': 'Only ISP owners and customers can register'}), 400

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
    return jsonify({
        'message': 'User created successfully',
        'token': issue_token(user),
        'user': user.to_dict(include_profile=True),
    }), 201


@auth_bp.route('/create-super-admin', methods=['POST'])
@limiter.limit("5/minute")
def create_super_admin():
    configured_token = str(current_app.config.get('BOOTSTRAP_TOKEN') or '').strip()
    if configured_token:
        provided = str(request.headers.get('X-Bootstrap-Token') or '').strip()
        if not hmac.compare_digest(provided.encode('utf-8'), configured_token.encode('utf-8')):
            return jsonify({'error': 'Invalid bootstrap token'}), 403

    if User.query.filter_by(role=UserRole.SUPER_ADMIN).first() is not None:
        return jsonify({'error': 'Super admin already exists'}), 409

    data = json_body()
    if missing_fields(data, ('email', 'password', 'name')):
        return jsonify({'error': 'Email, password, and name are required'}), 400

    try:
        user = create_account(
            email=data['email'],
            password=data['password'],
            name=data['name'],
            role=UserRole.SUPER_ADMIN,
        )
    except AccountError as exc:
        db.session.rollback()
        return jsonify({'error': str(exc)}), 400

    db.session.commit()
    logger.info('Bootstrapped super admin %s', user.email)
    return jsonify({'message': 'Super admin created successfully', 'user': user.to_dict()}), 201


@auth_bp.route('/pppoe-login', methods=['POST'])
@limiter.limit("10/minute")
def pppoe_login():
    data = json_body()
    if not data.get('username') or not data.get('password'):
        return jsonify({'error': 'Username and password are required'}), 400

    pppoe_user = PPPoEUser.query.filter_by(username=str(data['username']).strip()).first()
    if (
        pppoe_user is None
        or pppoe_user.status != PPPoEStatus.ACTIVE
        or pppoe_user.is_expired
    ):
        return jsonify({'error': 'Invalid credentials'}), 401

    try:
        password_matches = hmac.compare_digest(
            pppoe_user.password.encode('utf-8'), str(data['password']).encode('utf-8')
        )
    except ValueError:
        logger.error('PPPoE password for %s cannot be decrypted', pppoe_user.username)
        password_matches = False
    if not password_matches:
        return jsonify({'error': 'Invalid credentials'}), 401

    customer = pppoe_user.customer
    user = customer.user if customer else None
    if user is None or not user.is_active:
        return jsonify({'error': 'Invalid credentials'}), 401

    pppoe_user.last_connected = datetime.utcnow()
    db.session.commit()
    return jsonify({
        'message': 'Login successful',
        'token': issue_token(user),
        'user': user.to_dict(include_profile=True),
        'pppoe_user': pppoe_user.to_dict(),
    }), 200


@auth_bp.route('/profile', methods=['GET'])
@roles_required()
def get_profile():
    return jsonify({'user': current_user().to_dict(include_profile=True)}), 200


@auth_bp.route('/profile', methods=['PUT'])
@roles_required()
def update_profile():
    user = current_user()
    data = json_body()

    if data.get('name'):
        user.name = str(data['name']).strip()
        if user.customer_profile is not None:
            user.customer_profile.name = user.name

    profile = user.isp_owner or user.customer_profile
    if profile is not None:
        for field in ('phone', 'address'):
            if field in data:
                setattr(profile, field, data[field])
        if user.isp_owner is not None and data.get('company_name'):
            user.isp_owner.company_name = str(data['company_name']).strip()

    db.session.commit()
    return jsonify({'user': user.to_dict(include_profile=True)}), 200


@auth_bp.route('/change-password', methods=['POST'])
@roles_required()
@limiter.limit("5/minute")
def change_password():
    user = current_user()
    data = json_body()
    if not data.get('current_password') or not data.get('new_password'):
        return jsonify({'error': 'Current and new password are required'}), 400
    if not user.check_password(data['current_password']):
        return jsonify({'error': 'Current password is incorrect'}), 400
    if len(str(data['new_password'])) < 6:
        return jsonify({'error': 'New password must be at least 6 characters'}), 400

    user.set_password(data['new_password'])
    db.session.commit()
    return jsonify({'message': 'Password updated successfully'}), 200
