"""
Role dashboards: aggregate stats and recent billing activity
"""
from flask import Blueprint, jsonify

from ispmanager.models import Invoice, Payment, UserRole
from ispmanager.services.stats_service import stats_service
from ispmanager.tenancy import current_user, roles_required

dashboard_bp = Blueprint('dashboard', __name__)

RECENT_LIMIT = 10


def _tenant_or_error():
    tenant_id = current_user().tenant_id
    if tenant_id is None:
        return None, (jsonify({'error': 'ISP owner profile not found'}), 404)
    return tenant_id, None


def _customer_or_error():
    customer = current_user().customer_profile
    if customer is None:
        return None, (jsonify({'error': 'Customer profile not found'}), 404)
    return customer, None


@dashboard_bp.route('/super-admin/stats', methods=['GET'])
@roles_required(UserRole.SUPER_ADMIN)
def super_admin_stats():
    return jsonify(stats_service.platform_stats()), 200


@dashboard_bp.route('/sub-admin/stats', methods=['GET'])
@roles_required(UserRole.SUB_ADMIN)
def sub_admin_stats():
    return jsonify(stats_service.sub_admin_stats()), 200


@dashboard_bp.route('/isp-owner/stats', methods=['GET'])
@roles_required(UserRole.ISP_OWNER)
def isp_owner_stats():
    tenant_id, error = _tenant_or_error()
    if error:
        return error
    return jsonify(stats_service.tenant_stats(tenant_id)), 200


@dashboard_bp.route('/isp-owner/invoices', methods=['GET'])
@roles_required(UserRole.ISP_OWNER)
def isp_owner_recent_invoices():
    tenant_id, error = _tenant_or_error()
    if error:
        return error
    invoices = (
        Invoice.query.filter_by(isp_owner_id=tenant_id)
        .order_by(Invoice.created_at.desc())
        .limit(RECENT_LIMIT)
        .all()
    )
    return jsonify({'invoices': [invoice.to_dict() for invoice in invoices]}), 200


@dashboard_bp.route('/isp-owner/payments', methods=['GET'])
@roles_required(UserRole.ISP_OWNER)
def isp_owner_recent_payments():
    tenant_id, error = _tenant_or_error()
    if error:
        return error
    payments = (
        Payment.query.join(Invoice, Payment.invoice_id == Invoice.id)
        .filter(Invoice.isp_owner_id == tenant_id)
        .order_by(Payment.payment_date.desc())
        .limit(RECENT_LIMIT)
        .all()
    )
    return jsonify({'payments': [payment.to_dict() for payment in payments]}), 200


@dashboard_bp.route('/customer/stats', methods=['GET'])
@roles_required(UserRole.CUSTOMER)
def customer_stats():
    customer, error = _customer_or_error()
    if error:
        return error
    return jsonify(stats_service.customer_stats(customer)), 200


@dashboard_bp.route('/customer/invoices', methods=['GET'])
@roles_required(UserRole.CUSTOMER)
def customer_invoices():
    customer, error = _customer_or_error()
    if error:
        return error
    invoices = customer.invoices.order_by(Invoice.created_at.desc()).limit(RECENT_LIMIT).all()
    return jsonify({'invoices': [invoice.to_dict() for invoice in invoices]}), 200


@dashboard_bp.route('/customer/payments', methods=['GET'])
@roles_required(UserRole.CUSTOMER)
def customer_payments():
    customer, error = _customer_or_error()
    if error:
        return error
    payments = customer.payments.order_by(Payment.payment_date.desc()).limit(RECENT_LIMIT).all()
    return jsonify({'payments': [payment.to_dict() for payment in payments]}), 200
