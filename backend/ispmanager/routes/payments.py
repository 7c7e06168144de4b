"""
Payment endpoints
"""
import logging

from flask import Blueprint, jsonify, request

from ispmanager import db
from ispmanager.models import Customer, Invoice, Payment, PaymentStatus, UserRole
from ispmanager.routes.helpers import (
    as_float,
    json_body,
    missing_fields,
    normalize_choice,
    paginate,
    parse_datetime,
)
from ispmanager.services.billing_service import refresh_invoice_status
from ispmanager.tenancy import (
    TenantResolutionError,
    access_denied,
    current_user,
    requested_tenant_id,
    resolve_tenant_scope,
    roles_required,
    tenant_access_allowed,
)

payments_bp = Blueprint('payments', __name__)
logger = logging.getLogger(__name__)

STAFF_ROLES = (UserRole.SUPER_ADMIN, UserRole.SUB_ADMIN, UserRole.ISP_OWNER)


def _payment_for_request(payment_id):
    payment = db.session.get(Payment, payment_id)
    if not payment or not tenant_access_allowed(current_user(), payment.invoice.isp_owner_id):
        return None, (jsonify({'error': 'Payment not found'}), 404)
    return payment, None


@payments_bp.route('', methods=['GET'])
@roles_required(*STAFF_ROLES)
def list_payments():
    try:
        tenant_id = resolve_tenant_scope(current_user(), requested_tenant_id())
    except TenantResolutionError:
        return access_denied()

    query = Payment.query.join(Invoice, Payment.invoice_id == Invoice.id)
    if tenant_id is not None:
        query = query.filter(Invoice.isp_owner_id == tenant_id)

    status = normalize_choice(request.args.get('status'), PaymentStatus.ALL)
    if status:
        query = query.filter(Payment.status == status)
    if request.args.get('invoice_id'):
        query = query.filter(Payment.invoice_id == request.args['invoice_id'])
    if request.args.get('customer_id'):
        query = query.filter(Payment.customer_id == request.args['customer_id'])

    return jsonify(paginate(query.order_by(Payment.payment_date.desc()), 'payments')), 200


@payments_bp.route('', methods=['POST'])
@roles_required(*STAFF_ROLES)
def create_payment():
    user = current_user()
    data = json_body()
    if missing_fields(data, ('invoice_id', 'customer_id', 'amount', 'method')):
        return jsonify({'error': 'Invoice ID, customer ID, amount, and method are required'}), 400

    invoice = db.session.get(Invoice, data['invoice_id'])
    if invoice is None or not tenant_access_allowed(user, invoice.isp_owner_id):
        return jsonify({'error': 'Invoice not found'}), 404
    customer = db.session.get(Customer, data['customer_id'])
    if customer is None or customer.id != invoice.customer_id:
        return jsonify({'error': 'Customer does not match invoice'}), 400

    amount = as_float(data['amount'])
    if amount is None or amount <= 0:
        return jsonify({'error': 'Amount must be a positive number'}), 400

    status = PaymentStatus.COMPLETED
    if data.get('status'):
        status = normalize_choice(data['status'], PaymentStatus.ALL)
        if status is None:
            return jsonify({'error': 'Invalid status'}), 400

    payment = Payment(
        invoice_id=invoice.id,
        customer_id=customer.id,
        created_by=user.id,
        amount=amount,
        payment_method=str(data['method']).strip().lower(),
        transaction_id=data.get('transaction_id'),
        status=status,
        notes=data.get('notes'),
    )
    payment_date = parse_datetime(data.get('payment_date'))
    if payment_date is not None:
        payment.payment_date = payment_date

    db.session.add(payment)
    db.session.flush()
    refresh_invoice_status(invoice)
    db.session.commit()
    logger.info('Payment %s of %.2f recorded for invoice %s', payment.payment_no, amount, invoice.invoice_no)
    return jsonify({
        'message': 'Payment recorded successfully',
        'payment': payment.to_dict(),
        'invoice': invoice.to_dict(),
    }), 201


@payments_bp.route('/<payment_id>', methods=['GET'])
@roles_required(*STAFF_ROLES)
def get_payment(payment_id):
    payment, error = _payment_for_request(payment_id)
    if error:
        return error
    return jsonify({'payment': payment.to_dict()}), 200


@payments_bp.route('/<payment_id>', methods=['PUT'])
@roles_required(*STAFF_ROLES)
def update_payment(payment_id):
    payment, error = _payment_for_request(payment_id)
    if error:
        return error

    data = json_body()
    if 'amount' in data:
        amount = as_float(data['amount'])
        if amount is None or amount <= 0:
            return jsonify({'error': 'Amount must be a positive number'}), 400
        payment.amount = amount
    if 'status' in data:
        status = normalize_choice(data['status'], PaymentStatus.ALL)
        if status is None:
            return jsonify({'error': 'Invalid status'}), 400
        payment.status = status
    if data.get('method'):
        payment.payment_method = str(data['method']).strip().lower()
    for field in ('transaction_id', 'notes'):
        if field in data:
            setattr(payment, field, data[field])

    db.session.flush()
    refresh_invoice_status(payment.invoice)
    db.session.commit()
    return jsonify({
        'message': 'Payment updated successfully',
        'payment': payment.to_dict(),
        'invoice': payment.invoice.to_dict(),
    }), 200


@payments_bp.route('/<payment_id>', methods=['DELETE'])
@roles_required(*STAFF_ROLES)
def delete_payment(payment_id):
    payment, error = _payment_for_request(payment_id)
    if error:
        return error

    invoice = payment.invoice
    db.session.delete(payment)
    db.session.flush()
    refresh_invoice_status(invoice)
    db.session.commit()
    return jsonify({'message': 'Payment deleted successfully', 'invoice': invoice.to_dict()}), 200
