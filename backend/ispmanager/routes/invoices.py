"""
Invoice endpoints
"""
import logging

from flask import Blueprint, jsonify, request
from sqlalchemy.exc import IntegrityError

from ispmanager import db
from ispmanager.models import Customer, Invoice, InvoiceStatus, Payment, Plan, UserRole
from ispmanager.routes.helpers import (
    as_float,
    json_body,
    missing_fields,
    normalize_choice,
    paginate,
    parse_datetime,
)
from ispmanager.services.billing_service import next_invoice_number, refresh_invoice_status
from ispmanager.tenancy import (
    TenantResolutionError,
    access_denied,
    current_user,
    requested_tenant_id,
    resolve_tenant_scope,
    roles_required,
    tenant_access_allowed,
)

invoices_bp = Blueprint('invoices', __name__)
logger = logging.getLogger(__name__)

STAFF_ROLES = (UserRole.SUPER_ADMIN, UserRole.SUB_ADMIN, UserRole.ISP_OWNER)
INVOICE_NUMBER_ATTEMPTS = 3


def _invoice_for_request(invoice_id):
    invoice = db.session.get(Invoice, invoice_id)
    if not invoice or not tenant_access_allowed(current_user(), invoice.isp_owner_id):
        return None, (jsonify({'error': 'Invoice not found'}), 404)
    return invoice, None


@invoices_bp.route('', methods=['GET'])
@roles_required(*STAFF_ROLES)
def list_invoices():
    try:
        tenant_id = resolve_tenant_scope(current_user(), requested_tenant_id())
    except TenantResolutionError:
        return access_denied()

    query = Invoice.query
    if tenant_id is not None:
        query = query.filter(Invoice.isp_owner_id == tenant_id)

    status = normalize_choice(request.args.get('status'), InvoiceStatus.ALL)
    if status:
        query = query.filter(Invoice.status == status)
    if request.args.get('customer_id'):
        query = query.filter(Invoice.customer_id == request.args['customer_id'])

    return jsonify(paginate(query.order_by(Invoice.created_at.desc()), 'invoices')), 200


@invoices_bp.route('', methods=['POST'])
@roles_required(*STAFF_ROLES)
def create_invoice():
    user = current_user()
    data = json_body()
    if missing_fields(data, ('customer_id', 'plan_id', 'amount', 'due_date')):
        return jsonify({'error': 'Customer ID, plan ID, amount, and due date are required'}), 400

    customer = db.session.get(Customer, data['customer_id'])
    if customer is None or not tenant_access_allowed(user, customer.isp_owner_id):
        return jsonify({'error': 'Customer not found'}), 404
    try:
        tenant_id = resolve_tenant_scope(user, requested_tenant_id(data) or customer.isp_owner_id)
    except TenantResolutionError:
        return access_denied()
    if tenant_id != customer.isp_owner_id:
        return jsonify({'error': 'Customer not found'}), 404

    plan = db.session.get(Plan, data['plan_id'])
    if plan is None or plan.isp_owner_id != tenant_id:
        return jsonify({'error': 'Plan not found'}), 404

    amount = as_float(data['amount'])
    if amount is None or amount < 0:
        return jsonify({'error': 'Amount must be a non-negative number'}), 400
    due_date = parse_datetime(data['due_date'])
    if due_date is None:
        return jsonify({'error': 'Invalid due date'}), 400

    invoice = Invoice(
        customer_id=customer.id,
        plan_id=plan.id,
        isp_owner_id=tenant_id,
        created_by=user.id,
        amount=amount,
        due_date=due_date,
        status=InvoiceStatus.PENDING,
        description=data.get('description'),
    )
    for _ in range(INVOICE_NUMBER_ATTEMPTS):
        invoice.invoice_no = next_invoice_number(tenant_id)
        db.session.add(invoice)
        try:
            db.session.commit()
            break
        except IntegrityError:
            db.session.rollback()
            logger.warning('Invoice number %s was taken, retrying', invoice.invoice_no)
    else:
        return jsonify({'error': 'Could not allocate an invoice number'}), 409
    logger.info('Invoice %s created for customer %s', invoice.invoice_no, customer.id)
    return jsonify({'message': 'Invoice created successfully', 'invoice': invoice.to_dict()}), 201


@invoices_bp.route('/<invoice_id>', methods=['GET'])
@roles_required(*STAFF_ROLES)
def get_invoice(invoice_id):
    invoice, error = _invoice_for_request(invoice_id)
    if error:
        return error
    payload = invoice.to_dict()
    payload['payments'] = [payment.to_dict() for payment in invoice.payments]
    return jsonify({'invoice': payload}), 200


@invoices_bp.route('/<invoice_id>', methods=['PUT'])
@roles_required(*STAFF_ROLES)
def update_invoice(invoice_id):
    invoice, error = _invoice_for_request(invoice_id)
    if error:
        return error

    data = json_body()
    if 'amount' in data:
        amount = as_float(data['amount'])
        if amount is None or amount < 0:
            return jsonify({'error': 'Amount must be a non-negative number'}), 400
        invoice.amount = amount
    if 'due_date' in data:
        due_date = parse_datetime(data['due_date'])
        if due_date is None:
            return jsonify({'error': 'Invalid due date'}), 400
        invoice.due_date = due_date
    if 'description' in data:
        invoice.description = data['description']
    if data.get('plan_id'):
        plan = db.session.get(Plan, data['plan_id'])
        if plan is None or plan.isp_owner_id != invoice.isp_owner_id:
            return jsonify({'error': 'Plan not found'}), 404
        invoice.plan_id = plan.id

    if 'status' in data:
        status = normalize_choice(data['status'], InvoiceStatus.ALL)
        if status is None:
            return jsonify({'error': 'Invalid status'}), 400
        invoice.status = status
    elif 'amount' in data or 'due_date' in data:
        refresh_invoice_status(invoice)

    db.session.commit()
    return jsonify({'message': 'Invoice updated successfully', 'invoice': invoice.to_dict()}), 200


@invoices_bp.route('/<invoice_id>', methods=['DELETE'])
@roles_required(*STAFF_ROLES)
def delete_invoice(invoice_id):
    invoice, error = _invoice_for_request(invoice_id)
    if error:
        return error

    Payment.query.filter_by(invoice_id=invoice.id).delete(synchronize_session=False)
    db.session.delete(invoice)
    db.session.commit()
    logger.info('Invoice %s deleted by %s', invoice_id, current_user().id)
    return jsonify({'message': 'Invoice deleted successfully'}), 200
