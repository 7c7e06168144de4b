"""Invoice numbering and payment-driven invoice status."""

from __future__ import annotations

import logging
import re
from datetime import datetime
from typing import Optional

from sqlalchemy import func

from ispmanager import db
from ispmanager.models import Customer, Invoice, InvoiceStatus, Payment, PaymentStatus

logger = logging.getLogger(__name__)

INVOICE_NO_PATTERN = re.compile(r'^INV-(\d+)$')


def next_invoice_number(tenant_id: str) -> str:
    """Next ``INV-000001`` style number for the tenant, one past the highest issued."""
    highest = 0
    rows = db.session.query(Invoice.invoice_no).filter(Invoice.isp_owner_id == tenant_id)
    for (invoice_no,) in rows:
        match = INVOICE_NO_PATTERN.match(invoice_no or '')
        if match:
            highest = max(highest, int(match.group(1)))
    return f"INV-{highest + 1:06d}"


def completed_payments_total(invoice: Invoice) -> float:
    query = db.session.query(func.coalesce(func.sum(Payment.amount), 0.0)).filter(
        Payment.invoice_id == invoice.id,
        Payment.status == PaymentStatus.COMPLETED,
    )
    return float(query.scalar() or 0.0)


def derive_invoice_status(invoice: Invoice, paid_total: float, now: Optional[datetime] = None) -> str:
    if invoice.status == InvoiceStatus.CANCELLED:
        return InvoiceStatus.CANCELLED
    if paid_total >= float(invoice.amount or 0.0):
        return InvoiceStatus.PAID
    now = now or datetime.utcnow()
    if invoice.due_date is not None and invoice.due_date < now:
        return InvoiceStatus.OVERDUE
    return InvoiceStatus.PENDING


def refresh_invoice_status(invoice: Invoice) -> str:
    """Recompute status from completed payments. Caller commits."""
    paid_total = completed_payments_total(invoice)
    new_status = derive_invoice_status(invoice, paid_total)
    if new_status != invoice.status:
        logger.info(
            'Invoice %s status %s -> %s (paid %.2f of %.2f)',
            invoice.invoice_no, invoice.status, new_status, paid_total, invoice.amount,
        )
        invoice.status = new_status
    return new_status


def mark_overdue_invoices(now: Optional[datetime] = None) -> int:
    """Flag pending invoices whose due date has passed."""
    now = now or datetime.utcnow()
    overdue = Invoice.query.filter(
        Invoice.status == InvoiceStatus.PENDING,
        Invoice.due_date < now,
    ).all()
    for invoice in overdue:
        invoice.status = InvoiceStatus.OVERDUE
    if overdue:
        db.session.commit()
    logger.info('Marked %s invoices as overdue', len(overdue))
    return len(overdue)


def revenue_total(tenant_id: Optional[str] = None, customer_id: Optional[str] = None) -> float:
    """Sum of completed payments, optionally for one tenant or customer."""
    query = db.session.query(func.coalesce(func.sum(Payment.amount), 0.0)).filter(
        Payment.status == PaymentStatus.COMPLETED
    )
    if tenant_id is not None:
        query = query.join(Customer, Payment.customer_id == Customer.id).filter(
            Customer.isp_owner_id == tenant_id
        )
    if customer_id is not None:
        query = query.filter(Payment.customer_id == customer_id)
    return round(float(query.scalar() or 0.0), 2)
