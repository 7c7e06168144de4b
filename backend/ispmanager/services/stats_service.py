"""Dashboard aggregates for each role."""

from __future__ import annotations

from typing import Any, Dict

from ispmanager.models import (
    Customer,
    CustomerStatus,
    Invoice,
    InvoiceStatus,
    ISPOwner,
    Payment,
    Plan,
    PPPoEUser,
    Router,
    User,
)
from ispmanager.services.billing_service import revenue_total


class StatsService:
    @staticmethod
    def isp_owner_summary(owner: ISPOwner) -> Dict[str, Any]:
        router_ids = [router.id for router in owner.routers]
        pppoe_users = (
            PPPoEUser.query.filter(PPPoEUser.router_id.in_(router_ids)).count() if router_ids else 0
        )
        payload = owner.to_dict()
        payload['status'] = 'active' if payload['is_active'] else 'inactive'
        payload['stats'] = {
            'customers': owner.customers.count(),
            'routers': len(router_ids),
            'pppoe_users': pppoe_users,
            'revenue': revenue_total(tenant_id=owner.id),
        }
        return payload

    @staticmethod
    def platform_stats() -> Dict[str, Any]:
        return {
            'total_users': User.query.count(),
            'total_isp_owners': ISPOwner.query.count(),
            'total_customers': Customer.query.count(),
            'total_invoices': Invoice.query.count(),
            'total_payments': Payment.query.count(),
            'total_revenue': revenue_total(),
            'pending_invoices': Invoice.query.filter_by(status=InvoiceStatus.PENDING).count(),
            'active_users': User.query.filter_by(is_active=True).count(),
        }

    @staticmethod
    def sub_admin_stats() -> Dict[str, Any]:
        return {
            'managed_isp_owners': ISPOwner.query.count(),
            'active_isp_owners': ISPOwner.query.join(User, ISPOwner.user_id == User.id)
            .filter(User.is_active.is_(True))
            .count(),
            'total_customers': Customer.query.count(),
            'total_invoices': Invoice.query.count(),
            'total_revenue': revenue_total(),
            'pending_invoices': Invoice.query.filter_by(status=InvoiceStatus.PENDING).count(),
        }

    @staticmethod
    def tenant_stats(tenant_id: str) -> Dict[str, Any]:
        invoices = Invoice.query.filter_by(isp_owner_id=tenant_id)
        return {
            'total_customers': Customer.query.filter_by(isp_owner_id=tenant_id).count(),
            'active_customers': Customer.query.filter_by(
                isp_owner_id=tenant_id, status=CustomerStatus.ACTIVE
            ).count(),
            'total_plans': Plan.query.filter_by(isp_owner_id=tenant_id).count(),
            'total_routers': Router.query.filter_by(isp_owner_id=tenant_id).count(),
            'total_invoices': invoices.count(),
            'total_payments': Payment.query.join(Customer, Payment.customer_id == Customer.id)
            .filter(Customer.isp_owner_id == tenant_id)
            .count(),
            'total_revenue': revenue_total(tenant_id=tenant_id),
            'pending_invoices': invoices.filter(Invoice.status == InvoiceStatus.PENDING).count(),
            'overdue_invoices': invoices.filter(Invoice.status == InvoiceStatus.OVERDUE).count(),
        }

    @staticmethod
    def customer_stats(customer: Customer) -> Dict[str, Any]:
        invoices = customer.invoices
        total_invoices = invoices.count()
        paid_invoices = invoices.filter(Invoice.status == InvoiceStatus.PAID).count()
        success_rate = round(paid_invoices / total_invoices * 100) if total_invoices else 100
        return {
            'total_paid': revenue_total(customer_id=customer.id),
            'pending_invoices': invoices.filter(Invoice.status == InvoiceStatus.PENDING).count(),
            'payment_success_rate': success_rate,
            'current_plan': customer.plan.to_dict() if customer.plan else None,
        }


stats_service = StatsService()
