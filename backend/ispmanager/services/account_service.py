"""
Account lifecycle: users with their ISP owner or customer records, and cascading removal.
"""
import logging
from collections import defaultdict
from typing import Iterable, Optional

from ispmanager import db
from ispmanager.models import (
    Customer,
    CustomerStatus,
    Invoice,
    ISPOwner,
    Payment,
    Plan,
    PPPoEUser,
    Router,
    User,
    UserRole,
)
from ispmanager.services.routeros_client import (
    RouterOSClientError,
    client_for_router,
    remove_pppoe_user,
)

logger = logging.getLogger(__name__)


class AccountError(ValueError):
    """Validation failure while creating or changing an account."""


def normalize_email(value) -> str:
    return str(value or '').strip().lower()


def email_taken(email: str, exclude_user_id: Optional[str] = None) -> bool:
    query = User.query.filter(User.email == normalize_email(email))
    if exclude_user_id is not None:
        query = query.filter(User.id != exclude_user_id)
    return db.session.query(query.exists()).scalar()


def create_account(
    email: str,
    password: str,
    name: str,
    role: str,
    company_name: Optional[str] = None,
    phone: Optional[str] = None,
    address: Optional[str] = None,
    tenant_id: Optional[str] = None,
    plan_id: Optional[str] = None,
) -> User:
    """Create a user plus the ISP owner or customer record its role needs.

    The session is flushed, not committed.
    """
    if role not in UserRole.ALL:
        raise AccountError('Invalid role')
    if email_taken(email):
        raise AccountError('User with this email already exists')

    owner = None
    if role == UserRole.ISP_OWNER and not str(company_name or '').strip():
        raise AccountError('Company name is required for ISP owners')
    if role == UserRole.CUSTOMER:
        if not tenant_id:
            raise AccountError('Tenant ID is required for customers')
        owner = db.session.get(ISPOwner, str(tenant_id))
        if owner is None:
            raise AccountError('ISP owner not found')

    user = User(email=normalize_email(email), name=name, role=role)
    user.set_password(password)
    db.session.add(user)
    db.session.flush()

    if role == UserRole.ISP_OWNER:
        isp_owner = ISPOwner(
            user_id=user.id,
            company_name=str(company_name).strip(),
            phone=phone,
            address=address,
        )
        db.session.add(isp_owner)
        db.session.flush()
        user.tenant_id = isp_owner.id
    elif role == UserRole.CUSTOMER:
        user.tenant_id = owner.id
        db.session.add(
            Customer(
                user_id=user.id,
                isp_owner_id=owner.id,
                plan_id=plan_id,
                name=name,
                email=user.email,
                phone=phone,
                address=address,
                status=CustomerStatus.ACTIVE,
            )
        )
    db.session.flush()
    logger.info('Created %s account %s', role, user.email)
    return user


def _remove_secrets_from_routers(pppoe_users: Iterable[PPPoEUser]) -> None:
    by_router = defaultdict(list)
    for pppoe_user in pppoe_users:
        by_router[pppoe_user.router_id].append(pppoe_user.username)

    for router_id, usernames in by_router.items():
        router = db.session.get(Router, router_id)
        if router is None:
            continue
        try:
            with client_for_router(router) as client:
                for username in usernames:
                    remove_pppoe_user(client, username)
        except (RouterOSClientError, ValueError) as exc:
            logger.error('Could not remove PPPoE secrets from router %s: %s', router_id, exc)


def _release_created_records(user_ids: Iterable[str]) -> None:
    user_ids = [user_id for user_id in user_ids if user_id]
    if not user_ids:
        return
    for model in (Plan, Invoice, Payment):
        model.query.filter(model.created_by.in_(user_ids)).update(
            {model.created_by: None}, synchronize_session=False
        )


def delete_customer_records(customer: Customer, cleanup_routers: bool = True) -> None:
    """Delete a customer with its PPPoE users, payments, invoices and login."""
    pppoe_users = customer.pppoe_users.all()
    if cleanup_routers and pppoe_users:
        _remove_secrets_from_routers(pppoe_users)

    for pppoe_user in pppoe_users:
        db.session.delete(pppoe_user)
    Payment.query.filter_by(customer_id=customer.id).delete(synchronize_session=False)
    Invoice.query.filter_by(customer_id=customer.id).delete(synchronize_session=False)

    login = customer.user
    db.session.delete(customer)
    if login is not None:
        _release_created_records([login.id])
        db.session.delete(login)


def delete_isp_owner_records(owner: ISPOwner) -> None:
    """Delete a tenant and everything scoped to it, the owner's login included."""
    router_ids = [router.id for router in owner.routers]
    customer_ids = [customer.id for customer in owner.customers]

    if router_ids:
        PPPoEUser.query.filter(PPPoEUser.router_id.in_(router_ids)).delete(synchronize_session=False)
    if customer_ids:
        PPPoEUser.query.filter(PPPoEUser.customer_id.in_(customer_ids)).delete(synchronize_session=False)
        Payment.query.filter(Payment.customer_id.in_(customer_ids)).delete(synchronize_session=False)
    Invoice.query.filter_by(isp_owner_id=owner.id).delete(synchronize_session=False)

    customer_user_ids = [
        customer.user_id for customer in owner.customers if customer.user_id is not None
    ]
    Customer.query.filter_by(isp_owner_id=owner.id).delete(synchronize_session=False)
    if customer_user_ids:
        _release_created_records(customer_user_ids)
        User.query.filter(User.id.in_(customer_user_ids)).delete(synchronize_session=False)

    Router.query.filter_by(isp_owner_id=owner.id).delete(synchronize_session=False)
    Plan.query.filter_by(isp_owner_id=owner.id).delete(synchronize_session=False)

    login = owner.user
    db.session.delete(owner)
    if login is not None:
        _release_created_records([login.id])
        db.session.delete(login)
    logger.info('Deleted ISP owner %s with %s customers and %s routers', owner.id, len(customer_ids), len(router_ids))


def delete_user_account(user: User) -> None:
    """Delete a user together with the records its role owns."""
    if user.role == UserRole.ISP_OWNER and user.isp_owner is not None:
        delete_isp_owner_records(user.isp_owner)
        return
    if user.role == UserRole.CUSTOMER and user.customer_profile is not None:
        delete_customer_records(user.customer_profile)
        return
    _release_created_records([user.id])
    db.session.delete(user)


def change_role(
    user: User,
    role: str,
    company_name: Optional[str] = None,
    tenant_id: Optional[str] = None,
) -> None:
    """Move a user to another role and rebuild the tenant records that role needs.

    A former ISP owner's tenant must be empty. A former customer's billing
    record stays with its ISP, detached from the login. The session is flushed,
    not committed.
    """
    if role not in UserRole.ALL:
        raise AccountError('Invalid role')
    if role == user.role:
        return

    new_owner = None
    if role == UserRole.ISP_OWNER and not str(company_name or '').strip():
        raise AccountError('Company name is required for ISP owners')
    if role == UserRole.CUSTOMER:
        if not tenant_id:
            raise AccountError('Tenant ID is required for customers')
        new_owner = db.session.get(ISPOwner, str(tenant_id))
        if new_owner is None:
            raise AccountError('ISP owner not found')

    isp_owner = user.isp_owner
    if isp_owner is not None:
        if isp_owner.customers.count() or isp_owner.routers.count() or isp_owner.plans.count():
            raise AccountError('ISP owner still has tenant records')
        db.session.delete(isp_owner)

    customer = user.customer_profile
    if customer is not None:
        customer.user = None

    db.session.flush()
    user.role = role
    user.tenant_id = None

    if role == UserRole.ISP_OWNER:
        isp_owner = ISPOwner(user_id=user.id, company_name=str(company_name).strip())
        db.session.add(isp_owner)
        db.session.flush()
        user.tenant_id = isp_owner.id
    elif role == UserRole.CUSTOMER:
        user.tenant_id = new_owner.id
        db.session.add(
            Customer(
                user_id=user.id,
                isp_owner_id=new_owner.id,
                name=user.name,
                email=user.email,
                status=CustomerStatus.ACTIVE,
            )
        )
    db.session.flush()
    db.session.expire(user, ['isp_owner', 'customer_profile'])
    logger.info('Changed role of %s to %s', user.email, role)
