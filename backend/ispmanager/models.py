"""
Database models for ISP Manager
"""
from datetime import datetime
import uuid

from ispmanager import db
from ispmanager.security import decrypt_secret, encrypt_secret, hash_password, verify_password


def _uuid():
    return str(uuid.uuid4())


def _iso(value):
    return value.isoformat() if value else None


class UserRole:
    SUPER_ADMIN = 'SUPER_ADMIN'
    SUB_ADMIN = 'SUB_ADMIN'
    ISP_OWNER = 'ISP_OWNER'
    CUSTOMER = 'CUSTOMER'

    ADMINS = (SUPER_ADMIN, SUB_ADMIN)
    ALL = (SUPER_ADMIN, SUB_ADMIN, ISP_OWNER, CUSTOMER)


class CustomerStatus:
    ACTIVE = 'ACTIVE'
    INACTIVE = 'INACTIVE'
    SUSPENDED = 'SUSPENDED'

    ALL = (ACTIVE, INACTIVE, SUSPENDED)


class InvoiceStatus:
    PENDING = 'PENDING'
    PAID = 'PAID'
    OVERDUE = 'OVERDUE'
    CANCELLED = 'CANCELLED'

    ALL = (PENDING, PAID, OVERDUE, CANCELLED)


class PaymentStatus:
    PENDING = 'PENDING'
    COMPLETED = 'COMPLETED'
    FAILED = 'FAILED'
    REFUNDED = 'REFUNDED'

    ALL = (PENDING, COMPLETED, FAILED, REFUNDED)


class RouterStatus:
    ONLINE = 'ONLINE'
    OFFLINE = 'OFFLINE'
    MAINTENANCE = 'MAINTENANCE'

    ALL = (ONLINE, OFFLINE, MAINTENANCE)


class PPPoEStatus:
    ACTIVE = 'ACTIVE'
    INACTIVE = 'INACTIVE'
    SUSPENDED = 'SUSPENDED'
    EXPIRED = 'EXPIRED'

    ALL = (ACTIVE, INACTIVE, SUSPENDED, EXPIRED)


class TimestampMixin:
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class User(db.Model, TimestampMixin):
    __tablename__ = 'users'

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    email = db.Column(db.String(120), unique=True, nullable=False, index=True)
    password_hash = db.Column(db.String(255), nullable=False)
    name = db.Column(db.String(120), nullable=False)
    role = db.Column(db.String(20), nullable=False, default=UserRole.CUSTOMER)
    # ISPOwner.id of the tenant the user works in; empty for admins
    tenant_id = db.Column(db.String(36), index=True)
    is_active = db.Column(db.Boolean, default=True, nullable=False)
    last_login = db.Column(db.DateTime)

    def set_password(self, password):
        """Hash and set password"""
        self.password_hash = hash_password(password)

    def check_password(self, password):
        """Verify password"""
        return verify_password(password, self.password_hash)

    @property
    def is_admin(self):
        return self.role in UserRole.ADMINS

    def to_dict(self, include_profile=False):
        """Convert to dictionary for API responses"""
        payload = {
            'id': self.id,
            'email': self.email,
            'name': self.name,
            'role': self.role,
            'tenant_id': self.tenant_id,
            'is_active': self.is_active,
            'created_at': _iso(self.created_at),
        }
        if not include_profile:
            return payload

        if self.role == UserRole.ISP_OWNER and self.isp_owner is not None:
            payload.update({
                'company_name': self.isp_owner.company_name,
                'phone': self.isp_owner.phone,
                'address': self.isp_owner.address,
            })
        elif self.role == UserRole.CUSTOMER and self.customer_profile is not None:
            payload.update({
                'customer_id': self.customer_profile.id,
                'customer_status': self.customer_profile.status,
                'phone': self.customer_profile.phone,
                'address': self.customer_profile.address,
            })
        return payload


class ISPOwner(db.Model, TimestampMixin):
    __tablename__ = 'isp_owners'

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    user_id = db.Column(db.String(36), db.ForeignKey('users.id'), unique=True, nullable=False)
    company_name = db.Column(db.String(150), nullable=False)
    phone = db.Column(db.String(30))
    address = db.Column(db.Text)

    user = db.relationship('User', backref=db.backref('isp_owner', uselist=False))
    customers = db.relationship('Customer', backref='isp_owner', lazy='dynamic')
    plans = db.relationship('Plan', backref='isp_owner', lazy='dynamic')
    routers = db.relationship('Router', backref='isp_owner', lazy='dynamic')
    invoices = db.relationship('Invoice', backref='isp_owner', lazy='dynamic')

    def to_dict(self):
        return {
            'id': self.id,
            'user_id': self.user_id,
            'company_name': self.company_name,
            'phone': self.phone,
            'address': self.address,
            'name': self.user.name if self.user else None,
            'email': self.user.email if self.user else None,
            'is_active': self.user.is_active if self.user else False,
            'created_at': _iso(self.created_at),
        }


class Customer(db.Model, TimestampMixin):
    __tablename__ = 'customers'

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    user_id = db.Column(db.String(36), db.ForeignKey('users.id'), unique=True)
    isp_owner_id = db.Column(db.String(36), db.ForeignKey('isp_owners.id'), nullable=False, index=True)
    plan_id = db.Column(db.String(36), db.ForeignKey('plans.id'))

    name = db.Column(db.String(120), nullable=False)
    email = db.Column(db.String(120), nullable=False, index=True)
    phone = db.Column(db.String(30))
    address = db.Column(db.Text)
    status = db.Column(db.String(20), nullable=False, default=CustomerStatus.ACTIVE)

    user = db.relationship('User', backref=db.backref('customer_profile', uselist=False))
    plan = db.relationship('Plan')
    invoices = db.relationship('Invoice', backref='customer', lazy='dynamic')
    payments = db.relationship('Payment', backref='customer', lazy='dynamic')
    pppoe_users = db.relationship('PPPoEUser', backref='customer', lazy='dynamic')

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'email': self.email,
            'phone': self.phone,
            'address': self.address,
            'status': self.status,
            'tenant_id': self.isp_owner_id,
            'plan_id': self.plan_id,
            'plan_name': self.plan.name if self.plan else None,
            'user_id': self.user_id,
            'created_at': _iso(self.created_at),
        }


class Plan(db.Model, TimestampMixin):
    __tablename__ = 'plans'

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    isp_owner_id = db.Column(db.String(36), db.ForeignKey('isp_owners.id'), nullable=False, index=True)
    created_by = db.Column(db.String(36), db.ForeignKey('users.id', ondelete='SET NULL'))

    name = db.Column(db.String(100), nullable=False)
    description = db.Column(db.Text)
    price = db.Column(db.Float, nullable=False)
    speed = db.Column(db.String(30), nullable=False)  # e.g. "10M/10M"
    data_limit = db.Column(db.String(30))  # e.g. "100GB", empty means unlimited
    validity = db.Column(db.Integer, nullable=False, default=30)  # days
    is_active = db.Column(db.Boolean, default=True, nullable=False)

    pppoe_users = db.relationship('PPPoEUser', backref='plan', lazy='dynamic')

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'description': self.description,
            'price': self.price,
            'speed': self.speed,
            'data_limit': self.data_limit,
            'validity': self.validity,
            'is_active': self.is_active,
            'tenant_id': self.isp_owner_id,
            'created_by': self.created_by,
            'created_at': _iso(self.created_at),
        }


class Invoice(db.Model, TimestampMixin):
    __tablename__ = 'invoices'
    __table_args__ = (
        db.UniqueConstraint('isp_owner_id', 'invoice_no', name='uq_invoices_tenant_invoice_no'),
    )

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    invoice_no = db.Column(db.String(20), nullable=False)
    customer_id = db.Column(db.String(36), db.ForeignKey('customers.id'), nullable=False, index=True)
    plan_id = db.Column(db.String(36), db.ForeignKey('plans.id'))
    isp_owner_id = db.Column(db.String(36), db.ForeignKey('isp_owners.id'), nullable=False, index=True)
    created_by = db.Column(db.String(36), db.ForeignKey('users.id', ondelete='SET NULL'))

    amount = db.Column(db.Float, nullable=False)
    due_date = db.Column(db.DateTime, nullable=False)
    status = db.Column(db.String(20), nullable=False, default=InvoiceStatus.PENDING, index=True)
    description = db.Column(db.Text)

    plan = db.relationship('Plan')
    payments = db.relationship('Payment', backref='invoice', lazy='dynamic')

    @property
    def amount_paid(self):
        return sum(
            payment.amount or 0.0
            for payment in self.payments
            if payment.status == PaymentStatus.COMPLETED
        )

    def to_dict(self):
        return {
            'id': self.id,
            'invoice_no': self.invoice_no,
            'customer_id': self.customer_id,
            'customer_name': self.customer.name if self.customer else None,
            'plan_id': self.plan_id,
            'plan_name': self.plan.name if self.plan else None,
            'amount': self.amount,
            'amount_paid': self.amount_paid,
            'due_date': _iso(self.due_date),
            'status': self.status,
            'description': self.description,
            'tenant_id': self.isp_owner_id,
            'created_at': _iso(self.created_at),
        }


class Payment(db.Model, TimestampMixin):
    __tablename__ = 'payments'

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    invoice_id = db.Column(db.String(36), db.ForeignKey('invoices.id'), nullable=False, index=True)
    customer_id = db.Column(db.String(36), db.ForeignKey('customers.id'), nullable=False, index=True)
    created_by = db.Column(db.String(36), db.ForeignKey('users.id', ondelete='SET NULL'))

    amount = db.Column(db.Float, nullable=False)
    payment_method = db.Column(db.String(30), nullable=False)  # cash, bank_transfer, card...
    transaction_id = db.Column(db.String(100))
    status = db.Column(db.String(20), nullable=False, default=PaymentStatus.COMPLETED, index=True)
    payment_date = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    notes = db.Column(db.Text)

    @property
    def payment_no(self):
        return f"PAY-{self.id[-6:].upper()}" if self.id else None

    def to_dict(self):
        return {
            'id': self.id,
            'payment_no': self.payment_no,
            'invoice_id': self.invoice_id,
            'invoice_no': self.invoice.invoice_no if self.invoice else None,
            'customer_id': self.customer_id,
            'customer_name': self.customer.name if self.customer else None,
            'amount': self.amount,
            'payment_method': self.payment_method,
            'transaction_id': self.transaction_id,
            'status': self.status,
            'payment_date': _iso(self.payment_date),
            'notes': self.notes,
            'created_at': _iso(self.created_at),
        }


class Router(db.Model, TimestampMixin):
    __tablename__ = 'routers'

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    isp_owner_id = db.Column(db.String(36), db.ForeignKey('isp_owners.id'), nullable=False, index=True)

    name = db.Column(db.String(100), nullable=False)
    ip_address = db.Column(db.String(45), unique=True, nullable=False)
    port = db.Column(db.Integer, default=8728, nullable=False)
    username = db.Column(db.String(50), nullable=False)
    password_encrypted = db.Column(db.Text, nullable=False)
    use_ssl = db.Column(db.Boolean, default=False, nullable=False)
    location = db.Column(db.String(200))
    model = db.Column(db.String(50))
    firmware = db.Column(db.String(50))

    status = db.Column(db.String(20), nullable=False, default=RouterStatus.OFFLINE)
    last_connected = db.Column(db.DateTime)

    pppoe_users = db.relationship('PPPoEUser', backref='router', lazy='dynamic')

    @property
    def password(self):
        return decrypt_secret(self.password_encrypted)

    @password.setter
    def password(self, value):
        self.password_encrypted = encrypt_secret(value)

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'ip_address': self.ip_address,
            'port': self.port,
            'username': self.username,
            'use_ssl': self.use_ssl,
            'location': self.location,
            'model': self.model,
            'firmware': self.firmware,
            'status': self.status,
            'last_connected': _iso(self.last_connected),
            'tenant_id': self.isp_owner_id,
            'pppoe_user_count': self.pppoe_users.count(),
            'created_at': _iso(self.created_at),
        }


class PPPoEUser(db.Model, TimestampMixin):
    __tablename__ = 'pppoe_users'

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    username = db.Column(db.String(64), unique=True, nullable=False, index=True)
    password_encrypted = db.Column(db.Text, nullable=False)
    customer_id = db.Column(db.String(36), db.ForeignKey('customers.id'), nullable=False, index=True)
    router_id = db.Column(db.String(36), db.ForeignKey('routers.id'), nullable=False, index=True)
    plan_id = db.Column(db.String(36), db.ForeignKey('plans.id'), nullable=False, index=True)

    status = db.Column(db.String(20), nullable=False, default=PPPoEStatus.ACTIVE)
    download_speed = db.Column(db.String(20))
    upload_speed = db.Column(db.String(20))
    data_limit = db.Column(db.String(30))
    expires_at = db.Column(db.DateTime)
    last_connected = db.Column(db.DateTime)

    @property
    def password(self):
        return decrypt_secret(self.password_encrypted)

    @password.setter
    def password(self, value):
        self.password_encrypted = encrypt_secret(value)

    @property
    def is_expired(self):
        return self.expires_at is not None and self.expires_at < datetime.utcnow()

    def to_dict(self):
        return {
            'id': self.id,
            'username': self.username,
            'customer_id': self.customer_id,
            'customer_name': self.customer.name if self.customer else None,
            'router_id': self.router_id,
            'router_name': self.router.name if self.router else None,
            'plan_id': self.plan_id,
            'plan_name': self.plan.name if self.plan else None,
            'status': self.status,
            'download_speed': self.download_speed,
            'upload_speed': self.upload_speed,
            'data_limit': self.data_limit,
            'expires_at': _iso(self.expires_at),
            'last_connected': _iso(self.last_connected),
            'created_at': _iso(self.created_at),
        }
