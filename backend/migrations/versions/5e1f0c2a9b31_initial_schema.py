"""initial_schema

Revision ID: 5e1f0c2a9b31
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '5e1f0c2a9b31'
down_revision = None
branch_labels = None
depends_on = None


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
    ]


def upgrade():
    op.create_table(
        'users',
        sa.Column('id', sa.String(length=36), primary_key=True),
        sa.Column('email', sa.String(length=120), nullable=False),
        sa.Column('password_hash', sa.String(length=255), nullable=False),
        sa.Column('name', sa.String(length=120), nullable=False),
        sa.Column('role', sa.String(length=20), nullable=False),
        sa.Column('tenant_id', sa.String(length=36), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('last_login', sa.DateTime(), nullable=True),
        *_timestamps(),
    )
    op.create_index('ix_users_email', 'users', ['email'], unique=True)
    op.create_index('ix_users_tenant_id', 'users', ['tenant_id'])

    op.create_table(
        'isp_owners',
        sa.Column('id', sa.String(length=36), primary_key=True),
        sa.Column('user_id', sa.String(length=36), sa.ForeignKey('users.id'), nullable=False, unique=True),
        sa.Column('company_name', sa.String(length=150), nullable=False),
        sa.Column('phone', sa.String(length=30), nullable=True),
        sa.Column('address', sa.Text(), nullable=True),
        *_timestamps(),
    )

    op.create_table(
        'plans',
        sa.Column('id', sa.String(length=36), primary_key=True),
        sa.Column('isp_owner_id', sa.String(length=36), sa.ForeignKey('isp_owners.id'), nullable=False),
        sa.Column('created_by', sa.String(length=36), sa.ForeignKey('users.id', ondelete='SET NULL'), nullable=True),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('price', sa.Float(), nullable=False),
        sa.Column('speed', sa.String(length=30), nullable=False),
        sa.Column('data_limit', sa.String(length=30), nullable=True),
        sa.Column('validity', sa.Integer(), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        *_timestamps(),
    )
    op.create_index('ix_plans_isp_owner_id', 'plans', ['isp_owner_id'])

    op.create_table(
        'customers',
        sa.Column('id', sa.String(length=36), primary_key=True),
        sa.Column('user_id', sa.String(length=36), sa.ForeignKey('users.id'), nullable=True, unique=True),
        sa.Column('isp_owner_id', sa.String(length=36), sa.ForeignKey('isp_owners.id'), nullable=False),
        sa.Column('plan_id', sa.String(length=36), sa.ForeignKey('plans.id'), nullable=True),
        sa.Column('name', sa.String(length=120), nullable=False),
        sa.Column('email', sa.String(length=120), nullable=False),
        sa.Column('phone', sa.String(length=30), nullable=True),
        sa.Column('address', sa.Text(), nullable=True),
        sa.Column('status', sa.String(length=20), nullable=False),
        *_timestamps(),
    )
    op.create_index('ix_customers_isp_owner_id', 'customers', ['isp_owner_id'])
    op.create_index('ix_customers_email', 'customers', ['email'])

    op.create_table(
        'invoices',
        sa.Column('id', sa.String(length=36), primary_key=True),
        sa.Column('invoice_no', sa.String(length=20), nullable=False),
        sa.Column('customer_id', sa.String(length=36), sa.ForeignKey('customers.id'), nullable=False),
        sa.Column('plan_id', sa.String(length=36), sa.ForeignKey('plans.id'), nullable=True),
        sa.Column('isp_owner_id', sa.String(length=36), sa.ForeignKey('isp_owners.id'), nullable=False),
        sa.Column('created_by', sa.String(length=36), sa.ForeignKey('users.id', ondelete='SET NULL'), nullable=True),
        sa.Column('amount', sa.Float(), nullable=False),
        sa.Column('due_date', sa.DateTime(), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint('isp_owner_id', 'invoice_no', name='uq_invoices_tenant_invoice_no'),
    )
    op.create_index('ix_invoices_customer_id', 'invoices', ['customer_id'])
    op.create_index('ix_invoices_isp_owner_id', 'invoices', ['isp_owner_id'])
    op.create_index('ix_invoices_status', 'invoices', ['status'])

    op.create_table(
        'payments',
        sa.Column('id', sa.String(length=36), primary_key=True),
        sa.Column('invoice_id', sa.String(length=36), sa.ForeignKey('invoices.id'), nullable=False),
        sa.Column('customer_id', sa.String(length=36), sa.ForeignKey('customers.id'), nullable=False),
        sa.Column('created_by', sa.String(length=36), sa.ForeignKey('users.id', ondelete='SET NULL'), nullable=True),
        sa.Column('amount', sa.Float(), nullable=False),
        sa.Column('payment_method', sa.String(length=30), nullable=False),
        sa.Column('transaction_id', sa.String(length=100), nullable=True),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('payment_date', sa.DateTime(), nullable=False),
        sa.Column('notes', sa.Text(), nullable=True),
        *_timestamps(),
    )
    op.create_index('ix_payments_invoice_id', 'payments', ['invoice_id'])
    op.create_index('ix_payments_customer_id', 'payments', ['customer_id'])
    op.create_index('ix_payments_status', 'payments', ['status'])

    op.create_table(
        'routers',
        sa.Column('id', sa.String(length=36), primary_key=True),
        sa.Column('isp_owner_id', sa.String(length=36), sa.ForeignKey('isp_owners.id'), nullable=False),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column('ip_address', sa.String(length=45), nullable=False, unique=True),
        sa.Column('port', sa.Integer(), nullable=False),
        sa.Column('username', sa.String(length=50), nullable=False),
        sa.Column('password_encrypted', sa.Text(), nullable=False),
        sa.Column('use_ssl', sa.Boolean(), nullable=False),
        sa.Column('location', sa.String(length=200), nullable=True),
        sa.Column('model', sa.String(length=50), nullable=True),
        sa.Column('firmware', sa.String(length=50), nullable=True),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('last_connected', sa.DateTime(), nullable=True),
        *_timestamps(),
    )
    op.create_index('ix_routers_isp_owner_id', 'routers', ['isp_owner_id'])

    op.create_table(
        'pppoe_users',
        sa.Column('id', sa.String(length=36), primary_key=True),
        sa.Column('username', sa.String(length=64), nullable=False),
        sa.Column('password_encrypted', sa.Text(), nullable=False),
        sa.Column('customer_id', sa.String(length=36), sa.ForeignKey('customers.id'), nullable=False),
        sa.Column('router_id', sa.String(length=36), sa.ForeignKey('routers.id'), nullable=False),
        sa.Column('plan_id', sa.String(length=36), sa.ForeignKey('plans.id'), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('download_speed', sa.String(length=20), nullable=True),
        sa.Column('upload_speed', sa.String(length=20), nullable=True),
        sa.Column('data_limit', sa.String(length=30), nullable=True),
        sa.Column('expires_at', sa.DateTime(), nullable=True),
        sa.Column('last_connected', sa.DateTime(), nullable=True),
        *_timestamps(),
    )
    op.create_index('ix_pppoe_users_username', 'pppoe_users', ['username'], unique=True)
    op.create_index('ix_pppoe_users_customer_id', 'pppoe_users', ['customer_id'])
    op.create_index('ix_pppoe_users_router_id', 'pppoe_users', ['router_id'])
    op.create_index('ix_pppoe_users_plan_id', 'pppoe_users', ['plan_id'])


def downgrade():
    op.drop_table('pppoe_users')
    op.drop_table('routers')
    op.drop_table('payments')
    op.drop_table('invoices')
    op.drop_table('customers')
    op.drop_table('plans')
    op.drop_table('isp_owners')
    op.drop_table('users')
