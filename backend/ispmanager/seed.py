import click

from ispmanager import db
from ispmanager.models import Plan, User, UserRole
from ispmanager.services.account_service import AccountError, create_account

DEFAULT_PASSWORD = 'password'


def _ensure_account(email, name, role, **extra):
    existing = User.query.filter_by(email=email).first()
    if existing is not None:
        click.echo(f"Exists: {email}")
        return existing
    user = create_account(email=email, password=DEFAULT_PASSWORD, name=name, role=role, **extra)
    click.echo(f"Created {role}: {email}")
    return user


def seed_data():
    """Seeds the database with the default demo accounts. Safe to run twice."""

    _ensure_account('admin@isp.com', 'Super Admin', UserRole.SUPER_ADMIN)
    _ensure_account('subadmin@isp.com', 'Sub Admin', UserRole.SUB_ADMIN)
    owner = _ensure_account(
        'ispowner@isp.com',
        'ISP Owner',
        UserRole.ISP_OWNER,
        company_name='Default ISP Company',
        phone='+1234567890',
        address='123 Main Street',
    )

    if Plan.query.filter_by(isp_owner_id=owner.tenant_id).count() == 0:
        db.session.add_all([
            Plan(
                isp_owner_id=owner.tenant_id,
                created_by=owner.id,
                name='Basic 10M',
                description='Entry level home plan',
                price=19.99,
                speed='10M/10M',
                data_limit='100GB',
                validity=30,
            ),
            Plan(
                isp_owner_id=owner.tenant_id,
                created_by=owner.id,
                name='Pro 50M',
                description='Unlimited plan for heavy users',
                price=39.99,
                speed='50M/20M',
                validity=30,
            ),
        ])
        click.echo("Created sample plans")

    _ensure_account(
        'customer@isp.com',
        'Demo Customer',
        UserRole.CUSTOMER,
        tenant_id=owner.tenant_id,
        phone='+1987654321',
        address='456 Oak Avenue',
    )
    db.session.commit()
    click.echo(f"Seeding complete. Default password: {DEFAULT_PASSWORD}")


def register_commands(app):
    @app.cli.command('seed')
    def seed_command():
        """Create the demo users and plans."""
        seed_data()

    @app.cli.command('create-super-admin')
    @click.option('--email', required=True)
    @click.option('--name', default='Super Admin', show_default=True)
    @click.password_option()
    def create_super_admin_command(email, name, password):
        """Create a SUPER_ADMIN account."""
        try:
            user = create_account(email=email, password=password, name=name, role=UserRole.SUPER_ADMIN)
        except AccountError as exc:
            db.session.rollback()
            raise click.ClickException(str(exc))
        db.session.commit()
        click.echo(f"Super admin created: {user.email}")
