from ispmanager.models import ISPOwner, Plan, User, UserRole
from ispmanager.seed import seed_data


def test_seed_creates_demo_accounts_once(app):
    with app.app_context():
        seed_data()
        seed_data()

        assert User.query.count() == 4
        assert Plan.query.count() == 2
        owner = ISPOwner.query.one()
        assert owner.company_name == 'Default ISP Company'
        customer = User.query.filter_by(email='customer@isp.com').one()
        assert customer.tenant_id == owner.id
        assert customer.customer_profile.isp_owner_id == owner.id


def test_seeded_admin_can_log_in(client, app):
    with app.app_context():
        seed_data()

    response = client.post('/api/auth/login', json={'email': 'admin@isp.com', 'password': 'password'})

    assert response.status_code == 200
    assert response.get_json()['user']['role'] == UserRole.SUPER_ADMIN


def test_seed_cli_command(app):
    result = app.test_cli_runner().invoke(args=['seed'])

    assert result.exit_code == 0
    assert 'Seeding complete' in result.output
    with app.app_context():
        assert User.query.filter_by(role=UserRole.SUB_ADMIN).count() == 1


def test_create_super_admin_cli_command(app):
    runner = app.test_cli_runner()

    created = runner.invoke(args=['create-super-admin', '--email', 'ops@test.local', '--password', 'supersecret'])
    duplicate = runner.invoke(args=['create-super-admin', '--email', 'ops@test.local', '--password', 'supersecret'])

    assert created.exit_code == 0
    assert 'Super admin created: ops@test.local' in created.output
    assert duplicate.exit_code != 0
    assert 'already exists' in duplicate.output
    with app.app_context():
        user = User.query.filter_by(email='ops@test.local').one()
        assert user.role == UserRole.SUPER_ADMIN
        assert user.check_password('supersecret')
