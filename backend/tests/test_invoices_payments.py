from datetime import datetime, timedelta

from ispmanager import db
from ispmanager.models import Invoice, InvoiceStatus, Payment, PaymentStatus, Plan, UserRole


def _future(days=10):
    return (datetime.utcnow() + timedelta(days=days)).date().isoformat()


def _create_invoice(client, tenant, amount=25.0, due_date=None):
    response = client.post(
        '/api/invoices',
        json={
            'customer_id': tenant['customer_id'],
            'plan_id': tenant['plan_id'],
            'amount': amount,
            'due_date': due_date or _future(),
            'description': 'Monthly service',
        },
        headers=tenant['owner_headers'],
    )
    assert response.status_code == 201
    return response.get_json()['invoice']


def _pay(client, tenant, invoice_id, amount, **extra):
    return client.post(
        '/api/payments',
        json={
            'invoice_id': invoice_id,
            'customer_id': tenant['customer_id'],
            'amount': amount,
            'method': 'Cash',
            **extra,
        },
        headers=tenant['owner_headers'],
    )


def test_invoice_numbers_are_sequential_per_tenant(client, tenant):
    first = _create_invoice(client, tenant)
    second = _create_invoice(client, tenant)

    assert first['invoice_no'] == 'INV-000001'
    assert second['invoice_no'] == 'INV-000002'
    assert first['status'] == InvoiceStatus.PENDING
    assert first['customer_name'] == 'Jane Doe'
    assert first['plan_name'] == 'Home 20M'
    assert first['amount_paid'] == 0


def test_create_invoice_validation(client, tenant):
    missing = client.post('/api/invoices', json={'amount': 10}, headers=tenant['owner_headers'])
    bad_date = client.post(
        '/api/invoices',
        json={
            'customer_id': tenant['customer_id'], 'plan_id': tenant['plan_id'],
            'amount': 10, 'due_date': 'next week',
        },
        headers=tenant['owner_headers'],
    )
    unknown_customer = client.post(
        '/api/invoices',
        json={'customer_id': 'nope', 'plan_id': tenant['plan_id'], 'amount': 10, 'due_date': _future()},
        headers=tenant['owner_headers'],
    )
    as_customer = client.post(
        '/api/invoices',
        json={'customer_id': tenant['customer_id'], 'plan_id': tenant['plan_id'], 'amount': 10, 'due_date': _future()},
        headers=tenant['customer_headers'],
    )

    assert missing.status_code == 400
    assert bad_date.status_code == 400
    assert bad_date.get_json()['error'] == 'Invalid due date'
    assert unknown_customer.status_code == 404
    assert as_customer.status_code == 403


def test_invoice_rejects_plan_from_other_tenant(client, app, make_user, tenant):
    rival = make_user('rival@test.local', UserRole.ISP_OWNER, company_name='Rival Net')
    with app.app_context():
        plan = Plan(isp_owner_id=rival['tenant_id'], name='Rival', price=5, speed='5M', validity=30)
        db.session.add(plan)
        db.session.commit()
        rival_plan_id = plan.id

    response = client.post(
        '/api/invoices',
        json={'customer_id': tenant['customer_id'], 'plan_id': rival_plan_id, 'amount': 10, 'due_date': _future()},
        headers=tenant['owner_headers'],
    )

    assert response.status_code == 404
    assert response.get_json()['error'] == 'Plan not found'


def test_partial_then_full_payment_marks_invoice_paid(client, tenant):
    invoice = _create_invoice(client, tenant, amount=25.0)

    partial = _pay(client, tenant, invoice['id'], 10)
    assert partial.status_code == 201
    assert partial.get_json()['invoice']['status'] == InvoiceStatus.PENDING
    assert partial.get_json()['invoice']['amount_paid'] == 10.0
    payment = partial.get_json()['payment']
    assert payment['payment_method'] == 'cash'
    assert payment['status'] == PaymentStatus.COMPLETED
    assert payment['payment_no'].startswith('PAY-')

    full = _pay(client, tenant, invoice['id'], 15)
    assert full.get_json()['invoice']['status'] == InvoiceStatus.PAID


def test_pending_payments_do_not_settle_invoice(client, tenant):
    invoice = _create_invoice(client, tenant, amount=25.0)

    response = _pay(client, tenant, invoice['id'], 25, status='pending')

    assert response.status_code == 201
    assert response.get_json()['invoice']['status'] == InvoiceStatus.PENDING


def test_refund_and_delete_recompute_status(client, tenant):
    invoice = _create_invoice(client, tenant, amount=20.0)
    payment_id = _pay(client, tenant, invoice['id'], 20).get_json()['payment']['id']

    refunded = client.put(
        f'/api/payments/{payment_id}', json={'status': 'refunded'}, headers=tenant['owner_headers'],
    )
    assert refunded.get_json()['invoice']['status'] == InvoiceStatus.PENDING

    restored = client.put(
        f'/api/payments/{payment_id}', json={'status': 'completed'}, headers=tenant['owner_headers'],
    )
    assert restored.get_json()['invoice']['status'] == InvoiceStatus.PAID

    deleted = client.delete(f'/api/payments/{payment_id}', headers=tenant['owner_headers'])
    assert deleted.status_code == 200
    assert deleted.get_json()['invoice']['status'] == InvoiceStatus.PENDING


def test_unpaid_invoice_past_due_becomes_overdue_on_payment(client, tenant):
    past = (datetime.utcnow() - timedelta(days=3)).isoformat()
    invoice = _create_invoice(client, tenant, amount=50.0, due_date=past)

    response = _pay(client, tenant, invoice['id'], 10)

    assert response.get_json()['invoice']['status'] == InvoiceStatus.OVERDUE


def test_payment_validation(client, make_user, tenant):
    invoice = _create_invoice(client, tenant)
    other = make_user('other@test.local', UserRole.CUSTOMER, tenant_id=tenant['tenant_id'])

    missing = client.post('/api/payments', json={'amount': 5}, headers=tenant['owner_headers'])
    zero = _pay(client, tenant, invoice['id'], 0)
    wrong_customer = client.post(
        '/api/payments',
        json={'invoice_id': invoice['id'], 'customer_id': other['customer_id'], 'amount': 5, 'method': 'cash'},
        headers=tenant['owner_headers'],
    )
    bad_status = _pay(client, tenant, invoice['id'], 5, status='lost')

    assert missing.status_code == 400
    assert zero.status_code == 400
    assert wrong_customer.status_code == 400
    assert wrong_customer.get_json()['error'] == 'Customer does not match invoice'
    assert bad_status.status_code == 400


def test_invoice_update_and_cancel(client, tenant):
    invoice = _create_invoice(client, tenant, amount=25.0)

    raised = client.put(f"/api/invoices/{invoice['id']}", json={'amount': 40}, headers=tenant['owner_headers'])
    cancelled = client.put(
        f"/api/invoices/{invoice['id']}", json={'status': 'cancelled'}, headers=tenant['owner_headers'],
    )
    paid_after_cancel = _pay(client, tenant, invoice['id'], 40)

    assert raised.get_json()['invoice']['amount'] == 40.0
    assert cancelled.get_json()['invoice']['status'] == InvoiceStatus.CANCELLED
    assert paid_after_cancel.get_json()['invoice']['status'] == InvoiceStatus.CANCELLED


def test_invoice_detail_lists_payments_and_filters(client, tenant):
    invoice = _create_invoice(client, tenant, amount=25.0)
    _create_invoice(client, tenant, amount=30.0)
    _pay(client, tenant, invoice['id'], 25)

    detail = client.get(f"/api/invoices/{invoice['id']}", headers=tenant['owner_headers'])
    paid = client.get('/api/invoices?status=paid', headers=tenant['owner_headers'])
    payments = client.get(f"/api/payments?invoice_id={invoice['id']}", headers=tenant['owner_headers'])

    assert len(detail.get_json()['invoice']['payments']) == 1
    assert [item['id'] for item in paid.get_json()['invoices']] == [invoice['id']]
    assert payments.get_json()['pagination']['total'] == 1


def test_invoices_hidden_across_tenants(client, make_user, auth_headers, tenant):
    invoice = _create_invoice(client, tenant)
    rival = make_user('rival@test.local', UserRole.ISP_OWNER, company_name='Rival Net')
    headers = auth_headers(rival['id'])

    assert client.get(f"/api/invoices/{invoice['id']}", headers=headers).status_code == 404
    assert client.get('/api/invoices', headers=headers).get_json()['invoices'] == []
    assert _pay_as(client, headers, tenant, invoice['id']).status_code == 404


def _pay_as(client, headers, tenant, invoice_id):
    return client.post(
        '/api/payments',
        json={'invoice_id': invoice_id, 'customer_id': tenant['customer_id'], 'amount': 5, 'method': 'cash'},
        headers=headers,
    )


def test_delete_invoice_removes_payments(client, app, tenant):
    invoice = _create_invoice(client, tenant)
    _pay(client, tenant, invoice['id'], 5)

    response = client.delete(f"/api/invoices/{invoice['id']}", headers=tenant['owner_headers'])

    assert response.status_code == 200
    with app.app_context():
        assert db.session.get(Invoice, invoice['id']) is None
        assert Payment.query.count() == 0


def test_invoice_number_collision_is_retried(client, monkeypatch, tenant):
    _create_invoice(client, tenant)
    numbers = iter(['INV-000001', 'INV-000002'])
    monkeypatch.setattr('ispmanager.routes.invoices.next_invoice_number', lambda tenant_id: next(numbers))

    invoice = _create_invoice(client, tenant)

    assert invoice['invoice_no'] == 'INV-000002'
