# Overview: Pytest coverage for the HTTP surface: status codes, gating and roles.

"""
API Tests

Exercise the blueprints through the Flask test client: domain errors map to
400/404/409, feature routes sit behind the subscription soft gate, and
writes that change the catalog require the admin role.
"""

import io

import pytest
from openpyxl import Workbook

from cafestock.services import invoice_service, subscription_service
from cafestock.services.products_service import create_product


PASSWORD = "Password123"


class TestAuthRoutes:
    def test_register_then_me(self, client, db_session):
        response = client.post('/api/auth/register', json={
            'username': 'newcafe', 'password': PASSWORD, 'confirm_password': PASSWORD,
        })
        assert response.status_code == 201
        body = response.get_json()
        assert body['subscription']['status'] == 'trialing'
        assert body['tenant_id'] == body['user']['id']

        me = client.get('/api/auth/me', headers={'Authorization': f"Bearer {body['token']}"})
        assert me.status_code == 200
        assert me.get_json()['subscription_active'] is True

    def test_register_duplicate(self, client, owner_a):
        response = client.post('/api/auth/register', json={'username': 'owner_a', 'password': PASSWORD})
        assert response.status_code == 409

    def test_register_weak_password(self, client, db_session):
        response = client.post('/api/auth/register', json={'username': 'x', 'password': 'short'})
        assert response.status_code == 400

    def test_login(self, client, owner_a):
        response = client.post('/api/auth/login', json={'username': 'owner_a', 'password': PASSWORD})
        assert response.status_code == 200
        assert response.get_json()['token']

    def test_login_bad_password(self, client, owner_a):
        response = client.post('/api/auth/login', json={'username': 'owner_a', 'password': 'nope12345'})
        assert response.status_code == 401

    def test_login_missing_fields(self, client, db_session):
        assert client.post('/api/auth/login', json={}).status_code == 400

    @pytest.mark.parametrize('body', [
        {'username': 42, 'password': PASSWORD},
        {'username': 'newcafe', 'password': 123456789},
        {'username': ['newcafe'], 'password': PASSWORD},
    ])
    def test_non_string_credentials(self, client, db_session, body):
        assert client.post('/api/auth/register', json=body).status_code == 400
        assert client.post('/api/auth/login', json=body).status_code == 400

    def test_logout_revokes_token(self, client, owner_a, auth_headers):
        headers = auth_headers(owner_a)
        assert client.post('/api/auth/logout', headers=headers).status_code == 200
        assert client.get('/api/auth/me', headers=headers).status_code == 401

    def test_missing_and_bad_tokens(self, client, db_session):
        assert client.get('/api/products').status_code == 401
        bad = {'Authorization': 'Bearer not-a-token'}
        assert client.get('/api/products', headers=bad).status_code == 401


class TestSubscriptionGate:
    def test_lapsed_trial_redirects_to_billing(self, client, owner_a, auth_headers, clock):
        clock.advance(days=15)
        headers = auth_headers(owner_a)

        response = client.get('/api/products', headers=headers)
        assert response.status_code == 303
        assert response.headers['Location'].endswith('/api/billing')
        body = response.get_json()
        assert body['flash']['type'] == 'error'
        assert body['redirect'].endswith('/api/billing')

        billing = client.get('/api/billing', headers=headers)
        assert billing.status_code == 200
        assert billing.get_json()['is_active'] is False

    def test_staff_gated_by_owner_subscription(self, client, staff_a, auth_headers, clock):
        clock.advance(days=15)
        response = client.get('/api/reports/dashboard', headers=auth_headers(staff_a))
        assert response.status_code == 303

    def test_free_mode_bypasses_gate(self, app, client, owner_a, auth_headers, clock, monkeypatch):
        monkeypatch.setitem(app.config, 'FREE_MODE', True)
        clock.advance(days=15)
        assert client.get('/api/products', headers=auth_headers(owner_a)).status_code == 200

    def test_approval_reopens_access(self, client, owner_a, auth_headers, clock):
        clock.advance(days=15)
        headers = auth_headers(owner_a)
        paid = client.post('/api/billing/pay', json={'reference': 'TXN1'}, headers=headers)
        assert paid.status_code == 201
        assert client.get('/api/products', headers=headers).status_code == 303

        payment_id = paid.get_json()['payment']['id']
        approved = client.post(f'/api/admin/payments/{payment_id}/approve', headers=headers)
        assert approved.status_code == 200
        assert approved.get_json()['subscription']['status'] == 'active'
        assert client.get('/api/products', headers=headers).status_code == 200


class TestProductRoutes:
    def test_create_with_generated_sku(self, client, owner_a, auth_headers):
        response = client.post('/api/products', headers=auth_headers(owner_a), json={
            'sku': '', 'name': 'Syrup', 'unit': 'bottle', 'min_qty': 2,
        })
        assert response.status_code == 201
        assert response.get_json()['sku'].startswith('PRD-')

    def test_create_validation(self, client, owner_a, auth_headers):
        response = client.post('/api/products', headers=auth_headers(owner_a), json={'name': 'Syrup'})
        assert response.status_code == 400

    def test_staff_cannot_write_catalog(self, client, staff_a, auth_headers):
        response = client.post('/api/products', headers=auth_headers(staff_a), json={
            'name': 'Syrup', 'unit': 'bottle',
        })
        assert response.status_code == 403

    def test_list_with_filters(self, client, owner_a, milk, auth_headers):
        headers = auth_headers(owner_a)
        body = client.get('/api/products?q=mil&low=1', headers=headers).get_json()
        assert [item['name'] for item in body['items']] == ['Milk']
        assert body['items'][0]['stock'] == 0
        assert body['items'][0]['is_low'] is True

    def test_delete_with_history_conflicts(self, client, owner_a, milk, auth_headers):
        headers = auth_headers(owner_a)
        client.post('/api/movements', headers=headers, json={'product_id': milk.id, 'kind': 'in', 'qty': 1})
        assert client.delete(f'/api/products/{milk.id}', headers=headers).status_code == 409

    def test_foreign_product_is_not_found(self, client, owner_b, milk, auth_headers):
        headers = auth_headers(owner_b)
        assert client.get(f'/api/products/{milk.id}', headers=headers).status_code == 404
        assert client.put(f'/api/products/{milk.id}', headers=headers, json={'name': 'x'}).status_code == 404
        assert client.delete(f'/api/products/{milk.id}', headers=headers).status_code == 404


class TestMovementRoutes:
    def test_staff_records_movements(self, client, staff_a, milk, auth_headers):
        headers = auth_headers(staff_a)
        response = client.post('/api/movements', headers=headers, json={
            'product_id': milk.id, 'kind': 'in', 'qty': 20, 'note': 'delivery',
        })
        assert response.status_code == 201
        assert response.get_json()['stock'] == 20

        listing = client.get(f'/api/movements?product_id={milk.id}', headers=headers).get_json()
        assert listing['items'][0]['created_by_name'] == 'staff_a'

    def test_oversized_integer_qty(self, client, owner_a, milk, auth_headers):
        response = client.post('/api/movements', headers=auth_headers(owner_a), json={
            'product_id': milk.id, 'kind': 'in', 'qty': 10 ** 400,
        })
        assert response.status_code == 400

    def test_negative_list_limit(self, client, owner_a, auth_headers):
        response = client.get('/api/movements?limit=-1', headers=auth_headers(owner_a))
        assert response.status_code == 400

    def test_insufficient_stock(self, client, owner_a, milk, auth_headers):
        headers = auth_headers(owner_a)
        client.post('/api/movements', headers=headers, json={'product_id': milk.id, 'kind': 'in', 'qty': 8})
        response = client.post('/api/movements', headers=headers, json={
            'product_id': milk.id, 'kind': 'out', 'qty': 10,
        })
        assert response.status_code == 409
        assert response.get_json()['available'] == 8

    def test_adjust_without_change(self, client, owner_a, milk, auth_headers):
        headers = auth_headers(owner_a)
        client.post('/api/movements', headers=headers, json={'product_id': milk.id, 'kind': 'in', 'qty': 3})
        response = client.post('/api/movements', headers=headers, json={
            'product_id': milk.id, 'kind': 'adjust', 'qty': 3,
        })
        assert response.status_code == 400
        assert response.get_json()['error'] == 'Stock level is unchanged'

    def test_quantity_below_precision(self, client, owner_a, milk, auth_headers):
        response = client.post('/api/movements', headers=auth_headers(owner_a), json={
            'product_id': milk.id, 'kind': 'in', 'qty': 0.0001,
        })
        assert response.status_code == 400

    @pytest.mark.parametrize('payload', [
        {'kind': 'in', 'qty': 1},
        {'product_id': '1', 'kind': 'in', 'qty': 1},
        {'product_id': 1, 'kind': 'in'},
    ])
    def test_malformed_requests(self, client, owner_a, auth_headers, payload):
        assert client.post('/api/movements', headers=auth_headers(owner_a), json=payload).status_code == 400

    def test_foreign_product(self, client, owner_b, milk, auth_headers):
        response = client.post('/api/movements', headers=auth_headers(owner_b), json={
            'product_id': milk.id, 'kind': 'in', 'qty': 1,
        })
        assert response.status_code == 404


class TestReportRoutes:
    def test_export_csv(self, client, owner_a, milk, auth_headers):
        response = client.get('/api/reports/export/products.csv', headers=auth_headers(owner_a))
        assert response.status_code == 200
        assert response.mimetype == 'text/csv'
        assert 'attachment' in response.headers['Content-Disposition']
        assert response.get_data(as_text=True) == "name,unit,min_qty,stock\nMilk,L,5,0\n"

    def test_import_csv(self, client, owner_a, auth_headers):
        headers = auth_headers(owner_a)
        data = {'file': (io.BytesIO(b"sku,name,unit,min_qty\nB1,Beans,kg,1\n"), 'products.csv')}
        response = client.post('/api/reports/import', headers=headers, data=data,
                               content_type='multipart/form-data')
        assert response.status_code == 201
        assert response.get_json()['imported'] == 1

    def test_import_workbook(self, client, owner_a, auth_headers):
        wb = Workbook()
        wb.active.append(['name', 'unit', 'min_qty'])
        wb.active.append(['Cups', 'pcs', 50])
        buffer = io.BytesIO()
        wb.save(buffer)
        buffer.seek(0)

        response = client.post('/api/reports/import', headers=auth_headers(owner_a),
                               data={'file': (buffer, 'products.xlsx')},
                               content_type='multipart/form-data')
        assert response.status_code == 201
        assert response.get_json()['imported'] == 1

    def test_import_requires_file(self, client, owner_a, auth_headers):
        response = client.post('/api/reports/import', headers=auth_headers(owner_a), data={},
                               content_type='multipart/form-data')
        assert response.status_code == 400

    def test_low_stock_limit(self, client, owner_a, milk, auth_headers):
        for sku in ('S1', 'S2'):
            create_product(tenant_id=owner_a.id, patch={'sku': sku, 'name': sku, 'unit': 'kg', 'min_qty': 1.0})
        headers = auth_headers(owner_a)

        assert client.get('/api/reports/low-stock', headers=headers).get_json()['count'] == 3
        capped = client.get('/api/reports/low-stock?limit=2', headers=headers).get_json()
        assert capped['count'] == 2
        assert capped['generated_at'].endswith('Z')
        assert client.get('/api/reports/low-stock?limit=-1', headers=headers).status_code == 400

    def test_dashboard_and_alerts(self, client, owner_a, milk, auth_headers):
        headers = auth_headers(owner_a)
        dashboard = client.get('/api/reports/dashboard', headers=headers).get_json()
        assert dashboard['total_products'] == 1
        alerts = client.get('/api/reports/alerts', headers=headers).get_json()
        assert alerts['count'] == 1


class TestBillingRoutes:
    def test_pay_requires_proof(self, client, owner_a, auth_headers):
        response = client.post('/api/billing/pay', headers=auth_headers(owner_a), json={})
        assert response.status_code == 400

    def test_pay_with_slip_and_download(self, client, owner_a, auth_headers):
        headers = auth_headers(owner_a)
        data = {'slip': (io.BytesIO(b"\x89PNG fake"), 'slip.png')}
        paid = client.post('/api/billing/pay', headers=headers, data=data,
                           content_type='multipart/form-data')
        assert paid.status_code == 201
        payment = paid.get_json()['payment']
        assert payment['has_slip'] is True

        slip = client.get(f"/api/admin/payments/{payment['id']}/slip", headers=headers)
        assert slip.status_code == 200
        assert slip.data == b"\x89PNG fake"
        slip.close()

    def test_slip_extension_checked(self, client, owner_a, auth_headers):
        data = {'slip': (io.BytesIO(b"#!/bin/sh"), 'slip.sh')}
        response = client.post('/api/billing/pay', headers=auth_headers(owner_a), data=data,
                               content_type='multipart/form-data')
        assert response.status_code == 400

    def test_staff_pays_for_owner(self, client, owner_a, staff_a, auth_headers):
        response = client.post('/api/billing/pay', headers=auth_headers(staff_a), json={'reference': 'T'})
        assert response.status_code == 201
        assert response.get_json()['payment']['user_id'] == owner_a.id

    def test_profile_and_invoice(self, client, owner_a, auth_headers):
        headers = auth_headers(owner_a)
        saved = client.post('/api/billing/profile', headers=headers, json={
            'business_name': 'Corner Cafe', 'address': '1 Main Road',
        })
        assert saved.status_code == 200
        assert client.post('/api/billing/profile', headers=headers, json={}).status_code == 400

        payment = subscription_service.submit_payment(user_id=owner_a.id, reference='TXN1')
        subscription_service.approve_payment(admin=owner_a, payment_id=payment.id)

        invoice = client.get(f'/api/billing/invoice/{payment.id}', headers=headers)
        assert invoice.status_code == 200
        assert invoice.get_json()['invoice_number'] == invoice_service.invoice_number(payment)
        assert client.get('/api/billing/invoice/999999', headers=headers).status_code == 404


class TestAdminRoutes:
    def test_staff_cannot_review(self, client, staff_a, auth_headers):
        assert client.get('/api/admin/payments', headers=auth_headers(staff_a)).status_code == 403

    def test_reject_then_approve_conflicts(self, client, owner_a, auth_headers):
        headers = auth_headers(owner_a)
        payment = subscription_service.submit_payment(user_id=owner_a.id, reference='A')
        rejected = client.post(f'/api/admin/payments/{payment.id}/reject', headers=headers,
                               json={'note': 'wrong amount'})
        assert rejected.status_code == 200
        assert rejected.get_json()['subscription']['status'] == 'past_due'

        again = client.post(f'/api/admin/payments/{payment.id}/approve', headers=headers)
        assert again.status_code == 409

    def test_other_tenant_payment_not_found(self, client, owner_a, owner_b, auth_headers):
        payment = subscription_service.submit_payment(user_id=owner_a.id, reference='A')
        response = client.post(f'/api/admin/payments/{payment.id}/approve', headers=auth_headers(owner_b))
        assert response.status_code == 404

    def test_queue_status_filter(self, client, owner_a, auth_headers):
        subscription_service.submit_payment(user_id=owner_a.id, reference='A')
        headers = auth_headers(owner_a)
        assert client.get('/api/admin/payments?status=pending', headers=headers).get_json()['count'] == 1
        assert client.get('/api/admin/payments?status=bogus', headers=headers).status_code == 400

    def test_create_and_list_users(self, client, owner_a, auth_headers):
        headers = auth_headers(owner_a)
        created = client.post('/api/admin/users', headers=headers, json={
            'username': 'barista', 'password': PASSWORD, 'role': 'staff',
        })
        assert created.status_code == 201
        assert created.get_json()['user']['tenant_id'] == owner_a.id

        dup = client.post('/api/admin/users', headers=headers, json={
            'username': 'barista', 'password': PASSWORD,
        })
        assert dup.status_code == 409

        names = [u['username'] for u in client.get('/api/admin/users', headers=headers).get_json()['items']]
        assert names == ['barista', 'owner_a']


class TestSystemRoutes:
    def test_health(self, client, db_session):
        response = client.get('/health')
        assert response.status_code == 200
        assert response.get_json()['checks']['database']['status'] == 'healthy'

    def test_unknown_route_is_json(self, client, db_session):
        response = client.get('/api/nope')
        assert response.status_code == 404
        assert response.get_json() == {'error': 'Not found'}
