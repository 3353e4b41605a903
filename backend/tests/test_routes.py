# Overview: Pytest coverage for the JSON API surface (status codes, error kinds, actor headers).

import logging

import pytest

from erp.models import ProvisionalSale, Sale, Stock


def actor_headers(user_id: int = 1, company_id: int | None = None, system: bool = False) -> dict:
    """Helper to create acting-user headers."""
    headers = {'X-User-Id': str(user_id)}
    if company_id is not None:
        headers['X-Company-Id'] = str(company_id)
    if system:
        headers['X-System-User'] = 'true'
    return headers


@pytest.fixture
def created_purchase(client, db_session, company_a, supplier, product_x, product_y):
    response = client.post('/api/purchases', headers=actor_headers(company_id=company_a.id), json={
        'company_id': company_a.id,
        'supplier_id': supplier.id,
        'lines': [
            {'product_id': product_x.id, 'qty': 10, 'unit_price_cents': 500},
            {'product_id': product_y.id, 'qty': 5, 'unit_price_cents': 800},
        ],
    })
    assert response.status_code == 201
    return response.json


class TestActorHeaders:

    def test_missing_user_is_401(self, client, db_session):
        response = client.get('/api/suppliers/summaries')
        assert response.status_code == 401
        assert response.json['error'] == 'Authentication required'

    def test_malformed_user_is_400(self, client, db_session):
        response = client.get('/api/suppliers/summaries', headers={'X-User-Id': 'abc'})
        assert response.status_code == 400

    def test_health_is_public(self, client, db_session):
        response = client.get('/health')
        assert response.status_code == 200
        assert response.json['status'] == 'healthy'


class TestPurchaseRoutes:

    def test_approve_scenario(self, client, created_purchase, company_a, supplier, freight_category):
        response = client.post(
            f"/api/purchases/{created_purchase['id']}/approve",
            headers=actor_headers(user_id=9, company_id=company_a.id),
            json={'expenses': [{'category_id': freight_category.id, 'amount_cents': 7500}]},
        )
        assert response.status_code == 200
        body = response.json
        assert body['purchase']['final_total_cents'] == 16500
        assert body['purchase']['approved_by_user_id'] == 9
        assert sorted(c['total_cost_per_unit_cents'] for c in body['product_costs']) == [1000, 1300]
        assert [r['type'] for r in body['payment_receipts']] == ['MAIN_PURCHASE']

        balance = client.get(f'/api/suppliers/{supplier.id}/balance', headers=actor_headers())
        assert balance.json['current_balance_cents'] == 9000

    def test_addendum_without_expenses_is_409(self, client, created_purchase, company_a):
        url = f"/api/purchases/{created_purchase['id']}/approve"
        headers = actor_headers(company_id=company_a.id)
        assert client.post(url, headers=headers, json={}).status_code == 200

        response = client.post(url, headers=headers, json={'expenses': []})
        assert response.status_code == 409
        assert response.json['kind'] == 'INVALID_STATE'

    def test_foreign_company_is_403(self, client, created_purchase, company_b):
        response = client.post(
            f"/api/purchases/{created_purchase['id']}/approve",
            headers=actor_headers(company_id=company_b.id),
            json={},
        )
        assert response.status_code == 403
        assert response.json['kind'] == 'FORBIDDEN'

    def test_float_amount_is_400(self, client, created_purchase, company_a, freight_category):
        response = client.post(
            f"/api/purchases/{created_purchase['id']}/approve",
            headers=actor_headers(company_id=company_a.id),
            json={'expenses': [{'category_id': freight_category.id, 'amount_cents': 12.5}]},
        )
        assert response.status_code == 400
        assert response.json['kind'] == 'VALIDATION'

    def test_unknown_purchase_is_404(self, client, db_session):
        response = client.post('/api/purchases/999/approve', headers=actor_headers(system=True), json={})
        assert response.status_code == 404
        assert response.json['kind'] == 'NOT_FOUND'

    def test_cancel_draft_then_approve_is_409(self, client, created_purchase, company_a):
        headers = actor_headers(company_id=company_a.id)
        cancelled = client.post(f"/api/purchases/{created_purchase['id']}/cancel", headers=headers)
        assert cancelled.status_code == 200
        assert cancelled.json['status'] == 'CANCELLED'

        response = client.post(f"/api/purchases/{created_purchase['id']}/approve", headers=headers, json={})
        assert response.status_code == 409

    def test_categories_roundtrip(self, client, db_session):
        created = client.post('/api/purchases/expense-categories', headers=actor_headers(),
                              json={'name': 'Insurance'})
        assert created.status_code == 201
        listed = client.get('/api/purchases/expense-categories', headers=actor_headers())
        assert [c['name'] for c in listed.json['items']] == ['Insurance']


class TestPaymentReceiptRoutes:

    def test_pay_and_account(self, client, created_purchase, company_a, supplier):
        approved = client.post(
            f"/api/purchases/{created_purchase['id']}/approve",
            headers=actor_headers(company_id=company_a.id), json={},
        ).json
        receipt_id = approved['payment_receipts'][0]['id']

        paid = client.post(f'/api/payment-receipts/{receipt_id}/pay', headers=actor_headers(), json={})
        assert paid.status_code == 200
        assert paid.json['status'] == 'PAID'

        account = client.get(f'/api/suppliers/{supplier.id}/account', headers=actor_headers()).json
        assert account['current_balance_cents'] == 0
        assert account['total_credit_cents'] == 9000
        assert account['total_debit_cents'] == 9000

        stats = client.get('/api/payment-receipts/stats', headers=actor_headers()).json
        assert stats['paid_count'] == 1

        cancelled = client.post(f'/api/payment-receipts/{receipt_id}/cancel', headers=actor_headers(), json={})
        assert cancelled.status_code == 200
        again = client.post(f'/api/payment-receipts/{receipt_id}/cancel', headers=actor_headers(), json={})
        assert again.status_code == 409

    def test_list_filters(self, client, db_session, supplier):
        client.post('/api/payment-receipts', headers=actor_headers(), json={
            'supplier_id': supplier.id, 'amount_cents': 1200, 'type': 'return',
        })
        response = client.get('/api/payment-receipts?type=RETURN&status=PENDING', headers=actor_headers())
        assert response.status_code == 200
        assert response.json['count'] == 1
        assert response.json['items'][0]['supplier_name'] == supplier.name

    def test_ledger_verify_route(self, client, db_session, supplier):
        client.post('/api/payment-receipts', headers=actor_headers(), json={
            'supplier_id': supplier.id, 'amount_cents': 1200, 'type': 'RETURN',
        })
        response = client.get(f'/api/suppliers/{supplier.id}/ledger/verify', headers=actor_headers())
        assert response.json == {'supplier_id': supplier.id, 'consistent': True, 'drift': []}

    def test_installments(self, client, db_session, supplier):
        receipt = client.post('/api/payment-receipts', headers=actor_headers(), json={
            'supplier_id': supplier.id, 'amount_cents': 1200, 'type': 'RETURN',
        }).json
        url = f"/api/payment-receipts/{receipt['id']}/installments"

        added = client.post(url, headers=actor_headers(), json={'amount_cents': 500, 'payment_method': 'CASH'})
        assert added.status_code == 201
        assert added.json['receipt']['status'] == 'PENDING'
        assert added.json['receipt']['remaining_cents'] == 700

        too_much = client.post(url, headers=actor_headers(), json={'amount_cents': 701})
        assert too_much.status_code == 400

        listed = client.get(url, headers=actor_headers())
        assert [i['amount_cents'] for i in listed.json['items']] == [500]

        deleted = client.delete(
            f"/api/payment-receipts/installments/{added.json['installment']['id']}", headers=actor_headers()
        )
        assert deleted.status_code == 200
        assert deleted.json['installments_paid_cents'] == 0

        balance = client.get(f'/api/suppliers/{supplier.id}/balance', headers=actor_headers())
        assert balance.json['current_balance_cents'] == 1200


class TestProvisionalSaleRoutes:

    def _create(self, client, company_id, product_id, customer_id=None):
        return client.post('/api/provisional-sales', headers=actor_headers(company_id=company_id), json={
            'company_id': company_id,
            'customer_id': customer_id,
            'lines': [{'product_id': product_id, 'qty': 3, 'unit_price_cents': 2000}],
        })

    def test_create_convert_and_lock(self, client, db_session, company_a, customer, product_x):
        db_session.add(Stock(company_id=company_a.id, product_id=product_x.id, boxes=10))
        db_session.commit()

        created = self._create(client, company_a.id, product_x.id, customer.id)
        assert created.status_code == 201
        sale_id = created.json['id']
        headers = actor_headers(company_id=company_a.id)

        converted = client.post(f'/api/provisional-sales/{sale_id}/convert', headers=headers,
                                json={'sale_type': 'CASH', 'payment_method': 'CASH'})
        assert converted.status_code == 200
        assert converted.json['status'] == 'CONVERTED'
        assert converted.json['converted_sale']['id'] == converted.json['converted_sale_id']

        stock = db_session.query(Stock).filter_by(company_id=company_a.id, product_id=product_x.id).one()
        db_session.refresh(stock)
        assert stock.boxes == 7

        again = client.post(f'/api/provisional-sales/{sale_id}/convert', headers=headers,
                            json={'sale_type': 'CASH'})
        assert again.status_code == 409

        update = client.put(f'/api/provisional-sales/{sale_id}', headers=headers, json={'notes': 'late edit'})
        assert update.status_code == 409
        delete = client.delete(f'/api/provisional-sales/{sale_id}', headers=headers)
        assert delete.status_code == 409

    def test_other_company_cannot_update(self, client, db_session, company_a, company_b, product_x):
        sale_id = self._create(client, company_a.id, product_x.id).json['id']
        response = client.put(f'/api/provisional-sales/{sale_id}',
                              headers=actor_headers(company_id=company_b.id), json={'notes': 'x'})
        assert response.status_code == 403

    def test_system_user_can_update_any_company(self, client, db_session, company_a, product_x):
        sale_id = self._create(client, company_a.id, product_x.id).json['id']
        response = client.put(f'/api/provisional-sales/{sale_id}',
                              headers=actor_headers(system=True), json={'notes': 'checked'})
        assert response.status_code == 200
        assert response.json['notes'] == 'checked'

    def test_status_and_listing(self, client, db_session, company_a, product_x):
        sale_id = self._create(client, company_a.id, product_x.id).json['id']
        headers = actor_headers(company_id=company_a.id)

        response = client.patch(f'/api/provisional-sales/{sale_id}/status', headers=headers,
                                json={'status': 'pending'})
        assert response.status_code == 200
        assert response.json['status'] == 'PENDING'

        listed = client.get(f'/api/provisional-sales?company_id={company_a.id}&status=PENDING', headers=headers)
        assert listed.json['count'] == 1

    def test_empty_lines_is_400(self, client, db_session, company_a):
        response = client.post('/api/provisional-sales', headers=actor_headers(company_id=company_a.id),
                               json={'company_id': company_a.id, 'lines': []})
        assert response.status_code == 400

    def test_half_converted_quote_is_logged(self, client, db_session, company_a, product_x, caplog):
        sale_id = self._create(client, company_a.id, product_x.id).json['id']
        orphan = Sale(
            company_id=company_a.id, total_cents=1, sale_type="CASH", payment_method="CASH",
            paid_amount_cents=1, remaining_amount_cents=0, is_fully_paid=True,
        )
        db_session.add(orphan)
        db_session.flush()
        db_session.get(ProvisionalSale, sale_id).converted_sale_id = orphan.id
        db_session.commit()

        with caplog.at_level(logging.ERROR):
            response = client.post(f'/api/provisional-sales/{sale_id}/convert',
                                   headers=actor_headers(company_id=company_a.id), json={'sale_type': 'CASH'})

        assert response.status_code == 500
        assert response.json['kind'] == 'INCONSISTENT'
        errors = [r for r in caplog.records if r.levelno == logging.ERROR]
        assert any("Inconsistent state detected" in r.getMessage() for r in errors)
