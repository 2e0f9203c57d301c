"""
API route tests for checkout, payments, distribution and admin access.

Verifies:
- Role gates: customers get 403 on admin and distributor endpoints
- Checkout from the cart returns the order with payment instructions
- Order visibility is limited to the owner (404 otherwise)
- Manual payment confirm endpoints, including camelCase bodies
- Assign -> fulfill -> deliver through the API
"""

from storefront.models.orders import ORDER_ASSIGNED, ORDER_DELIVERED, ORDER_FULFILLED, ORDER_PROCESSING
from storefront.services import cart_service

from conftest import SHIPPING_ADDRESS


def _checkout(client, headers, variation, quantity=10, payment_method='ETransfer'):
    response = client.post('/api/cart', json={'variation_id': variation.id, 'quantity': quantity}, headers=headers)
    assert response.status_code == 201
    return client.post('/api/orders', json={
        'shipping_address': SHIPPING_ADDRESS,
        'payment_method': payment_method,
    }, headers=headers)


class TestRoleGates:
    def test_customer_cannot_list_users(self, client, customer, auth_headers):
        response = client.get('/api/admin/users', headers=auth_headers(customer))
        assert response.status_code == 403
        assert response.get_json()['error'] == 'Permission denied'

    def test_customer_cannot_confirm_payment(self, client, customer, auth_headers):
        response = client.post('/api/payments/manual/etransfer-confirm', json={}, headers=auth_headers(customer))
        assert response.status_code == 403

    def test_customer_cannot_fulfill(self, client, customer, auth_headers):
        response = client.post('/api/distributor/orders/x/fulfill', json={}, headers=auth_headers(customer))
        assert response.status_code == 403

    def test_anonymous_is_401(self, client):
        assert client.get('/api/admin/users').status_code == 401

    def test_admin_can_list_users(self, client, admin, customer, auth_headers):
        response = client.get('/api/admin/users?role=Customer', headers=auth_headers(admin))
        assert response.status_code == 200
        assert [u['email'] for u in response.get_json()['users']] == [customer.email]


class TestCheckout:
    def test_checkout_creates_order_and_empties_cart(self, client, customer, variation, auth_headers):
        headers = auth_headers(customer)

        response = _checkout(client, headers, variation)

        assert response.status_code == 201
        order = response.get_json()['order']
        assert order['total_cents'] == 10_000
        assert len(order['history']) == 1
        assert order['payments'][0]['instructions']['amount_cents'] == 10_000
        assert cart_service.get_cart(cart_service.user_owner(customer.id))['items'] == []

    def test_checkout_below_minimum_is_400(self, client, customer, variation, auth_headers):
        response = _checkout(client, auth_headers(customer), variation, quantity=4)
        assert response.status_code == 400
        assert 'at least 5 units' in response.get_json()['error']

    def test_empty_cart_is_400(self, client, customer, auth_headers):
        response = client.post('/api/orders', json={
            'shipping_address': SHIPPING_ADDRESS, 'payment_method': 'ETransfer',
        }, headers=auth_headers(customer))
        assert response.status_code == 400

    def test_other_users_order_is_404(self, client, customer, make_user, place_order, auth_headers):
        order = place_order(customer)
        stranger = make_user('stranger@test.local')

        response = client.get(f'/api/orders/me/{order.id}', headers=auth_headers(stranger))
        assert response.status_code == 404

        payments = client.get(f'/api/payments/orders/{order.id}', headers=auth_headers(stranger))
        assert payments.status_code == 403


class TestManualPaymentRoutes:
    def test_etransfer_confirm_accepts_camel_case(self, client, admin, customer, place_order, auth_headers):
        order = place_order(customer)

        response = client.post('/api/payments/manual/etransfer-confirm', json={
            'orderId': order.id, 'transactionId': 'CA-778', 'senderName': 'Buyer',
        }, headers=auth_headers(admin))

        assert response.status_code == 200
        assert response.get_json()['status'] == ORDER_PROCESSING

    def test_btc_endpoint_refuses_etransfer_order(self, client, admin, customer, place_order, auth_headers):
        order = place_order(customer)

        response = client.post('/api/payments/manual/btc-confirm', json={
            'order_id': order.id, 'transaction_id': 'abc',
        }, headers=auth_headers(admin))

        assert response.status_code == 400
        assert response.get_json()['success'] is False

    def test_missing_ids_is_400(self, client, admin, auth_headers):
        response = client.post('/api/payments/manual/etransfer-confirm', json={}, headers=auth_headers(admin))
        assert response.status_code == 400


class TestDistributionFlow:
    def test_assign_fulfill_deliver(self, client, admin, distributor, customer, place_order, auth_headers):
        order = place_order(customer)
        admin_headers = auth_headers(admin)
        client.post('/api/payments/manual/etransfer-confirm', json={
            'orderId': order.id, 'transactionId': 'TX-9',
        }, headers=admin_headers)

        assigned = client.post(f'/api/admin/orders/{order.id}/assign-distributor',
                               json={'distributor_id': distributor.id}, headers=admin_headers)
        assert assigned.status_code == 200
        assert assigned.get_json()['order']['status'] == ORDER_ASSIGNED

        listed = client.get('/api/distributor/orders', headers=auth_headers(distributor))
        assert [o['id'] for o in listed.get_json()['orders']] == [order.id]

        fulfilled = client.post(f'/api/distributor/orders/{order.id}/fulfill',
                                json={'tracking_number': 'TRK-1'}, headers=auth_headers(distributor))
        assert fulfilled.status_code == 200
        body = fulfilled.get_json()
        assert body['order']['status'] == ORDER_FULFILLED
        assert body['commission']['amount_cents'] == 1000

        delivered = client.post(f'/api/admin/orders/{order.id}/deliver', json={}, headers=admin_headers)
        assert delivered.status_code == 200
        assert delivered.get_json()['order']['status'] == ORDER_DELIVERED

    def test_invalid_transition_is_400(self, client, admin, customer, place_order, auth_headers):
        order = place_order(customer)
        response = client.put(f'/api/orders/{order.id}/status', json={'status': 'Delivered'},
                              headers=auth_headers(admin))
        assert response.status_code == 400
