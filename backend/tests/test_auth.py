"""
Authentication route tests.

Verifies:
- Register/login issue a token pair; bad credentials get a uniform 401
- Suspended accounts cannot log in and their tokens stop working
- Logout and refresh rotation revoke tokens server-side
- Guest cart is merged into the account on login
"""

from storefront.services import cart_service, token_service, user_service

from conftest import TEST_PASSWORD


def _login(client, email, password=TEST_PASSWORD, **extra):
    return client.post('/api/auth/login', json={'email': email, 'password': password, **extra})


class TestRegister:
    def test_register_returns_tokens(self, client):
        response = client.post('/api/auth/register', json={
            'email': 'New.Buyer@Test.local',
            'password': TEST_PASSWORD,
            'name': 'New Buyer',
        })

        assert response.status_code == 201
        data = response.get_json()
        assert data['user']['email'] == 'new.buyer@test.local'
        assert data['user']['role'] == 'Customer'
        assert data['tokens']['token_type'] == 'Bearer'
        assert 'password_hash' not in data['user']

    def test_weak_password_rejected(self, client):
        response = client.post('/api/auth/register', json={'email': 'weak@test.local', 'password': 'password'})
        assert response.status_code == 400

    def test_duplicate_email_rejected(self, client, customer):
        response = client.post('/api/auth/register', json={'email': customer.email, 'password': TEST_PASSWORD})
        assert response.status_code == 400

    def test_unknown_referral_code_rejected(self, client):
        response = client.post('/api/auth/register', json={
            'email': 'ref@test.local', 'password': TEST_PASSWORD, 'referral_code': 'NOPE0000',
        })
        assert response.status_code == 400

    def test_missing_fields(self, client):
        response = client.post('/api/auth/register', json={'email': 'x@test.local'})
        assert response.status_code == 400


class TestLogin:
    def test_login_success(self, client, customer):
        response = _login(client, customer.email)

        assert response.status_code == 200
        tokens = response.get_json()['tokens']
        verify = client.get('/api/auth/verify', headers={'Authorization': f"Bearer {tokens['access_token']}"})
        assert verify.status_code == 200
        assert verify.get_json()['user']['id'] == customer.id

    def test_wrong_password_is_401(self, client, customer):
        response = _login(client, customer.email, 'Wrong123!')
        assert response.status_code == 401
        assert response.get_json()['error'] == 'Invalid email or password'

    def test_unknown_email_same_401(self, client):
        response = _login(client, 'nobody@test.local')
        assert response.status_code == 401
        assert response.get_json()['error'] == 'Invalid email or password'

    def test_suspended_user_cannot_log_in(self, client, customer):
        user_service.suspend_user(customer.id)
        assert _login(client, customer.email).status_code == 401

    def test_suspension_invalidates_existing_token(self, client, customer, auth_headers):
        headers = auth_headers(customer)
        user_service.suspend_user(customer.id)

        response = client.get('/api/auth/verify', headers=headers)
        assert response.status_code == 401

    def test_guest_cart_merged_on_login(self, client, customer, variation):
        cart_service.add_item(cart_service.guest_owner('guest-session-1'), variation.id, 3)

        response = _login(client, customer.email, cart_session='guest-session-1')

        assert response.get_json()['cart_items_merged'] == 1
        cart = cart_service.get_cart(cart_service.user_owner(customer.id))
        assert cart['total_quantity'] == 3


class TestTokens:
    def test_missing_header_is_401(self, client):
        response = client.get('/api/auth/verify')
        assert response.status_code == 401
        assert response.get_json()['error'] == 'Authentication required'

    def test_garbage_token_is_401(self, client):
        response = client.get('/api/auth/verify', headers={'Authorization': 'Bearer not-a-jwt'})
        assert response.status_code == 401
        assert response.get_json()['error'] == 'Invalid token'

    def test_logout_revokes_access_token(self, client, customer, auth_headers):
        headers = auth_headers(customer)

        response = client.post('/api/auth/logout', headers=headers)
        assert response.status_code == 200
        assert response.get_json()['revoked'] == 1

        verify = client.get('/api/auth/verify', headers=headers)
        assert verify.status_code == 401
        assert verify.get_json()['error'] == 'Token has been revoked'

    def test_refresh_rotates_and_old_token_dies(self, client, customer):
        pair = token_service.issue_token_pair(customer)

        first = client.post('/api/auth/refresh', json={'refresh_token': pair.refresh_token})
        assert first.status_code == 200
        new_refresh = first.get_json()['tokens']['refresh_token']
        assert new_refresh != pair.refresh_token

        reuse = client.post('/api/auth/refresh', json={'refresh_token': pair.refresh_token})
        assert reuse.status_code == 401
        assert reuse.get_json()['error'] == 'Token has been revoked'

    def test_access_token_cannot_refresh(self, client, customer):
        pair = token_service.issue_token_pair(customer)

        response = client.post('/api/auth/refresh', json={'refresh_token': pair.access_token})
        assert response.status_code == 401
        assert response.get_json()['error'] == 'Invalid token type'

    def test_refresh_token_cannot_authenticate(self, client, customer):
        pair = token_service.issue_token_pair(customer)
        response = client.get('/api/auth/verify', headers={'Authorization': f'Bearer {pair.refresh_token}'})
        assert response.status_code == 401
