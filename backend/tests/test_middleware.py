"""
Request guard tests.

Verifies:
- Double-submit CSRF: missing/mismatched header is 403, echoed token passes
- Login/register are CSRF-exempt
- Fixed-window rate limiter counts, resets and sweeps expired keys
- The login route answers 429 with Retry-After once over its limit
- Limits key on the socket address; X-Forwarded-For counts only behind ProxyFix
"""

import pytest
from werkzeug.middleware.proxy_fix import ProxyFix

from storefront import create_app
from storefront.middleware import RateLimiter


class FakeClock:
    def __init__(self, now=1_000.0):
        self.now = now

    def __call__(self):
        return self.now


@pytest.fixture
def csrf_client(app, client):
    app.config['CSRF_ENABLED'] = True
    return client


class TestCsrf:
    def test_unsafe_request_without_token_is_403(self, csrf_client, customer, auth_headers):
        response = csrf_client.put('/api/users/me', json={'name': 'X'}, headers=auth_headers(customer))

        assert response.status_code == 403
        assert response.get_json()['error'] == 'CSRF token missing'

    def test_mismatched_token_is_403(self, csrf_client, customer, auth_headers):
        csrf_client.get('/api/csrf')
        headers = {**auth_headers(customer), 'X-CSRF-Token': 'forged'}

        response = csrf_client.put('/api/users/me', json={'name': 'X'}, headers=headers)

        assert response.status_code == 403
        assert response.get_json()['error'] == 'CSRF token invalid'

    def test_echoed_token_passes(self, csrf_client, customer, auth_headers):
        token = csrf_client.get('/api/csrf').get_json()['csrf_token']
        headers = {**auth_headers(customer), 'X-CSRF-Token': token}

        response = csrf_client.put('/api/users/me', json={'name': 'Renamed'}, headers=headers)

        assert response.status_code == 200

    def test_safe_methods_skip_check(self, csrf_client, customer, auth_headers):
        assert csrf_client.get('/api/users/me', headers=auth_headers(customer)).status_code == 200

    def test_login_is_exempt(self, csrf_client, customer):
        response = csrf_client.post('/api/auth/login', json={'email': customer.email, 'password': 'Wrong123!'})
        assert response.status_code == 401


class TestRateLimiter:
    def test_counts_within_window(self):
        limiter = RateLimiter(clock=FakeClock())

        decisions = [limiter.hit('ip:/login', 3, 60) for _ in range(4)]

        assert [d.allowed for d in decisions] == [True, True, True, False]
        assert [d.remaining for d in decisions] == [2, 1, 0, 0]
        assert decisions[-1].retry_after == 60

    def test_window_expiry_resets_count(self):
        clock = FakeClock()
        limiter = RateLimiter(clock=clock)
        for _ in range(3):
            limiter.hit('k', 3, 60)

        clock.now += 60
        decision = limiter.hit('k', 3, 60)

        assert decision.allowed is True
        assert decision.remaining == 2

    def test_keys_are_independent(self):
        limiter = RateLimiter(clock=FakeClock())
        limiter.hit('a', 1, 60)
        assert limiter.hit('b', 1, 60).allowed is True
        assert limiter.hit('a', 1, 60).allowed is False

    def test_expired_entries_are_swept(self):
        clock = FakeClock()
        limiter = RateLimiter(cleanup_interval=30, clock=clock)
        limiter.hit('old', 5, 10)
        assert len(limiter) == 1

        clock.now += 31
        limiter.hit('new', 5, 10)

        assert len(limiter) == 1


class TestLoginRateLimit:
    def test_eleventh_login_is_429(self, app, client):
        app.config['RATELIMIT_ENABLED'] = True
        payload = {'email': 'nobody@test.local', 'password': 'Wrong123!'}

        statuses = [client.post('/api/auth/login', json=payload).status_code for _ in range(10)]
        assert statuses == [401] * 10

        response = client.post('/api/auth/login', json=payload)

        assert response.status_code == 429
        assert response.get_json() == {'error': 'Too many requests, please try again later'}
        assert int(response.headers['Retry-After']) >= 1
        assert response.headers['X-RateLimit-Limit'] == '10'
        assert response.headers['X-RateLimit-Remaining'] == '0'

    def test_limit_is_per_client_ip(self, app, client):
        app.config['RATELIMIT_ENABLED'] = True
        payload = {'email': 'nobody@test.local', 'password': 'Wrong123!'}
        for _ in range(11):
            client.post('/api/auth/login', json=payload)

        other = client.post('/api/auth/login', json=payload, environ_base={'REMOTE_ADDR': '203.0.113.9'})
        assert other.status_code == 401

    def test_forwarded_for_header_does_not_reset_limit(self, app, client):
        app.config['RATELIMIT_ENABLED'] = True
        payload = {'email': 'nobody@test.local', 'password': 'Wrong123!'}

        statuses = [
            client.post('/api/auth/login', json=payload, headers={'X-Forwarded-For': f'10.0.0.{i}'}).status_code
            for i in range(12)
        ]

        assert statuses == [401] * 10 + [429] * 2

    def test_forwarded_for_used_behind_trusted_proxy(self, app, client):
        app.config['RATELIMIT_ENABLED'] = True
        app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1)
        payload = {'email': 'nobody@test.local', 'password': 'Wrong123!'}
        for _ in range(11):
            client.post('/api/auth/login', json=payload, headers={'X-Forwarded-For': '198.51.100.1'})

        other = client.post('/api/auth/login', json=payload, headers={'X-Forwarded-For': '198.51.100.2'})
        assert other.status_code == 401


class TestProxyConfig:
    def test_proxy_fix_off_by_default(self, app):
        assert not isinstance(app.wsgi_app, ProxyFix)

    def test_trusted_proxy_count_installs_proxy_fix(self):
        proxied = create_app({
            'TESTING': True,
            'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
            'JWT_SECRET': 'test-secret',
            'TRUSTED_PROXY_COUNT': 1,
        })
        assert isinstance(proxied.wsgi_app, ProxyFix)
        assert proxied.wsgi_app.x_for == 1
