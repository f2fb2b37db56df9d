from app.services import email_service


def test_register_verify_and_login(client, store):
    r = client.post('/api/auth/register', json={
        'username': 'user_test', 'email': 'User_Test@Example.com', 'password': 'secret123', 'name': 'Test User',
    })
    assert r.status_code == 200
    data = r.json()
    # In dev (no SMTP), the OTP comes back in the response
    assert data['success'] is True
    otp = data['dev_otp']
    assert store.get_user_by_username('user_test') is None

    r2 = client.post('/api/auth/verify-email', json={'username': 'user_test', 'otp': otp})
    assert r2.status_code == 201
    body = r2.json()
    assert body['user'] == {'username': 'user_test', 'email': 'user_test@example.com', 'name': 'Test User'}
    assert body['token']

    saved = store.get_user_by_username('user_test')
    assert saved['emailVerified'] == 'true'
    assert saved['password'] != 'secret123'

    r3 = client.post('/api/auth/login', json={'email': 'USER_TEST@example.com', 'password': 'secret123'})
    assert r3.status_code == 200
    assert r3.json()['history'] == {'conversations': 0, 'moodEntries': 0, 'journalEntries': 0}

    r4 = client.get('/api/auth/verify', headers={'Authorization': f"Bearer {r3.json()['token']}"})
    assert r4.status_code == 200
    assert r4.json()['user']['username'] == 'user_test'


def test_register_validation(client):
    r = client.post('/api/auth/register', json={'username': 'ab', 'email': 'a@example.com', 'password': 'secret123'})
    assert r.status_code == 400
    r = client.post('/api/auth/register', json={'username': 'bad name', 'email': 'a@example.com', 'password': 'secret123'})
    assert r.status_code == 400
    r = client.post('/api/auth/register', json={'username': 'alice', 'email': 'a@example.com', 'password': '123'})
    assert r.status_code == 400
    r = client.post('/api/auth/register', json={'username': 'alice'})
    assert r.status_code == 400


def test_register_rejects_taken_username_and_email(client, signup):
    signup('alice', email='alice@example.com')
    r = client.post('/api/auth/register', json={'username': 'alice', 'email': 'new@example.com', 'password': 'secret123'})
    assert r.status_code == 400
    assert 'Username' in r.json()['detail']
    r = client.post('/api/auth/register', json={'username': 'alice2', 'email': 'ALICE@example.com', 'password': 'secret123'})
    assert r.status_code == 400
    assert 'Email' in r.json()['detail']


def test_verify_with_wrong_otp(client):
    r = client.post('/api/auth/register', json={'username': 'bob', 'email': 'bob@example.com', 'password': 'secret123'})
    otp = r.json()['dev_otp']
    wrong = '000000' if otp != '000000' else '111111'
    r2 = client.post('/api/auth/verify-email', json={'username': 'bob', 'otp': wrong})
    assert r2.status_code == 400
    assert r2.json()['detail'] == 'Invalid OTP'
    r3 = client.post('/api/auth/verify-email', json={'username': 'nobody', 'otp': otp})
    assert r3.status_code == 400


def test_resend_verification_otp(client):
    r = client.post('/api/auth/register', json={'username': 'bob', 'email': 'bob@example.com', 'password': 'secret123'})
    first = r.json()['dev_otp']
    r2 = client.post('/api/auth/resend-otp', json={'type': 'verification', 'username': 'bob'})
    assert r2.status_code == 200
    second = r2.json()['dev_otp']
    r3 = client.post('/api/auth/verify-email', json={'username': 'bob', 'otp': second})
    assert r3.status_code == 201
    assert client.post('/api/auth/resend-otp', json={'type': 'verification', 'username': 'ghost'}).status_code == 400
    assert client.post('/api/auth/resend-otp', json={}).status_code == 400
    assert first.isdigit()


def test_login_failures(client, store, signup):
    signup('alice')
    assert client.post('/api/auth/login', json={'username': 'alice', 'password': 'wrong-pass'}).status_code == 401
    assert client.post('/api/auth/login', json={'username': 'ghost', 'password': 'secret123'}).status_code == 401
    assert client.post('/api/auth/login', json={'username': 'alice'}).status_code == 400

    store.create_user({'username': 'pending', 'email': 'p@example.com', 'password': 'x', 'emailVerified': 'false'})
    r = client.post('/api/auth/login', json={'username': 'pending', 'password': 'whatever'})
    assert r.status_code == 403
    assert r.json()['requiresVerification'] is True


def test_password_reset_flow(client, signup):
    signup('alice', email='alice@example.com')
    r = client.post('/api/auth/forgot-password', json={'email': 'Alice@example.com'})
    assert r.status_code == 200
    otp = r.json()['dev_otp']

    r2 = client.post('/api/auth/reset-password', json={'email': 'alice@example.com', 'otp': otp, 'newPassword': 'brandnew1'})
    assert r2.status_code == 200
    assert client.post('/api/auth/login', json={'username': 'alice', 'password': 'secret123'}).status_code == 401
    assert client.post('/api/auth/login', json={'username': 'alice', 'password': 'brandnew1'}).status_code == 200
    # the code is single use
    r3 = client.post('/api/auth/reset-password', json={'username': 'alice', 'otp': otp, 'newPassword': 'again123'})
    assert r3.status_code == 400


def test_forgot_password_does_not_reveal_accounts(client):
    r = client.post('/api/auth/forgot-password', json={'email': 'nobody@example.com'})
    assert r.status_code == 200
    assert 'dev_otp' not in r.json()


def test_sent_email_is_logged(client, store, monkeypatch):
    monkeypatch.setattr(email_service, 'send_email', lambda *a, **k: True)
    r = client.post('/api/auth/register', json={'username': 'carol', 'email': 'carol@example.com', 'password': 'secret123'})
    assert r.status_code == 200
    assert 'dev_otp' not in r.json()
    [row] = store.get_emails()
    assert row['type'] == 'verification'
    assert row['username'] == 'carol'


def test_configured_smtp_failure_returns_500(client, monkeypatch):
    monkeypatch.setattr(email_service, 'send_email', lambda *a, **k: False)
    monkeypatch.setattr(email_service, 'email_configured', lambda: True)
    r = client.post('/api/auth/register', json={'username': 'dave', 'email': 'dave@example.com', 'password': 'secret123'})
    assert r.status_code == 500
    r2 = client.post('/api/auth/resend-otp', json={'type': 'verification', 'username': 'dave'})
    assert r2.status_code == 400
