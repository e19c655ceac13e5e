from datetime import timedelta

import pytest

from main import create_app

from conftest import PASSWORD, make_config

API = '/api/v1'


def set_cookies(response) -> dict:
    """Map cookie name -> raw Set-Cookie header for the response."""
    return {h.split('=', 1)[0]: h for h in response.headers.getlist('Set-Cookie')}


def register_and_confirm(client, notifier, name="Ana", email="ana@x.com", username="ana1"):
    resp = client.post(f'{API}/user/register', json={
        'name': name, 'email': email, 'username': username, 'password': PASSWORD
    })
    assert resp.status_code == 201
    mail = notifier.last('verification')
    resp = client.put(f"{API}/user/confirmation/{mail['token']}?code={mail['code']}")
    assert resp.status_code == 200
    return resp.get_json()['data']['user']


def login(client, key='ana@x.com', password=PASSWORD):
    return client.post(f'{API}/user/login', json={'email': key, 'password': password})


def test_health(client):
    resp = client.get(f'{API}/health')
    assert resp.status_code == 200
    assert resp.get_json()['success'] is True
    assert resp.headers['X-Frame-Options'] == 'DENY'


def test_register_envelope_and_errors(client, notifier):
    register_and_confirm(client, notifier)

    resp = client.post(f'{API}/user/register', json={
        'name': 'Ana', 'email': 'ana@x.com', 'username': 'ana2', 'password': PASSWORD
    })
    body = resp.get_json()
    assert resp.status_code == 409
    assert body == {'success': False, 'statusCode': 409, 'message': 'User already exists', 'data': None}

    resp = client.post(f'{API}/user/register', json={'name': 'Ana'})
    assert resp.status_code == 400


def test_confirmation_errors(client, notifier):
    client.post(f'{API}/user/register', json={
        'name': 'Ana', 'email': 'ana@x.com', 'username': 'ana1', 'password': PASSWORD
    })
    mail = notifier.last('verification')

    resp = client.put(f"{API}/user/confirmation/{mail['token']}?code=wrong")
    assert resp.status_code == 401

    client.put(f"{API}/user/confirmation/{mail['token']}?code={mail['code']}")
    resp = client.put(f"{API}/user/confirmation/{mail['token']}?code={mail['code']}")
    assert resp.status_code == 400
    assert resp.get_json()['message'] == 'Account already verified'


def test_login_sets_http_only_cookies(client, notifier, app):
    register_and_confirm(client, notifier)
    resp = login(client)
    assert resp.status_code == 200
    assert resp.get_json()['data']['user']['username'] == 'ana1'

    cookies = set_cookies(resp)
    for name, ttl in (('accessToken', timedelta(hours=1)), ('refreshToken', timedelta(days=7))):
        header = cookies[name]
        assert 'HttpOnly' in header
        assert 'SameSite=Strict' in header
        assert 'Path=/api/v1' in header
        assert f'Max-Age={int(ttl.total_seconds())}' in header
        # Development environment
        assert 'Secure' not in header


def test_cookies_are_secure_outside_development(engine, notifier, clock):
    app = create_app(make_config(ENV='production'), engine=engine, notifier=notifier, clock=clock)
    client = app.test_client()
    register_and_confirm(client, notifier)
    cookies = set_cookies(login(client))
    assert 'Secure' in cookies['accessToken']
    assert 'Secure' in cookies['refreshToken']


def test_login_failures_are_indistinguishable(client, notifier):
    register_and_confirm(client, notifier)
    client.post(f'{API}/user/register', json={
        'name': 'Bob', 'email': 'bob@x.com', 'username': 'bob1', 'password': PASSWORD
    })

    wrong_password = login(client, password='Wrong123!')
    unverified = login(client, key='bob@x.com')
    unknown = login(client, key='nobody@x.com')

    assert wrong_password.status_code == unverified.status_code == unknown.status_code == 401
    assert wrong_password.get_json() == unverified.get_json() == unknown.get_json()


def test_self_identification_requires_token(client, notifier):
    assert client.get(f'{API}/user/self-identification').status_code == 401

    register_and_confirm(client, notifier)
    login(client)
    resp = client.get(f'{API}/user/self-identification')
    assert resp.status_code == 200
    user = resp.get_json()['data']['user']
    assert user['email'] == 'ana@x.com'
    assert 'password' not in str(user).lower()


def test_bearer_header_is_accepted(client, notifier, app):
    register_and_confirm(client, notifier)
    login(client)
    token = client.get_cookie('accessToken', path='/api/v1').value

    fresh = app.test_client()
    resp = fresh.get(f'{API}/user/self-identification', headers={'Authorization': f'Bearer {token}'})
    assert resp.status_code == 200


def test_logout_clears_cookies_and_stored_token(client, notifier, store):
    user = register_and_confirm(client, notifier)
    login(client)
    assert store.get_refresh_token(user['userId'])

    resp = client.put(f'{API}/user/logout')
    assert resp.status_code == 200
    cookies = set_cookies(resp)
    assert 'Max-Age=0' in cookies['accessToken']
    assert 'Max-Age=0' in cookies['refreshToken']
    assert store.get_refresh_token(user['userId']) is None


def test_refresh_flow(client, notifier):
    register_and_confirm(client, notifier)
    login(client)

    resp = client.post(f'{API}/user/refresh-token')
    assert resp.status_code == 403

    client.delete_cookie('accessToken', path='/api/v1')
    resp = client.post(f'{API}/user/refresh-token')
    assert resp.status_code == 200
    assert 'accessToken' in set_cookies(resp)
    assert 'refreshToken' not in set_cookies(resp)


def test_refresh_without_cookie(client):
    resp = client.post(f'{API}/user/refresh-token')
    assert resp.status_code == 401
    assert resp.get_json()['message'] == 'No token found'


def test_refresh_replay_after_second_login(client, notifier, app):
    register_and_confirm(client, notifier)
    login(client)
    stale = client.get_cookie('refreshToken', path='/api/v1').value

    other_device = app.test_client()
    login(other_device)

    attacker = app.test_client()
    attacker.set_cookie('refreshToken', stale, path='/api/v1')
    resp = attacker.post(f'{API}/user/refresh-token')
    assert resp.status_code == 401


def test_password_reset_flow(client, notifier):
    register_and_confirm(client, notifier)
    resp = client.put(f'{API}/user/forgot-password', json={'email': 'ana@x.com'})
    assert resp.status_code == 200
    token = notifier.last('reset')['token']

    body = {'newPassword': 'NewSecret1!', 'confirmNewPassword': 'NewSecret1!'}
    assert client.put(f'{API}/user/reset-password/{token}', json=body).status_code == 200
    assert client.put(f'{API}/user/reset-password/{token}', json=body).status_code == 401

    assert login(client, password='NewSecret1!').status_code == 200


def test_forgot_password_unknown_email(client):
    resp = client.put(f'{API}/user/forgot-password', json={'email': 'nobody@x.com'})
    assert resp.status_code == 404


def test_reset_link_times_out(client, notifier, clock):
    register_and_confirm(client, notifier)
    client.put(f'{API}/user/forgot-password', json={'email': 'ana@x.com'})
    clock.advance(minutes=15)

    resp = client.put(f"{API}/user/reset-password/{notifier.last('reset')['token']}",
                      json={'newPassword': 'NewSecret1!', 'confirmNewPassword': 'NewSecret1!'})
    assert resp.status_code == 403


def test_change_password(client, notifier):
    register_and_confirm(client, notifier)
    login(client)

    same = client.put(f'{API}/user/change-password', json={
        'oldPassword': PASSWORD, 'newPassword': PASSWORD, 'confirmNewPassword': PASSWORD
    })
    assert same.status_code == 409

    resp = client.put(f'{API}/user/change-password', json={
        'oldPassword': PASSWORD, 'newPassword': 'NewSecret1!', 'confirmNewPassword': 'NewSecret1!'
    })
    assert resp.status_code == 202
    assert notifier.last('password_changed')['email'] == 'ana@x.com'


def test_blog_engagement_requires_login(client, post):
    assert client.post(f'{API}/blog/{post.id}/like').status_code == 401


def test_blog_engagement(client, notifier, post):
    register_and_confirm(client, notifier)
    login(client)

    assert client.post(f'{API}/blog/{post.id}/like').status_code == 200
    assert client.post(f'{API}/blog/{post.id}/like').status_code == 409
    assert client.get(f'{API}/blog/{post.id}/likes').get_json()['data'] == {'likes': 1}

    resp = client.post(f'{API}/blog/{post.id}/comment', json={'text': 'Great post'})
    comment_id = resp.get_json()['data']['comment']['commentId']
    assert client.post(f'{API}/blog/{post.id}/comment', json={'text': ''}).status_code == 400

    resp = client.put(f'{API}/blog/comment/{comment_id}', json={'text': 'Edited'})
    assert resp.get_json()['data']['comment']['text'] == 'Edited'
    resp = client.get(f'{API}/blog/{post.id}/comments')
    assert resp.get_json()['data']['total'] == 1

    assert client.post(f'{API}/blog/{post.id}/save').status_code == 200
    assert client.get(f'{API}/blog/{post.id}/saves').get_json()['data'] == {'saves': 1}
    assert client.delete(f'{API}/blog/{post.id}/save').status_code == 200

    assert client.get(f'{API}/blog/999/likes').status_code == 404


def test_unknown_route_uses_envelope(client):
    resp = client.get(f'{API}/nope')
    assert resp.status_code == 404
    assert resp.get_json()['success'] is False


def test_unexpected_error_is_generic_500(client, notifier):
    notifier.fail = True
    resp = client.post(f'{API}/user/register', json={
        'name': 'Ana', 'email': 'ana@x.com', 'username': 'ana1', 'password': PASSWORD
    })
    assert resp.status_code == 500
    assert resp.get_json()['message'] == 'Something went wrong'


def test_create_app_refuses_incomplete_config(engine):
    from exceptions import ConfigError
    with pytest.raises(ConfigError):
        create_app(make_config(REFRESH_TOKEN_SECRET=None), engine=engine)


def test_total_comments_route(client, notifier, post):
    register_and_confirm(client, notifier)
    login(client)
    client.post(f'{API}/blog/{post.id}/comment', json={'text': 'Great post'})

    resp = client.get(f'{API}/blog/{post.id}/total-comments')
    body = resp.get_json()
    assert resp.status_code == 200
    assert body['message'] == 'Total comments: 1'
    assert body['data'] == {'comments': 1}

    assert client.get(f'{API}/blog/999/total-comments').status_code == 404


def test_guestbook(client, notifier):
    assert client.post(f'{API}/user/guestbook', json={'message': 'Hi'}).status_code == 401

    register_and_confirm(client, notifier)
    login(client)

    resp = client.post(f'{API}/user/guestbook', json={'message': 'Lovely blog'})
    assert resp.status_code == 200
    assert resp.get_json()['message'] == 'Message saved'
    entry = resp.get_json()['data']['message']
    assert entry['message'] == 'Lovely blog'
    assert entry['username'] == 'ana1'

    assert client.post(f'{API}/user/guestbook', json={}).status_code == 400
