import base64
import os
from datetime import datetime, timedelta

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from config import TestingConfig
from crypto import TokenCipher, PasswordHasher
from exceptions import EmailDeliveryError
from main import create_app
from models import Base, Post
from session import SessionManager
from store import AccountStore
from tokens import TokenCodec

ACCESS_SECRET = 'access-secret-for-tests-0123456789abcdef'
REFRESH_SECRET = 'refresh-secret-for-tests-0123456789abcdef'
PASSWORD = 'Secret123!'


class RecordingNotifier:
    """Stands in for EmailNotifier; records every message and can be told to fail."""

    def __init__(self):
        self.sent = []
        self.fail = False

    def _send(self, kind: str, **fields):
        if self.fail:
            raise EmailDeliveryError(f"Could not deliver {kind} email")
        self.sent.append((kind, fields))

    def send_verification(self, to_email, name, token, code):
        self._send('verification', email=to_email, name=name, token=token, code=code)

    def send_confirmed(self, to_email, name):
        self._send('confirmed', email=to_email, name=name)

    def send_reset_link(self, to_email, name, token):
        self._send('reset', email=to_email, name=name, token=token)

    def send_password_changed(self, to_email, name):
        self._send('password_changed', email=to_email, name=name)

    def last(self, kind: str) -> dict:
        for sent_kind, fields in reversed(self.sent):
            if sent_kind == kind:
                return fields
        raise AssertionError(f"no {kind} email sent")

    def kinds(self) -> list:
        return [kind for kind, _ in self.sent]


class FakeClock:
    def __init__(self, now: datetime = datetime(2026, 1, 1, 12, 0, 0)):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


def make_config(**overrides) -> TestingConfig:
    values = {
        'ACCESS_TOKEN_SECRET': ACCESS_SECRET,
        'REFRESH_TOKEN_SECRET': REFRESH_SECRET,
        'DATA_ENCRYPTION_KEY': base64.urlsafe_b64encode(os.urandom(32)).decode(),
        'COOKIE_DOMAIN': None,
    }
    values.update(overrides)
    return TestingConfig(**values)


@pytest.fixture
def config():
    return make_config()


@pytest.fixture
def engine():
    engine = create_engine(
        'sqlite://',
        connect_args={'check_same_thread': False},
        poolclass=StaticPool
    )
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db(engine):
    session = sessionmaker(bind=engine)()
    yield session
    session.close()


@pytest.fixture
def cipher(config):
    return TokenCipher(config.DATA_ENCRYPTION_KEY)


@pytest.fixture
def store(db, cipher):
    return AccountStore(db, cipher)


@pytest.fixture
def hasher(config):
    return PasswordHasher(config)


@pytest.fixture
def codec():
    return TokenCodec()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def manager(store, notifier, codec, hasher, config, clock):
    return SessionManager(store, notifier, codec, hasher, config, clock)


@pytest.fixture
def registered(manager, notifier):
    """Ana, registered but not confirmed."""
    user = manager.register("Ana", "ana@x.com", "ana1", PASSWORD)
    mail = notifier.last('verification')
    return {'user': user, 'token': mail['token'], 'code': mail['code']}


@pytest.fixture
def verified(manager, registered):
    """Ana, registered and confirmed."""
    manager.confirm(registered['token'], registered['code'])
    return registered['user']


@pytest.fixture
def post(db):
    post = Post(title="First post", headline="Hello", content="Body", author_name="Mayank")
    db.add(post)
    db.commit()
    return post


@pytest.fixture
def app(engine, notifier, clock, config):
    # Development env so the test client sends the (non-Secure) cookies back
    app = create_app(make_config(ENV='development', DATA_ENCRYPTION_KEY=config.DATA_ENCRYPTION_KEY),
                     engine=engine, notifier=notifier, clock=clock)
    app.testing = True
    return app


@pytest.fixture
def client(app):
    return app.test_client()
