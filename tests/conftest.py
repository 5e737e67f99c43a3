"""
Shared fixtures

Every test gets a fresh app on in-memory SQLite with the app context
pushed, so test code and requests share one session.

Run:  pytest -v
"""

from datetime import timedelta

import pytest
from flask_jwt_extended import create_access_token

from app import create_app
from config import TestingConfig
from extensions import bcrypt
from models import db, User, Task, Category, Role, utcnow

PASSWORD = 'password123'


@pytest.fixture
def app():
    app = create_app(TestingConfig)
    with app.app_context():
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def make_user(app):
    def _make_user(email, name=None, role=Role.USER):
        user = User(
            email=email,
            name=name or email.split('@')[0].title(),
            role=role.value,
            password_hash=bcrypt.generate_password_hash(PASSWORD).decode('utf-8')
        )
        db.session.add(user)
        db.session.commit()
        return user
    return _make_user


@pytest.fixture
def admin(make_user):
    return make_user('admin@taskflow.com', 'Sarah Admin', Role.ADMIN)


@pytest.fixture
def alice(make_user):
    return make_user('alice@taskflow.com', 'Alice')


@pytest.fixture
def bob(make_user):
    return make_user('bob@taskflow.com', 'Bob')


@pytest.fixture
def carol(make_user):
    return make_user('carol@taskflow.com', 'Carol')


@pytest.fixture
def headers_for(app):
    def _headers_for(user):
        token = create_access_token(identity=str(user.id))
        return {'Authorization': f'Bearer {token}'}
    return _headers_for


@pytest.fixture
def make_task(app):
    """Persist a task; creator is required, everything else has defaults"""
    def _make_task(creator, title='Task', **kwargs):
        kwargs.setdefault('status', 'TODO')
        kwargs.setdefault('priority', 'MEDIUM')
        task = Task(title=title, creator_id=creator.id, **kwargs)
        db.session.add(task)
        db.session.commit()
        return task
    return _make_task


@pytest.fixture
def make_category(app):
    def _make_category(name, color='#6366f1'):
        category = Category(name=name, color=color)
        db.session.add(category)
        db.session.commit()
        return category
    return _make_category


@pytest.fixture
def now():
    return utcnow()


@pytest.fixture
def yesterday(now):
    return now - timedelta(days=1)


@pytest.fixture
def tomorrow(now):
    return now + timedelta(days=1)
