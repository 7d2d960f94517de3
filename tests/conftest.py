from datetime import datetime

import pytest

from spendwise.api import create_app
from spendwise.engine import FinanceEngine


class RecordingNotifier:
    """Notifier double that records every alert it is asked to send."""

    def __init__(self, succeed=True):
        self.succeed = succeed
        self.sent = []

    def send_budget_alert(self, recipient, category, spent, limit):
        self.sent.append((recipient, category, spent, limit))
        return self.succeed


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def engine(tmp_path, notifier):
    finance_engine = FinanceEngine(tmp_path / "spendwise.db", notifier=notifier)
    finance_engine.initialize_database()
    return finance_engine


@pytest.fixture
def user_id(engine):
    success, message, new_user_id = engine.register_user("alice", "password123", "alice@example.com")
    assert success, message
    return new_user_id


@pytest.fixture
def jan1():
    return datetime(2024, 1, 1)


@pytest.fixture
def app(tmp_path, engine):
    return create_app({
        "DATABASE_PATH": str(tmp_path / "spendwise.db"),
        "SECRET_KEY": "test-secret",
        "ENABLE_SCHEDULER": False,
        "ENABLE_JOB_ENDPOINTS": True,
        "EMAIL_BACKEND": "console",
        "TESTING": True,
    }, engine=engine)


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def auth_client(client):
    response = client.post("/api/register", json={
        "username": "bob", "password": "password123", "email": "bob@example.com",
    })
    assert response.status_code == 201
    return client
