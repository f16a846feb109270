import pytest
from fastapi.testclient import TestClient

from schoolhub import Settings, create_app


DEMO_PASSWORD = "Demo@1234"


@pytest.fixture
def settings():
    return Settings(database_url="sqlite://", demo_mode=True, demo_password=DEMO_PASSWORD, jwt_secret="test-secret")


@pytest.fixture
def app(settings):
    return create_app(settings)


@pytest.fixture
def client(app):
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def login_as(client):
    """Sign in through the role override and return the login payload."""

    def _login(role: str, provider: str = "Google"):
        response = client.post("/api/login", json={"provider": provider, "roleOverride": role})
        assert response.status_code == 200, response.text
        return response.json()

    return _login


@pytest.fixture
def login_with_password(client):
    def _login(email: str, password: str = DEMO_PASSWORD):
        response = client.post("/api/login", json={"provider": "password", "email": email, "password": password})
        assert response.status_code == 200, response.text
        return response.json()

    return _login
