import os
import pytest
from typing import Generator, Dict, Any
from fastapi.testclient import TestClient
from unittest.mock import MagicMock
from fakeredis import FakeRedis

# Pas de Redis en tests: le rate limiting est désactivé au démarrage
os.environ.setdefault("DISABLE_FASTAPI_LIMITER_INIT_FOR_TESTS", "1")
# État de caisse (panier, commande en attente) dans un Redis en mémoire
os.environ.setdefault("USE_FAKE_REDIS_FOR_TESTS", "1")

from agrimarket.app import app as fastapi_app
from agrimarket.utils.security import require_user

# Marquage automatique selon le dossier
def pytest_collection_modifyitems(config, items):
    for item in items:
        nodeid = item.nodeid.replace("\\", "/")
        if "/tests/unit/" in nodeid or nodeid.startswith("tests/unit/"):
            item.add_marker(pytest.mark.unit)
        elif "/tests/integration/" in nodeid or nodeid.startswith("tests/integration/"):
            item.add_marker(pytest.mark.integration)

@pytest.fixture(scope="session")
def app():
    return fastapi_app

@pytest.fixture()
def client(app) -> Generator[TestClient, None, None]:
    with TestClient(app) as c:
        yield c

@pytest.fixture
def fake_user() -> Dict[str, Any]:
    return {
        "id": "test-user",
        "email": "retailer@example.com",
        "role": "retailer",
        "metadata": {"full_name": "Ferme du Test", "role": "retailer"},
        "token": "fake-token",
    }

@pytest.fixture
def retailer() -> Dict[str, Any]:
    return {"id": "ret-1", "name": "Ferme du Test", "email": "retailer@example.com", "address": "12 rue des Champs"}

# Simuler un détaillant authentifié pour les endpoints protégés
@pytest.fixture(autouse=True)
def _override_require_user(app, fake_user):
    app.dependency_overrides[require_user] = lambda: fake_user
    try:
        yield
    finally:
        app.dependency_overrides.pop(require_user, None)

# Aucun accès réseau à Supabase pendant les tests
@pytest.fixture(scope="function", autouse=True)
def mock_db_dependency(monkeypatch):
    monkeypatch.setattr("agrimarket.infra.supabase_client.get_supabase", lambda: MagicMock())
    monkeypatch.setattr("agrimarket.infra.supabase_client.get_service_supabase", lambda: MagicMock())
    monkeypatch.setattr("agrimarket.health.service.health_supabase_info", lambda: {"connect_ok": True})

# Redis vierge pour chaque test: pas de panier partagé entre tests
@pytest.fixture(scope="function", autouse=True)
def checkout_redis(monkeypatch):
    fake = FakeRedis(decode_responses=True)
    monkeypatch.setattr("agrimarket.infra.redis_client._redis", fake)
    return fake
