import hashlib
import hmac
import json
import os
import time
from typing import Any, Dict, Generator, List, Optional

# Environnement de test AVANT tout import de growwise (growwise.config lit l'env à l'import)
os.environ["APP_ENV"] = "test"
os.environ["ORDER_STORE_BACKEND"] = "memory"
os.environ["ALLOWED_HOSTS"] = "testserver,localhost,127.0.0.1"
os.environ["COOKIE_SECURE"] = "false"
os.environ["ADMIN_API_TOKEN"] = ""
os.environ["STRIPE_SECRET_KEY"] = ""
os.environ["STRIPE_WEBHOOK_SECRET"] = ""
os.environ.setdefault("DISABLE_FASTAPI_LIMITER_INIT_FOR_TESTS", "1")

import pytest
from fastapi.testclient import TestClient

from growwise.app_setup.factory import create_app
from growwise.errors import NotFound, ProviderError
from growwise.orders.memory import MemoryOrderStore
from growwise.payments.stripe_client import ProviderSession, StripePaymentProvider
from growwise.services import build_services

WEBHOOK_SECRET = "whsec_test_secret"


# Marquage automatique selon le dossier
def pytest_collection_modifyitems(config, items):
    for item in items:
        nodeid = item.nodeid.replace("\\", "/")
        if "tests/unit/" in nodeid:
            item.add_marker(pytest.mark.unit)
        elif "tests/integration/" in nodeid:
            item.add_marker(pytest.mark.integration)
        elif "tests/functional/" in nodeid:
            item.add_marker(pytest.mark.functional)


class FakePaymentProvider(StripePaymentProvider):
    """
    Stripe simulé pour les tests: sessions en mémoire, aucune requête réseau.
    construct_event reste celui de StripePaymentProvider (vraie vérification HMAC).
    """

    name = "fake"

    def __init__(self):
        super().__init__(webhook_secret=WEBHOOK_SECRET, allow_unsigned_webhooks=False)
        self.created: List[Dict[str, Any]] = []
        self.sessions: Dict[str, ProviderSession] = {}
        self.fail_with: Optional[Exception] = None
        self.retrieve_fails = False

    async def create_session(self, **kwargs) -> ProviderSession:
        self.created.append(kwargs)
        if self.fail_with is not None:
            raise self.fail_with
        n = len(self.created)
        session = ProviderSession(
            id=f"cs_test_{n}",
            url=f"https://checkout.stripe.test/c/pay/cs_test_{n}",
            payment_intent_id=f"pi_test_{n}",
            status="open",
            payment_status="unpaid",
        )
        self.sessions[session.id] = session
        return session

    async def retrieve_session(self, session_id: str) -> ProviderSession:
        if self.retrieve_fails:
            raise ProviderError("Stripe indisponible")
        if session_id not in self.sessions:
            raise ProviderError(f"No such checkout.session: {session_id}")
        return self.sessions[session_id]

    async def retrieve_session_detail(self, session_id: str) -> Dict[str, Any]:
        session = self.sessions.get(session_id)
        if session is None:
            raise NotFound(f"No such checkout.session: {session_id}", public_message="Session introuvable")
        return {
            "id": session.id,
            "object": "checkout.session",
            "url": session.url,
            "status": session.status,
            "payment_status": session.payment_status,
            "line_items": {"object": "list", "data": []},
        }


def sign_payload(payload: bytes, secret: str = WEBHOOK_SECRET, timestamp: Optional[int] = None) -> str:
    """En-tête Stripe-Signature (schéma v1: HMAC-SHA256 de "<t>.<payload>")."""
    ts = int(timestamp if timestamp is not None else time.time())
    signed = f"{ts}.{payload.decode('utf-8')}".encode("utf-8")
    sig = hmac.new(secret.encode("utf-8"), signed, hashlib.sha256).hexdigest()
    return f"t={ts},v1={sig}"


def make_event(event_type: str, obj: Dict[str, Any], event_id: str = "evt_test_1") -> bytes:
    return json.dumps({
        "id": event_id,
        "object": "event",
        "type": event_type,
        "data": {"object": obj},
    }).encode("utf-8")


def session_object(
    session_id: str,
    *,
    order_id: Optional[str] = None,
    amount_total: int = 9998,
    payment_status: str = "paid",
    payment_intent: Optional[str] = None,
    **extra: Any,
) -> Dict[str, Any]:
    obj = {
        "id": session_id,
        "object": "checkout.session",
        "amount_total": amount_total,
        "amount_subtotal": amount_total,
        "currency": "usd",
        "payment_status": payment_status,
        "status": "complete",
        "payment_intent": payment_intent,
        "metadata": {"orderId": order_id} if order_id else {},
    }
    obj.update(extra)
    return obj


@pytest.fixture
def cart() -> List[Dict[str, Any]]:
    return [
        {
            "id": "course-python-101",
            "name": "Python for Kids",
            "price": 49.99,
            "quantity": 2,
            "category": "Course",
            "level": "Beginner",
        }
    ]


@pytest.fixture
def store() -> MemoryOrderStore:
    return MemoryOrderStore()


@pytest.fixture
def provider() -> FakePaymentProvider:
    return FakePaymentProvider()


@pytest.fixture
def services(store, provider):
    return build_services(store=store, provider=provider)


@pytest.fixture
def lifecycle(services):
    return services.lifecycle


@pytest.fixture
def orchestrator(services):
    return services.checkout


@pytest.fixture
def reconciler(services):
    return services.webhooks


@pytest.fixture
def app(services):
    return create_app(services=services)


@pytest.fixture()
def client(app) -> Generator[TestClient, None, None]:
    with TestClient(app) as c:
        yield c


@pytest.fixture
def drain(client, services):
    """Attend les rattachements de session lancés en tâche de fond par le checkout."""
    def _drain():
        client.portal.call(services.checkout.wait_pending)
    return _drain


@pytest.fixture
def signed_event():
    """Construit (body, en-tête Stripe-Signature) pour un événement de test."""
    def _make(event_type: str, obj: Dict[str, Any], event_id: str = "evt_test_1", secret: str = WEBHOOK_SECRET):
        body = make_event(event_type, obj, event_id=event_id)
        return body, sign_payload(body, secret=secret)
    return _make


@pytest.fixture
def session_obj():
    return session_object
