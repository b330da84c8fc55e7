"""
Adaptateur Stripe: centralise les appels et la configuration Stripe.

PaymentProvider est le contrat consommé par l'orchestrateur et le webhook;
StripePaymentProvider en est l'unique implémentation (choisie au démarrage).
Les appels SDK sont bloquants: ils passent par le threadpool, avec un timeout borné
pour la création de session.
"""
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional
import asyncio
import json
import logging

import stripe
from pydantic import BaseModel
from starlette.concurrency import run_in_threadpool

from growwise.config import (
    IS_PRODUCTION,
    STRIPE_ALLOWED_COUNTRIES,
    STRIPE_AUTOMATIC_TAX,
    STRIPE_MAX_NETWORK_RETRIES,
    STRIPE_SECRET_KEY,
    STRIPE_TIMEOUT_SECONDS,
    STRIPE_WEBHOOK_SECRET,
)
from growwise.errors import NotFound, ProviderError, SignatureInvalid

logger = logging.getLogger(__name__)


class ProviderSession(BaseModel):
    id: str
    url: Optional[str] = None
    payment_intent_id: Optional[str] = None
    status: Optional[str] = None
    payment_status: Optional[str] = None


class PaymentProvider(ABC):
    name = "abstract"

    @abstractmethod
    async def create_session(
        self,
        *,
        line_items: List[Dict[str, Any]],
        success_url: str,
        cancel_url: str,
        customer_email: Optional[str],
        metadata: Dict[str, str],
        idempotency_key: str,
    ) -> ProviderSession: ...

    @abstractmethod
    async def retrieve_session(self, session_id: str) -> ProviderSession: ...

    @abstractmethod
    async def retrieve_session_detail(self, session_id: str) -> Dict[str, Any]: ...

    @abstractmethod
    def construct_event(self, payload: bytes, signature: Optional[str]) -> Dict[str, Any]: ...


def _to_dict(obj: Any) -> Dict[str, Any]:
    """StripeObject -> dict JSON (récursif)."""
    if obj is None:
        return {}
    if isinstance(obj, stripe.StripeObject):
        return json.loads(str(obj))
    return dict(obj)


# module growwise.payments.stripe_client
def require_stripe() -> stripe:
    """
    Prépare et retourne le module stripe prêt à l'emploi.
    - Configure stripe.api_key via STRIPE_SECRET_KEY et le nombre de retries réseau.
    - Sans clé, refuse d'appeler Stripe (ProviderError) plutôt que d'échouer dans le SDK.
    """
    if not STRIPE_SECRET_KEY:
        raise ProviderError("STRIPE_SECRET_KEY manquant", public_message="Paiement indisponible")
    stripe.api_key = STRIPE_SECRET_KEY
    stripe.max_network_retries = STRIPE_MAX_NETWORK_RETRIES
    return stripe


def _session_from_stripe(session: Dict[str, Any]) -> ProviderSession:
    pi = session.get("payment_intent")
    if isinstance(pi, dict):
        pi = pi.get("id")
    return ProviderSession(
        id=session.get("id"),
        url=session.get("url"),
        payment_intent_id=pi or None,
        status=session.get("status"),
        payment_status=session.get("payment_status"),
    )


class StripePaymentProvider(PaymentProvider):
    name = "stripe"

    def __init__(
        self,
        *,
        webhook_secret: str = STRIPE_WEBHOOK_SECRET,
        timeout: float = STRIPE_TIMEOUT_SECONDS,
        allowed_countries: Optional[List[str]] = None,
        automatic_tax: bool = STRIPE_AUTOMATIC_TAX,
        allow_unsigned_webhooks: bool = not IS_PRODUCTION,
    ):
        self.webhook_secret = webhook_secret
        self.timeout = timeout
        self.allowed_countries = allowed_countries or list(STRIPE_ALLOWED_COUNTRIES)
        self.automatic_tax = automatic_tax
        self.allow_unsigned_webhooks = allow_unsigned_webhooks

    def session_params(
        self,
        *,
        line_items: List[Dict[str, Any]],
        success_url: str,
        cancel_url: str,
        customer_email: Optional[str],
        metadata: Dict[str, str],
    ) -> Dict[str, Any]:
        """Paramètres de stripe.checkout.Session.create (sans la clé d'idempotence)."""
        params: Dict[str, Any] = {
            "mode": "payment",
            "payment_method_types": ["card"],
            "line_items": line_items,
            "success_url": success_url,
            "cancel_url": cancel_url,
            "metadata": metadata,
            "payment_intent_data": {"metadata": metadata},
            "shipping_address_collection": {"allowed_countries": self.allowed_countries},
            "automatic_tax": {"enabled": self.automatic_tax},
            "allow_promotion_codes": True,
        }
        if customer_email:
            params["customer_email"] = customer_email
        return params

    async def create_session(
        self,
        *,
        line_items: List[Dict[str, Any]],
        success_url: str,
        cancel_url: str,
        customer_email: Optional[str],
        metadata: Dict[str, str],
        idempotency_key: str,
    ) -> ProviderSession:
        """
        Crée une session Stripe Checkout.
        - idempotency_key: une même commande ne produit qu'une session, même si la requête est rejouée
        - timeout borné (STRIPE_TIMEOUT_SECONDS): au-delà, ProviderError
        """
        params = self.session_params(
            line_items=line_items,
            success_url=success_url,
            cancel_url=cancel_url,
            customer_email=customer_email,
            metadata=metadata,
        )

        def _create():
            require_stripe()
            return stripe.checkout.Session.create(**params, idempotency_key=idempotency_key)

        try:
            session = await asyncio.wait_for(run_in_threadpool(_create), timeout=self.timeout)
        except asyncio.TimeoutError as e:
            raise ProviderError(f"Stripe timeout après {self.timeout}s") from e
        except stripe.StripeError as e:
            raise ProviderError(getattr(e, "user_message", None) or str(e)) from e
        return _session_from_stripe(_to_dict(session))

    async def retrieve_session(self, session_id: str) -> ProviderSession:
        def _retrieve():
            require_stripe()
            return stripe.checkout.Session.retrieve(session_id)

        try:
            session = await run_in_threadpool(_retrieve)
        except stripe.StripeError as e:
            raise ProviderError(str(e)) from e
        return _session_from_stripe(_to_dict(session))

    async def retrieve_session_detail(self, session_id: str) -> Dict[str, Any]:
        """Session expandée (line_items, customer, payment_intent) pour la page de succès."""
        def _retrieve():
            require_stripe()
            return stripe.checkout.Session.retrieve(
                session_id, expand=["line_items", "customer", "payment_intent"]
            )

        try:
            session = await run_in_threadpool(_retrieve)
        except stripe.InvalidRequestError as e:
            if getattr(e, "http_status", None) == 404:
                raise NotFound(str(e), public_message="Session introuvable") from e
            raise ProviderError(str(e), public_message="Impossible de récupérer la session") from e
        except stripe.StripeError as e:
            raise ProviderError(str(e), public_message="Impossible de récupérer la session") from e
        return _to_dict(session)

    def construct_event(self, payload: bytes, signature: Optional[str]) -> Dict[str, Any]:
        """
        Parse et valide un événement Stripe signé (webhook).
        - Valide l'en-tête Stripe-Signature (HMAC, tolérance 5 min) avec le secret webhook
        - Hors production et sans secret configuré: payload accepté non vérifié (warning)
        Retour: l'événement en dict JSON.
        """
        try:
            text = payload.decode("utf-8") if isinstance(payload, (bytes, bytearray)) else str(payload or "")
        except UnicodeDecodeError as e:
            raise SignatureInvalid(f"Payload non UTF-8: {e}") from e
        if not self.webhook_secret:
            if not self.allow_unsigned_webhooks:
                raise SignatureInvalid("STRIPE_WEBHOOK_SECRET manquant")
            logger.warning("payments.webhook signature non vérifiée (STRIPE_WEBHOOK_SECRET absent, dev)")
        else:
            if not signature:
                raise SignatureInvalid("En-tête Stripe-Signature manquant")
            try:
                stripe.WebhookSignature.verify_header(text, signature, self.webhook_secret, tolerance=300)
            except stripe.SignatureVerificationError as e:
                raise SignatureInvalid(str(e)) from e
        try:
            event = json.loads(text)
        except ValueError as e:
            raise SignatureInvalid(f"Payload JSON invalide: {e}") from e
        if not isinstance(event, dict) or not event.get("type"):
            raise SignatureInvalid("Événement Stripe invalide")
        return event
