import logging
from typing import Any, Optional

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from growwise.config import CHECKOUT_RATE_LIMIT_SECONDS, CHECKOUT_RATE_LIMIT_TIMES
from growwise.payments.service import CheckoutOrchestrator
from growwise.payments.stripe_client import PaymentProvider
from growwise.payments.webhooks import WebhookReconciler
from growwise.services import get_checkout, get_provider, get_webhooks
from growwise.utils.rate_limit import optional_rate_limit

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/payment", tags=["Payments API"])

REUSED_SESSION_WARNING = "Using existing checkout session"


class CheckoutRequest(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    items: Any = None
    customer_email: Optional[str] = None
    customer_name: Optional[str] = None
    locale: str = "en"


# module growwise.payments.views
@router.post("/checkout", dependencies=[Depends(optional_rate_limit(CHECKOUT_RATE_LIMIT_TIMES, CHECKOUT_RATE_LIMIT_SECONDS))])
@router.post(
    "/create-checkout-session",
    include_in_schema=False,
    dependencies=[Depends(optional_rate_limit(CHECKOUT_RATE_LIMIT_TIMES, CHECKOUT_RATE_LIMIT_SECONDS))],
)
async def create_checkout_session(payload: CheckoutRequest, checkout: CheckoutOrchestrator = Depends(get_checkout)):
    """
    Crée (ou réutilise) une session Checkout Stripe pour un panier.
    - Entrée JSON: { "items": [ {id, name, price, quantity, ...} ], "customerEmail"?, "customerName"?, "locale"? }
    - Sortie: { sessionId, orderId, redirectUrl } (+ warning si une session ouverte identique est réutilisée)
    - Erreurs: 400 panier invalide, 500 échec Stripe (la commande passe alors en failed)
    """
    result = await checkout.create_checkout(
        payload.items,
        customer_email=(payload.customer_email or "").strip() or None,
        customer_name=(payload.customer_name or "").strip() or None,
        locale=payload.locale,
    )
    body = {"sessionId": result.session_id, "orderId": result.order_id, "redirectUrl": result.redirect_url}
    if result.reused:
        body["warning"] = REUSED_SESSION_WARNING
    return body


@router.get("/session/{session_id}")
async def get_checkout_session(session_id: str, provider: PaymentProvider = Depends(get_provider)):
    """Session Stripe détaillée (line_items, customer, payment_intent) pour la page de succès."""
    session = await provider.retrieve_session_detail(session_id)
    return {"session": session}


@router.post("/webhook", include_in_schema=False)
async def webhook_stripe(request: Request, webhooks: WebhookReconciler = Depends(get_webhooks)):
    """
    Webhook Stripe: corps brut signé + en-tête Stripe-Signature.
    - 400 si la signature est invalide (SignatureInvalid)
    - 200 sinon, y compris commande introuvable ou événement ignoré
    """
    payload = await request.body()
    signature = request.headers.get("stripe-signature")
    ack = await webhooks.handle_event(payload, signature)
    logger.info("payments.webhook ack type=%s status=%s", ack.get("type"), ack.get("status"))
    return ack
