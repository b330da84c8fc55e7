"""
Réconciliation des webhooks Stripe -> état des commandes.

- Signature invalide: SignatureInvalid (HTTP 400, Stripe relivrera).
- Tout le reste est acquitté: commande introuvable, événement non géré, transition refusée
  ou erreur applicative (journalisée). Stripe ne doit pas relivrer en boucle un événement
  que le service ne saura pas traiter mieux la fois suivante.
- Tolère les livraisons répétées et désordonnées: la commande est résolue par
  metadata.orderId, puis stripe_session_id, puis payment_intent, et le gestionnaire de cycle
  de vie rend paid -> paid idempotent.
"""
from typing import Any, Dict, Optional
import logging

from growwise.orders.service import OrderLifecycleManager
from growwise.payments import metadata as meta
from growwise.payments.stripe_client import PaymentProvider

logger = logging.getLogger(__name__)

PAYMENT_COMPLETED = frozenset({
    "checkout.session.completed",
    "checkout.session.async_payment_succeeded",
    "payment_intent.succeeded",
})
PAYMENT_FAILED = frozenset({
    "payment_intent.payment_failed",
    "checkout.session.async_payment_failed",
})


class WebhookReconciler:
    def __init__(self, lifecycle: OrderLifecycleManager, provider: PaymentProvider):
        self.lifecycle = lifecycle
        self.provider = provider

    async def handle_event(self, payload: bytes, signature: Optional[str]) -> Dict[str, Any]:
        """Vérifie puis traite un événement; renvoie l'accusé {"received": True, "status": ...}."""
        event = self.provider.construct_event(payload, signature)
        event_type = event.get("type") or ""
        event_id = event.get("id")
        logger.info("payments.webhook received id=%s type=%s", event_id, event_type)

        try:
            if event_type in PAYMENT_COMPLETED:
                status = await self._payment_completed(event_type, meta.event_object(event))
            elif event_type in PAYMENT_FAILED:
                status = await self._payment_failed(meta.event_object(event))
            else:
                status = "ignored"
        except Exception:
            logger.exception("payments.webhook processing failed id=%s type=%s", event_id, event_type)
            status = "error"
        return {"received": True, "type": event_type, "status": status}

    async def _resolve(self, obj: Dict[str, Any]):
        return await self.lifecycle.resolve_order(
            order_id=meta.extract_order_id(obj),
            session_id=meta.extract_session_id(obj),
            payment_intent_id=meta.extract_payment_intent_id(obj),
        )

    async def _payment_completed(self, event_type: str, obj: Dict[str, Any]) -> str:
        session_id = meta.extract_session_id(obj)
        if event_type == "checkout.session.completed" and obj.get("payment_status") == "unpaid":
            # moyen de paiement différé: async_payment_succeeded/failed tranchera
            logger.info("payments.webhook session=%s completed mais unpaid, en attente", session_id)
            return "awaiting_payment"

        order = await self._resolve(obj)
        if order is None:
            logger.error(
                "payments.webhook commande introuvable order_id=%s session=%s payment_intent=%s",
                meta.extract_order_id(obj), session_id, meta.extract_payment_intent_id(obj),
            )
            return "order_not_found"

        result = await self.lifecycle.mark_paid(
            order.id,
            session_id=session_id,
            payment_intent_id=meta.extract_payment_intent_id(obj),
            details=meta.extract_payment_details(obj),
        )
        return "paid" if result.applied else result.reason

    async def _payment_failed(self, obj: Dict[str, Any]) -> str:
        order = await self._resolve(obj)
        if order is None:
            logger.error(
                "payments.webhook échec de paiement sans commande order_id=%s payment_intent=%s",
                meta.extract_order_id(obj), meta.extract_payment_intent_id(obj),
            )
            return "order_not_found"

        result = await self.lifecycle.mark_failed(order.id, meta.extract_failure_message(obj))
        return "failed" if result.applied else result.reason
