"""Couche service de la feature Commandes (cycle de vie).
Rôles:
- Créer une commande « pending » avant tout appel Stripe (un enregistrement existe même si Stripe échoue).
- Rattacher la session Checkout (id, payment_intent, url) à la commande.
- Appliquer les transitions terminales pending -> paid / pending -> failed.
Gardes:
- paid -> paid: no-op (livraison webhook répétée ou webhooks concurrents).
- paid sous une autre session: anomalie de double paiement, warning et aucune écriture.
- toute autre transition refusée (InvalidTransition) est journalisée et non appliquée: ne jamais lever
  vers le webhook, Stripe relivrerait indéfiniment.
"""
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, List, Optional, Sequence, Tuple
from uuid import uuid4
import logging
import time

from growwise.errors import InvalidTransition, OrderNotFound
from growwise.orders.models import Order, OrderItem, OrderPatch, OrderStatus, utcnow
from growwise.orders.repository import OrderStore

logger = logging.getLogger(__name__)


@dataclass
class TransitionResult:
    order: Order
    applied: bool
    reason: str = ""


def generate_order_id() -> str:
    """Identifiant opaque ORD-<epoch ms>-<aléa>, jamais réutilisé."""
    return f"ORD-{int(time.time() * 1000)}-{uuid4().hex[:8]}".upper()


class OrderLifecycleManager:
    def __init__(self, store: OrderStore):
        self.store = store

    async def create_order(
        self,
        *,
        items: Sequence[OrderItem],
        total_amount: Decimal,
        customer_email: Optional[str] = None,
        customer_name: Optional[str] = None,
        locale: str = "en",
    ) -> Order:
        now = utcnow()
        order = Order(
            id=generate_order_id(),
            status=OrderStatus.PENDING,
            items=list(items),
            locale=locale or "en",
            customer_email=customer_email or None,
            customer_name=customer_name or None,
            total_amount=total_amount,
            created_at=now,
            updated_at=now,
        )
        created = await self.store.create(order)
        logger.info("orders.create order_id=%s total=%s items=%s", created.id, created.total_amount, len(created.items))
        return created

    async def _require(self, order_id: str) -> Order:
        order = await self.store.get_by_id(order_id)
        if order is None:
            raise OrderNotFound(order_id)
        return order

    async def get_order(self, order_id: str) -> Optional[Order]:
        """Lecture par id, puis par stripe_session_id (la page de succès ne connaît que la session)."""
        order = await self.store.get_by_id(order_id)
        if order is None:
            order = await self.store.find_by_session_id(order_id)
        return order

    async def find_by_session_id(self, session_id: str) -> Optional[Order]:
        return await self.store.find_by_session_id(session_id)

    async def find_recent_pending(self, items: Sequence[Any], email: Optional[str]) -> Optional[Order]:
        if not email:
            return None
        return await self.store.find_pending_by_items_and_email(items, email)

    async def resolve_order(
        self,
        *,
        order_id: Optional[str] = None,
        session_id: Optional[str] = None,
        payment_intent_id: Optional[str] = None,
    ) -> Optional[Order]:
        """Résolution d'une commande depuis un événement: metadata.orderId, puis session, puis payment_intent."""
        if order_id:
            order = await self.store.get_by_id(order_id)
            if order is not None:
                return order
            logger.warning("orders.resolve metadata order_id=%s introuvable, fallback corrélation Stripe", order_id)
        if session_id:
            order = await self.store.find_by_session_id(session_id)
            if order is not None:
                return order
        if payment_intent_id:
            return await self.store.find_by_payment_intent_id(payment_intent_id)
        return None

    async def list_by_email(self, email: str) -> List[Order]:
        return await self.store.list_by_email(email)

    async def list_all(self, limit: int = 100, offset: int = 0) -> Tuple[List[Order], int]:
        return await self.store.list_all(limit=limit, offset=offset)

    async def attach_session(
        self,
        order_id: str,
        session_id: str,
        payment_intent_id: Optional[str] = None,
        session_url: Optional[str] = None,
    ) -> TransitionResult:
        """Rattache la session Stripe à une commande pending. DuplicateSessionId remonte à l'appelant."""
        order = await self._require(order_id)
        if order.status is OrderStatus.PAID and order.stripe_session_id and order.stripe_session_id != session_id:
            logger.warning(
                "orders.attach_session refused order_id=%s already paid under session=%s incoming=%s",
                order_id, order.stripe_session_id, session_id,
            )
            return TransitionResult(order, False, "paid_other_session")
        if order.status.is_terminal:
            # webhook arrivé avant le rattachement: rien à écrire
            logger.info("orders.attach_session skipped order_id=%s status=%s", order_id, order.status.value)
            return TransitionResult(order, False, order.status.value)

        patch = OrderPatch(
            stripe_session_id=session_id,
            stripe_payment_intent_id=payment_intent_id,
            stripe_session_url=session_url,
        )
        try:
            updated = await self.store.update(order_id, OrderStatus.PENDING, patch)
        except InvalidTransition as e:
            logger.warning("orders.attach_session %s", e)
            return TransitionResult(await self._require(order_id), False, "invalid_transition")
        logger.info("orders.attach_session order_id=%s session=%s", order_id, session_id)
        return TransitionResult(updated, True)

    async def mark_paid(
        self,
        order_id: str,
        *,
        session_id: Optional[str] = None,
        payment_intent_id: Optional[str] = None,
        details: Optional[OrderPatch] = None,
    ) -> TransitionResult:
        """Transition pending -> paid, déclenchée uniquement par un événement Stripe confirmé."""
        order = await self._require(order_id)

        if order.status is OrderStatus.PAID:
            return self._already_paid(order, session_id)

        if order.status is OrderStatus.FAILED:
            err = InvalidTransition(order_id, order.status.value, OrderStatus.PAID.value, "statut terminal")
            logger.error("orders.mark_paid %s: paiement reçu sur commande failed, réconciliation manuelle", err)
            return TransitionResult(order, False, "invalid_transition")

        update: Dict[str, Any] = {"paid_at": utcnow()}
        if session_id and not order.stripe_session_id:
            update["stripe_session_id"] = session_id
        elif session_id and order.stripe_session_id != session_id:
            logger.warning(
                "orders.mark_paid session mismatch order_id=%s recorded=%s incoming=%s",
                order_id, order.stripe_session_id, session_id,
            )
        if payment_intent_id:
            update["stripe_payment_intent_id"] = payment_intent_id
        # backfill seulement: les coordonnées saisies au checkout restent prioritaires
        for key in ("customer_email", "customer_name", "customer_phone"):
            if getattr(order, key):
                update[key] = getattr(order, key)
        patch = (details or OrderPatch()).model_copy(update=update)

        try:
            updated = await self.store.update(order_id, OrderStatus.PAID, patch)
        except InvalidTransition as e:
            logger.warning("orders.mark_paid %s", e)
            return TransitionResult(await self._require(order_id), False, "invalid_transition")
        if updated.paid_at != update["paid_at"]:
            # compare-and-set perdu: un autre événement a payé la commande entre lecture et écriture
            return self._already_paid(updated, session_id)
        logger.info(
            "orders.mark_paid order_id=%s amount_paid=%s currency=%s",
            order_id, updated.amount_paid, updated.currency,
        )
        return TransitionResult(updated, True)

    def _already_paid(self, order: Order, session_id: Optional[str]) -> TransitionResult:
        if session_id and order.stripe_session_id and order.stripe_session_id != session_id:
            logger.warning(
                "orders.mark_paid duplicate payment suspected order_id=%s recorded_session=%s incoming_session=%s",
                order.id, order.stripe_session_id, session_id,
            )
            return TransitionResult(order, False, "paid_other_session")
        logger.info("orders.mark_paid noop order_id=%s already paid", order.id)
        return TransitionResult(order, False, "already_paid")

    async def mark_failed(self, order_id: str, error_message: str) -> TransitionResult:
        """Transition pending -> failed (échec de création de session ou paiement refusé)."""
        order = await self._require(order_id)
        if order.status is not OrderStatus.PENDING:
            err = InvalidTransition(order_id, order.status.value, OrderStatus.FAILED.value, "statut terminal")
            logger.warning("orders.mark_failed %s", err)
            return TransitionResult(order, False, "invalid_transition")

        patch = OrderPatch(error_message=(error_message or "Erreur inconnue")[:1000], failed_at=utcnow())
        try:
            updated = await self.store.update(order_id, OrderStatus.FAILED, patch)
        except InvalidTransition as e:
            logger.warning("orders.mark_failed %s", e)
            return TransitionResult(await self._require(order_id), False, "invalid_transition")
        logger.info("orders.mark_failed order_id=%s error=%s", order_id, updated.error_message)
        return TransitionResult(updated, True)
