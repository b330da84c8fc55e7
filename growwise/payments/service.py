"""
Cas d'usage 'payments': orchestre cart, metadata, stripe et le cycle de vie des commandes.

create_checkout:
1) valide le panier (InvalidCart)
2) anti double-soumission: commande pending identique (même email, mêmes articles, < 5 min)
   dont la session Stripe est encore 'open' -> renvoyée telle quelle
3) crée la commande pending AVANT Stripe
4) crée la session Stripe (clé d'idempotence liée à la commande, timeout borné);
   en cas d'échec: commande -> failed puis ProviderError
5) rattache la session en tâche de fond (la réponse part sans l'attendre)
"""
from dataclasses import dataclass
from typing import Any, Optional, Set
import asyncio
import logging

from growwise.config import CHECKOUT_CANCEL_PATH, CHECKOUT_SUCCESS_PATH, FRONTEND_URL
from growwise.errors import ProviderError
from growwise.orders.models import Order
from growwise.orders.service import OrderLifecycleManager
from growwise.payments import cart as cart_logic
from growwise.payments.metadata import build_metadata
from growwise.payments.stripe_client import PaymentProvider, ProviderSession

logger = logging.getLogger(__name__)


@dataclass
class CheckoutResult:
    session_id: str
    order_id: str
    redirect_url: Optional[str]
    reused: bool = False


def idempotency_key(order: Order) -> str:
    """checkout_<orderId>_<createdAt epoch ms>: stable pour une commande donnée."""
    return f"checkout_{order.id}_{int(order.created_at.timestamp() * 1000)}"


def redirect_urls(locale: str, frontend_url: str = FRONTEND_URL) -> tuple[str, str]:
    base = f"{frontend_url.rstrip('/')}/{locale or 'en'}"
    return base + CHECKOUT_SUCCESS_PATH, base + CHECKOUT_CANCEL_PATH


class CheckoutOrchestrator:
    def __init__(self, lifecycle: OrderLifecycleManager, provider: PaymentProvider, frontend_url: str = FRONTEND_URL):
        self.lifecycle = lifecycle
        self.provider = provider
        self.frontend_url = frontend_url
        self._attach_tasks: Set[asyncio.Task] = set()

    async def _reusable_session(self, items, customer_email: Optional[str]) -> Optional[CheckoutResult]:
        """Session ouverte d'une commande pending identique, sinon None (erreurs Stripe ignorées)."""
        existing = await self.lifecycle.find_recent_pending(items, customer_email)
        if existing is None or not existing.stripe_session_id:
            return None
        try:
            session = await self.provider.retrieve_session(existing.stripe_session_id)
        except Exception:
            logger.warning(
                "payments.checkout session existante illisible order_id=%s session=%s",
                existing.id, existing.stripe_session_id, exc_info=True,
            )
            return None
        if session.status != "open":
            return None
        logger.info("payments.checkout reuse order_id=%s session=%s", existing.id, session.id)
        return CheckoutResult(
            session_id=session.id,
            order_id=existing.id,
            redirect_url=session.url or existing.stripe_session_url,
            reused=True,
        )

    async def create_checkout(
        self,
        items: Any,
        *,
        customer_email: Optional[str] = None,
        customer_name: Optional[str] = None,
        locale: str = "en",
    ) -> CheckoutResult:
        parsed, total = cart_logic.parse_cart(items)
        locale = locale or "en"

        reused = await self._reusable_session(parsed, customer_email)
        if reused is not None:
            return reused

        order = await self.lifecycle.create_order(
            items=parsed,
            total_amount=total,
            customer_email=customer_email,
            customer_name=customer_name,
            locale=locale,
        )

        success_url, cancel_url = redirect_urls(locale, self.frontend_url)
        try:
            session = await self.provider.create_session(
                line_items=cart_logic.to_line_items(parsed),
                success_url=success_url,
                cancel_url=cancel_url,
                customer_email=customer_email,
                metadata=build_metadata(order, parsed),
                idempotency_key=idempotency_key(order),
            )
        except Exception as e:
            logger.exception("payments.checkout stripe failed order_id=%s", order.id)
            try:
                await self.lifecycle.mark_failed(order.id, str(e))
            except Exception:
                logger.exception("payments.checkout mark_failed failed order_id=%s", order.id)
            if isinstance(e, ProviderError):
                raise
            raise ProviderError(str(e)) from e

        self._schedule_attach(order.id, session)
        logger.info("payments.checkout created order_id=%s session=%s", order.id, session.id)
        return CheckoutResult(session_id=session.id, order_id=order.id, redirect_url=session.url)

    def _schedule_attach(self, order_id: str, session: ProviderSession) -> None:
        task = asyncio.create_task(self._attach(order_id, session))
        self._attach_tasks.add(task)
        task.add_done_callback(self._attach_tasks.discard)

    async def _attach(self, order_id: str, session: ProviderSession) -> None:
        try:
            await self.lifecycle.attach_session(
                order_id,
                session.id,
                payment_intent_id=session.payment_intent_id,
                session_url=session.url,
            )
        except Exception:
            # non bloquant: le webhook résout la commande via metadata.orderId
            logger.exception("payments.checkout attach_session failed order_id=%s session=%s", order_id, session.id)

    async def wait_pending(self) -> None:
        """Attend les rattachements en cours (arrêt de l'application, tests)."""
        if self._attach_tasks:
            await asyncio.gather(*list(self._attach_tasks), return_exceptions=True)
