# module growwise.orders.memory
"""
Implémentation mémoire du contrat OrderStore (dev local sans Supabase, tests).
Aucune suspension entre lecture et écriture: chaque opération est atomique sur la boucle asyncio.
Les commandes sont stockées copiées pour qu'un appelant ne modifie pas l'état par référence.
"""
from datetime import timedelta
from typing import Any, Dict, List, Optional, Sequence, Tuple

from growwise.errors import DuplicateSessionId, OrderNotFound
from growwise.orders.models import Order, OrderPatch, OrderStatus, item_signature, utcnow
from growwise.orders.repository import DUPLICATE_WINDOW, OrderStore


class MemoryOrderStore(OrderStore):
    name = "memory"

    def __init__(self):
        self._orders: Dict[str, Order] = {}

    def _session_owner(self, session_id: Optional[str]) -> Optional[Order]:
        if not session_id:
            return None
        return next((o for o in self._orders.values() if o.stripe_session_id == session_id), None)

    async def create(self, order: Order) -> Order:
        self.validate_new(order)
        owner = self._session_owner(order.stripe_session_id)
        if owner is not None:
            raise DuplicateSessionId(order.stripe_session_id, owner.id)
        self._orders[order.id] = order.model_copy(deep=True)
        return order.model_copy(deep=True)

    async def get_by_id(self, order_id: str) -> Optional[Order]:
        order = self._orders.get(order_id)
        return order.model_copy(deep=True) if order else None

    async def find_by_session_id(self, session_id: str) -> Optional[Order]:
        order = self._session_owner(session_id)
        return order.model_copy(deep=True) if order else None

    async def find_by_payment_intent_id(self, payment_intent_id: str) -> Optional[Order]:
        if not payment_intent_id:
            return None
        for order in self._orders.values():
            if order.stripe_payment_intent_id == payment_intent_id:
                return order.model_copy(deep=True)
        return None

    async def find_pending_by_items_and_email(
        self, items: Sequence[Any], email: str, window: timedelta = DUPLICATE_WINDOW
    ) -> Optional[Order]:
        if not email:
            return None
        cutoff = utcnow() - window
        wanted = item_signature(items)
        candidates = [
            o for o in self._orders.values()
            if o.status is OrderStatus.PENDING
            and o.customer_email == email
            and o.created_at >= cutoff
            and item_signature(o.items) == wanted
        ]
        if not candidates:
            return None
        newest = max(candidates, key=lambda o: o.created_at)
        return newest.model_copy(deep=True)

    async def update(self, order_id: str, status: OrderStatus, patch: Optional[OrderPatch] = None) -> Order:
        current = self._orders.get(order_id)
        if current is None:
            raise OrderNotFound(order_id)
        if self.check_transition(current, status):
            return current.model_copy(deep=True)
        fields = (patch or OrderPatch()).fields()
        owner = self._session_owner(fields.get("stripe_session_id"))
        if owner is not None and owner.id != order_id:
            raise DuplicateSessionId(fields["stripe_session_id"], owner.id)
        updated = current.model_copy(update=dict(fields, status=status, updated_at=utcnow()), deep=True)
        self._orders[order_id] = updated
        return updated.model_copy(deep=True)

    async def list_by_email(self, email: str) -> List[Order]:
        if not email:
            return []
        orders = [o for o in self._orders.values() if o.customer_email == email]
        orders.sort(key=lambda o: o.created_at, reverse=True)
        return [o.model_copy(deep=True) for o in orders]

    async def list_all(self, limit: int = 100, offset: int = 0) -> Tuple[List[Order], int]:
        orders = sorted(self._orders.values(), key=lambda o: o.created_at, reverse=True)
        page = orders[offset:offset + limit]
        return [o.model_copy(deep=True) for o in page], len(orders)
