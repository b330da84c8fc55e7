# module growwise.orders.repository
"""
Accès aux données pour la feature 'orders'.

OrderStore définit le contrat (async) commun aux implémentations:
- SupabaseOrderStore (ci-dessous): table 'orders', client service-role, appels bloquants
  exécutés dans le threadpool pour ne suspendre que la requête courante.
- MemoryOrderStore (growwise.orders.memory): dev local et tests.

Règles portées par le store lui-même:
- stripe_session_id unique quand non NULL (index unique partiel côté SQL) -> DuplicateSessionId
- update(paid -> paid) est un no-op qui renvoie la ligne courante (livraison webhook répétée)
- un statut terminal (paid/failed) ne change plus -> InvalidTransition
"""
from abc import ABC, abstractmethod
from datetime import timedelta
from typing import Any, Dict, List, Optional, Sequence, Tuple
import logging

from postgrest.exceptions import APIError
from starlette.concurrency import run_in_threadpool

from growwise.config import DUPLICATE_ORDER_WINDOW_SECONDS, ORDERS_TABLE
from growwise.errors import DuplicateSessionId, InvalidTransition, OrderNotFound, ValidationError
from growwise.orders.models import Order, OrderPatch, OrderStatus, item_signature, utcnow

logger = logging.getLogger(__name__)

DUPLICATE_WINDOW = timedelta(seconds=DUPLICATE_ORDER_WINDOW_SECONDS)
UNIQUE_VIOLATION = "23505"


class OrderStore(ABC):
    """Contrat de stockage des commandes (aucun cache: chaque lecture va au stockage)."""

    name = "abstract"

    @abstractmethod
    async def create(self, order: Order) -> Order: ...

    @abstractmethod
    async def get_by_id(self, order_id: str) -> Optional[Order]: ...

    @abstractmethod
    async def find_by_session_id(self, session_id: str) -> Optional[Order]: ...

    @abstractmethod
    async def find_by_payment_intent_id(self, payment_intent_id: str) -> Optional[Order]: ...

    @abstractmethod
    async def find_pending_by_items_and_email(
        self, items: Sequence[Any], email: str, window: timedelta = DUPLICATE_WINDOW
    ) -> Optional[Order]: ...

    @abstractmethod
    async def update(self, order_id: str, status: OrderStatus, patch: Optional[OrderPatch] = None) -> Order: ...

    @abstractmethod
    async def list_by_email(self, email: str) -> List[Order]: ...

    @abstractmethod
    async def list_all(self, limit: int = 100, offset: int = 0) -> Tuple[List[Order], int]: ...

    @staticmethod
    def validate_new(order: Order) -> None:
        """Champs requis à la création (id, items, total_amount)."""
        missing = []
        if not order.id:
            missing.append("id")
        if not order.items:
            missing.append("items")
        if order.total_amount is None:
            missing.append("total_amount")
        if missing:
            raise ValidationError(f"Champs requis manquants: {', '.join(missing)}")

    @staticmethod
    def check_transition(current: Order, status: OrderStatus) -> bool:
        """
        Garde de statut commune aux implémentations.
        - True: no-op (déjà paid, paid demandé) -> renvoyer la ligne courante
        - False: la mise à jour peut s'appliquer
        - InvalidTransition si un statut terminal devrait changer
        """
        if current.status is OrderStatus.PAID and status is OrderStatus.PAID:
            return True
        if current.status.is_terminal and status is not current.status:
            raise InvalidTransition(current.id, current.status.value, status.value, "statut terminal")
        return False


def _row_to_order(row: Optional[Dict[str, Any]]) -> Optional[Order]:
    if not row:
        return None
    return Order.model_validate(row)


def _first(res) -> Optional[Dict[str, Any]]:
    rows = getattr(res, "data", None) or []
    if isinstance(rows, list):
        return rows[0] if rows else None
    return rows


class SupabaseOrderStore(OrderStore):
    """Implémentation Supabase (PostgREST) du contrat OrderStore."""

    name = "supabase"

    def __init__(self, client_factory=None, table: str = ORDERS_TABLE):
        if client_factory is None:
            from growwise.infra import supabase_client
            client_factory = supabase_client.get_service_supabase
        self._client_factory = client_factory
        self.table = table

    def _table(self):
        return self._client_factory().table(self.table)

    async def create(self, order: Order) -> Order:
        self.validate_new(order)
        row = order.to_row()

        def _insert():
            return self._table().insert(row).execute()

        try:
            res = await run_in_threadpool(_insert)
        except APIError as e:
            if getattr(e, "code", None) == UNIQUE_VIOLATION:
                raise DuplicateSessionId(order.stripe_session_id or "", order.id) from e
            logger.exception("orders.repository.create failed order_id=%s", order.id)
            raise
        return _row_to_order(_first(res)) or order

    async def _select_one(self, column: str, value: str) -> Optional[Order]:
        def _select():
            return self._table().select("*").eq(column, value).limit(1).execute()

        res = await run_in_threadpool(_select)
        return _row_to_order(_first(res))

    async def get_by_id(self, order_id: str) -> Optional[Order]:
        if not order_id:
            return None
        return await self._select_one("id", order_id)

    async def find_by_session_id(self, session_id: str) -> Optional[Order]:
        if not session_id:
            return None
        return await self._select_one("stripe_session_id", session_id)

    async def find_by_payment_intent_id(self, payment_intent_id: str) -> Optional[Order]:
        if not payment_intent_id:
            return None
        return await self._select_one("stripe_payment_intent_id", payment_intent_id)

    async def find_pending_by_items_and_email(
        self, items: Sequence[Any], email: str, window: timedelta = DUPLICATE_WINDOW
    ) -> Optional[Order]:
        if not email:
            return None
        cutoff = (utcnow() - window).isoformat()

        def _select():
            return (
                self._table()
                .select("*")
                .eq("status", OrderStatus.PENDING.value)
                .eq("customer_email", email)
                .gte("created_at", cutoff)
                .order("created_at", desc=True)
                .execute()
            )

        res = await run_in_threadpool(_select)
        wanted = item_signature(items)
        # Comparaison JSONB délicate côté PostgREST: filtrage du multiset en Python
        for row in res.data or []:
            if item_signature(row.get("items") or []) == wanted:
                return _row_to_order(row)
        return None

    async def update(self, order_id: str, status: OrderStatus, patch: Optional[OrderPatch] = None) -> Order:
        columns = (patch or OrderPatch()).as_columns()
        current = await self.get_by_id(order_id)
        # 2 tentatives: la seconde absorbe une écriture concurrente entre lecture et update
        for _ in range(2):
            if current is None:
                raise OrderNotFound(order_id)
            if self.check_transition(current, status):
                logger.warning("orders.repository.update noop order_id=%s already paid", order_id)
                return current

            payload = dict(columns, status=status.value, updated_at=utcnow().isoformat())
            expected = current.status.value

            def _update():
                # compare-and-set: ne s'applique que si le statut lu n'a pas bougé
                return (
                    self._table()
                    .update(payload)
                    .eq("id", order_id)
                    .eq("status", expected)
                    .execute()
                )

            try:
                res = await run_in_threadpool(_update)
            except APIError as e:
                if getattr(e, "code", None) == UNIQUE_VIOLATION:
                    raise DuplicateSessionId(columns.get("stripe_session_id") or "", order_id) from e
                logger.exception("orders.repository.update failed order_id=%s status=%s", order_id, status.value)
                raise
            updated = _row_to_order(_first(res))
            if updated is not None:
                return updated
            current = await self.get_by_id(order_id)
        raise InvalidTransition(order_id, current.status.value if current else "?", status.value, "écriture concurrente")

    async def list_by_email(self, email: str) -> List[Order]:
        if not email:
            return []

        def _select():
            return (
                self._table()
                .select("*")
                .eq("customer_email", email)
                .order("created_at", desc=True)
                .execute()
            )

        res = await run_in_threadpool(_select)
        return [Order.model_validate(r) for r in (res.data or [])]

    async def list_all(self, limit: int = 100, offset: int = 0) -> Tuple[List[Order], int]:
        def _select():
            return (
                self._table()
                .select("*", count="exact")
                .order("created_at", desc=True)
                .range(offset, offset + limit - 1)
                .execute()
            )

        res = await run_in_threadpool(_select)
        orders = [Order.model_validate(r) for r in (res.data or [])]
        return orders, int(getattr(res, "count", None) or 0)
