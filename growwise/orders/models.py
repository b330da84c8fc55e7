# module growwise.orders.models
"""Modèles de la feature Commandes.
- Order: enregistrement durable d'une tentative de checkout et de son issue de paiement.
- OrderItem: ligne de panier figée à la création (id, name, price, quantity + champs descriptifs).
- OrderPatch: champs mutables énumérés explicitement (paiement, client, livraison, taxes).
  Un champ inconnu est refusé (extra="forbid") au lieu d'être fusionné en base.
Montants: Decimal arrondi au centime (ROUND_HALF_UP), sérialisés en nombre côté JSON.
"""
from datetime import datetime, timezone
from decimal import Decimal, ROUND_HALF_UP
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, field_serializer, field_validator
from pydantic.alias_generators import to_camel

CENTS = Decimal("0.01")


def to_money(value: Any) -> Decimal:
    """Convertit un prix (str|int|float|Decimal) en Decimal au centime, sans dérive binaire."""
    return Decimal(str(value)).quantize(CENTS, rounding=ROUND_HALF_UP)


def cents_to_money(cents: Any) -> Decimal:
    """Montant Stripe en centimes -> Decimal (9998 -> 99.98)."""
    return (Decimal(int(cents)) / 100).quantize(CENTS, rounding=ROUND_HALF_UP)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class OrderStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self is not OrderStatus.PENDING


class OrderItem(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: str
    name: str
    price: Decimal
    quantity: int

    @field_validator("price", mode="before")
    @classmethod
    def _price_from_json(cls, v: Any) -> Any:
        # jsonb renvoie des float: passer par str pour éviter 49.990000000000002
        if isinstance(v, Decimal):
            return v
        try:
            return to_money(v)
        except ArithmeticError:
            raise ValueError(f"prix invalide: {v!r}")

    @field_serializer("price", when_used="json")
    def _price_json(self, v: Decimal) -> float:
        return float(v)


def item_signature(items: Iterable[Any]) -> List[Tuple[str, int]]:
    """Multiset (id, quantity) trié: deux paniers identiques ont la même signature, prix ignoré."""
    sig: List[Tuple[str, int]] = []
    for it in items or []:
        if isinstance(it, dict):
            sig.append((str(it.get("id")), int(it.get("quantity") or 0)))
        else:
            sig.append((str(it.id), int(it.quantity)))
    return sorted(sig)


_MONEY_FIELDS = ("total_amount", "amount_paid", "tax_amount", "tax_rate", "processing_fee")


class Order(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: str
    status: OrderStatus = OrderStatus.PENDING
    items: List[OrderItem]
    locale: str = "en"

    customer_email: Optional[str] = None
    customer_name: Optional[str] = None
    customer_phone: Optional[str] = None

    total_amount: Decimal
    currency: Optional[str] = None
    amount_paid: Optional[Decimal] = None

    stripe_session_id: Optional[str] = None
    stripe_payment_intent_id: Optional[str] = None
    stripe_session_url: Optional[str] = None

    shipping_name: Optional[str] = None
    shipping_line1: Optional[str] = None
    shipping_line2: Optional[str] = None
    shipping_city: Optional[str] = None
    shipping_state: Optional[str] = None
    shipping_postal_code: Optional[str] = None
    shipping_country: Optional[str] = None

    tax_amount: Decimal = Decimal("0")
    tax_rate: Optional[Decimal] = None
    tax_id: Optional[str] = None
    processing_fee: Decimal = Decimal("0")

    paid_at: Optional[datetime] = None
    failed_at: Optional[datetime] = None
    error_message: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None

    created_at: datetime
    updated_at: datetime

    @field_validator("tax_amount", "processing_fee", mode="before")
    @classmethod
    def _zero_if_null(cls, v: Any) -> Any:
        # colonnes DEFAULT 0 qui peuvent revenir NULL sur d'anciennes lignes
        return 0 if v is None else v

    @field_serializer(*_MONEY_FIELDS, when_used="json")
    def _money_json(self, v: Optional[Decimal]) -> Optional[float]:
        return float(v) if v is not None else None

    def to_public(self) -> Dict[str, Any]:
        """Représentation JSON camelCase pour l'API."""
        return self.model_dump(mode="json", by_alias=True)

    def to_row(self) -> Dict[str, Any]:
        """Ligne Supabase (snake_case). Les montants partent en str pour garder la précision DECIMAL."""
        row = self.model_dump(mode="json")
        for name in _MONEY_FIELDS:
            value = getattr(self, name)
            row[name] = str(value) if value is not None else None
        return row


class OrderPatch(BaseModel):
    model_config = ConfigDict(extra="forbid")

    stripe_session_id: Optional[str] = None
    stripe_payment_intent_id: Optional[str] = None
    stripe_session_url: Optional[str] = None
    paid_at: Optional[datetime] = None
    failed_at: Optional[datetime] = None
    error_message: Optional[str] = None
    amount_paid: Optional[Decimal] = None
    currency: Optional[str] = None
    customer_email: Optional[str] = None
    customer_name: Optional[str] = None
    customer_phone: Optional[str] = None
    shipping_name: Optional[str] = None
    shipping_line1: Optional[str] = None
    shipping_line2: Optional[str] = None
    shipping_city: Optional[str] = None
    shipping_state: Optional[str] = None
    shipping_postal_code: Optional[str] = None
    shipping_country: Optional[str] = None
    tax_amount: Optional[Decimal] = None
    tax_rate: Optional[Decimal] = None
    tax_id: Optional[str] = None
    processing_fee: Optional[Decimal] = None
    metadata: Optional[Dict[str, Any]] = None

    def fields(self) -> Dict[str, Any]:
        """Champs renseignés uniquement (valeurs Python typées)."""
        return self.model_dump(exclude_none=True)

    def as_columns(self) -> Dict[str, Any]:
        """Champs renseignés, prêts pour un update Supabase (Decimal -> str, datetime -> ISO)."""
        cols: Dict[str, Any] = {}
        for key, value in self.fields().items():
            if isinstance(value, Decimal):
                cols[key] = str(value)
            elif isinstance(value, datetime):
                cols[key] = value.isoformat()
            else:
                cols[key] = value
        return cols
