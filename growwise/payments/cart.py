"""
Logique panier pure (pas de Stripe, pas de DB).
"""
from decimal import Decimal
from typing import Any, Dict, List, Tuple
import math

from growwise.config import STRIPE_CURRENCY
from growwise.errors import InvalidCart
from growwise.orders.models import CENTS, OrderItem, to_money

# plafond Stripe: unit_amount et amount_total tiennent sur 8 chiffres en centimes
MAX_AMOUNT = Decimal("999999.99")


# module growwise.payments.cart
def _is_number(v: Any) -> bool:
    if isinstance(v, bool):
        return False
    if isinstance(v, float):
        return math.isfinite(v)
    return isinstance(v, (int, Decimal))


def _is_quantity(v: Any) -> bool:
    if isinstance(v, bool):
        return False
    if isinstance(v, float):
        return v.is_integer() and v >= 1
    return isinstance(v, int) and v >= 1


def parse_cart(items: Any) -> Tuple[List[OrderItem], Decimal]:
    """
    Valide un panier brut [{id, name, price, quantity, ...}, ...] et calcule le total.
    - Panier vide ou non-liste -> InvalidCart
    - Chaque ligne: id et name non vides, price numérique > 0 et <= MAX_AMOUNT, quantity entier >= 1
    - Total = Σ(price × quantity) au centime (ROUND_HALF_UP), dans ]0, MAX_AMOUNT]
    Les champs descriptifs (description, category, level, image...) sont conservés.
    """
    if not isinstance(items, list) or not items:
        raise InvalidCart("Le panier est vide")

    parsed: List[OrderItem] = []
    for index, raw in enumerate(items):
        if not isinstance(raw, dict):
            raise InvalidCart(f"Ligne {index}: objet attendu")
        item_id = str(raw.get("id") or "").strip()
        name = str(raw.get("name") or "").strip()
        price = raw.get("price")
        quantity = raw.get("quantity")
        if not item_id or not name or not _is_number(price) or not _is_quantity(quantity):
            raise InvalidCart(f"Ligne {index}: id, name, price et quantity sont requis")
        try:
            amount = to_money(price)
        except ArithmeticError as e:
            raise InvalidCart(f"Ligne {index}: prix invalide ({price})") from e
        if amount <= 0 or amount > MAX_AMOUNT:
            raise InvalidCart(f"Ligne {index}: prix invalide ({price})")
        parsed.append(OrderItem(**dict(raw, id=item_id, name=name, price=amount, quantity=int(quantity))))

    try:
        total = sum((it.price * it.quantity for it in parsed), Decimal("0")).quantize(CENTS)
    except ArithmeticError as e:
        raise InvalidCart("Montant total invalide") from e
    if total <= 0 or total > MAX_AMOUNT:
        raise InvalidCart("Montant total invalide")
    return parsed, total


def _description(item: OrderItem) -> str:
    extra = item.model_extra or {}
    if extra.get("description"):
        return str(extra["description"])
    return f"{extra.get('category') or 'Course'} - {extra.get('level') or ''}".strip(" -") or item.name


def to_line_items(items: List[OrderItem], currency: str = STRIPE_CURRENCY) -> List[Dict[str, Any]]:
    """
    Construit les line_items Stripe (1 ligne par article du panier).
    - price_data.unit_amount en centimes (entier)
    - product_data: name, description, images (si l'article a une image)
    """
    line_items: List[Dict[str, Any]] = []
    for it in items:
        extra = it.model_extra or {}
        product: Dict[str, Any] = {"name": it.name, "description": _description(it)}
        if extra.get("image"):
            product["images"] = [str(extra["image"])]
        line_items.append({
            "quantity": it.quantity,
            "price_data": {
                "currency": currency,
                "unit_amount": int(it.price * 100),
                "product_data": product,
            },
        })
    return line_items
