"""
Sérialisation/désérialisation des métadonnées Stripe.
- build_metadata: métadonnées posées sur la session Checkout et le PaymentIntent
  (Stripe limite chaque valeur à 500 caractères: les champs libres sont tronqués à 200)
- extract_*: lecture tolérante d'un objet d'événement (checkout.session ou payment_intent)
"""
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, List, Optional

from growwise.orders.models import Order, OrderItem, OrderPatch, cents_to_money

META_VALUE_MAX = 200

# module growwise.payments.metadata
def build_metadata(order: Order, items: List[OrderItem]) -> Dict[str, str]:
    """
    Métadonnées de corrélation commande <-> session.
    - orderId: clé de résolution prioritaire côté webhook
    - itemIds: ids joints par ',' (197 caractères + '...' si trop long)
    - firstItem: noms joints par '; ' (200 caractères max)
    """
    meta = {
        "orderId": order.id,
        "locale": order.locale or "en",
        "itemCount": str(len(items)),
        "totalAmount": str(order.total_amount),
    }
    if order.customer_name:
        meta["customerName"] = order.customer_name[:META_VALUE_MAX]

    item_ids = ",".join(it.id for it in items)
    if len(item_ids) <= META_VALUE_MAX:
        meta["itemIds"] = item_ids
    else:
        meta["itemIds"] = item_ids[:META_VALUE_MAX - 3] + "..."

    item_names = "; ".join(it.name for it in items)
    if item_names:
        meta["firstItem"] = item_names[:META_VALUE_MAX]
    return meta


def event_object(event: Dict[str, Any]) -> Dict[str, Any]:
    """event.data.object, {} si absent."""
    data = (event or {}).get("data") or {}
    return data.get("object") or {}


def extract_order_id(obj: Dict[str, Any]) -> Optional[str]:
    meta = (obj or {}).get("metadata") or {}
    return meta.get("orderId") or meta.get("order_id") or None


def extract_session_id(obj: Dict[str, Any]) -> Optional[str]:
    if (obj or {}).get("object") == "checkout.session":
        return obj.get("id")
    return None


def extract_payment_intent_id(obj: Dict[str, Any]) -> Optional[str]:
    """payment_intent d'une session (id ou objet expandé), ou id de l'objet payment_intent lui-même."""
    obj = obj or {}
    if obj.get("object") == "payment_intent":
        return obj.get("id")
    pi = obj.get("payment_intent")
    if isinstance(pi, dict):
        return pi.get("id")
    return pi or None


def extract_failure_message(obj: Dict[str, Any]) -> str:
    err = (obj or {}).get("last_payment_error") or {}
    return err.get("message") or "Paiement refusé"


def _address_fields(name: Optional[str], address: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    address = address or {}
    return {
        "shipping_name": name,
        "shipping_line1": address.get("line1"),
        "shipping_line2": address.get("line2"),
        "shipping_city": address.get("city"),
        "shipping_state": address.get("state"),
        "shipping_postal_code": address.get("postal_code"),
        "shipping_country": address.get("country"),
    }


def _shipping(obj: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    # Checkout: shipping_details (anciennes API) ou collected_information.shipping_details
    # PaymentIntent: shipping
    collected = obj.get("collected_information") or {}
    return obj.get("shipping_details") or collected.get("shipping_details") or obj.get("shipping") or None


def extract_payment_details(obj: Dict[str, Any]) -> OrderPatch:
    """
    Détails de paiement confirmés -> OrderPatch.
    - amount_total (session) ou amount_received (payment_intent), en centimes
    - customer_details: email, nom, téléphone, premier tax_id
    - adresse de livraison, taxes (total_details.amount_tax) et taux calculé sur le sous-total
    """
    obj = obj or {}
    fields: Dict[str, Any] = {}

    cents = obj.get("amount_total")
    if cents is None:
        cents = obj.get("amount_received")
    if cents is not None:
        fields["amount_paid"] = cents_to_money(cents)
    if obj.get("currency"):
        fields["currency"] = str(obj["currency"]).lower()

    customer = obj.get("customer_details") or {}
    fields["customer_email"] = customer.get("email") or obj.get("customer_email") or obj.get("receipt_email")
    fields["customer_name"] = customer.get("name")
    fields["customer_phone"] = customer.get("phone")
    tax_ids = customer.get("tax_ids") or []
    if tax_ids:
        fields["tax_id"] = tax_ids[0].get("value")

    shipping = _shipping(obj)
    if shipping:
        fields.update(_address_fields(shipping.get("name"), shipping.get("address")))

    totals = obj.get("total_details") or {}
    tax_cents = totals.get("amount_tax")
    if tax_cents is not None:
        fields["tax_amount"] = cents_to_money(tax_cents)
        subtotal = obj.get("amount_subtotal")
        if subtotal:
            fields["tax_rate"] = (Decimal(int(tax_cents)) / Decimal(int(subtotal))).quantize(
                Decimal("0.0001"), rounding=ROUND_HALF_UP
            )

    return OrderPatch(**{k: v for k, v in fields.items() if v is not None})
