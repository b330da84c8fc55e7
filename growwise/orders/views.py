import logging
import secrets
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Query

from growwise.config import ADMIN_API_TOKEN
from growwise.errors import OrderNotFound, ValidationError
from growwise.orders.service import OrderLifecycleManager
from growwise.services import get_lifecycle

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/payment", tags=["Orders API"])


def require_admin_token(x_admin_token: Optional[str] = Header(default=None)) -> None:
    """
    Garde du listing admin: en-tête X-Admin-Token comparé à ADMIN_API_TOKEN (temps constant).
    - ADMIN_API_TOKEN vide: route désactivée (403)
    """
    if not ADMIN_API_TOKEN:
        raise HTTPException(status_code=403, detail="Listing admin désactivé")
    if not x_admin_token or not secrets.compare_digest(x_admin_token, ADMIN_API_TOKEN):
        raise HTTPException(status_code=401, detail="Jeton admin invalide")


# module growwise.orders.views
@router.get("/order/{order_id}")
async def get_order(order_id: str, lifecycle: OrderLifecycleManager = Depends(get_lifecycle)) -> Dict[str, Any]:
    """Commande par id (ou par stripe_session_id, la page de succès ne connaissant que la session)."""
    order = await lifecycle.get_order(order_id)
    if order is None:
        raise OrderNotFound(order_id)
    return {"order": order.to_public()}


async def _orders_for_email(email: str, lifecycle: OrderLifecycleManager) -> Dict[str, Any]:
    email = (email or "").strip()
    if not email:
        raise ValidationError("Paramètre email requis", public_message="Email requis")
    orders = await lifecycle.list_by_email(email)
    return {"orders": [o.to_public() for o in orders]}


@router.get("/orders")
async def list_orders_by_email(
    email: str = Query(default=""),
    lifecycle: OrderLifecycleManager = Depends(get_lifecycle),
) -> Dict[str, Any]:
    """Commandes d'un client (plus récentes d'abord)."""
    return await _orders_for_email(email, lifecycle)


@router.get("/orders/email/{email}", include_in_schema=False)
async def list_orders_by_email_path(email: str, lifecycle: OrderLifecycleManager = Depends(get_lifecycle)) -> Dict[str, Any]:
    return await _orders_for_email(email, lifecycle)


@router.get("/admin/orders", dependencies=[Depends(require_admin_token)])
async def admin_list_orders(
    limit: int = Query(default=100, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
    lifecycle: OrderLifecycleManager = Depends(get_lifecycle),
) -> Dict[str, Any]:
    orders, total = await lifecycle.list_all(limit=limit, offset=offset)
    return {"orders": [o.to_public() for o in orders], "total": total, "limit": limit, "offset": offset}
