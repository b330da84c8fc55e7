"""
Registre central des routers.
- API paiement: checkout, session, webhook Stripe (growwise.payments.views)
- API commandes: lecture par id/email, listing admin (growwise.orders.views)
- Health: /health
"""
from fastapi import FastAPI
from growwise.payments import views as payments_views
from growwise.orders import views as orders_views
from growwise.health.router import router as health_router


def register_routers(app: FastAPI) -> None:
    app.include_router(payments_views.router)
    app.include_router(orders_views.router)
    app.include_router(health_router)
