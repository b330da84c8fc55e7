"""
Conteneur des services applicatifs (pas de singletons globaux).

build_services() assemble store -> cycle de vie -> orchestrateur / webhook selon la configuration;
le lifespan le pose sur app.state.services, les tests injectent le leur via create_app(services=...).
Les vues y accèdent par les dépendances FastAPI ci-dessous.
"""
from dataclasses import dataclass
from typing import Optional
import logging

from fastapi import Request

from growwise.config import ORDER_STORE_BACKEND
from growwise.orders.memory import MemoryOrderStore
from growwise.orders.repository import OrderStore, SupabaseOrderStore
from growwise.orders.service import OrderLifecycleManager
from growwise.payments.service import CheckoutOrchestrator
from growwise.payments.stripe_client import PaymentProvider, StripePaymentProvider
from growwise.payments.webhooks import WebhookReconciler

logger = logging.getLogger(__name__)


@dataclass
class Services:
    store: OrderStore
    provider: PaymentProvider
    lifecycle: OrderLifecycleManager
    checkout: CheckoutOrchestrator
    webhooks: WebhookReconciler


def make_store(backend: str = ORDER_STORE_BACKEND) -> OrderStore:
    if backend == "supabase":
        return SupabaseOrderStore()
    if backend == "memory":
        logger.warning("Stockage des commandes en mémoire: données perdues au redémarrage")
        return MemoryOrderStore()
    raise RuntimeError(f"ORDER_STORE_BACKEND inconnu: {backend!r} (supabase | memory)")


def build_services(store: Optional[OrderStore] = None, provider: Optional[PaymentProvider] = None) -> Services:
    store = store or make_store()
    provider = provider or StripePaymentProvider()
    lifecycle = OrderLifecycleManager(store)
    return Services(
        store=store,
        provider=provider,
        lifecycle=lifecycle,
        checkout=CheckoutOrchestrator(lifecycle, provider),
        webhooks=WebhookReconciler(lifecycle, provider),
    )


def get_services(request: Request) -> Services:
    return request.app.state.services


def get_lifecycle(request: Request) -> OrderLifecycleManager:
    return get_services(request).lifecycle


def get_checkout(request: Request) -> CheckoutOrchestrator:
    return get_services(request).checkout


def get_webhooks(request: Request) -> WebhookReconciler:
    return get_services(request).webhooks


def get_provider(request: Request) -> PaymentProvider:
    return get_services(request).provider
