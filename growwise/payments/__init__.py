"""
Module 'payments' (feature-first): point d'entrée public.
Réunit logique panier, metadata Stripe, client Stripe, orchestration du checkout et webhooks.
"""

from .cart import parse_cart, to_line_items
from .metadata import build_metadata, extract_payment_details
from .stripe_client import PaymentProvider, ProviderSession, StripePaymentProvider
from .service import CheckoutOrchestrator, CheckoutResult
from .webhooks import WebhookReconciler

__all__ = [
    # cart
    "parse_cart",
    "to_line_items",
    # metadata
    "build_metadata",
    "extract_payment_details",
    # stripe
    "PaymentProvider",
    "ProviderSession",
    "StripePaymentProvider",
    # services
    "CheckoutOrchestrator",
    "CheckoutResult",
    "WebhookReconciler",
]
