"""
Factory d'application pour les entrypoints (growwise.asgi, python -m growwise) et les tests.
Ordonne les étapes d'initialisation de manière lisible et testable.
"""
from typing import Optional

from fastapi import FastAPI

from growwise.services import Services
from .exceptions import register_exception_handlers
from .lifespan import lifespan
from .logging_setup import configure_logging
from .middlewares import register_basic_middlewares, register_force_https_middleware, register_security_middleware
from .routers import register_routers


def create_app(services: Optional[Services] = None) -> FastAPI:
    """
    Construit l'app FastAPI avec le lifespan et enregistre:
      - logging, middlewares CORS/TrustedHost et en-têtes de sécurité
      - gestionnaires d'exceptions (forme {"error", "message"})
      - routers paiement, commandes, health
      - redirection HTTPS ajoutée en dernier pour s'exécuter en premier
    services: conteneur injecté (tests); sinon construit au démarrage par le lifespan.
    """
    configure_logging()
    app = FastAPI(title="GrowWise Payments API", lifespan=lifespan)
    app.state.services = services
    register_basic_middlewares(app)
    register_security_middleware(app)
    register_exception_handlers(app)
    register_routers(app)
    register_force_https_middleware(app)
    return app
