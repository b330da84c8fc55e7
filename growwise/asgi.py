"""
ASGI entrypoint: expose `app` pour uvicorn / process managers.

- En production: `uvicorn growwise.asgi:app` (ou gunicorn -k uvicorn.workers.UvicornWorker).
- Toute la configuration (routers, middlewares, lifespan, services) est centralisée dans
  growwise.app_setup.factory; ce fichier ne fait qu'exposer l'instance `app`.
"""
from growwise.app_setup.factory import create_app

app = create_app()
