# growwise.config
from pathlib import Path
import os
from dotenv import load_dotenv

# Calculer le chemin du projet puis charger .env de manière explicite
BASE_DIR = Path(__file__).resolve().parent.parent
ENV_PATH = BASE_DIR / ".env"
load_dotenv(dotenv_path=ENV_PATH, override=False)

"""
Configuration centrale du backend GrowWise (checkout & paiements).

- Charge le fichier .env à la racine du projet (BASE_DIR/.env), sans écraser l'environnement réel
- Normalise et expose les secrets/URLs (Supabase, Stripe)
- Choix du stockage des commandes (supabase | memory)
- CORS/hosts, rate limiting, URLs front pour les redirections de checkout
"""

def _clean_env(v: str) -> str:
    """
    Nettoie une valeur d'environnement:
    - supprime les espaces et guillemets (simples, doubles) et backticks
    - retourne toujours une chaîne (jamais None)
    """
    return (v or "").strip().strip("'").strip('"').strip("`")

def _flag(name: str, default: str = "false") -> bool:
    return _clean_env(os.getenv(name, default)).lower() in ("1", "true", "yes")

def _csv(name: str, default: str) -> list[str]:
    return [x.strip() for x in os.getenv(name, default).split(",") if x.strip()]

# Environnement: "production" masque les détails d'erreur côté client
APP_ENV = _clean_env(os.getenv("APP_ENV") or os.getenv("NODE_ENV") or "development").lower()
IS_PRODUCTION = APP_ENV == "production"
LOG_LEVEL = _clean_env(os.getenv("LOG_LEVEL") or ("info" if IS_PRODUCTION else "debug")).lower()

# Supabase: URL + clé service-role (les écritures de commandes se font côté serveur)
# - SUPABASE_URL peut parfois être sans schéma: on préfixe en https:// si nécessaire
SUPABASE_URL = _clean_env(os.getenv("SUPABASE_URL") or os.getenv("NEXT_PUBLIC_SUPABASE_URL") or "")
SUPABASE_SERVICE_KEY = _clean_env(os.getenv("SUPABASE_SERVICE_KEY") or os.getenv("SUPABASE_SERVICE_ROLE_KEY") or "")

if SUPABASE_URL and not SUPABASE_URL.startswith("http"):
    SUPABASE_URL = "https://" + SUPABASE_URL
if SUPABASE_URL.endswith("/"):
    SUPABASE_URL = SUPABASE_URL.rstrip("/")

ORDERS_TABLE = _clean_env(os.getenv("ORDERS_TABLE") or "orders")

# Stockage des commandes: supabase par défaut si configuré, sinon mémoire (dev local)
ORDER_STORE_BACKEND = _clean_env(
    os.getenv("ORDER_STORE_BACKEND") or ("supabase" if SUPABASE_URL and SUPABASE_SERVICE_KEY else "memory")
).lower()

# Stripe: clé secrète, secret webhook, paramètres de session
STRIPE_SECRET_KEY = _clean_env(os.getenv("STRIPE_SECRET_KEY") or "")
STRIPE_WEBHOOK_SECRET = _clean_env(os.getenv("STRIPE_WEBHOOK_SECRET") or "")
STRIPE_CURRENCY = _clean_env(os.getenv("STRIPE_CURRENCY") or "usd").lower()
STRIPE_TIMEOUT_SECONDS = float(_clean_env(os.getenv("STRIPE_TIMEOUT_SECONDS") or "20"))
STRIPE_MAX_NETWORK_RETRIES = int(_clean_env(os.getenv("STRIPE_MAX_NETWORK_RETRIES") or "2"))
STRIPE_ALLOWED_COUNTRIES = _csv("STRIPE_ALLOWED_COUNTRIES", "US,CA,GB,AU,IN")
STRIPE_AUTOMATIC_TAX = _flag("STRIPE_AUTOMATIC_TAX", "true")

# Fenêtre anti double-soumission (commande pending identique)
DUPLICATE_ORDER_WINDOW_SECONDS = 5 * 60

# Front: base des URLs de succès/annulation (préfixées par la locale)
FRONTEND_URL = _clean_env(os.getenv("FRONTEND_URL") or "http://localhost:3000").rstrip("/")
CHECKOUT_SUCCESS_PATH = os.getenv("CHECKOUT_SUCCESS_PATH", "/checkout/success?session_id={CHECKOUT_SESSION_ID}")
CHECKOUT_CANCEL_PATH = os.getenv("CHECKOUT_CANCEL_PATH", "/cart")

# CORS / hosts
CORS_ORIGINS = _csv("CORS_ORIGINS", "http://localhost:3000,http://127.0.0.1:3000")
ALLOWED_HOSTS = _csv("ALLOWED_HOSTS", "localhost,127.0.0.1,testserver")
COOKIE_SECURE = _flag("COOKIE_SECURE")

# Listing admin des commandes (header X-Admin-Token)
ADMIN_API_TOKEN = _clean_env(os.getenv("ADMIN_API_TOKEN") or "")

# Rate limiting du checkout
CHECKOUT_RATE_LIMIT_TIMES = int(_clean_env(os.getenv("CHECKOUT_RATE_LIMIT_TIMES") or "10"))
CHECKOUT_RATE_LIMIT_SECONDS = int(_clean_env(os.getenv("CHECKOUT_RATE_LIMIT_SECONDS") or "60"))
