import logging

from growwise.config import LOG_LEVEL

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(level: str = LOG_LEVEL) -> None:
    """Niveau racine depuis LOG_LEVEL; handler console posé une seule fois (uvicorn garde ses propres loggers)."""
    root = logging.getLogger()
    root.setLevel(getattr(logging, level.upper(), logging.INFO))
    if not root.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        root.addHandler(handler)
    # le SDK Stripe est bavard en debug (corps des requêtes)
    logging.getLogger("stripe").setLevel(max(root.level, logging.INFO))
