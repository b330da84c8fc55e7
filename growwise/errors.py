"""
Taxonomie d'erreurs du checkout.

Chaque exception porte un status_code HTTP et un message public (public_message);
le détail (str(exc)) n'est renvoyé au client qu'en dehors de la production.
- ValidationError / InvalidCart: entrée client invalide (400)
- DuplicateSessionId / InvalidTransition: gardes de cohérence internes, absorbées par le service
- ProviderError: échec Stripe (réseau, timeout, refus) lors de la création de session (500)
- SignatureInvalid: webhook non authentifié (400)
- NotFound / OrderNotFound: lecture directe introuvable (404)
"""


class CheckoutError(Exception):
    status_code = 500
    public_message = "Erreur interne"

    def __init__(self, message: str = "", *, public_message: str | None = None):
        super().__init__(message or self.public_message)
        if public_message:
            self.public_message = public_message


class ValidationError(CheckoutError):
    status_code = 400
    public_message = "Requête invalide"


class InvalidCart(ValidationError):
    public_message = "Panier invalide"


class DuplicateSessionId(CheckoutError):
    status_code = 409
    public_message = "Session de paiement déjà associée à une autre commande"

    def __init__(self, session_id: str, order_id: str | None = None):
        super().__init__(f"stripe_session_id={session_id} déjà utilisé (order_id={order_id})")
        self.session_id = session_id
        self.order_id = order_id


class InvalidTransition(CheckoutError):
    status_code = 409
    public_message = "Transition de statut refusée"

    def __init__(self, order_id: str, current: str, target: str, reason: str = ""):
        msg = f"order_id={order_id} {current} -> {target} refusé"
        if reason:
            msg = f"{msg} ({reason})"
        super().__init__(msg)
        self.order_id = order_id
        self.current = current
        self.target = target


class ProviderError(CheckoutError):
    status_code = 500
    public_message = "Impossible de créer la session de paiement"


class SignatureInvalid(CheckoutError):
    status_code = 400
    public_message = "Signature webhook invalide"


class NotFound(CheckoutError):
    status_code = 404
    public_message = "Ressource introuvable"


class OrderNotFound(NotFound):
    public_message = "Commande introuvable"

    def __init__(self, order_id: str):
        super().__init__(f"order_id={order_id} introuvable")
        self.order_id = order_id
