# storefront/errors.py


class CartValidationError(ValueError):
    """Aktualizacja koszyka odrzucona (np. nieznany produkt, brak ceny)."""


class InvalidOfferTransition(RuntimeError):
    def __init__(self, current, target):
        super().__init__(f"Cannot transition checkout from {current.value} to {target.value}")
        self.current = current
        self.target = target


class OrderCreationError(RuntimeError):
    """Serwis zamowien nie przyjal zadania albo zwrocil bledna odpowiedz."""


class ChargeProcessorInvalidRequestError(RuntimeError):
    """Procesor platnosci odrzucil upload plikow z dowodami."""

    def __init__(self, body):
        super().__init__(body)
        self.body = body
