"""Payment workflow exceptions.

Services raise these; blueprints translate them into JSON errors or
redirects. Validation problems in user input still raise ValueError.
"""


class PaymentError(Exception):
    """Base class for payment workflow failures."""


class PaymentNotFoundError(PaymentError):
    """No payment row matches the given order id."""


class InvalidSignatureError(PaymentError):
    """Gateway notification signature did not match."""


class MaterializationError(PaymentError):
    """A payment's cart could not be turned into registrations."""


class RegistrationNumberError(MaterializationError):
    """No unused registration number found within the retry budget."""
