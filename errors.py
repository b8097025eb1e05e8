"""
Error kinds raised by the store services.

Every error carries a short alert title and a user-facing message; the HTTP
layer turns them into a modal-alert shaped response.
"""


class CommerceError(Exception):
    title = "Error"
    status_code = 400

    def __init__(self, message: str, title: str = None):
        super().__init__(message)
        self.message = message
        if title:
            self.title = title


class ValidationError(CommerceError):
    """Bad input detected locally, before any remote call."""


class EmptyCartError(ValidationError):
    code = "EMPTY_CART"

    def __init__(self, message: str = "Cart is empty"):
        super().__init__(message, title="Cart is Empty")


class OutOfStockError(ValidationError):
    def __init__(self, message: str = "This item is currently unavailable"):
        super().__init__(message, title="Out of Stock")


class AuthenticationRequired(CommerceError):
    title = "Login Required"
    status_code = 401


class InvalidTransition(CommerceError):
    status_code = 409


class RemoteCallError(CommerceError):
    """Any failure reported by the data gateway."""

    status_code = 502


class NotFoundError(RemoteCallError):
    status_code = 404
