# app/domain/errors.py
from typing import Any, Dict


class ShopError(Exception):
    """
    Base for business failures raised by the services.

    Every subclass carries a stable machine readable ``kind`` and the HTTP
    status the API layer answers with.
    """

    kind = "ERROR"
    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_response(self) -> Dict[str, Any]:
        return {
            "success": False,
            "error": {
                "kind": self.kind,
                "message": self.message,
            },
        }


class NotFound(ShopError):
    kind = "NOT_FOUND"
    status_code = 404


class Forbidden(ShopError):
    kind = "FORBIDDEN"
    status_code = 403


class InvalidArgument(ShopError):
    kind = "INVALID_ARGUMENT"
    status_code = 400


class InsufficientStock(ShopError):
    kind = "INSUFFICIENT_STOCK"
    status_code = 409


class Unavailable(ShopError):
    """Product exists but is not published."""

    kind = "UNAVAILABLE"
    status_code = 400


class AlreadyPaid(ShopError):
    kind = "ALREADY_PAID"
    status_code = 400


class InvalidState(ShopError):
    kind = "INVALID_STATE"
    status_code = 409


class Conflict(ShopError):
    """A transaction lost a race against a concurrent writer."""

    kind = "CONFLICT"
    status_code = 409


class PaymentProviderError(ShopError):
    kind = "PAYMENT_PROVIDER_ERROR"
    status_code = 502
