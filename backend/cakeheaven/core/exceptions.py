"""
Domain exceptions.

Services raise these; the application-level handler in main.py turns
them into `{"message": ...}` responses with the carried status code.
"""


class ShopError(Exception):
    """Base exception for all Cake Heaven business errors."""

    status_code: int = 400

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code

    def to_dict(self) -> dict[str, str]:
        """Convert to response body."""
        return {"message": self.message}


class ValidationError(ShopError):
    """Request is well-formed but breaks a business rule."""

    status_code = 400


class ConflictError(ShopError):
    """Resource already exists or is in the wrong state."""

    status_code = 400


class AuthenticationError(ShopError):
    """Missing, invalid or expired credentials."""

    status_code = 401


class PermissionDeniedError(ShopError):
    """Authenticated but not allowed to touch this resource."""

    status_code = 403


class NotFoundError(ShopError):
    status_code = 404


class PaymentError(ShopError):
    """Payment gateway rejected the request."""

    status_code = 400


class DeliveryError(ShopError):
    """Outbound email could not be delivered."""

    status_code = 500
