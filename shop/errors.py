from fastapi import status


class AppError(Exception):
    """Domain error carrying the HTTP status it should be rendered with."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message = "Internal server error"

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(AppError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Validation failed"


class NotFoundError(AppError):
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Resource not found"


class PaymentError(AppError):
    status_code = status.HTTP_402_PAYMENT_REQUIRED
    default_message = "Payment processing failed"


class InsufficientStockError(PaymentError):
    status_code = status.HTTP_409_CONFLICT
    default_message = "Insufficient stock"

    def __init__(self, product_name: str, available: int, required: int):
        self.product_name = product_name
        self.available = available
        self.required = required
        super().__init__(
            f"Insufficient stock for {product_name}: available {available}, required {required}"
        )


class InvalidSignatureError(PaymentError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Invalid webhook signature"


class ProviderUnavailableError(AppError):
    """Transport, authentication or configuration failure talking to a payment provider."""

    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    default_message = "Payment provider unavailable"
