"""Business and storage errors raised by the storefront stores.

Each error carries the HTTP status it maps to, so the API layer can render
any of them through one exception handler.
"""

from typing import List, Optional


class StorefrontError(Exception):
    status_code = 400
    default_message = 'Request could not be processed'

    def __init__(self, message: Optional[str] = None, errors: Optional[List[str]] = None):
        self.message = message or self.default_message
        self.errors = list(errors or [])
        super().__init__(self.message)


class NotFound(StorefrontError):
    status_code = 404
    default_message = 'Not found'


class Unavailable(StorefrontError):
    default_message = 'Product is not available'


class InsufficientStock(StorefrontError):
    def __init__(self, available: int, message: Optional[str] = None):
        self.available = available
        super().__init__(message or f'Requested quantity exceeds stock. Available: {available}')


class EmptyCart(StorefrontError):
    default_message = 'Cart is empty'


class CartInvalid(StorefrontError):
    default_message = 'Cart is invalid'


class InvalidStatus(StorefrontError):
    default_message = 'Invalid status'


class InvalidTransition(StorefrontError):
    default_message = 'Order cannot be changed from its current status'


class Forbidden(StorefrontError):
    status_code = 403
    default_message = 'Access denied'


class Conflict(StorefrontError):
    status_code = 409
    default_message = 'Resource already exists'


class ValidationFailed(StorefrontError):
    status_code = 422
    default_message = 'Invalid data'


class StorageError(StorefrontError):
    status_code = 500
    default_message = 'Internal server error'
