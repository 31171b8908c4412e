"""Custom exceptions for the Roomshop application."""


class RoomshopError(Exception):
    """Base exception for all application errors."""
    kind = 'internal_error'

    def __init__(self, message="An internal error occurred", status_code=500, payload=None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.payload = payload

    def to_dict(self):
        rv = dict(self.payload or ())
        rv['message'] = self.message
        rv['error'] = self.kind
        rv['status'] = 'error'
        return rv


class BusinessLogicError(RoomshopError):
    """Exception raised for business logic violations."""
    kind = 'business_rule'

    def __init__(self, message, status_code=400, payload=None):
        super().__init__(message, status_code, payload)


class ValidationError(RoomshopError):
    """Raised when request input is malformed or out of range."""
    kind = 'validation_error'

    def __init__(self, message, field=None):
        payload = {'field': field} if field else None
        super().__init__(message, 422, payload)
        self.field = field


class NotFoundError(RoomshopError):
    """Exception raised when a resource is not found."""
    kind = 'not_found'

    def __init__(self, message="Resource not found", payload=None):
        super().__init__(message, 404, payload)


class UnauthorizedError(RoomshopError):
    """Raised when a user lacks permission for an action.

    The message stays generic so callers cannot tell which ownership
    check failed.
    """
    kind = 'not_authorized'

    def __init__(self, message="You are not allowed to perform this action"):
        super().__init__(message, 403)


class InsufficientStockError(BusinessLogicError):
    """Raised when a reservation asks for more units than are available."""
    kind = 'insufficient_stock'

    def __init__(self, product_name, required, available):
        message = (
            f"Insufficient stock for {product_name}: "
            f"requested {required}, available {available}"
        )
        super().__init__(message, status_code=409, payload={
            'requested': required,
            'available': available,
        })
        self.required = required
        self.available = available


class InsufficientCoinsError(BusinessLogicError):
    """Raised when a coin debit exceeds the user's coins."""
    kind = 'insufficient_coins'

    def __init__(self, required, current):
        message = f"Insufficient coins: {required} required, {current} available"
        super().__init__(message, payload={'required': required, 'current': current})
        self.required = required
        self.current = current


class InsufficientFundsError(BusinessLogicError):
    """Raised when a USD balance debit exceeds the user's balance."""
    kind = 'insufficient_funds'

    def __init__(self, required, current):
        message = f"Insufficient balance: ${required} required, ${current} available"
        super().__init__(message, payload={'required': str(required), 'current': str(current)})
        self.required = required
        self.current = current


class InvalidTransitionError(BusinessLogicError):
    """Raised when an order cannot move from its current status to the requested one."""
    kind = 'invalid_transition'

    def __init__(self, current_status, attempted_status):
        message = f"Cannot change order status from {current_status} to {attempted_status}"
        super().__init__(message, payload={
            'current_status': current_status,
            'attempted_status': attempted_status,
        })
        self.current_status = current_status
        self.attempted_status = attempted_status


class NotCancellableError(BusinessLogicError):
    """Raised when a buyer tries to cancel an order that is past the cancellable window."""
    kind = 'not_cancellable'

    def __init__(self, current_status):
        message = f"Order cannot be cancelled while {current_status}"
        super().__init__(message, payload={'current_status': current_status})
        self.current_status = current_status


class SelfPurchaseError(BusinessLogicError):
    kind = 'self_purchase'

    def __init__(self, message="You cannot buy your own products"):
        super().__init__(message)


class ProductInactiveError(BusinessLogicError):
    kind = 'product_inactive'

    def __init__(self, product_name):
        super().__init__(f'Product "{product_name}" is not available for purchase')
        self.product_name = product_name


class EmptyCartError(BusinessLogicError):
    kind = 'empty_cart'

    def __init__(self, message="Your cart is empty"):
        super().__init__(message)


class AlreadyClaimedError(BusinessLogicError):
    """Raised when a one-shot or daily reward has already been granted."""
    kind = 'already_claimed'

    def __init__(self, message):
        super().__init__(message)
