"""
Error taxonomy for the fulfillment core.

Every error carries a message that is safe to show to the caller verbatim
and the HTTP status the API layer answers with.
"""


class FulfillmentError(Exception):
    status_code = 500
    default_message = "Something went wrong"

    def __init__(self, message: str | None = None, **details):
        self.message = message or self.default_message
        self.details = details
        super().__init__(self.message)


class ValidationError(FulfillmentError):
    status_code = 400
    default_message = "Invalid input"


class NotFound(FulfillmentError):
    status_code = 404
    default_message = "Not found"


class StateConflict(FulfillmentError):
    status_code = 409
    default_message = "The record changed state, please refresh"


class InvalidState(StateConflict):
    default_message = "Order is not in a state that allows this action"


class AlreadyActive(StateConflict):
    default_message = "A pickup code is already active for this order"


class AlreadyConsumed(StateConflict):
    default_message = "Pickup code has already been used"


class Expired(FulfillmentError):
    status_code = 410
    default_message = "Pickup code has expired. Please request a new code"


class AttemptsExceeded(FulfillmentError):
    status_code = 429
    default_message = "Maximum verification attempts exceeded"


class TransientStoreError(FulfillmentError):
    status_code = 503
    default_message = "Service temporarily unavailable, please try again"
