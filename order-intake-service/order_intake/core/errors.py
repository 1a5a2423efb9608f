class OrderIntakeError(Exception):
    pass


class AuthenticationFailure(OrderIntakeError):
    """Signature missing, wrong, or no shared secret configured."""


class ReplayRejected(OrderIntakeError):
    """Timestamp missing, unparsable, or outside the replay window."""


class MalformedPayload(OrderIntakeError):
    """The delivery body is not a usable order payload.

    The message carries validation detail for the server log; it must not be
    echoed back to the sender.
    """


class OrderNotFound(OrderIntakeError):
    def __init__(self, order_id: str):
        self.order_id = order_id
        super().__init__(f"Order {order_id} not found")
