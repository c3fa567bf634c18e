class ChatError(Exception):
    """Base class for errors raised by the chat layer."""

    def __init__(self, msg: str = ""):
        self.message = msg
        super().__init__(msg)


class AuthenticationError(ChatError):
    pass


class NotFoundError(ChatError):
    pass


class ValidationError(ChatError):
    pass


class TransportError(ChatError):
    """The durable store or live feed failed for a reason not covered above."""


class LoadTimeoutError(TransportError):
    pass
