"""Domain-level exceptions for the chat fan-out service."""


class BadRequestError(ValueError):
    """Raised for client-side invalid requests at the domain layer."""


class InputTooLarge(BadRequestError):
    """Serialized message content exceeds the caller's byte budget."""


class ContentRejected(BadRequestError):
    """The moderation gate flagged at least one message."""


class InvalidTarget(BadRequestError):
    pass


class InvalidRole(BadRequestError):
    pass


class UnsupportedModel(BadRequestError):
    pass


class MissingModelMessages(BadRequestError):
    """Per-model messages lack an entry for a requested model."""


class CallbackRequired(BadRequestError):
    pass


class InvalidRequest(BadRequestError):
    """Malformed top-level request shape."""


class ProviderError(RuntimeError):
    """A provider call failed; the message names the provider."""


class ConfigurationError(RuntimeError):
    pass
