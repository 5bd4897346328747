"""Library exceptions for the exoquic package."""


class ExoquicError(Exception):
    """Base exception for the exoquic library."""

    pass


class ConfigurationError(ExoquicError, ValueError):
    """Raised when manager or connection configuration is invalid."""

    pass


class AuthorizationError(ExoquicError):
    """Base exception for failures while authorizing a subscriber."""

    pass


class AuthFetchError(AuthorizationError):
    """
    Raised when the application-supplied token fetcher fails.

    The original exception is available as ``__cause__``.

    Attributes:
        subscription_key: Canonical key of the request being authorized
    """

    def __init__(self, subscription_key: str, message: str) -> None:
        self.subscription_key = subscription_key
        super().__init__(f"Token fetcher failed for subscription {subscription_key}: {message}")


class InvalidTokenError(AuthorizationError):
    """
    Raised when the fetcher returns an empty or non-string token.

    Attributes:
        value: The offending value returned by the fetcher
    """

    def __init__(self, value: object) -> None:
        self.value = value
        if value is None or value == "":
            detail = "fetcher function returned an empty value"
        else:
            detail = f"fetcher function returned a non-string value: {value!r}"
        super().__init__(f"Cannot authorize subscriber because {detail}")


class MalformedTokenError(AuthorizationError):
    """Raised when a token cannot be decoded or lacks required claims."""

    def __init__(self, message: str) -> None:
        super().__init__(f"Malformed subscription token: {message}")


class TransportError(ExoquicError):
    """
    Raised or reported when the transport misbehaves.

    Transport errors are non-fatal: they are logged and the following
    close event decides whether the subscriber reconnects.
    """

    pass


class ConnectionStateError(ExoquicError):
    """Raised when a subscriber attempts an invalid state transition."""

    pass


class StoreError(ExoquicError):
    """Raised when the persistent store backend fails."""

    pass


class SerializationError(ExoquicError):
    """Raised when a payload cannot be serialized or deserialized."""

    def __init__(self, what: str, message: str) -> None:
        self.what = what
        super().__init__(f"Serialization error for {what}: {message}")


__all__ = [
    "ExoquicError",
    "ConfigurationError",
    "AuthorizationError",
    "AuthFetchError",
    "InvalidTokenError",
    "MalformedTokenError",
    "TransportError",
    "ConnectionStateError",
    "StoreError",
    "SerializationError",
]
