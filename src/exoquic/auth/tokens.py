"""
Subscription tokens and their claims.

Tokens are JWTs issued by the application's backend. The client never
verifies their signature (it has no key); it only reads the claims to learn
which topic, channel and subscription a token is for and when it expires.
The server verifies the token during the WebSocket handshake.
"""

from typing import Any

import jwt
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from exoquic.exceptions import MalformedTokenError
from exoquic.serialization import canonical_json


class TokenClaims(BaseModel):
    """
    Decoded claims of a subscription token.

    Unknown claims are kept and available through ``model_extra``.

    Attributes:
        topic: Topic the subscription reads from
        channel: Channel within the topic
        subscription_id: Server-side subscription identifier (``subscriptionId``)
        exp: Expiry as epoch seconds
    """

    model_config = ConfigDict(frozen=True, extra="allow", populate_by_name=True)

    topic: str
    channel: str
    subscription_id: str = Field(alias="subscriptionId")
    exp: float

    @field_validator("topic", "channel", "subscription_id", mode="before")
    @classmethod
    def _scalar_to_str(cls, value: Any) -> Any:
        if isinstance(value, int | float) and not isinstance(value, bool):
            return str(value)
        return value

    def is_expired(self, now: int) -> bool:
        """
        Check expiry against the current epoch second.

        A token whose ``exp`` equals ``now`` is still valid.
        """
        return self.exp < now


def decode_token(token: str) -> TokenClaims:
    """
    Decode a subscription token without verifying its signature.

    Args:
        token: Encoded JWT

    Returns:
        The token's claims

    Raises:
        MalformedTokenError: If the token is not a JWT or lacks required claims
    """
    try:
        payload = jwt.decode(
            token,
            options={"verify_signature": False, "verify_exp": False},
        )
    except jwt.PyJWTError as e:
        raise MalformedTokenError(str(e)) from e

    try:
        return TokenClaims.model_validate(payload)
    except ValidationError as e:
        missing = ", ".join(str(err["loc"][0]) for err in e.errors() if err["loc"])
        raise MalformedTokenError(f"invalid claims ({missing})") from e


def subscription_key(request: Any) -> str:
    """
    Derive the stable key of a subscription request.

    Requests with the same content map to the same key whatever the order
    of their dictionary keys.

    Example:
        >>> subscription_key({"topic": "orders", "user": 7})
        '{"topic":"orders","user":7}'
    """
    return canonical_json(request)


def replay_partition_name(claims: TokenClaims, subscriber_name: str | None = None) -> str:
    """
    Name of the replay partition for a subscriber.

    An explicit subscriber name wins; otherwise the name is derived from
    the claims so every token for the same subscription shares one log.
    """
    if subscriber_name:
        return subscriber_name
    return f"{claims.topic}/{claims.channel}/{claims.subscription_id}"


__all__ = [
    "TokenClaims",
    "decode_token",
    "replay_partition_name",
    "subscription_key",
]
