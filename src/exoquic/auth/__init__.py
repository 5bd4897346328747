"""
Authorization for exoquic subscribers.

Example:
    >>> from exoquic.auth import TokenAuthority
    >>> authority = TokenAuthority(fetch_token)
    >>> result = await authority.authorize({"topic": "orders"})
"""

from exoquic.auth.tokens import (
    TokenClaims,
    decode_token,
    replay_partition_name,
    subscription_key,
)
from exoquic.auth.authority import AuthorizationResult, TokenAuthority, TokenFetcher

__all__ = [
    "AuthorizationResult",
    "TokenAuthority",
    "TokenClaims",
    "TokenFetcher",
    "decode_token",
    "replay_partition_name",
    "subscription_key",
]
