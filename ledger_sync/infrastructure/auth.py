"""Bearer Token Verification — narrow stand-in for the external auth service.

Invariants:
    - A request is authenticated iff its bearer token maps to an owner id
    - Token values are never logged

Design Decisions:
    - Token issuance/refresh is out of scope; the verifier only resolves a token to
      an owner, so a JWT-backed verifier can replace it behind the same method
"""

from collections.abc import Mapping
from uuid import UUID

from ledger_sync.core.domain_types import OwnerId
from ledger_sync.core.errors import AuthenticationError


class StaticTokenVerifier:
    """Resolves bearer tokens from a configured token -> owner mapping."""

    def __init__(self, tokens: Mapping[str, UUID]):
        self._tokens = dict(tokens)

    def verify(self, authorization: str | None) -> OwnerId:
        """Resolve an Authorization header value to the owner it authenticates."""
        if not authorization:
            raise AuthenticationError("No token provided")
        scheme, _, token = authorization.partition(" ")
        if scheme.lower() != "bearer" or not token.strip():
            raise AuthenticationError("Authorization header must be a bearer token")
        owner_id = self._tokens.get(token.strip())
        if owner_id is None:
            raise AuthenticationError("Invalid token")
        return OwnerId(owner_id)
