"""Authentication schemas for Cognito token validation."""
from types import MappingProxyType
from typing import Any, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


# token_use values issued by Cognito
TOKEN_USE_ID = "id"
TOKEN_USE_ACCESS = "access"

ALLOWED_TOKEN_USES = (TOKEN_USE_ID, TOKEN_USE_ACCESS)


class TokenHeader(BaseModel):
    """Decoded JOSE header of a compact JWT."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    kid: str = Field(..., description="Key ID used to select the JWKS verification key")
    alg: str = Field(..., description="Signing algorithm")
    typ: Optional[str] = Field(None, description="Token type, usually 'JWT'")


class TokenPayload(BaseModel):
    """
    Verified JWT claim set.

    Cognito payloads carry claim names that are not Python identifiers
    (``cognito:username``, ``custom:uuid``), and the identity claim name is
    configurable, so claims are kept as a read-only mapping with typed
    accessors instead of model fields.
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    claims: Mapping[str, Any] = Field(default_factory=dict)

    @field_validator("claims", mode="after")
    @classmethod
    def freeze_claims(cls, v: Mapping[str, Any]) -> Mapping[str, Any]:
        return MappingProxyType(dict(v))

    def get(self, name: str) -> Optional[Any]:
        """Return a claim value by name, or None if absent."""
        return self.claims.get(name)

    def get_str(self, name: str) -> Optional[str]:
        """Return a claim value by name if it is a non-empty string."""
        value = self.claims.get(name)
        if isinstance(value, str) and value:
            return value
        return None

    def has(self, name: str) -> bool:
        """True if the claim is present with a non-null value."""
        return self.claims.get(name) is not None

    @property
    def iss(self) -> Optional[str]:
        return self.get_str("iss")

    @property
    def token_use(self) -> Optional[str]:
        return self.get_str("token_use")

    @property
    def username(self) -> Optional[str]:
        return self.get_str("username")


class CognitoUser(BaseModel):
    """
    Identity extracted from a verified Cognito token.

    Returned by TokenService.authenticate() for guard/session integrations
    that need more than the bare identifier.
    """

    model_config = ConfigDict(frozen=True)

    identity: str = Field(..., description="Value of the configured identity claim")
    token_use: str = Field(..., description="'id' or 'access'")
    issuer: Optional[str] = Field(None, description="Token issuer URL")
    username: Optional[str] = Field(None, description="Cognito username, if present")
    payload: TokenPayload = Field(..., description="Full verified claim set")


class AuthError(BaseModel):
    """
    Authentication error response following OAuth 2.0 error format.

    Follows RFC 6750 (Bearer Token Usage) error response format.
    """

    error: str = Field(
        ...,
        description="Error type (e.g., 'invalid_token', 'missing_token')",
    )
    error_description: str = Field(
        ..., description="Human-readable error description"
    )
