"""Verification of AWS Cognito-issued JSON Web Tokens."""

from cognito_guard.core.exceptions import (
    CognitoGuardError,
    InvalidTokenError,
    JWKSFetchError,
    JWKSParseError,
    KeySetError,
)
from cognito_guard.services.jwks_client import JWKSClient, get_jwks_client
from cognito_guard.services.token_service import TokenService, get_token_service

__version__ = "0.1.0"

__all__ = [
    "CognitoGuardError",
    "InvalidTokenError",
    "JWKSClient",
    "JWKSFetchError",
    "JWKSParseError",
    "KeySetError",
    "TokenService",
    "get_jwks_client",
    "get_token_service",
]
