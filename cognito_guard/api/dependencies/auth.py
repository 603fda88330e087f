"""Authentication dependencies for Cognito token validation.

Token flow:
1. get_token_service builds a TokenService around the shared JWKS client
2. TokenService locates the token (bearer header, then Amplify cookies)
3. TokenService verifies it and returns the configured identity claim

Error mapping:
- no token: 401 missing_token
- token rejected: 401 invalid_token
- JWKS unavailable: 503 service_unavailable
"""
import logging
from typing import Annotated, Optional

from fastapi import Depends, HTTPException, Request, status

from cognito_guard.core.exceptions import InvalidTokenError, KeySetError
from cognito_guard.schemas.auth import AuthError
from cognito_guard.services.token_service import TokenService, get_token_service


logger = logging.getLogger(__name__)


def provide_token_service() -> TokenService:
    """Dependency provider for the process-wide TokenService."""
    return get_token_service()


class AuthenticationError(HTTPException):
    """Standard authentication error with OAuth-compliant error response."""

    def __init__(
        self,
        error: str,
        error_description: str,
        status_code: int = status.HTTP_401_UNAUTHORIZED,
    ):
        super().__init__(
            status_code=status_code,
            detail=AuthError(error=error, error_description=error_description).model_dump(),
            headers={"WWW-Authenticate": "Bearer"},
        )
        self.error = error
        self.error_description = error_description


async def _verify(token: str, token_service: TokenService) -> str:
    try:
        return await token_service.get_identity_from_token(token)
    except InvalidTokenError as e:
        raise AuthenticationError(
            error="invalid_token",
            error_description=e.reason,
        ) from e
    except KeySetError as e:
        logger.error("JWKS unavailable - rejecting token", extra={"error": str(e)})
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=AuthError(
                error="service_unavailable",
                error_description="Unable to fetch signing keys from identity provider",
            ).model_dump(),
        ) from e


async def get_optional_identity(
    request: Request,
    token_service: Annotated[TokenService, Depends(provide_token_service)],
) -> Optional[str]:
    """
    FastAPI dependency that returns the caller's identity if a token is present.

    Returns None if no token is provided (for public endpoints). A token that
    is present but invalid still raises 401.
    """
    token = token_service.get_token_from_request(request)
    if token is None:
        return None
    return await _verify(token, token_service)


async def get_current_identity(
    request: Request,
    token_service: Annotated[TokenService, Depends(provide_token_service)],
) -> str:
    """
    FastAPI dependency to validate a Cognito token and return the identity.

    Raises:
        HTTPException: 401 Unauthorized if the token is missing or invalid
        HTTPException: 503 Service Unavailable if the JWKS cannot be fetched

    Example:
        >>> @router.get("/protected")
        >>> async def protected_route(identity: CurrentIdentity):
        ...     return {"user": identity}
    """
    token = token_service.get_token_from_request(request)
    if token is None:
        logger.warning("Missing Cognito token")
        raise AuthenticationError(
            error="missing_token",
            error_description="Authorization header with Bearer token is required",
        )
    return await _verify(token, token_service)


# Type aliases for dependency injection
CurrentIdentity = Annotated[str, Depends(get_current_identity)]
OptionalIdentity = Annotated[Optional[str], Depends(get_optional_identity)]
