"""
Cognito token verification.

TokenService runs a raw token through three stages and stops at the first
failure:

1. validate_header: shape, 'kid' present, 'alg' pinned to RS256 (no network)
2. verify_signature: JWKS lookup, RS256 signature, exp/nbf/iat with leeway
3. validate_payload: issuer, token_use, identity claim presence and format

Every rejection raises InvalidTokenError. JWKS retrieval failures raise
KeySetError subclasses instead: the token could not be checked, which is
not the same as the token being bad.
"""

import logging
import re
import time
from typing import Any, Callable, Mapping, Optional, Protocol

import jwt
from fastapi.security.utils import get_authorization_scheme_param
from jwt.exceptions import (
    DecodeError,
    ImmatureSignatureError,
    InvalidKeyError,
    InvalidSignatureError,
    MissingRequiredClaimError,
    PyJWTError,
)

from cognito_guard.core.config import SUPPORTED_ALGORITHM, Settings, settings
from cognito_guard.core.exceptions import InvalidTokenError
from cognito_guard.core.security import get_unverified_jwt_header
from cognito_guard.schemas.auth import (
    ALLOWED_TOKEN_USES,
    CognitoUser,
    TokenHeader,
    TokenPayload,
)
from cognito_guard.services.jwks_client import (
    JWKSClient,
    build_issuer_url,
    get_jwks_client,
)

logger = logging.getLogger(__name__)

COOKIE_PREFIX = "CognitoIdentityServiceProvider"

# Canonical 8-4-4-4-12 hex layout only; no braces, urn prefix or bare hex
UUID_PATTERN = re.compile(
    r"[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}"
)


class RequestLike(Protocol):
    """The slice of an HTTP request needed to locate a token.

    starlette.requests.Request satisfies this protocol.
    """

    @property
    def headers(self) -> Mapping[str, str]: ...

    @property
    def cookies(self) -> Mapping[str, str]: ...


def is_valid_uuid(value: Any) -> bool:
    """True if value is a string in the canonical hyphenated UUID form."""
    return isinstance(value, str) and UUID_PATTERN.fullmatch(value) is not None


class TokenService:
    """Verifies Cognito-issued JWTs and extracts the configured identity claim."""

    def __init__(
        self,
        jwks_client: JWKSClient,
        config: Settings = settings,
        clock: Callable[[], float] = time.time,
    ):
        self._jwks_client = jwks_client
        self._config = config
        self._clock = clock
        self.uuid_column = config.COGNITO_UUID_COLUMN

    # ------------------------------------------------------------------
    # Token extraction
    # ------------------------------------------------------------------

    def get_token_from_request(self, request: RequestLike) -> Optional[str]:
        """
        Locate a candidate token on the request.

        The bearer Authorization header wins. Otherwise the Amplify cookie
        pair is used: ``LastAuthUser`` names the signed-in user, whose
        ``accessToken`` cookie holds the token. Both are scoped by the app
        client id.

        Returns:
            The raw token, or None when the request carries no credentials
        """
        scheme, credentials = get_authorization_scheme_param(
            request.headers.get("Authorization")
        )
        if scheme.lower() == "bearer" and credentials:
            return credentials

        prefix = f"{COOKIE_PREFIX}.{self._config.COGNITO_USER_POOL_CLIENT_ID}"
        last_auth_user = request.cookies.get(f"{prefix}.LastAuthUser")
        if not last_auth_user:
            return None

        return request.cookies.get(f"{prefix}.{last_auth_user}.accessToken") or None

    # ------------------------------------------------------------------
    # Verification stages
    # ------------------------------------------------------------------

    def validate_header(self, token: str) -> TokenHeader:
        """
        Validate that the header decodes, has a kid, and has RS256 as alg.

        Runs before any key lookup so that a forged 'none' or HMAC token is
        rejected without touching the network.

        Raises:
            InvalidTokenError: On any structural or algorithm problem
        """
        header = get_unverified_jwt_header(token)

        kid = header.get("kid")
        if not kid or not isinstance(kid, str):
            raise InvalidTokenError("No kid present in token header")

        alg = header.get("alg")
        if not alg:
            raise InvalidTokenError("No alg present in token header")

        # Security: Prevent algorithm confusion attacks
        if alg != SUPPORTED_ALGORITHM:
            logger.warning(
                "Unsupported JWT algorithm",
                extra={"algorithm": alg, "expected": SUPPORTED_ALGORITHM},
            )
            raise InvalidTokenError(f"The token alg is not {SUPPORTED_ALGORITHM}")

        typ = header.get("typ")
        return TokenHeader(kid=kid, alg=alg, typ=typ if isinstance(typ, str) else None)

    async def verify_signature(self, token: str, header: TokenHeader) -> TokenPayload:
        """
        Verify the signature and temporal claims against the pool's JWKS.

        Raises:
            InvalidTokenError: Unknown kid, bad signature, expired, not yet
                valid, or otherwise undecodable token
            KeySetError: If the JWKS cannot be fetched or parsed
        """
        signing_key = await self._jwks_client.get_signing_key(
            self._config.COGNITO_USER_POOL_REGION,
            self._config.COGNITO_USER_POOL_ID,
            header.kid,
            endpoint=self._config.COGNITO_ENDPOINT,
        )
        if signing_key is None:
            raise InvalidTokenError(
                f"Unable to find a signing key that matches '{header.kid}'"
            )

        try:
            claims = jwt.decode(
                token,
                key=signing_key.key,
                algorithms=[SUPPORTED_ALGORITHM],
                leeway=self._config.JWT_LEEWAY,
                options={
                    "verify_signature": True,
                    # exp is checked below so the leeway edge itself is accepted
                    "verify_exp": False,
                    "verify_nbf": True,
                    "verify_iat": True,
                    # Cognito access tokens carry client_id instead of aud
                    "verify_aud": False,
                    "require": ["exp"],
                },
            )
        except (
            ImmatureSignatureError,
            InvalidSignatureError,
            MissingRequiredClaimError,
            DecodeError,
            InvalidKeyError,
        ) as e:
            raise InvalidTokenError(str(e)) from e
        except PyJWTError as e:
            logger.warning(
                "JWT validation failed",
                extra={"error_type": type(e).__name__, "error_details": str(e)},
            )
            raise InvalidTokenError(str(e)) from e

        self._check_expiry(claims)
        return TokenPayload(claims=claims)

    def _check_expiry(self, claims: Mapping[str, Any]) -> None:
        """Reject a token whose exp lies more than JWT_LEEWAY whole seconds in the past."""
        try:
            exp = int(claims["exp"])
        except (TypeError, ValueError) as e:
            raise InvalidTokenError("Expiration Time claim (exp) must be an integer.") from e

        if exp + self._config.JWT_LEEWAY < int(self._clock()):
            raise InvalidTokenError("Signature has expired")

    def validate_payload(
        self,
        payload: TokenPayload,
        region: str,
        pool_id: str,
        validate_issuer: bool,
    ) -> None:
        """
        Validate the claims of a token whose signature is already verified.

        Args:
            payload: Verified claim set
            region: User pool region
            pool_id: User pool id
            validate_issuer: Whether 'iss' must match the pool's issuer URL

        Raises:
            InvalidTokenError: On issuer, token_use or identity claim problems
        """
        # Validate the issuer
        issuer = build_issuer_url(region, pool_id)
        if validate_issuer and payload.iss != issuer:
            raise InvalidTokenError(f"Invalid issuer. Expected: {issuer}")

        # Validate token_use
        if payload.token_use not in ALLOWED_TOKEN_USES:
            raise InvalidTokenError('Invalid token_use. Must be one of ["id","access"].')

        # Validate UUID presence
        if not payload.has("username") and not payload.has(self.uuid_column):
            raise InvalidTokenError(
                "Invalid token attributes. Token must include a column which contains the UUID."
            )

        # Validate UUID format whenever the identity claim is present
        if (
            self._config.COGNITO_REQUIRE_UUID_FORMAT
            and payload.has(self.uuid_column)
            and not is_valid_uuid(payload.get(self.uuid_column))
        ):
            raise InvalidTokenError(
                f'Invalid token attributes. Claim "{self.uuid_column}" must be a UUID.'
            )

    # ------------------------------------------------------------------
    # Pipeline
    # ------------------------------------------------------------------

    async def decode(self, token: str) -> TokenPayload:
        """
        Run the full verification pipeline.

        Raises:
            InvalidTokenError: At the first failing stage
            KeySetError: If the JWKS cannot be obtained
        """
        try:
            header = self.validate_header(token)
            payload = await self.verify_signature(token, header)
            self.validate_payload(
                payload,
                self._config.COGNITO_USER_POOL_REGION,
                self._config.COGNITO_USER_POOL_ID,
                self._config.COGNITO_VALIDATE_ISSUER,
            )
        except InvalidTokenError as e:
            logger.warning("Token rejected", extra={"reason": e.reason})
            raise

        return payload

    async def get_identity_from_token(self, token: str) -> str:
        """
        Verify the token and return the configured identity claim.

        Raises:
            InvalidTokenError: If verification fails or the claim is missing
            KeySetError: If the JWKS cannot be obtained
        """
        payload = await self.decode(token)
        return self._extract_identity(payload)

    async def authenticate(self, request: RequestLike) -> Optional[CognitoUser]:
        """
        Resolve the user behind a request.

        Returns:
            CognitoUser, or None when the request carries no token

        Raises:
            InvalidTokenError: If a token is present but fails verification
            KeySetError: If the JWKS cannot be obtained
        """
        token = self.get_token_from_request(request)
        if token is None:
            return None

        payload = await self.decode(token)
        identity = self._extract_identity(payload)

        logger.info(
            "User authenticated via Cognito token",
            extra={"identity": identity, "token_use": payload.token_use},
        )

        return CognitoUser(
            identity=identity,
            token_use=payload.token_use,
            issuer=payload.iss,
            username=payload.username,
            payload=payload,
        )

    def _extract_identity(self, payload: TokenPayload) -> str:
        identity = payload.get_str(self.uuid_column)
        if identity is None:
            logger.warning("Identity claim not found", extra={"claim": self.uuid_column})
            raise InvalidTokenError("Identity claim not found")
        return identity


def get_token_service(config: Settings = settings) -> TokenService:
    """Build a TokenService around the shared JWKS client."""
    return TokenService(get_jwks_client(config), config)
