"""
Pytest configuration and fixtures for testing.

Provides RSA signing keys, matching JWKS documents, a token factory and a
TokenService wired to an in-memory cache with a mocked HTTP client.
"""

import json
import time
import uuid
from pathlib import Path
from typing import Any, Callable, Optional
from unittest.mock import AsyncMock

import httpx
import jwt
import pytest
from cryptography.hazmat.primitives.asymmetric import rsa
from jwt.algorithms import RSAAlgorithm

from cognito_guard.core.cache import MemoryCacheBackend
from cognito_guard.core.config import Settings
from cognito_guard.services.jwks_client import JWKSClient
from cognito_guard.services.token_service import TokenService

REGION = "us-east-1"
POOL_ID = "us-east-1_ABC123"
CLIENT_ID = "3n4b5urk1ft4fl3mg5e62d9ado"
ISSUER = f"https://cognito-idp.{REGION}.amazonaws.com/{POOL_ID}"
JWKS_URL = f"{ISSUER}/.well-known/jwks.json"
KEY_ID = "test-key-1"
USER_SUB = "7d8ca528-4931-4254-9273-ea5ee853f271"


def pytest_configure(config):
    """
    Pytest hook that runs before test collection.

    Loads .env.test so it is available before any package modules are
    imported.
    """
    from dotenv import load_dotenv

    test_env_path = Path(__file__).parent.parent / ".env.test"
    if test_env_path.exists():
        load_dotenv(test_env_path, override=True)


def public_jwk(private_key: rsa.RSAPrivateKey, kid: str = KEY_ID) -> dict[str, Any]:
    """Build the JWKS entry Cognito would publish for a key pair."""
    jwk = json.loads(RSAAlgorithm.to_jwk(private_key.public_key()))
    jwk.update({"kid": kid, "alg": "RS256", "use": "sig"})
    return jwk


def jwks_response(document: Any, url: str = JWKS_URL, status_code: int = 200) -> httpx.Response:
    """Build an httpx response carrying a JWKS document."""
    body = document if isinstance(document, str) else json.dumps(document)
    return httpx.Response(
        status_code,
        text=body,
        request=httpx.Request("GET", url),
    )


@pytest.fixture(scope="session")
def private_key() -> rsa.RSAPrivateKey:
    """RSA key pair used to sign test tokens."""
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture(scope="session")
def other_private_key() -> rsa.RSAPrivateKey:
    """A second key pair that is not published in the JWKS."""
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture
def jwks_document(private_key) -> dict[str, Any]:
    """Sample JWKS document with the signing key."""
    return {"keys": [public_jwk(private_key)]}


@pytest.fixture
def test_settings() -> Settings:
    """Settings for the sample user pool."""
    return Settings(
        COGNITO_USER_POOL_REGION=REGION,
        COGNITO_USER_POOL_ID=POOL_ID,
        COGNITO_USER_POOL_CLIENT_ID=CLIENT_ID,
        COGNITO_ENDPOINT=None,
        COGNITO_UUID_COLUMN="sub",
        COGNITO_VALIDATE_ISSUER=True,
        COGNITO_REQUIRE_UUID_FORMAT=True,
        REDIS_URL="",
        LOG_JSON=False,
    )


@pytest.fixture
def make_claims() -> Callable[..., dict[str, Any]]:
    """Factory for a valid Cognito access-token claim set."""

    def _make(**overrides: Any) -> dict[str, Any]:
        now = int(time.time())
        claims = {
            "sub": USER_SUB,
            "iss": ISSUER,
            "client_id": CLIENT_ID,
            "origin_jti": str(uuid.uuid4()),
            "event_id": str(uuid.uuid4()),
            "token_use": "access",
            "scope": "aws.cognito.signin.user.admin",
            "auth_time": now,
            "iat": now,
            "exp": now + 3600,
            "jti": str(uuid.uuid4()),
            "username": USER_SUB,
        }
        for name, value in overrides.items():
            if value is None:
                claims.pop(name, None)
            else:
                claims[name] = value
        return claims

    return _make


@pytest.fixture
def make_token(private_key, make_claims) -> Callable[..., str]:
    """Factory for RS256 tokens signed with the published key."""

    def _make(
        claims: Optional[dict[str, Any]] = None,
        key: Any = None,
        kid: Optional[str] = KEY_ID,
        algorithm: str = "RS256",
    ) -> str:
        headers = {"kid": kid} if kid is not None else {}
        return jwt.encode(
            claims if claims is not None else make_claims(),
            key if key is not None else private_key,
            algorithm=algorithm,
            headers=headers,
        )

    return _make


@pytest.fixture
def mock_http_client(jwks_document) -> AsyncMock:
    """HTTP client whose GET returns the sample JWKS document."""
    client = AsyncMock(spec=httpx.AsyncClient)
    client.get = AsyncMock(side_effect=lambda url: jwks_response(jwks_document, url=url))
    client.aclose = AsyncMock()
    return client


@pytest.fixture
def jwks_client(mock_http_client) -> JWKSClient:
    """JWKS client with an in-memory cache and mocked HTTP."""
    return JWKSClient(
        cache=MemoryCacheBackend(),
        cache_ttl=3600,
        http_client=mock_http_client,
    )


@pytest.fixture
def token_service(jwks_client, test_settings) -> TokenService:
    """TokenService for the sample user pool."""
    return TokenService(jwks_client, test_settings)
