"""
JWKS client for fetching and caching Cognito user pool public keys.

This module provides an async JWKS (JSON Web Key Set) client that:
- Builds the well-known JWKS URL for a user pool (or a custom endpoint)
- Caches the raw key set document with a fixed TTL
- Collapses concurrent cache misses for the same pool into one fetch
- Parses the document into read-only PyJWK mappings keyed by kid
- Provides structured logging for all operations
"""

import asyncio
import json
import logging
from types import MappingProxyType
from typing import Dict, Mapping, Optional

import httpx
import jwt
from jwt.exceptions import InvalidKeyError, PyJWKError

from cognito_guard.core.cache import CacheBackend, create_cache_backend
from cognito_guard.core.config import SUPPORTED_ALGORITHM, Settings, settings
from cognito_guard.core.exceptions import JWKSFetchError, JWKSParseError

logger = logging.getLogger(__name__)

# kid -> verification key. Never mutated once handed out.
KeySet = Mapping[str, jwt.PyJWK]

DEFAULT_JWKS_URL = "https://cognito-idp.{region}.amazonaws.com/{pool_id}/.well-known/jwks.json"
DEFAULT_ISSUER_URL = "https://cognito-idp.{region}.amazonaws.com/{pool_id}"


def build_jwks_url(region: str, pool_id: str, endpoint: Optional[str] = None) -> str:
    """
    Build the JWKS URL for a user pool.

    Example:
        >>> build_jwks_url("us-east-1", "us-east-1_ABC123", "https://custom.example.com")
        'https://custom.example.com/us-east-1_ABC123/.well-known/jwks.json'
    """
    if endpoint:
        return f"{endpoint.rstrip('/')}/{pool_id}/.well-known/jwks.json"
    return DEFAULT_JWKS_URL.format(region=region, pool_id=pool_id)


def build_issuer_url(region: str, pool_id: str) -> str:
    """Build the issuer ('iss' claim) Cognito stamps into tokens for a user pool."""
    return DEFAULT_ISSUER_URL.format(region=region, pool_id=pool_id)


def parse_key_set(document: str) -> KeySet:
    """
    Parse a serialized JWKS document into a read-only kid -> PyJWK mapping.

    Keys without a 'kid' cannot be selected by a token header and are skipped,
    and so are keys that cannot verify an RS256 signature.

    Raises:
        JWKSParseError: If the document is not JSON, has no 'keys' list, or a
            key cannot be loaded
    """
    try:
        jwks = json.loads(document)
    except ValueError as e:
        raise JWKSParseError(f"JWKS document is not valid JSON: {e}") from e

    if not isinstance(jwks, dict) or not isinstance(jwks.get("keys"), list):
        raise JWKSParseError("Invalid JWKS format: missing 'keys' list")

    keys: Dict[str, jwt.PyJWK] = {}
    for jwk_data in jwks["keys"]:
        if not isinstance(jwk_data, dict):
            raise JWKSParseError("Invalid JWKS format: key entry is not an object")

        kid = jwk_data.get("kid")
        if not kid:
            logger.debug("Skipping JWK without kid", extra={"kty": jwk_data.get("kty")})
            continue

        try:
            jwk = jwt.PyJWK(jwk_data)
        except (PyJWKError, InvalidKeyError, ValueError) as e:
            raise JWKSParseError(f"Unable to load JWK '{kid}': {e}") from e

        # Only RSA keys can verify an RS256 signature
        if jwk.key_type != "RSA" or jwk.algorithm_name != SUPPORTED_ALGORITHM:
            logger.debug(
                "Skipping non-RS256 JWK",
                extra={"kid": kid, "kty": jwk.key_type, "alg": jwk.algorithm_name},
            )
            continue

        keys[kid] = jwk

    if not keys:
        raise JWKSParseError("JWKS document contains no usable keys")

    return MappingProxyType(keys)


class JWKSClient:
    """
    Async JWKS client with TTL caching.

    Fetches and caches JSON Web Key Sets for Cognito user pools. The cache
    stores the serialized document under ``jwks-{pool_id}``; entries are
    replaced wholesale after the TTL. Fetch failures are never cached.
    """

    def __init__(
        self,
        cache: CacheBackend,
        cache_ttl: int = 3600,
        http_timeout: float = 5.0,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        """
        Initialize JWKS client.

        Args:
            cache: Cache backend for serialized JWKS documents
            cache_ttl: Cache TTL in seconds (default 1 hour)
            http_timeout: HTTP request timeout in seconds (default 5s)
            http_client: Optional pre-configured HTTP client
        """
        self.cache = cache
        self.cache_ttl = cache_ttl
        self.http_timeout = http_timeout
        self._http_client = http_client or httpx.AsyncClient(timeout=http_timeout)
        self._fetch_locks: Dict[str, asyncio.Lock] = {}
        # cache_key -> (document, parsed key set); replaced, never patched
        self._parsed: Dict[str, tuple[str, KeySet]] = {}

    async def get_key_set(
        self,
        region: str,
        pool_id: str,
        endpoint: Optional[str] = None,
    ) -> KeySet:
        """
        Get the current key set for a user pool, using cache when available.

        Args:
            region: AWS region of the user pool (e.g., us-east-1)
            pool_id: User pool id (e.g., us-east-1_ABC123)
            endpoint: Optional custom host replacing the Cognito well-known URL

        Returns:
            Read-only mapping of kid to PyJWK

        Raises:
            JWKSFetchError: If the JWKS fetch fails (network error, 4xx/5xx)
            JWKSParseError: If the JWKS document is malformed

        Example:
            >>> client = JWKSClient(MemoryCacheBackend())
            >>> keys = await client.get_key_set("us-east-1", "us-east-1_ABC123")
            >>> print(f"Found {len(keys)} keys")
        """
        cache_key = f"jwks-{pool_id}"
        jwks_url = build_jwks_url(region, pool_id, endpoint)

        document = await self.cache.get(cache_key)
        if document is not None:
            try:
                key_set = self._parse_cached(cache_key, document)
            except JWKSParseError as e:
                logger.warning(
                    "Invalid JWKS document in cache",
                    extra={"cache_key": cache_key, "error": str(e)},
                )
            else:
                logger.debug(
                    "JWKS cache hit",
                    extra={"pool_id": pool_id, "cache_key": cache_key},
                )
                return key_set

        # Single-flight: concurrent misses wait for the first fetch to land
        lock = self._fetch_locks.setdefault(cache_key, asyncio.Lock())
        async with lock:
            if document is None:
                document = await self.cache.remember(
                    cache_key,
                    self.cache_ttl,
                    lambda: self._fetch_jwks(jwks_url, cache_key),
                )
            else:
                # Corrupted entry: a waiter ahead of us may already have replaced it
                current = await self.cache.get(cache_key)
                if current is None or current == document:
                    document = await self._fetch_jwks(jwks_url, cache_key)
                    await self.cache.set(cache_key, document, self.cache_ttl)
                else:
                    document = current

        return self._parse_cached(cache_key, document)

    async def get_signing_key(
        self,
        region: str,
        pool_id: str,
        key_id: str,
        endpoint: Optional[str] = None,
    ) -> Optional[jwt.PyJWK]:
        """
        Get a specific signing key by key ID (kid).

        Args:
            region: AWS region of the user pool
            pool_id: User pool id
            key_id: JWK key ID (kid from the JWT header)
            endpoint: Optional custom JWKS host

        Returns:
            PyJWK for the specified key ID, or None if not found

        Raises:
            JWKSFetchError: If JWKS fetch fails
            JWKSParseError: If the JWKS document is malformed
        """
        key_set = await self.get_key_set(region, pool_id, endpoint)

        signing_key = key_set.get(key_id)
        if signing_key is None:
            # Key not found - log warning with available keys for debugging
            logger.warning(
                "Signing key not found in JWKS",
                extra={
                    "pool_id": pool_id,
                    "requested_kid": key_id,
                    "available_kids": sorted(key_set),
                },
            )
        return signing_key

    def _parse_cached(self, cache_key: str, document: str) -> KeySet:
        """Parse a document, reusing the previous result if it is unchanged."""
        previous = self._parsed.get(cache_key)
        if previous is not None and previous[0] == document:
            return previous[1]

        key_set = parse_key_set(document)
        self._parsed[cache_key] = (document, key_set)
        return key_set

    async def _fetch_jwks(self, jwks_url: str, cache_key: str) -> str:
        """
        Fetch the JWKS document from the provider.

        The body is validated before it is returned so that a malformed
        document never reaches the cache.

        Args:
            jwks_url: Well-known JWKS URL
            cache_key: Key the parsed result is memoized under

        Returns:
            Serialized JWKS document

        Raises:
            JWKSFetchError: If the request fails or returns a non-2xx status
            JWKSParseError: If the JWKS format is invalid
        """
        logger.info("Fetching JWKS from provider", extra={"jwks_uri": jwks_url})

        try:
            response = await self._http_client.get(jwks_url)
            response.raise_for_status()
        except httpx.HTTPError as e:
            logger.error(
                "JWKS fetch failed",
                extra={"jwks_uri": jwks_url, "error": str(e)},
            )
            raise JWKSFetchError(f"Unable to fetch JWKS from {jwks_url}: {e}", url=jwks_url) from e

        document = response.text
        key_set = parse_key_set(document)
        self._parsed[cache_key] = (document, key_set)

        logger.info(
            "JWKS fetched successfully",
            extra={"jwks_uri": jwks_url, "key_count": len(key_set)},
        )
        return document

    async def close(self) -> None:
        """
        Close HTTP client and cache backend.

        Should be called when the application shuts down to properly close
        the HTTP client connection pool.
        """
        await self._http_client.aclose()
        await self.cache.close()
        logger.debug("JWKS client closed")


# Singleton instance for application-wide use
_jwks_client: Optional[JWKSClient] = None


def get_jwks_client(config: Settings = settings) -> JWKSClient:
    """
    Get singleton JWKS client instance.

    Creates a singleton JWKS client on first call and reuses it for
    subsequent calls, so the key set cache and HTTP connection pool are
    shared across the application.

    Returns:
        Initialized JWKSClient instance
    """
    global _jwks_client

    if _jwks_client is None:
        _jwks_client = JWKSClient(
            cache=create_cache_backend(config),
            cache_ttl=config.JWKS_CACHE_TTL,
            http_timeout=config.JWKS_HTTP_TIMEOUT,
        )

        logger.info(
            "JWKS client initialized",
            extra={
                "cache_ttl": config.JWKS_CACHE_TTL,
                "http_timeout": config.JWKS_HTTP_TIMEOUT,
            },
        )

    return _jwks_client
