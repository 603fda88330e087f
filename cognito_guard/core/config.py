"""
Configuration management for Cognito Guard.

Uses pydantic-settings to load configuration from environment variables
with sensible defaults for development.
"""

from typing import Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


SUPPORTED_ALGORITHM = "RS256"


class Settings(BaseSettings):
    """Verification settings loaded from environment variables.

    Instances are immutable; components receive one at construction time.
    """

    # Application
    APP_NAME: str = "cognito-guard"

    # Cognito user pool (the "realm")
    COGNITO_USER_POOL_REGION: str = "us-east-1"
    COGNITO_USER_POOL_ID: str = ""
    COGNITO_USER_POOL_CLIENT_ID: str = ""  # App client id, scopes the Amplify cookies
    COGNITO_ENDPOINT: Optional[str] = None  # Custom JWKS host (cognito-local, proxies)

    # Payload validation
    COGNITO_UUID_COLUMN: str = "sub"  # Claim holding the stable user identifier
    COGNITO_VALIDATE_ISSUER: bool = True
    COGNITO_REQUIRE_UUID_FORMAT: bool = True

    # Signature verification
    JWT_ALGORITHM: str = SUPPORTED_ALGORITHM
    JWT_LEEWAY: int = 60  # Clock skew tolerance for exp/nbf/iat (seconds)

    # JWKS Configuration
    JWKS_CACHE_TTL: int = 3600  # Cache JWKS for 1 hour (seconds)
    JWKS_HTTP_TIMEOUT: float = 5.0  # HTTP timeout for JWKS requests (seconds)

    # Redis Configuration (empty = in-process cache)
    REDIS_URL: str = ""

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool = True

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
        frozen=True,
    )

    @field_validator("JWT_ALGORITHM")
    @classmethod
    def pin_algorithm(cls, v: str) -> str:
        """Only RS256 is accepted; anything else is a configuration error."""
        if v != SUPPORTED_ALGORITHM:
            raise ValueError(f"Only {SUPPORTED_ALGORITHM} is supported, got {v!r}")
        return v

    @field_validator("COGNITO_ENDPOINT", mode="before")
    @classmethod
    def empty_endpoint_is_none(cls, v: Optional[str]) -> Optional[str]:
        """Treat an empty COGNITO_ENDPOINT as unset."""
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @field_validator("JWT_LEEWAY", "JWKS_CACHE_TTL")
    @classmethod
    def non_negative(cls, v: int) -> int:
        if v < 0:
            raise ValueError("must be >= 0")
        return v


# Global settings instance
settings = Settings()
