"""Unit tests for settings loading."""
import pytest
from pydantic import ValidationError

from cognito_guard.core.config import Settings


def test_defaults(monkeypatch):
    for name in ("COGNITO_UUID_COLUMN", "JWKS_CACHE_TTL", "JWT_LEEWAY", "COGNITO_VALIDATE_ISSUER"):
        monkeypatch.delenv(name, raising=False)

    config = Settings(_env_file=None)

    assert config.COGNITO_UUID_COLUMN == "sub"
    assert config.COGNITO_VALIDATE_ISSUER is True
    assert config.JWT_ALGORITHM == "RS256"
    assert config.JWT_LEEWAY == 60
    assert config.JWKS_CACHE_TTL == 3600
    assert 0 < config.JWKS_HTTP_TIMEOUT <= 10


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv("COGNITO_USER_POOL_ID", "eu-west-1_Pool")
    monkeypatch.setenv("COGNITO_VALIDATE_ISSUER", "false")
    monkeypatch.setenv("COGNITO_UUID_COLUMN", "custom:uuid")

    config = Settings(_env_file=None)

    assert config.COGNITO_USER_POOL_ID == "eu-west-1_Pool"
    assert config.COGNITO_VALIDATE_ISSUER is False
    assert config.COGNITO_UUID_COLUMN == "custom:uuid"


def test_empty_endpoint_is_none(monkeypatch):
    monkeypatch.setenv("COGNITO_ENDPOINT", "  ")

    assert Settings(_env_file=None).COGNITO_ENDPOINT is None


def test_only_rs256_allowed():
    with pytest.raises(ValidationError, match="Only RS256 is supported"):
        Settings(_env_file=None, JWT_ALGORITHM="HS256")


def test_negative_leeway_rejected():
    with pytest.raises(ValidationError):
        Settings(_env_file=None, JWT_LEEWAY=-1)


def test_settings_are_immutable():
    config = Settings(_env_file=None)

    with pytest.raises(ValidationError):
        config.COGNITO_USER_POOL_ID = "changed"
