"""FastAPI dependencies."""

from cognito_guard.api.dependencies.auth import (
    CurrentIdentity,
    OptionalIdentity,
    get_current_identity,
    get_optional_identity,
)

__all__ = [
    "CurrentIdentity",
    "OptionalIdentity",
    "get_current_identity",
    "get_optional_identity",
]
