"""
Exceptions raised by the token verification pipeline.

Two families are kept apart:

- InvalidTokenError: the token was examined and rejected.
- KeySetError: the verification keys could not be obtained, so the token
  could not be examined at all.

Callers must refuse to trust the token in both cases.
"""


class CognitoGuardError(Exception):
    """Base exception for all Cognito Guard errors."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class InvalidTokenError(CognitoGuardError):
    """Raised for every token rejection.

    The reason is the only structured detail exposed to callers. It is safe
    to log and never contains the raw token.
    """

    @property
    def reason(self) -> str:
        return self.message


# =============================================================================
# Key Set Exceptions
# =============================================================================


class KeySetError(CognitoGuardError):
    """Base exception for JWKS retrieval failures."""

    pass


class JWKSFetchError(KeySetError):
    """Raised when the JWKS document cannot be downloaded.

    Covers transport errors, timeouts and non-success HTTP status codes.
    """

    def __init__(self, message: str, url: str):
        super().__init__(message)
        self.url = url


class JWKSParseError(KeySetError):
    """Raised when the JWKS document is not a usable key set."""

    pass
