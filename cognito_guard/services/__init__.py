"""Services for JWKS retrieval and token verification."""
