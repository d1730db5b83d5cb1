"""
Authentication utilities: bearer token verification
"""

import logging
import jwt
from datetime import timedelta
from typing import Optional
from config.settings import settings
from utils.shared_utils import utcnow

logger = logging.getLogger(__name__)

# JWT configuration
ALGORITHM = "HS256"
JWKS_ALGORITHMS = ["RS256"]

_jwks_client: Optional[jwt.PyJWKClient] = None


def _get_jwks_client() -> jwt.PyJWKClient:
    global _jwks_client
    if _jwks_client is None:
        _jwks_client = jwt.PyJWKClient(settings.auth_jwks_url)
    return _jwks_client


def create_jwt(subject: str, expires_in: timedelta = timedelta(days=7)) -> str:
    """Create an HS256 token for a subject (local development and tests)"""
    if not settings.jwt_secret_key:
        raise ValueError("JWT_SECRET_KEY is not set. Cannot create JWT token.")

    payload = {
        "sub": subject,
        "exp": utcnow() + expires_in
    }
    return jwt.encode(payload, settings.jwt_secret_key, algorithm=ALGORITHM)


def decode_jwt(token: str) -> Optional[dict]:
    """
    Verify a bearer token and return its claims. Returns None if invalid.

    Tokens are checked against the identity provider's JWKS when
    AUTH_JWKS_URL is set, otherwise against JWT_SECRET_KEY.
    """
    options = {"verify_aud": bool(settings.auth_audience)}
    try:
        if settings.auth_jwks_url:
            signing_key = _get_jwks_client().get_signing_key_from_jwt(token)
            return jwt.decode(
                token,
                signing_key.key,
                algorithms=JWKS_ALGORITHMS,
                audience=settings.auth_audience,
                options=options,
            )
        if not settings.jwt_secret_key:
            raise ValueError("JWT_SECRET_KEY is not set. Cannot decode JWT token.")
        return jwt.decode(
            token,
            settings.jwt_secret_key,
            algorithms=[ALGORITHM],
            audience=settings.auth_audience,
            options=options,
        )
    except jwt.ExpiredSignatureError:
        return None
    except jwt.PyJWKClientError as e:
        logger.warning(f"Could not resolve signing key for token: {e}")
        return None
    except jwt.InvalidTokenError:
        return None
