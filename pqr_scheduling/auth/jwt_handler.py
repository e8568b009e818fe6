import jwt

from pqr_scheduling.core import config


def decode_access_token(token: str) -> dict:
    """Verify a token issued by the external identity service."""
    return jwt.decode(token, config.JWT_SECRET_KEY, algorithms=[config.JWT_ALGORITHM])
