from typing import Dict

from jose import jwt

from feecycle.core.config import settings


def decode_access_token(token: str) -> Dict:
    """Verify signature and expiry. Tokens are issued by the operators' identity service with the same key."""
    return jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
