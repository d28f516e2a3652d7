import jwt
from app.core.config import settings


def decode_access_token(token: str):
    try:
        payload = jwt.decode(token, settings.secret_key, algorithms=[settings.jwt_algorithm])
        return payload
    except jwt.ExpiredSignatureError:
        return None
    except jwt.InvalidTokenError:
        return None


def get_current_user(token: str):
    """Extract user_id from JWT token"""
    payload = decode_access_token(token)
    if not payload:
        return None
    return payload.get("user_id")
