from passlib.context import CryptContext
from datetime import datetime, timedelta, timezone
from typing import Tuple
import jwt

pwd_ctx = CryptContext(schemes=['bcrypt'], deprecated='auto')

class MissingSecretError(RuntimeError):
    """The signing secret is not configured."""

def hash_password(p: str) -> str: return pwd_ctx.hash(p)

def verify_password(p: str, h: str) -> bool: return pwd_ctx.verify(p, h)

def now_utc() -> datetime: return datetime.now(timezone.utc)

def create_access_token(settings, user_id: str, email: str) -> Tuple[str, datetime]:
    if not settings.JWT_SECRET:
        raise MissingSecretError('JWT_SECRET is not set')
    issued = now_utc()
    exp = issued + timedelta(seconds=settings.ACCESS_TOKEN_EXPIRES_SECONDS)
    payload = {'sub': user_id, 'email': email, 'iat': issued, 'exp': exp, 'type': 'access'}
    return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM), exp

def decode_token(settings, token: str) -> dict:
    if not settings.JWT_SECRET:
        raise MissingSecretError('JWT_SECRET is not set')
    return jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])
