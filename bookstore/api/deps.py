from typing import Optional

from fastapi import Depends, Header, HTTPException, Request
import jwt

from bookstore.core.config import Settings
from bookstore.db.gateway import Gateway
from bookstore.db.results import Conflict, NotFound, Ok, Outcome
from bookstore.security.utils import MissingSecretError, decode_token


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_gateway(request: Request) -> Gateway:
    return request.app.state.gateway


def get_current_identity(
    authorization: Optional[str] = Header(default=None, alias='Authorization'),
    settings: Settings = Depends(get_settings),
) -> dict:
    if not authorization:
        raise HTTPException(status_code=401, detail='Token not found')
    if not authorization.startswith('Bearer '):
        raise HTTPException(status_code=401, detail='Invalid token format. Use: Bearer <token>')
    token = authorization[len('Bearer '):].strip()
    try:
        payload = decode_token(settings, token)
    except MissingSecretError:
        raise HTTPException(status_code=500, detail='Server configuration error')
    except jwt.ExpiredSignatureError:
        raise HTTPException(status_code=401, detail='Token expired')
    except jwt.InvalidTokenError:
        raise HTTPException(status_code=401, detail='Invalid token')
    if payload.get('type') != 'access' or not payload.get('sub'):
        raise HTTPException(status_code=401, detail='Invalid token')
    return payload  # sub (user id), email


def unwrap(outcome: Outcome):
    """Return the value of an ``Ok`` outcome, raise the matching HTTP error otherwise."""
    if isinstance(outcome, Ok):
        return outcome.value
    if isinstance(outcome, NotFound):
        raise HTTPException(status_code=404, detail=outcome.message)
    if isinstance(outcome, Conflict):
        raise HTTPException(status_code=400, detail=outcome.message)
    raise HTTPException(status_code=500, detail='Internal server error')
