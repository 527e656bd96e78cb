from fastapi import APIRouter, Depends, HTTPException, status

from bookstore.api.deps import get_current_identity, get_gateway, get_settings, unwrap
from bookstore.core.config import Settings
from bookstore.db.gateway import Gateway
from bookstore.db.results import NotFound
from bookstore.schemas import LoginPayload, RegisterPayload
from bookstore.security.utils import create_access_token, hash_password, verify_password
from bookstore.utils.response import success

router = APIRouter()  # main.py mounts at /auth


def check_email_format(email: str) -> None:
    has_at, has_dot = '@' in email, '.' in email
    if not has_at and not has_dot:
        raise HTTPException(status_code=400, detail="Invalid email format: '@' & '.'")
    if not has_at:
        raise HTTPException(status_code=400, detail='Invalid email format: @')
    if not has_dot:
        raise HTTPException(status_code=400, detail='Invalid email format: .')


@router.post('/register', status_code=status.HTTP_201_CREATED)
def register(payload: RegisterPayload, gateway: Gateway = Depends(get_gateway)):
    email = (payload.email or '').strip()
    if not email or not payload.password:
        raise HTTPException(status_code=400, detail='Email and password are required')
    check_email_format(email)

    user = unwrap(gateway.create_user(
        email=email,
        password_hash=hash_password(payload.password),
        username=(payload.username or '').strip() or None,
    ))
    return success(
        {'id': user.id, 'email': user.email, 'created_at': user.created_at},
        'User registered successfully',
        201,
    )


@router.post('/login')
def login(payload: LoginPayload, gateway: Gateway = Depends(get_gateway), settings: Settings = Depends(get_settings)):
    email = (payload.email or '').strip()
    if not email or not payload.password:
        raise HTTPException(status_code=400, detail='Email and password are required')
    if not settings.JWT_SECRET:
        raise HTTPException(status_code=500, detail='Server configuration error')

    outcome = gateway.find_user_by_email(email)
    # unknown email and wrong password look the same to the caller
    if isinstance(outcome, NotFound):
        raise HTTPException(status_code=401, detail='Invalid credentials')
    user = unwrap(outcome)
    if not verify_password(payload.password, user.password_hash):
        raise HTTPException(status_code=401, detail='Invalid credentials')

    access, _ = create_access_token(settings, user.id, user.email)
    return success({'access_token': access}, 'Login successfully')


@router.get('/me')
def me(identity: dict = Depends(get_current_identity), gateway: Gateway = Depends(get_gateway)):
    user = unwrap(gateway.get_user(identity['sub']))
    return success({'id': user.id, 'username': user.username, 'email': user.email}, 'Get me successfully')
