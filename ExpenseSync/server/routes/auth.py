import datetime
import logging
from typing import Any, Dict

from fastapi import APIRouter, Depends, HTTPException
from pymongo.database import Database

from ..database import USERS, get_db, parse_object_id, to_str_id, utcnow
from ..schemas import LoginRequest, RegisterRequest, ResetPasswordRequest
from ..security import create_token, get_current_user_id, hash_password, verify_password
from ..config import settings

router = APIRouter(prefix='/auth', tags=['auth'])

PRIVATE_USER_FIELDS = ('password', 'resetPasswordToken', 'resetPasswordExpires')


def _normalize_email(email: str) -> str:
    return email.strip().lower()


def _session_response(user: Dict[str, Any]) -> Dict[str, Any]:
    return {
        'token': create_token(str(user['_id'])),
        'user': {
            'id': str(user['_id']),
            'name': user['name'],
            'email': user['email'],
        },
    }


@router.post('/register', status_code=201)
def register(payload: RegisterRequest, db: Database = Depends(get_db)):
    if not payload.name or not payload.email or not payload.password:
        raise HTTPException(status_code=400, detail='All fields are required')

    email = _normalize_email(payload.email)
    if db[USERS].find_one({'email': email}):
        raise HTTPException(status_code=400, detail='User already exists')

    now = utcnow()
    user = {
        'name': payload.name.strip(),
        'email': email,
        'password': hash_password(payload.password),
        'createdAt': now,
        'updatedAt': now,
    }
    user['_id'] = db[USERS].insert_one(user).inserted_id
    logging.info(f'Registered user {user["_id"]}')
    return _session_response(user)


@router.post('/login')
def login(payload: LoginRequest, db: Database = Depends(get_db)):
    if not payload.email or not payload.password:
        raise HTTPException(status_code=400, detail='Invalid credentials')

    user = db[USERS].find_one({'email': _normalize_email(payload.email)})
    if not user or not verify_password(payload.password, user['password']):
        raise HTTPException(status_code=400, detail='Invalid credentials')

    return _session_response(user)


@router.post('/reset-password')
def reset_password(payload: ResetPasswordRequest, db: Database = Depends(get_db)):
    if not payload.email:
        raise HTTPException(status_code=400, detail='Email is required')

    user = db[USERS].find_one({'email': _normalize_email(payload.email)})
    if not user:
        raise HTTPException(status_code=404, detail='User not found')

    expires_delta = datetime.timedelta(hours=settings.RESET_TOKEN_EXPIRE_HOURS)
    reset_token = create_token(str(user['_id']), expires_delta=expires_delta)
    db[USERS].update_one(
        {'_id': user['_id']},
        {'$set': {
            'resetPasswordToken': reset_token,
            'resetPasswordExpires': utcnow() + expires_delta,
        }}
    )
    # Delivery by email is out of scope; the token is handed back directly
    return {'message': 'Password reset email sent', 'resetToken': reset_token}


@router.get('/me')
def me(user_id: str = Depends(get_current_user_id), db: Database = Depends(get_db)):
    oid = parse_object_id(user_id)
    user = db[USERS].find_one({'_id': oid}) if oid else None
    if not user:
        raise HTTPException(status_code=404, detail='User not found')

    for field in PRIVATE_USER_FIELDS:
        user.pop(field, None)
    return to_str_id(user)
