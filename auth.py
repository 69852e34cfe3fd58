"""
Bearer-token authentication and capability checks.

Tokens are HS256 JWTs carrying the user id in an ``id`` claim. The three
dependencies below map to the three access levels of the API:

- ``get_current_user``: any authenticated user
- ``require_admin``: role admin and explicitly approved
- ``require_super_admin``: the super administrator
"""

import logging
import re
from datetime import timedelta
from typing import Optional

import bcrypt
import jwt
from fastapi import Depends, Header

import settings
from database import get_db, now
from errors import AuthenticationError, AuthorizationError, ValidationError
from utils import oid

logger = logging.getLogger(__name__)

PASSWORD_SYMBOLS = '!@#$%^&*(),.?":{}|<>'

# Checked in order, first failure wins
_PASSWORD_RULES = [
    (lambda pw: len(pw) >= 6, "Password must be at least 6 characters long"),
    (lambda pw: re.search(r"[A-Z]", pw), "Password must contain at least one uppercase letter"),
    (lambda pw: re.search(r"[a-z]", pw), "Password must contain at least one lowercase letter"),
    (lambda pw: re.search(r"\d", pw), "Password must contain at least one number"),
    (lambda pw: any(c in PASSWORD_SYMBOLS for c in pw), "Password must contain at least one special character"),
    (lambda pw: len(pw.encode()) <= 72, "Password must be at most 72 bytes long"),
]


def check_password_policy(password: str):
    for rule, message in _PASSWORD_RULES:
        if not rule(password):
            raise ValidationError(message)


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode(), bcrypt.gensalt(rounds=settings.BCRYPT_ROUNDS)).decode()


def verify_password(password: str, password_hash: Optional[str]) -> bool:
    if not password_hash:
        return False
    try:
        return bcrypt.checkpw(password.encode(), password_hash.encode())
    except ValueError:
        return False


def create_token(user_id: str) -> str:
    issued = now()
    payload = {
        "id": str(user_id),
        "iat": issued,
        "exp": issued + timedelta(days=settings.JWT_EXPIRES_DAYS),
    }
    return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def decode_token(token: str) -> str:
    try:
        payload = jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])
    except jwt.PyJWTError as e:
        logger.info("Token verification failed: %s", e)
        raise AuthenticationError("Not authorized, token failed")
    user_id = payload.get("id")
    if not user_id:
        raise AuthenticationError("Not authorized, token failed")
    return user_id


def is_admin(user: dict) -> bool:
    return user.get("role") == "admin" and user.get("is_approved") is True


# Dependencies

def get_current_user(authorization: Optional[str] = Header(default=None)) -> dict:
    if not authorization or not authorization.startswith("Bearer "):
        raise AuthenticationError("Not authorized, no token provided")
    token = authorization[len("Bearer "):].strip()
    if not token:
        raise AuthenticationError("Not authorized, no token provided")
    user_id = decode_token(token)
    try:
        _id = oid(user_id)
    except ValidationError:
        raise AuthenticationError("Not authorized, token failed")
    user = get_db()["user"].find_one({"_id": _id}, {"password_hash": 0})
    if not user:
        raise AuthenticationError("User not found - token invalid")
    return user


def require_admin(user: dict = Depends(get_current_user)) -> dict:
    if user.get("role") != "admin":
        raise AuthorizationError("Not authorized as an admin")
    if user.get("is_approved") is not True:
        raise AuthorizationError("Admin account pending approval")
    return user


def require_super_admin(user: dict = Depends(get_current_user)) -> dict:
    if user.get("is_super_admin") is not True:
        raise AuthorizationError("Not authorized - Super Admin access required")
    return user
