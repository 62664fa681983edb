import logging
import os
from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import Header
from jose import jwt, JWTError
from jose.exceptions import ExpiredSignatureError
from passlib.context import CryptContext
from pydantic import BaseModel

from errors import Unauthenticated

logger = logging.getLogger(__name__)

# Environment
JWT_SECRET = os.getenv("JWT_SECRET", "dev-secret-change-me")
JWT_ALG = "HS256"
JWT_EXPIRES_MINUTES = int(os.getenv("JWT_EXPIRES_MINUTES", 60 * 24))

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    return pwd_context.verify(password, password_hash)


class Identity(BaseModel):
    id: str
    email: Optional[str] = None
    name: Optional[str] = None


def create_token(data: dict, expires_minutes: Optional[int] = None) -> str:
    if expires_minutes is None:
        expires_minutes = JWT_EXPIRES_MINUTES
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + timedelta(minutes=expires_minutes)
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, JWT_SECRET, algorithm=JWT_ALG)


def decode_token(token: str) -> Identity:
    """Verify a bearer token and return the identity it carries."""
    try:
        payload = jwt.decode(token, JWT_SECRET, algorithms=[JWT_ALG])
    except ExpiredSignatureError:
        logger.warning("Rejected expired token")
        raise Unauthenticated("Token has expired")
    except JWTError as exc:
        logger.warning("Rejected invalid token: %s", exc)
        raise Unauthenticated("Invalid token")
    if not payload.get("id"):
        logger.warning("Rejected token without id claim")
        raise Unauthenticated("Invalid token")
    return Identity(id=str(payload["id"]), email=payload.get("email"), name=payload.get("name"))


def get_current_user(authorization: Optional[str] = Header(None)) -> Identity:
    if not authorization:
        raise Unauthenticated()
    parts = authorization.split()
    if len(parts) != 2 or parts[0].lower() != "bearer":
        raise Unauthenticated()
    return decode_token(parts[1])
