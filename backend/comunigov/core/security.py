"""
Password hashing and bearer tokens.

Tokens are HS256 JWTs carrying the user id in ``sub`` plus the role and
entity the user had when the token was issued. The claims are informative
only; every request reloads the user from the database.
"""
import secrets
import string
from datetime import datetime, timedelta, timezone
from typing import Optional

from jose import jwt, JWTError
from passlib.context import CryptContext

from .config import settings

TOKEN_TYPE = "comunigov-access"

# pbkdf2_sha256 for new hashes; bcrypt hashes from seeded data still verify.
pwd_context = CryptContext(schemes=["pbkdf2_sha256", "bcrypt"], deprecated="auto")

TEMP_PASSWORD_ALPHABET = string.ascii_letters + string.digits


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


def get_password_hash(password: str) -> str:
    return pwd_context.hash(password)


def generate_temporary_password(length: int = 10) -> str:
    """Random password handed out to imported or reset users."""
    return "".join(secrets.choice(TEMP_PASSWORD_ALPHABET) for _ in range(length))


def create_access_token(
    user_id: str,
    role: Optional[str] = None,
    entity_id: Optional[str] = None,
    expires_minutes: Optional[int] = None
) -> str:
    issued = datetime.now(timezone.utc)
    lifetime = timedelta(minutes=expires_minutes or settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    claims = {
        "sub": user_id,
        "iat": issued,
        "exp": issued + lifetime,
        "type": TOKEN_TYPE,
    }
    if role:
        claims["role"] = role
    if entity_id:
        claims["entity_id"] = entity_id
    return jwt.encode(claims, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def decode_token(token: str) -> Optional[dict]:
    """Claims of a valid, unexpired token, ``None`` otherwise."""
    try:
        return jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    except JWTError:
        return None


def verify_token(token: str) -> Optional[str]:
    """User id of a ComuniGov access token."""
    claims = decode_token(token)
    if not claims or claims.get("type") != TOKEN_TYPE:
        return None
    return claims.get("sub")
