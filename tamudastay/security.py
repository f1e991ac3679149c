from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from jose import jwt
from passlib.context import CryptContext

from .config import settings

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    # Unparseable hashes (e.g. legacy plain-text rows) never verify
    try:
        return pwd_context.verify(plain_password, hashed_password)
    except ValueError:
        return False


def create_access_token(
        user_id: int, role: str, username: str, expires_delta: Optional[timedelta] = None
) -> str:
    expire = datetime.now(timezone.utc) + (
        expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    )
    payload = {"sub": str(user_id), "username": username, "role": role, "exp": expire}
    return jwt.encode(payload, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def decode_bearer_token(token: str) -> Dict[str, Any]:
    """
    Decodes an 'Authorization: Bearer ...' header value into its claims,
    with ``sub`` as an int user ID.
    Raises JWTError or ValueError when the header or token is malformed.
    """
    scheme, jwt_token = token.split()
    if scheme.lower() != "bearer":
        raise ValueError("Unsupported authorization scheme")
    payload = jwt.decode(jwt_token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    payload["sub"] = int(payload.get("sub"))
    return payload
