from datetime import datetime, timedelta
from typing import Optional, Any
from jose import jwt, JWTError
from classroom.core.config import settings
from classroom.models.enums import ViewerRole
import secrets
import re

LETTERS = "ABCDEFGHIJKLMNOPQRSTUVWXYZ"
DIGITS = "0123456789"
SESSION_CODE_PATTERN = re.compile(r"^[A-Z]{2}\d{2}[A-Z]{2}\d{2}$")

VIEWER_ROLES = tuple(role.value for role in ViewerRole)


def generate_session_code() -> str:
    """Draw an 8 character code shaped like AB12CD34."""
    parts = []
    for alphabet in (LETTERS, DIGITS, LETTERS, DIGITS):
        parts.append(secrets.choice(alphabet))
        parts.append(secrets.choice(alphabet))
    return "".join(parts)


def is_valid_session_code(code: str) -> bool:
    return bool(code) and SESSION_CODE_PATTERN.match(code) is not None


def create_viewer_token(
    session_id: str,
    viewer_name: str,
    role: str = "student",
    participant_id: Optional[str] = None,
    expires_delta: Optional[timedelta] = None,
) -> str:
    if role not in VIEWER_ROLES:
        raise ValueError(f"Unknown viewer role: {role}")
    if expires_delta:
        expire = datetime.utcnow() + expires_delta
    else:
        expire = datetime.utcnow() + timedelta(hours=settings.VIEWER_TOKEN_EXPIRE_HOURS)

    to_encode = {
        "sub": viewer_name,
        "type": "viewer",
        "role": role,
        "session_id": session_id,
        "exp": expire,
        "iat": datetime.utcnow(),
    }
    if participant_id:
        to_encode["participant_id"] = participant_id

    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def decode_token(token: str) -> Optional[dict[str, Any]]:
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
        return payload
    except JWTError:
        return None


def get_viewer_from_token(token: str) -> Optional[dict]:
    payload = decode_token(token)
    if not payload or payload.get("type") != "viewer":
        return None
    if not payload.get("session_id") or payload.get("role") not in VIEWER_ROLES:
        return None
    return {
        "role": payload["role"],
        "name": payload.get("sub"),
        "session_id": payload["session_id"],
        "participant_id": payload.get("participant_id"),
    }
