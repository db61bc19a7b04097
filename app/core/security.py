from datetime import datetime, timedelta, timezone
from typing import Optional
from jose import jwt, JWTError
from passlib.context import CryptContext
import uuid

from app.core.config import settings

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

ACCESS_TOKEN_TYPE = "access"

def hash_password(password: str) -> str:
    return pwd_context.hash(password)

def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)

def create_access_token(user_id: uuid.UUID, expires_in: Optional[timedelta] = None) -> str:
    """
    Gera o token de acesso do candidato.
    A expiração padrão vem de ACCESS_TOKEN_EXPIRE_MINUTES.
    """
    issued_at = datetime.now(timezone.utc)
    expires_in = expires_in or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    claims = {
        "sub": str(user_id),
        "iat": issued_at,
        "exp": issued_at + expires_in,
        "type": ACCESS_TOKEN_TYPE,
    }
    return jwt.encode(claims, str(settings.SECRET_KEY), algorithm=settings.ALGORITHM)

def decode_token(token: str) -> Optional[dict]:
    """Payload do token, ou None se a assinatura ou a expiração forem inválidas."""
    try:
        return jwt.decode(token, str(settings.SECRET_KEY), algorithms=[settings.ALGORITHM])
    except JWTError:
        return None

def user_id_from_token(token: str) -> Optional[uuid.UUID]:
    """Extrai o ID do usuário de um token de acesso válido."""
    payload = decode_token(token)
    if not payload or payload.get("type") != ACCESS_TOKEN_TYPE:
        return None
    try:
        return uuid.UUID(str(payload.get("sub")))
    except ValueError:
        return None
