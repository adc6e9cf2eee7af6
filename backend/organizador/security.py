from datetime import datetime, timedelta, timezone
from typing import Optional, Dict, Any
from jose import jwt, JWTError
from passlib.context import CryptContext
from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer

from .config import settings
from .db import get_session
from .models import RolEnum, Usuario


pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/token", auto_error=False)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


def get_password_hash(password: str) -> str:
    return pwd_context.hash(password)


def create_access_token(subject: str, expires_minutes: Optional[int] = None, extra: Optional[Dict[str, Any]] = None) -> str:
    effective_minutes = expires_minutes if expires_minutes is not None else settings.access_token_expire_minutes
    to_encode: Dict[str, Any] = {"sub": subject}
    if extra:
        to_encode.update(extra)
    if effective_minutes is not None and effective_minutes > 0:
        expire = datetime.now(timezone.utc) + timedelta(minutes=effective_minutes)
        to_encode["exp"] = int(expire.timestamp())
    return jwt.encode(to_encode, settings.secret_key, algorithm=settings.algorithm)


def create_user_token(user: Usuario) -> str:
    return create_access_token(str(user.id), extra={"email": user.email, "rol": user.rol})


def authenticate_token(token: str, session) -> Usuario:
    try:
        payload = jwt.decode(token, settings.secret_key, algorithms=[settings.algorithm])
        subject = payload.get("sub")
        user_id = int(subject) if subject is not None else None
    except (JWTError, ValueError):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Token inválido o expirado")
    if user_id is None:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Token inválido o expirado")
    user = session.get(Usuario, user_id)
    if not user or not user.activo:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Usuario no válido o inactivo")
    return user


def get_current_user(token: Optional[str] = Depends(oauth2_scheme), session=Depends(get_session)) -> Usuario:
    if not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token de acceso requerido",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return authenticate_token(token, session)


def require_roles(*roles: str):
    def _inner(user: Usuario = Depends(get_current_user)) -> Usuario:
        if user.rol not in roles:
            raise HTTPException(status_code=403, detail="Permisos insuficientes")
        return user

    return _inner


require_profesor = require_roles(RolEnum.profesor.value, RolEnum.admin.value)
require_admin = require_roles(RolEnum.admin.value)


def is_admin(user: Usuario) -> bool:
    return user.rol == RolEnum.admin.value
