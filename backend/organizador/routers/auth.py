from datetime import datetime
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException
from fastapi.security import OAuth2PasswordRequestForm
from pydantic import BaseModel, ConfigDict, EmailStr, Field
from sqlalchemy import func
from sqlmodel import select

from ..db import get_session
from ..models import (
    FrecuenciaEmailEnum,
    Notificacion,
    Nota,
    RolEnum,
    Usuario,
    utc_now,
)
from ..security import (
    create_user_token,
    get_current_user,
    get_password_hash,
    is_admin,
    require_admin,
    verify_password,
)
from ..seed import ensure_notification_config
from ..services import notifications
from ..utils.pagination import PageParams, page_params, paginate
from ..utils.sqlmodel_helpers import apply_partial_update
from .notificaciones import NotificacionOut, get_owned_notification


router = APIRouter(prefix="/api/auth", tags=["auth"])


class UsuarioOut(BaseModel):
    id: int
    email: str
    nombre: str
    apellido: str
    rol: str
    activo: bool
    created_at: datetime
    updated_at: datetime
    model_config = ConfigDict(from_attributes=True)


class RegisterRequest(BaseModel):
    email: EmailStr
    password: str = Field(min_length=6)
    nombre: str = Field(min_length=1, max_length=100)
    apellido: str = Field(min_length=1, max_length=100)
    rol: RolEnum = RolEnum.estudiante


class LoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(min_length=6)


class AuthResponse(BaseModel):
    message: str
    token: str
    user: UsuarioOut


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"


class ProfileUpdate(BaseModel):
    nombre: str = Field(min_length=1, max_length=100)
    apellido: str = Field(min_length=1, max_length=100)


class ChangePasswordRequest(BaseModel):
    current_password: str = Field(alias="currentPassword", min_length=1)
    new_password: str = Field(alias="newPassword", min_length=6)
    model_config = ConfigDict(populate_by_name=True)


class NotificationConfigOut(BaseModel):
    notificar_contenidos: bool
    notificar_evaluaciones: bool
    notificar_recordatorios: bool
    frecuencia_email: FrecuenciaEmailEnum
    model_config = ConfigDict(from_attributes=True)


class NotificationConfigUpdate(BaseModel):
    notificar_contenidos: Optional[bool] = None
    notificar_evaluaciones: Optional[bool] = None
    notificar_recordatorios: Optional[bool] = None
    frecuencia_email: Optional[FrecuenciaEmailEnum] = None


def count_active_admins(session) -> int:
    return session.exec(
        select(func.count(Usuario.id)).where(Usuario.rol == RolEnum.admin.value, Usuario.activo == True)  # noqa: E712
    ).one()


def _check_credentials(session, email: str, password: str) -> Usuario:
    user = session.exec(select(Usuario).where(Usuario.email == email)).first()
    if not user or not verify_password(password, user.password):
        raise HTTPException(status_code=401, detail="Credenciales inválidas")
    if not user.activo:
        raise HTTPException(status_code=401, detail="Usuario inactivo")
    return user


@router.post("/register", response_model=AuthResponse, status_code=201)
def register(payload: RegisterRequest, background_tasks: BackgroundTasks, session=Depends(get_session)):
    existing = session.exec(select(Usuario).where(Usuario.email == payload.email)).first()
    if existing:
        raise HTTPException(status_code=400, detail="El email ya está registrado")
    # El rol de administrador sólo se asigna desde la gestión de usuarios
    rol = RolEnum.estudiante if payload.rol == RolEnum.admin else payload.rol
    user = Usuario(
        email=payload.email,
        password=get_password_hash(payload.password),
        nombre=payload.nombre,
        apellido=payload.apellido,
        rol=rol.value,
    )
    session.add(user)
    session.commit()
    session.refresh(user)
    ensure_notification_config(session, user.id)
    background_tasks.add_task(
        notifications.send_welcome,
        {"id": user.id, "email": user.email, "nombre": user.nombre, "apellido": user.apellido},
    )
    return AuthResponse(
        message="Usuario registrado exitosamente",
        token=create_user_token(user),
        user=UsuarioOut.model_validate(user),
    )


@router.post("/login", response_model=AuthResponse)
def login(payload: LoginRequest, session=Depends(get_session)):
    user = _check_credentials(session, payload.email, payload.password)
    return AuthResponse(
        message="Login exitoso",
        token=create_user_token(user),
        user=UsuarioOut.model_validate(user),
    )


@router.post("/token", response_model=TokenResponse)
def login_form(form_data: OAuth2PasswordRequestForm = Depends(), session=Depends(get_session)):
    user = _check_credentials(session, form_data.username, form_data.password)
    return TokenResponse(access_token=create_user_token(user))


@router.get("/profile", response_model=UsuarioOut)
def get_profile(user: Usuario = Depends(get_current_user)):
    return user


@router.put("/profile")
def update_profile(payload: ProfileUpdate, session=Depends(get_session), user: Usuario = Depends(get_current_user)):
    apply_partial_update(user, payload.model_dump())
    session.add(user)
    session.commit()
    session.refresh(user)
    return {"message": "Perfil actualizado exitosamente", "user": UsuarioOut.model_validate(user)}


@router.put("/change-password")
def change_password(payload: ChangePasswordRequest, session=Depends(get_session), user: Usuario = Depends(get_current_user)):
    if not verify_password(payload.current_password, user.password):
        raise HTTPException(status_code=400, detail="Contraseña actual incorrecta")
    user.password = get_password_hash(payload.new_password)
    user.updated_at = utc_now()
    session.add(user)
    session.commit()
    return {"message": "Contraseña actualizada exitosamente"}


@router.get("/notifications/config", response_model=NotificationConfigOut)
def get_notification_config(session=Depends(get_session), user: Usuario = Depends(get_current_user)):
    return ensure_notification_config(session, user.id)


@router.put("/notifications/config")
def update_notification_config(
    payload: NotificationConfigUpdate,
    session=Depends(get_session),
    user: Usuario = Depends(get_current_user),
):
    config = ensure_notification_config(session, user.id)
    apply_partial_update(config, payload.model_dump(exclude_unset=True, exclude_none=True))
    session.add(config)
    session.commit()
    session.refresh(config)
    return {
        "message": "Configuración de notificaciones actualizada",
        "configuracion": NotificationConfigOut.model_validate(config),
    }


@router.get("/notifications")
def list_my_notifications(
    params: PageParams = Depends(page_params(10)),
    session=Depends(get_session),
    user: Usuario = Depends(get_current_user),
):
    statement = (
        select(Notificacion)
        .where(Notificacion.usuario_id == user.id)
        .order_by(Notificacion.created_at.desc(), Notificacion.id.desc())
    )
    rows, pagination = paginate(session, statement, params)
    return {"notificaciones": [NotificacionOut.model_validate(row) for row in rows], "pagination": pagination}


@router.put("/notifications/{notificacion_id}/read")
def mark_my_notification_read(notificacion_id: int, session=Depends(get_session), user: Usuario = Depends(get_current_user)):
    obj = get_owned_notification(session, notificacion_id, user)
    obj.leida = True
    session.add(obj)
    session.commit()
    return {"message": "Notificación marcada como leída"}


@router.get("/users")
def list_users(
    params: PageParams = Depends(page_params(10)),
    session=Depends(get_session),
    user: Usuario = Depends(require_admin),
):
    statement = select(Usuario).order_by(Usuario.created_at.desc(), Usuario.id.desc())
    rows, pagination = paginate(session, statement, params)
    return {"usuarios": [UsuarioOut.model_validate(row) for row in rows], "pagination": pagination}


@router.get("/export-data")
def export_my_data(session=Depends(get_session), user: Usuario = Depends(get_current_user)):
    config = ensure_notification_config(session, user.id)
    notificaciones = session.exec(
        select(Notificacion).where(Notificacion.usuario_id == user.id).order_by(Notificacion.created_at.desc())
    ).all()
    notas = session.exec(select(Nota).where(Nota.usuario_id == user.id)).all()
    return {
        "user": UsuarioOut.model_validate(user),
        "configuracion": NotificationConfigOut.model_validate(config),
        "notificaciones": [NotificacionOut.model_validate(row) for row in notificaciones],
        "notas": [nota.model_dump() for nota in notas],
        "exported_at": utc_now().isoformat(),
    }


@router.delete("/account")
def delete_account(session=Depends(get_session), user: Usuario = Depends(get_current_user)):
    if is_admin(user) and count_active_admins(session) <= 1:
        raise HTTPException(status_code=400, detail="No se puede eliminar la cuenta del último administrador")
    user.activo = False
    user.updated_at = utc_now()
    session.add(user)
    session.commit()
    return {"message": "Cuenta desactivada exitosamente"}
