from datetime import timedelta
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field, StrictBool
from sqlalchemy import delete, func
from sqlmodel import select

from ..db import get_session
from ..models import ConfiguracionNotificaciones, Nota, Notificacion, RolEnum, Usuario, utc_now
from ..security import get_password_hash, is_admin, require_admin
from ..utils.filters import apply_filters, eq, search_any
from .auth import UsuarioOut, count_active_admins


router = APIRouter(prefix="/api/usuarios", tags=["usuarios"])


class RolUpdate(BaseModel):
    rol: RolEnum


class EstadoUpdate(BaseModel):
    activo: StrictBool


class PasswordReset(BaseModel):
    password: str = Field(min_length=6)


def _get_usuario(session, usuario_id: int) -> Usuario:
    obj = session.get(Usuario, usuario_id)
    if not obj:
        raise HTTPException(status_code=404, detail="Usuario no encontrado")
    return obj


def _count_admins(session) -> int:
    return session.exec(select(func.count(Usuario.id)).where(Usuario.rol == RolEnum.admin.value)).one()


@router.get("/")
def list_usuarios(
    rol: Optional[RolEnum] = None,
    activo: Optional[bool] = None,
    q: Optional[str] = None,
    session=Depends(get_session),
    admin: Usuario = Depends(require_admin),
):
    statement = apply_filters(
        select(Usuario),
        eq(Usuario.rol, rol.value if rol else None),
        eq(Usuario.activo, activo),
        search_any(q, Usuario.nombre, Usuario.apellido, Usuario.email),
    ).order_by(Usuario.created_at.desc(), Usuario.id.desc())
    usuarios = session.exec(statement).all()
    return {"usuarios": [UsuarioOut.model_validate(u) for u in usuarios], "total": len(usuarios)}


@router.get("/stats/overview")
def usuarios_stats(session=Depends(get_session), admin: Usuario = Depends(require_admin)):
    usuarios = session.exec(select(Usuario.rol, Usuario.activo, Usuario.created_at)).all()
    recientes_desde = utc_now() - timedelta(days=7)
    stats = {
        "total": len(usuarios),
        "activos": 0,
        "inactivos": 0,
        "estudiantes": 0,
        "profesores": 0,
        "administradores": 0,
        "recientes": 0,
    }
    por_rol = {
        RolEnum.estudiante.value: "estudiantes",
        RolEnum.profesor.value: "profesores",
        RolEnum.admin.value: "administradores",
    }
    for rol, activo, created_at in usuarios:
        stats["activos" if activo else "inactivos"] += 1
        if rol in por_rol:
            stats[por_rol[rol]] += 1
        if created_at >= recientes_desde:
            stats["recientes"] += 1
    return stats


@router.get("/{usuario_id}", response_model=UsuarioOut)
def get_usuario(usuario_id: int, session=Depends(get_session), admin: Usuario = Depends(require_admin)):
    return _get_usuario(session, usuario_id)


@router.patch("/{usuario_id}/rol")
def update_rol(usuario_id: int, payload: RolUpdate, session=Depends(get_session), admin: Usuario = Depends(require_admin)):
    usuario = _get_usuario(session, usuario_id)
    if is_admin(usuario) and payload.rol != RolEnum.admin and _count_admins(session) <= 1:
        raise HTTPException(
            status_code=400,
            detail="No se puede quitar el rol de administrador al último administrador",
        )
    usuario.rol = payload.rol.value
    usuario.updated_at = utc_now()
    session.add(usuario)
    session.commit()
    session.refresh(usuario)
    return {"message": "Rol actualizado exitosamente", "usuario": UsuarioOut.model_validate(usuario)}


@router.patch("/{usuario_id}/estado")
def update_estado(usuario_id: int, payload: EstadoUpdate, session=Depends(get_session), admin: Usuario = Depends(require_admin)):
    usuario = _get_usuario(session, usuario_id)
    if (
        not payload.activo
        and usuario.activo
        and is_admin(usuario)
        and count_active_admins(session) <= 1
    ):
        raise HTTPException(status_code=400, detail="No se puede desactivar al último administrador activo")
    usuario.activo = payload.activo
    usuario.updated_at = utc_now()
    session.add(usuario)
    session.commit()
    session.refresh(usuario)
    estado = "activado" if usuario.activo else "desactivado"
    return {"message": f"Usuario {estado} exitosamente", "usuario": UsuarioOut.model_validate(usuario)}


@router.patch("/{usuario_id}/password")
def reset_password(usuario_id: int, payload: PasswordReset, session=Depends(get_session), admin: Usuario = Depends(require_admin)):
    usuario = _get_usuario(session, usuario_id)
    usuario.password = get_password_hash(payload.password)
    usuario.updated_at = utc_now()
    session.add(usuario)
    session.commit()
    return {"message": "Contraseña actualizada exitosamente"}


@router.delete("/{usuario_id}")
def delete_usuario(usuario_id: int, session=Depends(get_session), admin: Usuario = Depends(require_admin)):
    usuario = _get_usuario(session, usuario_id)
    if usuario.id == admin.id:
        raise HTTPException(status_code=400, detail="No puedes eliminar tu propia cuenta")
    if is_admin(usuario) and _count_admins(session) <= 1:
        raise HTTPException(status_code=400, detail="No se puede eliminar al último administrador")
    session.exec(delete(ConfiguracionNotificaciones).where(ConfiguracionNotificaciones.usuario_id == usuario.id))
    session.exec(delete(Notificacion).where(Notificacion.usuario_id == usuario.id))
    session.exec(delete(Nota).where(Nota.usuario_id == usuario.id))
    session.delete(usuario)
    session.commit()
    return {"message": "Usuario eliminado exitosamente"}
