from typing import Any, Dict, List, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException
from pydantic import BaseModel, EmailStr, Field
from sqlalchemy import distinct, func
from sqlmodel import select

from ..db import get_session
from ..models import Horario, Materia, Profesor, ProfesorBase, TipoProfesorEnum, Usuario
from ..security import get_current_user, require_profesor
from ..services import notifications
from ..utils.filters import apply_filters, eq, search_any
from ..utils.grouping import group_by_day
from ..utils.pagination import PageParams, page_params, paginate
from ..utils.sqlmodel_helpers import apply_partial_update
from .horarios import load_horarios


router = APIRouter(prefix="/api/profesores", tags=["profesores"])


class ProfesorInput(ProfesorBase, table=False):
    email: EmailStr


class ProfesorUpdate(BaseModel):
    nombre: Optional[str] = Field(default=None, min_length=1, max_length=100)
    apellido: Optional[str] = Field(default=None, min_length=1, max_length=100)
    email: Optional[EmailStr] = None
    tipo: Optional[TipoProfesorEnum] = None
    telefono: Optional[str] = Field(default=None, max_length=30)
    activo: Optional[bool] = None


def _horario_counts(column, label: str):
    return (
        select(column)
        .where(Horario.profesor_id == Profesor.id, Horario.activo == True)  # noqa: E712
        .correlate(Profesor)
        .scalar_subquery()
        .label(label)
    )


def profesores_with_counts_statement():
    return select(
        Profesor,
        _horario_counts(func.count(distinct(Horario.materia_id)), "total_materias"),
        _horario_counts(func.count(Horario.id), "total_horarios"),
    )


def profesor_row(profesor: Profesor, total_materias: int = 0, total_horarios: int = 0) -> Dict[str, Any]:
    row = profesor.model_dump(mode="json")
    row.update(total_materias=total_materias or 0, total_horarios=total_horarios or 0)
    return row


def _minutes(hora: str) -> int:
    horas, minutos = hora.split(":")
    return int(horas) * 60 + int(minutos)


def horas_semanales(horarios: List[Dict[str, Any]]) -> float:
    minutos = sum(_minutes(row["hora_fin"]) - _minutes(row["hora_inicio"]) for row in horarios)
    return round(minutos / 60, 2)


def _get_profesor(session, profesor_id: int) -> Profesor:
    profesor = session.get(Profesor, profesor_id)
    if not profesor:
        raise HTTPException(status_code=404, detail="Profesor no encontrado")
    return profesor


def _ensure_unique_email(session, email: str, exclude_id: Optional[int] = None) -> None:
    statement = select(Profesor).where(Profesor.email == email)
    if exclude_id is not None:
        statement = statement.where(Profesor.id != exclude_id)
    if session.exec(statement).first():
        raise HTTPException(status_code=400, detail="El email ya está registrado")


def _materias_de_profesor(session, profesor_id: int) -> List[Dict[str, Any]]:
    materias = session.exec(
        select(Materia)
        .join(Horario, Horario.materia_id == Materia.id)
        .where(Horario.profesor_id == profesor_id, Horario.activo == True)  # noqa: E712
        .distinct()
        .order_by(Materia.nombre)
    ).all()
    return [materia.model_dump(mode="json") for materia in materias]


@router.get("/")
def list_profesores(
    tipo: Optional[TipoProfesorEnum] = None,
    activo: Optional[bool] = None,
    params: PageParams = Depends(page_params(20)),
    session=Depends(get_session),
    user: Usuario = Depends(get_current_user),
):
    statement = apply_filters(
        profesores_with_counts_statement(),
        eq(Profesor.tipo, tipo),
        eq(Profesor.activo, activo),
    ).order_by(Profesor.apellido, Profesor.nombre)
    rows, pagination = paginate(session, statement, params)
    return {"profesores": [profesor_row(*row) for row in rows], "pagination": pagination}


@router.get("/search/{q}")
def search_profesores(q: str, session=Depends(get_session), user: Usuario = Depends(get_current_user)):
    if not q.strip():
        return {"profesores": []}
    statement = apply_filters(
        profesores_with_counts_statement(),
        Profesor.activo == True,  # noqa: E712
        search_any(q, Profesor.nombre, Profesor.apellido, Profesor.email),
    ).order_by(Profesor.apellido, Profesor.nombre).limit(10)
    return {"profesores": [profesor_row(*row) for row in session.exec(statement).all()]}


@router.get("/{profesor_id}")
def get_profesor(profesor_id: int, session=Depends(get_session), user: Usuario = Depends(get_current_user)):
    profesor = _get_profesor(session, profesor_id)
    horarios = load_horarios(session, Horario.profesor_id == profesor_id)
    materias = _materias_de_profesor(session, profesor_id)
    return {
        "profesor": profesor.model_dump(mode="json"),
        "materias": materias,
        "horarios": group_by_day(horarios),
        "estadisticas": {
            "total_materias": len(materias),
            "total_horarios": len(horarios),
            "horas_semanales": horas_semanales(horarios),
        },
    }


@router.get("/{profesor_id}/horarios")
def profesor_horarios(profesor_id: int, session=Depends(get_session), user: Usuario = Depends(get_current_user)):
    _get_profesor(session, profesor_id)
    return {"horarios": group_by_day(load_horarios(session, Horario.profesor_id == profesor_id))}


@router.get("/{profesor_id}/materias")
def profesor_materias(profesor_id: int, session=Depends(get_session), user: Usuario = Depends(get_current_user)):
    _get_profesor(session, profesor_id)
    return {"materias": _materias_de_profesor(session, profesor_id)}


@router.post("/", status_code=201)
def create_profesor(
    payload: ProfesorInput,
    background_tasks: BackgroundTasks,
    session=Depends(get_session),
    user: Usuario = Depends(require_profesor),
):
    _ensure_unique_email(session, payload.email)
    profesor = Profesor(**payload.model_dump())
    session.add(profesor)
    session.commit()
    session.refresh(profesor)
    background_tasks.add_task(notifications.dispatch, user.id, notifications.profesor_creado_payload(profesor))
    return {"message": "Profesor creado exitosamente", "profesor": profesor_row(profesor)}


@router.put("/{profesor_id}")
def update_profesor(
    profesor_id: int,
    payload: ProfesorUpdate,
    background_tasks: BackgroundTasks,
    session=Depends(get_session),
    user: Usuario = Depends(require_profesor),
):
    profesor = _get_profesor(session, profesor_id)
    data = payload.model_dump(exclude_unset=True)
    if data.get("email"):
        _ensure_unique_email(session, data["email"], exclude_id=profesor_id)
    cambios = apply_partial_update(profesor, data)
    if cambios:
        session.add(profesor)
        session.commit()
        session.refresh(profesor)
        background_tasks.add_task(
            notifications.dispatch,
            user.id,
            notifications.profesor_actualizado_payload(profesor, cambios),
        )
    return {"message": "Profesor actualizado exitosamente", "profesor": profesor.model_dump(mode="json"), "cambios": cambios}


@router.delete("/{profesor_id}")
def delete_profesor(
    profesor_id: int,
    background_tasks: BackgroundTasks,
    session=Depends(get_session),
    user: Usuario = Depends(require_profesor),
):
    profesor = _get_profesor(session, profesor_id)
    horarios = session.exec(
        select(func.count(Horario.id)).where(Horario.profesor_id == profesor_id, Horario.activo == True)  # noqa: E712
    ).one()
    if horarios:
        raise HTTPException(status_code=400, detail="No se puede eliminar el profesor porque tiene horarios asignados")
    apply_partial_update(profesor, {"activo": False})
    session.add(profesor)
    session.commit()
    session.refresh(profesor)
    background_tasks.add_task(notifications.dispatch, user.id, notifications.profesor_eliminado_payload(profesor))
    return {"message": "Profesor eliminado exitosamente"}
