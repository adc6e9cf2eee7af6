from typing import Any, Dict, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlalchemy import distinct, func
from sqlmodel import select

from ..db import get_session
from ..models import Contenido, Evaluacion, Horario, Materia, MateriaBase, ObjetivoMateria, RecursoMateria, Usuario
from ..security import get_current_user, require_profesor
from ..services import notifications
from ..utils.academic_access import get_materia_or_404
from ..utils.filters import CREDIT_RANGES, apply_filters, contains, creditos_condition, eq, search_any
from ..utils.grouping import group_by_day, group_by_week
from ..utils.pagination import PageParams, page_params, paginate
from ..utils.sqlmodel_helpers import apply_partial_update
from ..utils.weeks import week_window
from .contenidos import load_contenidos
from .evaluaciones import load_evaluaciones
from .horarios import load_horarios


router = APIRouter(prefix="/api/materias", tags=["materias"])


class MateriaInput(MateriaBase, table=False):
    pass


class MateriaUpdate(BaseModel):
    nombre: Optional[str] = Field(default=None, min_length=1, max_length=150)
    codigo: Optional[str] = Field(default=None, min_length=1, max_length=20)
    descripcion: Optional[str] = None
    creditos: Optional[int] = Field(default=None, ge=0)
    activo: Optional[bool] = None


def _active_children(model):
    return (
        select(func.count(model.id))
        .where(model.materia_id == Materia.id, model.activo == True)  # noqa: E712
        .correlate(Materia)
        .scalar_subquery()
    )


def materias_with_counts_statement():
    return select(
        Materia,
        _active_children(Horario).label("total_horarios"),
        _active_children(Contenido).label("total_contenidos"),
        _active_children(Evaluacion).label("total_evaluaciones"),
    )


def materia_row(materia: Materia, total_horarios: int = 0, total_contenidos: int = 0, total_evaluaciones: int = 0) -> Dict[str, Any]:
    row = materia.model_dump(mode="json")
    row.update(
        total_horarios=total_horarios or 0,
        total_contenidos=total_contenidos or 0,
        total_evaluaciones=total_evaluaciones or 0,
    )
    return row


def _ensure_unique_codigo(session, codigo: str, exclude_id: Optional[int] = None) -> None:
    statement = select(Materia).where(Materia.codigo == codigo)
    if exclude_id is not None:
        statement = statement.where(Materia.id != exclude_id)
    if session.exec(statement).first():
        raise HTTPException(status_code=400, detail="El código ya está registrado")


def _count(session, model, *conditions) -> int:
    return session.exec(apply_filters(select(func.count(model.id)), *conditions)).one()


def _cronograma(session, materia_id: int):
    semanas = group_by_week(load_contenidos(session, Contenido.materia_id == materia_id, by_week=True))
    fechas = session.exec(
        select(Evaluacion.fecha_evaluacion).where(
            Evaluacion.materia_id == materia_id,
            Evaluacion.activo == True,  # noqa: E712
        )
    ).all()
    for semana in semanas:
        inicio, fin = week_window(semana["semana"])
        semana["total_evaluaciones_semana"] = sum(1 for fecha in fechas if inicio <= fecha <= fin)
    return semanas


@router.get("/")
def list_materias(
    activo: Optional[bool] = None,
    creditos: Optional[str] = None,
    nombre: Optional[str] = None,
    codigo: Optional[str] = None,
    params: PageParams = Depends(page_params(20)),
    session=Depends(get_session),
    user: Usuario = Depends(get_current_user),
):
    statement = apply_filters(
        materias_with_counts_statement(),
        eq(Materia.activo, activo),
        creditos_condition(Materia.creditos, creditos),
        contains(Materia.nombre, nombre),
        contains(Materia.codigo, codigo),
    ).order_by(Materia.nombre)
    rows, pagination = paginate(session, statement, params)
    return {"materias": [materia_row(*row) for row in rows], "pagination": pagination}


@router.get("/count")
def count_materias(
    activo: Optional[bool] = None,
    creditos: Optional[str] = None,
    session=Depends(get_session),
    user: Usuario = Depends(get_current_user),
):
    return {"total": _count(session, Materia, eq(Materia.activo, activo), creditos_condition(Materia.creditos, creditos))}


@router.get("/stats")
def materias_stats(session=Depends(get_session), user: Usuario = Depends(get_current_user)):
    por_creditos = {
        rango: _count(session, Materia, Materia.activo == True, creditos_condition(Materia.creditos, rango))  # noqa: E712
        for rango in [*CREDIT_RANGES, "10+"]
    }
    activas = _count(session, Materia, Materia.activo == True)  # noqa: E712
    total = _count(session, Materia)
    return {
        "total": total,
        "activas": activas,
        "inactivas": total - activas,
        "por_creditos": por_creditos,
    }


@router.get("/search/{q}")
def search_materias(q: str, session=Depends(get_session), user: Usuario = Depends(get_current_user)):
    if not q.strip():
        return {"materias": []}
    statement = apply_filters(
        materias_with_counts_statement(),
        Materia.activo == True,  # noqa: E712
        search_any(q, Materia.nombre, Materia.codigo, Materia.descripcion),
    ).order_by(Materia.nombre).limit(10)
    return {"materias": [materia_row(*row) for row in session.exec(statement).all()]}


@router.get("/{materia_id}")
def get_materia(materia_id: int, session=Depends(get_session), user: Usuario = Depends(get_current_user)):
    materia = get_materia_or_404(session, materia_id)
    horarios = load_horarios(session, Horario.materia_id == materia_id)
    cronograma = _cronograma(session, materia_id)
    evaluaciones = load_evaluaciones(session, Evaluacion.materia_id == materia_id)
    total_profesores = session.exec(
        select(func.count(distinct(Horario.profesor_id))).where(
            Horario.materia_id == materia_id,
            Horario.activo == True,  # noqa: E712
        )
    ).one()
    return {
        "materia": materia.model_dump(mode="json"),
        "horarios": group_by_day(horarios),
        "cronograma": cronograma,
        "evaluaciones": evaluaciones,
        "estadisticas": {
            "total_horarios": len(horarios),
            "total_contenidos": sum(len(semana["contenidos"]) for semana in cronograma),
            "total_evaluaciones": len(evaluaciones),
            "total_profesores": total_profesores,
        },
    }


@router.get("/{materia_id}/horarios")
def materia_horarios(materia_id: int, session=Depends(get_session), user: Usuario = Depends(get_current_user)):
    get_materia_or_404(session, materia_id)
    return {"horarios": group_by_day(load_horarios(session, Horario.materia_id == materia_id))}


@router.get("/{materia_id}/cronograma")
def materia_cronograma(materia_id: int, session=Depends(get_session), user: Usuario = Depends(get_current_user)):
    get_materia_or_404(session, materia_id)
    return {"cronograma": _cronograma(session, materia_id)}


@router.get("/{materia_id}/evaluaciones")
def materia_evaluaciones(materia_id: int, session=Depends(get_session), user: Usuario = Depends(get_current_user)):
    get_materia_or_404(session, materia_id)
    return {"evaluaciones": load_evaluaciones(session, Evaluacion.materia_id == materia_id)}


@router.get("/{materia_id}/objetivos")
def materia_objetivos(materia_id: int, session=Depends(get_session), user: Usuario = Depends(get_current_user)):
    get_materia_or_404(session, materia_id)
    objetivos = session.exec(
        select(ObjetivoMateria).where(ObjetivoMateria.materia_id == materia_id).order_by(ObjetivoMateria.orden)
    ).all()
    return {"objetivos": [objetivo.model_dump() for objetivo in objetivos]}


@router.get("/{materia_id}/recursos")
def materia_recursos(materia_id: int, session=Depends(get_session), user: Usuario = Depends(get_current_user)):
    get_materia_or_404(session, materia_id)
    recursos = session.exec(
        select(RecursoMateria).where(RecursoMateria.materia_id == materia_id).order_by(RecursoMateria.orden)
    ).all()
    return {"recursos": [recurso.model_dump() for recurso in recursos]}


@router.post("/", status_code=201)
def create_materia(
    payload: MateriaInput,
    background_tasks: BackgroundTasks,
    session=Depends(get_session),
    user: Usuario = Depends(require_profesor),
):
    _ensure_unique_codigo(session, payload.codigo)
    materia = Materia(**payload.model_dump())
    session.add(materia)
    session.commit()
    session.refresh(materia)
    background_tasks.add_task(notifications.dispatch, user.id, notifications.materia_creada_payload(materia))
    return {"message": "Materia creada exitosamente", "materia": materia_row(materia)}


@router.put("/{materia_id}")
def update_materia(
    materia_id: int,
    payload: MateriaUpdate,
    background_tasks: BackgroundTasks,
    session=Depends(get_session),
    user: Usuario = Depends(require_profesor),
):
    materia = get_materia_or_404(session, materia_id)
    data = payload.model_dump(exclude_unset=True)
    if data.get("codigo"):
        _ensure_unique_codigo(session, data["codigo"], exclude_id=materia_id)
    cambios = apply_partial_update(materia, data)
    if cambios:
        session.add(materia)
        session.commit()
        session.refresh(materia)
        background_tasks.add_task(
            notifications.dispatch,
            user.id,
            notifications.materia_actualizada_payload(materia, cambios),
        )
    return {"message": "Materia actualizada exitosamente", "materia": materia.model_dump(mode="json"), "cambios": cambios}


@router.delete("/{materia_id}")
def delete_materia(
    materia_id: int,
    background_tasks: BackgroundTasks,
    session=Depends(get_session),
    user: Usuario = Depends(require_profesor),
):
    materia = get_materia_or_404(session, materia_id)
    dependientes = sum(
        _count(session, model, model.materia_id == materia_id, model.activo == True)  # noqa: E712
        for model in (Horario, Contenido, Evaluacion)
    )
    if dependientes:
        raise HTTPException(
            status_code=400,
            detail="No se puede eliminar la materia porque tiene horarios, contenidos o evaluaciones asociados",
        )
    apply_partial_update(materia, {"activo": False})
    session.add(materia)
    session.commit()
    session.refresh(materia)
    background_tasks.add_task(notifications.dispatch, user.id, notifications.materia_eliminada_payload(materia))
    return {"message": "Materia eliminada exitosamente"}
