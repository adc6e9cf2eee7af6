from datetime import date, timedelta
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query
from pydantic import BaseModel, Field, field_validator
from sqlalchemy import func
from sqlmodel import select

from ..db import get_session
from ..models import Evaluacion, EvaluacionBase, Materia, Nota, TipoEvaluacionEnum, Usuario
from ..security import get_current_user, require_profesor
from ..services import notifications
from ..utils.academic_access import ensure_can_read_notas, require_active_materia
from ..utils.filters import apply_filters, eq, search_any, since, until
from ..utils.pagination import PageParams, page_params, paginate
from ..utils.sqlmodel_helpers import apply_partial_update
from ..utils.validators import normalize_optional_hora, validate_url


router = APIRouter(prefix="/api/evaluaciones", tags=["evaluaciones"])

NOTA_APROBACION = 6


class EvaluacionInput(EvaluacionBase, table=False):
    @field_validator("hora_inicio", "hora_fin")
    @classmethod
    def _validate_hora(cls, value: Optional[str]) -> Optional[str]:
        return normalize_optional_hora(value)

    @field_validator("link_evaluacion")
    @classmethod
    def _validate_link(cls, value: Optional[str]) -> Optional[str]:
        return validate_url(value)


class EvaluacionUpdate(BaseModel):
    materia_id: Optional[int] = None
    titulo: Optional[str] = Field(default=None, min_length=1, max_length=200)
    descripcion: Optional[str] = None
    tipo_evaluacion: Optional[TipoEvaluacionEnum] = None
    fecha_evaluacion: Optional[date] = None
    hora_inicio: Optional[str] = None
    hora_fin: Optional[str] = None
    peso: Optional[float] = Field(default=None, ge=0, le=1)
    link_evaluacion: Optional[str] = None

    @field_validator("hora_inicio", "hora_fin")
    @classmethod
    def _validate_hora(cls, value: Optional[str]) -> Optional[str]:
        return normalize_optional_hora(value)

    @field_validator("link_evaluacion")
    @classmethod
    def _validate_link(cls, value: Optional[str]) -> Optional[str]:
        return validate_url(value)


class NotaInput(BaseModel):
    usuario_id: int
    nota: float = Field(ge=0, le=10)
    comentarios: Optional[str] = None


class NotaUpdate(BaseModel):
    nota: Optional[float] = Field(default=None, ge=0, le=10)
    comentarios: Optional[str] = None


def _notas_aggregate():
    return (
        select(
            Nota.evaluacion_id.label("evaluacion_id"),
            func.count(Nota.id).label("total_notas"),
            func.avg(Nota.nota).label("promedio_notas"),
        )
        .group_by(Nota.evaluacion_id)
        .subquery()
    )


def joined_evaluaciones_statement():
    notas = _notas_aggregate()
    return (
        select(Evaluacion, Materia, notas.c.total_notas, notas.c.promedio_notas)
        .join(Materia, Materia.id == Evaluacion.materia_id)
        .outerjoin(notas, notas.c.evaluacion_id == Evaluacion.id)
    )


def _round(value: Optional[float]) -> Optional[float]:
    return round(float(value), 2) if value is not None else None


def evaluacion_row(evaluacion: Evaluacion, materia: Materia, total_notas: Optional[int] = 0, promedio: Optional[float] = None) -> Dict[str, Any]:
    row = evaluacion.model_dump(mode="json")
    row.update(
        materia_nombre=materia.nombre,
        materia_codigo=materia.codigo,
        total_notas=total_notas or 0,
        promedio_notas=_round(promedio),
    )
    return row


def load_evaluaciones(session, *conditions, limit: Optional[int] = None) -> List[Dict[str, Any]]:
    statement = apply_filters(
        joined_evaluaciones_statement(),
        Evaluacion.activo == True,  # noqa: E712
        *conditions,
    ).order_by(Evaluacion.fecha_evaluacion, Evaluacion.id)
    if limit is not None:
        statement = statement.limit(limit)
    return [evaluacion_row(*row) for row in session.exec(statement).all()]


def _get_evaluacion(session, evaluacion_id: int) -> Evaluacion:
    evaluacion = session.get(Evaluacion, evaluacion_id)
    if not evaluacion or not evaluacion.activo:
        raise HTTPException(status_code=404, detail="Evaluación no encontrada")
    return evaluacion


def _get_nota(session, evaluacion_id: int, nota_id: int) -> Nota:
    nota = session.get(Nota, nota_id)
    if not nota or nota.evaluacion_id != evaluacion_id:
        raise HTTPException(status_code=404, detail="Nota no encontrada")
    return nota


def _nota_row(nota: Nota, usuario: Optional[Usuario]) -> Dict[str, Any]:
    row = nota.model_dump(mode="json")
    if usuario is not None:
        row.update(usuario_nombre=usuario.nombre, usuario_apellido=usuario.apellido, usuario_email=usuario.email)
    return row


@router.get("/")
def list_evaluaciones(
    materia_id: Optional[int] = None,
    tipo_evaluacion: Optional[TipoEvaluacionEnum] = None,
    fecha_desde: Optional[date] = None,
    fecha_hasta: Optional[date] = None,
    params: PageParams = Depends(page_params(20)),
    session=Depends(get_session),
    user: Usuario = Depends(get_current_user),
):
    statement = apply_filters(
        joined_evaluaciones_statement(),
        Evaluacion.activo == True,  # noqa: E712
        eq(Evaluacion.materia_id, materia_id),
        eq(Evaluacion.tipo_evaluacion, tipo_evaluacion),
        since(Evaluacion.fecha_evaluacion, fecha_desde),
        until(Evaluacion.fecha_evaluacion, fecha_hasta),
    ).order_by(Evaluacion.fecha_evaluacion, Evaluacion.id)
    rows, pagination = paginate(session, statement, params)
    return {"evaluaciones": [evaluacion_row(*row) for row in rows], "pagination": pagination}


@router.get("/proximas")
def proximas_evaluaciones(
    dias: int = Query(7, ge=0, le=365),
    session=Depends(get_session),
    user: Usuario = Depends(get_current_user),
):
    today = date.today()
    rows = load_evaluaciones(
        session,
        Evaluacion.fecha_evaluacion >= today,
        Evaluacion.fecha_evaluacion <= today + timedelta(days=dias),
    )
    return {"dias": dias, "evaluaciones": rows}


@router.get("/count")
def count_evaluaciones(
    materia_id: Optional[int] = None,
    tipo_evaluacion: Optional[TipoEvaluacionEnum] = None,
    session=Depends(get_session),
    user: Usuario = Depends(get_current_user),
):
    statement = apply_filters(
        select(func.count(Evaluacion.id)),
        Evaluacion.activo == True,  # noqa: E712
        eq(Evaluacion.materia_id, materia_id),
        eq(Evaluacion.tipo_evaluacion, tipo_evaluacion),
    )
    return {"total": session.exec(statement).one()}


@router.get("/search/{q}")
def search_evaluaciones(q: str, session=Depends(get_session), user: Usuario = Depends(get_current_user)):
    if not q.strip():
        return {"evaluaciones": []}
    return {"evaluaciones": load_evaluaciones(session, search_any(q, Evaluacion.titulo, Evaluacion.descripcion), limit=20)}


@router.get("/stats")
def evaluaciones_stats(session=Depends(get_session), user: Usuario = Depends(get_current_user)):
    activas = Evaluacion.activo == True  # noqa: E712
    por_tipo = {tipo.value: 0 for tipo in TipoEvaluacionEnum}
    for tipo, count in session.exec(
        select(Evaluacion.tipo_evaluacion, func.count(Evaluacion.id)).where(activas).group_by(Evaluacion.tipo_evaluacion)
    ).all():
        por_tipo[TipoEvaluacionEnum(tipo).value] = count
    today = date.today()
    proximas = session.exec(
        select(func.count(Evaluacion.id)).where(
            activas,
            Evaluacion.fecha_evaluacion >= today,
            Evaluacion.fecha_evaluacion <= today + timedelta(days=7),
        )
    ).one()
    promedio = session.exec(
        select(func.avg(Nota.nota)).join(Evaluacion, Evaluacion.id == Nota.evaluacion_id).where(activas)
    ).one()
    return {
        "total": sum(por_tipo.values()),
        "por_tipo": por_tipo,
        "proximas_7_dias": proximas,
        "promedio_general": _round(promedio),
    }


@router.get("/usuario/{usuario_id}/notas")
def notas_de_usuario(usuario_id: int, session=Depends(get_session), user: Usuario = Depends(get_current_user)):
    ensure_can_read_notas(user, usuario_id)
    if not session.get(Usuario, usuario_id):
        raise HTTPException(status_code=404, detail="Usuario no encontrado")
    rows = session.exec(
        select(Nota, Evaluacion, Materia)
        .join(Evaluacion, Evaluacion.id == Nota.evaluacion_id)
        .join(Materia, Materia.id == Evaluacion.materia_id)
        .where(Nota.usuario_id == usuario_id)
        .order_by(Evaluacion.fecha_evaluacion.desc())
    ).all()
    notas = []
    for nota, evaluacion, materia in rows:
        item = nota.model_dump(mode="json")
        item.update(
            evaluacion_titulo=evaluacion.titulo,
            tipo_evaluacion=evaluacion.tipo_evaluacion.value,
            fecha_evaluacion=evaluacion.fecha_evaluacion.isoformat(),
            peso=evaluacion.peso,
            materia_id=materia.id,
            materia_nombre=materia.nombre,
            materia_codigo=materia.codigo,
        )
        notas.append(item)
    valores = [item["nota"] for item in notas]
    aprobadas = sum(1 for valor in valores if valor >= NOTA_APROBACION)
    return {
        "notas": notas,
        "estadisticas": {
            "total_notas": len(valores),
            "notas_aprobadas": aprobadas,
            "promedio": round(sum(valores) / len(valores), 2) if valores else 0,
            "porcentaje_aprobacion": round(aprobadas / len(valores) * 100) if valores else 0,
        },
    }


@router.get("/{evaluacion_id}")
def get_evaluacion(evaluacion_id: int, session=Depends(get_session), user: Usuario = Depends(get_current_user)):
    rows = load_evaluaciones(session, Evaluacion.id == evaluacion_id)
    if not rows:
        raise HTTPException(status_code=404, detail="Evaluación no encontrada")
    notas = session.exec(
        select(Nota, Usuario)
        .join(Usuario, Usuario.id == Nota.usuario_id, isouter=True)
        .where(Nota.evaluacion_id == evaluacion_id)
        .order_by(Usuario.apellido, Usuario.nombre)
    ).all()
    valores = [nota.nota for nota, _ in notas]
    return {
        "evaluacion": rows[0],
        "notas": [_nota_row(nota, usuario) for nota, usuario in notas],
        "estadisticas": {
            "total_notas": len(valores),
            "promedio": round(sum(valores) / len(valores), 2) if valores else None,
            "nota_minima": min(valores) if valores else None,
            "nota_maxima": max(valores) if valores else None,
        },
    }


@router.post("/", status_code=201)
def create_evaluacion(
    payload: EvaluacionInput,
    background_tasks: BackgroundTasks,
    session=Depends(get_session),
    user: Usuario = Depends(require_profesor),
):
    materia = require_active_materia(session, payload.materia_id)
    evaluacion = Evaluacion(**payload.model_dump())
    session.add(evaluacion)
    session.commit()
    session.refresh(evaluacion)

    row = evaluacion_row(evaluacion, materia)
    background_tasks.add_task(notifications.dispatch, user.id, notifications.evaluacion_creada_payload(evaluacion, materia))
    background_tasks.add_task(
        notifications.fan_out_to_subscribers,
        "evaluacion",
        f"Nueva evaluación: {evaluacion.titulo}",
        f"Se ha programado una nueva evaluación en {materia.nombre} para el {evaluacion.fecha_evaluacion.strftime('%d/%m/%Y')}",
        row,
        {"id": materia.id, "nombre": materia.nombre, "codigo": materia.codigo},
    )
    return {"message": "Evaluación creada exitosamente", "evaluacion": row}


@router.put("/{evaluacion_id}")
def update_evaluacion(
    evaluacion_id: int,
    payload: EvaluacionUpdate,
    background_tasks: BackgroundTasks,
    session=Depends(get_session),
    user: Usuario = Depends(require_profesor),
):
    evaluacion = _get_evaluacion(session, evaluacion_id)
    data = payload.model_dump(exclude_unset=True)
    if data.get("materia_id") is not None:
        require_active_materia(session, data["materia_id"])
    cambios = apply_partial_update(evaluacion, data)
    if cambios:
        session.add(evaluacion)
        session.commit()
        session.refresh(evaluacion)
        background_tasks.add_task(
            notifications.dispatch,
            user.id,
            notifications.evaluacion_actualizada_payload(evaluacion, cambios),
        )
    return {
        "message": "Evaluación actualizada exitosamente",
        "evaluacion": load_evaluaciones(session, Evaluacion.id == evaluacion.id)[0],
        "cambios": cambios,
    }


@router.delete("/{evaluacion_id}")
def delete_evaluacion(
    evaluacion_id: int,
    background_tasks: BackgroundTasks,
    session=Depends(get_session),
    user: Usuario = Depends(require_profesor),
):
    evaluacion = _get_evaluacion(session, evaluacion_id)
    total_notas = session.exec(select(func.count(Nota.id)).where(Nota.evaluacion_id == evaluacion_id)).one()
    if total_notas:
        raise HTTPException(status_code=400, detail="No se puede eliminar una evaluación con notas registradas")
    materia = session.get(Materia, evaluacion.materia_id)
    apply_partial_update(evaluacion, {"activo": False})
    session.add(evaluacion)
    session.commit()
    session.refresh(evaluacion)
    background_tasks.add_task(notifications.dispatch, user.id, notifications.evaluacion_eliminada_payload(evaluacion, materia))
    return {"message": "Evaluación eliminada exitosamente"}


@router.post("/{evaluacion_id}/notas", status_code=201)
def create_nota(
    evaluacion_id: int,
    payload: NotaInput,
    background_tasks: BackgroundTasks,
    session=Depends(get_session),
    user: Usuario = Depends(require_profesor),
):
    evaluacion = _get_evaluacion(session, evaluacion_id)
    usuario = session.get(Usuario, payload.usuario_id)
    if not usuario:
        raise HTTPException(status_code=400, detail="Usuario no encontrado")
    existing = session.exec(
        select(Nota).where(Nota.evaluacion_id == evaluacion_id, Nota.usuario_id == payload.usuario_id)
    ).first()
    if existing:
        raise HTTPException(status_code=400, detail="El usuario ya tiene una nota para esta evaluación")
    nota = Nota(evaluacion_id=evaluacion_id, **payload.model_dump())
    session.add(nota)
    session.commit()
    session.refresh(nota)
    background_tasks.add_task(notifications.dispatch, usuario.id, notifications.nota_publicada_payload(evaluacion, nota))
    return {"message": "Nota registrada exitosamente", "nota": _nota_row(nota, usuario)}


@router.put("/{evaluacion_id}/notas/{nota_id}")
def update_nota(
    evaluacion_id: int,
    nota_id: int,
    payload: NotaUpdate,
    background_tasks: BackgroundTasks,
    session=Depends(get_session),
    user: Usuario = Depends(require_profesor),
):
    evaluacion = _get_evaluacion(session, evaluacion_id)
    nota = _get_nota(session, evaluacion_id, nota_id)
    cambios = apply_partial_update(nota, payload.model_dump(exclude_unset=True))
    if cambios:
        session.add(nota)
        session.commit()
        session.refresh(nota)
        if "nota" in cambios:
            background_tasks.add_task(notifications.dispatch, nota.usuario_id, notifications.nota_publicada_payload(evaluacion, nota))
    return {"message": "Nota actualizada exitosamente", "nota": _nota_row(nota, session.get(Usuario, nota.usuario_id)), "cambios": cambios}


@router.delete("/{evaluacion_id}/notas/{nota_id}")
def delete_nota(evaluacion_id: int, nota_id: int, session=Depends(get_session), user: Usuario = Depends(require_profesor)):
    _get_evaluacion(session, evaluacion_id)
    nota = _get_nota(session, evaluacion_id, nota_id)
    session.delete(nota)
    session.commit()
    return {"message": "Nota eliminada exitosamente"}
