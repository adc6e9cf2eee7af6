from datetime import date, datetime, timedelta

from fastapi import APIRouter, Depends, Query
from sqlalchemy import func
from sqlmodel import select

from ..db import get_session
from ..models import Contenido, Evaluacion, Horario, Materia, Profesor, Usuario, utc_now
from ..security import get_current_user
from .evaluaciones import load_evaluaciones
from .horarios import load_horarios


router = APIRouter(prefix="/api/dashboard", tags=["dashboard"])


def _recent(session, model, tipo: str, desde: datetime, limit: int):
    rows = session.exec(
        select(model, Materia)
        .join(Materia, Materia.id == model.materia_id)
        .where(model.activo == True, model.created_at >= desde)  # noqa: E712
        .order_by(model.created_at.desc())
        .limit(limit)
    ).all()
    return [
        {
            "tipo": tipo,
            "id": item.id,
            "titulo": item.titulo,
            "materia_nombre": materia.nombre,
            "created_at": item.created_at.isoformat(),
        }
        for item, materia in rows
    ]


@router.get("/activity")
def recent_activity(
    limit: int = Query(10, ge=1, le=100),
    session=Depends(get_session),
    user: Usuario = Depends(get_current_user),
):
    desde = utc_now() - timedelta(days=7)
    actividad = _recent(session, Evaluacion, "evaluacion", desde, limit) + _recent(session, Contenido, "contenido", desde, limit)
    actividad.sort(key=lambda item: item["created_at"], reverse=True)
    return {"actividad": actividad[:limit]}


@router.get("/upcoming")
def upcoming(
    limit: int = Query(5, ge=1, le=50),
    session=Depends(get_session),
    user: Usuario = Depends(get_current_user),
):
    today = date.today()
    return {
        "evaluaciones": load_evaluaciones(session, Evaluacion.fecha_evaluacion >= today, limit=limit),
        "horarios_hoy": load_horarios(session, Horario.dia_semana == today.isoweekday()),
    }


@router.get("/stats")
def dashboard_stats(session=Depends(get_session), user: Usuario = Depends(get_current_user)):
    def activos(model) -> int:
        return session.exec(select(func.count(model.id)).where(model.activo == True)).one()  # noqa: E712

    return {
        "materias": activos(Materia),
        "horarios": activos(Horario),
        "contenidos": activos(Contenido),
        "evaluaciones": activos(Evaluacion),
        "profesores": activos(Profesor),
    }
