import csv
import io
from datetime import date, datetime, time, timezone
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import Response
from sqlalchemy import func
from sqlmodel import select

from ..db import get_session
from ..models import Contenido, Evaluacion, Horario, Materia, Notificacion, Profesor, Usuario
from ..security import get_current_user, require_profesor
from ..utils.filters import apply_filters, since, until


router = APIRouter(prefix="/api/estadisticas", tags=["estadisticas"])

EXPORT_ENTITIES = (
    ("materias", Materia),
    ("horarios", Horario),
    ("contenidos", Contenido),
    ("evaluaciones", Evaluacion),
    ("profesores", Profesor),
)


def _count(session, model, *conditions) -> int:
    return session.exec(apply_filters(select(func.count(model.id)), *conditions)).one()


@router.get("/")
def general_stats(session=Depends(get_session), user: Usuario = Depends(get_current_user)):
    counts = {nombre: _count(session, model, model.activo == True) for nombre, model in EXPORT_ENTITIES}  # noqa: E712
    counts["usuarios"] = _count(session, Usuario, Usuario.activo == True)  # noqa: E712
    counts["notificaciones_pendientes"] = _count(
        session,
        Notificacion,
        Notificacion.usuario_id == user.id,
        Notificacion.leida == False,  # noqa: E712
    )
    return counts


@router.get("/export")
def export_stats(
    startDate: Optional[date] = None,
    endDate: Optional[date] = None,
    format: str = Query("json"),
    session=Depends(get_session),
    user: Usuario = Depends(require_profesor),
):
    if format not in ("json", "csv"):
        raise HTTPException(status_code=400, detail="Formato no soportado")

    desde = datetime.combine(startDate, time.min, tzinfo=timezone.utc) if startDate else None
    hasta = datetime.combine(endDate, time.max, tzinfo=timezone.utc) if endDate else None
    filas = []
    for nombre, model in EXPORT_ENTITIES:
        rango = (since(model.created_at, desde), until(model.created_at, hasta))
        activos = _count(session, model, model.activo == True, *rango)  # noqa: E712
        cantidad = _count(session, model, *rango)
        filas.append({"tipo": nombre, "cantidad": cantidad, "activos": activos, "inactivos": cantidad - activos})

    if format == "csv":
        buffer = io.StringIO()
        writer = csv.writer(buffer, lineterminator="\n")
        writer.writerow(["Tipo", "Cantidad", "Activos", "Inactivos"])
        for fila in filas:
            writer.writerow([fila["tipo"], fila["cantidad"], fila["activos"], fila["inactivos"]])
        filename = f"estadisticas_{date.today().isoformat()}.csv"
        return Response(
            content=buffer.getvalue(),
            media_type="text/csv",
            headers={"Content-Disposition": f'attachment; filename="{filename}"'},
        )

    return {
        "periodo": {
            "desde": startDate.isoformat() if startDate else None,
            "hasta": endDate.isoformat() if endDate else None,
        },
        "estadisticas": filas,
    }
