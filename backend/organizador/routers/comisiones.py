from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlalchemy import func
from sqlmodel import select

from ..db import get_session
from ..models import Comision, ComisionBase, Horario, Materia, Usuario
from ..security import get_current_user, require_profesor
from ..utils.academic_access import require_active_materia
from ..utils.filters import apply_filters, eq
from ..utils.sqlmodel_helpers import apply_partial_update


router = APIRouter(prefix="/api/comisiones", tags=["comisiones"])


class ComisionInput(ComisionBase, table=False):
    pass


class ComisionUpdate(BaseModel):
    nombre: Optional[str] = Field(default=None, min_length=1, max_length=50)
    capacidad: Optional[int] = Field(default=None, ge=1)
    activo: Optional[bool] = None


def _comision_row(comision: Comision, materia: Materia):
    row = comision.model_dump(mode="json")
    row.update(materia_nombre=materia.nombre, materia_codigo=materia.codigo)
    return row


def _get_comision(session, comision_id: int) -> Comision:
    comision = session.get(Comision, comision_id)
    if not comision:
        raise HTTPException(status_code=404, detail="Comisión no encontrada")
    return comision


@router.get("/")
def list_comisiones(
    materia_id: Optional[int] = None,
    activo: Optional[bool] = None,
    session=Depends(get_session),
    user: Usuario = Depends(get_current_user),
):
    statement = apply_filters(
        select(Comision, Materia).join(Materia, Materia.id == Comision.materia_id),
        eq(Comision.materia_id, materia_id),
        eq(Comision.activo, activo),
    ).order_by(Materia.nombre, Comision.nombre)
    return {"comisiones": [_comision_row(*row) for row in session.exec(statement).all()]}


@router.get("/{comision_id}")
def get_comision(comision_id: int, session=Depends(get_session), user: Usuario = Depends(get_current_user)):
    comision = _get_comision(session, comision_id)
    return {"comision": _comision_row(comision, session.get(Materia, comision.materia_id))}


@router.post("/", status_code=201)
def create_comision(payload: ComisionInput, session=Depends(get_session), user: Usuario = Depends(require_profesor)):
    materia = require_active_materia(session, payload.materia_id)
    comision = Comision(**payload.model_dump())
    session.add(comision)
    session.commit()
    session.refresh(comision)
    return {"message": "Comisión creada exitosamente", "comision": _comision_row(comision, materia)}


@router.put("/{comision_id}")
def update_comision(
    comision_id: int,
    payload: ComisionUpdate,
    session=Depends(get_session),
    user: Usuario = Depends(require_profesor),
):
    comision = _get_comision(session, comision_id)
    cambios = apply_partial_update(comision, payload.model_dump(exclude_unset=True))
    if cambios:
        session.add(comision)
        session.commit()
        session.refresh(comision)
    return {
        "message": "Comisión actualizada exitosamente",
        "comision": _comision_row(comision, session.get(Materia, comision.materia_id)),
        "cambios": cambios,
    }


@router.delete("/{comision_id}")
def delete_comision(comision_id: int, session=Depends(get_session), user: Usuario = Depends(require_profesor)):
    comision = _get_comision(session, comision_id)
    horarios = session.exec(
        select(func.count(Horario.id)).where(Horario.comision_id == comision_id, Horario.activo == True)  # noqa: E712
    ).one()
    if horarios:
        raise HTTPException(status_code=400, detail="No se puede eliminar la comisión porque tiene horarios asignados")
    apply_partial_update(comision, {"activo": False})
    session.add(comision)
    session.commit()
    return {"message": "Comisión eliminada exitosamente"}
