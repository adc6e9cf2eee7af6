from typing import Any, Dict, List, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException
from pydantic import field_validator, model_validator
from sqlalchemy import distinct, func
from sqlmodel import select

from ..db import get_session
from ..models import Comision, Horario, HorarioBase, Materia, Profesor, Usuario
from ..security import get_current_user, require_profesor
from ..services import notifications
from ..utils.academic_access import (
    profesor_user_id,
    require_active_materia,
    require_active_profesor,
    require_comision_for_materia,
)
from ..utils.filters import apply_filters, eq
from ..utils.grouping import DIAS_SEMANA, dia_nombre, group_by_day
from ..utils.pagination import PageParams, page_params, paginate
from ..utils.sqlmodel_helpers import apply_partial_update
from ..utils.validators import normalize_hora, validate_url


router = APIRouter(prefix="/api/horarios", tags=["horarios"])


class HorarioInput(HorarioBase, table=False):
    @field_validator("hora_inicio", "hora_fin", mode="before")
    @classmethod
    def _validate_hora(cls, value: Any) -> str:
        if not isinstance(value, str):
            raise ValueError("Formato de hora inválido (HH:MM)")
        return normalize_hora(value)

    @field_validator("link_reunion", "link_grabacion")
    @classmethod
    def _validate_link(cls, value: Optional[str]) -> Optional[str]:
        return validate_url(value)

    @model_validator(mode="after")
    def _validate_range(self):
        if self.hora_fin <= self.hora_inicio:
            raise ValueError("La hora de fin debe ser posterior a la hora de inicio")
        return self


def joined_horarios_statement():
    return (
        select(Horario, Materia, Comision, Profesor)
        .join(Materia, Materia.id == Horario.materia_id)
        .join(Comision, Comision.id == Horario.comision_id)
        .join(Profesor, Profesor.id == Horario.profesor_id)
    )


def horario_row(horario: Horario, materia: Materia, comision: Comision, profesor: Profesor) -> Dict[str, Any]:
    row = horario.model_dump(mode="json")
    row.update(
        materia_nombre=materia.nombre,
        materia_codigo=materia.codigo,
        comision_nombre=comision.nombre,
        profesor_nombre=profesor.nombre,
        profesor_apellido=profesor.apellido,
        profesor_email=profesor.email,
    )
    return row


def load_horarios(session, *conditions, only_active: bool = True) -> List[Dict[str, Any]]:
    statement = apply_filters(
        joined_horarios_statement(),
        Horario.activo == True if only_active else None,  # noqa: E712
        *conditions,
    ).order_by(Horario.dia_semana, Horario.hora_inicio)
    return [horario_row(*row) for row in session.exec(statement).all()]


def find_conflict(session, materia_id: int, dia_semana: int, inicio: str, fin: str, exclude_id: Optional[int] = None) -> Optional[Horario]:
    statement = select(Horario).where(
        Horario.materia_id == materia_id,
        Horario.dia_semana == dia_semana,
        Horario.activo == True,  # noqa: E712
        Horario.hora_inicio < fin,
        Horario.hora_fin > inicio,
    )
    if exclude_id is not None:
        statement = statement.where(Horario.id != exclude_id)
    return session.exec(statement).first()


def _validate_references(session, payload: HorarioInput, exclude_id: Optional[int] = None):
    materia = require_active_materia(session, payload.materia_id)
    require_comision_for_materia(session, payload.comision_id, payload.materia_id)
    profesor = require_active_profesor(session, payload.profesor_id)
    if find_conflict(session, payload.materia_id, payload.dia_semana, payload.hora_inicio, payload.hora_fin, exclude_id):
        raise HTTPException(status_code=400, detail="Conflicto de horarios para esta materia")
    return materia, profesor


def _get_horario(session, horario_id: int) -> Horario:
    horario = session.get(Horario, horario_id)
    if not horario or not horario.activo:
        raise HTTPException(status_code=404, detail="Horario no encontrado")
    return horario


@router.get("/")
def list_horarios(
    dia_semana: Optional[int] = None,
    materia_id: Optional[int] = None,
    profesor_id: Optional[int] = None,
    params: PageParams = Depends(page_params(50)),
    session=Depends(get_session),
    user: Usuario = Depends(get_current_user),
):
    if dia_semana is not None and dia_semana not in DIAS_SEMANA:
        raise HTTPException(status_code=400, detail="Día de la semana inválido")
    statement = apply_filters(
        joined_horarios_statement(),
        Horario.activo == True,  # noqa: E712
        eq(Horario.dia_semana, dia_semana),
        eq(Horario.materia_id, materia_id),
        eq(Horario.profesor_id, profesor_id),
    ).order_by(Horario.dia_semana, Horario.hora_inicio)
    rows, pagination = paginate(session, statement, params)
    return {"horarios": group_by_day(horario_row(*row) for row in rows), "pagination": pagination}


@router.get("/count")
def count_horarios(
    activo: bool = True,
    materia_id: Optional[int] = None,
    profesor_id: Optional[int] = None,
    session=Depends(get_session),
    user: Usuario = Depends(get_current_user),
):
    statement = apply_filters(
        select(func.count(Horario.id)),
        eq(Horario.activo, activo),
        eq(Horario.materia_id, materia_id),
        eq(Horario.profesor_id, profesor_id),
    )
    return {"total": session.exec(statement).one()}


@router.get("/weekly")
def weekly_summary(session=Depends(get_session), user: Usuario = Depends(get_current_user)):
    rows = session.exec(
        select(
            Horario.dia_semana,
            func.count(Horario.id),
            func.count(distinct(Horario.materia_id)),
            func.count(distinct(Horario.profesor_id)),
        )
        .where(Horario.activo == True)  # noqa: E712
        .group_by(Horario.dia_semana)
    ).all()
    by_day = {dia: (total, materias, profesores) for dia, total, materias, profesores in rows}
    semana = []
    for dia, nombre in DIAS_SEMANA.items():
        total, materias, profesores = by_day.get(dia, (0, 0, 0))
        semana.append(
            {
                "dia_semana": dia,
                "dia_nombre": nombre,
                "total_horarios": total,
                "materias_diferentes": materias,
                "profesores_diferentes": profesores,
            }
        )
    return {"semana": semana}


@router.get("/dia/{dia}")
def horarios_por_dia(dia: int, session=Depends(get_session), user: Usuario = Depends(get_current_user)):
    if dia not in DIAS_SEMANA:
        raise HTTPException(status_code=400, detail="Día de la semana inválido")
    return {"dia_semana": dia, "dia_nombre": dia_nombre(dia), "horarios": load_horarios(session, Horario.dia_semana == dia)}


@router.get("/materia/{materia_id}")
def horarios_por_materia(materia_id: int, session=Depends(get_session), user: Usuario = Depends(get_current_user)):
    return {"horarios": group_by_day(load_horarios(session, Horario.materia_id == materia_id))}


@router.get("/profesor/{profesor_id}")
def horarios_por_profesor(profesor_id: int, session=Depends(get_session), user: Usuario = Depends(get_current_user)):
    return {"horarios": group_by_day(load_horarios(session, Horario.profesor_id == profesor_id))}


@router.get("/{horario_id}")
def get_horario(horario_id: int, session=Depends(get_session), user: Usuario = Depends(get_current_user)):
    rows = load_horarios(session, Horario.id == horario_id)
    if not rows:
        raise HTTPException(status_code=404, detail="Horario no encontrado")
    return {"horario": rows[0]}


@router.post("/", status_code=201)
def create_horario(
    payload: HorarioInput,
    background_tasks: BackgroundTasks,
    session=Depends(get_session),
    user: Usuario = Depends(require_profesor),
):
    materia, profesor = _validate_references(session, payload)
    horario = Horario(**payload.model_dump())
    session.add(horario)
    session.commit()
    session.refresh(horario)

    background_tasks.add_task(notifications.dispatch, user.id, notifications.horario_asignado_payload(materia, horario))
    profesor_uid = profesor_user_id(session, profesor)
    if profesor_uid is not None:
        background_tasks.add_task(
            notifications.dispatch,
            profesor_uid,
            notifications.profesor_asignado_payload(profesor, materia, horario),
        )
    return {"message": "Horario creado exitosamente", "horario": load_horarios(session, Horario.id == horario.id)[0]}


@router.put("/{horario_id}")
def update_horario(
    horario_id: int,
    payload: HorarioInput,
    background_tasks: BackgroundTasks,
    session=Depends(get_session),
    user: Usuario = Depends(require_profesor),
):
    horario = _get_horario(session, horario_id)
    materia, _ = _validate_references(session, payload, exclude_id=horario_id)
    cambios = apply_partial_update(horario, payload.model_dump())
    if cambios:
        session.add(horario)
        session.commit()
        session.refresh(horario)
        background_tasks.add_task(
            notifications.dispatch,
            user.id,
            notifications.horario_cambiado_payload(materia, horario, cambios),
        )
    return {
        "message": "Horario actualizado exitosamente",
        "horario": load_horarios(session, Horario.id == horario.id)[0],
        "cambios": cambios,
    }


@router.delete("/{horario_id}")
def delete_horario(horario_id: int, session=Depends(get_session), user: Usuario = Depends(require_profesor)):
    horario = _get_horario(session, horario_id)
    apply_partial_update(horario, {"activo": False})
    session.add(horario)
    session.commit()
    return {"message": "Horario eliminado exitosamente"}
