from typing import Any, Dict, List, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query
from pydantic import BaseModel, Field, field_validator
from sqlalchemy import distinct, func
from sqlmodel import select

from ..db import get_session
from ..models import Contenido, ContenidoBase, Materia, TipoContenidoEnum, Usuario
from ..security import get_current_user, require_profesor
from ..services import notifications
from ..utils.academic_access import get_materia_or_404, require_active_materia
from ..utils.filters import apply_filters, eq, search_any
from ..utils.grouping import group_by_week
from ..utils.pagination import PageParams, page_params, paginate
from ..utils.sqlmodel_helpers import apply_partial_update
from ..utils.validators import validate_url
from ..utils.weeks import current_academic_week


router = APIRouter(prefix="/api/contenidos", tags=["contenidos"])


class ContenidoInput(ContenidoBase, table=False):
    @field_validator("link_contenido")
    @classmethod
    def _validate_link(cls, value: Optional[str]) -> Optional[str]:
        return validate_url(value)


class ContenidoUpdate(BaseModel):
    materia_id: Optional[int] = None
    titulo: Optional[str] = Field(default=None, min_length=1, max_length=200)
    descripcion: Optional[str] = None
    semana: Optional[int] = Field(default=None, ge=1)
    orden: Optional[int] = None
    tipo_contenido: Optional[TipoContenidoEnum] = None
    link_contenido: Optional[str] = None
    archivo_adjunto: Optional[str] = None

    @field_validator("link_contenido")
    @classmethod
    def _validate_link(cls, value: Optional[str]) -> Optional[str]:
        return validate_url(value)


def joined_contenidos_statement():
    return select(Contenido, Materia).join(Materia, Materia.id == Contenido.materia_id)


def contenido_row(contenido: Contenido, materia: Materia) -> Dict[str, Any]:
    row = contenido.model_dump(mode="json")
    row.update(materia_nombre=materia.nombre, materia_codigo=materia.codigo)
    return row


def _ordered(statement):
    return statement.order_by(Contenido.semana.desc(), Contenido.orden, Contenido.created_at.desc())


def load_contenidos(session, *conditions, by_week: bool = False) -> List[Dict[str, Any]]:
    statement = apply_filters(joined_contenidos_statement(), Contenido.activo == True, *conditions)  # noqa: E712
    if by_week:
        statement = statement.order_by(Contenido.semana, Contenido.orden, Contenido.id)
    else:
        statement = _ordered(statement)
    return [contenido_row(*row) for row in session.exec(statement).all()]


def _get_contenido(session, contenido_id: int) -> Contenido:
    contenido = session.get(Contenido, contenido_id)
    if not contenido or not contenido.activo:
        raise HTTPException(status_code=404, detail="Contenido no encontrado")
    return contenido


@router.get("/")
def list_contenidos(
    materia_id: Optional[int] = None,
    semana: Optional[int] = Query(None, ge=1),
    tipo_contenido: Optional[TipoContenidoEnum] = None,
    params: PageParams = Depends(page_params(20)),
    session=Depends(get_session),
    user: Usuario = Depends(get_current_user),
):
    statement = _ordered(
        apply_filters(
            joined_contenidos_statement(),
            Contenido.activo == True,  # noqa: E712
            eq(Contenido.materia_id, materia_id),
            eq(Contenido.semana, semana),
            eq(Contenido.tipo_contenido, tipo_contenido),
        )
    )
    rows, pagination = paginate(session, statement, params)
    return {"contenidos": [contenido_row(*row) for row in rows], "pagination": pagination}


@router.get("/por-semana")
def contenidos_por_semana(
    materia_id: Optional[int] = None,
    tipo_contenido: Optional[TipoContenidoEnum] = None,
    session=Depends(get_session),
    user: Usuario = Depends(get_current_user),
):
    rows = load_contenidos(
        session,
        eq(Contenido.materia_id, materia_id),
        eq(Contenido.tipo_contenido, tipo_contenido),
        by_week=True,
    )
    return {"semanas": group_by_week(rows)}


@router.get("/actual")
def contenidos_semana_actual(session=Depends(get_session), user: Usuario = Depends(get_current_user)):
    semana = current_academic_week()
    return {"semana_actual": semana, "contenidos": load_contenidos(session, Contenido.semana == semana)}


@router.get("/count")
def count_contenidos(
    materia_id: Optional[int] = None,
    semana: Optional[int] = Query(None, ge=1),
    tipo_contenido: Optional[TipoContenidoEnum] = None,
    session=Depends(get_session),
    user: Usuario = Depends(get_current_user),
):
    statement = apply_filters(
        select(func.count(Contenido.id)),
        Contenido.activo == True,  # noqa: E712
        eq(Contenido.materia_id, materia_id),
        eq(Contenido.semana, semana),
        eq(Contenido.tipo_contenido, tipo_contenido),
    )
    return {"total": session.exec(statement).one()}


@router.get("/search/{q}")
def search_contenidos(q: str, session=Depends(get_session), user: Usuario = Depends(get_current_user)):
    if not q.strip():
        return {"contenidos": []}
    statement = _ordered(
        apply_filters(
            joined_contenidos_statement(),
            Contenido.activo == True,  # noqa: E712
            search_any(q, Contenido.titulo, Contenido.descripcion),
        )
    ).limit(20)
    return {"contenidos": [contenido_row(*row) for row in session.exec(statement).all()]}


@router.get("/stats/overview")
def contenidos_stats(session=Depends(get_session), user: Usuario = Depends(get_current_user)):
    activos = Contenido.activo == True  # noqa: E712
    por_tipo = {tipo.value: 0 for tipo in TipoContenidoEnum}
    rows = session.exec(
        select(Contenido.tipo_contenido, func.count(Contenido.id)).where(activos).group_by(Contenido.tipo_contenido)
    ).all()
    for tipo, count in rows:
        por_tipo[TipoContenidoEnum(tipo).value] = count
    return {
        "total": sum(por_tipo.values()),
        "por_tipo": por_tipo,
        "semanas_con_contenido": session.exec(select(func.count(distinct(Contenido.semana))).where(activos)).one(),
        "materias_con_contenido": session.exec(select(func.count(distinct(Contenido.materia_id))).where(activos)).one(),
    }


@router.get("/materia/{materia_id}")
def contenidos_por_materia(materia_id: int, session=Depends(get_session), user: Usuario = Depends(get_current_user)):
    materia = get_materia_or_404(session, materia_id)
    rows = load_contenidos(session, Contenido.materia_id == materia.id, by_week=True)
    return {"materia": {"id": materia.id, "nombre": materia.nombre, "codigo": materia.codigo}, "semanas": group_by_week(rows)}


@router.get("/{contenido_id}")
def get_contenido(contenido_id: int, session=Depends(get_session), user: Usuario = Depends(get_current_user)):
    rows = load_contenidos(session, Contenido.id == contenido_id)
    if not rows:
        raise HTTPException(status_code=404, detail="Contenido no encontrado")
    return {"contenido": rows[0]}


@router.post("/", status_code=201)
def create_contenido(
    payload: ContenidoInput,
    background_tasks: BackgroundTasks,
    session=Depends(get_session),
    user: Usuario = Depends(require_profesor),
):
    materia = require_active_materia(session, payload.materia_id)
    contenido = Contenido(**payload.model_dump())
    session.add(contenido)
    session.commit()
    session.refresh(contenido)

    row = contenido_row(contenido, materia)
    background_tasks.add_task(notifications.dispatch, user.id, notifications.contenido_creado_payload(contenido, materia))
    background_tasks.add_task(
        notifications.fan_out_to_subscribers,
        "contenido",
        f"Nuevo contenido: {contenido.titulo}",
        f"Se ha publicado nuevo contenido en {materia.nombre} para la semana {contenido.semana}",
        row,
        {"id": materia.id, "nombre": materia.nombre, "codigo": materia.codigo},
    )
    return {"message": "Contenido creado exitosamente", "contenido": row}


@router.put("/{contenido_id}")
def update_contenido(
    contenido_id: int,
    payload: ContenidoUpdate,
    background_tasks: BackgroundTasks,
    session=Depends(get_session),
    user: Usuario = Depends(require_profesor),
):
    contenido = _get_contenido(session, contenido_id)
    data = payload.model_dump(exclude_unset=True)
    if "materia_id" in data:
        require_active_materia(session, data["materia_id"])
    cambios = apply_partial_update(contenido, data)
    if cambios:
        session.add(contenido)
        session.commit()
        session.refresh(contenido)
        background_tasks.add_task(
            notifications.dispatch,
            user.id,
            notifications.contenido_actualizado_payload(contenido, cambios),
        )
    materia = session.get(Materia, contenido.materia_id)
    return {"message": "Contenido actualizado exitosamente", "contenido": contenido_row(contenido, materia), "cambios": cambios}


@router.delete("/{contenido_id}")
def delete_contenido(
    contenido_id: int,
    background_tasks: BackgroundTasks,
    session=Depends(get_session),
    user: Usuario = Depends(require_profesor),
):
    contenido = _get_contenido(session, contenido_id)
    materia = session.get(Materia, contenido.materia_id)
    apply_partial_update(contenido, {"activo": False})
    session.add(contenido)
    session.commit()
    session.refresh(contenido)
    background_tasks.add_task(notifications.dispatch, user.id, notifications.contenido_eliminado_payload(contenido, materia))
    return {"message": "Contenido eliminado exitosamente"}
