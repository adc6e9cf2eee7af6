from datetime import datetime, timezone
from typing import Any, Dict, List, Literal, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pika.exceptions import AMQPError
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy import func, update
from sqlmodel import select

from ..db import get_session
from ..models import Notificacion, Usuario
from ..security import get_current_user, require_admin
from ..services import notifications
from ..utils.filters import apply_filters, eq
from ..utils.pagination import PageParams, page_params, paginate


router = APIRouter(prefix="/api/notificaciones", tags=["notificaciones"])


class NotificacionOut(BaseModel):
    id: int
    usuario_id: int
    tipo: str
    titulo: str
    mensaje: str
    data: Optional[Dict[str, Any]] = None
    leida: bool
    enviada_email: bool
    created_at: datetime
    model_config = ConfigDict(from_attributes=True)


class SendNotificationRequest(BaseModel):
    userIds: List[int] = Field(min_length=1)
    title: str = Field(min_length=1, max_length=200)
    message: str = Field(min_length=1, max_length=2000)
    type: Literal["info", "success", "warning", "error"] = "info"
    data: Optional[Dict[str, Any]] = None


class SystemEventRequest(BaseModel):
    eventType: str = Field(min_length=1, max_length=100)
    data: Optional[Dict[str, Any]] = None


def get_owned_notification(session, notificacion_id: int, user: Usuario) -> Notificacion:
    obj = session.get(Notificacion, notificacion_id)
    if not obj or obj.usuario_id != user.id:
        raise HTTPException(status_code=404, detail="Notificación no encontrada")
    return obj


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


@router.get("/")
def list_notificaciones(
    leida: Optional[bool] = None,
    params: PageParams = Depends(page_params(20)),
    session=Depends(get_session),
    user: Usuario = Depends(get_current_user),
):
    statement = apply_filters(
        select(Notificacion),
        eq(Notificacion.usuario_id, user.id),
        eq(Notificacion.leida, leida),
    ).order_by(Notificacion.created_at.desc(), Notificacion.id.desc())
    rows, pagination = paginate(session, statement, params)
    return {
        "notificaciones": [NotificacionOut.model_validate(row) for row in rows],
        "pagination": pagination,
    }


@router.get("/check")
def check_notificaciones(
    last_check: Optional[datetime] = Query(None, alias="lastCheck"),
    session=Depends(get_session),
    user: Usuario = Depends(get_current_user),
):
    statement = select(Notificacion).where(Notificacion.usuario_id == user.id, Notificacion.leida == False)  # noqa: E712
    if last_check is not None:
        statement = statement.where(Notificacion.created_at > _as_utc(last_check))
    rows = session.exec(statement.order_by(Notificacion.created_at.desc())).all()
    return {
        "notifications": [NotificacionOut.model_validate(row) for row in rows],
        "hasNew": bool(rows),
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


@router.get("/stats")
def notificaciones_stats(session=Depends(get_session), user: Usuario = Depends(get_current_user)):
    rows = session.exec(
        select(Notificacion.tipo, Notificacion.leida, func.count(Notificacion.id))
        .where(Notificacion.usuario_id == user.id)
        .group_by(Notificacion.tipo, Notificacion.leida)
    ).all()
    by_type: Dict[str, int] = {}
    unread = 0
    total = 0
    for tipo, leida, count in rows:
        by_type[tipo] = by_type.get(tipo, 0) + count
        total += count
        if not leida:
            unread += count
    return {"total": total, "unread": unread, "read": total - unread, "byType": by_type}


@router.put("/read-all")
def mark_all_read(session=Depends(get_session), user: Usuario = Depends(get_current_user)):
    result = session.exec(
        update(Notificacion)
        .where(Notificacion.usuario_id == user.id, Notificacion.leida == False)  # noqa: E712
        .values(leida=True)
    )
    session.commit()
    return {"message": "Todas las notificaciones marcadas como leídas", "updated": result.rowcount}


@router.put("/{notificacion_id}/read")
def mark_read(notificacion_id: int, session=Depends(get_session), user: Usuario = Depends(get_current_user)):
    obj = get_owned_notification(session, notificacion_id, user)
    if not obj.leida:
        obj.leida = True
        session.add(obj)
        session.commit()
        session.refresh(obj)
    return {"message": "Notificación marcada como leída", "notificacion": NotificacionOut.model_validate(obj)}


@router.delete("/{notificacion_id}")
def delete_notificacion(notificacion_id: int, session=Depends(get_session), user: Usuario = Depends(get_current_user)):
    obj = get_owned_notification(session, notificacion_id, user)
    session.delete(obj)
    session.commit()
    return {"message": "Notificación eliminada"}


@router.post("/test")
def send_test_notification(user: Usuario = Depends(get_current_user)):
    payload = notifications.direct_payload(
        "Notificación de prueba",
        "Esta es una notificación de prueba del sistema",
        data={"test": True},
    )
    message = notifications.dispatch(user.id, payload)
    if message is None:
        raise HTTPException(status_code=503, detail="No se pudo enviar la notificación")
    return {"message": "Notificación de prueba enviada", "notification": message}


@router.post("/send")
def send_notifications(payload: SendNotificationRequest, user: Usuario = Depends(require_admin)):
    body = notifications.direct_payload(payload.title, payload.message, payload.type, payload.data)
    results = notifications.send_bulk(payload.userIds, body)
    return {
        "message": f"Notificaciones enviadas: {len(results['successful'])} exitosas, {len(results['failed'])} fallidas",
        "results": results,
    }


@router.post("/system-event")
def send_system_event(payload: SystemEventRequest, user: Usuario = Depends(require_admin)):
    try:
        event = notifications.send_system_event(payload.eventType, payload.data)
    except AMQPError:
        raise HTTPException(status_code=503, detail="No se pudo publicar el evento del sistema")
    return {"message": "Evento del sistema enviado", "event": event}
