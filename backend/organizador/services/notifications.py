"""Notification payloads and delivery.

Routers build a payload with one of the ``*_payload`` helpers while the
request session is still open and hand it to :func:`dispatch` through
``BackgroundTasks``. Delivery goes through RabbitMQ when it is enabled;
otherwise the message is stored in-process with the same code the worker
uses, so both paths end in a ``notificaciones`` row.
"""

import logging
from typing import Any, Dict, Iterable, List, Optional, Tuple

from pika.exceptions import AMQPError
from sqlmodel import Session, col, select
from starlette.concurrency import run_in_threadpool

from .. import db
from ..config import settings
from ..models import ConfiguracionNotificaciones, Notificacion, Usuario
from ..utils.grouping import dia_nombre
from .amqp import build_system_event, build_user_message, get_amqp_service
from .email import WELCOME_SUBJECT, get_email_service

logger = logging.getLogger(__name__)

NOTIFICATION_TYPES = {"info", "success", "warning", "error"}


def _payload(type_: str, title: str, message: str, **data: Any) -> Dict[str, Any]:
    return {"type": type_, "title": title, "message": message, "data": data}


# Materias

def materia_creada_payload(materia) -> Dict[str, Any]:
    return _payload(
        "materia_creada",
        "Nueva materia creada",
        f'Se ha creado la materia "{materia.nombre}" ({materia.codigo})',
        materiaId=materia.id,
        materiaNombre=materia.nombre,
        materiaCodigo=materia.codigo,
        creditos=materia.creditos,
        action="view_materia",
    )


def materia_actualizada_payload(materia, cambios: Dict[str, Any]) -> Dict[str, Any]:
    return _payload(
        "materia_actualizada",
        "Materia actualizada",
        f'Se han actualizado los datos de la materia "{materia.nombre}"',
        materiaId=materia.id,
        materiaNombre=materia.nombre,
        materiaCodigo=materia.codigo,
        cambios=cambios,
        action="view_materia",
    )


def materia_eliminada_payload(materia) -> Dict[str, Any]:
    return _payload(
        "materia_eliminada",
        "Materia eliminada",
        f'Se ha eliminado la materia "{materia.nombre}" ({materia.codigo})',
        materiaId=materia.id,
        materiaNombre=materia.nombre,
        materiaCodigo=materia.codigo,
        action="view_materias",
    )


# Horarios

def horario_asignado_payload(materia, horario) -> Dict[str, Any]:
    dia = dia_nombre(horario.dia_semana)
    return _payload(
        "horario_asignado",
        "Nuevo horario asignado",
        f'Se ha asignado un horario para "{materia.nombre}": {dia} {horario.hora_inicio} - {horario.hora_fin}',
        materiaId=materia.id,
        materiaNombre=materia.nombre,
        horarioId=horario.id,
        diaSemana=horario.dia_semana,
        diaNombre=dia,
        horaInicio=horario.hora_inicio,
        horaFin=horario.hora_fin,
        tipoClase=horario.tipo_clase,
        action="view_horarios",
    )


def horario_cambiado_payload(materia, horario, cambios: Dict[str, Any]) -> Dict[str, Any]:
    dia = dia_nombre(horario.dia_semana)
    return _payload(
        "horario_cambiado",
        "Horario modificado",
        f'Se han modificado los horarios de "{materia.nombre}": {dia} {horario.hora_inicio} - {horario.hora_fin}',
        materiaId=materia.id,
        materiaNombre=materia.nombre,
        horarioId=horario.id,
        diaSemana=horario.dia_semana,
        diaNombre=dia,
        cambios=cambios,
        action="view_horarios",
    )


# Profesores

def profesor_asignado_payload(profesor, materia, horario) -> Dict[str, Any]:
    dia = dia_nombre(horario.dia_semana)
    return _payload(
        "profesor_asignado",
        "Materia asignada",
        f'Se ha asignado la materia "{materia.nombre}" al profesor {profesor.nombre} {profesor.apellido} - {dia} {horario.hora_inicio}',
        profesorId=profesor.id,
        materiaId=materia.id,
        horarioId=horario.id,
        action="view_horarios",
    )


def profesor_creado_payload(profesor) -> Dict[str, Any]:
    return _payload(
        "profesor_creado",
        "Nuevo profesor registrado",
        f"Se ha registrado el profesor {profesor.nombre} {profesor.apellido} ({profesor.email})",
        profesorId=profesor.id,
        action="view_profesor",
    )


def profesor_actualizado_payload(profesor, cambios: Dict[str, Any]) -> Dict[str, Any]:
    return _payload(
        "profesor_actualizado",
        "Profesor actualizado",
        f"Se han actualizado los datos del profesor {profesor.nombre} {profesor.apellido}",
        profesorId=profesor.id,
        cambios=cambios,
        action="view_profesor",
    )


def profesor_eliminado_payload(profesor) -> Dict[str, Any]:
    return _payload(
        "profesor_eliminado",
        "Profesor eliminado",
        f"Se ha eliminado el profesor {profesor.nombre} {profesor.apellido} ({profesor.email})",
        profesorId=profesor.id,
        action="view_profesores",
    )


# Contenidos

def contenido_creado_payload(contenido, materia) -> Dict[str, Any]:
    return _payload(
        "contenido_creado",
        "Nuevo contenido creado",
        f'Se ha creado el contenido "{contenido.titulo}" para {materia.nombre}',
        contenidoId=contenido.id,
        materiaId=materia.id,
        semana=contenido.semana,
        tipoContenido=contenido.tipo_contenido,
        action="view_contenido",
    )


def contenido_actualizado_payload(contenido, cambios: Dict[str, Any]) -> Dict[str, Any]:
    return _payload(
        "contenido_actualizado",
        "Contenido actualizado",
        f'Se han actualizado los datos del contenido "{contenido.titulo}"',
        contenidoId=contenido.id,
        materiaId=contenido.materia_id,
        cambios=cambios,
        action="view_contenido",
    )


def contenido_eliminado_payload(contenido, materia) -> Dict[str, Any]:
    return _payload(
        "contenido_eliminado",
        "Contenido eliminado",
        f'Se ha eliminado el contenido "{contenido.titulo}" de {materia.nombre}',
        contenidoId=contenido.id,
        materiaId=materia.id,
        action="view_contenidos",
    )


# Evaluaciones

def evaluacion_creada_payload(evaluacion, materia) -> Dict[str, Any]:
    return _payload(
        "evaluacion_creada",
        "Nueva evaluación creada",
        f'Se ha creado la evaluación "{evaluacion.titulo}" para {materia.nombre}',
        evaluacionId=evaluacion.id,
        materiaId=materia.id,
        fechaEvaluacion=evaluacion.fecha_evaluacion.isoformat(),
        tipoEvaluacion=evaluacion.tipo_evaluacion,
        action="view_evaluacion",
    )


def evaluacion_actualizada_payload(evaluacion, cambios: Dict[str, Any]) -> Dict[str, Any]:
    return _payload(
        "evaluacion_actualizada",
        "Evaluación actualizada",
        f'Se han actualizado los datos de la evaluación "{evaluacion.titulo}"',
        evaluacionId=evaluacion.id,
        materiaId=evaluacion.materia_id,
        cambios=cambios,
        action="view_evaluacion",
    )


def evaluacion_eliminada_payload(evaluacion, materia) -> Dict[str, Any]:
    return _payload(
        "evaluacion_eliminada",
        "Evaluación eliminada",
        f'Se ha eliminado la evaluación "{evaluacion.titulo}" de {materia.nombre}',
        evaluacionId=evaluacion.id,
        materiaId=materia.id,
        action="view_evaluaciones",
    )


def nota_publicada_payload(evaluacion, nota) -> Dict[str, Any]:
    return _payload(
        "nota_publicada",
        "Nota publicada",
        f'Se ha publicado la nota para "{evaluacion.titulo}": {nota.nota:g}/10',
        evaluacionId=evaluacion.id,
        notaId=nota.id,
        nota=nota.nota,
        action="view_notas",
    )


def direct_payload(title: str, message: str, type_: str = "info", data: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    return {"type": type_, "title": title, "message": message, "data": data or {}}


# Delivery

def store_notification(session: Session, message: Dict[str, Any]) -> Optional[Notificacion]:
    """Persist a user message (as built by ``build_user_message``)."""
    user_id = message.get("userId")
    if user_id is None or session.get(Usuario, user_id) is None:
        logger.warning("Notificación descartada: usuario %s inexistente", user_id)
        return None
    row = Notificacion(
        usuario_id=user_id,
        tipo=message.get("type") or "info",
        titulo=message.get("title") or "",
        mensaje=message.get("message") or "",
        data=message.get("data") or None,
    )
    session.add(row)
    session.commit()
    session.refresh(row)
    return row


def deliver(user_id: int, payload: Dict[str, Any]) -> Dict[str, Any]:
    """Send one notification; raises when delivery fails."""
    if settings.rabbitmq.enabled:
        return get_amqp_service().publish_user_notification(user_id, payload)
    message = build_user_message(user_id, payload)
    with Session(db.engine) as session:
        if store_notification(session, message) is None:
            raise LookupError(f"Usuario {user_id} no encontrado")
    logger.info("Notificación %s registrada para el usuario %s", message["type"], user_id)
    return message


def dispatch(user_id: Optional[int], payload: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    """Fire-and-forget wrapper around :func:`deliver`."""
    if user_id is None:
        return None
    try:
        return deliver(user_id, payload)
    except Exception:
        logger.exception("No se pudo enviar la notificación %s al usuario %s", payload.get("type"), user_id)
        return None


def send_bulk(user_ids: Iterable[int], payload: Dict[str, Any]) -> Dict[str, List[Any]]:
    if settings.rabbitmq.enabled:
        return get_amqp_service().send_bulk_notifications(user_ids, payload)
    results: Dict[str, List[Any]] = {"successful": [], "failed": []}
    for user_id in user_ids:
        try:
            deliver(user_id, payload)
            results["successful"].append(user_id)
        except LookupError as exc:
            results["failed"].append({"userId": user_id, "error": str(exc)})
    return results


def send_system_event(event_type: str, data: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    if settings.rabbitmq.enabled:
        return get_amqp_service().send_system_event(event_type, data)
    event = build_system_event(event_type, data)
    logger.info("Evento de sistema %s (sin broker): %s", event_type, event["data"])
    return event


# Fan-out to subscribed users

_PREFERENCES = {
    "contenido": ConfiguracionNotificaciones.notificar_contenidos,
    "evaluacion": ConfiguracionNotificaciones.notificar_evaluaciones,
    "recordatorio": ConfiguracionNotificaciones.notificar_recordatorios,
}


def subscribers(session: Session, kind: str) -> List[Usuario]:
    preference = _PREFERENCES[kind]
    statement = (
        select(Usuario)
        .join(ConfiguracionNotificaciones, ConfiguracionNotificaciones.usuario_id == Usuario.id)
        .where(Usuario.activo == True)  # noqa: E712
        .where(preference == True)  # noqa: E712
    )
    return list(session.exec(statement).all())


def record_for_subscribers(kind: str, titulo: str, mensaje: str, item: Dict[str, Any], materia: Dict[str, Any]) -> List[Tuple[int, Dict[str, Any]]]:
    """Store one notification row per subscriber of ``kind``.

    Returns ``(notificacion_id, usuario)`` pairs for the email step.
    """
    with Session(db.engine) as session:
        pending = []
        for usuario in subscribers(session, kind):
            row = Notificacion(
                usuario_id=usuario.id,
                tipo=kind,
                titulo=titulo,
                mensaje=mensaje,
                data={f"{kind}Id": item.get("id"), "materiaId": materia.get("id")},
            )
            session.add(row)
            pending.append((row, {"id": usuario.id, "email": usuario.email, "nombre": usuario.nombre, "apellido": usuario.apellido}))
        session.commit()
        return [(row.id, usuario) for row, usuario in pending]


def mark_emailed(notification_ids: List[int]) -> None:
    if not notification_ids:
        return
    with Session(db.engine) as session:
        for row in session.exec(select(Notificacion).where(col(Notificacion.id).in_(notification_ids))).all():
            row.enviada_email = True
            session.add(row)
        session.commit()


async def _email_subscriber(kind: str, usuario: Dict[str, Any], titulo: str, mensaje: str, item: Dict[str, Any], materia: Dict[str, Any]) -> Dict[str, Any]:
    email_service = get_email_service()
    if kind == "contenido":
        return await email_service.send_contenido_notification(usuario, item, materia)
    if kind == "evaluacion":
        return await email_service.send_evaluacion_notification(usuario, item, materia)
    return await email_service.send_recordatorio(usuario, titulo, mensaje)


async def fan_out_to_subscribers(kind: str, titulo: str, mensaje: str, item: Dict[str, Any], materia: Dict[str, Any]) -> int:
    """Write a notification row and send the matching email to every subscriber.

    ``kind`` is ``contenido``, ``evaluacion`` or ``recordatorio``; ``item`` is
    the serialized contenido/evaluación. Database work runs in the threadpool.
    Returns the number of users notified.
    """
    pending = await run_in_threadpool(record_for_subscribers, kind, titulo, mensaje, item, materia)
    emailed = []
    for notification_id, usuario in pending:
        result = await _email_subscriber(kind, usuario, titulo, mensaje, item, materia)
        if result.get("success"):
            emailed.append(notification_id)
    await run_in_threadpool(mark_emailed, emailed)

    logger.info("Notificación de %s enviada a %d usuarios (%d emails)", kind, len(pending), len(emailed))
    return len(pending)


async def send_welcome(usuario: Dict[str, Any]) -> None:
    if settings.rabbitmq.enabled:
        email_message = {
            "to": usuario["email"],
            "subject": WELCOME_SUBJECT,
            "template": "bienvenida",
            "context": {"usuario": usuario},
        }
        try:
            await run_in_threadpool(get_amqp_service().queue_email, email_message)
        except AMQPError:
            logger.exception("No se pudo encolar el email de bienvenida para %s", usuario.get("email"))
        return
    result = await get_email_service().send_welcome_email(usuario)
    if not result.get("success"):
        logger.info("Email de bienvenida no enviado a %s: %s", usuario.get("email"), result.get("error"))
