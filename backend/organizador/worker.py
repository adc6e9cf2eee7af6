"""Queue consumers for the notification pipeline.

Run one consumer per process::

    python -m organizador.worker notifications
    python -m organizador.worker emails
    python -m organizador.worker events
"""

import asyncio
import logging
from typing import Any, Dict

import typer
from sqlmodel import Session

from . import db
from .logging_config import configure_logging
from .services.amqp import EMAILS_QUEUE, EVENTS_QUEUE, NOTIFICATIONS_QUEUE, get_amqp_service
from .services.email import get_email_service
from .services.notifications import store_notification

logger = logging.getLogger(__name__)

APP = typer.Typer(add_completion=False, help="Consumidores de las colas de RabbitMQ del Organizador Académico.")


def handle_notification(message: Dict[str, Any]) -> None:
    with Session(db.engine) as session:
        row = store_notification(session, message)
    if row is not None:
        logger.info("Notificación %s guardada para el usuario %s", row.tipo, row.usuario_id)


def handle_email(message: Dict[str, Any]) -> None:
    service = get_email_service()
    html = message.get("html")
    if not html and message.get("template"):
        html = service.render_template(message["template"], message.get("context") or {})
    result = asyncio.run(service.send_email(message["to"], message["subject"], html or "", message.get("text")))
    if not result["success"]:
        raise RuntimeError(result.get("error") or "Error enviando email")


def handle_event(message: Dict[str, Any]) -> None:
    logger.info("Evento de sistema %s: %s", message.get("type"), message.get("data"))


def _run(queue: str, handler, prefetch: int) -> None:
    configure_logging()
    service = get_amqp_service()
    try:
        service.consume(queue, handler, prefetch=prefetch)
    except KeyboardInterrupt:
        typer.echo("Consumidor detenido.")
    finally:
        service.close()


@APP.command()
def notifications(prefetch: int = typer.Option(10, help="Mensajes sin confirmar por consumidor")) -> None:
    """Guarda en la base las notificaciones publicadas por la API."""
    db.init_db()
    _run(NOTIFICATIONS_QUEUE, handle_notification, prefetch)


@APP.command()
def emails(prefetch: int = typer.Option(5, help="Mensajes sin confirmar por consumidor")) -> None:
    """Envía los emails encolados."""
    _run(EMAILS_QUEUE, handle_email, prefetch)


@APP.command()
def events(prefetch: int = typer.Option(10, help="Mensajes sin confirmar por consumidor")) -> None:
    """Registra los eventos de sistema."""
    _run(EVENTS_QUEUE, handle_event, prefetch)


if __name__ == "__main__":
    APP()
