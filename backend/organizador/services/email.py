"""
Email Service

Sends notification emails over SMTP with aiosmtplib. Bodies are rendered
from the Jinja2 templates shipped in ``organizador/templates/email``.
"""

import logging
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import make_msgid
from pathlib import Path
from typing import Any, Dict, Optional

import aiosmtplib
from jinja2 import Environment, FileSystemLoader, select_autoescape

from ..config import EmailSettings, settings

logger = logging.getLogger(__name__)

TEMPLATE_DIR = Path(__file__).resolve().parents[1] / "templates" / "email"
SIGNATURE = "Equipo TUPAD"
WELCOME_SUBJECT = "¡Bienvenido a TUPAD Organizador Académico!"


class EmailServiceConfig:
    """SMTP configuration taken from the application settings."""

    def __init__(self, email_settings: Optional[EmailSettings] = None):
        source = email_settings or settings.email
        self.smtp_host = source.host
        self.smtp_port = source.port
        self.smtp_username = source.user
        self.smtp_password = source.password
        self.smtp_use_tls = source.use_tls
        self.smtp_start_tls = source.start_tls
        self.from_email = source.from_address
        self.from_name = source.from_name
        self.template_dir = TEMPLATE_DIR

    def is_configured(self) -> bool:
        return bool(self.smtp_host and self.smtp_username)


class EmailService:
    """Service for sending emails via SMTP."""

    def __init__(self, config: Optional[EmailServiceConfig] = None):
        self.config = config or EmailServiceConfig()
        self.template_env = Environment(
            loader=FileSystemLoader(str(self.config.template_dir)),
            autoescape=select_autoescape(["html"]),
        )

    def render_template(self, template_name: str, context: Dict[str, Any]) -> str:
        template = self.template_env.get_template(f"{template_name}.html")
        return template.render(firma=SIGNATURE, **context)

    async def send_email(self, to_email: str, subject: str, html_content: str, text_content: Optional[str] = None) -> Dict[str, Any]:
        """
        Send an email via SMTP.

        Returns:
            Dict with ``success`` and either ``message_id`` or ``error``.
            Never raises.
        """
        if not self.config.is_configured():
            logger.debug("Email no configurado, se omite el envío a %s", to_email)
            return {"success": False, "error": "Servicio de email no configurado"}

        message = MIMEMultipart("alternative")
        message["From"] = f"{self.config.from_name} <{self.config.from_email}>"
        message["To"] = to_email
        message["Subject"] = subject
        message["Message-ID"] = make_msgid()
        if text_content:
            message.attach(MIMEText(text_content, "plain", "utf-8"))
        message.attach(MIMEText(html_content, "html", "utf-8"))

        try:
            await aiosmtplib.send(
                message,
                hostname=self.config.smtp_host,
                port=self.config.smtp_port,
                username=self.config.smtp_username or None,
                password=self.config.smtp_password or None,
                use_tls=self.config.smtp_use_tls,
                start_tls=self.config.smtp_start_tls if not self.config.smtp_use_tls else False,
            )
        except (aiosmtplib.SMTPException, OSError) as exc:
            logger.error("Error enviando email a %s: %s", to_email, exc)
            return {"success": False, "error": str(exc)}

        logger.info("Email enviado a %s: %s", to_email, subject)
        return {"success": True, "message_id": message["Message-ID"]}

    async def send_contenido_notification(self, usuario: Dict[str, Any], contenido: Dict[str, Any], materia: Dict[str, Any]) -> Dict[str, Any]:
        html = self.render_template("contenido", {"usuario": usuario, "contenido": contenido, "materia": materia})
        subject = f"Nuevo contenido disponible: {contenido['titulo']}"
        return await self.send_email(usuario["email"], subject, html)

    async def send_evaluacion_notification(self, usuario: Dict[str, Any], evaluacion: Dict[str, Any], materia: Dict[str, Any]) -> Dict[str, Any]:
        html = self.render_template("evaluacion", {"usuario": usuario, "evaluacion": evaluacion, "materia": materia})
        subject = f"Evaluación próxima: {evaluacion['titulo']}"
        return await self.send_email(usuario["email"], subject, html)

    async def send_recordatorio(self, usuario: Dict[str, Any], titulo: str, mensaje: str) -> Dict[str, Any]:
        html = self.render_template("recordatorio", {"usuario": usuario, "titulo": titulo, "mensaje": mensaje})
        return await self.send_email(usuario["email"], f"Recordatorio: {titulo}", html)

    async def send_welcome_email(self, usuario: Dict[str, Any]) -> Dict[str, Any]:
        html = self.render_template("bienvenida", {"usuario": usuario})
        return await self.send_email(usuario["email"], WELCOME_SUBJECT, html)


_email_service: Optional[EmailService] = None


def get_email_service() -> EmailService:
    global _email_service
    if _email_service is None:
        _email_service = EmailService()
    return _email_service
