import asyncio
import json

from pika.exceptions import AMQPConnectionError
from sqlmodel import Session, select

import organizador.db as db
from organizador.config import EmailSettings
from organizador.models import Notificacion
from organizador.services import amqp, email, notifications
from organizador.services.amqp import AMQPService


class FakeChannel:
    def __init__(self, fail_publishes: int = 0):
        self.is_open = True
        self.fail_publishes = fail_publishes
        self.exchanges = {}
        self.queues = {}
        self.bindings = []
        self.published = []
        self.acked = []
        self.nacked = []
        self.callback = None

    def exchange_declare(self, exchange, exchange_type, durable):
        self.exchanges[exchange] = exchange_type

    def queue_declare(self, queue, durable=False, arguments=None, passive=False):
        self.queues.setdefault(queue, arguments)

        class _Method:
            message_count = 3

        class _Declared:
            method = _Method()

        return _Declared()

    def queue_bind(self, queue, exchange, routing_key):
        self.bindings.append((queue, exchange, routing_key))

    def basic_publish(self, exchange, routing_key, body, properties):
        if self.fail_publishes:
            self.fail_publishes -= 1
            raise AMQPConnectionError("broker caído")
        self.published.append((exchange, routing_key, json.loads(body), properties))

    def basic_qos(self, prefetch_count):
        self.prefetch = prefetch_count

    def basic_consume(self, queue, on_message_callback):
        self.callback = on_message_callback

    def basic_ack(self, delivery_tag):
        self.acked.append(delivery_tag)

    def basic_nack(self, delivery_tag, requeue):
        self.nacked.append((delivery_tag, requeue))

    def start_consuming(self):
        class _Method:
            def __init__(self, tag):
                self.delivery_tag = tag

        self.callback(self, _Method(1), None, json.dumps({"ok": True}).encode())
        self.callback(self, _Method(2), None, json.dumps({"ok": False}).encode())


class FakeConnection:
    def __init__(self, channel):
        self.is_open = True
        self._channel = channel

    def channel(self):
        return self._channel

    def close(self):
        self.is_open = False


def _service(channel):
    connections = []

    def factory():
        connection = FakeConnection(channel)
        connections.append(connection)
        return connection

    return AMQPService(url="amqp://test", connection_factory=factory), connections


def test_amqp_topology_and_user_notification():
    channel = FakeChannel()
    service, _ = _service(channel)
    message = service.publish_user_notification(7, {"type": "success", "title": "Hola", "message": "Mundo"})

    assert channel.exchanges == {amqp.USER_EXCHANGE: "topic", amqp.SYSTEM_EXCHANGE: "fanout"}
    assert channel.queues[amqp.NOTIFICATIONS_QUEUE] == {"x-message-ttl": 86400000}
    assert (amqp.NOTIFICATIONS_QUEUE, amqp.USER_EXCHANGE, "user.*") in channel.bindings

    exchange, routing_key, body, properties = channel.published[0]
    assert (exchange, routing_key) == (amqp.USER_EXCHANGE, "user.7")
    assert properties.delivery_mode == 2
    assert body["userId"] == 7
    assert body["read"] is False
    assert body["id"] == message["id"]


def test_amqp_publish_reconnects_once():
    channel = FakeChannel(fail_publishes=1)
    service, connections = _service(channel)
    service.send_system_event("deploy", {"version": "1.0"})
    assert len(connections) == 2
    exchange, routing_key, body, _ = channel.published[0]
    assert (exchange, routing_key) == (amqp.SYSTEM_EXCHANGE, "")
    assert body["type"] == "deploy"


def test_amqp_bulk_reports_failures():
    channel = FakeChannel(fail_publishes=2)
    service, _ = _service(channel)
    results = service.send_bulk_notifications([1, 2], {"title": "T", "message": "M"})
    assert results["successful"] == [2]
    assert results["failed"][0]["userId"] == 1


def test_amqp_consume_acks_and_drops():
    channel = FakeChannel()
    service, _ = _service(channel)

    def handler(payload):
        if not payload["ok"]:
            raise ValueError("mensaje inválido")

    service.consume(amqp.EVENTS_QUEUE, handler, prefetch=4)
    assert channel.prefetch == 4
    assert channel.acked == [1]
    assert channel.nacked == [(2, False)]
    assert service.queue_stats()[amqp.EMAILS_QUEUE] == 3
    service.close()
    assert not service.is_connected


def test_email_not_configured_skips_network():
    service = email.EmailService(email.EmailServiceConfig(EmailSettings()))
    result = asyncio.run(service.send_email("a@test.com", "Asunto", "<p>hola</p>"))
    assert result["success"] is False


def test_email_templates_render_signature():
    service = email.EmailService(email.EmailServiceConfig(EmailSettings()))
    html = service.render_template(
        "contenido",
        {
            "usuario": {"nombre": "Ana", "apellido": "Paz"},
            "contenido": {"titulo": "<Matrices>", "semana": 2, "descripcion": None, "link_contenido": None},
            "materia": {"nombre": "Álgebra", "codigo": "MAT101"},
        },
    )
    assert "Equipo TUPAD" in html
    assert "&lt;Matrices&gt;" in html


def test_email_sends_through_smtp(monkeypatch):
    sent = []

    async def fake_send(message, **kwargs):
        sent.append((message, kwargs))

    monkeypatch.setattr(email.aiosmtplib, "send", fake_send)
    settings = EmailSettings(host="smtp.test", user="bot@test.com", password="x", from_address="bot@test.com")
    service = email.EmailService(email.EmailServiceConfig(settings))
    result = asyncio.run(service.send_welcome_email({"email": "nuevo@test.com", "nombre": "Nuevo", "apellido": "Usuario"}))

    assert result["success"] is True
    message, kwargs = sent[0]
    assert message["To"] == "nuevo@test.com"
    assert message["Subject"] == "¡Bienvenido a TUPAD Organizador Académico!"
    assert kwargs["hostname"] == "smtp.test"


def test_email_smtp_errors_are_reported(monkeypatch):
    async def failing_send(message, **kwargs):
        raise OSError("sin red")

    monkeypatch.setattr(email.aiosmtplib, "send", failing_send)
    settings = EmailSettings(host="smtp.test", user="bot@test.com")
    service = email.EmailService(email.EmailServiceConfig(settings))
    result = asyncio.run(service.send_email("a@test.com", "Asunto", "<p>hola</p>"))
    assert result == {"success": False, "error": "sin red"}


def test_dispatch_swallows_delivery_errors(client):
    assert notifications.dispatch(999999, notifications.direct_payload("T", "M")) is None
    assert notifications.dispatch(None, notifications.direct_payload("T", "M")) is None


def test_deliver_uses_broker_when_enabled(monkeypatch):
    published = []

    class FakeService:
        def publish_user_notification(self, user_id, payload):
            published.append((user_id, payload))
            return {"userId": user_id}

    monkeypatch.setattr(notifications.settings.rabbitmq, "enabled", True)
    monkeypatch.setattr(notifications, "get_amqp_service", lambda: FakeService())
    assert notifications.deliver(5, notifications.direct_payload("T", "M")) == {"userId": 5}
    assert published[0][0] == 5


def test_payload_builders_carry_ids():
    class Materia:
        id = 3
        nombre = "Física"
        codigo = "FIS101"
        creditos = 6

    class Horario:
        id = 9
        dia_semana = 2
        hora_inicio = "08:00"
        hora_fin = "10:00"
        tipo_clase = "teorica"

    creada = notifications.materia_creada_payload(Materia())
    assert creada["type"] == "materia_creada"
    assert creada["data"]["materiaCodigo"] == "FIS101"

    asignado = notifications.horario_asignado_payload(Materia(), Horario())
    assert asignado["data"]["horarioId"] == 9
    assert "Martes" in asignado["message"]


def test_amqp_queue_email_goes_to_default_exchange():
    channel = FakeChannel()
    service, _ = _service(channel)
    service.queue_email({"to": "a@test.com", "subject": "Hola", "template": "bienvenida", "context": {}})

    exchange, routing_key, body, properties = channel.published[0]
    assert (exchange, routing_key) == ("", amqp.EMAILS_QUEUE)
    assert routing_key == "emails"
    assert properties.delivery_mode == 2
    assert properties.content_type == "application/json"
    assert body["template"] == "bienvenida"


def test_email_recordatorio_renders_template(monkeypatch):
    sent = []

    async def fake_send(message, **kwargs):
        sent.append(message)

    monkeypatch.setattr(email.aiosmtplib, "send", fake_send)
    settings = EmailSettings(host="smtp.test", user="bot@test.com", password="x", from_address="bot@test.com")
    service = email.EmailService(email.EmailServiceConfig(settings))
    usuario = {"email": "ana@test.com", "nombre": "Ana", "apellido": "Paz"}
    result = asyncio.run(service.send_recordatorio(usuario, "Entrega del TP", "Vence el viernes"))

    assert result["success"] is True
    message = sent[0]
    assert message["Subject"] == "Recordatorio: Entrega del TP"
    html = message.get_payload()[-1].get_payload(decode=True).decode("utf-8")
    assert "Hola Ana" in html
    assert "Vence el viernes" in html


def test_welcome_email_is_queued_when_broker_enabled(monkeypatch):
    queued = []

    class FakeService:
        def queue_email(self, message):
            queued.append(message)

    monkeypatch.setattr(notifications.settings.rabbitmq, "enabled", True)
    monkeypatch.setattr(notifications, "get_amqp_service", lambda: FakeService())
    asyncio.run(notifications.send_welcome({"id": 1, "email": "nuevo@test.com", "nombre": "Nuevo", "apellido": "U"}))

    assert queued == [
        {
            "to": "nuevo@test.com",
            "subject": email.WELCOME_SUBJECT,
            "template": "bienvenida",
            "context": {"usuario": {"id": 1, "email": "nuevo@test.com", "nombre": "Nuevo", "apellido": "U"}},
        }
    ]


def test_fan_out_stores_rows_and_marks_emailed(client, new_user, monkeypatch):
    user, _ = new_user()
    sent = []

    class FakeEmailService:
        async def send_recordatorio(self, usuario, titulo, mensaje):
            sent.append(usuario["email"])
            return {"success": usuario["id"] == user["id"]}

    monkeypatch.setattr(notifications, "get_email_service", lambda: FakeEmailService())
    total = asyncio.run(
        notifications.fan_out_to_subscribers("recordatorio", "Parcial", "Mañana es el parcial", {"id": 4}, {"id": 2})
    )

    assert total == len(sent)
    assert user["email"] in sent
    with Session(db.engine) as session:
        row = session.exec(select(Notificacion).where(Notificacion.usuario_id == user["id"])).one()
    assert row.tipo == "recordatorio"
    assert row.data == {"recordatorioId": 4, "materiaId": 2}
    assert row.enviada_email is True
