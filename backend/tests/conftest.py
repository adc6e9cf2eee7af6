import os
import uuid

# Configurar SQLite de pruebas antes de importar la app
TEST_DB_PATH = os.path.abspath("test_organizador.db")
os.environ["DATABASE_URL"] = f"sqlite:///{TEST_DB_PATH}"
os.environ["APP_ENV"] = "test"
os.environ["RABBITMQ_ENABLED"] = "false"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["EMAIL_HOST"] = ""
os.environ["EMAIL_USER"] = ""

try:
    os.remove(TEST_DB_PATH)
except FileNotFoundError:
    pass

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlmodel import Session, select  # noqa: E402

import organizador.db as db  # noqa: E402
from organizador.main import app  # noqa: E402
from organizador.models import RolEnum, Usuario  # noqa: E402
from organizador.security import get_password_hash  # noqa: E402


def unique(prefix: str) -> str:
    return f"{prefix}{uuid.uuid4().hex[:6].upper()}"


def _login(client: TestClient, email: str, password: str) -> dict:
    res = client.post("/api/auth/login", json={"email": email, "password": password})
    assert res.status_code == 200, res.text
    return {"Authorization": f"Bearer {res.json()['token']}"}


def _register(client: TestClient, email: str, password: str, rol: str) -> dict:
    res = client.post(
        "/api/auth/register",
        json={"email": email, "password": password, "nombre": "Test", "apellido": rol.title(), "rol": rol},
    )
    assert res.status_code in (201, 400), res.text
    return _login(client, email, password)


@pytest.fixture(scope="session")
def client():
    # Crear tablas explícitamente; el lifespan no corre sin el context manager
    db.init_db()

    def override_get_session():
        session = Session(db.engine)
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[db.get_session] = override_get_session
    client = TestClient(app)
    yield client
    client.close()
    app.dependency_overrides.clear()


@pytest.fixture()
def admin_headers(client: TestClient):
    email = "admin@test.com"
    password = "admin123"
    # El registro público nunca crea administradores
    with Session(db.engine) as session:
        if not session.exec(select(Usuario).where(Usuario.email == email)).first():
            session.add(
                Usuario(
                    email=email,
                    password=get_password_hash(password),
                    nombre="Admin",
                    apellido="Test",
                    rol=RolEnum.admin.value,
                )
            )
            session.commit()
    return _login(client, email, password)


@pytest.fixture()
def profesor_headers(client: TestClient):
    return _register(client, "profesor@test.com", "profe123", "profesor")


@pytest.fixture()
def estudiante_headers(client: TestClient):
    return _register(client, "estudiante@test.com", "estud123", "estudiante")


@pytest.fixture()
def new_user(client: TestClient):
    """Register a fresh estudiante and return ``(user, headers)``."""

    def _create(rol: str = "estudiante"):
        email = f"{unique('u').lower()}@test.com"
        res = client.post(
            "/api/auth/register",
            json={"email": email, "password": "secret123", "nombre": "Nuevo", "apellido": "Usuario", "rol": rol},
        )
        assert res.status_code == 201, res.text
        body = res.json()
        return body["user"], {"Authorization": f"Bearer {body['token']}"}

    return _create


@pytest.fixture()
def materia(client: TestClient, profesor_headers):
    res = client.post(
        "/api/materias/",
        json={"nombre": "Materia de prueba", "codigo": unique("TST"), "creditos": 4, "descripcion": "Para tests"},
        headers=profesor_headers,
    )
    assert res.status_code == 201, res.text
    return res.json()["materia"]


@pytest.fixture()
def comision(client: TestClient, profesor_headers, materia):
    res = client.post(
        "/api/comisiones/",
        json={"materia_id": materia["id"], "nombre": "A", "capacidad": 40},
        headers=profesor_headers,
    )
    assert res.status_code == 201, res.text
    return res.json()["comision"]


@pytest.fixture()
def profesor(client: TestClient, profesor_headers):
    res = client.post(
        "/api/profesores/",
        json={"nombre": "Ana", "apellido": "Docente", "email": f"{unique('p').lower()}@test.com"},
        headers=profesor_headers,
    )
    assert res.status_code == 201, res.text
    return res.json()["profesor"]
