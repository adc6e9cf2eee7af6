from fastapi.testclient import TestClient
from sqlmodel import Session, select

import organizador.db as db
from organizador.models import ConfiguracionNotificaciones, RolEnum, Usuario
from organizador.seed import DEFAULT_ADMIN_EMAIL, ensure_default_admin

from conftest import unique


def test_health_and_root(client: TestClient):
    r = client.get("/api/health")
    assert r.status_code == 200
    body = r.json()
    assert body["status"] == "OK"
    assert body["environment"] == "test"
    assert client.get("/").json()["status"] == "ok"


def test_register_login_and_profile(client: TestClient):
    email = f"{unique('reg').lower()}@test.com"
    r = client.post(
        "/api/auth/register",
        json={"email": email, "password": "clave123", "nombre": "Lucía", "apellido": "Pérez"},
    )
    assert r.status_code == 201, r.text
    body = r.json()
    assert body["token"]
    assert body["user"]["rol"] == "estudiante"
    assert "password" not in body["user"]

    login = client.post("/api/auth/login", json={"email": email, "password": "clave123"})
    assert login.status_code == 200
    assert login.json()["message"] == "Login exitoso"
    headers = {"Authorization": f"Bearer {login.json()['token']}"}

    profile = client.get("/api/auth/profile", headers=headers)
    assert profile.status_code == 200
    assert profile.json()["email"] == email

    updated = client.put("/api/auth/profile", json={"nombre": "Lu", "apellido": "Pérez"}, headers=headers)
    assert updated.status_code == 200
    assert updated.json()["user"]["nombre"] == "Lu"


def test_register_creates_notification_config(client: TestClient, new_user):
    user, _ = new_user()
    with Session(db.engine) as session:
        config = session.exec(
            select(ConfiguracionNotificaciones).where(ConfiguracionNotificaciones.usuario_id == user["id"])
        ).first()
        assert config is not None
        assert config.notificar_contenidos is True


def test_register_duplicate_email_is_rejected(client: TestClient, new_user):
    user, _ = new_user()
    r = client.post(
        "/api/auth/register",
        json={"email": user["email"], "password": "clave123", "nombre": "X", "apellido": "Y"},
    )
    assert r.status_code == 400
    assert r.json()["detail"] == "El email ya está registrado"


def test_register_never_creates_admins(client: TestClient):
    r = client.post(
        "/api/auth/register",
        json={"email": f"{unique('adm').lower()}@test.com", "password": "clave123", "nombre": "X", "apellido": "Y", "rol": "admin"},
    )
    assert r.status_code == 201
    assert r.json()["user"]["rol"] == "estudiante"


def test_register_validation_errors_use_400(client: TestClient):
    r = client.post("/api/auth/register", json={"email": "no-es-email", "password": "123", "nombre": "", "apellido": "Y"})
    assert r.status_code == 400
    body = r.json()
    assert body["detail"] == "Datos de entrada inválidos"
    campos = {error["campo"] for error in body["errors"]}
    assert {"email", "password"} <= campos


def test_login_with_wrong_password(client: TestClient, new_user):
    user, _ = new_user()
    r = client.post("/api/auth/login", json={"email": user["email"], "password": "incorrecta"})
    assert r.status_code == 401
    assert r.json()["detail"] == "Credenciales inválidas"


def test_token_endpoint_accepts_form_login(client: TestClient, new_user):
    user, _ = new_user()
    r = client.post(
        "/api/auth/token",
        data={"username": user["email"], "password": "secret123"},
        headers={"Content-Type": "application/x-www-form-urlencoded"},
    )
    assert r.status_code == 200
    assert r.json()["token_type"] == "bearer"


def test_missing_and_invalid_tokens(client: TestClient):
    r = client.get("/api/auth/profile")
    assert r.status_code == 401
    assert r.json()["detail"] == "Token de acceso requerido"

    r = client.get("/api/auth/profile", headers={"Authorization": "Bearer basura"})
    assert r.status_code == 403
    assert r.json()["detail"] == "Token inválido o expirado"


def test_inactive_user_token_is_rejected(client: TestClient, new_user):
    user, headers = new_user()
    with Session(db.engine) as session:
        row = session.get(Usuario, user["id"])
        row.activo = False
        session.add(row)
        session.commit()
    r = client.get("/api/auth/profile", headers=headers)
    assert r.status_code == 403
    assert r.json()["detail"] == "Usuario no válido o inactivo"


def test_change_password_requires_current_secret(client: TestClient, new_user):
    user, headers = new_user()
    bad = client.put(
        "/api/auth/change-password",
        json={"currentPassword": "otra", "newPassword": "nueva123"},
        headers=headers,
    )
    assert bad.status_code == 400
    assert bad.json()["detail"] == "Contraseña actual incorrecta"

    ok = client.put(
        "/api/auth/change-password",
        json={"currentPassword": "secret123", "newPassword": "nueva123"},
        headers=headers,
    )
    assert ok.status_code == 200
    relog = client.post("/api/auth/login", json={"email": user["email"], "password": "nueva123"})
    assert relog.status_code == 200


def test_notification_config_roundtrip(client: TestClient, new_user):
    _, headers = new_user()
    r = client.get("/api/auth/notifications/config", headers=headers)
    assert r.status_code == 200
    assert r.json()["frecuencia_email"] == "diaria"

    r = client.put(
        "/api/auth/notifications/config",
        json={"notificar_contenidos": False, "frecuencia_email": "semanal"},
        headers=headers,
    )
    assert r.status_code == 200
    config = r.json()["configuracion"]
    assert config["notificar_contenidos"] is False
    assert config["frecuencia_email"] == "semanal"
    assert config["notificar_evaluaciones"] is True


def test_users_listing_is_admin_only(client: TestClient, admin_headers, estudiante_headers):
    assert client.get("/api/auth/users", headers=estudiante_headers).status_code == 403
    r = client.get("/api/auth/users?limit=5", headers=admin_headers)
    assert r.status_code == 200
    assert r.json()["pagination"]["limit"] == 5


def test_export_data_contains_profile(client: TestClient, new_user):
    user, headers = new_user()
    r = client.get("/api/auth/export-data", headers=headers)
    assert r.status_code == 200
    assert r.json()["user"]["email"] == user["email"]


def test_delete_account_deactivates_user(client: TestClient, new_user):
    user, headers = new_user()
    r = client.delete("/api/auth/account", headers=headers)
    assert r.status_code == 200
    login = client.post("/api/auth/login", json={"email": user["email"], "password": "secret123"})
    assert login.status_code == 401
    assert login.json()["detail"] == "Usuario inactivo"


def test_default_admin_is_idempotent(client: TestClient):
    first = ensure_default_admin()
    second = ensure_default_admin()
    assert first.id == second.id
    with Session(db.engine) as session:
        admin = session.exec(select(Usuario).where(Usuario.email == DEFAULT_ADMIN_EMAIL)).one()
        assert admin.rol == RolEnum.admin.value
