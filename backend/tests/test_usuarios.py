from fastapi.testclient import TestClient


def test_usuarios_require_admin(client: TestClient, estudiante_headers, profesor_headers):
    assert client.get("/api/usuarios/", headers=estudiante_headers).status_code == 403
    r = client.get("/api/usuarios/", headers=profesor_headers)
    assert r.status_code == 403
    assert r.json()["detail"] == "Permisos insuficientes"


def test_list_and_filter_usuarios(client: TestClient, admin_headers, new_user):
    user, _ = new_user()
    r = client.get("/api/usuarios/", params={"q": user["email"]}, headers=admin_headers)
    assert r.status_code == 200
    body = r.json()
    assert body["total"] == 1
    assert body["usuarios"][0]["id"] == user["id"]

    r = client.get("/api/usuarios/", params={"rol": "estudiante", "activo": True}, headers=admin_headers)
    assert all(u["rol"] == "estudiante" and u["activo"] for u in r.json()["usuarios"])


def test_stats_overview(client: TestClient, admin_headers, new_user):
    new_user()
    stats = client.get("/api/usuarios/stats/overview", headers=admin_headers).json()
    assert stats["total"] >= 1
    assert stats["activos"] + stats["inactivos"] == stats["total"]
    assert stats["recientes"] >= 1


def test_get_missing_usuario(client: TestClient, admin_headers):
    r = client.get("/api/usuarios/999999", headers=admin_headers)
    assert r.status_code == 404
    assert r.json()["detail"] == "Usuario no encontrado"


def test_change_rol_and_estado(client: TestClient, admin_headers, new_user):
    user, headers = new_user()
    r = client.patch(f"/api/usuarios/{user['id']}/rol", json={"rol": "profesor"}, headers=admin_headers)
    assert r.status_code == 200
    assert r.json()["usuario"]["rol"] == "profesor"

    r = client.patch(f"/api/usuarios/{user['id']}/estado", json={"activo": False}, headers=admin_headers)
    assert r.status_code == 200
    assert r.json()["usuario"]["activo"] is False
    assert client.get("/api/auth/profile", headers=headers).status_code == 403


def test_estado_requires_boolean(client: TestClient, admin_headers, new_user):
    user, _ = new_user()
    r = client.patch(f"/api/usuarios/{user['id']}/estado", json={"activo": "quizas"}, headers=admin_headers)
    assert r.status_code == 400


def test_reset_password(client: TestClient, admin_headers, new_user):
    user, _ = new_user()
    r = client.patch(f"/api/usuarios/{user['id']}/password", json={"password": "reseteada1"}, headers=admin_headers)
    assert r.status_code == 200
    login = client.post("/api/auth/login", json={"email": user["email"], "password": "reseteada1"})
    assert login.status_code == 200


def test_admin_cannot_delete_self(client: TestClient, admin_headers):
    me = client.get("/api/auth/profile", headers=admin_headers).json()
    r = client.delete(f"/api/usuarios/{me['id']}", headers=admin_headers)
    assert r.status_code == 400
    assert r.json()["detail"] == "No puedes eliminar tu propia cuenta"


def test_delete_usuario_removes_row(client: TestClient, admin_headers, new_user):
    user, _ = new_user()
    assert client.delete(f"/api/usuarios/{user['id']}", headers=admin_headers).status_code == 200
    assert client.get(f"/api/usuarios/{user['id']}", headers=admin_headers).status_code == 404
