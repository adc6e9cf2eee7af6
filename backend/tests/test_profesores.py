from fastapi.testclient import TestClient
from sqlmodel import Session, select

import organizador.db as db
from organizador.models import Notificacion

from conftest import unique


def test_create_profesor_and_duplicate_email(client: TestClient, profesor_headers):
    email = f"{unique('doc').lower()}@test.com"
    r = client.post(
        "/api/profesores/",
        json={"nombre": "Juan", "apellido": "Gómez", "email": email, "tipo": "asistente"},
        headers=profesor_headers,
    )
    assert r.status_code == 201, r.text
    assert r.json()["profesor"]["tipo"] == "asistente"

    dup = client.post(
        "/api/profesores/",
        json={"nombre": "Otro", "apellido": "Gómez", "email": email},
        headers=profesor_headers,
    )
    assert dup.status_code == 400
    assert dup.json()["detail"] == "El email ya está registrado"

    invalid = client.post(
        "/api/profesores/",
        json={"nombre": "Otro", "apellido": "Gómez", "email": "sin-arroba"},
        headers=profesor_headers,
    )
    assert invalid.status_code == 400


def test_profesor_detail_and_hours(client: TestClient, profesor_headers, estudiante_headers, materia, comision, profesor):
    for dia, inicio, fin in ((1, "08:00", "10:00"), (3, "14:00", "15:30")):
        r = client.post(
            "/api/horarios/",
            json={
                "materia_id": materia["id"],
                "comision_id": comision["id"],
                "profesor_id": profesor["id"],
                "dia_semana": dia,
                "hora_inicio": inicio,
                "hora_fin": fin,
            },
            headers=profesor_headers,
        )
        assert r.status_code == 201, r.text

    detalle = client.get(f"/api/profesores/{profesor['id']}", headers=estudiante_headers).json()
    assert detalle["estadisticas"] == {"total_materias": 1, "total_horarios": 2, "horas_semanales": 3.5}
    assert [m["id"] for m in detalle["materias"]] == [materia["id"]]
    assert [g["dia_semana"] for g in detalle["horarios"]] == [1, 3]

    listed = client.get("/api/profesores/", params={"limit": 100}, headers=estudiante_headers).json()
    row = next(p for p in listed["profesores"] if p["id"] == profesor["id"])
    assert (row["total_materias"], row["total_horarios"]) == (1, 2)

    assert len(client.get(f"/api/profesores/{profesor['id']}/horarios", headers=estudiante_headers).json()["horarios"]) == 2
    assert len(client.get(f"/api/profesores/{profesor['id']}/materias", headers=estudiante_headers).json()["materias"]) == 1

    blocked = client.delete(f"/api/profesores/{profesor['id']}", headers=profesor_headers)
    assert blocked.status_code == 400


def test_horario_notifies_profesor_account(client: TestClient, profesor_headers, materia, comision, new_user):
    cuenta, cuenta_headers = new_user("profesor")
    profesor = client.post(
        "/api/profesores/",
        json={"nombre": "Con", "apellido": "Cuenta", "email": cuenta["email"]},
        headers=profesor_headers,
    ).json()["profesor"]
    client.post(
        "/api/horarios/",
        json={
            "materia_id": materia["id"],
            "comision_id": comision["id"],
            "profesor_id": profesor["id"],
            "dia_semana": 5,
            "hora_inicio": "18:00",
            "hora_fin": "20:00",
        },
        headers=profesor_headers,
    )
    with Session(db.engine) as session:
        rows = session.exec(
            select(Notificacion).where(Notificacion.usuario_id == cuenta["id"], Notificacion.tipo == "profesor_asignado")
        ).all()
    assert len(rows) == 1
    assert "Viernes 18:00" in rows[0].mensaje


def test_search_update_and_delete(client: TestClient, profesor_headers, estudiante_headers, profesor):
    found = client.get(f"/api/profesores/search/{profesor['email']}", headers=estudiante_headers).json()["profesores"]
    assert [p["id"] for p in found] == [profesor["id"]]

    r = client.put(f"/api/profesores/{profesor['id']}", json={"telefono": "+54 11 5555"}, headers=profesor_headers)
    assert r.status_code == 200
    assert r.json()["cambios"] == {"telefono": {"anterior": None, "nuevo": "+54 11 5555"}}

    assert client.delete(f"/api/profesores/{profesor['id']}", headers=profesor_headers).status_code == 200
    inactivos = client.get("/api/profesores/", params={"activo": False, "limit": 100}, headers=estudiante_headers).json()
    assert any(p["id"] == profesor["id"] for p in inactivos["profesores"])


def test_missing_profesor(client: TestClient, estudiante_headers):
    r = client.get("/api/profesores/999999", headers=estudiante_headers)
    assert r.status_code == 404
    assert r.json()["detail"] == "Profesor no encontrado"
