from fastapi.testclient import TestClient


def _horario(materia, comision, profesor, **overrides):
    payload = {
        "materia_id": materia["id"],
        "comision_id": comision["id"],
        "profesor_id": profesor["id"],
        "dia_semana": 1,
        "hora_inicio": "9:00",
        "hora_fin": "11:00",
        "tipo_clase": "teorica",
    }
    payload.update(overrides)
    return payload


def test_create_horario_normalizes_times(client: TestClient, profesor_headers, materia, comision, profesor):
    r = client.post("/api/horarios/", json=_horario(materia, comision, profesor), headers=profesor_headers)
    assert r.status_code == 201, r.text
    horario = r.json()["horario"]
    assert horario["hora_inicio"] == "09:00"
    assert horario["materia_codigo"] == materia["codigo"]
    assert horario["comision_nombre"] == "A"
    assert horario["profesor_apellido"] == "Docente"


def test_overlapping_horario_is_rejected(client: TestClient, profesor_headers, materia, comision, profesor):
    client.post("/api/horarios/", json=_horario(materia, comision, profesor), headers=profesor_headers)
    r = client.post(
        "/api/horarios/",
        json=_horario(materia, comision, profesor, hora_inicio="10:00", hora_fin="12:00"),
        headers=profesor_headers,
    )
    assert r.status_code == 400
    assert r.json()["detail"] == "Conflicto de horarios para esta materia"

    contiguous = client.post(
        "/api/horarios/",
        json=_horario(materia, comision, profesor, hora_inicio="11:00", hora_fin="12:00"),
        headers=profesor_headers,
    )
    assert contiguous.status_code == 201


def test_invalid_horario_payloads(client: TestClient, profesor_headers, materia, comision, profesor):
    bad_time = client.post("/api/horarios/", json=_horario(materia, comision, profesor, hora_inicio="25:00"), headers=profesor_headers)
    assert bad_time.status_code == 400
    inverted = client.post(
        "/api/horarios/",
        json=_horario(materia, comision, profesor, hora_inicio="12:00", hora_fin="10:00"),
        headers=profesor_headers,
    )
    assert inverted.status_code == 400
    bad_day = client.post("/api/horarios/", json=_horario(materia, comision, profesor, dia_semana=8), headers=profesor_headers)
    assert bad_day.status_code == 400
    bad_link = client.post(
        "/api/horarios/",
        json=_horario(materia, comision, profesor, link_reunion="ftp://x"),
        headers=profesor_headers,
    )
    assert bad_link.status_code == 400


def test_horario_requires_matching_comision(client: TestClient, profesor_headers, materia, comision, profesor):
    otra = client.post("/api/materias/", json={"nombre": "Otra", "codigo": f"X{materia['codigo']}"}, headers=profesor_headers).json()["materia"]
    r = client.post("/api/horarios/", json=_horario(otra, comision, profesor), headers=profesor_headers)
    assert r.status_code == 400
    assert r.json()["detail"] == "Comisión no encontrada para esta materia"


def test_listing_groups_by_day(client: TestClient, profesor_headers, estudiante_headers, materia, comision, profesor):
    client.post("/api/horarios/", json=_horario(materia, comision, profesor, dia_semana=3), headers=profesor_headers)
    client.post("/api/horarios/", json=_horario(materia, comision, profesor, dia_semana=1), headers=profesor_headers)

    r = client.get("/api/horarios/", params={"materia_id": materia["id"]}, headers=estudiante_headers)
    assert r.status_code == 200
    grupos = r.json()["horarios"]
    assert [g["dia_semana"] for g in grupos] == [1, 3]
    assert grupos[1]["dia_nombre"] == "Miércoles"

    por_materia = client.get(f"/api/horarios/materia/{materia['id']}", headers=estudiante_headers).json()["horarios"]
    assert len(por_materia) == 2

    assert client.get("/api/horarios/", params={"dia_semana": 9}, headers=estudiante_headers).status_code == 400


def test_weekly_summary_has_seven_days(client: TestClient, estudiante_headers):
    semana = client.get("/api/horarios/weekly", headers=estudiante_headers).json()["semana"]
    assert [d["dia_semana"] for d in semana] == list(range(1, 8))
    assert semana[6]["dia_nombre"] == "Domingo"


def test_horarios_por_dia(client: TestClient, estudiante_headers):
    r = client.get("/api/horarios/dia/5", headers=estudiante_headers)
    assert r.status_code == 200
    assert r.json()["dia_nombre"] == "Viernes"
    assert client.get("/api/horarios/dia/0", headers=estudiante_headers).status_code == 400


def test_update_horario_reports_changes(client: TestClient, profesor_headers, materia, comision, profesor):
    created = client.post("/api/horarios/", json=_horario(materia, comision, profesor, dia_semana=4), headers=profesor_headers).json()["horario"]
    r = client.put(
        f"/api/horarios/{created['id']}",
        json=_horario(materia, comision, profesor, dia_semana=4, hora_fin="12:30"),
        headers=profesor_headers,
    )
    assert r.status_code == 200
    assert r.json()["cambios"] == {"hora_fin": {"anterior": "11:00", "nuevo": "12:30"}}


def test_delete_horario_is_soft(client: TestClient, profesor_headers, materia, comision, profesor):
    created = client.post("/api/horarios/", json=_horario(materia, comision, profesor, dia_semana=6), headers=profesor_headers).json()["horario"]
    count_before = client.get("/api/horarios/count", params={"materia_id": materia["id"]}, headers=profesor_headers).json()["total"]

    r = client.delete(f"/api/horarios/{created['id']}", headers=profesor_headers)
    assert r.status_code == 200
    assert client.get(f"/api/horarios/{created['id']}", headers=profesor_headers).status_code == 404
    inactive = client.get("/api/horarios/count", params={"materia_id": materia["id"], "activo": False}, headers=profesor_headers).json()["total"]
    assert inactive == 1
    count_after = client.get("/api/horarios/count", params={"materia_id": materia["id"]}, headers=profesor_headers).json()["total"]
    assert count_after == count_before - 1
