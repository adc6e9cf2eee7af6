from datetime import date, datetime, timedelta, timezone

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from sqlmodel import Session, select

import organizador.db as db
from organizador.models import Materia, TipoEvaluacionEnum, Evaluacion, utc_now
from organizador.utils.filters import apply_filters, contains, creditos_condition, eq
from organizador.utils.grouping import group_by_day, group_by_week
from organizador.utils.pagination import build_pagination, count_rows, paginate, PageParams
from organizador.utils.rate_limit import InMemoryRateLimiter, RateLimitMiddleware
from organizador.utils.sqlmodel_helpers import apply_partial_update, diff_fields
from organizador.utils.validators import normalize_hora, normalize_optional_hora, validate_url
from organizador.utils.weeks import current_academic_week, week_window

from conftest import unique


def test_group_by_day_orders_days_and_keeps_rows():
    rows = [
        {"id": 1, "dia_semana": 5},
        {"id": 2, "dia_semana": 1},
        {"id": 3, "dia_semana": 5},
    ]
    grouped = group_by_day(rows)
    assert [g["dia_semana"] for g in grouped] == [1, 5]
    assert grouped[1]["dia_nombre"] == "Viernes"
    assert [r["id"] for r in grouped[1]["horarios"]] == [1, 3]


def test_group_by_week():
    grouped = group_by_week([{"semana": 3, "id": 1}, {"semana": 1, "id": 2}])
    assert grouped == [
        {"semana": 1, "contenidos": [{"semana": 1, "id": 2}]},
        {"semana": 3, "contenidos": [{"semana": 3, "id": 1}]},
    ]


def test_pagination_math():
    assert build_pagination(2, 10, 25) == {"page": 2, "limit": 10, "total": 25, "pages": 3}
    assert build_pagination(1, 10, 0)["pages"] == 0
    assert PageParams(3, 20).offset == 40


def test_current_academic_week():
    assert current_academic_week(datetime(2024, 1, 1)) == 1
    assert current_academic_week(datetime(2024, 1, 8, 0, 0, 1)) == 2
    assert current_academic_week(datetime(2024, 3, 15, 12)) == 11


def test_week_window_starts_on_monday():
    today = date(2024, 5, 15)  # miércoles
    assert week_window(1, today) == (date(2024, 5, 13), date(2024, 5, 19))
    assert week_window(3, today) == (date(2024, 5, 27), date(2024, 6, 2))


@pytest.mark.parametrize("raw, expected", [("8:05", "08:05"), ("23:59", "23:59"), (" 07:30 ", "07:30")])
def test_normalize_hora(raw, expected):
    assert normalize_hora(raw) == expected


def test_invalid_values_raise():
    with pytest.raises(ValueError):
        normalize_hora("24:00")
    with pytest.raises(ValueError):
        validate_url("javascript:alert(1)")
    assert normalize_optional_hora("") is None
    assert validate_url(" https://meet.test/abc ") == "https://meet.test/abc"


def test_rate_limiter_window():
    limiter = InMemoryRateLimiter()
    assert limiter.allow("ip", 2, 60) == (True, 0)
    assert limiter.allow("ip", 2, 60)[0] is True
    allowed, retry_after = limiter.allow("ip", 2, 60)
    assert allowed is False
    assert retry_after >= 1
    assert limiter.allow("otra-ip", 2, 60)[0] is True
    limiter.reset()
    assert limiter.allow("ip", 2, 60)[0] is True


def test_rate_limiter_drops_idle_clients(monkeypatch):
    import organizador.utils.rate_limit as rate_limit

    reloj = {"now": 1000.0}
    monkeypatch.setattr(rate_limit.time, "monotonic", lambda: reloj["now"])
    limiter = InMemoryRateLimiter()
    assert limiter.allow("ip-vieja", 5, 60)[0] is True
    assert limiter.tracked_clients() == 1

    reloj["now"] += 120
    assert limiter.allow("ip-nueva", 5, 60)[0] is True
    assert "ip-vieja" not in limiter._hits
    assert limiter.tracked_clients() == 1


def test_rate_limit_middleware_only_limits_api_paths():
    app = FastAPI()

    @app.get("/api/ping")
    def api_ping():
        return {"ok": True}

    @app.get("/ping")
    def ping():
        return {"ok": True}

    app.add_middleware(RateLimitMiddleware, limiter=InMemoryRateLimiter(), max_requests=1, window_seconds=60)
    limited = TestClient(app)

    assert limited.get("/api/ping").status_code == 200
    r = limited.get("/api/ping")
    assert r.status_code == 429
    assert r.json()["detail"] == "Demasiadas solicitudes desde esta IP, intenta de nuevo más tarde."
    assert int(r.headers["Retry-After"]) >= 1

    for _ in range(3):
        assert limited.get("/ping").status_code == 200


def test_filters_against_database(client):
    codigo = unique("FLT")
    with Session(db.engine) as session:
        session.add(Materia(nombre="Filtro_50%", codigo=codigo, creditos=5))
        session.add(Materia(nombre="Filtro 50 porciento", codigo=f"{codigo}B", creditos=12))
        session.commit()

        statement = apply_filters(
            select(Materia),
            contains(Materia.nombre, "filtro_50%"),
            eq(Materia.activo, None),
            creditos_condition(Materia.creditos, "4-6"),
        )
        rows = session.exec(statement).all()
        assert [m.codigo for m in rows] == [codigo]

        mayores = apply_filters(select(Materia), creditos_condition(Materia.creditos, "10+"), contains(Materia.codigo, codigo))
        assert count_rows(session, mayores) == 1
        assert creditos_condition(Materia.creditos, "desconocido") is None

        page, meta = paginate(session, apply_filters(select(Materia), contains(Materia.codigo, codigo)), PageParams(1, 1))
        assert len(page) == 1
        assert meta["total"] == 2


def test_apply_partial_update_coerces_and_reports():
    evaluacion = Evaluacion(
        materia_id=1,
        titulo="Parcial",
        tipo_evaluacion=TipoEvaluacionEnum.parcial,
        fecha_evaluacion=date(2024, 6, 1),
    )
    sin_cambios = diff_fields(evaluacion, {"fecha_evaluacion": "2024-06-01", "tipo_evaluacion": "parcial"})
    assert sin_cambios == {}

    cambios = apply_partial_update(evaluacion, {"fecha_evaluacion": "2024-06-08", "titulo": None, "id": 99})
    assert cambios == {"fecha_evaluacion": {"anterior": "2024-06-01", "nuevo": "2024-06-08"}}
    assert evaluacion.fecha_evaluacion == date(2024, 6, 8)
    assert evaluacion.titulo == "Parcial"
    assert evaluacion.id is None


def test_timestamps_are_utc_aware():
    materia = Materia(nombre="Reloj", codigo="RLJ1", creditos=3)
    assert materia.created_at.tzinfo is not None
    assert materia.created_at.utcoffset() == timedelta(0)
    assert utc_now().tzinfo is timezone.utc

    cambios = apply_partial_update(materia, {"nombre": "Reloj UTC"})
    assert "nombre" in cambios
    assert materia.updated_at.utcoffset() == timedelta(0)
