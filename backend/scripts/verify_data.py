from __future__ import annotations

import typer
from sqlalchemy import func
from sqlmodel import Session, select

from organizador.db import engine
from organizador.models import (
    Comision,
    Contenido,
    Evaluacion,
    Horario,
    Materia,
    Nota,
    Notificacion,
    Profesor,
    Usuario,
)

APP = typer.Typer(add_completion=False, help="Muestra la cantidad de registros por tabla.")

TABLES = (
    ("usuarios", Usuario),
    ("materias", Materia),
    ("comisiones", Comision),
    ("profesores", Profesor),
    ("horarios", Horario),
    ("contenidos", Contenido),
    ("evaluaciones", Evaluacion),
    ("notas", Nota),
    ("notificaciones", Notificacion),
)


@APP.command()
def main() -> None:
    with Session(engine) as session:
        for nombre, model in TABLES:
            total = session.exec(select(func.count(model.id))).one()
            typer.echo(f"{nombre:<16} {total:>6}")
        sin_horarios = session.exec(
            select(func.count(Materia.id)).where(
                Materia.activo == True,  # noqa: E712
                ~select(Horario.id).where(Horario.materia_id == Materia.id, Horario.activo == True).exists(),  # noqa: E712
            )
        ).one()
    if sin_horarios:
        typer.secho(f"{sin_horarios} materias activas sin horarios", fg=typer.colors.YELLOW)
    else:
        typer.secho("Todas las materias activas tienen horarios.", fg=typer.colors.GREEN)


if __name__ == "__main__":
    APP()
