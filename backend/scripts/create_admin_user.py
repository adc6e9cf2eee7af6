from __future__ import annotations

from typing import Optional

import typer
from sqlmodel import Session, select

from organizador.db import engine, init_db
from organizador.models import RolEnum, Usuario
from organizador.security import get_password_hash
from organizador.seed import ensure_notification_config

APP = typer.Typer(add_completion=False, help="Crea o actualiza un usuario administrador del Organizador Académico.")


@APP.command()
def main(
    email: str = typer.Option(..., prompt=True, help="Email del administrador"),
    password: str = typer.Option(..., prompt=True, hide_input=True, confirmation_prompt=True, help="Contraseña (mínimo 6 caracteres)"),
    nombre: str = typer.Option("Administrador", help="Nombre"),
    apellido: str = typer.Option("Sistema", help="Apellido"),
) -> None:
    if len(password) < 6:
        typer.secho("La contraseña debe tener al menos 6 caracteres.", fg=typer.colors.RED)
        raise typer.Exit(code=1)

    init_db()
    with Session(engine) as session:
        user: Optional[Usuario] = session.exec(select(Usuario).where(Usuario.email == email)).first()
        if user:
            user.password = get_password_hash(password)
            user.rol = RolEnum.admin.value
            user.activo = True
            accion = "actualizado"
        else:
            user = Usuario(
                email=email,
                password=get_password_hash(password),
                nombre=nombre,
                apellido=apellido,
                rol=RolEnum.admin.value,
            )
            accion = "creado"
        session.add(user)
        session.commit()
        session.refresh(user)
        ensure_notification_config(session, user.id)

    typer.secho(f"Administrador {accion}: {email}", fg=typer.colors.GREEN)


if __name__ == "__main__":
    APP()
