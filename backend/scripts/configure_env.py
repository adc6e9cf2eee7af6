from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
import secrets
from typing import Dict, Optional

import typer
from dotenv import dotenv_values
from sqlalchemy import create_engine, text
from sqlalchemy.exc import SQLAlchemyError

APP = typer.Typer(add_completion=False, help="Asistente para crear o actualizar el .env del Organizador Académico.")

BACKEND_DIR = Path(__file__).resolve().parents[1]
ROOT_DIR = BACKEND_DIR.parent
ENV_PATH = ROOT_DIR / ".env"

SECRET_KEYS = {"SECRET_KEY", "EMAIL_PASS"}


def load_existing_env(path: Path) -> Dict[str, str]:
    if not path.exists():
        return {}
    raw = dotenv_values(path)
    return {k: v for k, v in raw.items() if isinstance(k, str) and v is not None}


def format_env_value(value: str) -> str:
    if not value:
        return ""
    if any(ch in value for ch in ' #"\n'):
        escaped = value.replace("\\", "\\\\").replace('"', '\\"')
        return f'"{escaped}"'
    return value


def bool_from_env(value: Optional[str], default: bool) -> bool:
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "on"}:
        return True
    if normalized in {"0", "false", "no", "off"}:
        return False
    return default


def _check_database(url: str) -> tuple[bool, str]:
    engine = None
    try:
        engine = create_engine(url, pool_pre_ping=True)
        with engine.connect() as connection:
            connection.execute(text("SELECT 1"))
        return True, ""
    except SQLAlchemyError as exc:
        return False, str(exc)
    finally:
        if engine is not None:
            engine.dispose()


def _prompt_database_url(existing_value: Optional[str]) -> str:
    default_value = existing_value or "sqlite:///./organizador.db"
    while True:
        candidate = typer.prompt("DATABASE_URL", default=default_value).strip()
        if not candidate:
            typer.secho("La cadena de conexión no puede estar vacía.", fg=typer.colors.RED)
            continue
        if not typer.confirm("¿Validar la conexión ahora?", default=True):
            return candidate

        typer.echo("Verificando la conexión...")
        ok, error_msg = _check_database(candidate)
        if ok:
            typer.secho("Conexión exitosa.", fg=typer.colors.GREEN)
            return candidate
        typer.secho("No pudimos conectarnos con esos datos:", fg=typer.colors.RED)
        typer.echo(error_msg)
        if not typer.confirm("¿Intentar nuevamente con otro valor?", default=True):
            return candidate
        default_value = candidate


def _prompt_secret(existing_value: Optional[str]) -> str:
    default_secret = existing_value or secrets.token_urlsafe(32)
    if not existing_value:
        typer.echo("Se generó un SECRET_KEY aleatorio para firmar los JWT.")
    value = typer.prompt("SECRET_KEY", default=default_secret, hide_input=True, show_default=False).strip()
    return value or default_secret


def _prompt_rabbitmq(existing: Dict[str, str]) -> Dict[str, str]:
    enabled = typer.confirm(
        "¿Entregar notificaciones por RabbitMQ?",
        default=bool_from_env(existing.get("RABBITMQ_ENABLED"), False),
    )
    values = {"RABBITMQ_ENABLED": "true" if enabled else "false"}
    if enabled:
        url_default = existing.get("RABBITMQ_URL") or "amqp://localhost"
        values["RABBITMQ_URL"] = typer.prompt("RABBITMQ_URL", default=url_default).strip() or url_default
    return values


def _prompt_email(existing: Dict[str, str]) -> Dict[str, str]:
    if not typer.confirm("¿Configurar el envío de emails (SMTP)?", default=bool(existing.get("EMAIL_HOST"))):
        # Sin EMAIL_HOST el servicio de email queda deshabilitado
        return {"EMAIL_HOST": "", "EMAIL_USER": "", "EMAIL_PASS": ""}

    values = {
        "EMAIL_HOST": typer.prompt("EMAIL_HOST", default=existing.get("EMAIL_HOST") or "smtp.gmail.com").strip(),
        "EMAIL_PORT": typer.prompt("EMAIL_PORT", default=existing.get("EMAIL_PORT") or "587").strip(),
        "EMAIL_USER": typer.prompt("EMAIL_USER", default=existing.get("EMAIL_USER") or "").strip(),
    }
    values["EMAIL_PASS"] = typer.prompt(
        "EMAIL_PASS",
        default=existing.get("EMAIL_PASS") or "",
        hide_input=True,
        show_default=False,
    ).strip()
    values["EMAIL_FROM"] = typer.prompt("EMAIL_FROM", default=existing.get("EMAIL_FROM") or values["EMAIL_USER"]).strip()
    return values


def collect_values(existing: Dict[str, str]) -> Dict[str, str]:
    values: Dict[str, str] = {}

    env_default = existing.get("APP_ENV") or "development"
    app_env = typer.prompt("APP_ENV", default=env_default).strip() or env_default
    values["APP_ENV"] = app_env

    debug_default = bool_from_env(existing.get("DEBUG"), app_env not in {"prod", "production"})
    values["DEBUG"] = "true" if typer.confirm("¿Activar modo DEBUG?", default=debug_default) else "false"
    values["LOG_LEVEL"] = typer.prompt("LOG_LEVEL", default=existing.get("LOG_LEVEL") or "INFO").strip().upper()

    values["SECRET_KEY"] = _prompt_secret(existing.get("SECRET_KEY"))
    values["ACCESS_TOKEN_EXPIRE_MINUTES"] = typer.prompt(
        "ACCESS_TOKEN_EXPIRE_MINUTES",
        default=existing.get("ACCESS_TOKEN_EXPIRE_MINUTES") or "1440",
    ).strip()

    values["DATABASE_URL"] = _prompt_database_url(existing.get("DATABASE_URL"))
    values["CORS_ORIGINS"] = typer.prompt(
        "CORS_ORIGINS (separados por coma)",
        default=existing.get("CORS_ORIGINS") or "http://localhost:5173,http://localhost:3000",
    ).strip()

    rate_limit = typer.confirm(
        "¿Limitar solicitudes por IP en /api/?",
        default=bool_from_env(existing.get("RATE_LIMIT_ENABLED"), True),
    )
    values["RATE_LIMIT_ENABLED"] = "true" if rate_limit else "false"

    values.update(_prompt_rabbitmq(existing))
    values.update(_prompt_email(existing))
    return values


def write_env_file(path: Path, managed_values: Dict[str, str], previous_values: Dict[str, str]) -> None:
    """Write *managed_values* first and keep any unknown keys from the old file."""
    extras = {k: v for k, v in previous_values.items() if k not in managed_values}

    lines = [
        "# Archivo generado por backend/scripts/configure_env.py",
        f"# {datetime.now(timezone.utc).isoformat()}",
        "",
    ]
    lines.extend(f"{key}={format_env_value(value)}" for key, value in managed_values.items())

    if extras:
        lines.extend(["", "# Variables adicionales preservadas"])
        lines.extend(f"{key}={format_env_value(extras[key])}" for key in sorted(extras))

    lines.append("")
    path.write_text("\n".join(lines), encoding="utf-8")


@APP.command()
def run(env_path: Path = typer.Option(ENV_PATH, help="Archivo .env a crear o actualizar")) -> None:
    typer.secho("Configurador interactivo de .env", fg=typer.colors.CYAN, bold=True)
    typer.echo(f"Ubicación destino: {env_path}")
    existing = load_existing_env(env_path)
    if existing:
        typer.echo("Se detectó un .env existente; solo se actualizan las claves gestionadas.")

    values = collect_values(existing)

    typer.echo("")
    typer.echo("Valores propuestos:")
    for key, value in values.items():
        masked = "********" if key in SECRET_KEYS and value else value
        typer.echo(f"  - {key}: {masked}")

    if not typer.confirm("¿Guardar estos cambios en el .env?", default=True):
        typer.echo("No se realizaron modificaciones.")
        raise typer.Exit(code=0)

    write_env_file(env_path, values, existing)
    typer.secho("Archivo .env actualizado correctamente.", fg=typer.colors.GREEN)


if __name__ == "__main__":
    APP()
