"""
Initial schema for the academic organizer

Revision ID: 0001_initial_schema
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "0001_initial_schema"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


tipo_profesor_enum = sa.Enum("profesor", "asistente", name="tipoprofesorenum")
tipo_clase_enum = sa.Enum("teorica", "practica", "laboratorio", name="tipoclaseenum")
tipo_reunion_enum = sa.Enum("zoom", "meet", "teams", "otro", name="tiporeunionenum")
tipo_contenido_enum = sa.Enum("teoria", "practica", "laboratorio", "evaluacion", name="tipocontenidoenum")
tipo_evaluacion_enum = sa.Enum("parcial", "final", "trabajo_practico", "laboratorio", name="tipoevaluacionenum")
frecuencia_email_enum = sa.Enum("inmediata", "diaria", "semanal", name="frecuenciaemailenum")


def _timestamps():
    return [
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    ]


def upgrade() -> None:
    op.create_table(
        "usuarios",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("email", sa.String(), nullable=False),
        sa.Column("password", sa.String(), nullable=False),
        sa.Column("nombre", sa.String(), nullable=False),
        sa.Column("apellido", sa.String(), nullable=False),
        sa.Column("rol", sa.String(), nullable=False),
        sa.Column("activo", sa.Boolean(), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_usuarios_email", "usuarios", ["email"], unique=True)
    op.create_index("ix_usuarios_rol", "usuarios", ["rol"])
    op.create_index("ix_usuarios_created_at", "usuarios", ["created_at"])

    op.create_table(
        "profesores",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("nombre", sa.String(length=100), nullable=False),
        sa.Column("apellido", sa.String(length=100), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("tipo", tipo_profesor_enum, nullable=False),
        sa.Column("telefono", sa.String(length=30), nullable=True),
        sa.Column("activo", sa.Boolean(), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_profesores_email", "profesores", ["email"], unique=True)
    op.create_index("ix_profesores_created_at", "profesores", ["created_at"])

    op.create_table(
        "materias",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("nombre", sa.String(length=150), nullable=False),
        sa.Column("codigo", sa.String(length=20), nullable=False),
        sa.Column("descripcion", sa.String(), nullable=True),
        sa.Column("creditos", sa.Integer(), nullable=False),
        sa.Column("activo", sa.Boolean(), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_materias_codigo", "materias", ["codigo"], unique=True)
    op.create_index("ix_materias_created_at", "materias", ["created_at"])

    op.create_table(
        "comisiones",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("materia_id", sa.Integer(), nullable=False),
        sa.Column("nombre", sa.String(length=50), nullable=False),
        sa.Column("capacidad", sa.Integer(), nullable=False),
        sa.Column("activo", sa.Boolean(), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(["materia_id"], ["materias.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_comisiones_materia_id", "comisiones", ["materia_id"])
    op.create_index("ix_comisiones_created_at", "comisiones", ["created_at"])

    op.create_table(
        "horarios",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("materia_id", sa.Integer(), nullable=False),
        sa.Column("comision_id", sa.Integer(), nullable=False),
        sa.Column("profesor_id", sa.Integer(), nullable=False),
        sa.Column("dia_semana", sa.Integer(), nullable=False),
        sa.Column("hora_inicio", sa.String(length=5), nullable=False),
        sa.Column("hora_fin", sa.String(length=5), nullable=False),
        sa.Column("tipo_clase", tipo_clase_enum, nullable=False),
        sa.Column("link_reunion", sa.String(), nullable=True),
        sa.Column("tipo_reunion", tipo_reunion_enum, nullable=True),
        sa.Column("link_grabacion", sa.String(), nullable=True),
        sa.Column("activo", sa.Boolean(), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(["materia_id"], ["materias.id"]),
        sa.ForeignKeyConstraint(["comision_id"], ["comisiones.id"]),
        sa.ForeignKeyConstraint(["profesor_id"], ["profesores.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_horarios_materia_id", "horarios", ["materia_id"])
    op.create_index("ix_horarios_comision_id", "horarios", ["comision_id"])
    op.create_index("ix_horarios_profesor_id", "horarios", ["profesor_id"])
    op.create_index("ix_horarios_dia_semana", "horarios", ["dia_semana"])
    op.create_index("ix_horarios_created_at", "horarios", ["created_at"])

    op.create_table(
        "contenidos",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("materia_id", sa.Integer(), nullable=False),
        sa.Column("titulo", sa.String(length=200), nullable=False),
        sa.Column("descripcion", sa.String(), nullable=True),
        sa.Column("semana", sa.Integer(), nullable=False),
        sa.Column("orden", sa.Integer(), nullable=False),
        sa.Column("tipo_contenido", tipo_contenido_enum, nullable=False),
        sa.Column("link_contenido", sa.String(), nullable=True),
        sa.Column("archivo_adjunto", sa.String(), nullable=True),
        sa.Column("activo", sa.Boolean(), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(["materia_id"], ["materias.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_contenidos_materia_id", "contenidos", ["materia_id"])
    op.create_index("ix_contenidos_semana", "contenidos", ["semana"])
    op.create_index("ix_contenidos_created_at", "contenidos", ["created_at"])

    op.create_table(
        "evaluaciones",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("materia_id", sa.Integer(), nullable=False),
        sa.Column("titulo", sa.String(length=200), nullable=False),
        sa.Column("descripcion", sa.String(), nullable=True),
        sa.Column("tipo_evaluacion", tipo_evaluacion_enum, nullable=False),
        sa.Column("fecha_evaluacion", sa.Date(), nullable=False),
        sa.Column("hora_inicio", sa.String(length=5), nullable=True),
        sa.Column("hora_fin", sa.String(length=5), nullable=True),
        sa.Column("peso", sa.Float(), nullable=False),
        sa.Column("link_evaluacion", sa.String(), nullable=True),
        sa.Column("activo", sa.Boolean(), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(["materia_id"], ["materias.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_evaluaciones_materia_id", "evaluaciones", ["materia_id"])
    op.create_index("ix_evaluaciones_fecha_evaluacion", "evaluaciones", ["fecha_evaluacion"])
    op.create_index("ix_evaluaciones_created_at", "evaluaciones", ["created_at"])

    op.create_table(
        "notas",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("usuario_id", sa.Integer(), nullable=False),
        sa.Column("evaluacion_id", sa.Integer(), nullable=False),
        sa.Column("nota", sa.Float(), nullable=False),
        sa.Column("comentarios", sa.String(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["usuario_id"], ["usuarios.id"]),
        sa.ForeignKeyConstraint(["evaluacion_id"], ["evaluaciones.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("usuario_id", "evaluacion_id", name="uq_nota_usuario_evaluacion"),
    )
    op.create_index("ix_notas_usuario_id", "notas", ["usuario_id"])
    op.create_index("ix_notas_evaluacion_id", "notas", ["evaluacion_id"])

    op.create_table(
        "notificaciones",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("usuario_id", sa.Integer(), nullable=False),
        sa.Column("tipo", sa.String(), nullable=False),
        sa.Column("titulo", sa.String(), nullable=False),
        sa.Column("mensaje", sa.String(), nullable=False),
        sa.Column("data", sa.JSON(), nullable=True),
        sa.Column("leida", sa.Boolean(), nullable=False),
        sa.Column("enviada_email", sa.Boolean(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["usuario_id"], ["usuarios.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_notificaciones_usuario_id", "notificaciones", ["usuario_id"])
    op.create_index("ix_notificaciones_tipo", "notificaciones", ["tipo"])
    op.create_index("ix_notificaciones_leida", "notificaciones", ["leida"])
    op.create_index("ix_notificaciones_created_at", "notificaciones", ["created_at"])

    op.create_table(
        "configuracion_notificaciones",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("usuario_id", sa.Integer(), nullable=False),
        sa.Column("notificar_contenidos", sa.Boolean(), nullable=False),
        sa.Column("notificar_evaluaciones", sa.Boolean(), nullable=False),
        sa.Column("notificar_recordatorios", sa.Boolean(), nullable=False),
        sa.Column("frecuencia_email", frecuencia_email_enum, nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(["usuario_id"], ["usuarios.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_configuracion_notificaciones_usuario_id",
        "configuracion_notificaciones",
        ["usuario_id"],
        unique=True,
    )

    op.create_table(
        "objetivos_materia",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("materia_id", sa.Integer(), nullable=False),
        sa.Column("descripcion", sa.String(), nullable=False),
        sa.Column("orden", sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(["materia_id"], ["materias.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_objetivos_materia_materia_id", "objetivos_materia", ["materia_id"])

    op.create_table(
        "recursos_materia",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("materia_id", sa.Integer(), nullable=False),
        sa.Column("titulo", sa.String(), nullable=False),
        sa.Column("url", sa.String(), nullable=True),
        sa.Column("tipo", sa.String(), nullable=True),
        sa.Column("orden", sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(["materia_id"], ["materias.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_recursos_materia_materia_id", "recursos_materia", ["materia_id"])


def downgrade() -> None:
    for table in (
        "recursos_materia",
        "objetivos_materia",
        "configuracion_notificaciones",
        "notificaciones",
        "notas",
        "evaluaciones",
        "contenidos",
        "horarios",
        "comisiones",
        "materias",
        "profesores",
        "usuarios",
    ):
        op.drop_table(table)

    bind = op.get_bind()
    for enum in (
        frecuencia_email_enum,
        tipo_evaluacion_enum,
        tipo_contenido_enum,
        tipo_reunion_enum,
        tipo_clase_enum,
        tipo_profesor_enum,
    ):
        enum.drop(bind, checkfirst=True)
