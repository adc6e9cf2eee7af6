from datetime import datetime, date, timezone
from typing import Any, Dict, Optional
from enum import Enum
from sqlalchemy import Column, JSON, UniqueConstraint
from sqlmodel import SQLModel, Field


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class Timestamped(SQLModel):
    created_at: datetime = Field(default_factory=utc_now, nullable=False, index=True)
    updated_at: datetime = Field(default_factory=utc_now, nullable=False)


# Enums del dominio académico
class RolEnum(str, Enum):
    estudiante = "estudiante"
    profesor = "profesor"
    admin = "admin"


class TipoProfesorEnum(str, Enum):
    profesor = "profesor"
    asistente = "asistente"


class TipoClaseEnum(str, Enum):
    teorica = "teorica"
    practica = "practica"
    laboratorio = "laboratorio"


class TipoReunionEnum(str, Enum):
    zoom = "zoom"
    meet = "meet"
    teams = "teams"
    otro = "otro"


class TipoContenidoEnum(str, Enum):
    teoria = "teoria"
    practica = "practica"
    laboratorio = "laboratorio"
    evaluacion = "evaluacion"


class TipoEvaluacionEnum(str, Enum):
    parcial = "parcial"
    final = "final"
    trabajo_practico = "trabajo_practico"
    laboratorio = "laboratorio"


class FrecuenciaEmailEnum(str, Enum):
    inmediata = "inmediata"
    diaria = "diaria"
    semanal = "semanal"


class Usuario(Timestamped, table=True):
    __tablename__ = "usuarios"

    id: Optional[int] = Field(default=None, primary_key=True)
    email: str = Field(index=True, unique=True)
    password: str  # hash bcrypt
    nombre: str
    apellido: str
    rol: str = Field(default=RolEnum.estudiante.value, index=True)  # estudiante, profesor, admin
    activo: bool = Field(default=True)


class ProfesorBase(SQLModel):
    nombre: str = Field(min_length=1, max_length=100)
    apellido: str = Field(min_length=1, max_length=100)
    email: str = Field(index=True, unique=True, max_length=255)
    tipo: TipoProfesorEnum = TipoProfesorEnum.profesor
    telefono: Optional[str] = Field(default=None, max_length=30)
    activo: bool = True


class Profesor(ProfesorBase, Timestamped, table=True):
    __tablename__ = "profesores"

    id: Optional[int] = Field(default=None, primary_key=True)


class MateriaBase(SQLModel):
    nombre: str = Field(min_length=1, max_length=150)
    codigo: str = Field(index=True, unique=True, min_length=1, max_length=20)
    descripcion: Optional[str] = None
    creditos: int = Field(default=3, ge=0)
    activo: bool = True


class Materia(MateriaBase, Timestamped, table=True):
    __tablename__ = "materias"

    id: Optional[int] = Field(default=None, primary_key=True)


class ComisionBase(SQLModel):
    materia_id: int = Field(foreign_key="materias.id", index=True)
    nombre: str = Field(min_length=1, max_length=50)
    capacidad: int = Field(default=30, ge=1)
    activo: bool = True


class Comision(ComisionBase, Timestamped, table=True):
    __tablename__ = "comisiones"

    id: Optional[int] = Field(default=None, primary_key=True)


class HorarioBase(SQLModel):
    materia_id: int = Field(foreign_key="materias.id", index=True)
    comision_id: int = Field(foreign_key="comisiones.id", index=True)
    profesor_id: int = Field(foreign_key="profesores.id", index=True)
    dia_semana: int = Field(ge=1, le=7, index=True)  # 1 = lunes ... 7 = domingo
    hora_inicio: str = Field(max_length=5)  # HH:MM
    hora_fin: str = Field(max_length=5)
    tipo_clase: TipoClaseEnum = TipoClaseEnum.teorica
    link_reunion: Optional[str] = None
    tipo_reunion: Optional[TipoReunionEnum] = Field(default=None, sa_column_kwargs={"nullable": True})
    link_grabacion: Optional[str] = None
    activo: bool = True


class Horario(HorarioBase, Timestamped, table=True):
    __tablename__ = "horarios"

    id: Optional[int] = Field(default=None, primary_key=True)


class ContenidoBase(SQLModel):
    materia_id: int = Field(foreign_key="materias.id", index=True)
    titulo: str = Field(min_length=1, max_length=200)
    descripcion: Optional[str] = None
    semana: int = Field(ge=1, index=True)
    orden: int = 0
    tipo_contenido: TipoContenidoEnum = TipoContenidoEnum.teoria
    link_contenido: Optional[str] = None
    archivo_adjunto: Optional[str] = None
    activo: bool = True


class Contenido(ContenidoBase, Timestamped, table=True):
    __tablename__ = "contenidos"

    id: Optional[int] = Field(default=None, primary_key=True)


class EvaluacionBase(SQLModel):
    materia_id: int = Field(foreign_key="materias.id", index=True)
    titulo: str = Field(min_length=1, max_length=200)
    descripcion: Optional[str] = None
    tipo_evaluacion: TipoEvaluacionEnum
    fecha_evaluacion: date = Field(index=True)
    hora_inicio: Optional[str] = Field(default=None, max_length=5)
    hora_fin: Optional[str] = Field(default=None, max_length=5)
    peso: float = Field(default=1.0, ge=0, le=1)
    link_evaluacion: Optional[str] = None
    activo: bool = True


class Evaluacion(EvaluacionBase, Timestamped, table=True):
    __tablename__ = "evaluaciones"

    id: Optional[int] = Field(default=None, primary_key=True)


class Nota(SQLModel, table=True):
    __tablename__ = "notas"
    __table_args__ = (UniqueConstraint("usuario_id", "evaluacion_id", name="uq_nota_usuario_evaluacion"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    usuario_id: int = Field(foreign_key="usuarios.id", index=True)
    evaluacion_id: int = Field(foreign_key="evaluaciones.id", index=True)
    nota: float = Field(ge=0, le=10)
    comentarios: Optional[str] = None
    created_at: datetime = Field(default_factory=utc_now, nullable=False)


class Notificacion(SQLModel, table=True):
    __tablename__ = "notificaciones"

    id: Optional[int] = Field(default=None, primary_key=True)
    usuario_id: int = Field(foreign_key="usuarios.id", index=True)
    tipo: str = Field(index=True)  # contenido, evaluacion, recordatorio, materia_creada, info...
    titulo: str
    mensaje: str
    data: Optional[Dict[str, Any]] = Field(default=None, sa_column=Column(JSON, nullable=True))
    leida: bool = Field(default=False, index=True)
    enviada_email: bool = False
    created_at: datetime = Field(default_factory=utc_now, nullable=False, index=True)


class ConfiguracionNotificaciones(SQLModel, table=True):
    __tablename__ = "configuracion_notificaciones"

    id: Optional[int] = Field(default=None, primary_key=True)
    usuario_id: int = Field(foreign_key="usuarios.id", unique=True, index=True)
    notificar_contenidos: bool = True
    notificar_evaluaciones: bool = True
    notificar_recordatorios: bool = True
    frecuencia_email: FrecuenciaEmailEnum = FrecuenciaEmailEnum.diaria
    created_at: datetime = Field(default_factory=utc_now, nullable=False)
    updated_at: datetime = Field(default_factory=utc_now, nullable=False)


class ObjetivoMateria(SQLModel, table=True):
    __tablename__ = "objetivos_materia"

    id: Optional[int] = Field(default=None, primary_key=True)
    materia_id: int = Field(foreign_key="materias.id", index=True)
    descripcion: str
    orden: int = 0


class RecursoMateria(SQLModel, table=True):
    __tablename__ = "recursos_materia"

    id: Optional[int] = Field(default=None, primary_key=True)
    materia_id: int = Field(foreign_key="materias.id", index=True)
    titulo: str
    url: Optional[str] = None
    tipo: Optional[str] = None
    orden: int = 0
