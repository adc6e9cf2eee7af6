from __future__ import annotations

import logging
import os
from datetime import date, timedelta
from typing import Dict, List, Optional

from sqlmodel import Session, select

from .db import engine
from .models import (
    Comision,
    ConfiguracionNotificaciones,
    Contenido,
    Evaluacion,
    Horario,
    Materia,
    ObjetivoMateria,
    Profesor,
    RecursoMateria,
    RolEnum,
    TipoClaseEnum,
    TipoContenidoEnum,
    TipoEvaluacionEnum,
    TipoProfesorEnum,
    Usuario,
)
from .security import get_password_hash

logger = logging.getLogger(__name__)


DEFAULT_ADMIN_EMAIL = os.getenv("ADMIN_EMAIL", "admin@tupad.edu.ar")
DEFAULT_ADMIN_PASSWORD = os.getenv("ADMIN_PASSWORD", "AdminTupad2024!")
DEFAULT_ADMIN_NOMBRE = "Administrador"
DEFAULT_ADMIN_APELLIDO = "TUPAD"


def ensure_notification_config(session: Session, usuario_id: int) -> ConfiguracionNotificaciones:
    config = session.exec(
        select(ConfiguracionNotificaciones).where(ConfiguracionNotificaciones.usuario_id == usuario_id)
    ).first()
    if config:
        return config
    config = ConfiguracionNotificaciones(usuario_id=usuario_id)
    session.add(config)
    session.commit()
    session.refresh(config)
    return config


def ensure_default_admin(session: Optional[Session] = None) -> Usuario:
    """Create the default administrator if it does not exist yet."""
    owns_session = session is None
    session = session or Session(engine)
    try:
        existing = session.exec(select(Usuario).where(Usuario.email == DEFAULT_ADMIN_EMAIL)).first()
        if existing:
            updated = False
            if existing.rol != RolEnum.admin.value:
                existing.rol = RolEnum.admin.value
                updated = True
            if not existing.activo:
                existing.activo = True
                updated = True
            if updated:
                session.add(existing)
                session.commit()
                session.refresh(existing)
            ensure_notification_config(session, existing.id)
            session.refresh(existing)
            return existing
        user = Usuario(
            email=DEFAULT_ADMIN_EMAIL,
            password=get_password_hash(DEFAULT_ADMIN_PASSWORD),
            nombre=DEFAULT_ADMIN_NOMBRE,
            apellido=DEFAULT_ADMIN_APELLIDO,
            rol=RolEnum.admin.value,
            activo=True,
        )
        session.add(user)
        session.commit()
        session.refresh(user)
        ensure_notification_config(session, user.id)
        session.refresh(user)
        logger.info("Administrador por defecto creado: %s", DEFAULT_ADMIN_EMAIL)
        return user
    finally:
        if owns_session:
            session.close()


def ensure_demo_data() -> None:
    """Populate the catalog tables with deterministic demo data.

    Every step looks rows up by a natural key first, so running it twice
    leaves the database unchanged.
    """
    with Session(engine) as session:
        ensure_default_admin(session)
        materias = _ensure_materias(session)
        profesores = _ensure_profesores(session)
        comisiones = _ensure_comisiones(session, materias)
        _ensure_horarios(session, materias, comisiones, profesores)
        _ensure_contenidos(session, materias)
        _ensure_evaluaciones(session, materias)
        _ensure_objetivos_y_recursos(session, materias)
    logger.info("Datos de demostración verificados")


def _ensure_materias(session: Session) -> Dict[str, Materia]:
    data = [
        {"nombre": "Matemática I", "codigo": "MAT101", "descripcion": "Fundamentos de matemática", "creditos": 6},
        {"nombre": "Programación I", "codigo": "PROG101", "descripcion": "Introducción a la programación", "creditos": 6},
        {"nombre": "Física I", "codigo": "FIS101", "descripcion": "Fundamentos de física", "creditos": 6},
    ]
    result: Dict[str, Materia] = {}
    for item in data:
        materia = session.exec(select(Materia).where(Materia.codigo == item["codigo"])).first()
        if not materia:
            materia = Materia(**item)
            session.add(materia)
            session.commit()
            session.refresh(materia)
        result[item["codigo"]] = materia
    return result


def _ensure_profesores(session: Session) -> Dict[str, Profesor]:
    data = [
        {"nombre": "Juan", "apellido": "Pérez", "email": "juan.perez@tupad.edu.ar", "tipo": TipoProfesorEnum.profesor},
        {"nombre": "María", "apellido": "González", "email": "maria.gonzalez@tupad.edu.ar", "tipo": TipoProfesorEnum.profesor},
        {"nombre": "Carlos", "apellido": "López", "email": "carlos.lopez@tupad.edu.ar", "tipo": TipoProfesorEnum.asistente},
    ]
    result: Dict[str, Profesor] = {}
    for item in data:
        profesor = session.exec(select(Profesor).where(Profesor.email == item["email"])).first()
        if not profesor:
            profesor = Profesor(**item)
            session.add(profesor)
            session.commit()
            session.refresh(profesor)
        result[item["email"]] = profesor
    return result


def _ensure_comisiones(session: Session, materias: Dict[str, Materia]) -> Dict[tuple, Comision]:
    capacidades = {"MAT101": 30, "PROG101": 25, "FIS101": 35}
    result: Dict[tuple, Comision] = {}
    for codigo, capacidad in capacidades.items():
        materia = materias[codigo]
        for nombre in ("Comisión A", "Comisión B"):
            comision = session.exec(
                select(Comision).where(Comision.materia_id == materia.id, Comision.nombre == nombre)
            ).first()
            if not comision:
                comision = Comision(materia_id=materia.id, nombre=nombre, capacidad=capacidad)
                session.add(comision)
                session.commit()
                session.refresh(comision)
            result[(codigo, nombre)] = comision
    return result


def _ensure_horarios(
    session: Session,
    materias: Dict[str, Materia],
    comisiones: Dict[tuple, Comision],
    profesores: Dict[str, Profesor],
) -> None:
    data = [
        ("MAT101", "juan.perez@tupad.edu.ar", 1, "08:00", "10:00", TipoClaseEnum.teorica),
        ("MAT101", "juan.perez@tupad.edu.ar", 3, "10:00", "12:00", TipoClaseEnum.practica),
        ("PROG101", "maria.gonzalez@tupad.edu.ar", 2, "14:00", "16:00", TipoClaseEnum.teorica),
        ("PROG101", "maria.gonzalez@tupad.edu.ar", 4, "16:00", "18:00", TipoClaseEnum.laboratorio),
        ("FIS101", "carlos.lopez@tupad.edu.ar", 5, "09:00", "11:00", TipoClaseEnum.teorica),
        ("FIS101", "carlos.lopez@tupad.edu.ar", 6, "11:00", "13:00", TipoClaseEnum.practica),
    ]
    for codigo, email, dia, inicio, fin, tipo in data:
        materia = materias[codigo]
        comision = comisiones[(codigo, "Comisión A")]
        existing = session.exec(
            select(Horario).where(
                Horario.materia_id == materia.id,
                Horario.dia_semana == dia,
                Horario.hora_inicio == inicio,
            )
        ).first()
        if existing:
            continue
        session.add(
            Horario(
                materia_id=materia.id,
                comision_id=comision.id,
                profesor_id=profesores[email].id,
                dia_semana=dia,
                hora_inicio=inicio,
                hora_fin=fin,
                tipo_clase=tipo,
            )
        )
    session.commit()


def _ensure_contenidos(session: Session, materias: Dict[str, Materia]) -> None:
    data = [
        ("MAT101", "Introducción a los números reales", "Conceptos básicos de números reales y sus propiedades", 1),
        ("MAT101", "Operaciones con números reales", "Suma, resta, multiplicación y división", 2),
        ("PROG101", "Introducción a la programación", "Conceptos básicos de programación y algoritmos", 1),
        ("PROG101", "Variables y tipos de datos", "Tipos de datos básicos y declaración de variables", 2),
        ("FIS101", "Introducción a la física", "Conceptos fundamentales de la física", 1),
        ("FIS101", "Medición y unidades", "Sistema internacional de unidades", 2),
    ]
    for codigo, titulo, descripcion, semana in data:
        materia = materias[codigo]
        existing = session.exec(
            select(Contenido).where(Contenido.materia_id == materia.id, Contenido.titulo == titulo)
        ).first()
        if existing:
            continue
        session.add(
            Contenido(
                materia_id=materia.id,
                titulo=titulo,
                descripcion=descripcion,
                semana=semana,
                tipo_contenido=TipoContenidoEnum.teoria,
            )
        )
    session.commit()


def _ensure_evaluaciones(session: Session, materias: Dict[str, Materia]) -> None:
    today = date.today()
    data = [
        ("MAT101", "Primer Parcial", "Evaluación de números reales y operaciones básicas", TipoEvaluacionEnum.parcial, 14, 0.3),
        ("MAT101", "Examen Final", "Evaluación integral de la materia", TipoEvaluacionEnum.final, 90, 0.7),
        ("PROG101", "Primer Parcial", "Evaluación de conceptos básicos de programación", TipoEvaluacionEnum.parcial, 19, 0.3),
        ("PROG101", "Proyecto Final", "Desarrollo de una aplicación completa", TipoEvaluacionEnum.trabajo_practico, 95, 0.7),
        ("FIS101", "Primer Parcial", "Evaluación de conceptos fundamentales de física", TipoEvaluacionEnum.parcial, 24, 0.3),
        ("FIS101", "Examen Final", "Evaluación integral de la materia", TipoEvaluacionEnum.final, 100, 0.7),
    ]
    for codigo, titulo, descripcion, tipo, offset_days, peso in data:
        materia = materias[codigo]
        existing = session.exec(
            select(Evaluacion).where(Evaluacion.materia_id == materia.id, Evaluacion.titulo == titulo)
        ).first()
        if existing:
            continue
        session.add(
            Evaluacion(
                materia_id=materia.id,
                titulo=titulo,
                descripcion=descripcion,
                tipo_evaluacion=tipo,
                fecha_evaluacion=today + timedelta(days=offset_days),
                peso=peso,
            )
        )
    session.commit()


def _ensure_objetivos_y_recursos(session: Session, materias: Dict[str, Materia]) -> None:
    objetivos: Dict[str, List[str]] = {
        "MAT101": ["Comprender las propiedades de los números reales", "Resolver ecuaciones e inecuaciones"],
        "PROG101": ["Diseñar algoritmos simples", "Escribir programas estructurados"],
        "FIS101": ["Aplicar el sistema internacional de unidades", "Analizar problemas de cinemática"],
    }
    for codigo, descripciones in objetivos.items():
        materia = materias[codigo]
        if session.exec(select(ObjetivoMateria).where(ObjetivoMateria.materia_id == materia.id)).first():
            continue
        for orden, descripcion in enumerate(descripciones, start=1):
            session.add(ObjetivoMateria(materia_id=materia.id, descripcion=descripcion, orden=orden))
        session.add(
            RecursoMateria(
                materia_id=materia.id,
                titulo=f"Programa de {materia.nombre}",
                tipo="documento",
                orden=1,
            )
        )
    session.commit()
