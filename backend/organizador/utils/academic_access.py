from typing import Optional

from fastapi import HTTPException, status
from sqlmodel import select

from ..models import Comision, Materia, Profesor, RolEnum, Usuario


def get_materia_or_404(session, materia_id: int) -> Materia:
    materia = session.get(Materia, materia_id)
    if not materia:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Materia no encontrada")
    return materia


def require_active_materia(session, materia_id: int) -> Materia:
    """Lookup used when a write references a materia; a missing one is a bad request."""
    materia = session.get(Materia, materia_id)
    if not materia or not materia.activo:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Materia no encontrada")
    return materia


def require_comision_for_materia(session, comision_id: int, materia_id: int) -> Comision:
    comision = session.get(Comision, comision_id)
    if not comision or comision.materia_id != materia_id or not comision.activo:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Comisión no encontrada para esta materia")
    return comision


def require_active_profesor(session, profesor_id: int) -> Profesor:
    profesor = session.get(Profesor, profesor_id)
    if not profesor or not profesor.activo:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Profesor no encontrado")
    return profesor


def profesor_user_id(session, profesor: Profesor) -> Optional[int]:
    """Id of the user account that shares the profesor's email, if any."""
    usuario = session.exec(
        select(Usuario).where(Usuario.email == profesor.email, Usuario.activo == True)  # noqa: E712
    ).first()
    return usuario.id if usuario else None


def ensure_can_read_notas(user: Usuario, usuario_id: int) -> None:
    if user.rol == RolEnum.estudiante.value and user.id != usuario_id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Sólo puedes consultar tus propias notas")
