"""Helpers to apply partial updates on SQLModel instances and report what changed.

Incoming payloads are cast back to the python types declared in the model
(``date``, enums, ...) before being compared or assigned, so that an ISO
string never ends up in a date column and an unchanged enum is not reported
as a modification.
"""

from __future__ import annotations

from typing import Any, Dict, Type, TypeVar, Union, get_args, get_origin

from fastapi.encoders import jsonable_encoder
from pydantic import TypeAdapter, ValidationError
from sqlmodel import SQLModel

from ..models import utc_now


TModel = TypeVar("TModel", bound=SQLModel)

_PROTECTED_FIELDS = {"id", "created_at", "updated_at"}


def _coerce_field_value(model: Type[TModel], field_name: str, value: Any) -> Any:
    if value is None:
        return None

    field = model.model_fields.get(field_name)
    if field is None:
        return value

    adapter = TypeAdapter(field.annotation)
    try:
        return adapter.validate_python(value)
    except ValidationError:
        return value


def _accepts_none(model: Type[TModel], field_name: str) -> bool:
    field = model.model_fields.get(field_name)
    if field is None:
        return True
    annotation = field.annotation
    return annotation is type(None) or (get_origin(annotation) is Union and type(None) in get_args(annotation))


def normalize_payload_for_model(model: Type[TModel], data: Dict[str, Any]) -> Dict[str, Any]:
    """Return a copy of *data* with values coerced to ``model`` field types."""

    coerced: Dict[str, Any] = {}
    for key, value in data.items():
        if key in _PROTECTED_FIELDS:
            continue
        if value is None and not _accepts_none(model, key):
            # Columnas obligatorias: un null explícito se ignora
            continue
        coerced[key] = _coerce_field_value(model, key, value)
    return coerced


def diff_fields(instance: TModel, data: Dict[str, Any]) -> Dict[str, Dict[str, Any]]:
    """Describe which fields of *instance* would change with *data*.

    The result maps each modified field to ``{"anterior": ..., "nuevo": ...}``
    using JSON friendly values.
    """

    cambios: Dict[str, Dict[str, Any]] = {}
    coerced = normalize_payload_for_model(type(instance), data)
    for key, nuevo in coerced.items():
        if not hasattr(instance, key):
            continue
        anterior = getattr(instance, key)
        if jsonable_encoder(anterior) == jsonable_encoder(nuevo):
            continue
        cambios[key] = {"anterior": jsonable_encoder(anterior), "nuevo": jsonable_encoder(nuevo)}
    return cambios


def apply_partial_update(instance: TModel, data: Dict[str, Any]) -> Dict[str, Dict[str, Any]]:
    """Assign the changed values of *data* into *instance*.

    Returns the same mapping as :func:`diff_fields` so routers can decide
    whether a change notification is needed.
    """

    cambios = diff_fields(instance, data)
    if not cambios:
        return cambios
    coerced = normalize_payload_for_model(type(instance), {key: data[key] for key in cambios})
    for key, value in coerced.items():
        setattr(instance, key, value)
    if hasattr(instance, "updated_at"):
        instance.updated_at = utc_now()
    return cambios
