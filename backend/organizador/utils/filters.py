"""Building blocks for list endpoints that accept optional query filters.

Every helper returns either a SQLAlchemy condition or ``None`` when the filter
was not supplied; :func:`apply_filters` skips the ``None`` values, so the
resulting statement only carries the conditions the caller asked for. Values
always travel as bound parameters.
"""

from typing import Any, Optional

from sqlalchemy import String, func, or_


CREDIT_RANGES = {
    "1-3": (1, 3),
    "4-6": (4, 6),
    "7-9": (7, 9),
}


def apply_filters(statement, *conditions):
    for condition in conditions:
        if condition is not None:
            statement = statement.where(condition)
    return statement


def eq(column, value: Any):
    if value is None:
        return None
    return column == value


def since(column, value: Any):
    if value is None:
        return None
    return column >= value


def until(column, value: Any):
    if value is None:
        return None
    return column <= value


def contains(column, text: Optional[str]):
    if text is None or not text.strip():
        return None
    return func.lower(column, type_=String).contains(text.strip().lower(), autoescape=True)


def search_any(text: Optional[str], *columns):
    """LIKE over several columns joined with OR."""
    if text is None or not text.strip():
        return None
    return or_(*(contains(column, text) for column in columns))


def creditos_condition(column, rango: Optional[str]):
    if not rango:
        return None
    if rango == "10+":
        return column >= 10
    bounds = CREDIT_RANGES.get(rango)
    if bounds is None:
        return None
    return column.between(*bounds)
