import math
from typing import Any, Callable, Dict

from fastapi import Query
from sqlalchemy import func
from sqlmodel import select

MAX_LIMIT = 100


class PageParams:
    def __init__(self, page: int, limit: int):
        self.page = page
        self.limit = limit

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit


def page_params(default_limit: int) -> Callable[..., PageParams]:
    """Dependency factory for ``page``/``limit`` query parameters."""

    def _inner(
        page: int = Query(1, ge=1, description="Página (desde 1)"),
        limit: int = Query(default_limit, ge=1, le=MAX_LIMIT, description="Elementos por página"),
    ) -> PageParams:
        return PageParams(page, limit)

    return _inner


def build_pagination(page: int, limit: int, total: int) -> Dict[str, int]:
    return {
        "page": page,
        "limit": limit,
        "total": total,
        "pages": math.ceil(total / limit) if limit else 0,
    }


def count_rows(session, statement) -> int:
    subquery = statement.order_by(None).subquery()
    return int(session.exec(select(func.count()).select_from(subquery)).one())


def paginate(session, statement, params: PageParams) -> tuple[list[Any], Dict[str, int]]:
    total = count_rows(session, statement)
    rows = session.exec(statement.offset(params.offset).limit(params.limit)).all()
    return list(rows), build_pagination(params.page, params.limit, total)
