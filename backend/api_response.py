"""Success envelopes shared by the routers"""

import math
from typing import Any, Iterable, Optional, Type

from fastapi import Response
from pydantic import BaseModel

from schemas import Pagination


def pagination(page: int, limit: int, total: int) -> Pagination:
    return Pagination(page=page, limit=limit, total=total, pages=math.ceil(total / limit) if limit else 0)


def success(data: Any = None, message: Optional[str] = None) -> dict:
    body = {"success": True, "data": data}
    if message:
        body["message"] = message
    return body


def paginated(items: Iterable, page: int, limit: int, total: int, schema: Type[BaseModel] = None) -> dict:
    """List envelope; ORM rows are converted through schema when given"""
    if schema is not None:
        items = [schema.model_validate(item) for item in items]
    return {
        "success": True,
        "data": list(items),
        "pagination": pagination(page, limit, total),
    }


def pdf(content: bytes, filename: str) -> Response:
    return Response(
        content=content,
        media_type="application/pdf",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'}
    )
