"""Filtering, sorting and pagination for prompt listings.

The store's listing primitives build a ``Query`` over live (non-retired)
records and hand it here to be narrowed, ordered and cut into a page.
"""

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Generic, Optional, TypeVar

from sqlalchemy import func, select
from sqlalchemy.dialects.postgresql import JSONB, array
from sqlalchemy.orm import Query
from sqlalchemy.sql import type_coerce

from promptshelf.config import settings
from promptshelf.models import PromptRecord

T = TypeVar("T")


class SortField(str, Enum):
    CREATED_AT = "created_at"
    PROMPT_KEY = "prompt_key"
    VERSION = "version"


class SortOrder(str, Enum):
    ASC = "asc"
    DESC = "desc"


SORT_COLUMNS = {
    SortField.CREATED_AT: PromptRecord.created_at,
    SortField.PROMPT_KEY: PromptRecord.prompt_key,
    SortField.VERSION: PromptRecord.version,
}


@dataclass
class PromptQuery:
    prompt_key: Optional[str] = None  # substring, case-insensitive
    model_name: Optional[str] = None
    created_by: Optional[str] = None
    tags: list[str] = field(default_factory=list)  # matches records sharing any tag
    is_active: Optional[bool] = None
    sort_by: SortField = SortField.CREATED_AT
    sort_order: SortOrder = SortOrder.DESC


@dataclass
class PagedResult(Generic[T]):
    data: list[T]
    page: int
    limit: int
    total: int
    total_pages: int


def normalize_pagination(page: Optional[int], limit: Optional[int]) -> tuple[int, int]:
    """Clamp a 1-indexed page and a page size to the configured bounds."""
    page = max(page or 1, 1)
    if limit is None:
        limit = settings.default_page_limit
    limit = min(max(limit, 1), settings.max_page_limit)
    return page, limit


def tags_overlap(dialect_name: str, tags: list[str]):
    """SQL predicate: the record's tag list shares at least one element with tags."""
    if dialect_name == "postgresql":
        return type_coerce(PromptRecord.tags, JSONB).has_any(array(tags))

    tag = func.json_each(PromptRecord.tags).table_valued("value").alias("tag")
    return select(tag.c.value).where(tag.c.value.in_(tags)).exists()


def apply_filters(query: Query, prompt_query: PromptQuery, dialect_name: str) -> Query:
    if prompt_query.prompt_key:
        query = query.filter(PromptRecord.prompt_key.icontains(prompt_query.prompt_key, autoescape=True))
    if prompt_query.model_name:
        query = query.filter(PromptRecord.model_name == prompt_query.model_name)
    if prompt_query.created_by:
        query = query.filter(PromptRecord.created_by == prompt_query.created_by)
    if prompt_query.is_active is not None:
        query = query.filter(PromptRecord.is_active == prompt_query.is_active)
    if prompt_query.tags:
        query = query.filter(tags_overlap(dialect_name, prompt_query.tags))
    return query


def apply_sort(query: Query, sort_by: SortField, sort_order: SortOrder) -> Query:
    column = SORT_COLUMNS[SortField(sort_by)]
    if SortOrder(sort_order) == SortOrder.ASC:
        return query.order_by(column.asc(), PromptRecord.id.asc())
    return query.order_by(column.desc(), PromptRecord.id.desc())


def paginate(query: Query, page: Optional[int], limit: Optional[int]) -> PagedResult:
    """Count under the query's predicate, then fetch one page of it."""
    page, limit = normalize_pagination(page, limit)
    total = query.order_by(None).count()
    rows = query.offset((page - 1) * limit).limit(limit).all()
    return PagedResult(
        data=rows,
        page=page,
        limit=limit,
        total=total,
        total_pages=math.ceil(total / limit),
    )
