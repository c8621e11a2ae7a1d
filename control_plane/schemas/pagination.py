"""Pagination contract shared by every list operation."""
from typing import Generic, List, TypeVar
from pydantic import BaseModel, ConfigDict, Field

from control_plane.config import settings
from control_plane.exceptions import ValidationError

T = TypeVar("T")


class PageParams(BaseModel):
    page: int = 1
    limit: int = Field(default_factory=lambda: settings.DEFAULT_PAGE_SIZE)

    def normalized(self) -> "PageParams":
        """Reject non-positive values; clamp ``limit`` to MAX_PAGE_SIZE."""
        if self.page < 1:
            raise ValidationError("page must be >= 1", [{"field": "page", "error": "out_of_range"}])
        if self.limit < 1:
            raise ValidationError("limit must be >= 1", [{"field": "limit", "error": "out_of_range"}])
        return PageParams(page=self.page, limit=min(self.limit, settings.MAX_PAGE_SIZE))

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit


class Page(BaseModel, Generic[T]):
    items: List[T]
    total: int
    page: int
    per_page: int = Field(alias="perPage")

    model_config = ConfigDict(populate_by_name=True, serialize_by_alias=True)

    @classmethod
    def build(cls, items: List[T], total: int, params: PageParams) -> "Page[T]":
        return cls(items=items, total=total, page=params.page, per_page=params.limit)
