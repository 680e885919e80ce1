"""
Base schemas shared by request and response DTOs.
"""

from pydantic import BaseModel, ConfigDict, Field


class StandardizedModel(BaseModel):
    """Base model for responses: enums serialize as their values."""

    model_config = ConfigDict(use_enum_values=True, populate_by_name=True)


class StrictModel(BaseModel):
    """Strict base for requests: forbid extras, validate defaults and assignments."""

    model_config = ConfigDict(
        extra="forbid",
        validate_default=True,
        validate_assignment=True,
        use_enum_values=True,
    )


class PageParams(StrictModel):
    """Common pagination parameters."""

    page: int = Field(default=1, ge=1)
    limit: int = Field(default=20, ge=1, le=100)

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit


class PageInfo(StandardizedModel):
    page: int
    limit: int
    total: int
    total_pages: int
    has_next: bool
    has_previous: bool

    @classmethod
    def build(cls, page: int, limit: int, total: int) -> "PageInfo":
        total_pages = (total + limit - 1) // limit if limit else 0
        return cls(
            page=page,
            limit=limit,
            total=total,
            total_pages=total_pages,
            has_next=page < total_pages,
            has_previous=page > 1,
        )
