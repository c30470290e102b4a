"""Common Pydantic v2 schemas shared across services."""

import math

from pydantic import BaseModel, Field


class PaginationMeta(BaseModel):
    """Pagination metadata included in paginated listings."""

    total: int = Field(description="Total number of items")
    page: int = Field(description="Current page number")
    page_size: int = Field(description="Items per page")
    total_pages: int = Field(description="Total number of pages")

    @classmethod
    def build(cls, *, total: int, page: int, page_size: int) -> "PaginationMeta":
        """Compute total_pages from a total item count."""
        total_pages = math.ceil(total / page_size) if total else 0
        return cls(total=total, page=page, page_size=page_size, total_pages=total_pages)


class ErrorResponse(BaseModel):
    """Error envelope body produced by ``BallotError.to_response``."""

    code: str = Field(description="Machine-readable error code")
    message: str = Field(description="Human-readable error message")
