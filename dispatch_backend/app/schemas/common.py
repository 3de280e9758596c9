"""
Shared response schemas.
"""

from pydantic import BaseModel
from typing import Generic, List, TypeVar

T = TypeVar("T")


class PagedResponse(BaseModel, Generic[T]):
    """Offset page: `number` is zero-based."""
    content: List[T]
    total_elements: int
    total_pages: int
    number: int
    size: int

    class Config:
        from_attributes = True
