"""
Base Schema Classes for Pydantic Models

RULE: All response schemas that read from ORM objects inherit from
BaseResponseSchema. Input schemas inherit from BaseCreateSchema or
BaseUpdateSchema.
"""

from typing import Generic, List, TypeVar

from pydantic import BaseModel, ConfigDict


class BaseResponseSchema(BaseModel):
    """
    Base class for all response schemas that read from ORM models.

    Usage:
        class ContainerResponse(BaseResponseSchema):
            id: UUID
            container_number: str
    """
    model_config = ConfigDict(
        from_attributes=True,
        populate_by_name=True,
    )


class BaseCreateSchema(BaseModel):
    """Base class for create/input schemas. Unknown fields are ignored."""
    model_config = ConfigDict(
        extra='ignore',
    )


class BaseUpdateSchema(BaseModel):
    """
    Base class for update/patch schemas.

    All fields are optional; services apply model_dump(exclude_unset=True).
    """
    model_config = ConfigDict(
        extra='ignore',
    )


T = TypeVar("T")


class PaginatedResponse(BaseModel, Generic[T]):
    items: List[T]
    total: int
    page: int
    size: int
    pages: int
