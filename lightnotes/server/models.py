"""Response models for the object-store endpoint."""

from pydantic import BaseModel


class ErrorResponse(BaseModel):
    detail: str
    error_code: str | None = None


class KeyListResponse(BaseModel):
    keys: list[str]
