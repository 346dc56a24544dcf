"""Response envelopes: {"data": ...} on success, {"error": {...}} on failure."""

from typing import Generic, TypeVar

from pydantic import BaseModel

T = TypeVar("T")


class DataResponse(BaseModel, Generic[T]):
    data: T


class ErrorDetail(BaseModel):
    """Body of the error envelope.

    ``details`` is only populated for request validation failures, one
    entry per offending field.
    """

    code: str
    message: str
    details: list[dict] | None = None


class ErrorResponse(BaseModel):
    error: ErrorDetail

    @classmethod
    def build(
        cls, code: str, message: str, details: list[dict] | None = None
    ) -> dict:
        """Serialized envelope ready for a JSONResponse."""
        return cls(
            error=ErrorDetail(code=code, message=message, details=details)
        ).model_dump()
