"""
Configure generic models not specific
to a particular feature.
"""
from datetime import datetime, timezone
from typing import Any

from fastapi import status
from fastapi.responses import JSONResponse
from sqlmodel import SQLModel, Field


class ErrorDetail(SQLModel):
    field: str
    message: str


class ApiResponse(SQLModel):
    """
    Envelope shared by every endpoint, success or failure:
    {success, message, data?, errors?, timestamp}
    """
    success: bool
    message: str
    data: Any | None = None
    errors: list[ErrorDetail] | None = None
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @classmethod
    def ok(cls, message: str, data: Any | None = None) -> "ApiResponse":
        return cls(success=True, message=message, data=data)

    @classmethod
    def error(
        cls, message: str, errors: list[ErrorDetail] | None = None
    ) -> "ApiResponse":
        return cls(success=False, message=message, errors=errors)

    def to_response(
        self,
        status_code: int = status.HTTP_200_OK,
        headers: dict[str, str] | None = None
    ) -> JSONResponse:
        content = self.model_dump(mode="json")
        for key in ("data", "errors"):
            if content[key] is None:
                del content[key]
        return JSONResponse(status_code=status_code, content=content, headers=headers)
